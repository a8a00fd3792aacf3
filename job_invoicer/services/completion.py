import logging
from dataclasses import dataclass, field
from typing import List

from sqlalchemy.orm import Session

from ..errors import NotFound
from ..models import Document, DocumentStatus, Signer, SignerStatus, utcnow

logger = logging.getLogger(__name__)


@dataclass
class CompletionResult:
    document: Document
    completed: bool
    next_signers: List[Signer] = field(default_factory=list)


def all_signed(signers: List[Signer]) -> bool:
    return bool(signers) and all(s.status == SignerStatus.SIGNED.value for s in signers)


def select_next_signers(signers: List[Signer]) -> List[Signer]:
    """
    Pending signers at the lowest order that still has someone unsigned.

    A later step is never selected while an earlier one is open; parallel
    signers sharing that order are all returned.
    """
    open_signers = [s for s in signers if s.status != SignerStatus.SIGNED.value]
    if not open_signers:
        return []
    step = min(s.order for s in open_signers)
    return [
        s for s in open_signers
        if s.order == step and s.status == SignerStatus.PENDING.value
    ]


class CompletionEngine:
    """Decides when a document is fully executed. Never commits."""

    def __init__(self, db: Session):
        self.db = db

    def _lock_document(self, document_id: int) -> Document:
        document = (
            self.db.query(Document)
            .filter(Document.id == document_id)
            .with_for_update()
            .populate_existing()
            .one_or_none()
        )
        if not document:
            raise NotFound("Document not found")
        return document

    def signers_for(self, document_id: int) -> List[Signer]:
        return (
            self.db.query(Signer)
            .filter(Signer.document_id == document_id)
            .order_by(Signer.order, Signer.id)
            .populate_existing()
            .all()
        )

    def evaluate(self, document_id: int) -> CompletionResult:
        # Our own signer update must be visible to the re-read below
        self.db.flush()
        document = self._lock_document(document_id)
        signers = self.signers_for(document_id)

        if document.status == DocumentStatus.COMPLETED.value:
            return CompletionResult(document, True)

        if all_signed(signers):
            if document.advance_status(DocumentStatus.COMPLETED):
                document.completed_at = utcnow()
                logger.info("Document %s completed", document_id)
            return CompletionResult(document, document.status == DocumentStatus.COMPLETED.value)

        if any(s.status == SignerStatus.SIGNED.value for s in signers):
            document.advance_status(DocumentStatus.PARTIALLY_SIGNED)

        return CompletionResult(document, False, select_next_signers(signers))
