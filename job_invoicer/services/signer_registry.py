import logging
import secrets
from datetime import timedelta
from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from .. import config
from ..errors import Conflict, Expired, NotFound, ValidationFailed
from ..models import CLOSED_STATUSES, Document, DocumentStatus, Signer, SignerStatus, utcnow

logger = logging.getLogger(__name__)


def new_token() -> str:
    # 32 random bytes, hex encoded
    return secrets.token_hex(32)


class SignerRegistry:
    """Ordered signers of a document, each holding a bearer token for their link."""

    def __init__(
        self,
        db: Session,
        token_ttl_days: int = config.SIGNING_TOKEN_TTL_DAYS,
        enforce_expiry: bool = config.ENFORCE_TOKEN_EXPIRY,
    ):
        self.db = db
        self.token_ttl = timedelta(days=token_ttl_days)
        self.enforce_expiry = enforce_expiry

    def get_document(self, document_id: int) -> Document:
        document = self.db.get(Document, document_id)
        if not document:
            raise NotFound("Document not found")
        return document

    def create_signer(self, document: Document, name: str, email: str, order: int) -> Signer:
        """Stage one signer with a fresh token; the caller commits."""
        signer = Signer(
            document_id=document.id,
            name=name,
            email=email,
            order=order,
            status=SignerStatus.PENDING.value,
            token=new_token(),
            token_expiry=utcnow() + self.token_ttl,
        )
        self.db.add(signer)
        return signer

    def add_signers(self, document_id: int, signers: List[dict]) -> List[Signer]:
        document = self.get_document(document_id)
        if DocumentStatus(document.status) in CLOSED_STATUSES:
            raise Conflict(f"Document is already {document.status}")
        if not signers:
            raise ValidationFailed("At least one signer is required")

        existing = {s.email.lower() for s in document.signers}
        seen = set()
        for entry in signers:
            name = (entry.get("name") or "").strip()
            email = (entry.get("email") or "").strip()
            if not name or not email:
                raise ValidationFailed("Each signer needs a name and an email")
            key = email.lower()
            if key in existing or key in seen:
                raise Conflict(f"Signer {email} is already registered on this document")
            seen.add(key)

        last_order = (
            self.db.query(func.max(Signer.order))
            .filter(Signer.document_id == document_id)
            .scalar()
        ) or 0

        created = []
        for i, entry in enumerate(signers, start=1):
            created.append(
                self.create_signer(
                    document, entry["name"].strip(), entry["email"].strip(), last_order + i
                )
            )

        # A document only leaves draft once someone is registered to sign it
        if document.status == DocumentStatus.DRAFT.value:
            document.advance_status(DocumentStatus.PENDING)

        self.db.commit()
        for signer in created:
            self.db.refresh(signer)
            logger.info("Signing link for %s: %s", signer.name, config.signing_link(signer.token))
        return created

    def list_signers(self, document_id: int) -> List[Signer]:
        self.get_document(document_id)
        return (
            self.db.query(Signer)
            .filter(Signer.document_id == document_id)
            .order_by(Signer.order, Signer.id)
            .all()
        )

    def find_by_email(self, document_id: int, email: str) -> Optional[Signer]:
        return (
            self.db.query(Signer)
            .filter(Signer.document_id == document_id, func.lower(Signer.email) == email.lower())
            .first()
        )

    def resolve_by_token(self, token: str) -> Tuple[Signer, Document]:
        signer = self.db.query(Signer).filter(Signer.token == token).first() if token else None
        if not signer:
            raise NotFound("Invalid signing token")
        if self.enforce_expiry and signer.is_token_expired():
            raise Expired()
        return signer, signer.document
