import logging
from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy.orm import Session

from .. import config
from ..errors import AlreadySigned, Conflict, NotFound, OutOfOrder, ValidationFailed
from ..models import DocumentStatus, FieldType, SignatureField, Signer, SignerStatus, utcnow
from .completion import CompletionEngine
from .field_store import FieldStore
from .notifier import EmailNotifier, completion_recipients
from .signer_registry import SignerRegistry

logger = logging.getLogger(__name__)

DEFAULT_SIGNATURE_WIDTH = 200
DEFAULT_SIGNATURE_HEIGHT = 80

ACTION_SAVE_AND_SEND = "save_and_send"
ACTION_SAVE = "save"
ACTION_DRAFT = "draft"

MESSAGES = {
    ACTION_SAVE_AND_SEND: "Document signed and sent to next signer",
    ACTION_SAVE: "Document signed successfully",
    ACTION_DRAFT: "Draft saved successfully",
}
DEFAULT_MESSAGE = "Document signed successfully"
COMPLETED_MESSAGE = "Document completed! All signers have signed."


@dataclass
class SubmitOutcome:
    message: str
    status: str
    document_completed: bool
    field: SignatureField
    next_signers: List[Signer] = field(default_factory=list)


def status_for_action(action: Optional[str]) -> SignerStatus:
    if action == ACTION_DRAFT:
        return SignerStatus.DRAFT
    return SignerStatus.SIGNED


def outcome_message(action: Optional[str], completed: bool) -> str:
    if completed:
        return COMPLETED_MESSAGE
    return MESSAGES.get(action, DEFAULT_MESSAGE)


def _validate_position(position) -> dict:
    if not isinstance(position, dict):
        raise ValidationFailed("Position is required")
    missing = [k for k in ("page", "x", "y") if position.get(k) is None]
    if missing:
        raise ValidationFailed(f"Position is missing: {', '.join(missing)}")
    try:
        page = int(position["page"])
        x, y = float(position["x"]), float(position["y"])
    except (TypeError, ValueError):
        raise ValidationFailed("Position page, x and y must be numbers")
    if page < 1:
        raise ValidationFailed("Page numbers start at 1")
    return dict(position, page=page, x=x, y=y)


class SigningSession:
    """The token-scoped flow a signer uses to view a document and sign it."""

    def __init__(
        self,
        db: Session,
        notifier: Optional[EmailNotifier] = None,
        registry: Optional[SignerRegistry] = None,
        strict_order: bool = config.STRICT_SIGNING_ORDER,
    ):
        self.db = db
        self.notifier = notifier
        self.registry = registry or SignerRegistry(db)
        self.fields = FieldStore(db)
        self.completion = CompletionEngine(db)
        self.strict_order = strict_order

    def get_session(self, token: str) -> dict:
        signer, document = self.registry.resolve_by_token(token)
        return {
            "document": {
                "id": document.id,
                "name": document.name,
                # Served through the token, never the storage reference
                "file_url": config.signing_document_link(token),
                "status": document.status,
            },
            "signer": {
                "id": signer.id,
                "name": signer.name,
                "email": signer.email,
                "status": signer.status,
            },
        }

    def get_document(self, token: str):
        _signer, document = self.registry.resolve_by_token(token)
        return document

    def get_signer_fields(self, token: str) -> List[SignatureField]:
        signer, _document = self.registry.resolve_by_token(token)
        return self.fields.list_fields_for_signer(signer.id)

    def _check_order(self, signer: Signer):
        earlier = [
            s for s in self.completion.signers_for(signer.document_id)
            if s.order < signer.order and s.status != SignerStatus.SIGNED.value
        ]
        if earlier:
            raise OutOfOrder()

    def submit(
        self,
        token: str,
        signature_data: str,
        position: dict,
        action: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> SubmitOutcome:
        signer, document = self.registry.resolve_by_token(token)

        if not signature_data:
            raise ValidationFailed("Signature data is required")
        position = _validate_position(position)

        new_status = status_for_action(action)
        if new_status == SignerStatus.SIGNED and signer.status == SignerStatus.SIGNED.value:
            raise AlreadySigned()
        if document.status == DocumentStatus.FAILED.value:
            raise Conflict("Document signing has failed")
        if new_status == SignerStatus.DRAFT and document.status == DocumentStatus.COMPLETED.value:
            raise Conflict("Document is already completed")
        if new_status == SignerStatus.SIGNED and self.strict_order:
            self._check_order(signer)

        field = self.fields.add_field(
            document,
            signer,
            FieldType.SIGNATURE,
            position["page"],
            position["x"],
            position["y"],
            position.get("width") or DEFAULT_SIGNATURE_WIDTH,
            position.get("height") or DEFAULT_SIGNATURE_HEIGHT,
            required=True,
        )
        self.fields.apply_value(field, signature_data, signer_id=signer.id, ip_address=ip_address)

        signer.status = new_status.value
        signer.signature_data = signature_data
        signer.ip_address = ip_address
        if new_status == SignerStatus.SIGNED:
            signer.signed_at = utcnow()
        else:
            signer.signed_at = None

        completed = False
        next_signers = []
        if new_status == SignerStatus.SIGNED:
            result = self.completion.evaluate(document.id)
            completed = result.completed
            next_signers = result.next_signers

        # Signer update, new field and document status land together
        self.db.commit()
        self.db.refresh(field)
        logger.info(
            "Signer %s on document %s is now %s (action=%s)",
            signer.id, document.id, signer.status, action or "default",
        )

        if action != ACTION_SAVE_AND_SEND:
            next_signers = []
        self._notify(document, completed, next_signers)

        return SubmitOutcome(
            message=outcome_message(action, completed),
            status=signer.status,
            document_completed=completed,
            field=field,
            next_signers=next_signers,
        )

    def fill_field(self, token: str, field_id: int, value: str, ip_address: Optional[str] = None) -> SignatureField:
        """Fill a field that was placed for this signer ahead of time."""
        signer, document = self.registry.resolve_by_token(token)
        if not value:
            raise ValidationFailed("A value is required")
        if document.status in (DocumentStatus.COMPLETED.value, DocumentStatus.FAILED.value):
            raise Conflict(f"Document is already {document.status}")
        if signer.status == SignerStatus.SIGNED.value:
            raise AlreadySigned()

        field = self.fields.get(field_id)
        if field.document_id != document.id:
            raise NotFound("Signature field not found")
        self.fields.apply_value(field, value, signer_id=signer.id, ip_address=ip_address)
        self.db.commit()
        self.db.refresh(field)
        return field

    def _notify(self, document, completed: bool, next_signers: List[Signer]):
        if not self.notifier:
            return
        if completed:
            self.notifier.send_completion_notice(document, completion_recipients(document))
            return
        for signer in next_signers:
            self.notifier.send_signing_request(signer, document)
