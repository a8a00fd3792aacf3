import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from ..errors import Conflict, ValidationFailed
from ..models import CLOSED_STATUSES, DocumentStatus, utcnow
from .completion import select_next_signers
from .field_store import FieldStore
from .notifier import EmailNotifier
from .signer_registry import SignerRegistry

logger = logging.getLogger(__name__)

SIGNING_ROLES = ("signer", "approver")
CC_ROLE = "cc"


class EnvelopeService:
    """Registers recipients and their fields in one call, then invites the first step."""

    def __init__(self, db: Session, notifier: Optional[EmailNotifier] = None, registry: Optional[SignerRegistry] = None):
        self.db = db
        self.notifier = notifier
        self.registry = registry or SignerRegistry(db)
        self.fields = FieldStore(db)

    def _validate(self, document, recipients: List[dict]):
        if DocumentStatus(document.status) in CLOSED_STATUSES:
            raise Conflict(f"Document is already {document.status}")
        if not recipients:
            raise ValidationFailed("At least one recipient is required")

        existing = {s.email.lower() for s in document.signers}
        seen = set()
        for r in recipients:
            if not r.get("name") or not r.get("email"):
                raise ValidationFailed("Each recipient needs a name and an email")
            role = r.get("role") or "signer"
            if role not in SIGNING_ROLES + (CC_ROLE,):
                raise ValidationFailed(f"Unknown recipient role: {role}")
            key = r["email"].lower()
            if key in seen or (role != CC_ROLE and key in existing):
                raise Conflict(f"Recipient {r['email']} is listed more than once")
            seen.add(key)
        if not any((r.get("role") or "signer") in SIGNING_ROLES for r in recipients):
            raise ValidationFailed("At least one signer or approver is required")

    def send(
        self,
        document_id: int,
        recipients: List[dict],
        fields: List[dict],
        email_subject: Optional[str] = None,
        email_message: Optional[str] = None,
    ) -> dict:
        document = self.registry.get_document(document_id)
        self._validate(document, recipients)

        by_recipient = {}
        cc = []
        for r in recipients:
            role = r.get("role") or "signer"
            if role == CC_ROLE:
                cc.append({"name": r["name"], "email": r["email"]})
                continue
            signer = self.registry.create_signer(document, r["name"], r["email"], int(r.get("order") or 1))
            by_recipient[str(r.get("id") or r["email"])] = signer
        self.db.flush()

        for f in fields or []:
            signer = by_recipient.get(str(f.get("recipient_id")))
            if signer is None:
                raise ValidationFailed(f"Field references unknown recipient {f.get('recipient_id')}")
            self.fields.add_field(
                document,
                signer,
                f.get("type") or "signature",
                f.get("page"),
                f.get("x"),
                f.get("y"),
                f.get("width"),
                f.get("height"),
                required=bool(f.get("required", True)),
            )

        meta = dict(document.meta or {})
        meta["cc"] = cc
        if email_subject:
            meta["emailSubject"] = email_subject
        document.meta = meta
        # pending and sent are the same step; a partially signed envelope keeps its status
        if document.status in (DocumentStatus.DRAFT.value, DocumentStatus.PENDING.value):
            document.status = DocumentStatus.SENT.value
        document.sent_at = utcnow()

        self.db.commit()

        # Earlier signers already on the document still gate the new recipients
        new_ids = {s.id for s in by_recipient.values()}
        first_step = [s for s in select_next_signers(list(document.signers)) if s.id in new_ids]
        if self.notifier:
            for signer in first_step:
                self.notifier.send_signing_request(signer, document, email_subject, email_message)
        logger.info(
            "Envelope for document %s sent to %s recipient(s), %s invited",
            document_id, len(recipients), len(first_step),
        )

        return {
            "message": "Envelope sent successfully",
            "envelope_id": document.id,
            "recipient_count": len(recipients),
        }
