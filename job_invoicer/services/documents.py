import io
import logging
import os
from typing import List, Optional

from pypdf import PdfReader
from sqlalchemy.orm import Session

from .. import config
from ..errors import AlreadySigned, Conflict, DeliveryFailed, NotFound, RenderError, StorageError, ValidationFailed
from ..models import (
    CLOSED_STATUSES,
    Document,
    DocumentStatus,
    EventType,
    FieldType,
    SignatureEvent,
    SignatureField,
    SignerStatus,
    utcnow,
)
from . import events, pdf_service
from .completion import CompletionEngine
from .field_store import FieldStore
from .notifier import EmailNotifier, get_notifier
from .signer_registry import SignerRegistry
from .signing_session import DEFAULT_SIGNATURE_HEIGHT, DEFAULT_SIGNATURE_WIDTH
from .storage import FileStorage

logger = logging.getLogger(__name__)

WEBHOOK_SIGNED = "document.signed"
WEBHOOK_FAILED = "document.failed"


class DocumentService:

    def __init__(
        self,
        db: Session,
        storage: FileStorage,
        max_upload_bytes: int = config.MAX_UPLOAD_BYTES,
        notifier: Optional[EmailNotifier] = None,
    ):
        self.db = db
        self.storage = storage
        self.max_upload_bytes = max_upload_bytes
        self.notifier = notifier

    def get(self, document_id: int) -> Document:
        document = self.db.get(Document, document_id)
        if not document:
            raise NotFound("Document not found")
        return document

    def list(self, uploaded_by: Optional[str] = None) -> List[Document]:
        query = self.db.query(Document)
        if uploaded_by:
            query = query.filter(Document.uploaded_by == uploaded_by)
        return query.order_by(Document.created_at.desc(), Document.id.desc()).all()

    def _validate_pdf(self, contents: bytes, filename: str, content_type: Optional[str]):
        if not filename:
            raise ValidationFailed("No file provided")
        if not contents:
            raise ValidationFailed("The uploaded file is empty")
        if content_type not in (None, "application/pdf") and not filename.lower().endswith(".pdf"):
            raise ValidationFailed("The file must be a PDF")
        if len(contents) > self.max_upload_bytes:
            raise ValidationFailed(f"Maximum size is {self.max_upload_bytes // (1024 * 1024)} MB")
        try:
            reader = PdfReader(io.BytesIO(contents))
            _ = len(reader.pages)
        except Exception:
            raise ValidationFailed("Invalid or damaged PDF")

    def upload(self, contents: bytes, filename: str, content_type: Optional[str], uploaded_by: str) -> Document:
        self._validate_pdf(contents, filename, content_type)

        file_path = self.storage.save(contents, FileStorage.unique_name(filename))
        document = Document(
            name=os.path.basename(filename),
            file_path=file_path,
            uploaded_by=uploaded_by,
            status=DocumentStatus.DRAFT.value,
            meta={
                "originalName": filename,
                "size": len(contents),
                "mimeType": content_type or "application/pdf",
            },
        )
        self.db.add(document)
        self.db.commit()
        self.db.refresh(document)
        logger.info("Uploaded document %s (%s bytes)", document.id, len(contents))
        return document

    def delete(self, document_id: int, actor_email: str = "system", ip_address: Optional[str] = None) -> None:
        document = self.get(document_id)

        # Continue with database deletion even if file deletion fails
        if document.file_path and not self.storage.delete(document.file_path):
            logger.warning("Stored file for document %s was not removed", document_id)

        events.record_event(
            self.db,
            document.id,
            EventType.DELETED,
            {"documentName": document.name, "fileUrl": document.file_path},
            user_email=actor_email,
            ip_address=ip_address,
        )
        self.db.delete(document)
        self.db.commit()
        logger.info("Deleted document %s", document_id)

    def list_events(self, document_id: int) -> List[SignatureEvent]:
        self.get(document_id)
        return events.list_events(self.db, document_id)

    def render(self, document_id: int) -> bytes:
        """Stamp every filled field onto the original PDF. Regenerated on each call."""
        document = self.get(document_id)
        fields = FieldStore(self.db).list_fields_for_document(document_id, filled_only=True)
        original = self.storage.read(document.file_path)
        return pdf_service.stamp_pdf(original, [pdf_service.field_to_stamp(f) for f in fields])

    @staticmethod
    def download_filename(document: Document) -> str:
        base = document.name
        if base.lower().endswith(".pdf"):
            base = base[:-4]
        return f"{base}-signed.pdf"

    def place_signature(
        self,
        document_id: int,
        signer_email: str,
        signer_name: str,
        signature_data: str,
        position: dict,
        field_type: str = FieldType.SIGNATURE.value,
        ip_address: Optional[str] = None,
    ):
        """
        Owner-initiated signature outside the token flow: finds or creates the
        signer by email, stores the filled field and marks the signer signed.

        Returns:
            tuple: (SignatureField, document completed flag)
        """
        document = self.get(document_id)
        if DocumentStatus(document.status) in CLOSED_STATUSES:
            raise Conflict(f"Document is already {document.status}")
        if not signature_data:
            raise ValidationFailed("Signature data is required")
        if not position or position.get("page") is None or position.get("x") is None or position.get("y") is None:
            raise ValidationFailed("Position with page, x and y is required")
        if not signer_email:
            raise ValidationFailed("Signer email is required")

        registry = SignerRegistry(self.db)
        signer = registry.find_by_email(document_id, signer_email)
        if signer is None:
            next_order = max((s.order for s in document.signers), default=0) + 1
            signer = registry.create_signer(document, signer_name or signer_email, signer_email, next_order)
            self.db.flush()
            if document.status == DocumentStatus.DRAFT.value:
                document.advance_status(DocumentStatus.PENDING)
        elif signer.status == SignerStatus.SIGNED.value:
            raise AlreadySigned()

        store = FieldStore(self.db)
        field = store.add_field(
            document,
            signer,
            field_type,
            position["page"],
            position["x"],
            position["y"],
            position.get("width") or DEFAULT_SIGNATURE_WIDTH,
            position.get("height") or DEFAULT_SIGNATURE_HEIGHT,
        )
        store.apply_value(field, signature_data, ip_address=ip_address)

        signer.status = SignerStatus.SIGNED.value
        signer.signed_at = utcnow()
        signer.signature_data = signature_data
        signer.ip_address = ip_address

        result = CompletionEngine(self.db).evaluate(document_id)
        self.db.commit()
        self.db.refresh(field)
        return field, result.completed

    def send_document(
        self,
        document_id: int,
        sender_email: str,
        sender_name: str,
        recipient_email: str,
        recipient_name: str,
        message: Optional[str] = None,
    ) -> int:
        """
        Email the current PDF to a single recipient outside the signing flow.

        The sender and recipient are kept on the document metadata and
        ``sent_at`` is stamped before mail goes out.

        Returns:
            int: number of messages delivered
        """
        document = self.get(document_id)
        required = (
            ("senderEmail", sender_email),
            ("senderName", sender_name),
            ("recipientEmail", recipient_email),
            ("recipientName", recipient_name),
        )
        missing = [name for name, value in required if not value]
        if missing:
            raise ValidationFailed(f"Missing required fields: {', '.join(missing)}")

        meta = dict(document.meta or {})
        meta.update(senderEmail=sender_email, recipientEmail=recipient_email)
        document.meta = meta
        document.sent_at = utcnow()
        events.record_event(
            self.db,
            document.id,
            EventType.SENT,
            {"senderEmail": sender_email, "recipientEmail": recipient_email},
            user_email=sender_email,
        )
        self.db.commit()

        try:
            attachment = self.render(document_id)
        except (StorageError, RenderError) as e:
            logger.warning("Sending document %s without attachment: %s", document_id, e)
            attachment = None

        notifier = self.notifier or get_notifier()
        delivered = notifier.send_document(
            document, sender_name, sender_email, recipient_name, recipient_email, message, attachment
        )
        if notifier.enabled and not delivered:
            raise DeliveryFailed("Failed to send email")
        logger.info("Document %s sent to %s", document_id, recipient_email)
        return delivered

    def apply_webhook(
        self,
        document_id: int,
        event_type: str,
        signer_email: Optional[str] = None,
        signature_data: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> str:
        """Apply a status callback from an external signing provider."""
        document = self.get(document_id)

        if event_type == WEBHOOK_FAILED:
            if document.status == DocumentStatus.COMPLETED.value:
                raise Conflict("Document is already completed")
            if document.advance_status(DocumentStatus.FAILED):
                events.record_event(
                    self.db,
                    document.id,
                    EventType.FAILED,
                    {"eventType": event_type},
                    user_email=signer_email,
                    ip_address=ip_address,
                )
                self.db.commit()
                logger.warning("Document %s marked failed by webhook", document_id)
            return "Document signing failure recorded"

        if event_type == WEBHOOK_SIGNED:
            if not signer_email:
                raise ValidationFailed("signerEmail is required for document.signed")
            if document.status == DocumentStatus.FAILED.value:
                raise Conflict("Document signing has failed")
            signer = SignerRegistry(self.db).find_by_email(document_id, signer_email)
            if signer is None:
                raise NotFound("Signer not found")
            if signer.status != SignerStatus.SIGNED.value:
                signer.status = SignerStatus.SIGNED.value
                signer.signed_at = utcnow()
                if signature_data:
                    signer.signature_data = signature_data
                events.record_event(
                    self.db,
                    document.id,
                    EventType.SIGNED,
                    {"eventType": event_type, "signerId": signer.id, "signerEmail": signer.email},
                    user_email=signer.email,
                    ip_address=ip_address,
                )
                CompletionEngine(self.db).evaluate(document_id)
                self.db.commit()
            return "Signature processed successfully"

        logger.info("Ignoring webhook %s for document %s", event_type, document_id)
        return "Webhook received"

    def field_view(self, field: SignatureField) -> dict:
        return {
            "id": field.id,
            "document_id": field.document_id,
            "signer_id": field.signer_id,
            "type": field.type,
            "page": field.page,
            "x": field.x,
            "y": field.y,
            "width": field.width,
            "height": field.height,
            "required": field.required,
            "value": field.value,
            "signer_name": field.signer.name,
            "signer_email": field.signer.email,
            "signed_at": field.signer.signed_at,
        }
