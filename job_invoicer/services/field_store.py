import logging
from typing import List, Optional

from sqlalchemy.orm import Session, joinedload

from ..errors import Conflict, NotFound, ValidationFailed
from ..models import Document, EventType, FieldType, SignatureField, Signer
from .events import field_payload, record_event

logger = logging.getLogger(__name__)


class FieldStore:
    """Positioned, typed fields on a document and the values signers fill in."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, field_id: int) -> SignatureField:
        field = self.db.get(SignatureField, field_id)
        if not field:
            raise NotFound("Signature field not found")
        return field

    def add_field(
        self,
        document: Document,
        signer: Signer,
        field_type,
        page: int,
        x: float,
        y: float,
        width: float,
        height: float,
        required: bool = True,
        value: Optional[str] = None,
    ) -> SignatureField:
        """Stage a field in the current transaction without committing."""
        if signer.document_id != document.id:
            raise ValidationFailed("Signer does not belong to this document")
        try:
            field_type = FieldType.parse(field_type)
        except ValueError:
            raise ValidationFailed(f"Unsupported field type: {field_type}")
        try:
            page, x, y = int(page), float(x), float(y)
            width, height = float(width), float(height)
        except (TypeError, ValueError):
            raise ValidationFailed("Field position and size must be numbers")
        if page < 1:
            raise ValidationFailed("Page numbers start at 1")
        if width <= 0 or height <= 0:
            raise ValidationFailed("Field width and height must be positive")

        field = SignatureField(
            document=document,
            signer=signer,
            type=field_type.value,
            page=page,
            x=x,
            y=y,
            width=width,
            height=height,
            required=required,
            value=value,
        )
        self.db.add(field)
        self.db.flush()
        return field

    def create_field(
        self,
        document_id: int,
        signer_id: int,
        field_type,
        page: int,
        x: float,
        y: float,
        width: float,
        height: float,
        required: bool = True,
    ) -> SignatureField:
        document = self.db.get(Document, document_id)
        if not document:
            raise NotFound("Document not found")
        signer = self.db.get(Signer, signer_id)
        if not signer:
            raise NotFound("Signer not found")

        field = self.add_field(document, signer, field_type, page, x, y, width, height, required)
        self.db.commit()
        self.db.refresh(field)
        return field

    def apply_value(
        self,
        field: SignatureField,
        value: str,
        signer_id: Optional[int] = None,
        ip_address: Optional[str] = None,
    ) -> SignatureField:
        """Stage a value change plus its audit event without committing."""
        if signer_id is not None and field.signer_id != signer_id:
            raise Conflict("Field belongs to another signer")

        field.value = value
        event_type = (
            EventType.SIGNED if field.type == FieldType.SIGNATURE.value else EventType.FIELD_ADDED
        )
        record_event(
            self.db,
            field.document_id,
            event_type,
            field_payload(field),
            user_email=field.signer.email,
            ip_address=ip_address,
        )
        return field

    def set_field_value(
        self,
        field_id: int,
        value: str,
        signer_id: Optional[int] = None,
        ip_address: Optional[str] = None,
    ) -> SignatureField:
        field = self.get(field_id)
        self.apply_value(field, value, signer_id=signer_id, ip_address=ip_address)
        self.db.commit()
        self.db.refresh(field)
        return field

    def list_fields_for_document(self, document_id: int, filled_only: bool = False) -> List[SignatureField]:
        query = (
            self.db.query(SignatureField)
            .options(joinedload(SignatureField.signer))
            .filter(SignatureField.document_id == document_id)
        )
        if filled_only:
            query = query.filter(SignatureField.value.isnot(None), SignatureField.value != "")
        return query.order_by(SignatureField.id).all()

    def list_fields_for_signer(self, signer_id: int) -> List[SignatureField]:
        return (
            self.db.query(SignatureField)
            .filter(SignatureField.signer_id == signer_id)
            .order_by(SignatureField.id)
            .all()
        )

    def delete_field(
        self,
        field_id: int,
        document_id: Optional[int] = None,
        actor_email: str = "system",
        ip_address: Optional[str] = None,
    ) -> None:
        field = self.get(field_id)
        if document_id is not None and field.document_id != document_id:
            raise NotFound("Signature field not found")

        # Capture the owner before the row goes away
        payload = field_payload(field)
        record_event(
            self.db,
            field.document_id,
            EventType.DELETED,
            payload,
            user_email=actor_email,
            ip_address=ip_address,
        )
        owner_doc_id = field.document_id
        self.db.delete(field)
        self.db.commit()
        logger.info("Deleted %s field %s from document %s", payload["fieldType"], field_id, owner_doc_id)
