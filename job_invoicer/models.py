import enum
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from .database import Base


def utcnow() -> datetime:
    # Naive UTC, the way SQLite hands timestamps back
    return datetime.now(timezone.utc).replace(tzinfo=None)


class DocumentStatus(str, enum.Enum):
    DRAFT = "draft"
    PENDING = "pending"
    SENT = "sent"
    PARTIALLY_SIGNED = "partially_signed"
    COMPLETED = "completed"
    FAILED = "failed"


# pending and sent are the same step; FAILED is terminal and never advanced.
STATUS_RANK = {
    DocumentStatus.DRAFT: 0,
    DocumentStatus.PENDING: 1,
    DocumentStatus.SENT: 1,
    DocumentStatus.PARTIALLY_SIGNED: 2,
    DocumentStatus.COMPLETED: 3,
}

CLOSED_STATUSES = (DocumentStatus.COMPLETED, DocumentStatus.FAILED)


class SignerStatus(str, enum.Enum):
    PENDING = "pending"
    DRAFT = "draft"
    SIGNED = "signed"


class FieldType(str, enum.Enum):
    SIGNATURE = "signature"
    INITIALS = "initials"
    DATE = "date"
    TEXT = "text"

    @classmethod
    def parse(cls, value) -> "FieldType":
        if isinstance(value, cls):
            return value
        normalized = str(value or "").strip().lower()
        if normalized == "initial":
            normalized = "initials"
        return cls(normalized)


class EventType(str, enum.Enum):
    SIGNED = "signed"
    FIELD_ADDED = "field_added"
    DELETED = "deleted"
    FAILED = "failed"
    SENT = "sent"


class Document(Base):
    __tablename__ = "documents"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    file_path = Column(String, nullable=False)
    uploaded_by = Column(String, nullable=False)
    status = Column(String, nullable=False, default=DocumentStatus.DRAFT.value)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    sent_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    # "metadata" is reserved on declarative classes
    meta = Column("metadata", JSON, nullable=True)

    signers = relationship(
        "Signer",
        back_populates="document",
        order_by="Signer.order",
        cascade="all, delete-orphan",
    )
    fields = relationship(
        "SignatureField",
        back_populates="document",
        order_by="SignatureField.id",
        cascade="all, delete-orphan",
    )

    def advance_status(self, new_status: DocumentStatus) -> bool:
        """Move forward to ``new_status``; returns False when that would regress."""
        current = DocumentStatus(self.status)
        if current == DocumentStatus.FAILED:
            return False
        if new_status == DocumentStatus.FAILED:
            self.status = new_status.value
            return True
        if STATUS_RANK[new_status] <= STATUS_RANK[current]:
            return False
        self.status = new_status.value
        return True


class Signer(Base):
    __tablename__ = "signers"

    id = Column(Integer, primary_key=True, index=True)
    document_id = Column(
        Integer, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name = Column(String, nullable=False)
    email = Column(String, nullable=False)
    order = Column(Integer, nullable=False, default=1)
    status = Column(String, nullable=False, default=SignerStatus.PENDING.value)
    token = Column(String(128), unique=True, index=True, nullable=False)
    token_expiry = Column(DateTime, nullable=True)
    signed_at = Column(DateTime, nullable=True)
    signature_data = Column(Text, nullable=True)
    ip_address = Column(String, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    document = relationship("Document", back_populates="signers")
    fields = relationship(
        "SignatureField", back_populates="signer", cascade="all, delete-orphan"
    )

    def is_token_expired(self, now: datetime = None) -> bool:
        if not self.token_expiry:
            return False
        return (now or utcnow()) > self.token_expiry


class SignatureField(Base):
    __tablename__ = "signature_fields"

    id = Column(Integer, primary_key=True, index=True)
    document_id = Column(
        Integer, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    signer_id = Column(
        Integer, ForeignKey("signers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type = Column(String, nullable=False, default=FieldType.SIGNATURE.value)
    page = Column(Integer, nullable=False)
    x = Column(Float, nullable=False)
    y = Column(Float, nullable=False)
    width = Column(Float, nullable=False)
    height = Column(Float, nullable=False)
    required = Column(Boolean, nullable=False, default=True)
    value = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    document = relationship("Document", back_populates="fields")
    signer = relationship("Signer", back_populates="fields")


class SignatureEvent(Base):
    __tablename__ = "signature_events"

    id = Column(Integer, primary_key=True, index=True)
    # No foreign key: the audit trail outlives the document
    document_id = Column(Integer, nullable=False, index=True)
    event_type = Column(String, nullable=False)
    payload = Column(JSON, nullable=True)
    user_email = Column(String, nullable=True)
    ip_address = Column(String, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
