from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )


# Signers

class SignerCreate(CamelModel):
    name: str
    email: str


class SignersCreate(CamelModel):
    signers: List[SignerCreate]


class Signer(CamelModel):
    id: int
    document_id: int
    name: str
    email: str
    order: int
    status: str
    token_expiry: Optional[datetime] = None
    signed_at: Optional[datetime] = None
    created_at: datetime


class SigningLink(CamelModel):
    name: str
    email: str
    link: str


class SignersCreated(CamelModel):
    message: str
    signers: List[Signer]
    signing_links: List[SigningLink]


class SignerList(CamelModel):
    signers: List[Signer]


# Fields

class Position(CamelModel):
    page: int = Field(ge=1)
    x: float
    y: float
    width: Optional[float] = Field(default=None, gt=0)
    height: Optional[float] = Field(default=None, gt=0)


class FieldCreate(CamelModel):
    signer_id: int
    type: str = "signature"
    page: int = Field(ge=1)
    x: float
    y: float
    width: float = Field(gt=0)
    height: float = Field(gt=0)
    required: bool = True


class SignatureField(CamelModel):
    id: int
    document_id: int
    signer_id: int
    type: str
    page: int
    x: float
    y: float
    width: float
    height: float
    required: bool
    value: Optional[str] = None


class FilledField(SignatureField):
    signer_name: str
    signer_email: str
    signed_at: Optional[datetime] = None


class FilledFieldList(CamelModel):
    signatures: List[FilledField]


class FieldValue(CamelModel):
    value: str


# Documents

class Document(CamelModel):
    id: int
    name: str
    file_url: str = Field(validation_alias="file_path")
    uploaded_by: str
    status: str
    created_at: datetime
    sent_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    metadata: Optional[Dict[str, Any]] = Field(default=None, validation_alias="meta")


class DocumentDetail(Document):
    signers: List[Signer] = []


class DocumentList(CamelModel):
    documents: List[Document]
    total: int


class SignatureEvent(CamelModel):
    id: int
    document_id: int
    event_type: str
    payload: Optional[Dict[str, Any]] = None
    user_email: Optional[str] = None
    ip_address: Optional[str] = None
    created_at: datetime


# Signing session

class SessionDocument(CamelModel):
    id: int
    name: str
    file_url: str
    status: str


class SessionSigner(CamelModel):
    id: int
    name: str
    email: str
    status: str


class SigningSession(CamelModel):
    document: SessionDocument
    signer: SessionSigner


class SignatureSubmission(CamelModel):
    signature_data: str
    position: Position
    action: Optional[str] = None


class SubmitResult(CamelModel):
    message: str
    status: str
    document_completed: bool
    next_signers: List[str] = []


class DirectSignature(CamelModel):
    signature_data: str
    position: Position
    signer_email: str
    signer_name: Optional[str] = None
    field_type: str = "signature"


class DirectSignatureResult(CamelModel):
    message: str
    signature_field: SignatureField
    document_completed: bool


# Envelope

class Recipient(CamelModel):
    id: str
    name: str
    email: str
    role: str = "signer"
    order: int = Field(default=1, ge=1)


class EnvelopeField(CamelModel):
    type: str = "signature"
    recipient_id: str
    page: int = Field(ge=1)
    x: float
    y: float
    width: float = Field(gt=0)
    height: float = Field(gt=0)
    required: bool = True
    label: Optional[str] = None


class EnvelopeCreate(CamelModel):
    recipients: List[Recipient]
    signature_fields: List[EnvelopeField] = []
    email_subject: Optional[str] = None
    email_message: Optional[str] = None


class EnvelopeSent(CamelModel):
    message: str
    envelope_id: int
    recipient_count: int


# Sharing and provider callbacks

class SendDocument(CamelModel):
    sender_email: Optional[str] = None
    sender_name: Optional[str] = None
    recipient_email: Optional[str] = None
    recipient_name: Optional[str] = None
    message: Optional[str] = None


class DocumentSent(CamelModel):
    message: str
    delivered: int


class WebhookEvent(CamelModel):
    event_type: str
    signer_email: Optional[str] = None
    signature_data: Optional[str] = None


class WebhookResult(CamelModel):
    message: str
    status: str


class Message(CamelModel):
    message: str
    deleted_id: Optional[int] = None
