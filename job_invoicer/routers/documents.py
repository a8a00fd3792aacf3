from fastapi import APIRouter, Depends, File, Request, UploadFile
from fastapi.responses import Response
from sqlalchemy.orm import Session

from .. import config, schemas
from ..database import get_db
from ..services.documents import DocumentService
from ..services.envelope import EnvelopeService
from ..services.field_store import FieldStore
from ..services.notifier import EmailNotifier, get_notifier
from ..services.signer_registry import SignerRegistry
from .deps import NO_CACHE_HEADERS, client_ip, current_uploader, document_service

router = APIRouter()


@router.post("/upload", response_model=schemas.Document)
async def upload_document(
    file: UploadFile = File(...),
    uploaded_by: str = Depends(current_uploader),
    service: DocumentService = Depends(document_service),
):
    contents = await file.read()
    return service.upload(contents, file.filename, file.content_type, uploaded_by)


@router.get("/", response_model=schemas.DocumentList)
def list_documents(
    mine: bool = False,
    uploaded_by: str = Depends(current_uploader),
    service: DocumentService = Depends(document_service),
):
    documents = service.list(uploaded_by if mine else None)
    return {"documents": documents, "total": len(documents)}


@router.get("/{document_id}", response_model=schemas.DocumentDetail)
def get_document(document_id: int, service: DocumentService = Depends(document_service)):
    return service.get(document_id)


@router.delete("/{document_id}", response_model=schemas.Message)
def delete_document(
    document_id: int,
    request: Request,
    uploaded_by: str = Depends(current_uploader),
    service: DocumentService = Depends(document_service),
):
    service.delete(document_id, actor_email=uploaded_by, ip_address=client_ip(request))
    return {"message": "Document deleted successfully", "deleted_id": document_id}


@router.post("/{document_id}/signers", response_model=schemas.SignersCreated)
def add_signers(
    document_id: int,
    payload: schemas.SignersCreate,
    db: Session = Depends(get_db),
):
    created = SignerRegistry(db).add_signers(
        document_id, [s.model_dump() for s in payload.signers]
    )
    return {
        "message": "Signers added successfully",
        "signers": created,
        "signing_links": [
            {"name": s.name, "email": s.email, "link": config.signing_link(s.token)}
            for s in created
        ],
    }


@router.get("/{document_id}/signers", response_model=schemas.SignerList)
def list_signers(document_id: int, db: Session = Depends(get_db)):
    return {"signers": SignerRegistry(db).list_signers(document_id)}


@router.get("/{document_id}/signatures", response_model=schemas.FilledFieldList)
def list_signatures(document_id: int, service: DocumentService = Depends(document_service)):
    service.get(document_id)
    fields = FieldStore(service.db).list_fields_for_document(document_id, filled_only=True)
    return {"signatures": [service.field_view(f) for f in fields]}


@router.post("/{document_id}/signatures", response_model=schemas.DirectSignatureResult)
def place_signature(
    document_id: int,
    payload: schemas.DirectSignature,
    request: Request,
    service: DocumentService = Depends(document_service),
):
    field, completed = service.place_signature(
        document_id,
        payload.signer_email,
        payload.signer_name,
        payload.signature_data,
        payload.position.model_dump(),
        field_type=payload.field_type,
        ip_address=client_ip(request),
    )
    return {
        "message": "Signature placed successfully",
        "signature_field": field,
        "document_completed": completed,
    }


@router.post("/{document_id}/fields", response_model=schemas.SignatureField)
def add_field(document_id: int, field: schemas.FieldCreate, db: Session = Depends(get_db)):
    return FieldStore(db).create_field(
        document_id,
        field.signer_id,
        field.type,
        field.page,
        field.x,
        field.y,
        field.width,
        field.height,
        field.required,
    )


@router.delete("/{document_id}/fields/{field_id}", response_model=schemas.Message)
def delete_field(
    document_id: int,
    field_id: int,
    request: Request,
    uploaded_by: str = Depends(current_uploader),
    db: Session = Depends(get_db),
):
    FieldStore(db).delete_field(
        field_id, document_id=document_id, actor_email=uploaded_by, ip_address=client_ip(request)
    )
    return {"message": "Field deleted successfully"}


@router.get("/{document_id}/events", response_model=list[schemas.SignatureEvent])
def list_events(document_id: int, service: DocumentService = Depends(document_service)):
    return service.list_events(document_id)


@router.get("/{document_id}/download")
def download_document(document_id: int, service: DocumentService = Depends(document_service)):
    document = service.get(document_id)
    content = service.render(document_id)
    return Response(
        content=content,
        media_type="application/pdf",
        headers={
            "Content-Disposition": f'attachment; filename="{service.download_filename(document)}"'
        },
    )


@router.get("/{document_id}/preview")
def preview_document(document_id: int, service: DocumentService = Depends(document_service)):
    content = service.render(document_id)
    return Response(
        content=content,
        media_type="application/pdf",
        headers={"Content-Disposition": 'inline; filename="document-preview.pdf"', **NO_CACHE_HEADERS},
    )


@router.post("/{document_id}/send-envelope", response_model=schemas.EnvelopeSent)
def send_envelope(
    document_id: int,
    payload: schemas.EnvelopeCreate,
    db: Session = Depends(get_db),
    notifier: EmailNotifier = Depends(get_notifier),
):
    return EnvelopeService(db, notifier).send(
        document_id,
        [r.model_dump() for r in payload.recipients],
        [f.model_dump() for f in payload.signature_fields],
        payload.email_subject,
        payload.email_message,
    )


@router.post("/{document_id}/send", response_model=schemas.DocumentSent)
def send_document(
    document_id: int,
    payload: schemas.SendDocument,
    service: DocumentService = Depends(document_service),
):
    delivered = service.send_document(
        document_id,
        payload.sender_email,
        payload.sender_name,
        payload.recipient_email,
        payload.recipient_name,
        payload.message,
    )
    return {
        "message": "Document sent successfully to both sender and recipient",
        "delivered": delivered,
    }


@router.post("/{document_id}/webhook", response_model=schemas.WebhookResult)
def signing_webhook(
    document_id: int,
    payload: schemas.WebhookEvent,
    request: Request,
    service: DocumentService = Depends(document_service),
):
    message = service.apply_webhook(
        document_id,
        payload.event_type,
        signer_email=payload.signer_email,
        signature_data=payload.signature_data,
        ip_address=client_ip(request),
    )
    return {"message": message, "status": service.get(document_id).status}
