from typing import List

from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response
from sqlalchemy.orm import Session

from .. import schemas
from ..database import get_db
from ..services.documents import DocumentService
from ..services.notifier import EmailNotifier, get_notifier
from ..services.signing_session import SigningSession
from .deps import NO_CACHE_HEADERS, client_ip, document_service

router = APIRouter()


def signing_session(
    db: Session = Depends(get_db),
    notifier: EmailNotifier = Depends(get_notifier),
) -> SigningSession:
    return SigningSession(db, notifier)


@router.get("/{token}", response_model=schemas.SigningSession)
def view_document_for_signing(token: str, session: SigningSession = Depends(signing_session)):
    return session.get_session(token)


@router.post("/{token}", response_model=schemas.SubmitResult)
def sign_document(
    token: str,
    submission: schemas.SignatureSubmission,
    request: Request,
    session: SigningSession = Depends(signing_session),
):
    outcome = session.submit(
        token,
        submission.signature_data,
        submission.position.model_dump(),
        submission.action,
        ip_address=client_ip(request),
    )
    return {
        "message": outcome.message,
        "status": outcome.status,
        "document_completed": outcome.document_completed,
        "next_signers": [s.email for s in outcome.next_signers],
    }


@router.get("/{token}/document")
def view_document_file(
    token: str,
    session: SigningSession = Depends(signing_session),
    service: DocumentService = Depends(document_service),
):
    """The document as it currently stands, with earlier signatures stamped in."""
    document = session.get_document(token)
    return Response(
        content=service.render(document.id),
        media_type="application/pdf",
        headers={"Content-Disposition": f'inline; filename="{document.name}"', **NO_CACHE_HEADERS},
    )


@router.get("/{token}/fields", response_model=List[schemas.SignatureField])
def list_my_fields(token: str, session: SigningSession = Depends(signing_session)):
    return session.get_signer_fields(token)


@router.post("/{token}/fields/{field_id}", response_model=schemas.SignatureField)
def fill_field(
    token: str,
    field_id: int,
    payload: schemas.FieldValue,
    request: Request,
    session: SigningSession = Depends(signing_session),
):
    return session.fill_field(token, field_id, payload.value, ip_address=client_ip(request))
