from typing import List, Optional

from sqlalchemy.orm import Session

from ..models import EventType, SignatureEvent


def field_payload(field, signer=None) -> dict:
    owner = signer or field.signer
    return {
        "fieldId": field.id,
        "fieldType": field.type,
        "signerId": field.signer_id,
        "signerName": owner.name if owner else None,
        "signerEmail": owner.email if owner else None,
        "position": {
            "page": field.page,
            "x": field.x,
            "y": field.y,
            "width": field.width,
            "height": field.height,
        },
    }


def record_event(
    db: Session,
    document_id: int,
    event_type: EventType,
    payload: dict,
    user_email: Optional[str] = None,
    ip_address: Optional[str] = None,
) -> SignatureEvent:
    """Append an audit event; flushed with the caller's transaction."""
    event = SignatureEvent(
        document_id=document_id,
        event_type=event_type.value,
        payload=payload,
        user_email=user_email,
        ip_address=ip_address,
    )
    db.add(event)
    return event


def list_events(db: Session, document_id: int) -> List[SignatureEvent]:
    return (
        db.query(SignatureEvent)
        .filter(SignatureEvent.document_id == document_id)
        .order_by(SignatureEvent.created_at, SignatureEvent.id)
        .all()
    )
