from typing import Optional

from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from .. import config
from ..database import get_db
from ..services.documents import DocumentService
from ..services.notifier import EmailNotifier, get_notifier
from ..services.storage import FileStorage, get_storage


NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.headers.get("x-real-ip") or (request.client.host if request.client else "unknown")


def current_uploader(x_user_id: Optional[str] = Header(default=None)) -> str:
    # Staff auth lives outside this service; it forwards the user id in a header
    return x_user_id or config.DEFAULT_UPLOADER


def document_service(
    db: Session = Depends(get_db),
    storage: FileStorage = Depends(get_storage),
    notifier: EmailNotifier = Depends(get_notifier),
) -> DocumentService:
    return DocumentService(db, storage, notifier=notifier)
