import logging
import os
import uuid

import requests

from .. import config
from ..errors import StorageError

logger = logging.getLogger(__name__)

# Check if we're in Vercel environment
IS_VERCEL = config.BLOB_READ_WRITE_TOKEN is not None

if IS_VERCEL:
    import vercel_blob


class FileStorage:
    """
    Stores uploaded PDFs either in Vercel Blob (production) or on the local
    filesystem (development). File references are blob URLs or local paths.
    """

    def __init__(self, upload_dir: str = config.UPLOAD_DIR, remote: bool = IS_VERCEL):
        self.upload_dir = upload_dir
        self.remote = remote
        if not self.remote:
            os.makedirs(self.upload_dir, exist_ok=True)

    @staticmethod
    def unique_name(filename: str) -> str:
        return f"{uuid.uuid4()}_{os.path.basename(filename)}"

    def save(self, content: bytes, filename: str) -> str:
        """
        Store ``content`` under ``filename``.

        Returns:
            str: File path (local) or blob URL (production)
        """
        if self.remote:
            result = vercel_blob.put(f"uploads/{filename}", content)
            return result["url"]

        file_path = os.path.join(self.upload_dir, filename)
        with open(file_path, "wb") as f:
            f.write(content)
        return file_path

    def read(self, file_ref: str) -> bytes:
        try:
            if file_ref.startswith("http"):
                resp = requests.get(file_ref, timeout=30)
                resp.raise_for_status()
                return resp.content
            with open(file_ref, "rb") as f:
                return f.read()
        except (OSError, requests.RequestException) as e:
            raise StorageError(f"Could not read stored file: {e}") from e

    def delete(self, file_ref: str) -> bool:
        """Best-effort removal; failures are logged and reported as False."""
        try:
            if self.remote and file_ref.startswith("http"):
                vercel_blob.delete(file_ref)
            elif os.path.exists(file_ref):
                os.remove(file_ref)
            return True
        except Exception:
            logger.exception("Error deleting file %s", file_ref)
            return False


_default_storage = None


def get_storage() -> FileStorage:
    global _default_storage
    if _default_storage is None:
        _default_storage = FileStorage()
    return _default_storage
