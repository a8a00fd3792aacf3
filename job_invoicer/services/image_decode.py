import base64
import binascii

PNG = "png"
JPEG = "jpeg"

_PNG_MAGIC = b"\x89PNG\r\n\x1a\n"
_JPEG_MAGIC = b"\xff\xd8\xff"


class ImageDecodeError(ValueError):
    pass


def split_data_url(value: str):
    """Return (mime or None, base64 payload) for ``data:image/...;base64,`` strings."""
    if value.startswith("data:"):
        header, _, payload = value.partition(",")
        mime = header[5:].split(";", 1)[0] or None
        return mime, payload
    return None, value


def sniff_format(mime, payload: str, raw: bytes = b"") -> str:
    if mime in ("image/png",):
        return PNG
    if mime in ("image/jpeg", "image/jpg"):
        return JPEG
    if payload.startswith("iVBORw0KGgo") or raw.startswith(_PNG_MAGIC):
        return PNG
    if payload.startswith("/9j/") or raw.startswith(_JPEG_MAGIC):
        return JPEG
    return PNG


def decode_image_data(value: str):
    """
    Decode a stored signature image.

    Args:
        value: base64 image, optionally prefixed with a data URL header

    Returns:
        tuple: (image bytes, "png" | "jpeg")
    """
    if not value:
        raise ImageDecodeError("No signature data provided")

    mime, payload = split_data_url(value.strip())
    payload = "".join(payload.split())
    try:
        raw = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ImageDecodeError(f"Invalid base64 image data: {e}") from e
    if not raw:
        raise ImageDecodeError("Empty image data")

    return raw, sniff_format(mime, payload, raw)
