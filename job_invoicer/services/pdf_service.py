import io
import logging
from datetime import datetime

from pypdf import PdfReader, PdfWriter
from pypdf.errors import PdfReadError
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from ..errors import RenderError
from ..models import FieldType
from .image_decode import decode_image_data

logger = logging.getLogger(__name__)

FONT_NAME = "Helvetica"
TEXT_MAX_FONT_SIZE = 16
DATE_MAX_FONT_SIZE = 14

_DATE_FORMATS = ("%m/%d/%Y", "%Y-%m-%d", "%B %d, %Y", "%b %d, %Y", "%d %B %Y")


def to_pdf_y(page_height: float, field_y: float, field_height: float) -> float:
    """Screen boxes are top-left based with y growing down; PDF space is bottom-left."""
    return page_height - field_y - field_height


def font_size_for(field_type: str, height: float) -> float:
    cap = DATE_MAX_FONT_SIZE if field_type == FieldType.DATE.value else TEXT_MAX_FONT_SIZE
    return min(height * 0.6, cap)


def format_date_value(value: str) -> str:
    """Reformat a parseable date as MM/DD/YYYY; anything else is drawn as typed."""
    text = value.strip()
    parsed = None
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        for fmt in _DATE_FORMATS:
            try:
                parsed = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue
    if parsed is None:
        return value
    return parsed.strftime("%m/%d/%Y")


def _draw_signature(c, field: dict, pdf_y: float):
    img_bytes, _fmt = decode_image_data(field["value"])
    image = ImageReader(io.BytesIO(img_bytes))
    # Forces the decode so a corrupt image fails here, not at c.save()
    image.getSize()
    c.drawImage(image, field["x"], pdf_y, width=field["width"], height=field["height"], mask="auto")


def _draw_text(c, field: dict, pdf_y: float, text: str):
    size = font_size_for(field["type"], field["height"])
    c.setFont(FONT_NAME, size)
    c.drawString(field["x"] + 2, pdf_y + field["height"] / 2 - size / 2, text)


def draw_field(c, field: dict, page_height: float) -> bool:
    """
    Draw one filled field onto the overlay canvas ``c``.

    Returns:
        bool: False when the field type is not supported and nothing was drawn
    """
    pdf_y = to_pdf_y(page_height, field["y"], field["height"])
    field_type = field["type"]

    if field_type == FieldType.SIGNATURE.value:
        _draw_signature(c, field, pdf_y)
    elif field_type in (FieldType.TEXT.value, FieldType.INITIALS.value):
        _draw_text(c, field, pdf_y, field["value"])
    elif field_type == FieldType.DATE.value:
        _draw_text(c, field, pdf_y, format_date_value(field["value"]))
    else:
        logger.warning("Unsupported field type: %s", field_type)
        return False
    return True


def field_to_stamp(field) -> dict:
    return {
        "id": field.id,
        "type": field.type,
        "page": field.page,
        "x": float(field.x),
        "y": float(field.y),
        "width": float(field.width),
        "height": float(field.height),
        "value": field.value,
    }


def stamp_pdf(input_pdf_bytes: bytes, fields: list) -> bytes:
    """
    Overlay filled field values onto the original PDF.

    Args:
        input_pdf_bytes: Original PDF as bytes
        fields: list of dicts with keys: id, type, page, x, y, width, height, value

    Returns:
        bytes: Stamped PDF as bytes
    """
    try:
        reader = PdfReader(io.BytesIO(input_pdf_bytes))
        pages = reader.pages
        page_count = len(pages)
    except (PdfReadError, ValueError, OSError) as e:
        raise RenderError(f"Could not read PDF: {e}") from e

    # Overlays are merged onto pages owned by the writer
    writer = PdfWriter(clone_from=reader)

    # Group fields by page
    fields_by_page = {}
    for field in fields:
        if not field.get("value"):
            continue
        page_number = int(field["page"])
        if page_number < 1 or page_number > page_count:
            continue
        fields_by_page.setdefault(page_number, []).append(field)

    for i, page in enumerate(writer.pages):
        page_num = i + 1

        if page_num in fields_by_page:
            packet = io.BytesIO()
            width = float(page.mediabox.width)
            height = float(page.mediabox.height)

            c = canvas.Canvas(packet, pagesize=(width, height))
            drawn = 0
            for field in fields_by_page[page_num]:
                try:
                    if draw_field(c, field, height):
                        drawn += 1
                except Exception:
                    logger.exception("Error embedding field %s", field.get("id"))

            if drawn:
                c.save()
                packet.seek(0)
                overlay = PdfReader(packet)
                page.merge_page(overlay.pages[0])

    # Write to bytes
    output_buffer = io.BytesIO()
    writer.write(output_buffer)
    return output_buffer.getvalue()
