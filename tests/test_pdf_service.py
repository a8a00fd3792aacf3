import io
import warnings

import pytest
from pypdf import PdfReader

from job_invoicer.errors import RenderError
from job_invoicer.services import pdf_service
from job_invoicer.services.pdf_service import (
    draw_field,
    font_size_for,
    format_date_value,
    stamp_pdf,
    to_pdf_y,
)

PAGE_HEIGHT = 792


class RecordingCanvas:
    def __init__(self):
        self.calls = []
        self.font = None

    def setFont(self, name, size):
        self.font = (name, size)

    def drawString(self, x, y, text):
        self.calls.append(("text", x, y, text, self.font))

    def drawImage(self, image, x, y, width=None, height=None, mask=None):
        self.calls.append(("image", x, y, width, height))


def make_field(field_type, value, **kw):
    field = {"id": 1, "type": field_type, "page": 1, "x": 100, "y": 200, "width": 150, "height": 20, "value": value}
    field.update(kw)
    return field


def test_coordinate_flip():
    assert to_pdf_y(792, 100, 50) == 642
    assert to_pdf_y(792, 0, 0) == 792


def test_signature_is_drawn_at_its_box(signature_png):
    c = RecordingCanvas()
    field = make_field("signature", signature_png, width=200, height=80)
    assert draw_field(c, field, PAGE_HEIGHT)
    assert c.calls == [("image", 100, PAGE_HEIGHT - 200 - 80, 200, 80)]


def test_text_font_and_baseline():
    c = RecordingCanvas()
    draw_field(c, make_field("text", "Alice Contractor"), PAGE_HEIGHT)

    [(kind, x, y, text, font)] = c.calls
    pdf_y = PAGE_HEIGHT - 200 - 20
    assert kind == "text"
    assert text == "Alice Contractor"
    assert font == ("Helvetica", 12)
    assert x == 102
    assert y == pytest.approx(pdf_y + 10 - 6)


def test_font_size_caps():
    assert font_size_for("text", 100) == 16
    assert font_size_for("initials", 100) == 16
    assert font_size_for("date", 100) == 14
    assert font_size_for("date", 10) == pytest.approx(6)


@pytest.mark.parametrize(
    "field_type, value",
    [("signature", None), ("text", "Alice"), ("initials", "AC"), ("date", "2024-03-15")],
)
def test_every_type_is_flipped_to_pdf_space(field_type, value, signature_png):
    c = RecordingCanvas()
    field = make_field(field_type, value or signature_png, y=300, height=40)
    assert draw_field(c, field, PAGE_HEIGHT)

    pdf_y = PAGE_HEIGHT - 300 - 40
    call = c.calls[0]
    if call[0] == "image":
        assert call[2] == pdf_y
    else:
        size = font_size_for(field_type, 40)
        assert call[2] == pytest.approx(pdf_y + 40 / 2 - size / 2)


def test_initials_draw_as_text():
    c = RecordingCanvas()
    draw_field(c, make_field("initials", "AC"), PAGE_HEIGHT)
    assert c.calls[0][3] == "AC"


def test_date_is_formatted():
    c = RecordingCanvas()
    draw_field(c, make_field("date", "2024-03-15T00:00:00Z"), PAGE_HEIGHT)
    assert c.calls[0][3] == "03/15/2024"


@pytest.mark.parametrize(
    "value, expected",
    [
        ("2024-03-15", "03/15/2024"),
        ("March 15, 2024", "03/15/2024"),
        ("03/15/2024", "03/15/2024"),
        ("next tuesday", "next tuesday"),
    ],
)
def test_format_date_value(value, expected):
    assert format_date_value(value) == expected


def test_unsupported_type_draws_nothing():
    c = RecordingCanvas()
    assert not draw_field(c, make_field("checkbox", "x"), PAGE_HEIGHT)
    assert c.calls == []


def page_text(pdf, index):
    return PdfReader(io.BytesIO(pdf)).pages[index].extract_text()


def test_stamp_pdf_writes_text_on_the_right_page(pdf_bytes):
    out = stamp_pdf(pdf_bytes, [make_field("text", "Stamped Name", page=2)])

    reader = PdfReader(io.BytesIO(out))
    assert len(reader.pages) == 2
    assert "Stamped Name" in page_text(out, 1)
    assert "Stamped Name" not in page_text(out, 0)


def test_stamp_pdf_with_signature_image(pdf_bytes, signature_png):
    out = stamp_pdf(pdf_bytes, [make_field("signature", signature_png, width=200, height=80)])
    assert len(PdfReader(io.BytesIO(out)).pages) == 2


def test_bad_fields_are_skipped(pdf_bytes):
    fields = [
        make_field("signature", "data:image/png;base64,@@not-base64@@"),
        make_field("checkbox", "x"),
        make_field("text", "Off the end", page=9),
        make_field("text", "", page=1),
        make_field("text", "Still here", id=5),
    ]
    out = stamp_pdf(pdf_bytes, fields)

    assert len(PdfReader(io.BytesIO(out)).pages) == 2
    text = page_text(out, 0)
    assert "Still here" in text
    assert "Off the end" not in text


def test_stamping_merges_onto_writer_pages(pdf_bytes):
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        stamp_pdf(pdf_bytes, [make_field("text", "No warnings")])
    assert not [w for w in caught if "not assigned to a writer" in str(w.message)]


def test_stamp_without_fields_keeps_pages(pdf_bytes):
    out = stamp_pdf(pdf_bytes, [])
    assert "Service agreement - page 1" in page_text(out, 0)


def test_unreadable_pdf():
    with pytest.raises(RenderError):
        stamp_pdf(b"definitely not a pdf", [])


def test_field_to_stamp_converts_orm_rows():
    class Row:
        id, type, page, x, y, width, height, value = 3, "text", 1, 1, 2, 3, 4, "v"

    stamp = pdf_service.field_to_stamp(Row())
    assert stamp == {"id": 3, "type": "text", "page": 1, "x": 1.0, "y": 2.0, "width": 3.0, "height": 4.0, "value": "v"}
