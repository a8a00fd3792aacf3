import base64
import io

import pytest
from fastapi.testclient import TestClient
from PIL import Image
from reportlab.lib.pagesizes import letter
from reportlab.pdfgen import canvas
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from job_invoicer import models  # noqa: F401  registers tables on Base
from job_invoicer.database import Base, get_db
from job_invoicer.main import app
from job_invoicer.services.documents import DocumentService
from job_invoicer.services.notifier import EmailNotifier, get_notifier
from job_invoicer.services.storage import FileStorage, get_storage

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class RecordingNotifier(EmailNotifier):
    """Keeps outgoing mail in memory instead of talking to SMTP."""

    def __init__(self):
        super().__init__(user="", password="")
        self.sent = []

    def _deliver(self, to, subject, body, attachment=None):
        self.sent.append({"to": to, "subject": subject, "body": body, "attachment": attachment})
        return True

    @property
    def recipients(self):
        return [m["to"] for m in self.sent]


@pytest.fixture(autouse=True)
def clean_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def storage(tmp_path):
    return FileStorage(upload_dir=str(tmp_path / "uploads"), remote=False)


@pytest.fixture
def notifier():
    return RecordingNotifier()


def make_pdf_bytes(pages=2):
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=letter)
    for n in range(pages):
        c.drawString(100, 750, f"Service agreement - page {n + 1}")
        c.showPage()
    c.save()
    return buf.getvalue()


def make_png_data_url(size=(40, 16)):
    buf = io.BytesIO()
    Image.new("RGB", size, (20, 20, 20)).save(buf, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buf.getvalue()).decode("ascii")


@pytest.fixture(scope="session")
def pdf_bytes():
    return make_pdf_bytes()


@pytest.fixture(scope="session")
def signature_png():
    return make_png_data_url()


@pytest.fixture
def document(db, storage, pdf_bytes):
    return DocumentService(db, storage).upload(pdf_bytes, "contract.pdf", "application/pdf", "owner-1")


@pytest.fixture
def client(storage, notifier):
    def override_get_db():
        session = TestingSessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_notifier] = lambda: notifier
    yield TestClient(app)
    app.dependency_overrides.clear()
