import io
import os

import pytest
from pypdf import PdfReader

from job_invoicer.errors import AlreadySigned, Conflict, NotFound, ValidationFailed
from job_invoicer.models import (
    Document,
    DocumentStatus,
    EventType,
    SignatureEvent,
    SignatureField,
    Signer,
)
from job_invoicer.services.documents import DocumentService
from job_invoicer.services.signer_registry import SignerRegistry
from job_invoicer.services.signing_session import SigningSession

POSITION = {"page": 1, "x": 72, "y": 600}


@pytest.fixture
def service(db, storage):
    return DocumentService(db, storage)


def test_upload_creates_draft(service, document):
    assert document.status == DocumentStatus.DRAFT.value
    assert document.name == "contract.pdf"
    assert document.uploaded_by == "owner-1"
    assert document.meta["mimeType"] == "application/pdf"
    assert os.path.exists(document.file_path)
    assert service.storage.read(document.file_path).startswith(b"%PDF")


def test_upload_rejects_non_pdf(service):
    with pytest.raises(ValidationFailed):
        service.upload(b"hello", "notes.txt", "text/plain", "owner-1")
    with pytest.raises(ValidationFailed):
        service.upload(b"", "empty.pdf", "application/pdf", "owner-1")
    with pytest.raises(ValidationFailed):
        service.upload(b"%PDF-1.4 broken", "broken.pdf", "application/pdf", "owner-1")


def test_upload_size_limit(db, storage, pdf_bytes):
    small = DocumentService(db, storage, max_upload_bytes=10)
    with pytest.raises(ValidationFailed):
        small.upload(pdf_bytes, "contract.pdf", "application/pdf", "owner-1")


def test_list_filters_by_uploader(service, document, pdf_bytes):
    other = service.upload(pdf_bytes, "other.pdf", "application/pdf", "owner-2")

    assert {d.id for d in service.list()} == {document.id, other.id}
    assert [d.id for d in service.list("owner-2")] == [other.id]


def test_get_missing(service):
    with pytest.raises(NotFound):
        service.get(404)


def test_delete_cascades_and_keeps_audit_trail(db, service, document, signature_png):
    service.place_signature(document.id, "alice@example.com", "Alice", signature_png, POSITION)
    doc_id, path = document.id, document.file_path

    service.delete(doc_id, actor_email="owner-1")

    assert db.get(Document, doc_id) is None
    assert db.query(Signer).filter_by(document_id=doc_id).count() == 0
    assert db.query(SignatureField).filter_by(document_id=doc_id).count() == 0
    assert not os.path.exists(path)

    events = db.query(SignatureEvent).filter_by(document_id=doc_id).order_by(SignatureEvent.id).all()
    assert [e.event_type for e in events] == [EventType.SIGNED.value, EventType.DELETED.value]
    assert events[-1].payload["documentName"] == "contract.pdf"


def test_delete_survives_missing_file(db, service, document):
    os.remove(document.file_path)
    service.delete(document.id)
    assert db.get(Document, document.id) is None


def test_place_signature_creates_signer_and_completes(db, service, document, signature_png):
    field, completed = service.place_signature(
        document.id, "alice@example.com", "Alice", signature_png, POSITION, ip_address="10.1.1.1"
    )

    assert completed
    assert (field.width, field.height) == (200, 80)
    assert field.signer.email == "alice@example.com"
    db.refresh(document)
    assert document.status == DocumentStatus.COMPLETED.value


def test_place_signature_uses_existing_signer(db, service, document, signature_png):
    SignerRegistry(db).add_signers(
        document.id,
        [{"name": "Alice", "email": "alice@example.com"}, {"name": "Bob", "email": "bob@example.com"}],
    )
    field, completed = service.place_signature(document.id, "ALICE@example.com", None, signature_png, POSITION)

    assert not completed
    assert db.query(Signer).filter_by(document_id=document.id).count() == 2
    db.refresh(document)
    assert document.status == DocumentStatus.PARTIALLY_SIGNED.value

    with pytest.raises(AlreadySigned):
        service.place_signature(document.id, "alice@example.com", None, signature_png, POSITION)


def test_place_signature_validation(service, document, signature_png):
    with pytest.raises(ValidationFailed):
        service.place_signature(document.id, "a@example.com", "A", "", POSITION)
    with pytest.raises(ValidationFailed):
        service.place_signature(document.id, "a@example.com", "A", signature_png, {"page": 1})


def test_render_stamps_filled_fields(service, document):
    service.place_signature(
        document.id, "alice@example.com", "Alice", "Alice Contractor",
        dict(POSITION, width=200, height=20), field_type="text",
    )
    out = service.render(document.id)
    reader = PdfReader(io.BytesIO(out))
    assert len(reader.pages) == 2
    assert "Alice Contractor" in reader.pages[0].extract_text()


def test_download_filename(document):
    assert DocumentService.download_filename(document) == "contract-signed.pdf"


def test_send_document_emails_pdf_to_recipient_and_sender(db, storage, document, notifier):
    service = DocumentService(db, storage, notifier=notifier)

    delivered = service.send_document(
        document.id, "owner@example.com", "Owner", "client@example.com", "Client", "Quote attached"
    )

    assert delivered == 2
    assert notifier.recipients == ["client@example.com", "owner@example.com"]
    filename, data = notifier.sent[0]["attachment"]
    assert filename == "contract.pdf"
    assert len(PdfReader(io.BytesIO(data)).pages) == 2
    assert "Quote attached" in notifier.sent[0]["body"]

    db.refresh(document)
    assert document.sent_at is not None
    assert document.meta["recipientEmail"] == "client@example.com"
    assert document.meta["senderEmail"] == "owner@example.com"
    sent = db.query(SignatureEvent).filter_by(document_id=document.id, event_type=EventType.SENT.value).one()
    assert sent.user_email == "owner@example.com"


def test_send_document_without_stored_file_still_sends(db, storage, document, notifier):
    os.remove(document.file_path)
    DocumentService(db, storage, notifier=notifier).send_document(
        document.id, "owner@example.com", "Owner", "client@example.com", "Client"
    )
    assert notifier.sent[0]["attachment"] is None


def test_send_document_requires_both_parties(db, storage, document, notifier):
    service = DocumentService(db, storage, notifier=notifier)
    with pytest.raises(ValidationFailed) as exc:
        service.send_document(document.id, "owner@example.com", "Owner", "", "")
    assert "recipientEmail" in exc.value.message
    assert notifier.sent == []


def test_failure_webhook_closes_the_document(db, service, document, signature_png):
    signer = SignerRegistry(db).add_signers(document.id, [{"name": "Alice", "email": "alice@example.com"}])[0]

    message = service.apply_webhook(document.id, "document.failed")

    assert message == "Document signing failure recorded"
    db.refresh(document)
    assert document.status == DocumentStatus.FAILED.value
    failed = db.query(SignatureEvent).filter_by(document_id=document.id, event_type=EventType.FAILED.value)
    assert failed.count() == 1

    # Repeating the callback records nothing new
    service.apply_webhook(document.id, "document.failed")
    assert failed.count() == 1

    with pytest.raises(Conflict):
        SigningSession(db).submit(signer.token, signature_png, POSITION, "save")


def test_failure_webhook_cannot_undo_completion(db, service, document, signature_png):
    service.place_signature(document.id, "alice@example.com", "Alice", signature_png, POSITION)
    with pytest.raises(Conflict):
        service.apply_webhook(document.id, "document.failed")


def test_signed_webhook_marks_signer_and_completes(db, service, document):
    SignerRegistry(db).add_signers(document.id, [{"name": "Alice", "email": "alice@example.com"}])

    message = service.apply_webhook(document.id, "document.signed", signer_email="ALICE@example.com")

    assert message == "Signature processed successfully"
    db.refresh(document)
    assert document.status == DocumentStatus.COMPLETED.value
    assert document.signers[0].signed_at is not None


def test_signed_webhook_needs_a_known_signer(service, document):
    with pytest.raises(ValidationFailed):
        service.apply_webhook(document.id, "document.signed")
    with pytest.raises(NotFound):
        service.apply_webhook(document.id, "document.signed", signer_email="nobody@example.com")


def test_other_webhooks_are_acknowledged(db, service, document):
    assert service.apply_webhook(document.id, "document.viewed") == "Webhook received"
    db.refresh(document)
    assert document.status == DocumentStatus.DRAFT.value
