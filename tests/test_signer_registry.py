from datetime import timedelta

import pytest

from job_invoicer.errors import Conflict, Expired, NotFound, ValidationFailed
from job_invoicer.models import DocumentStatus, Signer, SignerStatus, utcnow
from job_invoicer.services.signer_registry import SignerRegistry

PEOPLE = [
    {"name": "Alice Contractor", "email": "alice@example.com"},
    {"name": "Bob Client", "email": "bob@example.com"},
    {"name": "Carol Witness", "email": "carol@example.com"},
]


def test_add_signers_orders_by_input_and_issues_tokens(db, document):
    created = SignerRegistry(db).add_signers(document.id, PEOPLE)

    assert [s.order for s in created] == [1, 2, 3]
    assert [s.email for s in created] == [p["email"] for p in PEOPLE]
    assert all(s.status == SignerStatus.PENDING.value for s in created)
    assert all(len(s.token) == 64 for s in created)
    assert len({s.token for s in created}) == 3


def test_token_expiry_is_seven_days_out(db, document):
    before = utcnow()
    signer = SignerRegistry(db).add_signers(document.id, PEOPLE[:1])[0]
    assert before + timedelta(days=7) <= signer.token_expiry <= utcnow() + timedelta(days=7)


def test_adding_signers_moves_draft_document_to_pending(db, document):
    assert document.status == DocumentStatus.DRAFT.value
    SignerRegistry(db).add_signers(document.id, PEOPLE[:1])
    db.refresh(document)
    assert document.status == DocumentStatus.PENDING.value


def test_second_batch_continues_the_order(db, document):
    registry = SignerRegistry(db)
    registry.add_signers(document.id, PEOPLE[:2])
    later = registry.add_signers(document.id, PEOPLE[2:])
    assert later[0].order == 3


def test_add_signers_unknown_document(db):
    with pytest.raises(NotFound):
        SignerRegistry(db).add_signers(9999, PEOPLE)


def test_add_signers_rejects_duplicate_emails(db, document):
    registry = SignerRegistry(db)
    with pytest.raises(Conflict):
        registry.add_signers(document.id, [PEOPLE[0], dict(PEOPLE[0], name="Alias")])

    registry.add_signers(document.id, PEOPLE[:1])
    with pytest.raises(Conflict):
        registry.add_signers(document.id, [{"name": "A", "email": "ALICE@example.com"}])


def test_add_signers_requires_name_and_email(db, document):
    with pytest.raises(ValidationFailed):
        SignerRegistry(db).add_signers(document.id, [{"name": "", "email": "x@example.com"}])
    with pytest.raises(ValidationFailed):
        SignerRegistry(db).add_signers(document.id, [])


def test_list_signers_ascending_by_order(db, document):
    registry = SignerRegistry(db)
    registry.add_signers(document.id, PEOPLE)
    # Shuffle orders directly to make sure the listing sorts
    signers = db.query(Signer).filter_by(document_id=document.id).all()
    signers[0].order, signers[2].order = 3, 1
    db.commit()

    listed = registry.list_signers(document.id)
    assert [s.order for s in listed] == [1, 2, 3]
    assert listed[0].email == "carol@example.com"


def test_every_token_resolves_to_its_own_signer(db, document):
    registry = SignerRegistry(db)
    created = registry.add_signers(document.id, PEOPLE)

    for signer in created:
        resolved, doc = registry.resolve_by_token(signer.token)
        assert resolved.id == signer.id
        assert doc.id == document.id


def test_resolve_unknown_token(db):
    with pytest.raises(NotFound):
        SignerRegistry(db).resolve_by_token("not-a-token")


def test_resolve_expired_token(db, document):
    registry = SignerRegistry(db)
    signer = registry.add_signers(document.id, PEOPLE[:1])[0]
    signer.token_expiry = utcnow() - timedelta(minutes=1)
    db.commit()

    with pytest.raises(Expired):
        registry.resolve_by_token(signer.token)

    lenient = SignerRegistry(db, enforce_expiry=False)
    resolved, _ = lenient.resolve_by_token(signer.token)
    assert resolved.id == signer.id
