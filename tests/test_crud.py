from types import SimpleNamespace

import pytest
from sqlalchemy.exc import IntegrityError

from contact_manager import crud
from contact_manager.database import PHONE_INDEX
from contact_manager.exceptions import ConflictException, ValidationException
from contact_manager.policies import LENIENT, STRICT


def test_create_and_get_round_trip(db_session, make_contact):
    created = make_contact(name=" Ann Lee ", email="ANN@Example.com", phone=" 555 0101 ")
    fetched = crud.get_contact(db_session, created.id)

    assert fetched is not None
    assert (fetched.name, fetched.email, fetched.phone) == ("Ann Lee", "ann@example.com", "555 0101")
    assert fetched.created_at is not None


def test_create_rejects_invalid_payload_without_writing(db_session):
    with pytest.raises(ValidationException) as exc_info:
        crud.create_contact(db_session, {"name": "A", "email": "bad"})
    assert len(exc_info.value.errors) == 3
    assert crud.get_contacts(db_session)[1] == 0


def test_duplicate_email_is_case_insensitive(db_session, make_contact):
    make_contact(email="jane@example.com")
    with pytest.raises(ConflictException) as exc_info:
        make_contact(email="JANE@example.COM", phone="555-0199")
    assert exc_info.value.detail == "Email already exists"
    assert crud.get_contacts(db_session)[1] == 1


def test_lenient_policy_allows_shared_phone(make_contact):
    make_contact(email="one@example.com", phone="555-0100")
    second = make_contact(email="two@example.com", phone="555-0100")
    assert second.phone == "555-0100"


def test_strict_policy_rejects_shared_phone(db_session):
    crud.create_contact(
        db_session, {"name": "One", "email": "one@example.com", "phone": "5550100000"}, STRICT
    )
    with pytest.raises(ConflictException) as exc_info:
        crud.create_contact(
            db_session, {"name": "Two", "email": "two@example.com", "phone": "5550100000"}, STRICT
        )
    assert exc_info.value.detail == "Phone already exists"


def test_storage_constraint_is_translated_to_conflict(db_session, make_contact, monkeypatch):
    make_contact(email="race@example.com")
    # Simulate a concurrent writer slipping past the duplicate lookup.
    monkeypatch.setattr(crud, "find_duplicate", lambda *args, **kwargs: None)

    with pytest.raises(ConflictException) as exc_info:
        make_contact(email="race@example.com", phone="555-0142")
    assert exc_info.value.field == "Email"
    assert crud.get_contacts(db_session)[1] == 1


def test_update_storage_constraint_is_translated_to_conflict(db_session, make_contact, monkeypatch):
    make_contact(email="taken@example.com")
    contact = make_contact(email="mine@example.com")
    monkeypatch.setattr(crud, "find_duplicate", lambda *args, **kwargs: None)

    with pytest.raises(ConflictException) as exc_info:
        crud.update_contact(db_session, contact.id, {"email": "taken@example.com"})
    assert exc_info.value.detail == "Email already in use"

    db_session.expire_all()
    assert crud.get_contact(db_session, contact.id).email == "mine@example.com"


class DriverError(Exception):
    def __init__(self, message, constraint_name=None):
        super().__init__(message)
        if constraint_name is not None:
            self.diag = SimpleNamespace(constraint_name=constraint_name)


@pytest.mark.parametrize(
    "orig,field",
    [
        (
            DriverError(
                'duplicate key value violates unique constraint "uq_contacts_email" '
                "DETAIL: Key (lower(email))=(phone@x.io) already exists.",
                constraint_name="uq_contacts_email",
            ),
            "Email",
        ),
        (DriverError("duplicate key", constraint_name=PHONE_INDEX), "Phone"),
        (DriverError("UNIQUE constraint failed: contacts.phone"), "Phone"),
        (DriverError("UNIQUE constraint failed: index 'uq_contacts_email'"), "Email"),
    ],
)
def test_conflict_field_comes_from_the_index(orig, field):
    exc = IntegrityError("INSERT INTO contacts ...", {}, orig)
    assert crud._conflict_field(exc) == field


def test_phone_index_follows_policy(database, db_session):
    database.create_all(phone_unique=True)
    strict = {"name": "One", "email": "one@example.com", "phone": "5550100000"}
    crud.create_contact(db_session, strict, STRICT)
    same_phone = dict(strict, name="Two", email="two@example.com")
    with pytest.raises(ConflictException) as exc_info:
        crud.create_contact(db_session, same_phone, LENIENT)
    assert exc_info.value.detail == "Phone already exists"

    # Restarting under the lenient policy lets phone numbers repeat again.
    database.create_all(phone_unique=False)
    second = crud.create_contact(db_session, same_phone, LENIENT)
    assert second.phone == "5550100000"


def test_search_is_case_insensitive_and_sorted(db_session, make_contact):
    for i, name in enumerate(["Joanne", "Bob", "hANNah", "Anna", "Zed"]):
        make_contact(name=name, email=f"p{i}@example.com")

    contacts, total = crud.get_contacts(db_session, search="ann")
    assert [c.name for c in contacts] == ["Anna", "hANNah", "Joanne"]
    assert total == 3


def test_search_treats_wildcards_literally(db_session, make_contact):
    make_contact(name="100% Real", email="a@example.com")
    make_contact(name="Plain", email="b@example.com")

    contacts, total = crud.get_contacts(db_session, search="%")
    assert [c.name for c in contacts] == ["100% Real"]
    assert total == 1


def test_pagination(db_session, make_contact):
    for i in range(25):
        make_contact(name=f"Person {i:02d}", email=f"person{i}@example.com")

    contacts, total = crud.get_contacts(db_session, page=2, limit=10)
    assert total == 25
    assert [c.name for c in contacts] == [f"Person {i:02d}" for i in range(10, 20)]
    assert crud.page_count(total, 10) == 3


def test_partial_update_keeps_other_fields(db_session, make_contact):
    contact = make_contact()
    updated = crud.update_contact(db_session, contact.id, {"phone": "555-0111"})

    assert updated.phone == "555-0111"
    assert updated.name == "Jane Doe"
    assert updated.email == "jane@example.com"


def test_update_may_keep_own_email(db_session, make_contact):
    contact = make_contact()
    updated = crud.update_contact(db_session, contact.id, {"email": "JANE@example.com"})
    assert updated.email == "jane@example.com"


def test_update_conflicts_with_other_contact(db_session, make_contact):
    make_contact(email="taken@example.com")
    contact = make_contact(email="mine@example.com")

    with pytest.raises(ConflictException) as exc_info:
        crud.update_contact(db_session, contact.id, {"email": "Taken@example.com"})
    assert exc_info.value.detail == "Email already in use"


def test_update_rechecks_merged_record(db_session, make_contact):
    contact = make_contact(phone="(555) 010-0000")
    # Valid under the lenient rules, the stored phone no longer passes strict ones.
    with pytest.raises(ValidationException):
        crud.update_contact(db_session, contact.id, {"name": "Janet"}, STRICT)


def test_update_missing_contact_returns_none(db_session):
    assert crud.update_contact(db_session, "00000000-0000-0000-0000-000000000000", {"name": "Jo"}) is None


def test_delete(db_session, make_contact):
    contact = make_contact()
    crud.delete_contact(db_session, contact)
    assert crud.get_contact(db_session, contact.id) is None
