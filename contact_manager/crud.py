"""CRUD operations for contacts.

This module contains database interaction logic for contacts, isolated
from FastAPI route handlers. Writes rely on the storage uniqueness
constraints; the duplicate lookups made beforehand only produce a
friendlier answer in the common case.
"""

import logging
import math
from typing import Dict, List, Optional, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import models
from .database import PHONE_INDEX
from .exceptions import ConflictException, ValidationException
from .policies import LENIENT, PhonePolicy
from .validators import validate_contact

logger = logging.getLogger(__name__)

CONTACT_FIELDS = ("name", "email", "phone")


def page_count(total: int, limit: int) -> int:
    """Number of pages needed to show ``total`` items ``limit`` at a time."""
    return math.ceil(total / limit) if limit else 0


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def get_contacts(
    db: Session,
    page: int = 1,
    limit: int = 10,
    search: str | None = None,
) -> Tuple[List[models.Contact], int]:
    """
    Retrieve one page of contacts sorted by name.

    Supports optional case-insensitive search on the contact name.

    Args:
        db (Session): Database session.
        page (int): 1-based page number.
        limit (int): Page size.
        search (str | None): Optional substring of the name.

    Returns:
        tuple[list[Contact], int]: The page and the total number of matches.
    """
    stmt = select(models.Contact)
    count_stmt = select(func.count()).select_from(models.Contact)

    search = (search or "").strip()
    if search:
        condition = models.Contact.name.ilike(f"%{_escape_like(search)}%", escape="\\")
        stmt = stmt.where(condition)
        count_stmt = count_stmt.where(condition)

    stmt = (
        stmt.order_by(func.lower(models.Contact.name), models.Contact.name, models.Contact.id)
        .offset((page - 1) * limit)
        .limit(limit)
    )
    total = db.scalar(count_stmt) or 0
    return list(db.scalars(stmt).all()), total


def get_contact(db: Session, contact_id: str) -> models.Contact | None:
    """
    Retrieve a single contact.

    Args:
        db (Session): Database session.
        contact_id (str): Contact identifier.

    Returns:
        Contact | None: Contact if found, otherwise ``None``.
    """
    return db.get(models.Contact, contact_id)


def find_duplicate(
    db: Session,
    email: str | None = None,
    phone: str | None = None,
    exclude_id: str | None = None,
    policy: PhonePolicy = LENIENT,
) -> Tuple[models.Contact, str] | None:
    """
    Look for another contact holding the same email or phone.

    Phone numbers are compared only when the policy makes them unique.

    Returns:
        tuple[Contact, str] | None: The clashing contact and the name of
        the clashing field (``"Email"`` or ``"Phone"``).
    """
    conditions = []
    if email:
        conditions.append(func.lower(models.Contact.email) == email.lower())
    if phone and policy.unique:
        conditions.append(models.Contact.phone == phone)
    if not conditions:
        return None

    stmt = select(models.Contact).where(or_(*conditions))
    if exclude_id is not None:
        stmt = stmt.where(models.Contact.id != exclude_id)
    existing = db.scalars(stmt.limit(1)).first()
    if existing is None:
        return None
    field = "Email" if email and existing.email == email.lower() else "Phone"
    return existing, field


def _conflict_field(exc: IntegrityError) -> str:
    """Name the field whose unique index rejected a write.

    Uses the constraint name reported by the driver when it has one
    (psycopg), otherwise the index or column named in the message
    (SQLite). The offending value is never inspected.
    """
    constraint = getattr(getattr(exc.orig, "diag", None), "constraint_name", None)
    if constraint:
        return "Phone" if constraint == PHONE_INDEX else "Email"
    message = str(exc.orig)
    if PHONE_INDEX in message or "contacts.phone" in message:
        return "Phone"
    return "Email"


def _commit(db: Session, contact: models.Contact, verb: str) -> models.Contact:
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        field = _conflict_field(exc)
        logger.info("Storage rejected duplicate %s for contact %s", field.lower(), contact.id)
        raise ConflictException(field, verb) from exc
    db.refresh(contact)
    return contact


def create_contact(
    db: Session, payload: Optional[Dict], policy: PhonePolicy = LENIENT
) -> models.Contact:
    """
    Validate a payload and persist it as a new contact.

    Args:
        db (Session): Database session.
        payload (dict | None): Raw request body.
        policy (PhonePolicy): Active phone policy.

    Raises:
        ValidationException: If any field rule fails.
        ConflictException: If the email (or phone, under the strict
            policy) belongs to another contact.

    Returns:
        Contact: Newly created contact.
    """
    result = validate_contact(payload, policy=policy)
    if not result.ok:
        raise ValidationException(result.errors)

    values = result.values
    duplicate = find_duplicate(db, values["email"], values["phone"], policy=policy)
    if duplicate:
        raise ConflictException(duplicate[1])

    contact = models.Contact(**values)
    db.add(contact)
    return _commit(db, contact, "already exists")


def update_contact(
    db: Session, contact_id: str, payload: Optional[Dict], policy: PhonePolicy = LENIENT
) -> models.Contact | None:
    """
    Apply a full or partial update to a contact.

    Only supplied fields are changed; the resulting record must still
    satisfy every field rule.

    Args:
        db (Session): Database session.
        contact_id (str): Contact identifier.
        payload (dict | None): Fields to update.
        policy (PhonePolicy): Active phone policy.

    Raises:
        ValidationException: If a supplied field, or the merged record,
            breaks a field rule.
        ConflictException: If the new email or phone is already in use.

    Returns:
        Contact | None: Updated contact, or ``None`` if it does not exist.
    """
    result = validate_contact(payload, partial=True, policy=policy)
    if not result.ok:
        raise ValidationException(result.errors)
    changes = result.values

    if changes.get("email") or changes.get("phone"):
        duplicate = find_duplicate(
            db, changes.get("email"), changes.get("phone"), exclude_id=contact_id, policy=policy
        )
        if duplicate:
            raise ConflictException(duplicate[1], "already in use")

    contact = get_contact(db, contact_id)
    if contact is None:
        return None

    merged = {key: getattr(contact, key) for key in CONTACT_FIELDS}
    merged.update(changes)
    full = validate_contact(merged, policy=policy)
    if not full.ok:
        raise ValidationException(full.errors)

    for key, value in full.values.items():
        setattr(contact, key, value)
    return _commit(db, contact, "already in use")


def delete_contact(db: Session, contact: models.Contact) -> None:
    """
    Delete a contact from the database.

    Args:
        db (Session): Database session.
        contact (Contact): Contact to delete.
    """
    db.delete(contact)
    db.commit()
