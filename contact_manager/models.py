"""Database models for the contacts service.

This module defines SQLAlchemy ORM models used by the application.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Index, String, func

from .database import Base

EMAIL_INDEX = "uq_contacts_email"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Contact(Base):
    """
    SQLAlchemy model representing a contact entry.

    Emails are stored lower-cased and are unique across all contacts.
    Phone numbers are unique only under the strict phone policy; the
    phone index is managed by ``Database.create_all``.
    """

    __tablename__ = "contacts"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(100), nullable=False, index=True)
    email = Column(String(255), nullable=False)
    phone = Column(String(20), nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<Contact {self.id} {self.email}>"


#: Case-insensitive unique email index
Index(EMAIL_INDEX, func.lower(Contact.email), unique=True)
