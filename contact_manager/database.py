"""Database configuration and session management.

This module defines the declarative base and the ``Database`` handle
that owns the SQLAlchemy engine and session factory for one application.
The handle is created by the application factory, connected during
startup and disposed on shutdown. Route handlers receive sessions
through the ``get_db`` dependency.
"""

import asyncio
import logging
from typing import Iterator

from fastapi import Request
from sqlalchemy import create_engine, inspect, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .exceptions import DatabaseUnavailableError

logger = logging.getLogger(__name__)


Base = declarative_base()
"""Declarative base class for SQLAlchemy models."""

#: Index on ``contacts.phone``; unique only under the strict phone policy.
PHONE_INDEX = "ix_contacts_phone"


class Database:
    """Engine and session factory bound to one database URL."""

    def __init__(self, url: str, **engine_kwargs):
        if url.startswith("sqlite"):
            engine_kwargs.setdefault("connect_args", {"check_same_thread": False})
        self.engine = create_engine(url, future=True, **engine_kwargs)
        self.SessionLocal = sessionmaker(
            bind=self.engine,
            autoflush=False,
            future=True,
        )

    def ping(self) -> None:
        """Open a connection and run a trivial query."""
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))

    async def connect(self, retries: int = 5, delay: float = 5.0) -> None:
        """Wait until the database answers, retrying a fixed number of times.

        Args:
            retries: Total number of connection attempts.
            delay: Seconds to sleep between attempts.

        Raises:
            DatabaseUnavailableError: If every attempt failed.
        """
        attempts_left = retries
        while True:
            try:
                await asyncio.to_thread(self.ping)
            except SQLAlchemyError as exc:
                attempts_left -= 1
                logger.error("Database connection error: %s", exc)
                if attempts_left <= 0:
                    raise DatabaseUnavailableError(
                        f"Could not connect to database after {retries} attempts"
                    ) from exc
                logger.warning(
                    "Retrying in %s seconds... (%d retries left)", delay, attempts_left
                )
                await asyncio.sleep(delay)
            else:
                logger.info("Database connected: %s", self.engine.url.render_as_string(hide_password=True))
                return

    def create_all(self, phone_unique: bool = False) -> None:
        """Create tables (for development and tests).

        Args:
            phone_unique: Whether the phone index must be unique. An
                existing index of the other kind is replaced, so the
                storage always matches the active phone policy.
        """
        Base.metadata.create_all(bind=self.engine)
        with self.engine.begin() as conn:
            indexes = {ix["name"]: ix for ix in inspect(conn).get_indexes("contacts")}
            current = indexes.get(PHONE_INDEX)
            if current is not None and bool(current["unique"]) == phone_unique:
                return
            if current is not None:
                conn.execute(text(f"DROP INDEX {PHONE_INDEX}"))
            kind = "UNIQUE INDEX" if phone_unique else "INDEX"
            conn.execute(text(f"CREATE {kind} {PHONE_INDEX} ON contacts (phone)"))
            logger.info("Phone index set to %s", "unique" if phone_unique else "non-unique")

    def session(self) -> Iterator[Session]:
        """Yield a session and close it once the caller is done."""
        db = self.SessionLocal()
        try:
            yield db
        finally:
            db.close()

    def dispose(self) -> None:
        self.engine.dispose()
        logger.info("Database connection closed")


def get_db(request: Request) -> Iterator[Session]:
    """
    Provide a SQLAlchemy database session.

    This function is used as a FastAPI dependency.
    It yields a session from the application's ``Database`` and
    ensures it is closed after the request is completed.
    """

    yield from request.app.state.database.session()
