# tests/conftest.py
import os
import sys

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool

sys.path.append(os.path.abspath("."))

from contact_manager import crud
from contact_manager.core import Settings
from contact_manager.database import Database
from main import create_app


def make_settings(**overrides) -> Settings:
    values = {
        "DATABASE_URL": "sqlite://",
        "ENVIRONMENT": "test",
        "REDIS_URL": None,
        "DB_CONNECT_RETRY_DELAY": 0,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


# DB (SQLite in-memory for tests)
@pytest.fixture()
def database():
    db = Database("sqlite://", poolclass=StaticPool)
    db.create_all()
    yield db
    db.dispose()


@pytest.fixture()
def db_session(database):
    session = database.SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def settings():
    return make_settings()


# Client fixture: app wired to the in-memory database, lifespan included
@pytest.fixture()
def client(settings, database):
    app = create_app(settings, database=database)
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def make_contact(db_session):
    def _make(name="Jane Doe", email="jane@example.com", phone="555-0100"):
        return crud.create_contact(
            db_session, {"name": name, "email": email, "phone": phone}
        )

    return _make
