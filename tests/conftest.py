from datetime import datetime, timedelta, timezone

import mongomock
import pytest
from fastapi.testclient import TestClient

from database import ensure_indexes, get_db, get_optional_db
from main import app


@pytest.fixture
def db():
    database = mongomock.MongoClient()["fitnessDB_test"]
    ensure_indexes(database)
    return database


@pytest.fixture
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_optional_db] = lambda: db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def stamp():
    """Return increasing createdAt values so ordering assertions are stable."""
    base = datetime(2024, 1, 1, tzinfo=timezone.utc)
    return lambda minutes: base + timedelta(minutes=minutes)


@pytest.fixture
def application():
    return {
        "name": "Jane Doe",
        "email": "jane@example.com",
        "age": "31",
        "image": "https://img.example.com/jane.png",
        "experience": "7",
        "details": "Strength and conditioning coach",
        "expertise": ["Yoga", "HIIT"],
        "availableDays": ["Mon", "Wed"],
        "availableSlots": [{"day": "Mon", "time": "09:00"}],
        "socials": {"instagram": "@jane"},
    }


class StaleReadCollection:
    """Wraps a collection so another writer slips in right after the first find_one."""

    def __init__(self, collection, on_read):
        self._collection = collection
        self._on_read = on_read

    def find_one(self, *args, **kwargs):
        doc = self._collection.find_one(*args, **kwargs)
        if self._on_read is not None:
            on_read, self._on_read = self._on_read, None
            on_read()
        return doc

    def __getattr__(self, name):
        return getattr(self._collection, name)


@pytest.fixture
def stale_read():
    return StaleReadCollection
