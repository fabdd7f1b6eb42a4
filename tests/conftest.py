"""
Pytest configuration: in-memory MongoDB and a temporary recordings directory.
"""
import os
import sys
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.models import EPOCH, ObservationEvent  # noqa: E402
from app.storage import LocalStorage  # noqa: E402
from app.store import SessionEventStore  # noqa: E402


def at_ms(ms: int):
    return EPOCH + timedelta(milliseconds=ms)


def make_event(kind: str, ms: int, session_id: str = "alice") -> ObservationEvent:
    return ObservationEvent(session_id=session_id, kind=kind, occurred_at=at_ms(ms))


@pytest.fixture
def mongo_db():
    return AsyncMongoMockClient()["proctoring-test"]


@pytest.fixture
def store(mongo_db):
    return SessionEventStore(mongo_db.sessions, mongo_db.events)


@pytest.fixture
def recordings(tmp_path):
    return LocalStorage(tmp_path / "recordings")


@pytest.fixture
def client(store, recordings):
    """FastAPI test client wired to the in-memory store"""
    from app.main import app, get_recordings, get_store

    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_recordings] = lambda: recordings
    yield TestClient(app)
    app.dependency_overrides.clear()
