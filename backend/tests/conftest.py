import os

# Point the app at a throwaway in-memory database before it is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENV"] = "test"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlmodel import Session, delete  # noqa: E402

from app import app, get_extractor, get_transcriber  # noqa: E402
from auth import issue_token  # noqa: E402
from db import create_db_and_tables, engine, get_session  # noqa: E402
from models import ApiToken, DailyLog  # noqa: E402

EXTRACTED = {
    "schema_version": 1,
    "sleep_hours": 7.5,
    "mood": "calm",
    "energy": 6,
    "focus": 8,
    "highlights": ["Finished the report"],
}


class FakeTranscriber:
    def __init__(self, transcript="slept well and finished the report", error=None):
        self.transcript = transcript
        self.error = error
        self.calls = []

    def transcribe(self, audio, content_type):
        self.calls.append((audio, content_type))
        if self.error:
            raise self.error
        return self.transcript


class FakeExtractor:
    def __init__(self, extracted=None, error=None):
        self.extracted = extracted if extracted is not None else dict(EXTRACTED)
        self.error = error
        self.calls = []

    def extract(self, transcript):
        self.calls.append(transcript)
        if self.error:
            raise self.error
        return dict(self.extracted)


@pytest.fixture(scope="function")
def test_session():
    """Create a test database session."""
    create_db_and_tables()
    with Session(engine) as session:
        yield session
        # Clean up all test data after test
        session.rollback()
        session.execute(delete(DailyLog))
        session.execute(delete(ApiToken))
        session.commit()


@pytest.fixture(scope="function")
def transcriber():
    return FakeTranscriber()


@pytest.fixture(scope="function")
def extractor():
    return FakeExtractor()


@pytest.fixture(scope="function")
def client(test_session, transcriber, extractor):
    """Create a test client with dependency overrides."""

    def get_test_session():
        yield test_session

    app.dependency_overrides[get_session] = get_test_session
    app.dependency_overrides[get_transcriber] = lambda: transcriber
    app.dependency_overrides[get_extractor] = lambda: extractor
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def auth_headers(test_session):
    token = issue_token(test_session, "alice")
    return {"Authorization": f"Bearer {token}"}
