import copy

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

from tenderflow.config import settings
from tenderflow.database import get_db, init_db
from tenderflow.dependencies import get_analyzer, get_storage
from tenderflow.main import app
from tenderflow.models.user import User
from tenderflow.services.storage import LocalObjectStore
from tenderflow.utils.clock import utc_now
from tenderflow.utils.security import hash_token

SERVICE_TOKEN = "test-service-token"

TENDER_TEXT = """\
INVITATION TO TENDER
Supply of Managed Security Services

SECTION 1 - INSTRUCTIONS TO TENDERERS
1.1 Tenders must be submitted on or before 15 March 2026 at 12:00 noon.
1.2 Late tenders will be rejected.
1.3 Tenderers must provide ISO 27001 evidence with their submission.
1.4 A tender security of KES 200,000 is required.

SECTION 2 - SCOPE
2.1 The contractor shall provide 24/7 monitoring of all sites.
2.2 Monthly reporting is expected.
"""

ANALYSIS_PAYLOAD = {
    "executive_summary": {
        "decisionBadge": "Go",
        "decisionLine": "Requirements are standard for a managed security bid.",
        "keyFindings": ["ISO 27001 evidence is mandatory."],
        "nextActions": ["Collect the ISO 27001 certificate."],
        "submissionDeadline": "15 March 2026 12:00",
    },
    "requirements": [
        {"type": "MUST", "text": "Provide ISO 27001 evidence"},
        {"type": "SHOULD", "text": "Monthly reporting is expected"},
    ],
    "risks": [
        {"severity": "high", "title": "Late tenders will be rejected", "detail": "No grace period."},
    ],
    "clarifications": ["Is a scanned ISO certificate acceptable?"],
    "outline": [
        {"title": "Security Operations", "bullets": ["24/7 monitoring", "Monthly reports"]},
    ],
}


class FakeAnalyzer:
    """Returns a canned payload; items cite every candidate containing their text."""

    def __init__(self, payload: dict | None = None, error: Exception | None = None):
        self.payload = payload if payload is not None else copy.deepcopy(ANALYSIS_PAYLOAD)
        self.error = error
        self.calls = []

    def analyze(self, extracted_text, evidence):
        self.calls.append((extracted_text, evidence))
        if self.error is not None:
            raise self.error
        payload = copy.deepcopy(self.payload)
        for item in payload.get("requirements", []) + payload.get("risks", []):
            if "evidence_ids" not in item:
                needle = (item.get("text") or item.get("title") or "").lower()
                item["evidence_ids"] = [c.id for c in evidence if needle and needle in c.excerpt.lower()]
        return payload


def _set_sqlite_pragmas(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


@pytest.fixture
def tmp_data(tmp_path):
    data_path = tmp_path / "TenderFlow"
    (data_path / "uploads").mkdir(parents=True)
    return data_path


@pytest.fixture
def test_db(tmp_data):
    db_path = tmp_data / "db.sqlite"
    engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False},
    )
    event.listen(engine, "connect", _set_sqlite_pragmas)
    TestSession = sessionmaker(bind=engine, autoflush=False, autocommit=False)

    init_db(db_path)

    def override_get_db():
        db = TestSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestSession
    app.dependency_overrides.clear()
    engine.dispose()


@pytest.fixture
def db(test_db):
    session = test_db()
    yield session
    session.close()


@pytest.fixture
def user(db):
    """A user row created directly in the database (service-level tests)."""
    u = User(id="user-1", email="owner@example.com", token_hash=hash_token("owner-token"), created_at=utc_now())
    db.add(u)
    db.commit()
    return u


@pytest.fixture
def storage(tmp_data):
    return LocalObjectStore(tmp_data / "uploads")


@pytest.fixture
def analyzer():
    return FakeAnalyzer()


@pytest.fixture
def tender_text():
    return TENDER_TEXT


@pytest.fixture
def client(tmp_data, test_db, storage, analyzer, monkeypatch):
    monkeypatch.setattr(settings, "data_path", tmp_data)
    monkeypatch.setattr(settings, "service_token", SERVICE_TOKEN)
    monkeypatch.setattr(settings, "process_job_url", None)
    monkeypatch.setattr(settings, "mock_extract", False)
    monkeypatch.setattr(settings, "mock_ai", False)
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_analyzer] = lambda: analyzer
    return TestClient(app)


@pytest.fixture
def service_headers():
    return {"Authorization": f"Bearer {SERVICE_TOKEN}"}


@pytest.fixture
def make_user(client, service_headers):
    def _make(email="bidder@example.com"):
        r = client.post("/api/v1/users", json={"email": email}, headers=service_headers)
        assert r.status_code == 201, r.text
        return {"Authorization": f"Bearer {r.json()['token']}"}
    return _make


@pytest.fixture
def auth(make_user):
    return make_user()


@pytest.fixture
def upload(client, auth):
    def _upload(text=TENDER_TEXT, name="tender.txt", headers=None, **form):
        r = client.post(
            "/api/v1/jobs",
            files={"file": (name, text.encode("utf-8"), "text/plain")},
            data=form,
            headers=headers or auth,
        )
        assert r.status_code == 201, r.text
        return r.json()
    return _upload


@pytest.fixture
def process(client, service_headers):
    def _process(job_id):
        return client.post("/api/v1/process-job", json={"job_id": job_id}, headers=service_headers)
    return _process


@pytest.fixture
def make_analyzer():
    return FakeAnalyzer
