"""Pytest fixtures — SQLite cache database, in-memory sheet and a mocked relay."""
import json
import time
from unittest.mock import MagicMock

import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import rsa
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient

from swiftleave import auth
from swiftleave.config import settings
from swiftleave.database import Base, get_db
from swiftleave.main import app
from swiftleave.services.notification_service import NotificationDispatcher, get_dispatcher
from swiftleave.services.session import SessionContext
from swiftleave.services.sheet_client import InMemoryTabularStore, get_store

# Import all models so they register with Base.metadata
from swiftleave.models.cache_entry import CacheEntry  # noqa: F401

SQLITE_URL = "sqlite:///./test.db"
RELAY_URL = "https://relay.example.com/hook"
CLIENT_ID = "swiftleave-test.apps.googleusercontent.com"
ISSUER = "https://accounts.google.com"

# Stands in for Google's published signing key
SIGNING_KEY = rsa.generate_private_key(public_exponent=65537, key_size=2048)

LOG_HEADER = [
    "Timestamp", "RequestId", "Type", "Status", "EmployeeName", "EmployeeEmail",
    "EmployeeId", "Dates", "Reason", "ManagerComment", "ManagerAction",
    "PermissionType", "LeaveType", "RequestedInTime", "RequestedOutTime", "AlternateStaff",
]


def log_row(rid: str, status: str = "PENDING", email: str = "asha@example.com",
            timestamp: str = "2026-03-01T09:00:00+00:00", **overrides) -> list[str]:
    """A full 16-column Logs row."""
    row = {
        "timestamp": timestamp,
        "request_id": rid,
        "type": "request",
        "status": status,
        "employee_name": "Asha Rao",
        "employee_email": email,
        "employee_id": "E001",
        "dates": "2026-03-10 - 2026-03-11",
        "reason": "Family function",
        "manager_comment": "",
        "manager_action": "",
        "permission_type": "Leave",
        "leave_type": "Casual Leave",
        "requested_in_time": "",
        "requested_out_time": "",
        "alternate_staff": "Meera Iyer",
    }
    row.update(overrides)
    return list(row.values())


def seed_sheets() -> dict:
    return {
        "employeedetails": [
            ["S_NO", "EMP_CODE", "EMP_NAME", "ROLE", "EMAIL_ID"],
            ["1", "E001", "Asha Rao", "employee", "asha@example.com"],
            ["2", "E002", "Vikram Das", "Manager", "Vikram@Example.com"],
            ["3", "E003", "Meera Iyer", "employee", "meera@example.com"],
            ["4", "E004", "Office Admin", "admin", "admin@example.com"],
        ],
        "lookup": [
            ["PermissionType", "LeaveType"],
            ["Leave", "Casual Leave"],
            ["Permission", "Sick Leave"],
            ["", "FN Permission"],
            ["", "AN Permission"],
            ["", "In Between Permission"],
        ],
        "logs": [
            LOG_HEADER,
            log_row("REQ-AAAA0001", timestamp="2026-03-01T09:00:00+00:00"),
            log_row("REQ-AAAA0002", status="APPROVED", timestamp="2026-03-02T09:00:00+00:00",
                    manager_comment="Enjoy", manager_action="APPROVE"),
            log_row("REQ-BBBB0001", email="meera@example.com", employee_name="Meera Iyer",
                    employee_id="E003", timestamp="2026-03-03T09:00:00+00:00"),
        ],
        "tasklookup": [
            ["Company", "Platform", "Fulfillment", "Task"],
            ["Acme", "Amazon", "FBA", "Listing"],
            ["Globex", "Flipkart", "Smart", "Inward"],
            ["Acme", "Material", "", "Packing"],
        ],
        "tasklogs": [
            ["Timestamp", "TaskId", "EmployeeEmail", "EmployeeName", "Company", "Platform",
             "Fulfillment", "Task", "Quantity", "ClaimedQuantity"],
            ["2026-03-01T10:00:00+00:00", "TASK-00000001", "asha@example.com", "Asha Rao",
             "Acme", "Amazon", "FBA", "Listing", "12", "10"],
            ["2026-03-05T10:00:00+00:00", "TASK-00000002", "meera@example.com", "Meera Iyer",
             "Globex", "Flipkart", "Smart", "Inward", "7", ""],
        ],
    }


def make_token(email: str, name: str = "Test User", key=None, algorithm: str = "RS256", **claims) -> str:
    """A Google-style ID token signed with the test signing key unless ``key`` is given."""
    payload = {
        "iss": ISSUER,
        "aud": CLIENT_ID,
        "exp": int(time.time()) + 3600,
        "email": email,
        "name": name,
        "picture": "",
        **claims,
    }
    return jwt.encode(payload, key if key is not None else SIGNING_KEY, algorithm=algorithm)


def auth_headers(email: str, name: str = "Test User") -> dict:
    return {"Authorization": f"Bearer {make_token(email, name)}"}


@pytest.fixture(autouse=True)
def identity_keys(monkeypatch):
    """Verify identity tokens against the local key pair instead of Google's JWKS."""
    monkeypatch.setattr(settings, "GOOGLE_CLIENT_ID", CLIENT_ID)
    monkeypatch.setattr(auth, "signing_key_for", lambda token: SIGNING_KEY.public_key())


@pytest.fixture(scope="function")
def db_engine():
    """Create a fresh SQLite engine for each test."""
    engine = create_engine(SQLITE_URL, connect_args={"check_same_thread": False})

    # Enable WAL mode for better concurrency
    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db(db_engine):
    """Yield a database session, closed after the test."""
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def store():
    return InMemoryTabularStore(seed_sheets())


@pytest.fixture(scope="function")
def relay_http():
    """Stand-in for the requests.Session used to post to the relay."""
    return MagicMock()


@pytest.fixture(scope="function")
def dispatcher(relay_http):
    return NotificationDispatcher(
        webhook_url=RELAY_URL,
        manager_email="vikram@example.com",
        public_base_url="http://testserver",
        dashboard_url="http://dashboard.test",
        http=relay_http,
    )


@pytest.fixture(scope="function")
def client(db_engine, store, dispatcher):
    """TestClient with database, sheet and relay dependencies overridden."""
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)

    def _override_get_db():
        session = TestingSession()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    app.state.session_context = SessionContext()
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def relay_bodies(relay_http: MagicMock) -> list[dict]:
    """Decoded JSON bodies of every relay post."""
    return [json.loads(call.kwargs["data"]) for call in relay_http.post.call_args_list]


def valid_draft(**overrides) -> dict:
    """A complete leave form for Asha."""
    draft = {
        "name": "Asha Rao",
        "email": "asha@example.com",
        "emp_id": "E001",
        "permission_type": "Leave",
        "leave_type": "Casual Leave",
        "start_date": "2026-04-01",
        "end_date": "2026-04-02",
        "alternate_staff": "Meera Iyer",
        "reason": "Travel",
    }
    draft.update(overrides)
    return draft
