"""
Pytest configuration and fixtures.
"""
import hashlib
from datetime import date, datetime, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient
from unittest.mock import patch

# Import Base and get_db from the app's database module
from app.core.database import Base, get_db
from app.core.clock import FixedClock
from app.api.deps import get_clock, get_event_bus
from app.main import app

# Import all models to ensure they register with Base.metadata
# This is critical - tables won't be created if models aren't imported
from app.models import (
    User,
    Entity,
    Audit,
    AuditType,
    Observation,  # noqa: F401
    ObservationStatusHistory,  # noqa: F401
    SLARule,
    Evidence,  # noqa: F401
    ActivityLog,  # noqa: F401
    Notification,  # noqa: F401
    RiskRating,
)
from app.schemas.audit import AuditCreateRequest
from app.schemas.evidence import EvidenceCreateRequest
from app.schemas.observation import ObservationCreateRequest
from app.services.audit_service import AuditService
from app.services.directory import DatabaseDirectory
from app.services.events import EventBus
from app.services.evidence_service import EvidenceService
from app.services.notification_service import NotificationDispatcher, NotificationSink
from app.services.observation_service import ObservationService
from app.services.overdue_sweeper import OverdueSweeper

# Use file-based SQLite for testing (more reliable than in-memory)
TEST_DATABASE_URL = "sqlite:///./test_audit_tracker.db"

# Create test engine
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    pool_pre_ping=False,
)

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


class RecordingSink(NotificationSink):
    """Notification sink that keeps every delivery in memory."""

    def __init__(self):
        self.sent = []

    def notify(self, notification_type, recipient_id, payload):
        self.sent.append((notification_type, recipient_id, payload))

    def types(self):
        return [notification_type.value for notification_type, _, _ in self.sent]

    def to(self, recipient_id):
        return [n_type.value for n_type, recipient, _ in self.sent if recipient == recipient_id]


def _evidence_payload(name: str = "evidence.pdf", **overrides) -> EvidenceCreateRequest:
    data = {
        "name": name,
        "file_name": name,
        "file_path": f"evidence/{name}",
        "file_size": 2048,
        "mime_type": "application/pdf",
        "checksum": hashlib.sha256(name.encode()).hexdigest(),
    }
    data.update(overrides)
    return EvidenceCreateRequest(**data)


@pytest.fixture(scope="session", autouse=True)
def setup_test_database():
    """
    Create all tables before tests run and clean up after all tests complete.
    This runs once per test session.
    """
    Base.metadata.create_all(bind=test_engine)
    yield
    Base.metadata.drop_all(bind=test_engine)


@pytest.fixture(scope="function", autouse=True)
def clean_tables():
    """Empty every table after each test so tests stay independent."""
    yield
    with test_engine.begin() as connection:
        for table in reversed(Base.metadata.sorted_tables):
            connection.execute(table.delete())


@pytest.fixture(scope="function", autouse=True)
def disable_api_key():
    """Disable API key authentication for all tests."""
    with patch("app.core.config.settings.API_KEY", None):
        yield


@pytest.fixture(scope="function")
def session_factory():
    """Session factory bound to the test database, for second sessions and in-app sinks."""
    return TestingSessionLocal


@pytest.fixture(scope="function")
def evidence_payload():
    """Factory for evidence upload payloads; the checksum is derived from the name."""
    return _evidence_payload


@pytest.fixture(scope="function")
def db_session():
    """
    Provide a database session for tests that need direct DB access.
    """
    db = TestingSessionLocal()
    try:
        yield db
        db.rollback()
    finally:
        db.close()


@pytest.fixture(scope="function")
def clock():
    return FixedClock(datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc))


@pytest.fixture(scope="function")
def sink():
    return RecordingSink()


@pytest.fixture(scope="function")
def event_bus(sink):
    bus = EventBus()
    NotificationDispatcher([sink], frontend_url="http://localhost:3000").register(bus)
    return bus


@pytest.fixture(scope="function")
def directory(db_session):
    return DatabaseDirectory(db_session)


@pytest.fixture(scope="function")
def observation_service(db_session, clock, event_bus, directory):
    return ObservationService(db_session, clock, event_bus, directory)


@pytest.fixture(scope="function")
def audit_service(db_session, clock, event_bus, directory):
    return AuditService(db_session, clock, event_bus, directory)


@pytest.fixture(scope="function")
def evidence_service(db_session, clock, event_bus, directory, observation_service):
    return EvidenceService(db_session, clock, event_bus, directory, observations=observation_service)


@pytest.fixture(scope="function")
def sweeper(db_session, clock, event_bus):
    return OverdueSweeper(db_session, clock, event_bus, batch_size=2)


@pytest.fixture(scope="function")
def people(db_session):
    """Owner, reviewer and lead auditor users plus one entity."""
    owner = User(email="owner@example.com", display_name="Olivia Owner")
    reviewer = User(email="reviewer@example.com", display_name="Rex Reviewer")
    auditor = User(email="auditor@example.com", display_name="Ada Auditor")
    entity = Entity(code="FIN", name="Finance")
    db_session.add_all([owner, reviewer, auditor, entity])
    db_session.commit()
    return {
        "owner": owner.id,
        "reviewer": reviewer.id,
        "auditor": auditor.id,
        "entity": entity.id,
    }


@pytest.fixture(scope="function")
def make_audit(audit_service, people):
    def _make(audit_type=AuditType.INTERNAL, name="Q1 Internal Audit"):
        return audit_service.create(
            AuditCreateRequest(
                name=name,
                type=audit_type,
                entity_id=people["entity"],
                lead_auditor_id=people["auditor"],
                period_start=date(2023, 10, 1),
                period_end=date(2023, 12, 31),
            ),
            actor_id=people["auditor"],
        )
    return _make


@pytest.fixture(scope="function")
def make_observation(observation_service, make_audit, people):
    def _make(audit=None, risk_rating=RiskRating.HIGH, **overrides):
        audit = audit or make_audit()
        data = {
            "audit_id": audit.id,
            "title": "Segregation of duties not enforced",
            "description": "Same user can raise and approve payments.",
            "risk_rating": risk_rating,
            "owner_id": people["owner"],
            "reviewer_id": people["reviewer"],
            "open_date": date(2024, 1, 1),
        }
        data.update(overrides)
        return observation_service.create(ObservationCreateRequest(**data), actor_id=people["auditor"])
    return _make


@pytest.fixture(scope="function")
def sla_rule(db_session):
    """Factory for SLA rules."""
    def _make(**fields):
        values = {"name": "rule", "base_days": 30, "priority": 0, "is_active": True}
        values.update(fields)
        rule = SLARule(**values)
        db_session.add(rule)
        db_session.commit()
        return rule
    return _make


@pytest.fixture(scope="function")
def client(clock, event_bus):
    """
    Create a test client with database, clock and event bus overrides.

    The get_db dependency is overridden to use TestingSessionLocal,
    creating a new session for each request (as FastAPI expects).
    """
    def override_get_db():
        """Override get_db dependency to use test database session."""
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_event_bus] = lambda: event_bus

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def client_with_auth(client):
    """
    Test client with API key authentication enabled.

    Sets API_KEY="test-key" for testing authentication.
    """
    with patch("app.core.config.settings.API_KEY", "test-key"):
        yield client
