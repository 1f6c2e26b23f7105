"""
Dependencies that build engine services for a request.

Tests override ``get_clock`` and ``get_event_bus`` (together with
``get_db``) to drive the engine with a fixed clock and a recording sink.
"""
import threading
from fastapi import Depends
from sqlalchemy.orm import Session

from app.core.clock import Clock, SystemClock
from app.core.config import settings
from app.core.database import SessionLocal, get_db
from app.services.audit_service import AuditService
from app.services.directory import DatabaseDirectory, Directory
from app.services.events import EventBus
from app.services.evidence_service import EvidenceService
from app.services.notification_service import build_event_bus
from app.services.observation_service import ObservationService
from app.services.overdue_sweeper import OverdueSweeper
from app.services.reminder_service import ReminderService
from app.services.sla_service import SLAService

_event_bus = None
_event_bus_lock = threading.Lock()


def get_clock() -> Clock:
    return SystemClock()


def get_event_bus() -> EventBus:
    """Process-wide event bus, built on first use."""
    global _event_bus
    if _event_bus is None:
        with _event_bus_lock:
            if _event_bus is None:
                _event_bus = build_event_bus(settings, SessionLocal)
    return _event_bus


def shutdown_event_bus() -> None:
    global _event_bus
    if _event_bus is not None:
        _event_bus.shutdown()
        _event_bus = None


def get_directory(db: Session = Depends(get_db)) -> Directory:
    return DatabaseDirectory(db)


def get_observation_service(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    events: EventBus = Depends(get_event_bus),
    directory: Directory = Depends(get_directory),
) -> ObservationService:
    return ObservationService(db, clock, events, directory)


def get_audit_service(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    events: EventBus = Depends(get_event_bus),
    directory: Directory = Depends(get_directory),
) -> AuditService:
    return AuditService(db, clock, events, directory)


def get_evidence_service(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    events: EventBus = Depends(get_event_bus),
    directory: Directory = Depends(get_directory),
) -> EvidenceService:
    return EvidenceService(db, clock, events, directory)


def get_sla_service(db: Session = Depends(get_db)) -> SLAService:
    return SLAService(db)


def get_overdue_sweeper(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    events: EventBus = Depends(get_event_bus),
) -> OverdueSweeper:
    return OverdueSweeper(db, clock, events, batch_size=settings.SWEEP_BATCH_SIZE)


def get_reminder_service(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    events: EventBus = Depends(get_event_bus),
) -> ReminderService:
    return ReminderService(db, clock, events, reminder_days=settings.REMINDER_DAYS)
