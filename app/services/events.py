"""
Domain events and the in-process event bus.

Services publish events only after their durable write has committed.
Events carry plain snapshots rather than ORM objects so handlers can run on
another thread without touching the publishing session.
"""
import logging
from collections import defaultdict
from concurrent.futures import Executor, Future
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from app.models.audit import AuditStatus
from app.models.observation import ObservationStatus

logger = logging.getLogger(__name__)


def observation_snapshot(observation) -> Dict[str, Any]:
    """Detached copy of the fields notification handlers need."""
    return {
        "id": observation.id,
        "audit_id": observation.audit_id,
        "global_sequence": observation.global_sequence,
        "title": observation.title,
        "status": observation.status.value if observation.status else None,
        "risk_rating": observation.risk_rating.value if observation.risk_rating else None,
        "target_date": observation.target_date.isoformat() if observation.target_date else None,
        "owner_id": observation.owner_id,
        "reviewer_id": observation.reviewer_id,
    }


@dataclass(frozen=True)
class ObservationCreated:
    observation: Dict[str, Any]
    actor_id: Optional[int] = None


@dataclass(frozen=True)
class ObservationUpdated:
    observation: Dict[str, Any]
    actor_id: Optional[int] = None
    changes: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class ObservationAssigned:
    observation: Dict[str, Any]
    role: str  # "owner" or "reviewer"
    assignee_id: int
    actor_id: Optional[int] = None


@dataclass(frozen=True)
class ObservationStatusChanged:
    observation: Dict[str, Any]
    from_status: Optional[ObservationStatus]
    to_status: ObservationStatus
    actor_id: Optional[int] = None
    reason: Optional[str] = None


@dataclass(frozen=True)
class EvidenceReviewed:
    observation: Dict[str, Any]
    evidence_id: int
    evidence_name: str
    approved: bool
    actor_id: Optional[int] = None
    remarks: Optional[str] = None
    rejection_reason: Optional[str] = None


@dataclass(frozen=True)
class DueDateReminder:
    observation: Dict[str, Any]
    days_remaining: int


@dataclass(frozen=True)
class OverdueReminder:
    observation: Dict[str, Any]
    days_overdue: int


@dataclass(frozen=True)
class AuditStatusChanged:
    audit_id: int
    audit_number: str
    name: str
    from_status: AuditStatus
    to_status: AuditStatus
    lead_auditor_id: Optional[int] = None
    actor_id: Optional[int] = None


Handler = Callable[[Any], None]


class EventBus:
    """
    Synchronous publish/subscribe bus.

    Handlers subscribe to an event class and receive every published
    instance of it (subclasses included). A handler failure is logged and
    never propagates to the publisher. With an ``executor`` handlers run in
    the background.
    """

    def __init__(self, executor: Optional[Executor] = None):
        self._handlers: Dict[type, List[Handler]] = defaultdict(list)
        self._executor = executor

    def subscribe(self, event_type: type, handler: Handler) -> None:
        self._handlers[event_type].append(handler)

    def handlers_for(self, event: Any) -> List[Handler]:
        matched = []
        for event_type, handlers in self._handlers.items():
            if isinstance(event, event_type):
                matched.extend(handlers)
        return matched

    def publish(self, event: Any) -> None:
        for handler in self.handlers_for(event):
            if self._executor is not None:
                future = self._executor.submit(handler, event)
                future.add_done_callback(lambda f, e=event: self._log_failure(f, e))
                continue
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Event handler failed for {type(event).__name__}: {e}", exc_info=True)

    @staticmethod
    def _log_failure(future: Future, event: Any) -> None:
        exc = future.exception()
        if exc is not None:
            logger.error(
                f"Background event handler failed for {type(event).__name__}: {exc}",
                exc_info=(type(exc), exc, exc.__traceback__),
            )

    def shutdown(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
