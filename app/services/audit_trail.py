"""
Audit trail recorder.

Writes status history and activity log entries after the state change they
describe has committed. Recording is best-effort: a failure is rolled back on
its own, logged and suppressed, so it can never undo the committed change.
"""
import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from app.core.clock import Clock
from app.models.observation import ObservationStatus
from app.models.status_history import ActorSource, ObservationStatusHistory
from app.repositories.status_history_repository import StatusHistoryRepository
from app.services.activity_service import ActivityAction, ResourceType, log_activity

logger = logging.getLogger(__name__)


class AuditTrailRecorder:
    """Append-only recorder for observation history and the activity log."""

    def __init__(self, db: Session, clock: Clock):
        self.db = db
        self.clock = clock
        self.history = StatusHistoryRepository(db)

    def record_observation_transition(
        self,
        observation_id: int,
        from_status: Optional[ObservationStatus],
        to_status: ObservationStatus,
        actor_id: Optional[int],
        reason: Optional[str] = None,
        source: Optional[str] = None,
    ) -> Optional[ObservationStatusHistory]:
        """
        Append one history row plus a matching activity entry.

        ``source`` defaults to ``system`` when there is no actor. Returns the
        history row, or None when recording failed.
        """
        source = source or (ActorSource.SYSTEM if actor_id is None else ActorSource.USER)
        try:
            entry = self.history.append(ObservationStatusHistory(
                observation_id=observation_id,
                from_status=from_status,
                to_status=to_status,
                reason=reason,
                changed_by_id=actor_id,
                changed_by_source=source,
                changed_at=self.clock.now(),
            ))
            log_activity(
                self.db,
                actor_id,
                ActivityAction.CREATE if from_status is None else ActivityAction.STATUS_CHANGE,
                ResourceType.OBSERVATION,
                observation_id,
                {
                    "from_status": from_status.value if from_status else None,
                    "to_status": to_status.value,
                    "reason": reason,
                    "source": source,
                },
                commit=False,
            )
            self.db.commit()
            return entry
        except Exception as e:
            self.db.rollback()
            logger.error(
                f"Failed to record status history for observation {observation_id} "
                f"({from_status.value if from_status else None} -> {to_status.value}): {e}",
                exc_info=True,
            )
            return None

    def record_activity(
        self,
        actor_id: Optional[int],
        action: str,
        resource_type: str,
        resource_id: Optional[int],
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Append an activity log entry; failures are logged and suppressed."""
        try:
            log_activity(self.db, actor_id, action, resource_type, resource_id, details)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to record activity {action} on {resource_type}:{resource_id}: {e}", exc_info=True)

    def history_for(self, observation_id: int):
        return self.history.for_observation(observation_id)
