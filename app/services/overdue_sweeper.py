"""
Overdue sweep.

Marks every live observation whose target date has passed as OVERDUE. Rows
are loaded in id-ordered batches and each one is moved with its own
conditional UPDATE that re-checks status and target date, so the sweep can
run alongside user transitions and can be repeated safely.
"""
import logging
from typing import Optional

from sqlalchemy.orm import Session

from app.core.clock import Clock
from app.models.observation import Observation, ObservationStatus
from app.models.status_history import ActorSource
from app.repositories.observation_repository import ObservationRepository
from app.services.audit_trail import AuditTrailRecorder
from app.services.events import EventBus, ObservationStatusChanged, observation_snapshot

logger = logging.getLogger(__name__)

OVERDUE_REASON = "Automatically marked as overdue (past target date)"


class OverdueSweeper:
    """Moves past-due observations to OVERDUE on behalf of the system actor."""

    def __init__(
        self,
        db: Session,
        clock: Clock,
        events: EventBus,
        batch_size: int = 200,
        trail: Optional[AuditTrailRecorder] = None,
    ):
        self.db = db
        self.clock = clock
        self.events = events
        self.batch_size = max(1, batch_size)
        self.trail = trail or AuditTrailRecorder(db, clock)
        self.observations = ObservationRepository(db)

    def sweep(self) -> int:
        """Run one pass. Returns the number of observations moved to OVERDUE."""
        today = self.clock.today()
        moved = 0
        skipped = 0
        last_id = 0

        logger.info(f"Overdue sweep started for {today.isoformat()} (batch size {self.batch_size})")
        while True:
            batch = [
                (observation.id, observation.status, observation_snapshot(observation))
                for observation in self.observations.sweep_candidates(today, last_id, self.batch_size)
            ]
            if not batch:
                break

            for observation_id, prior, snapshot in batch:
                last_id = observation_id
                if self._mark_overdue(observation_id, prior, snapshot, today):
                    moved += 1
                else:
                    skipped += 1

            if len(batch) < self.batch_size:
                break

        logger.info(f"Overdue sweep finished: {moved} marked overdue, {skipped} skipped")
        return moved

    def _mark_overdue(self, observation_id: int, prior: ObservationStatus, snapshot: dict, today) -> bool:
        now = self.clock.now()
        matched = self.observations.conditional_update(
            observation_id,
            prior,
            {
                "status": ObservationStatus.OVERDUE,
                "previous_status": prior,
                "status_changed_at": now,
                "status_changed_by_id": None,
            },
            Observation.target_date < today,
        )
        if not matched:
            self.db.rollback()
            logger.debug(f"Observation {observation_id} changed during sweep; skipped")
            return False
        self.db.commit()

        self.trail.record_observation_transition(
            observation_id, prior, ObservationStatus.OVERDUE, None, OVERDUE_REASON, ActorSource.SYSTEM
        )
        snapshot = dict(snapshot, status=ObservationStatus.OVERDUE.value)
        self.events.publish(ObservationStatusChanged(
            snapshot, prior, ObservationStatus.OVERDUE, None, OVERDUE_REASON
        ))
        return True
