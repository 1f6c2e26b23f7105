"""Append-only persistence for observation status history."""
from typing import List

from sqlalchemy.orm import Session

from app.models.status_history import ObservationStatusHistory


class StatusHistoryRepository:
    """Insert and read status history rows. There is deliberately no update or delete."""

    def __init__(self, db: Session):
        self.db = db

    def append(self, entry: ObservationStatusHistory) -> ObservationStatusHistory:
        self.db.add(entry)
        self.db.flush()
        return entry

    def for_observation(self, observation_id: int) -> List[ObservationStatusHistory]:
        return (
            self.db.query(ObservationStatusHistory)
            .filter(ObservationStatusHistory.observation_id == observation_id)
            .order_by(ObservationStatusHistory.id.asc())
            .all()
        )
