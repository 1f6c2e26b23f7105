"""Persistence for observations."""
from datetime import date, datetime
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import func, update
from sqlalchemy.orm import Session

from app.models.observation import Observation, ObservationStatus, RiskRating


class ObservationRepository:
    """Queries and conditional writes for the observations table."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, observation_id: int, include_deleted: bool = False) -> Optional[Observation]:
        query = self.db.query(Observation).filter(Observation.id == observation_id)
        if not include_deleted:
            query = query.filter(Observation.deleted_at.is_(None))
        return query.first()

    def list(
        self,
        audit_id: Optional[int] = None,
        statuses: Optional[Iterable[ObservationStatus]] = None,
        risk_rating: Optional[RiskRating] = None,
        owner_id: Optional[int] = None,
        reviewer_id: Optional[int] = None,
        overdue_before: Optional[date] = None,
        limit: int = 50,
        offset: int = 0,
        include_deleted: bool = False,
    ) -> Tuple[List[Observation], int]:
        query = self.db.query(Observation)
        if not include_deleted:
            query = query.filter(Observation.deleted_at.is_(None))
        if audit_id is not None:
            query = query.filter(Observation.audit_id == audit_id)
        if statuses:
            query = query.filter(Observation.status.in_(list(statuses)))
        if risk_rating:
            query = query.filter(Observation.risk_rating == risk_rating)
        if owner_id is not None:
            query = query.filter(Observation.owner_id == owner_id)
        if reviewer_id is not None:
            query = query.filter(Observation.reviewer_id == reviewer_id)
        if overdue_before is not None:
            query = query.filter(
                Observation.target_date < overdue_before,
                Observation.status != ObservationStatus.CLOSED,
            )

        total = query.count()
        items = query.order_by(Observation.id.desc()).offset(offset).limit(limit).all()
        return items, total

    def next_sequence_number(self, audit_id: int) -> int:
        """Next per-audit sequence number; deleted rows keep their numbers."""
        current = (
            self.db.query(func.max(Observation.sequence_number))
            .filter(Observation.audit_id == audit_id)
            .scalar()
        )
        return (current or 0) + 1

    def count_global_sequences_with_prefix(self, prefix: str) -> int:
        return (
            self.db.query(func.count(Observation.id))
            .filter(Observation.global_sequence.like(f"{prefix}%"))
            .scalar()
            or 0
        )

    def add(self, observation: Observation) -> Observation:
        self.db.add(observation)
        self.db.flush()
        return observation

    def conditional_update(self, observation_id: int, expected_status: ObservationStatus, values: dict, *conditions) -> bool:
        """
        Apply ``values`` only if the row is live and still has ``expected_status``.

        Extra SQL ``conditions`` are ANDed into the WHERE clause. Returns True
        when exactly one row matched.
        """
        result = self.db.execute(
            update(Observation)
            .where(
                Observation.id == observation_id,
                Observation.status == expected_status,
                Observation.deleted_at.is_(None),
                *conditions,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def sweep_candidates(self, today: date, after_id: int, limit: int) -> List[Observation]:
        """Live observations past their target date that are neither CLOSED nor OVERDUE, in id order."""
        return (
            self.db.query(Observation)
            .filter(
                Observation.id > after_id,
                Observation.deleted_at.is_(None),
                Observation.status.notin_([ObservationStatus.CLOSED, ObservationStatus.OVERDUE]),
                Observation.target_date < today,
            )
            .order_by(Observation.id.asc())
            .limit(limit)
            .all()
        )

    def due_on(self, target: date) -> List[Observation]:
        """Open (not CLOSED) observations with an owner whose target date is exactly ``target``."""
        return (
            self.db.query(Observation)
            .filter(
                Observation.deleted_at.is_(None),
                Observation.status != ObservationStatus.CLOSED,
                Observation.owner_id.isnot(None),
                Observation.target_date == target,
            )
            .order_by(Observation.id.asc())
            .all()
        )

    def due_between(self, start: date, end: date) -> List[Observation]:
        return (
            self.db.query(Observation)
            .filter(
                Observation.deleted_at.is_(None),
                Observation.status != ObservationStatus.CLOSED,
                Observation.target_date >= start,
                Observation.target_date <= end,
            )
            .order_by(Observation.target_date.asc(), Observation.id.asc())
            .all()
        )

    def past_due(self, today: date, with_owner_only: bool = False) -> List[Observation]:
        query = self.db.query(Observation).filter(
            Observation.deleted_at.is_(None),
            Observation.status != ObservationStatus.CLOSED,
            Observation.target_date < today,
        )
        if with_owner_only:
            query = query.filter(Observation.owner_id.isnot(None))
        return query.order_by(Observation.target_date.asc(), Observation.id.asc()).all()

    def for_audit(self, audit_id: int, include_deleted: bool = False) -> List[Observation]:
        query = self.db.query(Observation).filter(Observation.audit_id == audit_id)
        if not include_deleted:
            query = query.filter(Observation.deleted_at.is_(None))
        return query.order_by(Observation.sequence_number.asc()).all()

    def soft_delete(self, observation: Observation, when: datetime) -> None:
        observation.deleted_at = when
        self.db.flush()
