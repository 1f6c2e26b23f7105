"""Persistence for evidence records."""
from datetime import datetime
from typing import List, Optional

from sqlalchemy import func, update
from sqlalchemy.orm import Session

from app.models.evidence import Evidence, EvidenceStatus


class EvidenceRepository:
    """Queries and conditional writes for the evidence table."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, evidence_id: int, include_deleted: bool = False) -> Optional[Evidence]:
        query = self.db.query(Evidence).filter(Evidence.id == evidence_id)
        if not include_deleted:
            query = query.filter(Evidence.deleted_at.is_(None))
        return query.first()

    def list_for_observation(
        self,
        observation_id: int,
        include_superseded: bool = False,
        include_deleted: bool = False,
    ) -> List[Evidence]:
        query = self.db.query(Evidence).filter(Evidence.observation_id == observation_id)
        if not include_deleted:
            query = query.filter(Evidence.deleted_at.is_(None))
        if not include_superseded:
            query = query.filter(Evidence.superseded_at.is_(None))
        return query.order_by(Evidence.version.asc(), Evidence.id.asc()).all()

    def active_for_observation(self, observation_id: int) -> List[Evidence]:
        """Evidence that is neither soft-deleted nor superseded."""
        return self.list_for_observation(observation_id, include_superseded=False, include_deleted=False)

    def find_active_by_checksum(self, observation_id: int, checksum: str) -> Optional[Evidence]:
        return (
            self.db.query(Evidence)
            .filter(
                Evidence.observation_id == observation_id,
                Evidence.checksum == checksum,
                Evidence.deleted_at.is_(None),
                Evidence.superseded_at.is_(None),
            )
            .first()
        )

    def max_version(self, observation_id: int) -> int:
        current = (
            self.db.query(func.max(Evidence.version))
            .filter(Evidence.observation_id == observation_id)
            .scalar()
        )
        return current or 0

    def add(self, evidence: Evidence) -> Evidence:
        self.db.add(evidence)
        self.db.flush()
        return evidence

    def conditional_review(self, evidence_id: int, values: dict) -> bool:
        """Apply review ``values`` only if the evidence is still active and pending review."""
        result = self.db.execute(
            update(Evidence)
            .where(
                Evidence.id == evidence_id,
                Evidence.status == EvidenceStatus.PENDING_REVIEW,
                Evidence.deleted_at.is_(None),
                Evidence.superseded_at.is_(None),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def mark_superseded(self, evidence_id: int, when: datetime) -> bool:
        result = self.db.execute(
            update(Evidence)
            .where(
                Evidence.id == evidence_id,
                Evidence.deleted_at.is_(None),
                Evidence.superseded_at.is_(None),
            )
            .values(superseded_at=when)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def soft_delete(self, evidence: Evidence, when: datetime) -> None:
        evidence.deleted_at = when
        self.db.flush()
