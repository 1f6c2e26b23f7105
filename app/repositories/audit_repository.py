"""Persistence for audits."""
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import exists, func, update
from sqlalchemy.orm import Session

from app.models.audit import Audit, AuditStatus, AuditType
from app.models.observation import Observation


class AuditRepository:
    """Queries and conditional writes for the audits table."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, audit_id: int, include_deleted: bool = False) -> Optional[Audit]:
        query = self.db.query(Audit).filter(Audit.id == audit_id)
        if not include_deleted:
            query = query.filter(Audit.deleted_at.is_(None))
        return query.first()

    def get_by_number(self, audit_number: str, include_deleted: bool = False) -> Optional[Audit]:
        query = self.db.query(Audit).filter(Audit.audit_number == audit_number)
        if not include_deleted:
            query = query.filter(Audit.deleted_at.is_(None))
        return query.first()

    def list(
        self,
        status: Optional[AuditStatus] = None,
        audit_type: Optional[AuditType] = None,
        entity_id: Optional[int] = None,
        lead_auditor_id: Optional[int] = None,
        limit: int = 50,
        offset: int = 0,
        include_deleted: bool = False,
    ) -> Tuple[List[Audit], int]:
        query = self.db.query(Audit)
        if not include_deleted:
            query = query.filter(Audit.deleted_at.is_(None))
        if status:
            query = query.filter(Audit.status == status)
        if audit_type:
            query = query.filter(Audit.type == audit_type)
        if entity_id is not None:
            query = query.filter(Audit.entity_id == entity_id)
        if lead_auditor_id is not None:
            query = query.filter(Audit.lead_auditor_id == lead_auditor_id)

        total = query.count()
        items = query.order_by(Audit.created_at.desc(), Audit.id.desc()).offset(offset).limit(limit).all()
        return items, total

    def count_numbers_with_prefix(self, prefix: str) -> int:
        """Count audit numbers starting with ``prefix``, deleted rows included."""
        return self.db.query(func.count(Audit.id)).filter(Audit.audit_number.like(f"{prefix}%")).scalar() or 0

    def count_live_observations(self, audit_id: int) -> int:
        return (
            self.db.query(func.count(Observation.id))
            .filter(Observation.audit_id == audit_id, Observation.deleted_at.is_(None))
            .scalar()
            or 0
        )

    def add(self, audit: Audit) -> Audit:
        self.db.add(audit)
        self.db.flush()
        return audit

    def conditional_status_update(self, audit_id: int, expected_status: AuditStatus, values: dict) -> bool:
        """Apply ``values`` only if the row still has ``expected_status``. Returns True on match."""
        result = self.db.execute(
            update(Audit)
            .where(
                Audit.id == audit_id,
                Audit.status == expected_status,
                Audit.deleted_at.is_(None),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def conditional_soft_delete(self, audit_id: int, when: datetime) -> bool:
        """Stamp ``deleted_at`` only while the audit has no live observations. Returns True on match."""
        live_observations = exists().where(
            Observation.audit_id == audit_id,
            Observation.deleted_at.is_(None),
        )
        result = self.db.execute(
            update(Audit)
            .where(
                Audit.id == audit_id,
                Audit.deleted_at.is_(None),
                ~live_observations,
            )
            .values(deleted_at=when)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
