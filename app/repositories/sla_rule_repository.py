"""Persistence for SLA rules."""
from typing import List, Optional

from sqlalchemy.orm import Session

from app.models.sla_rule import SLARule


class SLARuleRepository:
    """Queries for the sla_rules table. Rules are deactivated, never deleted."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, rule_id: int) -> Optional[SLARule]:
        return self.db.query(SLARule).filter(SLARule.id == rule_id).first()

    def list(self, active_only: bool = False) -> List[SLARule]:
        query = self.db.query(SLARule)
        if active_only:
            query = query.filter(SLARule.is_active.is_(True))
        return query.order_by(SLARule.priority.desc(), SLARule.id.asc()).all()

    def count(self) -> int:
        return self.db.query(SLARule).count()

    def add(self, rule: SLARule) -> SLARule:
        self.db.add(rule)
        self.db.flush()
        return rule
