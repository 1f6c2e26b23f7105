"""Repositories: the only place that issues queries against workflow tables.

Read methods take an ``include_deleted`` flag and deletions are always
named ``soft_delete`` so logical deletion is visible at every call site.
"""
from app.repositories.audit_repository import AuditRepository
from app.repositories.observation_repository import ObservationRepository
from app.repositories.evidence_repository import EvidenceRepository
from app.repositories.sla_rule_repository import SLARuleRepository
from app.repositories.status_history_repository import StatusHistoryRepository

__all__ = [
    "AuditRepository",
    "ObservationRepository",
    "EvidenceRepository",
    "SLARuleRepository",
    "StatusHistoryRepository",
]
