"""Database models."""
from app.models.reference import User, Entity
from app.models.audit import Audit, AuditType, AuditStatus
from app.models.observation import Observation, ObservationStatus, RiskRating
from app.models.status_history import ObservationStatusHistory, ActorSource
from app.models.sla_rule import SLARule
from app.models.evidence import Evidence, EvidenceStatus
from app.models.activity_log import ActivityLog
from app.models.notification import Notification

__all__ = [
    "User",
    "Entity",
    "Audit",
    "AuditType",
    "AuditStatus",
    "Observation",
    "ObservationStatus",
    "RiskRating",
    "ObservationStatusHistory",
    "ActorSource",
    "SLARule",
    "Evidence",
    "EvidenceStatus",
    "ActivityLog",
    "Notification",
]
