"""SLA rule model: remediation windows per risk rating and audit type."""
from sqlalchemy import Column, Integer, String, DateTime, Boolean, Enum
from sqlalchemy.sql import func

from app.core.database import Base
from app.models.audit import AuditType
from app.models.observation import RiskRating


class SLARule(Base):
    """SLA rule. A null risk_rating or audit_type matches any value."""
    __tablename__ = "sla_rules"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)

    # Matching criteria (null = wildcard)
    risk_rating = Column(Enum(RiskRating), nullable=True, index=True)
    audit_type = Column(Enum(AuditType), nullable=True, index=True)

    base_days = Column(Integer, nullable=False)
    warning_days = Column(Integer, nullable=False, default=7)
    critical_days = Column(Integer, nullable=False, default=3)
    escalation_days = Column(Integer, nullable=False, default=1)

    priority = Column(Integer, nullable=False, default=0)  # higher wins
    is_active = Column(Boolean, default=True, nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
