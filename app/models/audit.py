"""Audit engagement database model."""
from sqlalchemy import Column, Integer, String, DateTime, Date, Text, Enum, ForeignKey
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum

from app.core.database import Base


class AuditType(str, enum.Enum):
    """Kinds of audit engagement."""
    INTERNAL = "INTERNAL"
    EXTERNAL = "EXTERNAL"
    ISO = "ISO"
    SOC = "SOC"
    FINANCIAL = "FINANCIAL"
    IT = "IT"
    COMPLIANCE = "COMPLIANCE"


class AuditStatus(str, enum.Enum):
    """Audit lifecycle states."""
    PLANNED = "PLANNED"
    IN_PROGRESS = "IN_PROGRESS"
    UNDER_REVIEW = "UNDER_REVIEW"
    CLOSED = "CLOSED"
    CANCELLED = "CANCELLED"


class Audit(Base):
    """Audit engagement grouping observations."""
    __tablename__ = "audits"

    id = Column(Integer, primary_key=True, index=True)
    audit_number = Column(String(50), nullable=False, unique=True, index=True)  # AUD-2024-0001
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    type = Column(Enum(AuditType), nullable=False, index=True)
    status = Column(Enum(AuditStatus), nullable=False, default=AuditStatus.PLANNED, index=True)

    entity_id = Column(Integer, ForeignKey("entities.id"), nullable=True, index=True)
    lead_auditor_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    created_by_id = Column(Integer, nullable=True)

    period_start = Column(Date, nullable=False)
    period_end = Column(Date, nullable=False)
    planned_start_date = Column(Date, nullable=True)
    planned_end_date = Column(Date, nullable=True)
    actual_start_date = Column(DateTime(timezone=True), nullable=True)
    actual_end_date = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    closed_at = Column(DateTime(timezone=True), nullable=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True, index=True)

    # Relationships
    observations = relationship("Observation", back_populates="audit")
