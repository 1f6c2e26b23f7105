"""Observation (audit finding) database model."""
from sqlalchemy import Column, Integer, String, DateTime, Date, Text, Enum, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum

from app.core.database import Base


class ObservationStatus(str, enum.Enum):
    """Observation lifecycle states."""
    OPEN = "OPEN"
    IN_PROGRESS = "IN_PROGRESS"
    EVIDENCE_SUBMITTED = "EVIDENCE_SUBMITTED"
    UNDER_REVIEW = "UNDER_REVIEW"
    REJECTED = "REJECTED"
    CLOSED = "CLOSED"
    OVERDUE = "OVERDUE"


class RiskRating(str, enum.Enum):
    """Risk ratings, most severe first."""
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    INFORMATIONAL = "INFORMATIONAL"


class Observation(Base):
    """A single audit finding tracked through remediation to closure."""
    __tablename__ = "observations"
    __table_args__ = (
        UniqueConstraint("audit_id", "sequence_number", name="uq_observations_audit_sequence"),
    )

    id = Column(Integer, primary_key=True, index=True)
    audit_id = Column(Integer, ForeignKey("audits.id"), nullable=False, index=True)
    sequence_number = Column(Integer, nullable=False)
    global_sequence = Column(String(50), nullable=False, unique=True, index=True)  # OBS-2024-000001

    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=False)
    entity_id = Column(Integer, ForeignKey("entities.id"), nullable=True, index=True)
    root_cause = Column(Text, nullable=True)
    recommendation = Column(Text, nullable=True)
    corrective_action_plan = Column(Text, nullable=True)
    management_response = Column(Text, nullable=True)

    # Workflow state
    status = Column(Enum(ObservationStatus), nullable=False, default=ObservationStatus.OPEN, index=True)
    previous_status = Column(Enum(ObservationStatus), nullable=True)
    status_changed_at = Column(DateTime(timezone=True), nullable=True)
    status_changed_by_id = Column(Integer, nullable=True)
    closed_at = Column(DateTime(timezone=True), nullable=True)

    # SLA and deadline tracking
    risk_rating = Column(Enum(RiskRating), nullable=False, index=True)
    open_date = Column(Date, nullable=False)
    target_date = Column(Date, nullable=False, index=True)
    original_target_date = Column(Date, nullable=False)
    sla_calculated_date = Column(Date, nullable=False)
    sla_days = Column(Integer, nullable=False)
    extension_count = Column(Integer, nullable=False, default=0)
    extension_reason = Column(Text, nullable=True)

    owner_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    reviewer_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    created_by_id = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True, index=True)

    # Relationships
    audit = relationship("Audit", back_populates="observations")
    evidence = relationship("Evidence", back_populates="observation", order_by="Evidence.id")
    status_history = relationship(
        "ObservationStatusHistory",
        back_populates="observation",
        order_by="ObservationStatusHistory.id",
    )
