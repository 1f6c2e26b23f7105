"""Append-only status history for observations."""
from sqlalchemy import Column, Integer, String, DateTime, Text, Enum, ForeignKey
from sqlalchemy.orm import relationship

from app.core.database import Base
from app.models.observation import ObservationStatus


class ActorSource:
    """Who performed a transition."""
    USER = "user"
    SYSTEM = "system"


class ObservationStatusHistory(Base):
    """One row per observation status transition. Never updated or deleted."""
    __tablename__ = "observation_status_history"

    id = Column(Integer, primary_key=True, index=True)
    observation_id = Column(Integer, ForeignKey("observations.id"), nullable=False, index=True)
    from_status = Column(Enum(ObservationStatus), nullable=True)  # null for creation
    to_status = Column(Enum(ObservationStatus), nullable=False)
    reason = Column(Text, nullable=True)
    changed_by_id = Column(Integer, nullable=True)  # null for the system actor
    changed_by_source = Column(String(20), nullable=False, default=ActorSource.USER)
    changed_at = Column(DateTime(timezone=True), nullable=False, index=True)

    observation = relationship("Observation", back_populates="status_history")
