"""
Activity log model for audit trail.
"""
from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func

from app.core.database import Base


class ActivityLog(Base):
    """Activity log model for tracking workflow actions across audits, observations and evidence."""
    __tablename__ = "activity_logs"

    id = Column(Integer, primary_key=True, index=True)
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    # Actor information
    actor_id = Column(Integer, nullable=True, index=True)  # null for the system actor
    actor_source = Column(String(20), nullable=False)  # "user" or "system"

    # Action details
    action = Column(String(100), nullable=False, index=True)  # e.g., "status_change", "evidence_upload"
    resource_type = Column(String(50), nullable=True, index=True)  # e.g., "audit", "observation", "evidence"
    resource_id = Column(Integer, nullable=True, index=True)

    details = Column(JSON, nullable=True)  # Flexible JSON for action-specific data
