"""Evidence database model."""
from sqlalchemy import Column, Integer, String, DateTime, Text, Enum, ForeignKey
from sqlalchemy.orm import relationship
import enum

from app.core.database import Base


class EvidenceStatus(str, enum.Enum):
    """Evidence review states."""
    PENDING_REVIEW = "PENDING_REVIEW"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class Evidence(Base):
    """A versioned, reviewable artifact substantiating remediation of an observation."""
    __tablename__ = "evidence"

    id = Column(Integer, primary_key=True, index=True)
    observation_id = Column(Integer, ForeignKey("observations.id"), nullable=False, index=True)
    status = Column(Enum(EvidenceStatus), nullable=False, default=EvidenceStatus.PENDING_REVIEW, index=True)
    version = Column(Integer, nullable=False, default=1)

    # Supersession chain: the new record points at the one it replaces
    supersedes_id = Column(Integer, ForeignKey("evidence.id"), nullable=True, index=True)
    superseded_at = Column(DateTime(timezone=True), nullable=True)

    # File metadata (blob storage is external)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    file_name = Column(String(255), nullable=False)
    file_path = Column(String(500), nullable=False)
    file_size = Column(Integer, nullable=False)
    mime_type = Column(String(100), nullable=True)
    checksum = Column(String(64), nullable=False, index=True)  # sha256 hex

    uploaded_by_id = Column(Integer, nullable=True)
    uploaded_at = Column(DateTime(timezone=True), nullable=False)
    reviewed_by_id = Column(Integer, nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    review_remarks = Column(Text, nullable=True)
    rejection_reason = Column(Text, nullable=True)

    deleted_at = Column(DateTime(timezone=True), nullable=True, index=True)

    # Relationships
    observation = relationship("Observation", back_populates="evidence")
    supersedes = relationship("Evidence", remote_side=[id], foreign_keys=[supersedes_id])

    @property
    def is_active(self) -> bool:
        """Neither soft-deleted nor replaced by a newer version."""
        return self.deleted_at is None and self.superseded_at is None
