"""Schemas for evidence and the review gate."""
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator, model_validator

from app.models.evidence import EvidenceStatus


class EvidenceCreateRequest(BaseModel):
    """
    Metadata for an uploaded evidence file.

    The file itself lives in external storage; ``checksum`` is its sha256.
    """
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    file_name: str = Field(..., min_length=1, max_length=255)
    file_path: str = Field(..., min_length=1, max_length=500)
    file_size: int = Field(..., ge=0)
    mime_type: Optional[str] = Field(None, max_length=100)
    checksum: str = Field(..., min_length=64, max_length=64, description="sha256 hex digest")

    @field_validator("checksum")
    @classmethod
    def validate_checksum(cls, v: str) -> str:
        """Checksum must be a lowercase hex sha256 digest."""
        v = v.lower()
        if any(c not in "0123456789abcdef" for c in v):
            raise ValueError("checksum must be a hex sha256 digest")
        return v


class EvidenceReviewRequest(BaseModel):
    """Request schema for reviewing one evidence item."""
    decision: EvidenceStatus
    remarks: Optional[str] = None
    rejection_reason: Optional[str] = None

    @model_validator(mode="after")
    def check_decision(self):
        if self.decision == EvidenceStatus.PENDING_REVIEW:
            raise ValueError("decision must be APPROVED or REJECTED")
        return self


class ApproveAndCloseRequest(BaseModel):
    """Optional closing remarks."""
    remarks: Optional[str] = None


class EvidenceResponse(BaseModel):
    """Response schema for an evidence item."""
    id: int
    observation_id: int
    status: EvidenceStatus
    version: int
    supersedes_id: Optional[int] = None
    superseded_at: Optional[datetime] = None
    name: str
    description: Optional[str] = None
    file_name: str
    file_path: str
    file_size: int
    mime_type: Optional[str] = None
    checksum: str
    uploaded_by_id: Optional[int] = None
    uploaded_at: datetime
    reviewed_by_id: Optional[int] = None
    reviewed_at: Optional[datetime] = None
    review_remarks: Optional[str] = None
    rejection_reason: Optional[str] = None
    deleted_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class EvidenceListResponse(BaseModel):
    items: List[EvidenceResponse]
    total: int


class EvidenceStatsResponse(BaseModel):
    """Counts of active evidence for an observation."""
    observation_id: int
    total: int
    pending_review: int
    approved: int
    rejected: int
    superseded: int
    deleted: int
