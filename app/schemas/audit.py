"""Schemas for audit engagements."""
from datetime import date, datetime
from typing import Dict, List, Optional
from pydantic import BaseModel, Field, model_validator

from app.models.audit import AuditStatus, AuditType


class AuditCreateRequest(BaseModel):
    """Request schema for creating an audit."""
    name: str = Field(..., min_length=1, max_length=255, description="Audit name")
    description: Optional[str] = None
    type: AuditType = Field(..., description="Audit type")
    entity_id: Optional[int] = Field(None, description="Audited entity")
    lead_auditor_id: Optional[int] = Field(None, description="Lead auditor user id")
    period_start: date
    period_end: date
    planned_start_date: Optional[date] = None
    planned_end_date: Optional[date] = None

    model_config = {"extra": "forbid"}

    @model_validator(mode="after")
    def check_dates(self):
        """Period and planned windows must not end before they start."""
        if self.period_end < self.period_start:
            raise ValueError("period_end must be on or after period_start")
        if self.planned_start_date and self.planned_end_date and self.planned_end_date < self.planned_start_date:
            raise ValueError("planned_end_date must be on or after planned_start_date")
        return self


class AuditTransitionRequest(BaseModel):
    """Request schema for changing an audit's status."""
    status: AuditStatus


class AuditResponse(BaseModel):
    """Response schema for an audit."""
    id: int
    audit_number: str
    name: str
    description: Optional[str] = None
    type: AuditType
    status: AuditStatus
    entity_id: Optional[int] = None
    lead_auditor_id: Optional[int] = None
    created_by_id: Optional[int] = None
    period_start: date
    period_end: date
    planned_start_date: Optional[date] = None
    planned_end_date: Optional[date] = None
    actual_start_date: Optional[datetime] = None
    actual_end_date: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    closed_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class AuditListResponse(BaseModel):
    """Paginated list of audits."""
    items: List[AuditResponse]
    total: int
    limit: int
    offset: int


class AuditStatsResponse(BaseModel):
    """Observation counts for one audit."""
    audit_id: int
    total: int
    by_status: Dict[str, int]
    by_risk_rating: Dict[str, int]
    overdue: int
    due_this_week: int
