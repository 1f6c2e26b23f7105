"""Schemas for observations and their status history."""
from datetime import date, datetime
from typing import List, Optional
from pydantic import BaseModel, Field

from app.models.observation import ObservationStatus, RiskRating


class ObservationCreateRequest(BaseModel):
    """Request schema for creating an observation."""
    audit_id: int
    title: str = Field(..., min_length=1, max_length=500)
    description: str = Field(..., min_length=1)
    risk_rating: RiskRating
    entity_id: Optional[int] = None
    owner_id: Optional[int] = None
    reviewer_id: Optional[int] = None
    open_date: Optional[date] = Field(None, description="Defaults to today")
    target_date: Optional[date] = Field(None, description="Defaults to the SLA-calculated date")
    root_cause: Optional[str] = None
    recommendation: Optional[str] = None
    corrective_action_plan: Optional[str] = None
    management_response: Optional[str] = None

    model_config = {"extra": "forbid"}


class ObservationUpdateRequest(BaseModel):
    """
    Request schema for editing an observation.

    There is no ``status`` field: status only changes through transitions.
    Moving ``target_date`` later requires ``extension_reason``.
    """
    title: Optional[str] = Field(None, min_length=1, max_length=500)
    description: Optional[str] = Field(None, min_length=1)
    risk_rating: Optional[RiskRating] = None
    entity_id: Optional[int] = None
    owner_id: Optional[int] = None
    reviewer_id: Optional[int] = None
    target_date: Optional[date] = None
    extension_reason: Optional[str] = None
    root_cause: Optional[str] = None
    recommendation: Optional[str] = None
    corrective_action_plan: Optional[str] = None
    management_response: Optional[str] = None

    model_config = {"extra": "forbid"}


class ObservationTransitionRequest(BaseModel):
    """Request schema for a status transition."""
    status: ObservationStatus
    reason: Optional[str] = Field(None, max_length=2000)


class AssignmentRequest(BaseModel):
    """Request schema for assigning an owner or reviewer."""
    user_id: int


class ObservationResponse(BaseModel):
    """Response schema for an observation."""
    id: int
    audit_id: int
    sequence_number: int
    global_sequence: str
    title: str
    description: str
    entity_id: Optional[int] = None
    root_cause: Optional[str] = None
    recommendation: Optional[str] = None
    corrective_action_plan: Optional[str] = None
    management_response: Optional[str] = None
    status: ObservationStatus
    previous_status: Optional[ObservationStatus] = None
    status_changed_at: Optional[datetime] = None
    status_changed_by_id: Optional[int] = None
    closed_at: Optional[datetime] = None
    risk_rating: RiskRating
    open_date: date
    target_date: date
    original_target_date: date
    sla_calculated_date: date
    sla_days: int
    extension_count: int
    extension_reason: Optional[str] = None
    owner_id: Optional[int] = None
    reviewer_id: Optional[int] = None
    created_by_id: Optional[int] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ObservationListResponse(BaseModel):
    """Paginated list of observations."""
    items: List[ObservationResponse]
    total: int
    limit: int
    offset: int


class StatusHistoryResponse(BaseModel):
    """One status history entry."""
    id: int
    observation_id: int
    from_status: Optional[ObservationStatus] = None
    to_status: ObservationStatus
    reason: Optional[str] = None
    changed_by_id: Optional[int] = None
    changed_by_source: str
    changed_at: datetime

    model_config = {"from_attributes": True}
