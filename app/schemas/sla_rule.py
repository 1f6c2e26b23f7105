"""Schemas for SLA rule management."""
from datetime import date, datetime
from typing import List, Optional
from pydantic import BaseModel, Field

from app.models.audit import AuditType
from app.models.observation import RiskRating


class SLARuleCreateRequest(BaseModel):
    """Request schema for creating an SLA rule. Null criteria match anything."""
    name: str = Field(..., min_length=1, max_length=255)
    risk_rating: Optional[RiskRating] = None
    audit_type: Optional[AuditType] = None
    base_days: int = Field(..., ge=1)
    warning_days: int = Field(7, ge=0)
    critical_days: int = Field(3, ge=0)
    escalation_days: int = Field(1, ge=0)
    priority: int = Field(0, description="Higher priority wins")
    is_active: bool = True


class SLARuleUpdateRequest(BaseModel):
    """Request schema for updating an SLA rule."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    risk_rating: Optional[RiskRating] = None
    audit_type: Optional[AuditType] = None
    base_days: Optional[int] = Field(None, ge=1)
    warning_days: Optional[int] = Field(None, ge=0)
    critical_days: Optional[int] = Field(None, ge=0)
    escalation_days: Optional[int] = Field(None, ge=0)
    priority: Optional[int] = None
    is_active: Optional[bool] = None


class SLARuleResponse(BaseModel):
    """Response schema for an SLA rule."""
    id: int
    name: str
    risk_rating: Optional[RiskRating] = None
    audit_type: Optional[AuditType] = None
    base_days: int
    warning_days: int
    critical_days: int
    escalation_days: int
    priority: int
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class SLARuleListResponse(BaseModel):
    items: List[SLARuleResponse]
    total: int


class SLAResolveResponse(BaseModel):
    """Result of resolving the SLA for a risk rating / audit type pair."""
    risk_rating: RiskRating
    audit_type: Optional[AuditType] = None
    sla_days: int
    rule_id: Optional[int] = None
    rule_name: Optional[str] = None
    open_date: Optional[date] = None
    target_date: Optional[date] = None
