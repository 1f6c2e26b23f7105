"""
SLA rule endpoints.
"""
import logging
from datetime import date
from typing import Optional
from fastapi import APIRouter, Depends, Query, status

from app.api.deps import get_sla_service
from app.core.auth import Principal, get_principal, require_actor
from app.models.audit import AuditType
from app.models.observation import RiskRating
from app.schemas.sla_rule import (
    SLAResolveResponse,
    SLARuleCreateRequest,
    SLARuleListResponse,
    SLARuleResponse,
    SLARuleUpdateRequest,
)
from app.services.sla_service import SLAService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=SLARuleListResponse)
async def list_sla_rules(
    active_only: bool = Query(False),
    _principal: Principal = Depends(get_principal),
    service: SLAService = Depends(get_sla_service),
):
    """List SLA rules, highest priority first."""
    rules = service.list_rules(active_only=active_only)
    return SLARuleListResponse(items=[SLARuleResponse.model_validate(rule) for rule in rules], total=len(rules))


@router.get("/resolve", response_model=SLAResolveResponse)
async def resolve_sla(
    risk_rating: RiskRating = Query(...),
    audit_type: Optional[AuditType] = Query(None),
    open_date: Optional[date] = Query(None, description="If given, the resulting target date is returned too"),
    _principal: Principal = Depends(get_principal),
    service: SLAService = Depends(get_sla_service),
):
    """Show which rule governs a risk rating / audit type pair and how many days it allows."""
    days, rule = service.resolve(risk_rating, audit_type)
    return SLAResolveResponse(
        risk_rating=risk_rating,
        audit_type=audit_type,
        sla_days=days,
        rule_id=rule.id if rule else None,
        rule_name=rule.name if rule else None,
        open_date=open_date,
        target_date=service.calculate_target_date(open_date, risk_rating, audit_type) if open_date else None,
    )


@router.post("", response_model=SLARuleResponse, status_code=status.HTTP_201_CREATED)
async def create_sla_rule(
    request: SLARuleCreateRequest,
    _principal: Principal = Depends(require_actor),
    service: SLAService = Depends(get_sla_service),
):
    return SLARuleResponse.model_validate(service.create_rule(request))


@router.patch("/{rule_id}", response_model=SLARuleResponse)
async def update_sla_rule(
    rule_id: int,
    request: SLARuleUpdateRequest,
    _principal: Principal = Depends(require_actor),
    service: SLAService = Depends(get_sla_service),
):
    """Update an SLA rule. Existing observations keep the deadline they were created with."""
    return SLARuleResponse.model_validate(service.update_rule(rule_id, request))


@router.delete("/{rule_id}", response_model=SLARuleResponse)
async def deactivate_sla_rule(
    rule_id: int,
    _principal: Principal = Depends(require_actor),
    service: SLAService = Depends(get_sla_service),
):
    """Deactivate an SLA rule. Rules are never physically deleted."""
    return SLARuleResponse.model_validate(service.deactivate_rule(rule_id))
