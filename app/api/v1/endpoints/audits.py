"""
Audit engagement endpoints.
"""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, Query, Response, status

from app.api.deps import get_audit_service
from app.core.auth import Principal, get_principal, require_actor
from app.models.audit import AuditStatus, AuditType
from app.schemas.audit import (
    AuditCreateRequest,
    AuditListResponse,
    AuditResponse,
    AuditStatsResponse,
    AuditTransitionRequest,
)
from app.services.audit_service import AuditService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=AuditResponse, status_code=status.HTTP_201_CREATED)
async def create_audit(
    request: AuditCreateRequest,
    principal: Principal = Depends(require_actor),
    service: AuditService = Depends(get_audit_service),
):
    """Create a PLANNED audit; the audit number is generated."""
    audit = service.create(request, principal.actor_id)
    return AuditResponse.model_validate(audit)


@router.get("", response_model=AuditListResponse)
async def list_audits(
    status_filter: Optional[AuditStatus] = Query(None, alias="status"),
    audit_type: Optional[AuditType] = Query(None, alias="type"),
    entity_id: Optional[int] = Query(None),
    lead_auditor_id: Optional[int] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    _principal: Principal = Depends(get_principal),
    service: AuditService = Depends(get_audit_service),
):
    """List audits, newest first."""
    items, total = service.list(
        status=status_filter,
        audit_type=audit_type,
        entity_id=entity_id,
        lead_auditor_id=lead_auditor_id,
        limit=limit,
        offset=offset,
    )
    return AuditListResponse(
        items=[AuditResponse.model_validate(audit) for audit in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/{audit_id}", response_model=AuditResponse)
async def get_audit(
    audit_id: int,
    _principal: Principal = Depends(get_principal),
    service: AuditService = Depends(get_audit_service),
):
    return AuditResponse.model_validate(service.get(audit_id))


@router.get("/{audit_id}/stats", response_model=AuditStatsResponse)
async def get_audit_stats(
    audit_id: int,
    _principal: Principal = Depends(get_principal),
    service: AuditService = Depends(get_audit_service),
):
    """Observation counts by status and risk rating for one audit."""
    return AuditStatsResponse(**service.stats(audit_id))


@router.post("/{audit_id}/transition", response_model=AuditResponse)
async def transition_audit(
    audit_id: int,
    request: AuditTransitionRequest,
    principal: Principal = Depends(require_actor),
    service: AuditService = Depends(get_audit_service),
):
    """
    Change an audit's status.

    Returns 409 when the move is not allowed from the current status or
    when another request changed the audit first.
    """
    audit = service.transition(audit_id, request.status, principal.actor_id)
    return AuditResponse.model_validate(audit)


@router.delete("/{audit_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_audit(
    audit_id: int,
    principal: Principal = Depends(require_actor),
    service: AuditService = Depends(get_audit_service),
):
    """Soft-delete an audit. Fails with 409 while it still has observations."""
    service.soft_delete(audit_id, principal.actor_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
