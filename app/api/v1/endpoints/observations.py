"""
Observation endpoints.
"""
import logging
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, Response, status

from app.api.deps import get_observation_service
from app.core.auth import Principal, get_principal, require_actor
from app.models.observation import ObservationStatus, RiskRating
from app.schemas.observation import (
    AssignmentRequest,
    ObservationCreateRequest,
    ObservationListResponse,
    ObservationResponse,
    ObservationTransitionRequest,
    ObservationUpdateRequest,
    StatusHistoryResponse,
)
from app.services.observation_service import ObservationService

logger = logging.getLogger(__name__)

router = APIRouter()


# Static routes must be defined before /{observation_id}


@router.post("", response_model=ObservationResponse, status_code=status.HTTP_201_CREATED)
async def create_observation(
    request: ObservationCreateRequest,
    principal: Principal = Depends(require_actor),
    service: ObservationService = Depends(get_observation_service),
):
    """
    Create an observation.

    The SLA window is resolved from the risk rating and the audit's type;
    ``target_date`` defaults to the SLA-calculated date.
    """
    observation = service.create(request, principal.actor_id)
    return ObservationResponse.model_validate(observation)


@router.get("", response_model=ObservationListResponse)
async def list_observations(
    audit_id: Optional[int] = Query(None),
    status_filter: Optional[ObservationStatus] = Query(None, alias="status"),
    risk_rating: Optional[RiskRating] = Query(None),
    owner_id: Optional[int] = Query(None),
    reviewer_id: Optional[int] = Query(None),
    overdue_only: bool = Query(False, description="Only observations past their target date"),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    _principal: Principal = Depends(get_principal),
    service: ObservationService = Depends(get_observation_service),
):
    items, total = service.list(
        audit_id=audit_id,
        status=status_filter,
        risk_rating=risk_rating,
        owner_id=owner_id,
        reviewer_id=reviewer_id,
        overdue_only=overdue_only,
        limit=limit,
        offset=offset,
    )
    return ObservationListResponse(
        items=[ObservationResponse.model_validate(item) for item in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/due-soon", response_model=List[ObservationResponse])
async def list_due_soon(
    days: int = Query(7, ge=0, le=365),
    _principal: Principal = Depends(get_principal),
    service: ObservationService = Depends(get_observation_service),
):
    """Open observations due within the next ``days`` days."""
    return [ObservationResponse.model_validate(item) for item in service.due_soon(days)]


@router.get("/overdue", response_model=List[ObservationResponse])
async def list_overdue(
    _principal: Principal = Depends(get_principal),
    service: ObservationService = Depends(get_observation_service),
):
    return [ObservationResponse.model_validate(item) for item in service.overdue()]


@router.get("/{observation_id}", response_model=ObservationResponse)
async def get_observation(
    observation_id: int,
    _principal: Principal = Depends(get_principal),
    service: ObservationService = Depends(get_observation_service),
):
    return ObservationResponse.model_validate(service.get(observation_id))


@router.patch("/{observation_id}", response_model=ObservationResponse)
async def update_observation(
    observation_id: int,
    request: ObservationUpdateRequest,
    principal: Principal = Depends(require_actor),
    service: ObservationService = Depends(get_observation_service),
):
    """
    Edit an observation.

    Status cannot be set here; use the transition endpoint. Moving
    ``target_date`` later requires ``extension_reason``.
    """
    observation = service.update(observation_id, request, principal.actor_id)
    return ObservationResponse.model_validate(observation)


@router.post("/{observation_id}/transition", response_model=ObservationResponse)
async def transition_observation(
    observation_id: int,
    request: ObservationTransitionRequest,
    principal: Principal = Depends(require_actor),
    service: ObservationService = Depends(get_observation_service),
):
    observation = service.transition(observation_id, request.status, principal.actor_id, request.reason)
    return ObservationResponse.model_validate(observation)


@router.post("/{observation_id}/assign-owner", response_model=ObservationResponse)
async def assign_owner(
    observation_id: int,
    request: AssignmentRequest,
    principal: Principal = Depends(require_actor),
    service: ObservationService = Depends(get_observation_service),
):
    observation = service.assign_owner(observation_id, request.user_id, principal.actor_id)
    return ObservationResponse.model_validate(observation)


@router.post("/{observation_id}/assign-reviewer", response_model=ObservationResponse)
async def assign_reviewer(
    observation_id: int,
    request: AssignmentRequest,
    principal: Principal = Depends(require_actor),
    service: ObservationService = Depends(get_observation_service),
):
    observation = service.assign_reviewer(observation_id, request.user_id, principal.actor_id)
    return ObservationResponse.model_validate(observation)


@router.get("/{observation_id}/history", response_model=List[StatusHistoryResponse])
async def get_observation_history(
    observation_id: int,
    _principal: Principal = Depends(get_principal),
    service: ObservationService = Depends(get_observation_service),
):
    """Status history, oldest first."""
    return [StatusHistoryResponse.model_validate(entry) for entry in service.history(observation_id)]


@router.delete("/{observation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_observation(
    observation_id: int,
    principal: Principal = Depends(require_actor),
    service: ObservationService = Depends(get_observation_service),
):
    service.soft_delete(observation_id, principal.actor_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
