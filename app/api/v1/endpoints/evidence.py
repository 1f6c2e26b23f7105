"""
Evidence and review gate endpoints.
"""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, Query, Response, status

from app.api.deps import get_evidence_service
from app.core.auth import Principal, get_principal, require_actor
from app.schemas.evidence import (
    ApproveAndCloseRequest,
    EvidenceCreateRequest,
    EvidenceListResponse,
    EvidenceResponse,
    EvidenceReviewRequest,
    EvidenceStatsResponse,
)
from app.schemas.observation import ObservationResponse
from app.services.evidence_service import EvidenceService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/observations/{observation_id}/evidence",
    response_model=EvidenceResponse,
    status_code=status.HTTP_201_CREATED,
)
async def upload_evidence(
    observation_id: int,
    request: EvidenceCreateRequest,
    principal: Principal = Depends(require_actor),
    service: EvidenceService = Depends(get_evidence_service),
):
    """
    Register uploaded evidence metadata.

    The file itself is stored externally; this records its location and
    sha256 checksum.
    """
    item = service.upload(observation_id, request, principal.actor_id)
    return EvidenceResponse.model_validate(item)


@router.get("/observations/{observation_id}/evidence", response_model=EvidenceListResponse)
async def list_evidence(
    observation_id: int,
    include_superseded: bool = Query(False),
    include_deleted: bool = Query(False),
    _principal: Principal = Depends(get_principal),
    service: EvidenceService = Depends(get_evidence_service),
):
    items = service.list(observation_id, include_superseded=include_superseded, include_deleted=include_deleted)
    return EvidenceListResponse(items=[EvidenceResponse.model_validate(item) for item in items], total=len(items))


@router.get("/observations/{observation_id}/evidence/stats", response_model=EvidenceStatsResponse)
async def get_evidence_stats(
    observation_id: int,
    _principal: Principal = Depends(get_principal),
    service: EvidenceService = Depends(get_evidence_service),
):
    return EvidenceStatsResponse(**service.stats(observation_id))


@router.post("/observations/{observation_id}/submit", response_model=ObservationResponse)
async def submit_for_review(
    observation_id: int,
    principal: Principal = Depends(require_actor),
    service: EvidenceService = Depends(get_evidence_service),
):
    """Submit evidence for review (IN_PROGRESS/REJECTED -> EVIDENCE_SUBMITTED)."""
    observation = service.submit_for_review(observation_id, principal.actor_id)
    return ObservationResponse.model_validate(observation)


@router.post("/observations/{observation_id}/begin-review", response_model=ObservationResponse)
async def begin_review(
    observation_id: int,
    principal: Principal = Depends(require_actor),
    service: EvidenceService = Depends(get_evidence_service),
):
    observation = service.begin_review(observation_id, principal.actor_id)
    return ObservationResponse.model_validate(observation)


@router.post("/observations/{observation_id}/approve-and-close", response_model=ObservationResponse)
async def approve_and_close(
    observation_id: int,
    request: Optional[ApproveAndCloseRequest] = None,
    principal: Principal = Depends(require_actor),
    service: EvidenceService = Depends(get_evidence_service),
):
    """Close the observation once every active evidence item is approved."""
    observation = service.approve_and_close(observation_id, principal.actor_id, request.remarks if request else None)
    return ObservationResponse.model_validate(observation)


@router.get("/evidence/{evidence_id}", response_model=EvidenceResponse)
async def get_evidence(
    evidence_id: int,
    _principal: Principal = Depends(get_principal),
    service: EvidenceService = Depends(get_evidence_service),
):
    return EvidenceResponse.model_validate(service.get(evidence_id))


@router.post("/evidence/{evidence_id}/review", response_model=EvidenceResponse)
async def review_evidence(
    evidence_id: int,
    request: EvidenceReviewRequest,
    principal: Principal = Depends(require_actor),
    service: EvidenceService = Depends(get_evidence_service),
):
    """Approve or reject one evidence item. Rejection requires ``rejection_reason``."""
    item = service.review(
        evidence_id,
        request.decision,
        principal.actor_id,
        remarks=request.remarks,
        rejection_reason=request.rejection_reason,
    )
    return EvidenceResponse.model_validate(item)


@router.post("/evidence/{evidence_id}/supersede", response_model=EvidenceResponse, status_code=status.HTTP_201_CREATED)
async def supersede_evidence(
    evidence_id: int,
    request: EvidenceCreateRequest,
    principal: Principal = Depends(require_actor),
    service: EvidenceService = Depends(get_evidence_service),
):
    """Upload a new version replacing this evidence item."""
    item = service.supersede(evidence_id, request, principal.actor_id)
    return EvidenceResponse.model_validate(item)


@router.delete("/evidence/{evidence_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_evidence(
    evidence_id: int,
    principal: Principal = Depends(require_actor),
    service: EvidenceService = Depends(get_evidence_service),
):
    service.soft_delete(evidence_id, principal.actor_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
