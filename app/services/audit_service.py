"""
Audit state machine and audit engagement management.
"""
import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.clock import Clock
from app.core.errors import Conflict, NotFound, ValidationFailed
from app.models.audit import Audit, AuditStatus, AuditType
from app.models.observation import ObservationStatus, RiskRating
from app.repositories.audit_repository import AuditRepository
from app.repositories.observation_repository import ObservationRepository
from app.schemas.audit import AuditCreateRequest
from app.services.activity_service import ActivityAction, ResourceType
from app.services.audit_trail import AuditTrailRecorder
from app.services.directory import Directory
from app.services.events import AuditStatusChanged, EventBus
from app.services.transitions import ensure_audit_transition

logger = logging.getLogger(__name__)


class AuditService:
    """Service for creating audits and moving them through their lifecycle."""

    def __init__(
        self,
        db: Session,
        clock: Clock,
        events: EventBus,
        directory: Directory,
        trail: Optional[AuditTrailRecorder] = None,
    ):
        self.db = db
        self.clock = clock
        self.events = events
        self.directory = directory
        self.trail = trail or AuditTrailRecorder(db, clock)
        self.audits = AuditRepository(db)
        self.observations = ObservationRepository(db)

    def get(self, audit_id: int, include_deleted: bool = False) -> Audit:
        audit = self.audits.get(audit_id, include_deleted=include_deleted)
        if audit is None:
            raise NotFound("Audit", audit_id)
        return audit

    def list(
        self,
        status: Optional[AuditStatus] = None,
        audit_type: Optional[AuditType] = None,
        entity_id: Optional[int] = None,
        lead_auditor_id: Optional[int] = None,
        limit: int = 50,
        offset: int = 0,
        include_deleted: bool = False,
    ) -> Tuple[List[Audit], int]:
        return self.audits.list(
            status=status,
            audit_type=audit_type,
            entity_id=entity_id,
            lead_auditor_id=lead_auditor_id,
            limit=limit,
            offset=offset,
            include_deleted=include_deleted,
        )

    def create(self, data: AuditCreateRequest, actor_id: Optional[int]) -> Audit:
        """
        Create a PLANNED audit numbered ``AUD-<year>-<NNNN>``.

        Raises:
            NotFound: entity or lead auditor does not exist
            ValidationFailed: period ends before it starts
            Conflict: the generated number collided with a concurrent create
        """
        if data.period_end < data.period_start:
            raise ValidationFailed(
                "period_end must be on or after period_start",
                {"period_start": data.period_start.isoformat(), "period_end": data.period_end.isoformat()},
            )
        if data.entity_id is not None and not self.directory.entity_exists(data.entity_id):
            raise NotFound("Entity", data.entity_id)
        if data.lead_auditor_id is not None and not self.directory.user_exists(data.lead_auditor_id):
            raise NotFound("User", data.lead_auditor_id)

        prefix = f"AUD-{self.clock.now().year}-"
        audit = Audit(
            audit_number=f"{prefix}{self.audits.count_numbers_with_prefix(prefix) + 1:04d}",
            name=data.name,
            description=data.description,
            type=data.type,
            status=AuditStatus.PLANNED,
            entity_id=data.entity_id,
            lead_auditor_id=data.lead_auditor_id,
            created_by_id=actor_id,
            period_start=data.period_start,
            period_end=data.period_end,
            planned_start_date=data.planned_start_date,
            planned_end_date=data.planned_end_date,
        )
        try:
            self.audits.add(audit)
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            logger.warning(f"Audit number collision for prefix {prefix}: {e}")
            raise Conflict("Audit number collided with a concurrent create; retry the request")
        self.db.refresh(audit)

        logger.info(f"Created audit {audit.audit_number} (id={audit.id}, type={audit.type.value})")
        self.trail.record_activity(
            actor_id, ActivityAction.CREATE, ResourceType.AUDIT, audit.id, {"audit_number": audit.audit_number}
        )
        return audit

    def transition(self, audit_id: int, target_status: AuditStatus, actor_id: Optional[int] = None) -> Audit:
        """
        Move an audit to ``target_status``.

        The first entry into IN_PROGRESS stamps ``actual_start_date``; later
        re-entries keep it. Entering CLOSED stamps ``closed_at``.

        Raises:
            NotFound: audit missing or soft-deleted
            InvalidTransition: the move is not in the transition table
            Conflict: the row changed status since it was read
        """
        audit = self.get(audit_id)
        prior = audit.status
        ensure_audit_transition(prior, target_status, audit_id)

        now = self.clock.now()
        values: Dict[str, Any] = {"status": target_status}
        if target_status == AuditStatus.IN_PROGRESS and audit.actual_start_date is None:
            values["actual_start_date"] = now
        if target_status == AuditStatus.CLOSED:
            values["closed_at"] = now

        if not self.audits.conditional_status_update(audit_id, prior, values):
            self.db.rollback()
            logger.warning(f"Conflict moving audit {audit_id} {prior.value} -> {target_status.value}")
            raise Conflict(
                f"Audit {audit_id} was modified concurrently; expected status {prior.value}",
                {"id": audit_id, "expected_status": prior.value, "to_status": target_status.value},
            )
        self.db.commit()
        logger.info(f"Audit {audit_id}: {prior.value} -> {target_status.value}")

        self.trail.record_activity(
            actor_id,
            ActivityAction.STATUS_CHANGE,
            ResourceType.AUDIT,
            audit_id,
            {"from_status": prior.value, "to_status": target_status.value},
        )
        audit = self.get(audit_id)
        self.events.publish(AuditStatusChanged(
            audit_id=audit.id,
            audit_number=audit.audit_number,
            name=audit.name,
            from_status=prior,
            to_status=target_status,
            lead_auditor_id=audit.lead_auditor_id,
            actor_id=actor_id,
        ))
        return audit

    def soft_delete(self, audit_id: int, actor_id: Optional[int] = None) -> None:
        """
        Soft-delete an audit.

        Raises:
            NotFound: audit missing or already deleted
            Conflict: the audit still has observations that are not deleted
        """
        audit = self.get(audit_id)
        remaining = self.audits.count_live_observations(audit_id)
        if remaining:
            raise Conflict(
                f"Audit {audit.audit_number} still has {remaining} observation(s); delete them first",
                {"id": audit_id, "observations": remaining},
            )
        if not self.audits.conditional_soft_delete(audit_id, self.clock.now()):
            self.db.rollback()
            raise Conflict(
                f"Audit {audit.audit_number} changed while being deleted",
                {"id": audit_id},
            )
        self.db.commit()
        logger.info(f"Soft-deleted audit {audit_id}")
        self.trail.record_activity(actor_id, ActivityAction.SOFT_DELETE, ResourceType.AUDIT, audit_id)

    def stats(self, audit_id: int) -> Dict[str, Any]:
        """Observation counts by status and risk rating, plus overdue and due-this-week totals."""
        self.get(audit_id)
        observations = self.observations.for_audit(audit_id)
        today = self.clock.today()
        week_end = today + timedelta(days=7)

        by_status = {status.value: 0 for status in ObservationStatus}
        by_risk = {rating.value: 0 for rating in RiskRating}
        overdue = 0
        due_this_week = 0
        for observation in observations:
            by_status[observation.status.value] += 1
            by_risk[observation.risk_rating.value] += 1
            if observation.status == ObservationStatus.CLOSED:
                continue
            if observation.target_date < today:
                overdue += 1
            elif observation.target_date <= week_end:
                due_this_week += 1

        return {
            "audit_id": audit_id,
            "total": len(observations),
            "by_status": by_status,
            "by_risk_rating": by_risk,
            "overdue": overdue,
            "due_this_week": due_this_week,
        }
