"""
Observation state machine.

All status changes go through ``transition``: the move is validated against
the static table, applied with one conditional UPDATE keyed on the prior
status, committed, then recorded in the audit trail and published as an
event. Deadline extensions are tracked by ``update``.
"""
import logging
from datetime import timedelta
from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.clock import Clock
from app.core.errors import Conflict, Forbidden, NotFound, ValidationFailed
from app.models.audit import AuditStatus
from app.models.observation import Observation, ObservationStatus, RiskRating
from app.models.status_history import ObservationStatusHistory
from app.repositories.audit_repository import AuditRepository
from app.repositories.observation_repository import ObservationRepository
from app.schemas.observation import ObservationCreateRequest, ObservationUpdateRequest
from app.services.activity_service import ActivityAction, ResourceType
from app.services.audit_trail import AuditTrailRecorder
from app.services.directory import Directory
from app.services.events import (
    EventBus,
    ObservationAssigned,
    ObservationCreated,
    ObservationStatusChanged,
    ObservationUpdated,
    observation_snapshot,
)
from app.services.sla_service import SLAService
from app.services.transitions import OWNER_LOCKED_STATUSES, ensure_observation_transition

logger = logging.getLogger(__name__)


class ObservationService:
    """Create, edit and move observations through their lifecycle."""

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
        self.observations = ObservationRepository(db)
        self.audits = AuditRepository(db)
        self.sla = SLAService(db)

    # Reads

    def get(self, observation_id: int, include_deleted: bool = False) -> Observation:
        observation = self.observations.get(observation_id, include_deleted=include_deleted)
        if observation is None:
            raise NotFound("Observation", observation_id)
        return observation

    def list(
        self,
        audit_id: Optional[int] = None,
        status: Optional[ObservationStatus] = None,
        risk_rating: Optional[RiskRating] = None,
        owner_id: Optional[int] = None,
        reviewer_id: Optional[int] = None,
        overdue_only: bool = False,
        limit: int = 50,
        offset: int = 0,
        include_deleted: bool = False,
    ) -> Tuple[List[Observation], int]:
        return self.observations.list(
            audit_id=audit_id,
            statuses=[status] if status else None,
            risk_rating=risk_rating,
            owner_id=owner_id,
            reviewer_id=reviewer_id,
            overdue_before=self.clock.today() if overdue_only else None,
            limit=limit,
            offset=offset,
            include_deleted=include_deleted,
        )

    def history(self, observation_id: int) -> List[ObservationStatusHistory]:
        self.get(observation_id, include_deleted=True)
        return self.trail.history_for(observation_id)

    def due_soon(self, days: int = 7) -> List[Observation]:
        """Open observations whose target date falls within the next ``days`` days."""
        today = self.clock.today()
        return self.observations.due_between(today, today + timedelta(days=days))

    def overdue(self) -> List[Observation]:
        """Open observations past their target date, whether or not the sweep has run."""
        return self.observations.past_due(self.clock.today())

    # Mutations

    def create(self, data: ObservationCreateRequest, actor_id: Optional[int]) -> Observation:
        """
        Create an OPEN observation with its SLA-derived deadline.

        Raises:
            NotFound: audit, entity, owner or reviewer does not exist
            ValidationFailed: target date before open date, or audit no longer accepts findings
        """
        audit = self.audits.get(data.audit_id)
        if audit is None:
            raise NotFound("Audit", data.audit_id)
        if audit.status in (AuditStatus.CLOSED, AuditStatus.CANCELLED):
            raise ValidationFailed(
                f"Audit {audit.audit_number} is {audit.status.value} and does not accept new observations",
                {"audit_id": audit.id, "status": audit.status.value},
            )
        self._check_references(data.entity_id, data.owner_id, data.reviewer_id)

        open_date = data.open_date or self.clock.today()
        sla_days, rule = self.sla.resolve(data.risk_rating, audit.type)
        sla_calculated_date = open_date + timedelta(days=sla_days)
        target_date = data.target_date or sla_calculated_date
        if target_date < open_date:
            raise ValidationFailed(
                "target_date must be on or after open_date",
                {"open_date": open_date.isoformat(), "target_date": target_date.isoformat()},
            )

        prefix = f"OBS-{self.clock.now().year}-"
        observation = Observation(
            audit_id=audit.id,
            sequence_number=self.observations.next_sequence_number(audit.id),
            global_sequence=f"{prefix}{self.observations.count_global_sequences_with_prefix(prefix) + 1:06d}",
            title=data.title,
            description=data.description,
            entity_id=data.entity_id,
            root_cause=data.root_cause,
            recommendation=data.recommendation,
            corrective_action_plan=data.corrective_action_plan,
            management_response=data.management_response,
            status=ObservationStatus.OPEN,
            status_changed_at=self.clock.now(),
            status_changed_by_id=actor_id,
            risk_rating=data.risk_rating,
            open_date=open_date,
            target_date=target_date,
            original_target_date=target_date,
            sla_calculated_date=sla_calculated_date,
            sla_days=sla_days,
            extension_count=0,
            owner_id=data.owner_id,
            reviewer_id=data.reviewer_id,
            created_by_id=actor_id,
        )
        try:
            self.observations.add(observation)
            # the audit may have been deleted since it was read
            if self.audits.get(audit.id) is None:
                self.db.rollback()
                raise NotFound("Audit", audit.id)
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            logger.warning(f"Observation numbering collision in audit {audit.id}: {e}")
            raise Conflict(
                "Observation numbering collided with a concurrent create; retry the request",
                {"audit_id": audit.id},
            )
        self.db.refresh(observation)

        logger.info(
            f"Created observation {observation.global_sequence} (id={observation.id}) in audit "
            f"{audit.audit_number}: {data.risk_rating.value}, {sla_days} SLA days "
            f"(rule={rule.id if rule else 'fallback'}), target {target_date}"
        )

        self.trail.record_observation_transition(
            observation.id, None, ObservationStatus.OPEN, actor_id, reason="Observation created"
        )
        self.events.publish(ObservationCreated(observation_snapshot(observation), actor_id))
        return observation

    def transition(
        self,
        observation_id: int,
        target_status: ObservationStatus,
        actor_id: Optional[int],
        reason: Optional[str] = None,
        source: Optional[str] = None,
    ) -> Observation:
        """
        Move an observation to ``target_status``.

        Raises:
            NotFound: observation missing or soft-deleted
            InvalidTransition: the move is not in the transition table
            Conflict: the row changed status since it was read
        """
        observation = self.get(observation_id)
        prior = observation.status
        ensure_observation_transition(prior, target_status, observation_id)

        now = self.clock.now()
        values = {
            "status": target_status,
            "previous_status": prior,
            "status_changed_at": now,
            "status_changed_by_id": actor_id,
        }
        if target_status == ObservationStatus.CLOSED:
            values["closed_at"] = now

        if not self.observations.conditional_update(observation_id, prior, values):
            self.db.rollback()
            logger.warning(
                f"Conflict moving observation {observation_id} {prior.value} -> {target_status.value}: "
                "row changed since it was read"
            )
            raise Conflict(
                f"Observation {observation_id} was modified concurrently; expected status {prior.value}",
                {"id": observation_id, "expected_status": prior.value, "to_status": target_status.value},
            )
        self.db.commit()

        logger.info(
            f"Observation {observation_id}: {prior.value} -> {target_status.value} "
            f"by {actor_id if actor_id is not None else 'system'}"
        )

        self.trail.record_observation_transition(observation_id, prior, target_status, actor_id, reason, source)
        observation = self.get(observation_id)
        self.events.publish(ObservationStatusChanged(
            observation_snapshot(observation), prior, target_status, actor_id, reason
        ))
        return observation

    def update(self, observation_id: int, patch: ObservationUpdateRequest, actor_id: Optional[int]) -> Observation:
        """
        Edit an observation's details.

        Moving the target date later is an extension: it needs a reason and
        bumps ``extension_count`` by one. ``original_target_date`` never changes.

        Raises:
            NotFound: observation or a referenced user/entity does not exist
            Forbidden: observation is CLOSED, or the owner edits it while under review
            ValidationFailed: extension without a reason, or target date before open date
            Conflict: the row changed since it was read
        """
        observation = self.get(observation_id)
        self._check_editable(observation, actor_id)

        changes = patch.model_dump(exclude_unset=True)
        extension_reason = changes.pop("extension_reason", None)
        if changes.get("target_date", observation.target_date) is None:
            changes.pop("target_date")
        for required in ("title", "description", "risk_rating"):
            if required in changes and changes[required] is None:
                raise ValidationFailed(f"{required} cannot be cleared", {"field": required})

        self._check_references(changes.get("entity_id"), changes.get("owner_id"), changes.get("reviewer_id"))

        extended = False
        previous_target = observation.target_date
        new_target = changes.get("target_date")
        if new_target is not None and new_target != observation.target_date:
            if new_target < observation.open_date:
                raise ValidationFailed(
                    "target_date must be on or after open_date",
                    {"open_date": observation.open_date.isoformat(), "target_date": new_target.isoformat()},
                )
            if new_target > observation.target_date:
                if not extension_reason or not extension_reason.strip():
                    raise ValidationFailed(
                        "extension_reason is required when moving target_date later",
                        {
                            "field": "extension_reason",
                            "current_target_date": observation.target_date.isoformat(),
                            "requested_target_date": new_target.isoformat(),
                        },
                    )
                extended = True
        else:
            changes.pop("target_date", None)

        if not changes:
            return observation

        values = dict(changes)
        if extended:
            values["extension_reason"] = extension_reason.strip()
            values["extension_count"] = Observation.extension_count + 1

        matched = self.observations.conditional_update(
            observation_id,
            observation.status,
            values,
            Observation.extension_count == observation.extension_count,
        )
        if not matched:
            self.db.rollback()
            raise Conflict(
                f"Observation {observation_id} was modified concurrently; reload and retry",
                {"id": observation_id},
            )
        self.db.commit()

        changed_fields = sorted(changes)
        details = {"fields": changed_fields}
        if extended:
            details.update({
                "from_target_date": previous_target.isoformat(),
                "to_target_date": new_target.isoformat(),
                "extension_reason": extension_reason.strip(),
            })
        logger.info(f"Updated observation {observation_id} ({', '.join(changed_fields)}){' with extension' if extended else ''}")

        self.trail.record_activity(
            actor_id,
            ActivityAction.DEADLINE_EXTENSION if extended else ActivityAction.UPDATE,
            ResourceType.OBSERVATION,
            observation_id,
            details,
        )
        observation = self.get(observation_id)
        self.events.publish(ObservationUpdated(observation_snapshot(observation), actor_id, changed_fields))
        return observation

    def assign_owner(self, observation_id: int, owner_id: int, actor_id: Optional[int]) -> Observation:
        return self._assign(observation_id, "owner", owner_id, actor_id)

    def assign_reviewer(self, observation_id: int, reviewer_id: int, actor_id: Optional[int]) -> Observation:
        return self._assign(observation_id, "reviewer", reviewer_id, actor_id)

    def soft_delete(self, observation_id: int, actor_id: Optional[int]) -> None:
        observation = self.get(observation_id)
        self.observations.soft_delete(observation, self.clock.now())
        self.db.commit()
        logger.info(f"Soft-deleted observation {observation_id}")
        self.trail.record_activity(actor_id, ActivityAction.SOFT_DELETE, ResourceType.OBSERVATION, observation_id)

    # Helpers

    def _assign(self, observation_id: int, role: str, user_id: int, actor_id: Optional[int]) -> Observation:
        observation = self.get(observation_id)
        if observation.status == ObservationStatus.CLOSED:
            raise Forbidden(
                "Closed observations cannot be reassigned",
                {"id": observation_id, "status": observation.status.value},
            )
        if not self.directory.user_exists(user_id):
            raise NotFound("User", user_id)

        setattr(observation, f"{role}_id", user_id)
        self.db.commit()
        self.db.refresh(observation)
        logger.info(f"Assigned user {user_id} as {role} of observation {observation_id}")

        self.trail.record_activity(
            actor_id,
            ActivityAction.ASSIGN_OWNER if role == "owner" else ActivityAction.ASSIGN_REVIEWER,
            ResourceType.OBSERVATION,
            observation_id,
            {"user_id": user_id},
        )
        self.events.publish(ObservationAssigned(observation_snapshot(observation), role, user_id, actor_id))
        return observation

    def _check_editable(self, observation: Observation, actor_id: Optional[int]) -> None:
        if observation.status == ObservationStatus.CLOSED:
            raise Forbidden(
                "Closed observations cannot be edited",
                {"id": observation.id, "status": observation.status.value},
            )
        if actor_id is not None and actor_id == observation.owner_id and observation.status in OWNER_LOCKED_STATUSES:
            raise Forbidden(
                f"The owner cannot edit an observation while it is {observation.status.value}",
                {"id": observation.id, "status": observation.status.value, "actor_id": actor_id},
            )

    def _check_references(self, entity_id=None, owner_id=None, reviewer_id=None) -> None:
        if entity_id is not None and not self.directory.entity_exists(entity_id):
            raise NotFound("Entity", entity_id)
        if owner_id is not None and not self.directory.user_exists(owner_id):
            raise NotFound("User", owner_id)
        if reviewer_id is not None and not self.directory.user_exists(reviewer_id):
            raise NotFound("User", reviewer_id)
