"""
Evidence review gate.

Evidence is uploaded against an observation, reviewed item by item, and
gates the observation's move to EVIDENCE_SUBMITTED and CLOSED. Status moves
of the observation itself are always delegated to ``ObservationService`` so
they go through the same transition table, conditional write and audit trail.
"""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from app.core.clock import Clock
from app.core.errors import Conflict, InvalidState, NotFound, ValidationFailed
from app.models.evidence import Evidence, EvidenceStatus
from app.models.observation import Observation, ObservationStatus
from app.repositories.evidence_repository import EvidenceRepository
from app.schemas.evidence import EvidenceCreateRequest
from app.services.activity_service import ActivityAction, ResourceType
from app.services.audit_trail import AuditTrailRecorder
from app.services.directory import Directory
from app.services.events import EventBus, EvidenceReviewed, observation_snapshot
from app.services.observation_service import ObservationService

logger = logging.getLogger(__name__)

# Observation statuses in which new evidence may be attached
UPLOAD_ALLOWED_STATUSES = frozenset({
    ObservationStatus.OPEN,
    ObservationStatus.IN_PROGRESS,
    ObservationStatus.REJECTED,
    ObservationStatus.OVERDUE,
})

SUBMIT_ALLOWED_STATUSES = frozenset({ObservationStatus.IN_PROGRESS, ObservationStatus.REJECTED})

NO_EVIDENCE = "no evidence uploaded"
ALL_EVIDENCE_REJECTED = "all evidence rejected"
UNREVIEWED_EVIDENCE = "unreviewed evidence remains"
REJECTED_EVIDENCE = "rejected evidence remains"


class EvidenceService:
    """Upload, review and supersede evidence; gate submission and closure."""

    def __init__(
        self,
        db: Session,
        clock: Clock,
        events: EventBus,
        directory: Directory,
        trail: Optional[AuditTrailRecorder] = None,
        observations: Optional[ObservationService] = None,
    ):
        self.db = db
        self.clock = clock
        self.events = events
        self.trail = trail or AuditTrailRecorder(db, clock)
        self.observations = observations or ObservationService(db, clock, events, directory, self.trail)
        self.evidence = EvidenceRepository(db)

    # Reads

    def get(self, evidence_id: int, include_deleted: bool = False) -> Evidence:
        item = self.evidence.get(evidence_id, include_deleted=include_deleted)
        if item is None:
            raise NotFound("Evidence", evidence_id)
        return item

    def list(self, observation_id: int, include_superseded: bool = False, include_deleted: bool = False) -> List[Evidence]:
        self.observations.get(observation_id)
        return self.evidence.list_for_observation(
            observation_id, include_superseded=include_superseded, include_deleted=include_deleted
        )

    def stats(self, observation_id: int) -> Dict[str, Any]:
        everything = self.list(observation_id, include_superseded=True, include_deleted=True)
        active = [item for item in everything if item.is_active]
        return {
            "observation_id": observation_id,
            "total": len(active),
            "pending_review": sum(1 for item in active if item.status == EvidenceStatus.PENDING_REVIEW),
            "approved": sum(1 for item in active if item.status == EvidenceStatus.APPROVED),
            "rejected": sum(1 for item in active if item.status == EvidenceStatus.REJECTED),
            "superseded": sum(1 for item in everything if item.deleted_at is None and item.superseded_at is not None),
            "deleted": sum(1 for item in everything if item.deleted_at is not None),
        }

    # Evidence lifecycle

    def upload(self, observation_id: int, data: EvidenceCreateRequest, actor_id: Optional[int]) -> Evidence:
        """
        Attach a new evidence item (PENDING_REVIEW).

        Uploading against an OPEN observation starts work on it (IN_PROGRESS).

        Raises:
            NotFound: observation missing
            InvalidState: observation is not accepting evidence
            Conflict: an active item with the same checksum already exists
        """
        observation = self.observations.get(observation_id)
        if observation.status not in UPLOAD_ALLOWED_STATUSES:
            raise InvalidState(
                f"Evidence cannot be uploaded while the observation is {observation.status.value}",
                "observation accepts evidence",
                {"observation_id": observation_id, "status": observation.status.value},
            )
        self._check_duplicate(observation_id, data.checksum)

        item = Evidence(
            observation_id=observation_id,
            status=EvidenceStatus.PENDING_REVIEW,
            version=self.evidence.max_version(observation_id) + 1,
            uploaded_by_id=actor_id,
            uploaded_at=self.clock.now(),
            **data.model_dump(),
        )
        self.evidence.add(item)
        self.db.commit()
        self.db.refresh(item)
        logger.info(f"Uploaded evidence {item.id} v{item.version} for observation {observation_id}")

        self.trail.record_activity(
            actor_id,
            ActivityAction.EVIDENCE_UPLOAD,
            ResourceType.EVIDENCE,
            item.id,
            {"observation_id": observation_id, "version": item.version, "file_name": item.file_name},
        )

        if observation.status == ObservationStatus.OPEN:
            self.observations.transition(
                observation_id, ObservationStatus.IN_PROGRESS, actor_id, reason="Evidence upload started"
            )
        return self.get(item.id)

    def supersede(self, evidence_id: int, data: EvidenceCreateRequest, actor_id: Optional[int]) -> Evidence:
        """
        Replace an evidence item with a new version.

        The prior row is stamped ``superseded_at`` and kept; the new row links
        back to it through ``supersedes_id``.
        """
        prior = self.get(evidence_id)
        if not prior.is_active:
            raise InvalidState(
                f"Evidence {evidence_id} has already been superseded",
                "evidence is active",
                {"evidence_id": evidence_id},
            )
        observation = self.observations.get(prior.observation_id)
        if observation.status == ObservationStatus.CLOSED:
            raise InvalidState(
                "Evidence of a closed observation cannot be replaced",
                "observation not closed",
                {"observation_id": observation.id},
            )
        self._check_duplicate(prior.observation_id, data.checksum, ignore_id=prior.id)

        now = self.clock.now()
        if not self.evidence.mark_superseded(prior.id, now):
            self.db.rollback()
            raise Conflict(f"Evidence {evidence_id} was modified concurrently", {"evidence_id": evidence_id})

        replacement = Evidence(
            observation_id=prior.observation_id,
            status=EvidenceStatus.PENDING_REVIEW,
            version=prior.version + 1,
            supersedes_id=prior.id,
            uploaded_by_id=actor_id,
            uploaded_at=now,
            **data.model_dump(),
        )
        self.evidence.add(replacement)
        self.db.commit()
        self.db.refresh(replacement)
        logger.info(f"Evidence {prior.id} superseded by {replacement.id} (v{replacement.version})")

        self.trail.record_activity(
            actor_id,
            ActivityAction.EVIDENCE_SUPERSEDE,
            ResourceType.EVIDENCE,
            replacement.id,
            {"observation_id": replacement.observation_id, "supersedes_id": prior.id, "version": replacement.version},
        )
        return replacement

    def review(
        self,
        evidence_id: int,
        decision: EvidenceStatus,
        reviewer_id: Optional[int],
        remarks: Optional[str] = None,
        rejection_reason: Optional[str] = None,
    ) -> Evidence:
        """
        Approve or reject one evidence item.

        A rejection while the observation is UNDER_REVIEW sends the observation
        to REJECTED.

        Raises:
            NotFound: evidence missing
            ValidationFailed: bad decision, or rejection without a reason
            InvalidState: the evidence is not pending review
        """
        if decision not in (EvidenceStatus.APPROVED, EvidenceStatus.REJECTED):
            raise ValidationFailed("decision must be APPROVED or REJECTED", {"decision": getattr(decision, "value", decision)})
        if decision == EvidenceStatus.REJECTED and (not rejection_reason or not rejection_reason.strip()):
            raise ValidationFailed("rejection_reason is required when rejecting evidence", {"field": "rejection_reason"})

        item = self.get(evidence_id)
        if not item.is_active or item.status != EvidenceStatus.PENDING_REVIEW:
            raise InvalidState(
                f"Evidence {evidence_id} is {item.status.value} and cannot be reviewed",
                "evidence pending review",
                {"evidence_id": evidence_id, "status": item.status.value},
            )
        # raises NotFound before anything is written when the observation is gone
        self.observations.get(item.observation_id)

        values = {
            "status": decision,
            "reviewed_by_id": reviewer_id,
            "reviewed_at": self.clock.now(),
            "review_remarks": remarks,
            "rejection_reason": rejection_reason.strip() if decision == EvidenceStatus.REJECTED else None,
        }
        if not self.evidence.conditional_review(evidence_id, values):
            self.db.rollback()
            raise Conflict(f"Evidence {evidence_id} was reviewed concurrently", {"evidence_id": evidence_id})
        self.db.commit()
        logger.info(f"Evidence {evidence_id} {decision.value} by {reviewer_id}")

        self.trail.record_activity(
            reviewer_id,
            ActivityAction.EVIDENCE_REVIEW,
            ResourceType.EVIDENCE,
            evidence_id,
            {"decision": decision.value, "remarks": remarks, "rejection_reason": values["rejection_reason"]},
        )

        item = self.get(evidence_id)
        observation = self.observations.get(item.observation_id)
        if decision == EvidenceStatus.REJECTED and observation.status == ObservationStatus.UNDER_REVIEW:
            observation = self.observations.transition(
                observation.id,
                ObservationStatus.REJECTED,
                reviewer_id,
                reason=f"Evidence rejected: {values['rejection_reason']}",
            )

        self.events.publish(EvidenceReviewed(
            observation=observation_snapshot(observation),
            evidence_id=item.id,
            evidence_name=item.name,
            approved=decision == EvidenceStatus.APPROVED,
            actor_id=reviewer_id,
            remarks=remarks,
            rejection_reason=values["rejection_reason"],
        ))
        return item

    def soft_delete(self, evidence_id: int, actor_id: Optional[int]) -> None:
        item = self.get(evidence_id)
        observation = self.observations.get(item.observation_id, include_deleted=True)
        if observation.status == ObservationStatus.CLOSED:
            raise InvalidState(
                "Evidence of a closed observation cannot be deleted",
                "observation not closed",
                {"evidence_id": evidence_id, "observation_id": observation.id},
            )
        self.evidence.soft_delete(item, self.clock.now())
        self.db.commit()
        logger.info(f"Soft-deleted evidence {evidence_id}")
        self.trail.record_activity(
            actor_id, ActivityAction.SOFT_DELETE, ResourceType.EVIDENCE, evidence_id,
            {"observation_id": observation.id},
        )

    # Gates

    def submit_for_review(self, observation_id: int, actor_id: Optional[int]) -> Observation:
        """
        Submit an observation's evidence for review (-> EVIDENCE_SUBMITTED).

        Requires IN_PROGRESS or REJECTED and at least one active item that is
        not rejected.
        """
        observation = self.observations.get(observation_id)
        if observation.status not in SUBMIT_ALLOWED_STATUSES:
            raise InvalidState(
                f"Evidence can only be submitted from IN_PROGRESS or REJECTED, not {observation.status.value}",
                "observation in progress or rejected",
                {"observation_id": observation_id, "status": observation.status.value},
            )

        active = self.evidence.active_for_observation(observation_id)
        if not active:
            raise InvalidState("Cannot submit for review: no evidence uploaded", NO_EVIDENCE, {"observation_id": observation_id})
        if all(item.status == EvidenceStatus.REJECTED for item in active):
            raise InvalidState(
                "Cannot submit for review: all evidence has been rejected; upload new evidence first",
                ALL_EVIDENCE_REJECTED,
                {"observation_id": observation_id, "rejected": len(active)},
            )

        return self.observations.transition(
            observation_id,
            ObservationStatus.EVIDENCE_SUBMITTED,
            actor_id,
            reason=f"Evidence submitted for review ({len(active)} item(s))",
        )

    def begin_review(self, observation_id: int, actor_id: Optional[int]) -> Observation:
        """Reviewer picks up submitted evidence (EVIDENCE_SUBMITTED -> UNDER_REVIEW)."""
        observation = self.observations.get(observation_id)
        if observation.status != ObservationStatus.EVIDENCE_SUBMITTED:
            raise InvalidState(
                f"Review can only begin from EVIDENCE_SUBMITTED, not {observation.status.value}",
                "evidence submitted",
                {"observation_id": observation_id, "status": observation.status.value},
            )
        return self.observations.transition(
            observation_id, ObservationStatus.UNDER_REVIEW, actor_id, reason="Review started"
        )

    def approve_and_close(self, observation_id: int, actor_id: Optional[int], remarks: Optional[str] = None) -> Observation:
        """
        Close an observation once every active evidence item is approved.

        Raises:
            InvalidState: not UNDER_REVIEW, no evidence, or some evidence not approved
        """
        observation = self.observations.get(observation_id)
        if observation.status != ObservationStatus.UNDER_REVIEW:
            raise InvalidState(
                f"Observation can only be closed from UNDER_REVIEW, not {observation.status.value}",
                "observation under review",
                {"observation_id": observation_id, "status": observation.status.value},
            )

        active = self.evidence.active_for_observation(observation_id)
        if not active:
            raise InvalidState("Cannot close: no evidence uploaded", NO_EVIDENCE, {"observation_id": observation_id})
        pending = [item.id for item in active if item.status == EvidenceStatus.PENDING_REVIEW]
        if pending:
            raise InvalidState(
                f"Cannot close: {len(pending)} evidence item(s) not yet reviewed",
                UNREVIEWED_EVIDENCE,
                {"observation_id": observation_id, "evidence_ids": pending},
            )
        rejected = [item.id for item in active if item.status == EvidenceStatus.REJECTED]
        if rejected:
            raise InvalidState(
                f"Cannot close: {len(rejected)} evidence item(s) rejected",
                REJECTED_EVIDENCE,
                {"observation_id": observation_id, "evidence_ids": rejected},
            )

        return self.observations.transition(
            observation_id,
            ObservationStatus.CLOSED,
            actor_id,
            reason=remarks or "All evidence approved, observation closed",
        )

    def _check_duplicate(self, observation_id: int, checksum: str, ignore_id: Optional[int] = None) -> None:
        existing = self.evidence.find_active_by_checksum(observation_id, checksum)
        if existing is not None and existing.id != ignore_id:
            raise Conflict(
                f"Identical evidence already attached (evidence {existing.id})",
                {"observation_id": observation_id, "evidence_id": existing.id, "checksum": checksum},
            )
