"""
Static transition tables for the audit and observation state machines.

Both tables are keyed by the status enum and must list every member; the
test suite checks exhaustiveness so a new status forces every table here to
be revisited.
"""
from types import MappingProxyType
from typing import FrozenSet, Mapping

from app.core.errors import InvalidTransition
from app.models.audit import AuditStatus
from app.models.observation import ObservationStatus


OBSERVATION_TRANSITIONS: Mapping[ObservationStatus, FrozenSet[ObservationStatus]] = MappingProxyType({
    ObservationStatus.OPEN: frozenset({
        ObservationStatus.IN_PROGRESS,
        ObservationStatus.CLOSED,
    }),
    ObservationStatus.IN_PROGRESS: frozenset({
        ObservationStatus.EVIDENCE_SUBMITTED,
        ObservationStatus.OPEN,
        ObservationStatus.CLOSED,
    }),
    ObservationStatus.EVIDENCE_SUBMITTED: frozenset({
        ObservationStatus.UNDER_REVIEW,
        ObservationStatus.IN_PROGRESS,
    }),
    ObservationStatus.UNDER_REVIEW: frozenset({
        ObservationStatus.CLOSED,
        ObservationStatus.REJECTED,
    }),
    ObservationStatus.REJECTED: frozenset({
        ObservationStatus.IN_PROGRESS,
        ObservationStatus.EVIDENCE_SUBMITTED,
    }),
    ObservationStatus.CLOSED: frozenset(),
    # Overdue rows may go straight back to EVIDENCE_SUBMITTED (pending product confirmation)
    ObservationStatus.OVERDUE: frozenset({
        ObservationStatus.IN_PROGRESS,
        ObservationStatus.EVIDENCE_SUBMITTED,
        ObservationStatus.CLOSED,
    }),
})

AUDIT_TRANSITIONS: Mapping[AuditStatus, FrozenSet[AuditStatus]] = MappingProxyType({
    AuditStatus.PLANNED: frozenset({AuditStatus.IN_PROGRESS, AuditStatus.CANCELLED}),
    AuditStatus.IN_PROGRESS: frozenset({AuditStatus.UNDER_REVIEW, AuditStatus.CANCELLED}),
    AuditStatus.UNDER_REVIEW: frozenset({
        AuditStatus.IN_PROGRESS,
        AuditStatus.CLOSED,
        AuditStatus.CANCELLED,
    }),
    AuditStatus.CLOSED: frozenset(),
    AuditStatus.CANCELLED: frozenset(),
})

# Statuses the overdue sweep never touches
SWEEP_EXCLUDED_STATUSES = frozenset({ObservationStatus.CLOSED, ObservationStatus.OVERDUE})

# Owners may not edit an observation while its evidence is being reviewed
OWNER_LOCKED_STATUSES = frozenset({
    ObservationStatus.EVIDENCE_SUBMITTED,
    ObservationStatus.UNDER_REVIEW,
})


def can_transition_observation(current: ObservationStatus, target: ObservationStatus) -> bool:
    return target in OBSERVATION_TRANSITIONS[current]


def can_transition_audit(current: AuditStatus, target: AuditStatus) -> bool:
    return target in AUDIT_TRANSITIONS[current]


def ensure_observation_transition(current: ObservationStatus, target: ObservationStatus, observation_id=None) -> None:
    """Raise InvalidTransition unless ``current -> target`` is in the observation table."""
    if not can_transition_observation(current, target):
        raise InvalidTransition("observation", current, target, resource_id=observation_id)


def ensure_audit_transition(current: AuditStatus, target: AuditStatus, audit_id=None) -> None:
    """Raise InvalidTransition unless ``current -> target`` is in the audit table."""
    if not can_transition_audit(current, target):
        raise InvalidTransition("audit", current, target, resource_id=audit_id)
