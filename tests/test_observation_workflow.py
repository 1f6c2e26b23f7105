"""
Tests for the observation state machine, deadline extensions and concurrency guards.
"""
import logging
from datetime import date, datetime, timezone
from unittest.mock import patch

import pytest

from app.core.errors import Conflict, Forbidden, InvalidTransition, NotFound, ValidationFailed
from app.models import AuditStatus, AuditType, ObservationStatus, RiskRating
from app.models.status_history import ActorSource
from app.repositories.status_history_repository import StatusHistoryRepository
from app.schemas.observation import ObservationCreateRequest, ObservationUpdateRequest
from app.services.directory import DatabaseDirectory
from app.services.events import EventBus
from app.services.notification_service import NotificationDispatcher, NotificationSink
from app.services.observation_service import ObservationService


class ExplodingSink(NotificationSink):
    def notify(self, notification_type, recipient_id, payload):
        raise RuntimeError("smtp relay down")


def test_create_defaults_target_date_from_sla(make_observation, people, clock):
    observation = make_observation(risk_rating=RiskRating.HIGH)

    assert observation.status == ObservationStatus.OPEN
    assert observation.sla_days == 30
    assert observation.target_date == date(2024, 1, 31)
    assert observation.sla_calculated_date == date(2024, 1, 31)
    assert observation.original_target_date == observation.target_date
    assert observation.extension_count == 0
    assert observation.created_by_id == people["auditor"]
    assert observation.status_changed_at.replace(tzinfo=None) == clock.now().replace(tzinfo=None)


def test_create_keeps_explicit_target_date(make_observation):
    observation = make_observation(target_date=date(2024, 1, 15))

    assert observation.target_date == date(2024, 1, 15)
    assert observation.original_target_date == date(2024, 1, 15)
    assert observation.sla_calculated_date == date(2024, 1, 31)


def test_create_numbers_observations(make_audit, make_observation):
    first_audit = make_audit(name="First")
    second_audit = make_audit(name="Second")

    a1 = make_observation(audit=first_audit)
    a2 = make_observation(audit=first_audit)
    b1 = make_observation(audit=second_audit)

    assert (a1.sequence_number, a2.sequence_number, b1.sequence_number) == (1, 2, 1)
    assert [a1.global_sequence, a2.global_sequence, b1.global_sequence] == [
        "OBS-2024-000001",
        "OBS-2024-000002",
        "OBS-2024-000003",
    ]


def test_create_records_initial_history_and_notifies_owner(make_observation, observation_service, people, sink):
    observation = make_observation()

    history = observation_service.history(observation.id)
    assert len(history) == 1
    assert history[0].from_status is None
    assert history[0].to_status == ObservationStatus.OPEN
    assert history[0].changed_by_id == people["auditor"]
    assert history[0].changed_by_source == ActorSource.USER
    assert sink.to(people["owner"]) == ["OBSERVATION_ASSIGNED"]


def test_create_rejects_target_before_open_date(make_observation):
    with pytest.raises(ValidationFailed):
        make_observation(open_date=date(2024, 2, 1), target_date=date(2024, 1, 15))


def test_create_requires_existing_references(make_observation, make_audit, observation_service, people):
    with pytest.raises(NotFound):
        make_observation(owner_id=9999)

    with pytest.raises(NotFound) as exc_info:
        observation_service.create(
            ObservationCreateRequest(
                audit_id=9999,
                title="Orphan",
                description="No audit",
                risk_rating=RiskRating.LOW,
            ),
            actor_id=people["auditor"],
        )
    assert exc_info.value.details == {"resource": "Audit", "id": 9999}


def test_create_rejected_for_closed_audit(make_audit, make_observation, audit_service, people):
    audit = make_audit()
    audit_service.transition(audit.id, AuditStatus.CANCELLED, people["auditor"])

    with pytest.raises(ValidationFailed):
        make_observation(audit=audit)


def test_transition_updates_status_fields_and_history(make_observation, observation_service, people, clock):
    observation = make_observation()
    clock.advance(days=2)

    moved = observation_service.transition(
        observation.id, ObservationStatus.IN_PROGRESS, people["owner"], reason="Work started"
    )

    assert moved.status == ObservationStatus.IN_PROGRESS
    assert moved.previous_status == ObservationStatus.OPEN
    assert moved.status_changed_by_id == people["owner"]
    assert moved.status_changed_at.replace(tzinfo=None) == clock.now().replace(tzinfo=None)
    assert moved.closed_at is None

    history = observation_service.history(observation.id)
    assert [(h.from_status, h.to_status) for h in history] == [
        (None, ObservationStatus.OPEN),
        (ObservationStatus.OPEN, ObservationStatus.IN_PROGRESS),
    ]
    assert history[-1].reason == "Work started"


def test_transition_to_closed_sets_closed_at(make_observation, observation_service, people, sink):
    observation = make_observation()

    closed = observation_service.transition(observation.id, ObservationStatus.CLOSED, people["reviewer"])

    assert closed.closed_at is not None
    assert "OBSERVATION_CLOSED" in sink.to(people["owner"])
    assert "OBSERVATION_CLOSED" in sink.to(people["reviewer"])


def test_invalid_transition_leaves_row_unchanged(make_observation, observation_service, people):
    observation = make_observation()

    with pytest.raises(InvalidTransition) as exc_info:
        observation_service.transition(observation.id, ObservationStatus.UNDER_REVIEW, people["owner"])

    assert exc_info.value.details["from_status"] == "OPEN"
    assert exc_info.value.details["to_status"] == "UNDER_REVIEW"
    reloaded = observation_service.get(observation.id)
    assert reloaded.status == ObservationStatus.OPEN
    assert reloaded.previous_status is None
    assert len(observation_service.history(observation.id)) == 1


def test_closed_is_terminal(make_observation, observation_service, people):
    observation = make_observation()
    observation_service.transition(observation.id, ObservationStatus.CLOSED, people["reviewer"])

    for target in ObservationStatus:
        with pytest.raises(InvalidTransition):
            observation_service.transition(observation.id, target, people["reviewer"])


def test_overdue_cannot_be_entered_by_hand(make_observation, observation_service, people):
    observation = make_observation()
    with pytest.raises(InvalidTransition):
        observation_service.transition(observation.id, ObservationStatus.OVERDUE, people["auditor"])


def test_stale_read_is_a_conflict(make_observation, observation_service, session_factory, clock, event_bus, people):
    observation = make_observation()

    stale = session_factory()
    try:
        stale_service = ObservationService(stale, clock, event_bus, DatabaseDirectory(stale))
        assert stale_service.get(observation.id).status == ObservationStatus.OPEN

        observation_service.transition(observation.id, ObservationStatus.IN_PROGRESS, people["owner"])

        # The stale session still believes the observation is OPEN
        with pytest.raises(Conflict):
            stale_service.transition(observation.id, ObservationStatus.CLOSED, people["reviewer"])
    finally:
        stale.close()

    reloaded = observation_service.get(observation.id)
    assert reloaded.status == ObservationStatus.IN_PROGRESS
    assert len(observation_service.history(observation.id)) == 2


def test_history_failure_does_not_undo_transition(make_observation, observation_service, people, caplog):
    observation = make_observation()

    with patch.object(StatusHistoryRepository, "append", side_effect=RuntimeError("disk full")):
        with caplog.at_level(logging.ERROR):
            moved = observation_service.transition(observation.id, ObservationStatus.IN_PROGRESS, people["owner"])

    assert moved.status == ObservationStatus.IN_PROGRESS
    assert observation_service.get(observation.id).status == ObservationStatus.IN_PROGRESS
    assert len(observation_service.history(observation.id)) == 1
    assert "Failed to record status history" in caplog.text


def test_notification_failure_does_not_fail_transition(db_session, clock, directory, make_observation, people, sink):
    observation = make_observation()
    bus = EventBus()
    NotificationDispatcher([ExplodingSink(), sink]).register(bus)
    service = ObservationService(db_session, clock, bus, directory)

    moved = service.transition(observation.id, ObservationStatus.IN_PROGRESS, people["owner"])

    assert moved.status == ObservationStatus.IN_PROGRESS
    assert "STATUS_CHANGED" in sink.to(people["reviewer"])


def test_extension_requires_reason(make_observation, observation_service, people):
    observation = make_observation()

    with pytest.raises(ValidationFailed) as exc_info:
        observation_service.update(
            observation.id, ObservationUpdateRequest(target_date=date(2024, 3, 1)), people["auditor"]
        )
    assert exc_info.value.details["field"] == "extension_reason"
    assert observation_service.get(observation.id).target_date == date(2024, 1, 31)


def test_extension_increments_count_and_keeps_original(make_observation, observation_service, people):
    observation = make_observation()

    first = observation_service.update(
        observation.id,
        ObservationUpdateRequest(target_date=date(2024, 2, 15), extension_reason="Vendor patch delayed"),
        people["auditor"],
    )
    assert first.target_date == date(2024, 2, 15)
    assert first.extension_count == 1
    assert first.extension_reason == "Vendor patch delayed"

    second = observation_service.update(
        observation.id,
        ObservationUpdateRequest(target_date=date(2024, 3, 1), extension_reason="Change freeze"),
        people["auditor"],
    )
    assert second.extension_count == 2
    assert second.original_target_date == date(2024, 1, 31)


def test_pulling_deadline_in_is_not_an_extension(make_observation, observation_service, people):
    observation = make_observation()

    updated = observation_service.update(
        observation.id, ObservationUpdateRequest(target_date=date(2024, 1, 20)), people["auditor"]
    )

    assert updated.target_date == date(2024, 1, 20)
    assert updated.extension_count == 0
    assert updated.original_target_date == date(2024, 1, 31)


def test_update_changes_details(make_observation, observation_service, people, sink):
    observation = make_observation()

    updated = observation_service.update(
        observation.id,
        ObservationUpdateRequest(title="Payments approved by requester", root_cause="Missing workflow rule"),
        people["auditor"],
    )

    assert updated.title == "Payments approved by requester"
    assert updated.root_cause == "Missing workflow rule"
    assert updated.risk_rating == RiskRating.HIGH
    assert "OBSERVATION_UPDATED" in sink.to(people["owner"])


def test_risk_rating_change_keeps_deadline(make_observation, observation_service, people):
    observation = make_observation(risk_rating=RiskRating.LOW)

    updated = observation_service.update(
        observation.id, ObservationUpdateRequest(risk_rating=RiskRating.CRITICAL), people["auditor"]
    )

    assert updated.risk_rating == RiskRating.CRITICAL
    assert updated.target_date == date(2024, 3, 31)


def test_closed_observation_cannot_be_edited(make_observation, observation_service, people):
    observation = make_observation()
    observation_service.transition(observation.id, ObservationStatus.CLOSED, people["reviewer"])

    with pytest.raises(Forbidden):
        observation_service.update(observation.id, ObservationUpdateRequest(title="Late edit"), people["auditor"])
    with pytest.raises(Forbidden):
        observation_service.assign_owner(observation.id, people["reviewer"], people["auditor"])


def test_owner_locked_out_while_under_review(make_observation, observation_service, people):
    observation = make_observation()
    observation_service.transition(observation.id, ObservationStatus.IN_PROGRESS, people["owner"])
    observation_service.transition(observation.id, ObservationStatus.EVIDENCE_SUBMITTED, people["owner"])

    with pytest.raises(Forbidden):
        observation_service.update(
            observation.id, ObservationUpdateRequest(management_response="Fixed"), people["owner"]
        )

    updated = observation_service.update(
        observation.id, ObservationUpdateRequest(management_response="Reviewer note"), people["reviewer"]
    )
    assert updated.management_response == "Reviewer note"


def test_assign_owner_and_reviewer(make_observation, observation_service, people, sink):
    observation = make_observation(owner_id=None, reviewer_id=None)

    observation_service.assign_owner(observation.id, people["owner"], people["auditor"])
    updated = observation_service.assign_reviewer(observation.id, people["reviewer"], people["auditor"])

    assert updated.owner_id == people["owner"]
    assert updated.reviewer_id == people["reviewer"]
    assert sink.to(people["owner"]) == ["OBSERVATION_ASSIGNED"]
    assert sink.to(people["reviewer"]) == ["OBSERVATION_ASSIGNED"]

    with pytest.raises(NotFound):
        observation_service.assign_owner(observation.id, 4242, people["auditor"])


def test_soft_delete_hides_observation(make_observation, observation_service, people):
    observation = make_observation()

    observation_service.soft_delete(observation.id, people["auditor"])

    with pytest.raises(NotFound):
        observation_service.get(observation.id)
    assert observation_service.get(observation.id, include_deleted=True).deleted_at is not None
    items, total = observation_service.list()
    assert total == 0


def test_list_filters(make_audit, make_observation, observation_service, people):
    audit = make_audit()
    high = make_observation(audit=audit, risk_rating=RiskRating.HIGH)
    make_observation(audit=audit, risk_rating=RiskRating.LOW, owner_id=people["reviewer"])
    observation_service.transition(high.id, ObservationStatus.IN_PROGRESS, people["owner"])

    items, total = observation_service.list(audit_id=audit.id)
    assert total == 2

    items, total = observation_service.list(status=ObservationStatus.IN_PROGRESS)
    assert [item.id for item in items] == [high.id]

    items, total = observation_service.list(risk_rating=RiskRating.LOW)
    assert total == 1

    items, total = observation_service.list(owner_id=people["owner"])
    assert [item.id for item in items] == [high.id]


def test_due_soon_and_overdue_queries(make_observation, observation_service, clock):
    soon = make_observation(target_date=date(2024, 1, 5))
    later = make_observation(target_date=date(2024, 2, 20))

    assert [o.id for o in observation_service.due_soon(7)] == [soon.id]

    clock.set(datetime(2024, 1, 10, tzinfo=timezone.utc))
    assert [o.id for o in observation_service.overdue()] == [soon.id]
    assert later.id not in [o.id for o in observation_service.due_soon(7)]


def test_end_to_end_sla_and_overdue_sweep(
    make_audit, make_observation, observation_service, sla_rule, sweeper, clock, people, sink
):
    sla_rule(name="Critical IT", risk_rating=RiskRating.CRITICAL, audit_type=AuditType.IT, base_days=7, priority=5)
    sla_rule(name="Critical default", risk_rating=RiskRating.CRITICAL, base_days=14, priority=0)
    audit = make_audit(audit_type=AuditType.IT, name="IT General Controls")

    observation = make_observation(audit=audit, risk_rating=RiskRating.CRITICAL)
    assert observation.target_date == date(2024, 1, 8)
    assert observation.sla_days == 7

    observation_service.transition(observation.id, ObservationStatus.IN_PROGRESS, people["owner"])

    clock.set(datetime(2024, 1, 10, 2, 0, tzinfo=timezone.utc))
    assert sweeper.sweep() == 1

    swept = observation_service.get(observation.id)
    assert swept.status == ObservationStatus.OVERDUE
    assert swept.previous_status == ObservationStatus.IN_PROGRESS
    assert swept.status_changed_by_id is None

    last = observation_service.history(observation.id)[-1]
    assert (last.from_status, last.to_status) == (ObservationStatus.IN_PROGRESS, ObservationStatus.OVERDUE)
    assert last.changed_by_id is None
    assert last.changed_by_source == ActorSource.SYSTEM
    assert "OVERDUE_ALERT" in sink.to(people["owner"])

    clock.set(datetime(2024, 1, 11, 2, 0, tzinfo=timezone.utc))
    assert sweeper.sweep() == 0
    assert observation_service.get(observation.id).status == ObservationStatus.OVERDUE
    assert len(observation_service.history(observation.id)) == 3


def test_end_to_end_review_path_cannot_skip_rejection(
    make_audit, make_observation, observation_service, sla_rule, people
):
    sla_rule(name="Critical IT", risk_rating=RiskRating.CRITICAL, audit_type=AuditType.IT, base_days=7, priority=5)
    audit = make_audit(audit_type=AuditType.IT, name="IT General Controls")
    observation = make_observation(audit=audit, risk_rating=RiskRating.CRITICAL)
    assert observation.target_date == date(2024, 1, 8)

    for target in (
        ObservationStatus.IN_PROGRESS,
        ObservationStatus.EVIDENCE_SUBMITTED,
        ObservationStatus.UNDER_REVIEW,
    ):
        observation_service.transition(observation.id, target, people["reviewer"])

    with pytest.raises(InvalidTransition):
        observation_service.transition(observation.id, ObservationStatus.IN_PROGRESS, people["reviewer"])
    assert observation_service.get(observation.id).status == ObservationStatus.UNDER_REVIEW

    closed = observation_service.transition(observation.id, ObservationStatus.CLOSED, people["reviewer"])
    assert closed.status == ObservationStatus.CLOSED
    assert len(observation_service.history(observation.id)) == 5
