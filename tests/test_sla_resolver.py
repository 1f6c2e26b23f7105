"""
Tests for SLA rule resolution and deadline bands.
"""
import random
from datetime import date

import pytest

from app.core.errors import ValidationFailed
from app.models.audit import AuditType
from app.models.observation import RiskRating
from app.models.sla_rule import SLARule
from app.schemas.sla_rule import SLARuleCreateRequest, SLARuleUpdateRequest
from app.services.sla_rule_seeder import seed_sla_rules
from app.services.sla_service import (
    FALLBACK_SLA_DAYS,
    DeadlineBand,
    SLAService,
    deadline_band,
    resolve_rule,
    resolve_sla_days,
)


def rule(id, base_days, risk_rating=None, audit_type=None, priority=0, is_active=True, **thresholds):
    """Unsaved rule; column defaults only apply on insert so set everything explicitly."""
    return SLARule(
        id=id,
        name=f"rule-{id}",
        risk_rating=risk_rating,
        audit_type=audit_type,
        base_days=base_days,
        priority=priority,
        is_active=is_active,
        warning_days=thresholds.get("warning_days", 7),
        critical_days=thresholds.get("critical_days", 3),
        escalation_days=thresholds.get("escalation_days", 1),
    )


@pytest.mark.parametrize("rating,expected", [
    (RiskRating.CRITICAL, 14),
    (RiskRating.HIGH, 30),
    (RiskRating.MEDIUM, 60),
    (RiskRating.LOW, 90),
    (RiskRating.INFORMATIONAL, 180),
])
def test_fallback_table_when_no_rules(rating, expected):
    assert resolve_sla_days([], rating, AuditType.IT) == expected
    assert resolve_sla_days([], rating) == expected


def test_higher_priority_rule_wins():
    rules = [
        rule(1, 14, RiskRating.CRITICAL, None, priority=0),
        rule(2, 7, RiskRating.CRITICAL, AuditType.IT, priority=5),
    ]
    assert resolve_sla_days(rules, RiskRating.CRITICAL, AuditType.IT) == 7
    assert resolve_sla_days(rules, RiskRating.CRITICAL, AuditType.FINANCIAL) == 14
    assert resolve_sla_days(rules, RiskRating.LOW, None) == 90


def test_priority_beats_specificity():
    rules = [
        rule(1, 10, RiskRating.HIGH, AuditType.SOC, priority=1),
        rule(2, 45, None, None, priority=9),
    ]
    assert resolve_sla_days(rules, RiskRating.HIGH, AuditType.SOC) == 45


def test_equal_priority_prefers_more_specific_rule():
    rules = [
        rule(1, 100, None, None),
        rule(2, 50, RiskRating.MEDIUM, None),
        rule(3, 20, RiskRating.MEDIUM, AuditType.ISO),
        rule(4, 40, None, AuditType.ISO),
    ]
    assert resolve_sla_days(rules, RiskRating.MEDIUM, AuditType.ISO) == 20
    assert resolve_sla_days(rules, RiskRating.MEDIUM, AuditType.SOC) == 50
    assert resolve_sla_days(rules, RiskRating.LOW, AuditType.ISO) == 40
    assert resolve_sla_days(rules, RiskRating.LOW, AuditType.SOC) == 100


def test_typed_rule_does_not_match_missing_audit_type():
    rules = [rule(1, 5, RiskRating.HIGH, AuditType.IT, priority=10)]
    assert resolve_rule(rules, RiskRating.HIGH, None) is None
    assert resolve_sla_days(rules, RiskRating.HIGH, None) == FALLBACK_SLA_DAYS[RiskRating.HIGH]


def test_inactive_rules_are_ignored():
    rules = [rule(1, 3, RiskRating.HIGH, None, priority=50, is_active=False)]
    assert resolve_sla_days(rules, RiskRating.HIGH, AuditType.IT) == 30


def test_result_is_never_below_one_day():
    rules = [rule(1, 0, RiskRating.LOW, None)]
    assert resolve_sla_days(rules, RiskRating.LOW) == 1


def test_resolution_is_independent_of_rule_order():
    rules = [
        rule(1, 30, None, None, priority=2),
        rule(2, 21, RiskRating.HIGH, None, priority=2),
        rule(3, 12, RiskRating.HIGH, AuditType.EXTERNAL, priority=2),
        rule(4, 60, RiskRating.HIGH, AuditType.EXTERNAL, priority=1),
    ]
    expected = resolve_sla_days(rules, RiskRating.HIGH, AuditType.EXTERNAL)
    for _ in range(10):
        shuffled = rules[:]
        random.shuffle(shuffled)
        assert resolve_sla_days(shuffled, RiskRating.HIGH, AuditType.EXTERNAL) == expected == 12


@pytest.mark.parametrize("days_remaining,expected", [
    (30, DeadlineBand.ON_TRACK),
    (8, DeadlineBand.ON_TRACK),
    (7, DeadlineBand.WARNING),
    (4, DeadlineBand.WARNING),
    (3, DeadlineBand.CRITICAL),
    (2, DeadlineBand.CRITICAL),
    (1, DeadlineBand.ESCALATION),
    (0, DeadlineBand.ESCALATION),
    (-1, DeadlineBand.BREACHED),
])
def test_deadline_band_uses_rule_thresholds(days_remaining, expected):
    governing = rule(1, 14, RiskRating.CRITICAL, None, warning_days=7, critical_days=3, escalation_days=1)
    assert deadline_band(days_remaining, governing) == expected


def test_deadline_band_falls_back_to_rating_thresholds():
    assert deadline_band(10, None, RiskRating.HIGH) == DeadlineBand.WARNING
    assert deadline_band(10, None, RiskRating.CRITICAL) == DeadlineBand.ON_TRACK


def test_sla_service_reads_active_rules_from_database(db_session, sla_rule):
    sla_rule(name="Critical default", risk_rating=RiskRating.CRITICAL, base_days=14, priority=0)
    it_rule = sla_rule(name="Critical IT", risk_rating=RiskRating.CRITICAL, audit_type=AuditType.IT, base_days=7, priority=5)

    days, governing = SLAService(db_session).resolve(RiskRating.CRITICAL, AuditType.IT)

    assert days == 7
    assert governing.id == it_rule.id
    assert SLAService(db_session).calculate_target_date(date(2024, 1, 1), RiskRating.CRITICAL, AuditType.IT) == date(2024, 1, 8)


def test_deactivated_rule_stops_governing(db_session, sla_rule):
    service = SLAService(db_session)
    governing = sla_rule(name="High override", risk_rating=RiskRating.HIGH, base_days=5, priority=3)
    assert service.resolve(RiskRating.HIGH)[0] == 5

    service.deactivate_rule(governing.id)

    assert service.resolve(RiskRating.HIGH) == (30, None)


def test_rule_thresholds_are_validated(db_session):
    service = SLAService(db_session)
    with pytest.raises(ValidationFailed):
        service.create_rule(SLARuleCreateRequest(
            name="Backwards", base_days=10, warning_days=1, critical_days=5, escalation_days=2,
        ))

    created = service.create_rule(SLARuleCreateRequest(name="Low", risk_rating=RiskRating.LOW, base_days=60))
    with pytest.raises(ValidationFailed):
        service.update_rule(created.id, SLARuleUpdateRequest(escalation_days=20))

    updated = service.update_rule(created.id, SLARuleUpdateRequest(base_days=45, priority=2))
    assert updated.base_days == 45
    assert updated.priority == 2


def test_seeder_mirrors_fallback_table_and_runs_once(db_session):
    assert seed_sla_rules(db_session) == 5
    assert seed_sla_rules(db_session) == 0

    service = SLAService(db_session)
    for rating, days in FALLBACK_SLA_DAYS.items():
        resolved, governing = service.resolve(rating, AuditType.COMPLIANCE)
        assert resolved == days
        assert governing is not None
