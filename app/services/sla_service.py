"""
SLA rule resolution and deadline classification.

``resolve_sla_days`` is pure: it takes the candidate rules explicitly and
never touches the clock or the database, so the same inputs always give the
same answer. ``SLAService`` loads active rules and delegates to it.
"""
import enum
import logging
from datetime import date, timedelta
from typing import Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from app.core.errors import NotFound, ValidationFailed
from app.models.audit import AuditType
from app.models.observation import RiskRating
from app.models.sla_rule import SLARule
from app.repositories.sla_rule_repository import SLARuleRepository

logger = logging.getLogger(__name__)


# Used when no active rule matches
FALLBACK_SLA_DAYS = {
    RiskRating.CRITICAL: 14,
    RiskRating.HIGH: 30,
    RiskRating.MEDIUM: 60,
    RiskRating.LOW: 90,
    RiskRating.INFORMATIONAL: 180,
}

# (warning_days, critical_days, escalation_days) when no rule governs
FALLBACK_THRESHOLDS = {
    RiskRating.CRITICAL: (7, 3, 1),
    RiskRating.HIGH: (14, 7, 3),
    RiskRating.MEDIUM: (21, 14, 7),
    RiskRating.LOW: (30, 14, 7),
    RiskRating.INFORMATIONAL: (30, 14, 7),
}


class DeadlineBand(str, enum.Enum):
    """How close an observation is to (or past) its target date."""
    ON_TRACK = "ON_TRACK"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"
    ESCALATION = "ESCALATION"
    BREACHED = "BREACHED"


def _specificity(rule) -> int:
    return int(rule.risk_rating is not None) + int(rule.audit_type is not None)


def _matches(rule, risk_rating: RiskRating, audit_type: Optional[AuditType]) -> bool:
    if not rule.is_active:
        return False
    if rule.risk_rating is not None and rule.risk_rating != risk_rating:
        return False
    if rule.audit_type is not None and rule.audit_type != audit_type:
        return False
    return True


def resolve_rule(rules: Iterable, risk_rating: RiskRating, audit_type: Optional[AuditType] = None):
    """
    Pick the rule governing ``(risk_rating, audit_type)``.

    Highest priority wins; on equal priority the rule with more non-null
    criteria wins; remaining ties go to the lowest id so the choice is
    stable. Returns None when nothing matches.
    """
    candidates = [rule for rule in rules if _matches(rule, risk_rating, audit_type)]
    if not candidates:
        return None
    return min(
        candidates,
        key=lambda rule: (-(rule.priority or 0), -_specificity(rule), rule.id if rule.id is not None else 0),
    )


def resolve_sla_days(rules: Iterable, risk_rating: RiskRating, audit_type: Optional[AuditType] = None) -> int:
    """Number of days allowed to remediate an observation. Always >= 1."""
    rule = resolve_rule(rules, risk_rating, audit_type)
    if rule is None:
        days = FALLBACK_SLA_DAYS[RiskRating(risk_rating)]
    else:
        days = rule.base_days
    return max(1, int(days))


def deadline_band(days_remaining: int, rule=None, risk_rating: Optional[RiskRating] = None) -> DeadlineBand:
    """
    Classify ``days_remaining`` against the rule's thresholds.

    Negative values are BREACHED. Without a rule the fallback thresholds
    for ``risk_rating`` apply (MEDIUM when unknown).
    """
    if rule is not None:
        warning, critical, escalation = rule.warning_days, rule.critical_days, rule.escalation_days
    else:
        warning, critical, escalation = FALLBACK_THRESHOLDS[RiskRating(risk_rating or RiskRating.MEDIUM)]

    if days_remaining < 0:
        return DeadlineBand.BREACHED
    if days_remaining <= escalation:
        return DeadlineBand.ESCALATION
    if days_remaining <= critical:
        return DeadlineBand.CRITICAL
    if days_remaining <= warning:
        return DeadlineBand.WARNING
    return DeadlineBand.ON_TRACK


class SLAService:
    """Loads SLA rules and answers deadline questions."""

    def __init__(self, db: Session):
        self.db = db
        self.rules = SLARuleRepository(db)

    def active_rules(self) -> List[SLARule]:
        return self.rules.list(active_only=True)

    def resolve(self, risk_rating: RiskRating, audit_type: Optional[AuditType] = None) -> Tuple[int, Optional[SLARule]]:
        """Return ``(sla_days, governing_rule)`` for the pair."""
        active = self.active_rules()
        rule = resolve_rule(active, risk_rating, audit_type)
        days = resolve_sla_days(active, risk_rating, audit_type)
        logger.debug(
            f"Resolved SLA for {RiskRating(risk_rating).value}/"
            f"{audit_type.value if audit_type else '*'}: {days} days "
            f"(rule={rule.id if rule else 'fallback'})"
        )
        return days, rule

    def calculate_target_date(self, open_date: date, risk_rating: RiskRating, audit_type: Optional[AuditType] = None) -> date:
        days, _ = self.resolve(risk_rating, audit_type)
        return open_date + timedelta(days=days)

    def band_for(self, target_date: date, today: date, risk_rating: RiskRating, audit_type: Optional[AuditType] = None) -> DeadlineBand:
        rule = resolve_rule(self.active_rules(), risk_rating, audit_type)
        return deadline_band((target_date - today).days, rule, risk_rating)

    # Rule management

    def get_rule(self, rule_id: int) -> SLARule:
        rule = self.rules.get(rule_id)
        if rule is None:
            raise NotFound("SLA rule", rule_id)
        return rule

    def list_rules(self, active_only: bool = False) -> List[SLARule]:
        return self.rules.list(active_only=active_only)

    def create_rule(self, data) -> SLARule:
        values = data.model_dump()
        self._validate_thresholds(values)
        rule = SLARule(**values)
        self.rules.add(rule)
        self.db.commit()
        self.db.refresh(rule)
        logger.info(f"Created SLA rule {rule.id} '{rule.name}' ({rule.base_days} days, priority {rule.priority})")
        return rule

    def update_rule(self, rule_id: int, patch) -> SLARule:
        rule = self.get_rule(rule_id)
        changes = patch.model_dump(exclude_unset=True)
        merged = {
            "base_days": rule.base_days,
            "warning_days": rule.warning_days,
            "critical_days": rule.critical_days,
            "escalation_days": rule.escalation_days,
        }
        merged.update({key: value for key, value in changes.items() if key in merged})
        self._validate_thresholds(merged)

        for key, value in changes.items():
            setattr(rule, key, value)
        self.db.commit()
        self.db.refresh(rule)
        logger.info(f"Updated SLA rule {rule.id}: {sorted(changes)}")
        return rule

    def deactivate_rule(self, rule_id: int) -> SLARule:
        rule = self.get_rule(rule_id)
        rule.is_active = False
        self.db.commit()
        self.db.refresh(rule)
        logger.info(f"Deactivated SLA rule {rule.id}")
        return rule

    @staticmethod
    def _validate_thresholds(values: dict) -> None:
        if values.get("base_days") is not None and values["base_days"] < 1:
            raise ValidationFailed("base_days must be at least 1", {"field": "base_days"})
        warning = values.get("warning_days")
        critical = values.get("critical_days")
        escalation = values.get("escalation_days")
        if None not in (warning, critical, escalation) and not (warning >= critical >= escalation >= 0):
            raise ValidationFailed(
                "Thresholds must satisfy warning_days >= critical_days >= escalation_days >= 0",
                {"warning_days": warning, "critical_days": critical, "escalation_days": escalation},
            )
