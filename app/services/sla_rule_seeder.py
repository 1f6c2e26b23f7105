"""
Service for seeding the default SLA rules.
"""
import logging
from sqlalchemy.orm import Session

from app.models.observation import RiskRating
from app.models.sla_rule import SLARule
from app.services.sla_service import FALLBACK_SLA_DAYS, FALLBACK_THRESHOLDS

logger = logging.getLogger(__name__)


def seed_sla_rules(db: Session) -> int:
    """
    Seed one wildcard-audit-type rule per risk rating.

    The seeded windows mirror the fallback table so behaviour does not
    change when the table is first populated. Does nothing when any rule
    already exists. Returns the number of rules created.
    """
    existing = db.query(SLARule).count()
    if existing:
        logger.info(f"SLA rules already exist ({existing} rules). Skipping seed.")
        return 0

    logger.info("Seeding default SLA rules...")

    created = 0
    for rating in RiskRating:
        warning, critical, escalation = FALLBACK_THRESHOLDS[rating]
        db.add(SLARule(
            name=f"Default {rating.value.title()}",
            risk_rating=rating,
            audit_type=None,
            base_days=FALLBACK_SLA_DAYS[rating],
            warning_days=warning,
            critical_days=critical,
            escalation_days=escalation,
            priority=0,
            is_active=True,
        ))
        created += 1

    db.commit()
    logger.info(f"Seeded {created} default SLA rules")
    return created


def ensure_sla_rules_seeded(db: Session) -> None:
    """
    Ensure the default SLA rules are seeded. Safe to call on every startup.
    """
    try:
        seed_sla_rules(db)
    except Exception as e:
        logger.error(f"Error seeding SLA rules: {e}", exc_info=True)
        db.rollback()
