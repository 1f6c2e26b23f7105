"""
Health check endpoint for monitoring and diagnostics.
"""
import logging
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.config import settings
from app.models.sla_rule import SLARule

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check(db: Session = Depends(get_db)):
    """
    Health check endpoint that verifies:
    - API is running
    - Database connection works (SELECT 1)
    - How many SLA rules are active (0 means every deadline uses the fallback table)

    Returns:
        {
            "ok": true,
            "db": true,
            "environment": "local",
            "active_sla_rules": 5
        }
    """
    try:
        db.execute(text("SELECT 1")).fetchone()
        active_rules = db.query(SLARule).filter(SLARule.is_active.is_(True)).count()
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database connection failed"
        )

    return {
        "ok": True,
        "db": True,
        "environment": settings.APP_ENV,
        "active_sla_rules": active_rules,
    }
