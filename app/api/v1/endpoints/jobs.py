"""
Scheduled job endpoints.

Intended to be called by an external scheduler (cron, a platform job
runner); each call runs the job once and reports how many rows it touched.
"""
import logging
from fastapi import APIRouter, Depends

from app.api.deps import get_clock, get_overdue_sweeper, get_reminder_service
from app.core.auth import Principal, get_principal
from app.core.clock import Clock
from app.schemas.jobs import JobResult
from app.services.overdue_sweeper import OverdueSweeper
from app.services.reminder_service import ReminderService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/sweep-overdue", response_model=JobResult)
async def run_overdue_sweep(
    _principal: Principal = Depends(get_principal),
    sweeper: OverdueSweeper = Depends(get_overdue_sweeper),
    clock: Clock = Depends(get_clock),
):
    """Mark every past-due observation OVERDUE. Safe to run repeatedly."""
    processed = sweeper.sweep()
    return JobResult(job="sweep-overdue", processed=processed, ran_at=clock.now())


@router.post("/due-date-reminders", response_model=JobResult)
async def run_due_date_reminders(
    _principal: Principal = Depends(get_principal),
    service: ReminderService = Depends(get_reminder_service),
    clock: Clock = Depends(get_clock),
):
    processed = service.send_due_date_reminders()
    return JobResult(job="due-date-reminders", processed=processed, ran_at=clock.now())


@router.post("/overdue-alerts", response_model=JobResult)
async def run_overdue_alerts(
    _principal: Principal = Depends(get_principal),
    service: ReminderService = Depends(get_reminder_service),
    clock: Clock = Depends(get_clock),
):
    processed = service.send_overdue_alerts()
    return JobResult(job="overdue-alerts", processed=processed, ran_at=clock.now())
