"""
Due-date reminders and overdue alerts for observation owners.
"""
import logging
from datetime import timedelta
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from app.core.clock import Clock
from app.repositories.observation_repository import ObservationRepository
from app.services.events import DueDateReminder, EventBus, OverdueReminder, observation_snapshot

logger = logging.getLogger(__name__)


class ReminderService:
    """Publishes reminder events; the notification dispatcher delivers them."""

    def __init__(self, db: Session, clock: Clock, events: EventBus, reminder_days: Optional[Iterable[int]] = None):
        self.db = db
        self.clock = clock
        self.events = events
        self.reminder_days = sorted(set(reminder_days or (7, 3, 1)), reverse=True)
        self.observations = ObservationRepository(db)

    def send_due_date_reminders(self) -> int:
        """Remind owners of observations due exactly N days from today, for each configured N."""
        today = self.clock.today()
        sent = 0
        for days in self.reminder_days:
            target = today + timedelta(days=days)
            for observation in self.observations.due_on(target):
                self.events.publish(DueDateReminder(observation_snapshot(observation), days))
                sent += 1
        logger.info(f"Sent {sent} due date reminders ({self.reminder_days} days ahead)")
        return sent

    def send_overdue_alerts(self) -> int:
        """Alert owners of every open observation past its target date."""
        today = self.clock.today()
        sent = 0
        for observation in self.observations.past_due(today, with_owner_only=True):
            days_overdue = (today - observation.target_date).days
            self.events.publish(OverdueReminder(observation_snapshot(observation), days_overdue))
            sent += 1
        logger.info(f"Sent {sent} overdue alerts")
        return sent
