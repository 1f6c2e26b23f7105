"""
Notification dispatcher.

Subscribes to workflow events on the event bus and fans each one out to the
configured sinks (in-app rows, an incoming webhook, the log). Delivery is
strictly best-effort: a failing sink is logged and the next one still runs,
and nothing here can fail the state change that produced the event.
"""
import enum
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, Iterable, List, Optional

import requests
from sqlalchemy.orm import Session

from app.models.notification import Notification
from app.models.observation import ObservationStatus
from app.services.events import (
    AuditStatusChanged,
    DueDateReminder,
    EventBus,
    EvidenceReviewed,
    ObservationAssigned,
    ObservationCreated,
    ObservationStatusChanged,
    ObservationUpdated,
    OverdueReminder,
)

logger = logging.getLogger(__name__)


class NotificationType(str, enum.Enum):
    """Kinds of notification a recipient can receive."""
    OBSERVATION_ASSIGNED = "OBSERVATION_ASSIGNED"
    OBSERVATION_UPDATED = "OBSERVATION_UPDATED"
    STATUS_CHANGED = "STATUS_CHANGED"
    DUE_DATE_REMINDER = "DUE_DATE_REMINDER"
    OVERDUE_ALERT = "OVERDUE_ALERT"
    EVIDENCE_SUBMITTED = "EVIDENCE_SUBMITTED"
    EVIDENCE_APPROVED = "EVIDENCE_APPROVED"
    EVIDENCE_REJECTED = "EVIDENCE_REJECTED"
    OBSERVATION_CLOSED = "OBSERVATION_CLOSED"
    REVIEW_REQUIRED = "REVIEW_REQUIRED"


# type -> (title, message, card colour); placeholders come from the event data
NOTIFICATION_TEMPLATES = {
    NotificationType.OBSERVATION_ASSIGNED: (
        "New Observation Assigned: {title}",
        "You have been assigned as {role} of observation {global_sequence} "
        "({risk_rating}), due {target_date}.",
        "0076D7",
    ),
    NotificationType.OBSERVATION_UPDATED: (
        "Observation Updated - {title}",
        "Observation {global_sequence} was updated: {changes}.",
        "607D8B",
    ),
    NotificationType.STATUS_CHANGED: (
        "Status Changed - {title}",
        "{subject} moved from {from_status} to {to_status}.",
        "607D8B",
    ),
    NotificationType.DUE_DATE_REMINDER: (
        "Reminder: Observation Due Soon - {title}",
        "Observation {global_sequence} is due on {target_date} ({days_remaining} days remaining).",
        "FFA500",
    ),
    NotificationType.OVERDUE_ALERT: (
        "OVERDUE: Observation Past Due Date - {title}",
        "Observation {global_sequence} was due on {target_date} and is {days_overdue} days overdue.",
        "D32F2F",
    ),
    NotificationType.EVIDENCE_SUBMITTED: (
        "Evidence Submitted for Review - {title}",
        "Evidence for observation {global_sequence} has been submitted for review.",
        "2196F3",
    ),
    NotificationType.EVIDENCE_APPROVED: (
        "Evidence Approved - {title}",
        "Evidence '{evidence_name}' for observation {global_sequence} was approved. {remarks}",
        "4CAF50",
    ),
    NotificationType.EVIDENCE_REJECTED: (
        "Evidence Rejected - {title}",
        "Evidence '{evidence_name}' for observation {global_sequence} was rejected: {rejection_reason}",
        "D32F2F",
    ),
    NotificationType.OBSERVATION_CLOSED: (
        "Observation Closed - {title}",
        "Observation {global_sequence} has been closed.",
        "4CAF50",
    ),
    NotificationType.REVIEW_REQUIRED: (
        "Review Required - {title}",
        "Evidence for observation {global_sequence} is waiting for your review.",
        "9C27B0",
    ),
}


class _Defaults(dict):
    def __missing__(self, key):
        return "N/A"


def render(notification_type: NotificationType, data: Dict[str, Any]):
    """Return ``(title, message)`` for ``notification_type`` filled from ``data``."""
    title, message, _ = NOTIFICATION_TEMPLATES[notification_type]
    values = _Defaults({key: value for key, value in data.items() if value is not None})
    return title.format_map(values), message.format_map(values).strip()


class NotificationSink:
    """
    Delivery channel.

    Per-recipient sinks are called once for every recipient; channel sinks
    (``per_recipient = False``) are called once per notification with
    ``recipient_id=None``.
    """

    per_recipient = True

    def notify(self, notification_type: NotificationType, recipient_id: Optional[int], payload: Dict[str, Any]) -> None:
        raise NotImplementedError


class LoggingNotificationSink(NotificationSink):
    """Writes every notification to the application log."""

    def notify(self, notification_type, recipient_id, payload):
        logger.info(f"Notification {notification_type.value} -> user {recipient_id}: {payload['title']}")


class InAppNotificationSink(NotificationSink):
    """Stores notifications as rows shown inside the application."""

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def notify(self, notification_type, recipient_id, payload):
        db = self.session_factory()
        try:
            db.add(Notification(
                user_id=recipient_id,
                observation_id=payload.get("observation_id"),
                type=notification_type.value,
                title=payload["title"][:500],
                message=payload["message"],
                data=payload.get("data"),
            ))
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()


class WebhookNotificationSink(NotificationSink):
    """Posts a MessageCard to an incoming webhook (e.g. a Teams channel)."""

    per_recipient = False

    def __init__(self, url: str, timeout: float = 5.0, session: Optional[requests.Session] = None):
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()

    def build_card(self, notification_type: NotificationType, payload: Dict[str, Any]) -> Dict[str, Any]:
        _, _, colour = NOTIFICATION_TEMPLATES[notification_type]
        data = payload.get("data") or {}
        facts = [
            {"name": label, "value": str(data[key])}
            for key, label in (
                ("global_sequence", "Observation"),
                ("risk_rating", "Risk Rating"),
                ("status", "Status"),
                ("target_date", "Target Date"),
            )
            if data.get(key) is not None
        ]
        card = {
            "@type": "MessageCard",
            "@context": "http://schema.org/extensions",
            "summary": payload["title"],
            "themeColor": colour,
            "title": payload["title"],
            "sections": [{"activityTitle": payload["message"], "facts": facts}],
        }
        if payload.get("link"):
            card["potentialAction"] = [{
                "@type": "OpenUri",
                "name": "View Observation",
                "targets": [{"os": "default", "uri": payload["link"]}],
            }]
        return card

    def notify(self, notification_type, recipient_id, payload):
        response = self.session.post(
            self.url,
            json=self.build_card(notification_type, payload),
            timeout=self.timeout,
        )
        response.raise_for_status()
        logger.debug(f"Webhook notification {notification_type.value} delivered ({response.status_code})")


class NotificationDispatcher:
    """Turns workflow events into notifications for owners and reviewers."""

    def __init__(self, sinks: Iterable[NotificationSink], frontend_url: Optional[str] = None):
        self.sinks: List[NotificationSink] = list(sinks)
        self.frontend_url = frontend_url.rstrip("/") if frontend_url else None

    def register(self, bus: EventBus) -> None:
        bus.subscribe(ObservationCreated, self.on_observation_created)
        bus.subscribe(ObservationUpdated, self.on_observation_updated)
        bus.subscribe(ObservationAssigned, self.on_observation_assigned)
        bus.subscribe(ObservationStatusChanged, self.on_observation_status_changed)
        bus.subscribe(EvidenceReviewed, self.on_evidence_reviewed)
        bus.subscribe(DueDateReminder, self.on_due_date_reminder)
        bus.subscribe(OverdueReminder, self.on_overdue_reminder)
        bus.subscribe(AuditStatusChanged, self.on_audit_status_changed)

    # Event handlers

    def on_observation_created(self, event: ObservationCreated) -> int:
        observation = event.observation
        return self.dispatch(
            NotificationType.OBSERVATION_ASSIGNED,
            [observation.get("owner_id")],
            observation,
            role="owner",
        )

    def on_observation_updated(self, event: ObservationUpdated) -> int:
        return self.dispatch(
            NotificationType.OBSERVATION_UPDATED,
            self._participants(event.observation),
            event.observation,
            changes=", ".join(event.changes) or "details",
        )

    def on_observation_assigned(self, event: ObservationAssigned) -> int:
        return self.dispatch(
            NotificationType.OBSERVATION_ASSIGNED,
            [event.assignee_id],
            event.observation,
            role=event.role,
        )

    def on_observation_status_changed(self, event: ObservationStatusChanged) -> int:
        observation = event.observation
        context = {
            "subject": f"Observation {observation.get('global_sequence')}",
            "from_status": event.from_status.value if event.from_status else None,
            "to_status": event.to_status.value,
            "reason": event.reason,
        }
        if event.to_status == ObservationStatus.OVERDUE:
            return self.dispatch(NotificationType.OVERDUE_ALERT, self._participants(observation), observation, **context)
        if event.to_status == ObservationStatus.CLOSED:
            return self.dispatch(NotificationType.OBSERVATION_CLOSED, self._participants(observation), observation, **context)
        if event.to_status == ObservationStatus.EVIDENCE_SUBMITTED:
            sent = self.dispatch(
                NotificationType.REVIEW_REQUIRED, [observation.get("reviewer_id")], observation, **context
            )
            return sent + self.dispatch(
                NotificationType.EVIDENCE_SUBMITTED, [observation.get("owner_id")], observation, **context
            )
        return self.dispatch(NotificationType.STATUS_CHANGED, self._participants(observation), observation, **context)

    def on_evidence_reviewed(self, event: EvidenceReviewed) -> int:
        notification_type = (
            NotificationType.EVIDENCE_APPROVED if event.approved else NotificationType.EVIDENCE_REJECTED
        )
        return self.dispatch(
            notification_type,
            [event.observation.get("owner_id")],
            event.observation,
            evidence_id=event.evidence_id,
            evidence_name=event.evidence_name,
            remarks=event.remarks or "",
            rejection_reason=event.rejection_reason,
        )

    def on_due_date_reminder(self, event: DueDateReminder) -> int:
        return self.dispatch(
            NotificationType.DUE_DATE_REMINDER,
            [event.observation.get("owner_id")],
            event.observation,
            days_remaining=event.days_remaining,
        )

    def on_overdue_reminder(self, event: OverdueReminder) -> int:
        return self.dispatch(
            NotificationType.OVERDUE_ALERT,
            [event.observation.get("owner_id")],
            event.observation,
            days_overdue=event.days_overdue,
        )

    def on_audit_status_changed(self, event: AuditStatusChanged) -> int:
        return self.dispatch(
            NotificationType.STATUS_CHANGED,
            [event.lead_auditor_id],
            {"title": event.name, "audit_id": event.audit_id},
            subject=f"Audit {event.audit_number}",
            from_status=event.from_status.value,
            to_status=event.to_status.value,
        )

    # Delivery

    def dispatch(self, notification_type: NotificationType, recipients: Iterable[Optional[int]], observation: Dict[str, Any], **extra) -> int:
        """
        Deliver one notification to each distinct recipient through every sink.

        Returns the number of successful per-recipient deliveries. Never raises.
        """
        unique_recipients = []
        for recipient in recipients:
            if recipient is not None and recipient not in unique_recipients:
                unique_recipients.append(recipient)

        data = dict(observation)
        data.update(extra)
        title, message = render(notification_type, data)
        payload = {
            "title": title,
            "message": message,
            "observation_id": observation.get("id"),
            "link": self._link(observation),
            "data": data,
        }

        delivered = 0
        for sink in self.sinks:
            if not sink.per_recipient:
                self._deliver(sink, notification_type, None, payload)
                continue
            for recipient in unique_recipients:
                if self._deliver(sink, notification_type, recipient, payload):
                    delivered += 1
        return delivered

    def _deliver(self, sink: NotificationSink, notification_type: NotificationType, recipient_id: Optional[int], payload: Dict[str, Any]) -> bool:
        try:
            sink.notify(notification_type, recipient_id, payload)
            return True
        except Exception as e:
            logger.error(
                f"Notification sink {type(sink).__name__} failed for {notification_type.value} "
                f"(recipient={recipient_id}): {e}",
                exc_info=True,
            )
            return False

    @staticmethod
    def _participants(observation: Dict[str, Any]) -> List[Optional[int]]:
        return [observation.get("owner_id"), observation.get("reviewer_id")]

    def _link(self, observation: Dict[str, Any]) -> Optional[str]:
        if not self.frontend_url or observation.get("id") is None:
            return None
        return f"{self.frontend_url}/observations/{observation['id']}"


def build_notification_dispatcher(settings, session_factory: Callable[[], Session]) -> NotificationDispatcher:
    """Assemble the sinks enabled by configuration."""
    sinks: List[NotificationSink] = [LoggingNotificationSink(), InAppNotificationSink(session_factory)]
    if settings.is_webhook_configured():
        sinks.append(WebhookNotificationSink(
            settings.NOTIFICATION_WEBHOOK_URL,
            timeout=settings.NOTIFICATION_TIMEOUT_SECONDS,
        ))
    return NotificationDispatcher(sinks, frontend_url=settings.FRONTEND_URL)


def build_event_bus(settings, session_factory: Callable[[], Session]) -> EventBus:
    """Event bus with the notification dispatcher subscribed when notifications are enabled."""
    executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="notify") if settings.NOTIFICATIONS_ASYNC else None
    bus = EventBus(executor=executor)
    if settings.NOTIFICATIONS_ENABLED:
        build_notification_dispatcher(settings, session_factory).register(bus)
        logger.info(
            f"Notifications enabled (async={settings.NOTIFICATIONS_ASYNC}, "
            f"webhook={'yes' if settings.is_webhook_configured() else 'no'})"
        )
    else:
        logger.info("Notifications disabled")
    return bus
