"""
Activity logging service for the general audit trail.
"""
import logging
from typing import Optional, Dict, Any
from sqlalchemy.orm import Session

from app.models.activity_log import ActivityLog
from app.models.status_history import ActorSource

logger = logging.getLogger(__name__)


def log_activity(
    db: Session,
    actor_id: Optional[int],
    action: str,
    resource_type: Optional[str] = None,
    resource_id: Optional[int] = None,
    details: Optional[Dict[str, Any]] = None,
    commit: bool = True,
) -> ActivityLog:
    """
    Log an activity to the audit trail.

    Args:
        db: Database session
        actor_id: User performing the action, or None for the system actor
        action: Action name (e.g., "status_change", "evidence_upload")
        resource_type: Type of resource affected (e.g., "audit", "observation", "evidence")
        resource_id: ID of the affected resource
        details: Additional JSON details about the action
        commit: Commit immediately; pass False to batch with other writes

    Returns:
        Created ActivityLog record
    """
    activity = ActivityLog(
        actor_id=actor_id,
        actor_source=ActorSource.SYSTEM if actor_id is None else ActorSource.USER,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        details=details,
    )

    db.add(activity)
    if commit:
        db.commit()
        db.refresh(activity)

    logger.debug(f"Logged activity: {action} on {resource_type}:{resource_id} by {actor_id or 'system'}")

    return activity


# Common action constants
class ActivityAction:
    """Constants for activity actions."""
    CREATE = "create"
    UPDATE = "update"
    STATUS_CHANGE = "status_change"
    ASSIGN_OWNER = "assign_owner"
    ASSIGN_REVIEWER = "assign_reviewer"
    SOFT_DELETE = "soft_delete"
    EVIDENCE_UPLOAD = "evidence_upload"
    EVIDENCE_REVIEW = "evidence_review"
    EVIDENCE_SUPERSEDE = "evidence_supersede"
    DEADLINE_EXTENSION = "deadline_extension"


# Common resource types
class ResourceType:
    """Constants for resource types."""
    AUDIT = "audit"
    OBSERVATION = "observation"
    EVIDENCE = "evidence"
