"""
API key authentication and actor identification for protected endpoints.
"""
import logging
import secrets
from typing import Optional
from fastapi import Depends, Header, HTTPException, Security, status
from fastapi.security import APIKeyHeader

from app.core.config import settings
from app.models.status_history import ActorSource

logger = logging.getLogger(__name__)

# Define the API key header
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


class Principal:
    """Caller of an endpoint: the acting user, or the system when no user is named."""
    def __init__(self, actor_id: Optional[int] = None):
        self.actor_id = actor_id
        self.source = ActorSource.SYSTEM if actor_id is None else ActorSource.USER


def verify_api_key(api_key: Optional[str] = Security(api_key_header)) -> None:
    """
    Dependency to verify the static API key.

    If config.API_KEY is not set, authentication is disabled (for testing/dev).

    Raises:
        HTTPException: If API key is missing or invalid
    """
    if not settings.API_KEY or settings.API_KEY.strip() == "":
        logger.debug("API_KEY not configured - authentication is disabled")
        return

    if not api_key:
        logger.warning("API key missing from request")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing API key",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    if not secrets.compare_digest(api_key, settings.API_KEY):
        logger.warning(f"Invalid API key attempted: {api_key[:4]}...")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
            headers={"WWW-Authenticate": "ApiKey"},
        )


def get_principal(
    _auth: None = Depends(verify_api_key),
    x_actor_id: Optional[int] = Header(None, alias="X-Actor-Id", description="Acting user id"),
) -> Principal:
    """Identify the caller from the X-Actor-Id header; absent means the system actor."""
    return Principal(actor_id=x_actor_id)


def require_actor(principal: Principal = Depends(get_principal)) -> Principal:
    """
    Dependency for mutations that must be attributed to a user.

    Raises:
        HTTPException: 400 if X-Actor-Id is missing
    """
    if principal.actor_id is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Actor-Id header is required for this operation",
        )
    return principal
