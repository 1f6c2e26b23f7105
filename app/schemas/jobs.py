"""Schemas for scheduled job endpoints."""
from datetime import datetime
from pydantic import BaseModel


class JobResult(BaseModel):
    """Outcome of running a scheduled job once."""
    job: str
    processed: int
    ran_at: datetime
