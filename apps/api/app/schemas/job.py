"""Pydantic schemas for background jobs."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class JobRead(BaseModel):
    """Job status as polled by the frontend."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    organization_id: UUID | None
    job_type: str
    payload: dict
    run_at: datetime
    status: str
    attempts: int
    max_attempts: int
    last_error: str | None
    created_at: datetime
    completed_at: datetime | None
