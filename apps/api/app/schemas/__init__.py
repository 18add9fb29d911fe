"""Pydantic schemas for API request/response models."""

from app.schemas.auth import CallerContext, MeResponse
from app.schemas.org import OrgRead, SubscriptionSummary
from app.schemas.task import (
    TaskCreate,
    TaskListItem,
    TaskListResponse,
    TaskRead,
    TaskUpdate,
)

__all__ = [
    # Auth
    "CallerContext",
    "MeResponse",
    # Org
    "OrgRead",
    "SubscriptionSummary",
    # Task
    "TaskCreate",
    "TaskListItem",
    "TaskListResponse",
    "TaskRead",
    "TaskUpdate",
]
