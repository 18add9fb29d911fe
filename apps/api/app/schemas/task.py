"""Pydantic schemas for tasks, messages and assets."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class TaskCreate(BaseModel):
    """Request to create a task."""
    title: str = Field("New Task", min_length=1, max_length=255)
    organization_id: UUID | None = None
    # Required when a provider or master admin creates on a client's behalf
    client_id: UUID | None = None
    product_name: str | None = Field(None, max_length=255)
    product_description: str | None = Field(None, max_length=5000)


class TaskUpdate(BaseModel):
    """Request to update a task (partial)."""
    title: str | None = Field(None, min_length=1, max_length=255)
    product_name: str | None = Field(None, max_length=255)
    product_description: str | None = Field(None, max_length=5000)
    client_name: str | None = Field(None, max_length=255)
    client_email: str | None = Field(None, max_length=255)
    deadline: datetime | None = None
    # Provider-only fields; status accepts legacy spellings
    status: str | None = None
    final_price: Decimal | None = Field(None, ge=0)


class TaskListItem(BaseModel):
    """Task list item."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    owner_user_id: UUID
    organization_id: UUID | None
    title: str
    product_name: str | None
    status: str
    deadline: datetime | None
    estimated_price: Decimal | None
    final_price: Decimal | None
    brief_status: str | None
    created_at: datetime
    updated_at: datetime


class TaskListResponse(BaseModel):
    tasks: list[TaskListItem]


class MessageRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    role: str
    content: str
    image_urls: list[str]
    created_at: datetime


class AssetRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    filename: str
    original_name: str
    mime_type: str
    size_bytes: int
    url: str
    storage_tier: str
    metadata: dict = Field(validation_alias="asset_metadata")
    created_at: datetime


class TaskRead(TaskListItem):
    """Full task response."""
    client_name: str | None
    client_email: str | None
    product_description: str | None
    brief_url: str | None
    brief_generated_at: datetime | None
    brief_error: str | None
    messages: list[MessageRead] = []
    assets: list[AssetRead] = []


class MessageCreate(BaseModel):
    """One chat turn from the client."""
    content: str = Field("", max_length=10000)
    image_urls: list[str] = Field(default_factory=list, max_length=10)


class ChatTurnResponse(BaseModel):
    user_message: MessageRead
    assistant_message: MessageRead
    updates: dict
    task: TaskListItem


class BriefQueuedResponse(BaseModel):
    job_id: UUID
    brief_status: str
