"""Task service - scoped task CRUD and transcript persistence."""

import logging
from typing import Any
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.tenancy import can_manage_org, is_subscription_active, scope_owned_query
from app.db.enums import MessageRole, Role, TaskStatus
from app.db.models import Message, Task, User
from app.schemas.auth import CallerContext
from app.schemas.task import TaskCreate, TaskUpdate
from app.services import link_service
from app.services.extraction_service import is_generic_title

logger = logging.getLogger(__name__)

CLIENT_EDITABLE_FIELDS = (
    "title", "product_name", "product_description", "client_name", "client_email", "deadline",
)
SHORT_TEXT_LIMIT = 255
TRUNCATED_FIELDS = ("client_name", "product_name")


class TaskTargetNotFoundError(LookupError):
    """Organization or client outside the caller's scope (reported as 404)."""


class TaskPermissionError(PermissionError):
    pass


def _scoped(db: Session, caller: CallerContext):
    return scope_owned_query(db.query(Task), caller, Task.organization_id, Task.owner_user_id)


def list_tasks(
    db: Session,
    caller: CallerContext,
    status: TaskStatus | None = None,
    limit: int = 200,
) -> list[Task]:
    """Tasks visible to the caller, most recently updated first."""
    query = _scoped(db, caller)
    if status:
        query = query.filter(Task.status == status.value)
    return query.order_by(Task.updated_at.desc()).limit(limit).all()


def get_task(db: Session, caller: CallerContext, task_id: UUID) -> Task | None:
    """Task by id, or None when absent or outside the caller's scope."""
    return _scoped(db, caller).filter(Task.id == task_id).first()


def create_task(db: Session, caller: CallerContext, data: TaskCreate) -> Task:
    """
    Create a task.

    Clients create in the named organization or their primary one.
    Providers create for a linked client in their own organization.
    Master admins must name both organization and client.

    Raises:
        ValueError: missing organization/client or inactive subscription
        TaskTargetNotFoundError: organization or client not reachable
    """
    if caller.role == Role.CLIENT:
        org_id = data.organization_id or caller.primary_org_id
        if org_id is None:
            raise ValueError("Join a service provider before creating tasks")
        if not caller.can_access_org(org_id):
            raise TaskTargetNotFoundError("Organization not found")
        owner_id = caller.user_id
    else:
        if data.client_id is None:
            raise ValueError("client_id: required when creating a task for a client")
        if caller.role == Role.SERVICE_PROVIDER:
            org_id = data.organization_id or caller.primary_org_id
            if org_id is None:
                raise ValueError("Organization is not provisioned")
        else:
            org_id = data.organization_id
            if org_id is None:
                raise ValueError("organization_id: required")
        if not caller.can_access_org(org_id):
            raise TaskTargetNotFoundError("Organization not found")
        if not link_service.is_linked(db, data.client_id, org_id):
            raise TaskTargetNotFoundError("Client not found")
        owner_id = data.client_id

    if not is_subscription_active(db, org_id):
        raise ValueError("The service provider's subscription is not active")

    task = Task(
        owner_user_id=owner_id,
        organization_id=org_id,
        title=data.title.strip() or "New Task",
        product_name=data.product_name,
        product_description=data.product_description,
        status=TaskStatus.DRAFT.value,
    )
    db.add(task)
    db.commit()
    db.refresh(task)
    return task


def update_task(db: Session, caller: CallerContext, task: Task, data: TaskUpdate) -> Task:
    """
    Apply a partial update.

    Raises:
        TaskPermissionError: client tried to set provider-only fields
        ValueError: unknown status
    """
    changes = data.model_dump(exclude_unset=True)
    provider_fields = {"status", "final_price"} & changes.keys()
    if provider_fields and not can_manage_org(caller, task.organization_id):
        raise TaskPermissionError(
            f"Only the service provider can change {', '.join(sorted(provider_fields))}"
        )

    if "status" in changes:
        if changes["status"] is None:
            raise ValueError("status: cannot be empty")
        try:
            task.status = TaskStatus.parse(changes["status"]).value
        except ValueError:
            raise ValueError(f"status: unknown value '{changes['status']}'")
    if "final_price" in changes:
        task.final_price = changes["final_price"]

    for field in CLIENT_EDITABLE_FIELDS:
        if field in changes:
            value = changes[field]
            if field == "title" and not value:
                continue
            setattr(task, field, value)

    db.commit()
    db.refresh(task)
    return task


def can_delete_task(caller: CallerContext, task: Task) -> bool:
    if caller.unrestricted:
        return True
    if task.owner_user_id == caller.user_id:
        return True
    return can_manage_org(caller, task.organization_id)


def delete_task(db: Session, task: Task) -> None:
    """Delete a task with its messages and assets."""
    db.delete(task)
    db.commit()


# =============================================================================
# Messages
# =============================================================================

def list_messages(db: Session, task_id: UUID) -> list[Message]:
    return (
        db.query(Message)
        .filter(Message.task_id == task_id)
        .order_by(Message.sequence, Message.created_at)
        .all()
    )


def recent_messages(db: Session, task_id: UUID, limit: int = 10) -> list[Message]:
    """Last `limit` messages in chronological order."""
    rows = (
        db.query(Message)
        .filter(Message.task_id == task_id)
        .order_by(Message.sequence.desc(), Message.created_at.desc())
        .limit(limit)
        .all()
    )
    return list(reversed(rows))


def append_message(
    db: Session,
    task: Task,
    role: MessageRole,
    content: str,
    image_urls: list[str] | None = None,
) -> Message:
    """Append to the transcript (never reorders or edits earlier entries)."""
    next_sequence = (
        db.query(func.coalesce(func.max(Message.sequence), 0))
        .filter(Message.task_id == task.id)
        .scalar()
    ) + 1
    message = Message(
        task_id=task.id,
        sequence=next_sequence,
        role=role.value,
        content=content,
        image_urls=list(image_urls or []),
    )
    db.add(message)
    db.commit()
    db.refresh(message)
    return message


def apply_field_updates(db: Session, task: Task, updates: dict[str, Any]) -> dict[str, Any]:
    """
    Write extracted fields onto the task.

    Returns the fields that actually changed; a generic title is replaced by
    a newly accepted product name. Names longer than the column are cut and
    an over-long email is dropped.
    """
    changed: dict[str, Any] = {}
    for field, value in updates.items():
        if isinstance(value, str) and len(value) > SHORT_TEXT_LIMIT:
            if field in TRUNCATED_FIELDS:
                value = value[:SHORT_TEXT_LIMIT]
            elif field == "client_email":
                logger.warning("Dropping over-long client email", extra={"task_id": str(task.id)})
                continue
        if getattr(task, field) != value:
            setattr(task, field, value)
            changed[field] = value

    if "product_name" in changed and is_generic_title(task.title):
        task.title = changed["product_name"]
        changed["title"] = task.title

    if changed:
        db.commit()
        db.refresh(task)
    return changed


def get_owner(db: Session, task: Task) -> User | None:
    return db.query(User).filter(User.id == task.owner_user_id).first()
