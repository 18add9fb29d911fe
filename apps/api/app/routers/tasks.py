"""Tasks router - task CRUD, chat turns, assets and briefs."""

import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, File, HTTPException, Query, Request, UploadFile
from fastapi.responses import PlainTextResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.core.config import settings
from app.core.deps import get_current_session, get_db, require_csrf_header
from app.core.structured_logging import build_log_context
from app.db.enums import TaskStatus
from app.db.models import Task
from app.schemas.auth import CallerContext
from app.schemas.task import (
    AssetRead,
    BriefQueuedResponse,
    ChatTurnResponse,
    MessageCreate,
    MessageRead,
    TaskCreate,
    TaskListItem,
    TaskListResponse,
    TaskRead,
    TaskUpdate,
)
from app.services import asset_service, brief_service, chat_service, storage_service, task_service
from app.services.ai_provider import AIProviderError
from app.utils.file_upload import content_length_exceeds_limit

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_task_or_404(db: Session, session: CallerContext, task_id: UUID) -> Task:
    """Out-of-scope tasks are indistinguishable from missing ones."""
    task = task_service.get_task(db, session, task_id)
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    return task


@router.get("", response_model=TaskListResponse)
def list_tasks(
    session: CallerContext = Depends(get_current_session),
    db: Session = Depends(get_db),
    status: str | None = Query(None, description="draft, started, done or archive"),
):
    """List tasks visible to the caller (empty when not linked to any organization)."""
    status_filter = None
    if status:
        try:
            status_filter = TaskStatus.parse(status)
        except ValueError:
            raise HTTPException(status_code=400, detail=f"status: unknown value '{status}'")
    tasks = task_service.list_tasks(db, session, status_filter)
    return TaskListResponse(tasks=[TaskListItem.model_validate(t) for t in tasks])


@router.post(
    "",
    response_model=TaskRead,
    status_code=201,
    dependencies=[Depends(require_csrf_header)],
)
def create_task(
    body: TaskCreate,
    session: CallerContext = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    try:
        task = task_service.create_task(db, session, body)
    except task_service.TaskTargetNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return TaskRead.model_validate(task)


@router.get("/{task_id}", response_model=TaskRead)
def get_task(
    task_id: UUID,
    session: CallerContext = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    return TaskRead.model_validate(_get_task_or_404(db, session, task_id))


@router.patch("/{task_id}", response_model=TaskRead, dependencies=[Depends(require_csrf_header)])
def update_task(
    task_id: UUID,
    body: TaskUpdate,
    session: CallerContext = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Clients edit descriptive fields; providers may also set status and final price."""
    task = _get_task_or_404(db, session, task_id)
    try:
        task = task_service.update_task(db, session, task, body)
    except task_service.TaskPermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return TaskRead.model_validate(task)


@router.delete("/{task_id}", status_code=204, dependencies=[Depends(require_csrf_header)])
def delete_task(
    task_id: UUID,
    session: CallerContext = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    task = _get_task_or_404(db, session, task_id)
    if not task_service.can_delete_task(session, task):
        raise HTTPException(status_code=403, detail="Not authorized to delete this task")
    task_service.delete_task(db, task)
    return None


# =============================================================================
# Chat
# =============================================================================

@router.get("/{task_id}/messages", response_model=list[MessageRead])
def list_messages(
    task_id: UUID,
    session: CallerContext = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    task = _get_task_or_404(db, session, task_id)
    return [MessageRead.model_validate(m) for m in task_service.list_messages(db, task.id)]


@router.post(
    "/{task_id}/messages",
    response_model=ChatTurnResponse,
    dependencies=[Depends(require_csrf_header)],
)
async def send_message(
    task_id: UUID,
    body: MessageCreate,
    session: CallerContext = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """
    Run one chat turn.

    The user message is stored before the assistant is called; when the
    reply fails the message stays in the transcript and the turn returns 500.
    """
    task = _get_task_or_404(db, session, task_id)
    try:
        result = await chat_service.process_chat_turn(db, task, body.content, body.image_urls)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except AIProviderError:
        logger.exception(
            "Assistant reply failed",
            extra=build_log_context(
                user_id=str(session.user_id), task_id=str(task_id), route="/tasks/messages"
            ),
        )
        raise HTTPException(status_code=500, detail="AI assistant is unavailable")

    db.refresh(task)
    return ChatTurnResponse(
        user_message=MessageRead.model_validate(result.user_message),
        assistant_message=MessageRead.model_validate(result.assistant_message),
        updates=result.updates,
        task=TaskListItem.model_validate(task),
    )


# =============================================================================
# Assets
# =============================================================================

@router.get("/{task_id}/assets", response_model=list[AssetRead])
def list_assets(
    task_id: UUID,
    session: CallerContext = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    task = _get_task_or_404(db, session, task_id)
    return [AssetRead.model_validate(a) for a in asset_service.list_assets(db, task.id)]


@router.post(
    "/{task_id}/assets",
    response_model=AssetRead,
    status_code=201,
    dependencies=[Depends(require_csrf_header)],
)
async def upload_asset(
    task_id: UUID,
    request: Request,
    file: Annotated[UploadFile, File()],
    session: CallerContext = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Upload a file; stored in the first storage tier that accepts it."""
    task = _get_task_or_404(db, session, task_id)
    if content_length_exceeds_limit(
        request.headers.get("content-length"), max_size_bytes=settings.MAX_UPLOAD_BYTES
    ):
        raise HTTPException(status_code=413, detail="File too large")

    data = await file.read()
    try:
        asset = await run_in_threadpool(
            asset_service.upload_asset,
            db,
            task,
            session.user_id,
            file.filename or "untitled",
            file.content_type or "application/octet-stream",
            data,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except storage_service.StorageError:
        logger.exception("Asset upload failed", extra={"task_id": str(task_id)})
        raise HTTPException(status_code=500, detail="File could not be stored")
    return AssetRead.model_validate(asset)


# =============================================================================
# Brief
# =============================================================================

@router.get("/{task_id}/brief", response_class=PlainTextResponse)
def get_brief(
    task_id: UUID,
    session: CallerContext = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Compile the brief from the task's current state."""
    task = _get_task_or_404(db, session, task_id)
    return PlainTextResponse(brief_service.compile_task_brief(db, task))


@router.post(
    "/{task_id}/brief",
    response_model=BriefQueuedResponse,
    status_code=202,
    dependencies=[Depends(require_csrf_header)],
)
def regenerate_brief(
    task_id: UUID,
    session: CallerContext = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Queue a brief generation job; poll the task or GET /jobs/{id} for the result."""
    task = _get_task_or_404(db, session, task_id)
    job = brief_service.queue_brief_generation(db, task)
    return BriefQueuedResponse(job_id=job.id, brief_status=task.brief_status)
