"""Serve files stored in the local storage tier."""

import mimetypes
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from app.core.deps import get_current_session, get_db
from app.schemas.auth import CallerContext
from app.services import storage_service, task_service

router = APIRouter()


@router.get("/{task_id}/{filename}")
def download_file(
    task_id: UUID,
    filename: str,
    session: CallerContext = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Only callers who can see the task can read its files."""
    if not task_service.get_task(db, session, task_id):
        raise HTTPException(status_code=404, detail="File not found")

    path = storage_service.local_file_path(str(task_id), filename)
    if path is None:
        raise HTTPException(status_code=404, detail="File not found")

    media_type = mimetypes.guess_type(filename)[0] or "application/octet-stream"
    return FileResponse(path, media_type=media_type, filename=filename)
