"""Asset service - task file uploads through the storage tiers."""

import hashlib
import logging
import uuid

from sqlalchemy.orm import Session

from app.core.config import settings
from app.db.models import Asset, Task
from app.services import storage_service

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {
    "pdf", "png", "jpg", "jpeg", "gif", "webp", "svg",
    "doc", "docx", "xls", "xlsx", "ppt", "pptx", "txt", "csv", "zip",
    "mp4", "mov", "mp3", "wav",
}
BLOCKED_MIME_PREFIXES = ("application/x-msdownload", "application/x-sh", "text/html")


def file_extension(filename: str) -> str:
    return filename.rsplit(".", 1)[-1].lower() if "." in filename else ""


def validate_file(filename: str, content_type: str, file_size: int) -> None:
    """
    Check extension, type and size.

    Raises:
        ValueError: file rejected
    """
    ext = file_extension(filename)
    if ext not in ALLOWED_EXTENSIONS:
        raise ValueError(f"File extension '.{ext}' not allowed")
    if content_type.startswith(BLOCKED_MIME_PREFIXES):
        raise ValueError(f"Content type '{content_type}' not allowed")
    if file_size == 0:
        raise ValueError("file: empty upload")
    if file_size > settings.MAX_UPLOAD_BYTES:
        max_mb = settings.MAX_UPLOAD_BYTES / (1024 * 1024)
        raise ValueError(f"File size exceeds {max_mb:.0f} MB limit")


def upload_asset(
    db: Session,
    task: Task,
    user_id: uuid.UUID,
    filename: str,
    content_type: str,
    data: bytes,
) -> Asset:
    """
    Validate, store and record an uploaded file.

    Raises:
        ValueError: validation failed
        storage_service.StorageError: no tier accepted the file
    """
    original_name = filename.strip() or "untitled"
    validate_file(original_name, content_type, len(data))

    ext = file_extension(original_name)
    stored_name = f"{uuid.uuid4()}.{ext}"
    stored = storage_service.store_file(str(task.id), stored_name, data, content_type)

    metadata = dict(stored.metadata)
    metadata["sha256"] = hashlib.sha256(data).hexdigest()
    asset = Asset(
        task_id=task.id,
        uploaded_by_user_id=user_id,
        filename=stored_name,
        original_name=original_name[:255],
        mime_type=content_type,
        size_bytes=len(data),
        url=stored.url,
        storage_tier=stored.tier.value,
        asset_metadata=metadata,
    )
    db.add(asset)
    db.commit()
    db.refresh(asset)
    logger.info(
        "Asset stored in %s tier", stored.tier.value, extra={"task_id": str(task.id)}
    )
    return asset


def list_assets(db: Session, task_id: uuid.UUID) -> list[Asset]:
    return (
        db.query(Asset)
        .filter(Asset.task_id == task_id)
        .order_by(Asset.created_at)
        .all()
    )
