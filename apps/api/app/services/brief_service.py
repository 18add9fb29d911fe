"""Brief compiler and brief generation jobs.

`compile_brief` is a pure rendering of a task, its transcript and its assets
into a flat text document. Two compilations from the same inputs differ only
in the trailing `Generated:` line.
"""

import logging
import re
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Sequence
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.db.enums import BriefStatus, JobType, MessageRole
from app.db.models import Asset, Job, Message, Task, User
from app.db.types import utcnow
from app.services import job_service, storage_service

logger = logging.getLogger(__name__)

NOT_SET = "Not set"
NOT_PROVIDED = "Not provided"
CURRENCY = "EUR"

_URL_RE = re.compile(r"https?://[^\s<>\"']+")
_URL_TRAILING = ".,;:!?)]}"


def _section(title: str) -> list[str]:
    return [title, "-" * len(title)]


def format_date(value: datetime | None) -> str:
    if value is None:
        return NOT_SET
    return value.strftime("%A, %B %d, %Y")


def format_timestamp(value: datetime) -> str:
    return value.strftime("%Y-%m-%d %H:%M UTC") if value.tzinfo else value.strftime("%Y-%m-%d %H:%M")


def format_price(value: Decimal | None) -> str:
    if value is None:
        return NOT_SET
    return f"{CURRENCY} {Decimal(value):,.2f}"


def format_size(size_bytes: int) -> str:
    return f"{size_bytes / 1024:.1f} KB"


def extract_links(texts: Iterable[str]) -> list[str]:
    """Distinct http(s) URLs in first-seen order."""
    seen: dict[str, None] = {}
    for text in texts:
        for match in _URL_RE.findall(text or ""):
            url = match.rstrip(_URL_TRAILING)
            if url and url not in seen:
                seen[url] = None
    return list(seen)


def _or(value: str | None, placeholder: str) -> str:
    if value is None or not str(value).strip():
        return placeholder
    return str(value).strip()


def compile_brief(
    task: Task,
    messages: Sequence[Message],
    assets: Sequence[Asset],
    generated_at: datetime,
    owner: User | None = None,
) -> str:
    """Render the brief. Empty LINKS and ASSETS sections are omitted."""
    lines: list[str] = ["PROJECT BRIEF", "=" * len("PROJECT BRIEF"), ""]

    lines += _section("TASK INFORMATION")
    lines += [
        f"Task ID: {task.id}",
        f"Title: {_or(task.title, NOT_SET)}",
        f"Status: {_or(task.status, NOT_SET)}",
        f"Created: {format_date(task.created_at)}",
        f"Last Updated: {format_date(task.updated_at)}",
        f"Product/Service: {_or(task.product_name, NOT_SET)}",
        f"Description: {_or(task.product_description, NOT_PROVIDED)}",
        "",
    ]

    client_name = task.client_name or (owner.display_name if owner else None)
    client_email = task.client_email or (owner.email if owner else None)
    lines += _section("CLIENT INFORMATION")
    lines += [
        f"Name: {_or(client_name, NOT_PROVIDED)}",
        f"Email: {_or(client_email, NOT_PROVIDED)}",
        "",
    ]

    lines += _section("PROJECT DETAILS")
    lines += [
        f"Deadline: {format_date(task.deadline)}",
        f"Estimated Price: {format_price(task.estimated_price)}",
        f"Final Price: {format_price(task.final_price)}",
        "",
    ]

    links = extract_links(message.content for message in messages)
    if links:
        lines += _section("LINKS")
        lines += [f"- {url}" for url in links]
        lines.append("")

    if assets:
        lines += _section(f"ASSETS ({len(assets)})")
        lines += [
            f"- {asset.original_name} ({format_size(asset.size_bytes)})" for asset in assets
        ]
        lines.append("")

    lines += _section("CONVERSATION")
    if not messages:
        lines.append("No messages yet")
    for index, message in enumerate(messages, start=1):
        speaker = "CLIENT" if message.role == MessageRole.USER.value else "AI ASSISTANT"
        lines.append(f"[{index}] {speaker} ({format_timestamp(message.created_at)}):")
        lines.append(message.content)
        if message.image_urls:
            lines += [f"  image: {url}" for url in message.image_urls]
        lines.append("")
    if messages:
        lines.pop()

    lines += ["", f"Generated: {format_timestamp(generated_at)}"]
    return "\n".join(lines)


def compile_task_brief(db: Session, task: Task, generated_at: datetime | None = None) -> str:
    owner = db.query(User).filter(User.id == task.owner_user_id).first()
    return compile_brief(
        task,
        list(task.messages),
        list(task.assets),
        generated_at or utcnow(),
        owner=owner,
    )


# =============================================================================
# Brief jobs
# =============================================================================

def queue_brief_generation(db: Session, task: Task) -> Job:
    """Mark the brief pending and schedule a generation job."""
    task.brief_status = BriefStatus.PENDING.value
    task.brief_error = None
    db.commit()
    return job_service.schedule_job(
        db,
        org_id=task.organization_id,
        job_type=JobType.GENERATE_BRIEF,
        payload={"task_id": str(task.id)},
    )


def try_queue_brief_generation(db: Session, task: Task) -> Job | None:
    """Best-effort queueing used after chat turns; never raises."""
    try:
        return queue_brief_generation(db, task)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to queue brief generation", extra={"task_id": str(task.id)})
        return None


def generate_and_store(db: Session, task_id: UUID) -> Task:
    """
    Compile the brief and upload it through the storage tiers.

    Raises:
        LookupError: task deleted since the job was queued
        storage_service.StorageError: no tier accepted the file
    """
    task = db.query(Task).filter(Task.id == task_id).first()
    if task is None:
        raise LookupError(f"Task {task_id} not found")

    generated_at = utcnow()
    document = compile_task_brief(db, task, generated_at)
    stored = storage_service.store_file(
        str(task.id),
        f"brief-{task.id}.txt",
        document.encode("utf-8"),
        "text/plain; charset=utf-8",
    )
    task.brief_url = stored.url
    task.brief_status = BriefStatus.SUCCEEDED.value
    task.brief_generated_at = generated_at
    task.brief_error = None
    db.commit()
    db.refresh(task)
    return task


def mark_brief_failed(db: Session, task_id: UUID, error: str) -> None:
    task = db.query(Task).filter(Task.id == task_id).first()
    if task is None:
        return
    task.brief_status = BriefStatus.FAILED.value
    task.brief_error = error[:2000]
    db.commit()
