"""Conversational extraction agent.

One chat turn produces an assistant reply and, for text turns, a partial
update of the task's structured fields:

- text turns: reply and field extraction run concurrently; a reply failure
  fails the turn, an extraction failure only means "no field update"
- image turns: an image-capable model replies (falling back to the text
  model) and fields are never updated
- any accepted field change queues a brief regeneration job
"""

import asyncio
import base64
import logging
import mimetypes
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import httpx
from sqlalchemy.orm import Session

from app.core.url_validation import get_public_url, validate_outbound_url
from app.db.enums import MessageRole
from app.db.models import Job, Message, Task
from app.services import brief_service, storage_service, task_service
from app.services.ai_prompt_schemas import AIExtractedTaskFields
from app.services.ai_provider import (
    AIProvider,
    AIProviderError,
    ChatMessage,
    ImagePart,
    get_text_provider,
    get_vision_provider,
)
from app.services.ai_response_validation import parse_json_object, validate_model
from app.services.extraction_service import TEXT_FIELDS, merge_extracted_fields, strip_markup

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 10
IMAGE_ONLY_PLACEHOLDER = "(sent images)"
MAX_IMAGE_BYTES = 10 * 1024 * 1024
EMPTY_REPLY_FALLBACK = "Thanks! Could you tell me a bit more about what you need?"

REPLY_SYSTEM_PROMPT = """You are the project assistant for a creative agency. You help clients \
describe their project so the team can prepare a brief.

Ask at most two short questions per reply. Work toward knowing: the client's name and email, \
the product or service being promoted, what should be produced, the deadline and the budget. \
When the client asks about price, give the estimate shown below if there is one and explain \
that the agency confirms the final price.

Reply in plain conversational text. Do not use markdown, bullet symbols, bold or headings.

Current task details:
{task_context}

Uploaded files: {asset_names}"""

EXTRACTION_SYSTEM_PROMPT = """Extract project details stated by the client in their latest message.
Return a JSON object with exactly these keys (use null when the message does not state a value):
"client_name", "client_email", "product_name", "product_description", "deadline", "estimated_price".

- deadline: copy the client's wording ("tomorrow", "in 2 weeks", "2024-05-01")
- estimated_price: a number only when the client states a budget or price
- never guess or repeat details that are not in the latest message"""

IMAGE_SYSTEM_PROMPT = """You are the project assistant for a creative agency. The client attached \
images to the conversation. Describe what is relevant for their project (style, colors, \
subject, text in the image) and ask one follow-up question. Reply in plain text without markdown.

Current task details:
{task_context}"""

IMAGE_FALLBACK_NOTE = "[The client attached {count} image(s) that could not be analyzed.]"


@dataclass
class TurnContext:
    """Snapshot of the task passed to the model."""

    task_id: str
    fields: dict[str, Any]
    asset_names: list[str]
    history: list[ChatMessage]

    def render_fields(self) -> str:
        lines = []
        for name, value in self.fields.items():
            label = name.replace("_", " ").capitalize()
            lines.append(f"- {label}: {value if value not in (None, '') else 'unknown'}")
        return "\n".join(lines)


@dataclass
class ChatTurnResult:
    user_message: Message
    assistant_message: Message
    updates: dict[str, Any]
    brief_job: Job | None = None


def snapshot_fields(task: Task) -> dict[str, Any]:
    fields = {name: getattr(task, name) for name in TEXT_FIELDS}
    fields["deadline"] = task.deadline
    fields["estimated_price"] = task.estimated_price
    return fields


def build_context(db: Session, task: Task) -> TurnContext:
    history = [
        ChatMessage(role=message.role, content=message.content)
        for message in task_service.recent_messages(db, task.id, HISTORY_LIMIT)
    ]
    return TurnContext(
        task_id=str(task.id),
        fields=snapshot_fields(task),
        asset_names=[asset.original_name for asset in task.assets],
        history=history,
    )


# =============================================================================
# Model calls
# =============================================================================

async def generate_reply(provider: AIProvider, context: TurnContext, message: str) -> str:
    system = REPLY_SYSTEM_PROMPT.format(
        task_context=context.render_fields(),
        asset_names=", ".join(context.asset_names) or "none",
    )
    messages = [ChatMessage(role="system", content=system), *context.history]
    messages.append(ChatMessage(role="user", content=message))
    response = await provider.chat(messages, temperature=0.8, max_tokens=500)
    return response.content


async def extract_fields(provider: AIProvider, message: str) -> AIExtractedTaskFields | None:
    response = await provider.chat(
        [
            ChatMessage(role="system", content=EXTRACTION_SYSTEM_PROMPT),
            ChatMessage(role="user", content=message),
        ],
        temperature=0.1,
        max_tokens=300,
        json_mode=True,
    )
    return validate_model(AIExtractedTaskFields, parse_json_object(response.content))


def check_image_urls(task: Task, image_urls: list[str]) -> None:
    """
    Refuse image URLs the server must not read on the caller's behalf.

    Local `/files/` URLs must belong to this task; anything else must be a
    public http(s) URL.

    Raises:
        ValueError: a URL points at another task's files or a refused host
    """
    for url in image_urls:
        local = storage_service.parse_local_url(url)
        if local is not None:
            if local[0] != str(task.id):
                raise ValueError("image_urls: files must belong to this task")
            continue
        try:
            validate_outbound_url(url)
        except ValueError as e:
            raise ValueError(f"image_urls: {e}") from e


async def load_images(folder: str, image_urls: list[str]) -> list[ImagePart]:
    """Fetch images as base64; unreadable or refused ones are skipped."""
    images: list[ImagePart] = []
    async with httpx.AsyncClient(timeout=20.0) as client:
        for url in image_urls:
            guessed = mimetypes.guess_type(url.split("?", 1)[0])[0]
            mime_type = guessed
            local = storage_service.parse_local_url(url)
            if local is not None:
                if local[0] != folder:
                    logger.warning("Skipping chat image from another task")
                    continue
                data = storage_service.read_local_url(url)
                if data is None:
                    continue
            else:
                try:
                    response = await get_public_url(client, url)
                    response.raise_for_status()
                except (httpx.HTTPError, ValueError) as e:
                    logger.warning("Could not fetch chat image: %s", type(e).__name__)
                    continue
                data = response.content
                header_type = response.headers.get("content-type", "").split(";")[0]
                if header_type.startswith("image/"):
                    mime_type = header_type
            if len(data) > MAX_IMAGE_BYTES:
                logger.warning("Skipping oversized chat image (%s bytes)", len(data))
                continue
            images.append(
                ImagePart(
                    mime_type=mime_type or "image/jpeg",
                    data=base64.b64encode(data).decode("ascii"),
                )
            )
    return images


async def run_text_turn(context: TurnContext, message: str) -> tuple[str, AIExtractedTaskFields | None]:
    """Reply and extraction in parallel."""
    provider = get_text_provider()
    reply, extracted = await asyncio.gather(
        generate_reply(provider, context, message),
        extract_fields(provider, message),
        return_exceptions=True,
    )
    if isinstance(reply, BaseException):
        raise reply
    if isinstance(extracted, BaseException):
        logger.warning("Field extraction failed: %s", type(extracted).__name__)
        extracted = None
    return reply, extracted


async def run_image_turn(context: TurnContext, message: str, image_urls: list[str]) -> str:
    """Vision reply; falls back to a text-only reply when vision is unavailable."""
    try:
        provider = get_vision_provider()
        images = await load_images(context.task_id, image_urls)
        if not images:
            raise AIProviderError("No readable images")
        system = IMAGE_SYSTEM_PROMPT.format(task_context=context.render_fields())
        response = await provider.chat(
            [
                ChatMessage(role="system", content=system),
                *context.history,
                ChatMessage(role="user", content=message, images=images),
            ],
            temperature=0.7,
            max_tokens=800,
        )
        return response.content
    except AIProviderError as e:
        logger.warning("Vision reply unavailable, falling back to text: %s", e)

    note = IMAGE_FALLBACK_NOTE.format(count=len(image_urls))
    text = f"{message}\n\n{note}" if message != IMAGE_ONLY_PLACEHOLDER else note
    return await generate_reply(get_text_provider(), context, text)


# =============================================================================
# Turn orchestration
# =============================================================================

async def process_chat_turn(
    db: Session,
    task: Task,
    content: str,
    image_urls: list[str] | None = None,
    now: datetime | None = None,
) -> ChatTurnResult:
    """
    Persist the user message, get a reply, merge fields, persist the reply.

    The user message is stored before any model call, so a failed reply
    leaves it in the transcript.

    Raises:
        ValueError: neither text nor images supplied, or a refused image URL
        AIProviderError: the reply could not be generated
    """
    text = (content or "").strip()
    image_urls = [url.strip() for url in image_urls or [] if url and url.strip()]
    if not text and not image_urls:
        raise ValueError("content: message text or images are required")
    check_image_urls(task, image_urls)

    now = now or datetime.now().astimezone()
    context = build_context(db, task)
    message_text = text or IMAGE_ONLY_PLACEHOLDER
    user_message = task_service.append_message(
        db, task, MessageRole.USER, message_text, image_urls
    )

    if image_urls:
        reply = await run_image_turn(context, message_text, image_urls)
        updates: dict[str, Any] = {}
    else:
        reply, extracted = await run_text_turn(context, message_text)
        updates = merge_extracted_fields(context.fields, extracted, message_text, now)

    reply = strip_markup(reply) or EMPTY_REPLY_FALLBACK
    assistant_message = task_service.append_message(db, task, MessageRole.ASSISTANT, reply)

    changed = task_service.apply_field_updates(db, task, updates)
    brief_job = None
    if changed:
        logger.info(
            "Chat turn updated task fields: %s",
            ", ".join(sorted(changed)),
            extra={"task_id": str(task.id)},
        )
        brief_job = brief_service.try_queue_brief_generation(db, task)

    return ChatTurnResult(
        user_message=user_message,
        assistant_message=assistant_message,
        updates=changed,
        brief_job=brief_job,
    )
