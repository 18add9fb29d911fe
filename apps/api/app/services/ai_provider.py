"""AI Provider abstraction layer.

Two interchangeable providers behind one interface:
- OpenAI: conversation replies and JSON-mode field extraction
- Gemini: image-capable replies and website brand analysis
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import httpx

from app.core.config import settings

logger = logging.getLogger(__name__)


class AIProviderError(Exception):
    """Upstream model call failed or no provider is configured."""


@dataclass
class ImagePart:
    """Inline image payload (base64 encoded)."""

    mime_type: str
    data: str


@dataclass
class ChatMessage:
    """A single message in a conversation."""

    role: str  # 'system', 'user', 'assistant'
    content: str
    images: list[ImagePart] = field(default_factory=list)


@dataclass
class ChatResponse:
    """Response from an AI provider."""

    content: str
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int
    model: str


class AIProvider(ABC):
    """Abstract base class for AI providers."""

    name: str = ""

    @abstractmethod
    async def chat(
        self,
        messages: list[ChatMessage],
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int = 2000,
        json_mode: bool = False,
    ) -> ChatResponse:
        """Send a chat completion request."""
        pass


class OpenAIProvider(AIProvider):
    """OpenAI API provider."""

    name = "openai"

    def __init__(self, api_key: str, default_model: str = "gpt-4o-mini"):
        self.api_key = api_key
        self.default_model = default_model
        self.base_url = "https://api.openai.com/v1"

    async def chat(
        self,
        messages: list[ChatMessage],
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int = 2000,
        json_mode: bool = False,
    ) -> ChatResponse:
        model = model or self.default_model
        body: dict[str, Any] = {
            "model": model,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if json_mode:
            body["response_format"] = {"type": "json_object"}

        try:
            async with httpx.AsyncClient(timeout=settings.AI_TIMEOUT_SECONDS) as client:
                response = await client.post(
                    f"{self.base_url}/chat/completions",
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                    json=body,
                )
                response.raise_for_status()
                data = response.json()
            content = data["choices"][0]["message"]["content"] or ""
        except (httpx.HTTPError, KeyError, IndexError, ValueError) as e:
            raise AIProviderError(f"OpenAI request failed: {type(e).__name__}") from e

        usage = data.get("usage", {})
        return ChatResponse(
            content=content,
            prompt_tokens=usage.get("prompt_tokens", 0),
            completion_tokens=usage.get("completion_tokens", 0),
            total_tokens=usage.get("total_tokens", 0),
            model=model,
        )


class GeminiProvider(AIProvider):
    """Google Gemini API provider (supports inline images)."""

    name = "gemini"

    def __init__(self, api_key: str, default_model: str = "gemini-1.5-flash"):
        self.api_key = api_key
        self.default_model = default_model
        self.base_url = "https://generativelanguage.googleapis.com/v1beta"

    async def chat(
        self,
        messages: list[ChatMessage],
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int = 2000,
        json_mode: bool = False,
    ) -> ChatResponse:
        model = model or self.default_model

        # Gemini uses 'user' and 'model' roles, system goes in systemInstruction
        system_instruction = None
        contents = []
        for msg in messages:
            if msg.role == "system":
                system_instruction = msg.content
                continue
            parts: list[dict[str, Any]] = [{"text": msg.content}]
            for image in msg.images:
                parts.append(
                    {"inline_data": {"mime_type": image.mime_type, "data": image.data}}
                )
            role = "model" if msg.role == "assistant" else "user"
            contents.append({"role": role, "parts": parts})

        generation_config: dict[str, Any] = {
            "temperature": temperature,
            "maxOutputTokens": max_tokens,
        }
        if json_mode:
            generation_config["responseMimeType"] = "application/json"
        request_body: dict[str, Any] = {
            "contents": contents,
            "generationConfig": generation_config,
        }
        if system_instruction:
            request_body["systemInstruction"] = {"parts": [{"text": system_instruction}]}

        try:
            async with httpx.AsyncClient(timeout=settings.AI_TIMEOUT_SECONDS) as client:
                response = await client.post(
                    f"{self.base_url}/models/{model}:generateContent",
                    params={"key": self.api_key},
                    headers={"Content-Type": "application/json"},
                    json=request_body,
                )
                response.raise_for_status()
                data = response.json()
            content = "".join(
                part.get("text", "")
                for part in data["candidates"][0]["content"]["parts"]
            )
        except (httpx.HTTPError, KeyError, IndexError, ValueError) as e:
            raise AIProviderError(f"Gemini request failed: {type(e).__name__}") from e

        usage = data.get("usageMetadata", {})
        prompt_tokens = usage.get("promptTokenCount", 0)
        completion_tokens = usage.get("candidatesTokenCount", 0)
        return ChatResponse(
            content=content,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
            model=model,
        )


def get_provider(provider_name: str, api_key: str, model: str | None = None) -> AIProvider:
    """Factory function to get the appropriate AI provider."""
    if provider_name == "openai":
        return OpenAIProvider(api_key, default_model=model or settings.OPENAI_MODEL)
    elif provider_name == "gemini":
        return GeminiProvider(api_key, default_model=model or settings.GEMINI_VISION_MODEL)
    else:
        raise ValueError(f"Unknown provider: {provider_name}")


def get_text_provider() -> AIProvider:
    """Provider for conversation replies and field extraction."""
    if settings.openai_enabled:
        return get_provider("openai", settings.OPENAI_API_KEY)
    if settings.gemini_enabled:
        return get_provider("gemini", settings.GEMINI_API_KEY)
    raise AIProviderError("No AI provider configured")


def get_vision_provider() -> AIProvider:
    """Image-capable provider for turns with attachments."""
    if not settings.gemini_enabled:
        raise AIProviderError("Gemini is not configured")
    return get_provider("gemini", settings.GEMINI_API_KEY, settings.GEMINI_VISION_MODEL)


def get_analysis_provider() -> AIProvider:
    """Provider for long-form website brand analysis."""
    if settings.gemini_enabled:
        return get_provider("gemini", settings.GEMINI_API_KEY, settings.GEMINI_ANALYSIS_MODEL)
    return get_text_provider()
