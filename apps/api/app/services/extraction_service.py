"""Deterministic half of the chat extraction agent.

Everything here is a pure function of its inputs: markup stripping, price
intent detection, rule-based price inference, and merging model-extracted
fields into the task without overwriting values that are already known.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Mapping

from app.services.ai_prompt_schemas import AIExtractedTaskFields
from app.utils.datetime_parsing import normalize_deadline

PRICE_INTENT_KEYWORDS = ("price", "cost", "how much")

GENERIC_TASK_TITLES = {"", "new task", "new task chat", "untitled task"}

TEXT_FIELDS = ("client_name", "client_email", "product_name", "product_description")


# =============================================================================
# Price inference
# =============================================================================

@dataclass(frozen=True)
class PriceRule:
    category: str
    base: Decimal
    keywords: tuple[str, ...]
    simple_keywords: tuple[str, ...]
    simple_multiplier: Decimal
    complex_keywords: tuple[str, ...]
    complex_multiplier: Decimal


PRICE_RULES: tuple[PriceRule, ...] = (
    PriceRule(
        "video", Decimal("1000"), ("video", "film", "animation"),
        ("short", "simple"), Decimal("0.5"),
        ("complex", "cinematic", "professional"), Decimal("2"),
    ),
    PriceRule(
        "design", Decimal("300"), ("graphic", "design", "logo"),
        ("simple", "basic"), Decimal("0.5"),
        ("brand", "identity"), Decimal("3"),
    ),
    PriceRule(
        "web", Decimal("2000"), ("web", "website", "app"),
        ("landing", "simple"), Decimal("0.5"),
        ("ecommerce", "platform"), Decimal("2.5"),
    ),
    PriceRule(
        "social", Decimal("150"), ("social", "post", "content"),
        ("single", "one"), Decimal("1"),
        ("campaign", "multiple"), Decimal("5"),
    ),
)

GENERAL_PRICE_RULE = PriceRule(
    "general", Decimal("400"), (),
    ("simple", "quick"), Decimal("0.5"),
    ("complex", "extensive"), Decimal("2"),
)


def _has_keyword(text: str, keywords: tuple[str, ...]) -> bool:
    return any(re.search(rf"\b{re.escape(word)}(?:s|es)?\b", text) for word in keywords)


def classify_work(description: str) -> PriceRule:
    """First category whose keywords appear in the description, else general."""
    text = (description or "").lower()
    for rule in PRICE_RULES:
        if _has_keyword(text, rule.keywords):
            return rule
    return GENERAL_PRICE_RULE


def infer_price(description: str) -> Decimal:
    """
    Estimate a price from description keywords.

    Base rate by category, scaled by the complexity multiplier. Simple
    keywords are checked first and complex keywords override them.
    """
    text = (description or "").lower()
    rule = classify_work(text)
    multiplier = Decimal("1")
    if _has_keyword(text, rule.simple_keywords):
        multiplier = rule.simple_multiplier
    if _has_keyword(text, rule.complex_keywords):
        multiplier = rule.complex_multiplier
    return (rule.base * multiplier).quantize(Decimal("1"), rounding=ROUND_HALF_UP)


def wants_price(message: str) -> bool:
    text = (message or "").lower()
    return any(keyword in text for keyword in PRICE_INTENT_KEYWORDS)


# =============================================================================
# Reply cleanup
# =============================================================================

_FENCED_CODE_RE = re.compile(r"```[^\n`]*\n?([\s\S]*?)```")
_INLINE_CODE_RE = re.compile(r"`([^`]*)`")
_BOLD_RE = re.compile(r"\*\*(.+?)\*\*|__(.+?)__", re.DOTALL)
_STRIKE_RE = re.compile(r"~~(.+?)~~", re.DOTALL)
_ITALIC_STAR_RE = re.compile(r"\*(?!\s)(.+?)(?<!\s)\*")
_ITALIC_UNDERSCORE_RE = re.compile(r"(?<!\w)_(?!\s)(.+?)(?<!\s)_(?!\w)")
_HEADING_RE = re.compile(r"^\s{0,3}#{1,6}\s+", re.MULTILINE)


def strip_markup(text: str) -> str:
    """Remove markdown emphasis, code and heading markers, keeping the words."""
    if not text:
        return ""
    cleaned = _FENCED_CODE_RE.sub(lambda m: m.group(1).strip(), text)
    cleaned = _INLINE_CODE_RE.sub(r"\1", cleaned)
    cleaned = _BOLD_RE.sub(lambda m: m.group(1) or m.group(2), cleaned)
    cleaned = _STRIKE_RE.sub(r"\1", cleaned)
    cleaned = _ITALIC_STAR_RE.sub(r"\1", cleaned)
    cleaned = _ITALIC_UNDERSCORE_RE.sub(r"\1", cleaned)
    cleaned = _HEADING_RE.sub("", cleaned)
    # Unpaired leftovers
    cleaned = cleaned.replace("`", "").replace("~~", "").replace("*", "")
    return cleaned.strip()


# =============================================================================
# Field merge
# =============================================================================

def _is_set(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def merge_extracted_fields(
    current: Mapping[str, Any],
    extracted: AIExtractedTaskFields | None,
    message: str,
    now: datetime,
) -> dict[str, Any]:
    """
    Compute the task update for one chat turn.

    Only fields that are empty on the task are emitted. Deadlines are
    normalized against `now` and dropped when unparseable. A price is taken
    from the extraction when explicit; otherwise a price-intent message gets
    a rule-based estimate from the description, or the product name when no
    description is known yet.
    """
    updates: dict[str, Any] = {}

    if extracted is not None:
        for name in TEXT_FIELDS:
            value = getattr(extracted, name)
            if _is_set(value) and not _is_set(current.get(name)):
                updates[name] = value.strip()

        if extracted.deadline and not _is_set(current.get("deadline")):
            deadline = normalize_deadline(extracted.deadline, now)
            if deadline is not None:
                updates["deadline"] = deadline

    explicit_price = extracted.estimated_price if extracted is not None else None
    if not _is_set(current.get("estimated_price")):
        if explicit_price is not None:
            updates["estimated_price"] = explicit_price
        elif wants_price(message):
            description = (
                current.get("product_description")
                or updates.get("product_description")
                or current.get("product_name")
                or updates.get("product_name")
            )
            if _is_set(description):
                updates["estimated_price"] = infer_price(description)

    return updates


def is_generic_title(title: str | None) -> bool:
    return (title or "").strip().lower() in GENERIC_TASK_TITLES
