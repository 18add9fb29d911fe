"""Deadline expression parsing for chat-extracted dates."""

from __future__ import annotations

import calendar
import re
from datetime import datetime, timedelta

DATE_FORMATS: list[str] = [
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%d.%m.%Y",
    "%m/%d/%Y",
    "%m-%d-%Y",
    "%B %d, %Y",
    "%B %d %Y",
    "%b %d, %Y",
    "%b %d %Y",
    "%d %B %Y",
    "%d %b %Y",
    "%A, %B %d, %Y",
]

_IN_N_UNITS_RE = re.compile(r"\bin\s+(\d+)\s*(day|week|month)s?\b")
_ORDINAL_SUFFIX_RE = re.compile(r"(\d{1,2})(st|nd|rd|th)\b")


def _midnight(value: datetime) -> datetime:
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def add_months(value: datetime, months: int) -> datetime:
    """Shift by calendar months, clamping the day to the target month length."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def resolve_relative_date(expression: str, now: datetime) -> datetime | None:
    """Resolve "tomorrow", "next week", "in 3 days" etc. against `now`.

    Results are at midnight of the resulting day in `now`'s timezone.
    """
    text = expression.strip().lower()
    today = _midnight(now)

    # An explicit count wins over keywords ("in 3 days from today").
    match = _IN_N_UNITS_RE.search(text)
    if match:
        amount = int(match.group(1))
        unit = match.group(2)
        if unit == "day":
            return today + timedelta(days=amount)
        if unit == "week":
            return today + timedelta(weeks=amount)
        return add_months(today, amount)

    if "day after tomorrow" in text:
        return today + timedelta(days=2)
    if "tomorrow" in text:
        return today + timedelta(days=1)
    if "today" in text or "tonight" in text:
        return today
    if "next week" in text:
        return today + timedelta(days=7)
    if "next month" in text:
        return add_months(today, 1)
    return None


def parse_absolute_date(expression: str, now: datetime) -> datetime | None:
    """Parse an absolute date; date-only values land on midnight in `now`'s zone."""
    value = _ORDINAL_SUFFIX_RE.sub(r"\1", expression.strip())
    if not value:
        return None

    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        parsed = None
    if parsed is not None:
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=now.tzinfo)
        return parsed

    for fmt in DATE_FORMATS:
        try:
            parsed = datetime.strptime(value, fmt)
        except ValueError:
            continue
        return _midnight(parsed).replace(tzinfo=now.tzinfo)
    return None


def normalize_deadline(expression: str | None, now: datetime) -> datetime | None:
    """
    Turn a free-text deadline into an absolute datetime.

    Relative expressions win over absolute parsing. Unparseable input yields
    None so the caller can skip the field update instead of storing text.
    """
    if not expression or not expression.strip():
        return None
    return resolve_relative_date(expression, now) or parse_absolute_date(expression, now)
