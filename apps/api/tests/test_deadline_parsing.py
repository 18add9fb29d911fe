"""Tests for free-text deadline normalization."""

from datetime import datetime, timezone

import pytest

from app.utils.datetime_parsing import add_months, normalize_deadline

NOW = datetime(2024, 3, 10, 15, 30, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "expression, expected",
    [
        ("tomorrow", datetime(2024, 3, 11, tzinfo=timezone.utc)),
        ("by tomorrow please", datetime(2024, 3, 11, tzinfo=timezone.utc)),
        ("day after tomorrow", datetime(2024, 3, 12, tzinfo=timezone.utc)),
        ("in 3 days", datetime(2024, 3, 13, tzinfo=timezone.utc)),
        ("in 2 weeks", datetime(2024, 3, 24, tzinfo=timezone.utc)),
        ("next week", datetime(2024, 3, 17, tzinfo=timezone.utc)),
        ("next month", datetime(2024, 4, 10, tzinfo=timezone.utc)),
        ("today", datetime(2024, 3, 10, tzinfo=timezone.utc)),
    ],
)
def test_relative_expressions_resolve_to_midnight(expression, expected):
    assert normalize_deadline(expression, NOW) == expected


def test_absolute_iso_date():
    assert normalize_deadline("2024-05-01", NOW) == datetime(2024, 5, 1, tzinfo=timezone.utc)


def test_absolute_named_month_with_ordinal():
    assert normalize_deadline("April 5th, 2024", NOW) == datetime(2024, 4, 5, tzinfo=timezone.utc)


@pytest.mark.parametrize("expression", ["whenever", "", "   ", None, "asap-ish"])
def test_unparseable_returns_none(expression):
    assert normalize_deadline(expression, NOW) is None


def test_add_months_clamps_day():
    assert add_months(datetime(2024, 1, 31), 1) == datetime(2024, 2, 29)
    assert add_months(datetime(2024, 11, 15), 3) == datetime(2025, 2, 15)


@pytest.mark.parametrize(
    "expression, expected",
    [
        ("in 3 days from today", datetime(2024, 3, 13, tzinfo=timezone.utc)),
        ("in 2 weeks, not tomorrow", datetime(2024, 3, 24, tzinfo=timezone.utc)),
        ("in 1 month starting today", datetime(2024, 4, 10, tzinfo=timezone.utc)),
    ],
)
def test_explicit_count_wins_over_keywords(expression, expected):
    assert normalize_deadline(expression, NOW) == expected
