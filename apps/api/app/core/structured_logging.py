"""Structured logging helpers."""

from typing import Any


def build_log_context(
    *,
    user_id: str | None = None,
    org_id: str | None = None,
    task_id: str | None = None,
    job_id: str | None = None,
    route: str | None = None,
    method: str | None = None,
) -> dict[str, Any]:
    """Return a log context dict with only the identifiers that are set."""
    context: dict[str, Any] = {}
    if user_id:
        context["user_id"] = user_id
    if org_id:
        context["org_id"] = org_id
    if task_id:
        context["task_id"] = task_id
    if job_id:
        context["job_id"] = job_id
    if route:
        context["route"] = route
    if method:
        context["method"] = method
    return context
