"""Structured logging helpers."""

from typing import Any


def build_log_context(
    *,
    operation: str | None = None,
    draft_id: str | None = None,
    folder_name: str | None = None,
    status: str | None = None,
) -> dict[str, Any]:
    """Return a log context dict for lifecycle operations (title and form content excluded)."""
    context: dict[str, Any] = {}
    if operation:
        context["operation"] = operation
    if draft_id:
        context["draft_id"] = draft_id
    if folder_name:
        context["folder_name"] = folder_name
    if status:
        context["status"] = status
    return context
