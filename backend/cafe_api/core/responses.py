"""Standardized API response helpers.

List endpoints return a consistent envelope:
    {"items": [...], "total": <int>}

Endpoints with a summary add extra keys next to the envelope, e.g. order
history adds ``earnings``. Single-item endpoints return the object directly.
"""

from typing import Any, Optional


def list_response(
    items: list,
    total: Optional[int] = None,
    **extra: Any,
) -> dict:
    """Wrap a list in the standard envelope.

    Args:
        items: The list of serialized items.
        total: Total count (defaults to len(items) when the full list is returned).
        extra: Additional summary keys merged into the envelope.

    Returns:
        {"items": items, "total": total, **extra}
    """
    body = {
        "items": items,
        "total": total if total is not None else len(items),
    }
    body.update(extra)
    return body
