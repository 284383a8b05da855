from __future__ import annotations

from typing import Any, Dict, List, Sequence, TypeVar

T = TypeVar("T")


# PUBLIC_INTERFACE
def paginate(items: Sequence[T], limit: int, offset: int) -> List[T]:
    """Return the [offset, offset + limit) slice of items; negative values count as 0."""
    start = max(offset, 0)
    return list(items[start : start + max(limit, 0)])


# PUBLIC_INTERFACE
def task_list_envelope(
    items: Sequence[Any],
    total: int,
    limit: int,
    offset: int,
    stats: Any,
    active_filters: int,
) -> Dict[str, Any]:
    """
    Build the standard envelope for the task list endpoint.

    Args:
        items: The tasks on the current page.
        total: Number of tasks matching the filters (ignoring pagination).
        limit: The limit used for pagination.
        offset: The offset used for pagination.
        stats: Statistics over the user's complete, unfiltered collection.
        active_filters: How many filter predicates were set.

    Returns:
        Dict with keys: items, total, limit, offset, stats, active_filters.
    """
    return {
        "items": list(items),
        "total": int(total),
        "limit": int(max(limit, 0)),
        "offset": int(max(offset, 0)),
        "stats": stats,
        "active_filters": int(active_filters),
    }
