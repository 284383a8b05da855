from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional, TypeVar

from .filters import DueDateBucket, TaskFilters, apply_filters, task_field, to_local_naive
from .models import Category
from .settings import SUNDAY

T = TypeVar("T")

RECENT_TASKS_LIMIT = 5


# PUBLIC_INTERFACE
@dataclass(frozen=True)
class TaskStats:
    """
    Aggregate counts over a task collection. Derived on demand, never stored.

    in_progress always equals pending: every incomplete task counts as both.
    """

    total: int = 0
    completed: int = 0
    pending: int = 0
    in_progress: int = 0


# PUBLIC_INTERFACE
def compute_stats(tasks: Iterable[object]) -> TaskStats:
    """Count total, completed and pending tasks. Empty input yields all zeros."""
    total = 0
    completed = 0
    for task in tasks:
        total += 1
        if task_field(task, "completed") is True:
            completed += 1
    pending = total - completed
    return TaskStats(total=total, completed=completed, pending=pending, in_progress=pending)


# PUBLIC_INTERFACE
def category_counts(tasks: Iterable[object]) -> Dict[Category, int]:
    """Number of tasks per category. Every category is present; unknown values are skipped."""
    counts = {category: 0 for category in Category}
    for task in tasks:
        value = task_field(task, "category")
        try:
            counts[Category(value)] += 1
        except ValueError:
            continue
    return counts


# PUBLIC_INTERFACE
def tasks_due_today(
    tasks: Iterable[T], now: Optional[datetime] = None, week_start: int = SUNDAY
) -> List[T]:
    """Tasks due today (completed or not), earliest due time first."""
    today = apply_filters(tasks, TaskFilters(due_date=DueDateBucket.TODAY), now=now, week_start=week_start)
    return sorted(today, key=lambda t: to_local_naive(task_field(t, "due_date")))


# PUBLIC_INTERFACE
def recent_tasks(tasks: Iterable[T], limit: int = RECENT_TASKS_LIMIT) -> List[T]:
    """The most recently created tasks, newest first, at most limit of them."""
    ordered = sorted(tasks, key=lambda t: to_local_naive(task_field(t, "created_at")), reverse=True)
    return ordered[: max(limit, 0)]


# PUBLIC_INTERFACE
@dataclass(frozen=True)
class Dashboard:
    stats: TaskStats
    today: List[object]
    recent: List[object]
    categories: Dict[Category, int]


# PUBLIC_INTERFACE
def build_dashboard(
    tasks: Iterable[object],
    now: Optional[datetime] = None,
    recent_limit: int = RECENT_TASKS_LIMIT,
    week_start: int = SUNDAY,
) -> Dashboard:
    """
    Derive everything the dashboard shows from one task collection.

    Args:
        tasks: The user's complete, unfiltered task collection.
        now: Reference time for the 'today' list; read once when omitted.
        recent_limit: How many recent tasks to include.
        week_start: Passed through to the due-date bucketing.
    """
    items = list(tasks)
    current = now if now is not None else datetime.now()
    return Dashboard(
        stats=compute_stats(items),
        today=tasks_due_today(items, now=current, week_start=week_start),
        recent=recent_tasks(items, limit=recent_limit),
        categories=category_counts(items),
    )
