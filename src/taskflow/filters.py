"""
Client-side task filtering.

Every function here is pure: the full task collection of one user goes in,
the matching subsequence comes out in its original order. Relative due-date
buckets are evaluated against an explicit ``now`` (read once per call when
omitted), using midnight local time as the day boundary.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Iterable, List, Mapping, Optional, Tuple, TypeVar

from .models import Category, Priority
from .settings import SUNDAY

logger = logging.getLogger(__name__)

T = TypeVar("T")
Predicate = Callable[[Any], bool]


# PUBLIC_INTERFACE
class DueDateBucket(str, Enum):
    """Relative due-date ranges selectable in the filter bar."""

    TODAY = "today"
    TOMORROW = "tomorrow"
    THIS_WEEK = "thisWeek"
    OVERDUE = "overdue"


# PUBLIC_INTERFACE
@dataclass(frozen=True)
class TaskFilters:
    """
    Optional, independent predicates over tasks.

    A field left as None imposes no constraint; set fields combine with AND.
    An empty search_term counts as unset.
    """

    completed: Optional[bool] = None
    category: Optional[Category] = None
    priority: Optional[Priority] = None
    due_date: Optional[DueDateBucket] = None
    search_term: Optional[str] = None

    def active_count(self) -> int:
        """Number of predicates that are set."""
        return sum(1 for f in fields(self) if _is_set(getattr(self, f.name)))

    def is_empty(self) -> bool:
        return self.active_count() == 0


def _is_set(value: Any) -> bool:
    return value is not None and value != ""


# PUBLIC_INTERFACE
def task_field(task: Any, name: str) -> Any:
    """Read a field from a task given as a mapping (TaskEntity) or an object (TaskOut)."""
    if isinstance(task, Mapping):
        return task.get(name)
    return getattr(task, name, None)


# PUBLIC_INTERFACE
def to_local_naive(dt: datetime) -> datetime:
    """Convert an aware datetime to naive local time; naive values pass through."""
    if dt.tzinfo is not None and dt.utcoffset() is not None:
        return dt.astimezone().replace(tzinfo=None)
    return dt


# PUBLIC_INTERFACE
def start_of_day(dt: datetime) -> datetime:
    return to_local_naive(dt).replace(hour=0, minute=0, second=0, microsecond=0)


# PUBLIC_INTERFACE
def start_of_week(dt: datetime, week_start: int = SUNDAY) -> datetime:
    """
    Midnight of the most recent day (today included) whose weekday() equals
    week_start. Sunday (6) by default.
    """
    day = start_of_day(dt)
    return day - timedelta(days=(day.weekday() - week_start) % 7)


# PUBLIC_INTERFACE
def due_date_window(
    bucket: DueDateBucket, now: datetime, week_start: int = SUNDAY
) -> Tuple[datetime, datetime]:
    """
    Return the half-open [start, end) range a due date must fall in to belong
    to bucket. For OVERDUE the range is everything before today; the
    not-completed condition is applied separately.
    """
    today = start_of_day(now)
    if bucket is DueDateBucket.TODAY:
        return today, today + timedelta(days=1)
    if bucket is DueDateBucket.TOMORROW:
        return today + timedelta(days=1), today + timedelta(days=2)
    if bucket is DueDateBucket.THIS_WEEK:
        week = start_of_week(today, week_start)
        return week, week + timedelta(days=7)
    if bucket is DueDateBucket.OVERDUE:
        return datetime.min, today
    raise ValueError(f"unknown due date bucket: {bucket!r}")


def _equals(name: str, expected: Any) -> Predicate:
    def check(task: Any) -> bool:
        return task_field(task, name) == expected

    return check


def _due_within(bucket: DueDateBucket, now: datetime, week_start: int) -> Predicate:
    start, end = due_date_window(bucket, now, week_start)
    overdue = bucket is DueDateBucket.OVERDUE

    def check(task: Any) -> bool:
        due = task_field(task, "due_date")
        if not isinstance(due, datetime):
            return False
        if overdue and task_field(task, "completed"):
            return False
        return start <= to_local_naive(due) < end

    return check


def _contains_text(term: str) -> Predicate:
    needle = term.lower()

    def check(task: Any) -> bool:
        title = task_field(task, "title") or ""
        if needle in title.lower():
            return True
        description = task_field(task, "description")
        return bool(description) and needle in description.lower()

    return check


def _build_predicates(filters: TaskFilters, now: Optional[datetime], week_start: int) -> List[Predicate]:
    predicates: List[Predicate] = []
    if filters.completed is not None:
        predicates.append(_equals("completed", filters.completed))
    if filters.category is not None:
        predicates.append(_equals("category", filters.category))
    if filters.priority is not None:
        predicates.append(_equals("priority", filters.priority))
    if filters.due_date is not None:
        current = to_local_naive(now) if now is not None else datetime.now()
        predicates.append(_due_within(DueDateBucket(filters.due_date), current, week_start))
    if _is_set(filters.search_term):
        predicates.append(_contains_text(filters.search_term))  # type: ignore[arg-type]
    return predicates


# PUBLIC_INTERFACE
def matches(
    task: Any,
    filters: TaskFilters,
    now: Optional[datetime] = None,
    week_start: int = SUNDAY,
) -> bool:
    """Return True when task satisfies every predicate set in filters."""
    return all(check(task) for check in _build_predicates(filters, now, week_start))


# PUBLIC_INTERFACE
def apply_filters(
    tasks: Iterable[T],
    filters: Optional[TaskFilters] = None,
    now: Optional[datetime] = None,
    week_start: int = SUNDAY,
) -> List[T]:
    """
    Return the tasks satisfying all active predicates, in input order.

    Args:
        tasks: The complete task collection (mappings or objects).
        filters: Predicates to apply; None or an empty TaskFilters returns
            the input unchanged.
        now: Reference time for due-date buckets. Read once from the local
            clock when omitted.
        week_start: weekday() number the 'thisWeek' bucket starts on.

    Returns:
        A new list; the input is never mutated.
    """
    items = list(tasks)
    if filters is None or filters.is_empty():
        return items

    predicates = _build_predicates(filters, now, week_start)
    result = [t for t in items if all(check(t) for check in predicates)]
    logger.debug("filtered %d of %d tasks (%d active filters)", len(result), len(items), len(predicates))
    return result
