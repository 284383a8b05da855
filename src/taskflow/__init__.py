"""
Taskflow backend package.

The filtering and statistics engine is importable without the web layer:

    from taskflow import TaskFilters, apply_filters, compute_stats

The FastAPI app lives in taskflow.main.
"""

from .filters import DueDateBucket, TaskFilters, apply_filters, matches
from .models import Category, Priority, TaskEntity
from .stats import TaskStats, build_dashboard, category_counts, compute_stats, recent_tasks, tasks_due_today

__all__ = [
    "Category",
    "DueDateBucket",
    "Priority",
    "TaskEntity",
    "TaskFilters",
    "TaskStats",
    "apply_filters",
    "build_dashboard",
    "category_counts",
    "compute_stats",
    "matches",
    "recent_tasks",
    "tasks_due_today",
]
