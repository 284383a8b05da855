from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional, TypedDict


# PUBLIC_INTERFACE
class Category(str, Enum):
    """Closed set of task categories."""

    WORK = "Work"
    PERSONAL = "Personal"
    SHOPPING = "Shopping"
    HEALTH = "Health"


# PUBLIC_INTERFACE
class Priority(str, Enum):
    """Closed set of task priorities."""

    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


# PUBLIC_INTERFACE
class TaskEntity(TypedDict):
    """
    A lightweight domain model representing a Task for non-ORM storage
    backends.

    Fields:
    - id: Opaque unique identifier assigned by the store
    - user_id: Owning user; tasks are never shared across users
    - title: Short title (1..200 chars, trimmed on input via schemas)
    - description: Optional detailed description
    - category: One of Category
    - priority: One of Priority
    - due_date: Optional due datetime (normalized to datetime in schemas)
    - completed: Boolean completion flag
    - created_at: Creation timestamp, immutable
    - updated_at: Last update timestamp, refreshed on every mutation
    """

    id: str
    user_id: str
    title: str
    description: Optional[str]
    category: Category
    priority: Priority
    due_date: Optional[datetime]
    completed: bool
    created_at: datetime
    updated_at: datetime
