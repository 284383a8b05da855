from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from functools import lru_cache
from threading import RLock
from typing import Callable, Dict, List, Optional

from .models import TaskEntity
from .schemas import TaskCreate, TaskUpdate
from .settings import get_settings

logger = logging.getLogger(__name__)

# Fields a TaskUpdate may change; everything else is owned by the store.
UPDATABLE_FIELDS = ("title", "description", "category", "priority", "completed", "due_date")
# Fields that may be cleared by sending an explicit null.
NULLABLE_FIELDS = {"description", "due_date"}


def new_task_id() -> str:
    return uuid.uuid4().hex


def changed_fields(data: TaskUpdate) -> Dict[str, object]:
    """
    Return the fields explicitly present in an update payload.
    A null is only honoured for fields that may be cleared.
    """
    changes: Dict[str, object] = {}
    for name in UPDATABLE_FIELDS:
        if name not in data.model_fields_set:
            continue
        value = getattr(data, name)
        if value is None and name not in NULLABLE_FIELDS:
            continue
        changes[name] = value
    return changes


# PUBLIC_INTERFACE
class Repository(ABC):
    """
    Abstract repository contract for task storage backends.

    Every operation is scoped to one user: a task owned by someone else
    behaves exactly like a missing one. Backend failures raise StoreError.
    """

    @abstractmethod
    def create(self, user_id: str, data: TaskCreate) -> TaskEntity:
        """Create and return a new TaskEntity owned by user_id."""

    @abstractmethod
    def get(self, user_id: str, task_id: str) -> Optional[TaskEntity]:
        """Return a TaskEntity by id, or None if not found."""

    @abstractmethod
    def update(self, user_id: str, task_id: str, data: TaskUpdate) -> Optional[TaskEntity]:
        """Apply the provided fields and refresh updated_at. Return the entity or None if not found."""

    @abstractmethod
    def delete(self, user_id: str, task_id: str) -> bool:
        """Delete a TaskEntity by id. Return True if deleted, False if not found."""

    @abstractmethod
    def list_tasks(self, user_id: str) -> List[TaskEntity]:
        """
        Return every task owned by user_id, newest created_at first.
        No filtering happens here; callers derive views client-side.
        """


class InMemoryRepository(Repository):
    """
    Thread-safe in-memory repository suitable for testing and default runtime.
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None) -> None:
        self._lock = RLock()
        self._items: Dict[str, TaskEntity] = {}
        self._clock = clock or datetime.now

    def _now(self) -> datetime:
        return self._clock()

    def _owned(self, user_id: str, task_id: str) -> Optional[TaskEntity]:
        item = self._items.get(task_id)
        if item is None or item["user_id"] != user_id:
            return None
        return item

    def create(self, user_id: str, data: TaskCreate) -> TaskEntity:
        now = self._now()
        entity: TaskEntity = {
            "id": new_task_id(),
            "user_id": user_id,
            "title": data.title,
            "description": data.description,
            "category": data.category,
            "priority": data.priority,
            "due_date": data.due_date,
            "completed": data.completed,
            "created_at": now,
            "updated_at": now,
        }
        with self._lock:
            self._items[entity["id"]] = entity
        logger.debug("created task %s for user %s", entity["id"], user_id)
        return entity.copy()  # type: ignore[return-value]

    def get(self, user_id: str, task_id: str) -> Optional[TaskEntity]:
        with self._lock:
            item = self._owned(user_id, task_id)
            return None if item is None else item.copy()  # type: ignore[return-value]

    def update(self, user_id: str, task_id: str, data: TaskUpdate) -> Optional[TaskEntity]:
        with self._lock:
            existing = self._owned(user_id, task_id)
            if existing is None:
                return None

            updated = existing.copy()
            updated.update(changed_fields(data))  # type: ignore[typeddict-item]
            updated["updated_at"] = self._now()

            self._items[task_id] = updated  # type: ignore[assignment]
            logger.debug("updated task %s for user %s", task_id, user_id)
            return updated.copy()  # type: ignore[return-value]

    def delete(self, user_id: str, task_id: str) -> bool:
        with self._lock:
            if self._owned(user_id, task_id) is None:
                return False
            del self._items[task_id]
        logger.debug("deleted task %s for user %s", task_id, user_id)
        return True

    def list_tasks(self, user_id: str) -> List[TaskEntity]:
        with self._lock:
            owned = [t for t in self._items.values() if t["user_id"] == user_id]
            owned.sort(key=lambda t: t["created_at"], reverse=True)
            # Return copies to avoid external mutation
            return [t.copy() for t in owned]  # type: ignore[misc]


def _build_repository() -> Repository:
    settings = get_settings()
    if settings.persistence_backend == "sqlite":
        from .db import SQLiteRepository

        logger.info("using sqlite task store at %s", settings.sqlite_db_path)
        return SQLiteRepository(settings.sqlite_db_path)
    logger.info("using in-memory task store")
    return InMemoryRepository()


# PUBLIC_INTERFACE
@lru_cache(maxsize=1)
def get_repository() -> Repository:
    """
    Return the process-wide repository for the configured backend.
    - memory: InMemoryRepository
    - sqlite: SQLiteRepository
    """
    return _build_repository()
