from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, ValidationError

from ..auth import get_current_user
from ..errors import StoreError
from ..filters import DueDateBucket, TaskFilters, apply_filters
from ..models import Category, Priority, TaskEntity
from ..repositories import Repository, get_repository
from ..schemas import DashboardOut, StatsOut, TaskCreate, TaskOut, TaskUpdate
from ..settings import get_settings
from ..stats import TaskStats, build_dashboard, compute_stats
from ..utils import paginate, task_list_envelope

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1/tasks",
    tags=["tasks"],
)


class TaskListEnvelope(BaseModel):
    """
    Envelope for filtered, paginated list responses.
    """
    items: List[TaskOut] = Field(..., description="Tasks on this page")
    total: int = Field(..., description="Number of tasks matching the filters")
    limit: int = Field(..., description="Limit applied to the query")
    offset: int = Field(..., description="Offset applied to the query")
    stats: StatsOut = Field(..., description="Statistics over all of the user's tasks, unfiltered")
    active_filters: int = Field(..., description="Number of filters that were set")


# PUBLIC_INTERFACE
def get_now() -> datetime:
    """Reference time for due-date buckets; overridden in tests to pin the clock."""
    return datetime.now()


def _get_week_start() -> int:
    return get_settings().week_start


def _stats_out(stats: TaskStats) -> StatsOut:
    return StatsOut(**asdict(stats))


def _task_out(entity: TaskEntity) -> TaskOut:
    try:
        return TaskOut(**entity)  # type: ignore[arg-type]
    except ValidationError as e:
        raise StoreError(f"malformed task {entity.get('id')!r}: {e.error_count()} invalid field(s)") from e


def _not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found")


# PUBLIC_INTERFACE
@router.post(
    "/",
    response_model=TaskOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create Task",
    description="Create a new Task owned by the current user and return it.",
    responses={
        201: {"description": "Task created successfully"},
        422: {"description": "Validation error"},
    },
)
def create_task(
    payload: TaskCreate,
    user_id: str = Depends(get_current_user),
    repo: Repository = Depends(get_repository),
) -> TaskOut:
    created = repo.create(user_id, payload)
    logger.info("user %s created task %s", user_id, created["id"])
    return _task_out(created)


# PUBLIC_INTERFACE
@router.get(
    "/",
    response_model=TaskListEnvelope,
    summary="List Tasks",
    description=(
        "List the current user's tasks with optional filters and pagination.\n\n"
        "Query parameters:\n"
        "- completed: filter by completion status\n"
        "- category: Work, Personal, Shopping or Health\n"
        "- priority: Low, Medium or High\n"
        "- due: today, tomorrow, thisWeek or overdue\n"
        "- q: case-insensitive search in title/description\n"
        "- limit: max number of items to return (0..1000)\n"
        "- offset: number of items to skip (>=0)\n\n"
        "Tasks are returned newest first. Stats cover the whole unfiltered collection."
    ),
    responses={
        200: {"description": "List retrieved successfully"},
        503: {"description": "Task store unavailable"},
    },
)
def list_tasks(
    completed: Optional[bool] = Query(None, description="Filter by completion status"),
    category: Optional[Category] = Query(None, description="Filter by category"),
    priority: Optional[Priority] = Query(None, description="Filter by priority"),
    due: Optional[DueDateBucket] = Query(None, description="Filter by relative due date"),
    q: Optional[str] = Query(None, description="Search text for title/description"),
    limit: int = Query(50, ge=0, le=1000, description="Maximum number of items to return"),
    offset: int = Query(0, ge=0, description="Number of items to skip"),
    user_id: str = Depends(get_current_user),
    repo: Repository = Depends(get_repository),
    now: datetime = Depends(get_now),
    week_start: int = Depends(_get_week_start),
) -> TaskListEnvelope:
    filters = TaskFilters(
        completed=completed,
        category=category,
        priority=priority,
        due_date=due,
        search_term=q.strip() if q and q.strip() else None,
    )
    tasks = repo.list_tasks(user_id)
    matching = apply_filters(tasks, filters, now=now, week_start=week_start)
    envelope = task_list_envelope(
        items=[_task_out(t) for t in paginate(matching, limit, offset)],
        total=len(matching),
        limit=limit,
        offset=offset,
        stats=_stats_out(compute_stats(tasks)),
        active_filters=filters.active_count(),
    )
    return TaskListEnvelope(**envelope)


# PUBLIC_INTERFACE
@router.get(
    "/stats",
    response_model=StatsOut,
    summary="Task Statistics",
    description="Total, completed, pending and in-progress counts over all of the user's tasks.",
)
def get_stats(
    user_id: str = Depends(get_current_user),
    repo: Repository = Depends(get_repository),
) -> StatsOut:
    return _stats_out(compute_stats(repo.list_tasks(user_id)))


# PUBLIC_INTERFACE
@router.get(
    "/dashboard",
    response_model=DashboardOut,
    summary="Dashboard",
    description="Statistics, tasks due today, recently created tasks and per-category counts.",
)
def get_dashboard(
    user_id: str = Depends(get_current_user),
    repo: Repository = Depends(get_repository),
    now: datetime = Depends(get_now),
    week_start: int = Depends(_get_week_start),
) -> DashboardOut:
    dashboard = build_dashboard(repo.list_tasks(user_id), now=now, week_start=week_start)
    return DashboardOut(
        stats=_stats_out(dashboard.stats),
        today=[_task_out(t) for t in dashboard.today],  # type: ignore[arg-type]
        recent=[_task_out(t) for t in dashboard.recent],  # type: ignore[arg-type]
        categories=dashboard.categories,
    )


# PUBLIC_INTERFACE
@router.get(
    "/{task_id}",
    response_model=TaskOut,
    summary="Get Task",
    description="Get a single Task by ID.",
    responses={
        200: {"description": "Task found"},
        404: {"description": "Task not found"},
    },
)
def get_task(
    task_id: str,
    user_id: str = Depends(get_current_user),
    repo: Repository = Depends(get_repository),
) -> TaskOut:
    item = repo.get(user_id, task_id)
    if not item:
        raise _not_found()
    return _task_out(item)


# PUBLIC_INTERFACE
@router.put(
    "/{task_id}",
    response_model=TaskOut,
    summary="Replace Task",
    description=(
        "Replace an existing Task. Any fields omitted will be set to their default/null "
        "equivalent as per the schema."
    ),
    responses={
        200: {"description": "Task updated"},
        404: {"description": "Task not found"},
    },
)
def put_task(
    task_id: str,
    payload: TaskCreate,
    user_id: str = Depends(get_current_user),
    repo: Repository = Depends(get_repository),
) -> TaskOut:
    """
    Full update (replace) semantics implemented via the partial-update capable repository by
    mapping TaskCreate into TaskUpdate fields.
    """
    update = TaskUpdate(
        title=payload.title,
        description=payload.description,
        category=payload.category,
        priority=payload.priority,
        completed=payload.completed,
        due_date=payload.due_date,
    )
    updated = repo.update(user_id, task_id, update)
    if not updated:
        raise _not_found()
    logger.info("user %s replaced task %s", user_id, task_id)
    return _task_out(updated)


# PUBLIC_INTERFACE
@router.patch(
    "/{task_id}",
    response_model=TaskOut,
    summary="Update Task",
    description="Partially update fields of a Task, e.g. toggle completion.",
    responses={
        200: {"description": "Task updated"},
        404: {"description": "Task not found"},
    },
)
def patch_task(
    task_id: str,
    payload: TaskUpdate,
    user_id: str = Depends(get_current_user),
    repo: Repository = Depends(get_repository),
) -> TaskOut:
    updated = repo.update(user_id, task_id, payload)
    if not updated:
        raise _not_found()
    logger.info("user %s updated task %s", user_id, task_id)
    return _task_out(updated)


# PUBLIC_INTERFACE
@router.delete(
    "/{task_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete Task",
    description="Delete a Task by ID.",
    responses={
        204: {"description": "Task deleted"},
        404: {"description": "Task not found"},
    },
)
def delete_task(
    task_id: str,
    user_id: str = Depends(get_current_user),
    repo: Repository = Depends(get_repository),
) -> None:
    if not repo.delete(user_id, task_id):
        raise _not_found()
    logger.info("user %s deleted task %s", user_id, task_id)
    return None
