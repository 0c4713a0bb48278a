from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ..dependencies import get_store, task_out
from ..models import TaskStatus
from ..schemas import SubtaskCreate, SubtaskOut, SubtaskUpdate, TaskCreate, TaskOut, TaskUpdate
from ..store import TaskQuery, TodoStore

router = APIRouter(
    prefix="/api/v1/tasks",
    tags=["tasks"],
)


def _require_task(store: TodoStore, task_id: str) -> None:
    if store.get_task(task_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found")


# PUBLIC_INTERFACE
@router.get(
    "/",
    response_model=List[TaskOut],
    summary="List Tasks",
    description=(
        "List tasks with optional filters.\n\n"
        "Query parameters:\n"
        "- status: todo, in-progress or done\n"
        "- category_id: only tasks of this category\n"
        "- q: search query for title/description (substring match)\n"
        "- sort: one of created_at, -created_at, updated_at, -updated_at\n"
        "- order: asc or desc (if provided, it overrides the direction in sort)"
    ),
    responses={400: {"description": "Invalid query parameters"}},
)
def list_tasks(
    status_filter: Optional[TaskStatus] = Query(None, alias="status", description="Filter by status"),
    category_id: Optional[str] = Query(None, description="Filter by category id"),
    q: Optional[str] = Query(None, description="Search text for title/description"),
    sort: Optional[str] = Query(
        "-created_at",
        description="Sort by field: created_at, -created_at, updated_at, -updated_at",
    ),
    order: Optional[str] = Query(None, description="Override sort direction: 'asc' or 'desc'"),
    store: TodoStore = Depends(get_store),
) -> List[TaskOut]:
    normalized_sort = (sort or "-created_at").strip().lower()
    field = normalized_sort.lstrip("-")
    if field not in {"created_at", "updated_at"}:
        field = "created_at"
        normalized_sort = "-created_at"
    if order:
        ord_norm = order.strip().lower()
        if ord_norm not in {"asc", "desc"}:
            raise HTTPException(status_code=400, detail="order must be 'asc' or 'desc'")
        normalized_sort = f"-{field}" if ord_norm == "desc" else field

    query = TaskQuery(
        status=status_filter,
        category_id=category_id,
        search=q.strip() if q else None,
        sort=normalized_sort,
    )
    return [task_out(t) for t in store.list_tasks(query)]


# PUBLIC_INTERFACE
@router.get(
    "/recent",
    response_model=List[TaskOut],
    summary="Recently Updated Tasks",
    description="Tasks ordered by most recent update, as shown on the dashboard.",
)
def recent_tasks(
    limit: int = Query(5, ge=0, le=100, description="Maximum number of tasks to return"),
    store: TodoStore = Depends(get_store),
) -> List[TaskOut]:
    return [task_out(t) for t in store.recent_tasks(limit)]


# PUBLIC_INTERFACE
@router.post(
    "/",
    response_model=TaskOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create Task",
    description="Create a task with status 'todo' in an existing category.",
    responses={404: {"description": "Category not found"}, 422: {"description": "Validation error"}},
)
def create_task(payload: TaskCreate, store: TodoStore = Depends(get_store)) -> TaskOut:
    if store.get_category(payload.category_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Category not found")
    created = store.add_task(payload.title, payload.category_id, payload.description)
    return task_out(created)


# PUBLIC_INTERFACE
@router.get(
    "/{task_id}",
    response_model=TaskOut,
    summary="Get Task",
    responses={404: {"description": "Task not found"}},
)
def get_task(task_id: str, store: TodoStore = Depends(get_store)) -> TaskOut:
    task = store.get_task(task_id)
    if task is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found")
    return task_out(task)


# PUBLIC_INTERFACE
@router.patch(
    "/{task_id}",
    response_model=TaskOut,
    summary="Update Task",
    description=(
        "Partially update a task. A status given here is kept as-is until the next "
        "subtask change recomputes it."
    ),
    responses={404: {"description": "Task or target category not found"}},
)
def patch_task(task_id: str, payload: TaskUpdate, store: TodoStore = Depends(get_store)) -> TaskOut:
    _require_task(store, task_id)
    if payload.category_id is not None and store.get_category(payload.category_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Category not found")
    return task_out(store.update_task(task_id, payload))


# PUBLIC_INTERFACE
@router.delete(
    "/{task_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete Task",
    description="Delete a task and its subtasks.",
    responses={404: {"description": "Task not found"}},
)
def delete_task(task_id: str, store: TodoStore = Depends(get_store)) -> None:
    store.delete_task(task_id)
    return None


# PUBLIC_INTERFACE
@router.post(
    "/{task_id}/subtasks",
    response_model=SubtaskOut,
    status_code=status.HTTP_201_CREATED,
    summary="Add Subtask",
    responses={404: {"description": "Task not found"}},
)
def create_subtask(
    task_id: str, payload: SubtaskCreate, store: TodoStore = Depends(get_store)
) -> SubtaskOut:
    _require_task(store, task_id)
    created = store.add_subtask(task_id, payload.title, payload.description)
    return SubtaskOut(**created)  # type: ignore[arg-type]


# PUBLIC_INTERFACE
@router.patch(
    "/{task_id}/subtasks/{subtask_id}",
    response_model=SubtaskOut,
    summary="Update Subtask",
    responses={404: {"description": "Task or subtask not found"}},
)
def patch_subtask(
    task_id: str, subtask_id: str, payload: SubtaskUpdate, store: TodoStore = Depends(get_store)
) -> SubtaskOut:
    updated = store.update_subtask(task_id, subtask_id, payload)
    return SubtaskOut(**updated)  # type: ignore[arg-type]


# PUBLIC_INTERFACE
@router.delete(
    "/{task_id}/subtasks/{subtask_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete Subtask",
    responses={404: {"description": "Task or subtask not found"}},
)
def delete_subtask(task_id: str, subtask_id: str, store: TodoStore = Depends(get_store)) -> None:
    store.delete_subtask(task_id, subtask_id)
    return None


# PUBLIC_INTERFACE
@router.post(
    "/{task_id}/subtasks/{subtask_id}/toggle",
    response_model=TaskOut,
    summary="Toggle Subtask",
    description="Flip a subtask's completed flag and return the task with its recomputed status.",
    responses={404: {"description": "Task or subtask not found"}},
)
def toggle_subtask(task_id: str, subtask_id: str, store: TodoStore = Depends(get_store)) -> TaskOut:
    return task_out(store.toggle_subtask(task_id, subtask_id))
