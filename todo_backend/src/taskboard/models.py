from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Iterable, List, Optional, TypedDict


# PUBLIC_INTERFACE
class TaskStatus(str, Enum):
    """Task lifecycle status. Values are the strings stored and sent over the wire."""

    TODO = "todo"
    IN_PROGRESS = "in-progress"
    DONE = "done"

    @classmethod
    def from_record(cls, raw: Optional[str]) -> "TaskStatus":
        """Parse a stored status. Older records spell in-progress as 'inprogress'."""
        if not raw:
            return cls.TODO
        value = str(getattr(raw, "value", raw)).strip().lower()
        if value in {"inprogress", "in_progress"}:
            return cls.IN_PROGRESS
        try:
            return cls(value)
        except ValueError:
            return cls.TODO


# PUBLIC_INTERFACE
class CategoryEntity(TypedDict):
    """
    A user-defined label used to group tasks.

    Fields:
    - id: Opaque unique identifier, immutable once assigned
    - name: Display name (non-empty, trimmed)
    - color: Optional '#RRGGBB' display color
    - created_at: Creation timestamp
    - last_used: Refreshed whenever a task is assigned to the category
    """

    id: str
    name: str
    color: Optional[str]
    created_at: datetime
    last_used: datetime


# PUBLIC_INTERFACE
class SubtaskEntity(TypedDict):
    """A checklist item belonging to exactly one task."""

    id: str
    task_id: str
    title: str
    description: Optional[str]
    completed: bool
    created_at: datetime


# PUBLIC_INTERFACE
class TaskEntity(TypedDict):
    """
    A unit of work with a status and an ordered list of subtasks.

    Subtasks are persisted as their own records and assembled here by the store.
    """

    id: str
    title: str
    description: Optional[str]
    category_id: str
    status: TaskStatus
    subtasks: List[SubtaskEntity]
    created_at: datetime
    updated_at: datetime


# PUBLIC_INTERFACE
class TodoStats(TypedDict):
    """Counts computed on demand from the store's current collections."""

    total: int
    completed: int
    in_progress: int
    total_categories: int


# PUBLIC_INTERFACE
def derive_status(subtasks: Iterable[SubtaskEntity]) -> TaskStatus:
    """
    Map subtask completion to a task status.

    - no subtasks: todo
    - all completed: done
    - none completed: todo
    - otherwise: in-progress
    """
    items = list(subtasks)
    total = len(items)
    if total == 0:
        return TaskStatus.TODO
    done = sum(1 for s in items if s["completed"])
    if done == total:
        return TaskStatus.DONE
    if done == 0:
        return TaskStatus.TODO
    return TaskStatus.IN_PROGRESS
