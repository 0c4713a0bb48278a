from __future__ import annotations

from fastapi import Request

from .models import TaskEntity
from .schemas import TaskOut
from .store import TodoStore


# PUBLIC_INTERFACE
def get_store(request: Request) -> TodoStore:
    """Return the store owned by the application that is serving the request."""
    return request.app.state.store


def task_out(task: TaskEntity) -> TaskOut:
    """Serialize a task entity, adding its subtask progress counters."""
    subtasks = task["subtasks"]
    return TaskOut(
        **task,  # type: ignore[arg-type]
        completed_subtasks=sum(1 for s in subtasks if s["completed"]),
        total_subtasks=len(subtasks),
    )
