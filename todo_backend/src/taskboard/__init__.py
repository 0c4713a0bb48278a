"""
Taskboard backend package.

Personal task management: categories, tasks and checklist subtasks held by a
TodoStore that writes through a pluggable persistence gateway, exposed over a
FastAPI application (see taskboard.main).
"""

from .errors import GatewayError, NotFoundError, TaskboardError, ValidationError
from .models import TaskStatus, derive_status
from .store import StoreSnapshot, TaskQuery, TodoStore

__all__ = [
    "GatewayError",
    "NotFoundError",
    "StoreSnapshot",
    "TaskQuery",
    "TaskStatus",
    "TaskboardError",
    "TodoStore",
    "ValidationError",
    "derive_status",
]
