"""
Persistence gateways: interchangeable record stores behind the task store.
"""
from __future__ import annotations

from typing import Optional

from ..settings import Settings, get_settings
from .base import CATEGORIES, COLLECTIONS, SUBTASKS, TASKS, Record, RecordGateway
from .memory import InMemoryGateway
from .remote import HttpGateway
from .sqlite import SQLiteGateway

__all__ = [
    "CATEGORIES",
    "COLLECTIONS",
    "SUBTASKS",
    "TASKS",
    "HttpGateway",
    "InMemoryGateway",
    "Record",
    "RecordGateway",
    "SQLiteGateway",
    "get_gateway",
]


# PUBLIC_INTERFACE
def get_gateway(settings: Optional[Settings] = None) -> RecordGateway:
    """
    Factory to return the configured gateway based on settings.
    - memory: InMemoryGateway
    - sqlite: SQLiteGateway at SQLITE_DB_PATH
    - remote: HttpGateway against REMOTE_API_URL
    """
    settings = settings or get_settings()
    if settings.persistence_backend == "sqlite":
        return SQLiteGateway(settings.sqlite_db_path)
    if settings.persistence_backend == "remote":
        if not settings.remote_api_url:
            raise ValueError("REMOTE_API_URL is required when PERSISTENCE_BACKEND=remote")
        return HttpGateway(
            settings.remote_api_url,
            api_key=settings.remote_api_key,
            timeout=settings.remote_timeout,
        )
    return InMemoryGateway()
