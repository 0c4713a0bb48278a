from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

Record = Dict[str, Any]

CATEGORIES = "categories"
TASKS = "tasks"
SUBTASKS = "subtasks"

COLLECTIONS = (CATEGORIES, TASKS, SUBTASKS)


# PUBLIC_INTERFACE
class RecordGateway(ABC):
    """
    Abstract contract for the record store behind the task store.

    Every operation is scoped to one collection ('categories', 'tasks',
    'subtasks') and addresses records by their opaque string id. Failures of the
    underlying storage are raised as GatewayError.
    """

    #: Short backend name reported by the health check.
    name: str = "abstract"

    @abstractmethod
    def list(self, collection: str, order_by: Optional[str] = None, descending: bool = False) -> List[Record]:
        """Return every record in the collection, optionally ordered by a timestamp field."""

    @abstractmethod
    def insert(self, collection: str, record: Record) -> Record:
        """Store a record and return it as stored, id and timestamps included."""

    @abstractmethod
    def update(self, collection: str, record_id: str, fields: Record) -> Record:
        """Merge fields into a record and return it. Raises NotFoundError for an unknown id."""

    @abstractmethod
    def delete(self, collection: str, record_id: str) -> bool:
        """Delete a record by id. Return True if deleted, False if not found."""

    def close(self) -> None:
        """Release any held resources. Default: nothing to release."""
        return None


def check_collection(collection: str) -> None:
    if collection not in COLLECTIONS:
        raise ValueError(f"unknown collection: {collection!r}")
