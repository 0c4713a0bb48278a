from __future__ import annotations

import uuid
from threading import RLock
from typing import Dict, List, Optional

from ..errors import NotFoundError
from .base import COLLECTIONS, Record, RecordGateway, check_collection


class InMemoryGateway(RecordGateway):
    """
    Thread-safe in-memory record store suitable for testing and default runtime.

    Records are kept per collection in insertion order. Callers always receive
    copies so they cannot mutate stored state.
    """

    name = "memory"

    def __init__(self) -> None:
        self._lock = RLock()
        self._collections: Dict[str, Dict[str, Record]] = {c: {} for c in COLLECTIONS}

    def list(self, collection: str, order_by: Optional[str] = None, descending: bool = False) -> List[Record]:
        check_collection(collection)
        with self._lock:
            items = [r.copy() for r in self._collections[collection].values()]
        if order_by:
            items.sort(key=lambda r: r[order_by], reverse=descending)
        elif descending:
            items.reverse()
        return items

    def insert(self, collection: str, record: Record) -> Record:
        check_collection(collection)
        stored = record.copy()
        stored.setdefault("id", uuid.uuid4().hex)
        with self._lock:
            self._collections[collection][stored["id"]] = stored
            return stored.copy()

    def update(self, collection: str, record_id: str, fields: Record) -> Record:
        check_collection(collection)
        with self._lock:
            existing = self._collections[collection].get(record_id)
            if existing is None:
                raise NotFoundError(collection, record_id)
            updated = existing.copy()
            updated.update({k: v for k, v in fields.items() if k != "id"})
            self._collections[collection][record_id] = updated
            return updated.copy()

    def delete(self, collection: str, record_id: str) -> bool:
        check_collection(collection)
        with self._lock:
            return self._collections[collection].pop(record_id, None) is not None
