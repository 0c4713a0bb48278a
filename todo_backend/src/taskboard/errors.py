from __future__ import annotations

from typing import Any, Dict, List, Optional


class TaskboardError(Exception):
    """Base class for errors raised by the store and its gateways."""


# PUBLIC_INTERFACE
class ValidationError(TaskboardError):
    """
    A required field is empty or a request references something the store cannot accept.

    Raised before any state is changed. `errors` follows the pydantic/FastAPI
    error-detail shape so the API can return it unchanged.
    """

    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.errors = errors or [{"msg": message, "type": "value_error"}]


# PUBLIC_INTERFACE
class NotFoundError(TaskboardError):
    """A referenced record id does not exist."""

    def __init__(self, entity: str, record_id: str) -> None:
        super().__init__(f"{entity} not found: {record_id}")
        self.entity = entity
        self.record_id = record_id


# PUBLIC_INTERFACE
class GatewayError(TaskboardError):
    """A persistence gateway call failed."""

    def __init__(self, operation: str, collection: str, cause: Optional[BaseException] = None) -> None:
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"{operation} on {collection} failed{detail}")
        self.operation = operation
        self.collection = collection
        self.cause = cause
