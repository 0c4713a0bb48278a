from __future__ import annotations

import functools
import logging
import threading
import uuid
from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Type, TypeVar, Union

from pydantic import BaseModel
from pydantic import ValidationError as SchemaValidationError

from .errors import GatewayError, NotFoundError, ValidationError
from .gateways import CATEGORIES, SUBTASKS, TASKS, Record, RecordGateway
from .models import CategoryEntity, SubtaskEntity, TaskEntity, TaskStatus, TodoStats, derive_status
from .schemas import (
    CategoryCreate,
    CategoryUpdate,
    SubtaskCreate,
    SubtaskUpdate,
    TaskCreate,
    TaskUpdate,
)

logger = logging.getLogger(__name__)

SchemaT = TypeVar("SchemaT", bound=BaseModel)

# Starter categories created by seed_defaults() on an empty store.
DEFAULT_CATEGORIES: Tuple[Tuple[str, str], ...] = (
    ("Belajar Otodidak", "#3B82F6"),
    ("Masak Hari Ini", "#EF4444"),
    ("Kerjaan", "#10B981"),
)

_TASK_SORT_FIELDS = {"created_at", "updated_at"}


@dataclass(frozen=True)
class StoreSnapshot:
    """State handed to subscribers after every change. Treat as read-only."""

    categories: Tuple[CategoryEntity, ...]
    tasks: Tuple[TaskEntity, ...]
    loading: bool


@dataclass(frozen=True)
class TaskQuery:
    """
    Query parameters for listing tasks.
    """
    status: Optional[TaskStatus] = None
    category_id: Optional[str] = None
    search: Optional[str] = None
    sort: str = "-created_at"  # allowed: created_at, -created_at, updated_at, -updated_at


Listener = Callable[[StoreSnapshot], None]
Fields = Union[BaseModel, Mapping[str, Any], None]


def _copy_task(task: TaskEntity) -> TaskEntity:
    copied = dict(task)
    copied["subtasks"] = [dict(s) for s in task["subtasks"]]
    return copied  # type: ignore[return-value]


def _category_from_record(record: Record) -> CategoryEntity:
    return {
        "id": str(record["id"]),
        "name": record["name"],
        "color": record.get("color"),
        "created_at": record["created_at"],
        "last_used": record["last_used"],
    }


def _subtask_from_record(record: Record) -> SubtaskEntity:
    return {
        "id": str(record["id"]),
        "task_id": str(record["task_id"]),
        "title": record["title"],
        "description": record.get("description"),
        "completed": bool(record.get("completed", False)),
        "created_at": record["created_at"],
    }


def _task_from_record(record: Record, subtasks: Iterable[SubtaskEntity]) -> TaskEntity:
    return {
        "id": str(record["id"]),
        "title": record["title"],
        "description": record.get("description"),
        "category_id": str(record["category_id"]),
        "status": TaskStatus.from_record(record.get("status")),
        "subtasks": list(subtasks),
        "created_at": record["created_at"],
        "updated_at": record["updated_at"],
    }


def _changes(data: BaseModel, nullable: Iterable[str] = ()) -> Dict[str, Any]:
    """
    Collect the fields the caller explicitly provided.
    An explicit None only counts for nullable fields; elsewhere it is ignored.
    """
    allowed_none = set(nullable)
    changes: Dict[str, Any] = {}
    for name in data.model_fields_set:
        value = getattr(data, name)
        if value is None and name not in allowed_none:
            continue
        changes[name] = value.value if isinstance(value, TaskStatus) else value
    return changes


def _record_values(entity: Mapping[str, Any], names: Iterable[str]) -> Dict[str, Any]:
    """Current values of `names` in gateway form, used to write them back."""
    values = {name: entity[name] for name in names}
    return {k: v.value if isinstance(v, TaskStatus) else v for k, v in values.items()}


def _synchronized(method: Callable[..., Any]) -> Callable[..., Any]:
    """Run a TodoStore method while holding the store lock."""

    @functools.wraps(method)
    def wrapper(self: "TodoStore", *args: Any, **kwargs: Any) -> Any:
        with self._lock:
            return method(self, *args, **kwargs)

    return wrapper


# PUBLIC_INTERFACE
class TodoStore:
    """
    Stateful store of categories, tasks and subtasks backed by a RecordGateway.

    Every mutation validates first, then writes through the gateway, and only
    applies the gateway's answer to local state once the write succeeded.
    Subscribers are notified synchronously after each change.

    When an operation needs a second gateway write and that write fails, the
    first write is undone so the operation is applied entirely or not at all.

    Public methods run under one re-entrant lock, so threadpool request
    handlers see a single writer.
    """

    def __init__(
        self,
        gateway: RecordGateway,
        clock: Optional[Callable[[], datetime]] = None,
        id_factory: Optional[Callable[[], str]] = None,
    ) -> None:
        self._gateway = gateway
        self._clock = clock or datetime.now
        self._new_id = id_factory or (lambda: uuid.uuid4().hex)
        self._lock = threading.RLock()
        self._categories: List[CategoryEntity] = []
        self._tasks: List[TaskEntity] = []
        self._listeners: List[Listener] = []
        self._loading = False
        self._loaded = False

    # ---- read access ----

    @property
    def gateway(self) -> RecordGateway:
        return self._gateway

    @property
    @_synchronized
    def categories(self) -> List[CategoryEntity]:
        return [dict(c) for c in self._categories]  # type: ignore[misc]

    @property
    @_synchronized
    def tasks(self) -> List[TaskEntity]:
        return [_copy_task(t) for t in self._tasks]

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def loaded(self) -> bool:
        return self._loaded

    @_synchronized
    def snapshot(self) -> StoreSnapshot:
        return StoreSnapshot(
            categories=tuple(self.categories),
            tasks=tuple(self.tasks),
            loading=self._loading,
        )

    @_synchronized
    def get_category(self, category_id: str) -> Optional[CategoryEntity]:
        found = self._find_category(category_id)
        return None if found is None else dict(found)  # type: ignore[return-value]

    @_synchronized
    def get_task(self, task_id: str) -> Optional[TaskEntity]:
        found = self._find_task(task_id)
        return None if found is None else _copy_task(found)

    # ---- subscriptions ----

    @_synchronized
    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener and return a callable that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        if not self._listeners:
            return
        snap = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snap)
            except Exception:
                logger.exception("Store listener %r failed", listener)

    # ---- internals ----

    def _now(self) -> datetime:
        return self._clock()

    def _find_category(self, category_id: str) -> Optional[CategoryEntity]:
        return next((c for c in self._categories if c["id"] == category_id), None)

    def _find_task(self, task_id: str) -> Optional[TaskEntity]:
        return next((t for t in self._tasks if t["id"] == task_id), None)

    def _require_category(self, category_id: str) -> CategoryEntity:
        category = self._find_category(category_id)
        if category is None:
            raise NotFoundError("Category", category_id)
        return category

    def _require_task(self, task_id: str) -> TaskEntity:
        task = self._find_task(task_id)
        if task is None:
            raise NotFoundError("Task", task_id)
        return task

    def _require_subtask(self, task: TaskEntity, subtask_id: str) -> SubtaskEntity:
        subtask = next((s for s in task["subtasks"] if s["id"] == subtask_id), None)
        if subtask is None:
            raise NotFoundError("Subtask", subtask_id)
        return subtask

    @staticmethod
    def _coerce(schema: Type[SchemaT], fields: Fields) -> SchemaT:
        """Accept a schema instance or a plain mapping and return a validated schema."""
        if isinstance(fields, schema):
            return fields
        try:
            if fields is None:
                return schema()
            if isinstance(fields, BaseModel):
                fields = fields.model_dump(exclude_unset=True)
            return schema.model_validate(dict(fields))
        except SchemaValidationError as e:
            raise ValidationError(
                f"invalid {schema.__name__} fields",
                e.errors(include_url=False, include_context=False),
            ) from e

    def _gateway_call(self, operation: str, fn: Callable[..., Any], *args: Any) -> Any:
        """Run a gateway call; failures are logged here and re-raised to the caller."""
        try:
            return fn(*args)
        except GatewayError as e:
            logger.error("%s aborted: %s", operation, e)
            raise

    def _replace_task(self, updated: TaskEntity) -> None:
        for i, t in enumerate(self._tasks):
            if t["id"] == updated["id"]:
                self._tasks[i] = updated
                return

    def _replace_category(self, updated: CategoryEntity) -> None:
        for i, c in enumerate(self._categories):
            if c["id"] == updated["id"]:
                self._categories[i] = updated
                return

    def _touch_category(self, operation: str, category_id: str, when: datetime) -> None:
        """Refresh a category's last_used; unknown categories are left alone."""
        if self._find_category(category_id) is None:
            logger.debug("%s: category %s not loaded, last_used not refreshed", operation, category_id)
            return
        stored = self._gateway_call(operation, self._gateway.update, CATEGORIES, category_id, {"last_used": when})
        self._replace_category(_category_from_record(stored))

    def _write_task_fields(self, operation: str, task: TaskEntity, fields: Dict[str, Any]) -> TaskEntity:
        """Persist task-level fields and swap in the stored version, keeping local subtasks."""
        stored = self._gateway_call(operation, self._gateway.update, TASKS, task["id"], fields)
        updated = _task_from_record(stored, task["subtasks"])
        self._replace_task(updated)
        return updated

    def _refresh_after_subtask_change(self, operation: str, task: TaskEntity, recompute: bool) -> TaskEntity:
        fields: Dict[str, Any] = {"updated_at": self._now()}
        if recompute and task["subtasks"]:
            fields["status"] = derive_status(task["subtasks"]).value
        return self._write_task_fields(operation, task, fields)

    def _remove_task(self, operation: str, task: TaskEntity) -> None:
        """Delete a task's subtasks then the task, pruning local state as each delete lands."""
        for subtask in list(task["subtasks"]):
            self._gateway_call(operation, self._gateway.delete, SUBTASKS, subtask["id"])
            task["subtasks"] = [s for s in task["subtasks"] if s["id"] != subtask["id"]]
        self._gateway_call(operation, self._gateway.delete, TASKS, task["id"])
        self._tasks = [t for t in self._tasks if t["id"] != task["id"]]

    def _rollback(self, operation: str, undo: Callable[[], Any], restore: Callable[[], None]) -> None:
        """
        Undo a gateway write whose follow-up write failed.

        Local state is restored only once the gateway accepted the undo; if the
        undo fails too, local state keeps the partial change the gateway holds.
        """
        try:
            undo()
        except (GatewayError, NotFoundError) as e:
            logger.error("%s rollback failed, partial change kept: %s", operation, e)
            self._notify()
            return
        restore()
        logger.warning("%s rolled back", operation)

    # ---- lifecycle ----

    @_synchronized
    def load(self) -> None:
        """Replace local state with everything the gateway holds."""
        self._loading = True
        self._notify()
        try:
            category_records = self._gateway_call("load", self._gateway.list, CATEGORIES, "created_at")
            task_records = self._gateway_call("load", self._gateway.list, TASKS, "created_at")
            subtask_records = self._gateway_call("load", self._gateway.list, SUBTASKS, "created_at")
        except GatewayError:
            self._loading = False
            self._notify()
            raise
        self._loading = False

        by_task: Dict[str, List[SubtaskEntity]] = {}
        for record in subtask_records:
            subtask = _subtask_from_record(record)
            by_task.setdefault(subtask["task_id"], []).append(subtask)

        self._categories = [_category_from_record(r) for r in category_records]
        self._tasks = [_task_from_record(r, by_task.pop(str(r["id"]), [])) for r in task_records]
        if by_task:
            logger.warning("Ignoring subtasks of %d unknown tasks", len(by_task))
        self._loaded = True
        logger.info(
            "Store loaded from %s: %d categories, %d tasks",
            self._gateway.name,
            len(self._categories),
            len(self._tasks),
        )
        self._notify()

    @_synchronized
    def seed_defaults(self) -> List[CategoryEntity]:
        """Create the starter categories when the store holds none. Returns what was created."""
        if self._categories:
            return []
        created = [self.add_category(name, color) for name, color in DEFAULT_CATEGORIES]
        logger.info("Seeded %d default categories", len(created))
        return created

    # ---- categories ----

    @_synchronized
    def add_category(self, name: str, color: Optional[str] = None) -> CategoryEntity:
        data = self._coerce(CategoryCreate, {"name": name, "color": color})
        now = self._now()
        record = {
            "id": self._new_id(),
            "name": data.name,
            "color": data.color,
            "created_at": now,
            "last_used": now,
        }
        stored = self._gateway_call("add_category", self._gateway.insert, CATEGORIES, record)
        category = _category_from_record(stored)
        self._categories.append(category)
        logger.debug("Added category %s (%s)", category["id"], category["name"])
        self._notify()
        return dict(category)  # type: ignore[return-value]

    @_synchronized
    def update_category(self, category_id: str, fields: Fields) -> CategoryEntity:
        current = self._require_category(category_id)
        changes = _changes(self._coerce(CategoryUpdate, fields), nullable={"color"})
        if changes:
            stored = self._gateway_call("update_category", self._gateway.update, CATEGORIES, category_id, changes)
            current = _category_from_record(stored)
            self._replace_category(current)
            self._notify()
        return dict(current)  # type: ignore[return-value]

    @_synchronized
    def delete_category(self, category_id: str) -> None:
        """Delete a category and every task (with subtasks) that belongs to it."""
        self._require_category(category_id)
        owned = [t for t in self._tasks if t["category_id"] == category_id]
        try:
            for task in owned:
                self._remove_task("delete_category", task)
            self._gateway_call("delete_category", self._gateway.delete, CATEGORIES, category_id)
            self._categories = [c for c in self._categories if c["id"] != category_id]
        finally:
            self._notify()
        logger.info("Deleted category %s with %d tasks", category_id, len(owned))

    @_synchronized
    def recent_categories(self, limit: int = 10) -> List[CategoryEntity]:
        """Categories by descending last_used, at most `limit` of them."""
        ordered = sorted(self._categories, key=lambda c: c["last_used"], reverse=True)
        return [dict(c) for c in ordered[: max(limit, 0)]]  # type: ignore[misc]

    # ---- tasks ----

    @_synchronized
    def add_task(self, title: str, category_id: str, description: Optional[str] = None) -> TaskEntity:
        """
        Create a task with status todo and refresh its category's last_used.

        The caller is responsible for checking that the category exists.
        """
        data = self._coerce(TaskCreate, {"title": title, "category_id": category_id, "description": description})
        now = self._now()
        record = {
            "id": self._new_id(),
            "title": data.title,
            "description": data.description,
            "category_id": data.category_id,
            "status": TaskStatus.TODO.value,
            "created_at": now,
            "updated_at": now,
        }
        stored = self._gateway_call("add_task", self._gateway.insert, TASKS, record)
        task = _task_from_record(stored, [])
        self._tasks.append(task)
        try:
            self._touch_category("add_task", data.category_id, now)
        except GatewayError:
            self._rollback(
                "add_task",
                lambda: self._gateway.delete(TASKS, task["id"]),
                lambda: self._tasks.remove(task),
            )
            raise
        self._notify()
        logger.debug("Added task %s to category %s", task["id"], data.category_id)
        return _copy_task(task)

    @_synchronized
    def update_task(self, task_id: str, fields: Fields) -> TaskEntity:
        """Merge provided fields; updated_at is always refreshed, status is never recomputed here."""
        current = self._require_task(task_id)
        changes = _changes(self._coerce(TaskUpdate, fields), nullable={"description"})
        now = self._now()
        changes["updated_at"] = now
        moved_to = changes.get("category_id")
        if moved_to == current["category_id"]:
            moved_to = None
        previous = _record_values(current, changes)
        updated = self._write_task_fields("update_task", current, changes)
        if moved_to:
            try:
                self._touch_category("update_task", moved_to, now)
            except GatewayError:
                self._rollback(
                    "update_task",
                    lambda: self._gateway.update(TASKS, task_id, previous),
                    lambda: self._replace_task(current),
                )
                raise
        self._notify()
        return _copy_task(updated)

    @_synchronized
    def delete_task(self, task_id: str) -> None:
        task = self._require_task(task_id)
        try:
            self._remove_task("delete_task", task)
        finally:
            self._notify()
        logger.debug("Deleted task %s", task_id)

    # ---- subtasks ----

    @_synchronized
    def add_subtask(self, task_id: str, title: str, description: Optional[str] = None) -> SubtaskEntity:
        data = self._coerce(SubtaskCreate, {"title": title, "description": description})
        task = self._find_task(task_id)
        if task is None:
            raise ValidationError(
                f"unknown task: {task_id}",
                [{"loc": ["task_id"], "msg": "task does not exist", "type": "value_error"}],
            )
        record = {
            "id": self._new_id(),
            "task_id": task_id,
            "title": data.title,
            "description": data.description,
            "completed": False,
            "created_at": self._now(),
        }
        stored = self._gateway_call("add_subtask", self._gateway.insert, SUBTASKS, record)
        subtask = _subtask_from_record(stored)
        before = task["subtasks"]
        task["subtasks"] = [*before, subtask]
        try:
            self._refresh_after_subtask_change("add_subtask", task, recompute=True)
        except GatewayError:
            self._rollback(
                "add_subtask",
                lambda: self._gateway.delete(SUBTASKS, subtask["id"]),
                lambda: task.update(subtasks=before),
            )
            raise
        self._notify()
        return dict(subtask)  # type: ignore[return-value]

    @_synchronized
    def update_subtask(self, task_id: str, subtask_id: str, fields: Fields) -> SubtaskEntity:
        task = self._require_task(task_id)
        current = self._require_subtask(task, subtask_id)
        changes = _changes(self._coerce(SubtaskUpdate, fields), nullable={"description"})
        if not changes:
            return dict(current)  # type: ignore[return-value]
        previous = _record_values(current, changes)
        before = task["subtasks"]
        stored = self._gateway_call("update_subtask", self._gateway.update, SUBTASKS, subtask_id, changes)
        updated = _subtask_from_record(stored)
        task["subtasks"] = [updated if s["id"] == subtask_id else s for s in before]
        try:
            self._refresh_after_subtask_change("update_subtask", task, recompute="completed" in changes)
        except GatewayError:
            self._rollback(
                "update_subtask",
                lambda: self._gateway.update(SUBTASKS, subtask_id, previous),
                lambda: task.update(subtasks=before),
            )
            raise
        self._notify()
        return dict(updated)  # type: ignore[return-value]

    @_synchronized
    def delete_subtask(self, task_id: str, subtask_id: str) -> None:
        task = self._require_task(task_id)
        removed = self._require_subtask(task, subtask_id)
        before = task["subtasks"]
        existed = self._gateway_call("delete_subtask", self._gateway.delete, SUBTASKS, subtask_id)
        if not existed:
            logger.warning("Subtask %s was already gone from %s", subtask_id, self._gateway.name)
        task["subtasks"] = [s for s in before if s["id"] != subtask_id]
        try:
            self._refresh_after_subtask_change("delete_subtask", task, recompute=True)
        except GatewayError:
            if existed:
                self._rollback(
                    "delete_subtask",
                    lambda: self._gateway.insert(SUBTASKS, dict(removed)),
                    lambda: task.update(subtasks=before),
                )
            else:
                self._notify()
            raise
        self._notify()

    @_synchronized
    def toggle_subtask(self, task_id: str, subtask_id: str) -> TaskEntity:
        """Flip a subtask's completed flag, then derive the task status from all its subtasks."""
        task = self._require_task(task_id)
        subtask = self._require_subtask(task, subtask_id)
        stored = self._gateway_call(
            "toggle_subtask",
            self._gateway.update,
            SUBTASKS,
            subtask_id,
            {"completed": not subtask["completed"]},
        )
        flipped = _subtask_from_record(stored)
        before = task["subtasks"]
        task["subtasks"] = [flipped if s["id"] == subtask_id else s for s in before]
        fields = {"status": derive_status(task["subtasks"]).value, "updated_at": self._now()}
        try:
            updated = self._write_task_fields("toggle_subtask", task, fields)
        except GatewayError:
            self._rollback(
                "toggle_subtask",
                lambda: self._gateway.update(SUBTASKS, subtask_id, {"completed": subtask["completed"]}),
                lambda: task.update(subtasks=before),
            )
            raise
        self._notify()
        return _copy_task(updated)

    # ---- queries ----

    @_synchronized
    def stats(self) -> TodoStats:
        return {
            "total": len(self._tasks),
            "completed": sum(1 for t in self._tasks if t["status"] == TaskStatus.DONE),
            "in_progress": sum(1 for t in self._tasks if t["status"] == TaskStatus.IN_PROGRESS),
            "total_categories": len(self._categories),
        }

    @_synchronized
    def list_tasks(self, query: Optional[TaskQuery] = None) -> List[TaskEntity]:
        """
        Return tasks matching the query.
        - Filter by status and category
        - Substring search across title and description (case-insensitive)
        - Sorting by created_at/updated_at (asc/desc)
        """
        q = query or TaskQuery()
        items: List[TaskEntity] = list(self._tasks)

        if q.status is not None:
            items = [t for t in items if t["status"] == q.status]
        if q.category_id is not None:
            items = [t for t in items if t["category_id"] == q.category_id]
        if q.search:
            s = q.search.lower()
            items = [
                t for t in items
                if s in t["title"].lower() or s in (t["description"] or "").lower()
            ]

        sort_key = q.sort.strip().lower() if q.sort else "-created_at"
        reverse = sort_key.startswith("-")
        field = sort_key[1:] if reverse else sort_key
        if field not in _TASK_SORT_FIELDS:
            field = "created_at"
        items = sorted(items, key=lambda t: t[field], reverse=reverse)  # type: ignore[literal-required]
        return [_copy_task(t) for t in items]

    @_synchronized
    def recent_tasks(self, limit: int = 5) -> List[TaskEntity]:
        """Most recently updated tasks first."""
        ordered = sorted(self._tasks, key=lambda t: t["updated_at"], reverse=True)
        return [_copy_task(t) for t in ordered[: max(limit, 0)]]

    @_synchronized
    def category_task_counts(self) -> Dict[str, int]:
        counts = Counter(t["category_id"] for t in self._tasks)
        return {c["id"]: counts.get(c["id"], 0) for c in self._categories}

    @_synchronized
    def subtask_progress(self, task_id: str) -> Tuple[int, int]:
        """(completed, total) subtasks of a task."""
        task = self._require_task(task_id)
        subtasks = task["subtasks"]
        return sum(1 for s in subtasks if s["completed"]), len(subtasks)

    @_synchronized
    def close(self) -> None:
        self._gateway.close()
