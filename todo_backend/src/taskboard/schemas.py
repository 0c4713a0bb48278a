from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .models import TaskStatus

_COLOR_RE = re.compile(r"^#[0-9A-Fa-f]{6}$")


def _clean_required(value: Optional[str], field: str, max_length: int) -> Optional[str]:
    """
    Strip whitespace and enforce 1..max_length characters. None passes through
    so optional update fields can reuse it.
    """
    if value is None:
        return None
    s = value.strip()
    if not (1 <= len(s) <= max_length):
        raise ValueError(f"{field} length must be between 1 and {max_length} characters")
    return s


def _clean_optional(value: Optional[str]) -> Optional[str]:
    """Strip free text; blank strings become None."""
    if value is None:
        return None
    s = value.strip()
    return s or None


def _clean_color(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    s = value.strip()
    if not _COLOR_RE.match(s):
        raise ValueError("color must be a hex string like '#3B82F6'")
    return s.upper()


# PUBLIC_INTERFACE
class CategoryCreate(BaseModel):
    """Schema for creating a category. The color is set at creation, no follow-up write needed."""

    model_config = ConfigDict(json_schema_extra={"example": {"name": "Kerjaan", "color": "#10B981"}})

    name: str = Field(..., description="Category name", min_length=1, max_length=100)
    color: Optional[str] = Field(default=None, description="Optional '#RRGGBB' display color")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return _clean_required(v, "name", 100)  # type: ignore[return-value]

    @field_validator("color")
    @classmethod
    def validate_color(cls, v: Optional[str]) -> Optional[str]:
        return _clean_color(v)


# PUBLIC_INTERFACE
class CategoryUpdate(BaseModel):
    """
    Schema for updating a category.
    All fields are optional; only provided fields are merged. An explicit null
    color clears it.
    """

    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, description="Category name", min_length=1, max_length=100)
    color: Optional[str] = Field(default=None, description="Optional '#RRGGBB' display color")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        return _clean_required(v, "name", 100)

    @field_validator("color")
    @classmethod
    def validate_color(cls, v: Optional[str]) -> Optional[str]:
        return _clean_color(v)


# PUBLIC_INTERFACE
class CategoryOut(BaseModel):
    """Schema returned by the API for a category."""

    id: str = Field(..., description="Unique identifier of the category")
    name: str
    color: Optional[str] = None
    created_at: datetime
    last_used: datetime
    task_count: int = Field(default=0, description="Number of tasks currently in the category")


# PUBLIC_INTERFACE
class TaskCreate(BaseModel):
    """Schema for creating a task inside an existing category."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "title": "Buy milk",
                "category_id": "3f2a9c0d4e5b4a61b2c3d4e5f6a7b8c9",
                "description": "Two litres, full fat",
            }
        }
    )

    title: str = Field(..., description="Short title for the task", min_length=1, max_length=200)
    category_id: str = Field(..., description="Owning category id", min_length=1)
    description: Optional[str] = Field(default=None, description="Optional detailed description")

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        return _clean_required(v, "title", 200)  # type: ignore[return-value]

    @field_validator("description")
    @classmethod
    def validate_description(cls, v: Optional[str]) -> Optional[str]:
        return _clean_optional(v)


# PUBLIC_INTERFACE
class TaskUpdate(BaseModel):
    """
    Schema for updating a task.
    All fields are optional; only provided fields are merged. Setting status
    here is a manual override and is not recomputed from subtasks.
    """

    model_config = ConfigDict(
        extra="forbid",
        json_schema_extra={"example": {"title": "Buy oat milk", "status": "in-progress"}},
    )

    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None)
    status: Optional[TaskStatus] = Field(default=None, description="todo, in-progress or done")
    category_id: Optional[str] = Field(default=None, min_length=1, description="Move the task to another category")

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: Optional[str]) -> Optional[str]:
        return _clean_required(v, "title", 200)

    @field_validator("description")
    @classmethod
    def validate_description(cls, v: Optional[str]) -> Optional[str]:
        return _clean_optional(v)


# PUBLIC_INTERFACE
class SubtaskCreate(BaseModel):
    """Schema for adding a checklist item to a task."""

    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(default=None)

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        return _clean_required(v, "title", 200)  # type: ignore[return-value]

    @field_validator("description")
    @classmethod
    def validate_description(cls, v: Optional[str]) -> Optional[str]:
        return _clean_optional(v)


# PUBLIC_INTERFACE
class SubtaskUpdate(BaseModel):
    """Schema for updating a subtask. Only provided fields are merged."""

    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None)
    completed: Optional[bool] = Field(default=None)

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: Optional[str]) -> Optional[str]:
        return _clean_required(v, "title", 200)

    @field_validator("description")
    @classmethod
    def validate_description(cls, v: Optional[str]) -> Optional[str]:
        return _clean_optional(v)


# PUBLIC_INTERFACE
class SubtaskOut(BaseModel):
    """Schema returned by the API for a subtask."""

    id: str
    task_id: str
    title: str
    description: Optional[str] = None
    completed: bool
    created_at: datetime


# PUBLIC_INTERFACE
class TaskOut(BaseModel):
    """Schema returned by the API for a task, subtasks included."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": "9d1c2b3a4f5e46d7a8b9c0d1e2f3a4b5",
                "title": "Buy milk",
                "description": None,
                "category_id": "3f2a9c0d4e5b4a61b2c3d4e5f6a7b8c9",
                "status": "in-progress",
                "subtasks": [],
                "completed_subtasks": 1,
                "total_subtasks": 2,
                "created_at": "2025-01-25T10:15:30.123456",
                "updated_at": "2025-01-26T09:00:00.000001",
            }
        }
    )

    id: str
    title: str
    description: Optional[str] = None
    category_id: str
    status: TaskStatus
    subtasks: List[SubtaskOut] = Field(default_factory=list)
    completed_subtasks: int = 0
    total_subtasks: int = 0
    created_at: datetime
    updated_at: datetime


# PUBLIC_INTERFACE
class StatsOut(BaseModel):
    """Dashboard counters."""

    total: int = Field(..., description="Total number of tasks")
    completed: int = Field(..., description="Tasks with status done")
    in_progress: int = Field(..., description="Tasks with status in-progress")
    total_categories: int = Field(..., description="Total number of categories")


def error_body(error: str, message: str, detail: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
    """Build the JSON body used for validation and gateway error responses."""
    body: Dict[str, Any] = {"error": error, "message": message}
    if detail is not None:
        body["detail"] = detail
    return body
