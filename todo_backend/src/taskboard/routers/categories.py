from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ..dependencies import get_store
from ..models import CategoryEntity
from ..schemas import CategoryCreate, CategoryOut, CategoryUpdate
from ..store import TodoStore

router = APIRouter(
    prefix="/api/v1/categories",
    tags=["categories"],
)


def _category_out(category: CategoryEntity, store: TodoStore) -> CategoryOut:
    counts = store.category_task_counts()
    return CategoryOut(**category, task_count=counts.get(category["id"], 0))  # type: ignore[arg-type]


# PUBLIC_INTERFACE
@router.get(
    "/",
    response_model=List[CategoryOut],
    summary="List Categories",
    description="List all categories in creation order, each with its current task count.",
)
def list_categories(store: TodoStore = Depends(get_store)) -> List[CategoryOut]:
    counts = store.category_task_counts()
    return [CategoryOut(**c, task_count=counts.get(c["id"], 0)) for c in store.categories]  # type: ignore[arg-type]


# PUBLIC_INTERFACE
@router.get(
    "/recent",
    response_model=List[CategoryOut],
    summary="Recent Categories",
    description="Categories ordered by most recent use, for category pickers.",
)
def recent_categories(
    limit: int = Query(10, ge=0, le=100, description="Maximum number of categories to return"),
    store: TodoStore = Depends(get_store),
) -> List[CategoryOut]:
    return [_category_out(c, store) for c in store.recent_categories(limit)]


# PUBLIC_INTERFACE
@router.post(
    "/",
    response_model=CategoryOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create Category",
    description="Create a category, optionally with a display color, and return it fully populated.",
    responses={422: {"description": "Validation error"}},
)
def create_category(payload: CategoryCreate, store: TodoStore = Depends(get_store)) -> CategoryOut:
    created = store.add_category(payload.name, payload.color)
    return _category_out(created, store)


# PUBLIC_INTERFACE
@router.get(
    "/{category_id}",
    response_model=CategoryOut,
    summary="Get Category",
    responses={404: {"description": "Category not found"}},
)
def get_category(category_id: str, store: TodoStore = Depends(get_store)) -> CategoryOut:
    category = store.get_category(category_id)
    if category is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Category not found")
    return _category_out(category, store)


# PUBLIC_INTERFACE
@router.patch(
    "/{category_id}",
    response_model=CategoryOut,
    summary="Update Category",
    description="Rename a category or change its color.",
    responses={404: {"description": "Category not found"}},
)
def patch_category(
    category_id: str, payload: CategoryUpdate, store: TodoStore = Depends(get_store)
) -> CategoryOut:
    updated = store.update_category(category_id, payload)
    return _category_out(updated, store)


# PUBLIC_INTERFACE
@router.delete(
    "/{category_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete Category",
    description="Delete a category together with all of its tasks and their subtasks.",
    responses={404: {"description": "Category not found"}},
)
def delete_category(category_id: str, store: TodoStore = Depends(get_store)) -> None:
    store.delete_category(category_id)
    return None
