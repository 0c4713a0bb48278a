from __future__ import annotations

from fastapi import APIRouter, Depends

from ..dependencies import get_store
from ..schemas import StatsOut
from ..store import TodoStore

router = APIRouter(
    prefix="/api/v1/stats",
    tags=["stats"],
)


# PUBLIC_INTERFACE
@router.get("/", response_model=StatsOut, summary="Dashboard Stats")
def get_stats(store: TodoStore = Depends(get_store)) -> StatsOut:
    """Task and category counters, recomputed on every call."""
    return StatsOut(**store.stats())
