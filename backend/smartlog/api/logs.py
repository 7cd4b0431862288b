"""REST endpoint for fetching a source's recent history."""

from typing import Any

from fastapi import APIRouter, Depends, Query

from smartlog.dependencies import get_hub
from smartlog.hub import BroadcastHub
from smartlog.log_buffer import DEFAULT_CAPACITY
from smartlog.registry import normalize_path

router = APIRouter(prefix="/logs", tags=["logs"])


@router.get("", response_model=list[dict[str, Any]])
async def get_logs(
    path: str = Query(..., min_length=1),
    limit: int = Query(200, ge=1, le=DEFAULT_CAPACITY),
    level: str | None = Query(None),
    hub: BroadcastHub = Depends(get_hub),
) -> list[dict[str, Any]]:
    """Return the most recent records for *path* (newest last)."""
    return hub.history(normalize_path(path), limit=limit, level=level)
