"""Sources API — manage the set of followed log files.

GET    /api/config          — list registered sources
POST   /api/config/add      — register a file and start following it
POST   /api/config/update   — change a source's tag or colour
POST   /api/config/remove   — stop following a file and unregister it
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from smartlog.dependencies import get_registry, get_tails
from smartlog.registry import (
    RegistryError,
    Source,
    SourceNotFound,
    SourceRegistry,
    is_readable,
    normalize_path,
)
from smartlog.schemas import ConfigResponse, SourceCreate, SourceOut, SourceRemove, SourceUpdate
from smartlog.tailing import TailManager

router = APIRouter(prefix="/config", tags=["sources"])
logger = logging.getLogger(__name__)


# ── Helpers ──────────────────────────────────────────────────────────────────


def _config_response(sources: list[Source]) -> ConfigResponse:
    return ConfigResponse(
        sources=[SourceOut(path=s.path, tag_name=s.tag_name, color=s.color) for s in sources],
        file_paths=[s.path for s in sources],
    )


def _list_or_500(registry: SourceRegistry) -> list[Source]:
    try:
        return registry.list()
    except RegistryError as e:
        raise HTTPException(status_code=500, detail=str(e))


# ── Endpoints ────────────────────────────────────────────────────────────────


@router.get("", response_model=ConfigResponse)
async def list_sources(registry: SourceRegistry = Depends(get_registry)) -> ConfigResponse:
    return _config_response(_list_or_500(registry))


@router.post("/add", response_model=ConfigResponse)
async def add_source(
    body: SourceCreate,
    registry: SourceRegistry = Depends(get_registry),
    tails: TailManager = Depends(get_tails),
) -> ConfigResponse:
    """Register a readable file; following starts before the response is sent."""
    path = normalize_path(body.path)
    if not is_readable(path):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"File not readable or does not exist: {path}",
        )

    try:
        started = await tails.add(registry, path, body.tag_name, body.color)
    except RegistryError as e:
        raise HTTPException(status_code=500, detail=str(e))
    if not started:
        raise HTTPException(status_code=500, detail=f"Failed to start tail for {path}")

    return _config_response(_list_or_500(registry))


@router.post("/update", response_model=ConfigResponse)
async def update_source(
    body: SourceUpdate,
    registry: SourceRegistry = Depends(get_registry),
) -> ConfigResponse:
    """Change display metadata only; the tail keeps running."""
    try:
        registry.update(body.path, body.tag_name, body.color)
    except SourceNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except RegistryError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return _config_response(_list_or_500(registry))


@router.post("/remove", response_model=ConfigResponse)
async def remove_source(
    body: SourceRemove,
    registry: SourceRegistry = Depends(get_registry),
    tails: TailManager = Depends(get_tails),
) -> ConfigResponse:
    try:
        await tails.remove(registry, body.path)
    except RegistryError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return _config_response(_list_or_500(registry))
