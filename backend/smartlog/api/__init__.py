from fastapi import APIRouter

from smartlog.api.logs import router as logs_router
from smartlog.api.sources import router as sources_router

api_router = APIRouter(prefix="/api")
api_router.include_router(sources_router)
api_router.include_router(logs_router)
