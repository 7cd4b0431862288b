"""FastAPI dependencies resolving the components attached to ``app.state``."""

from fastapi import Request

from smartlog.hub import BroadcastHub
from smartlog.registry import SourceRegistry
from smartlog.tailing import TailManager


def get_hub(request: Request) -> BroadcastHub:
    return request.app.state.hub


def get_tails(request: Request) -> TailManager:
    return request.app.state.tails


def get_registry(request: Request) -> SourceRegistry:
    return request.app.state.registry
