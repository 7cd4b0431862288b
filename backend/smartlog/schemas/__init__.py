from smartlog.schemas.source import (
    ConfigResponse,
    SourceCreate,
    SourceOut,
    SourceRemove,
    SourceUpdate,
)

__all__ = [
    "SourceCreate",
    "SourceUpdate",
    "SourceRemove",
    "SourceOut",
    "ConfigResponse",
]
