import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from smartlog.api import api_router
from smartlog.api.logs_ws import router as logs_ws_router
from smartlog.config import Settings
from smartlog.hub import BroadcastHub
from smartlog.registry import SourceRegistry
from smartlog.tailing import TailManager

logger = logging.getLogger(__name__)

# Quiet down noisy third-party loggers
_NOISY_LOGGERS = ("httpcore", "httpx", "watchfiles", "uvicorn.access")


def configure_logging(level: str = "INFO") -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    logging.root.addHandler(handler)
    logging.root.setLevel(level.upper())
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or Settings()

    hub = BroadcastHub(
        history_size=settings.history_size,
        session_queue_size=settings.session_queue_size,
    )
    tails = TailManager(
        hub,
        command=settings.tail_command,
        seed_lines=settings.tail_seed_lines,
        stop_grace=settings.stop_grace_seconds,
    )
    registry = SourceRegistry(settings.config_file)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        started = await tails.start_registered(registry)
        logger.info("%s ready, following %d file(s)", settings.app_name, started)
        yield
        await tails.stop_all()

    app = FastAPI(
        title=settings.app_name,
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.hub = hub
    app.state.tails = tails
    app.state.registry = registry

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in settings.cors_origins.split(",") if o.strip()],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router)
    app.include_router(logs_ws_router)  # WebSocket: /ws

    @app.get("/health")
    async def health() -> dict[str, str | int]:
        return {"status": "ok", "tails": len(tails.paths), "sessions": hub.session_count}

    return app
