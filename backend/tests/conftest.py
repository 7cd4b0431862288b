"""
Shared pytest fixtures.

Every test gets its own config directory under tmp_path, so the registry
file never touches the real ~/.smart-log-viewer.  Tests that follow real
files need the `tail` binary and are skipped without it.
"""

import shutil
from pathlib import Path

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from smartlog.config import Settings
from smartlog.main import create_app


@pytest.fixture
def requires_tail() -> None:
    if shutil.which("tail") is None:
        pytest.skip("tail binary not available")


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        config_dir=tmp_path / "config",
        history_size=2000,
        stop_grace_seconds=1.0,
        _env_file=None,
    )


@pytest.fixture
def log_file(tmp_path: Path) -> Path:
    path = tmp_path / "app-server.log"
    path.write_text("")
    return path


# ── Application + HTTP test client ────────────────────────────────────────────


@pytest_asyncio.fixture
async def app(settings: Settings) -> FastAPI:
    _app = create_app(settings)
    yield _app
    await _app.state.tails.stop_all()


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncClient:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
