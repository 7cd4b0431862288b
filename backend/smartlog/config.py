from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Registry storage
    config_dir: Path = Path("~/.smart-log-viewer")

    # HTTP / WebSocket listener
    host: str = "127.0.0.1"
    port: int = 3847

    # App
    app_name: str = "Smart Log Viewer"
    log_level: str = "INFO"

    # CORS, comma-separated list of allowed origins
    cors_origins: str = "http://localhost:3847"

    # Per-source history kept in memory
    history_size: int = 2000

    # Follow process: `<tail_command> -F -n <tail_seed_lines> <path>`
    tail_command: str = "tail"
    tail_seed_lines: int = 100
    stop_grace_seconds: float = 2.0

    # Outbound messages buffered per viewer before new ones are dropped
    session_queue_size: int = 256

    @model_validator(mode="after")
    def expand_config_dir(self) -> "Settings":
        self.config_dir = self.config_dir.expanduser()
        return self

    @property
    def config_file(self) -> Path:
        return self.config_dir / "config.json"
