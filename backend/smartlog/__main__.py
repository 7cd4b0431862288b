"""Run the log viewer: ``python -m smartlog``."""

import uvicorn

from smartlog.config import Settings
from smartlog.main import configure_logging, create_app
from smartlog.tailing import TailManager


class LogViewerServer(uvicorn.Server):
    """Stops every tail before uvicorn closes its listening sockets."""

    def __init__(self, config: uvicorn.Config, tails: TailManager) -> None:
        super().__init__(config)
        self._tails = tails

    async def shutdown(self, sockets=None) -> None:
        await self._tails.stop_all()
        await super().shutdown(sockets=sockets)


def main() -> None:
    settings = Settings()
    configure_logging(settings.log_level)
    app = create_app(settings)
    config = uvicorn.Config(
        app,
        host=settings.host,
        port=settings.port,
        log_config=None,
        log_level=settings.log_level.lower(),
    )
    LogViewerServer(config, app.state.tails).run()


if __name__ == "__main__":
    main()
