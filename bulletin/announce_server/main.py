"""
Bulletin announcement server - Main entry point.

Wires together, in start order:
- Key-value store (Redis, or memory for local runs)
- AnnouncementService, which arms the expiry timer
- HTTP admin API served by uvicorn

Usage:
    python -m bulletin.announce_server.main
    bulletin-server

Every setting comes from the environment; see config.py.

Invariants:
    - The store is connected before the HTTP API accepts requests
    - Shutdown stops the HTTP API, then cancels the expiry timer, then closes the store

How to change safely:
    - Register new components in _start_components() and release them in stop()
    - Keep stop() safe to call after a partial start
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys

import json_log_formatter
import uvicorn

from .api import create_http_app
from .config import ObservabilityConfig, ServerConfig
from .service import AnnouncementService
from .store import KeyValueStore, create_store

logger = logging.getLogger(__name__)

TEXT_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

# Third-party loggers that are too chatty at INFO.
QUIET_LOGGERS = ("redis", "uvicorn.access")


def setup_logging(observability: ObservabilityConfig) -> None:
    """Install a single stderr handler on the root logger.

    Args:
        observability: Log level and format (json or text)
    """
    if observability.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter(TEXT_LOG_FORMAT)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(getattr(logging, observability.log_level.upper(), logging.INFO))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


class Server:
    """Runs the announcement service behind the HTTP admin API.

    Attributes:
        config: Server configuration
        store: Key-value store, set while running
        service: Announcement service, set while running
        http_server: uvicorn server, set while running

    Example:
        >>> server = Server(ServerConfig.from_env())
        >>> await server.run()   # returns after request_shutdown()
    """

    def __init__(self, config: ServerConfig | None = None) -> None:
        self.config = config or ServerConfig.from_env()
        self.store: KeyValueStore | None = None
        self.service: AnnouncementService | None = None
        self.http_server: uvicorn.Server | None = None
        self._http_task: asyncio.Task | None = None
        self._stopping = asyncio.Event()

    @property
    def is_running(self) -> bool:
        return self.service is not None and self.service.is_running

    async def run(self) -> None:
        """Start every component and block until shutdown is requested."""
        try:
            await self.start()
            await self._stopping.wait()
        finally:
            await self.stop()

    async def start(self) -> None:
        """Start the store, the service and the HTTP API."""
        if self.is_running:
            logger.warning("Announcement server already running")
            return

        self.config.log_config()
        try:
            await self._start_components()
        except Exception as e:
            logger.error(f"Announcement server failed to start: {e}", exc_info=True)
            await self.stop()
            raise

        logger.info(
            "Announcement server started",
            extra={"http_bind": f"{self.config.http.host}:{self.config.http.port}"},
        )

    async def _start_components(self) -> None:
        self.store = create_store(self.config)
        self.service = AnnouncementService(self.store, self.config.announcements)
        await self.service.start()

        self.http_server = uvicorn.Server(
            uvicorn.Config(
                create_http_app(self.service, self.config.http),
                host=self.config.http.host,
                port=self.config.http.port,
                log_config=None,
            )
        )
        self._http_task = asyncio.create_task(self.http_server.serve(), name="announce-http")
        # uvicorn exiting on its own (bind failure, fatal error) stops the server.
        self._http_task.add_done_callback(lambda _task: self.request_shutdown())

    async def stop(self) -> None:
        """Stop components in reverse start order. Safe after a partial start."""
        if self.http_server is None and self.service is None:
            return

        logger.info("Stopping announcement server")

        if self.http_server is not None:
            self.http_server.should_exit = True
        if self._http_task is not None:
            await asyncio.gather(self._http_task, return_exceptions=True)
        if self.service is not None:
            await self.service.stop()

        self.http_server = None
        self._http_task = None
        self.service = None
        self.store = None
        logger.info("Announcement server stopped")

    def request_shutdown(self) -> None:
        """Ask run() to return. Safe to call from signal handlers."""
        self._stopping.set()


async def serve(config: ServerConfig) -> None:
    """Run a Server until SIGTERM or SIGINT."""
    server = Server(config)
    loop = asyncio.get_running_loop()

    def on_signal(sig: signal.Signals) -> None:
        logger.info("Shutdown signal received", extra={"signal": sig.name})
        server.request_shutdown()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, on_signal, sig)

    await server.run()


def main() -> None:
    """Console entry point (bulletin-server)."""
    try:
        config = ServerConfig.from_env()
    except ValueError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config.observability)
    asyncio.run(serve(config))


if __name__ == "__main__":
    main()
