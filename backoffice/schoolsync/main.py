"""
SchoolSync - Main entry point.

Wires the reconciliation layer together:
- Remote store client and Persistence Gateway
- Entity Store, Session Partitioner and notification center
- Sync Coordinator (user mutations)
- Bootstrap Loader (startup load, then one reaper run)
- Tombstone Reaper loop (optional, REAPER_INTERVAL_SECONDS)

Usage:
    schoolsync

Configuration is entirely via environment variables.
See config.py for all available settings.

Invariants:
    - Mutations are accepted before bootstrap completes; the store simply
      holds defaults until then
    - Graceful shutdown stops the reaper loop before closing the client

How to change safely:
    - Keep one EntityStore per Application; the coordinator, loader and
      reaper must share it
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from datetime import datetime
from typing import Callable

import json_log_formatter

from .bootstrap import BootstrapLoader, BootstrapResult, RetryPolicy
from .config import SyncConfig
from .gateway import PersistenceGateway, RemoteStoreClient, create_remote_client
from .notify import NotificationCenter
from .reaper import TombstoneReaper
from .session import SessionPartitioner, StoreSessionSource
from .store.entity_store import EntityStore
from .store.records import utcnow
from .sync.coordinator import SyncCoordinator

logger = logging.getLogger(__name__)


def setup_logging(config: SyncConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: SchoolSync configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


class Application:
    """SchoolSync orchestrator.

    Attributes:
        config: SchoolSync configuration
        store: Shared Entity Store
        notifications: Notification center receiving every user-visible outcome
        gateway: Persistence Gateway over the configured remote client
        partitioner: Session Partitioner reading the store's configuration
        coordinator: Sync Coordinator for user mutations
        reaper: Tombstone Reaper
        loader: Bootstrap Loader

    Example:
        >>> app = Application()
        >>> result = await app.bootstrap()
        >>> outcome = await app.coordinator.create("fees", {"studentId": "ST01", "amount": 500})
    """

    def __init__(
        self,
        config: SyncConfig | None = None,
        client: RemoteStoreClient | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Initialize the application.

        Args:
            config: Optional configuration (loaded from env if not provided)
            client: Optional remote client (built from config if not provided)
            clock: Time source shared by the coordinator and reaper
        """
        self.config = config or SyncConfig.from_env()
        self.store = EntityStore()
        self.notifications = NotificationCenter()
        self.gateway = PersistenceGateway(client or create_remote_client(self.config))
        self.partitioner = SessionPartitioner(StoreSessionSource(self.store))
        self.coordinator = SyncCoordinator(
            store=self.store,
            gateway=self.gateway,
            partitioner=self.partitioner,
            notifier=self.notifications,
            clock=clock,
        )
        self.reaper = TombstoneReaper(
            store=self.store,
            gateway=self.gateway,
            notifier=self.notifications,
            retention_days=self.config.retention.retention_days,
            clock=clock,
        )
        self.loader = BootstrapLoader(
            store=self.store,
            gateway=self.gateway,
            notifier=self.notifications,
            reaper=self.reaper,
            retry_policy=RetryPolicy(
                max_retries=self.config.bootstrap.max_retries,
                delay_ms=self.config.bootstrap.retry_delay_ms,
            ),
        )

        self._running = False
        self._shutdown_event = asyncio.Event()
        self._tasks: list[asyncio.Task] = []

    async def bootstrap(self) -> BootstrapResult:
        """Load the store from the remote store and apply notification settings."""
        result = await self.loader.load()
        self.notifications.configure(self.store.config.settings)
        return result

    async def start(self) -> None:
        """Bootstrap, start background loops and wait for shutdown."""
        if self._running:
            logger.warning("Application already running")
            return

        logger.info("Starting SchoolSync")
        self.config.log_config()

        try:
            result = await self.bootstrap()
            logger.info(
                "Bootstrap finished",
                extra={"status": result.status.value, "attempts": result.attempts},
            )

            interval = self.config.retention.reaper_interval_seconds
            if interval > 0:
                self._tasks.append(asyncio.create_task(self.reaper.start(interval)))

            self._running = True
            logger.info("SchoolSync started")

            await self._shutdown_event.wait()

        except Exception as e:
            logger.error(f"Startup failed: {e}", exc_info=True)
            self._running = True
            await self.stop()
            raise

    async def stop(self) -> None:
        """Stop background loops and close the remote client."""
        if not self._running:
            return

        logger.info("Stopping SchoolSync")

        await self.reaper.stop()
        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []

        await self.gateway.close()

        self._running = False
        logger.info("SchoolSync stopped")

    def request_shutdown(self) -> None:
        """Request graceful shutdown."""
        self._shutdown_event.set()


def main() -> None:
    """Main entry point."""
    try:
        config = SyncConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    app = Application(config)

    def handle_signal(sig: int) -> None:
        logger.info(f"Received signal {sig}, initiating shutdown")
        app.request_shutdown()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, handle_signal, sig)

    try:
        loop.run_until_complete(app.start())
    except KeyboardInterrupt:
        pass
    finally:
        loop.run_until_complete(app.stop())
        loop.close()


if __name__ == "__main__":
    main()
