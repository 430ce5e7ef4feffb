"""Main daemon process for devflow."""

import asyncio
import signal
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import psutil
from aiohttp import web
from loguru import logger

from .api import create_api_app
from .bulk import BulkClassifier
from .bus import EventBus
from .capture import IngestionService
from .classifier import SingleEntryClassifier
from .config import Config
from .expander import QueryExpander
from .oracle import OracleClient, StructuredOracle, create_oracle, retry_policy_from_config
from .search import SearchOrchestrator
from .store import VaultEntryStore


__version__ = "0.1.0"


class DevflowDaemon:
    """Main daemon coordinating all services."""

    def __init__(self, config: Config, oracle: Optional[StructuredOracle] = None):
        self.config = config
        self.start_time = datetime.now(timezone.utc)
        self.running = False
        self._shutdown = asyncio.Event()

        # Oracle access: classification gets the full retry budget,
        # search expansion answers on the first attempt or not at all
        self._owns_oracle = oracle is None
        self.oracle = oracle or create_oracle(config.oracle)
        self.oracle_client = OracleClient(self.oracle, retry_policy_from_config(config.retry))
        expansion_client = self.oracle_client.with_policy(
            retry_policy_from_config(config.retry, max_attempts=config.search.expansion_attempts)
        )

        # Core services
        self.event_bus = EventBus()
        self.store = VaultEntryStore(config.vault_path, self.event_bus)
        self.classifier = SingleEntryClassifier(self.oracle_client, config.classification)
        self.bulk_classifier = BulkClassifier(self.oracle_client, config.classification)
        self.ingestion = IngestionService(
            self.store,
            self.classifier,
            self.bulk_classifier,
            owner_id=config.owner_id,
            event_bus=self.event_bus
        )
        self.search_orchestrator = SearchOrchestrator(
            QueryExpander(expansion_client, config.search),
            config.search,
            self.event_bus
        )

        # Statistics
        self.stats = {
            "entries_created": 0,
            "bulk_imports": 0,
            "search_count": 0
        }

        # HTTP API
        self.api_app = None
        self.api_runner = None
        self.api_site = None

    async def start(self) -> None:
        """Start all daemon services."""
        logger.info("Starting devflow daemon...")

        await self.event_bus.start()

        # Subscribe to events for stats
        self.event_bus.subscribe("entry.created", self._on_entry_created)
        self.event_bus.subscribe("ingestion.bulk_completed", self._on_bulk_import)
        self.event_bus.subscribe("search.completed", self._on_search)

        await self._start_api()

        self.running = True
        logger.info("devflow daemon started successfully")

    async def stop(self) -> None:
        """Stop all daemon services."""
        if not self.running:
            return
        self.running = False
        logger.info("Stopping devflow daemon...")

        if self.api_site:
            await self.api_site.stop()
        if self.api_runner:
            await self.api_runner.cleanup()

        if self._owns_oracle:
            await self.oracle.close()
        await self.event_bus.stop()

        logger.info("devflow daemon stopped")

    def request_shutdown(self) -> None:
        self._shutdown.set()

    async def wait_for_shutdown(self) -> None:
        await self._shutdown.wait()

    async def _start_api(self) -> None:
        """Start the HTTP API server."""
        self.api_app = create_api_app(self)
        self.api_runner = web.AppRunner(self.api_app)
        await self.api_runner.setup()

        self.api_site = web.TCPSite(self.api_runner, self.config.api.host, self.config.api.port)
        await self.api_site.start()

        logger.info(f"API server started on http://{self.config.api.host}:{self.config.api.port}")

    async def _on_entry_created(self, event) -> None:
        self.stats["entries_created"] += 1

    async def _on_bulk_import(self, event) -> None:
        self.stats["bulk_imports"] += 1

    async def _on_search(self, event) -> None:
        self.stats["search_count"] += 1

    def get_status(self) -> dict:
        """Get daemon status and statistics."""
        process = psutil.Process()
        uptime = (datetime.now(timezone.utc) - self.start_time).total_seconds()

        return {
            "status": "running" if self.running else "stopped",
            "version": __version__,
            "uptime": f"{uptime:.0f}s",
            "stats": {
                **self.stats,
                "oracle": dict(self.oracle_client.stats),
                "events": self.event_bus.get_stats(),
                "memory_mb": process.memory_info().rss / 1024 / 1024,
                "cpu_percent": process.cpu_percent()
            },
            "config": {
                "vault_path": str(self.config.vault_path),
                "owner_id": self.config.owner_id,
                "oracle": {
                    "provider": self.config.oracle.provider,
                    "model": self.config.oracle.model
                }
            }
        }


async def main(config_path: Optional[str] = None):
    """Main entry point for the daemon."""
    # Setup logging
    logger.remove()
    logger.add(
        sys.stderr,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>",
        level="INFO"
    )

    # Also log to file
    log_dir = Path.home() / ".local" / "share" / "devflow" / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    logger.add(
        log_dir / "daemon.log",
        rotation="1 day",
        retention="7 days",
        level="DEBUG"
    )

    # Load configuration
    try:
        if config_path:
            config = Config.load(Path(config_path))
        else:
            config = Config.load()
    except FileNotFoundError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)

    daemon = DevflowDaemon(config)

    def signal_handler(sig, frame):
        logger.info(f"Received signal {sig}, shutting down...")
        daemon.request_shutdown()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        await daemon.start()
        await daemon.wait_for_shutdown()
    except Exception as e:
        logger.exception(f"Daemon error: {e}")
    finally:
        await daemon.stop()


if __name__ == "__main__":
    asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else None))
