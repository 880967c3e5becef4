"""Registry service: wires crawler, snapshot store, resolver and persistence.

This is the narrow interface consumed by the HTTP layer:
``crawl``, ``resolve_code_system``, ``resolve_value_set``, ``get_data``,
``get_metadata`` and ``get_logs``, plus lifecycle (``initialize``,
``start_periodic_crawl``, ``shutdown``).
"""

import asyncio
import logging
import time
from datetime import datetime, timezone

from txregistry.config import settings
from txregistry.errors import PersistenceError
from txregistry.schemas.crawl import CrawlMetadata, LogEntry, RegistryStatus
from txregistry.schemas.registry import FederationSnapshot, SnapshotStatistics
from txregistry.schemas.resolve import ResolutionResult
from txregistry.services.crawler import RegistryCrawler
from txregistry.services.persistence import SnapshotRepository
from txregistry.services.resolver import RegistryResolver
from txregistry.services.snapshot_store import SnapshotStore
from txregistry.utils.fhir_helpers import format_bytes

logger = logging.getLogger(__name__)


class RegistryService:
    """Owns the process-wide registry state."""

    def __init__(
        self,
        store: SnapshotStore | None = None,
        crawler: RegistryCrawler | None = None,
        repository: SnapshotRepository | None = None,
        *,
        crawl_interval_minutes: float | None = None,
        warmup_seconds: float | None = None,
    ):
        """
        Initialize RegistryService.

        Args:
            store: Snapshot holder (a fresh empty one if omitted).
            crawler: Crawler bound to ``store`` (built from settings if omitted).
            repository: Snapshot persistence (settings path if omitted).
            crawl_interval_minutes: Periodic crawl interval, 0 disables.
            warmup_seconds: Delay before the first scheduled crawl.
        """
        self.store = store or (crawler.store if crawler is not None else SnapshotStore())
        self.crawler = crawler or RegistryCrawler(self.store)
        self.resolver = RegistryResolver(self.store)
        self.repository = repository or SnapshotRepository()
        self.crawl_interval_minutes = (
            crawl_interval_minutes
            if crawl_interval_minutes is not None
            else settings.crawl_interval_minutes
        )
        self.warmup_seconds = (
            warmup_seconds if warmup_seconds is not None else settings.warmup_seconds
        )

        self.is_initialized = False
        self.last_crawl_time: datetime | None = None
        self._scheduler_task: asyncio.Task | None = None
        self._crawl_tasks: set[asyncio.Task] = set()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def initialize(self) -> None:
        """Load saved data and start periodic crawling if configured."""
        logger.info("Initializing registry service...")
        await self.load_saved_data()
        if self.crawl_interval_minutes > 0:
            self.start_periodic_crawl(self.crawl_interval_minutes)
        self.is_initialized = True
        logger.info("Registry service initialized")

    async def load_saved_data(self) -> bool:
        """Install the persisted snapshot, if there is a usable one."""
        try:
            snapshot = await self.repository.load()
        except PersistenceError as e:
            logger.warning("Ignoring saved registry data: %s", e)
            return False

        if snapshot is None:
            logger.info("No saved registry data found, will fetch fresh data")
            return False

        await self.store.install(snapshot)
        logger.info("Loaded saved registry data from %s", self.repository.path)
        return True

    async def save_data(self) -> None:
        try:
            await self.repository.save(self.store.current())
        except PersistenceError as e:
            logger.error("Failed to save registry data: %s", e)

    def start_periodic_crawl(self, interval_minutes: float) -> None:
        """Crawl once after the warm-up delay, then every ``interval_minutes``.

        Each tick launches its own crawl; ticks that land on a running crawl
        are turned away by the crawler.
        """
        if self._scheduler_task is not None and not self._scheduler_task.done():
            return
        self._scheduler_task = asyncio.create_task(self._run_schedule(interval_minutes * 60))
        logger.info("Started periodic crawl every %s minutes", interval_minutes)

    async def stop_periodic_crawl(self) -> None:
        if self._scheduler_task is None:
            return
        self._scheduler_task.cancel()
        try:
            await self._scheduler_task
        except asyncio.CancelledError:
            pass
        self._scheduler_task = None

    async def _run_schedule(self, interval_seconds: float) -> None:
        await asyncio.sleep(self.warmup_seconds)
        while True:
            task = asyncio.create_task(self._scheduled_crawl())
            self._crawl_tasks.add(task)
            task.add_done_callback(self._crawl_tasks.discard)
            await asyncio.sleep(interval_seconds)

    async def _scheduled_crawl(self) -> None:
        try:
            await self.crawl()
        except Exception:
            logger.exception("Scheduled crawl failed")

    async def shutdown(self) -> None:
        """Stop crawling and persist the current snapshot."""
        logger.info("Shutting down registry service...")
        await self.stop_periodic_crawl()

        for task in list(self._crawl_tasks):
            task.cancel()
        if self._crawl_tasks:
            await asyncio.gather(*self._crawl_tasks, return_exceptions=True)

        if self.store.generation > 0:
            await self.save_data()
        logger.info("Registry service shut down")

    # =========================================================================
    # Engine interface
    # =========================================================================

    async def crawl(self, master_url: str | None = None) -> FederationSnapshot:
        """Run one crawl and persist the result if it was installed."""
        generation = self.store.generation
        start = time.monotonic()

        snapshot = await self.crawler.crawl(master_url)

        if self.store.generation == generation or self.store.current() is not snapshot:
            # Either another crawl was running or this one failed fatally
            return snapshot

        self.last_crawl_time = datetime.now(timezone.utc)
        await self.save_data()

        metadata = self.crawler.get_metadata()
        logger.info(
            "Crawl completed in %.1fs. Found %d registries, %d errors, downloaded %s",
            time.monotonic() - start,
            len(snapshot.registries),
            len(metadata.errors),
            format_bytes(metadata.total_bytes),
        )
        return snapshot

    def resolve_code_system(
        self,
        fhir_version: str,
        url: str,
        authoritative_only: bool = False,
        usage: str | None = None,
    ) -> ResolutionResult:
        result = self.resolver.resolve_code_system(fhir_version, url, authoritative_only, usage)
        logger.info(
            "Resolved CodeSystem %s for FHIR %s (usage=%s): %d matches",
            url,
            fhir_version,
            usage,
            len(result.authoritative) + len(result.candidates),
        )
        return result

    def resolve_value_set(
        self,
        fhir_version: str,
        url: str,
        authoritative_only: bool = False,
        usage: str | None = None,
    ) -> ResolutionResult:
        result = self.resolver.resolve_value_set(fhir_version, url, authoritative_only, usage)
        logger.info(
            "Resolved ValueSet %s for FHIR %s (usage=%s): %d matches",
            url,
            fhir_version,
            usage,
            len(result.authoritative) + len(result.candidates),
        )
        return result

    def get_data(self) -> FederationSnapshot:
        return self.store.current()

    def get_metadata(self) -> CrawlMetadata:
        return self.crawler.get_metadata()

    def get_logs(self, limit: int = 100) -> list[LogEntry]:
        return self.crawler.get_logs(limit)

    def get_statistics(self) -> SnapshotStatistics:
        return self.store.current().statistics()

    def get_status(self) -> RegistryStatus:
        stats = self.get_statistics()
        return RegistryStatus(
            initialized=self.is_initialized,
            crawling=self.crawler.is_crawling,
            last_crawl=self.last_crawl_time,
            registries=stats.registry_count,
            servers=stats.server_count,
            errors=len(self.crawler.errors),
        )
