"""Crawler for the terminology server federation.

Walks master descriptor -> registries -> servers -> FHIR versions and builds
a fresh FederationSnapshot. Only a bad master descriptor aborts a crawl;
every registry, server and version below it fails on its own, recording an
``error`` on that item while its siblings carry on.
"""

import time
from collections.abc import Mapping
from datetime import datetime, timezone

import httpx
from pydantic import ValidationError

from txregistry.config import settings
from txregistry.errors import RegistryError
from txregistry.schemas.crawl import CrawlError, CrawlMetadata, LogEntry
from txregistry.schemas.descriptors import (
    FhirVersionEntry,
    RegistryEntry,
    ServerEntry,
    parse_master_descriptor,
    parse_registry_descriptor,
)
from txregistry.schemas.registry import (
    FederationSnapshot,
    Registry,
    SecurityMode,
    Server,
    ServerVersion,
)
from txregistry.services.crawl_log import CrawlLog
from txregistry.services.fetcher import JsonFetcher
from txregistry.services.probes import strategy_for
from txregistry.services.snapshot_store import SnapshotStore
from txregistry.utils.fhir_helpers import format_bytes


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


class RegistryCrawler:
    """Crawls the federation and installs each complete result.

    At most one crawl runs at a time; a call made while one is running
    returns the installed snapshot untouched.
    """

    def __init__(
        self,
        store: SnapshotStore,
        *,
        master_url: str | None = None,
        timeout: float | None = None,
        user_agent: str | None = None,
        api_keys: Mapping[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize RegistryCrawler.

        Args:
            store: Snapshot holder that receives successful crawls.
            master_url: Default master descriptor URL (settings if omitted).
            timeout: Per-fetch timeout in seconds (settings if omitted).
            user_agent: User-Agent header (settings if omitted).
            api_keys: Map of server code/name to API key (settings if omitted).
            transport: Optional httpx transport (for testing).
        """
        self.store = store
        self.master_url = master_url or settings.master_url
        self.timeout = timeout if timeout is not None else settings.fetch_timeout
        self.user_agent = user_agent or settings.user_agent
        self.api_keys = dict(api_keys if api_keys is not None else settings.api_keys)
        self._transport = transport

        self.log = CrawlLog()
        self.is_crawling = False
        self.errors: list[CrawlError] = []
        self.total_bytes = 0
        self._last_run: datetime | None = None
        self._last_outcome: str | None = None

    # =========================================================================
    # Crawl entry point
    # =========================================================================

    async def crawl(self, master_url: str | None = None) -> FederationSnapshot:
        """Crawl the federation starting from the master descriptor.

        Args:
            master_url: Optional override for the configured master URL.

        Returns:
            The new snapshot (installed) on success; a snapshot carrying only
            the error outcome (not installed) on a fatal failure; the current
            snapshot if a crawl is already running.
        """
        if self.is_crawling:
            self.log.warn("Crawl already in progress, skipping...")
            return self.store.current()

        self.is_crawling = True
        self.errors = []
        self.total_bytes = 0
        self.log.clear()
        url = master_url or self.master_url
        started = datetime.now(timezone.utc)
        self._last_run = started

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                transport=self._transport,
                follow_redirects=True,
            ) as client:
                fetcher = JsonFetcher(client, self.user_agent, self.api_keys)
                try:
                    snapshot = await self._crawl_master(fetcher, url, started)
                finally:
                    self.total_bytes = fetcher.total_bytes

            await self.store.install(snapshot)
            self._last_outcome = snapshot.outcome
        except RegistryError as e:
            # Fatal: the previous snapshot stays installed
            self.log.error(f"Exception scanning: {e}", url)
            self._record_error(url, str(e))
            self._last_outcome = f"Error: {e}"
            return FederationSnapshot(address=url, last_run=started, outcome=self._last_outcome)
        finally:
            self.is_crawling = False

        return snapshot

    async def _crawl_master(
        self, fetcher: JsonFetcher, url: str, started: datetime
    ) -> FederationSnapshot:
        """Fetch the master descriptor and process every registry it lists.

        Raises:
            RegistryError: The master descriptor cannot be fetched or has an
                unsupported format.
        """
        self.log.info(f"Starting scan from {url}")
        master = parse_master_descriptor(await fetcher.fetch_json(url, "master"))

        registries = []
        for entry in master.registries:
            registry = await self._process_registry(fetcher, entry)
            if registry is not None:
                registries.append(registry)

        return FederationSnapshot(
            address=url,
            last_run=started,
            outcome=f"Processed OK - {format_bytes(fetcher.total_bytes)}",
            documentation=master.documentation or "",
            registries=registries,
        )

    # =========================================================================
    # Per-item processing
    # =========================================================================

    async def _process_registry(
        self, fetcher: JsonFetcher, entry: RegistryEntry
    ) -> Registry | None:
        code = entry.code or ""
        name = entry.name or ""
        address = entry.url or ""

        if not name:
            self.log.error("No name provided for registry", address)
            return None
        if not address:
            self.log.error(f"No url provided for {name}")
            return None

        self.log.info(f" Registry {name} from {address}")
        try:
            descriptor = parse_registry_descriptor(
                await fetcher.fetch_json(address, code), address
            )
        except RegistryError as e:
            self.log.error(f"Exception processing registry {name}: {e}", address)
            self._record_error(address, str(e))
            return Registry(
                code=code,
                name=name,
                authority=entry.authority or "",
                address=address,
                error=str(e),
            )

        servers = []
        for server_entry in descriptor.servers:
            server = await self._process_server(fetcher, server_entry, address)
            if server is not None:
                servers.append(server)

        return Registry(
            code=code,
            name=name,
            authority=entry.authority or "",
            address=address,
            servers=servers,
        )

    async def _process_server(
        self, fetcher: JsonFetcher, entry: ServerEntry, source: str
    ) -> Server | None:
        name = entry.name or ""
        address = entry.url or ""

        if not name:
            self.log.error("No name provided for server", source)
            return None
        if not address:
            self.log.error(f"No url provided for {name}", source)
            return None

        versions = []
        for version_entry in entry.fhir_versions:
            versions.append(
                await self._process_version(fetcher, version_entry, entry.code or "", name, address)
            )

        return Server(
            code=entry.code or "",
            name=name,
            address=address,
            access_info=entry.access_info or "",
            auth_cs_list=sorted(entry.authoritative),
            auth_vs_list=sorted(entry.authoritative_valuesets),
            usage_list=sorted(entry.usage),
            versions=versions,
        )

    async def _process_version(
        self,
        fetcher: JsonFetcher,
        entry: FhirVersionEntry,
        server_code: str,
        server_name: str,
        server_address: str,
    ) -> ServerVersion:
        security = (
            SecurityMode.API_KEY
            if fetcher.api_key_for(server_code, server_name)
            else SecurityMode.OPEN
        )

        if not entry.url:
            message = f"No URL for version {entry.version} of {server_name}"
            self.log.error(message, server_address)
            self._record_error(server_address, message)
            return ServerVersion(
                version=entry.version, security=security, error=message, last_tat="0ms"
            )

        start = time.monotonic()
        try:
            strategy = strategy_for(entry.version)
            result = await strategy.probe(fetcher, entry.url, self.log, server_code, server_name)
            last_tat = f"{_elapsed_ms(start)}ms"
            version = ServerVersion(
                version=result.version,
                address=entry.url,
                security=security,
                software=result.software,
                code_systems=result.code_systems,
                value_sets=result.value_sets,
                last_success=datetime.now(timezone.utc),
                last_tat=last_tat,
            )
        except (RegistryError, ValidationError) as e:
            elapsed = _elapsed_ms(start)
            self.log.error(f"Server {entry.url}: Error after {elapsed}ms: {e}", entry.url)
            self._record_error(entry.url, str(e))
            return ServerVersion(
                version=entry.version,
                address=entry.url,
                security=security,
                error=str(e),
                last_tat=f"{elapsed}ms",
            )

        self.log.info(
            f"  Server {entry.url}: {last_tat} for {len(result.code_systems)} CodeSystems "
            f"and {len(result.value_sets)} ValueSets"
        )
        return version

    def _record_error(self, source: str, error: str) -> None:
        self.errors.append(
            CrawlError(source=source, error=error, timestamp=datetime.now(timezone.utc))
        )

    # =========================================================================
    # Read-side accessors
    # =========================================================================

    def get_data(self) -> FederationSnapshot:
        return self.store.current()

    def get_metadata(self) -> CrawlMetadata:
        current = self.store.current()
        return CrawlMetadata(
            last_run=self._last_run or current.last_run,
            outcome=self._last_outcome if self._last_outcome is not None else current.outcome,
            errors=list(self.errors),
            total_bytes=self.total_bytes,
            is_crawling=self.is_crawling,
        )

    def get_logs(self, limit: int = 100) -> list[LogEntry]:
        return self.log.latest(limit)
