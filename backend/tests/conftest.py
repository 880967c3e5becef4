"""Pytest configuration and shared fixtures.

This module provides centralized test fixtures for:
- A fake terminology server federation served through httpx.MockTransport
- Snapshot store, crawler, repository and registry service instances
- A hand-built federation snapshot for resolution tests
"""

from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any

import httpx
import pytest
import pytest_asyncio

from txregistry.schemas.registry import (
    FederationSnapshot,
    Registry,
    SecurityMode,
    Server,
    ServerVersion,
)
from txregistry.services.crawler import RegistryCrawler
from txregistry.services.persistence import SnapshotRepository
from txregistry.services.registry import RegistryService
from txregistry.services.snapshot_store import SnapshotStore

MASTER_URL = "https://registry.example.org/tx-servers.json"
REGISTRY_URL = "https://registry.example.org/hl7-servers.json"

CRAWLED_AT = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)


# =============================================================================
# Fake Federation
# =============================================================================


def _route_key(url: httpx.URL) -> tuple:
    """Match on host, path and query, ignoring the cache-busting _ts parameter."""
    params = sorted((k, v) for k, v in url.params.multi_items() if k != "_ts")
    return (url.host, url.path, tuple(params))


class FakeFederation:
    """Serves canned JSON documents for GET requests.

    Unknown URLs answer 404. A route registered with ``error`` raises that
    exception instead, to simulate timeouts and connection failures.
    """

    def __init__(self):
        self.routes: dict[tuple, tuple[int, Any, Exception | None]] = {}
        self.requests: list[httpx.Request] = []

    def add(
        self,
        url: str,
        payload: Any = None,
        status_code: int = 200,
        error: Exception | None = None,
    ) -> None:
        self.routes[_route_key(httpx.URL(url))] = (status_code, payload, error)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get(_route_key(request.url))
        if route is None:
            return httpx.Response(404, json={"resourceType": "OperationOutcome"})
        status_code, payload, error = route
        if error is not None:
            raise error
        return httpx.Response(status_code, json=payload)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def request_count(self, url: str) -> int:
        key = _route_key(httpx.URL(url))
        return sum(1 for r in self.requests if _route_key(r.url) == key)

    # -------------------------------------------------------------------------
    # Descriptor builders
    # -------------------------------------------------------------------------

    def add_master(
        self,
        registries: list[dict[str, Any]],
        url: str = MASTER_URL,
        format_version: str = "1",
    ) -> None:
        self.add(
            url,
            {
                "formatVersion": format_version,
                "documentation": "Test federation",
                "registries": registries,
            },
        )

    def add_registry(
        self,
        servers: list[dict[str, Any]],
        url: str = REGISTRY_URL,
        format_version: str = "1",
    ) -> None:
        self.add(
            url,
            {"formatVersion": format_version, "documentation": "", "servers": servers},
        )

    @staticmethod
    def registry_entry(url: str = REGISTRY_URL, code: str = "hl7", name: str = "HL7") -> dict:
        return {"code": code, "name": name, "authority": "HL7 International", "url": url}

    @staticmethod
    def server_entry(
        code: str,
        versions: Iterable[tuple[str, str]],
        authoritative: Iterable[str] = (),
        authoritative_valuesets: Iterable[str] = (),
        usage: Iterable[str] = (),
        name: str | None = None,
        url: str | None = None,
    ) -> dict:
        return {
            "code": code,
            "name": name or f"{code} server",
            "url": url or f"https://{code}.example.org",
            "access_info": "Open to all",
            "authoritative": list(authoritative),
            "authoritative-valuesets": list(authoritative_valuesets),
            "usage": list(usage),
            "fhirVersions": [{"version": v, "url": u} for v, u in versions],
        }

    # -------------------------------------------------------------------------
    # Server endpoint builders
    # -------------------------------------------------------------------------

    def add_capabilities(
        self, base: str, fhir_version: str, software: str = "TestServer"
    ) -> None:
        self.add(
            f"{base}/metadata",
            {
                "resourceType": "CapabilityStatement",
                "fhirVersion": fhir_version,
                "software": {"name": software},
            },
        )

    def add_value_set_pages(self, base: str, pages: list[list[dict[str, str]]]) -> None:
        """Register a chain of ValueSet search pages with absolute next links."""
        urls = [f"{base}/ValueSet?_elements=url,version"] + [
            f"{base}/ValueSet?_elements=url,version&_page={i}" for i in range(2, len(pages) + 1)
        ]
        for i, entries in enumerate(pages):
            bundle: dict[str, Any] = {
                "resourceType": "Bundle",
                "type": "searchset",
                "entry": [{"resource": {"resourceType": "ValueSet", **e}} for e in entries],
                "link": [{"relation": "self", "url": urls[i]}],
            }
            if i + 1 < len(urls):
                bundle["link"].append({"relation": "next", "url": urls[i + 1]})
            self.add(urls[i], bundle)

    def add_r4_endpoint(
        self,
        base: str,
        code_systems: dict[str, list[str]] | None = None,
        value_set_pages: list[list[dict[str, str]]] | None = None,
        fhir_version: str = "4.0.1",
    ) -> None:
        self.add_capabilities(base, fhir_version)
        self.add(
            f"{base}/metadata?mode=terminology",
            {
                "resourceType": "TerminologyCapabilities",
                "codeSystem": [
                    {"uri": uri, "version": [{"code": v} for v in versions]}
                    for uri, versions in (code_systems or {}).items()
                ],
            },
        )
        self.add_value_set_pages(base, value_set_pages or [[]])

    def add_r3_endpoint(
        self,
        base: str,
        code_systems: dict[str, list[str]] | None = None,
        value_set_pages: list[list[dict[str, str]]] | None = None,
        fhir_version: str = "3.0.2",
    ) -> None:
        self.add_capabilities(base, fhir_version)
        self.add(
            f"{base}/metadata?mode=terminology",
            {
                "resourceType": "Parameters",
                "parameter": [
                    {
                        "name": "system",
                        "valueUri": uri,
                        "part": [{"name": "version", "valueString": v} for v in versions],
                    }
                    for uri, versions in (code_systems or {}).items()
                ],
            },
        )
        self.add_value_set_pages(base, value_set_pages or [[]])


@pytest.fixture
def federation() -> FakeFederation:
    """Empty fake federation; tests register the documents they need."""
    return FakeFederation()


# =============================================================================
# Engine Fixtures
# =============================================================================


@pytest.fixture
def store() -> SnapshotStore:
    return SnapshotStore()


@pytest.fixture
def crawler(store, federation) -> RegistryCrawler:
    """Crawler wired to the fake federation, with no API keys."""
    return RegistryCrawler(
        store,
        master_url=MASTER_URL,
        timeout=5.0,
        user_agent="txregistry-tests",
        api_keys={},
        transport=federation.transport,
    )


@pytest.fixture
def repository(tmp_path) -> SnapshotRepository:
    return SnapshotRepository(tmp_path / "registry" / "registry-data.json")


@pytest_asyncio.fixture
async def service(store, crawler, repository):
    """Registry service with scheduling disabled.

    Shut down after the test so no background task outlives it.
    """
    svc = RegistryService(
        store=store,
        crawler=crawler,
        repository=repository,
        crawl_interval_minutes=0,
        warmup_seconds=0,
    )
    yield svc
    await svc.stop_periodic_crawl()


# =============================================================================
# Snapshot Fixtures
# =============================================================================


def _ok_version(
    version: str,
    address: str,
    code_systems: list[str] = (),
    value_sets: list[str] = (),
) -> ServerVersion:
    return ServerVersion(
        version=version,
        address=address,
        software="TestServer",
        code_systems=list(code_systems),
        value_sets=list(value_sets),
        last_success=CRAWLED_AT,
        last_tat="12ms",
    )


@pytest.fixture
def sample_snapshot() -> FederationSnapshot:
    """A two-registry federation covering the main resolution cases.

    - tho: authoritative for hl7.org/fhir/sid/*, hosts icd-10 (R4) and loinc (R3)
    - snomed: authoritative for snomed, exact loinc mask, hosts loinc (R4), api-key
    - public: hosts loinc and an extension value set (R4), tagged "public";
      its R3 endpoint failed
    """
    tho = Server(
        code="tho",
        name="Terminology Server",
        address="https://tho.example.org",
        access_info="Open",
        auth_cs_list=["http://hl7.org/fhir/sid/*"],
        auth_vs_list=["http://hl7.org/fhir/ValueSet/*"],
        usage_list=["public"],
        versions=[
            _ok_version(
                "4.0.1",
                "https://tho.example.org/r4",
                code_systems=["http://hl7.org/fhir/sid/icd-10", "http://hl7.org/fhir/sid/icd-10|2019"],
                value_sets=["http://hl7.org/fhir/ValueSet/administrative-gender"],
            ),
            _ok_version("3.0.2", "https://tho.example.org/r3", code_systems=["http://loinc.org"]),
        ],
    )
    snomed = Server(
        code="snomed",
        name="SNOMED Server",
        address="https://snomed.example.org",
        auth_cs_list=["http://snomed.info/sct*", "http://loinc.org"],
        usage_list=["members"],
        versions=[
            ServerVersion(
                version="4.0.1",
                address="https://snomed.example.org/fhir",
                security=SecurityMode.API_KEY,
                software="Snowstorm",
                code_systems=["http://loinc.org", "http://snomed.info/sct"],
                last_success=CRAWLED_AT,
                last_tat="30ms",
            ),
        ],
    )
    public = Server(
        code="public",
        name="Public Server",
        address="https://public.example.org",
        usage_list=["public"],
        versions=[
            _ok_version(
                "4.0.1",
                "https://public.example.org/r4",
                code_systems=["http://loinc.org", "http://loinc.org|2.77"],
                value_sets=[
                    "http://hl7.org/fhir/ValueSet/administrative-gender",
                    "http://example.org/ValueSet/extension-vs",
                ],
            ),
            ServerVersion(
                version="3.0.2",
                address="https://public.example.org/r3",
                error="HTTP 500: Internal Server Error",
                last_tat="50ms",
            ),
        ],
    )
    return FederationSnapshot(
        address=MASTER_URL,
        last_run=CRAWLED_AT,
        outcome="Processed OK - 12.0 KB",
        registries=[
            Registry(code="hl7", name="HL7", address=REGISTRY_URL, servers=[tho, snomed]),
            Registry(
                code="community",
                name="Community",
                address="https://community.example.org/servers.json",
                servers=[public],
            ),
        ],
    )
