"""Version-specific capability probes for terminology server endpoints.

Every probe reads ``{base}/metadata`` for the reported FHIR version and
software name, then ``{base}/metadata?mode=terminology`` for the hosted code
systems, then walks the ValueSet search. The terminology capabilities payload
differs by FHIR generation:

- R3 returns a Parameters resource with ``system`` parameters
- R4 and R5 return a TerminologyCapabilities resource with ``codeSystem[]``
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from txregistry.errors import FetchError, UnsupportedVersionError
from txregistry.services.crawl_log import CrawlLog
from txregistry.services.fetcher import JsonFetcher
from txregistry.services.value_sets import enumerate_value_sets
from txregistry.utils.fhir_helpers import get_major_version, sorted_unique


def _text(value: Any) -> str | None:
    """Return ``value`` if it is a non-empty string, else None."""
    return value if isinstance(value, str) and value else None


def _items(value: Any) -> list[dict[str, Any]]:
    """Return the JSON objects of a list-valued field; anything else is empty."""
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


@dataclass
class ProbeResult:
    """What a probe learned about one server version."""

    version: str
    software: str
    code_systems: list[str] = field(default_factory=list)
    value_sets: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ProbeStrategy(ABC):
    """Base probe; subclasses decode the terminology capabilities payload.

    Args:
        default_version: Version recorded when the server does not report one.
    """

    default_version: str

    @abstractmethod
    def parse_terminology(self, document: dict[str, Any]) -> list[str]:
        """Extract ``uri`` and ``uri|version`` entries from a capabilities document."""

    async def probe(
        self,
        fetcher: JsonFetcher,
        base_url: str,
        log: CrawlLog,
        *key_names: str | None,
    ) -> ProbeResult:
        """Probe a server version endpoint.

        Raises:
            FetchError: The capability statement could not be fetched or
                is not a JSON object.
        """
        base = base_url.rstrip("/")
        capability = await fetcher.fetch_json(f"{base}/metadata", *key_names)
        if not isinstance(capability, dict):
            raise FetchError(f"Capability statement at {base}/metadata is not a JSON object")

        software = capability.get("software")
        result = ProbeResult(
            version=_text(capability.get("fhirVersion")) or self.default_version,
            software=(_text(software.get("name")) if isinstance(software, dict) else None)
            or "unknown",
        )

        try:
            terminology = await fetcher.fetch_json(f"{base}/metadata?mode=terminology", *key_names)
            if isinstance(terminology, dict):
                result.code_systems = self.parse_terminology(terminology)
        except FetchError as e:
            log.error(f"Could not fetch terminology capabilities: {e}", base)

        scan = await enumerate_value_sets(fetcher, base, log, *key_names)
        result.value_sets = scan.values

        result.code_systems = sorted_unique(result.code_systems)
        result.value_sets = sorted_unique(result.value_sets)
        return result


@dataclass(frozen=True)
class ProbeStrategyV3(ProbeStrategy):
    """STU3: ``Parameters`` with ``system`` parameters and ``version`` parts."""

    default_version: str = "3.0.2"

    def parse_terminology(self, document: dict[str, Any]) -> list[str]:
        code_systems: list[str] = []
        for param in _items(document.get("parameter")):
            if param.get("name") != "system":
                continue
            uri = _text(param.get("valueUri")) or _text(param.get("valueString"))
            if not uri:
                continue
            code_systems.append(uri)
            for part in _items(param.get("part")):
                version = _text(part.get("valueString"))
                if part.get("name") == "version" and version:
                    code_systems.append(f"{uri}|{version}")
        return code_systems


@dataclass(frozen=True)
class ProbeStrategyV4Plus(ProbeStrategy):
    """R4/R5: ``TerminologyCapabilities.codeSystem[]`` with ``version[].code``."""

    default_version: str = "4.0.1"

    def parse_terminology(self, document: dict[str, Any]) -> list[str]:
        code_systems: list[str] = []
        for cs in _items(document.get("codeSystem")):
            uri = _text(cs.get("uri"))
            if not uri:
                continue
            code_systems.append(uri)
            for v in _items(cs.get("version")):
                code = _text(v.get("code"))
                if code:
                    code_systems.append(f"{uri}|{code}")
        return code_systems


PROBE_STRATEGIES: dict[int, ProbeStrategy] = {
    3: ProbeStrategyV3(),
    4: ProbeStrategyV4Plus(default_version="4.0.1"),
    5: ProbeStrategyV4Plus(default_version="5.0.0"),
}


def strategy_for(version: str) -> ProbeStrategy:
    """Select the probe for a declared FHIR version.

    Raises:
        UnsupportedVersionError: No probe handles the major version.
    """
    strategy = PROBE_STRATEGIES.get(get_major_version(version))
    if strategy is None:
        raise UnsupportedVersionError(f"Version {version} not supported")
    return strategy
