"""Resolution of code system / value set queries against the installed snapshot.

A server is *authoritative* for a URL when one of its registry-declared masks
covers it, whether or not the server was reachable when crawled. A server is
a *candidate* when crawling found it actually hosts the exact URL (or
``url|version``) and it is not already authoritative.
"""

import logging
from bisect import bisect_left
from collections.abc import Callable

from txregistry.errors import ResolutionRequestError
from txregistry.schemas.registry import Registry, Server, ServerVersion
from txregistry.schemas.resolve import ResolutionResult, ServerMatch
from txregistry.services.snapshot_store import SnapshotStore
from txregistry.utils.fhir_helpers import (
    any_mask_matches,
    get_major_version,
    is_valid_url,
    strip_version_suffix,
)

logger = logging.getLogger(__name__)


def _contains_sorted(values: list[str], target: str) -> bool:
    i = bisect_left(values, target)
    return i < len(values) and values[i] == target


def _to_match(registry: Registry, server: Server, version: ServerVersion) -> ServerMatch:
    return ServerMatch(
        registry_code=registry.code,
        registry_name=registry.name,
        server_code=server.code,
        server_name=server.name,
        access_info=server.access_info,
        address=version.address,
        fhir_version=version.version,
        security=version.security,
        software=version.software,
        usage_list=list(server.usage_list),
    )


def _validate_request(fhir_version: str | None, url: str | None, kind: str) -> int:
    """Check a resolution request before matching.

    Returns:
        The requested FHIR major version.

    Raises:
        ResolutionRequestError: Missing/unrecognised version, or missing/invalid URL.
    """
    if not fhir_version:
        raise ResolutionRequestError("A FHIR version is required")
    major = get_major_version(fhir_version)
    if major == 0:
        raise ResolutionRequestError(f"Unrecognised FHIR version: {fhir_version}")
    if not url:
        raise ResolutionRequestError("Either url or valueSet parameter is required")
    if not is_valid_url(strip_version_suffix(url)):
        raise ResolutionRequestError(f"Invalid {kind} URL format")
    return major


class RegistryResolver:
    """Answers "which server can handle this URL" from the current snapshot."""

    def __init__(self, store: SnapshotStore):
        self._store = store

    def resolve_code_system(
        self,
        fhir_version: str,
        url: str,
        authoritative_only: bool = False,
        usage: str | None = None,
    ) -> ResolutionResult:
        """Find servers for a code system URL (optionally ``url|version``)."""
        major = _validate_request(fhir_version, url, "code system")
        return self._resolve(
            major,
            url,
            authoritative_only,
            usage,
            masks=lambda server: server.auth_cs_list,
            hosted=lambda version: version.code_systems,
        )

    def resolve_value_set(
        self,
        fhir_version: str,
        url: str,
        authoritative_only: bool = False,
        usage: str | None = None,
    ) -> ResolutionResult:
        """Find servers for a value set URL (optionally ``url|version``)."""
        major = _validate_request(fhir_version, url, "value set")
        return self._resolve(
            major,
            url,
            authoritative_only,
            usage,
            masks=lambda server: server.auth_vs_list,
            hosted=lambda version: version.value_sets,
        )

    def _resolve(
        self,
        major: int,
        url: str,
        authoritative_only: bool,
        usage: str | None,
        masks: Callable[[Server], list[str]],
        hosted: Callable[[ServerVersion], list[str]],
    ) -> ResolutionResult:
        # One reference for the whole walk: an install mid-walk is not observed
        snapshot = self._store.current()
        base_url = strip_version_suffix(url)
        result = ResolutionResult()

        for registry in snapshot.registries:
            for server in registry.servers:
                versions = [v for v in server.versions if get_major_version(v.version) == major]
                if not versions:
                    continue
                if usage and usage not in server.usage_list:
                    continue

                if any_mask_matches(masks(server), base_url):
                    healthy = [v for v in versions if v.error is None]
                    result.authoritative.append(_to_match(registry, server, (healthy or versions)[0]))
                    continue

                if authoritative_only:
                    continue
                for version in versions:
                    if version.error is None and _contains_sorted(hosted(version), url):
                        result.candidates.append(_to_match(registry, server, version))
                        break

        logger.debug(
            "Resolved %s for R%d: %d authoritative, %d candidates",
            url,
            major,
            len(result.authoritative),
            len(result.candidates),
        )
        return result
