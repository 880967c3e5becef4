"""Paginated enumeration of the value sets hosted by a server version."""

import logging
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlsplit

from txregistry.errors import FetchError
from txregistry.services.crawl_log import CrawlLog
from txregistry.services.fetcher import JsonFetcher

logger = logging.getLogger(__name__)

VALUE_SET_SEARCH = "ValueSet?_elements=url,version"


@dataclass
class ValueSetScan:
    """Outcome of a value set walk. ``values`` is kept even when ``error`` is set."""

    values: list[str] = field(default_factory=list)
    pages: int = 0
    error: str | None = None


def resolve_url(url: str, base: str) -> str:
    """Resolve a (possibly relative) link against the page it came from.

    - absolute http(s) URLs pass through
    - root-relative URLs attach to the origin of ``base``
    - anything else replaces the last path segment of ``base``
    """
    if url.startswith(("http://", "https://")):
        return url

    parts = urlsplit(base)
    if url.startswith("/"):
        return f"{parts.scheme}://{parts.netloc}{url}"

    base_path = base.split("?", 1)[0].split("#", 1)[0]
    if base_path.endswith("/"):
        return f"{base_path}{url}"
    return f"{base_path.rsplit('/', 1)[0]}/{url}"


def _list(value: Any) -> list:
    return value if isinstance(value, list) else []


def _next_link(bundle: dict) -> str | None:
    for link in _list(bundle.get("link")):
        if not isinstance(link, dict) or link.get("relation") != "next":
            continue
        url = link.get("url")
        if isinstance(url, str) and url:
            return url
    return None


def _collect_entries(bundle: dict, found: dict[str, None]) -> None:
    for entry in _list(bundle.get("entry")):
        resource = entry.get("resource") if isinstance(entry, dict) else None
        if not isinstance(resource, dict):
            continue
        url = resource.get("url")
        if not isinstance(url, str) or not url:
            continue
        found[url] = None
        version = resource.get("version")
        if isinstance(version, str) and version:
            found[f"{url}|{version}"] = None


async def enumerate_value_sets(
    fetcher: JsonFetcher,
    base_url: str,
    log: CrawlLog,
    *key_names: str | None,
) -> ValueSetScan:
    """Walk the ValueSet search bundle chain of a server version.

    Args:
        fetcher: Crawl-scoped JSON fetcher
        base_url: FHIR base URL of the server version
        log: Crawl log receiving failure entries
        key_names: Server code/name used for API key lookup

    Returns:
        ValueSetScan with every ``url`` (and ``url|version``) collected,
        in discovery order. A fetch failure stops the walk but keeps what
        earlier pages produced.
    """
    found: dict[str, None] = {}
    visited: set[str] = set()
    scan = ValueSetScan()
    search_url: str | None = f"{base_url.rstrip('/')}/{VALUE_SET_SEARCH}"

    while search_url and search_url not in visited:
        visited.add(search_url)
        logger.debug("Fetching value sets from %s", search_url)
        try:
            bundle = await fetcher.fetch_json(search_url, *key_names)
        except FetchError as e:
            scan.error = str(e)
            log.error(f"Could not fetch value sets: {e} from {search_url}", base_url)
            break

        scan.pages += 1
        if not isinstance(bundle, dict):
            break
        _collect_entries(bundle, found)

        next_url = _next_link(bundle)
        search_url = resolve_url(next_url, search_url) if next_url else None

    scan.values = list(found)
    return scan
