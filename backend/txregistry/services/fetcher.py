"""JSON fetcher used by the crawler for every remote document."""

import json
import logging
import time
from collections.abc import Mapping
from typing import Any

import httpx

from txregistry.errors import FetchError

logger = logging.getLogger(__name__)

ACCEPT_HEADER = "application/json, application/fhir+json"


class JsonFetcher:
    """Fetch JSON documents and keep a running byte count.

    One fetcher lives for the duration of a single crawl, so ``total_bytes``
    is crawl-local.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        user_agent: str,
        api_keys: Mapping[str, str] | None = None,
    ):
        self._client = client
        self._user_agent = user_agent
        self._api_keys = dict(api_keys or {})
        self.total_bytes = 0

    def api_key_for(self, *names: str | None) -> str | None:
        """Return the API key configured for the first matching server code or name."""
        for name in names:
            if name and self._api_keys.get(name):
                return self._api_keys[name]
        return None

    async def fetch_json(self, url: str, *key_names: str | None) -> Any:
        """GET ``url`` and decode the JSON body.

        Args:
            url: Absolute URL to fetch
            key_names: Server code/name used to look up an API key

        Returns:
            Decoded JSON document

        Raises:
            FetchError: On transport failure, timeout, HTTP status >= 400,
                or an undecodable body.
        """
        headers = {"Accept": ACCEPT_HEADER, "User-Agent": self._user_agent}
        api_key = self.api_key_for(*key_names)
        if api_key:
            headers["Api-Key"] = api_key

        # Cache buster, merged with any query already on the URL
        try:
            request_url = httpx.URL(url).copy_merge_params({"_ts": str(int(time.time() * 1000))})
        except httpx.InvalidURL as e:
            raise FetchError(f"Invalid URL {url}: {e}") from e

        try:
            response = await self._client.get(request_url, headers=headers)
        except httpx.TimeoutException as e:
            raise FetchError(f"No response from server: timed out ({type(e).__name__})") from e
        except httpx.HTTPError as e:
            raise FetchError(f"No response from server: {e}") from e

        if response.status_code >= 400:
            raise FetchError(f"HTTP {response.status_code}: {response.reason_phrase}")

        try:
            data = response.json()
        except ValueError as e:
            raise FetchError(f"Invalid JSON from {url}: {e}") from e

        content_length = response.headers.get("content-length")
        if content_length and content_length.isdigit():
            self.total_bytes += int(content_length)
        elif data is not None:
            self.total_bytes += len(json.dumps(data))

        logger.debug("Fetched %s (%s)", url, response.status_code)
        return data
