"""Process-scoped holder for the currently installed federation snapshot."""

import asyncio
import logging

from txregistry.schemas.registry import FederationSnapshot

logger = logging.getLogger(__name__)


class SnapshotStore:
    """Holds one immutable snapshot and swaps it wholesale.

    Readers take the current reference without locking; a snapshot is never
    mutated once installed, so a reader sees either the old tree or the new
    one. Writers are serialised by a lock so concurrent installs (crawl
    completion, loading saved data) cannot interleave.
    """

    def __init__(self, initial: FederationSnapshot | None = None):
        self._current = initial if initial is not None else FederationSnapshot()
        self._lock = asyncio.Lock()
        self._generation = 0

    def current(self) -> FederationSnapshot:
        return self._current

    @property
    def generation(self) -> int:
        """Number of installs since creation."""
        return self._generation

    async def install(self, snapshot: FederationSnapshot) -> FederationSnapshot:
        """Make ``snapshot`` current and return the one it replaced."""
        async with self._lock:
            previous = self._current
            self._current = snapshot
            self._generation += 1
        logger.debug(
            "Installed snapshot %d with %d registries",
            self._generation,
            len(snapshot.registries),
        )
        return previous
