"""On-disk persistence of the federation snapshot."""

import asyncio
import logging
import os
import tempfile
from pathlib import Path

from pydantic import ValidationError

from txregistry.config import settings
from txregistry.errors import PersistenceError
from txregistry.schemas.registry import FederationSnapshot

logger = logging.getLogger(__name__)


class SnapshotRepository:
    """Reads and writes one JSON document holding the whole snapshot tree.

    The document mirrors the tree (registries -> servers -> versions) using
    camelCase keys and is replaced wholesale on every save.
    """

    def __init__(self, path: Path | str | None = None):
        self.path = Path(path) if path is not None else settings.snapshot_path

    async def save(self, snapshot: FederationSnapshot) -> None:
        """Write the snapshot, replacing any previous document atomically.

        Raises:
            PersistenceError: The file could not be written.
        """
        payload = snapshot.model_dump_json(by_alias=True, indent=2)
        try:
            await asyncio.to_thread(self._write, payload)
        except OSError as e:
            raise PersistenceError(f"Failed to save registry data to {self.path}: {e}") from e
        logger.debug("Saved registry data to %s", self.path)

    async def load(self) -> FederationSnapshot | None:
        """Read the saved snapshot.

        Returns:
            The snapshot, or None if no document exists yet.

        Raises:
            PersistenceError: The document exists but cannot be read or parsed.
        """
        try:
            raw = await asyncio.to_thread(self.path.read_text, encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise PersistenceError(f"Failed to read registry data from {self.path}: {e}") from e

        try:
            return FederationSnapshot.model_validate_json(raw)
        except ValidationError as e:
            raise PersistenceError(f"Corrupt registry data in {self.path}: {e}") from e

    def _write(self, payload: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
