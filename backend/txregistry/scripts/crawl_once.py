"""Run a single federation crawl and save the snapshot.

Usage:
    python -m txregistry.scripts.crawl_once [--master-url URL] [--output PATH]

Prints a summary of the crawl and any item errors. Exits non-zero if the
master descriptor could not be processed.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from txregistry.services.persistence import SnapshotRepository
from txregistry.services.registry import RegistryService
from txregistry.utils.fhir_helpers import format_bytes


async def crawl_once(master_url: str | None, output: Path | None) -> bool:
    """Crawl once, persisting to ``output`` (settings path if None).

    Returns:
        True if a new snapshot was installed and saved.
    """
    service = RegistryService(repository=SnapshotRepository(output), crawl_interval_minutes=0)
    snapshot = await service.crawl(master_url)
    metadata = service.get_metadata()

    stats = snapshot.statistics()
    print(f"Outcome: {snapshot.outcome}")
    print(f"  Registries: {stats.registry_count}")
    print(f"  Servers: {stats.server_count}")
    print(f"  Versions: {stats.version_count}")
    print(f"  Downloaded: {format_bytes(metadata.total_bytes)}")

    if metadata.errors:
        print(f"\n{len(metadata.errors)} errors:")
        for error in metadata.errors:
            print(f"  {error.source}: {error.error}")

    return service.store.current() is snapshot


def main() -> None:
    """Main entry point for the crawl script."""
    parser = argparse.ArgumentParser(description="Crawl the terminology server federation once")
    parser.add_argument("--master-url", help="Master descriptor URL (defaults to settings)")
    parser.add_argument("--output", type=Path, help="Where to save the snapshot JSON")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log crawl progress")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING)

    ok = asyncio.run(crawl_once(args.master_url, args.output))
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
