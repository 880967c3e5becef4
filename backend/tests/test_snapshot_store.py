"""Tests for the snapshot holder."""

import asyncio

from txregistry.schemas.registry import FederationSnapshot
from txregistry.services.snapshot_store import SnapshotStore


class TestSnapshotStore:
    """Tests for SnapshotStore."""

    def test_starts_empty(self):
        store = SnapshotStore()

        assert store.current().registries == []
        assert store.generation == 0

    def test_initial_snapshot(self, sample_snapshot):
        store = SnapshotStore(sample_snapshot)

        assert store.current() is sample_snapshot
        assert store.generation == 0

    async def test_install_swaps_and_returns_previous(self, sample_snapshot):
        store = SnapshotStore()
        empty = store.current()

        previous = await store.install(sample_snapshot)

        assert previous is empty
        assert store.current() is sample_snapshot
        assert store.generation == 1

    async def test_old_reference_unchanged_after_install(self, sample_snapshot):
        store = SnapshotStore(sample_snapshot)
        held = store.current()

        await store.install(FederationSnapshot(outcome="next"))

        assert held is sample_snapshot
        assert len(held.registries) == 2

    async def test_concurrent_installs_serialised(self):
        store = SnapshotStore()
        snapshots = [FederationSnapshot(outcome=str(i)) for i in range(10)]

        previous = await asyncio.gather(*(store.install(s) for s in snapshots))

        assert store.generation == 10
        # Every snapshot was replaced exactly once, except the last installed
        replaced = {id(p) for p in previous}
        assert len(replaced) == 10
        assert id(store.current()) not in replaced
