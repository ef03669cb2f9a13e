"""Tests for bootstrapping local state from the remote authority."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from conftest import STORE_ID, FailingPersistence, FakeAuthority, make_record

from offline_sync_store import (
    BootstrapFailure,
    BootstrapReconciler,
    ChangeJournal,
    ChangeKind,
    ChangeTracking,
    CommitOutcome,
    InMemoryRecordCollection,
    LocalSyncCoordinator,
    PersistedBaseline,
    PersistenceIOError,
    RemoteLoader,
)


@pytest.fixture
def reconciler(
    collection: InMemoryRecordCollection,
    journal: ChangeJournal,
    local_sync: LocalSyncCoordinator,
    authority: FakeAuthority,
) -> BootstrapReconciler:
    return BootstrapReconciler(collection, journal, local_sync, authority)


class TestLoadFromAuthority:
    """Tests for a successful bootstrap."""

    async def test_pending_changes_are_discarded(
        self,
        reconciler: BootstrapReconciler,
        local_sync: LocalSyncCoordinator,
        journal: ChangeJournal,
        authority: FakeAuthority,
    ) -> None:
        """The journal ends up empty even with an update pending."""
        await local_sync.commit(CommitOutcome(updated=(make_record("a", name="A'"),)))
        await local_sync.commit(CommitOutcome(added=(make_record("local-1"),)))
        authority.rows = [{"id": "a", "name": "A"}, {"id": "b", "name": "B"}]

        result = await reconciler.load_from_authority()

        assert result.success
        assert result.records == 2
        assert result.discarded == {"created": 1, "updated": 1}
        for kind in ChangeKind:
            assert journal.read(kind) == []

    async def test_fetched_set_becomes_baseline(
        self,
        reconciler: BootstrapReconciler,
        local_sync: LocalSyncCoordinator,
        collection: InMemoryRecordCollection,
        authority: FakeAuthority,
    ) -> None:
        await local_sync.baseline.apply(CommitOutcome(added=(make_record("stale"),)))
        authority.rows = [{"id": 1, "name": "A"}, {"id": 2, "name": "B"}]

        await reconciler.load_from_authority()

        assert await local_sync.baseline.load() == [
            {"name": "A", "id": "1"},
            {"name": "B", "id": "2"},
        ]
        assert [r.identity for r in collection.all()] == ["1", "2"]

    async def test_records_end_clean_and_committed(
        self,
        reconciler: BootstrapReconciler,
        collection: InMemoryRecordCollection,
        authority: FakeAuthority,
    ) -> None:
        authority.rows = [{"id": "a"}, {"id": "b"}]

        await reconciler.load_from_authority()

        for record in collection.all():
            assert record.dirty is False
            assert record.phantom is False

    async def test_tracking_is_restored(
        self,
        reconciler: BootstrapReconciler,
        tracking: ChangeTracking,
        authority: FakeAuthority,
    ) -> None:
        authority.rows = [{"id": "a"}]

        await reconciler.load_from_authority()

        assert tracking.enabled is True

    async def test_disabled_tracking_stays_disabled(
        self,
        reconciler: BootstrapReconciler,
        tracking: ChangeTracking,
        authority: FakeAuthority,
    ) -> None:
        tracking.disable()
        authority.rows = [{"id": "a"}]

        await reconciler.load_from_authority()

        assert tracking.enabled is False


class TestFallback:
    """Tests for a failed bootstrap."""

    async def test_failure_falls_back_to_local_baseline(
        self,
        reconciler: BootstrapReconciler,
        local_sync: LocalSyncCoordinator,
        collection: InMemoryRecordCollection,
        journal: ChangeJournal,
        authority: FakeAuthority,
    ) -> None:
        await local_sync.baseline.apply(
            CommitOutcome(added=(make_record("a", name="A"), make_record("b", name="B")))
        )
        await local_sync.commit(CommitOutcome(updated=(make_record("a", name="A'"),)))
        authority.fetch_error = TimeoutError("authority timed out")

        result = await reconciler.load_from_authority()

        assert not result.success
        assert isinstance(result.error, BootstrapFailure)
        assert isinstance(result.error.cause, TimeoutError)
        assert journal.read(ChangeKind.UPDATED) == [{"name": "A'", "id": "a"}]
        assert [r.identity for r in collection.all()] == ["a", "b"]
        assert collection.get("a").fields == {"name": "A'"}

    async def test_malformed_rows_are_a_failure(
        self,
        reconciler: BootstrapReconciler,
        authority: FakeAuthority,
    ) -> None:
        authority.rows = [{"name": "no identity"}]

        result = await reconciler.load_from_authority()

        assert not result.success
        assert isinstance(result.error.cause, KeyError)

    async def test_tracking_restored_when_install_fails(self, authority: FakeAuthority) -> None:
        persistence = FailingPersistence(fail_keys={f"{STORE_ID}-records"})
        journal = await ChangeJournal.open(persistence, STORE_ID)
        tracking = ChangeTracking()
        local_sync = LocalSyncCoordinator(
            journal, PersistedBaseline(persistence, STORE_ID, "id"), tracking
        )
        reconciler = BootstrapReconciler(
            InMemoryRecordCollection(), journal, local_sync, authority
        )
        authority.rows = [{"id": "a"}]

        with pytest.raises(PersistenceIOError):
            await reconciler.load_from_authority()

        assert tracking.enabled is True


class TestLoadLocal:
    """Tests for loading the local baseline."""

    async def test_pending_creates_load_as_phantom(
        self,
        reconciler: BootstrapReconciler,
        local_sync: LocalSyncCoordinator,
        collection: InMemoryRecordCollection,
    ) -> None:
        await local_sync.baseline.apply(CommitOutcome(added=(make_record("a"),)))
        await local_sync.commit(CommitOutcome(added=(make_record("local-1", name="C"),)))

        records = await reconciler.load_local()

        assert [(r.identity, r.phantom) for r in records] == [("a", False), ("local-1", True)]
        assert collection.get("local-1").fields == {"name": "C"}


class TestLoaderCollaborator:
    """Tests against a mocked loader."""

    async def test_loader_is_called_once(
        self,
        collection: InMemoryRecordCollection,
        journal: ChangeJournal,
        local_sync: LocalSyncCoordinator,
    ) -> None:
        loader = AsyncMock(spec=RemoteLoader)
        loader.fetch_all.return_value = [{"id": 7, "name": "G"}]
        reconciler = BootstrapReconciler(collection, journal, local_sync, loader)

        result = await reconciler.load_from_authority()

        loader.fetch_all.assert_awaited_once_with()
        assert result.records == 1
        assert collection.get("7").fields == {"name": "G"}
