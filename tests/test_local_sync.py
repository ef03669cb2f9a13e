"""Tests for reclassification of local commits into the journal."""

from __future__ import annotations

import json

import pytest
from conftest import STORE_ID, FailingPersistence, make_record

from offline_sync_store import (
    ChangeJournal,
    ChangeKind,
    ChangeTracking,
    CommitOutcome,
    InMemoryPersistence,
    LocalSyncCoordinator,
    PersistedBaseline,
    PersistenceIOError,
    Record,
)


def ids(journal: ChangeJournal, kind: ChangeKind) -> list[str]:
    return [journal.identity_of(entry) for entry in journal.read(kind)]


class TestOnCreated:
    """Tests for added records."""

    async def test_added_records_go_to_created(
        self, local_sync: LocalSyncCoordinator, journal: ChangeJournal
    ) -> None:
        record = Record(identity="local-1", fields={"name": "Cy"}, dirty=True)

        await local_sync.commit(CommitOutcome(added=(record,)))

        assert journal.read(ChangeKind.CREATED) == [{"id": "local-1", "name": "Cy"}]
        assert journal.read(ChangeKind.UPDATED) == []
        assert record.phantom is True

    async def test_commit_writes_baseline(
        self, local_sync: LocalSyncCoordinator, persistence: InMemoryPersistence
    ) -> None:
        await local_sync.commit(CommitOutcome(added=(make_record("local-1", name="Cy"),)))

        assert json.loads(persistence.data[f"{STORE_ID}-records"]) == [
            {"name": "Cy", "id": "local-1"}
        ]


class TestOnUpdated:
    """Tests for updated records."""

    async def test_update_of_created_record_stays_in_created(
        self, local_sync: LocalSyncCoordinator, journal: ChangeJournal
    ) -> None:
        """An update to a phantom record is merged into its created entry."""
        record = make_record("local-1", name="Cy")
        await local_sync.commit(CommitOutcome(added=(record,)))

        record.fields["name"] = "Cyrus"
        await local_sync.commit(CommitOutcome(updated=(record,)))

        assert journal.read(ChangeKind.CREATED) == [{"id": "local-1", "name": "Cyrus"}]
        assert journal.read(ChangeKind.UPDATED) == []

    async def test_update_of_committed_record_goes_to_updated(
        self, local_sync: LocalSyncCoordinator, journal: ChangeJournal
    ) -> None:
        await local_sync.commit(CommitOutcome(updated=(make_record("a", name="A'"),)))

        assert journal.read(ChangeKind.UPDATED) == [{"id": "a", "name": "A'"}]
        assert journal.read(ChangeKind.CREATED) == []

    async def test_mixed_update_is_partitioned_per_record(
        self, local_sync: LocalSyncCoordinator, journal: ChangeJournal
    ) -> None:
        """Each updated record is classified on its own membership."""
        await local_sync.commit(
            CommitOutcome(added=(make_record("local-1"), make_record("local-2")))
        )

        await local_sync.commit(
            CommitOutcome(
                updated=(
                    make_record("a", v=1),
                    make_record("local-2", v=2),
                    make_record("b", v=3),
                    make_record("local-1", v=4),
                )
            )
        )

        assert journal.read(ChangeKind.CREATED) == [
            {"id": "local-1", "v": 4},
            {"id": "local-2", "v": 2},
        ]
        assert ids(journal, ChangeKind.UPDATED) == ["a", "b"]

    async def test_repeated_updates_appear_once(
        self, local_sync: LocalSyncCoordinator, journal: ChangeJournal
    ) -> None:
        record = make_record("a", name="one")
        await local_sync.commit(CommitOutcome(updated=(record,)))
        record.fields["name"] = "two"
        await local_sync.commit(CommitOutcome(updated=(record,)))

        assert journal.read(ChangeKind.UPDATED) == [{"id": "a", "name": "two"}]


class TestOnRemoved:
    """Tests for removed records."""

    async def test_removing_created_record_leaves_no_trace(
        self, local_sync: LocalSyncCoordinator, journal: ChangeJournal
    ) -> None:
        record = make_record("local-1")
        await local_sync.commit(CommitOutcome(added=(record,)))

        await local_sync.commit(CommitOutcome(removed=(record,)))

        assert not journal.has_pending()

    async def test_removing_updated_record_queues_prior_snapshot(
        self, local_sync: LocalSyncCoordinator, journal: ChangeJournal
    ) -> None:
        """The pending update is dropped and its snapshot is queued for remote delete."""
        await local_sync.commit(CommitOutcome(updated=(make_record("a", name="A'"),)))

        await local_sync.commit(CommitOutcome(removed=(make_record("a", name="stale"),)))

        assert journal.read(ChangeKind.UPDATED) == []
        assert journal.read(ChangeKind.REMOVED) == [{"id": "a", "name": "A'"}]

    async def test_removing_untracked_record_queues_delete(
        self, local_sync: LocalSyncCoordinator, journal: ChangeJournal
    ) -> None:
        await local_sync.commit(CommitOutcome(removed=(make_record("b", name="B"),)))

        assert journal.read(ChangeKind.REMOVED) == [{"id": "b", "name": "B"}]

    async def test_removal_keeps_other_pending_entries(
        self, local_sync: LocalSyncCoordinator, journal: ChangeJournal
    ) -> None:
        await local_sync.commit(
            CommitOutcome(added=(make_record("local-1"), make_record("local-2")))
        )
        await local_sync.commit(CommitOutcome(updated=(make_record("a"), make_record("b"))))

        await local_sync.commit(
            CommitOutcome(removed=(make_record("local-2"), make_record("a"), make_record("z")))
        )

        assert ids(journal, ChangeKind.CREATED) == ["local-1"]
        assert ids(journal, ChangeKind.UPDATED) == ["b"]
        assert ids(journal, ChangeKind.REMOVED) == ["a", "z"]


class TestInvariants:
    """Tests for properties that hold across any sequence of commits."""

    async def test_identity_never_in_created_and_updated(
        self, local_sync: LocalSyncCoordinator, journal: ChangeJournal
    ) -> None:
        steps = [
            CommitOutcome(added=(make_record("local-1"), make_record("local-2"))),
            CommitOutcome(updated=(make_record("local-1", v=1), make_record("a", v=1))),
            CommitOutcome(updated=(make_record("a", v=2), make_record("b", v=1))),
            CommitOutcome(removed=(make_record("local-2"),), updated=(make_record("local-1"),)),
            CommitOutcome(added=(make_record("local-3"),), removed=(make_record("b"),)),
            CommitOutcome(updated=(make_record("local-3", v=9), make_record("c"))),
            CommitOutcome(removed=(make_record("a"), make_record("local-1"))),
        ]

        for outcome in steps:
            await local_sync.commit(outcome)
            created = journal.identities(ChangeKind.CREATED)
            updated = journal.identities(ChangeKind.UPDATED)
            assert created.isdisjoint(updated)
            for kind in ChangeKind:
                entries = ids(journal, kind)
                assert len(entries) == len(set(entries))

        assert ids(journal, ChangeKind.CREATED) == ["local-3"]
        assert ids(journal, ChangeKind.UPDATED) == ["c"]
        assert set(ids(journal, ChangeKind.REMOVED)) == {"a", "b"}


class TestScenarios:
    """End-to-end reclassification scenarios over a baseline of [A, B]."""

    async def test_create_update_remove_phantom(
        self, local_sync: LocalSyncCoordinator, journal: ChangeJournal
    ) -> None:
        await local_sync.baseline.apply(
            CommitOutcome(added=(make_record("a", name="A"), make_record("b", name="B")))
        )
        c = make_record("local-1", name="C")

        await local_sync.commit(CommitOutcome(added=(c,)))
        assert journal.read(ChangeKind.CREATED) == [{"id": "local-1", "name": "C"}]

        c.fields["name"] = "C'"
        await local_sync.commit(CommitOutcome(updated=(c,)))
        assert journal.read(ChangeKind.CREATED) == [{"id": "local-1", "name": "C'"}]
        assert journal.read(ChangeKind.UPDATED) == []

        await local_sync.commit(CommitOutcome(removed=(c,)))
        assert journal.read(ChangeKind.CREATED) == []
        assert journal.read(ChangeKind.UPDATED) == []
        assert journal.read(ChangeKind.REMOVED) == []

    async def test_update_then_remove_committed(
        self, local_sync: LocalSyncCoordinator, journal: ChangeJournal
    ) -> None:
        a = make_record("a", name="A")
        await local_sync.baseline.apply(CommitOutcome(added=(a, make_record("b", name="B"))))

        a.fields["name"] = "A'"
        await local_sync.commit(CommitOutcome(updated=(a,)))
        assert journal.read(ChangeKind.UPDATED) == [{"id": "a", "name": "A'"}]

        await local_sync.commit(CommitOutcome(removed=(a,)))
        assert journal.read(ChangeKind.UPDATED) == []
        assert journal.read(ChangeKind.REMOVED) == [{"id": "a", "name": "A'"}]

        rows = await local_sync.baseline.load()
        assert rows == [{"name": "B", "id": "b"}]


class TestTrackingAndFailures:
    """Tests for the tracking toggle and failure propagation."""

    async def test_disabled_tracking_skips_journal(
        self,
        local_sync: LocalSyncCoordinator,
        journal: ChangeJournal,
        tracking: ChangeTracking,
    ) -> None:
        tracking.disable()

        await local_sync.commit(CommitOutcome(added=(make_record("local-1"),)))

        assert not journal.has_pending()
        assert [row["id"] for row in await local_sync.baseline.load()] == ["local-1"]

    async def test_empty_commit_does_nothing(
        self, local_sync: LocalSyncCoordinator, persistence: InMemoryPersistence
    ) -> None:
        outcome = await local_sync.commit(CommitOutcome())

        assert outcome.is_empty
        assert persistence.data == {}

    async def test_journal_write_failure_propagates(self) -> None:
        persistence = FailingPersistence(fail_keys={f"{STORE_ID}-created"})
        journal = await ChangeJournal.open(persistence, STORE_ID)
        coordinator = LocalSyncCoordinator(
            journal, PersistedBaseline(persistence, STORE_ID, "id"), ChangeTracking()
        )

        with pytest.raises(PersistenceIOError):
            await coordinator.commit(CommitOutcome(added=(make_record("local-1"),)))

        assert not journal.has_pending()

    async def test_baseline_write_failure_propagates_before_journal(self) -> None:
        persistence = FailingPersistence(fail_keys={f"{STORE_ID}-records"})
        journal = await ChangeJournal.open(persistence, STORE_ID)
        coordinator = LocalSyncCoordinator(
            journal, PersistedBaseline(persistence, STORE_ID, "id"), ChangeTracking()
        )

        with pytest.raises(PersistenceIOError):
            await coordinator.commit(CommitOutcome(updated=(make_record("a"),)))

        assert not journal.has_pending()
