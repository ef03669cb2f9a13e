"""
Shared test configuration and fixtures.

Provides an in-memory persistence, a loaded journal, the local-persist
coordinator and a fake remote authority that allocates permanent ids
starting at 42.
"""

import asyncio
import itertools
from collections.abc import Callable

import pytest

from offline_sync_store import (
    ChangeJournal,
    ChangeKind,
    ChangeTracking,
    InMemoryPersistence,
    InMemoryRecordCollection,
    KindResponse,
    LocalSyncCoordinator,
    PersistedBaseline,
    Record,
    RemoteAuthority,
    RemoteLoader,
    RemoteUnreachableError,
    SyncBatch,
    SyncResponse,
)

STORE_ID = "people"


class FakeAuthority(RemoteAuthority, RemoteLoader):
    """
    Remote authority for tests.

    Confirms every kind unless told otherwise and hands out permanent
    identities from a counter. Setting ``gate`` holds submissions until
    the event is set.
    """

    endpoint = "fake://authority"

    def __init__(self, rows: list[dict] | None = None, next_id: int = 42):
        self.rows = rows or []
        self.next_id = next_id
        self.batches: list[SyncBatch] = []
        self.reject: dict[ChangeKind, str] = {}
        self.omit: set[ChangeKind] = set()
        self.unreachable = False
        self.submit_error: Exception | None = None
        self.fetch_error: Exception | None = None
        self.gate: asyncio.Event | None = None

    async def submit(self, batch: SyncBatch) -> SyncResponse:
        self.batches.append(batch)
        if self.gate is not None:
            await self.gate.wait()
        if self.unreachable:
            raise RemoteUnreachableError(self.endpoint)
        if self.submit_error is not None:
            raise self.submit_error

        results: dict[ChangeKind, KindResponse] = {}
        for kind in batch.kinds:
            if kind in self.omit:
                continue
            if kind in self.reject:
                results[kind] = KindResponse(success=False, error=self.reject[kind])
                continue
            if kind is ChangeKind.CREATED:
                records = []
                for payload in batch.create:
                    records.append({**payload, "id": self.next_id})
                    self.next_id += 1
            else:
                records = [dict(payload) for payload in batch.for_kind(kind)]
            results[kind] = KindResponse(success=True, records=records)
        return SyncResponse(results=results)

    async def fetch_all(self) -> list[dict]:
        if self.fetch_error is not None:
            raise self.fetch_error
        return [dict(row) for row in self.rows]


class FailingPersistence(InMemoryPersistence):
    """In-memory persistence whose writes fail for selected keys."""

    def __init__(self, fail_keys: set[str] | None = None, error: Exception | None = None):
        super().__init__()
        self.fail_keys = fail_keys or set()
        self.error = error or OSError("disk full")

    async def set(self, key: str, value: str) -> None:
        if key in self.fail_keys:
            raise self.error
        await super().set(key, value)


def counter_ids(prefix: str = "local-") -> Callable[[], str]:
    """Deterministic placeholder factory: local-1, local-2, ..."""
    counter = itertools.count(1)
    return lambda: f"{prefix}{next(counter)}"


def make_record(identity: str, **fields) -> Record:
    """Create a clean committed record."""
    return Record(identity=identity, fields=dict(fields))


@pytest.fixture
def persistence() -> InMemoryPersistence:
    return InMemoryPersistence()


@pytest.fixture
async def journal(persistence: InMemoryPersistence) -> ChangeJournal:
    return await ChangeJournal.open(persistence, STORE_ID, "id")


@pytest.fixture
def baseline(persistence: InMemoryPersistence) -> PersistedBaseline:
    return PersistedBaseline(persistence, STORE_ID, "id")


@pytest.fixture
def tracking() -> ChangeTracking:
    return ChangeTracking()


@pytest.fixture
def local_sync(
    journal: ChangeJournal, baseline: PersistedBaseline, tracking: ChangeTracking
) -> LocalSyncCoordinator:
    return LocalSyncCoordinator(journal, baseline, tracking)


@pytest.fixture
def collection() -> InMemoryRecordCollection:
    return InMemoryRecordCollection()


@pytest.fixture
def authority() -> FakeAuthority:
    return FakeAuthority()
