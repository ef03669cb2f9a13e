"""
Bootstrap: wholesale replacement of local state from the remote authority.

A successful bootstrap discards pending local edits that the fetched
set does not reflect. This is intended: after a bootstrap the local
copy equals the authority's and the journal is empty.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from ..exceptions import BootstrapFailure
from ..records import CommitOutcome, Record, RecordCollection
from .journal import ChangeJournal, ChangeKind
from .local import LocalSyncCoordinator

logger = logging.getLogger(__name__)


class RemoteLoader(ABC):
    """Remote collaborator that returns the full authoritative record set."""

    @abstractmethod
    async def fetch_all(self) -> list[dict[str, Any]]:
        """Fetch every record as a field map holding its identity."""


@dataclass
class BootstrapResult:
    """Result of a bootstrap.

    Attributes:
        success: Whether the authority's record set was installed
        records: Number of records now in the local collection
        discarded: Pending journal entries per kind dropped by a successful bootstrap
        error: Failure that caused the fallback to the local baseline
    """

    success: bool
    records: int = 0
    discarded: dict[str, int] = field(default_factory=dict)
    error: BootstrapFailure | None = None


class BootstrapReconciler:
    """Loads the local collection from the baseline or from the authority."""

    def __init__(
        self,
        collection: RecordCollection,
        journal: ChangeJournal,
        local_sync: LocalSyncCoordinator,
        loader: RemoteLoader,
    ):
        self.collection = collection
        self.journal = journal
        self.local_sync = local_sync
        self.loader = loader

    @property
    def id_property(self) -> str:
        return self.journal.id_property

    async def load_local(self) -> list[Record]:
        """Populate the collection from the last committed local baseline.

        Records still pending creation are loaded as phantom.
        """
        rows = await self.local_sync.baseline.load()
        pending_creates = self.journal.identities(ChangeKind.CREATED)
        records = []
        for row in rows:
            record = Record.from_snapshot(row, self.id_property)
            record.phantom = record.identity in pending_creates
            records.append(record)

        self.collection.reset(records)
        logger.debug(f"Loaded {len(records)} records from local baseline")
        return records

    async def _fetch(self) -> list[Record]:
        try:
            rows = await self.loader.fetch_all()
            return [Record.from_snapshot(row, self.id_property, dirty=True) for row in rows]
        except BootstrapFailure:
            raise
        except Exception as e:
            raise BootstrapFailure(str(e) or type(e).__name__, e) from e

    async def load_from_authority(self) -> BootstrapResult:
        """Replace local state with the authority's record set.

        On failure the collection is reloaded from the local baseline and
        the journal is left untouched. Persistence errors while installing
        the fetched set propagate.
        """
        try:
            records = await self._fetch()
        except BootstrapFailure as e:
            logger.warning(f"{e.message}; falling back to local baseline")
            await self.load_local()
            return BootstrapResult(success=False, records=len(self.collection), error=e)

        discarded = {kind: count for kind, count in self.journal.counts().items() if count}

        await self.local_sync.baseline.clear()
        self.collection.reset(records)

        with self.local_sync.tracking.suspended():
            await self.local_sync.commit(CommitOutcome(added=tuple(records)))

        await self.journal.clear_all()

        for record in records:
            record.phantom = False
            record.commit()

        if discarded:
            logger.info(f"Bootstrap discarded pending local changes: {discarded}")
        logger.info(f"Bootstrapped {len(records)} records from remote authority")
        return BootstrapResult(success=True, records=len(records), discarded=discarded)
