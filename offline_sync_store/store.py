"""
Offline sync store.

Keeps one authoritative local copy of a record set and defers
synchronization with the remote authority for as long as needed:

- add/update/remove edit the in-memory collection
- sync() commits the edits locally and journals them
- sync_server() flushes the journal to the authority in one batch
- load_from_authority() replaces local state with the authority's
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from .config import OfflineStoreConfig
from .exceptions import ConcurrentFlushError, RecordNotFoundError, ValidationError
from .logging_utils import SyncLoggerAdapter, configure_structured_logging, get_sync_logger
from .persistence.base import KeyValuePersistence
from .persistence.baseline import LocalBaseline, PersistedBaseline
from .persistence.file import JsonFilePersistence
from .records import (
    CommitOutcome,
    InMemoryRecordCollection,
    Record,
    RecordCollection,
    new_placeholder_id,
)
from .sync.bootstrap import BootstrapReconciler, BootstrapResult, RemoteLoader
from .sync.identity import IdentityRemapper
from .sync.journal import ChangeJournal, ChangeKind
from .sync.local import LocalSyncCoordinator
from .sync.remote import FlushResult, RemoteAuthority, RemoteSyncCoordinator
from .sync.tracking import ChangeTracking

logger = logging.getLogger(__name__)


@dataclass
class SyncOutcome:
    """Result of a local sync.

    Attributes:
        commit: What was committed locally
        flush: Result of the automatic server sync, if one ran
        flush_error: Why the automatic server sync could not start
    """

    commit: CommitOutcome
    flush: FlushResult | None = None
    flush_error: ConcurrentFlushError | None = None


class OfflineSyncStore:
    """Record store with a local baseline, a change journal and a remote authority.

    Example:
        >>> store = await create_offline_store(config, authority, loader)
        >>> person = store.add({"name": "Ada"})
        >>> await store.sync()            # persisted locally, journaled
        >>> await store.sync_server()     # whenever the authority is reachable
    """

    def __init__(
        self,
        config: OfflineStoreConfig,
        journal: ChangeJournal,
        baseline: LocalBaseline,
        authority: RemoteAuthority,
        loader: RemoteLoader,
        collection: RecordCollection | None = None,
        placeholder_factory: Callable[[], str] = new_placeholder_id,
    ):
        """Initialize the store.

        Args:
            config: Store configuration
            journal: Loaded change journal for this store
            baseline: Local baseline collaborator
            authority: Remote authority receiving flushes
            loader: Remote loader used for bootstrap
            collection: Record container (in-memory by default)
            placeholder_factory: Generates identities for new records
        """
        config.validate()
        if journal.id_property != config.id_property:
            raise ValidationError(
                "id_property", "journal and config disagree", journal.id_property
            )

        self.config = config
        self.journal = journal
        self.collection = collection if collection is not None else InMemoryRecordCollection()
        self.tracking = ChangeTracking(config.track_local_sync)
        self.placeholder_factory = placeholder_factory

        self.local_sync = LocalSyncCoordinator(journal, baseline, self.tracking)
        self.remapper = IdentityRemapper(
            self.collection, baseline, config.id_property, config.client_id_property
        )
        self.remote_sync = RemoteSyncCoordinator(
            journal, authority, self.remapper, config.client_id_property
        )
        self.bootstrap = BootstrapReconciler(self.collection, journal, self.local_sync, loader)

        # Edits since the last local commit
        self._new: dict[str, Record] = {}
        self._removed: dict[str, Record] = {}
        self.remapper.on_detached = self._rekey_removed

        self.log = SyncLoggerAdapter(get_sync_logger("store"), {"store_id": config.store_id})

    @property
    def store_id(self) -> str:
        return self.config.store_id

    @property
    def records(self) -> list[Record]:
        return self.collection.all()

    def get(self, identity: str) -> Record | None:
        return self.collection.get(identity)

    def add(self, fields: dict[str, Any]) -> Record:
        """Add a new record. It stays phantom until the authority confirms it.

        A placeholder identity is generated unless ``fields`` holds one.
        """
        data = dict(fields)
        identity = data.pop(self.config.id_property, None)
        identity = str(identity) if identity is not None else self.placeholder_factory()
        if identity in self.collection or identity in self._removed:
            raise ValidationError(self.config.id_property, "identity already in use", identity)

        record = Record(identity=identity, fields=data, dirty=True, phantom=True)
        self.collection.add(record)
        self._new[identity] = record
        return record

    def update(self, identity: str, changes: dict[str, Any]) -> Record:
        """Change fields of an existing record."""
        record = self.collection.get(identity)
        if record is None:
            raise RecordNotFoundError(identity)

        data = dict(changes)
        new_identity = data.pop(self.config.id_property, identity)
        if str(new_identity) != identity:
            raise ValidationError(
                self.config.id_property, "identity cannot be changed", str(new_identity)
            )

        if record.set_fields(data):
            self.collection.update(record)
        return record

    def remove(self, identity: str) -> Record:
        """Remove a record from the collection."""
        record = self.collection.remove(identity)
        if record is None:
            raise RecordNotFoundError(identity)

        if self._new.pop(identity, None) is None:
            self._removed[identity] = record
        return record

    def _rekey_removed(self, placeholder: str, permanent: str) -> bool:
        # A confirmed create removed since the last sync() is deleted under its permanent id.
        # _new only holds records not yet journaled, so none of them was submitted.
        record = self._removed.pop(placeholder, None)
        if record is None:
            return False
        record.identity = permanent
        record.phantom = False
        self._removed[permanent] = record
        return True

    def pending_commit(self) -> CommitOutcome:
        """The outcome the next sync() would commit."""
        return CommitOutcome(
            added=tuple(self._new.values()),
            updated=tuple(
                record
                for record in self.collection.all()
                if record.dirty and record.identity not in self._new
            ),
            removed=tuple(self._removed.values()),
        )

    async def sync(self) -> SyncOutcome:
        """Commit pending edits locally, then flush if auto server sync applies.

        Raises:
            PersistenceIOError: If the local commit fails; edits stay pending
        """
        outcome = self.pending_commit()
        await self.local_sync.commit(outcome)

        for record in (*outcome.added, *outcome.updated):
            record.commit()
        self._new.clear()
        self._removed.clear()
        if not outcome.is_empty:
            self.log.debug(
                f"Committed {outcome.count} records locally",
                extra={
                    "committed": {
                        "added": len(outcome.added),
                        "updated": len(outcome.updated),
                        "removed": len(outcome.removed),
                    }
                },
            )

        result = SyncOutcome(commit=outcome)
        if self.tracking.enabled and self.config.should_auto_sync():
            try:
                result.flush = await self.sync_server()
            except ConcurrentFlushError as e:
                self.log.info("Automatic server sync skipped", extra={"kinds": e.kinds})
                result.flush_error = e
        return result

    async def sync_server(self) -> FlushResult:
        """Flush the journal to the remote authority."""
        result = await self.remote_sync.flush()
        if not result.submitted:
            return result

        extra = {
            "confirmed": [kind.value for kind in result.confirmed_kinds],
            "failed": [kind.value for kind in result.failed_kinds],
            "id_map": result.id_map,
            "duration_ms": result.duration_ms,
        }
        if result.failed_kinds:
            self.log.warning(f"Server sync incomplete: {result.errors}", extra=extra)
        else:
            self.log.info("Server sync complete", extra=extra)
        return result

    async def load_local(self) -> list[Record]:
        """Load the collection from the local baseline, dropping uncommitted edits."""
        self._new.clear()
        self._removed.clear()
        return await self.bootstrap.load_local()

    async def load_from_authority(self) -> BootstrapResult:
        """Replace local state with the authority's record set."""
        self._new.clear()
        self._removed.clear()
        result = await self.bootstrap.load_from_authority()
        extra = {"records": result.records, "discarded": result.discarded}
        if result.success:
            self.log.info("Bootstrapped from remote authority", extra=extra)
        else:
            self.log.warning(
                "Bootstrap failed, using local baseline", exc_info=result.error, extra=extra
            )
        return result

    def has_pending_server_sync(self) -> bool:
        return self.journal.has_pending()

    def has_pending_created(self) -> bool:
        return self.journal.has_pending(ChangeKind.CREATED)

    def has_pending_updated(self) -> bool:
        return self.journal.has_pending(ChangeKind.UPDATED)

    def has_pending_removed(self) -> bool:
        return self.journal.has_pending(ChangeKind.REMOVED)

    @property
    def tracking_enabled(self) -> bool:
        return self.tracking.enabled

    def enable_tracking(self) -> None:
        self.tracking.enable()

    def disable_tracking(self) -> None:
        self.tracking.disable()


async def create_offline_store(
    config: OfflineStoreConfig,
    authority: RemoteAuthority,
    loader: RemoteLoader,
    persistence: KeyValuePersistence | None = None,
    collection: RecordCollection | None = None,
    placeholder_factory: Callable[[], str] = new_placeholder_id,
    load: bool = True,
) -> OfflineSyncStore:
    """Create and initialize an offline sync store.

    Args:
        config: Store configuration
        authority: Remote authority for flushes
        loader: Remote loader for bootstrap
        persistence: Key/value persistence (JSON files under config.local_path if omitted)
        collection: Record container (in-memory if omitted)
        placeholder_factory: Generates identities for new records
        load: Populate the collection from the local baseline

    Returns:
        Initialized OfflineSyncStore
    """
    config.validate()
    if config.log_json:
        configure_structured_logging()

    if persistence is None:
        persistence = JsonFilePersistence(config.resolved_local_path())

    journal = await ChangeJournal.open(persistence, config.store_id, config.id_property)
    baseline = PersistedBaseline(persistence, config.store_id, config.id_property)

    store = OfflineSyncStore(
        config=config,
        journal=journal,
        baseline=baseline,
        authority=authority,
        loader=loader,
        collection=collection,
        placeholder_factory=placeholder_factory,
    )
    if load:
        await store.load_local()

    logger.debug(f"Created offline store {config.store_id}")
    return store
