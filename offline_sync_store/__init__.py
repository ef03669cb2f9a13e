"""
Offline Sync Store

Keeps one authoritative local copy of a record set while deferring
synchronization with a remote authority indefinitely.

Provides:
- A durable change journal partitioned into created/updated/removed
- Reclassification of local commits into the journal
- Single-batch flushes with per-kind confirmation
- Placeholder-to-permanent identity remapping
- Bootstrap from the remote authority

Usage:

    >>> from offline_sync_store import OfflineStoreConfig, create_offline_store
    >>> config = OfflineStoreConfig(store_id="people", id_property="PersonID")
    >>> store = await create_offline_store(config, authority, loader)
    >>> store.add({"FirstName": "Ada"})
    >>> await store.sync()          # local commit, journaled
    >>> await store.sync_server()   # one batch to the authority
"""

from .config import OfflineStoreConfig

# Exceptions
from .exceptions import (
    BootstrapFailure,
    ConcurrentFlushError,
    OfflineSyncError,
    PersistenceIOError,
    RecordNotFoundError,
    RemoteRejectedError,
    RemoteUnreachableError,
    ValidationError,
)

# Persistence collaborators
from .persistence import (
    InMemoryPersistence,
    JsonFilePersistence,
    KeyValuePersistence,
    LocalBaseline,
    PersistedBaseline,
)
from .records import (
    CommitOutcome,
    InMemoryRecordCollection,
    Record,
    RecordCollection,
    new_placeholder_id,
)
from .store import OfflineSyncStore, SyncOutcome, create_offline_store

# Sync core
from .sync import (
    BootstrapReconciler,
    BootstrapResult,
    ChangeJournal,
    ChangeKind,
    ChangeTracking,
    FlushResult,
    FlushState,
    IdentityRemapper,
    KindOutcome,
    KindResponse,
    LocalSyncCoordinator,
    RemoteAuthority,
    RemoteLoader,
    RemoteSyncCoordinator,
    SyncBatch,
    SyncResponse,
)

__version__ = "0.1.0"

__all__ = [
    "OfflineStoreConfig",
    "OfflineSyncStore",
    "SyncOutcome",
    "create_offline_store",
    # Records
    "Record",
    "RecordCollection",
    "InMemoryRecordCollection",
    "CommitOutcome",
    "new_placeholder_id",
    # Sync core
    "ChangeJournal",
    "ChangeKind",
    "ChangeTracking",
    "LocalSyncCoordinator",
    "RemoteSyncCoordinator",
    "RemoteAuthority",
    "RemoteLoader",
    "SyncBatch",
    "SyncResponse",
    "KindResponse",
    "KindOutcome",
    "FlushResult",
    "FlushState",
    "IdentityRemapper",
    "BootstrapReconciler",
    "BootstrapResult",
    # Persistence
    "KeyValuePersistence",
    "InMemoryPersistence",
    "JsonFilePersistence",
    "LocalBaseline",
    "PersistedBaseline",
    # Exceptions
    "OfflineSyncError",
    "PersistenceIOError",
    "RemoteRejectedError",
    "RemoteUnreachableError",
    "ConcurrentFlushError",
    "BootstrapFailure",
    "RecordNotFoundError",
    "ValidationError",
]
