"""
Deferred synchronization core.

Local commits are reclassified into a change journal; the journal is
flushed to the remote authority in one batch whenever the caller chooses.
"""

from .bootstrap import BootstrapReconciler, BootstrapResult, RemoteLoader
from .identity import IdentityRemapper, RemapResult
from .journal import ChangeJournal, ChangeKind
from .local import LocalSyncCoordinator
from .remote import (
    FlushResult,
    FlushState,
    KindOutcome,
    KindResponse,
    RemoteAuthority,
    RemoteSyncCoordinator,
    SyncBatch,
    SyncResponse,
)
from .tracking import ChangeTracking

__all__ = [
    "ChangeJournal",
    "ChangeKind",
    "ChangeTracking",
    "LocalSyncCoordinator",
    "RemoteSyncCoordinator",
    "RemoteAuthority",
    "SyncBatch",
    "SyncResponse",
    "KindResponse",
    "KindOutcome",
    "FlushResult",
    "FlushState",
    "IdentityRemapper",
    "RemapResult",
    "BootstrapReconciler",
    "BootstrapResult",
    "RemoteLoader",
]
