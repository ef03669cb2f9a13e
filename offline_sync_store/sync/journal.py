"""
Change journal for deferred synchronization.

Keeps the pending mutations that still have to reach the remote
authority, partitioned by kind and keyed by record identity. Every
mutation is written through to the persistence collaborator before the
in-memory state changes, so nothing is lost across a restart.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Iterable
from enum import Enum
from typing import Any

from ..exceptions import PersistenceIOError
from ..persistence.base import KeyValuePersistence
from ..persistence.codec import decode_entries, encode_entries

logger = logging.getLogger(__name__)


class ChangeKind(Enum):
    """Kind of pending change."""

    CREATED = "created"
    UPDATED = "updated"
    REMOVED = "removed"


class ChangeJournal:
    """Identity-keyed record of pending mutations.

    Entries are detached field-map snapshots. Within one kind an identity
    appears at most once; reclassification rules in LocalSyncCoordinator
    keep an identity out of CREATED and UPDATED at the same time.

    Persisted under ``{store_id}-created``, ``{store_id}-updated`` and
    ``{store_id}-removed``, each a serialized array of field maps.
    """

    def __init__(
        self,
        persistence: KeyValuePersistence,
        store_id: str,
        id_property: str = "id",
    ):
        """Initialize the journal.

        Args:
            persistence: Collaborator that owns the durable bytes
            store_id: Namespace for the persistence keys
            id_property: Field of each entry holding the record identity
        """
        self.persistence = persistence
        self.store_id = store_id
        self.id_property = id_property
        self._entries: dict[ChangeKind, list[dict[str, Any]]] = {kind: [] for kind in ChangeKind}
        self._loaded = False

    @classmethod
    async def open(
        cls,
        persistence: KeyValuePersistence,
        store_id: str,
        id_property: str = "id",
    ) -> ChangeJournal:
        """Create a journal and load its persisted state."""
        journal = cls(persistence, store_id, id_property)
        await journal.load()
        return journal

    def key_for(self, kind: ChangeKind) -> str:
        """Persistence key of a kind's collection."""
        return f"{self.store_id}-{kind.value}"

    def identity_of(self, entry: dict[str, Any]) -> str:
        """Return the identity stored in an entry."""
        try:
            return str(entry[self.id_property])
        except KeyError:
            raise ValueError(f"Journal entry has no '{self.id_property}' field") from None

    async def load(self) -> None:
        """Load all kinds from persistence if not already loaded."""
        if self._loaded:
            return

        for kind in ChangeKind:
            key = self.key_for(kind)
            try:
                raw = await self.persistence.get(key)
            except OSError as e:
                raise PersistenceIOError("read", key, e) from e
            entries = decode_entries(raw, key)
            self._entries[kind] = list(self._by_identity(entries).values())

        self._loaded = True
        logger.debug(f"Journal {self.store_id} loaded: {self.counts()}")

    def _require_loaded(self) -> None:
        if not self._loaded:
            raise RuntimeError("Journal not loaded; use ChangeJournal.open() or await load()")

    def _by_identity(self, entries: Iterable[dict[str, Any]]) -> dict[str, dict[str, Any]]:
        # Later duplicates overwrite earlier ones but keep the first position
        result: dict[str, dict[str, Any]] = {}
        for entry in entries:
            result[self.identity_of(entry)] = copy.deepcopy(dict(entry))
        return result

    async def _write(self, kind: ChangeKind, entries: list[dict[str, Any]]) -> None:
        key = self.key_for(kind)
        try:
            if entries:
                await self.persistence.set(key, encode_entries(entries, key))
            else:
                await self.persistence.remove(key)
        except OSError as e:
            raise PersistenceIOError("write", key, e) from e
        self._entries[kind] = entries

    def read(self, kind: ChangeKind) -> list[dict[str, Any]]:
        """Return copies of the pending entries of a kind (empty if none)."""
        self._require_loaded()
        return [copy.deepcopy(entry) for entry in self._entries[kind]]

    def get(self, kind: ChangeKind, identity: str) -> dict[str, Any] | None:
        """Return a copy of the entry for an identity, if pending."""
        self._require_loaded()
        for entry in self._entries[kind]:
            if self.identity_of(entry) == identity:
                return copy.deepcopy(entry)
        return None

    def contains(self, kind: ChangeKind, identity: str) -> bool:
        """Check whether an identity is pending in a kind."""
        self._require_loaded()
        return any(self.identity_of(entry) == identity for entry in self._entries[kind])

    def identities(self, kind: ChangeKind) -> set[str]:
        """Return the identities pending in a kind."""
        self._require_loaded()
        return {self.identity_of(entry) for entry in self._entries[kind]}

    def has_pending(self, kind: ChangeKind | None = None) -> bool:
        """Check for pending entries in one kind, or in any kind."""
        self._require_loaded()
        if kind is not None:
            return bool(self._entries[kind])
        return any(self._entries.values())

    def counts(self) -> dict[str, int]:
        """Number of pending entries per kind."""
        return {kind.value: len(entries) for kind, entries in self._entries.items()}

    async def upsert(
        self,
        kind: ChangeKind,
        entries: Iterable[dict[str, Any]],
        replace: bool = False,
    ) -> None:
        """Store entries under a kind.

        Args:
            kind: Kind to write
            entries: Field-map snapshots holding their identity
            replace: If True the kind holds exactly ``entries`` afterwards.
                Otherwise entries are merged by identity: incoming entries
                win, existing entries with other identities are retained.

        Raises:
            PersistenceIOError: If the write-through fails; in-memory state
                is left unchanged
        """
        self._require_loaded()
        incoming = self._by_identity(entries)

        if replace:
            merged = list(incoming.values())
        else:
            if not incoming:
                return
            retained = [
                entry
                for entry in self._entries[kind]
                if self.identity_of(entry) not in incoming
            ]
            merged = list(incoming.values()) + retained

        await self._write(kind, merged)
        logger.debug(
            f"Journal {self.store_id} {kind.value}: "
            f"{'replaced' if replace else 'merged'} {len(incoming)}, now {len(merged)}"
        )

    async def remove_by_identity(self, kind: ChangeKind, identity: str) -> bool:
        """Remove one entry from a kind.

        Returns:
            True if an entry was found and removed
        """
        self._require_loaded()
        remaining = [e for e in self._entries[kind] if self.identity_of(e) != identity]
        if len(remaining) == len(self._entries[kind]):
            return False
        await self._write(kind, remaining)
        return True

    async def clear(self, kind: ChangeKind) -> None:
        """Empty a kind's collection."""
        self._require_loaded()
        await self._write(kind, [])
        logger.debug(f"Journal {self.store_id} {kind.value}: cleared")

    async def clear_all(self) -> None:
        """Empty every kind."""
        for kind in ChangeKind:
            await self.clear(kind)
