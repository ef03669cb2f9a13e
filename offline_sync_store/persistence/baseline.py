"""
Local baseline: the committed local copy of the record set.

The journal only records what still has to reach the authority; the
baseline is what the application reloads after a restart.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

from ..exceptions import PersistenceIOError
from ..records import CommitOutcome
from .base import KeyValuePersistence
from .codec import decode_entries, encode_entries

logger = logging.getLogger(__name__)


class LocalBaseline(ABC):
    """Interface of the local persistence stage."""

    @abstractmethod
    async def load(self) -> list[dict[str, Any]]:
        """Return every committed record as a field map."""

    @abstractmethod
    async def apply(self, outcome: CommitOutcome) -> None:
        """Persist one local commit."""

    @abstractmethod
    async def rekey(self, id_map: dict[str, str]) -> list[str]:
        """Move committed rows to new identities, leaving their fields as committed.

        Returns:
            The old identities that had a committed row
        """

    @abstractmethod
    async def clear(self) -> None:
        """Discard every committed record."""


class PersistedBaseline(LocalBaseline):
    """Baseline stored as one serialized array under ``{store_id}-records``."""

    def __init__(self, persistence: KeyValuePersistence, store_id: str, id_property: str) -> None:
        self.persistence = persistence
        self.store_id = store_id
        self.id_property = id_property
        self.key = f"{store_id}-records"

    async def load(self) -> list[dict[str, Any]]:
        try:
            raw = await self.persistence.get(self.key)
        except OSError as e:
            raise PersistenceIOError("read", self.key, e) from e
        return decode_entries(raw, self.key)

    async def apply(self, outcome: CommitOutcome) -> None:
        if outcome.is_empty:
            return

        rows = await self.load()
        removed = {record.identity for record in outcome.removed}
        by_id: dict[str, dict[str, Any]] = {
            str(row[self.id_property]): row
            for row in rows
            if str(row.get(self.id_property)) not in removed
        }
        for record in (*outcome.added, *outcome.updated):
            by_id[record.identity] = record.snapshot(self.id_property)

        payload = encode_entries(list(by_id.values()), self.key)
        try:
            await self.persistence.set(self.key, payload)
        except OSError as e:
            raise PersistenceIOError("write", self.key, e) from e
        logger.debug(
            f"Baseline {self.store_id}: +{len(outcome.added)} "
            f"~{len(outcome.updated)} -{len(outcome.removed)}"
        )

    async def clear(self) -> None:
        try:
            await self.persistence.remove(self.key)
        except OSError as e:
            raise PersistenceIOError("remove", self.key, e) from e

    async def rekey(self, id_map: dict[str, str]) -> list[str]:
        if not id_map:
            return []

        rows = await self.load()
        moved = []
        for row in rows:
            old = str(row.get(self.id_property))
            if old in id_map:
                row[self.id_property] = id_map[old]
                moved.append(old)
        if not moved:
            return moved

        payload = encode_entries(rows, self.key)
        try:
            await self.persistence.set(self.key, payload)
        except OSError as e:
            raise PersistenceIOError("write", self.key, e) from e
        logger.debug(f"Baseline {self.store_id}: rekeyed {len(moved)} rows")
        return moved
