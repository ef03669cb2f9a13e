"""
Records and the in-memory record collection.

A Record is the application's view of one entity. The collection is the
capability set the coordinators rely on (read-all, add, update, remove,
query-by-identity); any container offering it can back a store.
"""

from __future__ import annotations

import copy
import uuid
from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from typing import Any

PLACEHOLDER_PREFIX = "local-"


def new_placeholder_id() -> str:
    """Generate a placeholder identity for a locally created record."""
    return f"{PLACEHOLDER_PREFIX}{uuid.uuid4().hex}"


@dataclass
class Record:
    """A domain entity tracked by the store.

    Attributes:
        identity: Placeholder or authority-assigned identifier
        fields: Field map, without the identity
        dirty: Has local changes not yet committed locally
        phantom: Created locally and not yet confirmed by the authority
    """

    identity: str
    fields: dict[str, Any] = field(default_factory=dict)
    dirty: bool = False
    phantom: bool = False

    def snapshot(self, id_property: str) -> dict[str, Any]:
        """Return a detached copy of the field map including the identity."""
        data = copy.deepcopy(self.fields)
        data[id_property] = self.identity
        return data

    def set_fields(self, changes: dict[str, Any]) -> bool:
        """Apply field changes, marking the record dirty if anything changed.

        Returns:
            True if at least one value changed
        """
        changed = False
        for key, value in changes.items():
            if self.fields.get(key) != value or key not in self.fields:
                self.fields[key] = value
                changed = True
        if changed:
            self.dirty = True
        return changed

    def commit(self) -> None:
        """Mark local changes as committed."""
        self.dirty = False

    @classmethod
    def from_snapshot(
        cls,
        data: dict[str, Any],
        id_property: str,
        dirty: bool = False,
        phantom: bool = False,
    ) -> Record:
        """Create a record from a field map that holds its identity."""
        if id_property not in data:
            raise KeyError(f"Snapshot has no '{id_property}' field")
        fields = copy.deepcopy(data)
        identity = str(fields.pop(id_property))
        return cls(identity=identity, fields=fields, dirty=dirty, phantom=phantom)


@dataclass(frozen=True)
class CommitOutcome:
    """The result of one local commit.

    The three sets are disjoint by identity.
    """

    added: tuple[Record, ...] = ()
    updated: tuple[Record, ...] = ()
    removed: tuple[Record, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.updated or self.removed)

    @property
    def count(self) -> int:
        return len(self.added) + len(self.updated) + len(self.removed)


class RecordCollection(ABC):
    """Abstract record container used by the coordinators."""

    @abstractmethod
    def all(self) -> list[Record]:
        """Return every record in stable order."""

    @abstractmethod
    def get(self, identity: str) -> Record | None:
        """Look up a record by identity."""

    @abstractmethod
    def add(self, record: Record) -> None:
        """Add a record, replacing any record with the same identity."""

    @abstractmethod
    def update(self, record: Record) -> None:
        """Store the new state of an existing record."""

    @abstractmethod
    def remove(self, identity: str) -> Record | None:
        """Remove a record, returning it if it was present."""

    def reset(self, records: Iterable[Record]) -> None:
        """Replace the whole content of the collection."""
        for record in self.all():
            self.remove(record.identity)
        for record in records:
            self.add(record)

    def __len__(self) -> int:
        return len(self.all())

    def __iter__(self) -> Iterator[Record]:
        return iter(self.all())

    def __contains__(self, identity: object) -> bool:
        return isinstance(identity, str) and self.get(identity) is not None


class InMemoryRecordCollection(RecordCollection):
    """Insertion-ordered record collection held in a dict."""

    def __init__(self, records: Iterable[Record] | None = None) -> None:
        self._records: dict[str, Record] = {}
        for record in records or ():
            self.add(record)

    def all(self) -> list[Record]:
        return list(self._records.values())

    def get(self, identity: str) -> Record | None:
        return self._records.get(identity)

    def add(self, record: Record) -> None:
        self._records[record.identity] = record

    def update(self, record: Record) -> None:
        if record.identity not in self._records:
            raise KeyError(record.identity)
        self._records[record.identity] = record

    def remove(self, identity: str) -> Record | None:
        return self._records.pop(identity, None)

    def reset(self, records: Iterable[Record]) -> None:
        self._records = {record.identity: record for record in records}
