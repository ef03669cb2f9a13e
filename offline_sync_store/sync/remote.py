"""
Remote-reconciliation stage of synchronization.

Builds one batch from the journal, submits it to the remote authority
in a single request and settles each change kind independently:

- Confirmed kinds have their submitted entries cleared (creates are
  remapped to permanent identities first)
- Rejected kinds keep their entries for the next flush
- An unreachable authority counts as a rejection of every kind sent
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from ..exceptions import (
    ConcurrentFlushError,
    OfflineSyncError,
    RemoteRejectedError,
    RemoteUnreachableError,
)
from .identity import IdentityRemapper
from .journal import ChangeJournal, ChangeKind

logger = logging.getLogger(__name__)

# Batch operation name for each change kind
KIND_OPERATIONS: dict[ChangeKind, str] = {
    ChangeKind.CREATED: "create",
    ChangeKind.UPDATED: "update",
    ChangeKind.REMOVED: "destroy",
}


@dataclass(frozen=True)
class SyncBatch:
    """Immutable payload of one flush."""

    create: tuple[dict[str, Any], ...] = ()
    update: tuple[dict[str, Any], ...] = ()
    destroy: tuple[dict[str, Any], ...] = ()

    def for_kind(self, kind: ChangeKind) -> tuple[dict[str, Any], ...]:
        return getattr(self, KIND_OPERATIONS[kind])

    @property
    def kinds(self) -> list[ChangeKind]:
        """Kinds with at least one payload, in create/update/destroy order."""
        return [kind for kind in ChangeKind if self.for_kind(kind)]

    @property
    def is_empty(self) -> bool:
        return not self.kinds

    def to_dict(self) -> dict[str, list[dict[str, Any]]]:
        return {
            "create": [dict(item) for item in self.create],
            "update": [dict(item) for item in self.update],
            "destroy": [dict(item) for item in self.destroy],
        }


@dataclass
class KindResponse:
    """The authority's answer for one kind of a batch."""

    success: bool
    records: list[dict[str, Any]] = field(default_factory=list)
    error: str | None = None


@dataclass
class SyncResponse:
    """The authority's answer to a batch, one entry per kind it settled."""

    results: dict[ChangeKind, KindResponse] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SyncResponse:
        """Parse ``{"create": {"success": ..., "records": [...]}, ...}``."""
        results: dict[ChangeKind, KindResponse] = {}
        for kind, operation in KIND_OPERATIONS.items():
            item = data.get(operation)
            if item is None:
                continue
            results[kind] = KindResponse(
                success=bool(item.get("success", False)),
                records=list(item.get("records", [])),
                error=item.get("error"),
            )
        return cls(results=results)


class RemoteAuthority(ABC):
    """Remote collaborator that applies batches."""

    endpoint: str = "remote-authority"

    @abstractmethod
    async def submit(self, batch: SyncBatch) -> SyncResponse:
        """Submit a batch in a single request.

        Raises:
            RemoteUnreachableError: If the authority cannot be reached
        """


class FlushState(Enum):
    """Current state of the remote coordinator."""

    IDLE = "idle"
    SUBMITTED = "submitted"


@dataclass
class KindOutcome:
    """Settlement of one kind of a flush."""

    kind: ChangeKind
    confirmed: bool
    submitted: int = 0
    error: OfflineSyncError | None = None
    id_map: dict[str, str] = field(default_factory=dict)


@dataclass
class FlushResult:
    """Result of a flush."""

    submitted: bool = False
    vetoed: bool = False
    outcomes: dict[ChangeKind, KindOutcome] = field(default_factory=dict)
    duration_ms: int = 0

    @property
    def success(self) -> bool:
        """True if nothing was vetoed and every submitted kind was confirmed."""
        return not self.vetoed and all(o.confirmed for o in self.outcomes.values())

    @property
    def confirmed_kinds(self) -> list[ChangeKind]:
        return [kind for kind, o in self.outcomes.items() if o.confirmed]

    @property
    def failed_kinds(self) -> list[ChangeKind]:
        return [kind for kind, o in self.outcomes.items() if not o.confirmed]

    @property
    def id_map(self) -> dict[str, str]:
        outcome = self.outcomes.get(ChangeKind.CREATED)
        return dict(outcome.id_map) if outcome else {}

    @property
    def errors(self) -> list[str]:
        return [o.error.message for o in self.outcomes.values() if o.error is not None]


class RemoteSyncCoordinator:
    """Flushes the journal to the remote authority.

    At most one flush may be outstanding for a given kind. Overlapping
    requests raise ConcurrentFlushError before anything changes.

    Example:
        >>> coordinator.before_sync = lambda batch: is_online()
        >>> result = await coordinator.flush()
        >>> result.failed_kinds
        []
    """

    def __init__(
        self,
        journal: ChangeJournal,
        authority: RemoteAuthority,
        remapper: IdentityRemapper,
        client_id_property: str = "clientId",
    ):
        """Initialize the coordinator.

        Args:
            journal: Journal to flush
            authority: Remote authority receiving the batch
            remapper: Remapper applied to confirmed creates
            client_id_property: Field carrying placeholder identities on create
        """
        self.journal = journal
        self.authority = authority
        self.remapper = remapper
        self.client_id_property = client_id_property

        self._in_flight: set[ChangeKind] = set()

        # Pre-submit veto hook; returning False cancels the flush
        self.before_sync: Callable[[SyncBatch], bool] | None = None

    @property
    def id_property(self) -> str:
        return self.journal.id_property

    @property
    def state(self) -> FlushState:
        """Get current flush state."""
        if self._in_flight:
            return FlushState.SUBMITTED
        return FlushState.IDLE

    @property
    def in_flight(self) -> set[ChangeKind]:
        return set(self._in_flight)

    def _create_payload(self, entry: dict[str, Any]) -> dict[str, Any]:
        # The placeholder travels in its own field so the authority can allocate the real id
        payload = dict(entry)
        payload[self.client_id_property] = payload.pop(self.id_property)
        return payload

    def build_batch(self) -> SyncBatch:
        """Assemble a batch from the current journal contents."""
        return SyncBatch(
            create=tuple(
                self._create_payload(entry) for entry in self.journal.read(ChangeKind.CREATED)
            ),
            update=tuple(self.journal.read(ChangeKind.UPDATED)),
            destroy=tuple(self.journal.read(ChangeKind.REMOVED)),
        )

    async def flush(self) -> FlushResult:
        """Submit all pending changes as one batch.

        Returns:
            FlushResult with one outcome per submitted kind

        Raises:
            ConcurrentFlushError: If a pending kind is already in flight
            PersistenceIOError: If clearing confirmed entries fails
        """
        # Nothing below awaits until the kinds are claimed
        submitted = {kind: self.journal.read(kind) for kind in ChangeKind}
        batch = self.build_batch()
        kinds = batch.kinds

        if not kinds:
            return FlushResult()

        overlap = self._in_flight.intersection(kinds)
        if overlap:
            raise ConcurrentFlushError(sorted(kind.value for kind in overlap))

        if self.before_sync is not None and self.before_sync(batch) is False:
            logger.info("Flush vetoed before submission")
            return FlushResult(vetoed=True)

        self._in_flight.update(kinds)
        start_time = datetime.now(UTC)
        logger.info(
            f"Flushing {len(batch.create)} creates, {len(batch.update)} updates, "
            f"{len(batch.destroy)} destroys"
        )

        result = FlushResult(submitted=True)
        try:
            failure: OfflineSyncError | None = None
            response = SyncResponse()
            try:
                response = await self.authority.submit(batch)
            except RemoteUnreachableError as e:
                failure = e
            except (OSError, asyncio.TimeoutError) as e:
                failure = RemoteUnreachableError(self.authority.endpoint, e)

            for kind in kinds:
                count = len(submitted[kind])
                if failure is not None:
                    result.outcomes[kind] = self.on_kind_failed(kind, failure, count)
                    continue

                answer = response.results.get(kind)
                if answer is None or not answer.success:
                    reason = answer.error if answer is not None else "no confirmation returned"
                    cause = RemoteRejectedError(kind.value, reason)
                    result.outcomes[kind] = self.on_kind_failed(kind, cause, count)
                else:
                    result.outcomes[kind] = await self.on_kind_succeeded(
                        kind, submitted[kind], answer.records
                    )
        finally:
            self._in_flight.difference_update(kinds)

        result.duration_ms = int((datetime.now(UTC) - start_time).total_seconds() * 1000)
        return result

    async def on_kind_succeeded(
        self,
        kind: ChangeKind,
        submitted: list[dict[str, Any]],
        confirmed: list[dict[str, Any]],
    ) -> KindOutcome:
        """Settle a confirmed kind.

        Clears the submitted entries of the kind. Entries that changed while
        the flush was in flight stay pending; a create that changed in flight
        becomes an update of its new permanent identity, and a create removed
        in flight becomes a destroy of it.
        """
        id_map: dict[str, str] = {}
        missing: set[str] = set()
        if kind is ChangeKind.CREATED:
            remap = await self.remapper.remap(confirmed)
            id_map = remap.id_map
            missing = set(remap.missing)

        sent_by_id = {self.journal.identity_of(entry): entry for entry in submitted}
        current = self.journal.read(kind)
        current_ids = {self.journal.identity_of(entry) for entry in current}

        retained: list[dict[str, Any]] = []
        follow_up_updates: list[dict[str, Any]] = []
        for entry in current:
            identity = self.journal.identity_of(entry)
            sent = sent_by_id.get(identity)
            if sent is None:
                retained.append(entry)
            elif entry == sent:
                continue
            elif identity in id_map:
                follow_up_updates.append({**entry, self.id_property: id_map[identity]})
            else:
                retained.append(entry)

        follow_up_destroys = [
            {**sent_by_id[placeholder], self.id_property: id_map[placeholder]}
            for placeholder in missing
            if placeholder in sent_by_id and placeholder not in current_ids
        ]

        if retained:
            await self.journal.upsert(kind, retained, replace=True)
        else:
            await self.journal.clear(kind)
        if follow_up_updates:
            await self.journal.upsert(ChangeKind.UPDATED, follow_up_updates, replace=False)
        if follow_up_destroys:
            await self.journal.upsert(ChangeKind.REMOVED, follow_up_destroys, replace=False)

        logger.info(f"Remote authority confirmed {len(submitted)} {kind.value} records")
        return KindOutcome(kind=kind, confirmed=True, submitted=len(submitted), id_map=id_map)

    def on_kind_failed(
        self,
        kind: ChangeKind,
        cause: OfflineSyncError,
        submitted: int = 0,
    ) -> KindOutcome:
        """Settle a rejected kind. Its entries stay pending; nothing is retried."""
        logger.warning(f"Flush of {kind.value} records failed: {cause.message}")
        return KindOutcome(kind=kind, confirmed=False, submitted=submitted, error=cause)
