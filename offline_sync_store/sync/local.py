"""
Local-persist stage of synchronization.

Persists a local commit to the baseline and reclassifies its added,
updated and removed records into the change journal:

- An update to a record still pending creation is folded into its
  CREATED entry; a phantom record has no remote state to update.
- Removing a record still pending creation drops it entirely; it never
  becomes a remote delete.
- Removing an updated record drops the pending update and queues the
  record's last snapshot for remote deletion.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from ..persistence.baseline import LocalBaseline
from ..records import CommitOutcome, Record
from .journal import ChangeJournal, ChangeKind
from .tracking import ChangeTracking

logger = logging.getLogger(__name__)


class LocalSyncCoordinator:
    """Translates local commits into journal updates."""

    def __init__(
        self,
        journal: ChangeJournal,
        baseline: LocalBaseline,
        tracking: ChangeTracking,
    ):
        """Initialize the coordinator.

        Args:
            journal: Journal receiving reclassified changes
            baseline: Local baseline receiving the committed records
            tracking: Toggle deciding whether commits are journaled
        """
        self.journal = journal
        self.baseline = baseline
        self.tracking = tracking

    @property
    def id_property(self) -> str:
        return self.journal.id_property

    def _snapshots(self, records: Sequence[Record]) -> list[dict[str, Any]]:
        return [record.snapshot(self.id_property) for record in records]

    async def commit(self, outcome: CommitOutcome) -> CommitOutcome:
        """Persist one local commit and journal it when tracking is enabled.

        Persistence errors propagate to the caller; the commit has failed.

        Returns:
            The outcome that was committed
        """
        if outcome.is_empty:
            return outcome

        await self.baseline.apply(outcome)

        if not self.tracking.enabled:
            logger.debug(f"Tracking disabled, {outcome.count} records committed untracked")
            return outcome

        if outcome.added:
            await self.on_created(outcome.added)
        if outcome.updated:
            await self.on_updated(outcome.updated)
        if outcome.removed:
            await self.on_removed(outcome.removed)

        return outcome

    async def on_created(self, added: Sequence[Record]) -> None:
        """Journal newly created records; every one of them is phantom."""
        for record in added:
            record.phantom = True
        await self.journal.upsert(ChangeKind.CREATED, self._snapshots(added), replace=False)

    async def on_updated(self, updated: Sequence[Record]) -> None:
        """Journal updated records, folding updates of phantom records into CREATED."""
        created = self.journal.read(ChangeKind.CREATED)
        created_ids = {self.journal.identity_of(entry) for entry in created}

        merged_created: dict[str, dict[str, Any]] = {}
        genuinely_updated: list[dict[str, Any]] = []
        for record in updated:
            snapshot = record.snapshot(self.id_property)
            if record.identity in created_ids:
                merged_created[record.identity] = snapshot
            else:
                genuinely_updated.append(snapshot)

        if merged_created:
            created = [
                merged_created.get(self.journal.identity_of(entry), entry) for entry in created
            ]
            await self.journal.upsert(ChangeKind.CREATED, created, replace=True)
        if genuinely_updated:
            await self.journal.upsert(ChangeKind.UPDATED, genuinely_updated, replace=False)

        logger.debug(
            f"Reclassified {len(updated)} updates: {len(merged_created)} into created, "
            f"{len(genuinely_updated)} into updated"
        )

    async def on_removed(self, removed: Sequence[Record]) -> None:
        """Journal removed records, cancelling pending creates and updates."""
        created = self.journal.read(ChangeKind.CREATED)
        updated = self.journal.read(ChangeKind.UPDATED)
        created_by_id = {self.journal.identity_of(entry): entry for entry in created}
        updated_by_id = {self.journal.identity_of(entry): entry for entry in updated}

        outgoing: list[dict[str, Any]] = []
        for record in removed:
            if created_by_id.pop(record.identity, None) is not None:
                continue
            prior = updated_by_id.pop(record.identity, None)
            if prior is not None:
                outgoing.append(prior)
            else:
                outgoing.append(record.snapshot(self.id_property))

        if len(created_by_id) != len(created):
            await self.journal.upsert(
                ChangeKind.CREATED, list(created_by_id.values()), replace=True
            )
        if len(updated_by_id) != len(updated):
            await self.journal.upsert(
                ChangeKind.UPDATED, list(updated_by_id.values()), replace=True
            )
        if outgoing:
            await self.journal.upsert(ChangeKind.REMOVED, outgoing, replace=False)

        logger.debug(
            f"Reclassified {len(removed)} removals: {len(outgoing)} queued for remote delete"
        )
