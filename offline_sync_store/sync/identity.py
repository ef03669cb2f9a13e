"""
Identity remapping after confirmed creates.

The authority answers a create batch with its permanent identifiers,
keyed by the placeholder each record was sent with.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from ..persistence.baseline import LocalBaseline
from ..records import RecordCollection

logger = logging.getLogger(__name__)


@dataclass
class RemapResult:
    """Result of remapping confirmed creates.

    Attributes:
        id_map: Placeholder to permanent identity, for every confirmation
        applied: Placeholders whose record was rekeyed
        missing: Placeholders with no record left in the collection
    """

    id_map: dict[str, str] = field(default_factory=dict)
    applied: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)


class IdentityRemapper:
    """Replaces placeholder identities with authority-assigned ones.

    Only touches records and the local baseline. Journal UPDATED and
    REMOVED entries never hold a phantom identity, so they are left alone.
    """

    def __init__(
        self,
        collection: RecordCollection,
        baseline: LocalBaseline,
        id_property: str = "id",
        client_id_property: str = "clientId",
    ):
        self.collection = collection
        self.baseline = baseline
        self.id_property = id_property
        self.client_id_property = client_id_property

        # Rekeys a record held outside the collection; returns True if it held one
        self.on_detached: Callable[[str, str], bool] | None = None

    def build_id_map(self, confirmed: Iterable[dict[str, Any]]) -> dict[str, str]:
        """Map placeholders to permanent identities from confirmed create records."""
        id_map: dict[str, str] = {}
        for data in confirmed:
            placeholder = data.get(self.client_id_property)
            permanent = data.get(self.id_property)
            if placeholder is None or permanent is None:
                logger.warning(
                    f"Confirmed create without {self.client_id_property}/{self.id_property}: {data}"
                )
                continue
            id_map[str(placeholder)] = str(permanent)
        return id_map

    async def remap(self, confirmed: Iterable[dict[str, Any]]) -> RemapResult:
        """Rekey confirmed records and clear their phantom flag.

        The baseline rows keep their committed fields; only their identity
        changes. Uncommitted edits stay on the in-memory record.

        Args:
            confirmed: Records returned by the authority for the create kind

        Returns:
            RemapResult describing what was rekeyed
        """
        result = RemapResult(id_map=self.build_id_map(confirmed))

        await self.baseline.rekey(result.id_map)

        for placeholder, permanent in result.id_map.items():
            record = self.collection.get(placeholder)
            if record is None:
                if self.on_detached is not None and self.on_detached(placeholder, permanent):
                    result.applied.append(placeholder)
                else:
                    result.missing.append(placeholder)
                continue

            self.collection.remove(placeholder)
            record.identity = permanent
            record.phantom = False
            self.collection.add(record)
            result.applied.append(placeholder)

        if result.applied:
            logger.info(f"Remapped {len(result.applied)} placeholder identities")
        if result.missing:
            logger.info(f"Confirmed placeholders no longer held locally: {result.missing}")

        return result
