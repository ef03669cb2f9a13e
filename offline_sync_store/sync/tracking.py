"""Change tracking toggle shared by the local-persist path and bootstrap."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

logger = logging.getLogger(__name__)


class ChangeTracking:
    """Whether local commits are journaled for the remote authority.

    One instance is owned by a store and passed explicitly to the
    components that read or change it.
    """

    def __init__(self, enabled: bool = True) -> None:
        self._enabled = enabled

    @property
    def enabled(self) -> bool:
        return self._enabled

    def enable(self) -> None:
        self._enabled = True

    def disable(self) -> None:
        self._enabled = False

    @contextmanager
    def suspended(self) -> Iterator[None]:
        """Disable tracking for a block, restoring the previous value on exit.

        The previous value is restored on every exit path, including
        exceptions raised inside the block.
        """
        previous = self._enabled
        self._enabled = False
        try:
            yield
        finally:
            self._enabled = previous
            logger.debug(f"Change tracking restored to {previous}")
