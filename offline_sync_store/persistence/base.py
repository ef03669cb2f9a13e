"""
Abstract key/value persistence interface.

The journal and the local baseline store serialized arrays of field maps
under namespaced keys. Backends only need to move strings.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class KeyValuePersistence(ABC):
    """Durable string storage keyed by name.

    Implementations must raise PersistenceIOError on failure and must
    not buffer writes: once ``set`` or ``remove`` returns, the change
    survives a restart.
    """

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Read the value stored under a key.

        Returns:
            The serialized value, or None if the key is absent
        """

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """Store a serialized value under a key, replacing any previous one."""

    @abstractmethod
    async def remove(self, key: str) -> None:
        """Delete a key. Removing an absent key is not an error."""
