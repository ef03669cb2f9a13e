"""In-memory persistence, for tests and ephemeral stores."""

from __future__ import annotations

from .base import KeyValuePersistence


class InMemoryPersistence(KeyValuePersistence):
    """Keeps serialized values in a dict.

    Sharing one instance between two stores simulates a restart: the new
    store sees exactly the bytes the old one wrote.
    """

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> str | None:
        return self.data.get(key)

    async def set(self, key: str, value: str) -> None:
        self.data[key] = value

    async def remove(self, key: str) -> None:
        self.data.pop(key, None)
