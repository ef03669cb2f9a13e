"""
Local persistence collaborators.

The sync core only depends on KeyValuePersistence and LocalBaseline;
the in-memory and JSON file backends are reference implementations.
"""

from .base import KeyValuePersistence
from .baseline import LocalBaseline, PersistedBaseline
from .codec import decode_entries, encode_entries
from .file import JsonFilePersistence
from .memory import InMemoryPersistence

__all__ = [
    "KeyValuePersistence",
    "LocalBaseline",
    "PersistedBaseline",
    "InMemoryPersistence",
    "JsonFilePersistence",
    "encode_entries",
    "decode_entries",
]
