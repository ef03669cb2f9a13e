"""
Encoding of field-map arrays for persistence.

Values are plain JSON arrays of field maps, never wrapped record objects.
"""

import json
from datetime import date, datetime
from typing import Any

from ..exceptions import PersistenceIOError


def encode_entries(entries: list[dict[str, Any]], key: str | None = None) -> str:
    """Serialize a list of field maps.

    Raises:
        PersistenceIOError: If a field value cannot be serialized
    """
    try:
        return json.dumps(entries, default=_json_serializer)
    except (TypeError, ValueError) as e:
        raise PersistenceIOError("encode", key, e) from e


def decode_entries(raw: str | None, key: str | None = None) -> list[dict[str, Any]]:
    """Deserialize a list of field maps.

    Args:
        raw: Serialized value, or None/empty for an absent key
        key: Persistence key, used in error reports

    Raises:
        PersistenceIOError: If the value is not a JSON array of objects
    """
    if raw is None or not raw.strip():
        return []
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise PersistenceIOError("decode", key, e) from e
    if not isinstance(data, list) or not all(isinstance(item, dict) for item in data):
        raise PersistenceIOError("decode", key, ValueError("expected an array of objects"))
    return data


def _json_serializer(obj: Any) -> Any:
    """Encode dates as ISO 8601 strings."""
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")
