"""
Configuration for the offline sync store.

Configuration can be provided directly, via environment variables or
via a YAML settings file.
"""

from __future__ import annotations

import os
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ValidationError

# Either a fixed flag or a zero-argument callable evaluated after every local sync
AutoServerSync = bool | Callable[[], bool]

_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass
class OfflineStoreConfig:
    """Configuration for an offline sync store.

    Environment Variables:
        OFFLINE_SYNC_ID_PROPERTY: Field holding the record identity (default: id)
        OFFLINE_SYNC_CLIENT_ID_PROPERTY: Field carrying placeholder ids to the
            authority on create (default: clientId)
        OFFLINE_SYNC_TRACK_LOCAL: Journal local commits (default: true)
        OFFLINE_SYNC_AUTO_SERVER_SYNC: Flush after each local sync (default: true)
        OFFLINE_SYNC_LOCAL_PATH: Directory for file persistence
        OFFLINE_SYNC_LOG_JSON: Emit the package's logs as JSON on stdout (default: false)

    YAML file (``settings.yaml``):

    ```yaml
    offline_sync:
      id_property: PersonID
      client_id_property: clientId
      track_local_sync: true
      auto_server_sync: false
      local_path: /var/lib/app/offline
      log_json: true
    ```

    Attributes:
        store_id: Namespace for every persistence key of this store
        id_property: Field name of the identity inside a record's field map
        client_id_property: Field name for placeholder ids in create payloads
        track_local_sync: Whether local commits are journaled for the authority
        auto_server_sync: Bool or callable deciding whether to flush after sync()
        local_path: Directory for JSON file persistence
        log_json: Configure structured JSON logging when the store is created
    """

    store_id: str
    id_property: str = "id"
    client_id_property: str = "clientId"
    track_local_sync: bool = True
    auto_server_sync: AutoServerSync = True
    local_path: str | None = None
    log_json: bool = False

    # Additional options
    options: dict[str, Any] = field(default_factory=dict)

    def validate(self) -> None:
        """Validate the configuration.

        Raises:
            ValidationError: If a field is missing or inconsistent
        """
        if not self.store_id:
            raise ValidationError("store_id", "must not be empty")
        if not self.id_property:
            raise ValidationError("id_property", "must not be empty")
        if self.client_id_property == self.id_property:
            raise ValidationError(
                "client_id_property",
                "must differ from id_property",
                self.client_id_property,
            )

    def should_auto_sync(self) -> bool:
        """Evaluate auto_server_sync, calling it when it is a function."""
        if callable(self.auto_server_sync):
            return bool(self.auto_server_sync())
        return bool(self.auto_server_sync)

    def resolved_local_path(self) -> Path:
        """Directory used for file persistence."""
        if self.local_path:
            return Path(self.local_path)
        return Path.home() / ".offline_sync"

    @classmethod
    def from_environment(cls, store_id: str) -> OfflineStoreConfig:
        """Create configuration from environment variables.

        Args:
            store_id: Namespace for this store's persistence keys

        Returns:
            OfflineStoreConfig populated from environment variables
        """
        return cls(
            store_id=store_id,
            id_property=os.environ.get("OFFLINE_SYNC_ID_PROPERTY", "id"),
            client_id_property=os.environ.get("OFFLINE_SYNC_CLIENT_ID_PROPERTY", "clientId"),
            track_local_sync=_env_flag("OFFLINE_SYNC_TRACK_LOCAL", True),
            auto_server_sync=_env_flag("OFFLINE_SYNC_AUTO_SERVER_SYNC", True),
            local_path=os.environ.get("OFFLINE_SYNC_LOCAL_PATH"),
            log_json=_env_flag("OFFLINE_SYNC_LOG_JSON", False),
        )

    @classmethod
    def from_file(cls, path: Path, store_id: str) -> OfflineStoreConfig:
        """Create configuration from the ``offline_sync`` section of a YAML file.

        A missing file or section yields the defaults.

        Args:
            path: Path to the YAML settings file
            store_id: Namespace for this store's persistence keys

        Raises:
            ValidationError: If the file is not valid YAML or the section is not a mapping
        """
        if not path.exists():
            return cls(store_id=store_id)

        try:
            content = yaml.safe_load(path.read_text()) or {}
        except yaml.YAMLError as e:
            raise ValidationError("config_file", f"invalid YAML: {e}", str(path)) from e

        section = content.get("offline_sync", {}) if isinstance(content, dict) else None
        if not isinstance(section, dict):
            raise ValidationError("offline_sync", "must be a mapping", str(path))

        known = {
            "id_property",
            "client_id_property",
            "track_local_sync",
            "auto_server_sync",
            "local_path",
            "log_json",
        }
        kwargs = {key: value for key, value in section.items() if key in known}
        options = {key: value for key, value in section.items() if key not in known}
        return cls(store_id=store_id, options=options, **kwargs)


def _env_flag(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES
