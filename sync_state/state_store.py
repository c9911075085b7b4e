"""Persisted summary of the last synced configuration"""
import hashlib
import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from types import MappingProxyType
from typing import Mapping, Optional

from sync_state.config import CompiledConfig
from system_image.fileio import write_atomic

LOGGER = logging.getLogger(__name__)

STATE_FILE_NAME = "current-state.json"
CONFIG_FILE_NAME = "current-config.json"

_WRITE_LOCKS: dict[Path, threading.Lock] = {}
_WRITE_LOCKS_GUARD = threading.Lock()


def _write_lock(path: Path) -> threading.Lock:
    """Process wide lock serializing writes to one state file"""
    with _WRITE_LOCKS_GUARD:
        return _WRITE_LOCKS.setdefault(path.resolve(), threading.Lock())


def config_hash(config: CompiledConfig) -> str:
    """Stable sha256 of a compiled configuration"""
    payload = json.dumps(
        config.model_dump(mode="json", by_alias=True),
        sort_keys=True,
        separators=(",", ":"),
    )
    return "sha256:" + hashlib.sha256(payload.encode("utf-8")).hexdigest()


def summarize(config: CompiledConfig, synced_at: datetime) -> dict[str, str]:
    """
    Flatten a configuration into the string map kept by the state store
    :param config: the synced configuration
    :param synced_at: sync time
    :return: key to string value map
    """
    return {
        "last_sync": synced_at.isoformat(),
        "config_hash": config_hash(config),
        "hostname": config.system.hostname,
        "timezone": config.system.timezone,
        "locale": config.system.locale,
        "services": json.dumps(
            {service.name: str(service.enabled).lower() for service in config.services}
        ),
        "packages": json.dumps(config.installed_packages),
        "users": json.dumps([user.name for user in config.users]),
    }


class StateStore:
    """
    Current state map and last synced configuration, backed by JSON files
    under the state directory.
    Readers get immutable copies, writers are serialized process wide.
    """

    def __init__(self, state_dir: Path) -> None:
        self.state_dir = state_dir
        self.state_file = state_dir / STATE_FILE_NAME
        self.config_file = state_dir / CONFIG_FILE_NAME
        self._lock = threading.Lock()
        self._state: dict[str, str] = {}
        self._last_config: Optional[CompiledConfig] = None
        self.state_dir.mkdir(parents=True, exist_ok=True)
        self._load()

    def _load(self) -> None:
        try:
            loaded = json.loads(self.state_file.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return
        except (OSError, ValueError) as ex:
            LOGGER.warning("Ignoring unreadable state file %s: %s", self.state_file, ex)
            return
        if not isinstance(loaded, dict):
            LOGGER.warning("Ignoring malformed state file %s", self.state_file)
            return
        self._state = {str(key): str(value) for key, value in loaded.items()}
        self._last_config = self._load_config()

    def _load_config(self) -> Optional[CompiledConfig]:
        try:
            return CompiledConfig.model_validate_json(
                self.config_file.read_text(encoding="utf-8")
            )
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as ex:
            LOGGER.warning(
                "Ignoring unreadable config file %s: %s", self.config_file, ex
            )
            return None

    @property
    def last_config(self) -> Optional[CompiledConfig]:
        """Configuration of the last sync or restore, None if never synced"""
        with self._lock:
            return self._last_config

    def get_current_state(self) -> Mapping[str, str]:
        """Immutable copy of the current state map"""
        with self._lock:
            return MappingProxyType(dict(self._state))

    def sync_state(
        self, config: CompiledConfig, synced_at: Optional[datetime] = None
    ) -> Mapping[str, str]:
        """
        Replace the state with a summary of config and persist it atomically
        :param config: the newly synced configuration
        :param synced_at: sync time, defaults to now
        :return: immutable copy of the new state
        """
        state = summarize(config, synced_at or datetime.now(timezone.utc))
        content = json.dumps(state, indent=2, sort_keys=True)
        with _write_lock(self.state_file):
            write_atomic(self.config_file, config.to_json())
            write_atomic(self.state_file, content)
            with self._lock:
                self._state = state
                self._last_config = config
        LOGGER.info("Synced state for host %s", config.system.hostname)
        return MappingProxyType(dict(state))
