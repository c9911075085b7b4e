"""Restore the live system from a snapshot"""
import json
import logging
from dataclasses import dataclass
from functools import partial
from typing import Callable

from sync_state.config import CompiledConfig
from sync_state.exceptions import CmdError, StateSyncError
from sync_state.inspector import SystemInspector
from sync_state.models import RestoreResult, ServiceState, StateSnapshot, SystemState
from sync_state.state_store import StateStore

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class RestoreManager:
    """Re-apply a snapshot to the live system. Packages are not restored."""

    store: StateStore
    inspector: SystemInspector

    def _load(self, snapshot: StateSnapshot) -> tuple[CompiledConfig, SystemState]:
        if not snapshot.config_path.exists() or not snapshot.state_path.exists():
            raise StateSyncError(
                f"Snapshot files not found: {snapshot.id}", snapshot.id
            )
        try:
            config = CompiledConfig.model_validate_json(
                snapshot.config_path.read_text(encoding="utf-8")
            )
            state = SystemState.model_validate_json(
                snapshot.state_path.read_text(encoding="utf-8")
            )
        except (OSError, ValueError) as ex:
            raise StateSyncError(
                f"Snapshot files are unreadable or corrupted: {snapshot.id}",
                snapshot.id,
                ex,
            ) from ex
        return config, state

    def _load_services(self, snapshot: StateSnapshot) -> dict[str, ServiceState]:
        try:
            raw = json.loads(snapshot.services_path.read_text(encoding="utf-8"))
            return {
                name: ServiceState.model_validate(value) for name, value in raw.items()
            }
        except (OSError, ValueError, AttributeError) as ex:
            raise StateSyncError(
                f"Snapshot services file is corrupted: {snapshot.id}", snapshot.id, ex
            ) from ex

    def plan(
        self, state: SystemState, services: dict[str, ServiceState]
    ) -> list[tuple[str, Callable[[], None]]]:
        """
        Build the restore steps: system identity first, then every known
        service is started if it was active and stopped otherwise
        """
        inspector = self.inspector
        steps: list[tuple[str, Callable[[], None]]] = []
        if state.hostname:
            steps.append(
                (
                    f"set hostname {state.hostname}",
                    partial(inspector.set_hostname, state.hostname),
                )
            )
        if state.timezone:
            steps.append(
                (
                    f"set timezone {state.timezone}",
                    partial(inspector.set_timezone, state.timezone),
                )
            )
        for name, service in sorted(services.items()):
            if service.is_active:
                steps.append((f"start {name}", partial(inspector.start_service, name)))
            else:
                steps.append((f"stop {name}", partial(inspector.stop_service, name)))
        return steps

    def restore_snapshot(self, snapshot: StateSnapshot) -> RestoreResult:
        """
        Apply the system identity and service states of a snapshot, then
        record its configuration as the last synced one.
        Failed steps are reported as warnings, the remaining steps still run.
        :param snapshot: the snapshot to restore
        :return: the restored configuration and step warnings
        :raises StateSyncError: when the config or system state file is missing
        """
        config, state = self._load(snapshot)
        services = (
            self._load_services(snapshot) if snapshot.services_path.exists() else {}
        )

        warnings: list[str] = []
        for description, step in self.plan(state, services):
            try:
                step()
            except CmdError as err:
                warnings.append(f"Failed to {description}: {err}")

        self.store.sync_state(config)
        for warning in warnings:
            LOGGER.warning("Restore %s: %s", snapshot.id, warning)
        LOGGER.info("Restored snapshot %s", snapshot.id)
        return RestoreResult(config=config, warnings=tuple(warnings))

