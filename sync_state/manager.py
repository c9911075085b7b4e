"""Keep the live system consistent with the compiled configuration"""
import logging
from pathlib import Path
from typing import Mapping, Optional

from sync_state.cmd_runner import CmdRunner, CommandExecutor
from sync_state.config import CompiledConfig, SyncSettings
from sync_state.inspector import SystemInspector
from sync_state.models import RestoreResult, SnapshotInfo, StateSnapshot, SyncStatus
from sync_state.restore import RestoreManager
from sync_state.snapshot import SnapshotManager
from sync_state.state_store import StateStore
from sync_state.sync_checker import SyncChecker
from system_image.diff import SystemImageDiff, compare_system_images
from system_image.lockfile import read_lockfile
from system_image.validator import check_image

LOGGER = logging.getLogger(__name__)


class StateSyncManager:
    """
    Facade over the state store, snapshot, restore and sync check components,
    sharing one command executor and one last synced configuration
    """

    def __init__(
        self,
        settings: SyncSettings,
        executor: Optional[CommandExecutor] = None,
    ) -> None:
        self.settings = settings
        self.store = StateStore(settings.state_dir)
        self.inspector = SystemInspector(
            executor=executor or CmdRunner(), timeout=settings.command_timeout
        )
        self.snapshots = SnapshotManager(store=self.store, inspector=self.inspector)
        self.restorer = RestoreManager(store=self.store, inspector=self.inspector)
        self.checker = SyncChecker(inspector=self.inspector)

    def validate_image(self, config: CompiledConfig) -> list[str]:
        """
        Validate the system image pinned by a configuration, if any
        :param config: configuration carrying reproducible settings
        :return: violations found
        :raises ImageValidationError: in strict mode when violations exist
        """
        reproducible = config.reproducible
        if reproducible is None or reproducible.system_image is None:
            return []
        mode = reproducible.effective_mode(self.settings.validation_mode)
        return check_image(reproducible.system_image, mode, reproducible)

    def image_changes(self, config: CompiledConfig) -> Optional[SystemImageDiff]:
        """
        Compare the image locked in the lockfile with the one a configuration pins
        :param config: configuration carrying reproducible settings
        :return: the diff, None when either side has no image
        :raises LockfileIntegrityError: when the lockfile is corrupted
        """
        reproducible = config.reproducible
        if reproducible is None or reproducible.system_image is None:
            return None
        lockfile = Path(reproducible.lockfile or self.settings.lockfile)
        if not lockfile.exists():
            return None
        return compare_system_images(read_lockfile(lockfile), reproducible.system_image)

    def sync_state(self, config: CompiledConfig) -> Mapping[str, str]:
        """Validate the pinned image, then record config as the synced state"""
        self.validate_image(config)
        return self.store.sync_state(config)

    def get_current_state(self) -> Mapping[str, str]:
        """Immutable copy of the persisted state"""
        return self.store.get_current_state()

    def check_sync(self, config: CompiledConfig) -> SyncStatus:
        """Report every drift between config and the live system"""
        return self.checker.check_sync(config)

    def create_snapshot(self, config: Optional[CompiledConfig] = None) -> StateSnapshot:
        """Capture the live system"""
        return self.snapshots.create_snapshot(config)

    def restore_snapshot(self, snapshot: StateSnapshot) -> RestoreResult:
        """Re-apply a captured snapshot"""
        return self.restorer.restore_snapshot(snapshot)

    def list_snapshots(self) -> list[SnapshotInfo]:
        """Snapshots on disk, newest first"""
        return self.snapshots.list_snapshots()

    def cleanup_snapshots(self, keep: Optional[int] = None) -> list[str]:
        """Delete snapshots beyond keep, defaulting to the configured count"""
        return self.snapshots.cleanup_snapshots(
            self.settings.keep_snapshots if keep is None else keep
        )
