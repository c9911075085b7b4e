"""Capture, list and clean up live system snapshots"""
import json
import logging
import shutil
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Optional

from sync_state.config import CompiledConfig
from sync_state.exceptions import CmdError, StateSyncError
from sync_state.inspector import SystemInspector
from sync_state.models import SnapshotInfo, StateSnapshot
from sync_state.state_store import StateStore
from system_image.fileio import write_atomic

LOGGER = logging.getLogger(__name__)

SNAPSHOT_PREFIX = "snapshot-"
SNAPSHOT_TIME_FORMAT = "%Y-%m-%dT%H-%M-%S.%fZ"

CONFIG_FILE = "config.json"
STATE_FILE = "system-state.json"
SERVICES_FILE = "services.json"
PACKAGES_FILE = "packages.txt"


def utc_now() -> datetime:
    """Current time in UTC"""
    return datetime.now(timezone.utc)


def format_snapshot_id(timestamp: datetime) -> str:
    """
    Build a sortable, filesystem safe snapshot id from a timestamp
    :param timestamp: snapshot time, converted to UTC
    :return: e.g. snapshot-2024-03-18T15-43-14.282530Z
    """
    return SNAPSHOT_PREFIX + timestamp.astimezone(timezone.utc).strftime(
        SNAPSHOT_TIME_FORMAT
    )


def parse_snapshot_id(snapshot_id: str) -> datetime:
    """
    Parse the timestamp of a snapshot id
    :param snapshot_id: id produced by format_snapshot_id
    :return: aware UTC timestamp
    :raises ValueError: when the id is not a snapshot id
    """
    if not snapshot_id.startswith(SNAPSHOT_PREFIX):
        raise ValueError(f"Not a snapshot id: {snapshot_id}")
    return datetime.strptime(
        snapshot_id.removeprefix(SNAPSHOT_PREFIX), SNAPSHOT_TIME_FORMAT
    ).replace(tzinfo=timezone.utc)


def snapshot_from_directory(
    directory: Path, warnings: tuple[str, ...] = ()
) -> StateSnapshot:
    """Describe the snapshot stored in a directory"""
    return StateSnapshot(
        id=directory.name,
        timestamp=parse_snapshot_id(directory.name),
        config_path=directory / CONFIG_FILE,
        state_path=directory / STATE_FILE,
        services_path=directory / SERVICES_FILE,
        packages_path=directory / PACKAGES_FILE,
        warnings=warnings,
    )


def directory_size(directory: Path) -> int:
    """Total size in bytes of the files below a directory"""
    return sum(path.stat().st_size for path in directory.rglob("*") if path.is_file())


@dataclass(frozen=True)
class CaptureStep:
    """
    One independent capture step of a snapshot:
    run `capture` and store its text in `file_name`
    """

    description: str
    file_name: str
    capture: Callable[[], str]


@dataclass(frozen=True)
class CaptureOutcome:
    """Result of a capture step, content is None when the step failed"""

    step: CaptureStep
    content: Optional[str] = None
    error: str = ""


def run_capture_step(step: CaptureStep) -> CaptureOutcome:
    """
    Run a capture step, turning command failures into a failed outcome
    :param step: the step to run
    :return: the captured content or the error
    """
    try:
        return CaptureOutcome(step=step, content=step.capture())
    except CmdError as err:
        return CaptureOutcome(step=step, error=str(err))


class SnapshotManager:
    """
    Capture the live system into timestamped snapshot directories under the
    state directory
    """

    def __init__(
        self,
        store: StateStore,
        inspector: SystemInspector,
        clock: Callable[[], datetime] = utc_now,
        max_workers: int = 3,
    ) -> None:
        self.store = store
        self.inspector = inspector
        self.clock = clock
        self.max_workers = max_workers

    @property
    def state_dir(self) -> Path:
        """Directory holding the snapshots"""
        return self.store.state_dir

    def capture_steps(self) -> list[CaptureStep]:
        """The live system capture steps, independent of each other"""
        return [
            CaptureStep(
                description="system state",
                file_name=STATE_FILE,
                capture=lambda: self.inspector.system_state().model_dump_json(
                    indent=2
                ),
            ),
            CaptureStep(
                description="service states",
                file_name=SERVICES_FILE,
                capture=lambda: json.dumps(
                    {
                        name: state.model_dump()
                        for name, state in self.inspector.service_states().items()
                    },
                    indent=2,
                ),
            ),
            CaptureStep(
                description="installed packages",
                file_name=PACKAGES_FILE,
                capture=lambda: "\n".join(self.inspector.installed_packages()),
            ),
        ]

    def _allocate_directory(self) -> Path:
        timestamp = self.clock()
        while True:
            directory = self.state_dir / format_snapshot_id(timestamp)
            try:
                directory.mkdir(parents=True)
            except FileExistsError:
                timestamp += timedelta(microseconds=1)
                continue
            return directory

    def create_snapshot(self, config: Optional[CompiledConfig] = None) -> StateSnapshot:
        """
        Capture the live system into a new snapshot directory.
        Failed capture steps are reported as warnings and leave their file out.
        :param config: configuration to store, defaults to the last synced one
        :return: the snapshot, check missing_files for partial captures
        :raises OSError: when the snapshot cannot be written
        """
        directory = self._allocate_directory()
        warnings: list[str] = []

        config = config or self.store.last_config
        if config is not None:
            write_atomic(directory / CONFIG_FILE, config.to_json())
        else:
            warnings.append("No synced configuration to store")

        # Steps only read the live system, results are written once all are done
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            outcomes = list(executor.map(run_capture_step, self.capture_steps()))

        for outcome in outcomes:
            if outcome.content is None:
                warnings.append(
                    f"Failed capturing {outcome.step.description}: {outcome.error}"
                )
                continue
            write_atomic(directory / outcome.step.file_name, outcome.content)

        for warning in warnings:
            LOGGER.warning("Snapshot %s: %s", directory.name, warning)
        LOGGER.info("Created snapshot %s", directory.name)
        return snapshot_from_directory(directory, tuple(warnings))

    def get_snapshot(self, snapshot_id: str) -> StateSnapshot:
        """
        Look up a snapshot by id
        :param snapshot_id: id of an existing snapshot
        :return: the snapshot
        :raises StateSyncError: when there is no such snapshot
        """
        directory = self.state_dir / snapshot_id
        if not directory.is_dir():
            raise StateSyncError(f"Snapshot not found: {snapshot_id}", snapshot_id)
        try:
            return snapshot_from_directory(directory)
        except ValueError as ex:
            raise StateSyncError(
                f"Invalid snapshot id: {snapshot_id}", snapshot_id, ex
            ) from ex

    def list_snapshots(self) -> list[SnapshotInfo]:
        """
        List snapshots, newest first. Directories whose name does not parse
        are skipped.
        """
        snapshots: list[SnapshotInfo] = []
        for directory in self.state_dir.glob(f"{SNAPSHOT_PREFIX}*"):
            if not directory.is_dir():
                continue
            try:
                timestamp = parse_snapshot_id(directory.name)
            except ValueError:
                LOGGER.debug("Skipping malformed snapshot directory %s", directory)
                continue
            snapshots.append(
                SnapshotInfo(
                    id=directory.name,
                    timestamp=timestamp,
                    size=directory_size(directory),
                    has_config=(directory / CONFIG_FILE).exists(),
                )
            )
        return sorted(snapshots, key=lambda info: info.timestamp, reverse=True)

    def cleanup_snapshots(self, keep: int = 10) -> list[str]:
        """
        Delete the oldest snapshots beyond keep. A failed deletion does not
        stop the others.
        :param keep: number of newest snapshots to keep
        :return: ids of the deleted snapshots
        """
        if keep < 0:
            raise ValueError(f"keep must not be negative, got {keep}")
        deleted: list[str] = []
        for info in self.list_snapshots()[keep:]:
            try:
                shutil.rmtree(self.state_dir / info.id)
            except OSError as e:
                LOGGER.warning("Failed deleting snapshot %s: %s", info.id, e)
                continue
            deleted.append(info.id)
            LOGGER.info("Deleted snapshot %s", info.id)
        return deleted
