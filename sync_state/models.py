"""Live system state models"""
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Union

from pydantic import BaseModel, ConfigDict

from sync_state.config import CompiledConfig


class SystemState(BaseModel):
    """system identity captured from the live machine"""

    model_config = ConfigDict(frozen=True)

    hostname: str = ""
    timezone: str = ""
    locale: str = ""
    kernel: str = ""
    uptime: str = ""


class ServiceState(BaseModel):
    """systemd unit status as listed by systemctl"""

    model_config = ConfigDict(frozen=True)

    name: str
    loaded: str
    active: str
    running: str

    @property
    def is_active(self) -> bool:
        """Whether the unit was active"""
        return self.active == "active"


@dataclass(frozen=True)
class StateSnapshot:
    """
    A captured snapshot directory.
    Files of failed capture steps do not exist, check with missing_files.
    """

    id: str
    timestamp: datetime
    config_path: Path
    state_path: Path
    services_path: Path
    packages_path: Path
    warnings: tuple[str, ...] = ()

    @property
    def directory(self) -> Path:
        """Directory holding the snapshot files"""
        return self.state_path.parent

    def missing_files(self) -> list[Path]:
        """Snapshot files that were not captured"""
        return [
            path
            for path in (
                self.config_path,
                self.state_path,
                self.services_path,
                self.packages_path,
            )
            if not path.exists()
        ]


@dataclass(frozen=True)
class SnapshotInfo:
    """Summary of a snapshot found on disk"""

    id: str
    timestamp: datetime
    size: int
    has_config: bool


@dataclass(frozen=True)
class RestoreResult:
    """Outcome of a restore: the restored configuration and step warnings"""

    config: CompiledConfig
    warnings: tuple[str, ...] = ()


@dataclass(frozen=True)
class SyncIssue:
    """A single drift between declared and live state"""

    component: str
    field: str
    expected: str
    actual: str

    def __str__(self) -> str:
        return (
            f"{self.component} {self.field}: "
            f"expected {self.expected}, actual {self.actual}"
        )


@dataclass(frozen=True)
class InSync:
    """The live system matches the configuration"""


@dataclass(frozen=True)
class OutOfSync:
    """The live system drifted from the configuration"""

    issues: list[SyncIssue] = field(default_factory=list)


SyncStatus = Union[InSync, OutOfSync]
