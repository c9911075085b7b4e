"""Shared fixtures"""
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

import pytest

from sync_state.cmd_runner import CmdResult
from sync_state.config import CompiledConfig, SyncSettings
from sync_state.exceptions import CmdError
from system_image.models import (
    ContainerImage,
    FlatpakImage,
    LayerImage,
    OstreeImage,
    SystemImage,
)

FIXED_TIME = "2024-03-18T15:43:14+00:00"


def sha(char: str) -> str:
    """sha256 digest made of a single repeated hex char"""
    return "sha256:" + char * 64


@dataclass
class FakeService:
    """service of the fake machine"""

    enabled: bool = True
    active: bool = True
    loaded: str = "loaded"


@dataclass
class FakeMachine:
    """
    CommandExecutor simulating a live machine.
    Commands starting with a prefix listed in `failing` raise CmdError.
    """

    hostname: str = "horizon"
    timezone: str = "Europe/Berlin"
    locale: str = "LANG=en_US.UTF-8"
    kernel: str = "6.9.1-arch1-1"
    uptime: str = "up 2 hours, 3 minutes"
    services: dict[str, FakeService] = field(default_factory=dict)
    packages: list[str] = field(default_factory=list)
    failing: list[tuple[str, ...]] = field(default_factory=list)
    calls: list[list[str]] = field(default_factory=list)
    timeouts: list[float] = field(default_factory=list)

    def mutations(self) -> list[list[str]]:
        """Calls that change the machine"""
        return [
            args
            for args in self.calls
            if args[0] == "hostnamectl"
            or args[:2] == ["timedatectl", "set-timezone"]
            or args[:2] in (["systemctl", "start"], ["systemctl", "stop"])
        ]

    def run(self, args: list[str], timeout: float) -> CmdResult:
        self.calls.append(list(args))
        self.timeouts.append(timeout)
        for prefix in self.failing:
            if tuple(args[: len(prefix)]) == prefix:
                raise CmdError(f"Running {args} timed out after {timeout}s")
        return self._dispatch(args)

    def _dispatch(self, args: list[str]) -> CmdResult:
        # pylint: disable=too-many-return-statements
        if args == ["hostname"]:
            return CmdResult(f"{self.hostname}\n", 0)
        if args[:2] == ["timedatectl", "show"]:
            return CmdResult(f"{self.timezone}\n", 0)
        if args == ["localectl", "status"]:
            return CmdResult(
                f"   System Locale: {self.locale}\n       VC Keymap: us\n", 0
            )
        if args == ["uname", "-r"]:
            return CmdResult(f"{self.kernel}\n", 0)
        if args == ["uptime", "-p"]:
            return CmdResult(f"{self.uptime}\n", 0)
        if args[:2] == ["systemctl", "list-units"]:
            return CmdResult(self._list_units(), 0)
        if args[:2] == ["systemctl", "is-enabled"]:
            service = self.services.get(args[2])
            if service is None:
                return CmdResult("", 1)
            return (
                CmdResult("enabled\n", 0)
                if service.enabled
                else CmdResult("disabled\n", 1)
            )
        if args[:2] in (["systemctl", "start"], ["systemctl", "stop"]):
            service = self.services.get(args[2])
            if service is None:
                return CmdResult("", 5)
            service.active = args[1] == "start"
            return CmdResult("", 0)
        if args == ["pacman", "-Qq"]:
            return CmdResult("".join(f"{name}\n" for name in self.packages), 0)
        if args[:2] == ["hostnamectl", "set-hostname"]:
            self.hostname = args[2]
            return CmdResult("", 0)
        if args[:2] == ["timedatectl", "set-timezone"]:
            self.timezone = args[2]
            return CmdResult("", 0)
        return CmdResult("", 127)

    def _list_units(self) -> str:
        lines = []
        for name, service in sorted(self.services.items()):
            active, sub = (
                ("active", "running") if service.active else ("inactive", "dead")
            )
            lines.append(
                f"{name}.service {service.loaded} {active} {sub} {name} daemon"
            )
        return "\n".join(lines) + "\n"


@pytest.fixture
def machine() -> FakeMachine:
    """A machine matching the `config` fixture"""
    return FakeMachine(
        services={
            "nginx": FakeService(enabled=True, active=True),
            "sshd": FakeService(enabled=False, active=False),
        },
        packages=["base", "git", "nginx"],
    )


@pytest.fixture
def config() -> CompiledConfig:
    """Compiled configuration matching the `machine` fixture"""
    return CompiledConfig.model_validate(
        {
            "system": {
                "hostname": "horizon",
                "timezone": "Europe/Berlin",
                "locale": "en_US.UTF-8",
            },
            "packages": [
                {"name": "git", "action": "INSTALL"},
                {"name": "nginx", "action": "INSTALL"},
                {"name": "nano", "action": "REMOVE"},
            ],
            "services": [
                {"name": "nginx", "enabled": True},
                {"name": "sshd", "enabled": False},
            ],
            "users": [{"name": "alice", "shell": "/bin/zsh", "groups": ["wheel"]}],
        }
    )


@pytest.fixture
def settings(tmp_path: Path) -> SyncSettings:
    """Settings using a temporary state directory"""
    return SyncSettings(state_dir=tmp_path / "state", command_timeout=5)


@pytest.fixture
def make_image() -> Callable[..., SystemImage]:
    """Build a valid system image, keyword arguments override its fields"""

    def _make_image(**overrides) -> SystemImage:
        fields = {
            "version": "1.0",
            "timestamp": FIXED_TIME,
            "base": OstreeImage(
                ref="horizonos/stable/x86_64",
                commit="c1",
                digest=sha("0"),
                timestamp=FIXED_TIME,
            ),
            "containers": [
                ContainerImage(
                    name="web",
                    image="docker.io/nginx",
                    digest=sha("a"),
                    build_time=FIXED_TIME,
                )
            ],
            "flatpaks": [
                FlatpakImage(
                    id="org.mozilla.firefox", commit="f1", build_time=FIXED_TIME
                )
            ],
            "layers": [],
        }
        fields.update(overrides)
        return SystemImage(**fields)

    return _make_image


@pytest.fixture
def make_layer() -> Callable[..., LayerImage]:
    """Build a layer image"""

    def _make_layer(
        name: str, dependencies: tuple[str, ...] = (), priority: int = 50
    ) -> LayerImage:
        return LayerImage(
            name=name,
            container_image=ContainerImage(
                name=f"{name}-container",
                image=f"layers/{name}",
                digest=sha("b"),
                build_time=FIXED_TIME,
            ),
            dependencies=list(dependencies),
            priority=priority,
            checksum=sha("c"),
            build_time=FIXED_TIME,
        )

    return _make_layer
