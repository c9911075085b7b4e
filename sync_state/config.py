"""Compiled configuration and tool settings"""
import json
from enum import Enum
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from sync_state.exceptions import ConfigLoadError
from system_image.models import DEFAULT_LOCKFILE, ReproducibleConfig, ValidationMode


class ConfigModel(BaseModel):
    """Base for configuration records, camelCase on the wire"""

    model_config = ConfigDict(
        frozen=True, alias_generator=to_camel, populate_by_name=True
    )


class PackageAction(str, Enum):
    """What to do with a package"""

    INSTALL = "INSTALL"
    REMOVE = "REMOVE"


class SystemConfig(ConfigModel):
    """system identity"""

    hostname: str
    timezone: str
    locale: str


class Package(ConfigModel):
    """package to install or remove"""

    name: str
    action: PackageAction = PackageAction.INSTALL
    group: Optional[str] = None


class Service(ConfigModel):
    """service and its desired enabled state"""

    name: str
    enabled: bool = True


class User(ConfigModel):
    """user account"""

    name: str
    uid: Optional[int] = None
    shell: str = "/bin/bash"
    groups: list[str] = Field(default_factory=list)
    home_dir: str = ""


class Repository(ConfigModel):
    """package repository"""

    name: str
    url: str
    enabled: bool = True
    gpg_check: bool = True
    priority: int = 50


class CompiledConfig(ConfigModel):
    """
    Declarative model produced by the configuration compiler.
    Only read here, never built.
    """

    system: SystemConfig
    packages: list[Package] = Field(default_factory=list)
    services: list[Service] = Field(default_factory=list)
    users: list[User] = Field(default_factory=list)
    repositories: list[Repository] = Field(default_factory=list)
    reproducible: Optional[ReproducibleConfig] = None

    @property
    def installed_packages(self) -> list[str]:
        """Names of the packages to install"""
        return [
            package.name
            for package in self.packages
            if package.action == PackageAction.INSTALL
        ]

    def to_json(self) -> str:
        """Serialize using the wire (camelCase) field names"""
        return self.model_dump_json(by_alias=True, indent=2)


class SyncSettings(ConfigModel):
    """Settings of the state sync tools"""

    state_dir: Path = Path("/var/lib/horizonos/state")
    command_timeout: float = Field(default=30.0, gt=0)
    keep_snapshots: int = Field(default=10, ge=0)
    validation_mode: ValidationMode = ValidationMode.WARN
    lockfile: Path = Path(DEFAULT_LOCKFILE)


def _read_mapping(path: Path) -> Any:
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as ex:
        raise ConfigLoadError(f"Could not find {path.resolve()}") from ex
    try:
        if path.suffix == ".json":
            return json.loads(text)
        return yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as ex:
        raise ConfigLoadError(f"Could not parse {path}: {ex}") from ex


def load_compiled_config(path: Path) -> CompiledConfig:
    """
    Load a compiled configuration from a JSON or YAML file
    :param path: path to the configuration file
    :return: the compiled configuration
    :raises ConfigLoadError: when the file is missing or invalid
    """
    data = _read_mapping(path)
    try:
        return CompiledConfig.model_validate(data)
    except ValidationError as ex:
        raise ConfigLoadError(f"Invalid compiled configuration {path}:\n{ex}") from ex


def _wire_name(key: str) -> str:
    return to_camel(key) if "_" in key else key


def load_settings(path: Optional[Path] = None, **overrides: Any) -> SyncSettings:
    """
    Load settings from an optional YAML file, then apply overrides
    :param path: settings file, defaults are used when None
    :param overrides: field values taking precedence over the file, None is ignored
    :return: the settings
    :raises ConfigLoadError: when the file is missing or invalid
    """
    data: dict[str, Any] = {}
    if path is not None:
        loaded = _read_mapping(path)
        if loaded is not None and not isinstance(loaded, dict):
            raise ConfigLoadError(f"Settings file {path} must contain a mapping")
        data = {_wire_name(key): value for key, value in (loaded or {}).items()}
    data.update(
        {
            _wire_name(key): value
            for key, value in overrides.items()
            if value is not None
        }
    )
    try:
        return SyncSettings.model_validate(data)
    except ValidationError as ex:
        raise ConfigLoadError(f"Invalid settings:\n{ex}") from ex
