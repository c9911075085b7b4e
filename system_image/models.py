"""System image model"""
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

SHA256_PREFIX = "sha256:"
DEFAULT_LOCKFILE = "/etc/horizonos/system.lock"


def utc_now() -> str:
    """Current UTC time as an ISO-8601 string"""
    return datetime.now(timezone.utc).isoformat()


class ImageModel(BaseModel):
    """
    Base for all image records: immutable, camelCase on the wire and
    snake_case in Python
    """

    model_config = ConfigDict(
        frozen=True, alias_generator=to_camel, populate_by_name=True
    )

    def to_json(self) -> str:
        """Serialize using the wire (camelCase) field names"""
        return self.model_dump_json(by_alias=True, indent=2)


class ContainerRuntime(str, Enum):
    """Runtime used to run a container"""

    PODMAN = "PODMAN"
    DOCKER = "DOCKER"
    TOOLBOX = "TOOLBOX"
    DISTROBOX = "DISTROBOX"


class ContainerPurpose(str, Enum):
    """Functional category of a container"""

    DEVELOPMENT = "DEVELOPMENT"
    GAMING = "GAMING"
    MULTIMEDIA = "MULTIMEDIA"
    OFFICE = "OFFICE"
    SECURITY = "SECURITY"
    CUSTOM = "CUSTOM"


class LayerPurpose(str, Enum):
    """Functional category of a layer"""

    DEVELOPMENT = "DEVELOPMENT"
    GAMING = "GAMING"
    MULTIMEDIA = "MULTIMEDIA"
    OFFICE = "OFFICE"
    SECURITY = "SECURITY"
    NETWORKING = "NETWORKING"
    CUSTOM = "CUSTOM"


class ImageSource(str, Enum):
    """Where an image is fetched from"""

    OSTREE = "OSTREE"
    CONTAINER_REGISTRY = "CONTAINER_REGISTRY"
    FLATPAK_REPO = "FLATPAK_REPO"
    LOCAL_BUILD = "LOCAL_BUILD"


class ValidationMode(str, Enum):
    """How validation violations are handled by the caller"""

    STRICT = "STRICT"
    WARN = "WARN"
    DISABLED = "DISABLED"


class PackageInfo(ImageModel):
    """package provenance record"""

    name: str
    version: str
    architecture: str = "x86_64"
    size: int = 0
    checksum: str = ""
    dependencies: list[str] = Field(default_factory=list)
    origin: str = "unknown"


class OstreeImage(ImageModel):
    """
    Immutable base system reference.
    Identity is the (ref, commit) pair, the digest is the content-addressing key.
    """

    ref: str
    commit: str
    version: str = "1.0"
    digest: str = ""
    url: Optional[str] = None
    signature: Optional[str] = None
    size: int = 0
    timestamp: str = Field(default_factory=utc_now)

    @property
    def identity(self) -> tuple[str, str]:
        """(ref, commit) pair identifying the base image"""
        return self.ref, self.commit


class ContainerImage(ImageModel):
    """container image pinned by digest"""

    name: str
    image: str
    tag: str = "latest"
    digest: str
    runtime: ContainerRuntime = ContainerRuntime.DISTROBOX
    purpose: ContainerPurpose = ContainerPurpose.CUSTOM
    packages: list[PackageInfo] = Field(default_factory=list)
    size: int = 0
    layers: list[str] = Field(default_factory=list)
    signature: Optional[str] = None
    build_time: str = Field(default_factory=utc_now)


class FlatpakImage(ImageModel):
    """Flatpak application pinned by commit"""

    id: str
    version: str = ""
    branch: str = "stable"
    commit: str
    runtime: str = ""
    runtime_version: str = ""
    download_size: int = 0
    installed_size: int = 0
    signature: Optional[str] = None
    build_time: str = Field(default_factory=utc_now)


class LayerImage(ImageModel):
    """
    Overlay composed on top of the base image.
    Lower priority deploys first when dependencies allow it.
    """

    name: str
    purpose: LayerPurpose = LayerPurpose.CUSTOM
    container_image: ContainerImage
    dependencies: list[str] = Field(default_factory=list)
    priority: int = 50
    checksum: str = ""
    build_time: str = Field(default_factory=utc_now)


class SystemImage(ImageModel):
    """
    The unit of desired state: one base commit plus containers, Flatpaks and
    layers. Never mutated, a change produces a new value.
    """

    version: str = "1.0"
    timestamp: str = Field(default_factory=utc_now)
    base: OstreeImage
    containers: list[ContainerImage] = Field(default_factory=list)
    flatpaks: list[FlatpakImage] = Field(default_factory=list)
    layers: list[LayerImage] = Field(default_factory=list)
    signature: Optional[str] = None
    metadata: dict[str, str] = Field(default_factory=dict)


class ReproducibleConfig(ImageModel):
    """Reproducible build settings pinning the system to an image"""

    enabled: bool = True
    strict_mode: bool = False
    verify_digests: bool = True
    lockfile: Optional[str] = None
    pinned_base: Optional[str] = None
    system_image: Optional[SystemImage] = None
    validation_mode: Optional[ValidationMode] = None
    signature_validation: bool = True
    allow_unsigned: bool = False

    def effective_mode(
        self, default: ValidationMode = ValidationMode.WARN
    ) -> ValidationMode:
        """
        Validation mode once enabled and strict_mode are taken into account
        :param default: mode used when validation_mode is not set
        """
        if not self.enabled:
            return ValidationMode.DISABLED
        if self.strict_mode:
            return ValidationMode.STRICT
        return self.validation_mode or default
