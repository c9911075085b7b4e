"""
Content digest of a system image.

The digest covers every field that takes part in deployment and nothing else.
Build timestamps and signatures are excluded.
Collections are canonicalized before hashing: containers sorted by name,
Flatpaks by id, layers by name, and JSON objects by key, so re-ordering or
re-serializing an image never changes its digest.
"""
import hashlib
import json
from typing import Any

from system_image.models import (
    SHA256_PREFIX,
    ContainerImage,
    FlatpakImage,
    LayerImage,
    PackageInfo,
    SystemImage,
)


def _package(package: PackageInfo) -> dict[str, Any]:
    return {
        "name": package.name,
        "version": package.version,
        "architecture": package.architecture,
        "checksum": package.checksum,
    }


def _container(container: ContainerImage) -> dict[str, Any]:
    return {
        "name": container.name,
        "image": container.image,
        "tag": container.tag,
        "digest": container.digest,
        "runtime": container.runtime.value,
        "layers": list(container.layers),
        "packages": sorted(
            (_package(package) for package in container.packages),
            key=lambda package: (package["name"], package["architecture"]),
        ),
    }


def _flatpak(flatpak: FlatpakImage) -> dict[str, Any]:
    return {
        "id": flatpak.id,
        "branch": flatpak.branch,
        "commit": flatpak.commit,
        "runtime": flatpak.runtime,
        "runtimeVersion": flatpak.runtime_version,
    }


def _layer(layer: LayerImage) -> dict[str, Any]:
    return {
        "name": layer.name,
        "checksum": layer.checksum,
        "priority": layer.priority,
        "dependencies": sorted(layer.dependencies),
        "container": _container(layer.container_image),
    }


def canonical_form(image: SystemImage) -> dict[str, Any]:
    """
    Build the canonical, order independent representation hashed by checksum
    :param image: the image to canonicalize
    :return: JSON compatible dictionary
    """
    return {
        "version": image.version,
        "base": {
            "ref": image.base.ref,
            "commit": image.base.commit,
            "digest": image.base.digest,
        },
        "containers": [
            _container(c) for c in sorted(image.containers, key=lambda c: c.name)
        ],
        "flatpaks": [_flatpak(f) for f in sorted(image.flatpaks, key=lambda f: f.id)],
        "layers": [
            _layer(layer) for layer in sorted(image.layers, key=lambda item: item.name)
        ],
        "metadata": dict(image.metadata),
    }


def checksum(image: SystemImage) -> str:
    """
    Compute the content-addressing key of a system image
    :param image: the image to hash
    :return: sha256-prefixed hex digest, identical for identical content
    """
    payload = json.dumps(
        canonical_form(image), sort_keys=True, separators=(",", ":")
    ).encode("utf-8")
    return SHA256_PREFIX + hashlib.sha256(payload).hexdigest()
