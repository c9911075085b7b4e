"""Validate system image integrity"""
import logging
import re
from collections import Counter
from typing import Iterable, Optional

from system_image.exceptions import ImageValidationError
from system_image.layers import find_cycle_members, find_unknown_dependencies
from system_image.models import ReproducibleConfig, SystemImage, ValidationMode

LOGGER = logging.getLogger(__name__)

SHA256_DIGEST_RE = re.compile(r"sha256:[0-9a-f]{64}")


def is_sha256_digest(digest: str) -> bool:
    """Check whether a digest is a sha256-prefixed lowercase hex digest"""
    return SHA256_DIGEST_RE.fullmatch(digest) is not None


def _duplicates(keys: Iterable[str]) -> list[str]:
    return sorted(key for key, count in Counter(keys).items() if count > 1)


def validate_system_image(image: SystemImage) -> list[str]:
    """
    Check every integrity rule of a system image.
    All rules are evaluated, a violation never hides another one.
    :param image: the image to validate
    :return: human readable violations, empty if the image is valid
    """
    errors: list[str] = []

    if not image.base.ref.strip():
        errors.append("Base image ref cannot be empty")
    if not image.base.commit.strip():
        errors.append("Base image commit cannot be empty")
    if image.base.digest.strip() and not is_sha256_digest(image.base.digest):
        errors.append("Base image has invalid SHA256 digest format")

    for container in image.containers:
        if not container.digest.strip():
            errors.append(f"Container '{container.name}' must have a digest")
        elif not is_sha256_digest(container.digest):
            errors.append(
                f"Container '{container.name}' has invalid SHA256 digest format"
            )

    for flatpak in image.flatpaks:
        if not flatpak.commit.strip():
            errors.append(f"Flatpak '{flatpak.id}' must have a commit")

    for name in _duplicates(container.name for container in image.containers):
        errors.append(f"Container name '{name}' is used more than once")
    for flatpak_id in _duplicates(flatpak.id for flatpak in image.flatpaks):
        errors.append(f"Flatpak id '{flatpak_id}' is used more than once")
    for name in _duplicates(layer.name for layer in image.layers):
        errors.append(f"Layer name '{name}' is used more than once")

    for name, deps in sorted(find_unknown_dependencies(image.layers).items()):
        errors.append(f"Layer '{name}' depends on unknown layers: {', '.join(deps)}")
    blocked = find_cycle_members(image.layers)
    if blocked:
        errors.append(f"Layer dependency cycle detected: {', '.join(blocked)}")

    return errors


def check_policy(image: SystemImage, config: ReproducibleConfig) -> list[str]:
    """
    Check an image against the reproducibility policy
    :param image: the image to check
    :param config: reproducible build settings
    :return: policy violations, empty if the image complies
    """
    errors: list[str] = []
    if config.pinned_base and image.base.commit != config.pinned_base:
        errors.append(
            f"Base commit '{image.base.commit}' does not match pinned base "
            f"'{config.pinned_base}'"
        )
    if config.verify_digests:
        for layer in image.layers:
            if not is_sha256_digest(layer.container_image.digest):
                errors.append(
                    f"Layer '{layer.name}' container has invalid SHA256 digest format"
                )
            if not layer.checksum.strip():
                errors.append(f"Layer '{layer.name}' must have a checksum")
    if config.signature_validation and not config.allow_unsigned:
        if not image.signature:
            errors.append("System image is not signed")
        if not image.base.signature:
            errors.append(f"Base image '{image.base.ref}' is not signed")
        errors += [
            f"Container '{container.name}' is not signed"
            for container in image.containers
            if not container.signature
        ]
        errors += [
            f"Flatpak '{flatpak.id}' is not signed"
            for flatpak in image.flatpaks
            if not flatpak.signature
        ]
    return errors


def check_image(
    image: SystemImage,
    mode: ValidationMode,
    config: Optional[ReproducibleConfig] = None,
) -> list[str]:
    """
    Validate an image and handle violations according to the validation mode
    :param image: the image to validate
    :param mode: STRICT raises, WARN logs, DISABLED skips validation
    :param config: optional reproducibility policy to enforce as well
    :return: violations found (always empty for DISABLED)
    :raises ImageValidationError: in STRICT mode when violations exist
    """
    if mode == ValidationMode.DISABLED:
        return []
    errors = validate_system_image(image)
    if config is not None:
        errors += check_policy(image, config)
    if errors and mode == ValidationMode.STRICT:
        raise ImageValidationError(errors)
    for error in errors:
        LOGGER.warning("System image validation: %s", error)
    return errors
