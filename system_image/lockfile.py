"""Read and write system image lockfiles"""
import json
from pathlib import Path

from pydantic import ValidationError

from system_image.digest import checksum
from system_image.exceptions import LockfileIntegrityError
from system_image.fileio import write_atomic
from system_image.models import SystemImage


def load_image(path: Path) -> SystemImage:
    """
    Load a bare system image JSON file
    :param path: path to the image file
    :return: the parsed image
    :raises ValidationError: when the content is not a valid image
    """
    return SystemImage.model_validate_json(path.read_text(encoding="utf-8"))


def write_lockfile(image: SystemImage, path: Path) -> str:
    """
    Atomically write a lockfile recording the image and its checksum
    :param image: the image to lock
    :param path: lockfile location
    :return: the recorded checksum
    """
    digest = checksum(image)
    content = json.dumps(
        {
            "checksum": digest,
            "image": image.model_dump(mode="json", by_alias=True),
        },
        indent=2,
    )
    path.parent.mkdir(parents=True, exist_ok=True)
    write_atomic(path, content)
    return digest


def read_lockfile(path: Path) -> SystemImage:
    """
    Read a lockfile and verify its recorded checksum
    :param path: lockfile location
    :return: the locked image
    :raises LockfileIntegrityError: when the lockfile is malformed or tampered with
    """
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        recorded = data["checksum"]
        image = SystemImage.model_validate(data["image"])
    except (json.JSONDecodeError, KeyError, TypeError, ValidationError) as ex:
        raise LockfileIntegrityError(f"Malformed lockfile {path}: {ex}") from ex

    actual = checksum(image)
    if actual != recorded:
        raise LockfileIntegrityError(
            f"Lockfile {path} checksum mismatch: recorded {recorded}, actual {actual}"
        )
    return image
