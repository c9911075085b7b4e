"""Compare two system images"""
from enum import Enum
from typing import Callable, Iterable, Optional, TypeVar

from system_image.models import ImageModel, SystemImage

T = TypeVar("T")


class ChangeType(str, Enum):
    """Kind of change between two images"""

    ADDED = "ADDED"
    REMOVED = "REMOVED"
    UPDATED = "UPDATED"


class Change(ImageModel):
    """Keyed change: digests for containers, commits for Flatpaks"""

    key: str
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    type: ChangeType


class SystemImageDiff(ImageModel):
    """Structured delta between two system images"""

    base_changed: bool
    container_changes: list[Change]
    flatpak_changes: list[Change]

    def has_changes(self) -> bool:
        """Whether applying the new image would change anything"""
        return (
            self.base_changed
            or bool(self.container_changes)
            or bool(self.flatpak_changes)
        )


def diff_keyed(old: dict[str, str], new: dict[str, str]) -> list[Change]:
    """
    Compute changes between two key to value mappings.
    Unchanged keys are not reported. Changes are sorted by type then key.
    :param old: mapping from the old image
    :param new: mapping from the new image
    :return: list of changes
    """
    added = [
        Change(key=key, new_value=new[key], type=ChangeType.ADDED)
        for key in sorted(new.keys() - old.keys())
    ]
    removed = [
        Change(key=key, old_value=old[key], type=ChangeType.REMOVED)
        for key in sorted(old.keys() - new.keys())
    ]
    updated = [
        Change(
            key=key, old_value=old[key], new_value=new[key], type=ChangeType.UPDATED
        )
        for key in sorted(old.keys() & new.keys())
        if old[key] != new[key]
    ]
    return added + removed + updated


def _key_map(
    items: Iterable[T], key: Callable[[T], str], value: Callable[[T], str]
) -> dict[str, str]:
    return {key(item): value(item) for item in items}


def compare_system_images(old: SystemImage, new: SystemImage) -> SystemImageDiff:
    """
    Compare two system images
    :param old: currently deployed image
    :param new: desired image
    :return: the delta from old to new
    """
    return SystemImageDiff(
        base_changed=old.base.commit != new.base.commit,
        container_changes=diff_keyed(
            _key_map(old.containers, lambda c: c.name, lambda c: c.digest),
            _key_map(new.containers, lambda c: c.name, lambda c: c.digest),
        ),
        flatpak_changes=diff_keyed(
            _key_map(old.flatpaks, lambda f: f.id, lambda f: f.commit),
            _key_map(new.flatpaks, lambda f: f.id, lambda f: f.commit),
        ),
    )


def _describe(kind: str, change: Change) -> str:
    if change.type == ChangeType.ADDED:
        return f"+ {kind} {change.key}: {change.new_value}"
    if change.type == ChangeType.REMOVED:
        return f"- {kind} {change.key}: {change.old_value}"
    return f"~ {kind} {change.key}: {change.old_value} -> {change.new_value}"


def render_report(
    diff: SystemImageDiff,
    old: Optional[SystemImage] = None,
    new: Optional[SystemImage] = None,
) -> list[str]:
    """
    Render a human readable change report
    :param diff: the diff to render
    :param old: old image, used to show base commits when the base changed
    :param new: new image, used to show base commits when the base changed
    :return: report lines
    """
    if not diff.has_changes():
        return ["No changes"]
    lines: list[str] = []
    if diff.base_changed:
        if old is not None and new is not None:
            lines.append(f"~ base: {old.base.commit} -> {new.base.commit}")
        else:
            lines.append("~ base commit changed")
    lines += [_describe("container", change) for change in diff.container_changes]
    lines += [_describe("flatpak", change) for change in diff.flatpak_changes]
    return lines
