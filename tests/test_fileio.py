"""Test fileio.py"""
import ast
import os
from pathlib import Path
from unittest.mock import MagicMock, create_autospec

import pytest
from pytest import MonkeyPatch

from system_image import fileio
from system_image.fileio import write_atomic

SYSTEM_IMAGE_DIR = Path(fileio.__file__).parent


def test_write_atomic(tmp_path: Path) -> None:
    """Content replaces the old file and no temporary file is left"""
    path = tmp_path / "state.json"
    path.write_text("old")
    write_atomic(path, "new")
    assert path.read_text() == "new"
    assert [item.name for item in tmp_path.iterdir()] == ["state.json"]


def test_write_atomic_failure(tmp_path: Path, monkeypatch: MonkeyPatch) -> None:
    """A failed write keeps the old content and removes the temporary file"""
    path = tmp_path / "state.json"
    path.write_text("old")
    mock_fsync: MagicMock = create_autospec(os.fsync, side_effect=OSError("full"))
    monkeypatch.setattr(fileio.os, "fsync", mock_fsync)
    with pytest.raises(OSError, match="full"):
        write_atomic(path, "new")
    assert path.read_text() == "old"
    assert [item.name for item in tmp_path.iterdir()] == ["state.json"]


@pytest.mark.parametrize(
    "module", sorted(SYSTEM_IMAGE_DIR.glob("*.py")), ids=lambda path: path.name
)
def test_system_image_standalone(module: Path) -> None:
    """system_image never imports sync_state"""
    imported: list[str] = []
    for node in ast.walk(ast.parse(module.read_text())):
        if isinstance(node, ast.Import):
            imported += [alias.name for alias in node.names]
        elif isinstance(node, ast.ImportFrom) and node.module:
            imported.append(node.module)
    assert not [name for name in imported if name.split(".")[0] == "sync_state"]
