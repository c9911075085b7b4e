"""Atomic file writes"""
import os
import tempfile
from pathlib import Path


def write_atomic(path: Path, content: str) -> None:
    """
    Write a text file so that readers see either the old or the new content
    :param path: destination file, its directory must exist
    :param content: text to write
    """
    with tempfile.NamedTemporaryFile(
        "w", encoding="utf-8", dir=path.parent, prefix=f".{path.name}.", delete=False
    ) as tmp:
        try:
            tmp.write(content)
            tmp.flush()
            os.fsync(tmp.fileno())
        except BaseException:
            os.unlink(tmp.name)
            raise
    os.replace(tmp.name, path)
