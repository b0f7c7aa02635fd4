"""Filesystem-backed storage port implementation."""

from __future__ import annotations

import os
import shutil
import tempfile
from pathlib import Path

from kvsign.app.ports import StoragePort
from kvsign.errors import CleanupError, FileSystemError


class FileSystemStorageAdapter(StoragePort):
    """Adapter that performs direct filesystem operations."""

    def __init__(self, temp_dir: Path | None = None) -> None:
        self._temp_dir = Path(temp_dir) if temp_dir is not None else None

    def create_working_copy(self, src: Path) -> Path:
        source = Path(src)
        if not source.is_file():
            raise FileSystemError(f"Package not found: {source}")

        directory = None
        if self._temp_dir is not None:
            self._temp_dir.mkdir(parents=True, exist_ok=True)
            directory = str(self._temp_dir)

        fd, tmp_path = tempfile.mkstemp(prefix="kvsign-", suffix=source.suffix, dir=directory)
        try:
            with os.fdopen(fd, "wb") as handle, source.open("rb") as original:
                shutil.copyfileobj(original, handle)
        except OSError as exc:
            Path(tmp_path).unlink(missing_ok=True)
            raise FileSystemError(f"Failed to stage working copy of {source}: {exc}") from exc

        return Path(tmp_path)

    def delete(self, path: Path) -> None:
        try:
            Path(path).unlink(missing_ok=True)
        except OSError as exc:
            raise CleanupError(f"Failed to delete {path}: {exc}") from exc
