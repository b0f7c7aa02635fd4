"""Storage port interface for working copy operations."""

from pathlib import Path
from typing import Protocol


class StoragePort(Protocol):
    """Port interface for the filesystem side of a signing operation.

    Abstracts filesystem I/O to enable testing and alternative backends.

    Side effects: Reads/writes files (offline).
    """

    def create_working_copy(self, src: Path) -> Path:
        """Copy ``src`` to a fresh, uniquely named temporary file.

        Args:
            src: Package to duplicate

        Returns:
            Path of the temporary copy

        Raises:
            FileSystemError: If the copy cannot be created
        """
        ...

    def delete(self, path: Path) -> None:
        """Delete ``path`` if it exists.

        Raises:
            CleanupError: If the file exists but cannot be removed
        """
        ...
