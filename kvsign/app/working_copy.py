"""Scoped lifecycle for the temporary copy a package is signed from."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from kvsign.app.ports import StoragePort

logger = logging.getLogger(__name__)


class WorkingCopy:
    """Track a staged copy of a package so it can be removed exactly once."""

    def __init__(self, storage: StoragePort, source: Path) -> None:
        self._storage = storage
        self.source = Path(source)
        self.path: Path | None = None
        self._released = False

    def stage(self) -> Path:
        """Copy the source package to a fresh temporary path."""
        if self.path is not None:
            return self.path
        self.path = self._storage.create_working_copy(self.source)
        return self.path

    def release(self) -> None:
        """Delete the staged copy; failures are dropped and never escalate."""
        if self._released:
            return
        self._released = True
        if self.path is None:
            return
        try:
            self._storage.delete(self.path)
        except Exception as exc:  # noqa: BLE001 - cleanup never changes the outcome
            logger.debug("Ignoring working copy cleanup failure for %s: %s", self.path, exc)

    @property
    def released(self) -> bool:
        return self._released


@contextmanager
def working_copy(storage: StoragePort, source: Path) -> Iterator[WorkingCopy]:
    """Yield a :class:`WorkingCopy` whose staged file is deleted on every exit path.

    Staging is left to the caller so that a staging failure still passes
    through the cleanup guard.
    """
    copy = WorkingCopy(storage, source)
    try:
        yield copy
    finally:
        copy.release()
