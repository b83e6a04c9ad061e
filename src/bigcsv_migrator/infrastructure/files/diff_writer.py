"""Per-split verification diff file."""

from __future__ import annotations

from pathlib import Path
from typing import TextIO

from bigcsv_migrator.domain.errors import DiffLimitExceededError


class DiffWriter:
    """Write free-text diff lines to a lazily created file.

    Reaching `max_diffs` raises DiffLimitExceededError so the caller aborts the
    comparison early.
    """

    def __init__(self, path: str | Path, max_diffs: int) -> None:
        self._path = Path(path)
        self._max_diffs = max(1, max_diffs)
        self._handle: TextIO | None = None
        self._count = 0

    @property
    def path(self) -> Path:
        return self._path

    @property
    def count(self) -> int:
        return self._count

    def write(self, line: str) -> None:
        """Record one difference."""

        if self._handle is None:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._handle = self._path.open("w", encoding="utf-8")
        self._handle.write(f"{line}\n")
        self._count += 1
        if self._count >= self._max_diffs:
            raise DiffLimitExceededError(
                f"Diff limit of {self._max_diffs} reached, comparison aborted."
            )

    def close(self) -> None:
        if self._handle is not None:
            self._handle.close()
            self._handle = None

    def __enter__(self) -> DiffWriter:
        return self

    def __exit__(self, *_exc_info: object) -> None:
        self.close()


__all__ = ["DiffWriter"]
