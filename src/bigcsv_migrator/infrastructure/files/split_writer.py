"""Row-count bounded UTF-8 split file writer."""

from __future__ import annotations

import csv
from collections.abc import Sequence
from pathlib import Path
from typing import Any, TextIO

from bigcsv_migrator.domain.entities import NewSplit


class SplitFileWriter:
    """Write good rows plus a trailing source row number to one split file."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._handle: TextIO = self._path.open("w", encoding="utf-8", newline="")
        self._writer: Any = csv.writer(self._handle, quoting=csv.QUOTE_ALL, lineterminator="\n")
        self._start_row_no: int | None = None
        self._row_count = 0

    @property
    def row_count(self) -> int:
        return self._row_count

    def write(self, row_no: int, cells: Sequence[str]) -> None:
        if self._start_row_no is None:
            self._start_row_no = row_no
        self._writer.writerow([*cells, str(row_no)])
        self._row_count += 1

    def close(self) -> NewSplit | None:
        """Close the file and describe it, or delete it when no row was written."""

        self._handle.close()
        if self._start_row_no is None:
            self._path.unlink(missing_ok=True)
            return None
        return NewSplit(
            split_file_path=str(self._path),
            start_row_no=self._start_row_no,
            row_count=self._row_count,
        )

    def discard(self) -> None:
        """Close and delete the file."""

        self._handle.close()
        self._path.unlink(missing_ok=True)


__all__ = ["SplitFileWriter"]
