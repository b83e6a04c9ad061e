"""Blocking single-pass transcoding of one legacy source file.

The session is driven in bounded row steps from a worker thread. Each step
reports the split files closed during it so the async caller can record them.
"""

from __future__ import annotations

import io
import logging
import os
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO

from bigcsv_migrator.domain.data_quality import ColumnErrorDetail, ColumnErrorReason, RowErrorType
from bigcsv_migrator.domain.entities import NewSplit
from bigcsv_migrator.domain.errors import TranscodeFatalError
from bigcsv_migrator.infrastructure.codec import (
    ESCAPE_CHAR,
    REPLACEMENT_CHAR,
    LegacyCharset,
    escape_for_check,
    unescape,
)
from bigcsv_migrator.infrastructure.files import (
    SourceFormat,
    SplitFileWriter,
    TranscodeErrorWriter,
    data_records,
)
from bigcsv_migrator.infrastructure.files.error_writer import b64

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RowVerdict:
    """Classification of one parsed source row."""

    cells: list[str]
    error_type: RowErrorType | None = None
    details: list[ColumnErrorDetail] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error_type is None


class RowClassifier:
    """Apply tunneling, column count and per-cell stability validation."""

    def __init__(self, charset: LegacyCharset, column_count: int, tunneling_enabled: bool) -> None:
        self._charset = charset
        self._column_count = column_count
        self._tunneling_enabled = tunneling_enabled

    def classify(self, raw_cells: list[str]) -> RowVerdict:
        if self._tunneling_enabled:
            cells = [unescape(cell).text for cell in raw_cells]
        else:
            cells = list(raw_cells)

        if len(cells) != self._column_count:
            return RowVerdict(cells=cells, error_type=RowErrorType.COLUMN_COUNT_MISMATCH)

        details: list[ColumnErrorDetail] = []
        for index, (raw, cell) in enumerate(zip(raw_cells, cells)):
            reason = self._cell_error(raw, cell)
            if reason is None:
                continue
            details.append(
                ColumnErrorDetail(
                    column_index=index,
                    error_reason=reason,
                    legacy_base64=b64(self._charset.encode_approx(raw)),
                    utf8_base64=b64(cell.encode("utf-8")),
                )
            )
        if details:
            return RowVerdict(
                cells=cells,
                error_type=RowErrorType.STABILITY_MISMATCH,
                details=details,
            )
        return RowVerdict(cells=cells)

    def _cell_error(self, raw: str, cell: str) -> ColumnErrorReason | None:
        if REPLACEMENT_CHAR in cell:
            return ColumnErrorReason.CONTAINS_REPLACEMENT_CHAR
        # A backslash left after unescaping is a malformed escape, ASCII or not.
        if cell.isascii() and not (self._tunneling_enabled and ESCAPE_CHAR in cell):
            return None
        if self._tunneling_enabled:
            expected_raw = escape_for_check(cell, self._charset.can_encode)
        else:
            expected_raw = self._charset.decode(self._charset.encode_approx(cell))
        if expected_raw != raw:
            return ColumnErrorReason.STABILITY_MISMATCH
        return None


@dataclass(slots=True)
class TranscodeStep:
    """What happened during one `advance` call."""

    new_splits: list[NewSplit] = field(default_factory=list)
    finished: bool = False
    stopped: bool = False
    progress: int = 0


class TranscodeSession:
    """Stream one source file into split files and an error file."""

    def __init__(
        self,
        *,
        source_path: str | Path,
        column_count: int,
        source_format: SourceFormat,
        split_path_for: Callable[[int], Path],
        error_path: Path,
        split_rows: int,
        should_stop: Callable[[], bool],
    ) -> None:
        self._source_path = Path(source_path)
        self._source_format = source_format
        self._charset = LegacyCharset(source_format.encoding)
        self._classifier = RowClassifier(
            self._charset,
            column_count,
            source_format.tunneling_enabled,
        )
        self._split_path_for = split_path_for
        self._split_rows = max(1, split_rows)
        self._should_stop = should_stop
        self._error_writer = TranscodeErrorWriter(error_path, self._charset.encode_approx)
        self._binary: BinaryIO | None = None
        self._text: io.TextIOWrapper | None = None
        self._records: Iterator[list[str]] | None = None
        self._file_size = 0
        self._split_writer: SplitFileWriter | None = None
        self._split_index = 0
        self._rows_read = 0
        self._rows_written = 0
        self._splits_closed = 0

    @property
    def rows_read(self) -> int:
        """Data rows read so far (header and blank records excluded)."""

        return self._rows_read

    @property
    def rows_written(self) -> int:
        """Rows routed to split files."""

        return self._rows_written

    @property
    def error_rows(self) -> int:
        return self._error_writer.count

    @property
    def splits_closed(self) -> int:
        return self._splits_closed

    def open(self) -> None:
        """Open the source file."""

        self._file_size = os.path.getsize(self._source_path)
        self._binary = self._source_path.open("rb")
        self._text = self._charset.open_text(self._binary)
        self._records = data_records(self._text, self._source_format)

    def advance(self, max_rows: int) -> TranscodeStep:
        """Process up to `max_rows` source rows."""

        if self._records is None:
            raise RuntimeError("TranscodeSession.open() must be called first.")
        step = TranscodeStep()
        for _ in range(max(1, max_rows)):
            if self._should_stop():
                step.stopped = True
                break
            record = next(self._records, None)
            if record is None:
                closed = self._close_split()
                if closed is not None:
                    step.new_splits.append(closed)
                step.finished = True
                break
            self._rows_read += 1
            closed = self._handle_row(self._rows_read, record)
            if closed is not None:
                step.new_splits.append(closed)
        step.progress = 100 if step.finished else self._progress()
        return step

    def close(self) -> None:
        """Release file handles; a split still open is discarded."""

        if self._split_writer is not None:
            self._split_writer.discard()
            self._split_writer = None
        self._error_writer.close()
        if self._text is not None:
            self._text.close()
            self._text = None
        elif self._binary is not None:
            self._binary.close()
        self._binary = None
        self._records = None

    def _handle_row(self, row_no: int, record: list[str]) -> NewSplit | None:
        verdict = self._classifier.classify(record)
        if not verdict.ok:
            assert verdict.error_type is not None
            if row_no == 1:
                raise TranscodeFatalError(
                    f"First data row of {self._source_path} failed with {verdict.error_type}; "
                    f"check the legacy encoding ({self._charset.encoding}) and CSV framing."
                )
            self._error_writer.write(row_no, verdict.error_type, record, verdict.details)
            return None

        if self._split_writer is None:
            self._split_index += 1
            self._split_writer = SplitFileWriter(self._split_path_for(self._split_index))
        self._split_writer.write(row_no, verdict.cells)
        self._rows_written += 1
        if self._split_writer.row_count >= self._split_rows:
            return self._close_split()
        return None

    def _close_split(self) -> NewSplit | None:
        writer = self._split_writer
        if writer is None:
            return None
        self._split_writer = None
        closed = writer.close()
        if closed is not None:
            self._splits_closed += 1
            logger.debug(
                "Closed split %s of %s with %s rows.",
                closed.split_file_path,
                self._source_path,
                closed.row_count,
            )
        return closed

    def _progress(self) -> int:
        if self._binary is None or self._file_size <= 0:
            return 0
        try:
            position = self._binary.tell()
        except (OSError, ValueError):
            return 0
        return max(0, min(99, int(position * 100 / self._file_size)))


__all__ = ["RowClassifier", "RowVerdict", "TranscodeSession", "TranscodeStep"]
