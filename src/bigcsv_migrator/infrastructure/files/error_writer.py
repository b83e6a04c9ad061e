"""Per file-task transcode error file."""

from __future__ import annotations

import base64
import csv
import json
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any, TextIO

from bigcsv_migrator.domain.data_quality import ColumnErrorDetail, RowErrorType

ERROR_FILE_HEADER = (
    "LineNo",
    "ErrorType",
    "Row_Base64_Legacy_Approx",
    "Row_Base64_UTF8",
    "Column_Details_JSON",
)


def b64(data: bytes) -> str:
    """Return standard base64 text."""

    return base64.b64encode(data).decode("ascii")


class TranscodeErrorWriter:
    """Append classified rows to a lazily created UTF-8 CSV error file."""

    def __init__(self, path: str | Path, encode_legacy: Callable[[str], bytes]) -> None:
        self._path = Path(path)
        self._encode_legacy = encode_legacy
        self._handle: TextIO | None = None
        self._writer: Any | None = None
        self._count = 0

    @property
    def path(self) -> Path:
        return self._path

    @property
    def count(self) -> int:
        """Return number of error rows written."""

        return self._count

    def write(
        self,
        line_no: int,
        error_type: RowErrorType,
        cells: Sequence[str],
        details: Sequence[ColumnErrorDetail] = (),
    ) -> None:
        """Append one error record."""

        writer = self._ensure_open()
        row_text = ",".join(cells)
        details_json = (
            json.dumps([detail.model_dump(mode="json", by_alias=True) for detail in details])
            if details
            else ""
        )
        writer.writerow(
            [
                str(line_no),
                error_type.value,
                b64(self._encode_legacy(row_text)),
                b64(row_text.encode("utf-8")),
                details_json,
            ]
        )
        self._count += 1

    def close(self) -> None:
        if self._handle is not None:
            self._handle.close()
            self._handle = None
            self._writer = None

    def __enter__(self) -> TranscodeErrorWriter:
        return self

    def __exit__(self, *_exc_info: object) -> None:
        self.close()

    def _ensure_open(self) -> Any:
        if self._writer is not None:
            return self._writer
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._handle = self._path.open("w", encoding="utf-8", newline="")
        self._writer = csv.writer(self._handle, quoting=csv.QUOTE_ALL, lineterminator="\n")
        self._writer.writerow(ERROR_FILE_HEADER)
        return self._writer


__all__ = ["ERROR_FILE_HEADER", "TranscodeErrorWriter", "b64"]
