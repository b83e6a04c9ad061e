"""CSV record readers for legacy sources and UTF-8 split files."""

from __future__ import annotations

import csv
import io
from collections.abc import Iterator
from dataclasses import dataclass
from itertools import islice
from pathlib import Path

from bigcsv_migrator.infrastructure.codec import LegacyCharset, iter_records, unescape


@dataclass(slots=True, frozen=True)
class SourceFormat:
    """How legacy source files are framed."""

    encoding: str
    delimiter: str = ","
    quote_char: str = '"'
    has_header: bool = False
    record_separator: str | None = None
    tunneling_enabled: bool = False


def data_records(text: io.TextIOBase, source_format: SourceFormat) -> Iterator[list[str]]:
    """Yield parsed data records, skipping the optional header and blank records."""

    reader = csv.reader(
        iter_records(text, source_format.record_separator),
        delimiter=source_format.delimiter,
        quotechar=source_format.quote_char,
    )
    header_pending = source_format.has_header
    for record in reader:
        if not record:
            continue
        if header_pending:
            header_pending = False
            continue
        yield record


def iter_source_rows(
    path: str | Path,
    source_format: SourceFormat,
    *,
    start_row_no: int = 1,
    row_count: int | None = None,
) -> Iterator[list[str]]:
    """Re-read a legacy source file, yielding cells plus the source row number."""

    charset = LegacyCharset(source_format.encoding)
    stop = None if row_count is None else start_row_no - 1 + row_count
    with Path(path).open("rb") as binary, charset.open_text(binary) as text:
        records = islice(data_records(text, source_format), start_row_no - 1, stop)
        for row_no, record in enumerate(records, start=start_row_no):
            if source_format.tunneling_enabled:
                record = [unescape(cell).text for cell in record]
            yield [*record, str(row_no)]


def iter_split_rows(path: str | Path) -> Iterator[list[str]]:
    """Yield rows of a UTF-8 split file, the last cell being the source row number."""

    with Path(path).open("r", encoding="utf-8", newline="") as handle:
        yield from csv.reader(handle)


__all__ = ["SourceFormat", "data_records", "iter_source_rows", "iter_split_rows"]
