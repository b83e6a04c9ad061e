from __future__ import annotations

import base64
import csv
import json
from pathlib import Path

import pytest

from bigcsv_migrator.domain.data_quality import (
    ColumnErrorDetail,
    ColumnErrorReason,
    RowErrorType,
)
from bigcsv_migrator.domain.errors import DdlError, DiffLimitExceededError
from bigcsv_migrator.infrastructure.files import (
    ERROR_FILE_HEADER,
    DiffWriter,
    OutputLayout,
    SourceFormat,
    SplitFileWriter,
    TranscodeErrorWriter,
    iter_source_rows,
    parse_ddl,
    read_ddl,
    remove_file,
    table_name_from_ddl_path,
)


def test_parse_ddl_reads_one_column_per_line() -> None:
    columns = parse_ddl('-- orders\n"ID",INTEGER\n\nname,VARCHAR(20)\nnote\n')

    assert [column.name for column in columns] == ["ID", "name", "note"]
    assert [column.declared_type for column in columns] == ["INTEGER", "VARCHAR(20)", None]


@pytest.mark.parametrize(
    "text",
    ["", "-- only a comment\n", "id,INT\nID,INT\n", ",INT\n"],
)
def test_parse_ddl_rejects_invalid_definitions(text: str) -> None:
    with pytest.raises(DdlError):
        parse_ddl(text)


def test_read_ddl_reports_missing_file(tmp_path: Path) -> None:
    with pytest.raises(DdlError, match="Cannot read DDL file"):
        read_ddl(tmp_path / "missing.sql")


@pytest.mark.parametrize(
    ("path", "expected"),
    [
        ("/in/sales-orders.sql", "sales.orders"),
        ("/in/orders.sql", "orders"),
        ("/in/-orders.sql", "-orders"),
    ],
)
def test_table_name_from_ddl_path(path: str, expected: str) -> None:
    assert table_name_from_ddl_path(path) == expected


def test_output_layout_places_artifacts_below_batch_directory(tmp_path: Path) -> None:
    layout = OutputLayout(tmp_path)

    assert layout.split_file(1, 2, 3, 4) == tmp_path / "1" / "2" / "output_split" / "3" / "4.csv"
    assert layout.error_file(1, 2, 3) == tmp_path / "1" / "2" / "output_error" / "3_error.csv"
    assert layout.diff_file(1, 2, 9) == tmp_path / "1" / "2" / "verify_result" / "split_9_diff.txt"


def test_remove_file_is_idempotent(tmp_path: Path) -> None:
    path = tmp_path / "a.txt"
    path.write_text("x", encoding="utf-8")

    assert remove_file(path) is True
    assert remove_file(path) is False


def test_split_writer_appends_row_number_and_describes_split(tmp_path: Path) -> None:
    writer = SplitFileWriter(tmp_path / "split" / "1.csv")
    writer.write(3, ["a", 'quote "x"'])
    writer.write(4, ["b", ""])

    split = writer.close()

    assert split is not None
    assert split.start_row_no == 3
    assert split.row_count == 2
    with Path(split.split_file_path).open(encoding="utf-8", newline="") as handle:
        assert list(csv.reader(handle)) == [["a", 'quote "x"', "3"], ["b", "", "4"]]


def test_split_writer_without_rows_leaves_no_file(tmp_path: Path) -> None:
    path = tmp_path / "empty.csv"
    writer = SplitFileWriter(path)

    assert writer.close() is None
    assert not path.exists()


def test_error_writer_is_lazy_and_encodes_row_twice(tmp_path: Path) -> None:
    path = tmp_path / "errors" / "1_error.csv"
    writer = TranscodeErrorWriter(path, lambda text: text.encode("cp037", errors="replace"))
    assert not path.exists()

    detail = ColumnErrorDetail(
        column_index=1,
        error_reason=ColumnErrorReason.STABILITY_MISMATCH,
        legacy_base64="",
        utf8_base64="",
    )
    with writer:
        writer.write(2, RowErrorType.COLUMN_COUNT_MISMATCH, ["a", "b"])
        writer.write(5, RowErrorType.STABILITY_MISMATCH, ["c"], [detail])

    with path.open(encoding="utf-8", newline="") as handle:
        rows = list(csv.reader(handle))
    assert tuple(rows[0]) == ERROR_FILE_HEADER
    assert rows[1][:2] == ["2", "COLUMN_COUNT_MISMATCH"]
    assert base64.b64decode(rows[1][2]) == "a,b".encode("cp037")
    assert base64.b64decode(rows[1][3]) == b"a,b"
    assert rows[1][4] == ""
    assert json.loads(rows[2][4])[0]["errorReason"] == "STABILITY_MISMATCH"
    assert writer.count == 2


def test_diff_writer_aborts_at_limit(tmp_path: Path) -> None:
    path = tmp_path / "diff.txt"

    with DiffWriter(path, max_diffs=2) as writer:
        writer.write("row 1 differs")
        with pytest.raises(DiffLimitExceededError):
            writer.write("row 2 differs")

    assert path.read_text(encoding="utf-8").splitlines() == ["row 1 differs", "row 2 differs"]


def test_iter_source_rows_skips_header_and_seeks_to_range(tmp_path: Path) -> None:
    path = tmp_path / "source.csv"
    path.write_bytes("id,name\n1,a\n2,b\n\n3,c\n".encode("cp037"))
    source_format = SourceFormat(encoding="cp037", has_header=True)

    rows = list(iter_source_rows(path, source_format, start_row_no=2, row_count=2))

    assert rows == [["2", "b", "2"], ["3", "c", "3"]]


def test_iter_source_rows_unescapes_when_tunneling(tmp_path: Path) -> None:
    path = tmp_path / "source.csv"
    path.write_bytes("1,\\4E2D\\\n".encode("cp037"))
    source_format = SourceFormat(encoding="cp037", tunneling_enabled=True)

    assert list(iter_source_rows(path, source_format)) == [["1", "中", "1"]]
