"""Streaming dual-iterator comparison of source rows against target rows."""

from __future__ import annotations

import re
from collections.abc import AsyncIterator, Callable, Sequence
from contextlib import suppress
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from typing import Any

from bigcsv_migrator.domain.errors import DiffLimitExceededError
from bigcsv_migrator.domain.verification import ColumnKind, ComparisonOutcome
from bigcsv_migrator.infrastructure.files import DiffWriter

_TIMESTAMP_PATTERN = re.compile(
    r"^(\d{4})[-/](\d{2})[-/](\d{2})"
    r"(?:[ T-](\d{2})[:.](\d{2})[:.](\d{2})(?:[.,](\d{1,9}))?)?$"
)
_TIME_PATTERN = re.compile(r"^(\d{2})[:.](\d{2})[:.](\d{2})(?:[.,](\d{1,9}))?$")


def _is_null(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        stripped = value.strip()
        return not stripped or stripped.lower() == "null"
    return False


def _microseconds(fraction: str | None) -> int:
    if not fraction:
        return 0
    return int(fraction[:6].ljust(6, "0"))


def parse_timestamp(value: Any) -> datetime | None:
    """Parse timestamps with optional, possibly short, fractional seconds."""

    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    match = _TIMESTAMP_PATTERN.match(str(value).strip())
    if match is None:
        return None
    year, month, day, hour, minute, second, fraction = match.groups()
    try:
        return datetime(
            int(year),
            int(month),
            int(day),
            int(hour or 0),
            int(minute or 0),
            int(second or 0),
            _microseconds(fraction),
        )
    except ValueError:
        return None


def parse_time(value: Any) -> time | None:
    if isinstance(value, time):
        return value.replace(tzinfo=None)
    match = _TIME_PATTERN.match(str(value).strip())
    if match is None:
        return None
    hour, minute, second, fraction = match.groups()
    try:
        return time(int(hour), int(minute), int(second), _microseconds(fraction))
    except ValueError:
        return None


def parse_decimal(value: Any) -> Decimal | None:
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value).strip())
    except InvalidOperation:
        return None


def cells_equal(kind: ColumnKind, source_value: str, target_value: Any) -> bool:
    """Type-aware equality of one source cell and one target value."""

    source_null = _is_null(source_value)
    target_null = _is_null(target_value)
    if source_null or target_null:
        return source_null and target_null

    if kind == ColumnKind.NUMERIC:
        left = parse_decimal(source_value)
        right = parse_decimal(target_value)
        if left is not None and right is not None:
            return left == right
    elif kind == ColumnKind.TIMESTAMP:
        left_ts = parse_timestamp(source_value)
        right_ts = parse_timestamp(target_value)
        if left_ts is not None and right_ts is not None:
            return left_ts == right_ts
    elif kind == ColumnKind.DATE:
        left_date = parse_timestamp(source_value)
        right_date = parse_timestamp(target_value)
        if left_date is not None and right_date is not None:
            return left_date.date() == right_date.date()
    elif kind == ColumnKind.TIME:
        left_time = parse_time(source_value)
        right_time = parse_time(target_value)
        if left_time is not None and right_time is not None:
            return left_time == right_time
    return str(source_value).strip() == str(target_value).strip()


class RowComparator:
    """Advance source and target rows in lockstep, ordered by source row number.

    The last element of every row is the source row number. Column-count and
    row-number misalignment stop the comparison at once; content differences
    are written until the diff writer limit is reached.
    """

    def __init__(
        self,
        *,
        column_names: Sequence[str],
        column_kinds: Sequence[ColumnKind],
        diff_writer: DiffWriter,
        should_stop: Callable[[], bool] = lambda: False,
        stop_check_rows: int = 1000,
    ) -> None:
        self._column_names = list(column_names)
        self._column_kinds = list(column_kinds)
        self._diff_writer = diff_writer
        self._should_stop = should_stop
        self._stop_check_rows = max(1, stop_check_rows)

    async def compare(
        self,
        source_rows: AsyncIterator[Sequence[str]],
        target_rows: AsyncIterator[Sequence[Any]],
    ) -> ComparisonOutcome:
        compared = 0
        try:
            source_row = await anext(source_rows, None)
            target_row = await anext(target_rows, None)
            while source_row is not None or target_row is not None:
                compared += 1
                if compared % self._stop_check_rows == 0 and self._should_stop():
                    return self._outcome(compared, stopped=True, message="Comparison stopped.")

                structural = self._structural_difference(source_row, target_row)
                if structural is not None:
                    with suppress(DiffLimitExceededError):
                        self._diff_writer.write(structural)
                    return self._outcome(compared, message=structural)

                assert source_row is not None and target_row is not None
                self._compare_cells(source_row, target_row)
                source_row = await anext(source_rows, None)
                target_row = await anext(target_rows, None)
        except DiffLimitExceededError as exc:
            return self._outcome(compared, message=str(exc))

        if self._diff_writer.count:
            return self._outcome(
                compared,
                message=f"{self._diff_writer.count} content differences.",
            )
        return ComparisonOutcome(passed=True, compared_rows=compared, diff_count=0)

    def _structural_difference(
        self,
        source_row: Sequence[str] | None,
        target_row: Sequence[Any] | None,
    ) -> str | None:
        if source_row is None:
            assert target_row is not None
            return f"CSV: null, DB !{target_row[-1]}"
        if target_row is None:
            return f"CSV !{source_row[-1]}, DB: null"

        expected = len(self._column_kinds) + 1
        if len(source_row) != expected or len(target_row) != expected:
            return (
                f"Column count mismatch at CSV !{source_row[-1]}: "
                f"expected={expected - 1} csv={len(source_row) - 1} db={len(target_row) - 1}"
            )
        try:
            source_no = int(str(source_row[-1]).strip())
            target_no = int(str(target_row[-1]).strip())
        except ValueError:
            return f"Unreadable row number: CSV !{source_row[-1]}, DB !{target_row[-1]}"
        if source_no != target_no:
            return f"Row number mismatch: CSV !{source_no}, DB !{target_no}"
        return None

    def _compare_cells(self, source_row: Sequence[str], target_row: Sequence[Any]) -> None:
        for index, kind in enumerate(self._column_kinds):
            if cells_equal(kind, source_row[index], target_row[index]):
                continue
            self._diff_writer.write(
                f"Row {source_row[-1]} column {self._column_names[index]}: "
                f"CSV={source_row[index]!r} DB={target_row[index]!r}"
            )

    def _outcome(
        self,
        compared: int,
        *,
        message: str,
        stopped: bool = False,
    ) -> ComparisonOutcome:
        return ComparisonOutcome(
            passed=False,
            compared_rows=compared,
            diff_count=self._diff_writer.count,
            message=message,
            stopped=stopped,
        )


__all__ = [
    "RowComparator",
    "cells_equal",
    "parse_decimal",
    "parse_time",
    "parse_timestamp",
]
