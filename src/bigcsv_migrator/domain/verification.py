"""Verification result types."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class VerifyStrategy(StrEnum):
    """Source of the rows compared against the target table."""

    USE_UTF8_SPLIT = "USE_UTF8_SPLIT"
    USE_SOURCE_FILE = "USE_SOURCE_FILE"


class ColumnKind(StrEnum):
    """Comparison family of a target column."""

    TEXT = "TEXT"
    NUMERIC = "NUMERIC"
    TIMESTAMP = "TIMESTAMP"
    DATE = "DATE"
    TIME = "TIME"


class GlobalVerifyStatus(StrEnum):
    """Per-table reconciliation verdict."""

    MATCH = "MATCH"
    MISMATCH_SPLIT = "MISMATCH_SPLIT"
    MISMATCH_LOAD = "MISMATCH_LOAD"
    ERROR = "ERROR"


@dataclass(slots=True, frozen=True)
class TableVerifyResult:
    """Source, split and target row totals for one target table."""

    table_name: str
    source_rows: int
    split_rows: int
    target_rows: int
    status: GlobalVerifyStatus
    message: str | None = None


def classify_table_counts(source_rows: int, split_rows: int, target_rows: int) -> GlobalVerifyStatus:
    """Classify a table from its three row totals."""

    if source_rows != split_rows:
        return GlobalVerifyStatus.MISMATCH_SPLIT
    if split_rows != target_rows:
        return GlobalVerifyStatus.MISMATCH_LOAD
    return GlobalVerifyStatus.MATCH


@dataclass(slots=True, frozen=True)
class ComparisonOutcome:
    """Result of a streaming row comparison."""

    passed: bool
    compared_rows: int
    diff_count: int
    message: str | None = None
    stopped: bool = False


__all__ = [
    "ColumnKind",
    "ComparisonOutcome",
    "GlobalVerifyStatus",
    "TableVerifyResult",
    "VerifyStrategy",
    "classify_table_counts",
]
