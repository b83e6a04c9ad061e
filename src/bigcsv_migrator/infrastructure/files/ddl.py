"""Column-definition (DDL) file parsing."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from bigcsv_migrator.domain.errors import DdlError

_COMMENT_PREFIXES = ("--", "#")
_IDENTIFIER_QUOTES = "\"'`"


@dataclass(slots=True, frozen=True)
class ColumnDefinition:
    """One declared target column."""

    name: str
    declared_type: str | None = None


def parse_ddl(text: str) -> list[ColumnDefinition]:
    """Parse one column per line, the first comma-separated field being the name."""

    columns: list[ColumnDefinition] = []
    seen: set[str] = set()
    for line_no, raw_line in enumerate(text.splitlines(), start=1):
        line = raw_line.strip()
        if not line or line.startswith(_COMMENT_PREFIXES):
            continue
        fields = [field.strip() for field in line.split(",")]
        name = fields[0].strip(_IDENTIFIER_QUOTES).strip()
        if not name:
            raise DdlError(f"DDL line {line_no} has an empty column name.")
        if name.lower() in seen:
            raise DdlError(f"DDL declares column '{name}' twice.")
        seen.add(name.lower())
        declared_type = fields[1] if len(fields) > 1 and fields[1] else None
        columns.append(ColumnDefinition(name=name, declared_type=declared_type))
    if not columns:
        raise DdlError("DDL declares no column.")
    return columns


def read_ddl(path: str | Path) -> list[ColumnDefinition]:
    """Read and parse a DDL file."""

    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise DdlError(f"Cannot read DDL file '{path}': {exc}") from exc
    try:
        return parse_ddl(text)
    except DdlError as exc:
        raise DdlError(f"{path}: {exc}") from exc


def table_name_from_ddl_path(path: str | Path) -> str:
    """Derive `schema.table` (or `table`) from a DDL file name like `schema-table.sql`."""

    stem = Path(path).stem
    schema, separator, table = stem.partition("-")
    if separator and schema and table:
        return f"{schema}.{table}"
    return stem


__all__ = ["ColumnDefinition", "parse_ddl", "read_ddl", "table_name_from_ddl_path"]
