"""SQL text helpers for the target database."""

from __future__ import annotations

from collections.abc import Sequence

from bigcsv_migrator.domain.errors import MigrationValidationError
from bigcsv_migrator.domain.verification import ColumnKind

_NUMERIC_TYPES = frozenset(
    {"int2", "int4", "int8", "numeric", "float4", "float8", "money", "oid"}
)
_TIMESTAMP_TYPES = frozenset({"timestamp", "timestamptz"})
_TIME_TYPES = frozenset({"time", "timetz"})


def quote_identifier(name: str) -> str:
    """Double-quote an SQL identifier."""

    return '"' + name.replace('"', '""') + '"'


def split_table_name(table_name: str) -> tuple[str | None, str]:
    """Split `schema.table` into its parts."""

    schema, separator, table = table_name.strip().partition(".")
    if not separator:
        schema, table = "", schema
    if not table or "." in table:
        raise MigrationValidationError(f"Invalid target table name '{table_name}'.")
    return (schema or None), table


def qualified_table(table_name: str) -> str:
    """Return the quoted, optionally schema-qualified table name."""

    schema, table = split_table_name(table_name)
    if schema is None:
        return quote_identifier(table)
    return f"{quote_identifier(schema)}.{quote_identifier(table)}"


def delete_split_rows_sql(table_name: str, split_id_column: str) -> str:
    return (
        f"DELETE FROM {qualified_table(table_name)} "
        f"WHERE {quote_identifier(split_id_column)} = $1"
    )


def count_split_rows_sql(table_name: str, split_id_column: str) -> str:
    return (
        f"SELECT COUNT(*) FROM {qualified_table(table_name)} "
        f"WHERE {quote_identifier(split_id_column)} = $1"
    )


def count_table_rows_sql(table_name: str) -> str:
    return f"SELECT COUNT(*) FROM {qualified_table(table_name)}"


def select_split_rows_sql(
    table_name: str,
    columns: Sequence[str],
    *,
    source_row_no_column: str,
    split_id_column: str,
) -> str:
    """Select business columns plus source row number of one split, in source order."""

    row_no = quote_identifier(source_row_no_column)
    selected = ", ".join([*(quote_identifier(column) for column in columns), row_no])
    return (
        f"SELECT {selected} FROM {qualified_table(table_name)} "
        f"WHERE {quote_identifier(split_id_column)} = $1 ORDER BY {row_no} ASC"
    )


def column_kind_for_type(type_name: str) -> ColumnKind:
    """Map a PostgreSQL type name to its comparison family."""

    normalized = type_name.lower()
    if normalized in _NUMERIC_TYPES:
        return ColumnKind.NUMERIC
    if normalized in _TIMESTAMP_TYPES:
        return ColumnKind.TIMESTAMP
    if normalized == "date":
        return ColumnKind.DATE
    if normalized in _TIME_TYPES:
        return ColumnKind.TIME
    return ColumnKind.TEXT


__all__ = [
    "column_kind_for_type",
    "count_split_rows_sql",
    "count_table_rows_sql",
    "delete_split_rows_sql",
    "qualified_table",
    "quote_identifier",
    "select_split_rows_sql",
    "split_table_name",
]
