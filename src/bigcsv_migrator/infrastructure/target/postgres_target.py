"""PostgreSQL migration target backed by per-job asyncpg pools."""

from __future__ import annotations

import asyncio
import csv
import io
from collections.abc import AsyncIterator, Iterator, Sequence
from pathlib import Path
from typing import Any

from bigcsv_migrator.domain.entities import MigrationJob, Split
from bigcsv_migrator.domain.errors import TargetDatabaseError
from bigcsv_migrator.domain.ports import TargetDatabase
from bigcsv_migrator.domain.verification import ColumnKind
from bigcsv_migrator.infrastructure.target.pool_manager import TargetPoolManager
from bigcsv_migrator.infrastructure.target.target_sql import (
    column_kind_for_type,
    count_split_rows_sql,
    count_table_rows_sql,
    delete_split_rows_sql,
    select_split_rows_sql,
    split_table_name,
)

_COPY_CHUNK_ROWS = 2000


def _affected_rows(command_status: str) -> int:
    try:
        return int(command_status.rsplit(" ", 1)[-1])
    except (ValueError, IndexError):
        return 0


def _copy_chunks(path: Path, split_id: int) -> Iterator[bytes]:
    """Re-serialize a split file as CSV chunks with the split id appended."""

    with path.open("r", encoding="utf-8", newline="") as handle:
        reader = csv.reader(handle)
        buffer = io.StringIO()
        writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
        pending = 0
        for row in reader:
            writer.writerow([*row, str(split_id)])
            pending += 1
            if pending >= _COPY_CHUNK_ROWS:
                yield buffer.getvalue().encode("utf-8")
                buffer.seek(0)
                buffer.truncate()
                pending = 0
        if pending:
            yield buffer.getvalue().encode("utf-8")


async def _copy_source(path: Path, split_id: int) -> AsyncIterator[bytes]:
    chunks = _copy_chunks(path, split_id)
    while True:
        chunk = await asyncio.to_thread(next, chunks, None)
        if chunk is None:
            return
        yield chunk


class PostgresTargetDatabase(TargetDatabase):
    """Target adapter loading split files with `COPY ... FROM STDIN`."""

    def __init__(
        self,
        pool_manager: TargetPoolManager,
        *,
        source_row_no_column: str = "source_row_no",
        split_id_column: str = "csv_split_id",
        fetch_size: int = 1000,
    ) -> None:
        self._pools = pool_manager
        self._source_row_no_column = source_row_no_column
        self._split_id_column = split_id_column
        self._fetch_size = max(1, fetch_size)

    async def execute(self, job: MigrationJob, statements: Sequence[str]) -> None:
        if not statements:
            return
        pool = await self._pools.get_pool(job)
        try:
            async with pool.acquire() as connection:
                for statement in statements:
                    await connection.execute(statement)
        except Exception as exc:
            raise TargetDatabaseError(f"Pre-load statement failed: {exc}") from exc

    async def replace_split_rows(
        self,
        job: MigrationJob,
        table_name: str,
        columns: Sequence[str],
        split: Split,
    ) -> int:
        schema, table = split_table_name(table_name)
        pool = await self._pools.get_pool(job)
        try:
            async with pool.acquire() as connection:
                async with connection.transaction():
                    await connection.execute(
                        delete_split_rows_sql(table_name, self._split_id_column),
                        split.id,
                    )
                    result = await connection.copy_to_table(
                        table,
                        schema_name=schema,
                        source=_copy_source(Path(split.split_file_path), split.id),
                        columns=[*columns, self._source_row_no_column, self._split_id_column],
                        format="csv",
                        force_null=list(columns),
                    )
        except OSError as exc:
            raise TargetDatabaseError(
                f"Cannot read split file '{split.split_file_path}': {exc}"
            ) from exc
        except Exception as exc:
            raise TargetDatabaseError(f"Load into {table_name} failed: {exc}") from exc
        return _affected_rows(result)

    async def delete_split_rows(self, job: MigrationJob, table_name: str, split_id: int) -> int:
        pool = await self._pools.get_pool(job)
        try:
            result = await pool.execute(
                delete_split_rows_sql(table_name, self._split_id_column),
                split_id,
            )
        except Exception as exc:
            raise TargetDatabaseError(f"Delete from {table_name} failed: {exc}") from exc
        return _affected_rows(result)

    async def count_split_rows(self, job: MigrationJob, table_name: str, split_id: int) -> int:
        pool = await self._pools.get_pool(job)
        try:
            value = await pool.fetchval(
                count_split_rows_sql(table_name, self._split_id_column),
                split_id,
            )
        except Exception as exc:
            raise TargetDatabaseError(f"Count on {table_name} failed: {exc}") from exc
        return int(value or 0)

    async def count_table_rows(self, job: MigrationJob, table_name: str) -> int:
        pool = await self._pools.get_pool(job)
        try:
            value = await pool.fetchval(count_table_rows_sql(table_name))
        except Exception as exc:
            raise TargetDatabaseError(f"Count on {table_name} failed: {exc}") from exc
        return int(value or 0)

    async def column_kinds(
        self,
        job: MigrationJob,
        table_name: str,
        columns: Sequence[str],
    ) -> list[ColumnKind]:
        pool = await self._pools.get_pool(job)
        sql = select_split_rows_sql(
            table_name,
            columns,
            source_row_no_column=self._source_row_no_column,
            split_id_column=self._split_id_column,
        )
        try:
            async with pool.acquire() as connection:
                statement = await connection.prepare(sql)
                attributes = statement.get_attributes()
        except Exception as exc:
            raise TargetDatabaseError(f"Cannot describe {table_name}: {exc}") from exc
        return [column_kind_for_type(attribute.type.name) for attribute in attributes[: len(columns)]]

    async def iter_split_rows(
        self,
        job: MigrationJob,
        table_name: str,
        columns: Sequence[str],
        split_id: int,
    ) -> AsyncIterator[tuple[Any, ...]]:
        pool = await self._pools.get_pool(job)
        sql = select_split_rows_sql(
            table_name,
            columns,
            source_row_no_column=self._source_row_no_column,
            split_id_column=self._split_id_column,
        )
        async with pool.acquire() as connection:
            async with connection.transaction():
                async for record in connection.cursor(sql, split_id, prefetch=self._fetch_size):
                    yield tuple(record.values())

    async def release_job(self, job_id: int) -> None:
        await self._pools.invalidate(job_id)

    async def close(self) -> None:
        await self._pools.close_all()


__all__ = ["PostgresTargetDatabase"]
