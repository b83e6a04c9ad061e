"""PostgreSQL repository implementation for migration state."""

from __future__ import annotations

import asyncio
from collections.abc import Collection, Sequence
from typing import Any

import asyncpg  # type: ignore[import-untyped]

from bigcsv_migrator.domain.entities import (
    Batch,
    FileTask,
    MigrationJob,
    NewFileTask,
    NewSplit,
    Split,
)
from bigcsv_migrator.domain.ports import MigrationRepository
from bigcsv_migrator.domain.statuses import (
    FILE_TASK_SPLIT_DISPATCH_STATES,
    SPLIT_BUSY_STATES,
    BatchStatus,
    FileTaskStatus,
    JobStatus,
    SplitStatus,
)

_JOB_COLUMNS = """
    id,
    name,
    source_directory,
    target_dsn,
    target_user,
    target_password,
    output_directory,
    status,
    created_at
"""

_BATCH_COLUMNS = """
    id,
    job_id,
    signal_file_path,
    table_name,
    ddl_file_path,
    node_id,
    status,
    created_at
"""

_FILE_TASK_COLUMNS = """
    id,
    job_id,
    batch_id,
    source_path,
    node_id,
    status,
    progress,
    error_message,
    transcode_error_count,
    source_row_count
"""

_SPLIT_COLUMNS = """
    id,
    job_id,
    batch_id,
    file_task_id,
    split_file_path,
    start_row_no,
    row_count,
    node_id,
    status,
    error_message
"""


def _affected_rows(command_status: str) -> int:
    """Parse asyncpg command tags such as `UPDATE 3`."""

    try:
        return int(command_status.rsplit(" ", 1)[-1])
    except (ValueError, IndexError):
        return 0


class PostgresMigrationRepository(MigrationRepository):
    """Migration state repository backed by PostgreSQL."""

    def __init__(
        self,
        dsn: str,
        min_pool_size: int = 1,
        max_pool_size: int = 10,
    ) -> None:
        self._dsn = dsn
        self._min_pool_size = min_pool_size
        self._max_pool_size = max_pool_size
        self._pool: asyncpg.Pool | None = None
        self._pool_lock = asyncio.Lock()

    async def create_job(
        self,
        *,
        name: str,
        source_directory: str,
        target_dsn: str,
        target_user: str | None = None,
        target_password: str | None = None,
        output_directory: str | None = None,
    ) -> MigrationJob:
        """Create an ACTIVE job."""

        pool = await self._get_pool()
        row = await pool.fetchrow(
            f"""
            INSERT INTO migration_jobs (
                name, source_directory, target_dsn, target_user, target_password,
                output_directory, status
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7)
            RETURNING {_JOB_COLUMNS}
            """,
            name,
            source_directory,
            target_dsn,
            target_user,
            target_password,
            output_directory,
            JobStatus.ACTIVE.value,
        )
        return self._to_job(row)

    async def get_job(self, job_id: int) -> MigrationJob | None:
        pool = await self._get_pool()
        row = await pool.fetchrow(
            f"SELECT {_JOB_COLUMNS} FROM migration_jobs WHERE id = $1",
            job_id,
        )
        return None if row is None else self._to_job(row)

    async def list_jobs(self) -> list[MigrationJob]:
        pool = await self._get_pool()
        rows = await pool.fetch(f"SELECT {_JOB_COLUMNS} FROM migration_jobs ORDER BY id ASC")
        return [self._to_job(row) for row in rows]

    async def update_job_status(self, job_id: int, status: JobStatus) -> bool:
        pool = await self._get_pool()
        result = await pool.execute(
            "UPDATE migration_jobs SET status = $2 WHERE id = $1",
            job_id,
            status.value,
        )
        return _affected_rows(result) > 0

    async def delete_job(self, job_id: int) -> bool:
        pool = await self._get_pool()
        result = await pool.execute("DELETE FROM migration_jobs WHERE id = $1", job_id)
        return _affected_rows(result) > 0

    async def list_inactive_job_ids(self) -> set[int]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            "SELECT id FROM migration_jobs WHERE status <> $1",
            JobStatus.ACTIVE.value,
        )
        return {int(row["id"]) for row in rows}

    async def create_batch_with_tasks(
        self,
        *,
        job_id: int,
        signal_file_path: str,
        table_name: str,
        ddl_file_path: str,
        node_id: str,
        files: Sequence[NewFileTask],
    ) -> Batch | None:
        """Atomically create a batch and its file tasks."""

        pool = await self._get_pool()
        async with pool.acquire() as connection:
            async with connection.transaction():
                row = await connection.fetchrow(
                    f"""
                    INSERT INTO migration_batches (
                        job_id, signal_file_path, table_name, ddl_file_path, node_id, status
                    )
                    VALUES ($1, $2, $3, $4, $5, $6)
                    ON CONFLICT (signal_file_path) DO NOTHING
                    RETURNING {_BATCH_COLUMNS}
                    """,
                    job_id,
                    signal_file_path,
                    table_name,
                    ddl_file_path,
                    node_id,
                    BatchStatus.PROCESSING.value,
                )
                if row is None:
                    return None
                batch = self._to_batch(row)
                await connection.executemany(
                    """
                    INSERT INTO migration_file_tasks (job_id, batch_id, source_path, node_id, status)
                    VALUES ($1, $2, $3, $4, $5)
                    """,
                    [
                        (job_id, batch.id, new_file.source_path, node_id, FileTaskStatus.NEW.value)
                        for new_file in files
                    ],
                )
                return batch

    async def get_batch(self, batch_id: int) -> Batch | None:
        pool = await self._get_pool()
        row = await pool.fetchrow(
            f"SELECT {_BATCH_COLUMNS} FROM migration_batches WHERE id = $1",
            batch_id,
        )
        return None if row is None else self._to_batch(row)

    async def list_batches(self, job_id: int) -> list[Batch]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            f"SELECT {_BATCH_COLUMNS} FROM migration_batches WHERE job_id = $1 ORDER BY id ASC",
            job_id,
        )
        return [self._to_batch(row) for row in rows]

    async def find_batches_by_status(self, status: BatchStatus, node_id: str) -> list[Batch]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            f"""
            SELECT {_BATCH_COLUMNS}
            FROM migration_batches
            WHERE status = $1 AND node_id = $2
            ORDER BY id ASC
            """,
            status.value,
            node_id,
        )
        return [self._to_batch(row) for row in rows]

    async def update_batch_status(
        self,
        batch_id: int,
        expected: BatchStatus,
        status: BatchStatus,
    ) -> bool:
        pool = await self._get_pool()
        result = await pool.execute(
            "UPDATE migration_batches SET status = $3 WHERE id = $1 AND status = $2",
            batch_id,
            expected.value,
            status.value,
        )
        return _affected_rows(result) > 0

    async def count_file_tasks_not_in_status(self, batch_id: int, status: FileTaskStatus) -> int:
        pool = await self._get_pool()
        value = await pool.fetchval(
            "SELECT COUNT(*) FROM migration_file_tasks WHERE batch_id = $1 AND status <> $2",
            batch_id,
            status.value,
        )
        return int(value or 0)

    async def list_target_tables(self, job_id: int) -> list[str]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            """
            SELECT DISTINCT table_name
            FROM migration_batches
            WHERE job_id = $1
            ORDER BY table_name ASC
            """,
            job_id,
        )
        return [str(row["table_name"]) for row in rows]

    async def get_file_task(self, file_task_id: int) -> FileTask | None:
        pool = await self._get_pool()
        row = await pool.fetchrow(
            f"SELECT {_FILE_TASK_COLUMNS} FROM migration_file_tasks WHERE id = $1",
            file_task_id,
        )
        return None if row is None else self._to_file_task(row)

    async def list_file_tasks(self, batch_id: int) -> list[FileTask]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            f"""
            SELECT {_FILE_TASK_COLUMNS}
            FROM migration_file_tasks
            WHERE batch_id = $1
            ORDER BY id ASC
            """,
            batch_id,
        )
        return [self._to_file_task(row) for row in rows]

    async def find_file_tasks_by_status(
        self,
        status: FileTaskStatus,
        *,
        node_id: str,
        limit: int,
        exclude_job_ids: Collection[int] = (),
    ) -> list[FileTask]:
        if limit <= 0:
            return []
        pool = await self._get_pool()
        rows = await pool.fetch(
            f"""
            SELECT {_FILE_TASK_COLUMNS}
            FROM migration_file_tasks
            WHERE status = $1 AND node_id = $2 AND NOT (job_id = ANY($3::bigint[]))
            ORDER BY id ASC
            LIMIT $4
            """,
            status.value,
            node_id,
            list(exclude_job_ids),
            limit,
        )
        return [self._to_file_task(row) for row in rows]

    async def update_file_task_status(
        self,
        file_task_id: int,
        expected: FileTaskStatus,
        status: FileTaskStatus,
        *,
        error_message: str | None = None,
    ) -> bool:
        pool = await self._get_pool()
        result = await pool.execute(
            """
            UPDATE migration_file_tasks
            SET status = $3, error_message = $4, updated_at = NOW()
            WHERE id = $1 AND status = $2
            """,
            file_task_id,
            expected.value,
            status.value,
            error_message,
        )
        return _affected_rows(result) > 0

    async def update_file_task_progress(self, file_task_id: int, progress: int) -> None:
        pool = await self._get_pool()
        await pool.execute(
            "UPDATE migration_file_tasks SET progress = $2, updated_at = NOW() WHERE id = $1",
            file_task_id,
            max(0, min(100, progress)),
        )

    async def record_transcode_counts(
        self,
        file_task_id: int,
        *,
        source_row_count: int,
        transcode_error_count: int,
    ) -> None:
        pool = await self._get_pool()
        await pool.execute(
            """
            UPDATE migration_file_tasks
            SET source_row_count = $2, transcode_error_count = $3, updated_at = NOW()
            WHERE id = $1
            """,
            file_task_id,
            source_row_count,
            transcode_error_count,
        )

    async def reset_file_tasks(
        self,
        node_id: str,
        expected: FileTaskStatus,
        status: FileTaskStatus,
    ) -> int:
        pool = await self._get_pool()
        result = await pool.execute(
            """
            UPDATE migration_file_tasks
            SET status = $3, updated_at = NOW()
            WHERE node_id = $1 AND status = $2
            """,
            node_id,
            expected.value,
            status.value,
        )
        return _affected_rows(result)

    async def sum_source_rows(self, job_id: int, table_name: str) -> int:
        pool = await self._get_pool()
        value = await pool.fetchval(
            """
            SELECT COALESCE(SUM(f.source_row_count), 0)
            FROM migration_file_tasks f
            JOIN migration_batches b ON b.id = f.batch_id
            WHERE b.job_id = $1 AND b.table_name = $2
            """,
            job_id,
            table_name,
        )
        return int(value or 0)

    async def create_split(self, file_task: FileTask, split: NewSplit) -> Split:
        pool = await self._get_pool()
        row = await pool.fetchrow(
            f"""
            INSERT INTO migration_splits (
                job_id, batch_id, file_task_id, split_file_path, start_row_no, row_count,
                node_id, status
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
            RETURNING {_SPLIT_COLUMNS}
            """,
            file_task.job_id,
            file_task.batch_id,
            file_task.id,
            split.split_file_path,
            split.start_row_no,
            split.row_count,
            file_task.node_id,
            SplitStatus.WAIT_LOAD.value,
        )
        return self._to_split(row)

    async def get_split(self, split_id: int) -> Split | None:
        pool = await self._get_pool()
        row = await pool.fetchrow(
            f"SELECT {_SPLIT_COLUMNS} FROM migration_splits WHERE id = $1",
            split_id,
        )
        return None if row is None else self._to_split(row)

    async def list_splits(self, file_task_id: int) -> list[Split]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            f"""
            SELECT {_SPLIT_COLUMNS}
            FROM migration_splits
            WHERE file_task_id = $1
            ORDER BY start_row_no ASC
            """,
            file_task_id,
        )
        return [self._to_split(row) for row in rows]

    async def find_splits_by_status(
        self,
        status: SplitStatus,
        *,
        node_id: str,
        limit: int,
        exclude_job_ids: Collection[int] = (),
    ) -> list[Split]:
        if limit <= 0:
            return []
        pool = await self._get_pool()
        rows = await pool.fetch(
            f"""
            SELECT {_SPLIT_COLUMNS}
            FROM migration_splits
            WHERE status = $1 AND node_id = $2 AND NOT (job_id = ANY($3::bigint[]))
              AND file_task_id IN (
                  SELECT id FROM migration_file_tasks WHERE status = ANY($5::text[])
              )
            ORDER BY id ASC
            LIMIT $4
            """,
            status.value,
            node_id,
            list(exclude_job_ids),
            limit,
            [file_task_status.value for file_task_status in FILE_TASK_SPLIT_DISPATCH_STATES],
        )
        return [self._to_split(row) for row in rows]

    async def update_split_status(
        self,
        split_id: int,
        expected: SplitStatus,
        status: SplitStatus,
        *,
        error_message: str | None = None,
    ) -> bool:
        pool = await self._get_pool()
        result = await pool.execute(
            """
            UPDATE migration_splits
            SET status = $3, error_message = $4, updated_at = NOW()
            WHERE id = $1 AND status = $2
            """,
            split_id,
            expected.value,
            status.value,
            error_message,
        )
        return _affected_rows(result) > 0

    async def reset_splits(self, node_id: str, expected: SplitStatus, status: SplitStatus) -> int:
        pool = await self._get_pool()
        result = await pool.execute(
            """
            UPDATE migration_splits
            SET status = $3, updated_at = NOW()
            WHERE node_id = $1 AND status = $2
            """,
            node_id,
            expected.value,
            status.value,
        )
        return _affected_rows(result)

    async def discard_splits(self, file_task_id: int) -> list[Split] | None:
        pool = await self._get_pool()
        async with pool.acquire() as connection:
            async with connection.transaction():
                # Row locks make a concurrent WAIT_* -> LOADING/VERIFYING claim
                # either commit first (and be seen here) or find no row.
                rows = await connection.fetch(
                    f"""
                    SELECT {_SPLIT_COLUMNS}
                    FROM migration_splits
                    WHERE file_task_id = $1
                    ORDER BY start_row_no ASC
                    FOR UPDATE
                    """,
                    file_task_id,
                )
                splits = [self._to_split(row) for row in rows]
                if any(split.status in SPLIT_BUSY_STATES for split in splits):
                    return None
                await connection.execute(
                    "DELETE FROM migration_splits WHERE file_task_id = $1",
                    file_task_id,
                )
                return splits

    async def sum_split_rows(self, job_id: int, table_name: str) -> int:
        pool = await self._get_pool()
        value = await pool.fetchval(
            """
            SELECT COALESCE(SUM(s.row_count), 0)
            FROM migration_splits s
            JOIN migration_batches b ON b.id = s.batch_id
            WHERE b.job_id = $1 AND b.table_name = $2
            """,
            job_id,
            table_name,
        )
        return int(value or 0)

    async def close(self) -> None:
        """Close the pool."""

        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def _get_pool(self) -> asyncpg.Pool:
        if self._pool is not None:
            return self._pool

        async with self._pool_lock:
            if self._pool is None:
                pool = await asyncpg.create_pool(
                    dsn=self._dsn,
                    min_size=self._min_pool_size,
                    max_size=self._max_pool_size,
                )
                await self._ensure_schema(pool)
                self._pool = pool
        assert self._pool is not None
        return self._pool

    async def _ensure_schema(self, pool: asyncpg.Pool) -> None:
        await pool.execute(
            """
            CREATE TABLE IF NOT EXISTS migration_jobs (
                id BIGSERIAL PRIMARY KEY,
                name TEXT NOT NULL,
                source_directory TEXT NOT NULL,
                target_dsn TEXT NOT NULL,
                target_user TEXT,
                target_password TEXT,
                output_directory TEXT,
                status TEXT NOT NULL,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            );
            """
        )
        await pool.execute(
            """
            CREATE TABLE IF NOT EXISTS migration_batches (
                id BIGSERIAL PRIMARY KEY,
                job_id BIGINT NOT NULL REFERENCES migration_jobs(id) ON DELETE CASCADE,
                signal_file_path TEXT NOT NULL UNIQUE,
                table_name TEXT NOT NULL,
                ddl_file_path TEXT NOT NULL,
                node_id TEXT NOT NULL,
                status TEXT NOT NULL,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            );
            """
        )
        await pool.execute(
            """
            CREATE TABLE IF NOT EXISTS migration_file_tasks (
                id BIGSERIAL PRIMARY KEY,
                job_id BIGINT NOT NULL REFERENCES migration_jobs(id) ON DELETE CASCADE,
                batch_id BIGINT NOT NULL REFERENCES migration_batches(id) ON DELETE CASCADE,
                source_path TEXT NOT NULL,
                node_id TEXT NOT NULL,
                status TEXT NOT NULL,
                progress INTEGER NOT NULL DEFAULT 0,
                error_message TEXT,
                transcode_error_count BIGINT NOT NULL DEFAULT 0,
                source_row_count BIGINT NOT NULL DEFAULT 0,
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            );
            """
        )
        await pool.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_migration_file_tasks_status_node
            ON migration_file_tasks (status, node_id);
            """
        )
        await pool.execute(
            """
            CREATE TABLE IF NOT EXISTS migration_splits (
                id BIGSERIAL PRIMARY KEY,
                job_id BIGINT NOT NULL REFERENCES migration_jobs(id) ON DELETE CASCADE,
                batch_id BIGINT NOT NULL REFERENCES migration_batches(id) ON DELETE CASCADE,
                file_task_id BIGINT NOT NULL
                    REFERENCES migration_file_tasks(id) ON DELETE CASCADE,
                split_file_path TEXT NOT NULL,
                start_row_no BIGINT NOT NULL,
                row_count BIGINT NOT NULL,
                node_id TEXT NOT NULL,
                status TEXT NOT NULL,
                error_message TEXT,
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            );
            """
        )
        await pool.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_migration_splits_status_node
            ON migration_splits (status, node_id);
            """
        )
        await pool.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_migration_splits_file_task
            ON migration_splits (file_task_id);
            """
        )

    def _to_job(self, row: Any) -> MigrationJob:
        return MigrationJob(
            id=int(row["id"]),
            name=row["name"],
            source_directory=row["source_directory"],
            target_dsn=row["target_dsn"],
            target_user=row["target_user"],
            target_password=row["target_password"],
            output_directory=row["output_directory"],
            status=JobStatus(row["status"]),
            created_at=row["created_at"],
        )

    def _to_batch(self, row: Any) -> Batch:
        return Batch(
            id=int(row["id"]),
            job_id=int(row["job_id"]),
            signal_file_path=row["signal_file_path"],
            table_name=row["table_name"],
            ddl_file_path=row["ddl_file_path"],
            node_id=row["node_id"],
            status=BatchStatus(row["status"]),
            created_at=row["created_at"],
        )

    def _to_file_task(self, row: Any) -> FileTask:
        return FileTask(
            id=int(row["id"]),
            job_id=int(row["job_id"]),
            batch_id=int(row["batch_id"]),
            source_path=row["source_path"],
            node_id=row["node_id"],
            status=FileTaskStatus(row["status"]),
            progress=int(row["progress"]),
            error_message=row["error_message"],
            transcode_error_count=int(row["transcode_error_count"]),
            source_row_count=int(row["source_row_count"]),
        )

    def _to_split(self, row: Any) -> Split:
        return Split(
            id=int(row["id"]),
            job_id=int(row["job_id"]),
            batch_id=int(row["batch_id"]),
            file_task_id=int(row["file_task_id"]),
            split_file_path=row["split_file_path"],
            start_row_no=int(row["start_row_no"]),
            row_count=int(row["row_count"]),
            node_id=row["node_id"],
            status=SplitStatus(row["status"]),
            error_message=row["error_message"],
        )


__all__ = ["PostgresMigrationRepository"]
