"""Ports for the status store and the target database."""

from __future__ import annotations

from collections.abc import AsyncIterator, Collection, Sequence
from typing import Any, Protocol

from bigcsv_migrator.domain.entities import (
    Batch,
    FileTask,
    MigrationJob,
    NewFileTask,
    NewSplit,
    Split,
)
from bigcsv_migrator.domain.statuses import (
    BatchStatus,
    FileTaskStatus,
    JobStatus,
    SplitStatus,
)
from bigcsv_migrator.domain.verification import ColumnKind


class MigrationRepository(Protocol):
    """Persistence port for jobs, batches, file tasks and splits.

    Every status update is a conditional write on the current status and is
    committed on its own.
    """

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

    async def get_job(self, job_id: int) -> MigrationJob | None:
        """Return a job by id."""

    async def list_jobs(self) -> list[MigrationJob]:
        """Return all jobs."""

    async def update_job_status(self, job_id: int, status: JobStatus) -> bool:
        """Set job status, returning False when the job does not exist."""

    async def delete_job(self, job_id: int) -> bool:
        """Delete a job and everything below it."""

    async def list_inactive_job_ids(self) -> set[int]:
        """Return ids of jobs that are STOPPED or PAUSED."""

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
        """Atomically create a batch and its file tasks.

        Returns None when a batch already exists for `signal_file_path`.
        """

    async def get_batch(self, batch_id: int) -> Batch | None:
        """Return a batch by id."""

    async def list_batches(self, job_id: int) -> list[Batch]:
        """Return batches of one job."""

    async def find_batches_by_status(self, status: BatchStatus, node_id: str) -> list[Batch]:
        """Return batches in `status` owned by `node_id`."""

    async def update_batch_status(
        self,
        batch_id: int,
        expected: BatchStatus,
        status: BatchStatus,
    ) -> bool:
        """Conditionally update batch status."""

    async def count_file_tasks_not_in_status(self, batch_id: int, status: FileTaskStatus) -> int:
        """Count file tasks of a batch whose status differs from `status`."""

    async def list_target_tables(self, job_id: int) -> list[str]:
        """Return distinct target tables of a job's batches."""

    async def get_file_task(self, file_task_id: int) -> FileTask | None:
        """Return a file task by id."""

    async def list_file_tasks(self, batch_id: int) -> list[FileTask]:
        """Return file tasks of one batch."""

    async def find_file_tasks_by_status(
        self,
        status: FileTaskStatus,
        *,
        node_id: str,
        limit: int,
        exclude_job_ids: Collection[int] = (),
    ) -> list[FileTask]:
        """Return up to `limit` file tasks in `status` owned by `node_id`."""

    async def update_file_task_status(
        self,
        file_task_id: int,
        expected: FileTaskStatus,
        status: FileTaskStatus,
        *,
        error_message: str | None = None,
    ) -> bool:
        """Compare-and-set file task status."""

    async def update_file_task_progress(self, file_task_id: int, progress: int) -> None:
        """Persist transcode progress (0..100)."""

    async def record_transcode_counts(
        self,
        file_task_id: int,
        *,
        source_row_count: int,
        transcode_error_count: int,
    ) -> None:
        """Persist row totals of the last transcode pass."""

    async def reset_file_tasks(
        self,
        node_id: str,
        expected: FileTaskStatus,
        status: FileTaskStatus,
    ) -> int:
        """Move every file task of `node_id` from `expected` to `status`."""

    async def sum_source_rows(self, job_id: int, table_name: str) -> int:
        """Sum file task source row counts for one job table."""

    async def create_split(self, file_task: FileTask, split: NewSplit) -> Split:
        """Create a WAIT_LOAD split under `file_task`."""

    async def get_split(self, split_id: int) -> Split | None:
        """Return a split by id."""

    async def list_splits(self, file_task_id: int) -> list[Split]:
        """Return splits of one file task ordered by start row."""

    async def find_splits_by_status(
        self,
        status: SplitStatus,
        *,
        node_id: str,
        limit: int,
        exclude_job_ids: Collection[int] = (),
    ) -> list[Split]:
        """Return up to `limit` splits in `status` owned by `node_id`.

        Only splits whose file task is TRANSCODING or PROCESSING_CHILDS are
        returned; leftovers of an interrupted transcode stay invisible.
        """

    async def update_split_status(
        self,
        split_id: int,
        expected: SplitStatus,
        status: SplitStatus,
        *,
        error_message: str | None = None,
    ) -> bool:
        """Compare-and-set split status."""

    async def reset_splits(self, node_id: str, expected: SplitStatus, status: SplitStatus) -> int:
        """Move every split of `node_id` from `expected` to `status`."""

    async def discard_splits(self, file_task_id: int) -> list[Split] | None:
        """Atomically delete every split record of one file task.

        Returns the deleted splits, or None without deleting anything while a
        split is LOADING or VERIFYING.
        """

    async def sum_split_rows(self, job_id: int, table_name: str) -> int:
        """Sum split row counts for one job table."""

    async def close(self) -> None:
        """Release store resources."""


class TargetDatabase(Protocol):
    """Port for the migration target database, addressed per job."""

    async def execute(self, job: MigrationJob, statements: Sequence[str]) -> None:
        """Run statements on a pooled connection of the job."""

    async def replace_split_rows(
        self,
        job: MigrationJob,
        table_name: str,
        columns: Sequence[str],
        split: Split,
    ) -> int:
        """Delete rows tagged with the split id and bulk load the split file.

        Both steps run as one unit of work. Returns the loaded row count.
        """

    async def delete_split_rows(self, job: MigrationJob, table_name: str, split_id: int) -> int:
        """Delete rows tagged with `split_id`."""

    async def count_split_rows(self, job: MigrationJob, table_name: str, split_id: int) -> int:
        """Count rows tagged with `split_id`."""

    async def count_table_rows(self, job: MigrationJob, table_name: str) -> int:
        """Count all rows of a table."""

    async def column_kinds(
        self,
        job: MigrationJob,
        table_name: str,
        columns: Sequence[str],
    ) -> list[ColumnKind]:
        """Return the comparison family of each requested column."""

    def iter_split_rows(
        self,
        job: MigrationJob,
        table_name: str,
        columns: Sequence[str],
        split_id: int,
    ) -> AsyncIterator[tuple[Any, ...]]:
        """Stream rows of a split ordered by source row number.

        Each tuple holds the requested columns followed by the source row number.
        """

    async def release_job(self, job_id: int) -> None:
        """Close the connection pool of one job."""

    async def close(self) -> None:
        """Close every cached connection pool."""


__all__ = ["MigrationRepository", "TargetDatabase"]
