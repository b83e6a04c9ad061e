"""In-memory repository implementation for migration state."""

from __future__ import annotations

import asyncio
from collections.abc import Collection, Sequence
from dataclasses import replace
from itertools import count

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


class InMemoryMigrationRepository(MigrationRepository):
    """Simple repository for local development and tests."""

    def __init__(self) -> None:
        self._jobs: dict[int, MigrationJob] = {}
        self._batches: dict[int, Batch] = {}
        self._file_tasks: dict[int, FileTask] = {}
        self._splits: dict[int, Split] = {}
        self._job_ids = count(1)
        self._batch_ids = count(1)
        self._file_task_ids = count(1)
        self._split_ids = count(1)
        self._lock = asyncio.Lock()

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

        async with self._lock:
            job = MigrationJob(
                id=next(self._job_ids),
                name=name,
                source_directory=source_directory,
                target_dsn=target_dsn,
                target_user=target_user,
                target_password=target_password,
                output_directory=output_directory,
            )
            self._jobs[job.id] = job
            return replace(job)

    async def get_job(self, job_id: int) -> MigrationJob | None:
        job = self._jobs.get(job_id)
        return None if job is None else replace(job)

    async def list_jobs(self) -> list[MigrationJob]:
        return [replace(job) for job in sorted(self._jobs.values(), key=lambda item: item.id)]

    async def update_job_status(self, job_id: int, status: JobStatus) -> bool:
        async with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return False
            job.status = status
            return True

    async def delete_job(self, job_id: int) -> bool:
        async with self._lock:
            if self._jobs.pop(job_id, None) is None:
                return False
            for store in (self._batches, self._file_tasks, self._splits):
                for record_id in [key for key, value in store.items() if value.job_id == job_id]:
                    del store[record_id]
            return True

    async def list_inactive_job_ids(self) -> set[int]:
        return {job.id for job in self._jobs.values() if job.status != JobStatus.ACTIVE}

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

        async with self._lock:
            if any(batch.signal_file_path == signal_file_path for batch in self._batches.values()):
                return None
            batch = Batch(
                id=next(self._batch_ids),
                job_id=job_id,
                signal_file_path=signal_file_path,
                table_name=table_name,
                ddl_file_path=ddl_file_path,
                node_id=node_id,
            )
            self._batches[batch.id] = batch
            for new_file in files:
                file_task = FileTask(
                    id=next(self._file_task_ids),
                    job_id=job_id,
                    batch_id=batch.id,
                    source_path=new_file.source_path,
                    node_id=node_id,
                )
                self._file_tasks[file_task.id] = file_task
            return replace(batch)

    async def get_batch(self, batch_id: int) -> Batch | None:
        batch = self._batches.get(batch_id)
        return None if batch is None else replace(batch)

    async def list_batches(self, job_id: int) -> list[Batch]:
        return [
            replace(batch)
            for batch in sorted(self._batches.values(), key=lambda item: item.id)
            if batch.job_id == job_id
        ]

    async def find_batches_by_status(self, status: BatchStatus, node_id: str) -> list[Batch]:
        return [
            replace(batch)
            for batch in sorted(self._batches.values(), key=lambda item: item.id)
            if batch.status == status and batch.node_id == node_id
        ]

    async def update_batch_status(
        self,
        batch_id: int,
        expected: BatchStatus,
        status: BatchStatus,
    ) -> bool:
        async with self._lock:
            batch = self._batches.get(batch_id)
            if batch is None or batch.status != expected:
                return False
            batch.status = status
            return True

    async def count_file_tasks_not_in_status(self, batch_id: int, status: FileTaskStatus) -> int:
        return sum(
            1
            for file_task in self._file_tasks.values()
            if file_task.batch_id == batch_id and file_task.status != status
        )

    async def list_target_tables(self, job_id: int) -> list[str]:
        return sorted({batch.table_name for batch in self._batches.values() if batch.job_id == job_id})

    async def get_file_task(self, file_task_id: int) -> FileTask | None:
        file_task = self._file_tasks.get(file_task_id)
        return None if file_task is None else replace(file_task)

    async def list_file_tasks(self, batch_id: int) -> list[FileTask]:
        return [
            replace(file_task)
            for file_task in sorted(self._file_tasks.values(), key=lambda item: item.id)
            if file_task.batch_id == batch_id
        ]

    async def find_file_tasks_by_status(
        self,
        status: FileTaskStatus,
        *,
        node_id: str,
        limit: int,
        exclude_job_ids: Collection[int] = (),
    ) -> list[FileTask]:
        matches = [
            replace(file_task)
            for file_task in sorted(self._file_tasks.values(), key=lambda item: item.id)
            if file_task.status == status
            and file_task.node_id == node_id
            and file_task.job_id not in exclude_job_ids
        ]
        return matches[: max(limit, 0)]

    async def update_file_task_status(
        self,
        file_task_id: int,
        expected: FileTaskStatus,
        status: FileTaskStatus,
        *,
        error_message: str | None = None,
    ) -> bool:
        async with self._lock:
            file_task = self._file_tasks.get(file_task_id)
            if file_task is None or file_task.status != expected:
                return False
            file_task.status = status
            file_task.error_message = error_message
            return True

    async def update_file_task_progress(self, file_task_id: int, progress: int) -> None:
        async with self._lock:
            file_task = self._file_tasks.get(file_task_id)
            if file_task is not None:
                file_task.progress = max(0, min(100, progress))

    async def record_transcode_counts(
        self,
        file_task_id: int,
        *,
        source_row_count: int,
        transcode_error_count: int,
    ) -> None:
        async with self._lock:
            file_task = self._file_tasks.get(file_task_id)
            if file_task is not None:
                file_task.source_row_count = source_row_count
                file_task.transcode_error_count = transcode_error_count

    async def reset_file_tasks(
        self,
        node_id: str,
        expected: FileTaskStatus,
        status: FileTaskStatus,
    ) -> int:
        async with self._lock:
            reset = 0
            for file_task in self._file_tasks.values():
                if file_task.node_id == node_id and file_task.status == expected:
                    file_task.status = status
                    reset += 1
            return reset

    async def sum_source_rows(self, job_id: int, table_name: str) -> int:
        batch_ids = self._batch_ids_for_table(job_id, table_name)
        return sum(
            file_task.source_row_count
            for file_task in self._file_tasks.values()
            if file_task.batch_id in batch_ids
        )

    async def create_split(self, file_task: FileTask, split: NewSplit) -> Split:
        async with self._lock:
            record = Split(
                id=next(self._split_ids),
                job_id=file_task.job_id,
                batch_id=file_task.batch_id,
                file_task_id=file_task.id,
                split_file_path=split.split_file_path,
                start_row_no=split.start_row_no,
                row_count=split.row_count,
                node_id=file_task.node_id,
            )
            self._splits[record.id] = record
            return replace(record)

    async def get_split(self, split_id: int) -> Split | None:
        split = self._splits.get(split_id)
        return None if split is None else replace(split)

    async def list_splits(self, file_task_id: int) -> list[Split]:
        return [
            replace(split)
            for split in sorted(self._splits.values(), key=lambda item: item.start_row_no)
            if split.file_task_id == file_task_id
        ]

    async def find_splits_by_status(
        self,
        status: SplitStatus,
        *,
        node_id: str,
        limit: int,
        exclude_job_ids: Collection[int] = (),
    ) -> list[Split]:
        matches = [
            replace(split)
            for split in sorted(self._splits.values(), key=lambda item: item.id)
            if split.status == status
            and split.node_id == node_id
            and split.job_id not in exclude_job_ids
            and self._file_task_dispatches_splits(split.file_task_id)
        ]
        return matches[: max(limit, 0)]

    async def update_split_status(
        self,
        split_id: int,
        expected: SplitStatus,
        status: SplitStatus,
        *,
        error_message: str | None = None,
    ) -> bool:
        async with self._lock:
            split = self._splits.get(split_id)
            if split is None or split.status != expected:
                return False
            split.status = status
            split.error_message = error_message
            return True

    async def reset_splits(self, node_id: str, expected: SplitStatus, status: SplitStatus) -> int:
        async with self._lock:
            reset = 0
            for split in self._splits.values():
                if split.node_id == node_id and split.status == expected:
                    split.status = status
                    reset += 1
            return reset

    async def discard_splits(self, file_task_id: int) -> list[Split] | None:
        async with self._lock:
            splits = [
                split for split in self._splits.values() if split.file_task_id == file_task_id
            ]
            if any(split.status in SPLIT_BUSY_STATES for split in splits):
                return None
            for split in splits:
                del self._splits[split.id]
            return sorted(splits, key=lambda item: item.start_row_no)

    async def sum_split_rows(self, job_id: int, table_name: str) -> int:
        batch_ids = self._batch_ids_for_table(job_id, table_name)
        return sum(split.row_count for split in self._splits.values() if split.batch_id in batch_ids)

    async def close(self) -> None:
        return None

    def _file_task_dispatches_splits(self, file_task_id: int) -> bool:
        file_task = self._file_tasks.get(file_task_id)
        return file_task is not None and file_task.status in FILE_TASK_SPLIT_DISPATCH_STATES

    def _batch_ids_for_table(self, job_id: int, table_name: str) -> set[int]:
        return {
            batch.id
            for batch in self._batches.values()
            if batch.job_id == job_id and batch.table_name == table_name
        }


__all__ = ["InMemoryMigrationRepository"]
