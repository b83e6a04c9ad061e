"""Verify engine: per-split row count and optional content comparison."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Iterator
from contextlib import aclosing
from pathlib import Path
from typing import TypeVar

from bigcsv_migrator.application.services.row_comparator import RowComparator
from bigcsv_migrator.application.services.state_gateway import StateGateway
from bigcsv_migrator.domain.entities import Batch, FileTask, MigrationJob, Split
from bigcsv_migrator.domain.errors import NotFoundError
from bigcsv_migrator.domain.ports import MigrationRepository, TargetDatabase
from bigcsv_migrator.domain.statuses import SplitStatus, TaskOutcome
from bigcsv_migrator.domain.verification import ComparisonOutcome, VerifyStrategy
from bigcsv_migrator.infrastructure.files import (
    DiffWriter,
    OutputLayout,
    SourceFormat,
    iter_source_rows,
    iter_split_rows,
    read_ddl,
    remove_file,
)
from bigcsv_migrator.infrastructure.runtime import JobControl

logger = logging.getLogger(__name__)

T = TypeVar("T")

_FILE_CHUNK_ROWS = 1000


def _take(iterator: Iterator[T], size: int) -> list[T]:
    chunk: list[T] = []
    for item in iterator:
        chunk.append(item)
        if len(chunk) >= size:
            break
    return chunk


async def _iterate_in_thread(iterator: Iterator[T], chunk_rows: int) -> AsyncIterator[T]:
    """Pull a blocking iterator in chunks from a worker thread."""

    try:
        while True:
            chunk = await asyncio.to_thread(_take, iterator, chunk_rows)
            if not chunk:
                return
            for item in chunk:
                yield item
    finally:
        close = getattr(iterator, "close", None)
        if close is not None:
            await asyncio.to_thread(close)


class VerifyService:
    """Verify one loaded split against the target table."""

    def __init__(
        self,
        *,
        repository: MigrationRepository,
        state_gateway: StateGateway,
        target: TargetDatabase,
        job_control: JobControl,
        source_format: SourceFormat,
        output_dir: str | Path,
        verify_content: bool = False,
        strategy: VerifyStrategy = VerifyStrategy.USE_UTF8_SPLIT,
        max_diff_count: int = 1,
        stop_check_rows: int = 1000,
        delete_split_artifacts_on_pass: bool = False,
    ) -> None:
        self._repository = repository
        self._state_gateway = state_gateway
        self._target = target
        self._job_control = job_control
        self._source_format = source_format
        self._output_dir = Path(output_dir)
        self._verify_content = verify_content
        self._strategy = strategy
        self._max_diff_count = max(1, max_diff_count)
        self._stop_check_rows = max(1, stop_check_rows)
        self._delete_split_artifacts_on_pass = delete_split_artifacts_on_pass

    async def execute(self, split_id: int) -> TaskOutcome:
        """Claim and verify one split."""

        if not await self._state_gateway.transition_split(split_id, SplitStatus.VERIFYING):
            return TaskOutcome.SKIPPED

        try:
            split, file_task, batch, job = await self._load_context(split_id)
            failure = await self._verify(split, file_task, batch, job)
        except Exception as exc:
            logger.exception("Verifying Split %s failed.", split_id)
            await self._finish(split_id, SplitStatus.FAIL_VERIFY, f"{type(exc).__name__}: {exc}")
            return TaskOutcome.FAILED

        if failure is None:
            await self._state_gateway.release_interrupted_split(split_id, SplitStatus.VERIFYING)
            logger.info("Verifying Split %s stopped: job %s is not active.", split_id, job.id)
            return TaskOutcome.STOPPED
        if failure:
            logger.warning("Split %s failed verification: %s", split_id, failure)
            await self._finish(split_id, SplitStatus.FAIL_VERIFY, failure)
            return TaskOutcome.FAILED

        logger.info("Split %s passed verification (%s rows).", split_id, split.row_count)
        if await self._finish(split_id, SplitStatus.PASS, None) and (
            self._delete_split_artifacts_on_pass
        ):
            remove_file(split.split_file_path)
        return TaskOutcome.COMPLETED

    async def _verify(
        self,
        split: Split,
        file_task: FileTask,
        batch: Batch,
        job: MigrationJob,
    ) -> str | None:
        """Return "" on success, a failure message, or None when stopped."""

        layout = OutputLayout(job.output_directory or self._output_dir)
        diff_path = layout.diff_file(job.id, batch.id, split.id)
        remove_file(diff_path)

        target_count = await self._target.count_split_rows(job, batch.table_name, split.id)
        if target_count != split.row_count:
            return f"Row count mismatch: split={split.row_count} target={target_count}"
        if not self._verify_content:
            return ""

        outcome = await self._compare_content(split, file_task, batch, job, diff_path)
        if outcome.stopped:
            return None
        if outcome.passed:
            return ""
        return f"{outcome.message} See {diff_path}."

    async def _compare_content(
        self,
        split: Split,
        file_task: FileTask,
        batch: Batch,
        job: MigrationJob,
        diff_path: Path,
    ) -> ComparisonOutcome:
        columns = [column.name for column in await asyncio.to_thread(read_ddl, batch.ddl_file_path)]
        kinds = await self._target.column_kinds(job, batch.table_name, columns)
        source_rows = self._source_rows(split, file_task)

        with DiffWriter(diff_path, self._max_diff_count) as diff_writer:
            comparator = RowComparator(
                column_names=columns,
                column_kinds=kinds,
                diff_writer=diff_writer,
                should_stop=lambda: self._job_control.should_stop(job.id),
                stop_check_rows=self._stop_check_rows,
            )
            async with (
                aclosing(_iterate_in_thread(source_rows, _FILE_CHUNK_ROWS)) as source,
                aclosing(
                    self._target.iter_split_rows(job, batch.table_name, columns, split.id)
                ) as target,
            ):
                return await comparator.compare(source, target)

    def _source_rows(self, split: Split, file_task: FileTask) -> Iterator[list[str]]:
        if self._strategy == VerifyStrategy.USE_SOURCE_FILE:
            if file_task.transcode_error_count == 0:
                return iter_source_rows(
                    file_task.source_path,
                    self._source_format,
                    start_row_no=split.start_row_no,
                    row_count=split.row_count,
                )
            logger.info(
                "FileTask %s has %s error rows; verifying Split %s against its split file.",
                file_task.id,
                file_task.transcode_error_count,
                split.id,
            )
        return iter_split_rows(split.split_file_path)

    async def _finish(self, split_id: int, status: SplitStatus, message: str | None) -> bool:
        if not await self._state_gateway.transition_split(split_id, status, message):
            await self._state_gateway.release_interrupted_split(split_id, SplitStatus.VERIFYING)
            return False
        split = await self._repository.get_split(split_id)
        if split is not None:
            await self._state_gateway.rollup_file_task(split.file_task_id)
        return True

    async def _load_context(self, split_id: int) -> tuple[Split, FileTask, Batch, MigrationJob]:
        split = await self._repository.get_split(split_id)
        if split is None:
            raise NotFoundError(f"Split {split_id} not found.")
        file_task = await self._repository.get_file_task(split.file_task_id)
        if file_task is None:
            raise NotFoundError(f"FileTask {split.file_task_id} not found.")
        batch = await self._repository.get_batch(split.batch_id)
        if batch is None:
            raise NotFoundError(f"Batch {split.batch_id} not found.")
        job = await self._repository.get_job(split.job_id)
        if job is None:
            raise NotFoundError(f"Job {split.job_id} not found.")
        return split, file_task, batch, job


__all__ = ["VerifyService"]
