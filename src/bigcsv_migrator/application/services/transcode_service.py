"""Transcode engine: legacy source file to UTF-8 split files."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from bigcsv_migrator.application.services.state_gateway import StateGateway
from bigcsv_migrator.application.services.transcode_session import TranscodeSession
from bigcsv_migrator.domain.entities import Batch, FileTask, MigrationJob
from bigcsv_migrator.domain.errors import NotFoundError
from bigcsv_migrator.domain.ports import MigrationRepository, TargetDatabase
from bigcsv_migrator.domain.statuses import FileTaskStatus, TaskOutcome
from bigcsv_migrator.infrastructure.files import (
    OutputLayout,
    SourceFormat,
    read_ddl,
    remove_file,
)
from bigcsv_migrator.infrastructure.runtime import JobControl

logger = logging.getLogger(__name__)


class TranscodeService:
    """Run the transcode pass of one FileTask."""

    def __init__(
        self,
        *,
        repository: MigrationRepository,
        state_gateway: StateGateway,
        target: TargetDatabase,
        job_control: JobControl,
        source_format: SourceFormat,
        output_dir: str | Path,
        split_rows: int = 500_000,
        step_rows: int = 5_000,
    ) -> None:
        self._repository = repository
        self._state_gateway = state_gateway
        self._target = target
        self._job_control = job_control
        self._source_format = source_format
        self._output_dir = Path(output_dir)
        self._split_rows = max(1, split_rows)
        self._step_rows = max(1, step_rows)

    def layout_for(self, job: MigrationJob) -> OutputLayout:
        """Return artifact layout of a job."""

        return OutputLayout(job.output_directory or self._output_dir)

    async def execute(self, file_task_id: int) -> TaskOutcome:
        """Claim and transcode one FileTask."""

        if not await self._state_gateway.transition_file_task(
            file_task_id,
            FileTaskStatus.TRANSCODING,
        ):
            return TaskOutcome.SKIPPED

        logger.info("Transcoding FileTask %s.", file_task_id)
        try:
            return await self._transcode(file_task_id)
        except Exception as exc:
            logger.exception("Transcoding FileTask %s failed.", file_task_id)
            await self._fail(file_task_id, f"{type(exc).__name__}: {exc}")
            return TaskOutcome.FAILED

    async def discard_previous_output(
        self,
        job: MigrationJob,
        batch: Batch,
        file_task: FileTask,
    ) -> int | None:
        """Delete splits (records, target rows, files) and the error file of a FileTask.

        Split records go first, in one atomic step, so no worker can claim a
        split whose rows are being removed. Returns None and changes nothing
        while a split of the FileTask is still LOADING or VERIFYING.
        """

        splits = await self._repository.discard_splits(file_task.id)
        if splits is None:
            return None
        layout = self.layout_for(job)
        for split in splits:
            # A split reset from LOADING may hold rows committed before a crash.
            await self._target.delete_split_rows(job, batch.table_name, split.id)
            remove_file(split.split_file_path)
            remove_file(layout.diff_file(job.id, batch.id, split.id))
        remove_file(layout.error_file(job.id, batch.id, file_task.id))
        if splits:
            logger.info("Discarded %s previous splits of FileTask %s.", len(splits), file_task.id)
        return len(splits)

    async def _transcode(self, file_task_id: int) -> TaskOutcome:
        file_task, batch, job = await self._load_context(file_task_id)
        if await self.discard_previous_output(job, batch, file_task) is None:
            await self._state_gateway.release_interrupted_file_task(
                file_task.id,
                "Waiting for splits of a previous attempt to settle.",
            )
            logger.info(
                "FileTask %s deferred: splits of a previous attempt are still in flight.",
                file_task.id,
            )
            return TaskOutcome.SKIPPED
        columns = await asyncio.to_thread(read_ddl, batch.ddl_file_path)

        layout = self.layout_for(job)
        session = TranscodeSession(
            source_path=file_task.source_path,
            column_count=len(columns),
            source_format=self._source_format,
            split_path_for=lambda index: layout.split_file(job.id, batch.id, file_task.id, index),
            error_path=layout.error_file(job.id, batch.id, file_task.id),
            split_rows=self._split_rows,
            should_stop=lambda: self._job_control.should_stop(job.id),
        )
        try:
            await asyncio.to_thread(session.open)
            while True:
                step = await asyncio.to_thread(session.advance, self._step_rows)
                for new_split in step.new_splits:
                    split = await self._repository.create_split(file_task, new_split)
                    logger.info(
                        "FileTask %s produced Split %s (rows %s..%s).",
                        file_task.id,
                        split.id,
                        split.start_row_no,
                        split.start_row_no + split.row_count - 1,
                    )
                await self._repository.update_file_task_progress(file_task.id, step.progress)
                if step.stopped:
                    await self._state_gateway.release_interrupted_file_task(file_task.id)
                    logger.info(
                        "Transcoding FileTask %s stopped after %s rows: job %s is not active.",
                        file_task.id,
                        session.rows_read,
                        job.id,
                    )
                    return TaskOutcome.STOPPED
                if step.finished:
                    break
        finally:
            await asyncio.to_thread(session.close)

        await self._repository.record_transcode_counts(
            file_task.id,
            source_row_count=session.rows_read,
            transcode_error_count=session.error_rows,
        )
        await self._complete(file_task.id, session.splits_closed, session.error_rows)
        logger.info(
            "Transcoded FileTask %s: %s rows read, %s written to %s splits, %s error rows.",
            file_task.id,
            session.rows_read,
            session.rows_written,
            session.splits_closed,
            session.error_rows,
        )
        return TaskOutcome.COMPLETED

    async def _complete(self, file_task_id: int, split_count: int, error_rows: int) -> None:
        message = f"{error_rows} rows routed to the error file." if error_rows else None
        if split_count:
            status = FileTaskStatus.PROCESSING_CHILDS
        elif error_rows:
            status = FileTaskStatus.FINISHED_WITH_ERROR
        else:
            status = FileTaskStatus.FINISHED
        if not await self._state_gateway.transition_file_task(file_task_id, status, message):
            await self._state_gateway.release_interrupted_file_task(file_task_id)
            return
        if status == FileTaskStatus.PROCESSING_CHILDS:
            await self._state_gateway.rollup_file_task(file_task_id)

    async def _fail(self, file_task_id: int, message: str) -> None:
        if not await self._state_gateway.transition_file_task(
            file_task_id,
            FileTaskStatus.FAIL_TRANSCODE,
            message,
        ):
            await self._state_gateway.release_interrupted_file_task(file_task_id)

    async def _load_context(self, file_task_id: int) -> tuple[FileTask, Batch, MigrationJob]:
        file_task = await self._repository.get_file_task(file_task_id)
        if file_task is None:
            raise NotFoundError(f"FileTask {file_task_id} not found.")
        batch = await self._repository.get_batch(file_task.batch_id)
        if batch is None:
            raise NotFoundError(f"Batch {file_task.batch_id} not found.")
        job = await self._repository.get_job(file_task.job_id)
        if job is None:
            raise NotFoundError(f"Job {file_task.job_id} not found.")
        return file_task, batch, job


__all__ = ["TranscodeService"]
