"""Operator-facing use cases behind the management API."""

from __future__ import annotations

import asyncio
import logging
from itertools import islice
from pathlib import Path

from bigcsv_migrator.application.services.global_verify_service import GlobalVerifyService
from bigcsv_migrator.application.services.state_gateway import StateGateway
from bigcsv_migrator.domain.entities import Batch, FileTask, MigrationJob, Split
from bigcsv_migrator.domain.errors import ConflictError, NotFoundError
from bigcsv_migrator.domain.management_models import (
    ArtifactPreviewResponse,
    BatchListResponse,
    BatchResponse,
    FileTaskListResponse,
    FileTaskResponse,
    GlobalVerifyResponse,
    JobCreateRequest,
    JobListResponse,
    JobResponse,
    OwnerKind,
    OwnerResponse,
    SplitListResponse,
    SplitResponse,
    TableVerifyResponse,
)
from bigcsv_migrator.domain.ports import MigrationRepository, TargetDatabase
from bigcsv_migrator.domain.statuses import (
    FILE_TASK_RETRANSCODE_STATES,
    FILE_TASK_ROLLUP_STATES,
    FILE_TASK_SETTLED_STATES,
    BatchStatus,
    FileTaskStatus,
    JobStatus,
)
from bigcsv_migrator.infrastructure.files import OutputLayout
from bigcsv_migrator.infrastructure.runtime import JobControl

logger = logging.getLogger(__name__)


def _read_preview(path: Path, max_lines: int) -> ArtifactPreviewResponse:
    if not path.is_file():
        return ArtifactPreviewResponse(path=str(path), exists=False)
    with path.open("r", encoding="utf-8", errors="replace", newline="") as handle:
        lines = [line.rstrip("\r\n") for line in islice(handle, max_lines + 1)]
    return ArtifactPreviewResponse(
        path=str(path),
        exists=True,
        lines=lines[:max_lines],
        truncated=len(lines) > max_lines,
    )


class ManagementService:
    """Job lifecycle, listings, manual retries and artifact previews."""

    def __init__(
        self,
        *,
        repository: MigrationRepository,
        state_gateway: StateGateway,
        target: TargetDatabase,
        job_control: JobControl,
        global_verify_service: GlobalVerifyService,
        node_id: str,
        output_dir: str | Path,
        preview_max_lines: int = 200,
    ) -> None:
        self._repository = repository
        self._state_gateway = state_gateway
        self._target = target
        self._job_control = job_control
        self._global_verify_service = global_verify_service
        self._node_id = node_id
        self._output_dir = Path(output_dir)
        self._preview_max_lines = max(1, preview_max_lines)

    @property
    def node_id(self) -> str:
        """Return this node's id."""

        return self._node_id

    async def create_job(self, request: JobCreateRequest) -> JobResponse:
        """Create an ACTIVE job."""

        job = await self._repository.create_job(
            name=request.name,
            source_directory=request.source_directory,
            target_dsn=request.target_dsn,
            target_user=request.target_user,
            target_password=request.target_password,
            output_directory=request.output_directory,
        )
        logger.info("Created job %s '%s' watching %s.", job.id, job.name, job.source_directory)
        return self._to_job_response(job)

    async def list_jobs(self) -> JobListResponse:
        jobs = await self._repository.list_jobs()
        return JobListResponse(
            node_id=self._node_id,
            jobs=[self._to_job_response(job) for job in jobs],
        )

    async def get_job(self, job_id: int) -> JobResponse:
        return self._to_job_response(await self._get_job_or_raise(job_id))

    async def delete_job(self, job_id: int) -> None:
        """Delete a job with all its records and close its target pool.

        Workers still running for the job see it as stopped and give up.
        """

        await self._get_job_or_raise(job_id)
        self._job_control.mark_stopped(job_id)
        if not await self._repository.delete_job(job_id):
            raise NotFoundError(f"Job {job_id} not found.")
        await self._target.release_job(job_id)
        logger.info("Deleted job %s.", job_id)

    async def stop_job(self, job_id: int) -> JobResponse:
        return await self._set_job_status(job_id, JobStatus.STOPPED)

    async def pause_job(self, job_id: int) -> JobResponse:
        return await self._set_job_status(job_id, JobStatus.PAUSED)

    async def resume_job(self, job_id: int) -> JobResponse:
        return await self._set_job_status(job_id, JobStatus.ACTIVE)

    async def list_batches(self, job_id: int) -> BatchListResponse:
        await self._get_job_or_raise(job_id)
        batches = await self._repository.list_batches(job_id)
        return BatchListResponse(
            job_id=job_id,
            batches=[self._to_batch_response(batch) for batch in batches],
        )

    async def close_batch(self, batch_id: int) -> BatchResponse:
        """Finish a PROCESSING batch by hand.

        Automatic rollup only finishes batches whose files all reached FINISHED;
        this accepts files that ended with errors. Refused while any file task
        can still be picked up by a worker.
        """

        batch = await self._get_batch_or_raise(batch_id)
        unsettled = [
            str(file_task.id)
            for file_task in await self._repository.list_file_tasks(batch_id)
            if file_task.status not in FILE_TASK_SETTLED_STATES
        ]
        if unsettled:
            raise ConflictError(
                f"Batch {batch_id} still has file tasks in progress: {', '.join(unsettled)}."
            )
        if not await self._repository.update_batch_status(
            batch_id,
            BatchStatus.PROCESSING,
            BatchStatus.FINISHED,
        ):
            raise ConflictError(f"Batch {batch_id} is {batch.status}; it cannot be closed.")
        logger.info("Batch %s (%s) closed by operator.", batch_id, batch.table_name)
        return self._to_batch_response(await self._get_batch_or_raise(batch_id))

    async def list_file_tasks(self, batch_id: int) -> FileTaskListResponse:
        await self._get_batch_or_raise(batch_id)
        file_tasks = await self._repository.list_file_tasks(batch_id)
        return FileTaskListResponse(
            batch_id=batch_id,
            file_tasks=[self._to_file_task_response(file_task) for file_task in file_tasks],
        )

    async def list_splits(self, file_task_id: int) -> SplitListResponse:
        await self._get_file_task_or_raise(file_task_id)
        splits = await self._repository.list_splits(file_task_id)
        return SplitListResponse(
            file_task_id=file_task_id,
            splits=[self._to_split_response(split) for split in splits],
        )

    async def retry_split(self, split_id: int) -> SplitResponse:
        """Return a FAIL_LOAD/FAIL_VERIFY split to its waiting status."""

        split = await self._get_split_or_raise(split_id)
        await self._ensure_job_active(split.job_id)
        file_task = await self._get_file_task_or_raise(split.file_task_id)
        if file_task.status not in FILE_TASK_ROLLUP_STATES:
            raise ConflictError(
                f"Split {split_id} belongs to FileTask {file_task.id} in status "
                f"{file_task.status}; re-transcode the file instead."
            )
        if not await self._state_gateway.reset_split_for_retry(split_id):
            raise ConflictError(f"Split {split_id} in status {split.status} cannot be retried.")
        logger.info("Split %s reset for retry by operator.", split_id)
        return self._to_split_response(await self._get_split_or_raise(split_id))

    async def retry_transcode(self, file_task_id: int) -> FileTaskResponse:
        """Return a failed FileTask to NEW so the whole file is transcoded again."""

        file_task = await self._get_file_task_or_raise(file_task_id)
        await self._ensure_job_active(file_task.job_id)
        if file_task.status not in FILE_TASK_RETRANSCODE_STATES or not (
            await self._state_gateway.transition_file_task(
                file_task_id,
                FileTaskStatus.NEW,
                "Re-transcode requested by operator.",
            )
        ):
            raise ConflictError(
                f"FileTask {file_task_id} in status {file_task.status} cannot be re-transcoded."
            )
        logger.info("FileTask %s reset for re-transcode by operator.", file_task_id)
        return self._to_file_task_response(await self._get_file_task_or_raise(file_task_id))

    async def preview_errors(self, file_task_id: int) -> ArtifactPreviewResponse:
        """Return the head of a FileTask's transcode error file."""

        file_task = await self._get_file_task_or_raise(file_task_id)
        job = await self._get_job_or_raise(file_task.job_id)
        path = self._layout(job).error_file(job.id, file_task.batch_id, file_task.id)
        return await asyncio.to_thread(_read_preview, path, self._preview_max_lines)

    async def preview_diff(self, split_id: int) -> ArtifactPreviewResponse:
        """Return the head of a split's verification diff file."""

        split = await self._get_split_or_raise(split_id)
        job = await self._get_job_or_raise(split.job_id)
        path = self._layout(job).diff_file(job.id, split.batch_id, split.id)
        return await asyncio.to_thread(_read_preview, path, self._preview_max_lines)

    async def find_owner(self, kind: OwnerKind, record_id: int) -> OwnerResponse:
        """Return the node owning a batch, file task or split."""

        record: Batch | FileTask | Split
        if kind == OwnerKind.BATCH:
            record = await self._get_batch_or_raise(record_id)
        elif kind == OwnerKind.FILE_TASK:
            record = await self._get_file_task_or_raise(record_id)
        else:
            record = await self._get_split_or_raise(record_id)
        return OwnerResponse(
            kind=kind,
            id=record_id,
            node_id=record.node_id,
            local=record.node_id == self._node_id,
        )

    async def global_verify(self, job_id: int) -> GlobalVerifyResponse:
        results = await self._global_verify_service.verify_job(job_id)
        return GlobalVerifyResponse(
            job_id=job_id,
            tables=[
                TableVerifyResponse(
                    table_name=result.table_name,
                    source_rows=result.source_rows,
                    split_rows=result.split_rows,
                    target_rows=result.target_rows,
                    status=result.status,
                    message=result.message,
                )
                for result in results
            ],
        )

    async def _set_job_status(self, job_id: int, status: JobStatus) -> JobResponse:
        await self._get_job_or_raise(job_id)
        if not await self._repository.update_job_status(job_id, status):
            raise NotFoundError(f"Job {job_id} not found.")
        if status == JobStatus.ACTIVE:
            self._job_control.mark_active(job_id)
        else:
            self._job_control.mark_stopped(job_id)
        logger.info("Job %s set to %s.", job_id, status)
        return self._to_job_response(await self._get_job_or_raise(job_id))

    async def _ensure_job_active(self, job_id: int) -> None:
        job = await self._get_job_or_raise(job_id)
        if not job.is_active:
            raise ConflictError(f"Job {job_id} is {job.status}; resume it first.")

    def _layout(self, job: MigrationJob) -> OutputLayout:
        return OutputLayout(job.output_directory or self._output_dir)

    async def _get_job_or_raise(self, job_id: int) -> MigrationJob:
        job = await self._repository.get_job(job_id)
        if job is None:
            raise NotFoundError(f"Job {job_id} not found.")
        return job

    async def _get_batch_or_raise(self, batch_id: int) -> Batch:
        batch = await self._repository.get_batch(batch_id)
        if batch is None:
            raise NotFoundError(f"Batch {batch_id} not found.")
        return batch

    async def _get_file_task_or_raise(self, file_task_id: int) -> FileTask:
        file_task = await self._repository.get_file_task(file_task_id)
        if file_task is None:
            raise NotFoundError(f"FileTask {file_task_id} not found.")
        return file_task

    async def _get_split_or_raise(self, split_id: int) -> Split:
        split = await self._repository.get_split(split_id)
        if split is None:
            raise NotFoundError(f"Split {split_id} not found.")
        return split

    def _to_job_response(self, job: MigrationJob) -> JobResponse:
        return JobResponse(
            id=job.id,
            name=job.name,
            source_directory=job.source_directory,
            target_dsn=job.target_dsn,
            target_user=job.target_user,
            output_directory=job.output_directory,
            status=job.status,
            created_at=job.created_at,
        )

    def _to_batch_response(self, batch: Batch) -> BatchResponse:
        return BatchResponse(
            id=batch.id,
            job_id=batch.job_id,
            signal_file_path=batch.signal_file_path,
            table_name=batch.table_name,
            ddl_file_path=batch.ddl_file_path,
            node_id=batch.node_id,
            status=batch.status,
            created_at=batch.created_at,
        )

    def _to_file_task_response(self, file_task: FileTask) -> FileTaskResponse:
        return FileTaskResponse(
            id=file_task.id,
            job_id=file_task.job_id,
            batch_id=file_task.batch_id,
            source_path=file_task.source_path,
            node_id=file_task.node_id,
            status=file_task.status,
            progress=file_task.progress,
            error_message=file_task.error_message,
            transcode_error_count=file_task.transcode_error_count,
            source_row_count=file_task.source_row_count,
        )

    def _to_split_response(self, split: Split) -> SplitResponse:
        return SplitResponse(
            id=split.id,
            job_id=split.job_id,
            batch_id=split.batch_id,
            file_task_id=split.file_task_id,
            split_file_path=split.split_file_path,
            start_row_no=split.start_row_no,
            row_count=split.row_count,
            node_id=split.node_id,
            status=split.status,
            error_message=split.error_message,
        )


__all__ = ["ManagementService"]
