"""Legal status transitions, rollups and crash recovery."""

from __future__ import annotations

import logging

from bigcsv_migrator.domain.ports import MigrationRepository
from bigcsv_migrator.domain.statuses import (
    FILE_TASK_IN_FLIGHT_RESETS,
    FILE_TASK_ROLLUP_STATES,
    SPLIT_FAILED_STATES,
    SPLIT_IN_FLIGHT_RESETS,
    SPLIT_RETRY_RESETS,
    BatchStatus,
    FileTaskStatus,
    SplitStatus,
    can_transition_file_task,
    can_transition_split,
    rollup_file_task_status,
)

logger = logging.getLogger(__name__)


class StateGateway:
    """Single place where task statuses change.

    Every write is one conditional update on the status read just before, so a
    racing worker (on this node or another) loses instead of overwriting.
    """

    def __init__(self, repository: MigrationRepository) -> None:
        self._repository = repository

    async def transition_file_task(
        self,
        file_task_id: int,
        status: FileTaskStatus,
        message: str | None = None,
    ) -> bool:
        """Move a FileTask to `status` if the job is active and the move is legal."""

        file_task = await self._repository.get_file_task(file_task_id)
        if file_task is None:
            logger.warning("FileTask %s not found for transition to %s.", file_task_id, status)
            return False
        if not await self._job_is_active(file_task.job_id):
            logger.debug(
                "Refused FileTask %s -> %s: job %s is not active.",
                file_task_id,
                status,
                file_task.job_id,
            )
            return False
        if not can_transition_file_task(file_task.status, status):
            logger.debug(
                "Refused illegal FileTask %s transition %s -> %s.",
                file_task_id,
                file_task.status,
                status,
            )
            return False
        return await self._repository.update_file_task_status(
            file_task_id,
            file_task.status,
            status,
            error_message=message,
        )

    async def transition_split(
        self,
        split_id: int,
        status: SplitStatus,
        message: str | None = None,
    ) -> bool:
        """Move a Split to `status` if the job is active and the move is legal."""

        split = await self._repository.get_split(split_id)
        if split is None:
            logger.warning("Split %s not found for transition to %s.", split_id, status)
            return False
        if not await self._job_is_active(split.job_id):
            logger.debug(
                "Refused Split %s -> %s: job %s is not active.",
                split_id,
                status,
                split.job_id,
            )
            return False
        if not can_transition_split(split.status, status):
            logger.debug(
                "Refused illegal Split %s transition %s -> %s.",
                split_id,
                split.status,
                status,
            )
            return False
        return await self._repository.update_split_status(
            split_id,
            split.status,
            status,
            error_message=message,
        )

    async def rollup_file_task(self, file_task_id: int) -> FileTaskStatus | None:
        """Recompute a parked FileTask status from its splits.

        Returns the status written, or None when nothing changed.
        """

        file_task = await self._repository.get_file_task(file_task_id)
        if file_task is None or file_task.status not in FILE_TASK_ROLLUP_STATES:
            return None
        splits = await self._repository.list_splits(file_task_id)
        computed = rollup_file_task_status([split.status for split in splits])
        if computed is None or computed == file_task.status:
            return None
        message = None
        if computed == FileTaskStatus.FINISHED_WITH_ERROR:
            failed = sum(1 for split in splits if split.status in SPLIT_FAILED_STATES)
            message = f"{failed} of {len(splits)} splits failed."
        if not await self.transition_file_task(file_task_id, computed, message):
            return None
        logger.info("FileTask %s rolled up to %s.", file_task_id, computed)
        return computed

    async def rollup_batches(self, node_id: str) -> int:
        """Finish PROCESSING batches whose file tasks are all FINISHED."""

        finished = 0
        for batch in await self._repository.find_batches_by_status(BatchStatus.PROCESSING, node_id):
            remaining = await self._repository.count_file_tasks_not_in_status(
                batch.id,
                FileTaskStatus.FINISHED,
            )
            if remaining:
                continue
            if await self._repository.update_batch_status(
                batch.id,
                BatchStatus.PROCESSING,
                BatchStatus.FINISHED,
            ):
                finished += 1
                logger.info("Batch %s (%s) finished.", batch.id, batch.table_name)
        return finished

    async def recover_in_flight(self, node_id: str) -> int:
        """Reset every in-flight task of `node_id` to its waiting status.

        Must run before the dispatcher starts polling.
        """

        reset = 0
        for in_flight, waiting in FILE_TASK_IN_FLIGHT_RESETS.items():
            count = await self._repository.reset_file_tasks(node_id, in_flight, waiting)
            if count:
                logger.warning(
                    "Startup recovery reset %s FileTasks %s -> %s on node '%s'.",
                    count,
                    in_flight,
                    waiting,
                    node_id,
                )
            reset += count
        for in_flight_split, waiting_split in SPLIT_IN_FLIGHT_RESETS.items():
            count = await self._repository.reset_splits(node_id, in_flight_split, waiting_split)
            if count:
                logger.warning(
                    "Startup recovery reset %s Splits %s -> %s on node '%s'.",
                    count,
                    in_flight_split,
                    waiting_split,
                    node_id,
                )
            reset += count
        return reset

    async def release_interrupted_file_task(
        self,
        file_task_id: int,
        message: str = "Interrupted by job stop.",
    ) -> bool:
        """Return a stopped TRANSCODING FileTask to NEW, ignoring the job gate."""

        return await self._repository.update_file_task_status(
            file_task_id,
            FileTaskStatus.TRANSCODING,
            FILE_TASK_IN_FLIGHT_RESETS[FileTaskStatus.TRANSCODING],
            error_message=message,
        )

    async def release_interrupted_split(self, split_id: int, in_flight: SplitStatus) -> bool:
        """Return a stopped LOADING/VERIFYING Split to its waiting status."""

        waiting = SPLIT_IN_FLIGHT_RESETS.get(in_flight)
        if waiting is None:
            return False
        return await self._repository.update_split_status(
            split_id,
            in_flight,
            waiting,
            error_message="Interrupted by job stop.",
        )

    async def reset_split_for_retry(self, split_id: int) -> bool:
        """Move a failed Split back to its waiting status and re-open its FileTask."""

        split = await self._repository.get_split(split_id)
        if split is None:
            return False
        waiting = SPLIT_RETRY_RESETS.get(split.status)
        if waiting is None:
            return False
        if not await self.transition_split(split_id, waiting):
            return False
        await self.rollup_file_task(split.file_task_id)
        return True

    async def _job_is_active(self, job_id: int) -> bool:
        job = await self._repository.get_job(job_id)
        return job is not None and job.is_active


__all__ = ["StateGateway"]
