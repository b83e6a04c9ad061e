"""Load engine: idempotent delete-by-split-id plus bulk load."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from pathlib import Path

from bigcsv_migrator.application.services.state_gateway import StateGateway
from bigcsv_migrator.domain.entities import Batch, MigrationJob, Split
from bigcsv_migrator.domain.errors import NotFoundError
from bigcsv_migrator.domain.ports import MigrationRepository, TargetDatabase
from bigcsv_migrator.domain.statuses import SplitStatus, TaskOutcome
from bigcsv_migrator.infrastructure.files import OutputLayout, read_ddl, remove_file
from bigcsv_migrator.infrastructure.runtime import JobControl

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class LoadService:
    """Load one split file into the target table."""

    def __init__(
        self,
        *,
        repository: MigrationRepository,
        state_gateway: StateGateway,
        target: TargetDatabase,
        job_control: JobControl,
        output_dir: str | Path,
        max_retries: int = 0,
        retry_base_delay_seconds: float = 2.0,
        pre_load_sql: Sequence[str] = (),
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._repository = repository
        self._state_gateway = state_gateway
        self._target = target
        self._job_control = job_control
        self._output_dir = Path(output_dir)
        self._max_retries = max(0, max_retries)
        self._retry_base_delay_seconds = max(0.0, retry_base_delay_seconds)
        self._pre_load_sql = list(pre_load_sql)
        self._sleep = sleep

    async def execute(self, split_id: int) -> TaskOutcome:
        """Claim and load one split."""

        if not await self._state_gateway.transition_split(split_id, SplitStatus.LOADING):
            return TaskOutcome.SKIPPED

        try:
            split, batch, job = await self._load_context(split_id)
            layout = OutputLayout(job.output_directory or self._output_dir)
            remove_file(layout.diff_file(job.id, batch.id, split.id))
            columns = [column.name for column in await asyncio.to_thread(read_ddl, batch.ddl_file_path)]
            loaded = await self._load_with_retries(job, batch, columns, split)
        except Exception as exc:
            logger.exception("Loading Split %s failed.", split_id)
            await self._finish(split_id, SplitStatus.FAIL_LOAD, f"{type(exc).__name__}: {exc}")
            return TaskOutcome.FAILED

        if loaded is None:
            await self._state_gateway.release_interrupted_split(split_id, SplitStatus.LOADING)
            logger.info("Loading Split %s stopped: job %s is not active.", split_id, split.job_id)
            return TaskOutcome.STOPPED

        logger.info("Loaded Split %s into %s (%s rows).", split_id, batch.table_name, loaded)
        await self._finish(split_id, SplitStatus.WAIT_VERIFY, None)
        return TaskOutcome.COMPLETED

    async def _load_with_retries(
        self,
        job: MigrationJob,
        batch: Batch,
        columns: list[str],
        split: Split,
    ) -> int | None:
        attempt = 0
        while True:
            if self._job_control.should_stop(job.id):
                return None
            try:
                await self._target.execute(job, self._pre_load_sql)
                return await self._target.replace_split_rows(job, batch.table_name, columns, split)
            except Exception as exc:
                if attempt >= self._max_retries:
                    raise
                delay = self._retry_base_delay_seconds * (2**attempt)
                attempt += 1
                logger.warning(
                    "Load of Split %s failed (attempt %s/%s), retrying in %.1fs: %s",
                    split.id,
                    attempt,
                    self._max_retries + 1,
                    delay,
                    exc,
                )
                await self._sleep(delay)

    async def _finish(self, split_id: int, status: SplitStatus, message: str | None) -> None:
        if not await self._state_gateway.transition_split(split_id, status, message):
            await self._state_gateway.release_interrupted_split(split_id, SplitStatus.LOADING)
            return
        split = await self._repository.get_split(split_id)
        if split is not None and status == SplitStatus.FAIL_LOAD:
            await self._state_gateway.rollup_file_task(split.file_task_id)

    async def _load_context(self, split_id: int) -> tuple[Split, Batch, MigrationJob]:
        split = await self._repository.get_split(split_id)
        if split is None:
            raise NotFoundError(f"Split {split_id} not found.")
        batch = await self._repository.get_batch(split.batch_id)
        if batch is None:
            raise NotFoundError(f"Batch {split.batch_id} not found.")
        job = await self._repository.get_job(split.job_id)
        if job is None:
            raise NotFoundError(f"Job {split.job_id} not found.")
        return split, batch, job


__all__ = ["LoadService"]
