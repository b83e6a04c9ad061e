"""Polling dispatcher that hands eligible tasks to the stage worker pools."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from contextlib import suppress
from dataclasses import dataclass

from bigcsv_migrator.application.services.load_service import LoadService
from bigcsv_migrator.application.services.state_gateway import StateGateway
from bigcsv_migrator.application.services.transcode_service import TranscodeService
from bigcsv_migrator.application.services.verify_service import VerifyService
from bigcsv_migrator.domain.ports import MigrationRepository
from bigcsv_migrator.domain.statuses import FileTaskStatus, SplitStatus, TaskOutcome
from bigcsv_migrator.infrastructure.runtime import (
    BoundedWorkerPool,
    JobControl,
    TaskLock,
    file_task_key,
    split_key,
)

logger = logging.getLogger(__name__)

TaskRunner = Callable[[int], Awaitable[TaskOutcome]]


@dataclass(slots=True, frozen=True)
class DispatchSummary:
    """Counts of work submitted (or finished, for batches) in one cycle."""

    transcode: int = 0
    load: int = 0
    verify: int = 0
    finished_batches: int = 0

    @property
    def submitted(self) -> int:
        return self.transcode + self.load + self.verify


class Dispatcher:
    """Scan the status store on a fixed interval and submit eligible tasks.

    A cycle never waits for a submitted task. The task lock is taken before
    submission and released when the worker finishes; the worker's own
    conditional status transition is the actual claim.
    """

    def __init__(
        self,
        *,
        repository: MigrationRepository,
        state_gateway: StateGateway,
        task_lock: TaskLock,
        job_control: JobControl,
        transcode_service: TranscodeService,
        load_service: LoadService,
        verify_service: VerifyService,
        transcode_pool: BoundedWorkerPool,
        load_pool: BoundedWorkerPool,
        verify_pool: BoundedWorkerPool,
        node_id: str,
        poll_interval_seconds: float = 2.0,
        transcode_fetch_limit: int = 5,
        load_fetch_limit: int = 20,
        verify_fetch_limit: int = 20,
    ) -> None:
        self._repository = repository
        self._state_gateway = state_gateway
        self._task_lock = task_lock
        self._job_control = job_control
        self._transcode_service = transcode_service
        self._load_service = load_service
        self._verify_service = verify_service
        self._transcode_pool = transcode_pool
        self._load_pool = load_pool
        self._verify_pool = verify_pool
        self._node_id = node_id
        self._poll_interval_seconds = max(poll_interval_seconds, 0.01)
        self._transcode_fetch_limit = max(transcode_fetch_limit, 1)
        self._load_fetch_limit = max(load_fetch_limit, 1)
        self._verify_fetch_limit = max(verify_fetch_limit, 1)

        self._task: asyncio.Task[None] | None = None
        self._wake_event = asyncio.Event()
        self._stopping = asyncio.Event()
        self._lifecycle_lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the dispatch loop if not already running."""

        async with self._lifecycle_lock:
            if self.running:
                return
            self._stopping.clear()
            self._wake_event.set()
            self._task = asyncio.create_task(self._run_loop(), name="migration-dispatcher")
            logger.info("Dispatcher started on node '%s'.", self._node_id)

    async def stop(self) -> None:
        """Stop the loop and cancel in-flight workers.

        Cancelled tasks keep their in-flight status and are reset by the next
        startup recovery.
        """

        async with self._lifecycle_lock:
            task = self._task
            self._task = None
            if task is not None:
                self._stopping.set()
                self._wake_event.set()
                task.cancel()
        if task is not None:
            with suppress(asyncio.CancelledError):
                await task
        for pool in (self._transcode_pool, self._load_pool, self._verify_pool):
            await pool.shutdown()
        logger.info("Dispatcher stopped on node '%s'.", self._node_id)

    def wake(self) -> None:
        """Run the next cycle immediately."""

        self._wake_event.set()

    async def wait_idle(self) -> None:
        """Wait until every submitted worker finished."""

        for pool in (self._transcode_pool, self._load_pool, self._verify_pool):
            await pool.wait_idle()

    async def dispatch_once(self) -> DispatchSummary:
        """Run one dispatch cycle."""

        self._job_control.replace(await self._repository.list_inactive_job_ids())
        stopped_jobs = self._job_control.stopped_job_ids()

        transcode = 0
        for file_task in await self._repository.find_file_tasks_by_status(
            FileTaskStatus.NEW,
            node_id=self._node_id,
            limit=self._transcode_fetch_limit,
            exclude_job_ids=stopped_jobs,
        ):
            if self._submit(
                self._transcode_pool,
                file_task_key(file_task.id),
                self._transcode_service.execute,
                file_task.id,
            ):
                transcode += 1

        load = await self._submit_splits(
            SplitStatus.WAIT_LOAD,
            self._load_pool,
            self._load_service.execute,
            self._load_fetch_limit,
            stopped_jobs,
        )
        verify = await self._submit_splits(
            SplitStatus.WAIT_VERIFY,
            self._verify_pool,
            self._verify_service.execute,
            self._verify_fetch_limit,
            stopped_jobs,
        )
        finished_batches = await self._state_gateway.rollup_batches(self._node_id)
        summary = DispatchSummary(
            transcode=transcode,
            load=load,
            verify=verify,
            finished_batches=finished_batches,
        )
        if summary.submitted:
            logger.debug(
                "Dispatch cycle submitted transcode=%s load=%s verify=%s.",
                transcode,
                load,
                verify,
            )
        return summary

    async def _submit_splits(
        self,
        status: SplitStatus,
        pool: BoundedWorkerPool,
        runner: TaskRunner,
        limit: int,
        stopped_jobs: frozenset[int],
    ) -> int:
        submitted = 0
        for split in await self._repository.find_splits_by_status(
            status,
            node_id=self._node_id,
            limit=limit,
            exclude_job_ids=stopped_jobs,
        ):
            if self._submit(pool, split_key(split.id), runner, split.id):
                submitted += 1
        return submitted

    def _submit(
        self,
        pool: BoundedWorkerPool,
        lock_key: str,
        runner: TaskRunner,
        task_id: int,
    ) -> bool:
        if not self._task_lock.try_acquire(lock_key):
            return False

        async def run() -> None:
            try:
                outcome = await runner(task_id)
                logger.debug("%s finished with %s.", lock_key, outcome)
            finally:
                self._task_lock.release(lock_key)

        try:
            pool.submit(lock_key, run)
        except Exception:
            self._task_lock.release(lock_key)
            raise
        return True

    async def _run_loop(self) -> None:
        while not self._stopping.is_set():
            try:
                await self.dispatch_once()
            except Exception:
                logger.exception("Dispatch cycle failed.")

            self._wake_event.clear()
            try:
                await asyncio.wait_for(
                    self._wake_event.wait(),
                    timeout=self._poll_interval_seconds,
                )
            except TimeoutError:
                pass


__all__ = ["DispatchSummary", "Dispatcher", "TaskRunner"]
