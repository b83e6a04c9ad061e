from __future__ import annotations

import asyncio

from bigcsv_migrator.application.services import Dispatcher, DispatchSummary
from bigcsv_migrator.domain.statuses import (
    BatchStatus,
    FileTaskStatus,
    JobStatus,
    SplitStatus,
)
from bigcsv_migrator.infrastructure.runtime import BoundedWorkerPool, TaskLock, split_key


def _dispatcher(pipeline, task_lock: TaskLock | None = None) -> Dispatcher:
    return Dispatcher(
        repository=pipeline.repository,
        state_gateway=pipeline.state_gateway,
        task_lock=task_lock or TaskLock(),
        job_control=pipeline.job_control,
        transcode_service=pipeline.transcode_service(split_rows=2),
        load_service=pipeline.load_service(),
        verify_service=pipeline.verify_service(verify_content=True),
        transcode_pool=BoundedWorkerPool("transcode", 1),
        load_pool=BoundedWorkerPool("load", 2),
        verify_pool=BoundedWorkerPool("verify", 2),
        node_id=pipeline.node_id,
        poll_interval_seconds=0.01,
    )


async def _drain(dispatcher: Dispatcher, cycles: int = 10) -> list[DispatchSummary]:
    summaries = []
    for _ in range(cycles):
        summary = await dispatcher.dispatch_once()
        summaries.append(summary)
        await dispatcher.wait_idle()
        if not summary.submitted and not summary.finished_batches:
            break
    return summaries


def test_dispatcher_drives_file_through_every_stage(pipeline) -> None:
    async def scenario():
        _, batch, file_task = await pipeline.register(["1,a", "2,b", "3,c"])
        summaries = await _drain(_dispatcher(pipeline))
        return (
            summaries,
            await pipeline.repository.get_batch(batch.id),
            await pipeline.repository.get_file_task(file_task.id),
            await pipeline.repository.list_splits(file_task.id),
        )

    summaries, batch, file_task, splits = asyncio.run(scenario())

    assert [summary.transcode for summary in summaries[:1]] == [1]
    assert sum(summary.finished_batches for summary in summaries) == 1
    assert batch.status == BatchStatus.FINISHED
    assert file_task.status == FileTaskStatus.FINISHED
    assert [split.status for split in splits] == [SplitStatus.PASS, SplitStatus.PASS]
    assert len(pipeline.target.rows("sales.orders")) == 3


def test_dispatcher_ignores_stopped_jobs(pipeline) -> None:
    async def scenario():
        job, _, file_task = await pipeline.register(["1,a"])
        await pipeline.repository.update_job_status(job.id, JobStatus.STOPPED)
        summary = await _dispatcher(pipeline).dispatch_once()
        return summary, job, await pipeline.repository.get_file_task(file_task.id)

    summary, job, file_task = asyncio.run(scenario())

    assert summary.submitted == 0
    assert pipeline.job_control.should_stop(job.id)
    assert file_task.status == FileTaskStatus.NEW


def test_dispatcher_skips_tasks_already_locked(pipeline) -> None:
    async def scenario():
        _, _, file_task = await pipeline.register(["1,a"])
        await pipeline.transcode_service().execute(file_task.id)
        split = (await pipeline.repository.list_splits(file_task.id))[0]
        task_lock = TaskLock()
        task_lock.try_acquire(split_key(split.id))
        dispatcher = _dispatcher(pipeline, task_lock)
        summary = await dispatcher.dispatch_once()
        await dispatcher.wait_idle()
        return summary, await pipeline.repository.get_split(split.id)

    summary, split = asyncio.run(scenario())

    assert summary.load == 0
    assert split.status == SplitStatus.WAIT_LOAD


def test_dispatcher_loop_runs_until_stopped(pipeline) -> None:
    async def scenario():
        _, batch, _ = await pipeline.register(["1,a"])
        dispatcher = _dispatcher(pipeline)
        await dispatcher.start()
        for _ in range(200):
            current = await pipeline.repository.get_batch(batch.id)
            if current is not None and current.status == BatchStatus.FINISHED:
                break
            await asyncio.sleep(0.01)
        await dispatcher.stop()
        return dispatcher.running, await pipeline.repository.get_batch(batch.id)

    running, batch = asyncio.run(scenario())

    assert running is False
    assert batch.status == BatchStatus.FINISHED


def test_splits_of_interrupted_transcode_are_not_dispatched(pipeline) -> None:
    async def scenario():
        _, batch, file_task = await pipeline.register(["1,a", "2,b", "3,c"])
        await pipeline.transcode_service(split_rows=2).execute(file_task.id)
        stale = await pipeline.repository.list_splits(file_task.id)
        await pipeline.repository.update_file_task_status(
            file_task.id, FileTaskStatus.PROCESSING_CHILDS, FileTaskStatus.TRANSCODING
        )
        await pipeline.state_gateway.recover_in_flight(pipeline.node_id)
        summaries = await _drain(_dispatcher(pipeline))
        return (
            stale,
            summaries,
            await pipeline.repository.get_file_task(file_task.id),
            await pipeline.repository.list_splits(file_task.id),
            pipeline.target.rows(batch.table_name),
        )

    stale, summaries, file_task, fresh, rows = asyncio.run(scenario())

    assert (summaries[0].transcode, summaries[0].load) == (1, 0)
    assert file_task.status == FileTaskStatus.FINISHED
    assert {split.id for split in stale}.isdisjoint(split.id for split in fresh)
    assert [row.split_id for row in rows] == [fresh[0].id, fresh[0].id, fresh[1].id]
