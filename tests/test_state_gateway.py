from __future__ import annotations

import asyncio

import pytest

from bigcsv_migrator.application.services import StateGateway
from bigcsv_migrator.domain.entities import NewFileTask, NewSplit
from bigcsv_migrator.domain.statuses import (
    BatchStatus,
    FileTaskStatus,
    JobStatus,
    SplitStatus,
    can_transition_file_task,
    can_transition_split,
    rollup_file_task_status,
)
from bigcsv_migrator.infrastructure.repositories import InMemoryMigrationRepository

NODE = "node-a"


async def _seed(repository: InMemoryMigrationRepository, split_count: int = 2):
    job = await repository.create_job(
        name="job",
        source_directory="/data/in",
        target_dsn="postgresql://target/db",
    )
    batch = await repository.create_batch_with_tasks(
        job_id=job.id,
        signal_file_path="/data/in/orders.ok",
        table_name="sales.orders",
        ddl_file_path="/data/in/sales-orders.sql",
        node_id=NODE,
        files=[NewFileTask(source_path="/data/in/orders.csv")],
    )
    assert batch is not None
    file_task = (await repository.list_file_tasks(batch.id))[0]
    splits = [
        await repository.create_split(
            file_task,
            NewSplit(split_file_path=f"/out/{index}.csv", start_row_no=index * 10 + 1, row_count=10),
        )
        for index in range(split_count)
    ]
    return job, batch, file_task, splits


def test_transition_tables_refuse_illegal_moves() -> None:
    assert can_transition_split(SplitStatus.WAIT_LOAD, SplitStatus.LOADING)
    assert not can_transition_split(SplitStatus.WAIT_LOAD, SplitStatus.PASS)
    assert not can_transition_split(SplitStatus.PASS, SplitStatus.WAIT_LOAD)
    assert can_transition_split(SplitStatus.FAIL_VERIFY, SplitStatus.WAIT_VERIFY)
    assert can_transition_file_task(FileTaskStatus.FAIL_TRANSCODE, FileTaskStatus.NEW)
    assert not can_transition_file_task(FileTaskStatus.FINISHED, FileTaskStatus.NEW)
    assert not can_transition_file_task(FileTaskStatus.NEW, FileTaskStatus.FINISHED)


def test_rollup_distribution() -> None:
    assert rollup_file_task_status([]) is None
    assert rollup_file_task_status([SplitStatus.PASS, SplitStatus.LOADING]) == (
        FileTaskStatus.PROCESSING_CHILDS
    )
    assert rollup_file_task_status([SplitStatus.PASS, SplitStatus.FAIL_LOAD]) == (
        FileTaskStatus.FINISHED_WITH_ERROR
    )
    assert rollup_file_task_status([SplitStatus.PASS, SplitStatus.PASS]) == FileTaskStatus.FINISHED


def test_transition_split_applies_legal_move_and_refuses_illegal_one() -> None:
    async def scenario() -> tuple[bool, bool, SplitStatus]:
        repository = InMemoryMigrationRepository()
        gateway = StateGateway(repository)
        _, _, _, splits = await _seed(repository)
        illegal = await gateway.transition_split(splits[0].id, SplitStatus.PASS)
        legal = await gateway.transition_split(splits[0].id, SplitStatus.LOADING)
        split = await repository.get_split(splits[0].id)
        assert split is not None
        return illegal, legal, split.status

    illegal, legal, status = asyncio.run(scenario())

    assert illegal is False
    assert legal is True
    assert status == SplitStatus.LOADING


@pytest.mark.parametrize("job_status", [JobStatus.STOPPED, JobStatus.PAUSED])
def test_job_gate_refuses_transitions_of_inactive_job(job_status: JobStatus) -> None:
    async def scenario() -> tuple[bool, bool, SplitStatus]:
        repository = InMemoryMigrationRepository()
        gateway = StateGateway(repository)
        job, _, file_task, splits = await _seed(repository)
        await repository.update_job_status(job.id, job_status)
        split_moved = await gateway.transition_split(splits[0].id, SplitStatus.LOADING)
        file_task_moved = await gateway.transition_file_task(
            file_task.id, FileTaskStatus.TRANSCODING
        )
        split = await repository.get_split(splits[0].id)
        assert split is not None
        return split_moved, file_task_moved, split.status

    split_moved, file_task_moved, status = asyncio.run(scenario())

    assert split_moved is False
    assert file_task_moved is False
    assert status == SplitStatus.WAIT_LOAD


def test_rollup_finishes_file_task_and_batch_when_all_splits_pass() -> None:
    async def scenario():
        repository = InMemoryMigrationRepository()
        gateway = StateGateway(repository)
        _, batch, file_task, splits = await _seed(repository)
        await repository.update_file_task_status(
            file_task.id, FileTaskStatus.NEW, FileTaskStatus.TRANSCODING
        )
        await repository.update_file_task_status(
            file_task.id, FileTaskStatus.TRANSCODING, FileTaskStatus.PROCESSING_CHILDS
        )
        for split in splits:
            await repository.update_split_status(split.id, SplitStatus.WAIT_LOAD, SplitStatus.PASS)
        rolled = await gateway.rollup_file_task(file_task.id)
        finished_batches = await gateway.rollup_batches(NODE)
        return rolled, finished_batches, await repository.get_batch(batch.id)

    rolled, finished_batches, batch = asyncio.run(scenario())

    assert rolled == FileTaskStatus.FINISHED
    assert finished_batches == 1
    assert batch.status == BatchStatus.FINISHED


def test_rollup_reports_failed_splits_and_leaves_batch_processing() -> None:
    async def scenario():
        repository = InMemoryMigrationRepository()
        gateway = StateGateway(repository)
        _, batch, file_task, splits = await _seed(repository)
        await repository.update_file_task_status(
            file_task.id, FileTaskStatus.NEW, FileTaskStatus.TRANSCODING
        )
        await repository.update_file_task_status(
            file_task.id, FileTaskStatus.TRANSCODING, FileTaskStatus.PROCESSING_CHILDS
        )
        await repository.update_split_status(splits[0].id, SplitStatus.WAIT_LOAD, SplitStatus.PASS)
        await repository.update_split_status(
            splits[1].id, SplitStatus.WAIT_LOAD, SplitStatus.FAIL_LOAD
        )
        await gateway.rollup_file_task(file_task.id)
        finished_batches = await gateway.rollup_batches(NODE)
        return (
            await repository.get_file_task(file_task.id),
            finished_batches,
            await repository.get_batch(batch.id),
        )

    file_task, finished_batches, batch = asyncio.run(scenario())

    assert file_task.status == FileTaskStatus.FINISHED_WITH_ERROR
    assert file_task.error_message == "1 of 2 splits failed."
    assert finished_batches == 0
    assert batch.status == BatchStatus.PROCESSING


def test_rollup_does_not_touch_a_transcoding_file_task() -> None:
    async def scenario():
        repository = InMemoryMigrationRepository()
        gateway = StateGateway(repository)
        _, _, file_task, splits = await _seed(repository, split_count=1)
        await repository.update_file_task_status(
            file_task.id, FileTaskStatus.NEW, FileTaskStatus.TRANSCODING
        )
        await repository.update_split_status(splits[0].id, SplitStatus.WAIT_LOAD, SplitStatus.PASS)
        rolled = await gateway.rollup_file_task(file_task.id)
        return rolled, await repository.get_file_task(file_task.id)

    rolled, file_task = asyncio.run(scenario())

    assert rolled is None
    assert file_task.status == FileTaskStatus.TRANSCODING


def test_startup_recovery_resets_in_flight_tasks_of_this_node_only() -> None:
    async def scenario():
        repository = InMemoryMigrationRepository()
        gateway = StateGateway(repository)
        job, _, file_task, splits = await _seed(repository)
        other = await repository.create_batch_with_tasks(
            job_id=job.id,
            signal_file_path="/data/in/other.ok",
            table_name="other",
            ddl_file_path="/data/in/other.sql",
            node_id="node-b",
            files=[NewFileTask(source_path="/data/in/other.csv")],
        )
        assert other is not None
        other_task = (await repository.list_file_tasks(other.id))[0]
        await repository.update_file_task_status(
            other_task.id, FileTaskStatus.NEW, FileTaskStatus.TRANSCODING
        )
        await repository.update_file_task_status(
            file_task.id, FileTaskStatus.NEW, FileTaskStatus.TRANSCODING
        )
        await repository.update_split_status(
            splits[0].id, SplitStatus.WAIT_LOAD, SplitStatus.LOADING
        )
        await repository.update_split_status(
            splits[1].id, SplitStatus.WAIT_LOAD, SplitStatus.LOADING
        )
        await repository.update_split_status(
            splits[1].id, SplitStatus.LOADING, SplitStatus.WAIT_VERIFY
        )
        await repository.update_split_status(
            splits[1].id, SplitStatus.WAIT_VERIFY, SplitStatus.VERIFYING
        )
        reset = await gateway.recover_in_flight(NODE)
        return (
            reset,
            await repository.get_file_task(file_task.id),
            await repository.get_file_task(other_task.id),
            [await repository.get_split(split.id) for split in splits],
        )

    reset, file_task, other_task, splits = asyncio.run(scenario())

    assert reset == 3
    assert file_task.status == FileTaskStatus.NEW
    assert other_task.status == FileTaskStatus.TRANSCODING
    assert [split.status for split in splits] == [SplitStatus.WAIT_LOAD, SplitStatus.WAIT_VERIFY]


def test_release_on_stop_bypasses_job_gate() -> None:
    async def scenario():
        repository = InMemoryMigrationRepository()
        gateway = StateGateway(repository)
        job, _, _, splits = await _seed(repository, split_count=1)
        await repository.update_split_status(
            splits[0].id, SplitStatus.WAIT_LOAD, SplitStatus.LOADING
        )
        await repository.update_job_status(job.id, JobStatus.STOPPED)
        released = await gateway.release_interrupted_split(splits[0].id, SplitStatus.LOADING)
        return released, await repository.get_split(splits[0].id)

    released, split = asyncio.run(scenario())

    assert released is True
    assert split.status == SplitStatus.WAIT_LOAD


def test_retry_reset_reopens_finished_with_error_file_task() -> None:
    async def scenario():
        repository = InMemoryMigrationRepository()
        gateway = StateGateway(repository)
        _, _, file_task, splits = await _seed(repository, split_count=1)
        await repository.update_file_task_status(
            file_task.id, FileTaskStatus.NEW, FileTaskStatus.TRANSCODING
        )
        await repository.update_file_task_status(
            file_task.id, FileTaskStatus.TRANSCODING, FileTaskStatus.FINISHED_WITH_ERROR
        )
        await repository.update_split_status(
            splits[0].id, SplitStatus.WAIT_LOAD, SplitStatus.FAIL_LOAD
        )
        first = await gateway.reset_split_for_retry(splits[0].id)
        second = await gateway.reset_split_for_retry(splits[0].id)
        return (
            first,
            second,
            await repository.get_split(splits[0].id),
            await repository.get_file_task(file_task.id),
        )

    first, second, split, file_task = asyncio.run(scenario())

    assert first is True
    assert second is False
    assert split.status == SplitStatus.WAIT_LOAD
    assert file_task.status == FileTaskStatus.PROCESSING_CHILDS
