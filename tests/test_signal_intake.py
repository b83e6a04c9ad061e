from __future__ import annotations

import asyncio
import json
import os
from pathlib import Path

import pytest

from bigcsv_migrator.application.services import SignalIntakeService, read_signal_file
from bigcsv_migrator.domain.errors import MigrationValidationError
from bigcsv_migrator.domain.statuses import FileTaskStatus, JobStatus
from bigcsv_migrator.infrastructure.signals import SignalDirectoryScanner, find_signal_files


def _write_signal(directory: Path, name: str, payload: dict) -> Path:
    path = directory / name
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def test_read_signal_file_resolves_relative_paths_and_table(source_files) -> None:
    source_files.ddl("sales-orders.sql", ["id", "name"])
    source_files.source("orders_1.csv", ["1,a"])
    source_files.source("orders_2.csv", ["2,b"])
    signal_path = _write_signal(
        source_files.source_dir,
        "orders.ok",
        {"ddl": "sales-orders.sql", "csv": ["orders_1.csv", " orders_2.csv "]},
    )

    resolved = read_signal_file(signal_path)

    assert resolved.table_name == "sales.orders"
    assert resolved.ddl_file_path == str(source_files.source_dir / "sales-orders.sql")
    assert resolved.source_paths == (
        str(source_files.source_dir / "orders_1.csv"),
        str(source_files.source_dir / "orders_2.csv"),
    )


def test_signal_schema_and_table_override_ddl_name(source_files) -> None:
    source_files.ddl("orders.sql", ["id"])
    source_files.source("orders.csv", ["1"])
    signal_path = _write_signal(
        source_files.source_dir,
        "orders.ok",
        {"ddl": "orders.sql", "csv": ["orders.csv"], "schema": "archive", "table": "orders_2024"},
    )

    assert read_signal_file(signal_path).table_name == "archive.orders_2024"


@pytest.mark.parametrize(
    "payload",
    [
        {"csv": ["orders.csv"]},
        {"ddl": " ", "csv": ["orders.csv"]},
        {"ddl": "orders.sql", "csv": []},
        {"ddl": "orders.sql", "csv": ["orders.csv", ""]},
        {"ddl": "missing.sql", "csv": ["orders.csv"]},
        {"ddl": "orders.sql", "csv": ["missing.csv"]},
    ],
)
def test_invalid_signal_files_are_rejected(source_files, payload: dict) -> None:
    source_files.ddl("orders.sql", ["id"])
    source_files.source("orders.csv", ["1"])
    signal_path = _write_signal(source_files.source_dir, "orders.ok", payload)

    with pytest.raises(MigrationValidationError):
        read_signal_file(signal_path)


def test_malformed_json_is_rejected(source_files) -> None:
    path = source_files.source_dir / "broken.ok"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(MigrationValidationError, match="Invalid signal file"):
        read_signal_file(path)


def test_register_signal_is_idempotent(pipeline) -> None:
    files = pipeline.files
    files.ddl("sales-orders.sql", ["id", "name"])
    files.source("orders.csv", ["1,a"])
    signal_path = _write_signal(
        files.source_dir,
        "orders.ok",
        {"ddl": "sales-orders.sql", "csv": ["orders.csv"]},
    )
    service = SignalIntakeService(pipeline.repository, pipeline.node_id)

    async def scenario():
        job = await pipeline.create_job()
        first = await service.register_signal(job, signal_path)
        second = await service.register_signal(job, signal_path)
        assert first is not None
        return first, second, await pipeline.repository.list_file_tasks(first.id)

    first, second, file_tasks = asyncio.run(scenario())

    assert second is None
    assert first.node_id == pipeline.node_id
    assert [file_task.status for file_task in file_tasks] == [FileTaskStatus.NEW]


def test_find_signal_files_filters_by_suffix(tmp_path: Path) -> None:
    (tmp_path / "b.ok").write_text("{}", encoding="utf-8")
    (tmp_path / "a.ok").write_text("{}", encoding="utf-8")
    (tmp_path / "a.csv").write_text("", encoding="utf-8")

    assert [path.name for path in find_signal_files(tmp_path, ".ok")] == ["a.ok", "b.ok"]
    assert find_signal_files(tmp_path / "missing", ".ok") == []


def test_scanner_registers_new_signals_of_active_jobs_only(pipeline) -> None:
    files = pipeline.files
    files.ddl("sales-orders.sql", ["id", "name"])
    files.source("orders.csv", ["1,a"])
    _write_signal(
        files.source_dir,
        "orders.ok",
        {"ddl": "sales-orders.sql", "csv": ["orders.csv"]},
    )
    service = SignalIntakeService(pipeline.repository, pipeline.node_id)
    scanner = SignalDirectoryScanner(
        repository=pipeline.repository,
        handler=service.register_signal,
    )

    async def scenario():
        paused = await pipeline.create_job()
        await pipeline.repository.update_job_status(paused.id, JobStatus.PAUSED)
        paused_scan = await scanner.scan_once()
        active = await pipeline.create_job()
        first = await scanner.scan_once()
        second = await scanner.scan_once()
        return paused_scan, first, second, await pipeline.repository.list_batches(active.id)

    paused_scan, first, second, batches = asyncio.run(scenario())

    assert paused_scan == 0
    assert (first, second) == (1, 0)
    assert [batch.table_name for batch in batches] == ["sales.orders"]


def test_scanner_retries_rejected_signal_after_it_changes(pipeline) -> None:
    files = pipeline.files
    signal_path = _write_signal(
        files.source_dir,
        "orders.ok",
        {"ddl": "sales-orders.sql", "csv": ["orders.csv"]},
    )
    calls: list[Path] = []
    service = SignalIntakeService(pipeline.repository, pipeline.node_id)

    async def handler(job, path: Path):
        calls.append(path)
        return await service.register_signal(job, path)

    scanner = SignalDirectoryScanner(repository=pipeline.repository, handler=handler)

    async def scenario():
        await pipeline.create_job()
        rejected = await scanner.scan_once()
        skipped = await scanner.scan_once()
        files.ddl("sales-orders.sql", ["id", "name"])
        files.source("orders.csv", ["1,a"])
        stat = signal_path.stat()
        os.utime(signal_path, (stat.st_atime, stat.st_mtime + 10))
        accepted = await scanner.scan_once()
        return rejected, skipped, accepted

    rejected, skipped, accepted = asyncio.run(scenario())

    assert (rejected, skipped, accepted) == (0, 0, 1)
    assert len(calls) == 2
