from __future__ import annotations

import asyncio
from collections.abc import Iterator
from pathlib import Path

import httpx
import pytest
from fastapi.testclient import TestClient

from bigcsv_migrator.api.dependencies import get_cluster_forwarder, get_runtime, get_settings
from bigcsv_migrator.domain.entities import NewFileTask, NewSplit
from bigcsv_migrator.domain.statuses import FileTaskStatus, SplitStatus
from bigcsv_migrator.infrastructure.cluster import FORWARDED_HEADER, ClusterForwarder
from bigcsv_migrator.infrastructure.repositories import InMemoryMigrationRepository
from bigcsv_migrator.main import app


@pytest.fixture
def node_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Path]:
    monkeypatch.setenv("BIGCSV_NODE_ID", "node-a")
    monkeypatch.setenv("BIGCSV_OUTPUT_DIR", str(tmp_path / "output"))
    monkeypatch.setenv("BIGCSV_SIGNAL_SCANNER_ENABLED", "false")
    monkeypatch.setenv("BIGCSV_DISPATCH_INTERVAL_SECONDS", "60")
    get_settings.cache_clear()
    get_runtime.cache_clear()

    async def _idle_start() -> None:
        return None

    # Seeded task states must not move while requests run.
    monkeypatch.setattr(get_runtime().dispatcher, "start", _idle_start)
    yield tmp_path
    app.dependency_overrides.clear()
    get_settings.cache_clear()
    get_runtime.cache_clear()


def _job_payload(source_directory: Path) -> dict[str, object]:
    return {
        "name": "nightly-orders",
        "sourceDirectory": str(source_directory),
        "targetDsn": "postgresql://target/warehouse",
        "targetUser": "loader",
        "targetPassword": "secret",
    }


async def _seed_failed_split(
    repository: InMemoryMigrationRepository,
    root: Path,
    node_id: str,
    split_status: SplitStatus,
) -> tuple[int, int]:
    job = await repository.create_job(
        name="seeded",
        source_directory=str(root),
        target_dsn="postgresql://target/warehouse",
    )
    batch = await repository.create_batch_with_tasks(
        job_id=job.id,
        signal_file_path=str(root / f"{node_id}.ok"),
        table_name="sales.orders",
        ddl_file_path=str(root / "sales-orders.sql"),
        node_id=node_id,
        files=[NewFileTask(source_path=str(root / "orders.csv"))],
    )
    assert batch is not None
    file_task = (await repository.list_file_tasks(batch.id))[0]
    await repository.update_file_task_status(
        file_task.id, FileTaskStatus.NEW, FileTaskStatus.TRANSCODING
    )
    await repository.update_file_task_status(
        file_task.id, FileTaskStatus.TRANSCODING, FileTaskStatus.FINISHED_WITH_ERROR
    )
    split = await repository.create_split(
        file_task,
        NewSplit(split_file_path=str(root / "1.csv"), start_row_no=1, row_count=10),
    )
    await repository.update_split_status(split.id, SplitStatus.WAIT_LOAD, split_status)
    return file_task.id, split.id


def test_health_endpoint(node_env: Path) -> None:
    with TestClient(app) as client:
        response = client.get("/healthz")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_job_lifecycle_through_management_api(node_env: Path) -> None:
    with TestClient(app) as client:
        created = client.post("/management/jobs", json=_job_payload(node_env))
        assert created.status_code == 201
        job = created.json()
        assert "targetPassword" not in job
        assert job["status"] == "ACTIVE"

        listed = client.get("/management/jobs")
        stopped = client.post(f"/management/jobs/{job['id']}/stop")
        resumed = client.post(f"/management/jobs/{job['id']}/resume")
        batches = client.get(f"/management/jobs/{job['id']}/batches")
        deleted = client.delete(f"/management/jobs/{job['id']}")
        missing = client.get(f"/management/jobs/{job['id']}")

    assert listed.json()["nodeId"] == "node-a"
    assert [item["name"] for item in listed.json()["jobs"]] == ["nightly-orders"]
    assert stopped.json()["status"] == "STOPPED"
    assert resumed.json()["status"] == "ACTIVE"
    assert batches.json() == {"jobId": job["id"], "batches": []}
    assert deleted.status_code == 204
    assert missing.status_code == 404


def test_create_job_rejects_unknown_fields(node_env: Path) -> None:
    payload = _job_payload(node_env) | {"unexpected": True}

    with TestClient(app) as client:
        response = client.post("/management/jobs", json=payload)

    assert response.status_code == 422


def test_retry_split_resets_failed_split_and_conflicts_on_second_call(node_env: Path) -> None:
    runtime = get_runtime()
    file_task_id, split_id = asyncio.run(
        _seed_failed_split(runtime.repository, node_env, "node-a", SplitStatus.FAIL_VERIFY)
    )

    with TestClient(app) as client:
        first = client.post(f"/management/splits/{split_id}/retry")
        second = client.post(f"/management/splits/{split_id}/retry")
        splits = client.get(f"/management/file-tasks/{file_task_id}/splits")

    assert first.status_code == 200
    assert first.json()["status"] == "WAIT_VERIFY"
    assert second.status_code == 409
    assert splits.json()["splits"][0]["status"] == "WAIT_VERIFY"


def test_missing_diff_preview_reports_absent_file(node_env: Path) -> None:
    runtime = get_runtime()
    _, split_id = asyncio.run(
        _seed_failed_split(runtime.repository, node_env, "node-a", SplitStatus.FAIL_LOAD)
    )

    with TestClient(app) as client:
        response = client.get(f"/management/splits/{split_id}/diff")

    assert response.status_code == 200
    assert response.json()["exists"] is False
    assert response.json()["lines"] == []


def test_task_scoped_calls_are_forwarded_to_owning_node(node_env: Path) -> None:
    runtime = get_runtime()
    _, split_id = asyncio.run(
        _seed_failed_split(runtime.repository, node_env, "node-b", SplitStatus.FAIL_LOAD)
    )
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(status_code=200, json={"id": split_id, "status": "WAIT_LOAD"})

    forwarder = ClusterForwarder(
        "node-a",
        {"node-a": "http://node-a:8080", "node-b": "http://node-b:8080"},
        transport=httpx.MockTransport(handler),
    )
    app.dependency_overrides[get_cluster_forwarder] = lambda: forwarder

    with TestClient(app) as client:
        owner = client.get(f"/management/owners/split/{split_id}")
        response = client.post(f"/management/splits/{split_id}/retry")

    assert owner.json()["nodeId"] == "node-b"
    assert owner.json()["local"] is False
    assert response.status_code == 200
    assert response.json() == {"id": split_id, "status": "WAIT_LOAD"}
    assert len(requests) == 1
    assert str(requests[0].url) == f"http://node-b:8080/management/splits/{split_id}/retry"
    assert requests[0].headers[FORWARDED_HEADER] == "node-a"


def test_forwarded_call_is_executed_locally(node_env: Path) -> None:
    runtime = get_runtime()
    _, split_id = asyncio.run(
        _seed_failed_split(runtime.repository, node_env, "node-b", SplitStatus.FAIL_LOAD)
    )

    with TestClient(app) as client:
        response = client.post(
            f"/management/splits/{split_id}/retry",
            headers={FORWARDED_HEADER: "node-b"},
        )

    assert response.status_code == 200
    assert response.json()["status"] == "WAIT_LOAD"


def test_unknown_owner_record_returns_404(node_env: Path) -> None:
    with TestClient(app) as client:
        response = client.get("/management/owners/split/999")

    assert response.status_code == 404


def test_close_batch_accepts_file_tasks_finished_with_errors(node_env: Path) -> None:
    runtime = get_runtime()
    file_task_id, _ = asyncio.run(
        _seed_failed_split(runtime.repository, node_env, "node-a", SplitStatus.FAIL_LOAD)
    )
    file_task = asyncio.run(runtime.repository.get_file_task(file_task_id))

    with TestClient(app) as client:
        closed = client.post(f"/management/batches/{file_task.batch_id}/close")
        again = client.post(f"/management/batches/{file_task.batch_id}/close")
        missing = client.post("/management/batches/999/close")

    assert closed.status_code == 200
    assert closed.json()["status"] == "FINISHED"
    assert again.status_code == 409
    assert missing.status_code == 404


def test_close_batch_is_refused_while_work_is_pending(node_env: Path) -> None:
    runtime = get_runtime()
    file_task_id, split_id = asyncio.run(
        _seed_failed_split(runtime.repository, node_env, "node-a", SplitStatus.FAIL_LOAD)
    )
    file_task = asyncio.run(runtime.repository.get_file_task(file_task_id))

    with TestClient(app) as client:
        retried = client.post(f"/management/splits/{split_id}/retry")
        closed = client.post(f"/management/batches/{file_task.batch_id}/close")
        batches = client.get(f"/management/jobs/{file_task.job_id}/batches")

    assert retried.status_code == 200
    assert closed.status_code == 409
    assert str(file_task_id) in closed.json()["detail"]
    assert batches.json()["batches"][0]["status"] == "PROCESSING"


def test_retry_split_is_refused_while_file_awaits_retranscode(node_env: Path) -> None:
    runtime = get_runtime()
    file_task_id, split_id = asyncio.run(
        _seed_failed_split(runtime.repository, node_env, "node-a", SplitStatus.FAIL_LOAD)
    )
    asyncio.run(
        runtime.repository.update_file_task_status(
            file_task_id, FileTaskStatus.FINISHED_WITH_ERROR, FileTaskStatus.NEW
        )
    )

    with TestClient(app) as client:
        response = client.post(f"/management/splits/{split_id}/retry")
        splits = client.get(f"/management/file-tasks/{file_task_id}/splits")

    assert response.status_code == 409
    assert splits.json()["splits"][0]["status"] == "FAIL_LOAD"
