from __future__ import annotations

import csv
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pytest

from bigcsv_migrator.application.services import (
    LoadService,
    StateGateway,
    TranscodeService,
    VerifyService,
)
from bigcsv_migrator.domain.entities import Batch, FileTask, MigrationJob, NewFileTask, Split
from bigcsv_migrator.domain.errors import TargetDatabaseError
from bigcsv_migrator.domain.ports import TargetDatabase
from bigcsv_migrator.domain.verification import ColumnKind
from bigcsv_migrator.infrastructure.files import SourceFormat
from bigcsv_migrator.infrastructure.repositories import InMemoryMigrationRepository
from bigcsv_migrator.infrastructure.runtime import JobControl

NODE_ID = "node-test"


@dataclass(slots=True)
class TargetRow:
    values: list[str]
    source_row_no: int
    split_id: int


class InMemoryTargetDatabase(TargetDatabase):
    """Target double keeping loaded rows per table in memory."""

    def __init__(self) -> None:
        self.tables: dict[str, list[TargetRow]] = {}
        self.column_kind_map: dict[str, ColumnKind] = {}
        self.executed: list[str] = []
        self.released_jobs: list[int] = []
        self.load_failures_remaining = 0
        self.broken_tables: set[str] = set()
        self.closed = False

    async def execute(self, job: MigrationJob, statements: Sequence[str]) -> None:
        self.executed.extend(statements)

    async def replace_split_rows(
        self,
        job: MigrationJob,
        table_name: str,
        columns: Sequence[str],
        split: Split,
    ) -> int:
        if self.load_failures_remaining > 0:
            self.load_failures_remaining -= 1
            raise TargetDatabaseError("connection reset by peer")
        rows = self.tables.setdefault(table_name, [])
        rows[:] = [row for row in rows if row.split_id != split.id]
        loaded = 0
        with Path(split.split_file_path).open("r", encoding="utf-8", newline="") as handle:
            for record in csv.reader(handle):
                rows.append(
                    TargetRow(
                        values=record[:-1],
                        source_row_no=int(record[-1]),
                        split_id=split.id,
                    )
                )
                loaded += 1
        return loaded

    async def delete_split_rows(self, job: MigrationJob, table_name: str, split_id: int) -> int:
        rows = self.tables.get(table_name, [])
        kept = [row for row in rows if row.split_id != split_id]
        self.tables[table_name] = kept
        return len(rows) - len(kept)

    async def count_split_rows(self, job: MigrationJob, table_name: str, split_id: int) -> int:
        return sum(1 for row in self.tables.get(table_name, []) if row.split_id == split_id)

    async def count_table_rows(self, job: MigrationJob, table_name: str) -> int:
        if table_name in self.broken_tables:
            raise TargetDatabaseError(f'relation "{table_name}" does not exist')
        return len(self.tables.get(table_name, []))

    async def column_kinds(
        self,
        job: MigrationJob,
        table_name: str,
        columns: Sequence[str],
    ) -> list[ColumnKind]:
        return [self.column_kind_map.get(column, ColumnKind.TEXT) for column in columns]

    async def iter_split_rows(
        self,
        job: MigrationJob,
        table_name: str,
        columns: Sequence[str],
        split_id: int,
    ) -> AsyncIterator[tuple[Any, ...]]:
        rows = sorted(
            (row for row in self.tables.get(table_name, []) if row.split_id == split_id),
            key=lambda row: row.source_row_no,
        )
        for row in rows:
            yield (*row.values, row.source_row_no)

    async def release_job(self, job_id: int) -> None:
        self.released_jobs.append(job_id)

    async def close(self) -> None:
        self.closed = True

    def rows(self, table_name: str) -> list[TargetRow]:
        return sorted(self.tables.get(table_name, []), key=lambda row: row.source_row_no)


class SourceFiles:
    """Writes DDL, legacy source and signal files below a temporary directory."""

    def __init__(self, root: Path) -> None:
        self.root = root
        self.source_dir = root / "incoming"
        self.output_dir = root / "output"
        self.source_dir.mkdir(parents=True, exist_ok=True)

    def ddl(self, name: str, columns: Sequence[str]) -> Path:
        path = self.source_dir / name
        path.write_text("".join(f"{column},VARCHAR(100)\n" for column in columns), encoding="utf-8")
        return path

    def source(self, name: str, lines: Sequence[str], encoding: str = "cp037") -> Path:
        path = self.source_dir / name
        path.write_bytes("".join(f"{line}\n" for line in lines).encode(encoding))
        return path


class Pipeline:
    """Engines wired around an in-memory status store and target."""

    def __init__(self, files: SourceFiles, target: InMemoryTargetDatabase) -> None:
        self.files = files
        self.target = target
        self.repository = InMemoryMigrationRepository()
        self.state_gateway = StateGateway(self.repository)
        self.job_control = JobControl()
        self.source_format = SourceFormat(encoding="cp037")
        self.node_id = NODE_ID

    def transcode_service(self, **overrides: Any) -> TranscodeService:
        options: dict[str, Any] = {"source_format": self.source_format}
        options.update(overrides)
        return TranscodeService(
            repository=self.repository,
            state_gateway=self.state_gateway,
            target=self.target,
            job_control=self.job_control,
            output_dir=self.files.output_dir,
            **options,
        )

    def load_service(self, **overrides: Any) -> LoadService:
        return LoadService(
            repository=self.repository,
            state_gateway=self.state_gateway,
            target=self.target,
            job_control=self.job_control,
            output_dir=self.files.output_dir,
            **overrides,
        )

    def verify_service(self, **overrides: Any) -> VerifyService:
        options: dict[str, Any] = {"source_format": self.source_format}
        options.update(overrides)
        return VerifyService(
            repository=self.repository,
            state_gateway=self.state_gateway,
            target=self.target,
            job_control=self.job_control,
            output_dir=self.files.output_dir,
            **options,
        )

    async def create_job(self) -> MigrationJob:
        return await self.repository.create_job(
            name="nightly",
            source_directory=str(self.files.source_dir),
            target_dsn="postgresql://target/warehouse",
        )

    async def register(
        self,
        lines: Sequence[str],
        *,
        job: MigrationJob | None = None,
        name: str = "orders",
        table_name: str = "sales.orders",
        columns: Sequence[str] = ("id", "name"),
    ) -> tuple[MigrationJob, Batch, FileTask]:
        """Create a job (unless given), a batch and one FileTask for `lines`."""

        if job is None:
            job = await self.create_job()
        ddl_path = self.files.ddl(f"{table_name.replace('.', '-')}.sql", columns)
        source_path = self.files.source(f"{name}.csv", lines)
        batch = await self.repository.create_batch_with_tasks(
            job_id=job.id,
            signal_file_path=str(self.files.source_dir / f"{name}.ok"),
            table_name=table_name,
            ddl_file_path=str(ddl_path),
            node_id=NODE_ID,
            files=[NewFileTask(source_path=str(source_path))],
        )
        assert batch is not None
        file_task = (await self.repository.list_file_tasks(batch.id))[0]
        return job, batch, file_task


@pytest.fixture
def target_db() -> InMemoryTargetDatabase:
    return InMemoryTargetDatabase()


@pytest.fixture
def source_files(tmp_path: Path) -> SourceFiles:
    return SourceFiles(tmp_path)


@pytest.fixture
def pipeline(source_files: SourceFiles, target_db: InMemoryTargetDatabase) -> Pipeline:
    return Pipeline(source_files, target_db)
