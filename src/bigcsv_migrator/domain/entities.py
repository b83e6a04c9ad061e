"""Domain entities."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime

from bigcsv_migrator.domain.statuses import (
    BatchStatus,
    FileTaskStatus,
    JobStatus,
    SplitStatus,
)


def _utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass(slots=True)
class MigrationJob:
    """Operator-created migration configuration."""

    id: int
    name: str
    source_directory: str
    target_dsn: str
    target_user: str | None = None
    target_password: str | None = None
    output_directory: str | None = None
    status: JobStatus = JobStatus.ACTIVE
    created_at: datetime = field(default_factory=_utc_now)

    @property
    def is_active(self) -> bool:
        """Return whether the job accepts status transitions."""

        return self.status == JobStatus.ACTIVE


@dataclass(slots=True)
class Batch:
    """One discovered signal file and its target table."""

    id: int
    job_id: int
    signal_file_path: str
    table_name: str
    ddl_file_path: str
    node_id: str
    status: BatchStatus = BatchStatus.PROCESSING
    created_at: datetime = field(default_factory=_utc_now)


@dataclass(slots=True)
class FileTask:
    """One legacy source CSV file."""

    id: int
    job_id: int
    batch_id: int
    source_path: str
    node_id: str
    status: FileTaskStatus = FileTaskStatus.NEW
    progress: int = 0
    error_message: str | None = None
    transcode_error_count: int = 0
    source_row_count: int = 0


@dataclass(slots=True)
class Split:
    """One row-count bounded UTF-8 chunk of a transcoded file."""

    id: int
    job_id: int
    batch_id: int
    file_task_id: int
    split_file_path: str
    start_row_no: int
    row_count: int
    node_id: str
    status: SplitStatus = SplitStatus.WAIT_LOAD
    error_message: str | None = None


@dataclass(slots=True, frozen=True)
class NewFileTask:
    """FileTask payload used when creating a batch."""

    source_path: str


@dataclass(slots=True, frozen=True)
class NewSplit:
    """Split payload produced by the transcode engine when a chunk closes."""

    split_file_path: str
    start_row_no: int
    row_count: int


__all__ = [
    "Batch",
    "FileTask",
    "MigrationJob",
    "NewFileTask",
    "NewSplit",
    "Split",
]
