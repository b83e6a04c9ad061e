"""Request and response models of the management API."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from bigcsv_migrator.domain.statuses import (
    BatchStatus,
    FileTaskStatus,
    JobStatus,
    SplitStatus,
)
from bigcsv_migrator.domain.verification import GlobalVerifyStatus


class OwnerKind(StrEnum):
    """Record kinds whose owning node can be looked up."""

    BATCH = "batch"
    FILE_TASK = "file-task"
    SPLIT = "split"


class ManagementModel(BaseModel):
    """Base model for management routes."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class JobCreateRequest(ManagementModel):
    """Payload creating a migration job."""

    name: str = Field(min_length=1)
    source_directory: str = Field(min_length=1, alias="sourceDirectory")
    target_dsn: str = Field(min_length=1, alias="targetDsn")
    target_user: str | None = Field(default=None, alias="targetUser")
    target_password: str | None = Field(default=None, alias="targetPassword")
    output_directory: str | None = Field(default=None, alias="outputDirectory")


class JobResponse(ManagementModel):
    """One migration job; the target password is never returned."""

    id: int
    name: str
    source_directory: str = Field(alias="sourceDirectory")
    target_dsn: str = Field(alias="targetDsn")
    target_user: str | None = Field(default=None, alias="targetUser")
    output_directory: str | None = Field(default=None, alias="outputDirectory")
    status: JobStatus
    created_at: datetime = Field(alias="createdAt")


class JobListResponse(ManagementModel):
    node_id: str = Field(alias="nodeId")
    jobs: list[JobResponse]


class BatchResponse(ManagementModel):
    id: int
    job_id: int = Field(alias="jobId")
    signal_file_path: str = Field(alias="signalFilePath")
    table_name: str = Field(alias="tableName")
    ddl_file_path: str = Field(alias="ddlFilePath")
    node_id: str = Field(alias="nodeId")
    status: BatchStatus
    created_at: datetime = Field(alias="createdAt")


class BatchListResponse(ManagementModel):
    job_id: int = Field(alias="jobId")
    batches: list[BatchResponse]


class FileTaskResponse(ManagementModel):
    id: int
    job_id: int = Field(alias="jobId")
    batch_id: int = Field(alias="batchId")
    source_path: str = Field(alias="sourcePath")
    node_id: str = Field(alias="nodeId")
    status: FileTaskStatus
    progress: int
    error_message: str | None = Field(default=None, alias="errorMessage")
    transcode_error_count: int = Field(alias="transcodeErrorCount")
    source_row_count: int = Field(alias="sourceRowCount")


class FileTaskListResponse(ManagementModel):
    batch_id: int = Field(alias="batchId")
    file_tasks: list[FileTaskResponse] = Field(alias="fileTasks")


class SplitResponse(ManagementModel):
    id: int
    job_id: int = Field(alias="jobId")
    batch_id: int = Field(alias="batchId")
    file_task_id: int = Field(alias="fileTaskId")
    split_file_path: str = Field(alias="splitFilePath")
    start_row_no: int = Field(alias="startRowNo")
    row_count: int = Field(alias="rowCount")
    node_id: str = Field(alias="nodeId")
    status: SplitStatus
    error_message: str | None = Field(default=None, alias="errorMessage")


class SplitListResponse(ManagementModel):
    file_task_id: int = Field(alias="fileTaskId")
    splits: list[SplitResponse]


class TableVerifyResponse(ManagementModel):
    """Row totals and verdict of one target table."""

    table_name: str = Field(alias="tableName")
    source_rows: int = Field(alias="sourceRows")
    split_rows: int = Field(alias="splitRows")
    target_rows: int = Field(alias="targetRows")
    status: GlobalVerifyStatus
    message: str | None = None


class GlobalVerifyResponse(ManagementModel):
    job_id: int = Field(alias="jobId")
    tables: list[TableVerifyResponse]


class ArtifactPreviewResponse(ManagementModel):
    """First lines of an error or diff file."""

    path: str
    exists: bool
    lines: list[str] = Field(default_factory=list)
    truncated: bool = False


class OwnerResponse(ManagementModel):
    """Node owning a batch, file task or split."""

    kind: OwnerKind
    id: int
    node_id: str = Field(alias="nodeId")
    local: bool


__all__ = [
    "ArtifactPreviewResponse",
    "BatchListResponse",
    "BatchResponse",
    "FileTaskListResponse",
    "FileTaskResponse",
    "GlobalVerifyResponse",
    "JobCreateRequest",
    "JobListResponse",
    "JobResponse",
    "ManagementModel",
    "OwnerKind",
    "OwnerResponse",
    "SplitListResponse",
    "SplitResponse",
    "TableVerifyResponse",
]
