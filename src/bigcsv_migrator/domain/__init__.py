"""Domain public API."""

from bigcsv_migrator.domain.data_quality import (
    ColumnErrorDetail,
    ColumnErrorReason,
    RowErrorType,
)
from bigcsv_migrator.domain.entities import (
    Batch,
    FileTask,
    MigrationJob,
    NewFileTask,
    NewSplit,
    Split,
)
from bigcsv_migrator.domain.errors import (
    ClusterForwardError,
    ConflictError,
    DdlError,
    DiffLimitExceededError,
    MigrationError,
    MigrationValidationError,
    NotFoundError,
    TargetDatabaseError,
    TranscodeFatalError,
)
from bigcsv_migrator.domain.management_models import (
    ArtifactPreviewResponse,
    BatchListResponse,
    BatchResponse,
    FileTaskListResponse,
    FileTaskResponse,
    GlobalVerifyResponse,
    JobCreateRequest,
    JobListResponse,
    JobResponse,
    OwnerKind,
    OwnerResponse,
    SplitListResponse,
    SplitResponse,
    TableVerifyResponse,
)
from bigcsv_migrator.domain.ports import MigrationRepository, TargetDatabase
from bigcsv_migrator.domain.signal_models import SignalFile
from bigcsv_migrator.domain.statuses import (
    BatchStatus,
    FileTaskStatus,
    JobStatus,
    SplitStatus,
    TaskOutcome,
)
from bigcsv_migrator.domain.verification import (
    ColumnKind,
    ComparisonOutcome,
    GlobalVerifyStatus,
    TableVerifyResult,
    VerifyStrategy,
)

__all__ = [
    "ArtifactPreviewResponse",
    "Batch",
    "BatchListResponse",
    "BatchResponse",
    "BatchStatus",
    "ClusterForwardError",
    "ColumnErrorDetail",
    "ColumnErrorReason",
    "ColumnKind",
    "ComparisonOutcome",
    "ConflictError",
    "DdlError",
    "DiffLimitExceededError",
    "FileTask",
    "FileTaskListResponse",
    "FileTaskResponse",
    "FileTaskStatus",
    "GlobalVerifyResponse",
    "GlobalVerifyStatus",
    "JobCreateRequest",
    "JobListResponse",
    "JobResponse",
    "JobStatus",
    "MigrationError",
    "MigrationJob",
    "MigrationRepository",
    "MigrationValidationError",
    "NewFileTask",
    "NewSplit",
    "NotFoundError",
    "OwnerKind",
    "OwnerResponse",
    "RowErrorType",
    "SignalFile",
    "Split",
    "SplitListResponse",
    "SplitResponse",
    "SplitStatus",
    "TableVerifyResponse",
    "TableVerifyResult",
    "TargetDatabase",
    "TargetDatabaseError",
    "TaskOutcome",
    "TranscodeFatalError",
    "VerifyStrategy",
]
