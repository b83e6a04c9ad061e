"""Status enums and legal transition tables."""

from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum


class JobStatus(StrEnum):
    """Operator-controlled migration job state."""

    ACTIVE = "ACTIVE"
    STOPPED = "STOPPED"
    PAUSED = "PAUSED"


class BatchStatus(StrEnum):
    """Batch state, one batch per signal file."""

    PROCESSING = "PROCESSING"
    FINISHED = "FINISHED"


class FileTaskStatus(StrEnum):
    """Per source file state."""

    NEW = "NEW"
    TRANSCODING = "TRANSCODING"
    FAIL_TRANSCODE = "FAIL_TRANSCODE"
    PROCESSING_CHILDS = "PROCESSING_CHILDS"
    FINISHED = "FINISHED"
    FINISHED_WITH_ERROR = "FINISHED_WITH_ERROR"


class SplitStatus(StrEnum):
    """Per split file state."""

    WAIT_LOAD = "WAIT_LOAD"
    LOADING = "LOADING"
    WAIT_VERIFY = "WAIT_VERIFY"
    VERIFYING = "VERIFYING"
    PASS = "PASS"
    FAIL_LOAD = "FAIL_LOAD"
    FAIL_VERIFY = "FAIL_VERIFY"


class TaskOutcome(StrEnum):
    """Result of one engine execution."""

    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    STOPPED = "STOPPED"
    SKIPPED = "SKIPPED"


FILE_TASK_TRANSITIONS: Mapping[FileTaskStatus, frozenset[FileTaskStatus]] = {
    FileTaskStatus.NEW: frozenset({FileTaskStatus.TRANSCODING}),
    FileTaskStatus.TRANSCODING: frozenset(
        {
            FileTaskStatus.PROCESSING_CHILDS,
            FileTaskStatus.FAIL_TRANSCODE,
            FileTaskStatus.FINISHED,
            FileTaskStatus.FINISHED_WITH_ERROR,
        }
    ),
    FileTaskStatus.PROCESSING_CHILDS: frozenset(
        {FileTaskStatus.FINISHED, FileTaskStatus.FINISHED_WITH_ERROR}
    ),
    FileTaskStatus.FINISHED_WITH_ERROR: frozenset(
        {FileTaskStatus.PROCESSING_CHILDS, FileTaskStatus.NEW}
    ),
    FileTaskStatus.FAIL_TRANSCODE: frozenset({FileTaskStatus.NEW}),
    FileTaskStatus.FINISHED: frozenset(),
}

SPLIT_TRANSITIONS: Mapping[SplitStatus, frozenset[SplitStatus]] = {
    SplitStatus.WAIT_LOAD: frozenset({SplitStatus.LOADING}),
    SplitStatus.LOADING: frozenset({SplitStatus.WAIT_VERIFY, SplitStatus.FAIL_LOAD}),
    SplitStatus.WAIT_VERIFY: frozenset({SplitStatus.VERIFYING}),
    SplitStatus.VERIFYING: frozenset({SplitStatus.PASS, SplitStatus.FAIL_VERIFY}),
    SplitStatus.FAIL_LOAD: frozenset({SplitStatus.WAIT_LOAD}),
    SplitStatus.FAIL_VERIFY: frozenset({SplitStatus.WAIT_VERIFY}),
    SplitStatus.PASS: frozenset(),
}

# In-flight status -> waiting status it is reset to after a crash or a stop.
FILE_TASK_IN_FLIGHT_RESETS: Mapping[FileTaskStatus, FileTaskStatus] = {
    FileTaskStatus.TRANSCODING: FileTaskStatus.NEW,
}
SPLIT_IN_FLIGHT_RESETS: Mapping[SplitStatus, SplitStatus] = {
    SplitStatus.LOADING: SplitStatus.WAIT_LOAD,
    SplitStatus.VERIFYING: SplitStatus.WAIT_VERIFY,
}

SPLIT_RETRY_RESETS: Mapping[SplitStatus, SplitStatus] = {
    SplitStatus.FAIL_LOAD: SplitStatus.WAIT_LOAD,
    SplitStatus.FAIL_VERIFY: SplitStatus.WAIT_VERIFY,
}

SPLIT_PENDING_STATES = frozenset(
    {
        SplitStatus.WAIT_LOAD,
        SplitStatus.LOADING,
        SplitStatus.WAIT_VERIFY,
        SplitStatus.VERIFYING,
    }
)
SPLIT_FAILED_STATES = frozenset({SplitStatus.FAIL_LOAD, SplitStatus.FAIL_VERIFY})

# Splits a load or verify worker currently holds.
SPLIT_BUSY_STATES = frozenset({SplitStatus.LOADING, SplitStatus.VERIFYING})

FILE_TASK_ROLLUP_STATES = frozenset(
    {FileTaskStatus.PROCESSING_CHILDS, FileTaskStatus.FINISHED_WITH_ERROR}
)
# Splits are only dispatched while their FileTask is in one of these states.
FILE_TASK_SPLIT_DISPATCH_STATES = frozenset(
    {FileTaskStatus.TRANSCODING, FileTaskStatus.PROCESSING_CHILDS}
)
# No worker will touch a FileTask in these states without an operator.
FILE_TASK_SETTLED_STATES = frozenset(
    {
        FileTaskStatus.FINISHED,
        FileTaskStatus.FINISHED_WITH_ERROR,
        FileTaskStatus.FAIL_TRANSCODE,
    }
)
FILE_TASK_RETRANSCODE_STATES = frozenset(
    {FileTaskStatus.FAIL_TRANSCODE, FileTaskStatus.FINISHED_WITH_ERROR}
)


def can_transition_file_task(current: FileTaskStatus, target: FileTaskStatus) -> bool:
    """Return whether a FileTask may move from `current` to `target`."""

    return target in FILE_TASK_TRANSITIONS.get(current, frozenset())


def can_transition_split(current: SplitStatus, target: SplitStatus) -> bool:
    """Return whether a Split may move from `current` to `target`."""

    return target in SPLIT_TRANSITIONS.get(current, frozenset())


def rollup_file_task_status(split_statuses: list[SplitStatus]) -> FileTaskStatus | None:
    """Compute a FileTask status from the distribution of its split statuses.

    Returns None when there is nothing to roll up (no splits).
    """

    if not split_statuses:
        return None
    if any(status in SPLIT_PENDING_STATES for status in split_statuses):
        return FileTaskStatus.PROCESSING_CHILDS
    if any(status in SPLIT_FAILED_STATES for status in split_statuses):
        return FileTaskStatus.FINISHED_WITH_ERROR
    return FileTaskStatus.FINISHED


__all__ = [
    "BatchStatus",
    "FILE_TASK_IN_FLIGHT_RESETS",
    "FILE_TASK_RETRANSCODE_STATES",
    "FILE_TASK_ROLLUP_STATES",
    "FILE_TASK_SETTLED_STATES",
    "FILE_TASK_SPLIT_DISPATCH_STATES",
    "FILE_TASK_TRANSITIONS",
    "FileTaskStatus",
    "JobStatus",
    "SPLIT_BUSY_STATES",
    "SPLIT_FAILED_STATES",
    "SPLIT_IN_FLIGHT_RESETS",
    "SPLIT_PENDING_STATES",
    "SPLIT_RETRY_RESETS",
    "SPLIT_TRANSITIONS",
    "SplitStatus",
    "TaskOutcome",
    "can_transition_file_task",
    "can_transition_split",
    "rollup_file_task_status",
]
