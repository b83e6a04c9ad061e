"""Process-local runtime primitives."""

from bigcsv_migrator.infrastructure.runtime.job_control import JobControl
from bigcsv_migrator.infrastructure.runtime.task_lock import TaskLock, file_task_key, split_key
from bigcsv_migrator.infrastructure.runtime.worker_pool import BoundedWorkerPool, WorkFactory

__all__ = [
    "BoundedWorkerPool",
    "JobControl",
    "TaskLock",
    "WorkFactory",
    "file_task_key",
    "split_key",
]
