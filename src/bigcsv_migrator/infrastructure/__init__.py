"""Infrastructure layer public API."""

from bigcsv_migrator.infrastructure.cluster import ClusterForwarder
from bigcsv_migrator.infrastructure.codec import LegacyCharset
from bigcsv_migrator.infrastructure.repositories import (
    InMemoryMigrationRepository,
    PostgresMigrationRepository,
)
from bigcsv_migrator.infrastructure.runtime import BoundedWorkerPool, JobControl, TaskLock
from bigcsv_migrator.infrastructure.signals import SignalDirectoryScanner
from bigcsv_migrator.infrastructure.target import PostgresTargetDatabase, TargetPoolManager

__all__ = [
    "BoundedWorkerPool",
    "ClusterForwarder",
    "InMemoryMigrationRepository",
    "JobControl",
    "LegacyCharset",
    "PostgresMigrationRepository",
    "PostgresTargetDatabase",
    "SignalDirectoryScanner",
    "TargetPoolManager",
    "TaskLock",
]
