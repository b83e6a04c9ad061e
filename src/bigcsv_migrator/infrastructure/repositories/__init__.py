"""Repository implementations."""

from bigcsv_migrator.infrastructure.repositories.in_memory_migration_repository import (
    InMemoryMigrationRepository,
)
from bigcsv_migrator.infrastructure.repositories.postgres_migration_repository import (
    PostgresMigrationRepository,
)

__all__ = ["InMemoryMigrationRepository", "PostgresMigrationRepository"]
