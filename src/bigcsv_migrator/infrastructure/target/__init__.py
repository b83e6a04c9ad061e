"""Target database adapters."""

from bigcsv_migrator.infrastructure.target.pool_manager import PoolFactory, TargetPoolManager
from bigcsv_migrator.infrastructure.target.postgres_target import PostgresTargetDatabase

__all__ = ["PoolFactory", "PostgresTargetDatabase", "TargetPoolManager"]
