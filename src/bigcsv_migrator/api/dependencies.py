"""Dependency providers for FastAPI routes."""

from functools import lru_cache

from bigcsv_migrator.application.services import ManagementService
from bigcsv_migrator.bootstrap import MigrationRuntime, build_runtime
from bigcsv_migrator.config import Settings
from bigcsv_migrator.infrastructure.cluster import ClusterForwarder


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return singleton settings."""

    return Settings()


@lru_cache(maxsize=1)
def get_runtime() -> MigrationRuntime:
    """Return singleton service graph."""

    return build_runtime(get_settings())


def get_management_service() -> ManagementService:
    return get_runtime().management_service


def get_cluster_forwarder() -> ClusterForwarder:
    return get_runtime().forwarder


__all__ = ["get_cluster_forwarder", "get_management_service", "get_runtime", "get_settings"]
