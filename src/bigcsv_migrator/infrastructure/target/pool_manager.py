"""Per-job target connection pool cache."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import asyncpg  # type: ignore[import-untyped]

from bigcsv_migrator.domain.entities import MigrationJob

logger = logging.getLogger(__name__)

PoolFactory = Callable[..., Awaitable[Any]]


class TargetPoolManager:
    """Lazily create and cache one asyncpg pool per migration job.

    Pools live until `invalidate` (job deletion) or `close_all` (shutdown).
    """

    def __init__(
        self,
        *,
        min_pool_size: int = 1,
        max_pool_size: int = 5,
        command_timeout_seconds: float | None = None,
        pool_factory: PoolFactory | None = None,
    ) -> None:
        self._min_pool_size = max(0, min_pool_size)
        self._max_pool_size = max(1, max_pool_size, self._min_pool_size)
        self._command_timeout_seconds = command_timeout_seconds
        self._pool_factory = pool_factory or asyncpg.create_pool
        self._pools: dict[int, Any] = {}
        self._lock = asyncio.Lock()

    def cached_job_ids(self) -> list[int]:
        """Return ids of jobs with an open pool."""

        return sorted(self._pools)

    async def get_pool(self, job: MigrationJob) -> Any:
        """Return the pool of `job`, creating it on first use."""

        pool = self._pools.get(job.id)
        if pool is not None:
            return pool

        async with self._lock:
            pool = self._pools.get(job.id)
            if pool is None:
                pool = await self._pool_factory(
                    dsn=job.target_dsn,
                    user=job.target_user,
                    password=job.target_password,
                    min_size=self._min_pool_size,
                    max_size=self._max_pool_size,
                    command_timeout=self._command_timeout_seconds,
                )
                self._pools[job.id] = pool
                logger.info(
                    "Created target pool for job %s (max %s connections).",
                    job.id,
                    self._max_pool_size,
                )
        return pool

    async def invalidate(self, job_id: int) -> None:
        """Close and forget the pool of one job."""

        async with self._lock:
            pool = self._pools.pop(job_id, None)
        if pool is not None:
            await pool.close()
            logger.info("Closed target pool for job %s.", job_id)

    async def close_all(self) -> None:
        """Close every cached pool."""

        async with self._lock:
            pools = list(self._pools.items())
            self._pools.clear()
        for job_id, pool in pools:
            try:
                await pool.close()
            except Exception:
                logger.exception("Failed to close target pool for job %s.", job_id)


__all__ = ["PoolFactory", "TargetPoolManager"]
