"""Job-level reconciliation of source, split and target row totals."""

from __future__ import annotations

import logging

from bigcsv_migrator.domain.errors import NotFoundError
from bigcsv_migrator.domain.ports import MigrationRepository, TargetDatabase
from bigcsv_migrator.domain.verification import (
    GlobalVerifyStatus,
    TableVerifyResult,
    classify_table_counts,
)

logger = logging.getLogger(__name__)


class GlobalVerifyService:
    """Cross-check every target table of a job."""

    def __init__(self, repository: MigrationRepository, target: TargetDatabase) -> None:
        self._repository = repository
        self._target = target

    async def verify_job(self, job_id: int) -> list[TableVerifyResult]:
        """Return one result per target table; a failing table never stops the scan."""

        job = await self._repository.get_job(job_id)
        if job is None:
            raise NotFoundError(f"Job {job_id} not found.")

        table_names = await self._repository.list_target_tables(job_id)
        if not table_names:
            raise NotFoundError(f"No target tables found for job {job_id}; nothing to verify.")

        results: list[TableVerifyResult] = []
        for table_name in table_names:
            source_rows = 0
            split_rows = 0
            try:
                source_rows = await self._repository.sum_source_rows(job_id, table_name)
                split_rows = await self._repository.sum_split_rows(job_id, table_name)
                target_rows = await self._target.count_table_rows(job, table_name)
            except Exception as exc:
                logger.warning("Global verify of %s (job %s) failed: %s", table_name, job_id, exc)
                results.append(
                    TableVerifyResult(
                        table_name=table_name,
                        source_rows=source_rows,
                        split_rows=split_rows,
                        target_rows=-1,
                        status=GlobalVerifyStatus.ERROR,
                        message=str(exc),
                    )
                )
                continue
            status = classify_table_counts(source_rows, split_rows, target_rows)
            results.append(
                TableVerifyResult(
                    table_name=table_name,
                    source_rows=source_rows,
                    split_rows=split_rows,
                    target_rows=target_rows,
                    status=status,
                )
            )
            logger.info(
                "Global verify %s: source=%s split=%s target=%s -> %s",
                table_name,
                source_rows,
                split_rows,
                target_rows,
                status,
            )
        return results


__all__ = ["GlobalVerifyService"]
