"""Turn signal files into batches and file tasks."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path

from pydantic import ValidationError

from bigcsv_migrator.domain.entities import Batch, MigrationJob, NewFileTask
from bigcsv_migrator.domain.errors import MigrationValidationError
from bigcsv_migrator.domain.ports import MigrationRepository
from bigcsv_migrator.domain.signal_models import SignalFile
from bigcsv_migrator.infrastructure.files import table_name_from_ddl_path

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ResolvedSignal:
    """Signal file content with absolute paths and the final table name."""

    signal_file_path: str
    table_name: str
    ddl_file_path: str
    source_paths: tuple[str, ...]


def _resolve(base_dir: Path, value: str) -> Path:
    path = Path(value)
    if not path.is_absolute():
        path = base_dir / path
    return path.absolute()


def read_signal_file(path: str | Path) -> ResolvedSignal:
    """Parse one signal file and resolve every path it references.

    Relative paths resolve against the signal file's directory. Raises
    `MigrationValidationError` when the file is unreadable, malformed or
    references a missing file.
    """

    signal_path = Path(path).absolute()
    try:
        text = signal_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise MigrationValidationError(f"Cannot read signal file '{signal_path}': {exc}") from exc
    try:
        signal = SignalFile.model_validate_json(text)
    except ValidationError as exc:
        raise MigrationValidationError(f"Invalid signal file '{signal_path}': {exc}") from exc

    base_dir = signal_path.parent
    ddl_path = _resolve(base_dir, signal.ddl)
    if not ddl_path.is_file():
        raise MigrationValidationError(f"DDL file '{ddl_path}' not found.")

    source_paths: list[str] = []
    for entry in signal.csv:
        source_path = _resolve(base_dir, entry)
        if not source_path.is_file():
            raise MigrationValidationError(f"Source file '{source_path}' not found.")
        source_paths.append(str(source_path))

    schema, _, table = table_name_from_ddl_path(ddl_path).rpartition(".")
    if signal.schema_name:
        schema = signal.schema_name
    if signal.table:
        table = signal.table
    table_name = f"{schema}.{table}" if schema else table

    return ResolvedSignal(
        signal_file_path=str(signal_path),
        table_name=table_name,
        ddl_file_path=str(ddl_path),
        source_paths=tuple(source_paths),
    )


class SignalIntakeService:
    """Register signal files found in a job's watch directory."""

    def __init__(self, repository: MigrationRepository, node_id: str) -> None:
        self._repository = repository
        self._node_id = node_id

    async def register_signal(self, job: MigrationJob, signal_path: str | Path) -> Batch | None:
        """Create the batch of one signal file.

        Returns None when the signal file was already registered.
        """

        resolved = await asyncio.to_thread(read_signal_file, signal_path)
        batch = await self._repository.create_batch_with_tasks(
            job_id=job.id,
            signal_file_path=resolved.signal_file_path,
            table_name=resolved.table_name,
            ddl_file_path=resolved.ddl_file_path,
            node_id=self._node_id,
            files=[NewFileTask(source_path=path) for path in resolved.source_paths],
        )
        if batch is None:
            logger.debug("Signal file %s is already registered.", resolved.signal_file_path)
            return None
        logger.info(
            "Registered Batch %s for %s from %s with %s file(s).",
            batch.id,
            batch.table_name,
            batch.signal_file_path,
            len(resolved.source_paths),
        )
        return batch


__all__ = ["ResolvedSignal", "SignalIntakeService", "read_signal_file"]
