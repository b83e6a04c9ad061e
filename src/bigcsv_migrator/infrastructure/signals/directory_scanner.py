"""Background loop watching job source directories for signal files."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from contextlib import suppress
from pathlib import Path

from bigcsv_migrator.domain.entities import Batch, MigrationJob
from bigcsv_migrator.domain.errors import MigrationValidationError
from bigcsv_migrator.domain.ports import MigrationRepository

logger = logging.getLogger(__name__)

SignalHandler = Callable[[MigrationJob, Path], Awaitable[Batch | None]]


def find_signal_files(directory: str | Path, suffix: str) -> list[Path]:
    """Return signal files directly inside `directory`, sorted by name."""

    root = Path(directory)
    if not root.is_dir():
        return []
    return sorted(
        path.absolute() for path in root.iterdir() if path.is_file() and path.name.endswith(suffix)
    )


class SignalDirectoryScanner:
    """Scan the watch directory of every ACTIVE job on a fixed interval.

    Registered and rejected signal files are remembered for the process
    lifetime; a rejected file is read again once its modification time
    changes.
    """

    def __init__(
        self,
        *,
        repository: MigrationRepository,
        handler: SignalHandler,
        suffix: str = ".ok",
        poll_interval_seconds: float = 5.0,
    ) -> None:
        self._repository = repository
        self._handler = handler
        self._suffix = suffix
        self._poll_interval_seconds = max(poll_interval_seconds, 0.01)

        self._registered: set[Path] = set()
        self._rejected: dict[Path, float] = {}
        self._task: asyncio.Task[None] | None = None
        self._wake_event = asyncio.Event()
        self._stopping = asyncio.Event()

    async def start(self) -> None:
        """Start the scan loop if not already running."""

        if self._task is not None and not self._task.done():
            return
        self._stopping.clear()
        self._wake_event.set()
        self._task = asyncio.create_task(self._run_loop(), name="signal-directory-scanner")

    async def stop(self) -> None:
        """Stop the scan loop."""

        task = self._task
        self._task = None
        if task is None:
            return
        self._stopping.set()
        self._wake_event.set()
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task

    def wake(self) -> None:
        """Run the next scan immediately."""

        self._wake_event.set()

    async def scan_once(self) -> int:
        """Scan every ACTIVE job once and return the number of new batches."""

        created = 0
        for job in await self._repository.list_jobs():
            if not job.is_active:
                continue
            try:
                created += await self._scan_job(job)
            except Exception:
                logger.exception("Scanning source directory of job %s failed.", job.id)
        return created

    async def _scan_job(self, job: MigrationJob) -> int:
        paths = await asyncio.to_thread(find_signal_files, job.source_directory, self._suffix)
        created = 0
        for path in paths:
            if path in self._registered:
                continue
            mtime = await asyncio.to_thread(_mtime, path)
            if self._rejected.get(path) == mtime:
                continue
            try:
                batch = await self._handler(job, path)
            except MigrationValidationError as exc:
                self._rejected[path] = mtime
                logger.warning("Rejected signal file %s: %s", path, exc)
                continue
            self._rejected.pop(path, None)
            self._registered.add(path)
            if batch is not None:
                created += 1
        return created

    async def _run_loop(self) -> None:
        while not self._stopping.is_set():
            try:
                await self.scan_once()
            except Exception:
                logger.exception("Signal directory scan failed.")

            self._wake_event.clear()
            try:
                await asyncio.wait_for(
                    self._wake_event.wait(),
                    timeout=self._poll_interval_seconds,
                )
            except TimeoutError:
                pass


def _mtime(path: Path) -> float:
    try:
        return path.stat().st_mtime
    except OSError:
        return -1.0


__all__ = ["SignalDirectoryScanner", "SignalHandler", "find_signal_files"]
