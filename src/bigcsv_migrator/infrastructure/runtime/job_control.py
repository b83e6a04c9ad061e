"""Cooperative stop signal for jobs that are no longer active."""

from __future__ import annotations

import threading
from collections.abc import Iterable


class JobControl:
    """Hold the ids of stopped or paused jobs.

    The dispatcher refreshes the set from the status store every cycle and the
    management service updates it immediately on stop/resume. Worker threads
    read it once per row, so access is guarded by a thread lock.
    """

    def __init__(self) -> None:
        self._stopped: frozenset[int] = frozenset()
        self._guard = threading.Lock()

    def replace(self, stopped_job_ids: Iterable[int]) -> None:
        """Replace the full stop set."""

        with self._guard:
            self._stopped = frozenset(stopped_job_ids)

    def mark_stopped(self, job_id: int) -> None:
        """Flag one job as stopped."""

        with self._guard:
            self._stopped = self._stopped | {job_id}

    def mark_active(self, job_id: int) -> None:
        """Clear the stop flag of one job."""

        with self._guard:
            self._stopped = self._stopped - {job_id}

    def should_stop(self, job_id: int) -> bool:
        """Return whether work for `job_id` must stop."""

        return job_id in self._stopped

    def stopped_job_ids(self) -> frozenset[int]:
        """Return a snapshot of the stop set."""

        return self._stopped


__all__ = ["JobControl"]
