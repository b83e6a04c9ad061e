"""Process-local task exclusion set."""

from __future__ import annotations

import threading


class TaskLock:
    """Mark task keys in use so one node never runs the same task twice.

    This is not a distributed lock. Cross-node exclusivity comes from the
    conditional status update in the status store.
    """

    def __init__(self) -> None:
        self._held: set[str] = set()
        self._guard = threading.Lock()

    def try_acquire(self, task_key: str) -> bool:
        """Mark `task_key` in use, returning False when it already is."""

        with self._guard:
            if task_key in self._held:
                return False
            self._held.add(task_key)
            return True

    def release(self, task_key: str) -> None:
        """Remove the mark unconditionally."""

        with self._guard:
            self._held.discard(task_key)

    def is_held(self, task_key: str) -> bool:
        """Return whether `task_key` is currently marked."""

        with self._guard:
            return task_key in self._held

    def held_count(self) -> int:
        """Return number of marked keys."""

        with self._guard:
            return len(self._held)


def file_task_key(file_task_id: int) -> str:
    """Lock key of a file task."""

    return f"file_task:{file_task_id}"


def split_key(split_id: int) -> str:
    """Lock key of a split."""

    return f"split:{split_id}"


__all__ = ["TaskLock", "file_task_key", "split_key"]
