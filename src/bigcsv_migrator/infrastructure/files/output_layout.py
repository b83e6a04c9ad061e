"""Output directory layout for split, error and diff files."""

from __future__ import annotations

from pathlib import Path


class OutputLayout:
    """Resolve artifact paths below one output root."""

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root)

    @property
    def root(self) -> Path:
        """Return the output root."""

        return self._root

    def batch_dir(self, job_id: int, batch_id: int) -> Path:
        return self._root / str(job_id) / str(batch_id)

    def split_dir(self, job_id: int, batch_id: int, file_task_id: int) -> Path:
        return self.batch_dir(job_id, batch_id) / "output_split" / str(file_task_id)

    def split_file(self, job_id: int, batch_id: int, file_task_id: int, index: int) -> Path:
        return self.split_dir(job_id, batch_id, file_task_id) / f"{index}.csv"

    def error_file(self, job_id: int, batch_id: int, file_task_id: int) -> Path:
        return self.batch_dir(job_id, batch_id) / "output_error" / f"{file_task_id}_error.csv"

    def diff_file(self, job_id: int, batch_id: int, split_id: int) -> Path:
        return self.batch_dir(job_id, batch_id) / "verify_result" / f"split_{split_id}_diff.txt"


def remove_file(path: str | Path) -> bool:
    """Delete a file if present, returning whether something was removed."""

    target = Path(path)
    try:
        target.unlink()
    except FileNotFoundError:
        return False
    return True


__all__ = ["OutputLayout", "remove_file"]
