"""Append-only execution log."""
from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any

from .models import ExecutionRecord

logger = logging.getLogger(__name__)


class ExecutionLog:
    """Keeps every ExecutionRecord in order, optionally mirrored to a JSON-lines file."""

    def __init__(self, path: Path | str | None = None):
        self._records: list[ExecutionRecord] = []
        self._path = Path(path) if path is not None else None
        self._lock = threading.Lock()

    def append(self, record: ExecutionRecord) -> None:
        with self._lock:
            self._records.append(record)
            if self._path is None:
                return
            try:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                with self._path.open("a", encoding="utf-8") as fh:
                    fh.write(record.model_dump_json() + "\n")
            except OSError:
                logger.warning("Failed to append execution record to %s", self._path, exc_info=True)

    def records(self) -> list[ExecutionRecord]:
        with self._lock:
            return list(self._records)

    def last(self) -> ExecutionRecord | None:
        with self._lock:
            return self._records[-1] if self._records else None

    def summary(self) -> dict[str, Any]:
        records = self.records()
        successful = sum(1 for r in records if r.success)
        return {
            "executions": len(records),
            "successful": successful,
            "failed": len(records) - successful,
        }

    def __len__(self) -> int:
        return len(self._records)

    @classmethod
    def from_file(cls, path: Path | str) -> "ExecutionLog":
        """Load a previously written log; unreadable lines are skipped."""
        log = cls(path)
        path = Path(path)
        if not path.is_file():
            return log
        for line in path.read_text(encoding="utf-8").splitlines():
            if not line.strip():
                continue
            try:
                log._records.append(ExecutionRecord.model_validate_json(line))
            except ValueError:
                logger.debug("Skipping unreadable execution record in %s", path)
        return log
