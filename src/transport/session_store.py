"""Persisted session identities so a restarted process can reuse session ids."""
from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path
from typing import Any

from core.config import cfg

logger = logging.getLogger("scene-pilot")


class SessionIdentityStore:
    """JSON file mapping target_ref -> mode -> {session_id, created_at}.

    Only identities are stored; live scene handles never survive a restart.
    """

    def __init__(self, path: Path | str | None = None):
        self._path = Path(path) if path is not None else None
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path if self._path is not None else cfg.sessions_file

    def _read(self) -> dict[str, dict[str, Any]]:
        path = self.path
        try:
            if path.exists():
                data = json.loads(path.read_text(encoding="utf-8"))
                if isinstance(data, dict):
                    return data
        except (OSError, json.JSONDecodeError):
            logger.debug("Failed to read session identities at %s", path, exc_info=True)
        return {}

    def _write(self, data: dict[str, dict[str, Any]]) -> None:
        path = self.path
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp = path.with_suffix(".tmp")
            tmp.write_text(json.dumps(data, indent=2, sort_keys=True), encoding="utf-8")
            os.replace(tmp, path)
        except OSError:
            logger.warning("Failed to persist session identities to %s", path, exc_info=True)

    @staticmethod
    def _records(data: dict[str, Any]):
        for target_ref, by_mode in data.items():
            if not isinstance(by_mode, dict):
                continue
            for mode, rec in by_mode.items():
                if isinstance(rec, dict):
                    yield target_ref, mode, rec

    def get(self, target_ref: str, mode: str) -> dict[str, Any] | None:
        with self._lock:
            by_mode = self._read().get(target_ref)
            if not isinstance(by_mode, dict):
                return None
            return by_mode.get(mode)

    def put(self, target_ref: str, session_id: str, mode: str, created_at: str) -> None:
        with self._lock:
            data = self._read()
            by_mode = data.get(target_ref)
            if not isinstance(by_mode, dict):
                by_mode = data[target_ref] = {}
            by_mode[mode] = {"session_id": session_id, "created_at": created_at}
            self._write(data)

    def remove(self, session_id: str) -> None:
        with self._lock:
            data = self._read()
            kept: dict[str, dict[str, Any]] = {}
            removed = False
            for target_ref, mode, rec in self._records(data):
                if rec.get("session_id") == session_id:
                    removed = True
                    continue
                kept.setdefault(target_ref, {})[mode] = rec
            if removed:
                self._write(kept)

    def lookup_target(self, session_id: str) -> str | None:
        with self._lock:
            for target_ref, _mode, rec in self._records(self._read()):
                if rec.get("session_id") == session_id:
                    return target_ref
        return None
