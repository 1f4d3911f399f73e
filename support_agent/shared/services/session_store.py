"""Saved sessions — named pointers to server-side session ids.

Storage layout:
    ~/.support-agent/sessions.json

    {
      "auth-flow": {
        "session_id": "ses_...",
        "model": "google/gemini-2.5-flash",
        "repository": "/home/me/src/app",
        "saved_at": "2026-01-01T12:00:00+00:00"
      }
    }

Only the opaque id is kept; the transcript lives on the agent server.
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass
class SavedSession:
    name: str
    session_id: str
    model: str | None = None
    repository: str | None = None
    saved_at: str = ""


def atomic_write_text(path: Path, content: str, *, encoding: str = "utf-8") -> None:
    """Write via a temp file + rename so readers never see partial JSON."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding=encoding) as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    finally:
        if tmp_path.exists():
            try:
                tmp_path.unlink()
            except OSError:
                pass


class SessionStore:
    """Name → session id registry persisted as one JSON file."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> dict[str, dict]:
        if not self._path.is_file():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable session file %s: %s", self._path, exc)
            return {}
        if not isinstance(data, dict):
            return {}
        return {k: v for k, v in data.items() if isinstance(v, dict)}

    def _write(self, data: dict[str, dict]) -> None:
        atomic_write_text(self._path, json.dumps(data, indent=2, sort_keys=True) + "\n")

    def save(
        self,
        name: str,
        session_id: str,
        *,
        model: str | None = None,
        repository: str | None = None,
    ) -> SavedSession:
        """Save (or overwrite) *name*."""
        name = name.strip()
        if not name:
            raise ValueError("session name must not be empty")
        saved = SavedSession(
            name=name,
            session_id=session_id,
            model=model,
            repository=repository,
            saved_at=datetime.now(timezone.utc).isoformat(),
        )
        data = self._read()
        entry = asdict(saved)
        entry.pop("name")
        data[name] = entry
        self._write(data)
        logger.info("Saved session %s -> %s", name, session_id)
        return saved

    def load(self, name: str) -> SavedSession | None:
        entry = self._read().get(name)
        if entry is None or not entry.get("session_id"):
            return None
        return SavedSession(
            name=name,
            session_id=str(entry["session_id"]),
            model=entry.get("model"),
            repository=entry.get("repository"),
            saved_at=str(entry.get("saved_at", "")),
        )

    def list_sessions(self) -> list[SavedSession]:
        """All saved sessions, most recently saved first."""
        sessions = [self.load(name) for name in self._read()]
        found = [s for s in sessions if s is not None]
        found.sort(key=lambda s: s.saved_at, reverse=True)
        return found

    def delete(self, name: str) -> bool:
        data = self._read()
        if name not in data:
            return False
        del data[name]
        self._write(data)
        return True
