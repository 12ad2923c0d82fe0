"""Capture sessions and their on-disk state."""

from __future__ import annotations

import json
import os
import re
import shutil
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import Any

__all__ = [
    "SessionError",
    "SessionNotFoundError",
    "SessionStatus",
    "Session",
    "SessionManager",
]

_STATE_FILE = "state.json"
_FRACTION = re.compile(r"\.(\d+)")


class SessionError(Exception):
    """Raised when a session operation fails."""


class SessionNotFoundError(SessionError):
    """Raised when no stored session has the requested id."""

    def __init__(self, session_id: uuid.UUID | str) -> None:
        super().__init__(f"Session not found: {session_id}")
        self.session_id = str(session_id)


class SessionStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    STOPPED = "stopped"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _format_timestamp(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _parse_timestamp(text: str) -> datetime:
    text = text.strip()
    if text[-1:] in ("Z", "z"):
        text = text[:-1] + "+00:00"
    text = _FRACTION.sub(lambda match: "." + (match.group(1) + "000000")[:6], text, count=1)
    value = datetime.fromisoformat(text)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _sessions_root(data_dir: str | os.PathLike[str]) -> Path:
    return Path(data_dir) / "sessions"


def _as_uuid(session_id: uuid.UUID | str) -> uuid.UUID:
    return session_id if isinstance(session_id, uuid.UUID) else uuid.UUID(str(session_id))


@dataclass
class Session:
    """A capture session."""

    name: str
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    started_at: datetime = field(default_factory=_utcnow)
    stopped_at: datetime | None = None
    capture_count: int = 0
    blob_count: int = 0
    status: SessionStatus = SessionStatus.ACTIVE
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def with_timestamp(cls) -> Session:
        """Create a session named after the current UTC time."""
        return cls(_utcnow().strftime("session_%Y%m%d_%H%M%S"))

    def stop(self) -> None:
        self.stopped_at = _utcnow()
        self.status = SessionStatus.STOPPED

    def pause(self) -> None:
        self.status = SessionStatus.PAUSED

    def resume(self) -> None:
        self.status = SessionStatus.ACTIVE

    def duration(self) -> timedelta:
        """Time from start until stop, or until now while still running."""
        end = self.stopped_at if self.stopped_at is not None else _utcnow()
        return end - self.started_at

    def increment_capture_count(self) -> None:
        self.capture_count += 1

    def increment_blob_count(self) -> None:
        self.blob_count += 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "name": self.name,
            "started_at": _format_timestamp(self.started_at),
            "stopped_at": None if self.stopped_at is None else _format_timestamp(self.stopped_at),
            "capture_count": self.capture_count,
            "blob_count": self.blob_count,
            "status": self.status.value,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Session:
        try:
            stopped_at = data["stopped_at"]
            return cls(
                name=str(data["name"]),
                id=uuid.UUID(str(data["id"])),
                started_at=_parse_timestamp(data["started_at"]),
                stopped_at=None if stopped_at is None else _parse_timestamp(stopped_at),
                capture_count=int(data["capture_count"]),
                blob_count=int(data["blob_count"]),
                status=SessionStatus(data["status"]),
                metadata=dict(data.get("metadata") or {}),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise SessionError(f"Failed to deserialize session state: {exc}") from exc

    def save(self, data_dir: str | os.PathLike[str]) -> None:
        """Write the session state to ``<data_dir>/sessions/<id>/state.json``."""
        session_dir = self.session_dir(data_dir)
        session_dir.mkdir(parents=True, exist_ok=True)
        (session_dir / _STATE_FILE).write_text(
            json.dumps(self.to_dict(), indent=2), encoding="utf-8"
        )

    @classmethod
    def load(cls, data_dir: str | os.PathLike[str], session_id: uuid.UUID | str) -> Session:
        session_id = _as_uuid(session_id)
        state_file = _sessions_root(data_dir) / str(session_id) / _STATE_FILE
        if not state_file.exists():
            raise SessionNotFoundError(session_id)
        try:
            data = json.loads(state_file.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise SessionError(f"Failed to deserialize session state: {exc}") from exc
        if not isinstance(data, dict):
            raise SessionError("Failed to deserialize session state: not an object")
        return cls.from_dict(data)

    def session_dir(self, data_dir: str | os.PathLike[str]) -> Path:
        return _sessions_root(data_dir) / str(self.id)


class SessionManager:
    """Creates, loads, lists and deletes sessions under a data directory."""

    def __init__(self, data_dir: str | os.PathLike[str]) -> None:
        self.data_dir = Path(data_dir)
        self._current: Session | None = None

    def create_session(self, name: str | None = None) -> Session:
        """Create, persist and make current a new session."""
        session = Session(name) if name is not None else Session.with_timestamp()
        session.save(self.data_dir)
        self._current = session
        return session

    def current_session(self) -> Session | None:
        return self._current

    def stop_session(self) -> None:
        """Stop and persist the current session, then clear it."""
        if self._current is None:
            raise SessionError("No active session")
        self._current.stop()
        self._current.save(self.data_dir)
        self._current = None

    def load_session(self, session_id: uuid.UUID | str) -> Session:
        session = Session.load(self.data_dir, session_id)
        self._current = session
        return session

    def list_sessions(self) -> list[Session]:
        """Return every readable stored session, newest first."""
        sessions_dir = _sessions_root(self.data_dir)
        if not sessions_dir.exists():
            return []
        sessions = []
        for entry in sessions_dir.iterdir():
            if not entry.is_dir():
                continue
            try:
                session_id = uuid.UUID(entry.name)
            except ValueError:
                continue
            try:
                sessions.append(Session.load(self.data_dir, session_id))
            except (SessionError, OSError):
                continue
        sessions.sort(key=lambda session: session.started_at, reverse=True)
        return sessions

    def find_by_name(self, name: str) -> Session | None:
        return next((s for s in self.list_sessions() if s.name == name), None)

    def delete_session(self, session_id: uuid.UUID | str) -> None:
        session_id = _as_uuid(session_id)
        session_dir = _sessions_root(self.data_dir) / str(session_id)
        if not session_dir.exists():
            raise SessionNotFoundError(session_id)
        shutil.rmtree(session_dir)