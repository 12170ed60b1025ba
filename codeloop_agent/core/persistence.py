"""
Persistence — save/load session snapshots and checkpoints as JSON.

Storage layout:
    {data_dir}/
        sessions/{session_id}.json
        checkpoints/{session_id}_{timestamp}.json

A snapshot never contains the system prompt; it is rebuilt fresh when a
session is restored and the messages are replayed through the
ContextManager's append methods.
"""

from __future__ import annotations
import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .models import TokenUsage

logger = logging.getLogger(__name__)


@dataclass
class SessionSnapshot:
    """Serializable state of one session."""
    session_id: str
    created_at: str
    updated_at: str
    turn_count: int
    messages: list[dict] = field(default_factory=list)
    total_usage: TokenUsage = field(default_factory=TokenUsage)

    def to_dict(self) -> dict:
        return {
            "sessionId": self.session_id,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "turnCount": self.turn_count,
            "messages": self.messages,
            "totalUsage": self.total_usage.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SessionSnapshot":
        return cls(
            session_id=data["sessionId"],
            created_at=data.get("createdAt", ""),
            updated_at=data.get("updatedAt", ""),
            turn_count=int(data.get("turnCount", 0)),
            messages=list(data.get("messages") or []),
            total_usage=TokenUsage.from_dict(data.get("totalUsage")),
        )


@dataclass
class SessionSummary:
    """One row of ``list_sessions``."""
    session_id: str
    created_at: str
    updated_at: str
    turn_count: int


class PersistenceManager:
    """Reads and writes snapshots under a data directory."""

    SESSIONS_DIR = "sessions"
    CHECKPOINTS_DIR = "checkpoints"

    def __init__(self, data_dir: str):
        self.data_dir = Path(data_dir)
        self.sessions_dir = self.data_dir / self.SESSIONS_DIR
        self.checkpoints_dir = self.data_dir / self.CHECKPOINTS_DIR
        os.makedirs(self.sessions_dir, exist_ok=True)
        os.makedirs(self.checkpoints_dir, exist_ok=True)

    @staticmethod
    def _write(path: Path, snapshot: SessionSnapshot) -> None:
        tmp_path = path.with_suffix(".json.tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(snapshot.to_dict(), f, indent=2, ensure_ascii=False)
        os.replace(tmp_path, path)

    @staticmethod
    def _read(path: Path) -> Optional[SessionSnapshot]:
        if not path.exists():
            return None
        with open(path, encoding="utf-8") as f:
            return SessionSnapshot.from_dict(json.load(f))

    def save_session(self, snapshot: SessionSnapshot) -> Path:
        path = self.sessions_dir / f"{snapshot.session_id}.json"
        self._write(path, snapshot)
        logger.info(f"Saved session {snapshot.session_id}")
        return path

    def load_session(self, session_id: str) -> Optional[SessionSnapshot]:
        return self._read(self.sessions_dir / f"{session_id}.json")

    def list_sessions(self) -> list[SessionSummary]:
        """All saved sessions, most recently updated first."""
        sessions = []
        for path in self.sessions_dir.glob("*.json"):
            try:
                with open(path, encoding="utf-8") as f:
                    data = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                logger.warning(f"Skipping unreadable session file {path}: {e}")
                continue
            sessions.append(SessionSummary(
                session_id=data.get("sessionId", path.stem),
                created_at=data.get("createdAt", ""),
                updated_at=data.get("updatedAt", ""),
                turn_count=int(data.get("turnCount", 0)),
            ))
        sessions.sort(key=lambda s: s.updated_at, reverse=True)
        return sessions

    def save_checkpoint(self, snapshot: SessionSnapshot) -> str:
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%fZ")
        checkpoint_id = f"{snapshot.session_id}_{timestamp}"
        self._write(self.checkpoints_dir / f"{checkpoint_id}.json", snapshot)
        logger.info(f"Saved checkpoint {checkpoint_id}")
        return checkpoint_id

    def load_checkpoint(self, checkpoint_id: str) -> Optional[SessionSnapshot]:
        return self._read(self.checkpoints_dir / f"{checkpoint_id}.json")

    def list_checkpoints(self, session_id: Optional[str] = None) -> list[str]:
        """Checkpoint ids, newest first; only *session_id*'s when given."""
        ids = [path.stem for path in self.checkpoints_dir.glob("*.json")]
        if session_id:
            ids = [i for i in ids if i.startswith(f"{session_id}_")]
        return sorted(ids, key=lambda i: i.rsplit("_", 1)[-1], reverse=True)
