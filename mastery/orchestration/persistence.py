"""
Session snapshot persistence for orchestration sessions.

Snapshots are JSON blobs stored under ``mastery_session_{session_id}`` in a
key-value store. Persistence is best effort: a snapshot that fails to parse
is treated as no prior session.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional, Protocol

from loguru import logger
from sqlalchemy import Column, DateTime, MetaData, String, Table, Text, create_engine, delete, insert, select
from sqlalchemy.exc import SQLAlchemyError

from mastery.exceptions import SessionStateError

if TYPE_CHECKING:
    from config import Settings

SESSION_KEY_PREFIX = "mastery_session_"

# Default session directory
SESSION_DIR = Path.home() / ".mastery" / "sessions"


def session_key(session_id: str) -> str:
    return f"{SESSION_KEY_PREFIX}{session_id}"


@dataclass
class SessionState:
    """Serializable orchestration session state."""

    session_id: str
    student_name: str = ""
    current_card: Optional[dict[str, Any]] = None  # wire-format card
    transcript: list[dict[str, Any]] = field(default_factory=list)  # wire-format entries
    points: int = 0
    completed_cards: list[int] = field(default_factory=list)
    timestamp: float = 0.0  # epoch ms of last save

    def to_dict(self) -> dict[str, Any]:
        """Convert to the camelCase JSON layout."""
        return {
            "sessionId": self.session_id,
            "studentName": self.student_name,
            "currentCard": self.current_card,
            "transcript": self.transcript,
            "points": self.points,
            "completedCards": self.completed_cards,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SessionState:
        """Create from dictionary; raises SessionStateError on malformed data."""
        if not data.get("sessionId"):
            raise SessionStateError("Snapshot has no sessionId")
        transcript = data.get("transcript") or []
        if not isinstance(transcript, list) or not all(isinstance(item, dict) for item in transcript):
            raise SessionStateError("transcript must be a list of entries")
        current_card = data.get("currentCard")
        if current_card is not None and not isinstance(current_card, dict):
            raise SessionStateError("currentCard must be an object")
        return cls(
            session_id=data["sessionId"],
            student_name=data.get("studentName", ""),
            current_card=current_card,
            transcript=transcript,
            points=int(data.get("points", 0)),
            completed_cards=list(data.get("completedCards") or []),
            timestamp=float(data.get("timestamp", 0)),
        )


class KeyValueStore(Protocol):
    """Minimal string key-value storage."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> bool: ...

    def keys(self) -> list[str]: ...


class MemoryKeyValueStore:
    """Process-local store, used for tests and ephemeral sessions."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    def keys(self) -> list[str]:
        return sorted(self._data)


class JsonFileKeyValueStore:
    """
    One file per key.

    Files are stored as {key}.json inside ``directory``.
    """

    def __init__(self, directory: Optional[Path] = None):
        self.directory = directory or SESSION_DIR
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def get(self, key: str) -> str | None:
        filepath = self._path(key)
        if not filepath.exists():
            return None
        with open(filepath, "r", encoding="utf-8") as f:
            return f.read()

    def set(self, key: str, value: str) -> None:
        with open(self._path(key), "w", encoding="utf-8") as f:
            f.write(value)

    def delete(self, key: str) -> bool:
        filepath = self._path(key)
        if filepath.exists():
            filepath.unlink()
            return True
        return False

    def keys(self) -> list[str]:
        return sorted(p.stem for p in self.directory.glob("*.json"))


class SqlKeyValueStore:
    """Key-value rows in a single ``kv_store`` table via SQLAlchemy Core."""

    def __init__(self, database_url: str):
        self.engine = create_engine(database_url, pool_pre_ping=True)
        self.metadata = MetaData()
        self.table = Table(
            "kv_store",
            self.metadata,
            Column("key", String(255), primary_key=True),
            Column("value", Text, nullable=False),
            Column("updated_at", DateTime, nullable=False),
        )
        self.metadata.create_all(self.engine)

    def get(self, key: str) -> str | None:
        with self.engine.connect() as conn:
            row = conn.execute(
                select(self.table.c.value).where(self.table.c.key == key)
            ).first()
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        with self.engine.begin() as conn:
            conn.execute(delete(self.table).where(self.table.c.key == key))
            conn.execute(
                insert(self.table).values(key=key, value=value, updated_at=datetime.now())
            )

    def delete(self, key: str) -> bool:
        with self.engine.begin() as conn:
            result = conn.execute(delete(self.table).where(self.table.c.key == key))
        return result.rowcount > 0

    def keys(self) -> list[str]:
        with self.engine.connect() as conn:
            rows = conn.execute(select(self.table.c.key).order_by(self.table.c.key)).fetchall()
        return [row[0] for row in rows]


def save_session(store: KeyValueStore, state: SessionState) -> None:
    """Write a snapshot."""
    store.set(session_key(state.session_id), json.dumps(state.to_dict()))
    logger.debug("Session {} saved", state.session_id)


def load_session(store: KeyValueStore, session_id: str) -> Optional[SessionState]:
    """Read a snapshot; any parse failure counts as no prior session."""
    try:
        raw = store.get(session_key(session_id))
        if raw is None:
            return None
        state = SessionState.from_dict(json.loads(raw))
    except (OSError, SQLAlchemyError) as e:
        logger.error("Failed to read session {}: {}", session_id, e)
        return None
    except (SessionStateError, AttributeError, TypeError, ValueError) as e:
        logger.error("Failed to load session {}: {}", session_id, e)
        return None

    logger.info("Session {} loaded (saved at {})", session_id, state.timestamp)
    return state


def delete_session(store: KeyValueStore, session_id: str) -> bool:
    return store.delete(session_key(session_id))


def list_sessions(store: KeyValueStore) -> list[SessionState]:
    """All readable snapshots, most recently saved first."""
    sessions = []
    for key in store.keys():
        if not key.startswith(SESSION_KEY_PREFIX):
            continue
        state = load_session(store, key[len(SESSION_KEY_PREFIX):])
        if state is not None:
            sessions.append(state)
    return sorted(sessions, key=lambda s: s.timestamp, reverse=True)


def build_store(settings: Settings) -> KeyValueStore:
    """Construct the configured backend."""
    if settings.session_store_backend == "memory":
        return MemoryKeyValueStore()
    if settings.session_store_backend == "sql":
        return SqlKeyValueStore(settings.database_url)
    directory = Path(settings.session_dir).expanduser() if settings.session_dir else None
    return JsonFileKeyValueStore(directory)
