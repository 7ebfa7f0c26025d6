"""
In-memory registry of server-side orchestration sessions.

Sessions live for the lifetime of the process. A session whose socket is
gone and that has not been touched for ``timeout_minutes`` is swept by
``cleanup_sessions``.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Optional

from loguru import logger

from mastery.cards.models import MasteryCard
from mastery.orchestration.models import TranscriptEntry


@dataclass
class ServerSession:
    """State the server keeps for one connected student."""

    session_id: str
    student_name: str = ""
    current_card: Optional[MasteryCard] = None
    transcript: list[TranscriptEntry] = field(default_factory=list)
    evaluation_count: int = 0
    last_evaluation_time: float | None = None  # epoch ms; None = never
    total_points: int = 0
    websocket: Any = None
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    def touch(self) -> None:
        self.updated_at = datetime.now()

    def to_summary(self) -> dict[str, Any]:
        """Shape returned by ``GET /session/{id}``."""
        return {
            "sessionId": self.session_id,
            "studentName": self.student_name,
            "currentCard": self.current_card.title if self.current_card else None,
            "transcriptLength": len(self.transcript),
            "evaluationCount": self.evaluation_count,
            "totalPoints": self.total_points,
        }


class SessionManager:
    """Session registry keyed by session id."""

    def __init__(self, timeout_minutes: int = 30):
        self.timeout = timedelta(minutes=timeout_minutes)
        self._sessions: dict[str, ServerSession] = {}

    def get_or_create_session(self, session_id: str | None = None) -> ServerSession:
        sid = session_id or str(uuid.uuid4())
        session = self._sessions.get(sid)
        if session is None:
            session = ServerSession(session_id=sid)
            self._sessions[sid] = session
            logger.info("Created new session: {}", sid)
        return session

    def get_session(self, session_id: str) -> ServerSession | None:
        session = self._sessions.get(session_id)
        if session is not None:
            session.touch()
        return session

    def add_transcript_entry(self, session_id: str, entry: TranscriptEntry) -> bool:
        session = self.get_session(session_id)
        if session is None:
            logger.error("Session not found: {}", session_id)
            return False

        session.transcript.append(entry)
        logger.debug("Added {} entry to session {}: {}", entry.role.value, session_id, entry.text[:50])
        return True

    def get_transcript_for_evaluation(self, session_id: str) -> list[TranscriptEntry]:
        """Final entries only."""
        session = self.get_session(session_id)
        if session is None:
            return []
        return [t for t in session.transcript if t.is_final]

    def update_evaluation(self, session_id: str, points: int, now_ms: float) -> None:
        session = self.get_session(session_id)
        if session is None:
            return
        session.evaluation_count += 1
        session.last_evaluation_time = now_ms
        session.total_points += points

    def set_card(self, session_id: str, card: MasteryCard | None) -> None:
        """Switch cards; the transcript belongs to the old card and is dropped."""
        session = self.get_session(session_id)
        if session is None:
            return
        session.current_card = card
        session.transcript = []
        session.last_evaluation_time = None
        if card is not None:
            logger.info("Card changed for session {}: {}", session_id, card.title)

    def clear_transcript(self, session_id: str) -> None:
        session = self.get_session(session_id)
        if session is None:
            return
        session.transcript = []
        logger.info("Cleared transcript for session {}", session_id)

    def active_sessions(self) -> list[ServerSession]:
        """Sessions with a connected socket."""
        return [s for s in self._sessions.values() if s.websocket is not None]

    def cleanup_sessions(self, now: datetime | None = None) -> int:
        """Drop idle sessions without a socket; returns how many were removed."""
        now = now or datetime.now()
        stale = [
            sid
            for sid, s in self._sessions.items()
            if s.websocket is None and now - s.updated_at > self.timeout
        ]
        for sid in stale:
            del self._sessions[sid]
            logger.info("Cleaned up old session: {}", sid)

        if stale:
            logger.info("Cleaned up {} old sessions", len(stale))
        return len(stale)

    def stats(self) -> dict[str, int]:
        return {
            "totalSessions": len(self._sessions),
            "activeSessions": len(self.active_sessions()),
            "totalTranscriptEntries": sum(len(s.transcript) for s in self._sessions.values()),
        }

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions
