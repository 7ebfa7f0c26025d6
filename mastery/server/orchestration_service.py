"""
Orchestration Service: the server's evaluation policy.

Decides when a session's conversation is worth a judge call, runs the
evaluation and pushes the verdict to the student's socket.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from fastapi import WebSocketDisconnect
from loguru import logger

from mastery.orchestration.models import (
    EvaluationResult,
    TranscriptEntry,
    TranscriptRole,
    now_ms,
)
from mastery.orchestration.triggers import has_minimum_exchanges, should_evaluate_server
from mastery.server.evaluator import MasteryEvaluator
from mastery.server.session_manager import ServerSession, SessionManager


class OrchestrationService:
    """Server-side counterpart of the client ConversationOrchestrator."""

    MIN_TIME_BETWEEN_EVALS_MS = 8000

    def __init__(
        self,
        sessions: SessionManager,
        evaluator: MasteryEvaluator,
        cooldown_ms: int = MIN_TIME_BETWEEN_EVALS_MS,
        clock: Callable[[], float] = now_ms,
    ):
        self.sessions = sessions
        self.evaluator = evaluator
        self.cooldown_ms = cooldown_ms
        self.clock = clock
        # Session ids with an evaluation in flight
        self._evaluating: set[str] = set()

    def is_evaluating(self, session_id: str) -> bool:
        return session_id in self._evaluating

    async def handle_transcript(self, session_id: str, entry: TranscriptEntry) -> EvaluationResult | None:
        """Store an entry; final student turns may trigger an evaluation."""
        if not self.sessions.add_transcript_entry(session_id, entry):
            return None

        if entry.role == TranscriptRole.STUDENT and entry.is_final:
            return await self.check_for_evaluation(session_id)
        return None

    async def check_for_evaluation(self, session_id: str) -> EvaluationResult | None:
        session = self.sessions.get_session(session_id)
        if session is None or session.current_card is None:
            logger.debug("Skipping evaluation - no session or card")
            return None

        if session_id in self._evaluating:
            logger.debug("Already evaluating session {}", session_id)
            return None

        if session.last_evaluation_time is not None:
            elapsed = self.clock() - session.last_evaluation_time
            if elapsed < self.cooldown_ms:
                logger.debug("Too soon since last evaluation ({}ms)", int(elapsed))
                return None

        transcript = self.sessions.get_transcript_for_evaluation(session_id)
        if not has_minimum_exchanges(transcript):
            logger.debug("Not enough exchanges for session {}", session_id)
            return None

        if not should_evaluate_server(transcript):
            return None

        return await self.perform_evaluation(session_id)

    async def perform_evaluation(self, session_id: str) -> EvaluationResult | None:
        """Run the evaluator and push the verdict to the session's socket."""
        session = self.sessions.get_session(session_id)
        if session is None or session.current_card is None:
            return None

        self._evaluating.add(session_id)
        try:
            logger.info("Starting evaluation for session {}", session_id)
            evaluation = await self.evaluator.evaluate(
                session.current_card,
                self.sessions.get_transcript_for_evaluation(session_id),
                session.student_name,
            )
            logger.info(
                "Evaluation complete for {}: ready={} confidence={} level={} action={} points={}",
                session_id,
                evaluation.ready,
                evaluation.confidence,
                evaluation.mastery_level.value,
                evaluation.suggested_action.value,
                evaluation.points,
            )

            self.sessions.update_evaluation(session_id, evaluation.points or 0, self.clock())
            await self._push(
                session,
                {
                    "type": "evaluation",
                    "evaluation": {**evaluation.to_dict(), "timestamp": self.clock()},
                },
            )
            return evaluation

        except Exception as e:
            logger.error("Evaluation error for session {}: {}", session_id, e)
            return None

        finally:
            self._evaluating.discard(session_id)

    async def force_evaluation(self, session_id: str) -> EvaluationResult | None:
        """Evaluate now, ignoring the cooldown and the trigger policy."""
        logger.info("Forcing evaluation for session {}", session_id)
        if session_id in self._evaluating:
            logger.warning("Evaluation already in progress for {}", session_id)
            return None
        return await self.perform_evaluation(session_id)

    async def inject_message(self, session_id: str, message: str) -> bool:
        """Record a system message and relay it to the client."""
        entry = TranscriptEntry(
            role=TranscriptRole.SYSTEM,
            text=message,
            timestamp=self.clock(),
            is_final=True,
        )
        if not self.sessions.add_transcript_entry(session_id, entry):
            return False

        session = self.sessions.get_session(session_id)
        if session is not None:
            await self._push(session, {"type": "inject_message", "message": message})
        return True

    async def _push(self, session: ServerSession, message: dict[str, Any]) -> None:
        if session.websocket is None:
            return
        try:
            await session.websocket.send_json(message)
        except (WebSocketDisconnect, RuntimeError) as e:
            logger.warning("Could not deliver {} to {}: {}", message.get("type"), session.session_id, e)
