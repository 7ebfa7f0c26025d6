"""
Orchestration Manager: one interface over two evaluation backends.

1. Tries the remote orchestration server first (hybrid/server modes)
2. Falls back to the local ConversationOrchestrator when the server is
   unreachable or drops the connection
3. Persists best-effort session snapshots and resumes them on start
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from mastery.cards.models import MasteryCard
from mastery.exceptions import ConnectionFailedError
from mastery.orchestration.conversation import (
    ConversationOrchestrator,
    EvaluationCallback,
    StartCallback,
    invoke_callback,
)
from mastery.orchestration.models import (
    EvaluationResult,
    MasteryLevel,
    OrchestrationMode,
    OrchestrationState,
    SuggestedAction,
    TranscriptEntry,
    now_ms,
)
from mastery.orchestration.persistence import (
    KeyValueStore,
    MemoryKeyValueStore,
    SessionState,
    delete_session,
    load_session,
    save_session,
)
from mastery.orchestration.server_connection import DISCONNECT_EVENT, ServerOrchestrationConnection

if TYPE_CHECKING:
    from mastery.evaluation.judge import Judge

ConnectionChangeCallback = Callable[[bool, OrchestrationMode], Any]

DUPLICATE_WINDOW_MS = 5000
SAVE_EVERY_N_ENTRIES = 10

_LEVELS = {level.value for level in MasteryLevel}


class OrchestrationManager:
    """
    Routes transcript, card changes and forced evaluations to the active backend.

    Lifecycle: uninitialized -> connecting -> server_active | client_active.
    A dropped socket moves server_active to client_active; only an explicit
    ``reconnect()`` moves back. ``disconnect()`` is terminal.
    """

    def __init__(
        self,
        session_id: str,
        judge: Judge | None = None,
        server_url: str | None = None,
        mode: str = "hybrid",
        store: KeyValueStore | None = None,
        enable_persistence: bool = True,
        clock: Callable[[], float] = now_ms,
        connection: ServerOrchestrationConnection | None = None,
        cooldown_ms: int = ConversationOrchestrator.MIN_TIME_BETWEEN_EVALS_MS,
        duplicate_window_ms: int = DUPLICATE_WINDOW_MS,
        connect_timeout: float = 10.0,
        max_reconnect_attempts: int = 5,
        reconnect_delay: float = 1.0,
    ):
        self.session_id = session_id
        self.mode = mode
        self.clock = clock
        self.duplicate_window_ms = duplicate_window_ms
        self.enable_persistence = enable_persistence
        self.store: KeyValueStore = store if store is not None else MemoryKeyValueStore()

        self._state = OrchestrationState.UNINITIALIZED
        self._student_name = ""
        self._current_card: MasteryCard | None = None
        self._transcript: list[TranscriptEntry] = []
        self._entries_added = 0
        self._last_evaluation_time: float | None = None
        self._points = 0
        self._completed_cards: list[int] = []

        self._on_evaluation_complete: EvaluationCallback | None = None
        self._on_evaluation_start: StartCallback | None = None
        self._on_connection_change: ConnectionChangeCallback | None = None

        self._local: ConversationOrchestrator | None = None
        if judge is not None:
            self._local = ConversationOrchestrator(judge, clock=clock, cooldown_ms=cooldown_ms)
            self._local.set_evaluation_callback(self._handle_local_evaluation)
            self._local.set_evaluation_start_callback(self._handle_local_start)
            logger.info("Client orchestrator initialized")

        self._connection: ServerOrchestrationConnection | None = None
        if mode != "client":
            if connection is not None:
                self._connection = connection
            elif server_url:
                self._connection = ServerOrchestrationConnection(
                    session_id,
                    server_url,
                    connect_timeout=connect_timeout,
                    max_reconnect_attempts=max_reconnect_attempts,
                    reconnect_delay=reconnect_delay,
                )
        if self._connection is not None:
            self._setup_server_handlers()
            logger.info("Server connection initialized")

        self._prior: SessionState | None = None
        if self.enable_persistence:
            self._prior = load_session(self.store, session_id)

    # ------------------------------------------------------------------
    # Callbacks
    # ------------------------------------------------------------------

    def set_evaluation_callbacks(
        self,
        on_complete: EvaluationCallback | None,
        on_start: StartCallback | None = None,
    ) -> None:
        self._on_evaluation_complete = on_complete
        self._on_evaluation_start = on_start

    def set_connection_change_callback(self, callback: ConnectionChangeCallback | None) -> None:
        self._on_connection_change = callback

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> OrchestrationState:
        return self._state

    @property
    def current_card(self) -> MasteryCard | None:
        return self._current_card

    @property
    def points(self) -> int:
        return self._points

    @property
    def completed_cards(self) -> list[int]:
        return list(self._completed_cards)

    def get_transcript(self) -> list[TranscriptEntry]:
        return list(self._transcript)

    def get_mode(self) -> dict[str, Any]:
        """Active backend plus server availability."""
        server_available = self._state == OrchestrationState.SERVER_ACTIVE
        active = OrchestrationMode.SERVER if server_available else OrchestrationMode.CLIENT
        return {
            "active": active.value,
            "server_available": server_available,
            "state": self._state.value,
        }

    def _is_terminal(self, operation: str) -> bool:
        if self._state == OrchestrationState.DISCONNECTED:
            logger.warning("Ignoring {} on disconnected session {}", operation, self.session_id)
            return True
        return False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self, student_name: str, card: MasteryCard | None) -> None:
        """Connect to the preferred backend and resume any matching snapshot."""
        if self._is_terminal("initialize"):
            return

        self._student_name = student_name
        self._current_card = card
        self._transcript = []
        if self._local is not None and card is not None:
            self._local.set_current_card(card)

        self._resume(card)

        if self._connection is not None:
            self._state = OrchestrationState.CONNECTING
            try:
                await self._connection.connect(student_name, card)
            except ConnectionFailedError as e:
                logger.warning("Server unavailable, falling back to client: {}", e)
                self._state = OrchestrationState.CLIENT_ACTIVE
                await invoke_callback(self._on_connection_change, False, OrchestrationMode.CLIENT)
            else:
                self._state = OrchestrationState.SERVER_ACTIVE
                logger.info("Using server-side orchestration")
                await invoke_callback(self._on_connection_change, True, OrchestrationMode.SERVER)
        else:
            self._state = OrchestrationState.CLIENT_ACTIVE

        if self._state == OrchestrationState.CLIENT_ACTIVE:
            logger.info("Using client-side orchestration")

        self._save_session()

    def _resume(self, card: MasteryCard | None) -> None:
        prior = self._prior
        if prior is None:
            return

        self._points = prior.points
        self._completed_cards = list(prior.completed_cards)

        prior_card_id = (prior.current_card or {}).get("id") or (prior.current_card or {}).get("cardId")
        if card is None or prior_card_id != card.id or not prior.transcript:
            return

        try:
            entries = [TranscriptEntry.from_dict(item) for item in prior.transcript]
        except (AttributeError, TypeError, ValueError) as e:
            logger.error("Discarding unreadable transcript for session {}: {}", self.session_id, e)
            return

        self._transcript = entries
        if self._local is not None:
            self._local.restore_transcript(entries)
        logger.info("Resumed {} transcript entries for card {}", len(entries), card.id)

    async def reconnect(self) -> bool:
        """Explicitly retry the server; returns True when server mode is active again."""
        if self._is_terminal("reconnect"):
            return False
        if self._connection is None:
            logger.warning("No orchestration server configured, cannot reconnect")
            return False

        was_server = self._state == OrchestrationState.SERVER_ACTIVE
        try:
            await self._connection.reconnect(self._student_name, self._current_card)
        except ConnectionFailedError as e:
            logger.error("Reconnection failed: {}", e)
            if was_server:
                await self._fall_back_to_client()
            return False

        self._state = OrchestrationState.SERVER_ACTIVE
        logger.info("Reconnected to server")
        await invoke_callback(self._on_connection_change, True, OrchestrationMode.SERVER)
        return True

    async def disconnect(self) -> None:
        """Close the socket, flush the snapshot and stop accepting work."""
        if self._state == OrchestrationState.DISCONNECTED:
            return
        if self._connection is not None:
            await self._connection.disconnect()
        self._save_session()
        self._state = OrchestrationState.DISCONNECTED
        logger.info("Disconnected session {}", self.session_id)

    def clear_session(self) -> None:
        delete_session(self.store, self.session_id)
        logger.info("Session {} cleared", self.session_id)

    # ------------------------------------------------------------------
    # Transcript and cards
    # ------------------------------------------------------------------

    async def add_transcript_entry(self, entry: TranscriptEntry) -> EvaluationResult | None:
        """
        Record an entry and route it to the active backend.

        Returns:
            A local evaluation if this entry triggered one. Server-side
            evaluations arrive later through the evaluation callback.
        """
        if self._is_terminal("transcript entry"):
            return None

        self._entries_added += 1

        result = None
        sent = False
        if self._state == OrchestrationState.SERVER_ACTIVE and self._connection is not None:
            sent = await self._connection.send_transcript(entry)
            if not sent:
                logger.warning("Transcript send failed, switching to client mode")
                # Local orchestrator is synced before it sees this entry
                await self._fall_back_to_client()

        self._transcript.append(entry)
        if not sent and self._local is not None:
            result = await self._local.add_transcript_entry(entry)

        if self._entries_added % SAVE_EVERY_N_ENTRIES == 0:
            self._save_session()

        return result

    async def set_current_card(self, card: MasteryCard) -> None:
        """Switch cards on both backends and snapshot the session."""
        if self._is_terminal("card change"):
            return

        self._current_card = card
        self._transcript = []

        if self._state == OrchestrationState.SERVER_ACTIVE and self._connection is not None:
            await self._connection.update_card(card)
        if self._local is not None:
            self._local.set_current_card(card)

        self._save_session()

    async def force_evaluation(self) -> EvaluationResult | None:
        """Server mode: request and return None (result arrives as a message)."""
        if self._is_terminal("force evaluation"):
            return None

        logger.info("Force evaluation requested")
        if self._state == OrchestrationState.SERVER_ACTIVE and self._connection is not None:
            await self._connection.force_evaluation()
            return None
        if self._local is not None:
            return await self._local.force_evaluation()

        logger.warning("No evaluation backend available")
        return None

    # ------------------------------------------------------------------
    # Evaluation intake
    # ------------------------------------------------------------------

    def _is_duplicate(self) -> bool:
        if self._last_evaluation_time is None:
            return False
        return self.clock() - self._last_evaluation_time < self.duplicate_window_ms

    async def _accept_evaluation(self, evaluation: EvaluationResult) -> None:
        self._last_evaluation_time = self.clock()
        if (
            evaluation.suggested_action == SuggestedAction.AWARD_AND_NEXT
            and self._current_card is not None
        ):
            self._points += evaluation.points or 0
            if self._current_card.card_number not in self._completed_cards:
                self._completed_cards.append(self._current_card.card_number)
        await invoke_callback(self._on_evaluation_complete, evaluation)

    async def _handle_local_start(self) -> None:
        await invoke_callback(self._on_evaluation_start)

    async def _handle_local_evaluation(self, evaluation: EvaluationResult) -> None:
        await self._accept_evaluation(evaluation)

    def _setup_server_handlers(self) -> None:
        if self._connection is None:
            return
        self._connection.on("evaluation", self._handle_server_evaluation)
        self._connection.on("advance_card", self._handle_advance_card)
        self._connection.on(DISCONNECT_EVENT, self._handle_server_disconnect)

    async def _handle_server_evaluation(self, message: dict[str, Any]) -> None:
        data = message.get("evaluation")
        if not isinstance(data, dict):
            logger.error("No evaluation data in message")
            return
        if self._is_duplicate():
            logger.info("Ignoring duplicate evaluation (within {}ms window)", self.duplicate_window_ms)
            return

        logger.info("Received server evaluation")
        await self._accept_evaluation(EvaluationResult.from_dict(data))
        self._save_session()

    async def _handle_advance_card(self, message: dict[str, Any]) -> None:
        if self._is_duplicate():
            logger.info("Ignoring duplicate advance_card (within {}ms window)", self.duplicate_window_ms)
            return

        logger.info("Server requested card advancement")
        level = message.get("masteryLevel")
        evaluation = EvaluationResult(
            ready=True,
            confidence=100,
            mastery_level=MasteryLevel(level) if level in _LEVELS else MasteryLevel.BASIC,
            reasoning=str(message.get("reasoning") or "Server determined mastery"),
            suggested_action=SuggestedAction.AWARD_AND_NEXT,
            points=int(message.get("points") or 0),
        )
        await self._accept_evaluation(evaluation)
        self._save_session()

    async def _handle_server_disconnect(self, message: dict[str, Any]) -> None:
        if self._state != OrchestrationState.SERVER_ACTIVE:
            return
        logger.warning("Server disconnected, switching to client mode")
        await self._fall_back_to_client()

    async def _fall_back_to_client(self) -> None:
        self._state = OrchestrationState.CLIENT_ACTIVE
        # Local heuristic picks up where the server left off
        if self._local is not None and self._current_card is not None:
            self._local.set_current_card(self._current_card)
            self._local.restore_transcript(self._transcript)
        await invoke_callback(self._on_connection_change, False, OrchestrationMode.CLIENT)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def snapshot(self) -> SessionState:
        return SessionState(
            session_id=self.session_id,
            student_name=self._student_name,
            current_card=self._current_card.to_dict() if self._current_card else None,
            transcript=[entry.to_dict() for entry in self._transcript],
            points=self._points,
            completed_cards=list(self._completed_cards),
            timestamp=self.clock(),
        )

    def _save_session(self) -> None:
        if not self.enable_persistence:
            return
        try:
            save_session(self.store, self.snapshot())
        except (OSError, SQLAlchemyError) as e:
            logger.error("Failed to save session {}: {}", self.session_id, e)
