"""
WebSocket connection to the remote orchestration server.

Outbound messages: init, transcript, card_change, force_evaluation.
Inbound messages: evaluation, advance_card, inject_message, error.
Messages are fire-and-forget JSON objects with no acknowledgements.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import websockets
from loguru import logger

from mastery.exceptions import ConnectionFailedError
from mastery.orchestration.conversation import invoke_callback
from mastery.orchestration.models import TranscriptEntry

if TYPE_CHECKING:
    from mastery.cards.models import MasteryCard

MessageHandler = Callable[[dict[str, Any]], Any]

# Pseudo message type fired when the socket closes unexpectedly
DISCONNECT_EVENT = "disconnect"


class ServerOrchestrationConnection:
    """Client side of the ``/orchestrate`` WebSocket."""

    def __init__(
        self,
        session_id: str,
        server_url: str = "ws://localhost:3001/orchestrate",
        connect_timeout: float = 10.0,
        max_reconnect_attempts: int = 5,
        reconnect_delay: float = 1.0,
        connect_fn: Callable[..., Any] = websockets.connect,
    ):
        self.session_id = session_id
        self.server_url = server_url
        self.connect_timeout = connect_timeout
        self.max_reconnect_attempts = max_reconnect_attempts
        self.reconnect_delay = reconnect_delay
        self._connect_fn = connect_fn

        self._ws: Any = None
        self._receive_task: asyncio.Task | None = None
        self._closing = False
        self._handlers: dict[str, list[MessageHandler]] = {}

    @property
    def url(self) -> str:
        return f"{self.server_url}?sessionId={self.session_id}"

    @property
    def is_connected(self) -> bool:
        return self._ws is not None

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def connect(self, student_name: str, card: MasteryCard | None) -> None:
        """
        Open the socket and send ``init``.

        Raises:
            ConnectionFailedError: handshake or init did not complete in time
        """
        logger.info("Connecting to {}", self.url)
        self._closing = False

        try:
            ws = await asyncio.wait_for(
                self._open_and_init(student_name, card),
                timeout=self.connect_timeout,
            )
        except asyncio.TimeoutError as e:
            raise ConnectionFailedError(
                f"Timed out after {self.connect_timeout}s connecting to {self.server_url}"
            ) from e
        except (OSError, websockets.WebSocketException) as e:
            raise ConnectionFailedError(f"Could not connect to {self.server_url}: {e}") from e

        self._ws = ws
        self._receive_task = asyncio.create_task(self._receive_loop(ws))
        logger.info("Connected to orchestration server")

    async def _open_and_init(self, student_name: str, card: MasteryCard | None) -> Any:
        ws = await self._connect_fn(self.url)
        try:
            await ws.send(
                json.dumps(
                    {
                        "type": "init",
                        "studentName": student_name,
                        "currentCard": card.to_dict() if card else None,
                    }
                )
            )
        except BaseException:
            await ws.close()
            raise
        return ws

    async def reconnect(self, student_name: str, card: MasteryCard | None) -> None:
        """
        Reconnect with exponential backoff.

        Delay before attempt n is ``reconnect_delay * 2 ** (n - 1)`` seconds.

        Raises:
            ConnectionFailedError: every attempt failed
        """
        await self._close_socket()

        last_error: Exception | None = None
        for attempt in range(1, self.max_reconnect_attempts + 1):
            delay = self.reconnect_delay * 2 ** (attempt - 1)
            logger.info(
                "Reconnecting in {}s (attempt {}/{})",
                delay,
                attempt,
                self.max_reconnect_attempts,
            )
            await asyncio.sleep(delay)
            try:
                await self.connect(student_name, card)
                return
            except ConnectionFailedError as e:
                last_error = e
                logger.warning("Reconnection attempt {} failed: {}", attempt, e)

        raise ConnectionFailedError(
            f"Reconnection failed after {self.max_reconnect_attempts} attempts"
        ) from last_error

    async def disconnect(self) -> None:
        """Close the socket, stop the receive loop and drop all handlers."""
        await self._close_socket()
        self._handlers.clear()
        logger.info("Disconnected from orchestration server")

    async def _close_socket(self) -> None:
        self._closing = True
        ws, self._ws = self._ws, None
        task, self._receive_task = self._receive_task, None

        if task is not None and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        if ws is not None:
            await ws.close()

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def on(self, message_type: str, handler: MessageHandler) -> None:
        self._handlers.setdefault(message_type, []).append(handler)

    def off(self, message_type: str, handler: MessageHandler) -> None:
        handlers = self._handlers.get(message_type)
        if handlers and handler in handlers:
            handlers.remove(handler)

    async def _receive_loop(self, ws: Any) -> None:
        reason = "closed"
        try:
            async for raw in ws:
                try:
                    message = json.loads(raw)
                except (json.JSONDecodeError, TypeError) as e:
                    logger.error("Failed to parse server message: {}", e)
                    continue
                if not isinstance(message, dict):
                    logger.error("Ignoring non-object server message")
                    continue
                await self._dispatch(message)
        except websockets.ConnectionClosed as e:
            reason = str(e)

        if self._ws is ws and not self._closing:
            self._ws = None
            self._receive_task = None
            logger.warning("Orchestration server connection lost: {}", reason)
            await self._dispatch({"type": DISCONNECT_EVENT, "reason": reason})

    async def _dispatch(self, message: dict[str, Any]) -> None:
        message_type = message.get("type")
        logger.debug("Received message: {}", message_type)

        if message_type == "error":
            logger.error("Server error: {}", message.get("error"))
        elif message_type == "inject_message":
            logger.info("Server injected message: {}", message.get("message"))

        for handler in list(self._handlers.get(message_type, [])):
            try:
                await invoke_callback(handler, message)
            except Exception:
                logger.exception("Handler for {} failed", message_type)

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    async def send(self, message: dict[str, Any]) -> bool:
        """Send a message; returns False when it was dropped."""
        if self._ws is None:
            logger.warning("WebSocket not connected, dropping {}", message.get("type"))
            return False
        try:
            await self._ws.send(json.dumps(message))
            return True
        except websockets.ConnectionClosed as e:
            logger.error("Send error: {}", e)
            return False

    async def send_transcript(self, entry: TranscriptEntry) -> bool:
        return await self.send({"type": "transcript", "entry": entry.to_dict()})

    async def update_card(self, card: MasteryCard) -> bool:
        return await self.send({"type": "card_change", "card": card.to_dict()})

    async def force_evaluation(self) -> bool:
        return await self.send({"type": "force_evaluation"})
