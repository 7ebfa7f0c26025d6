"""
API router for live orchestration sessions.

- WS /orchestrate: transcript stream from the browser client
- REST: session inspection, manual evaluation, message injection
"""

from __future__ import annotations

import json
from typing import Any

from fastapi import APIRouter, HTTPException, Query, Request, WebSocket, WebSocketDisconnect
from loguru import logger
from pydantic import ValidationError

from mastery.api.schemas import (
    CardChangeMessage,
    InitMessage,
    InjectMessageRequest,
    InjectMessageResponse,
    SessionSummary,
    TranscriptMessage,
    TranscriptResponse,
)
from mastery.cards.models import MasteryCard
from mastery.server.orchestration_service import OrchestrationService
from mastery.server.session_manager import ServerSession

router = APIRouter()


def _service(app: Any) -> OrchestrationService:
    return app.state.orchestration


async def handle_client_message(
    service: OrchestrationService,
    session: ServerSession,
    message: dict[str, Any],
) -> None:
    """
    Apply one client message to the session.

    Raises:
        ValidationError, KeyError, TypeError, ValueError: malformed message
    """
    message_type = message.get("type")
    session_id = session.session_id

    if message_type == "init":
        init = InitMessage.model_validate(message)
        session.student_name = init.student_name
        card = MasteryCard.from_dict(init.current_card) if init.current_card else None
        service.sessions.set_card(session_id, card)
        logger.info("Session {} initialized for {}", session_id, init.student_name)

    elif message_type == "transcript":
        entry = TranscriptMessage.model_validate(message).entry.to_entry()
        await service.handle_transcript(session_id, entry)

    elif message_type == "card_change":
        change = CardChangeMessage.model_validate(message)
        service.sessions.set_card(session_id, MasteryCard.from_dict(change.card))

    elif message_type == "force_evaluation":
        evaluation = await service.force_evaluation(session_id)
        if evaluation is None:
            logger.warning("Forced evaluation produced no result for {}", session_id)

    else:
        logger.warning("Unknown message type: {}", message_type)


@router.websocket("/orchestrate")
async def orchestrate(websocket: WebSocket, session_id: str = Query(default="", alias="sessionId")):
    """Transcript stream for one student session."""
    service = _service(websocket.app)
    await websocket.accept()

    session = service.sessions.get_or_create_session(session_id or None)
    session.websocket = websocket
    logger.info("New orchestration connection for session: {}", session.session_id)

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
                if not isinstance(message, dict):
                    raise ValueError("message must be a JSON object")
                await handle_client_message(service, session, message)
            except (ValidationError, KeyError, TypeError, ValueError) as e:
                logger.error("WebSocket message error for {}: {}", session.session_id, e)
                await websocket.send_json({"type": "error", "error": "Failed to process message"})
    except WebSocketDisconnect:
        logger.info("Session {} disconnected", session.session_id)
    finally:
        if session.websocket is websocket:
            session.websocket = None


@router.get("/session/{session_id}", response_model=SessionSummary)
def get_session(session_id: str, request: Request):
    session = _service(request.app).sessions.get_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return SessionSummary.model_validate(session.to_summary())


@router.get("/transcript/{session_id}", response_model=TranscriptResponse)
def get_transcript(session_id: str, request: Request):
    session = _service(request.app).sessions.get_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return TranscriptResponse(
        session_id=session.session_id,
        transcript=[entry.to_dict() for entry in session.transcript],
    )


@router.post("/evaluate/{session_id}")
async def evaluate_session(session_id: str, request: Request) -> dict[str, Any] | None:
    """
    Manual evaluation trigger.

    Returns the evaluation, or null when the session has no card or an
    evaluation is already running.
    """
    service = _service(request.app)
    if service.sessions.get_session(session_id) is None:
        raise HTTPException(status_code=404, detail="Session not found")
    evaluation = await service.force_evaluation(session_id)
    return evaluation.to_dict() if evaluation else None


@router.post("/inject-message", response_model=InjectMessageResponse)
async def inject_message(body: InjectMessageRequest, request: Request):
    """Add a system message to the session and relay it to the client."""
    delivered = await _service(request.app).inject_message(body.session_id, body.message)
    if not delivered:
        raise HTTPException(status_code=404, detail="Session not found")
    return InjectMessageResponse(success=True)
