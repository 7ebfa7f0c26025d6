"""
Client-side conversation orchestration.

Components:
- models: transcript entries, evaluation results, backend state
- triggers: evaluation trigger heuristics
- conversation: local ConversationOrchestrator
- server_connection: WebSocket link to the orchestration server
- manager: OrchestrationManager with server/client fallback
- persistence: session snapshots in a key-value store
"""

from .conversation import ConversationOrchestrator
from .manager import OrchestrationManager
from .models import (
    EvaluationResult,
    MasteryLevel,
    OrchestrationMode,
    OrchestrationState,
    SuggestedAction,
    TranscriptEntry,
    TranscriptRole,
)
from .persistence import SessionState, build_store, load_session, save_session
from .server_connection import ServerOrchestrationConnection
from .triggers import detect_evaluation_triggers, has_minimum_exchanges, should_evaluate_server

__all__ = [
    "ConversationOrchestrator",
    "EvaluationResult",
    "MasteryLevel",
    "OrchestrationManager",
    "OrchestrationMode",
    "OrchestrationState",
    "ServerOrchestrationConnection",
    "SessionState",
    "SuggestedAction",
    "TranscriptEntry",
    "TranscriptRole",
    "build_store",
    "detect_evaluation_triggers",
    "has_minimum_exchanges",
    "load_session",
    "save_session",
    "should_evaluate_server",
]
