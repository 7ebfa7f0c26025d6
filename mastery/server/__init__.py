"""
Remote orchestration backend.

Components:
- evaluator: Claude judge with offline simulation
- session_manager: in-memory session registry
- orchestration_service: server-side evaluation policy
"""

from .evaluator import MasteryEvaluator
from .orchestration_service import OrchestrationService
from .session_manager import ServerSession, SessionManager

__all__ = [
    "MasteryEvaluator",
    "OrchestrationService",
    "ServerSession",
    "SessionManager",
]
