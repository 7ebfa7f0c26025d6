"""Exception hierarchy for the orchestration layer."""

from __future__ import annotations


class OrchestrationError(Exception):
    """Base class for orchestration failures."""


class ConnectionFailedError(OrchestrationError):
    """The orchestration server could not be reached or refused the session."""


class JudgeError(OrchestrationError):
    """The judge model could not produce an evaluation."""


class SessionStateError(OrchestrationError):
    """A persisted session snapshot is missing required data."""
