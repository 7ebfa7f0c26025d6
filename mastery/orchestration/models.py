"""
Core orchestration types: transcript entries, judge evaluations, backend state.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any


def now_ms() -> float:
    """Current wall-clock time in epoch milliseconds."""
    return time.time() * 1000


class TranscriptRole(str, Enum):
    """Who produced a transcript entry."""
    PI = "pi"
    STUDENT = "student"
    SYSTEM = "system"


class MasteryLevel(str, Enum):
    """Depth of understanding the judge credits the student with."""
    NONE = "none"
    BASIC = "basic"
    ADVANCED = "advanced"
    TEACHING = "teaching"    # Corrected Pi's misconception


class SuggestedAction(str, Enum):
    """What the app should do with the current card."""
    CONTINUE = "continue"
    AWARD_AND_NEXT = "award_and_next"
    NEXT_WITHOUT_POINTS = "next_without_points"


class OrchestrationMode(str, Enum):
    """Backend currently handling the transcript."""
    SERVER = "server"
    CLIENT = "client"


class OrchestrationState(str, Enum):
    """Lifecycle of an OrchestrationManager."""
    UNINITIALIZED = "uninitialized"
    CONNECTING = "connecting"
    SERVER_ACTIVE = "server_active"
    CLIENT_ACTIVE = "client_active"
    DISCONNECTED = "disconnected"


@dataclass(frozen=True)
class TranscriptEntry:
    """A single utterance fragment from the live conversation."""

    role: TranscriptRole
    text: str
    timestamp: float
    is_final: bool = True

    @classmethod
    def create(cls, role: TranscriptRole | str, text: str, is_final: bool = True) -> TranscriptEntry:
        """Build an entry stamped with the current time."""
        return cls(role=TranscriptRole(role), text=text, timestamp=now_ms(), is_final=is_final)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the camelCase wire format."""
        return {
            "role": self.role.value,
            "text": self.text,
            "timestamp": self.timestamp,
            "isFinal": self.is_final,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TranscriptEntry:
        return cls(
            role=TranscriptRole(data.get("role", "system")),
            text=str(data.get("text", "")),
            timestamp=float(data.get("timestamp", 0) or 0),
            is_final=bool(data.get("isFinal", data.get("is_final", True))),
        )


_MASTERY_LEVELS = {level.value for level in MasteryLevel}
_ACTIONS = {action.value for action in SuggestedAction}


@dataclass(frozen=True)
class EvaluationResult:
    """Judge verdict on the conversation so far."""

    ready: bool
    confidence: int
    mastery_level: MasteryLevel
    reasoning: str
    suggested_action: SuggestedAction
    points: int | None = None
    focus_area: str | None = None

    @classmethod
    def not_ready(cls, reasoning: str, confidence: int = 0) -> EvaluationResult:
        return cls(
            ready=False,
            confidence=confidence,
            mastery_level=MasteryLevel.NONE,
            reasoning=reasoning,
            suggested_action=SuggestedAction.CONTINUE,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to the camelCase wire format."""
        data: dict[str, Any] = {
            "ready": self.ready,
            "confidence": self.confidence,
            "masteryLevel": self.mastery_level.value,
            "reasoning": self.reasoning,
            "suggestedAction": self.suggested_action.value,
        }
        if self.points is not None:
            data["points"] = self.points
        if self.focus_area:
            data["focusArea"] = self.focus_area
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EvaluationResult:
        """
        Parse and normalise untrusted judge output.

        Confidence is clamped to 0-100, unknown enum values degrade to
        ``none`` / ``continue``, falsy points become None.
        """
        try:
            confidence = int(float(data.get("confidence") or 0))
        except (TypeError, ValueError):
            confidence = 0

        level = data.get("masteryLevel", data.get("mastery_level"))
        action = data.get("suggestedAction", data.get("suggested_action"))

        points = data.get("points")
        try:
            points = int(points) if points else None
        except (TypeError, ValueError):
            points = None

        return cls(
            ready=bool(data.get("ready", False)),
            confidence=min(100, max(0, confidence)),
            mastery_level=MasteryLevel(level) if level in _MASTERY_LEVELS else MasteryLevel.NONE,
            reasoning=str(data.get("reasoning") or "No reasoning provided"),
            suggested_action=SuggestedAction(action) if action in _ACTIONS else SuggestedAction.CONTINUE,
            points=points,
            focus_area=data.get("focusArea") or data.get("focus_area"),
        )
