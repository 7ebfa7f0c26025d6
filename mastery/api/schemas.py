"""
Pydantic request/response models for the orchestration API.

Field names follow the camelCase wire format used by the browser client.
"""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from mastery.orchestration.models import TranscriptEntry, TranscriptRole


class WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# ========================================
# WebSocket messages (client -> server)
# ========================================


class TranscriptEntryModel(WireModel):
    role: Literal["pi", "student", "system"]
    text: str
    timestamp: float = 0
    is_final: bool = Field(default=True, alias="isFinal")

    def to_entry(self) -> TranscriptEntry:
        return TranscriptEntry(
            role=TranscriptRole(self.role),
            text=self.text,
            timestamp=self.timestamp,
            is_final=self.is_final,
        )


class InitMessage(WireModel):
    type: Literal["init"]
    student_name: str = Field(default="", alias="studentName")
    current_card: Optional[dict[str, Any]] = Field(default=None, alias="currentCard")


class TranscriptMessage(WireModel):
    type: Literal["transcript"]
    entry: TranscriptEntryModel


class CardChangeMessage(WireModel):
    type: Literal["card_change"]
    card: dict[str, Any]


# ========================================
# REST
# ========================================


class InjectMessageRequest(WireModel):
    session_id: str = Field(alias="sessionId", min_length=1)
    message: str = Field(min_length=1)


class InjectMessageResponse(BaseModel):
    success: bool


class SessionSummary(WireModel):
    session_id: str = Field(alias="sessionId")
    student_name: str = Field(alias="studentName")
    current_card: Optional[str] = Field(default=None, alias="currentCard")
    transcript_length: int = Field(alias="transcriptLength")
    evaluation_count: int = Field(alias="evaluationCount")
    total_points: int = Field(alias="totalPoints")


class TranscriptResponse(WireModel):
    session_id: str = Field(alias="sessionId")
    transcript: list[dict[str, Any]]


class HealthResponse(BaseModel):
    status: str
    uptime: float
    sessions: int
    judge: Literal["configured", "simulated"]


# ========================================
# Judge proxy
# ========================================


class ClaudeMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: Any


class ClaudeEvaluateRequest(BaseModel):
    """Anthropic Messages request body as sent by the judge client."""

    model: str = Field(min_length=1)
    max_tokens: int = Field(default=500, gt=0)
    temperature: float = Field(default=0.3, ge=0, le=1)
    messages: list[ClaudeMessage] = Field(min_length=1)
