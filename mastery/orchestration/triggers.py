"""
Evaluation trigger heuristics.

Decides whether the conversation holds enough evidence to justify a judge
call. Each signal is an independent boolean; there is no scoring or
weighting between them.
"""

from __future__ import annotations

from collections.abc import Sequence

from loguru import logger

from mastery.orchestration.models import TranscriptEntry, TranscriptRole

# Client-side heuristic
RECENT_WINDOW = 6
MIN_STUDENT_TURNS = 2
MIN_PI_TURNS = 2
EXPLANATION_LENGTH = 50
CONFIDENCE_MIN_ENTRIES = 6
LONG_CONVERSATION_ENTRIES = 8

EXPLANATION_PHRASES = ("because", "i think", "it looks like", "that means")
CONFIDENCE_PHRASES = ("yes", "exactly", "i get it", "oh!")

# Server-side policy
SUBSTANTIVE_LENGTH = 15
SHORT_REPLY_LENGTH = 10
STRUGGLE_PHRASES = ("i don't know", "confused", "not sure")
STRUGGLE_MIN_REPLIES = 2
SERVER_MAX_EXCHANGES = 4
NOISE_MARKER = "<noise>"


def count_turns(transcript: Sequence[TranscriptEntry]) -> tuple[int, int]:
    """Return ``(student_turns, pi_turns)``."""
    student = sum(1 for t in transcript if t.role == TranscriptRole.STUDENT)
    pi = sum(1 for t in transcript if t.role == TranscriptRole.PI)
    return student, pi


def has_minimum_exchanges(transcript: Sequence[TranscriptEntry]) -> bool:
    """At least two student turns and two tutor turns."""
    student, pi = count_turns(transcript)
    return student >= MIN_STUDENT_TURNS and pi >= MIN_PI_TURNS


def _contains_any(text: str, phrases: Sequence[str]) -> bool:
    lowered = text.lower()
    return any(phrase in lowered for phrase in phrases)


def detect_evaluation_triggers(transcript: Sequence[TranscriptEntry]) -> bool:
    """
    Check the recent conversation for evidence worth a judge call.

    Signals:
        explanation: a recent student turn uses explanatory language or
            runs longer than 50 characters
        confidence: a recent student turn sounds sure of itself and the
            conversation has at least 6 entries
        long conversation: 8 or more entries overall
    """
    recent_student = [
        t for t in transcript[-RECENT_WINDOW:] if t.role == TranscriptRole.STUDENT
    ]
    length = len(transcript)

    has_explanation = any(
        _contains_any(t.text, EXPLANATION_PHRASES) or len(t.text) > EXPLANATION_LENGTH
        for t in recent_student
    )
    has_confidence = any(_contains_any(t.text, CONFIDENCE_PHRASES) for t in recent_student)
    is_long_conversation = length >= LONG_CONVERSATION_ENTRIES

    logger.debug(
        "Evaluation triggers: explanation={} confidence={} long={} length={}",
        has_explanation,
        has_confidence,
        is_long_conversation,
        length,
    )

    return (
        has_explanation
        or (has_confidence and length >= CONFIDENCE_MIN_ENTRIES)
        or is_long_conversation
    )


def should_evaluate_server(transcript: Sequence[TranscriptEntry]) -> bool:
    """
    Server-side policy: evaluate early once the student says anything substantive.

    Only final entries count. Fires on two or more student turns with one
    substantive reply, on a struggle pattern, or after four student turns.
    """
    student_turns = [
        t for t in transcript if t.is_final and t.role == TranscriptRole.STUDENT
    ]
    total = len(student_turns)

    def is_noise(text: str) -> bool:
        return NOISE_MARKER in text.lower()

    has_substantive = any(
        len(t.text.strip()) > SUBSTANTIVE_LENGTH and not is_noise(t.text)
        for t in student_turns
    )
    struggle_count = sum(
        1
        for t in student_turns
        if _contains_any(t.text, STRUGGLE_PHRASES)
        or (len(t.text.strip()) < SHORT_REPLY_LENGTH and not is_noise(t.text))
    )
    has_struggle = struggle_count >= STRUGGLE_MIN_REPLIES

    should = (
        (total >= MIN_STUDENT_TURNS and has_substantive)
        or has_struggle
        or total >= SERVER_MAX_EXCHANGES
    )
    logger.debug(
        "Server evaluation check: exchanges={} substantive={} struggle={} -> {}",
        total,
        has_substantive,
        has_struggle,
        should,
    )
    return should
