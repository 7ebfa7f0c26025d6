"""
Mastery judge: prompt construction, response parsing and fallbacks.

Shared by the HTTP judge client (local orchestrator) and the server-side
evaluator. The judge model itself is an external collaborator; this module
only shapes what goes in and sanitises what comes back.
"""

from __future__ import annotations

import json
import re
from collections.abc import Sequence
from typing import Protocol

from loguru import logger

from mastery.cards.models import MasteryCard
from mastery.orchestration.models import (
    EvaluationResult,
    MasteryLevel,
    SuggestedAction,
    TranscriptEntry,
    TranscriptRole,
)

MIN_EXCHANGES = 2
STUCK_EXCHANGES = 5
FALLBACK_ADVANCE_EXCHANGES = 3
HISTORY_WINDOW = 10

SIMULATED_MIN_TURNS = 4
SIMULATED_EXPLANATION_LENGTH = 30


class Judge(Protocol):
    """Anything that can turn a card conversation into an evaluation."""

    async def evaluate(
        self,
        card: MasteryCard,
        history: Sequence[TranscriptEntry],
        exchange_count: int,
    ) -> EvaluationResult: ...


JUDGE_PROMPT = """You are an education evaluator for a fraction learning app. Analyze if {student} has demonstrated understanding.

CARD: {title}
LEARNING GOAL: {learning_goal}
IMAGE: {image_description}

MILESTONES:
{milestones}

CONVERSATION ({exchange_count} exchanges):
{conversation}

EVALUATION CRITERIA:
1. Has the student explained the concept (not just described the image)?
2. Did they use reasoning words (because, so, if, when)?
3. Did they connect to the learning goal?
4. Is their explanation correct and clear?

IMPORTANT RULES:
- Basic mastery requires: explaining WHAT they see + WHY it matters
- Advanced mastery requires: deeper reasoning, connections, or multiple examples
- Teaching mastery (misconception cards): student must explain why Pi is wrong
- Short answers like "I don't know" or "maybe" = not ready
- Guessing without explanation = not ready

Return ONLY a JSON object (no markdown, no code blocks):
{{
  "ready": boolean,
  "confidence": number (0-100),
  "masteryLevel": "none" | "basic" | "advanced" | "teaching",
  "reasoning": "brief 1-sentence explanation",
  "suggestedAction": "continue" | "award_and_next" | "next_without_points",
  "points": number (if ready=true and masteryLevel != none)
}}

If ready=true and masteryLevel="basic", points should be {basic_points}
If ready=true and masteryLevel="advanced", points should be {advanced_points}
If ready=true and masteryLevel="teaching", points should be {teaching_points}
If ready=false, omit points field.

JSON response:"""


def _format_milestones(card: MasteryCard) -> str:
    lines = [
        f"BASIC MASTERY ({card.basic.points} points):",
        f"- Goal: {card.basic.description}",
        f"- Evidence keywords: {', '.join(card.basic.evidence_keywords) or 'Clear explanation'}",
    ]
    if card.advanced is not None:
        lines += [
            f"ADVANCED MASTERY ({card.advanced.points} additional points):",
            f"- Goal: {card.advanced.description}",
            f"- Evidence keywords: {', '.join(card.advanced.evidence_keywords) or 'Deep understanding'}",
        ]
    if card.misconception is not None:
        teaching = card.misconception.teaching_milestone
        lines += [
            f"TEACHING MASTERY ({teaching.points} points):",
            "- This is a MISCONCEPTION card",
            f"- Student needs to correct Pi's wrong thinking: \"{card.misconception.pi_wrong_thinking}\"",
            f"- Correct concept: {card.misconception.correct_concept}",
        ]
    return "\n".join(lines)


def format_conversation(history: Sequence[TranscriptEntry]) -> str:
    """Render turns as ``ROLE: text`` lines."""
    return "\n".join(f"{t.role.value.upper()}: {t.text}" for t in history)


def build_judge_prompt(
    card: MasteryCard,
    history: Sequence[TranscriptEntry],
    exchange_count: int,
    student_name: str | None = None,
) -> str:
    """Build the judge prompt from the last few turns of the card conversation."""
    return JUDGE_PROMPT.format(
        student=student_name or "the student",
        title=card.title,
        learning_goal=card.learning_goal,
        image_description=card.image_description,
        milestones=_format_milestones(card),
        exchange_count=exchange_count,
        conversation=format_conversation(list(history)[-HISTORY_WINDOW:]),
        basic_points=card.points_for_level("basic"),
        advanced_points=card.points_for_level("advanced"),
        teaching_points=card.points_for_level("teaching"),
    )


_FENCE = re.compile(r"```(?:json)?\s*", re.IGNORECASE)
_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


def parse_judge_response(content: str, card: MasteryCard | None = None) -> EvaluationResult:
    """
    Turn raw judge text into a normalised EvaluationResult.

    Markdown fences are stripped and the outermost JSON object extracted.
    When the judge says ready but forgets the points, they are filled in
    from the card's milestones.
    """
    text = _FENCE.sub("", content.strip())
    match = _JSON_OBJECT.search(text)
    try:
        if not match:
            raise ValueError("No JSON object in judge response")
        parsed = json.loads(match.group())
        if not isinstance(parsed, dict):
            raise ValueError("Judge response is not a JSON object")
    except (ValueError, json.JSONDecodeError) as e:
        logger.error("Failed to parse judge response: {} ({!r})", e, content[:200])
        return EvaluationResult.not_ready("Failed to parse judge response")

    result = EvaluationResult.from_dict(parsed)

    if (
        card is not None
        and result.ready
        and result.mastery_level != MasteryLevel.NONE
        and result.points is None
    ):
        points = card.points_for_level(result.mastery_level.value)
        if points:
            result = EvaluationResult(
                ready=result.ready,
                confidence=result.confidence,
                mastery_level=result.mastery_level,
                reasoning=result.reasoning,
                suggested_action=result.suggested_action,
                points=points,
                focus_area=result.focus_area,
            )
    return result


def early_exit(exchange_count: int) -> EvaluationResult | None:
    """Verdicts that need no judge call."""
    if exchange_count < MIN_EXCHANGES:
        return EvaluationResult.not_ready("Need at least 2 exchanges before evaluation")
    if exchange_count >= STUCK_EXCHANGES:
        return EvaluationResult(
            ready=True,
            confidence=100,
            mastery_level=MasteryLevel.NONE,
            reasoning="Student stuck after 5+ exchanges, moving on",
            suggested_action=SuggestedAction.NEXT_WITHOUT_POINTS,
        )
    return None


def conservative_fallback(exchange_count: int) -> EvaluationResult:
    """Verdict used when the judge is unreachable."""
    if exchange_count >= FALLBACK_ADVANCE_EXCHANGES:
        return EvaluationResult(
            ready=True,
            confidence=50,
            mastery_level=MasteryLevel.NONE,
            reasoning="Fallback: moving on after multiple exchanges",
            suggested_action=SuggestedAction.NEXT_WITHOUT_POINTS,
        )
    return EvaluationResult.not_ready("Fallback: continue conversation")


class SimulatedJudge:
    """Judge that never leaves the process; used for offline replays."""

    async def evaluate(
        self,
        card: MasteryCard,
        history: Sequence[TranscriptEntry],
        exchange_count: int,
    ) -> EvaluationResult:
        return simulate_evaluation(card, history)


def simulate_evaluation(card: MasteryCard, transcript: Sequence[TranscriptEntry]) -> EvaluationResult:
    """Offline stand-in for the judge when no API key is configured."""
    student_turns = [t for t in transcript if t.role == TranscriptRole.STUDENT]
    has_explanation = any(
        "because" in t.text.lower()
        or " so " in f" {t.text.lower()} "
        or len(t.text) > SIMULATED_EXPLANATION_LENGTH
        for t in student_turns
    )

    if len(student_turns) >= SIMULATED_MIN_TURNS and has_explanation:
        return EvaluationResult(
            ready=True,
            confidence=75,
            mastery_level=MasteryLevel.BASIC,
            reasoning="Simulated: Student showed understanding",
            suggested_action=SuggestedAction.AWARD_AND_NEXT,
            points=card.basic.points,
        )

    return EvaluationResult(
        ready=False,
        confidence=40,
        mastery_level=MasteryLevel.NONE,
        reasoning="Simulated: Continue exploring",
        suggested_action=SuggestedAction.CONTINUE,
        focus_area="Try asking why they think that",
    )
