"""
Server-side mastery evaluator.

Calls Claude directly with the server-held API key. Without a key, or when
the API call fails, the offline simulation stands in for the judge.
"""

from __future__ import annotations

from collections.abc import Sequence

import anthropic
from loguru import logger

from mastery.cards.models import MasteryCard
from mastery.evaluation.judge import build_judge_prompt, parse_judge_response, simulate_evaluation
from mastery.exceptions import JudgeError
from mastery.orchestration.models import EvaluationResult, TranscriptEntry, TranscriptRole

MIN_STUDENT_TURNS = 2


class MasteryEvaluator:
    """Claude judge used by the orchestration server."""

    def __init__(
        self,
        api_key: str | None,
        model: str = "claude-3-5-haiku-20241022",
        max_tokens: int = 500,
        temperature: float = 0.3,
    ):
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.client: anthropic.AsyncAnthropic | None = None

        if api_key:
            self.client = anthropic.AsyncAnthropic(api_key=api_key)
            logger.info("Mastery evaluator initialized with API key")
        else:
            logger.warning("No API key provided - evaluations will be simulated")

    @property
    def is_simulated(self) -> bool:
        return self.client is None

    async def evaluate(
        self,
        card: MasteryCard,
        transcript: Sequence[TranscriptEntry],
        student_name: str = "",
    ) -> EvaluationResult:
        student_turns = sum(1 for t in transcript if t.role == TranscriptRole.STUDENT)
        if student_turns < MIN_STUDENT_TURNS:
            return EvaluationResult.not_ready("Not enough conversation yet")

        if self.client is None:
            return simulate_evaluation(card, transcript)

        prompt = build_judge_prompt(card, transcript, student_turns, student_name or None)
        try:
            text = await self._call_claude(prompt)
        except anthropic.APIError as e:
            logger.error("Claude API error: {}", e)
            return simulate_evaluation(card, transcript)
        except JudgeError as e:
            logger.error("Claude returned no usable content: {}", e)
            return EvaluationResult.not_ready("Failed to parse evaluation")

        return parse_judge_response(text, card)

    async def _call_claude(self, prompt: str) -> str:
        if self.client is None:
            raise JudgeError("No Claude client configured")
        response = await self.client.messages.create(
            model=self.model,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            messages=[{"role": "user", "content": prompt}],
        )
        for block in response.content:
            if block.type == "text":
                return block.text
        raise JudgeError("Response contained no text block")
