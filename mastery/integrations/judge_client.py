"""
Judge API client for mastery evaluation.

Handles HTTP communication with the judge proxy, which forwards Anthropic
Messages requests to Claude while keeping the API key server side.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from typing import Any

import httpx
from loguru import logger

from mastery.cards.models import MasteryCard
from mastery.evaluation.judge import (
    build_judge_prompt,
    conservative_fallback,
    early_exit,
    parse_judge_response,
)
from mastery.orchestration.models import EvaluationResult, TranscriptEntry

EVALUATE_PATH = "/api/claude/evaluate"


def extract_text(data: dict[str, Any]) -> str:
    """Pull the first text block out of an Anthropic Messages response."""
    for block in data.get("content") or []:
        if isinstance(block, dict) and block.get("type", "text") == "text":
            return str(block.get("text", ""))
    return ""


class JudgeClient:
    """HTTP client for the Claude judge proxy."""

    def __init__(
        self,
        api_url: str,
        model: str = "claude-3-5-haiku-20241022",
        timeout_ms: int = 30000,
        retry_attempts: int = 3,
        max_tokens: int = 500,
        temperature: float = 0.3,
    ):
        """
        Initialize judge client.

        Args:
            api_url: Base URL of the judge proxy
            model: Claude model name forwarded to the proxy
            timeout_ms: Request timeout in milliseconds
            retry_attempts: Number of attempts before falling back
            max_tokens: Completion budget for the verdict
            temperature: Sampling temperature for the verdict
        """
        self.api_url = api_url.rstrip("/")
        self.model = model
        self.timeout_seconds = timeout_ms / 1000.0
        self.retry_attempts = retry_attempts
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.client = httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout_seconds),
            follow_redirects=True,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    def build_request(self, prompt: str) -> dict[str, Any]:
        """Anthropic Messages request body."""
        return {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "messages": [{"role": "user", "content": prompt}],
        }

    async def evaluate(
        self,
        card: MasteryCard,
        history: Sequence[TranscriptEntry],
        exchange_count: int,
    ) -> EvaluationResult:
        """
        Ask the judge whether the student has shown mastery of ``card``.

        Args:
            card: Card under discussion
            history: Final transcript entries for the card
            exchange_count: Number of student turns so far

        Returns:
            Normalised evaluation. Transport failures and exhausted retries
            yield the conservative fallback rather than raising.
        """
        shortcut = early_exit(exchange_count)
        if shortcut is not None:
            return shortcut

        payload = self.build_request(build_judge_prompt(card, history, exchange_count))
        last_error: Exception | None = None

        for attempt in range(self.retry_attempts):
            try:
                response = await self.client.post(
                    f"{self.api_url}{EVALUATE_PATH}",
                    json=payload,
                )
                response.raise_for_status()

                evaluation = parse_judge_response(extract_text(response.json()), card)
                logger.info(
                    "Judge verdict for {}: level={} confidence={} action={}",
                    card.id,
                    evaluation.mastery_level.value,
                    evaluation.confidence,
                    evaluation.suggested_action.value,
                )
                return evaluation

            except httpx.TimeoutException as e:
                last_error = e
                wait_time = 2 ** attempt  # Exponential backoff: 1s, 2s, 4s
                logger.warning(
                    "Judge timeout on attempt {}/{}. Retrying in {}s...",
                    attempt + 1,
                    self.retry_attempts,
                    wait_time,
                )
                if attempt < self.retry_attempts - 1:
                    await asyncio.sleep(wait_time)

            except httpx.HTTPStatusError as e:
                last_error = e
                if e.response.status_code >= 500:
                    wait_time = 2 ** attempt
                    logger.warning(
                        "Judge server error {} on attempt {}/{}. Retrying in {}s...",
                        e.response.status_code,
                        attempt + 1,
                        self.retry_attempts,
                        wait_time,
                    )
                    if attempt < self.retry_attempts - 1:
                        await asyncio.sleep(wait_time)
                else:
                    # 4xx is a request problem; retrying won't help
                    logger.error("Judge client error: {}", e.response.status_code)
                    return conservative_fallback(exchange_count)

            except ValueError as e:
                logger.error("Judge proxy returned a non-JSON body: {}", e)
                return conservative_fallback(exchange_count)

            except httpx.RequestError as e:
                last_error = e
                wait_time = 2 ** attempt
                logger.warning(
                    "Judge request error on attempt {}/{}: {}. Retrying in {}s...",
                    attempt + 1,
                    self.retry_attempts,
                    e,
                    wait_time,
                )
                if attempt < self.retry_attempts - 1:
                    await asyncio.sleep(wait_time)

        logger.error(
            "Judge evaluation failed after {} attempts: {}",
            self.retry_attempts,
            last_error,
        )
        return conservative_fallback(exchange_count)

    async def health_check(self) -> bool:
        """
        Check if the judge proxy is available.

        Returns:
            True if the proxy answers its health endpoint, False otherwise
        """
        try:
            response = await self.client.get(
                f"{self.api_url}/health",
                timeout=5.0,
            )
            return response.status_code == 200

        except httpx.HTTPError:
            return False
