"""
Conversation Orchestrator: client-side observation of the live transcript.

Watches finalized student turns and decides when to spend a judge call.
Guards:
- no card, no evaluation
- cooldown between evaluations
- one evaluation in flight at a time
- minimum number of student and tutor turns
"""

from __future__ import annotations

import inspect
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, Any

from loguru import logger

from mastery.orchestration.models import (
    EvaluationResult,
    SuggestedAction,
    TranscriptEntry,
    TranscriptRole,
    now_ms,
)
from mastery.orchestration.triggers import count_turns, detect_evaluation_triggers, has_minimum_exchanges

if TYPE_CHECKING:
    from mastery.cards.models import MasteryCard
    from mastery.evaluation.judge import Judge

EvaluationCallback = Callable[[EvaluationResult], Any]
StartCallback = Callable[[], Any]


async def invoke_callback(callback: Callable[..., Any] | None, *args: Any) -> None:
    """Call a sync or async callback; no-op when unset."""
    if callback is None:
        return
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


class ConversationOrchestrator:
    """
    Local evaluation trigger for one tutoring session.

    The in-flight flag is checked and set with no await in between, so on a
    single event loop at most one judge call runs per orchestrator.
    """

    MIN_TIME_BETWEEN_EVALS_MS = 10000

    def __init__(
        self,
        judge: Judge,
        clock: Callable[[], float] = now_ms,
        cooldown_ms: int = MIN_TIME_BETWEEN_EVALS_MS,
    ):
        self.judge = judge
        self.clock = clock
        self.cooldown_ms = cooldown_ms

        self._transcript: list[TranscriptEntry] = []
        self._current_card: MasteryCard | None = None
        self._evaluation_in_progress = False
        self._last_evaluation_time: float | None = None
        # Bumped on every card switch so late results for an old card are dropped
        self._card_generation = 0

        self._on_evaluation_complete: EvaluationCallback | None = None
        self._on_evaluation_start: StartCallback | None = None

    # ------------------------------------------------------------------
    # Callbacks
    # ------------------------------------------------------------------

    def set_evaluation_callback(self, callback: EvaluationCallback | None) -> None:
        self._on_evaluation_complete = callback

    def set_evaluation_start_callback(self, callback: StartCallback | None) -> None:
        self._on_evaluation_start = callback

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def current_card(self) -> MasteryCard | None:
        return self._current_card

    @property
    def evaluation_in_progress(self) -> bool:
        return self._evaluation_in_progress

    @property
    def last_evaluation_time(self) -> float | None:
        return self._last_evaluation_time

    def set_current_card(self, card: MasteryCard) -> None:
        """Switch cards: clears transcript, cooldown timer and in-flight flag together."""
        self._current_card = card
        self._transcript = []
        self._last_evaluation_time = None
        self._evaluation_in_progress = False
        self._card_generation += 1
        logger.info("New card set: {}", card.title)

    def get_transcript(self) -> list[TranscriptEntry]:
        return list(self._transcript)

    def restore_transcript(self, entries: Iterable[TranscriptEntry]) -> None:
        """Reload a persisted transcript for the current card."""
        self._transcript = list(entries)
        logger.info("Restored {} transcript entries", len(self._transcript))

    def reset(self) -> None:
        self._transcript = []
        self._evaluation_in_progress = False
        self._last_evaluation_time = None
        self._current_card = None
        self._card_generation += 1
        logger.info("Orchestrator reset")

    # ------------------------------------------------------------------
    # Transcript flow
    # ------------------------------------------------------------------

    async def add_transcript_entry(self, entry: TranscriptEntry) -> EvaluationResult | None:
        """
        Append an entry; finalized student turns may trigger an evaluation.

        Returns:
            The evaluation if this entry caused one, else None
        """
        self._transcript.append(entry)
        logger.debug("{}: {}", entry.role.value, entry.text[:50])

        if entry.role == TranscriptRole.STUDENT and entry.is_final:
            return await self.check_for_evaluation()
        return None

    def cooldown_elapsed(self) -> bool:
        if self._last_evaluation_time is None:
            return True
        return self.clock() - self._last_evaluation_time >= self.cooldown_ms

    async def check_for_evaluation(self) -> EvaluationResult | None:
        """Run every gate, then the trigger heuristic."""
        if self._current_card is None:
            logger.debug("No card set, skipping evaluation")
            return None

        if not self.cooldown_elapsed():
            logger.debug("Too soon since last evaluation")
            return None

        if self._evaluation_in_progress:
            logger.debug("Evaluation already in progress")
            return None

        if not has_minimum_exchanges(self._transcript):
            logger.debug("Not enough conversation yet")
            return None

        if not detect_evaluation_triggers(self._transcript):
            return None

        return await self.request_evaluation()

    async def request_evaluation(self) -> EvaluationResult | None:
        """
        Call the judge for the current card.

        Judge failures are logged and swallowed; the in-flight flag is always
        released so a later turn can retry.
        """
        card = self._current_card
        if card is None:
            return None

        generation = self._card_generation
        self._evaluation_in_progress = True
        self._last_evaluation_time = self.clock()

        logger.info("Requesting judge evaluation ({} entries)", len(self._transcript))

        try:
            await invoke_callback(self._on_evaluation_start)

            history = [t for t in self._transcript if t.is_final]
            exchange_count, _ = count_turns(history)

            evaluation = await self.judge.evaluate(card, history, exchange_count)

            if generation != self._card_generation:
                logger.info("Card changed during evaluation, discarding result for {}", card.id)
                return None

            self._log_evaluation(evaluation)
            await invoke_callback(self._on_evaluation_complete, evaluation)
            return evaluation

        except Exception as e:
            logger.error("Evaluation failed: {}", e)
            return None

        finally:
            if generation == self._card_generation:
                self._evaluation_in_progress = False

    async def force_evaluation(self) -> EvaluationResult | None:
        """Evaluate now, skipping cooldown and turn-count gates but not the in-flight guard."""
        if self._current_card is None:
            logger.warning("Cannot force evaluation without a card")
            return None
        if self._evaluation_in_progress:
            logger.warning("Evaluation already in progress, force request ignored")
            return None
        return await self.request_evaluation()

    def _log_evaluation(self, evaluation: EvaluationResult) -> None:
        if evaluation.suggested_action == SuggestedAction.AWARD_AND_NEXT:
            logger.info(
                "Ready to advance: {} points at {} level",
                evaluation.points,
                evaluation.mastery_level.value,
            )
        elif evaluation.suggested_action == SuggestedAction.NEXT_WITHOUT_POINTS:
            logger.info("Moving to next card without points")
        else:
            logger.info("Continue conversation (confidence {}%)", evaluation.confidence)
