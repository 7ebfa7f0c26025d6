"""Judge prompt construction, response parsing and offline fallbacks."""

from .judge import (
    Judge,
    SimulatedJudge,
    build_judge_prompt,
    conservative_fallback,
    early_exit,
    parse_judge_response,
    simulate_evaluation,
)

__all__ = [
    "Judge",
    "SimulatedJudge",
    "build_judge_prompt",
    "conservative_fallback",
    "early_exit",
    "parse_judge_response",
    "simulate_evaluation",
]
