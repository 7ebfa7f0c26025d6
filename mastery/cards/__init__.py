"""
Lesson cards for the fraction tutor.

Components:
- models: MasteryCard, milestones, misconceptions, levels
- deck: the built-in 3.NF.A.1 deck and level progression helpers
"""

from .deck import (
    LEVELS,
    MVP_CARDS,
    get_card,
    get_current_level,
    get_next_level,
    get_progress_to_next_level,
    load_deck,
)
from .models import Level, MasteryCard, MasteryMilestone, Misconception

__all__ = [
    "LEVELS",
    "MVP_CARDS",
    "Level",
    "MasteryCard",
    "MasteryMilestone",
    "Misconception",
    "get_card",
    "get_current_level",
    "get_next_level",
    "get_progress_to_next_level",
    "load_deck",
]
