"""
Built-in 3.NF.A.1 fraction deck and level table.

Cards are kept in their wire format so the same dicts can be sent to the
orchestration server unchanged.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from mastery.cards.models import Level, MasteryCard

MVP_CARD_DATA: list[dict[str, Any]] = [
    {
        "id": "card-0-welcome",
        "cardNumber": 0,
        "phase": "prerequisites",
        "title": "Welcome!",
        "context": "Session Introduction",
        "imageUrl": "/images/Equal-parts-cover.png",
        "imageDescription": "Welcome cover image with \"Equal Parts\" title.",
        "learningGoal": "Greet the student and introduce Pi; advances after any acknowledgment",
        "piStartingQuestion": "Hey! I'm Pi from Planet Geometrica. Ready to explore together?",
        "milestones": {
            "basic": {
                "description": "Student says anything (yes, ready, okay)",
                "points": 0,
                "evidenceKeywords": [],
            },
        },
    },
    {
        "id": "card-1-cookies",
        "cardNumber": 1,
        "phase": "prerequisites",
        "title": "Equal Cookies",
        "context": "Snack time at school",
        "imageUrl": "/images/Cookie-1.png",
        "imageDescription": "Four round chocolate chip cookies in a row, all the same size.",
        "learningGoal": "Recognize equal groups and one-to-one correspondence",
        "piStartingQuestion": "What do you notice about these cookies?",
        "milestones": {
            "basic": {
                "description": "Student mentions both the number 4 and that the cookies are equal",
                "points": 30,
                "evidenceKeywords": ["four AND equal", "4 AND same", "same size", "all equal", "identical"],
            },
        },
    },
    {
        "id": "card-4-brownie-halves",
        "cardNumber": 4,
        "phase": "prerequisites",
        "title": "Brownie Halves",
        "context": "Dessert sharing",
        "imageUrl": "/images/Brownie-4.png",
        "imageDescription": "A rectangular brownie split down the middle into two equal pieces.",
        "learningGoal": "Introduction to the term \"one half\" as 1 equal part of 2",
        "piStartingQuestion": "This brownie was split. What can you tell Pi about the two pieces?",
        "milestones": {
            "basic": {
                "description": "Student describes two equal pieces",
                "points": 50,
                "evidenceKeywords": ["two", "pieces", "equal", "same size", "split", "middle"],
            },
            "advanced": {
                "description": "Student uses or understands \"half\" or \"one half\"",
                "points": 30,
                "evidenceKeywords": ["half", "one half", "1/2", "halves"],
            },
        },
    },
    {
        "id": "card-7-half-ribbon",
        "cardNumber": 7,
        "phase": "unit_fractions",
        "title": "Fraction Strip - Halves",
        "context": "Measuring ribbon for gift wrapping",
        "imageUrl": "/images/Ribbon-7.png",
        "imageDescription": "A ribbon strip divided into 2 equal sections, one labeled \"1/2\".",
        "learningGoal": "Understand 1/2 as 1 part when a whole is partitioned into 2 equal parts",
        "piStartingQuestion": "Pi sees a ribbon cut in half. Can you explain what \"1/2\" means here?",
        "milestones": {
            "basic": {
                "description": "Student explains 1/2 as one of the two pieces",
                "points": 40,
                "evidenceKeywords": ["one of two", "half", "one piece", "two pieces", "divided"],
            },
        },
    },
    {
        "id": "card-8-third-pancake",
        "cardNumber": 8,
        "phase": "unit_fractions",
        "title": "Fraction Circle - Thirds",
        "context": "Sharing a pancake",
        "imageUrl": "/images/Pancake-8.png",
        "imageDescription": "A round pancake cut into 3 equal slices, one labeled \"1/3\".",
        "learningGoal": "Understand 1/3 as 1 part when a whole is partitioned into 3 equal parts",
        "piStartingQuestion": "Three friends are sharing this pancake. What does the \"1/3\" label tell us?",
        "milestones": {
            "basic": {
                "description": "Student explains 1/3 means one of those parts",
                "points": 40,
                "evidenceKeywords": ["one of three", "third", "one piece", "three pieces", "three parts"],
            },
        },
    },
    {
        "id": "card-10-pizza-five-sixths",
        "cardNumber": 10,
        "phase": "non_unit",
        "title": "Five Sixths of a Pizza",
        "context": "Pizza party",
        "imageUrl": "/images/Pizza-10.png",
        "imageDescription": "A pizza cut into 6 equal slices with one slice eaten, labeled \"5/6\".",
        "learningGoal": "Understand 5/6 as 5 parts when a whole is partitioned into 6 equal parts",
        "piStartingQuestion": "Someone ate one slice of this pizza. What fraction is left?",
        "milestones": {
            "basic": {
                "description": "Student identifies 5 pieces remaining out of 6 total",
                "points": 50,
                "evidenceKeywords": ["five", "5", "six", "6", "five out of six", "5/6", "five sixths"],
            },
            "advanced": {
                "description": "Student explains what 5/6 means or connects to unit fractions",
                "points": 40,
                "evidenceKeywords": ["five sixths", "five 1/6", "one away from whole", "almost all"],
            },
        },
    },
    {
        "id": "card-11-garden-three-fourths",
        "cardNumber": 11,
        "phase": "non_unit",
        "title": "Three Fourths of a Garden",
        "context": "Planting flowers",
        "imageUrl": "/images/Garden-11.png",
        "imageDescription": "A garden in a 2x2 grid; 3 sections have flowers and 1 is empty dirt.",
        "learningGoal": "Understand 3/4 as 3 parts when a whole is partitioned into 4 equal parts",
        "piStartingQuestion": "A gardener planted 3 out of 4 sections. What fraction of the garden has flowers?",
        "milestones": {
            "basic": {
                "description": "Student identifies 3 planted sections and explains as \"three fourths\"",
                "points": 50,
                "evidenceKeywords": ["three", "3", "four", "4", "three fourths", "3/4", "three out of four"],
            },
        },
    },
    {
        "id": "card-13-misconception-sixths",
        "cardNumber": 13,
        "phase": "misconceptions",
        "title": "Misconception: Bigger Denominator",
        "context": "Lunch choices - Pi is confused!",
        "imageUrl": "/images/Misconception-13.png",
        "imageDescription": "Two identical circles: one in 6 slices with \"1/6\", one in 3 slices with \"1/3\".",
        "learningGoal": "Correct the misconception that larger denominators mean larger fractions",
        "piStartingQuestion": "Pi thinks 1/6 should be bigger than 1/3 because 6 is bigger than 3. Can you help?",
        "milestones": {
            "basic": {
                "description": "Student identifies that 1/3 is actually bigger",
                "points": 50,
                "evidenceKeywords": ["1/3 is bigger", "one third bigger", "sixth smaller", "picture shows"],
            },
        },
        "misconception": {
            "piWrongThinking": "Pi thinks 1/6 is bigger than 1/3 because 6 > 3",
            "correctConcept": "More pieces = smaller individual parts (inverse relationship)",
            "teachingMilestone": {
                "description": "Student teaches Pi that more pieces means smaller parts",
                "points": 100,
                "evidenceKeywords": ["more pieces", "smaller parts", "cut into more", "tinier pieces", "more cuts"],
            },
        },
    },
    {
        "id": "card-14-misconception-unequal",
        "cardNumber": 14,
        "phase": "misconceptions",
        "title": "Misconception: Unequal Parts",
        "context": "Sharing a brownie - Pi made a mistake!",
        "imageUrl": "/images/Misconception-14.png",
        "imageDescription": "A brownie cut into 4 pieces of different sizes, labeled \"1/4?\".",
        "learningGoal": "Understand that fractions REQUIRE equal parts",
        "piStartingQuestion": "Pi cut this brownie into 4 pieces and thinks each piece is 1/4. What do you notice?",
        "milestones": {
            "basic": {
                "description": "Student notices the pieces are not the same size",
                "points": 50,
                "evidenceKeywords": ["different sizes", "not equal", "not the same", "bigger", "smaller", "unfair"],
            },
        },
        "misconception": {
            "piWrongThinking": "Pi thinks cutting into 4 pieces makes each piece 1/4",
            "correctConcept": "Fractions require equal-sized parts",
            "teachingMilestone": {
                "description": "Student explains that fractions require equal parts",
                "points": 100,
                "evidenceKeywords": ["equal parts", "same size", "have to be equal", "need equal", "fair shares"],
            },
        },
    },
]

MVP_CARDS: list[MasteryCard] = [MasteryCard.from_dict(data) for data in MVP_CARD_DATA]

LEVELS: list[Level] = [
    Level(1, "Explorer", 0, "Welcome, Explorer! Let's discover fractions together!"),
    Level(2, "Discoverer", 100, "Level up! You're now a Discoverer!"),
    Level(3, "Pattern Finder", 250, "Pattern Finder unlocked! You're seeing the connections!"),
    Level(4, "Fraction Master", 500, "You're a Fraction Master!"),
]


def get_card(card_id: str, deck: list[MasteryCard] | None = None) -> MasteryCard | None:
    """Look up a card by id."""
    for card in deck or MVP_CARDS:
        if card.id == card_id:
            return card
    return None


def load_deck(path: Path) -> list[MasteryCard]:
    """Load a deck from a JSON file holding a list of wire-format cards."""
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, list):
        raise ValueError(f"Deck file must contain a JSON list: {path}")
    return sorted((MasteryCard.from_dict(item) for item in data), key=lambda c: c.card_number)


def get_current_level(points: int) -> Level:
    """Highest level whose threshold ``points`` has reached."""
    for level in sorted(LEVELS, key=lambda lv: lv.min_points, reverse=True):
        if points >= level.min_points:
            return level
    return LEVELS[0]


def get_next_level(points: int) -> Level | None:
    return next((level for level in LEVELS if level.min_points > points), None)


def get_progress_to_next_level(points: int) -> dict[str, Any]:
    """Progress toward the next level as a percentage of the current band."""
    current = get_current_level(points)
    nxt = get_next_level(points)
    if nxt is None:
        return {"current_level": current, "next_level": None, "points_to_next": 0, "progress_percentage": 100}

    band = nxt.min_points - current.min_points
    earned = points - current.min_points
    return {
        "current_level": current,
        "next_level": nxt,
        "points_to_next": nxt.min_points - points,
        "progress_percentage": round(earned / band * 100),
    }
