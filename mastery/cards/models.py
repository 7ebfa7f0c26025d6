"""
Mastery card model.

A card is one picture plus a learning goal. Milestones carry the points a
student earns for each mastery level; misconception cards additionally
carry Pi's wrong idea, which the student is expected to correct.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class MasteryMilestone:
    """One rung of evidence a student can demonstrate on a card."""

    description: str
    points: int
    evidence_keywords: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "description": self.description,
            "points": self.points,
            "evidenceKeywords": list(self.evidence_keywords),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MasteryMilestone:
        return cls(
            description=data.get("description", ""),
            points=int(data.get("points", 0) or 0),
            evidence_keywords=list(data.get("evidenceKeywords") or []),
        )


@dataclass(frozen=True)
class Misconception:
    """Pi's deliberate mistake on a misconception card."""

    pi_wrong_thinking: str
    correct_concept: str
    teaching_milestone: MasteryMilestone

    def to_dict(self) -> dict[str, Any]:
        return {
            "piWrongThinking": self.pi_wrong_thinking,
            "correctConcept": self.correct_concept,
            "teachingMilestone": self.teaching_milestone.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Misconception:
        return cls(
            pi_wrong_thinking=data.get("piWrongThinking", ""),
            correct_concept=data.get("correctConcept", ""),
            teaching_milestone=MasteryMilestone.from_dict(data.get("teachingMilestone") or {}),
        )


@dataclass(frozen=True)
class MasteryCard:
    """A lesson card as exchanged with the orchestration server."""

    id: str
    card_number: int
    title: str
    learning_goal: str
    basic: MasteryMilestone
    phase: str = "prerequisites"
    context: str = ""
    image_url: str = ""
    image_description: str = ""
    pi_starting_question: str = ""
    advanced: MasteryMilestone | None = None
    misconception: Misconception | None = None

    @property
    def is_misconception(self) -> bool:
        return self.misconception is not None

    def points_for_level(self, level: str) -> int:
        """Points awarded for reaching ``level`` on this card."""
        if level == "basic":
            return self.basic.points
        if level == "advanced" and self.advanced is not None:
            return self.basic.points + self.advanced.points
        if level == "teaching" and self.misconception is not None:
            return self.misconception.teaching_milestone.points
        return 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to the camelCase wire format."""
        milestones: dict[str, Any] = {"basic": self.basic.to_dict()}
        if self.advanced is not None:
            milestones["advanced"] = self.advanced.to_dict()

        data: dict[str, Any] = {
            "id": self.id,
            "cardNumber": self.card_number,
            "phase": self.phase,
            "title": self.title,
            "context": self.context,
            "imageUrl": self.image_url,
            "imageDescription": self.image_description,
            "learningGoal": self.learning_goal,
            "piStartingQuestion": self.pi_starting_question,
            "milestones": milestones,
        }
        if self.misconception is not None:
            data["misconception"] = self.misconception.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MasteryCard:
        """Parse a card from the wire format.

        The server historically used ``cardId`` instead of ``id``; both are
        accepted.
        """
        milestones = data.get("milestones") or {}
        advanced = milestones.get("advanced")
        misconception = data.get("misconception")
        return cls(
            id=str(data.get("id") or data.get("cardId") or ""),
            card_number=int(data.get("cardNumber", 0) or 0),
            phase=data.get("phase", "prerequisites"),
            title=data.get("title", ""),
            context=data.get("context", ""),
            image_url=data.get("imageUrl", ""),
            image_description=data.get("imageDescription", ""),
            learning_goal=data.get("learningGoal", ""),
            pi_starting_question=data.get("piStartingQuestion", ""),
            basic=MasteryMilestone.from_dict(milestones.get("basic") or {}),
            advanced=MasteryMilestone.from_dict(advanced) if advanced else None,
            misconception=Misconception.from_dict(misconception) if misconception else None,
        )


@dataclass(frozen=True)
class Level:
    """Learner level unlocked by accumulated points."""

    level: int
    title: str
    min_points: int
    celebration: str
