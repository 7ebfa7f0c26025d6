"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import pytest
import sys
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from mastery.cards import get_card
from mastery.orchestration.models import (
    EvaluationResult,
    MasteryLevel,
    SuggestedAction,
    TranscriptEntry,
    TranscriptRole,
)


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (in-process server)")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Mark based on test file location
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)


class FakeClock:
    """Manually advanced millisecond clock."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


class FakeJudge:
    """Judge double that records calls and returns a canned verdict."""

    def __init__(self, result: EvaluationResult | None = None, error: Exception | None = None):
        self.result = result or EvaluationResult(
            ready=False,
            confidence=40,
            mastery_level=MasteryLevel.NONE,
            reasoning="Keep going",
            suggested_action=SuggestedAction.CONTINUE,
        )
        self.error = error
        self.calls: list[tuple[str, int, int]] = []

    async def evaluate(self, card, history, exchange_count):
        self.calls.append((card.id, len(history), exchange_count))
        if self.error is not None:
            raise self.error
        return self.result


def _make_entry(role: str, text: str, timestamp: float = 0.0, is_final: bool = True) -> TranscriptEntry:
    return TranscriptEntry(role=TranscriptRole(role), text=text, timestamp=timestamp, is_final=is_final)


@pytest.fixture
def make_entry():
    """Factory for transcript entries: make_entry(role, text, timestamp=0, is_final=True)."""
    return _make_entry


@pytest.fixture
def make_judge():
    """The FakeJudge class, for tests that need a custom verdict or error."""
    return FakeJudge


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def judge():
    return FakeJudge()


@pytest.fixture
def award_result():
    """Judge verdict awarding basic mastery."""
    return EvaluationResult(
        ready=True,
        confidence=85,
        mastery_level=MasteryLevel.BASIC,
        reasoning="Explained equal parts",
        suggested_action=SuggestedAction.AWARD_AND_NEXT,
        points=30,
    )


@pytest.fixture
def cookie_card():
    """Card 1: Equal Cookies (basic milestone only)."""
    return get_card("card-1-cookies")


@pytest.fixture
def brownie_card():
    """Card 4: Brownie Halves (basic + advanced)."""
    return get_card("card-4-brownie-halves")


@pytest.fixture
def misconception_card():
    """Card 13: misconception card with a teaching milestone."""
    return get_card("card-13-misconception-sixths")


@pytest.fixture
def warmup_transcript():
    """Two tutor and two student turns with no trigger language."""
    return [
        _make_entry("pi", "What do you see in this picture?"),
        _make_entry("student", "cookies"),
        _make_entry("pi", "How many cookies are there?"),
        _make_entry("student", "two"),
    ]
