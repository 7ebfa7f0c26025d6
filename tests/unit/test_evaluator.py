"""
Unit tests for the server-side Claude evaluator.
"""

from types import SimpleNamespace

import pytest

from mastery.exceptions import JudgeError
from mastery.orchestration.models import SuggestedAction
from mastery.server.evaluator import MasteryEvaluator


def claude_response(*blocks):
    return SimpleNamespace(content=[SimpleNamespace(**block) for block in blocks])


@pytest.fixture
def explained(make_entry):
    return [
        make_entry("pi", "What do you see?"),
        make_entry("student", "four cookies"),
        make_entry("pi", "Are they fair?"),
        make_entry("student", "yes"),
        make_entry("student", "same size"),
        make_entry("student", "because they all match each other"),
    ]


@pytest.fixture
def live_evaluator(monkeypatch):
    evaluator = MasteryEvaluator(api_key="sk-test")
    calls = []

    async def create(**kwargs):
        calls.append(kwargs)
        return evaluator.next_response

    monkeypatch.setattr(evaluator.client.messages, "create", create)
    evaluator.calls = calls
    return evaluator


class TestSimulatedEvaluator:
    """Without an API key the offline judge answers."""

    @pytest.mark.asyncio
    async def test_not_enough_conversation(self, cookie_card, make_entry):
        evaluator = MasteryEvaluator(api_key=None)
        result = await evaluator.evaluate(cookie_card, [make_entry("student", "because halves")])

        assert evaluator.is_simulated
        assert result.reasoning == "Not enough conversation yet"

    @pytest.mark.asyncio
    async def test_simulated_award(self, cookie_card, explained):
        result = await MasteryEvaluator(api_key="").evaluate(cookie_card, explained, "Maya")

        assert result.suggested_action == SuggestedAction.AWARD_AND_NEXT
        assert result.points == 30


class TestLiveEvaluator:
    """Claude responses, with the SDK call patched out."""

    @pytest.mark.asyncio
    async def test_parses_verdict(self, live_evaluator, brownie_card, explained):
        live_evaluator.next_response = claude_response(
            {
                "type": "text",
                "text": '{"ready": true, "confidence": 90, "masteryLevel": "advanced", "reasoning": "Used half", "suggestedAction": "award_and_next"}',
            }
        )

        result = await live_evaluator.evaluate(brownie_card, explained, "Maya")

        assert result.points == 80
        call = live_evaluator.calls[0]
        assert call["max_tokens"] == 500
        assert call["temperature"] == 0.3
        assert "Maya" in call["messages"][0]["content"]

    @pytest.mark.asyncio
    async def test_no_text_block(self, live_evaluator, cookie_card, explained):
        live_evaluator.next_response = claude_response({"type": "tool_use"})

        result = await live_evaluator.evaluate(cookie_card, explained)

        assert result.ready is False
        assert result.reasoning == "Failed to parse evaluation"

    @pytest.mark.asyncio
    async def test_unparseable_text(self, live_evaluator, cookie_card, explained):
        live_evaluator.next_response = claude_response({"type": "text", "text": "Looks good to me!"})

        result = await live_evaluator.evaluate(cookie_card, explained)

        assert result.suggested_action == SuggestedAction.CONTINUE

    @pytest.mark.asyncio
    async def test_call_without_client_raises(self):
        with pytest.raises(JudgeError):
            await MasteryEvaluator(api_key=None)._call_claude("prompt")
