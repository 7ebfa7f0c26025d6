"""
Unit tests for evaluation trigger heuristics.
"""

import pytest

from mastery.orchestration.triggers import (
    count_turns,
    detect_evaluation_triggers,
    has_minimum_exchanges,
    should_evaluate_server,
)


class TestMinimumExchanges:
    """Tests for the two-student / two-tutor gate."""

    def test_count_turns(self, make_entry):
        transcript = [
            make_entry("pi", "Hi"),
            make_entry("student", "Hello"),
            make_entry("system", "card changed"),
            make_entry("pi", "Look"),
        ]
        assert count_turns(transcript) == (1, 2)

    def test_empty_transcript(self):
        assert has_minimum_exchanges([]) is False

    @pytest.mark.parametrize(
        "roles",
        [
            ["pi", "student", "pi"],
            ["pi", "student", "student", "student"],
            ["student", "pi", "pi", "pi"],
        ],
    )
    def test_below_threshold(self, make_entry, roles):
        transcript = [make_entry(role, "because it looks like halves to me") for role in roles]
        assert has_minimum_exchanges(transcript) is False

    def test_threshold_met(self, warmup_transcript):
        assert has_minimum_exchanges(warmup_transcript) is True


class TestDetectEvaluationTriggers:
    """Tests for the client-side trigger heuristic."""

    def test_short_student_turns_without_keywords_do_not_trigger(self, make_entry):
        """Five short student turns, no keywords, fewer than 8 entries."""
        transcript = [make_entry("student", text) for text in ["two", "red", "round", "cookies", "um ok"]]
        transcript.insert(0, make_entry("pi", "Hi"))
        transcript.insert(2, make_entry("pi", "Hm"))

        assert len(transcript) < 8
        assert all(len(t.text) < 20 for t in transcript if t.role.value == "student")
        assert detect_evaluation_triggers(transcript) is False

    @pytest.mark.parametrize(
        "text",
        ["Because they match", "I think they're equal", "It looks like two", "That means half"],
    )
    def test_explanation_keywords(self, warmup_transcript, make_entry, text):
        transcript = warmup_transcript + [make_entry("pi", "Why?"), make_entry("student", text)]
        assert detect_evaluation_triggers(transcript) is True

    def test_long_student_turn_counts_as_explanation(self, make_entry):
        transcript = [
            make_entry("pi", "What do you see?"),
            make_entry("student", "there are two cookies on the plate and they are the same"),
        ]
        assert detect_evaluation_triggers(transcript) is True

    def test_confidence_needs_six_entries(self, make_entry):
        short = [
            make_entry("pi", "Are they equal?"),
            make_entry("student", "yes"),
            make_entry("pi", "Sure?"),
            make_entry("student", "exactly"),
        ]
        assert detect_evaluation_triggers(short) is False

        longer = short + [make_entry("pi", "Great"), make_entry("student", "oh! i get it")]
        assert detect_evaluation_triggers(longer) is True

    def test_long_conversation_triggers(self, make_entry):
        transcript = []
        for _ in range(4):
            transcript += [make_entry("pi", "Hmm?"), make_entry("student", "ok")]
        assert len(transcript) == 8
        assert detect_evaluation_triggers(transcript) is True

    def test_only_recent_window_is_inspected(self, make_entry):
        """An old explanation outside the last six entries no longer counts."""
        transcript = [
            make_entry("student", "because they are the same size"),
            make_entry("pi", "a"),
            make_entry("student", "ok"),
            make_entry("pi", "b"),
            make_entry("student", "hm"),
            make_entry("pi", "c"),
            make_entry("student", "no"),
        ]
        assert len(transcript) == 7
        assert detect_evaluation_triggers(transcript) is False

    def test_tutor_keywords_are_ignored(self, make_entry):
        transcript = [
            make_entry("pi", "I think because that means it looks like halves, which is a long sentence"),
            make_entry("student", "ok"),
        ]
        assert detect_evaluation_triggers(transcript) is False


class TestShouldEvaluateServer:
    """Tests for the server-side evaluation policy."""

    def test_substantive_reply_after_two_turns(self, make_entry):
        transcript = [
            make_entry("pi", "What do you see?"),
            make_entry("student", "two cookies"),
            make_entry("pi", "Are they the same?"),
            make_entry("student", "yes they are the same size"),
        ]
        assert should_evaluate_server(transcript) is True

    def test_noise_is_not_substantive(self, make_entry):
        transcript = [
            make_entry("student", "<noise> <noise> <noise> <noise>"),
            make_entry("student", "<NOISE> background chatter here"),
        ]
        assert should_evaluate_server(transcript) is False

    def test_struggle_pattern(self, make_entry):
        transcript = [
            make_entry("student", "I don't know what that is"),
            make_entry("student", "I'm confused about the picture"),
        ]
        assert should_evaluate_server(transcript) is True

    def test_four_student_turns(self, make_entry):
        transcript = [make_entry("student", "<noise> hmm hmm hmm") for _ in range(4)]
        assert should_evaluate_server(transcript) is True

    def test_partial_entries_are_ignored(self, make_entry):
        transcript = [
            make_entry("student", "they are the same size", is_final=False),
            make_entry("student", "they are the same size because", is_final=False),
        ]
        assert should_evaluate_server(transcript) is False
