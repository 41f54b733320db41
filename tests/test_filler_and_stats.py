"""Filler classification and reply-length statistics."""

from __future__ import annotations

import pytest

from ghostwriter.services.context_assembler import (
    DEFAULT_WORD_STATS,
    _round_half_up,
    compute_word_stats,
    detect_emergency,
)
from ghostwriter.utils.filler import (
    format_exemplars,
    is_likely_filler,
    is_usable_body,
    select_exemplars,
)


class TestFillerClassifier:
    @pytest.mark.parametrize("text", ["ok", "k", "lol", "Hmm", "hmm yeah", "Haha!", "nah bro", "👍"])
    def test_filler(self, text: str) -> None:
        assert is_likely_filler(text) is True

    @pytest.mark.parametrize(
        "text",
        ["going home", "see you there", "haha that's wild", "tomorrow", "", "   "],
    )
    def test_not_filler(self, text: str) -> None:
        assert is_likely_filler(text) is False

    def test_idempotent(self) -> None:
        for text in ["ok", "going home", "hmm yeah", "what time is it"]:
            assert is_likely_filler(text) == is_likely_filler(text)

    def test_usable_body_excludes_attachments_and_links(self) -> None:
        assert is_usable_body("see you there")
        assert not is_usable_body("[File: notes.pdf]")
        assert not is_usable_body("https://example.com/x")
        assert not is_usable_body("  ")


class TestExemplars:
    def test_filler_excluded_when_enough_real(self) -> None:
        bodies = ["ok", "going home now", "lol", "see you there", "what time is it"]
        assert select_exemplars(bodies) == ["going home now", "see you there", "what time is it"]

    def test_falls_back_to_all_when_too_few_real(self) -> None:
        bodies = ["ok", "lol", "going home now"]
        assert select_exemplars(bodies) == bodies

    def test_keeps_most_recent(self) -> None:
        bodies = [f"message number {i}" for i in range(20)]
        picked = select_exemplars(bodies, max_examples=3)
        assert picked == ["message number 17", "message number 18", "message number 19"]

    def test_format(self) -> None:
        assert format_exemplars(["a b", "c"]) == '"a b", "c"'
        assert format_exemplars([]) == ""


class TestWordStats:
    def test_effective_upper_formula(self) -> None:
        # lengths 2,2,2,3,3,3,4,4 -> avg 2.875 -> 3, p75 = 4
        bodies = [
            "going home", "see you there", "sounds fine", "call me later bro",
            "where are you", "got it", "what time tomorrow", "maybe next weekend then",
        ]
        stats = compute_word_stats(bodies)
        assert stats.average == 3
        assert stats.p75 == 4
        assert stats.min == 2
        assert stats.max == 4
        assert stats.effective_upper == max(stats.average + 3, stats.p75, 5) == 6

    def test_real_only_sample_preferred(self) -> None:
        bodies = ["ok", "k", "lol", "hmm", "going home now", "see you there", "what time is it"]
        stats = compute_word_stats(bodies)
        # Only the three real messages (3, 3, 4 words) count.
        assert stats.min == 3
        assert stats.average == 3
        assert stats.p75 == 4

    def test_all_lines_when_fewer_than_three_real(self) -> None:
        stats = compute_word_stats(["ok", "lol", "going home now"])
        assert stats.min == 1
        assert stats.average == 2  # 5/3 rounds half up to 2
        assert stats.p75 == 3
        assert stats.effective_upper == 5

    def test_default_envelope_without_usable_history(self) -> None:
        assert compute_word_stats([]) == DEFAULT_WORD_STATS
        assert compute_word_stats(["https://x.y", "[File: a.pdf]"]) == DEFAULT_WORD_STATS
        assert DEFAULT_WORD_STATS.effective_upper == 8

    def test_long_p75_dominates(self) -> None:
        bodies = ["one two", "one two", "a b c d e f g h i j", "a b c d e f g h i j"]
        stats = compute_word_stats(bodies)
        assert stats.p75 == 10
        assert stats.effective_upper == 10

    def test_emergency_ceiling_overrides(self) -> None:
        stats = compute_word_stats(["going home", "see you there", "where are you"])
        assert stats.with_emergency_ceiling().effective_upper == 15
        assert stats.with_emergency_ceiling(20).effective_upper == 20
        assert stats.with_emergency_ceiling().average == stats.average

    @pytest.mark.parametrize("value,expected", [(2.5, 3), (2.49, 2), (3.0, 3), (1.5, 2)])
    def test_round_half_up(self, value: float, expected: int) -> None:
        assert _round_half_up(value) == expected


class TestEmergency:
    @pytest.mark.parametrize(
        "text",
        ["I was in an ACCIDENT", "please help me", "ma mar gaya yaar", "going to the hospital now"],
    )
    def test_detected(self, text: str) -> None:
        assert detect_emergency(text)

    @pytest.mark.parametrize("text", ["see you at dinner", "", "lol that movie"])
    def test_not_detected(self, text: str) -> None:
        assert not detect_emergency(text)
