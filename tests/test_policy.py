"""Tests for the pure mastery policy."""

from datetime import timedelta

import pytest

from linguist.policy import (
    LEVELS,
    PromotionBlocker,
    assess_promotion,
    batch_delta,
    batch_score,
    clamp_mastery,
    next_level,
    normalize_level,
    normalize_rule_name,
    parse_vocabulary_list,
    schedule_from_mastery,
)


class TestNormalizeRuleName:
    """Tests for rule-name canonicalization."""

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("past simple", "Past Simple"),
            ("  PAST   simple  ", "Past Simple"),
            ("present\tperfect\ncontinuous", "Present Perfect Continuous"),
            ("sUbJuNcTiVe", "Subjunctive"),
            ("th sound", "Th Sound"),
            ("r/l distinction", "R/l Distinction"),
            ("word-order", "Word-order"),
        ],
    )
    def test_canonical_form(self, raw, expected):
        """Whitespace collapses and each token is capitalized once."""
        assert normalize_rule_name(raw) == expected

    @pytest.mark.parametrize("raw", ["", "   ", "\t\n", None])
    def test_blank_maps_to_empty(self, raw):
        """Blank and missing names normalize to the empty string."""
        assert normalize_rule_name(raw) == ""

    def test_idempotent(self):
        """Normalizing a canonical name leaves it unchanged."""
        once = normalize_rule_name("  the   PASSIVE voice ")
        assert normalize_rule_name(once) == once


class TestSchedule:
    """Tests for the four-bucket review interval."""

    @pytest.mark.parametrize(
        "level, days",
        [(0, 1), (29, 1), (30, 3), (59, 3), (60, 7), (79, 7), (80, 14), (100, 14)],
    )
    def test_bucket_boundaries(self, level, days):
        assert schedule_from_mastery(level) == timedelta(days=days)

    def test_monotonic_in_mastery(self):
        intervals = [schedule_from_mastery(level) for level in range(0, 101)]
        assert intervals == sorted(intervals)


class TestBatchDelta:
    """Tests for the batch grading delta table."""

    @pytest.mark.parametrize(
        "correct, total, delta",
        [(5, 5, 10), (4, 5, 10), (3, 5, 5), (2, 5, 2), (1, 5, -5), (0, 5, -5), (1, 1, 10), (0, 1, -5)],
    )
    def test_delta_for_ratio(self, correct, total, delta):
        assert batch_delta(batch_score(correct, total)) == delta

    def test_score_is_percentage(self):
        assert batch_score(3, 4) == 75.0


class TestClamp:
    @pytest.mark.parametrize("value, expected", [(-50, 0), (-1, 0), (0, 0), (55, 55), (100, 100), (250, 100)])
    def test_clamp(self, value, expected):
        assert clamp_mastery(value) == expected


class TestLevels:
    """Tests for the ordinal level helpers."""

    def test_six_ordered_levels(self):
        assert LEVELS == ["A1", "A2", "B1", "B2", "C1", "C2"]

    def test_next_level_is_single_step(self):
        assert next_level("A1") == "A2"
        assert next_level("B2") == "C1"

    def test_top_level_has_no_successor(self):
        assert next_level("C2") is None

    def test_normalize_level(self):
        assert normalize_level(" b2 ") == "B2"
        assert normalize_level("D1") is None
        assert normalize_level(None) is None


class TestAssessPromotion:
    """Tests for the promotion gate order."""

    def test_five_rules_at_eighty_is_eligible(self):
        result = assess_promotion("B1", [80, 80, 80, 80, 80])
        assert result.eligible is True
        assert result.candidate_level == "B2"
        assert result.average_mastery == 80.0
        assert result.rules_mastered == 5

    def test_average_just_below_threshold_blocks(self):
        # 749 / 10 = 74.9
        result = assess_promotion("B1", [80, 80, 80, 80, 54, 75, 75, 75, 75, 75])
        assert result.average_mastery == pytest.approx(74.9)
        assert result.eligible is False
        assert result.blocker is PromotionBlocker.AVERAGE_MASTERY_TOO_LOW

    def test_rule_count_gate_fails_first(self):
        result = assess_promotion("B1", [100, 100, 100, 100])
        assert result.blocker is PromotionBlocker.INSUFFICIENT_RULES_TRACKED
        assert result.candidate_level is None

    def test_rule_count_checked_before_top_level(self):
        result = assess_promotion("C2", [100, 100])
        assert result.blocker is PromotionBlocker.INSUFFICIENT_RULES_TRACKED

    def test_top_level_is_terminal(self):
        result = assess_promotion("C2", [100] * 6)
        assert result.blocker is PromotionBlocker.AT_MAXIMUM_LEVEL
        assert "maximum level" in result.message()

    def test_high_average_with_few_mastered(self):
        # Average 82, only four rules at or above 80
        result = assess_promotion("A2", [90, 90, 90, 90, 79, 79, 79, 79, 79, 65])
        assert result.average_mastery == pytest.approx(82.0)
        assert result.blocker is PromotionBlocker.TOO_FEW_RULES_MASTERED

    def test_unpractised_ledger_after_promotion_blocks(self):
        result = assess_promotion("B2", [80] * 5, practiced_since_promotion=False)
        assert result.blocker is PromotionBlocker.NO_PRACTICE_SINCE_PROMOTION
        assert result.candidate_level is None

    def test_earlier_gates_report_first(self):
        result = assess_promotion("B2", [60] * 5, practiced_since_promotion=False)
        assert result.blocker is PromotionBlocker.AVERAGE_MASTERY_TOO_LOW

    def test_empty_ledger_averages_zero(self):
        result = assess_promotion("A1", [])
        assert result.average_mastery == 0.0
        assert result.rules_tracked == 0


class TestParseVocabularyList:
    """Tests for 'word = translation' parsing."""

    def test_parses_pairs_and_skips_noise(self):
        text = "casa = house\n\nperro=dog\nno separator here\n = empty word\ngato = \n  libro  =  book = tome "
        assert parse_vocabulary_list(text) == [
            ("casa", "house"),
            ("perro", "dog"),
            ("libro", "book = tome"),
        ]

    @pytest.mark.parametrize("text", [None, "", "   \n  "])
    def test_blank_text(self, text):
        assert parse_vocabulary_list(text) == []
