"""Numeric policy of the mastery engine.

Everything here is pure: no database, no clock. The services feed it the
current state and a timestamp and persist whatever comes back.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import timedelta
from typing import Iterable, List, Optional, Sequence


LEVELS: List[str] = ["A1", "A2", "B1", "B2", "C1", "C2"]

MASTERY_MIN = 0
MASTERY_MAX = 100

SKILL_SUCCESS_REWARD = 5
SKILL_FAILURE_PENALTY = 10
VOCAB_CORRECT_REWARD = 15
VOCAB_INCORRECT_PENALTY = 10

FAILURE_RECHECK = timedelta(days=1)

# Promotion gates. Fixed for every user and every level.
PROMOTION_MASTERY_THRESHOLD = 75
PROMOTION_MIN_RULES_TRACKED = 5
PROMOTION_MIN_RULES_MASTERED = 5
MASTERED_THRESHOLD = 80
WEAK_THRESHOLD = 50

LISTENING_RULE = "Listening Comprehension"
LISTENING_PASS_SCORE = 70
LESSON_COMPLETION_ACCURACY = 80


def normalize_level(level: Optional[str]) -> Optional[str]:
    if level is None:
        return None
    level_u = level.strip().upper()
    return level_u if level_u in LEVELS else None


def next_level(level: str) -> Optional[str]:
    """The level directly above ``level``, or None at the top."""
    idx = LEVELS.index(level)
    if idx >= len(LEVELS) - 1:
        return None
    return LEVELS[idx + 1]


def normalize_rule_name(rule_name: Optional[str]) -> str:
    """Canonical key for a grammar rule.

    Whitespace runs collapse to one space, each token keeps its first
    character upper-cased and the rest lower-cased. Blank input maps to "".
    """
    if not rule_name:
        return ""
    tokens = rule_name.split()
    return " ".join(tok[:1].upper() + tok[1:].lower() for tok in tokens)


def clamp_mastery(value: int) -> int:
    return max(MASTERY_MIN, min(MASTERY_MAX, value))


def schedule_from_mastery(level: int) -> timedelta:
    """Review interval for a given mastery level.

    Four buckets, monotonic in mastery; practice history plays no part.
    """
    if level < 30:
        return timedelta(days=1)
    if level < 60:
        return timedelta(days=3)
    if level < 80:
        return timedelta(days=7)
    return timedelta(days=14)


def batch_score(correct_count: int, total_count: int) -> float:
    return correct_count / total_count * 100


def batch_delta(score: float) -> int:
    if score >= 80:
        return 10
    if score >= 60:
        return 5
    if score >= 40:
        return 2
    return -5


def mean_mastery(levels: Sequence[int]) -> float:
    if not levels:
        return 0.0
    return sum(levels) / len(levels)


class PromotionBlocker(str, enum.Enum):
    INSUFFICIENT_RULES_TRACKED = "insufficient_rules_tracked"
    AT_MAXIMUM_LEVEL = "at_maximum_level"
    AVERAGE_MASTERY_TOO_LOW = "average_mastery_too_low"
    TOO_FEW_RULES_MASTERED = "too_few_rules_mastered"
    NO_PRACTICE_SINCE_PROMOTION = "no_practice_since_promotion"


@dataclass(frozen=True)
class PromotionAssessment:
    level: str
    rules_tracked: int
    rules_mastered: int
    average_mastery: float
    blocker: Optional[PromotionBlocker]

    @property
    def eligible(self) -> bool:
        return self.blocker is None

    @property
    def candidate_level(self) -> Optional[str]:
        return next_level(self.level) if self.eligible else None

    def message(self) -> str:
        if self.blocker is PromotionBlocker.INSUFFICIENT_RULES_TRACKED:
            return (
                f"Need at least {PROMOTION_MIN_RULES_TRACKED} tracked rules. "
                f"Currently tracking: {self.rules_tracked}. Keep studying!"
            )
        if self.blocker is PromotionBlocker.AT_MAXIMUM_LEVEL:
            return f"Already at maximum level ({self.level}). Keep practicing to maintain mastery!"
        if self.blocker is PromotionBlocker.AVERAGE_MASTERY_TOO_LOW:
            return (
                f"Average mastery is {self.average_mastery:.1f}%. "
                f"Need {PROMOTION_MASTERY_THRESHOLD}% for promotion. Focus on weak rules!"
            )
        if self.blocker is PromotionBlocker.TOO_FEW_RULES_MASTERED:
            return (
                f"Mastered {self.rules_mastered} rules. Need at least "
                f"{PROMOTION_MIN_RULES_MASTERED} with {MASTERED_THRESHOLD}% mastery. Almost there!"
            )
        if self.blocker is PromotionBlocker.NO_PRACTICE_SINCE_PROMOTION:
            return f"Already promoted to {self.level}. Practice at this level before the next check!"
        return f"Eligible for promotion from {self.level} to {self.candidate_level}."


def assess_promotion(
    level: str,
    masteries: Iterable[int],
    practiced_since_promotion: bool = True,
) -> PromotionAssessment:
    """Check the promotion gates in their fixed order.

    Rule count first, then the top-level stop, then average mastery, then
    the number of mastered rules. A ledger that passes all four still needs
    some practice after the last promotion, so an unchanged ledger is never
    promoted twice. The first failing gate is reported.
    """
    levels = list(masteries)
    average = mean_mastery(levels)
    mastered = sum(1 for m in levels if m >= MASTERED_THRESHOLD)

    blocker: Optional[PromotionBlocker] = None
    if len(levels) < PROMOTION_MIN_RULES_TRACKED:
        blocker = PromotionBlocker.INSUFFICIENT_RULES_TRACKED
    elif next_level(level) is None:
        blocker = PromotionBlocker.AT_MAXIMUM_LEVEL
    elif average < PROMOTION_MASTERY_THRESHOLD:
        blocker = PromotionBlocker.AVERAGE_MASTERY_TOO_LOW
    elif mastered < PROMOTION_MIN_RULES_MASTERED:
        blocker = PromotionBlocker.TOO_FEW_RULES_MASTERED
    elif not practiced_since_promotion:
        blocker = PromotionBlocker.NO_PRACTICE_SINCE_PROMOTION

    return PromotionAssessment(
        level=level,
        rules_tracked=len(levels),
        rules_mastered=mastered,
        average_mastery=average,
        blocker=blocker,
    )


def parse_vocabulary_list(text: Optional[str]) -> List[tuple]:
    """Split ``word = translation`` lines into pairs.

    Lines without ``=`` or with an empty side are skipped; only the first
    ``=`` separates, so translations may contain more.
    """
    pairs: List[tuple] = []
    if not text or not text.strip():
        return pairs
    for line in text.splitlines():
        line = line.strip()
        if not line or "=" not in line:
            continue
        word, translation = (part.strip() for part in line.split("=", 1))
        if not word or not translation:
            continue
        pairs.append((word, translation))
    return pairs
