from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class UserView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    username: str
    display_name: Optional[str] = None
    level: str
    current_streak: int
    longest_streak: int
    last_practice_date: Optional[date] = None
    total_practice_days: int
    daily_goal: int
    promoted_at: Optional[datetime] = None


class SkillRecordView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    rule_name: str
    mastery_level: int
    fail_count: int
    practice_count: int
    last_practiced_at: Optional[datetime] = None
    next_review_at: Optional[datetime] = None


class BatchGradeResult(BaseModel):
    """What a batch of exercises did to one record, for display to the user."""

    previous_mastery: int
    new_mastery: int
    delta: int
    score: float
    record: SkillRecordView


class VocabularyCardView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    word: str
    translation: str
    context_note: Optional[str] = None
    mastery_level: int
    review_count: int
    next_review_at: datetime


class VocabularyStats(BaseModel):
    total_words: int
    mastered_words: int
    due_for_review: int


class LessonView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    topic: str
    level: str
    grammar_focus: List[str]
    completed: bool
    completed_at: Optional[datetime] = None
    best_score: int
    times_attempted: int


class LessonPracticeResult(BaseModel):
    session_id: int
    accuracy: int
    failed_rules: List[str]
    succeeded_rules: List[str]
    lesson: LessonView
    current_streak: int


class ChallengeOutcome(BaseModel):
    result_id: int
    kind: str
    score: int
    failed_rules: List[str]
    succeeded_rules: List[str]
    current_streak: int


class PromotionResult(BaseModel):
    promoted: bool
    previous_level: str
    new_level: str
    average_mastery: float
    rules_tracked: int
    rules_mastered: int
    required_mastery: int
    required_rules_mastered: int
    reason: Optional[str] = None
    message: str


class Dashboard(BaseModel):
    current_level: str
    next_level: Optional[str] = None
    eligible_for_promotion: bool
    average_mastery: float
    total_rules_tracked: int
    rules_mastered: int
    rules_weak: int
    average_accuracy: float
    total_sessions: int
    total_lessons: int
    lessons_completed: int
    current_streak: int
    longest_streak: int
    last_practice_date: Optional[date] = None
    sessions_last_7_days: int
    weakest_rules: List[str]
    daily_goal_target: int
    daily_goal_progress: int
    due_review_count: int


class TimelineEntry(BaseModel):
    entry_id: int
    kind: str  # "lesson" | "writing" | "listening"
    lesson_id: Optional[int] = None
    title: str
    score: int
    error_count: Optional[int] = None
    feedback: Optional[str] = None
    practiced_at: datetime


class PracticeSessionView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    lesson_id: int
    accuracy: int
    error_count: int
    feedback: Optional[str] = None
    practice_date: date
    created_at: datetime


class ChallengeResultView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    kind: str
    title: Optional[str] = None
    score: int
    feedback: Optional[str] = None
    completed_at: datetime
