from __future__ import annotations
import json
from datetime import date, datetime, timezone
from typing import List

from sqlalchemy import Column, String, DateTime, Date, Integer, Text, Boolean, ForeignKey, UniqueConstraint, Index
from .db import Base
from .streak import StreakState, apply_practice_event


def utcnow() -> datetime:
	# Stored naive; every timestamp in the database is UTC
	return datetime.now(timezone.utc).replace(tzinfo=None)


class UserAccount(Base):
	__tablename__ = "user_accounts"
	# Primary key is username for simplicity (unique single identifier)
	username = Column(String(128), primary_key=True, index=True)
	display_name = Column(String(128), nullable=True)
	level = Column(String(8), nullable=False, default="A1")
	current_streak = Column(Integer, default=0, nullable=False)
	longest_streak = Column(Integer, default=0, nullable=False)
	last_practice_date = Column(Date, nullable=True)
	total_practice_days = Column(Integer, default=0, nullable=False)
	daily_goal = Column(Integer, default=3, nullable=False)
	# Set on each promotion; the next one needs practice after this instant
	promoted_at = Column(DateTime, nullable=True)
	created_at = Column(DateTime, default=utcnow, nullable=False)
	updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

	def streak_state(self) -> StreakState:
		return StreakState(
			current=self.current_streak or 0,
			longest=self.longest_streak or 0,
			last_day=self.last_practice_date,
			total_days=self.total_practice_days or 0,
		)

	def apply_practice_event(self, day: date) -> StreakState:
		state = apply_practice_event(self.streak_state(), day)
		self.current_streak = state.current
		self.longest_streak = state.longest
		self.last_practice_date = state.last_day
		self.total_practice_days = state.total_days
		return state


class SkillRecord(Base):
	__tablename__ = "skill_records"
	__table_args__ = (UniqueConstraint("username", "rule_name", name="uq_skill_user_rule"),)
	# Integer ids keep insertion order, which breaks ties when sorting by mastery
	id = Column(Integer, primary_key=True, autoincrement=True)
	username = Column(String(128), ForeignKey("user_accounts.username"), nullable=False, index=True)
	rule_name = Column(String(256), nullable=False)
	mastery_level = Column(Integer, default=0, nullable=False)
	fail_count = Column(Integer, default=0, nullable=False)
	practice_count = Column(Integer, default=0, nullable=False)
	last_practiced_at = Column(DateTime, nullable=True)
	next_review_at = Column(DateTime, nullable=True)
	created_at = Column(DateTime, default=utcnow, nullable=False)


class VocabularyCard(Base):
	__tablename__ = "vocabulary_cards"
	__table_args__ = (UniqueConstraint("username", "word", name="uq_vocab_user_word"),)
	id = Column(Integer, primary_key=True, autoincrement=True)
	username = Column(String(128), ForeignKey("user_accounts.username"), nullable=False, index=True)
	word = Column(String(256), nullable=False)
	translation = Column(String(512), nullable=False)
	context_note = Column(Text, nullable=True)
	mastery_level = Column(Integer, default=0, nullable=False)
	review_count = Column(Integer, default=0, nullable=False)
	# Set at creation: a fresh card is due immediately
	next_review_at = Column(DateTime, nullable=False)
	created_at = Column(DateTime, default=utcnow, nullable=False)


class Lesson(Base):
	__tablename__ = "lessons"
	id = Column(Integer, primary_key=True, autoincrement=True)
	username = Column(String(128), ForeignKey("user_accounts.username"), nullable=False, index=True)
	topic = Column(String(256), nullable=False)
	level = Column(String(8), nullable=False)
	grammar_focus_json = Column(Text, nullable=False, default="[]")  # JSON list of canonical rule names
	vocabulary_list = Column(Text, nullable=True)  # raw "word = translation" lines
	completed = Column(Boolean, default=False, nullable=False)
	completed_at = Column(DateTime, nullable=True)
	best_score = Column(Integer, default=0, nullable=False)
	times_attempted = Column(Integer, default=0, nullable=False)
	created_at = Column(DateTime, default=utcnow, nullable=False)

	@property
	def grammar_focus(self) -> List[str]:
		return json.loads(self.grammar_focus_json or "[]")

	@grammar_focus.setter
	def grammar_focus(self, rules: List[str]) -> None:
		self.grammar_focus_json = json.dumps(list(rules))

	def record_attempt(self, accuracy: int, completion_accuracy: int, now: datetime) -> None:
		self.times_attempted = (self.times_attempted or 0) + 1
		if accuracy > (self.best_score or 0):
			self.best_score = accuracy
		if accuracy >= completion_accuracy and not self.completed:
			self.completed = True
			self.completed_at = now

	def recompute_from(self, accuracies: List[int], completion_accuracy: int) -> None:
		"""Rebuild attempt statistics from the sessions that remain."""
		self.times_attempted = len(accuracies)
		self.best_score = max(accuracies, default=0)
		if self.best_score < completion_accuracy:
			self.completed = False
			self.completed_at = None


class PracticeSession(Base):
	__tablename__ = "practice_sessions"
	__table_args__ = (Index("idx_session_user_date", "username", "practice_date"),)
	id = Column(Integer, primary_key=True, autoincrement=True)
	username = Column(String(128), ForeignKey("user_accounts.username"), nullable=False)
	lesson_id = Column(Integer, ForeignKey("lessons.id"), nullable=False)
	accuracy = Column(Integer, nullable=False)
	error_count = Column(Integer, default=0, nullable=False)
	feedback = Column(Text, nullable=True)
	practice_date = Column(Date, nullable=False)
	created_at = Column(DateTime, default=utcnow, nullable=False)


class ChallengeResult(Base):
	__tablename__ = "challenge_results"
	__table_args__ = (Index("idx_challenge_user_completed", "username", "completed_at"),)
	id = Column(Integer, primary_key=True, autoincrement=True)
	username = Column(String(128), ForeignKey("user_accounts.username"), nullable=False)
	kind = Column(String(16), nullable=False)  # "writing" | "listening"
	title = Column(String(256), nullable=True)
	score = Column(Integer, nullable=False)
	feedback = Column(Text, nullable=True)
	completed_at = Column(DateTime, nullable=False)
