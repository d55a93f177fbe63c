"""Skill ledger: one mastery record per (user, grammar rule).

Outcomes arrive either one at a time (``record_outcome``, a rule was used
correctly or not) or as a graded batch of exercises on a single record
(``grade_batch``). Both paths are read-modify-write on one row and run under
the record's key lock inside a single transaction.

The two paths differ on scheduling: a single outcome resets the
review clock, a batch only moves mastery and counters and leaves
``next_review_at`` where it was.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from .db import unit_of_work
from .errors import InvalidArgument, NotFound
from .locks import KeyedLocks
from .models import Lesson, SkillRecord, utcnow
from .policy import (
    FAILURE_RECHECK,
    SKILL_FAILURE_PENALTY,
    SKILL_SUCCESS_REWARD,
    batch_delta,
    batch_score,
    clamp_mastery,
    normalize_rule_name,
    schedule_from_mastery,
)
from .schemas import BatchGradeResult, LessonView, SkillRecordView
from .settings import settings
from .users import require_user


logger = logging.getLogger(__name__)


def skill_key(username: str, rule_name: str) -> tuple:
    return ("skill", username, rule_name)


def apply_success(record: SkillRecord, now: datetime) -> None:
    record.practice_count = (record.practice_count or 0) + 1
    record.mastery_level = clamp_mastery((record.mastery_level or 0) + SKILL_SUCCESS_REWARD)
    record.last_practiced_at = now
    record.next_review_at = now + schedule_from_mastery(record.mastery_level)


def apply_failure(record: SkillRecord, now: datetime) -> None:
    record.practice_count = (record.practice_count or 0) + 1
    record.fail_count = (record.fail_count or 0) + 1
    record.mastery_level = clamp_mastery((record.mastery_level or 0) - SKILL_FAILURE_PENALTY)
    record.last_practiced_at = now
    # A miss always brings the rule back tomorrow, whatever the mastery
    record.next_review_at = now + FAILURE_RECHECK


def apply_batch(record: SkillRecord, correct_count: int, total_count: int, now: datetime) -> Tuple[int, int, int, float]:
    """Fold a graded exercise set into the record.

    Returns ``(previous_mastery, new_mastery, delta, score)``. The review
    schedule is not touched.
    """
    previous = record.mastery_level or 0
    score = batch_score(correct_count, total_count)
    delta = batch_delta(score)
    record.mastery_level = clamp_mastery(previous + delta)
    record.practice_count = (record.practice_count or 0) + total_count
    record.fail_count = (record.fail_count or 0) + (total_count - correct_count)
    record.last_practiced_at = now
    return previous, record.mastery_level, delta, score


def validate_batch(correct_count: int, total_count: int) -> None:
    if total_count < 1:
        raise InvalidArgument("total_count must be at least 1")
    if correct_count < 0 or correct_count > total_count:
        raise InvalidArgument("correct_count must be between 0 and total_count")


class SkillLedger:
    def __init__(
        self,
        session_factory: sessionmaker,
        *,
        locks: Optional[KeyedLocks] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._locks = locks or KeyedLocks()
        self._clock = clock

    def _find(self, db: Session, username: str, rule_name: str) -> Optional[SkillRecord]:
        stmt = select(SkillRecord).where(
            SkillRecord.username == username,
            SkillRecord.rule_name == rule_name,
        )
        return db.scalars(stmt).first()

    def record_outcome(self, username: str, rule_name: str, success: bool) -> SkillRecordView:
        normalized = normalize_rule_name(rule_name)
        if not normalized:
            raise InvalidArgument("rule_name must not be blank")

        with self._locks.hold(skill_key(username, normalized)):
            with unit_of_work(self._session_factory) as db:
                require_user(db, username)
                record = self._find(db, username, normalized)
                if record is None:
                    record = SkillRecord(
                        username=username,
                        rule_name=normalized,
                        mastery_level=0,
                        fail_count=0,
                        practice_count=0,
                        created_at=self._clock(),
                    )
                    db.add(record)
                now = self._clock()
                if success:
                    apply_success(record, now)
                else:
                    apply_failure(record, now)
                db.flush()
                view = SkillRecordView.model_validate(record)

        logger.debug(
            "%s %s on %r -> mastery %d (practice=%d fail=%d)",
            username,
            "success" if success else "failure",
            normalized,
            view.mastery_level,
            view.practice_count,
            view.fail_count,
        )
        return view

    def grade_batch(self, record_id: int, correct_count: int, total_count: int) -> BatchGradeResult:
        validate_batch(correct_count, total_count)

        # The (user, rule) key never changes, so it can be read before locking
        with unit_of_work(self._session_factory) as db:
            record = db.get(SkillRecord, record_id)
            if record is None:
                raise NotFound("SkillRecord", record_id)
            key = skill_key(record.username, record.rule_name)

        with self._locks.hold(key):
            with unit_of_work(self._session_factory) as db:
                record = db.get(SkillRecord, record_id)
                if record is None:
                    raise NotFound("SkillRecord", record_id)
                previous, new, delta, score = apply_batch(record, correct_count, total_count, self._clock())
                db.flush()
                view = SkillRecordView.model_validate(record)

        logger.debug(
            "batch %d/%d on record %s: mastery %d -> %d (%+d)",
            correct_count, total_count, record_id, previous, new, delta,
        )
        return BatchGradeResult(
            previous_mastery=previous,
            new_mastery=new,
            delta=delta,
            score=round(score, 2),
            record=view,
        )

    def get_record(self, record_id: int) -> SkillRecordView:
        with unit_of_work(self._session_factory) as db:
            record = db.get(SkillRecord, record_id)
            if record is None:
                raise NotFound("SkillRecord", record_id)
            return SkillRecordView.model_validate(record)

    def list_records(self, username: str) -> List[SkillRecordView]:
        with unit_of_work(self._session_factory) as db:
            require_user(db, username)
            stmt = select(SkillRecord).where(SkillRecord.username == username).order_by(SkillRecord.id)
            return [SkillRecordView.model_validate(r) for r in db.scalars(stmt)]

    def weaknesses(self, username: str, threshold: Optional[int] = None) -> List[SkillRecordView]:
        """Records below ``threshold``, weakest first."""
        limit = settings.weak_rule_threshold if threshold is None else threshold
        with unit_of_work(self._session_factory) as db:
            require_user(db, username)
            stmt = (
                select(SkillRecord)
                .where(SkillRecord.username == username, SkillRecord.mastery_level < limit)
                .order_by(SkillRecord.mastery_level, SkillRecord.id)
            )
            return [SkillRecordView.model_validate(r) for r in db.scalars(stmt)]

    def due_records(self, username: str, limit: Optional[int] = None) -> List[SkillRecordView]:
        now = self._clock()
        with unit_of_work(self._session_factory) as db:
            require_user(db, username)
            stmt = (
                select(SkillRecord)
                .where(
                    SkillRecord.username == username,
                    SkillRecord.next_review_at.is_not(None),
                    SkillRecord.next_review_at <= now,
                )
                .order_by(SkillRecord.next_review_at, SkillRecord.id)
                .limit(limit or settings.due_queue_limit)
            )
            return [SkillRecordView.model_validate(r) for r in db.scalars(stmt)]

    def related_lessons(self, record_id: int, offset: int = 0, limit: int = 10) -> List[LessonView]:
        """The owner's lessons whose grammar focus includes the record's rule, newest first."""
        with unit_of_work(self._session_factory) as db:
            record = db.get(SkillRecord, record_id)
            if record is None:
                raise NotFound("SkillRecord", record_id)
            stmt = (
                select(Lesson)
                .where(Lesson.username == record.username)
                .order_by(Lesson.created_at.desc(), Lesson.id.desc())
            )
            # Focus lists are stored canonical, so an exact match is enough
            matching = [lesson for lesson in db.scalars(stmt) if record.rule_name in lesson.grammar_focus]
            return [LessonView.model_validate(lesson) for lesson in matching[offset:offset + limit]]
