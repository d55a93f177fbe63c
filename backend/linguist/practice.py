"""Turns finished activities into ledger outcomes.

The AI layer upstream has already scored the activity and named the grammar
rules the learner got wrong. This module only decides which rules count as
failures and which as successes, stores the activity row, and advances the
learner's daily streak. Promotion is never checked from here.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from .db import unit_of_work
from .errors import InvalidArgument, NotFound
from .ledger import SkillLedger
from .locks import KeyedLocks
from .models import ChallengeResult, Lesson, PracticeSession, utcnow
from .policy import (
    LESSON_COMPLETION_ACCURACY,
    LISTENING_PASS_SCORE,
    LISTENING_RULE,
    normalize_rule_name,
)
from .schemas import ChallengeOutcome, ChallengeResultView, LessonPracticeResult, LessonView, PracticeSessionView
from .users import require_user, user_key
from .vocabulary import VocabularySRS


logger = logging.getLogger(__name__)

CHALLENGE_KINDS = ("writing", "listening")


def _check_score(name: str, value: int) -> None:
    if value < 0 or value > 100:
        raise InvalidArgument(f"{name} must be between 0 and 100")


def canonical_rules(rules: Optional[Iterable[str]]) -> List[str]:
    """Canonical names in first-seen order; blanks dropped, repeats collapsed."""
    out: List[str] = []
    for rule in rules or []:
        name = normalize_rule_name(rule)
        if name and name not in out:
            out.append(name)
    return out


class PracticeRecorder:
    def __init__(
        self,
        session_factory: sessionmaker,
        ledger: SkillLedger,
        vocabulary: VocabularySRS,
        *,
        locks: Optional[KeyedLocks] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._ledger = ledger
        self._vocabulary = vocabulary
        self._locks = locks or KeyedLocks()
        self._clock = clock

    def register_lesson(
        self,
        username: str,
        topic: str,
        grammar_focus: Optional[Iterable[str]] = None,
        vocabulary_list: Optional[str] = None,
    ) -> LessonView:
        topic = (topic or "").strip()
        if not topic:
            raise InvalidArgument("topic is required")
        with unit_of_work(self._session_factory) as db:
            user = require_user(db, username)
            lesson = Lesson(
                username=username,
                topic=topic,
                level=user.level,
                vocabulary_list=vocabulary_list,
                created_at=self._clock(),
            )
            lesson.grammar_focus = canonical_rules(grammar_focus)
            db.add(lesson)
            db.flush()
            view = LessonView.model_validate(lesson)

        self._vocabulary.import_vocabulary_list(username, vocabulary_list, context_note=topic)
        logger.debug("registered lesson %s for %s (%d rules)", view.id, username, len(view.grammar_focus))
        return view

    def get_lesson(self, username: str, lesson_id: int) -> LessonView:
        with unit_of_work(self._session_factory) as db:
            lesson = db.get(Lesson, lesson_id)
            if lesson is None or lesson.username != username:
                raise NotFound("Lesson", lesson_id)
            return LessonView.model_validate(lesson)

    def list_lessons(self, username: str) -> List[LessonView]:
        with unit_of_work(self._session_factory) as db:
            require_user(db, username)
            stmt = select(Lesson).where(Lesson.username == username).order_by(Lesson.created_at.desc(), Lesson.id.desc())
            return [LessonView.model_validate(lesson) for lesson in db.scalars(stmt)]

    def record_lesson_practice(
        self,
        username: str,
        lesson_id: int,
        accuracy: int,
        error_rules: Optional[Iterable[str]] = None,
        feedback: Optional[str] = None,
    ) -> LessonPracticeResult:
        """Record one speech-shadowing attempt at a lesson.

        Every reported error is a failure for its rule, repeated errors
        included. Rules the lesson focuses on that produced no error count
        as successes.
        """
        _check_score("accuracy", accuracy)
        errors = list(error_rules or [])
        lesson = self.get_lesson(username, lesson_id)

        failed: List[str] = []
        for rule in errors:
            name = normalize_rule_name(rule)
            if not name:
                continue
            self._ledger.record_outcome(username, name, False)
            if name not in failed:
                failed.append(name)

        succeeded = [rule for rule in lesson.grammar_focus if rule not in failed]
        for rule in succeeded:
            self._ledger.record_outcome(username, rule, True)

        now = self._clock()
        with self._locks.hold(user_key(username)):
            with unit_of_work(self._session_factory) as db:
                user = require_user(db, username)
                row = db.get(Lesson, lesson_id)
                session = PracticeSession(
                    username=username,
                    lesson_id=lesson_id,
                    accuracy=accuracy,
                    error_count=len(errors),
                    feedback=feedback,
                    practice_date=now.date(),
                    created_at=now,
                )
                db.add(session)
                row.record_attempt(accuracy, LESSON_COMPLETION_ACCURACY, now)
                streak = user.apply_practice_event(now.date())
                db.flush()
                session_id = session.id
                lesson_view = LessonView.model_validate(row)

        logger.info(
            "%s practised lesson %s: accuracy %d, %d failed, %d succeeded",
            username, lesson_id, accuracy, len(failed), len(succeeded),
        )
        return LessonPracticeResult(
            session_id=session_id,
            accuracy=accuracy,
            failed_rules=failed,
            succeeded_rules=succeeded,
            lesson=lesson_view,
            current_streak=streak.current,
        )

    def _store_challenge(self, username: str, kind: str, score: int, title: Optional[str], feedback: Optional[str]):
        now = self._clock()
        with self._locks.hold(user_key(username)):
            with unit_of_work(self._session_factory) as db:
                user = require_user(db, username)
                result = ChallengeResult(
                    username=username,
                    kind=kind,
                    title=title,
                    score=score,
                    feedback=feedback,
                    completed_at=now,
                )
                db.add(result)
                streak = user.apply_practice_event(now.date())
                db.flush()
                return result.id, streak

    def record_writing_result(
        self,
        username: str,
        score: int,
        error_rules: Optional[Iterable[str]] = None,
        title: Optional[str] = None,
        feedback: Optional[str] = None,
    ) -> ChallengeOutcome:
        _check_score("score", score)
        with unit_of_work(self._session_factory) as db:
            require_user(db, username)

        failed: List[str] = []
        for rule in error_rules or []:
            name = normalize_rule_name(rule)
            if not name:
                continue
            self._ledger.record_outcome(username, name, False)
            if name not in failed:
                failed.append(name)

        result_id, streak = self._store_challenge(username, "writing", score, title, feedback)
        logger.info("%s completed writing challenge: score %d, %d rules failed", username, score, len(failed))
        return ChallengeOutcome(
            result_id=result_id,
            kind="writing",
            score=score,
            failed_rules=failed,
            succeeded_rules=[],
            current_streak=streak.current,
        )

    def record_listening_result(
        self,
        username: str,
        score: int,
        title: Optional[str] = None,
        feedback: Optional[str] = None,
    ) -> ChallengeOutcome:
        _check_score("score", score)
        passed = score >= LISTENING_PASS_SCORE
        self._ledger.record_outcome(username, LISTENING_RULE, passed)

        result_id, streak = self._store_challenge(username, "listening", score, title, feedback)
        logger.info("%s completed listening challenge: score %d", username, score)
        return ChallengeOutcome(
            result_id=result_id,
            kind="listening",
            score=score,
            failed_rules=[] if passed else [LISTENING_RULE],
            succeeded_rules=[LISTENING_RULE] if passed else [],
            current_streak=streak.current,
        )

    def lesson_sessions(
        self,
        username: str,
        lesson_id: int,
        offset: int = 0,
        limit: int = 5,
    ) -> List[PracticeSessionView]:
        """Practice history of one lesson, newest first."""
        self.get_lesson(username, lesson_id)
        with unit_of_work(self._session_factory) as db:
            stmt = (
                select(PracticeSession)
                .where(PracticeSession.lesson_id == lesson_id)
                .order_by(PracticeSession.created_at.desc(), PracticeSession.id.desc())
                .offset(offset)
                .limit(limit)
            )
            return [PracticeSessionView.model_validate(s) for s in db.scalars(stmt)]

    def delete_session(self, username: str, session_id: int) -> LessonView:
        """Remove one practice session and rebuild its lesson's statistics.

        Ledger outcomes and the streak already earned by the session stay as
        they are.
        """
        with self._locks.hold(user_key(username)):
            with unit_of_work(self._session_factory) as db:
                session = db.get(PracticeSession, session_id)
                if session is None or session.username != username:
                    raise NotFound("PracticeSession", session_id)
                lesson_id = session.lesson_id
                db.delete(session)
                db.flush()
                accuracies = list(
                    db.scalars(select(PracticeSession.accuracy).where(PracticeSession.lesson_id == lesson_id))
                )
                lesson = db.get(Lesson, lesson_id)
                lesson.recompute_from(accuracies, LESSON_COMPLETION_ACCURACY)
                db.flush()
                view = LessonView.model_validate(lesson)

        logger.info("%s deleted practice session %s of lesson %s", username, session_id, lesson_id)
        return view

    def challenge_history(
        self,
        username: str,
        kind: str,
        offset: int = 0,
        limit: int = 10,
    ) -> List[ChallengeResultView]:
        if kind not in CHALLENGE_KINDS:
            raise InvalidArgument(f"kind must be one of {', '.join(CHALLENGE_KINDS)}")
        with unit_of_work(self._session_factory) as db:
            require_user(db, username)
            stmt = (
                select(ChallengeResult)
                .where(ChallengeResult.username == username, ChallengeResult.kind == kind)
                .order_by(ChallengeResult.completed_at.desc(), ChallengeResult.id.desc())
                .offset(offset)
                .limit(limit)
            )
            return [ChallengeResultView.model_validate(r) for r in db.scalars(stmt)]
