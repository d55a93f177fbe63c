"""Read-only progress statistics.

Nothing here writes. Each figure comes from one query over its table, and
the promotion flag reuses the evaluator's gate logic on the same snapshot of
skill records that feeds the other ledger figures.
"""

from __future__ import annotations

from datetime import datetime, time, timedelta
from typing import Callable, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import sessionmaker

from .db import unit_of_work
from .models import ChallengeResult, Lesson, PracticeSession, SkillRecord, utcnow
from .policy import MASTERED_THRESHOLD, WEAK_THRESHOLD, assess_promotion
from .promotion import practiced_since
from .schemas import Dashboard, TimelineEntry
from .settings import settings
from .streak import current_streak_on
from .users import require_user


WEAKEST_RULES_SHOWN = 5


def _truncate(text: Optional[str], max_len: int) -> str:
    if not text:
        return ""
    return text if len(text) <= max_len else text[:max_len] + "..."


def _challenge_title(result: ChallengeResult) -> str:
    if result.kind == "writing":
        first_line = (result.title or "").split("\n")[0].strip()
        return first_line or "Writing Challenge"
    return _truncate(result.title, 50) or "Listening Challenge"


class DashboardAggregator:
    def __init__(
        self,
        session_factory: sessionmaker,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock

    def dashboard(self, username: str) -> Dashboard:
        now = self._clock()
        today = now.date()
        day_start = datetime.combine(today, time.min)
        with unit_of_work(self._session_factory) as db:
            user = require_user(db, username)
            level = user.level
            streak = user.streak_state()
            daily_goal = user.daily_goal
            promoted_at = user.promoted_at

            records = db.execute(
                select(
                    SkillRecord.rule_name,
                    SkillRecord.mastery_level,
                    SkillRecord.last_practiced_at,
                    SkillRecord.next_review_at,
                )
                .where(SkillRecord.username == username)
                .order_by(SkillRecord.id)
            ).all()

            total_sessions, average_accuracy = db.execute(
                select(func.count(PracticeSession.id), func.avg(PracticeSession.accuracy)).where(
                    PracticeSession.username == username
                )
            ).one()
            sessions_last_7_days, sessions_today = db.execute(
                select(
                    func.count(PracticeSession.id).filter(PracticeSession.practice_date > today - timedelta(days=7)),
                    func.count(PracticeSession.id).filter(PracticeSession.practice_date == today),
                ).where(PracticeSession.username == username)
            ).one()
            challenges_today = db.scalar(
                select(func.count(ChallengeResult.id)).where(
                    ChallengeResult.username == username,
                    ChallengeResult.completed_at >= day_start,
                    ChallengeResult.completed_at < day_start + timedelta(days=1),
                )
            )
            total_lessons, lessons_completed = db.execute(
                select(
                    func.count(Lesson.id),
                    func.count(Lesson.id).filter(Lesson.completed.is_(True)),
                ).where(Lesson.username == username)
            ).one()

        masteries = [r.mastery_level for r in records]
        assessment = assess_promotion(
            level,
            masteries,
            practiced_since([(r.mastery_level, r.last_practiced_at) for r in records], promoted_at),
        )
        # sorted() is stable, so equal mastery keeps insertion order
        weakest = sorted(records, key=lambda r: r.mastery_level)[:WEAKEST_RULES_SHOWN]

        return Dashboard(
            current_level=level,
            next_level=assessment.candidate_level,
            eligible_for_promotion=assessment.eligible,
            average_mastery=round(assessment.average_mastery, 2),
            total_rules_tracked=len(records),
            rules_mastered=sum(1 for m in masteries if m >= MASTERED_THRESHOLD),
            rules_weak=sum(1 for m in masteries if m < WEAK_THRESHOLD),
            average_accuracy=round(float(average_accuracy or 0.0), 2),
            total_sessions=total_sessions or 0,
            total_lessons=total_lessons or 0,
            lessons_completed=lessons_completed or 0,
            current_streak=current_streak_on(streak, today),
            longest_streak=streak.longest,
            last_practice_date=streak.last_day,
            sessions_last_7_days=sessions_last_7_days or 0,
            weakest_rules=[r.rule_name for r in weakest],
            daily_goal_target=daily_goal,
            daily_goal_progress=(sessions_today or 0) + (challenges_today or 0),
            due_review_count=sum(1 for r in records if r.next_review_at is not None and r.next_review_at <= now),
        )

    def timeline(
        self,
        username: str,
        days: Optional[int] = None,
        *,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[TimelineEntry]:
        """Lesson practice and completed challenges, newest first."""
        window = settings.timeline_days if days is None else days
        now = self._clock()
        since = datetime.combine(now.date() - timedelta(days=window), time.min)
        entries: List[TimelineEntry] = []
        with unit_of_work(self._session_factory) as db:
            require_user(db, username)
            sessions = db.execute(
                select(PracticeSession, Lesson.topic)
                .outerjoin(Lesson, Lesson.id == PracticeSession.lesson_id)
                .where(PracticeSession.username == username, PracticeSession.practice_date >= since.date())
            ).all()
            for session, topic in sessions:
                entries.append(
                    TimelineEntry(
                        entry_id=session.id,
                        kind="lesson",
                        lesson_id=session.lesson_id,
                        title=topic or "Deleted Lesson",
                        score=session.accuracy,
                        error_count=session.error_count,
                        feedback=session.feedback,
                        practiced_at=session.created_at,
                    )
                )
            challenges = db.scalars(
                select(ChallengeResult).where(
                    ChallengeResult.username == username,
                    ChallengeResult.completed_at >= since,
                )
            ).all()
            for result in challenges:
                entries.append(
                    TimelineEntry(
                        entry_id=result.id,
                        kind=result.kind,
                        title=_challenge_title(result),
                        score=result.score,
                        feedback=result.feedback,
                        practiced_at=result.completed_at,
                    )
                )

        entries.sort(key=lambda e: e.practiced_at, reverse=True)
        end = None if limit is None else offset + limit
        return entries[offset:end]
