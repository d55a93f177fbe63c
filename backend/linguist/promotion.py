from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from .db import unit_of_work
from .locks import KeyedLocks
from .models import SkillRecord, utcnow
from .policy import (
    PROMOTION_MASTERY_THRESHOLD,
    PROMOTION_MIN_RULES_MASTERED,
    assess_promotion,
)
from .schemas import PromotionResult
from .users import require_user, user_key


logger = logging.getLogger(__name__)


def ledger_snapshot(db: Session, username: str) -> List[Tuple[int, Optional[datetime]]]:
    """``(mastery, last_practiced_at)`` of every record, fetched in one statement."""
    stmt = (
        select(SkillRecord.mastery_level, SkillRecord.last_practiced_at)
        .where(SkillRecord.username == username)
        .order_by(SkillRecord.id)
    )
    return [(row.mastery_level, row.last_practiced_at) for row in db.execute(stmt)]


def practiced_since(snapshot: List[Tuple[int, Optional[datetime]]], promoted_at: Optional[datetime]) -> bool:
    """Whether any record was practised after the last promotion."""
    if promoted_at is None:
        return True
    return any(practiced is not None and practiced > promoted_at for _, practiced in snapshot)


class PromotionEvaluator:
    """Decides level-ups. Never called implicitly by ledger writes."""

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

    def evaluate(self, username: str) -> PromotionResult:
        # Serialized per user so two concurrent checks cannot both promote
        with self._locks.hold(user_key(username)):
            with unit_of_work(self._session_factory) as db:
                user = require_user(db, username)
                previous_level = user.level
                snapshot = ledger_snapshot(db, username)
                assessment = assess_promotion(
                    previous_level,
                    [mastery for mastery, _ in snapshot],
                    practiced_since(snapshot, user.promoted_at),
                )
                if assessment.eligible:
                    now = self._clock()
                    user.level = assessment.candidate_level
                    user.promoted_at = now
                    user.updated_at = now
                new_level = user.level

        if assessment.eligible:
            logger.info("promoted %s from %s to %s", username, previous_level, new_level)
            message = f"Congratulations! Promoted from {previous_level} to {new_level}!"
        else:
            logger.debug("%s not promoted: %s", username, assessment.blocker.value)
            message = assessment.message()

        return PromotionResult(
            promoted=assessment.eligible,
            previous_level=previous_level,
            new_level=new_level,
            average_mastery=round(assessment.average_mastery, 2),
            rules_tracked=assessment.rules_tracked,
            rules_mastered=assessment.rules_mastered,
            required_mastery=PROMOTION_MASTERY_THRESHOLD,
            required_rules_mastered=PROMOTION_MIN_RULES_MASTERED,
            reason=None if assessment.eligible else assessment.blocker.value,
            message=message,
        )
