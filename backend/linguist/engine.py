from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.orm import sessionmaker

from .dashboard import DashboardAggregator
from .db import SessionLocal
from .ledger import SkillLedger
from .locks import KeyedLocks
from .models import utcnow
from .practice import PracticeRecorder
from .promotion import PromotionEvaluator
from .users import UserDirectory
from .vocabulary import VocabularySRS


class MasteryEngine:
    """All services over one session factory, one lock registry and one clock."""

    def __init__(self, session_factory: sessionmaker, *, clock: Callable[[], datetime] = utcnow) -> None:
        self.session_factory = session_factory
        self.clock = clock
        self.locks = KeyedLocks()
        self.users = UserDirectory(session_factory, locks=self.locks, clock=clock)
        self.ledger = SkillLedger(session_factory, locks=self.locks, clock=clock)
        self.vocabulary = VocabularySRS(session_factory, locks=self.locks, clock=clock)
        self.promotion = PromotionEvaluator(session_factory, locks=self.locks, clock=clock)
        self.dashboard = DashboardAggregator(session_factory, clock=clock)
        self.practice = PracticeRecorder(
            session_factory, self.ledger, self.vocabulary, locks=self.locks, clock=clock
        )


_engine: Optional[MasteryEngine] = None


def get_engine() -> MasteryEngine:
    global _engine
    if _engine is None:
        _engine = MasteryEngine(SessionLocal)
    return _engine
