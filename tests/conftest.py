"""Shared fixtures: in-memory database, fixed clock, wired engine."""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from linguist.db import Base, make_session_factory
from linguist.engine import MasteryEngine
from linguist.models import SkillRecord


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock(datetime(2025, 3, 10, 9, 30, 0))


@pytest.fixture
def db_engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(db_engine):
    return make_session_factory(db_engine)


@pytest.fixture
def engine(session_factory, clock):
    return MasteryEngine(session_factory, clock=clock)


@pytest.fixture
def user(engine):
    return engine.users.create_user("ana", display_name="Ana", level="B1")


@pytest.fixture
def seed_records(session_factory, clock):
    """Insert skill records with given mastery levels directly."""

    def _seed(username, masteries, prefix="Rule"):
        with session_factory.begin() as db:
            for idx, mastery in enumerate(masteries):
                db.add(
                    SkillRecord(
                        username=username,
                        rule_name=f"{prefix} {idx + 1}",
                        mastery_level=mastery,
                        fail_count=0,
                        practice_count=1,
                        last_practiced_at=clock(),
                        next_review_at=clock() + timedelta(days=7),
                        created_at=clock(),
                    )
                )

    return _seed
