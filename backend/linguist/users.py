from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.orm import Session, sessionmaker

from .db import unit_of_work
from .errors import Conflict, InvalidArgument, NotFound
from .locks import KeyedLocks
from .models import UserAccount, utcnow
from .policy import LEVELS, normalize_level
from .schemas import UserView
from .settings import settings


logger = logging.getLogger(__name__)


def user_key(username: str) -> tuple:
    return ("user", username)


def require_user(db: Session, username: str) -> UserAccount:
    user = db.get(UserAccount, username) if username else None
    if user is None:
        raise NotFound("User", username)
    return user


class UserDirectory:
    def __init__(
        self,
        session_factory: sessionmaker,
        *,
        locks: Optional[KeyedLocks] = None,
        clock: Callable[[], datetime] = utcnow,
        default_daily_goal: Optional[int] = None,
    ) -> None:
        self._session_factory = session_factory
        self._locks = locks or KeyedLocks()
        self._clock = clock
        self._default_daily_goal = default_daily_goal or settings.default_daily_goal

    def create_user(
        self,
        username: str,
        display_name: Optional[str] = None,
        level: Optional[str] = "A1",
        daily_goal: Optional[int] = None,
    ) -> UserView:
        username = (username or "").strip()
        if not username:
            raise InvalidArgument("username is required")
        if len(username) > 128:
            raise InvalidArgument("username must be at most 128 characters")
        level_u = normalize_level(level or "A1")
        if level_u is None:
            raise InvalidArgument(f"level must be one of {','.join(LEVELS)}")
        goal = self._default_daily_goal if daily_goal is None else daily_goal
        if goal < 1:
            raise InvalidArgument("daily_goal must be at least 1")

        with self._locks.hold(user_key(username)):
            with unit_of_work(self._session_factory) as db:
                if db.get(UserAccount, username) is not None:
                    raise Conflict(f"User already exists: {username}")
                now = self._clock()
                user = UserAccount(
                    username=username,
                    display_name=display_name,
                    level=level_u,
                    daily_goal=goal,
                    created_at=now,
                    updated_at=now,
                )
                db.add(user)
                db.flush()
                view = UserView.model_validate(user)
        logger.info("created user %s at level %s", username, level_u)
        return view

    def get_user(self, username: str) -> UserView:
        with unit_of_work(self._session_factory) as db:
            return UserView.model_validate(require_user(db, username))
