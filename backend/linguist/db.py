from __future__ import annotations
import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker, declarative_base

from .errors import StorageError
from .settings import settings


logger = logging.getLogger(__name__)

DATABASE_URL = settings.database_url or "sqlite:///./linguist.db"

Base = declarative_base()


def make_engine(url: str) -> Engine:
	connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
	return create_engine(url, connect_args=connect_args, future=True)


def make_session_factory(bind: Engine) -> sessionmaker:
	# Services hand read models out after commit, so rows must stay loaded
	return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=bind, future=True)


engine = make_engine(DATABASE_URL)
SessionLocal = make_session_factory(engine)


def get_db():
	db = SessionLocal()
	try:
		yield db
	finally:
		db.close()


@contextmanager
def unit_of_work(session_factory: sessionmaker) -> Iterator[Session]:
	"""Run a block inside one transaction.

	Commits when the block finishes, rolls back on any exception. Database
	errors come out as ``StorageError`` so callers never see a half-applied
	update or a driver-specific exception.
	"""
	try:
		with session_factory.begin() as db:
			yield db
	except SQLAlchemyError as exc:
		logger.exception("unit of work rolled back")
		raise StorageError(f"storage failure: {exc.__class__.__name__}") from exc


# Lightweight additive migrations for databases created by older builds (SQLite-friendly)
def ensure_schema(bind: Engine | None = None) -> None:
	bind = bind or engine
	inspector = inspect(bind)
	tables = set(inspector.get_table_names())
	if "skill_records" in tables:
		cols = {c["name"] for c in inspector.get_columns("skill_records")}
		with bind.begin() as conn:
			if "next_review_at" not in cols:
				conn.exec_driver_sql("ALTER TABLE skill_records ADD COLUMN next_review_at DATETIME")
	if "user_accounts" in tables:
		cols = {c["name"] for c in inspector.get_columns("user_accounts")}
		with bind.begin() as conn:
			if "daily_goal" not in cols:
				conn.exec_driver_sql("ALTER TABLE user_accounts ADD COLUMN daily_goal INTEGER DEFAULT 3 NOT NULL")
			if "total_practice_days" not in cols:
				conn.exec_driver_sql("ALTER TABLE user_accounts ADD COLUMN total_practice_days INTEGER DEFAULT 0 NOT NULL")
			if "promoted_at" not in cols:
				conn.exec_driver_sql("ALTER TABLE user_accounts ADD COLUMN promoted_at DATETIME")
