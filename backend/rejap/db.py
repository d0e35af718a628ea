from __future__ import annotations
import logging

from sqlalchemy import create_engine, inspect
from sqlalchemy.orm import sessionmaker, declarative_base
from .settings import settings


logger = logging.getLogger(__name__)

DATABASE_URL = settings.database_url or "sqlite:///./rejap.db"

_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, connect_args=_connect_args, future=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)
Base = declarative_base()


def get_db():
	db = SessionLocal()
	try:
		yield db
	finally:
		db.close()


# Lightweight column migrations for databases created by older builds (SQLite-friendly)
def ensure_schema(bind=None) -> list[str]:
	bind = bind or engine
	applied: list[str] = []
	inspector = inspect(bind)
	tables = set(inspector.get_table_names())
	if "user_accounts" in tables:
		cols = {c["name"] for c in inspector.get_columns("user_accounts")}
		with bind.begin() as conn:
			if "current_level_id" not in cols:
				conn.exec_driver_sql("ALTER TABLE user_accounts ADD COLUMN current_level_id INTEGER")
				applied.append("user_accounts.current_level_id")
	if "quiz_questions" in tables:
		cols = {c["name"] for c in inspector.get_columns("quiz_questions")}
		with bind.begin() as conn:
			if "type" not in cols:
				conn.exec_driver_sql("ALTER TABLE quiz_questions ADD COLUMN type VARCHAR(32) DEFAULT 'multiple_choice' NOT NULL")
				applied.append("quiz_questions.type")
	for name in applied:
		logger.info("Applied schema migration: added %s", name)
	return applied
