from __future__ import annotations
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool
from .settings import settings


DEFAULT_DATABASE_URL = "sqlite:///./app.db"
_IN_MEMORY_URLS = ("sqlite://", "sqlite:///:memory:")


def make_engine(url: str) -> Engine:
	"""Engine for ``url``; an in-memory SQLite database is one connection shared by all sessions."""
	connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
	if url in _IN_MEMORY_URLS:
		return create_engine(url, connect_args=connect_args, poolclass=StaticPool, future=True)
	return create_engine(url, connect_args=connect_args, future=True)


def make_session_factory(bind: Engine) -> sessionmaker:
	return sessionmaker(autocommit=False, autoflush=False, bind=bind, future=True)


engine = make_engine(settings.database_url or DEFAULT_DATABASE_URL)
SessionLocal = make_session_factory(engine)
Base = declarative_base()


def get_db():
	db = SessionLocal()
	try:
		yield db
	finally:
		db.close()
