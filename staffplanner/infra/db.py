from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from staffplanner.config import SETTINGS

engine = create_engine(SETTINGS.database_url, pool_pre_ping=True)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
Base = declarative_base()


def init_db() -> None:
    with engine.connect() as connection:
        connection.execute(text("SELECT 1"))


def create_schema(bind: Engine = engine) -> None:
    """Create every table directly; alembic migrations are the normal route."""
    from . import models  # noqa: F401

    Base.metadata.create_all(bind)


@contextmanager
def transaction(session_factory: sessionmaker = SessionLocal) -> Iterator[Session]:
    """One session, committed on success and rolled back on any error."""
    with session_factory() as session:
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
