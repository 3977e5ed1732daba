from __future__ import annotations

from contextlib import contextmanager
from typing import Generator, Iterator

from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.config import Settings
from app.core.logging_config import get_logger

logger = get_logger("db")


def _engine_options(settings: Settings) -> dict:
    url = make_url(settings.database_url)
    options: dict = {"future": True, "echo": settings.db_echo}
    if url.get_backend_name() == "sqlite":
        options["connect_args"] = {"check_same_thread": False}
        if url.database in (None, "", ":memory:"):
            # One shared connection, otherwise every checkout sees an empty database.
            options["poolclass"] = StaticPool
        return options

    options.update(
        pool_pre_ping=True,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_timeout=settings.db_connect_timeout,
        connect_args={"connect_timeout": settings.db_connect_timeout},
    )
    return options


class Database:
    """Engine + session factory for one application instance.

    Built in the app lifespan, kept on ``app.state.db`` and disposed on
    shutdown. Nothing else in the process holds an engine.
    """

    def __init__(self, settings: Settings, engine: Engine | None = None):
        self.settings = settings
        self.engine = engine or create_engine(settings.database_url, **_engine_options(settings))
        self.SessionLocal = sessionmaker(bind=self.engine, autoflush=False, autocommit=False, future=True)

    def session(self) -> Session:
        return self.SessionLocal()

    def create_all(self) -> None:
        from app.db.base import Base
        from app.db import models  # noqa: F401

        Base.metadata.create_all(bind=self.engine)

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """Own session, committed on success and rolled back on any error."""
        db = self.SessionLocal()
        try:
            with in_transaction(db):
                yield db
        finally:
            db.close()

    def dispose(self) -> None:
        self.engine.dispose()
        logger.info("database_disposed")


@contextmanager
def in_transaction(db: Session) -> Iterator[Session]:
    """Commit the request session's unit of work, or roll it back and re-raise."""
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise


def get_database(request: Request) -> Database:
    return request.app.state.db


def get_db(request: Request) -> Generator[Session, None, None]:
    db = get_database(request).session()
    try:
        yield db
    finally:
        db.close()
