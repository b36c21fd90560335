from __future__ import annotations

import logging
from collections.abc import Generator, Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from messaging_core.core.settings import get_settings

logger = logging.getLogger(__name__)

Base = declarative_base()

engine: Engine | None = None
SessionLocal: sessionmaker[Session] | None = None


def _enable_sqlite_foreign_keys(dbapi_connection, _connection_record) -> None:
    # Message and request rows rely on ON DELETE CASCADE.
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def configure_engine(database_url: str) -> None:
    """(Re)bind the module-level engine and session factory to ``database_url``."""
    global engine, SessionLocal
    logger.debug("Configuring database engine url=%s", database_url)
    if engine is not None:
        engine.dispose()

    is_sqlite = database_url.startswith("sqlite")
    engine = create_engine(
        database_url,
        connect_args={"check_same_thread": False} if is_sqlite else {},
        future=True,
    )
    if is_sqlite:
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    # Rows outlive their session: realtime handlers serialize after commit.
    SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True)
    logger.info("Database engine configured dialect=%s", engine.dialect.name)


configure_engine(get_settings().database_url)


def init_db() -> None:
    from messaging_core.models import message, message_request, social, user  # noqa: F401

    if engine is None:
        raise RuntimeError("Database engine is not configured")
    Base.metadata.create_all(bind=engine)
    logger.info("Database schema ready tables=%s", len(Base.metadata.tables))


def open_session() -> Session:
    if SessionLocal is None:
        raise RuntimeError("Database session factory is not configured")
    return SessionLocal()


@contextmanager
def session_scope() -> Iterator[Session]:
    """Session for work outside a request, such as websocket handlers."""
    db = open_session()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_db() -> Generator[Session, None, None]:
    db = open_session()
    try:
        yield db
    finally:
        db.close()
