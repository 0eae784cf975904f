from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from flask import Flask
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, scoped_session, sessionmaker

from .config import DEFAULT_CONFIG

_engine: Optional[Engine] = None
SessionLocal = scoped_session(sessionmaker(autocommit=False, autoflush=False))


def init_engine(database_url: str, echo: bool = False) -> Engine:
    global _engine
    if database_url.startswith("sqlite"):
        database = make_url(database_url).database
        if database and database != ":memory:":
            Path(database).parent.mkdir(parents=True, exist_ok=True)
        _engine = create_engine(database_url, echo=echo, connect_args={"check_same_thread": False})
    else:
        _engine = create_engine(database_url, echo=echo, pool_pre_ping=True)
    SessionLocal.remove()
    SessionLocal.configure(bind=_engine)
    from . import models  # noqa: F401

    models.Base.metadata.create_all(bind=_engine)
    return _engine


def init_db(app: Flask) -> None:
    database_url = app.config.get("DATABASE_URL", DEFAULT_CONFIG["DATABASE_URL"])
    engine = init_engine(database_url, echo=bool(app.config.get("DATABASE_ECHO", False)))
    app.extensions["ledquote.engine"] = engine

    @app.teardown_appcontext
    def _remove_session(exc: Optional[BaseException] = None) -> None:
        SessionLocal.remove()


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("database engine is not initialised; call init_engine() first")
    return _engine


@contextmanager
def session_scope() -> Iterator[Session]:
    session: Session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
