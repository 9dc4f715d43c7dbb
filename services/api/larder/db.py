from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase, Session

from .settings import settings


class Base(DeclarativeBase):
    pass


_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def init_engine(database_url: str | None = None, **engine_kwargs) -> Engine:
    """(Re)bind the module-level engine and session factory."""
    global _engine, _session_factory
    url = database_url or settings.database_url
    if url.startswith("sqlite"):
        engine_kwargs.setdefault("connect_args", {"check_same_thread": False})
    else:
        engine_kwargs.setdefault("pool_pre_ping", True)
    _engine = create_engine(url, **engine_kwargs)
    # expire_on_commit=False: services hand committed rows back to routers
    _session_factory = sessionmaker(
        bind=_engine, autoflush=False, expire_on_commit=False
    )
    return _engine


def session_factory() -> sessionmaker[Session]:
    if _session_factory is None:
        init_engine()
    return _session_factory


def get_db():
    db = session_factory()()
    try:
        yield db
    finally:
        db.close()
