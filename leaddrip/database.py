"""
Database engine + session factory.

Defaults to SQLite for local runs, Postgres in production. The engine is
built on first use so importing models never opens a connection.
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from leaddrip.config import DATABASE_URL


class Base(DeclarativeBase):
    pass


_engine = None
_SessionLocal = None


def get_engine(url=None):
    global _engine, _SessionLocal
    if _engine is None:
        # Hosted Postgres often hands out postgres:// but SQLAlchemy 2.x wants postgresql://
        url = (url or DATABASE_URL).replace('postgres://', 'postgresql://', 1)
        if url.startswith('sqlite'):
            _engine = create_engine(url, connect_args={'check_same_thread': False})
        else:
            _engine = create_engine(url, pool_pre_ping=True, pool_size=5, max_overflow=10)
        _SessionLocal = sessionmaker(bind=_engine)
    return _engine


def get_session():
    """Return a new DB session."""
    get_engine()
    return _SessionLocal()


def init_db():
    """Create tables that don't exist yet (local dev; production runs Alembic)."""
    from leaddrip.models import db_run, lead, user_config, do_not_contact, watch_list  # noqa: F401
    Base.metadata.create_all(get_engine())
