from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase


class Base(DeclarativeBase):
    pass


def create_db_engine(database_url: str, **kwargs) -> Engine:
    kwargs.setdefault("pool_pre_ping", True)
    return create_engine(database_url, **kwargs)


def make_session_factory(engine: Engine) -> sessionmaker:
    """Session factory used by the repository; one transaction per call.

    ``expire_on_commit=False`` keeps loaded attributes readable after the
    ``with factory.begin()`` block commits.
    """
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
