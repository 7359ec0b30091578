"""Common database utilities and base models"""

import uuid
from contextlib import contextmanager

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlmodel import create_engine, Session
from typing import Generator

import logging

logger = logging.getLogger("questlog.db")


def get_engine():  # pragma: no cover
    from settings import DATABASE_URL

    return create_engine(DATABASE_URL)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def new_id() -> str:
    return str(uuid.uuid4())


def get_session() -> Generator[Session, None, None]:  # pragma: no cover
    """Get database session for FastAPI dependency, always closes session."""
    session = Session(get_engine(), expire_on_commit=False)
    try:
        yield session
    finally:
        session.close()


@contextmanager
def get_db() -> Generator[Session, None, None]:  # pragma: no cover
    """Context manager for database session, used by scripts"""
    engine = get_engine()
    session = Session(engine, expire_on_commit=False)
    try:
        yield session
    except Exception as e:
        logger.exception(f"Exception in the database session rolling back - {e}")
        session.rollback()
        raise
    finally:
        session.close()
        engine.dispose()


def parse_bool(bool_str: str | bool):
    if isinstance(bool_str, str):
        return bool_str.lower() in ("true", "1")
    return bool(bool_str)
