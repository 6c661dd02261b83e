"""Database package for Galleria."""

from galleria.db.base import Base
from galleria.db.session import async_session_maker, engine, get_db, get_session_factory

__all__ = [
    "Base",
    "async_session_maker",
    "engine",
    "get_db",
    "get_session_factory",
]
