"""Database module for SQLAlchemy async setup."""

from propredict.db.database import (
    Base,
    async_session_maker,
    engine,
    get_db,
    init_db,
)

__all__ = [
    "Base",
    "engine",
    "async_session_maker",
    "get_db",
    "init_db",
]
