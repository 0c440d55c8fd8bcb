"""Database helpers and SQLModel metadata setup."""
from .base import configure_engine, dispose_engine, get_engine, get_session, init_db

__all__ = ["configure_engine", "dispose_engine", "get_engine", "get_session", "init_db"]
