"""
Database Module
"""
from .connection import init_database, close_database, get_db, get_session_factory, check_database_health
from .models import Base, AppStateEntry

__all__ = [
    "init_database",
    "close_database",
    "get_db",
    "get_session_factory",
    "check_database_health",
    "Base",
    "AppStateEntry",
]
