"""
Database module initialization.
Exports database components for use throughout the application.
"""

from doomsettle.database.base import Base
from doomsettle.database.dependencies import get_db
from doomsettle.database.session import Database

__all__ = [
    "Base",
    "Database",
    "get_db",
]
