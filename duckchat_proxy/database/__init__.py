"""Database support module for the proxy.

Provides interchangeable SQLite and PostgreSQL storage for the conversation
continuity cache.
"""

from .base import DatabaseBase
from .factory import create_database
from .postgres import PostgreSQLDatabase
from .sqlite import SQLiteDatabase

__all__ = ["create_database", "DatabaseBase", "PostgreSQLDatabase", "SQLiteDatabase"]
