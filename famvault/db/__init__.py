"""
Database Abstraction Layer

- DatabaseConnection: thread-local connections, WAL mode, serialized writes
- init_schema: table and index creation
"""

from .connection import DatabaseConnection, storage_errors
from .schema import init_schema

__all__ = [
    "DatabaseConnection",
    "storage_errors",
    "init_schema",
]
