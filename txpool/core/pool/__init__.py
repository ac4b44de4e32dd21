"""
Connection pool over a store adapter (psycopg, pymysql or sqlite3).

Adapters describe how to talk to one store; Pool owns the Connections.
"""

from .connect import (
    MySQLAdapter,
    PostgresAdapter,
    ProductTypeEnum,
    RawResult,
    SQLiteAdapter,
    StoreAdapter,
    cursor_to_raw,
    make_adapter,
)
from .connection import Connection, ConnectionState
from .health import health_check
from .manager import Pool

__all__ = [
    "Connection",
    "ConnectionState",
    "MySQLAdapter",
    "Pool",
    "PostgresAdapter",
    "ProductTypeEnum",
    "RawResult",
    "SQLiteAdapter",
    "StoreAdapter",
    "cursor_to_raw",
    "health_check",
    "make_adapter",
]
