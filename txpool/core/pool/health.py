"""
Connection health check.
"""

from txpool.core.errors import ExecError

from .connection import Connection


def health_check(conn: Connection) -> bool:
    """
    Run SELECT 1 and return True if no error. Postgres, MySQL and SQLite all support SELECT 1.
    A failing probe leaves the connection marked BROKEN when the store says so.
    """
    if not conn.is_usable:
        return False
    try:
        conn.execute("SELECT 1")
        return True
    except ExecError:
        return False
