"""
Store adapters: the capability set the pool consumes from a backing store.

open / close / execute / begin / commit / rollback, plus ``classify`` which
maps a driver exception to an ErrorKind. Uses psycopg (PostgreSQL), pymysql
(MySQL) or sqlite3 (SQLite) based on product_type.

Connections are opened in autocommit mode so a standalone statement persists
on its own; transactions are always explicit.
"""

import sqlite3
from enum import Enum
from typing import Any, NamedTuple

import psycopg
import pymysql

from txpool.core.config import settings
from txpool.core.errors import ErrorKind


class ProductTypeEnum(str, Enum):
    """Supported store product types (postgres, mysql, sqlite)."""

    POSTGRES = "postgres"
    MYSQL = "mysql"
    SQLITE = "sqlite"


class RawResult(NamedTuple):
    columns: tuple[str, ...]
    rows: list[tuple[Any, ...]]
    rowcount: int  # -1 when the driver does not report one


def cursor_to_raw(cursor: Any) -> RawResult:
    """Drain a DB-API cursor. Works for psycopg, pymysql and sqlite3."""
    rowcount = cursor.rowcount if cursor.rowcount is not None else -1
    desc = cursor.description
    if not desc:
        return RawResult(columns=(), rows=[], rowcount=rowcount)
    names = tuple(d[0] for d in desc)
    rows = [tuple(row) for row in cursor.fetchall()]
    return RawResult(columns=names, rows=rows, rowcount=rowcount)


class StoreAdapter:
    """
    Base adapter for DB-API 2.0 drivers.

    Subclasses implement ``open`` and ``classify``; the rest works for any
    driver whose connections expose ``cursor()`` and ``close()``.
    """

    product_type: ProductTypeEnum

    def open(self) -> Any:
        raise NotImplementedError

    def close(self, raw: Any) -> None:
        raw.close()

    def execute(
        self,
        raw: Any,
        sql: str,
        params: dict | list | tuple | None = None,
    ) -> RawResult:
        cur = raw.cursor()
        try:
            if params is not None:
                cur.execute(sql, params)
            else:
                cur.execute(sql)
            return cursor_to_raw(cur)
        finally:
            cur.close()

    def begin(self, raw: Any) -> None:
        self.execute(raw, "BEGIN")

    def commit(self, raw: Any) -> None:
        self.execute(raw, "COMMIT")

    def rollback(self, raw: Any) -> None:
        self.execute(raw, "ROLLBACK")

    def classify(self, exc: BaseException) -> ErrorKind:
        return ErrorKind.FATAL

    def is_broken(self, raw: Any) -> bool:
        """True when the raw connection can no longer be used."""
        return False

    def describe(self) -> str:
        return self.product_type.value


# admin_shutdown, crash_shutdown, cannot_connect_now
_PG_SHUTDOWN_STATES = frozenset({"57P01", "57P02", "57P03"})


class PostgresAdapter(StoreAdapter):
    product_type = ProductTypeEnum.POSTGRES

    def __init__(
        self,
        *,
        host: str,
        database: str,
        username: str,
        password: str = "",
        port: int = 5432,
        connect_timeout: int | None = None,
        statement_timeout: int | None = None,
    ) -> None:
        self.host = host
        self.port = int(port)
        self.database = database
        self.username = username
        self.password = password
        self.connect_timeout = connect_timeout
        self.statement_timeout = statement_timeout

    def open(self) -> Any:
        kwargs: dict[str, Any] = {}
        if self.statement_timeout:
            kwargs["options"] = f"-c statement_timeout={int(self.statement_timeout * 1000)}"
        return psycopg.connect(
            host=self.host,
            port=self.port,
            dbname=self.database,
            user=self.username,
            password=self.password,
            connect_timeout=self.connect_timeout,
            autocommit=True,
            **kwargs,
        )

    def classify(self, exc: BaseException) -> ErrorKind:
        # QueryCanceled (statement_timeout) is an OperationalError but retrying won't help
        if isinstance(exc, psycopg.errors.QueryCanceled):
            return ErrorKind.FATAL
        if isinstance(
            exc,
            (
                psycopg.errors.SerializationFailure,
                psycopg.errors.DeadlockDetected,
                psycopg.errors.LockNotAvailable,
            ),
        ):
            return ErrorKind.TRANSIENT
        if isinstance(exc, psycopg.IntegrityError):
            return ErrorKind.CONSTRAINT
        if isinstance(exc, psycopg.OperationalError):
            sqlstate = getattr(exc, "sqlstate", None)
            # no sqlstate: raised client-side, the connection itself went away
            if sqlstate is None or sqlstate[:2] == "08" or sqlstate in _PG_SHUTDOWN_STATES:
                return ErrorKind.TRANSIENT
        return ErrorKind.FATAL

    def is_broken(self, raw: Any) -> bool:
        return bool(raw.closed or raw.broken)

    def describe(self) -> str:
        return f"postgres://{self.host}:{self.port}/{self.database}"


# Lock wait timeout, deadlock, server gone away, lost connection during query
_MYSQL_TRANSIENT_CODES = frozenset({1205, 1213, 2006, 2013})


class MySQLAdapter(StoreAdapter):
    product_type = ProductTypeEnum.MYSQL

    def __init__(
        self,
        *,
        host: str,
        database: str,
        username: str,
        password: str = "",
        port: int = 3306,
        connect_timeout: int | None = None,
        statement_timeout: int | None = None,
    ) -> None:
        self.host = host
        self.port = int(port)
        self.database = database
        self.username = username
        self.password = password
        self.connect_timeout = connect_timeout
        self.statement_timeout = statement_timeout

    def open(self) -> Any:
        kwargs: dict[str, Any] = {}
        if self.connect_timeout:
            kwargs["connect_timeout"] = self.connect_timeout
        conn = pymysql.connect(
            host=self.host,
            port=self.port,
            database=self.database,
            user=self.username,
            password=self.password,
            autocommit=True,
            **kwargs,
        )
        if self.statement_timeout:
            try:
                self.execute(
                    conn,
                    "SET SESSION max_execution_time = %s",
                    (int(self.statement_timeout * 1000),),
                )
            except Exception:
                conn.close()
                raise
        return conn

    def begin(self, raw: Any) -> None:
        raw.begin()

    def commit(self, raw: Any) -> None:
        raw.commit()

    def rollback(self, raw: Any) -> None:
        raw.rollback()

    def classify(self, exc: BaseException) -> ErrorKind:
        if isinstance(exc, pymysql.err.IntegrityError):
            return ErrorKind.CONSTRAINT
        if isinstance(exc, pymysql.err.OperationalError):
            code = exc.args[0] if exc.args else None
            if code in _MYSQL_TRANSIENT_CODES:
                return ErrorKind.TRANSIENT
            return ErrorKind.FATAL
        if isinstance(exc, pymysql.err.InterfaceError):
            # raised on a connection the server already dropped
            return ErrorKind.TRANSIENT
        return ErrorKind.FATAL

    def is_broken(self, raw: Any) -> bool:
        return not raw.open

    def describe(self) -> str:
        return f"mysql://{self.host}:{self.port}/{self.database}"


class SQLiteAdapter(StoreAdapter):
    """
    File databases only, in WAL mode so readers never see uncommitted writes.

    In-memory databases are rejected: every pooled connection would open its
    own private, empty database.
    """

    product_type = ProductTypeEnum.SQLITE

    def __init__(self, *, path: str, timeout: float | None = None) -> None:
        if not path or path == ":memory:" or "mode=memory" in path:
            raise ValueError(
                f"sqlite path must be a database file, got {path!r} "
                "(in-memory databases are not shared between pooled connections)"
            )
        self.path = path
        self.timeout = timeout

    def open(self) -> Any:
        conn = sqlite3.connect(
            self.path,
            timeout=self.timeout if self.timeout is not None else 5.0,
            isolation_level=None,
            check_same_thread=False,
        )
        conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def classify(self, exc: BaseException) -> ErrorKind:
        if isinstance(exc, sqlite3.IntegrityError):
            return ErrorKind.CONSTRAINT
        if isinstance(exc, sqlite3.OperationalError):
            msg = str(exc).lower()
            if "locked" in msg or "busy" in msg:
                return ErrorKind.TRANSIENT
        return ErrorKind.FATAL

    def is_broken(self, raw: Any) -> bool:
        try:
            raw.total_changes
        except sqlite3.ProgrammingError:
            return True
        return False

    def describe(self) -> str:
        return f"sqlite://{self.path}"


def _get(datasource: Any, key: str) -> Any:
    """Get attribute or dict key from a datasource dict or object."""
    if isinstance(datasource, dict):
        return datasource.get(key)
    return getattr(datasource, key, None)


def _resolve_product_type(
    datasource: Any, product_type: ProductTypeEnum | None
) -> ProductTypeEnum:
    pt = product_type or _get(datasource, "product_type")
    if pt is None:
        raise ValueError("product_type is required (from datasource or argument)")
    if isinstance(pt, str):
        return ProductTypeEnum(pt)
    return pt


def make_adapter(
    datasource: Any,
    *,
    product_type: ProductTypeEnum | None = None,
) -> StoreAdapter:
    """
    Build the adapter for a datasource dict or object.

    - postgres / mysql: host, port, database, username, password.
    - sqlite: path (or database) of the database file.
    - product_type: override when the datasource does not carry one.
    """
    pt = _resolve_product_type(datasource, product_type)
    connect_timeout = settings.CONNECT_TIMEOUT
    statement_timeout = settings.STATEMENT_TIMEOUT

    if pt == ProductTypeEnum.SQLITE:
        path = _get(datasource, "path") or _get(datasource, "database")
        if not path:
            raise ValueError("datasource must provide path")
        return SQLiteAdapter(path=str(path), timeout=connect_timeout)

    host = _get(datasource, "host")
    database = _get(datasource, "database")
    username = _get(datasource, "username")
    password = _get(datasource, "password")
    for name, val in [
        ("host", host),
        ("database", database),
        ("username", username),
    ]:
        if val is None:
            raise ValueError(f"datasource must provide {name}")
    password = password if password is not None else ""

    if pt == ProductTypeEnum.POSTGRES:
        return PostgresAdapter(
            host=host,
            port=int(_get(datasource, "port") or 5432),
            database=database,
            username=username,
            password=password,
            connect_timeout=connect_timeout,
            statement_timeout=statement_timeout,
        )
    if pt == ProductTypeEnum.MYSQL:
        return MySQLAdapter(
            host=host,
            port=int(_get(datasource, "port") or 3306),
            database=database,
            username=username,
            password=password,
            connect_timeout=connect_timeout,
            statement_timeout=statement_timeout,
        )
    raise ValueError(f"Unsupported product_type: {pt}")
