"""
QueryExecutor: the entry point for running statements.

- With a transaction: runs on the transaction's connection, never touches
  the Pool and never retries.
- Standalone: acquires a short-lived connection, executes, releases it in
  ``finally``. Idempotent statements are retried on transient errors with
  exponential backoff (retry_backoff * 2**attempt), up to retry_limit times.

Store errors surface as QueryFailed carrying the store's diagnostic.
PoolExhausted / PoolClosed / ConnectError / transaction-state errors
propagate unchanged.
"""

import logging
import time
from collections.abc import Callable, Mapping
from typing import Any

from txpool.core.errors import ErrorKind, ExecError, QueryFailed
from txpool.core.pool import Pool

from .statement import ResultSet, Statement, to_result_set
from .transaction import Transaction, TransactionManager

_log = logging.getLogger(__name__)


class QueryExecutor:
    def __init__(
        self,
        pool: Pool,
        *,
        transactions: TransactionManager | None = None,
        retry_limit: int | None = None,
        retry_backoff: float | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._pool = pool
        self._transactions = transactions or TransactionManager(pool)
        self._retry_limit = (
            pool.config.retry_limit if retry_limit is None else retry_limit
        )
        self._retry_backoff = (
            pool.config.retry_backoff if retry_backoff is None else retry_backoff
        )
        self._sleep = sleep

    @property
    def transactions(self) -> TransactionManager:
        return self._transactions

    def run(
        self, statement: Statement, transaction: Transaction | None = None
    ) -> ResultSet:
        """Execute *statement* (inside *transaction* if given) and return its ResultSet."""
        if transaction is not None:
            try:
                return self._transactions.execute(transaction, statement)
            except ExecError as e:
                raise self._query_failed(e, attempts=1) from e

        attempt = 0
        while True:
            try:
                return self._run_standalone(statement)
            except ExecError as e:
                retryable = (
                    e.kind == ErrorKind.TRANSIENT
                    and statement.idempotent
                    and attempt < self._retry_limit
                )
                if not retryable:
                    raise self._query_failed(e, attempts=attempt + 1) from e
                delay = self._retry_backoff * (2**attempt)
                attempt += 1
                _log.warning(
                    "transient error (attempt %d/%d): %s; retrying in %.3fs",
                    attempt,
                    self._retry_limit + 1,
                    e,
                    delay,
                )
                self._sleep(delay)

    # ------------------------------------------------------------------
    # Convenience: query / query_one / scalar / execute
    # ------------------------------------------------------------------

    def fetch_all(
        self,
        text: str,
        params: Any = None,
        *,
        transaction: Transaction | None = None,
    ) -> list[Mapping[str, Any]]:
        return list(self.run(Statement.rows(text, params), transaction))

    def fetch_one(
        self,
        text: str,
        params: Any = None,
        *,
        transaction: Transaction | None = None,
    ) -> Mapping[str, Any] | None:
        return self.run(Statement.rows(text, params), transaction).first()

    def fetch_scalar(
        self,
        text: str,
        params: Any = None,
        *,
        transaction: Transaction | None = None,
    ) -> Any:
        return self.run(Statement.scalar(text, params), transaction).scalar()

    def execute(
        self,
        text: str,
        params: Any = None,
        *,
        transaction: Transaction | None = None,
        idempotent: bool = False,
    ) -> int:
        """Run a command and return the affected-row count."""
        stmt = Statement.command(text, params, idempotent=idempotent)
        return self.run(stmt, transaction).affected_rows

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _run_standalone(self, statement: Statement) -> ResultSet:
        conn = self._pool.acquire()
        try:
            raw = conn.execute(statement.text, statement.params)
        finally:
            self._pool.release(conn)
        return to_result_set(raw, statement.shape)

    @staticmethod
    def _query_failed(e: ExecError, *, attempts: int) -> QueryFailed:
        return QueryFailed(
            f"query failed ({e.kind.value}): {e.message}",
            kind=e.kind,
            diagnostic=e.message,
            attempts=attempts,
            connection_id=e.connection_id,
            phase=e.phase,
        )
