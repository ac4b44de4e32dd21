"""
Transactions bound to a single pooled Connection.

    ACTIVE -> COMMITTED | ROLLED_BACK | FAILED
    FAILED -> ROLLED_BACK

The Connection acquired by begin() is released back to the Pool exactly
once, whichever terminal path the transaction takes. Transactional
statements are never retried here; the caller retries the whole transaction.
"""

import itertools
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from enum import Enum

from txpool.core.errors import (
    CommitFailed,
    ExecError,
    RollbackFailed,
    TransactionClosed,
    TransactionFailed,
    TransactionStartFailed,
)
from txpool.core.pool import Connection, Pool

from .statement import ResultSet, Statement, to_result_set

_log = logging.getLogger(__name__)

_tx_ids = itertools.count(1)


class TransactionState(str, Enum):
    ACTIVE = "active"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"
    FAILED = "failed"


class Transaction:
    """Handle returned by TransactionManager.begin(); owns its Connection until it ends."""

    __slots__ = ("id", "connection", "state", "_released")

    def __init__(self, connection: Connection) -> None:
        self.id = next(_tx_ids)
        self.connection = connection
        self.state = TransactionState.ACTIVE
        self._released = False

    def __repr__(self) -> str:
        return (
            f"<Transaction id={self.id} state={self.state.value} "
            f"connection={self.connection.id}>"
        )

    @property
    def is_active(self) -> bool:
        return self.state == TransactionState.ACTIVE

    @property
    def is_terminal(self) -> bool:
        return self.state in (TransactionState.COMMITTED, TransactionState.ROLLED_BACK)


class TransactionManager:
    """begin / execute / commit / rollback over connections from one Pool."""

    def __init__(self, pool: Pool) -> None:
        self._pool = pool

    @property
    def pool(self) -> Pool:
        return self._pool

    def begin(self, timeout: float | None = None) -> Transaction:
        """
        Acquire a connection and start a transaction on it.
        PoolExhausted / PoolClosed / ConnectError propagate unchanged.
        """
        conn = self._pool.acquire(timeout)
        try:
            conn.begin()
        except BaseException as e:
            self._pool.release(conn)
            if isinstance(e, ExecError):
                raise TransactionStartFailed(
                    f"could not start transaction: {e.message}",
                    connection_id=conn.id,
                    phase="begin",
                ) from e
            raise
        tx = Transaction(conn)
        _log.debug("transaction=%s begun on connection=%s", tx.id, conn.id)
        return tx

    def execute(self, tx: Transaction, statement: Statement) -> ResultSet:
        """
        Run a statement on the transaction's connection. Any store error moves
        the transaction to FAILED (a fatal one also marks the connection
        BROKEN) and is re-raised.
        """
        self._require_active(tx, "execute")
        try:
            raw = tx.connection.execute(statement.text, statement.params)
        except ExecError as e:
            tx.state = TransactionState.FAILED
            _log.warning("transaction=%s failed (%s): %s", tx.id, e.kind.value, e)
            raise
        return to_result_set(raw, statement.shape)

    def commit(self, tx: Transaction) -> None:
        """
        Commit and release. On failure the transaction becomes FAILED, a
        best-effort rollback runs, the connection is released (closed if the
        rollback failed too) and CommitFailed is raised.
        """
        self._require_active(tx, "commit")
        conn = tx.connection
        try:
            conn.commit()
        except ExecError as e:
            tx.state = TransactionState.FAILED
            _log.warning(
                "transaction=%s commit failed: %s; attempting rollback", tx.id, e
            )
            try:
                conn.rollback()
            except ExecError as rb_err:
                conn.mark_broken()
                _log.error(
                    "transaction=%s rollback after failed commit failed: %s",
                    tx.id,
                    rb_err,
                )
            else:
                conn.mark_healthy()
            finally:
                self._release(tx)
            raise CommitFailed(
                f"commit failed: {e.message}", connection_id=conn.id, phase="commit"
            ) from e
        except BaseException:
            tx.state = TransactionState.FAILED
            conn.mark_broken()
            self._release(tx)
            raise
        tx.state = TransactionState.COMMITTED
        self._release(tx)
        _log.debug("transaction=%s committed", tx.id)

    def rollback(self, tx: Transaction) -> None:
        """
        Roll back an ACTIVE or FAILED transaction and release its connection.
        A failed rollback marks the connection BROKEN (it is closed on release)
        and raises RollbackFailed; the transaction still ends ROLLED_BACK.
        """
        if tx.is_terminal:
            raise TransactionClosed(
                f"transaction {tx.id} is already {tx.state.value}",
                connection_id=tx.connection.id,
                phase="rollback",
            )
        if tx._released:
            # commit failed; its best-effort rollback already ran and released
            tx.state = TransactionState.ROLLED_BACK
            return

        conn = tx.connection
        try:
            conn.rollback()
        except ExecError as e:
            conn.mark_broken()
            tx.state = TransactionState.ROLLED_BACK
            _log.error("transaction=%s rollback failed: %s", tx.id, e)
            raise RollbackFailed(
                f"rollback failed: {e.message}", connection_id=conn.id, phase="rollback"
            ) from e
        except BaseException:
            conn.mark_broken()
            tx.state = TransactionState.ROLLED_BACK
            raise
        else:
            conn.mark_healthy()
            tx.state = TransactionState.ROLLED_BACK
            _log.info("transaction=%s rolled back", tx.id)
        finally:
            self._release(tx)

    @contextmanager
    def transaction(self, timeout: float | None = None) -> Iterator[Transaction]:
        """
        with manager.transaction() as tx: ...

        Commits on normal exit and rolls back when the block raises (the
        block's exception propagates). A block that swallowed a store error
        leaves the transaction FAILED; it is rolled back and TransactionFailed
        is raised.
        """
        tx = self.begin(timeout)
        try:
            yield tx
        except BaseException:
            if not tx.is_terminal:
                try:
                    self.rollback(tx)
                except RollbackFailed:
                    _log.error(
                        "transaction=%s rollback after error failed", tx.id, exc_info=True
                    )
            raise
        if tx.state == TransactionState.ACTIVE:
            self.commit(tx)
        elif tx.state == TransactionState.FAILED:
            self.rollback(tx)
            raise TransactionFailed(
                f"transaction {tx.id} failed and was rolled back",
                connection_id=tx.connection.id,
                phase="commit",
            )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require_active(self, tx: Transaction, op: str) -> None:
        if tx.is_terminal:
            raise TransactionClosed(
                f"transaction {tx.id} is already {tx.state.value}; cannot {op}",
                connection_id=tx.connection.id,
                phase=op,
            )
        if tx.state == TransactionState.FAILED:
            raise TransactionFailed(
                f"transaction {tx.id} has failed; roll it back",
                connection_id=tx.connection.id,
                phase=op,
            )

    def _release(self, tx: Transaction) -> None:
        if tx._released:
            return
        tx._released = True
        self._pool.release(tx.connection)
