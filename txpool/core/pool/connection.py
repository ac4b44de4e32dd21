"""
Connection: one checkout's handle on a pooled driver connection.

Exclusive checkout is what keeps a Connection serial; there is no lock in
here. Each checkout gets its own handle (same id, same raw connection); the
handle is retired on checkin so a stale reference can neither run statements
nor be released a second time.

Driver exceptions are converted to typed ExecError subclasses and the
connection is marked BROKEN when the store says it can no longer be trusted.
"""

import itertools
import logging
import time
from enum import Enum
from typing import Any

from txpool.core.errors import ErrorKind, UsageError, exec_error_for

from .connect import RawResult, StoreAdapter

_log = logging.getLogger(__name__)

_ids = itertools.count(1)


class ConnectionState(str, Enum):
    IDLE = "idle"
    IN_USE = "in_use"
    CLOSED = "closed"
    BROKEN = "broken"


class Connection:
    """Wraps a raw driver connection with identity, lifecycle state and timestamps."""

    __slots__ = ("id", "raw", "state", "created_at", "last_used", "_adapter", "_retired")

    def __init__(
        self, raw: Any, adapter: StoreAdapter, *, now: float | None = None
    ) -> None:
        ts = time.monotonic() if now is None else now
        self.id = next(_ids)
        self.raw = raw
        self.state = ConnectionState.IDLE
        self.created_at = ts
        self.last_used = ts
        self._adapter = adapter
        self._retired = False

    def __repr__(self) -> str:
        return f"<Connection id={self.id} state={self.state.value}>"

    @property
    def is_usable(self) -> bool:
        return not self._retired and self.state in (
            ConnectionState.IDLE,
            ConnectionState.IN_USE,
        )

    @property
    def retired(self) -> bool:
        """True once this handle has been checked in; a new checkout gets a new handle."""
        return self._retired

    def age(self, now: float) -> float:
        return now - self.created_at

    def idle_for(self, now: float) -> float:
        return now - self.last_used

    # ------------------------------------------------------------------
    # Store operations
    # ------------------------------------------------------------------

    def execute(
        self, sql: str, params: dict | list | tuple | None = None
    ) -> RawResult:
        _log.debug("connection=%s execute: %s", self.id, sql)
        return self._call("execute", self._adapter.execute, self.raw, sql, params)

    def begin(self) -> None:
        self._call("begin", self._adapter.begin, self.raw)

    def commit(self) -> None:
        self._call("commit", self._adapter.commit, self.raw)

    def rollback(self) -> None:
        self._call("rollback", self._adapter.rollback, self.raw)

    def _call(self, phase: str, fn: Any, *args: Any) -> Any:
        if self._retired:
            raise UsageError(
                "connection handle was already released to the pool",
                connection_id=self.id,
                phase=phase,
            )
        try:
            return fn(*args)
        except Exception as e:
            kind = self._adapter.classify(e)
            if kind == ErrorKind.FATAL or self._adapter.is_broken(self.raw):
                self.mark_broken()
            raise exec_error_for(kind)(
                str(e) or type(e).__name__, connection_id=self.id, phase=phase
            ) from e

    # ------------------------------------------------------------------
    # State transitions (driven by Pool and TransactionManager)
    # ------------------------------------------------------------------

    def mark_broken(self) -> None:
        if self.state != ConnectionState.CLOSED:
            self.state = ConnectionState.BROKEN

    def mark_healthy(self) -> None:
        if self.state == ConnectionState.BROKEN and not self._adapter.is_broken(
            self.raw
        ):
            self.state = ConnectionState.IN_USE

    def checkout(self) -> None:
        self.state = ConnectionState.IN_USE

    def checkin(self, now: float) -> None:
        self.state = ConnectionState.IDLE
        self.last_used = now

    def retire(self, now: float) -> "Connection":
        """
        End this checkout. This handle goes IDLE and dead; the returned
        handle (same id and raw connection) is what the pool keeps idle.
        """
        self.checkin(now)
        self._retired = True
        nxt = Connection(self.raw, self._adapter, now=self.created_at)
        nxt.id = self.id
        nxt.last_used = now
        return nxt

    def close(self) -> None:
        """Close the raw connection. A failing close is logged; the connection counts as closed."""
        if self.state == ConnectionState.CLOSED or self._retired:
            return
        self.state = ConnectionState.CLOSED
        try:
            self._adapter.close(self.raw)
        except Exception as e:
            _log.warning("connection=%s close failed: %s", self.id, e)
