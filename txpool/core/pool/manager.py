"""
Bounded connection pool.

acquire() hands out an exclusively-owned Connection: an idle one if there is
one, a newly opened one while size < max_size, otherwise it waits for a
release until the acquire timeout. The lock is never held while waiting or
while talking to the store.

Idle connections past idle_ttl or max_lifetime are evicted lazily at
checkout; connections idle longer than ping_idle_threshold get a health
check first.
"""

import logging
import threading
import time
from collections import deque
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any

from txpool.core.config import PoolConfig
from txpool.core.errors import (
    ConnectError,
    InvalidRelease,
    PoolClosed,
    PoolExhausted,
    ShutdownTimedOut,
)

from .connect import StoreAdapter
from .connection import Connection, ConnectionState
from .health import health_check

_log = logging.getLogger(__name__)


class Pool:
    """Bounded, thread-safe pool of Connections for one store."""

    def __init__(
        self,
        adapter: StoreAdapter,
        config: PoolConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._adapter = adapter
        self._config = config or PoolConfig.from_settings()
        self._clock = clock
        self._sleep = sleep
        self._cond = threading.Condition(threading.Lock())
        self._idle: deque[Connection] = deque()
        self._checked_out: dict[int, Connection] = {}
        self._size = 0  # idle + checked out + being opened
        self._waiting = 0
        self._started = False
        self._closed = False

    @property
    def config(self) -> PoolConfig:
        return self._config

    @property
    def adapter(self) -> StoreAdapter:
        return self._adapter

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self) -> "Pool":
        return self.start()

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if exc_type is None:
            self.shutdown()
            return
        # keep the block's exception; a drain timeout here is only logged
        try:
            self.shutdown()
        except ShutdownTimedOut as e:
            _log.warning("shutdown while handling %s: %s", exc_type.__name__, e)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> "Pool":
        """Open min_idle connections up front. Calling it again is a no-op."""
        with self._cond:
            if self._closed:
                raise PoolClosed("pool is shut down", phase="start")
            if self._started:
                return self
            self._started = True
            need = max(self._config.min_idle - self._size, 0)
            self._size += need

        opened = 0
        try:
            for _ in range(need):
                conn = self._open()
                with self._cond:
                    opened += 1
                    if self._closed:
                        self._size -= 1
                        late = conn
                    else:
                        conn.checkin(self._clock())
                        self._idle.append(conn)
                        self._cond.notify()
                        late = None
                if late is not None:
                    late.close()
        except BaseException:
            with self._cond:
                self._size -= need - opened
                # a later start() tops up to min_idle again
                self._started = False
                self._cond.notify_all()
            raise
        _log.info(
            "pool started for %s (min_idle=%d, max_size=%d)",
            self._adapter.describe(),
            self._config.min_idle,
            self._config.max_size,
        )
        return self

    def shutdown(self, drain_timeout: float | None = None) -> None:
        """
        Stop handing out connections, wait up to drain_timeout for checked-out
        ones to come back, then close everything. Raises ShutdownTimedOut
        (after force-closing) if some never came back.
        """
        wait = self._config.drain_timeout if drain_timeout is None else drain_timeout
        with self._cond:
            first = not self._closed
            self._closed = True
            self._cond.notify_all()
            deadline = self._clock() + wait
            while self._outstanding():
                remaining = deadline - self._clock()
                if remaining <= 0:
                    break
                self._cond.wait(remaining)
            idle = list(self._idle)
            self._idle.clear()
            self._size -= len(idle)
            # force-closed connections stay registered so their holder may still release them
            leftover = self._outstanding()

        for conn in idle:
            conn.close()
        if first:
            _log.info(
                "pool for %s shut down (closed %d idle)",
                self._adapter.describe(),
                len(idle),
            )
        if leftover:
            for conn in leftover:
                conn.close()
            _log.error(
                "pool shutdown drain timed out after %.3fs; force-closed %d connection(s)",
                wait,
                len(leftover),
            )
            raise ShutdownTimedOut(
                f"{len(leftover)} connection(s) still checked out after {wait:.3f}s",
                outstanding=len(leftover),
                phase="shutdown",
            )

    # ------------------------------------------------------------------
    # Checkout / checkin
    # ------------------------------------------------------------------

    def acquire(self, timeout: float | None = None) -> Connection:
        """
        Return an exclusively-owned Connection.

        Raises PoolExhausted when none becomes available within timeout
        (default: config.acquire_timeout), PoolClosed after shutdown, and
        ConnectError when a new connection cannot be opened.
        """
        wait = self._config.acquire_timeout if timeout is None else timeout
        deadline = self._clock() + wait
        while True:
            stale: list[Connection] = []
            try:
                conn = self._checkout_or_reserve(deadline, wait, stale)
            finally:
                for s in stale:
                    _log.debug("evicting expired connection=%s", s.id)
                    s.close()

            if conn is None:
                return self._open_reserved()

            if self._needs_ping(conn) and not health_check(conn):
                _log.warning("connection=%s failed health check, discarding", conn.id)
                self._discard(conn)
                continue
            _log.debug("checked out connection=%s", conn.id)
            return conn

    def release(self, conn: Connection) -> None:
        """
        Return a connection. Healthy ones go back to the idle set; BROKEN ones
        are closed and free their slot. The released handle is retired, so
        releasing it again (even once the connection is checked out by someone
        else) or releasing a connection this pool did not hand out raises
        InvalidRelease.
        """
        discard = False
        with self._cond:
            if self._checked_out.get(conn.id) is not conn:
                raise InvalidRelease(
                    "connection is not checked out from this pool",
                    connection_id=conn.id,
                    phase="release",
                )
            del self._checked_out[conn.id]
            if conn.state == ConnectionState.CLOSED:
                self._size -= 1
            elif conn.state == ConnectionState.BROKEN or self._closed:
                self._size -= 1
                discard = True
            else:
                self._idle.append(conn.retire(self._clock()))
            self._wake()

        if discard:
            if conn.state == ConnectionState.BROKEN:
                _log.warning("connection=%s released broken, closing", conn.id)
            conn.close()
        else:
            _log.debug("checked in connection=%s", conn.id)

    @contextmanager
    def connection(self, timeout: float | None = None) -> Iterator[Connection]:
        """Acquire for the duration of a with-block; always released."""
        conn = self.acquire(timeout)
        try:
            yield conn
        finally:
            self.release(conn)

    def stats(self) -> dict[str, Any]:
        """Return pool statistics for monitoring."""
        with self._cond:
            return {
                "max_size": self._config.max_size,
                "size": self._size,
                "idle": len(self._idle),
                "in_use": len(self._checked_out),
                "waiting": self._waiting,
                "closed": self._closed,
            }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _checkout_or_reserve(
        self, deadline: float, wait: float, stale: list[Connection]
    ) -> Connection | None:
        """Pop an idle connection, or reserve a slot (returns None), or wait."""
        with self._cond:
            while True:
                if self._closed:
                    raise PoolClosed("pool is shut down", phase="acquire")
                now = self._clock()
                while self._idle:
                    conn = self._idle.pop()
                    if self._is_expired(conn, now):
                        self._size -= 1
                        stale.append(conn)
                        continue
                    conn.checkout()
                    self._checked_out[conn.id] = conn
                    return conn
                if self._size < self._config.max_size:
                    self._size += 1
                    return None
                remaining = deadline - now
                if remaining <= 0:
                    # hand on a wakeup this waiter may have consumed
                    self._cond.notify()
                    raise PoolExhausted(
                        f"no connection available within {wait:.3f}s "
                        f"(max_size={self._config.max_size})",
                        phase="acquire",
                    )
                self._waiting += 1
                try:
                    self._cond.wait(remaining)
                finally:
                    self._waiting -= 1

    def _open_reserved(self) -> Connection:
        try:
            conn = self._open()
        except BaseException:
            with self._cond:
                self._size -= 1
                self._wake()
            raise
        with self._cond:
            closed = self._closed
            if closed:
                self._size -= 1
                self._wake()
            else:
                conn.checkout()
                self._checked_out[conn.id] = conn
        if closed:
            conn.close()
            raise PoolClosed("pool is shut down", phase="acquire")
        _log.debug("checked out new connection=%s", conn.id)
        return conn

    def _open(self) -> Connection:
        attempts = self._config.connect_retries + 1
        target = self._adapter.describe()
        for attempt in range(1, attempts + 1):
            try:
                raw = self._adapter.open()
            except Exception as e:
                if attempt >= attempts:
                    _log.error(
                        "open %s failed after %d attempt(s): %s", target, attempt, e
                    )
                    raise ConnectError(
                        f"cannot connect to {target}: {e}", phase="connect"
                    ) from e
                delay = self._config.connect_backoff * attempt
                _log.warning(
                    "open %s failed (attempt %d/%d): %s; retrying in %.2fs",
                    target,
                    attempt,
                    attempts,
                    e,
                    delay,
                )
                self._sleep(delay)
            else:
                conn = Connection(raw, self._adapter, now=self._clock())
                _log.debug("opened connection=%s to %s", conn.id, target)
                return conn
        raise AssertionError("unreachable")

    def _discard(self, conn: Connection) -> None:
        with self._cond:
            if self._checked_out.pop(conn.id, None) is conn:
                self._size -= 1
                self._wake()
        conn.close()

    def _is_expired(self, conn: Connection, now: float) -> bool:
        ttl = self._config.idle_ttl
        if ttl is not None and conn.idle_for(now) > ttl:
            return True
        lifetime = self._config.max_lifetime
        return lifetime is not None and conn.age(now) > lifetime

    def _needs_ping(self, conn: Connection) -> bool:
        threshold = self._config.ping_idle_threshold
        return threshold is not None and conn.idle_for(self._clock()) > threshold

    def _outstanding(self) -> list[Connection]:
        return [
            c for c in self._checked_out.values() if c.state != ConnectionState.CLOSED
        ]

    def _wake(self) -> None:
        # shutdown() drains on the same condition, so wake everyone once closed
        if self._closed:
            self._cond.notify_all()
        else:
            self._cond.notify()
