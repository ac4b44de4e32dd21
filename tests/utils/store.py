"""In-memory store adapter for tests: scripted failures and per-connection transactions.

Statement language understood by FakeAdapter.execute:
  "SELECT 1"                 -> one row (1,)
  "INSERT <table>"           -> append params (a tuple) to <table>
  "SELECT <table>"           -> rows of <table>, columns ("name", "value")
  "COUNT <table>"            -> one row (count,)
Writes inside a transaction are only visible on that connection until commit.
"""

import threading
import time
from typing import Any

from txpool.core.errors import ErrorKind
from txpool.core.pool import ProductTypeEnum, RawResult, StoreAdapter


class FakeDriverError(Exception):
    def __init__(self, kind: ErrorKind, message: str = "simulated failure") -> None:
        self.kind = kind
        super().__init__(message)


class FakeRaw:
    def __init__(self, n: int) -> None:
        self.n = n
        self.closed = False
        self.broken = False
        self.pending: dict[str, list[tuple]] | None = None


class FakeAdapter(StoreAdapter):
    product_type = ProductTypeEnum.SQLITE

    def __init__(self, *, execute_delay: float = 0.0) -> None:
        self.tables: dict[str, list[tuple]] = {}
        self.opened: list[FakeRaw] = []
        self.calls: list[tuple[int, str]] = []
        self.fail_open = 0
        self.execute_delay = execute_delay
        self._failures: dict[str, list[tuple[ErrorKind, bool]]] = {}
        self._lock = threading.Lock()

    def fail_next(
        self,
        op: str,
        kind: ErrorKind,
        *,
        times: int = 1,
        break_connection: bool = False,
    ) -> None:
        """Make the next *times* calls of *op* (execute/begin/commit/rollback) raise."""
        with self._lock:
            self._failures.setdefault(op, []).extend(
                [(kind, break_connection)] * times
            )

    def _maybe_fail(self, op: str, raw: FakeRaw) -> None:
        with self._lock:
            queue = self._failures.get(op)
            if not queue:
                return
            kind, breaks = queue.pop(0)
        if breaks:
            raw.broken = True
        raise FakeDriverError(kind, f"simulated {kind.value} failure on {op}")

    def ops(self, op: str | None = None) -> list[tuple[int, str]]:
        if op is None:
            return list(self.calls)
        return [c for c in self.calls if c[1] == op]

    # --- StoreAdapter ---

    def open(self) -> Any:
        with self._lock:
            if self.fail_open > 0:
                self.fail_open -= 1
                raise ConnectionRefusedError("simulated connection refused")
            raw = FakeRaw(len(self.opened) + 1)
            self.opened.append(raw)
            return raw

    def close(self, raw: Any) -> None:
        raw.closed = True

    def execute(self, raw: Any, sql: str, params: Any = None) -> RawResult:
        if raw.closed:
            raise FakeDriverError(ErrorKind.FATAL, "connection is closed")
        self.calls.append((raw.n, sql))
        if self.execute_delay:
            time.sleep(self.execute_delay)
        self._maybe_fail("execute", raw)

        if sql == "SELECT 1":
            return RawResult(columns=("?column?",), rows=[(1,)], rowcount=1)
        verb, _, table = sql.partition(" ")
        with self._lock:
            if verb == "INSERT":
                target = raw.pending if raw.pending is not None else self.tables
                target.setdefault(table, []).append(tuple(params or ()))
                return RawResult(columns=(), rows=[], rowcount=1)
            visible = list(self.tables.get(table, []))
            if raw.pending is not None:
                visible.extend(raw.pending.get(table, []))
        if verb == "SELECT":
            return RawResult(
                columns=("name", "value"), rows=visible, rowcount=len(visible)
            )
        if verb == "COUNT":
            return RawResult(columns=("count",), rows=[(len(visible),)], rowcount=1)
        raise FakeDriverError(ErrorKind.FATAL, f"syntax error: {sql}")

    def begin(self, raw: Any) -> None:
        self.calls.append((raw.n, "BEGIN"))
        self._maybe_fail("begin", raw)
        raw.pending = {}

    def commit(self, raw: Any) -> None:
        self.calls.append((raw.n, "COMMIT"))
        self._maybe_fail("commit", raw)
        with self._lock:
            for table, rows in (raw.pending or {}).items():
                self.tables.setdefault(table, []).extend(rows)
        raw.pending = None

    def rollback(self, raw: Any) -> None:
        self.calls.append((raw.n, "ROLLBACK"))
        self._maybe_fail("rollback", raw)
        raw.pending = None

    def classify(self, exc: BaseException) -> ErrorKind:
        if isinstance(exc, FakeDriverError):
            return exc.kind
        return ErrorKind.FATAL

    def is_broken(self, raw: Any) -> bool:
        return raw.closed or raw.broken

    def describe(self) -> str:
        return "fake://memory"


class FakeClock:
    """Monotonic clock the test moves by hand."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds
