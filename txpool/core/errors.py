"""
Error taxonomy for pool, transaction and query execution.

Every error carries the context needed for diagnosis: which connection (if
any) and which phase (connect, acquire, execute, begin, commit, rollback,
release, shutdown). Driver exceptions are chained via ``raise ... from``.
"""

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Store adapter classification of an execution error."""

    TRANSIENT = "transient"
    FATAL = "fatal"
    CONSTRAINT = "constraint"


class TxPoolError(Exception):
    """Base class for every error raised by txpool."""

    def __init__(
        self,
        message: str,
        *,
        connection_id: int | None = None,
        phase: str | None = None,
    ) -> None:
        self.message = message
        self.connection_id = connection_id
        self.phase = phase
        super().__init__(message)

    def __str__(self) -> str:
        ctx = []
        if self.phase:
            ctx.append(f"phase={self.phase}")
        if self.connection_id is not None:
            ctx.append(f"connection={self.connection_id}")
        if not ctx:
            return self.message
        return f"{self.message} [{' '.join(ctx)}]"

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": type(self).__name__,
            "message": self.message,
            "connection_id": self.connection_id,
            "phase": self.phase,
        }


class ConnectError(TxPoolError):
    """A connection to the store could not be established."""


# --- capacity / lifecycle ---


class PoolError(TxPoolError):
    pass


class PoolExhausted(PoolError):
    """No connection became available within the acquire timeout."""


class PoolClosed(PoolError):
    """The pool has been shut down."""


class ShutdownTimedOut(PoolError):
    """Drain period elapsed with connections still checked out; they were force-closed."""

    def __init__(self, message: str, *, outstanding: int, **kwargs: Any) -> None:
        self.outstanding = outstanding
        super().__init__(message, **kwargs)


# --- statement execution ---


class ExecError(TxPoolError):
    """The store rejected an operation; ``kind`` says whether retrying may help."""

    kind = ErrorKind.FATAL

    @property
    def transient(self) -> bool:
        return self.kind == ErrorKind.TRANSIENT


class TransientExecError(ExecError):
    kind = ErrorKind.TRANSIENT


class FatalExecError(ExecError):
    kind = ErrorKind.FATAL


class ConstraintViolation(ExecError):
    kind = ErrorKind.CONSTRAINT


_EXEC_ERRORS: dict[ErrorKind, type[ExecError]] = {
    ErrorKind.TRANSIENT: TransientExecError,
    ErrorKind.FATAL: FatalExecError,
    ErrorKind.CONSTRAINT: ConstraintViolation,
}


def exec_error_for(kind: ErrorKind) -> type[ExecError]:
    """Return the ExecError subclass for an adapter classification."""
    return _EXEC_ERRORS[kind]


class QueryFailed(TxPoolError):
    """A statement run through QueryExecutor failed; ``diagnostic`` is the store's message."""

    def __init__(
        self,
        message: str,
        *,
        kind: ErrorKind,
        diagnostic: str,
        attempts: int = 1,
        **kwargs: Any,
    ) -> None:
        self.kind = kind
        self.diagnostic = diagnostic
        self.attempts = attempts
        super().__init__(message, **kwargs)

    def to_dict(self) -> dict[str, Any]:
        out = super().to_dict()
        out.update(
            kind=self.kind.value, diagnostic=self.diagnostic, attempts=self.attempts
        )
        return out


# --- transactions ---


class TransactionError(TxPoolError):
    pass


class TransactionStartFailed(TransactionError):
    pass


class TransactionFailed(TransactionError):
    """The transaction hit a store error earlier; only rollback is allowed now."""


class CommitFailed(TransactionError):
    pass


class RollbackFailed(TransactionError):
    pass


# --- caller misuse ---


class UsageError(TxPoolError):
    """Programming error on the caller side, not a store failure."""


class InvalidRelease(UsageError):
    pass


class TransactionClosed(UsageError):
    pass
