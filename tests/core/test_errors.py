import pytest

from txpool.core.errors import (
    ConstraintViolation,
    ErrorKind,
    ExecError,
    FatalExecError,
    QueryFailed,
    ShutdownTimedOut,
    TransientExecError,
    TxPoolError,
    exec_error_for,
)


def test_str_includes_context() -> None:
    err = TxPoolError("boom", connection_id=7, phase="commit")
    assert str(err) == "boom [phase=commit connection=7]"
    assert str(TxPoolError("plain")) == "plain"


@pytest.mark.parametrize(
    "kind, cls",
    [
        (ErrorKind.TRANSIENT, TransientExecError),
        (ErrorKind.FATAL, FatalExecError),
        (ErrorKind.CONSTRAINT, ConstraintViolation),
    ],
)
def test_exec_error_for(kind: ErrorKind, cls: type[ExecError]) -> None:
    assert exec_error_for(kind) is cls
    assert cls("x").kind == kind
    assert cls("x").transient is (kind == ErrorKind.TRANSIENT)


def test_query_failed_to_dict() -> None:
    err = QueryFailed(
        "query failed",
        kind=ErrorKind.CONSTRAINT,
        diagnostic="UNIQUE constraint failed",
        attempts=2,
        connection_id=3,
        phase="execute",
    )
    assert err.to_dict() == {
        "error": "QueryFailed",
        "message": "query failed",
        "connection_id": 3,
        "phase": "execute",
        "kind": "constraint",
        "diagnostic": "UNIQUE constraint failed",
        "attempts": 2,
    }


def test_shutdown_timed_out_carries_outstanding() -> None:
    err = ShutdownTimedOut("drain timed out", outstanding=2, phase="shutdown")
    assert err.outstanding == 2
    assert err.phase == "shutdown"
