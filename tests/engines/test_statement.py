"""Unit tests for engines.statement: Statement, ResultSet, to_result_set, ABSENT."""

import copy
import pickle
from decimal import Decimal

import pytest

from txpool.core.pool import RawResult
from txpool.engines import ABSENT, ResultShape, Statement, to_result_set


def test_statement_rejects_empty_text() -> None:
    with pytest.raises(ValueError):
        Statement("   ")


def test_statement_copies_params() -> None:
    params = {"id": 1}
    stmt = Statement("SELECT * FROM users WHERE id = %(id)s", params)
    params["id"] = 2
    assert stmt.params == {"id": 1}

    seq = [1, 2]
    assert Statement("x", seq).params == (1, 2)


def test_statement_rejects_scalar_params() -> None:
    with pytest.raises(TypeError, match="mapping or a sequence"):
        Statement("x", 42)


def test_statement_constructors() -> None:
    assert Statement.rows("x").shape == ResultShape.ROWS
    assert Statement.rows("x").idempotent is True
    assert Statement.scalar("x").shape == ResultShape.SCALAR
    assert Statement.command("x").shape == ResultShape.NONE
    assert Statement.command("x").idempotent is False
    assert Statement("x", shape="scalar").shape == ResultShape.SCALAR


def test_to_result_set_maps_rows_and_keeps_types() -> None:
    raw = RawResult(
        columns=("id", "total", "note"),
        rows=[(1, Decimal("9.90"), None), (2, Decimal("0.10"), "gift")],
        rowcount=2,
    )
    rs = to_result_set(raw)

    assert rs.columns == ("id", "total", "note")
    assert rs.row_count == 2
    assert len(rs) == 2
    first = rs.first()
    assert first["total"] == Decimal("9.90")
    assert isinstance(first["total"], Decimal)
    assert first["note"] is ABSENT
    assert [r["id"] for r in rs] == [1, 2]


def test_result_rows_are_read_only() -> None:
    rs = to_result_set(RawResult(columns=("id",), rows=[(1,)], rowcount=1))
    with pytest.raises(TypeError):
        rs.rows[0]["id"] = 2  # type: ignore[index]


def test_duplicate_column_names_last_wins() -> None:
    rs = to_result_set(RawResult(columns=("id", "id"), rows=[(1, 2)], rowcount=1))
    assert dict(rs.first()) == {"id": 2}


def test_command_shape_drops_rows_and_reports_affected() -> None:
    raw = RawResult(columns=("id",), rows=[(1,)], rowcount=3)
    rs = to_result_set(raw, ResultShape.NONE)
    assert rs.rows == ()
    assert rs.row_count == 0
    assert rs.affected_rows == 3


def test_unknown_rowcount_is_zero() -> None:
    rs = to_result_set(RawResult(columns=(), rows=[], rowcount=-1))
    assert rs.affected_rows == 0
    assert rs.first() is None
    assert rs.scalar() is ABSENT


def test_scalar() -> None:
    rs = to_result_set(
        RawResult(columns=("count",), rows=[(5,)], rowcount=1), ResultShape.SCALAR
    )
    assert rs.scalar() == 5


def test_absent_is_falsy_singleton() -> None:
    assert not ABSENT
    assert repr(ABSENT) == "ABSENT"
    assert copy.copy(ABSENT) is ABSENT
    assert copy.deepcopy(ABSENT) is ABSENT
    assert pickle.loads(pickle.dumps(ABSENT)) is ABSENT
    assert ABSENT != 0
    assert ABSENT != ""
