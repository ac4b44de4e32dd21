"""
Statement (what to run) and ResultSet (what came back).

Values are handed back exactly as the driver produced them (Decimal stays
Decimal, int stays int). SQL NULL becomes ABSENT so it cannot be mistaken
for "" or 0.
"""

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any

from txpool.core.pool import RawResult


class _Absent:
    """Marker for a NULL / missing column value. Falsy, singleton."""

    _instance: "_Absent | None" = None

    def __new__(cls) -> "_Absent":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ABSENT"

    def __bool__(self) -> bool:
        return False

    def __reduce__(self) -> tuple[Any, ...]:
        return (_Absent, ())

    def __copy__(self) -> "_Absent":
        return self

    def __deepcopy__(self, memo: dict[int, Any]) -> "_Absent":
        return self


ABSENT = _Absent()


class ResultShape(str, Enum):
    ROWS = "rows"
    SCALAR = "scalar"
    NONE = "none"


def _freeze_params(params: Any) -> Any:
    if params is None:
        return None
    if isinstance(params, Mapping):
        return dict(params)
    if isinstance(params, (list, tuple)):
        return tuple(params)
    raise TypeError(
        f"params must be a mapping or a sequence, got {type(params).__name__}"
    )


@dataclass(frozen=True)
class Statement:
    """
    Opaque statement text plus parameters, in the driver's paramstyle.

    ``idempotent`` tells QueryExecutor it may re-run the statement after a
    transient error (standalone only). Params are copied on construction so
    a Statement can be shared and re-issued.
    """

    text: str
    params: dict | tuple | None = None
    shape: ResultShape = ResultShape.ROWS
    idempotent: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.text, str) or not self.text.strip():
            raise ValueError("statement text must be a non-empty string")
        object.__setattr__(self, "params", _freeze_params(self.params))
        object.__setattr__(self, "shape", ResultShape(self.shape))

    @classmethod
    def rows(
        cls, text: str, params: Any = None, *, idempotent: bool = True
    ) -> "Statement":
        return cls(text, params, ResultShape.ROWS, idempotent)

    @classmethod
    def scalar(
        cls, text: str, params: Any = None, *, idempotent: bool = True
    ) -> "Statement":
        return cls(text, params, ResultShape.SCALAR, idempotent)

    @classmethod
    def command(
        cls, text: str, params: Any = None, *, idempotent: bool = False
    ) -> "Statement":
        return cls(text, params, ResultShape.NONE, idempotent)


@dataclass(frozen=True)
class ResultSet:
    columns: tuple[str, ...]
    rows: tuple[Mapping[str, Any], ...]
    row_count: int
    affected_rows: int

    def __iter__(self) -> Iterator[Mapping[str, Any]]:
        return iter(self.rows)

    def __len__(self) -> int:
        return len(self.rows)

    def first(self) -> Mapping[str, Any] | None:
        return self.rows[0] if self.rows else None

    def scalar(self) -> Any:
        """First column of the first row, or ABSENT when there is none."""
        if not self.rows or not self.columns:
            return ABSENT
        return self.rows[0][self.columns[0]]


def to_result_set(raw: RawResult, shape: ResultShape = ResultShape.ROWS) -> ResultSet:
    """
    Map a driver result into a ResultSet.

    affected_rows is the driver's rowcount (0 when it reports none). With
    shape NONE any returned rows are dropped.
    """
    affected = raw.rowcount if raw.rowcount is not None and raw.rowcount >= 0 else 0
    if shape == ResultShape.NONE or not raw.columns:
        return ResultSet(
            columns=tuple(raw.columns), rows=(), row_count=0, affected_rows=affected
        )
    rows = tuple(
        MappingProxyType(
            {
                name: ABSENT if value is None else value
                for name, value in zip(raw.columns, row, strict=True)
            }
        )
        for row in raw.rows
    )
    return ResultSet(
        columns=tuple(raw.columns),
        rows=rows,
        row_count=len(rows),
        affected_rows=affected,
    )
