from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from .errors import ExplorerError, InvalidRequestError, error_response

if TYPE_CHECKING:
    import polars as pl


DEFAULT_LIMIT = 500


@dataclass(frozen=True)
class QueryRequest:
    sql: str | None = None
    limit: int = DEFAULT_LIMIT
    saved_query_id: str | None = None
    parameters: Mapping[str, Any] | None = None

    @property
    def is_saved(self) -> bool:
        return self.saved_query_id is not None

    def validate(self) -> None:
        if self.sql is not None and not isinstance(self.sql, str):
            raise InvalidRequestError("sql must be a string")
        has_sql = bool(self.sql and self.sql.strip())
        has_saved = bool(self.saved_query_id and str(self.saved_query_id).strip())
        if has_sql == has_saved:
            raise InvalidRequestError("provide exactly one of sql or saved_query_id")
        if isinstance(self.limit, bool) or not isinstance(self.limit, int) or self.limit < 1:
            raise InvalidRequestError(f"limit must be a positive integer, got {self.limit!r}")
        if self.parameters is not None and not isinstance(self.parameters, Mapping):
            raise InvalidRequestError("parameters must be an object")


@dataclass
class ExecutionHandle:
    run_id: str
    created_at: float
    query_id: str | None = None


class ExecutionStatus(str, Enum):
    CREATED = "created"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    ERROR = "error"
    CANCELED = "canceled"
    TIMED_OUT = "timed_out"

    @property
    def is_terminal(self) -> bool:
        return self not in (ExecutionStatus.CREATED, ExecutionStatus.RUNNING)

    @property
    def is_failure(self) -> bool:
        return self.is_terminal and self is not ExecutionStatus.SUCCESS

    @classmethod
    def from_remote(cls, value: Any) -> ExecutionStatus:
        """Classify a remote status string; unknown or absent means still running."""
        if not isinstance(value, str):
            return cls.RUNNING
        return _REMOTE_STATUS.get(value.strip().lower(), cls.RUNNING)


_REMOTE_STATUS = {
    "created": ExecutionStatus.CREATED,
    "success": ExecutionStatus.SUCCESS,
    "completed": ExecutionStatus.SUCCESS,
    "failed": ExecutionStatus.FAILED,
    "error": ExecutionStatus.ERROR,
    "canceled": ExecutionStatus.CANCELED,
    "cancelled": ExecutionStatus.CANCELED,
}


@dataclass(frozen=True)
class ResultSet:
    """Canonical tabular result: uppercase columns in first-seen order."""

    columns: tuple[str, ...] = ()
    rows: tuple[dict[str, Any], ...] = ()

    @classmethod
    def from_rows(cls, rows: Iterable[Mapping[str, Any]]) -> ResultSet:
        columns: dict[str, None] = {}
        upper_rows = []
        for row in rows:
            upper = {}
            for key, value in row.items():
                name = str(key).upper()
                columns.setdefault(name, None)
                upper[name] = value
            upper_rows.append(upper)
        names = tuple(columns)
        return cls(
            columns=names,
            rows=tuple({name: row.get(name) for name in names} for row in upper_rows),
        )

    def __len__(self) -> int:
        return len(self.rows)

    @property
    def rowcount(self) -> int:
        return len(self.rows)

    def to_dicts(self) -> list[dict[str, Any]]:
        return [dict(row) for row in self.rows]

    def to_polars(self) -> pl.DataFrame:
        import polars as pl

        return pl.DataFrame(
            {name: [row[name] for row in self.rows] for name in self.columns},
            strict=False,
        )


@dataclass(frozen=True)
class Rows:
    result: ResultSet
    strategy: str


@dataclass(frozen=True)
class NoData:
    strategy: str


@dataclass(frozen=True)
class Unparseable:
    content_types: tuple[str, ...] = ()


NormalizationOutcome = Rows | NoData | Unparseable


class PipelineState(str, Enum):
    SUBMITTING = "submitting"
    POLLING = "polling"
    FETCHING = "fetching"
    NORMALIZING = "normalizing"
    DONE = "done"
    FAILED = "failed"


@dataclass
class QueryOutcome:
    state: PipelineState
    result: ResultSet | None = None
    error: ExplorerError | None = None
    handle: ExecutionHandle | None = None
    strategy: str | None = None
    duration_ms: int = 0
    transitions: list[PipelineState] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.state is PipelineState.DONE

    @property
    def run_id(self) -> str | None:
        return self.handle.run_id if self.handle else None

    def to_payload(self) -> dict[str, Any]:
        if not self.ok:
            assert self.error is not None
            return error_response(self.error)
        result = self.result or ResultSet()
        return {
            "ok": True,
            "data": result.to_dicts(),
            "columns": list(result.columns),
            "rowcount": result.rowcount,
        }
