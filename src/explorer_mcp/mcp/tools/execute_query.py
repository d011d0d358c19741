from __future__ import annotations

from typing import Any, Literal

from ...config import Config
from ...core.errors import InvalidRequestError, error_response
from ...core.models import QueryOutcome, QueryRequest
from ...service_layer.query_service import QueryService
from .base import MCPTool


PREVIEW_ROWS = 10


class ExecuteQueryTool(MCPTool):
    """Run an Explorer query (SQL text or saved query id) and shape the result."""

    def __init__(self, config: Config, query_service: QueryService):
        self.config = config
        self.query_service = query_service

    @property
    def name(self) -> str:
        return "explorer_query"

    @property
    def description(self) -> str:
        return (
            "Execute SQL (or a saved query id) on the Explorer API, wait for the "
            "asynchronous run to finish and return uppercase-keyed rows."
        )

    def get_parameter_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "sql": {"type": "string"},
                "saved_query_id": {"type": "string"},
                "limit": {"type": "integer", "minimum": 1, "default": self.config.default_limit},
                "format": {"type": "string", "enum": ["preview", "raw", "metadata"], "default": "preview"},
                "via": {"type": "string", "enum": ["api", "agent"], "default": "api"},
            },
            "oneOf": [{"required": ["sql"]}, {"required": ["saved_query_id"]}],
            "additionalProperties": False,
        }

    def build_request(
        self,
        *,
        sql: str | None = None,
        saved_query_id: str | int | None = None,
        limit: int | None = None,
        parameters: dict[str, Any] | None = None,
    ) -> QueryRequest:
        if limit is not None and not isinstance(limit, int):
            try:
                limit = int(limit)
            except (TypeError, ValueError) as exc:
                raise InvalidRequestError(f"limit must be an integer, got {limit!r}") from exc
        return QueryRequest(
            sql=sql or None,
            limit=limit if limit is not None else self.config.default_limit,
            saved_query_id=str(saved_query_id) if saved_query_id not in (None, "") else None,
            parameters=parameters,
        )

    def run(self, request: QueryRequest, *, via: Literal["api", "agent"] = "api") -> QueryOutcome:
        if via == "agent":
            return self.query_service.execute_via_agent(request)
        return self.query_service.execute(request)

    def execute(
        self,
        *,
        sql: str | None = None,
        saved_query_id: str | int | None = None,
        limit: int | None = None,
        parameters: dict[str, Any] | None = None,
        format: Literal["preview", "raw", "metadata"] = "preview",
        via: Literal["api", "agent"] = "api",
    ) -> dict[str, Any]:
        context = {
            "tool": self.name,
            "sql": sql,
            "saved_query_id": saved_query_id,
            "limit": limit,
        }
        try:
            if format not in ("preview", "raw", "metadata"):
                raise InvalidRequestError(f"unsupported format: {format}")
            if via not in ("api", "agent"):
                raise InvalidRequestError(f"unsupported execution path: {via}")
            request = self.build_request(
                sql=sql, saved_query_id=saved_query_id, limit=limit, parameters=parameters
            )
            outcome = self.run(request, via=via)
        except InvalidRequestError as exc:
            return error_response(exc, context=context)

        if not outcome.ok:
            assert outcome.error is not None
            return error_response(outcome.error, context=context)
        return self._shape(outcome, format)

    def _shape(self, outcome: QueryOutcome, format: str) -> dict[str, Any]:
        assert outcome.result is not None
        result = outcome.result
        base: dict[str, Any] = {
            "ok": True,
            "type": format,
            "rowcount": result.rowcount,
            "columns": list(result.columns),
            "run_id": outcome.run_id,
            "duration_ms": outcome.duration_ms,
        }
        if format == "raw":
            base["data"] = result.to_dicts()
        elif format == "preview":
            base["data_preview"] = [dict(row) for row in result.rows[:PREVIEW_ROWS]]
            df = result.to_polars()
            base["dtypes"] = {name: str(dtype) for name, dtype in zip(df.columns, df.dtypes)}
        else:
            base["metadata"] = {
                "state": outcome.state.value,
                "strategy": outcome.strategy,
                "query_id": outcome.handle.query_id if outcome.handle else None,
            }
        return base
