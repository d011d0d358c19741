from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

from ..core.errors import InvalidRequestError, error_response, http_status_for
from .tools.execute_query import ExecuteQueryTool

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


def _parse_body(body: Any) -> Mapping[str, Any]:
    if isinstance(body, (bytes, bytearray)):
        body = body.decode("utf-8", errors="replace")
    if isinstance(body, str):
        if not body.strip():
            return {}
        try:
            body = json.loads(body)
        except ValueError as exc:
            raise InvalidRequestError("request body is not valid JSON") from exc
    if body is None:
        return {}
    if not isinstance(body, Mapping):
        raise InvalidRequestError("request body must be a JSON object")
    return body


def handle_query_http(method: str, body: Any, tool: ExecuteQueryTool) -> tuple[int, dict[str, Any]]:
    """Map one HTTP call onto the query pipeline: returns (status, payload)."""
    method = method.upper()
    if method == "OPTIONS":
        return 200, {}
    if method != "POST":
        return 405, {"ok": False, "error": "Method not allowed", "code": "method_not_allowed"}

    try:
        payload = _parse_body(body)
        request = tool.build_request(
            sql=payload.get("sql"),
            saved_query_id=payload.get("saved_query_id", payload.get("query_id")),
            limit=payload.get("limit"),
            parameters=payload.get("parameters"),
        )
        via = payload.get("via", "api")
        if via not in ("api", "agent"):
            raise InvalidRequestError(f"unsupported execution path: {via}")
        outcome = tool.run(request, via=via)
    except InvalidRequestError as exc:
        return exc.http_status, error_response(exc)

    if outcome.ok:
        return 200, outcome.to_payload()
    assert outcome.error is not None
    return http_status_for(outcome.error), outcome.to_payload()
