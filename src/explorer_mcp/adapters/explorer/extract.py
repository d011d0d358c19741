from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Mapping
from typing import Any

from ...core.errors import (
    ExecutionFailedError,
    FetchError,
    ProtocolError,
    QueryCanceledError,
    SubmissionError,
    TimedOutError,
    TransportError,
    truncate,
)
from ...core.models import ExecutionHandle, ExecutionStatus, QueryRequest
from . import urls as _urls
from .transport import ServiceTransport

logger = logging.getLogger(__name__)

Clock = Callable[[], float]
Sleep = Callable[[float], None]


def _wall_clock_ms() -> int:
    return int(time.time() * 1000)


def _require_field(payload: Any, field: str, raw_text: str) -> str:
    value = payload.get(field) if isinstance(payload, Mapping) else None
    if value is None or value == "":
        raise ProtocolError(field, detail=raw_text)
    return str(value)


def create_query(
    transport: ServiceTransport,
    sql: str,
    *,
    limit: int,
    title_prefix: str = "st",
    now_ms: Callable[[], int] = _wall_clock_ms,
) -> str:
    title = f"{title_prefix}-{now_ms()}"
    body = {"title": title, "config": {"sql": sql, "limit": limit}}
    response = transport.call("POST", _urls.get_queries_path(), json=body)
    if not response.ok:
        raise SubmissionError("create", response.status_code, detail=response.text)
    query_id = _require_field(response.json(), "query_id", response.text)
    logger.debug("created query %s (%s)", query_id, title)
    return query_id


def run_query_async(
    transport: ServiceTransport,
    query_id: str,
    *,
    parameters: Mapping[str, Any] | None = None,
) -> str:
    body = {"parameters": dict(parameters or {})}
    response = transport.call("POST", _urls.get_run_async_path(query_id), json=body)
    if not response.ok:
        raise SubmissionError("run", response.status_code, detail=response.text)
    return _require_field(response.json(), "run_id", response.text)


def submit_query(
    transport: ServiceTransport,
    request: QueryRequest,
    *,
    title_prefix: str = "st",
    clock: Clock = time.monotonic,
    now_ms: Callable[[], int] = _wall_clock_ms,
) -> ExecutionHandle:
    """Create (unless saved) and trigger an asynchronous run.

    The handle's ``created_at`` is taken from ``clock`` before any network
    call so that the poll deadline covers submission latency too.
    """
    created_at = clock()
    if request.saved_query_id is not None:
        query_id = str(request.saved_query_id)
    else:
        assert request.sql is not None
        query_id = create_query(
            transport, request.sql, limit=request.limit, title_prefix=title_prefix, now_ms=now_ms
        )
    run_id = run_query_async(transport, query_id, parameters=request.parameters)
    logger.info("submitted run %s for query %s", run_id, query_id)
    return ExecutionHandle(run_id=run_id, created_at=created_at, query_id=query_id)


def _status_detail(payload: Mapping[str, Any], raw_text: str) -> str:
    error = payload.get("error")
    if error:
        return truncate(error)
    return truncate(raw_text)


def poll_execution(
    transport: ServiceTransport,
    handle: ExecutionHandle,
    *,
    deadline_seconds: float,
    interval_seconds: float,
    clock: Clock = time.monotonic,
    sleep: Sleep = time.sleep,
    cancel_event: threading.Event | None = None,
) -> ExecutionStatus:
    """Poll until the run reaches a terminal status or the deadline passes."""
    path = _urls.get_run_status_path(handle.run_id)
    last_status: str | None = None
    polls = 0

    while True:
        remaining = deadline_seconds - (clock() - handle.created_at)
        if remaining <= 0:
            break
        sleep(min(interval_seconds, remaining))
        if cancel_event is not None and cancel_event.is_set():
            raise QueryCanceledError(handle.run_id)
        remaining = deadline_seconds - (clock() - handle.created_at)
        if remaining <= 0:
            break

        polls += 1
        try:
            response = transport.call(
                "GET", path, timeout=min(transport.request_timeout, remaining)
            )
        except TransportError as exc:
            logger.warning("status check %d for run %s failed: %s", polls, handle.run_id, exc)
            continue
        if not response.ok:
            logger.warning(
                "status check %d for run %s returned HTTP %s", polls, handle.run_id, response.status_code
            )
            continue

        payload = response.json()
        if not isinstance(payload, Mapping):
            logger.warning("status check %d for run %s returned a non-object body", polls, handle.run_id)
            continue

        raw = payload.get("status") or payload.get("state")
        if isinstance(raw, str):
            last_status = raw
        status = ExecutionStatus.from_remote(raw)
        logger.debug(
            "run %s status=%s t=%.02f", handle.run_id, status.value, clock() - handle.created_at
        )
        if status is ExecutionStatus.SUCCESS:
            return status
        if status.is_failure:
            raise ExecutionFailedError(status.value, detail=_status_detail(payload, response.text))

    raise TimedOutError(deadline_seconds, last_status)


def fetch_results(transport: ServiceTransport, handle: ExecutionHandle) -> Any:
    """Return the parsed results body, or its raw text when it is not JSON."""
    response = transport.call("GET", _urls.get_run_results_path(handle.run_id), params={"f": "json"})
    if not response.ok:
        raise FetchError(response.status_code, detail=response.text)
    parsed = response.json()
    if parsed is None:
        logger.debug("results for run %s are not JSON, passing raw text through", handle.run_id)
        return response.text
    return parsed
