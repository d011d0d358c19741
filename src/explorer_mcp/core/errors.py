from __future__ import annotations

from collections.abc import Mapping
from typing import Any

DETAIL_LIMIT = 300


def truncate(text: Any, limit: int = DETAIL_LIMIT) -> str:
    """Return ``text`` as a string capped at ``limit`` characters."""
    if text is None:
        return ""
    s = text if isinstance(text, str) else str(text)
    if len(s) <= limit:
        return s
    return s[:limit] + "..."


class ExplorerError(Exception):
    """Base class for every failure the query pipeline reports."""

    code = "explorer_error"
    http_status = 500

    def __init__(self, message: str, *, detail: Any = None):
        super().__init__(message)
        self.message = message
        self.detail = truncate(detail) if detail not in (None, "") else None

    def __str__(self) -> str:
        return self.message


class InvalidRequestError(ExplorerError):
    code = "invalid_request"
    http_status = 400


class ConfigurationError(ExplorerError):
    code = "configuration"


class TransportError(ExplorerError):
    code = "transport"


class SubmissionError(ExplorerError):
    """The remote service rejected query creation or the run trigger."""

    code = "submission_failed"

    def __init__(self, step: str, status_code: int, detail: Any = None):
        super().__init__(f"{step} failed: HTTP {status_code}", detail=detail)
        self.step = step
        self.status_code = status_code


class ProtocolError(ExplorerError):
    """A 2xx response did not carry a field the protocol requires."""

    code = "protocol"

    def __init__(self, field: str, detail: Any = None):
        super().__init__(f"response missing {field}", detail=detail)
        self.field = field


class ExecutionFailedError(ExplorerError):
    code = "execution_failed"

    def __init__(self, status: str, detail: Any = None):
        super().__init__(f"query {status}", detail=detail)
        self.status = status


class QueryCanceledError(ExplorerError):
    code = "canceled"

    def __init__(self, run_id: str):
        super().__init__(f"polling abandoned for run {run_id}")
        self.run_id = run_id


class TimedOutError(ExplorerError):
    code = "timeout"
    http_status = 504

    def __init__(self, deadline_seconds: float, last_status: str | None = None):
        last = last_status or "unknown"
        super().__init__(
            f"timed out after {deadline_seconds:g}s, last status: {last}"
        )
        self.deadline_seconds = deadline_seconds
        self.last_status = last_status


class FetchError(ExplorerError):
    code = "fetch_failed"

    def __init__(self, status_code: int, detail: Any = None):
        super().__init__(f"results fetch failed: HTTP {status_code}", detail=detail)
        self.status_code = status_code


class UnparseableResultError(ExplorerError):
    code = "unparseable"

    def __init__(self, content_types: tuple[str, ...] = ()):
        super().__init__("could not extract data from response")
        self.content_types = tuple(content_types)


def error_response(exc: BaseException, context: Mapping[str, Any] | None = None) -> dict[str, Any]:
    """Structured, display-safe error payload for tool and route callers."""
    if isinstance(exc, ExplorerError):
        payload: dict[str, Any] = {"ok": False, "error": exc.message, "code": exc.code}
        if exc.detail:
            payload["detail"] = exc.detail
        if isinstance(exc, UnparseableResultError):
            payload["content_types"] = list(exc.content_types)
    else:
        payload = {
            "ok": False,
            "error": truncate(str(exc) or type(exc).__name__),
            "code": "internal_error",
        }
    if context:
        payload["context"] = {
            k: truncate(v) if isinstance(v, str) else v
            for k, v in context.items()
            if v is not None
        }
    return payload


def http_status_for(exc: BaseException) -> int:
    if isinstance(exc, ExplorerError):
        return exc.http_status
    return 500
