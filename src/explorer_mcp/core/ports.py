from __future__ import annotations

import threading
from typing import Any, Protocol

from .models import ExecutionHandle, QueryRequest


class QueryExecutor(Protocol):
    """Port for the asynchronous submit/poll/fetch protocol of the Explorer API."""

    def submit(self, request: QueryRequest) -> ExecutionHandle:
        ...

    def wait(
        self,
        handle: ExecutionHandle,
        *,
        deadline_seconds: float,
        interval_seconds: float,
        cancel_event: threading.Event | None = None,
    ) -> None:
        ...

    def fetch(self, handle: ExecutionHandle) -> Any:
        ...


class AgentRunner(Protocol):
    """Port for running SQL through an agent with the Explorer tools attached."""

    def run(self, request: QueryRequest) -> Any:
        ...
