from __future__ import annotations

import threading
import time
from typing import Any

from ...config import Config
from ...core.models import ExecutionHandle, QueryRequest
from ...core.ports import QueryExecutor
from ..http_client import HttpClient
from . import extract as _extract
from .extract import Clock, Sleep
from .transport import ServiceTransport


class ExplorerAdapter(QueryExecutor):
    """Explorer API implementation of the submit/poll/fetch port."""

    def __init__(
        self,
        config: Config,
        *,
        http_client: HttpClient | None = None,
        transport: ServiceTransport | None = None,
        clock: Clock = time.monotonic,
        sleep: Sleep = time.sleep,
    ):
        self.config = config
        self.transport = transport or ServiceTransport(
            config.explorer.base_url,
            config.explorer.api_key,
            credential_header=config.explorer.api_key_header,
            http_client=http_client or HttpClient(config.http),
        )
        self.clock = clock
        self.sleep = sleep

    def submit(self, request: QueryRequest) -> ExecutionHandle:
        return _extract.submit_query(
            self.transport,
            request,
            title_prefix=self.config.explorer.title_prefix,
            clock=self.clock,
        )

    def wait(
        self,
        handle: ExecutionHandle,
        *,
        deadline_seconds: float,
        interval_seconds: float,
        cancel_event: threading.Event | None = None,
    ) -> None:
        _extract.poll_execution(
            self.transport,
            handle,
            deadline_seconds=deadline_seconds,
            interval_seconds=interval_seconds,
            clock=self.clock,
            sleep=self.sleep,
            cancel_event=cancel_event,
        )

    def fetch(self, handle: ExecutionHandle) -> Any:
        return _extract.fetch_results(self.transport, handle)
