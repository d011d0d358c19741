from __future__ import annotations

import logging
import threading
import time
from typing import Any

from ..adapters.explorer.normalize import normalize
from ..config import PollConfig
from ..core.errors import ExplorerError, InvalidRequestError, UnparseableResultError
from ..core.models import (
    ExecutionHandle,
    NoData,
    PipelineState,
    QueryOutcome,
    QueryRequest,
    ResultSet,
    Rows,
)
from ..core.ports import AgentRunner, QueryExecutor

logger = logging.getLogger(__name__)


class _Run:
    """Bookkeeping for one pass through the pipeline state machine."""

    def __init__(self, clock):
        self.clock = clock
        self.started = clock()
        self.state = PipelineState.SUBMITTING
        self.transitions = [self.state]
        self.handle: ExecutionHandle | None = None

    def advance(self, state: PipelineState) -> None:
        logger.debug("pipeline %s -> %s", self.state.value, state.value)
        self.state = state
        self.transitions.append(state)

    def _duration_ms(self) -> int:
        return int((self.clock() - self.started) * 1000)

    def done(self, result: ResultSet, strategy: str | None) -> QueryOutcome:
        self.advance(PipelineState.DONE)
        outcome = QueryOutcome(
            state=self.state,
            result=result,
            handle=self.handle,
            strategy=strategy,
            duration_ms=self._duration_ms(),
            transitions=self.transitions,
        )
        logger.info(
            "query run %s done: %d rows via %s in %dms",
            outcome.run_id, result.rowcount, strategy, outcome.duration_ms,
        )
        return outcome

    def failed(self, error: ExplorerError) -> QueryOutcome:
        failed_in = self.state
        self.advance(PipelineState.FAILED)
        outcome = QueryOutcome(
            state=self.state,
            error=error,
            handle=self.handle,
            duration_ms=self._duration_ms(),
            transitions=self.transitions,
        )
        logger.info(
            "query run %s failed while %s: %s (%s)",
            outcome.run_id, failed_in.value, error.code, error.message,
        )
        return outcome


def _finish(run: _Run, body: Any) -> QueryOutcome:
    run.advance(PipelineState.NORMALIZING)
    normalized = normalize(body)
    if isinstance(normalized, Rows):
        return run.done(normalized.result, normalized.strategy)
    if isinstance(normalized, NoData):
        return run.done(ResultSet(), normalized.strategy)
    return run.failed(UnparseableResultError(normalized.content_types))


class QueryService:
    """Runs submit -> poll -> fetch -> normalize as one synchronous pass.

    Pipeline errors never escape ``execute``; they come back as a FAILED
    ``QueryOutcome`` carrying the first error hit. Nothing is retried here.
    """

    def __init__(
        self,
        executor: QueryExecutor,
        *,
        poll: PollConfig | None = None,
        agent: AgentRunner | None = None,
        clock=time.monotonic,
    ):
        self.executor = executor
        self.poll = poll or PollConfig()
        self.agent = agent
        self.clock = clock

    def execute(
        self,
        request: QueryRequest,
        *,
        cancel_event: threading.Event | None = None,
    ) -> QueryOutcome:
        run = _Run(self.clock)
        try:
            request.validate()
            run.handle = self.executor.submit(request)

            run.advance(PipelineState.POLLING)
            self.executor.wait(
                run.handle,
                deadline_seconds=self.poll.deadline_seconds,
                interval_seconds=self.poll.interval_seconds,
                cancel_event=cancel_event,
            )

            run.advance(PipelineState.FETCHING)
            body = self.executor.fetch(run.handle)
            return _finish(run, body)
        except ExplorerError as exc:
            return run.failed(exc)

    def execute_via_agent(self, request: QueryRequest) -> QueryOutcome:
        run = _Run(self.clock)
        try:
            request.validate()
            if self.agent is None:
                raise InvalidRequestError("agent execution is not configured")
            if request.is_saved:
                raise InvalidRequestError("agent execution requires sql text, not a saved query")
            body = self.agent.run(request)
            return _finish(run, body)
        except ExplorerError as exc:
            return run.failed(exc)
