from __future__ import annotations

import logging
from typing import Any

from ...config import AgentConfig
from ...core.errors import InvalidRequestError, SubmissionError
from ...core.models import QueryRequest
from ...core.ports import AgentRunner
from ..explorer.transport import ServiceTransport
from ..http_client import HttpClient

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a data assistant. Use the explorer_run_sql tool to run the SQL query. "
    "After getting results, output ONLY the JSON object with the data array. "
    "No explanation, no markdown, just the JSON."
)


class AgentQueryAdapter(AgentRunner):
    """Runs SQL through a messages API that has the Explorer MCP server attached.

    The response body is returned untouched; its shape varies with what the
    agent decided to emit, so it goes through the normalizer afterwards.
    """

    def __init__(
        self,
        config: AgentConfig,
        *,
        http_client: HttpClient | None = None,
        transport: ServiceTransport | None = None,
    ):
        self.config = config
        self.transport = transport or ServiceTransport(
            config.base_url,
            config.api_key,
            credential_header="x-api-key",
            http_client=http_client,
            extra_headers={
                "anthropic-version": config.api_version,
                "anthropic-beta": config.beta,
            },
        )

    def build_payload(self, sql: str) -> dict[str, Any]:
        return {
            "model": self.config.model,
            "max_tokens": self.config.max_tokens,
            "system": SYSTEM_PROMPT,
            "messages": [
                {
                    "role": "user",
                    "content": "Run this SQL query and return the results:\n\n" + sql,
                }
            ],
            "mcp_servers": [
                {
                    "type": "url",
                    "url": self.config.mcp_server_url,
                    "name": self.config.mcp_server_name,
                }
            ],
        }

    def run(self, request: QueryRequest) -> Any:
        if request.sql is None:
            raise InvalidRequestError("agent execution requires sql text")
        response = self.transport.call("POST", "/messages", json=self.build_payload(request.sql))
        if not response.ok:
            raise SubmissionError("agent", response.status_code, detail=response.text)
        body = response.json()
        if body is None:
            logger.debug("agent response is not JSON, passing raw text through")
            return response.text
        return body
