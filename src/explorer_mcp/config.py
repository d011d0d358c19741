from __future__ import annotations

import os
from dataclasses import dataclass, field

from .adapters.http_client import HttpClientConfig
from .core.errors import ConfigurationError
from .core.models import DEFAULT_LIMIT

DEFAULT_EXPLORER_URL = "https://api.allium.so/api/v1/explorer"
DEFAULT_AGENT_URL = "https://api.anthropic.com/v1"


@dataclass(slots=True)
class ExplorerConfig:
    api_key: str | None = None
    base_url: str = DEFAULT_EXPLORER_URL
    api_key_header: str = "X-API-KEY"
    title_prefix: str = "st"


@dataclass(slots=True)
class PollConfig:
    deadline_seconds: float = 50.0
    interval_seconds: float = 2.0


@dataclass(slots=True)
class AgentConfig:
    api_key: str | None = None
    base_url: str = DEFAULT_AGENT_URL
    model: str = "claude-sonnet-4-20250514"
    max_tokens: int = 8192
    mcp_server_url: str = "https://mcp-oauth.allium.so"
    mcp_server_name: str = "allium-mcp"
    api_version: str = "2023-06-01"
    beta: str = "mcp-client-2025-04-04"


@dataclass(slots=True)
class Config:
    explorer: ExplorerConfig = field(default_factory=ExplorerConfig)
    poll: PollConfig = field(default_factory=PollConfig)
    agent: AgentConfig = field(default_factory=AgentConfig)
    http: HttpClientConfig = field(default_factory=HttpClientConfig)
    default_limit: int = DEFAULT_LIMIT
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> Config:
        explorer = ExplorerConfig(
            api_key=os.getenv("EXPLORER_API_KEY") or os.getenv("ALLIUM_API_KEY") or None,
            base_url=os.getenv("EXPLORER_BASE_URL", DEFAULT_EXPLORER_URL).rstrip("/"),
            title_prefix=os.getenv("EXPLORER_TITLE_PREFIX", "st"),
        )
        poll = PollConfig(
            deadline_seconds=_env_float("EXPLORER_POLL_DEADLINE", 50.0),
            interval_seconds=_env_float("EXPLORER_POLL_INTERVAL", 2.0),
        )
        if poll.interval_seconds <= 0 or poll.deadline_seconds <= 0:
            raise ConfigurationError("poll deadline and interval must be positive")
        agent = AgentConfig(
            api_key=os.getenv("ANTHROPIC_API_KEY") or None,
            base_url=os.getenv("EXPLORER_AGENT_BASE_URL", DEFAULT_AGENT_URL).rstrip("/"),
        )
        if os.getenv("EXPLORER_AGENT_MODEL"):
            agent.model = os.environ["EXPLORER_AGENT_MODEL"]
        if os.getenv("EXPLORER_AGENT_MCP_URL"):
            agent.mcp_server_url = os.environ["EXPLORER_AGENT_MCP_URL"]
        http = HttpClientConfig(timeout_seconds=_env_float("EXPLORER_HTTP_TIMEOUT", 30.0))
        default_limit = int(_env_float("EXPLORER_DEFAULT_LIMIT", DEFAULT_LIMIT))
        if default_limit < 1:
            raise ConfigurationError("EXPLORER_DEFAULT_LIMIT must be positive")
        return cls(
            explorer=explorer,
            poll=poll,
            agent=agent,
            http=http,
            default_limit=default_limit,
            log_level=os.getenv("EXPLORER_LOG_LEVEL", "INFO").upper(),
        )


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from exc
