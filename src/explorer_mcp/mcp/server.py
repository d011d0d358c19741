from __future__ import annotations

import asyncio
import logging
import os
import sys
from typing import Any, Literal

os.environ.setdefault("FASTMCP_NO_BANNER", "1")
os.environ.setdefault("FASTMCP_LOG_LEVEL", "ERROR")

from fastmcp import FastMCP
from starlette.requests import Request
from starlette.responses import JSONResponse

from ..adapters.agent.client import AgentQueryAdapter
from ..adapters.explorer.client import ExplorerAdapter
from ..adapters.http_client import HttpClient
from ..config import Config
from ..core.errors import error_response
from ..service_layer.query_service import QueryService
from .http_route import CORS_HEADERS, handle_query_http
from .tools.execute_query import ExecuteQueryTool

logger = logging.getLogger(__name__)


# Global handles initialized on demand
CONFIG: Config | None = None
HTTP_CLIENT: HttpClient | None = None
EXPLORER_ADAPTER: ExplorerAdapter | None = None
AGENT_ADAPTER: AgentQueryAdapter | None = None
QUERY_SERVICE: QueryService | None = None
EXECUTE_QUERY_TOOL: ExecuteQueryTool | None = None


app = FastMCP("explorer-mcp")


def _best_effort_load_dotenv() -> None:
    """Load a local .env (cwd or home) if present and not explicitly disabled."""
    if os.environ.get("EXPLORER_SKIP_DOTENV"):
        return
    if os.environ.get("EXPLORER_API_KEY") or os.environ.get("ALLIUM_API_KEY"):
        return
    for candidate in (os.path.join(os.getcwd(), ".env"), os.path.expanduser("~/.env")):
        if not os.path.exists(candidate):
            continue
        try:
            with open(candidate, encoding="utf-8") as f:
                for line in f:
                    line = line.strip()
                    if not line or line.startswith("#") or "=" not in line:
                        continue
                    k, v = line.split("=", 1)
                    k = k.strip()
                    v = v.strip().strip('"').strip("'")
                    if k and v and k not in os.environ:
                        os.environ[k] = v
        except OSError as exc:
            logger.warning("could not read %s: %s", candidate, exc)


def _ensure_initialized() -> None:
    """Initialize configuration and tool instances if not already initialized."""
    global CONFIG, HTTP_CLIENT, EXPLORER_ADAPTER, AGENT_ADAPTER, QUERY_SERVICE, EXECUTE_QUERY_TOOL

    if CONFIG is not None and EXECUTE_QUERY_TOOL is not None:
        return

    logger.info("Initializing explorer-mcp server...")
    _best_effort_load_dotenv()
    CONFIG = Config.from_env()
    HTTP_CLIENT = HttpClient(CONFIG.http)
    EXPLORER_ADAPTER = ExplorerAdapter(CONFIG, http_client=HTTP_CLIENT)
    AGENT_ADAPTER = AgentQueryAdapter(CONFIG.agent, http_client=HTTP_CLIENT)
    QUERY_SERVICE = QueryService(EXPLORER_ADAPTER, poll=CONFIG.poll, agent=AGENT_ADAPTER)
    EXECUTE_QUERY_TOOL = ExecuteQueryTool(CONFIG, QUERY_SERVICE)
    if not CONFIG.explorer.api_key:
        logger.warning("EXPLORER_API_KEY is not set; queries will fail until it is configured")
    logger.info("explorer-mcp server ready")


def compute_health_status() -> dict[str, Any]:
    """Lightweight health status; never touches the network."""
    _best_effort_load_dotenv()
    config = CONFIG or Config.from_env()
    has_api_key = bool(config.explorer.api_key)
    return {
        "api_key_present": has_api_key,
        "agent_key_present": bool(config.agent.api_key),
        "base_url": config.explorer.base_url,
        "poll_deadline_seconds": config.poll.deadline_seconds,
        "poll_interval_seconds": config.poll.interval_seconds,
        "status": "ok" if has_api_key else "degraded",
    }


@app.tool(
    name="explorer_query",
    description="Run SQL or a saved query on the Explorer API and return rows.",
    tags={"explorer", "query"},
)
async def explorer_query(
    sql: str | None = None,
    saved_query_id: str | None = None,
    limit: int | None = None,
    parameters: dict[str, Any] | None = None,
    format: Literal["preview", "raw", "metadata"] = "preview",
) -> dict[str, Any]:
    try:
        _ensure_initialized()
        assert EXECUTE_QUERY_TOOL is not None
        return await asyncio.to_thread(
            EXECUTE_QUERY_TOOL.execute,
            sql=sql,
            saved_query_id=saved_query_id,
            limit=limit,
            parameters=parameters,
            format=format,
        )
    except Exception as e:
        logger.exception("explorer_query failed")
        return error_response(e, context={"tool": "explorer_query", "sql": sql, "saved_query_id": saved_query_id})


@app.tool(
    name="explorer_agent_query",
    description="Run SQL through an agent with the Explorer MCP tools attached.",
    tags={"explorer", "agent"},
)
async def explorer_agent_query(
    sql: str,
    format: Literal["preview", "raw", "metadata"] = "preview",
) -> dict[str, Any]:
    try:
        _ensure_initialized()
        assert EXECUTE_QUERY_TOOL is not None
        return await asyncio.to_thread(EXECUTE_QUERY_TOOL.execute, sql=sql, format=format, via="agent")
    except Exception as e:
        logger.exception("explorer_agent_query failed")
        return error_response(e, context={"tool": "explorer_agent_query", "sql": sql})


@app.tool(
    name="explorer_health_check",
    description="Validate Explorer API key presence and polling configuration.",
    tags={"health"},
)
async def explorer_health_check() -> dict[str, Any]:
    return compute_health_status()


@app.custom_route("/api/query", methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"])
async def query_route(request: Request) -> JSONResponse:
    try:
        _ensure_initialized()
        assert EXECUTE_QUERY_TOOL is not None
        body = await request.body()
        status, payload = await asyncio.to_thread(
            handle_query_http, request.method, body, EXECUTE_QUERY_TOOL
        )
    except Exception as e:
        logger.exception("query route failed")
        status, payload = 500, error_response(e)
    return JSONResponse(payload, status_code=status, headers=CORS_HEADERS)


def main() -> None:
    logging.basicConfig(
        stream=sys.stderr,
        level=os.getenv("EXPLORER_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    transport = os.getenv("EXPLORER_MCP_TRANSPORT", "stdio")
    if transport == "http":
        app.run(
            transport="http",
            host=os.getenv("EXPLORER_MCP_HOST", "127.0.0.1"),
            port=int(os.getenv("EXPLORER_MCP_PORT", "8000")),
            show_banner=False,
        )
    else:
        # Do not initialize at startup; defer until first tool call so env
        # issues don't break the MCP handshake.
        app.run(show_banner=False)


if __name__ == "__main__":
    main()
