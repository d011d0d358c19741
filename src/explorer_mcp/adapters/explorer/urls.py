from __future__ import annotations

from urllib.parse import quote

url_templates = {
    "queries": "/queries",
    "run_async": "/queries/{query_id}/run-async",
    "run_status": "/query-runs/{run_id}/status",
    "run_results": "/query-runs/{run_id}/results",
}


def get_queries_path() -> str:
    return url_templates["queries"]


def get_run_async_path(query_id: str) -> str:
    return url_templates["run_async"].format(query_id=quote(str(query_id), safe=""))


def get_run_status_path(run_id: str) -> str:
    return url_templates["run_status"].format(run_id=quote(str(run_id), safe=""))


def get_run_results_path(run_id: str) -> str:
    return url_templates["run_results"].format(run_id=quote(str(run_id), safe=""))
