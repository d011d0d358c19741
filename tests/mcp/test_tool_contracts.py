from __future__ import annotations

import json

import pytest

from explorer_mcp.mcp.http_route import handle_query_http
from explorer_mcp.mcp.tools.execute_query import ExecuteQueryTool

ROWS = [{"chain": "eth", "n": i} for i in range(12)]


@pytest.fixture
def make_tool(make_service, make_config, stub_response):
    def _make(responses, **kwargs):
        service, client = make_service(responses, **kwargs)
        return ExecuteQueryTool(make_config(), service), client

    return _make


def _happy(stub_response, rows=ROWS):
    return [
        stub_response({"query_id": "q-1"}),
        stub_response({"run_id": "r-1"}),
        stub_response({"status": "success"}),
        stub_response({"data": rows}),
    ]


@pytest.mark.mcp
def test_preview_format(make_tool, stub_response):
    tool, _ = make_tool(_happy(stub_response))

    out = tool.execute(sql="SELECT chain, n FROM t")

    assert out["ok"] is True
    assert out["type"] == "preview"
    assert out["rowcount"] == 12
    assert out["columns"] == ["CHAIN", "N"]
    assert len(out["data_preview"]) == 10
    assert out["data_preview"][0] == {"CHAIN": "eth", "N": 0}
    assert set(out["dtypes"]) == {"CHAIN", "N"}
    assert out["run_id"] == "r-1"


@pytest.mark.mcp
def test_raw_format_returns_every_row(make_tool, stub_response):
    tool, client = make_tool(_happy(stub_response))

    out = tool.execute(sql="SELECT 1", limit=12, format="raw")

    assert out["type"] == "raw"
    assert len(out["data"]) == 12
    assert client.calls[0][2]["json"]["config"]["limit"] == 12


@pytest.mark.mcp
def test_metadata_format(make_tool, stub_response):
    tool, _ = make_tool(_happy(stub_response))

    out = tool.execute(sql="SELECT 1", format="metadata")

    assert out["metadata"] == {"state": "done", "strategy": "structured", "query_id": "q-1"}


@pytest.mark.mcp
def test_preview_keeps_mixed_type_values(make_tool, stub_response):
    rows = [{"k": 1}, {"k": "a"}, {"k": None}]
    tool, _ = make_tool(_happy(stub_response, rows=rows))

    out = tool.execute(sql="SELECT k FROM t")

    assert out["data_preview"] == [{"K": 1}, {"K": "a"}, {"K": None}]
    assert set(out["dtypes"]) == {"K"}


@pytest.mark.mcp
def test_default_limit_is_applied(make_tool, stub_response):
    tool, client = make_tool(_happy(stub_response))

    tool.execute(sql="SELECT 1", format="raw")

    assert client.calls[0][2]["json"]["config"]["limit"] == 500


@pytest.mark.mcp
def test_tool_errors_are_structured(make_tool, stub_response):
    tool, _ = make_tool(
        [stub_response({"query_id": "q"}), stub_response({"run_id": "r"}), stub_response({"status": "error", "error": "boom"})]
    )

    out = tool.execute(sql="SELECT 1")

    assert out["ok"] is False
    assert out["code"] == "execution_failed"
    assert out["detail"] == "boom"
    assert out["context"]["tool"] == "explorer_query"


@pytest.mark.mcp
def test_tool_rejects_unknown_format(make_tool):
    tool, client = make_tool([])

    out = tool.execute(sql="SELECT 1", format="csv")

    assert out["code"] == "invalid_request"
    assert client.calls == []


@pytest.mark.mcp
def test_http_success(make_tool, stub_response):
    tool, _ = make_tool(_happy(stub_response, rows=[{"a": 1}]))

    status, payload = handle_query_http("POST", json.dumps({"sql": "SELECT 1"}), tool)

    assert status == 200
    assert payload["data"] == [{"A": 1}]


@pytest.mark.mcp
def test_http_saved_query_id_alias(make_tool, stub_response):
    tool, client = make_tool(
        [stub_response({"run_id": "r"}), stub_response({"status": "success"}), stub_response({"data": [{"a": 1}]})]
    )

    status, _ = handle_query_http("POST", b'{"query_id": "abc"}', tool)

    assert status == 200
    assert client.urls()[0].endswith("/queries/abc/run-async")


@pytest.mark.mcp
@pytest.mark.parametrize(
    "method, body, expected",
    [
        ("OPTIONS", None, 200),
        ("GET", None, 405),
        ("PUT", b"{}", 405),
        ("POST", b"", 400),
        ("POST", b"{not json", 400),
        ("POST", b"[1]", 400),
        ("POST", b'{"sql": "SELECT 1", "saved_query_id": "x"}', 400),
        ("POST", b'{"sql": "SELECT 1", "limit": "many"}', 400),
        ("POST", b'{"sql": "SELECT 1", "parameters": [1]}', 400),
    ],
)
def test_http_status_mapping_for_bad_calls(make_tool, method, body, expected):
    tool, client = make_tool([])

    status, payload = handle_query_http(method, body, tool)

    assert status == expected
    if expected != 200:
        assert payload["ok"] is False
    assert client.calls == []


@pytest.mark.mcp
def test_http_timeout_maps_to_504(make_tool, stub_response):
    tool, _ = make_tool(
        [stub_response({"query_id": "q"}), stub_response({"run_id": "r"})] + [stub_response({"status": "running"})] * 3,
        deadline=3.0,
        interval=1.0,
    )

    status, payload = handle_query_http("POST", b'{"sql": "SELECT 1"}', tool)

    assert status == 504
    assert payload["code"] == "timeout"


@pytest.mark.mcp
def test_http_missing_credential_maps_to_500(make_tool):
    tool, client = make_tool([], api_key=None)

    status, payload = handle_query_http("POST", b'{"sql": "SELECT 1"}', tool)

    assert status == 500
    assert payload["code"] == "configuration"
    assert client.calls == []
