from __future__ import annotations

import json

import pytest

from explorer_mcp.adapters.explorer.normalize import iter_bracketed, normalize, strip_fences
from explorer_mcp.core.models import NoData, ResultSet, Rows, Unparseable


def _tool_block(payload, block_type="mcp_tool_result"):
    return {"type": block_type, "content": [{"type": "text", "text": json.dumps(payload)}]}


def test_tool_result_wins_over_text_and_embedded_arrays():
    body = {
        "content": [
            {"type": "text", "text": "Running it now [{\"b\": 2}]"},
            {"type": "mcp_tool_use", "name": "explorer_run_sql"},
            _tool_block({"data": [{"a": 1}]}),
            {"type": "text", "text": "[{\"c\": 3}]"},
        ]
    }

    outcome = normalize(body)

    assert isinstance(outcome, Rows)
    assert outcome.strategy == "tool_result"
    assert outcome.result.rows == ({"A": 1},)
    assert outcome.result.columns == ("A",)


def test_tool_result_bare_array_and_string_content():
    body = {"content": [{"type": "tool_result", "content": "[{\"x\": 1}, {\"x\": 2}]"}]}

    outcome = normalize(body)

    assert isinstance(outcome, Rows)
    assert outcome.strategy == "tool_result"
    assert outcome.result.rowcount == 2


def test_tool_result_items_are_tried_one_at_a_time():
    body = {
        "content": [
            {
                "type": "mcp_tool_result",
                "content": [
                    {"type": "text", "text": "{\"data\": [{\"a\": 1}]}"},
                    {"type": "text", "text": "Query completed in 1.2s"},
                ],
            }
        ]
    }

    outcome = normalize(body)

    assert isinstance(outcome, Rows)
    assert outcome.strategy == "tool_result"
    assert outcome.result.rows == ({"A": 1},)


def test_tool_result_split_across_items_uses_joined_text():
    body = {
        "content": [
            {
                "type": "tool_result",
                "content": [{"type": "text", "text": "[{\"x\": 1},"}, {"type": "text", "text": "{\"x\": 2}]"}],
            }
        ]
    }

    outcome = normalize(body)

    assert isinstance(outcome, Rows)
    assert outcome.strategy == "tool_result"
    assert outcome.result.rows == ({"X": 1}, {"X": 2})


def test_unparseable_tool_result_falls_through_to_text():
    body = {
        "content": [
            {"type": "mcp_tool_result", "content": [{"type": "text", "text": "error: quota"}]},
            {"type": "text", "text": "{\"data\": [{\"n\": 5}]}"},
        ]
    }

    outcome = normalize(body)

    assert isinstance(outcome, Rows)
    assert outcome.strategy == "text_block"
    assert outcome.result.rows == ({"N": 5},)


def test_fenced_free_text_uses_text_strategy():
    outcome = normalize('Here is the result:\n```json\n[{"x":10}]\n```\n')

    assert isinstance(outcome, Rows)
    assert outcome.strategy == "text_block"
    assert outcome.result.rows == ({"X": 10},)


def test_fenced_text_block_object_with_rows_field():
    body = {"content": [{"type": "text", "text": "```json\n{\"rows\": [{\"k\": \"v\"}]}\n```"}]}

    outcome = normalize(body)

    assert isinstance(outcome, Rows)
    assert outcome.result.rows == ({"K": "v"},)


def test_structured_body_is_accepted_directly():
    body = {"data": [{"chain": "eth", "tx_count": 10}, {"chain": "sol", "tx_count": 12}], "meta": {}}

    outcome = normalize(body)

    assert isinstance(outcome, Rows)
    assert outcome.strategy == "structured"
    assert outcome.result.columns == ("CHAIN", "TX_COUNT")
    assert outcome.result.rowcount == 2


def test_structured_body_from_json_text():
    outcome = normalize('{"data": [{"a": 1}]}')

    assert isinstance(outcome, Rows)
    assert outcome.strategy == "structured"


def test_embedded_array_in_prose():
    body = {
        "content": [
            {"type": "text", "text": "I ran the query (see [1]). Rows: [{\"v\": \"a]b\"}, {\"v\": 2}] done."},
        ]
    }

    outcome = normalize(body)

    assert isinstance(outcome, Rows)
    assert outcome.strategy == "embedded_array"
    assert outcome.result.rows == ({"V": "a]b"}, {"V": 2})


def test_empty_rows_is_no_data():
    outcome = normalize({"data": []})

    assert outcome == NoData(strategy="structured")


def test_unrecognizable_response_reports_content_types():
    body = {
        "content": [
            {"type": "text", "text": "Sorry, I could not run that query."},
            {"type": "mcp_tool_use", "name": "explorer_run_sql"},
        ]
    }

    outcome = normalize(body)

    assert isinstance(outcome, Unparseable)
    assert outcome.content_types == ("text", "mcp_tool_use")


@pytest.mark.parametrize(
    "body, expected",
    [("no json here", ("text",)), ({"status": "ok"}, ("object",)), ([1, 2], ("array",))],
)
def test_unparseable_shapes_without_blocks(body, expected):
    outcome = normalize(body)

    assert isinstance(outcome, Unparseable)
    assert outcome.content_types == expected


def test_rows_get_uppercase_keys_in_first_seen_order():
    outcome = normalize({"data": [{"b": 1, "a": 2}, {"c": 3, "a": 4}]})

    assert isinstance(outcome, Rows)
    result = outcome.result
    assert result.columns == ("B", "A", "C")
    assert result.rows == ({"B": 1, "A": 2, "C": None}, {"B": None, "A": 4, "C": 3})
    assert all(tuple(row) == result.columns for row in result.rows)


def test_normalization_is_idempotent():
    first = normalize({"content": [_tool_block({"data": [{"MiXeD": 1, "lower": "x"}]})]})
    assert isinstance(first, Rows)

    second = normalize({"data": first.result.to_dicts()})

    assert isinstance(second, Rows)
    assert second.result == first.result
    assert ResultSet.from_rows(first.result.rows) == first.result


def test_strip_fences():
    assert strip_fences("```json\n[1]\n```") == "[1]"
    assert strip_fences("```\n{\"a\": 1}```") == '{"a": 1}'
    assert strip_fences("  [1]  ") == "[1]"


def test_iter_bracketed_skips_unbalanced_and_strings():
    fragments = list(iter_bracketed('x [ broken "]" [1, [2]] tail'))

    assert fragments[-1] == "[1, [2]]"
