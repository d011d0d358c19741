"""Turn polymorphic Explorer/agent response bodies into a ``ResultSet``.

Depending on how a query was run the payload is one of:

- a tabular object with a rows array (``{"data": [...]}``),
- an agent response whose ``content`` blocks carry a tool result wrapping a
  JSON string,
- free text embedding a JSON array or object, possibly inside a code fence.

Strategies are pure functions ``body -> rows | None`` tried in a fixed order;
the first one that accepts a candidate wins.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterator, Mapping, Sequence
from typing import Any

from ...core.models import NoData, NormalizationOutcome, ResultSet, Rows, Unparseable
from .transport import try_parse_json

logger = logging.getLogger(__name__)

ROWS_FIELDS = ("data", "rows")
TOOL_RESULT_TYPES = frozenset({"mcp_tool_result", "tool_result"})

_FENCED = re.compile(r"```[A-Za-z0-9_-]*[ \t]*\r?\n?(.*?)```", re.DOTALL)
_FENCE_MARKER = re.compile(r"```(?:json)?\r?\n?")

Strategy = Callable[[Any], "list[Mapping[str, Any]] | None"]


def _as_rows(value: Any) -> list[Mapping[str, Any]] | None:
    if isinstance(value, list) and all(isinstance(item, Mapping) for item in value):
        return value
    return None


def _rows_field(value: Any) -> list[Mapping[str, Any]] | None:
    if not isinstance(value, Mapping):
        return None
    for name in ROWS_FIELDS:
        rows = _as_rows(value.get(name))
        if rows is not None:
            return rows
    return None


def _content_blocks(body: Any) -> list[Mapping[str, Any]]:
    if isinstance(body, Mapping):
        content = body.get("content")
        if isinstance(content, list):
            return [block for block in content if isinstance(block, Mapping)]
    return []


def _block_texts(content: Any) -> list[str]:
    """Candidate texts of a tool result: each item first, then all items joined."""
    if isinstance(content, str):
        return [content]
    if not isinstance(content, list):
        return []
    parts = []
    for item in content:
        if isinstance(item, Mapping) and isinstance(item.get("text"), str):
            parts.append(item["text"])
        elif isinstance(item, str):
            parts.append(item)
    if len(parts) > 1:
        return [*parts, "\n".join(parts)]
    return parts


def _text_blocks(body: Any) -> list[str]:
    if isinstance(body, str):
        return [body]
    return [
        block["text"]
        for block in _content_blocks(body)
        if block.get("type") == "text" and isinstance(block.get("text"), str)
    ]


def strip_fences(text: str) -> str:
    """Return the body of the first code fence, or ``text`` without fence markers."""
    match = _FENCED.search(text)
    if match:
        return match.group(1).strip()
    return _FENCE_MARKER.sub("", text).strip()


def iter_bracketed(text: str, open_char: str = "[", close_char: str = "]") -> Iterator[str]:
    """Yield balanced ``open_char``..``close_char`` substrings, outermost first.

    Brackets inside JSON string literals are ignored.
    """
    start = text.find(open_char)
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        end = -1
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
            elif ch == '"':
                in_string = True
            elif ch == open_char:
                depth += 1
            elif ch == close_char:
                depth -= 1
                if depth == 0:
                    end = i
                    break
        if end != -1:
            yield text[start : end + 1]
            start = text.find(open_char, end + 1)
        else:
            start = text.find(open_char, start + 1)


def from_tool_results(body: Any) -> list[Mapping[str, Any]] | None:
    for block in _content_blocks(body):
        if block.get("type") not in TOOL_RESULT_TYPES:
            continue
        for text in _block_texts(block.get("content")):
            parsed = try_parse_json(text)
            rows = _rows_field(parsed)
            if rows is None:
                rows = _as_rows(parsed)
            if rows is not None:
                return rows
    return None


def from_text_blocks(body: Any) -> list[Mapping[str, Any]] | None:
    for text in _text_blocks(body):
        parsed = try_parse_json(strip_fences(text))
        rows = _rows_field(parsed)
        if rows is not None:
            return rows
        rows = _as_rows(parsed)
        if rows:
            return rows
    return None


def from_structured(body: Any) -> list[Mapping[str, Any]] | None:
    rows = _rows_field(body)
    if rows is not None:
        return rows
    return _as_rows(body)


def from_embedded_array(body: Any) -> list[Mapping[str, Any]] | None:
    raw_text = "\n".join(_text_blocks(body))
    for fragment in iter_bracketed(raw_text):
        rows = _as_rows(try_parse_json(fragment))
        if rows:
            return rows
    return None


STRATEGIES: Sequence[tuple[str, Strategy]] = (
    ("tool_result", from_tool_results),
    ("text_block", from_text_blocks),
    ("structured", from_structured),
    ("embedded_array", from_embedded_array),
)


def _coerce_body(body: Any) -> Any:
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")
    if isinstance(body, str):
        parsed = try_parse_json(body.strip())
        if isinstance(parsed, (Mapping, list)):
            return parsed
    return body


def content_types(body: Any) -> tuple[str, ...]:
    """Type tags observed in ``body``, for debugging unparseable responses."""
    blocks = _content_blocks(body)
    if blocks:
        return tuple(str(block.get("type", "unknown")) for block in blocks)
    if isinstance(body, str):
        return ("text",)
    if isinstance(body, Mapping):
        return ("object",)
    if isinstance(body, list):
        return ("array",)
    return (type(body).__name__,)


def normalize(body: Any) -> NormalizationOutcome:
    body = _coerce_body(body)
    for name, strategy in STRATEGIES:
        rows = strategy(body)
        if rows is None:
            continue
        logger.debug("normalized response via %s strategy (%d rows)", name, len(rows))
        if not rows:
            return NoData(strategy=name)
        return Rows(result=ResultSet.from_rows(rows), strategy=name)

    types = content_types(body)
    logger.debug("no strategy accepted response, content types: %s", types)
    return Unparseable(content_types=types)
