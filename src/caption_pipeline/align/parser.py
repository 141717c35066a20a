from __future__ import annotations

import json
import re
from typing import Any

import json5

from caption_pipeline.errors import ParseError, TruncatedOutputError

TRUNCATED_FINISH_REASONS = frozenset({"length", "max_tokens", "MAX_TOKENS"})

_FENCE_RE = re.compile(r"```[A-Za-z0-9_-]*")
_ASSIGN_RE = re.compile(r"(?:\b(?:const|let|var)\s+)?[A-Za-z_$][\w$]*\s*=\s*\[")


def strip_fences(raw: str) -> str:
    return _FENCE_RE.sub("", str(raw or "")).strip()


def _matching_bracket(text: str, open_idx: int) -> int:
    """
    Index of the `]` closing the `[` at `open_idx`, or -1 if unterminated.
    String literals (single/double/back quotes) are skipped.
    """
    depth = 0
    quote = ""
    escaped = False
    for i in range(open_idx, len(text)):
        ch = text[i]
        if quote:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == quote:
                quote = ""
            continue
        if ch in "\"'`":
            quote = ch
        elif ch == "[":
            depth += 1
        elif ch == "]":
            depth -= 1
            if depth == 0:
                return i
    return -1


def extract_array_literal(raw: str) -> str:
    text = strip_fences(raw)
    m = _ASSIGN_RE.search(text)
    if m:
        start = m.end() - 1
        end = _matching_bracket(text, start)
        if end < 0:
            raise TruncatedOutputError("array literal is not terminated (output truncated)")
        return text[start : end + 1]

    start = text.find("[")
    end = text.rfind("]")
    if start < 0:
        raise ParseError("no array literal found in provider output")
    if end < start:
        raise TruncatedOutputError("array literal is not terminated (output truncated)")
    return text[start : end + 1].rstrip().rstrip(";")


def _load(literal: str) -> Any:
    try:
        return json.loads(literal)
    except ValueError:
        pass
    try:
        return json5.loads(literal)
    except ValueError as ex:
        raise ParseError(f"could not parse aligned lines: {ex}") from ex


def _normalize(idx: int, item: Any) -> dict[str, Any]:
    if not isinstance(item, dict):
        raise ParseError(f"line {idx}: expected an object, got {type(item).__name__}")
    out = dict(item)
    if "text" not in out and "line" in out:
        out["text"] = out.pop("line")
    if "startTime" not in out and "start" in out:
        out["startTime"] = out.pop("start")

    text = out.get("text")
    if not isinstance(text, str) or not text.strip():
        raise ParseError(f"line {idx}: missing text")
    st = out.get("startTime")
    if isinstance(st, bool) or not isinstance(st, (int, float)):
        raise ParseError(f"line {idx}: startTime must be a number")
    return out


def parse_aligned_lines(raw: str, *, finish_reason: str | None = None) -> list[dict[str, Any]]:
    """
    Turn an LLM's `const lyricsData = [...]` answer into validated lines.

    Each returned line has a non-empty `text` and a numeric `startTime`
    (`line`/`start` are accepted as aliases). Code is never evaluated; the
    literal is read with json first and json5 as a lenient fallback.
    """
    if finish_reason and str(finish_reason) in TRUNCATED_FINISH_REASONS:
        raise TruncatedOutputError(f"provider output truncated (finish_reason={finish_reason})")

    data = _load(extract_array_literal(raw))
    if not isinstance(data, list):
        raise ParseError("aligned output is not a list")
    if not data:
        raise ParseError("aligned output is empty")
    return [_normalize(i, item) for i, item in enumerate(data)]


def lines_to_literal(lines: list[dict[str, Any]]) -> str:
    """Render lines back into the `const lyricsData=[...]` form prompts expect."""
    rows = []
    for ln in lines:
        row = {"line": ln.get("text", ""), "start": ln.get("startTime", 0)}
        for k, v in ln.items():
            if k not in {"text", "startTime"}:
                row[k] = v
        rows.append(row)
    return "const lyricsData=" + json.dumps(rows, ensure_ascii=False) + ";"
