from __future__ import annotations

import json
import re
from typing import Any, Dict

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)\s*```", flags=re.DOTALL | re.IGNORECASE)


class JSONParseError(ValueError):
    pass


def _strip_fence(text: str) -> str:
    m = _FENCE_RE.search(text)
    return m.group(1) if m else text


def _first_object(text: str) -> str:
    """Slice out the first balanced {...}, ignoring braces inside strings."""
    start = text.find("{")
    if start == -1:
        raise JSONParseError("No '{' found in model output")

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        c = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif c == "\\":
                escaped = True
            elif c == '"':
                in_string = False
            continue
        if c == '"':
            in_string = True
        elif c == "{":
            depth += 1
        elif c == "}":
            depth -= 1
            if depth == 0:
                return text[start : i + 1]

    raise JSONParseError("Unbalanced JSON braces in model output")


def _repair(text: str) -> str:
    """Common model mistakes: Python literals, bare decimals, trailing commas, smart quotes."""
    t = text.strip()
    t = t.replace("“", '"').replace("”", '"')
    t = re.sub(r"\bNone\b", "null", t)
    t = re.sub(r"\bTrue\b", "true", t)
    t = re.sub(r"\bFalse\b", "false", t)
    t = re.sub(r":\s*\.(\d+)", r": 0.\1", t)
    t = re.sub(r",\s*([}\]])", r"\1", t)
    return t


def parse_json_strict(text: str) -> Dict[str, Any]:
    """
    Parse a JSON object out of model output.
    Accepts pure JSON, fenced JSON (```json ... ``` or bare ```), or an object
    embedded in prose. Raises JSONParseError when nothing usable is found.
    """
    if not text or not text.strip():
        raise JSONParseError("Empty model output")

    body = _strip_fence(text)
    try:
        data = json.loads(body)
    except ValueError:
        try:
            data = json.loads(_repair(_first_object(body)))
        except ValueError as e:
            raise JSONParseError(f"Failed to parse JSON: {e}\n--- Raw ---\n{text[:800]}") from e

    if not isinstance(data, dict):
        raise JSONParseError(f"Expected a JSON object, got {type(data).__name__}")
    return data
