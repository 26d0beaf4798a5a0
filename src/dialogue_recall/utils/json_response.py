"""Parsing of JSON objects embedded in model output."""

import json
import math
import re
from typing import Any

__all__ = [
    "clamp_confidence",
    "extract_json_object",
]

_CODE_BLOCK = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)


def extract_json_object(content: str) -> dict[str, Any]:
    """Extract the first JSON object from a model response.

    Tries a fenced code block first, then the span between the first "{"
    and the last "}".

    Raises:
        ValueError: If no JSON object can be parsed
    """
    content = content.strip()
    candidates: list[str] = []

    match = _CODE_BLOCK.search(content)
    if match:
        candidates.append(match.group(1).strip())

    start = content.find("{")
    end = content.rfind("}")
    if start != -1 and end > start:
        candidates.append(content[start : end + 1])

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed

    raise ValueError(f"No JSON object in response: {content[:80]!r}")


def clamp_confidence(value: Any) -> float:
    """Coerce a parsed confidence into [0, 1]; unparseable or NaN becomes 0."""
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(confidence):
        return 0.0
    return min(1.0, max(0.0, confidence))
