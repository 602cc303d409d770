"""Best-effort extraction of a JSON value from free-form model output."""

from __future__ import annotations

import json
import re
from typing import Any

_FENCE_OPEN = re.compile(r"^```[a-zA-Z0-9_-]*\s*")
_FENCE_CLOSE = re.compile(r"\s*```\s*$")


def strip_code_fence(text: str) -> str:
    """Remove a surrounding Markdown code fence such as ```json ... ```."""
    stripped = text.strip()
    if not stripped.startswith("```"):
        return stripped
    stripped = _FENCE_OPEN.sub("", stripped, count=1)
    return _FENCE_CLOSE.sub("", stripped, count=1).strip()


def extract_json_payload(text: str) -> Any:
    """Parse the single JSON value contained in ``text``.

    Raises ``ValueError`` when no JSON value can be recovered, including
    output nested too deeply to decode.
    """
    candidate = strip_code_fence(text)
    if not candidate:
        raise ValueError("Model output was empty")
    try:
        return json.loads(candidate)
    except (ValueError, RecursionError):
        pass

    # tolerate prose around a single object or array
    for opener, closer in (("{", "}"), ("[", "]")):
        start = candidate.find(opener)
        end = candidate.rfind(closer)
        if start != -1 and end > start:
            try:
                return json.loads(candidate[start : end + 1])
            except (ValueError, RecursionError):
                continue
    raise ValueError("Model output did not contain valid JSON")


__all__ = ["extract_json_payload", "strip_code_fence"]
