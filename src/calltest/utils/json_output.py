"""Normalization of JSON emitted by completion models."""

from __future__ import annotations

import json
import re
from typing import Any

_FENCE_OPEN = re.compile(r"^```(?:json)?\s*\n?", re.IGNORECASE)
_FENCE_CLOSE = re.compile(r"\n?```$")


def strip_code_fences(text: str) -> str:
    """Remove a surrounding Markdown code fence, if any.

    Models asked for raw JSON still occasionally wrap it in ```json ... ```.
    Text without a leading fence is returned trimmed but otherwise unchanged.
    """
    trimmed = text.strip()
    if not trimmed.startswith("```"):
        return trimmed
    trimmed = _FENCE_OPEN.sub("", trimmed, count=1)
    trimmed = _FENCE_CLOSE.sub("", trimmed, count=1)
    return trimmed.strip()


def parse_json_output(text: str) -> Any:
    """Strip code fences and decode JSON.

    Raises:
        ValueError: If the normalized text is not valid JSON, including
            integer literals past the interpreter's digit limit.
    """
    return json.loads(strip_code_fences(text))
