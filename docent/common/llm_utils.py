"""Shared utilities for parsing LLM responses."""

from __future__ import annotations

import json
import re

_FENCE_RE = re.compile(r"^\s*```")


def parse_llm_json(raw: str) -> dict:
    """Parse a JSON object from an LLM response.

    Handles markdown code fences and chatty preamble text. Tries in order:
    1. Strip code fence lines, then json.loads
    2. Extract the substring between the first '{' and the last '}'
    3. Return an empty dict

    Non-object JSON (lists, scalars) is treated as unparseable.
    """
    if not raw:
        return {}

    text = "\n".join(
        line for line in raw.strip().split("\n") if not _FENCE_RE.match(line)
    )

    try:
        parsed = json.loads(text)
        if isinstance(parsed, dict):
            return parsed
    except json.JSONDecodeError:
        pass

    start = raw.find("{")
    end = raw.rfind("}") + 1
    if start >= 0 and end > start:
        try:
            parsed = json.loads(raw[start:end])
            if isinstance(parsed, dict):
                return parsed
        except json.JSONDecodeError:
            pass

    return {}
