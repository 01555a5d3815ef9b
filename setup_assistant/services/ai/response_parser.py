"""
AI Response Parsing
===================

Recovers the JSON object from free-text AI responses. Replies may be
wrapped in markdown fences or surrounded by prose ("Here is the
analysis: {...}"), so the first balanced ``{...}`` region is located
by scanning, honoring string literals and escapes, and then parsed.
"""

import json
import re
from typing import Any

from setup_assistant.utils.errors import AIResponseError

_FENCE = re.compile(r"```(?:json|JSON)?\s*([\s\S]*?)\s*```")


def strip_markdown_fences(text: str) -> str:
    """Return the body of the first fenced block, or the text unchanged."""
    match = _FENCE.search(text)
    return match.group(1) if match else text


def find_balanced_object(text: str, start: int = 0) -> tuple[int, int] | None:
    """
    Locate the first balanced ``{...}`` region at or after ``start``.

    Returns:
        (begin, end) slice bounds, or None when no region closes
    """
    begin = text.find("{", start)
    while begin != -1:
        depth = 0
        in_string = False
        escaped = False
        for idx in range(begin, len(text)):
            ch = text[idx]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return begin, idx + 1
        begin = text.find("{", begin + 1)
    return None


def extract_json_object(text: str) -> dict[str, Any]:
    """
    Parse the first JSON object found in an AI response.

    Args:
        text: Raw response text

    Returns:
        The decoded object

    Raises:
        AIResponseError: No balanced object, or it is not valid JSON
    """
    if not text or not text.strip():
        raise AIResponseError(message="AI response was empty")

    for candidate in (strip_markdown_fences(text), text):
        cursor = 0
        while True:
            bounds = find_balanced_object(candidate, cursor)
            if bounds is None:
                break
            begin, end = bounds
            try:
                data = json.loads(candidate[begin:end])
            except json.JSONDecodeError:
                # Prose like "{note}" before the real payload
                cursor = begin + 1
                continue
            if isinstance(data, dict):
                return data
            cursor = begin + 1

    raise AIResponseError(
        message="No valid JSON object found in AI response",
        details={"preview": text[:200]},
    )
