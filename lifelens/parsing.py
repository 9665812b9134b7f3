"""
Parse JSON objects out of LLM completion text.

Models usually return clean JSON in JSON mode, but sometimes wrap it in
code fences or surround it with prose. Parsing is two explicit steps:

1. strict ``json.loads`` of the (fence-stripped) text
2. ``extract_json_object``: the first balanced ``{...}`` span that parses

If both fail, MalformedResponseError carries the raw text.
"""

import json
import logging
from typing import Optional

from .errors import MalformedResponseError

logger = logging.getLogger(__name__)


def strip_code_fences(text: str) -> str:
    """Remove a surrounding ```/```json fence, if present."""
    text = text.strip()
    if text.startswith("```"):
        lines = text.split("\n")
        if lines[0].startswith("```"):
            lines = lines[1:]
        if lines and lines[-1].strip() == "```":
            lines = lines[:-1]
        text = "\n".join(lines).strip()
    return text


def _balanced_end(text: str, start: int) -> Optional[int]:
    """Index just past the brace that closes text[start], or None.

    Braces inside JSON string literals are ignored.
    """
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
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
                return i + 1
    return None


def extract_json_object(text: str) -> Optional[dict]:
    """
    Find the first balanced ``{...}`` substring that parses as a JSON object.

    Candidates are tried left to right, so leading prose containing a stray
    brace does not hide a valid object later in the text.

    Returns:
        The parsed dict, or None if no candidate parses
    """
    start = text.find("{")
    while start != -1:
        end = _balanced_end(text, start)
        if end is None:
            return None
        try:
            data = json.loads(text[start:end])
        except json.JSONDecodeError:
            data = None
        if isinstance(data, dict):
            return data
        start = text.find("{", start + 1)
    return None


def parse_json_object(text: Optional[str]) -> dict:
    """
    Parse completion text into a dict.

    Raises:
        MalformedResponseError: Neither strict parsing nor extraction
            produced a JSON object. ``raw`` holds the original text.
    """
    raw = text or ""
    cleaned = strip_code_fences(raw)
    if cleaned:
        try:
            data = json.loads(cleaned)
        except json.JSONDecodeError:
            data = None
        if isinstance(data, dict):
            return data

        data = extract_json_object(cleaned)
        if data is not None:
            logger.debug("Recovered JSON object from surrounding text")
            return data

    preview = raw[:80].replace("\n", " ")
    raise MalformedResponseError(
        f"Response is not a JSON object: {preview!r}", raw=raw,
    )
