"""Client-facing SSE frames and helpers reading upstream Gemini events."""

from __future__ import annotations

import json
import re
from typing import Any, Optional

DATA_PREFIX = "data: "
UPSTREAM_DONE = "[DONE]"
DONE_EVENT = b"data: [DONE]\n\n"
DEFAULT_UPSTREAM_ERROR = "API request failed"
ERROR_EXCERPT_CHARS = 200

# Order matters: backslash first so later escapes are not doubled.
_ESCAPES = (
    ("\\", "\\\\"),
    ('"', '\\"'),
    ("\n", "\\n"),
    ("\r", "\\r"),
    ("\t", "\\t"),
)
# Remaining C0 controls, plus lone surrogates (not encodable as UTF-8).
_UNSAFE_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\ud800-\udfff]")


def escape_text(text: str) -> str:
    for raw, escaped in _ESCAPES:
        text = text.replace(raw, escaped)
    return _UNSAFE_CHARS.sub(lambda m: "\\u%04x" % ord(m.group()), text)


def text_event(text: str) -> bytes:
    return f'data: {{"text": "{escape_text(text)}"}}\n\n'.encode("utf-8")


def error_event(message: str) -> bytes:
    return f'data: {{"error": {{"message": "{escape_text(message)}"}}}}\n\n'.encode(
        "utf-8"
    )


def parse_data_line(line: str) -> Optional[Any]:
    """Return the decoded JSON payload of an upstream ``data:`` line.

    ``None`` means the line carries nothing for the client: blank lines,
    comments and other SSE fields, the upstream ``[DONE]`` marker, and
    payloads that are not valid JSON.
    """
    trimmed = line.strip()
    if not trimmed.startswith(DATA_PREFIX):
        return None
    data = trimmed[len(DATA_PREFIX) :].strip()
    if data == UPSTREAM_DONE:
        return None
    try:
        return json.loads(data)
    except ValueError:
        return None


def extract_text(event: Any) -> str:
    """Concatenate the text parts of the first candidate, ``""`` when absent."""
    if not isinstance(event, dict):
        return ""
    candidates = event.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        return ""
    first = candidates[0]
    content = first.get("content") if isinstance(first, dict) else None
    parts = content.get("parts") if isinstance(content, dict) else None
    if not isinstance(parts, list):
        return ""
    pieces = []
    for part in parts:
        if isinstance(part, dict):
            text = part.get("text")
            if text:
                pieces.append(str(text))
    return "".join(pieces)


def extract_error(event: Any) -> Optional[str]:
    if not isinstance(event, dict):
        return None
    error = event.get("error")
    if not error:
        return None
    message = error.get("message") if isinstance(error, dict) else None
    return str(message) if message else ""


def upstream_error_message(body: str) -> str:
    """Best-effort message from a rejected upstream response body."""
    try:
        parsed = json.loads(body)
    except ValueError:
        return body[:ERROR_EXCERPT_CHARS]
    return extract_error(parsed) or DEFAULT_UPSTREAM_ERROR
