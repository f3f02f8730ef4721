"""Server-Sent Events framing helpers."""

from __future__ import annotations

import json
from typing import Any

DONE_TOKEN = "[DONE]"


def sse_event(data: str) -> str:
    """Serialize a payload into one SSE frame, prefixing every line with ``data: ``."""
    return "\n".join(f"data: {line}" for line in data.split("\n")) + "\n\n"


def sse_error(message: str) -> str:
    return sse_event(json.dumps({"error": message}, ensure_ascii=False))


class SSEDecoder:
    """Incrementally rebuild SSE payloads from individual lines.

    ``feed`` returns the completed payload when a blank line terminates an
    event, otherwise ``None``. Comment lines and non-data fields are ignored.
    """

    def __init__(self) -> None:
        self._lines: list[str] = []

    def feed(self, line: str) -> str | None:
        line = line.rstrip("\r")
        if not line:
            return self.flush()
        if line.startswith(":"):
            return None
        if line.startswith("data:"):
            value = line[5:]
            if value.startswith(" "):
                value = value[1:]
            self._lines.append(value)
        return None

    def flush(self) -> str | None:
        if not self._lines:
            return None
        payload = "\n".join(self._lines)
        self._lines = []
        return payload


def parse_error_payload(payload: str) -> str | None:
    """Return the error message when ``payload`` is an ``{"error": ...}`` object."""
    if not payload.startswith("{"):
        return None
    try:
        data: Any = json.loads(payload)
    except json.JSONDecodeError:
        return None
    if isinstance(data, dict) and isinstance(data.get("error"), str):
        return data["error"]
    return None


__all__ = ["DONE_TOKEN", "SSEDecoder", "parse_error_payload", "sse_error", "sse_event"]
