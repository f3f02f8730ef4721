"""Editor context snapshot and the prompts built from it."""

from __future__ import annotations

import json
import math
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Any, Mapping

if TYPE_CHECKING:  # pragma: no cover
    from brain.engine import Agent

ASSISTANT_PREAMBLE = (
    "You are Wingman, a concise coding assistant focused on safe, minimal edits.",
    "Prefer direct code answers and preserve the user's existing style.",
)


def parse_optional_str(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def parse_optional_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and math.isfinite(value) and value.is_integer():
        return int(value)
    return None


def parse_optional_line(value: Any) -> int | None:
    line = parse_optional_int(value)
    return line if line is not None and line >= 0 else None


@dataclass(frozen=True)
class EditorContext:
    """Cursor-level snapshot reported by an editor extension."""

    file: str | None = None
    line: int | None = None
    selection: str | None = None
    surroundingCode: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "EditorContext":
        """Parse a request body; absent or wrongly typed fields become ``None``."""
        if not isinstance(payload, Mapping):
            return cls()
        return cls(
            file=parse_optional_str(payload.get("file")),
            line=parse_optional_line(payload.get("line")),
            selection=parse_optional_str(payload.get("selection")),
            surroundingCode=parse_optional_str(payload.get("surroundingCode")),
        )

    @property
    def is_empty(self) -> bool:
        return not (self.file or self.line or self.selection or self.surroundingCode)

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


class ContextStore:
    """Holds the single current editor context.

    Every write replaces the snapshot wholesale and resets the engine's
    conversation so the next prompt is built from the new context. A run that
    is already streaming keeps the context it started with.
    """

    def __init__(self, agent: "Agent | None" = None) -> None:
        self._agent = agent
        self._current = EditorContext()

    def set_context(self, update: EditorContext | Mapping[str, Any] | None) -> EditorContext:
        context = update if isinstance(update, EditorContext) else EditorContext.from_payload(update)
        self._current = context
        if self._agent is not None:
            self._agent.set_system_prompt(build_system_prompt(context))
            self._agent.clear_messages()
        return context

    def get_context(self) -> EditorContext:
        # Frozen dataclass: handing out the instance cannot leak mutation.
        return self._current


def build_system_prompt(context: EditorContext) -> str:
    parts = list(ASSISTANT_PREAMBLE)
    if context.is_empty:
        parts.append("No editor context is currently available.")
        return "\n\n".join(parts)
    parts.append("Current editor context:")
    parts.append(f"- File: {context.file or '(none)'}")
    parts.append(f"- Line: {context.line if context.line is not None else '(none)'}")
    selection = json.dumps(context.selection, ensure_ascii=False) if context.selection else "(none)"
    parts.append(f"- Selection: {selection}")
    parts.append("\n".join(["Surrounding code:", "```", context.surroundingCode or "(none)", "```"]))
    return "\n\n".join(parts)


def build_fim_prompt(context: EditorContext) -> str:
    """Completion-style prompt used for inline suggestions."""
    selection = (
        f"Selected text near cursor:\n{context.selection}" if context.selection else "No text is selected."
    )
    return "\n\n".join(
        [
            "Complete the code at the cursor position.",
            "Return only the completion text with no markdown fences or explanations.",
            selection,
            "Surrounding code:",
            context.surroundingCode or "",
        ]
    )


__all__ = [
    "ContextStore",
    "EditorContext",
    "build_fim_prompt",
    "build_system_prompt",
    "parse_optional_int",
    "parse_optional_line",
    "parse_optional_str",
]
