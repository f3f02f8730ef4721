"""Per-file, consume-once mailbox for generated code awaiting an editor."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Mapping

from app.chat_context import parse_optional_int, parse_optional_str
from brain.errors import ValidationError

logger = logging.getLogger("wingman.writeback")


@dataclass(frozen=True)
class WritebackPayload:
    file: str | None = None
    line: int | None = None
    code: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "WritebackPayload":
        if not isinstance(payload, Mapping):
            return cls()
        return cls(
            file=parse_optional_str(payload.get("file")),
            line=parse_optional_int(payload.get("line")),
            code=parse_optional_str(payload.get("code")),
        )

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


EMPTY_WRITEBACK = WritebackPayload()


class WritebackMailbox:
    """At most one outstanding payload per file; a read removes it."""

    def __init__(self) -> None:
        self._slots: dict[str, WritebackPayload] = {}

    def put(self, payload: WritebackPayload) -> None:
        if not payload.file:
            raise ValidationError("file is required")
        if payload.file in self._slots:
            logger.debug("Replacing unread writeback for %s", payload.file)
        self._slots[payload.file] = payload

    def take(self, file: str) -> WritebackPayload:
        return self._slots.pop(file, EMPTY_WRITEBACK)

    def pending(self) -> list[str]:
        return sorted(self._slots)

    def __len__(self) -> int:
        return len(self._slots)


__all__ = ["EMPTY_WRITEBACK", "WritebackMailbox", "WritebackPayload"]
