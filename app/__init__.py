"""Application helper package."""

from . import chat_context, settings, writeback

__all__ = ["chat_context", "settings", "writeback"]
