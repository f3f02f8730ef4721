"""Tests for the per-file writeback mailbox."""

from __future__ import annotations

import unittest

from app.writeback import EMPTY_WRITEBACK, WritebackMailbox, WritebackPayload
from brain.errors import ValidationError


class WritebackMailboxTests(unittest.TestCase):
    def setUp(self) -> None:
        self.mailbox = WritebackMailbox()

    def test_payload_is_delivered_exactly_once(self) -> None:
        payload = WritebackPayload(file="a.py", line=4, code="print(1)")
        self.mailbox.put(payload)

        self.assertEqual(self.mailbox.take("a.py"), payload)
        self.assertIs(self.mailbox.take("a.py"), EMPTY_WRITEBACK)
        self.assertEqual(len(self.mailbox), 0)

    def test_newer_payload_replaces_unread_one(self) -> None:
        self.mailbox.put(WritebackPayload(file="a.py", code="old"))
        self.mailbox.put(WritebackPayload(file="a.py", code="new"))

        self.assertEqual(self.mailbox.take("a.py").code, "new")

    def test_files_are_independent(self) -> None:
        self.mailbox.put(WritebackPayload(file="a.py", code="a"))
        self.mailbox.put(WritebackPayload(file="b.py", code="b"))

        self.assertEqual(self.mailbox.pending(), ["a.py", "b.py"])
        self.assertEqual(self.mailbox.take("b.py").code, "b")
        self.assertEqual(self.mailbox.pending(), ["a.py"])

    def test_missing_file_is_rejected(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            self.mailbox.put(WritebackPayload.from_payload({"code": "x"}))
        self.assertEqual(ctx.exception.message, "file is required")

    def test_line_accepts_any_integer(self) -> None:
        self.assertEqual(WritebackPayload.from_payload({"file": "a.py", "line": -3}).line, -3)
        self.assertEqual(WritebackPayload.from_payload({"file": "a.py", "line": 12.0}).line, 12)
        self.assertIsNone(WritebackPayload.from_payload({"file": "a.py", "line": "4"}).line)
        self.assertIsNone(WritebackPayload.from_payload({"file": "a.py", "line": True}).line)

    def test_empty_sentinel_serializes_to_nulls(self) -> None:
        self.assertEqual(EMPTY_WRITEBACK.as_dict(), {"file": None, "line": None, "code": None})


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
