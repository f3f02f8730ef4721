"""Tests for the editor context store and prompt builders."""

from __future__ import annotations

import unittest

from app.chat_context import (
    ContextStore,
    EditorContext,
    build_fim_prompt,
    build_system_prompt,
    parse_optional_line,
)
from brain.engine import Agent


class EditorContextParsingTests(unittest.TestCase):
    def test_wrongly_typed_fields_become_none(self) -> None:
        context = EditorContext.from_payload({"file": 3, "line": "10", "selection": None, "surroundingCode": "x"})
        self.assertEqual(context, EditorContext(surroundingCode="x"))

    def test_non_object_payload_is_empty(self) -> None:
        self.assertTrue(EditorContext.from_payload(["file"]).is_empty)
        self.assertTrue(EditorContext.from_payload(None).is_empty)

    def test_line_accepts_non_negative_integers_only(self) -> None:
        self.assertEqual(parse_optional_line(0), 0)
        self.assertEqual(parse_optional_line(12.0), 12)
        self.assertIsNone(parse_optional_line(-1))
        self.assertIsNone(parse_optional_line(1.5))
        self.assertIsNone(parse_optional_line(True))


class ContextStoreTests(unittest.TestCase):
    def setUp(self) -> None:
        self.agent = Agent()
        self.store = ContextStore(self.agent)

    def test_last_write_wins_and_clears_missing_fields(self) -> None:
        self.store.set_context({"file": "a.py", "line": 3, "selection": "foo"})
        self.store.set_context({"file": "b.py"})

        self.assertEqual(self.store.get_context(), EditorContext(file="b.py"))

    def test_write_rebuilds_system_prompt_and_clears_history(self) -> None:
        self.agent.messages.append({"role": "user", "content": "earlier"})

        self.store.set_context({"file": "src/main.rs", "line": 7, "surroundingCode": "fn main() {}"})

        self.assertEqual(self.agent.messages, [])
        self.assertIn("- File: src/main.rs", self.agent.system_prompt)
        self.assertIn("- Line: 7", self.agent.system_prompt)
        self.assertIn("fn main() {}", self.agent.system_prompt)

    def test_store_without_agent_only_tracks_context(self) -> None:
        store = ContextStore()
        store.set_context(EditorContext(file="x"))
        self.assertEqual(store.get_context().file, "x")


class PromptBuilderTests(unittest.TestCase):
    def test_system_prompt_without_context(self) -> None:
        prompt = build_system_prompt(EditorContext())
        self.assertTrue(prompt.startswith("You are Wingman"))
        self.assertTrue(prompt.endswith("No editor context is currently available."))

    def test_system_prompt_quotes_selection(self) -> None:
        prompt = build_system_prompt(EditorContext(file="a.py", selection='say "hi"'))
        self.assertIn('- Selection: "say \\"hi\\""', prompt)
        self.assertIn("- Line: (none)", prompt)

    def test_fim_prompt_includes_selection_and_code(self) -> None:
        prompt = build_fim_prompt(EditorContext(file="a.py", selection="def f", surroundingCode="def f():\n    "))
        self.assertTrue(prompt.startswith("Complete the code at the cursor position."))
        self.assertIn("Selected text near cursor:\ndef f", prompt)
        self.assertTrue(prompt.endswith("def f():\n    "))

    def test_fim_prompt_without_selection(self) -> None:
        prompt = build_fim_prompt(EditorContext(file="a.py", surroundingCode="x"))
        self.assertIn("No text is selected.", prompt)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
