"""Endpoint tests for the HTTP façade."""

from __future__ import annotations

import json
import unittest

import httpx

from brain.errors import NOT_CONFIGURED_MESSAGE
from engine_stubs import ScriptedProvider, decode_sse, make_runtime
from main import create_app
from utils.settings import AgentConfiguration


class ServerTestCase(unittest.IsolatedAsyncioTestCase):
    configure = True

    async def asyncSetUp(self) -> None:
        self.provider = ScriptedProvider()
        self.runtime = make_runtime(self.provider) if self.configure else make_runtime(self.provider, config=None)
        self.app = create_app(self.runtime)
        self._transport = httpx.ASGITransport(app=self.app)
        self._client = httpx.AsyncClient(transport=self._transport, base_url="http://testserver")

    async def asyncTearDown(self) -> None:
        await self._client.aclose()
        await self._transport.aclose()
        await self.runtime.aclose()


class HealthAndRoutingTests(ServerTestCase):
    async def test_health_reports_port_and_model(self) -> None:
        response = await self._client.get("/health")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"ok": True, "port": 7891, "model": "gpt-4.1-mini"})

    async def test_health_prefers_bound_port(self) -> None:
        self.runtime.port = 50123
        response = await self._client.get("/health")
        self.assertEqual(response.json()["port"], 50123)

    async def test_health_reports_port_from_server_scope(self) -> None:
        async with httpx.AsyncClient(transport=self._transport, base_url="http://testserver:50999") as client:
            response = await client.get("/health")

        self.assertEqual(response.json()["port"], 50999)
        self.assertEqual(self.runtime.port, 50999)

    async def test_unknown_route_is_not_found(self) -> None:
        response = await self._client.get("/nope")

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json(), {"error": "Not found"})

    async def test_wrong_method_is_not_found(self) -> None:
        response = await self._client.delete("/context")

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json(), {"error": "Not found"})

    async def test_abort_when_idle_is_ok(self) -> None:
        response = await self._client.post("/abort")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"ok": True})


class ContextEndpointTests(ServerTestCase):
    async def test_context_round_trip_replaces_wholesale(self) -> None:
        await self._client.post("/context", json={"file": "a.py", "line": 3, "extra": True})
        first = await self._client.get("/context")
        await self._client.post("/context", json={"selection": "x"})
        second = await self._client.get("/context")

        self.assertEqual(first.json(), {"file": "a.py", "line": 3, "selection": None, "surroundingCode": None})
        self.assertEqual(second.json(), {"file": None, "line": None, "selection": "x", "surroundingCode": None})

    async def test_invalid_json_clears_context(self) -> None:
        await self._client.post("/context", json={"file": "a.py"})
        response = await self._client.post(
            "/context", content=b"{oops", headers={"content-type": "application/json"}
        )

        self.assertEqual(response.json(), {"ok": True})
        self.assertIsNone((await self._client.get("/context")).json()["file"])


class GenerateEndpointTests(ServerTestCase):
    async def test_generate_streams_deltas_then_done(self) -> None:
        self.provider.queue(["Hel", "lo"])

        response = await self._client.post("/generate", json={"prompt": "say hello"})

        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.headers["content-type"].startswith("text/event-stream"))
        self.assertEqual(response.headers["cache-control"], "no-cache")
        self.assertEqual(decode_sse(response.text), ["Hel", "lo", "[DONE]"])
        self.assertEqual(self.provider.requests[0]["messages"][-1], {"role": "user", "content": "say hello"})
        self.assertFalse(self.runtime.agent.is_streaming)

    async def test_history_accumulates_until_context_changes(self) -> None:
        self.provider.queue(["one"])
        self.provider.queue(["two"])

        await self._client.post("/generate", json={"prompt": "first"})
        await self._client.post("/generate", json={"prompt": "second"})
        self.assertEqual(len(self.provider.requests[1]["messages"]), 4)

        await self._client.post("/context", json={"file": "b.py"})
        self.assertEqual(self.runtime.agent.messages, [])

    async def test_missing_or_blank_prompt_is_rejected(self) -> None:
        for body in ({}, {"prompt": "   "}, {"prompt": 12}, ["prompt"]):
            response = await self._client.post("/generate", json=body)
            self.assertEqual(response.status_code, 400)
            self.assertEqual(response.json(), {"error": "Prompt is required."})
        self.assertEqual(self.provider.requests, [])

    async def test_engine_failure_is_streamed_as_error_event(self) -> None:
        self.provider.queue_error(502)

        response = await self._client.post("/generate", json={"prompt": "hi"})

        self.assertEqual(response.status_code, 200)
        payloads = decode_sse(response.text)
        self.assertEqual(len(payloads), 1)
        self.assertIn("502", json.loads(payloads[0])["error"])

    async def test_inline_requires_context(self) -> None:
        response = await self._client.get("/inline")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"error": "No context. Call POST /context first."})

    async def test_inline_streams_completion_for_cursor(self) -> None:
        self.provider.queue(["return x"])
        await self._client.post(
            "/context",
            json={"file": "a.ts", "line": 10, "selection": "fo", "surroundingCode": "function f(x) {\n  "},
        )

        response = await self._client.get("/inline")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(decode_sse(response.text), ["return x", "[DONE]"])
        messages = self.provider.requests[0]["messages"]
        self.assertIn("- File: a.ts", messages[0]["content"])
        self.assertTrue(messages[-1]["content"].startswith("Complete the code at the cursor position."))


class UnconfiguredServerTests(ServerTestCase):
    configure = False

    async def test_generate_is_unavailable(self) -> None:
        response = await self._client.post("/generate", json={"prompt": "hi"})

        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.json(), {"error": NOT_CONFIGURED_MESSAGE})
        self.assertFalse(self.runtime.agent.is_streaming)

    async def test_inline_is_unavailable_once_context_is_set(self) -> None:
        await self._client.post("/context", json={"file": "a.ts", "surroundingCode": "x"})

        response = await self._client.get("/inline")

        self.assertEqual(response.status_code, 503)

    async def test_health_reports_no_model(self) -> None:
        response = await self._client.get("/health")
        self.assertIsNone(response.json()["model"])


class WritebackEndpointTests(ServerTestCase):
    async def test_writeback_is_consumed_once(self) -> None:
        posted = await self._client.post("/writeback", json={"file": "a.py", "line": 2, "code": "x = 1"})
        first = await self._client.get("/writeback", params={"file": "a.py"})
        second = await self._client.get("/writeback", params={"file": "a.py"})

        self.assertEqual(posted.json(), {"ok": True})
        self.assertEqual(first.json(), {"file": "a.py", "line": 2, "code": "x = 1"})
        self.assertEqual(second.json(), {"file": None, "line": None, "code": None})

    async def test_writeback_requires_file(self) -> None:
        posted = await self._client.post("/writeback", json={"code": "x"})
        taken = await self._client.get("/writeback")

        self.assertEqual(posted.status_code, 400)
        self.assertEqual(posted.json(), {"error": "file is required"})
        self.assertEqual(taken.status_code, 400)
        self.assertEqual(taken.json(), {"error": "file query param is required"})


class SettingsEndpointTests(ServerTestCase):
    async def test_reload_config_applies_stored_settings(self) -> None:
        self.runtime.load_config = lambda: AgentConfiguration()

        response = await self._client.post("/reload-config")

        self.assertEqual(response.json(), {"ok": True})
        self.assertFalse(self.runtime.configuration.configured)
        generate = await self._client.post("/generate", json={"prompt": "hi"})
        self.assertEqual(generate.status_code, 503)

    async def test_put_settings_persists_and_reconfigures(self) -> None:
        response = await self._client.put(
            "/settings",
            json={"provider": "anthropic", "modelId": "claude-sonnet-4-0", "apiKey": "k", "temperature": 5},
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["temperature"], 1.0)
        self.assertEqual((await self._client.get("/settings")).json()["modelId"], "claude-sonnet-4-0")
        self.assertEqual((await self._client.get("/health")).json()["model"], "claude-sonnet-4-0")

    async def test_put_settings_with_unknown_provider_reports_error_on_generate(self) -> None:
        await self._client.put("/settings", json={"provider": "nope", "modelId": "x"})

        response = await self._client.post("/generate", json={"prompt": "hi"})

        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.json(), {"error": "Unknown provider 'nope'."})


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
