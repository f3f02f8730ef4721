"""Async client for talking to a running Wingman inference server."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, AsyncIterator, Mapping

import httpx

from app.chat_context import EditorContext
from app.writeback import WritebackPayload
from brain.errors import EngineFailure
from utils.port import read_port
from utils.sse import DONE_TOKEN, SSEDecoder, parse_error_payload

logger = logging.getLogger("wingman.client")


class WingmanRequestError(RuntimeError):
    """Raised when the server answers with a non-2xx status."""

    def __init__(self, status_code: int, body: str) -> None:
        super().__init__(f"Wingman request failed ({status_code}): {body}")
        self.status_code = status_code
        self.body = body


class WingmanClient:
    """Thin wrapper over the server's HTTP routes."""

    def __init__(
        self,
        base_url: str | None = None,
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
        port_file: Path | None = None,
    ) -> None:
        if base_url is None:
            base_url = f"http://127.0.0.1:{read_port(port_file)}"
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            transport=transport,
            timeout=httpx.Timeout(timeout, read=None),
        )

    async def __aenter__(self) -> "WingmanClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _json(self, method: str, path: str, **kwargs: Any) -> Any:
        response = await self._client.request(method, path, **kwargs)
        if response.is_error:
            raise WingmanRequestError(response.status_code, response.text)
        return response.json()

    async def health(self) -> dict[str, Any]:
        return await self._json("GET", "/health")

    async def get_context(self) -> EditorContext:
        return EditorContext.from_payload(await self._json("GET", "/context"))

    async def post_context(self, context: EditorContext | Mapping[str, Any]) -> None:
        payload = context.as_dict() if isinstance(context, EditorContext) else dict(context)
        await self._json("POST", "/context", json=payload)

    async def abort(self) -> None:
        await self._json("POST", "/abort")

    async def post_writeback(self, payload: WritebackPayload) -> None:
        await self._json("POST", "/writeback", json=payload.as_dict())

    async def take_writeback(self, file: str) -> WritebackPayload:
        return WritebackPayload.from_payload(await self._json("GET", "/writeback", params={"file": file}))

    async def reload_config(self) -> None:
        await self._json("POST", "/reload-config")

    def generate(self, prompt: str) -> AsyncIterator[str]:
        """Yield text deltas for ``prompt`` until the server sends ``[DONE]``."""
        return self._stream("POST", "/generate", json={"prompt": prompt})

    def inline(self) -> AsyncIterator[str]:
        return self._stream("GET", "/inline", headers={"accept": "text/event-stream"})

    async def _stream(self, method: str, path: str, **kwargs: Any) -> AsyncIterator[str]:
        async with self._client.stream(method, path, **kwargs) as response:
            if response.is_error:
                body = (await response.aread()).decode("utf-8", errors="replace")
                raise WingmanRequestError(response.status_code, body)
            decoder = SSEDecoder()
            async for line in response.aiter_lines():
                payload = decoder.feed(line)
                if payload is None:
                    continue
                if payload == DONE_TOKEN:
                    return
                error = parse_error_payload(payload)
                if error is not None:
                    raise EngineFailure(error)
                yield payload
        logger.debug("Stream %s ended without a terminal event", path)


__all__ = ["WingmanClient", "WingmanRequestError"]
