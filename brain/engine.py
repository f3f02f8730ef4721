"""Stateful chat engine shared by every generation request.

Only one run may hold the engine at a time. Callers observe progress through
bounded :class:`EventChannel` subscriptions; a slow subscriber suspends the
engine's emission rather than growing an in-memory buffer.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Mapping, Union
from urllib.parse import urlsplit

import httpx

from brain.errors import EngineBusy, EngineFailure, GenerationAborted
from brain.models import ANTHROPIC_MESSAGES, ModelDescriptor
from utils.sse import DONE_TOKEN, SSEDecoder

logger = logging.getLogger("wingman.engine")

DEFAULT_EVENT_BUFFER = 256
NO_API_KEY = "none"
ANTHROPIC_VERSION = "2023-06-01"


@dataclass(frozen=True)
class AgentStart:
    prompt: str


@dataclass(frozen=True)
class TextDelta:
    delta: str


@dataclass(frozen=True)
class AgentEnd:
    text: str
    error: str | None = None
    aborted: bool = False


AgentEvent = Union[AgentStart, TextDelta, AgentEnd]


class EventChannel:
    """Bounded single-consumer queue of engine events.

    ``finish`` lets the consumer drain what is already queued and then stop;
    ``close`` drops everything, unsubscribes, and releases a blocked sender.
    """

    def __init__(self, maxsize: int = DEFAULT_EVENT_BUFFER, *, on_close: Callable[["EventChannel"], None] | None = None) -> None:
        self._items: deque[AgentEvent] = deque()
        self._maxsize = max(1, int(maxsize))
        self._readable = asyncio.Event()
        self._writable = asyncio.Event()
        self._writable.set()
        self._finished = False
        self._closed = False
        self._on_close = on_close

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        return len(self._items)

    async def send(self, event: AgentEvent) -> None:
        """Queue ``event``, waiting while the channel is full."""
        while not self._closed and len(self._items) >= self._maxsize:
            self._writable.clear()
            await self._writable.wait()
        if self._closed or self._finished:
            return
        self._items.append(event)
        self._readable.set()

    def offer(self, event: AgentEvent) -> bool:
        """Queue ``event`` without waiting; returns False when it was dropped."""
        if self._closed or self._finished or len(self._items) >= self._maxsize:
            return False
        self._items.append(event)
        self._readable.set()
        return True

    def finish(self) -> None:
        self._finished = True
        self._readable.set()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._items.clear()
        self._readable.set()
        self._writable.set()
        if self._on_close is not None:
            callback, self._on_close = self._on_close, None
            callback(self)

    def __aiter__(self) -> AsyncIterator[AgentEvent]:
        return self

    async def __anext__(self) -> AgentEvent:
        while True:
            if self._closed:
                raise StopAsyncIteration
            if self._items:
                event = self._items.popleft()
                self._writable.set()
                return event
            if self._finished:
                raise StopAsyncIteration
            self._readable.clear()
            await self._readable.wait()


class Agent:
    """Single conversational engine with abortable, single-flight runs."""

    def __init__(
        self,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 60.0,
        event_buffer: int = DEFAULT_EVENT_BUFFER,
    ) -> None:
        self.model: ModelDescriptor | None = None
        self.system_prompt = ""
        self.messages: list[dict[str, str]] = []
        self.temperature = 0.2
        self.get_api_key: Callable[[str], str] = lambda provider: NO_API_KEY
        self._transport = transport
        self._timeout = timeout
        self._event_buffer = event_buffer
        self._client: httpx.AsyncClient | None = None
        self._channels: list[EventChannel] = []
        self._ticket: object | None = None
        self._run_task: asyncio.Task[str] | None = None
        self._aborted = False
        self._idle_waiters: list[asyncio.Future[None]] = []

    # ------------------------------------------------------------------ state

    @property
    def is_streaming(self) -> bool:
        return self._ticket is not None

    def set_model(self, model: ModelDescriptor) -> None:
        self.model = model

    def set_system_prompt(self, prompt: str) -> None:
        self.system_prompt = prompt

    def clear_messages(self) -> None:
        self.messages.clear()

    def subscribe(self) -> EventChannel:
        channel = EventChannel(self._event_buffer, on_close=self._unsubscribe)
        self._channels.append(channel)
        return channel

    def _unsubscribe(self, channel: EventChannel) -> None:
        try:
            self._channels.remove(channel)
        except ValueError:
            pass

    @property
    def subscriber_count(self) -> int:
        return len(self._channels)

    # -------------------------------------------------------------- run slot

    def reserve(self) -> object:
        """Claim the run slot synchronously and return the ticket that owns it."""
        if self._ticket is not None:
            raise EngineBusy()
        ticket = object()
        self._ticket = ticket
        self._aborted = False
        return ticket

    def release(self, ticket: object) -> None:
        """Give back an unused reservation."""
        if self._ticket is ticket and self._run_task is None:
            self._ticket = None
            self._notify_idle()

    def abort(self) -> None:
        """Stop the active run or drop a pending reservation. No-op when idle."""
        if self._ticket is None:
            return
        self._aborted = True
        if self._run_task is not None:
            logger.info("Aborting active generation")
            self._run_task.cancel()
            return
        logger.info("Releasing unused generation reservation")
        self._ticket = None
        self._notify_idle()

    async def wait_for_idle(self) -> None:
        if self._ticket is None:
            return
        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._idle_waiters.append(waiter)
        try:
            await waiter
        finally:
            if waiter in self._idle_waiters:
                self._idle_waiters.remove(waiter)

    def _notify_idle(self) -> None:
        waiters, self._idle_waiters = self._idle_waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(None)

    # -------------------------------------------------------------- prompting

    async def prompt(self, text: str, *, ticket: object | None = None) -> str:
        """Run one turn and return the assistant's full reply.

        Without a ticket the engine must be idle. A ticket that no longer owns
        the slot means the reservation was preempted.
        """
        if ticket is None:
            ticket = self.reserve()
        elif ticket is not self._ticket:
            raise GenerationAborted("Generation was preempted before it started")
        if self._run_task is not None:
            raise EngineBusy()
        model = self.model
        if model is None:
            self.release(ticket)
            raise EngineFailure("No model configured")

        self.messages.append({"role": "user", "content": text})
        history = list(self.messages)
        run = asyncio.create_task(self._run(model, text, history))
        self._run_task = run
        reply = ""
        error: str | None = None
        try:
            try:
                reply = await run
            except asyncio.CancelledError:
                if not self._aborted:
                    run.cancel()
                    raise
                raise GenerationAborted() from None
            if self._aborted:
                raise GenerationAborted()
        except GenerationAborted:
            self._drop_pending_turn(history)
            raise
        except EngineFailure as exc:
            error = exc.message
            self._drop_pending_turn(history)
            raise
        finally:
            self._run_task = None
            aborted = self._aborted
            if self._ticket is ticket:
                self._ticket = None
            self._broadcast_nowait(AgentEnd(text=reply, error=error, aborted=aborted))
            self._notify_idle()
        if self.messages and self.messages[-1] is history[-1]:
            self.messages.append({"role": "assistant", "content": reply})
        else:
            logger.debug("History was reset during the run; dropping the reply from history")
        return reply

    def _drop_pending_turn(self, history: list[dict[str, str]]) -> None:
        if self.messages and self.messages[-1] is history[-1]:
            self.messages.pop()

    async def _run(self, model: ModelDescriptor, text: str, history: list[dict[str, str]]) -> str:
        await self._emit(AgentStart(prompt=text))
        parts: list[str] = []
        try:
            if model.api == ANTHROPIC_MESSAGES:
                stream = self._stream_anthropic(model, history)
            else:
                stream = self._stream_openai(model, history)
            async for piece in stream:
                parts.append(piece)
                await self._emit(TextDelta(delta=piece))
        except EngineFailure:
            raise
        except httpx.HTTPError as exc:
            logger.warning("Streaming request to %s failed: %s", model.provider, exc)
            raise EngineFailure(str(exc) or exc.__class__.__name__) from exc
        return "".join(parts)

    async def _emit(self, event: AgentEvent) -> None:
        for channel in list(self._channels):
            await channel.send(event)

    def _broadcast_nowait(self, event: AgentEvent) -> None:
        for channel in list(self._channels):
            channel.offer(event)

    # -------------------------------------------------------------- providers

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                transport=self._transport,
                timeout=httpx.Timeout(self._timeout, read=None),
            )
        return self._client

    def _api_key(self, model: ModelDescriptor) -> str | None:
        key = self.get_api_key(model.provider)
        if not key or key == NO_API_KEY:
            return None
        return key

    @staticmethod
    def completions_url(model: ModelDescriptor) -> str:
        base = model.base_url.rstrip("/")
        if urlsplit(base).path in ("", "/"):
            base = f"{base}/v1"
        return f"{base}/chat/completions"

    async def _stream_openai(self, model: ModelDescriptor, history: list[dict[str, str]]) -> AsyncIterator[str]:
        messages = [{"role": "system", "content": self.system_prompt}, *history]
        payload = {
            "model": model.id,
            "messages": messages,
            "stream": True,
            "temperature": self.temperature,
            "max_tokens": model.max_tokens,
        }
        headers = {"content-type": "application/json"}
        key = self._api_key(model)
        if key:
            headers["authorization"] = f"Bearer {key}"
        async for chunk in self._post_sse(model, self.completions_url(model), payload, headers):
            if chunk.get("error"):
                raise EngineFailure(_error_text(chunk["error"]))
            token = _extract_openai_token(chunk)
            if token:
                yield token

    async def _stream_anthropic(self, model: ModelDescriptor, history: list[dict[str, str]]) -> AsyncIterator[str]:
        payload = {
            "model": model.id,
            "system": self.system_prompt,
            "messages": history,
            "stream": True,
            "temperature": self.temperature,
            "max_tokens": model.max_tokens,
        }
        headers = {"content-type": "application/json", "anthropic-version": ANTHROPIC_VERSION}
        key = self._api_key(model)
        if key:
            headers["x-api-key"] = key
        url = f"{model.base_url.rstrip('/')}/messages"
        async for chunk in self._post_sse(model, url, payload, headers):
            kind = chunk.get("type")
            if kind == "error":
                raise EngineFailure(_error_text(chunk.get("error")))
            if kind == "message_stop":
                break
            if kind == "content_block_delta":
                delta = chunk.get("delta") or {}
                if delta.get("type") == "text_delta" and isinstance(delta.get("text"), str) and delta["text"]:
                    yield delta["text"]

    async def _post_sse(
        self,
        model: ModelDescriptor,
        url: str,
        payload: Mapping[str, Any],
        headers: Mapping[str, str],
    ) -> AsyncIterator[dict[str, Any]]:
        logger.debug("Streaming %s/%s from %s", model.provider, model.id, url)
        async with self._http().stream("POST", url, json=payload, headers=headers) as response:
            if response.status_code >= 400:
                body = (await response.aread()).decode("utf-8", errors="replace").strip()
                raise EngineFailure(f"{model.provider} returned {response.status_code}: {body[:500]}")
            decoder = SSEDecoder()
            async for line in response.aiter_lines():
                data = decoder.feed(line)
                if data is None:
                    continue
                if data == DONE_TOKEN:
                    return
                try:
                    chunk = json.loads(data)
                except json.JSONDecodeError:  # pragma: no cover - malformed chunk
                    logger.debug("Skipping malformed stream chunk: %r", data[:120])
                    continue
                if isinstance(chunk, dict):
                    yield chunk
            tail = decoder.flush()
            if tail and tail != DONE_TOKEN:
                try:
                    chunk = json.loads(tail)
                except json.JSONDecodeError:  # pragma: no cover - malformed chunk
                    return
                if isinstance(chunk, dict):
                    yield chunk

    async def aclose(self) -> None:
        self.abort()
        if self._client is not None:
            await self._client.aclose()
            self._client = None


def _extract_openai_token(payload: Mapping[str, Any]) -> str:
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        return ""
    choice = choices[0] or {}
    delta = choice.get("delta")
    if isinstance(delta, Mapping):
        content = delta.get("content")
        if isinstance(content, str):
            return content
    text_token = choice.get("text")
    if isinstance(text_token, str):
        return text_token
    return ""


def _error_text(error: Any) -> str:
    if isinstance(error, Mapping):
        message = error.get("message")
        if isinstance(message, str) and message:
            return message
    if isinstance(error, str) and error:
        return error
    return "Inference request failed"


__all__ = [
    "NO_API_KEY",
    "Agent",
    "AgentEnd",
    "AgentEvent",
    "AgentStart",
    "EventChannel",
    "TextDelta",
]
