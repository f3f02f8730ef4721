"""Relay one engine run to one client as Server-Sent Events."""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncGenerator, Callable

from brain.agent import ConfigurationManager
from brain.engine import Agent, TextDelta
from brain.errors import GenerationAborted, WingmanError
from utils.sse import DONE_TOKEN, sse_error, sse_event

logger = logging.getLogger("wingman.relay")


class CancellationToken:
    """Idempotent cancel signal with removable listeners."""

    def __init__(self) -> None:
        self._cancelled = False
        self._listeners: list[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        listeners, self._listeners = self._listeners, []
        for listener in listeners:
            try:
                listener()
            except Exception:  # pragma: no cover - listeners are best effort
                logger.exception("Cancellation listener failed")

    def add_listener(self, listener: Callable[[], None]) -> None:
        if self._cancelled:
            listener()
            return
        self._listeners.append(listener)

    def remove_listener(self, listener: Callable[[], None]) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass


def _consume_result(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None and not isinstance(exc, GenerationAborted):
        logger.debug("Detached generation ended with %s", exc)


class StreamRelay:
    """Turns engine events into wire chunks for a single consumer."""

    def __init__(self, agent: Agent, configuration: ConfigurationManager) -> None:
        self._agent = agent
        self._configuration = configuration

    def relay(
        self,
        prompt: str,
        *,
        ticket: object | None = None,
        cancellation: CancellationToken | None = None,
    ) -> AsyncGenerator[str, None]:
        """Check preconditions and return the chunk stream.

        Raises ``NotConfigured`` before any stream is opened.
        """
        try:
            self._configuration.require_configured()
        except WingmanError:
            if ticket is not None:
                self._agent.release(ticket)
            raise
        return self._stream(prompt, ticket, cancellation or CancellationToken())

    async def _stream(self, prompt: str, ticket: object | None, token: CancellationToken) -> AsyncGenerator[str, None]:
        agent = self._agent
        channel = agent.subscribe()
        run = asyncio.create_task(agent.prompt(prompt, ticket=ticket))
        run.add_done_callback(lambda _task: channel.finish())

        def on_cancel() -> None:
            agent.abort()
            channel.close()

        token.add_listener(on_cancel)
        try:
            async for event in channel:
                if isinstance(event, TextDelta):
                    yield sse_event(event.delta)
            if token.cancelled:
                return
            try:
                await run
            except GenerationAborted:
                logger.info("Generation aborted; closing stream")
                return
            except Exception as exc:
                if token.cancelled:
                    return
                message = exc.message if isinstance(exc, WingmanError) else str(exc)
                logger.warning("Generation failed: %s", message)
                yield sse_error(message or "Inference request failed")
                return
            yield sse_event(DONE_TOKEN)
        finally:
            token.remove_listener(on_cancel)
            channel.close()
            if not run.done():
                agent.abort()
            run.add_done_callback(_consume_result)


__all__ = ["CancellationToken", "StreamRelay"]
