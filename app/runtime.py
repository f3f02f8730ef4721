"""Runtime container owning the engine and the state shared across requests."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

import httpx

from app.chat_context import ContextStore
from app.settings import ServerSettings
from app.writeback import WritebackMailbox
from brain.agent import ConfigurationManager
from brain.coordinator import GenerationCoordinator
from brain.engine import Agent
from brain.relay import StreamRelay
from utils.settings import AgentConfiguration, load_settings, save_settings


@dataclass
class RuntimeState:
    """Everything a request handler may touch, wired around one engine."""

    settings: ServerSettings
    agent: Agent
    contexts: ContextStore
    writebacks: WritebackMailbox
    configuration: ConfigurationManager
    coordinator: GenerationCoordinator
    relay: StreamRelay
    load_config: Callable[[], AgentConfiguration] = load_settings
    save_config: Callable[[AgentConfiguration], AgentConfiguration] = save_settings
    port: int | None = None

    def reload_configuration(self) -> AgentConfiguration:
        config = self.load_config()
        self.configuration.reconfigure(config)
        return config

    async def aclose(self) -> None:
        await self.agent.aclose()


def build_runtime(
    settings: ServerSettings | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
    load_config: Callable[[], AgentConfiguration] | None = None,
    save_config: Callable[[AgentConfiguration], AgentConfiguration] | None = None,
) -> RuntimeState:
    settings = settings or ServerSettings.load()
    agent = Agent(transport=transport, timeout=settings.engine_timeout, event_buffer=settings.event_buffer)
    contexts = ContextStore(agent)
    configuration = ConfigurationManager(agent, contexts)
    return RuntimeState(
        settings=settings,
        agent=agent,
        contexts=contexts,
        writebacks=WritebackMailbox(),
        configuration=configuration,
        coordinator=GenerationCoordinator(agent, grace_period=settings.abort_timeout),
        relay=StreamRelay(agent, configuration),
        load_config=load_config or load_settings,
        save_config=save_config or save_settings,
    )


__all__ = ["RuntimeState", "build_runtime"]
