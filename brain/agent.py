"""Apply engine identity changes and track whether the engine is usable."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from app.chat_context import ContextStore, build_system_prompt
from brain.engine import NO_API_KEY, Agent
from brain.errors import NOT_CONFIGURED_MESSAGE, ConfigurationError, NotConfigured
from brain.models import get_model
from utils.settings import AgentConfiguration, clamp_temperature

logger = logging.getLogger("wingman.agent")


@dataclass(frozen=True)
class ConfiguredState:
    configured: bool = False
    lastError: str | None = None


class ConfigurationManager:
    """Owns the Unconfigured/Configured state of the shared engine."""

    def __init__(self, agent: Agent, contexts: ContextStore) -> None:
        self._agent = agent
        self._contexts = contexts
        self._state = ConfiguredState()

    @property
    def state(self) -> ConfiguredState:
        return self._state

    @property
    def configured(self) -> bool:
        return self._state.configured

    @property
    def last_error(self) -> str | None:
        return self._state.lastError

    def active_model_id(self) -> str | None:
        if not self._state.configured or self._agent.model is None:
            return None
        return self._agent.model.id

    def require_configured(self) -> None:
        if not self._state.configured:
            raise NotConfigured(self._state.lastError or NOT_CONFIGURED_MESSAGE)

    def reconfigure(self, config: AgentConfiguration) -> ConfiguredState:
        """Switch the engine to ``config``. Failures are recorded, never raised."""
        if self._agent.is_streaming:
            # The in-flight run belongs to the previous identity.
            logger.info("Aborting active generation before reconfiguring")
            self._agent.abort()

        if not (config.provider and config.modelId):
            return self._mark_unconfigured(NOT_CONFIGURED_MESSAGE)

        try:
            model = get_model(config.provider, config.modelId)
        except ConfigurationError as exc:
            logger.warning("Rejected engine configuration: %s", exc.message)
            return self._mark_unconfigured(exc.message or NOT_CONFIGURED_MESSAGE)
        except Exception as exc:  # pragma: no cover - catalog bugs must not escape
            logger.exception("Unexpected error while resolving model")
            return self._mark_unconfigured(str(exc) or NOT_CONFIGURED_MESSAGE)

        if config.backendUrl:
            model = model.with_base_url(config.backendUrl)
        api_key = config.apiKey or NO_API_KEY
        self._agent.get_api_key = lambda provider: api_key
        self._agent.temperature = clamp_temperature(config.temperature)
        self._agent.set_model(model)
        self._reset_conversation()
        self._state = ConfiguredState(configured=True, lastError=None)
        logger.info("Engine configured: %s/%s at %s", model.provider, model.id, model.base_url)
        return self._state

    def _mark_unconfigured(self, message: str) -> ConfiguredState:
        self._reset_conversation()
        self._state = ConfiguredState(configured=False, lastError=message)
        logger.info("Engine not configured: %s", message)
        return self._state

    def _reset_conversation(self) -> None:
        self._agent.set_system_prompt(build_system_prompt(self._contexts.get_context()))
        self._agent.clear_messages()


__all__ = ["ConfigurationManager", "ConfiguredState"]
