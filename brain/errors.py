"""Exception taxonomy shared by the engine, relay, and HTTP façade."""

from __future__ import annotations

NOT_CONFIGURED_MESSAGE = "Wingman not configured. Open the settings panel."


class WingmanError(Exception):
    """Base class for all service errors."""

    status_code: int = 500

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message())

    @property
    def message(self) -> str:
        return str(self.args[0]) if self.args else ""

    def default_message(self) -> str:
        return "Request failed"


class ValidationError(WingmanError):
    """A request was missing a required field or carried malformed input."""

    status_code = 400

    def default_message(self) -> str:
        return "Invalid request"


class NotConfigured(WingmanError):
    """The engine identity is unset or failed to apply."""

    status_code = 503

    def default_message(self) -> str:
        return NOT_CONFIGURED_MESSAGE


class Busy(WingmanError):
    """A previous generation did not stop within the grace period."""

    status_code = 409

    def default_message(self) -> str:
        return "Another request is still shutting down."


class NotFound(WingmanError):
    status_code = 404

    def default_message(self) -> str:
        return "Not found"


class ConfigurationError(WingmanError):
    """Raised when a provider/model pair cannot be resolved."""

    status_code = 503


class EngineFailure(WingmanError):
    """The engine failed while producing a response."""

    status_code = 502

    def default_message(self) -> str:
        return "Inference request failed"


class EngineBusy(WingmanError):
    """A prompt was submitted while another run held the engine."""

    status_code = 409

    def default_message(self) -> str:
        return "Engine is already streaming"


class GenerationAborted(WingmanError):
    """The active run was aborted before it completed."""

    status_code = 499

    def default_message(self) -> str:
        return "Generation aborted"


__all__ = [
    "NOT_CONFIGURED_MESSAGE",
    "Busy",
    "ConfigurationError",
    "EngineBusy",
    "EngineFailure",
    "GenerationAborted",
    "NotConfigured",
    "NotFound",
    "ValidationError",
    "WingmanError",
]
