"""Process-level runtime settings read from the environment."""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any

DEFAULT_PORT = 7891
ABORT_TIMEOUT_SECONDS = 2.0


def _parse_float(value: Any, default: float) -> float:
    if value in (None, ""):
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _parse_int(value: Any, default: int) -> int:
    if value in (None, ""):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _get_setting(env_var: str, default: Any = None) -> Any:
    env_value = os.getenv(env_var)
    if env_value not in (None, ""):
        return env_value
    return default


def default_port_file() -> Path:
    return Path(tempfile.gettempdir()) / "wingman.port"


@dataclass(frozen=True)
class ServerSettings:
    host: str
    port: int
    port_file: Path
    abort_timeout: float
    event_buffer: int
    engine_timeout: float
    log_level: str

    @classmethod
    def load(cls) -> "ServerSettings":
        host = str(_get_setting("WINGMAN_HOST", "127.0.0.1")).strip()
        port = _parse_int(_get_setting("WINGMAN_PORT"), DEFAULT_PORT)
        port_file = Path(_get_setting("WINGMAN_PORT_FILE", default_port_file()))
        abort_timeout = _parse_float(_get_setting("WINGMAN_ABORT_TIMEOUT"), ABORT_TIMEOUT_SECONDS)
        event_buffer = _parse_int(_get_setting("WINGMAN_EVENT_BUFFER"), 256)
        engine_timeout = _parse_float(_get_setting("WINGMAN_ENGINE_TIMEOUT"), 60.0)
        log_level = str(_get_setting("WINGMAN_LOG_LEVEL", "INFO")).strip().upper()
        return cls(
            host=host or "127.0.0.1",
            port=port if 0 <= port <= 65535 else DEFAULT_PORT,
            port_file=port_file,
            abort_timeout=abort_timeout if abort_timeout > 0 else ABORT_TIMEOUT_SECONDS,
            event_buffer=max(1, event_buffer),
            engine_timeout=engine_timeout if engine_timeout > 0 else 60.0,
            log_level=log_level or "INFO",
        )


__all__ = ["ABORT_TIMEOUT_SECONDS", "DEFAULT_PORT", "ServerSettings", "default_port_file"]
