"""Load and persist the user's agent settings file."""

from __future__ import annotations

import json
import logging
import math
import os
import sys
from dataclasses import asdict, dataclass, replace
from pathlib import Path
from typing import Any, Dict, Mapping

logger = logging.getLogger("wingman.settings")

SETTINGS_FILE_NAME = "wingman-settings.json"
DEFAULT_TEMPERATURE = 0.2


@dataclass(frozen=True)
class AgentConfiguration:
    """Engine identity as edited in the settings panel."""

    provider: str = ""
    modelId: str = ""
    backendUrl: str = "http://localhost:11434"
    apiKey: str = ""
    temperature: float = DEFAULT_TEMPERATURE

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


DEFAULT_SETTINGS = AgentConfiguration()


def clamp_temperature(value: Any, default: float = DEFAULT_TEMPERATURE) -> float:
    if isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(number):
        return default
    return max(0.0, min(1.0, number))


def normalize_settings(raw: Mapping[str, Any] | AgentConfiguration | None) -> AgentConfiguration:
    """Merge ``raw`` over the defaults, ignoring wrongly typed fields."""
    if isinstance(raw, AgentConfiguration):
        raw = raw.as_dict()
    if not isinstance(raw, Mapping):
        return DEFAULT_SETTINGS
    updates: Dict[str, Any] = {}
    for key in ("provider", "modelId", "backendUrl", "apiKey"):
        value = raw.get(key)
        if isinstance(value, str):
            updates[key] = value
    updates["temperature"] = clamp_temperature(raw.get("temperature"))
    return replace(DEFAULT_SETTINGS, **updates)


def _app_data_dir() -> Path:
    home = Path.home()
    if sys.platform == "darwin":
        return home / "Library" / "Application Support" / "Wingman"
    if os.name == "nt":
        return Path(os.getenv("APPDATA") or home / "AppData" / "Roaming") / "Wingman"
    return Path(os.getenv("XDG_CONFIG_HOME") or home / ".config") / "wingman"


def settings_path() -> Path:
    env_path = os.getenv("WINGMAN_SETTINGS_PATH")
    if env_path:
        return Path(env_path)
    return _app_data_dir() / SETTINGS_FILE_NAME


def load_settings(path: Path | None = None) -> AgentConfiguration:
    """Load settings from disk, falling back to defaults when absent or unreadable."""
    config_path = path or settings_path()
    if not config_path.exists():
        return DEFAULT_SETTINGS
    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except Exception as exc:
        logger.warning("Failed to load settings file %s: %s", config_path, exc)
        return DEFAULT_SETTINGS
    if not isinstance(data, dict):
        logger.warning("Settings file %s must contain a JSON object.", config_path)
        return DEFAULT_SETTINGS
    return normalize_settings(data)


def save_settings(settings: Mapping[str, Any] | AgentConfiguration, path: Path | None = None) -> AgentConfiguration:
    """Normalize and persist ``settings``; returns what was written."""
    normalized = normalize_settings(settings)
    config_path = path or settings_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(json.dumps(normalized.as_dict(), indent=2), encoding="utf-8")
    logger.info("Saved settings to %s", config_path)
    return normalized


__all__ = [
    "DEFAULT_SETTINGS",
    "AgentConfiguration",
    "clamp_temperature",
    "load_settings",
    "normalize_settings",
    "save_settings",
    "settings_path",
]
