"""Port discovery shared by the server and its clients."""

from __future__ import annotations

import logging
import socket
from pathlib import Path

from app.settings import DEFAULT_PORT, default_port_file

logger = logging.getLogger("wingman.port")


def _port_available(host: str, port: int) -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as probe:
        try:
            probe.bind((host, port))
        except OSError:
            return False
    return True


def choose_port(preferred: int, host: str = "127.0.0.1") -> int:
    """Return ``preferred`` when it can be bound, otherwise an OS-assigned port."""
    if preferred and _port_available(host, preferred):
        return preferred
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as probe:
        probe.bind((host, 0))
        port = probe.getsockname()[1]
    logger.info("Port %s unavailable; using %s", preferred, port)
    return port


def write_port_file(port: int, path: Path | None = None) -> Path:
    target = path or default_port_file()
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(str(port), encoding="utf-8")
    return target


def read_port(path: Path | None = None, fallback: int = DEFAULT_PORT) -> int:
    """Read the published port, falling back when the file is missing or garbled."""
    target = path or default_port_file()
    try:
        return int(target.read_text(encoding="utf-8").strip())
    except (OSError, ValueError):
        return fallback


def remove_port_file(port: int, path: Path | None = None) -> None:
    """Delete the port file unless another instance has since overwritten it."""
    target = path or default_port_file()
    if read_port(target, fallback=-1) != port:
        return
    try:
        target.unlink()
    except OSError as exc:
        logger.debug("Failed to remove port file %s: %s", target, exc)


__all__ = ["choose_port", "read_port", "remove_port_file", "write_port_file"]
