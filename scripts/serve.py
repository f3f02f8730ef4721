"""Launch the Wingman inference server and publish its port.

The server prefers a fixed port so editor extensions can guess it; when that
port is taken it binds an ephemeral one. Either way the resolved port is
written to a well-known file in the temp directory.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path

import uvicorn

from app.runtime import build_runtime
from app.settings import DEFAULT_PORT, ServerSettings
from main import create_app
from utils.port import choose_port, remove_port_file, write_port_file

logger = logging.getLogger("wingman.serve")


def main(argv: list[str] | None = None) -> int:
    settings = ServerSettings.load()
    parser = argparse.ArgumentParser(description="Run the Wingman inference server.")
    parser.add_argument("--host", default=settings.host, help="Interface to bind (default 127.0.0.1).")
    parser.add_argument("--port", type=int, default=settings.port, help=f"Preferred port (default {DEFAULT_PORT}).")
    parser.add_argument("--port-file", type=Path, default=settings.port_file, help="Where to publish the bound port.")
    parser.add_argument("--settings", type=Path, help="Override the agent settings file location.")
    parser.add_argument("--log-level", default=settings.log_level, help="Python logging level (default INFO).")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if args.settings:
        os.environ["WINGMAN_SETTINGS_PATH"] = str(args.settings)

    port = choose_port(args.port, args.host)
    runtime = build_runtime(settings)
    runtime.port = port
    app = create_app(runtime)
    port_file: Path | None = None
    try:
        port_file = write_port_file(port, args.port_file)
        logger.info("Published port %s to %s", port, port_file)
    except OSError as exc:
        logger.warning("Failed to write port file %s: %s", args.port_file, exc)

    logger.info("Wingman inference server starting at http://%s:%s", args.host, port)
    try:
        uvicorn.run(app, host=args.host, port=port, log_level=str(args.log_level).lower())
    finally:
        if port_file is not None:
            remove_port_file(port, port_file)
    return 0


if __name__ == "__main__":
    sys.exit(main())
