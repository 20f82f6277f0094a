#!/usr/bin/env python3
"""
Live Mixer Bridge — server entry point.

Starts the HTTP/WebSocket server (``/osc``, ``/health``, ``/metrics``) and
the inbound OSC listener.

Mixer setup (OSC control surface):
    Device IP:          127.0.0.1
    Device port:        8000  (mixer SENDS to the bridge, --local-osc-port)
    Local listen port:  9000  (mixer RECEIVES from the bridge, --osc-port)

Usage:
    python scripts/run_bridge.py
    python scripts/run_bridge.py --port 3001 --osc-port 9001 -v

Every flag falls back to its ``MIXER_*`` environment variable (a ``.env``
file in the working directory is loaded first), then to the built-in
default.
"""

from __future__ import annotations

import argparse
import dataclasses
import logging
import os
import sys
from pathlib import Path

# Add project root to sys.path
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv  # noqa: E402

load_dotenv()

import uvicorn  # noqa: E402

from api.deps import set_config  # noqa: E402
from core.config import BridgeConfig  # noqa: E402
from infrastructure.logging_config import configure_logging, resolve_log_level  # noqa: E402

logger = logging.getLogger("run_bridge")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Live Mixer Bridge (WebSocket ↔ OSC ↔ FX files)")
    p.add_argument("--host", help="Web server bind host")
    p.add_argument("--port", type=int, help="Web server port")
    p.add_argument("--osc-host", help="Mixer OSC host")
    p.add_argument("--osc-port", type=int, help="Mixer OSC port (we send TO it)")
    p.add_argument("--local-osc-port", type=int, help="Local OSC port (mixer sends TO it)")
    p.add_argument(
        "--reject-when-busy",
        action="store_true",
        default=None,
        help="Reject FX requests while one is in flight instead of queueing",
    )
    p.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set log level (default: MIXER_LOG_LEVEL or INFO)",
    )
    p.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Shortcut for --log-level DEBUG",
    )
    return p.parse_args(argv)


def build_config(args: argparse.Namespace) -> BridgeConfig:
    """Environment config with CLI flags layered on top."""
    overrides = {
        "web_host": args.host,
        "web_port": args.port,
        "control_surface_host": args.osc_host,
        "control_surface_port": args.osc_port,
        "local_osc_port": args.local_osc_port,
        "reject_when_busy": args.reject_when_busy,
    }
    return dataclasses.replace(
        BridgeConfig.from_env(),
        **{key: value for key, value in overrides.items() if value is not None},
    )


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    if args.verbose:
        level = logging.DEBUG
    else:
        level = resolve_log_level(args.log_level or os.getenv("MIXER_LOG_LEVEL"))
    configure_logging(level)

    try:
        config = build_config(args)
    except ValueError as exc:
        logger.error("Invalid configuration: %s", exc)
        return 2
    set_config(config)

    logger.info("Web interface: http://localhost:%d (WebSocket /osc)", config.web_port)
    logger.info(
        "OSC to mixer: %s:%d", config.control_surface_host, config.control_surface_port
    )
    logger.info("OSC from mixer: listening on port %d", config.local_osc_port)
    logger.info("FX files: %s → host → %s", config.fx_command_file, config.fx_response_file)

    uvicorn.run(
        "api.main:app",
        host=config.web_host,
        port=config.web_port,
        log_level=logging.getLevelName(level).lower(),
        ws="websockets",
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
