"""Run the printer link headless and log a periodic status summary."""

from __future__ import annotations

import argparse
import asyncio
from contextlib import suppress
import logging
import sys
import time

from .config import (
    CONF_HISTORY_LIMIT,
    CONF_LOG_FILE,
    CONF_LOG_LEVEL,
    CONF_RECONNECT_BACKOFF_MAX,
    CONF_RECONNECT_INTERVAL,
    CONF_SERVER,
    ConfigError,
    LinkConfig,
    load_config,
)
from .domain.view import StateView
from .link import RealtimeLink

_LOGGER = logging.getLogger(__name__)

LOG_FORMAT = "%(levelname)s - %(message)s"


def parse_args(argv: list[str]) -> argparse.Namespace:
    """Return the parsed command line."""

    parser = argparse.ArgumentParser(
        prog="krui", description="Mirror a Moonraker printer over its websocket"
    )
    parser.add_argument(
        "server",
        nargs="?",
        help="Printer host, host:port or ws:// URL",
    )
    parser.add_argument("--config", help="TOML file with link settings")
    parser.add_argument("--log-file", help="Log file path")
    parser.add_argument("--log-level", help="Log level (DEBUG, INFO, ...)")
    parser.add_argument("--history-limit", type=int, help="Jobs to fetch from history")
    parser.add_argument(
        "--reconnect-interval", type=float, help="Seconds between reconnect attempts"
    )
    parser.add_argument(
        "--reconnect-backoff-max",
        type=float,
        help="Cap for exponential reconnect backoff; 0 disables backoff",
    )
    return parser.parse_args(argv)


def configure_logging(config: LinkConfig) -> logging.Handler:
    """Send log records for the package to the configured file."""

    handler = logging.FileHandler(config.log_file, encoding="utf-8")
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root = logging.getLogger()
    root.addHandler(handler)
    root.setLevel(config.log_level)
    return handler


def format_summary(view: StateView) -> str:
    """Return a one-line description of the mirrored printer."""

    snapshot = view.snapshot
    status = view.status()
    parts = [
        f"link={status['state']}",
        f"klippy={'up' if snapshot.connected else 'down'}",
        f"state={snapshot.state}",
        f"print={snapshot.print_state}",
    ]
    for heater in snapshot.iter_heaters():
        parts.append(f"{heater.display_name}={heater.temperature:.1f}/{heater.target:.0f}")
    progress = view.print_progress()
    if progress is not None:
        parts.append(f"job={progress.filename} {progress.progress * 100:.1f}%")
    parts.append(f"history={len(view.history)}")
    return " ".join(parts)


async def run_link(config: LinkConfig) -> None:
    """Drive the consumer loop until cancelled."""

    link = RealtimeLink(config)
    link.start()
    _LOGGER.info("Connecting to %s", link.supervisor.health.endpoint)
    next_summary = time.monotonic() + config.summary_interval
    try:
        while True:
            link.tick(max_frames=None)
            now = time.monotonic()
            if now >= next_summary:
                _LOGGER.info("%s", format_summary(link.view))
                next_summary = now + config.summary_interval
            await asyncio.sleep(config.tick_interval)
    finally:
        await link.stop()


def main(argv: list[str] | None = None) -> int:
    """Parse arguments, configure logging and run the link."""

    args = parse_args(argv if argv is not None else sys.argv[1:])
    overrides = {
        CONF_SERVER: args.server,
        CONF_LOG_FILE: args.log_file,
        CONF_LOG_LEVEL: args.log_level,
        CONF_HISTORY_LIMIT: args.history_limit,
        CONF_RECONNECT_INTERVAL: args.reconnect_interval,
        CONF_RECONNECT_BACKOFF_MAX: args.reconnect_backoff_max,
    }
    try:
        config = load_config(args.config, overrides)
    except ConfigError as err:
        print(f"krui: {err}", file=sys.stderr)
        return 2

    configure_logging(config)
    with suppress(KeyboardInterrupt):
        asyncio.run(run_link(config))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
