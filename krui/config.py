"""Configuration loading and validation for the printer link."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
import logging
from pathlib import Path
import tomllib
from typing import Any
from urllib.parse import urlsplit

import voluptuous as vol

from .const import (
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_FAIL_WARN_THRESHOLD,
    DEFAULT_HISTORY_LIMIT,
    DEFAULT_LOG_FILE,
    DEFAULT_LOG_LEVEL,
    DEFAULT_RECONNECT_BACKOFF_MAX,
    DEFAULT_RECONNECT_INTERVAL,
    DEFAULT_SUMMARY_INTERVAL,
    DEFAULT_TICK_INTERVAL,
    DEFAULT_WS_SCHEME,
    WS_PATH,
)

_LOGGER = logging.getLogger(__name__)

CONF_SERVER = "server"
CONF_HISTORY_LIMIT = "history_limit"
CONF_CONNECT_TIMEOUT = "connect_timeout"
CONF_RECEIVE_TIMEOUT = "receive_timeout"
CONF_RECONNECT_INTERVAL = "reconnect_interval"
CONF_RECONNECT_BACKOFF_MAX = "reconnect_backoff_max"
CONF_FAIL_WARN_THRESHOLD = "fail_warn_threshold"
CONF_TICK_INTERVAL = "tick_interval"
CONF_SUMMARY_INTERVAL = "summary_interval"
CONF_LOG_FILE = "log_file"
CONF_LOG_LEVEL = "log_level"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

_NON_NEGATIVE = vol.All(vol.Coerce(float), vol.Range(min=0))
_POSITIVE = vol.All(vol.Coerce(float), vol.Range(min=0, min_included=False))


def _server(value: Any) -> str:
    """Validate a host, ``host:port`` or full websocket URL."""

    text = vol.Coerce(str)(value).strip()
    if not text:
        raise vol.Invalid("server must not be empty")
    if "://" in text:
        parts = urlsplit(text)
        if parts.scheme not in ("ws", "wss") or not parts.netloc:
            raise vol.Invalid(f"unsupported server URL: {text}")
    return text


def _log_level(value: Any) -> str:
    level = vol.Coerce(str)(value).strip().upper()
    if level not in LOG_LEVELS:
        raise vol.Invalid(f"unknown log level: {value}")
    return level


CONFIG_SCHEMA = vol.Schema(
    {
        vol.Required(CONF_SERVER): _server,
        vol.Optional(CONF_HISTORY_LIMIT, default=DEFAULT_HISTORY_LIMIT): vol.All(
            vol.Coerce(int), vol.Range(min=1)
        ),
        vol.Optional(CONF_CONNECT_TIMEOUT, default=DEFAULT_CONNECT_TIMEOUT): _POSITIVE,
        vol.Optional(CONF_RECEIVE_TIMEOUT, default=None): vol.Any(None, _POSITIVE),
        vol.Optional(
            CONF_RECONNECT_INTERVAL, default=DEFAULT_RECONNECT_INTERVAL
        ): _NON_NEGATIVE,
        vol.Optional(
            CONF_RECONNECT_BACKOFF_MAX, default=DEFAULT_RECONNECT_BACKOFF_MAX
        ): _NON_NEGATIVE,
        vol.Optional(
            CONF_FAIL_WARN_THRESHOLD, default=DEFAULT_FAIL_WARN_THRESHOLD
        ): vol.All(vol.Coerce(int), vol.Range(min=1)),
        vol.Optional(CONF_TICK_INTERVAL, default=DEFAULT_TICK_INTERVAL): _POSITIVE,
        vol.Optional(CONF_SUMMARY_INTERVAL, default=DEFAULT_SUMMARY_INTERVAL): _POSITIVE,
        vol.Optional(CONF_LOG_FILE, default=DEFAULT_LOG_FILE): vol.Coerce(str),
        vol.Optional(CONF_LOG_LEVEL, default=DEFAULT_LOG_LEVEL): _log_level,
    },
    extra=vol.REMOVE_EXTRA,
)


class ConfigError(ValueError):
    """Raised when the link configuration is missing or invalid."""


def build_ws_url(server: str) -> str:
    """Return the websocket URL for ``server``.

    Bare hosts (optionally with a port) get the default scheme and the
    Moonraker websocket path; full ``ws://``/``wss://`` URLs are used as is.
    """

    server = server.strip()
    if "://" in server:
        return server
    return f"{DEFAULT_WS_SCHEME}://{server.rstrip('/')}{WS_PATH}"


@dataclass(slots=True, frozen=True)
class LinkConfig:
    """Validated runtime settings."""

    server: str
    history_limit: int = DEFAULT_HISTORY_LIMIT
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    receive_timeout: float | None = None
    reconnect_interval: float = DEFAULT_RECONNECT_INTERVAL
    reconnect_backoff_max: float = DEFAULT_RECONNECT_BACKOFF_MAX
    fail_warn_threshold: int = DEFAULT_FAIL_WARN_THRESHOLD
    tick_interval: float = DEFAULT_TICK_INTERVAL
    summary_interval: float = DEFAULT_SUMMARY_INTERVAL
    log_file: str = DEFAULT_LOG_FILE
    log_level: str = DEFAULT_LOG_LEVEL

    @property
    def ws_url(self) -> str:
        """Return the websocket endpoint derived from :attr:`server`."""

        return build_ws_url(self.server)


def build_config(data: Mapping[str, Any]) -> LinkConfig:
    """Validate ``data`` and return a :class:`LinkConfig`."""

    try:
        validated = CONFIG_SCHEMA(dict(data))
    except vol.Invalid as err:
        raise ConfigError(f"invalid configuration: {err}") from err
    return LinkConfig(**validated)


def load_config(
    path: str | Path | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> LinkConfig:
    """Read ``path`` (TOML) if given, apply ``overrides`` and validate.

    Overrides whose value is ``None`` are ignored so unset command-line
    options keep the file's value.
    """

    data: dict[str, Any] = {}
    if path is not None:
        try:
            with open(path, "rb") as handle:
                loaded = tomllib.load(handle)
        except OSError as err:
            raise ConfigError(f"cannot read config file {path}: {err}") from err
        except tomllib.TOMLDecodeError as err:
            raise ConfigError(f"cannot parse config file {path}: {err}") from err
        # Settings may live at the top level or under a [krui] table.
        section = loaded.get("krui", loaded)
        if not isinstance(section, Mapping):
            raise ConfigError(f"config file {path} has no settings table")
        data.update(section)
        _LOGGER.debug("Loaded configuration from %s", path)

    for key, value in (overrides or {}).items():
        if value is not None:
            data[key] = value

    return build_config(data)


__all__ = [
    "CONFIG_SCHEMA",
    "ConfigError",
    "LinkConfig",
    "build_config",
    "build_ws_url",
    "load_config",
]
