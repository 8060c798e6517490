"""Realtime JSON-RPC link to a Moonraker/Klipper printer."""

from .config import ConfigError, LinkConfig, build_config, load_config
from .link import ConsoleLine, RealtimeLink

__all__ = [
    "ConfigError",
    "ConsoleLine",
    "LinkConfig",
    "RealtimeLink",
    "build_config",
    "load_config",
]
