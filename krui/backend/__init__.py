"""Websocket transport, supervision and health tracking."""

from .transport import Frame, FrameType, Session
from .ws_client import ConnectError, ConnectionState, LinkSupervisor
from .ws_health import LinkHealthTracker

__all__ = [
    "ConnectError",
    "ConnectionState",
    "Frame",
    "FrameType",
    "LinkHealthTracker",
    "LinkSupervisor",
    "Session",
]
