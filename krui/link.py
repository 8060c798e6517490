"""Consumer side of the printer link: snapshot, correlator and history."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping
import copy
from dataclasses import dataclass, replace
import datetime as dt
import logging
from typing import Any

from .backend.transport import Frame, FrameType
from .backend.ws_client import ConnectionState, LinkSupervisor
from .codecs.jsonrpc import encode_request
from .codecs.moonraker_models import ServerInfoResult
from .codecs.status import StatusDelta
from .config import LinkConfig
from .const import (
    CLIENT_NAME,
    CLIENT_TYPE,
    CLIENT_URL,
    CLIENT_VERSION,
    METHOD_EMERGENCY_STOP,
    METHOD_HISTORY_LIST,
    METHOD_IDENTIFY,
    METHOD_OBJECTS_LIST,
    METHOD_SERVER_INFO,
    PRINT_STATE_ERROR,
)
from .correlator import RequestCorrelator
from .dispatcher import NotificationDispatcher
from .domain.commands import BaseCommand, EmergencyStop
from .domain.history import HistoryReconciler
from .domain.state import FileMetadata, PrinterSnapshot, merge_status
from .domain.view import StateView

_LOGGER = logging.getLogger(__name__)

FileMetadataListener = Callable[[FileMetadata], None]


@dataclass(slots=True, frozen=True)
class ConsoleLine:
    """One line of printer console output."""

    timestamp: dt.datetime
    content: str


class RealtimeLink:
    """Keep a local mirror of the printer and issue calls over one link.

    All state is mutated from :meth:`tick`, which drains frames the
    supervisor's workers queued. Callers drive ``tick`` from their own loop
    and read state through :attr:`view`.
    """

    def __init__(
        self,
        config: LinkConfig,
        *,
        supervisor: LinkSupervisor | None = None,
        correlator: RequestCorrelator | None = None,
        on_file_metadata: FileMetadataListener | None = None,
    ) -> None:
        """Initialise the link; nothing connects until :meth:`start`."""

        self.config = config
        self.supervisor = supervisor or LinkSupervisor(
            config.ws_url,
            reconnect_interval=config.reconnect_interval,
            reconnect_backoff_max=config.reconnect_backoff_max,
            connect_timeout=config.connect_timeout,
            receive_timeout=config.receive_timeout,
            fail_warn_threshold=config.fail_warn_threshold,
        )
        self.correlator = correlator or RequestCorrelator()
        self.snapshot = PrinterSnapshot()
        self.history = HistoryReconciler()
        self.console: list[ConsoleLine] = []
        self.server_info: ServerInfoResult | None = None
        self.on_file_metadata = on_file_metadata
        self.dispatcher = NotificationDispatcher(self)
        self._session_id: int | None = None
        self._view = StateView(
            lambda: self.snapshot,
            self.history,
            lambda: self.console,
            self.status,
        )

    # ----------------- Lifecycle -----------------

    def start(self) -> asyncio.Task:
        """Start the connection supervisor."""

        return self.supervisor.start()

    async def stop(self) -> None:
        """Stop the supervisor and drop session bookkeeping."""

        await self.supervisor.stop()
        self._end_session("link stopped")

    # ----------------- Consumer loop -----------------

    def tick(self, max_frames: int | None = 1) -> int:
        """Process up to ``max_frames`` queued frames without blocking.

        ``None`` drains the queue. Returns the number of frames handled.
        """

        handled = 0
        while max_frames is None or handled < max_frames:
            try:
                frame = self.supervisor.inbound.get_nowait()
            except asyncio.QueueEmpty:
                break
            handled += 1
            self.handle_frame(frame)
        return handled

    def handle_frame(self, frame: Frame) -> None:
        """React to one frame from the supervisor."""

        if frame.type is FrameType.TEXT:
            self.supervisor.health.mark_frame()
            self.dispatcher.dispatch(frame.data)
        elif frame.type is FrameType.OPEN:
            if frame.session_id != self.supervisor.session_id:
                # The announced session already ended; its close frame follows.
                _LOGGER.debug("Link: skipping open of stale session %s", frame.session_id)
                return
            self._session_id = frame.session_id
            self.correlator.clear()
            self.run_handshake()
        elif frame.type is FrameType.CLOSE:
            if self._session_id is not None and frame.session_id < self._session_id:
                _LOGGER.debug("Link: skipping close of stale session %s", frame.session_id)
                return
            self._end_session(str(frame.data) or "connection closed")

    def _end_session(self, reason: str) -> None:
        dropped = self.correlator.clear()
        if self._session_id is not None:
            _LOGGER.info(
                "Link: session %s ended (%s); %d pending calls dropped",
                self._session_id,
                reason,
                dropped,
            )
        self._session_id = None
        self.dispatcher.reset()
        self.set_connected(False)

    # ----------------- Calls -----------------

    def call(self, method: str, params: Mapping[str, Any] | None = None) -> str | None:
        """Send ``method`` on the current session and return its request id.

        Returns ``None`` when there is no session to send on.
        """

        request_id = self.correlator.issue(method, params)
        if not self.supervisor.send_text(encode_request(method, params, request_id)):
            self.correlator.resolve(request_id)
            _LOGGER.debug("Link: no session for %s; call dropped", method)
            return None
        _LOGGER.debug("Link: sent %s (%s)", method, request_id)
        return request_id

    def submit(self, method: str, params: Mapping[str, Any] | None = None) -> str | None:
        """Send a user call; only allowed once the handshake was issued."""

        state = self.supervisor.state
        if state is not ConnectionState.LIVE:
            _LOGGER.warning("Link: %s not sent; connection is %s", method, state.value)
            return None
        return self.call(method, params)

    def execute(self, command: BaseCommand) -> str | None:
        """Send a typed command.

        Raises ``ValueError`` for invalid command arguments before anything
        is sent.
        """

        if isinstance(command, EmergencyStop):
            return self.emergency_stop()
        method, params = command.to_rpc()
        return self.submit(method, params)

    def emergency_stop(self) -> str | None:
        """Halt the printer, mark the job failed and drop the connection.

        The stop request is queued ahead of the close, so it is written
        before the socket goes down.
        """

        _LOGGER.warning("Link: emergency stop requested")
        request_id = self.call(METHOD_EMERGENCY_STOP, {})
        self.snapshot = replace(
            self.snapshot, print_state=PRINT_STATE_ERROR, current_print=None
        )
        self.supervisor.close_session("emergency stop")
        return request_id

    def run_handshake(self, *, identify: bool = True) -> None:
        """Issue the startup calls for the current session.

        The objects query and subscription follow once the objects list
        arrives. ``identify`` is skipped when the backend restarts on an
        already identified connection.
        """

        self.supervisor.begin_handshake()
        self.dispatcher.reset()
        if identify:
            self.call(
                METHOD_IDENTIFY,
                {
                    "client_name": CLIENT_NAME,
                    "version": CLIENT_VERSION,
                    "type": CLIENT_TYPE,
                    "url": CLIENT_URL,
                },
            )
        self.call(METHOD_SERVER_INFO, {})
        self.call(METHOD_OBJECTS_LIST, {})
        self.call(
            METHOD_HISTORY_LIST,
            {"limit": self.config.history_limit, "order": "desc"},
        )
        self.supervisor.mark_live()

    # ----------------- State updates -----------------

    def apply_status(self, raw: Mapping[str, Any] | StatusDelta) -> None:
        """Fold a partial status object into the snapshot."""

        delta = raw if isinstance(raw, StatusDelta) else StatusDelta.from_raw(raw)
        if delta.is_empty:
            return
        self.snapshot = merge_status(self.snapshot, delta)

    def set_connected(self, connected: bool) -> None:
        """Set the backend connectivity flag."""

        if self.snapshot.connected != connected:
            self.snapshot = replace(self.snapshot, connected=connected)

    def attach_file_metadata(self, metadata: FileMetadata) -> None:
        """Store metadata on the active job and notify the listener."""

        current = self.snapshot.current_print
        if current is not None and current.filename in ("", metadata.filename):
            snapshot = copy.deepcopy(self.snapshot)
            snapshot.current_print.file_metadata = metadata
            self.snapshot = snapshot
        if self.on_file_metadata is not None:
            self.on_file_metadata(metadata)

    def append_console(self, content: str, *, timestamp: dt.datetime | None = None) -> None:
        """Append one line of printer output to the console log."""

        self.console.append(
            ConsoleLine(timestamp=timestamp or dt.datetime.now().astimezone(), content=content)
        )

    # ----------------- Presentation -----------------

    @property
    def view(self) -> StateView:
        """Return the read-only view for the presentation layer."""

        return self._view

    def status(self) -> dict[str, Any]:
        """Return connection state and health figures."""

        info = self.server_info
        return {
            "state": self.supervisor.state.value,
            "connected": self.snapshot.connected,
            "session": self._session_id,
            "pending_calls": len(self.correlator),
            "moonraker_version": info.moonraker_version if info else None,
            "health": self.supervisor.health.snapshot(),
        }


__all__ = ["ConsoleLine", "FileMetadataListener", "RealtimeLink"]
