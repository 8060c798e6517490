"""Routing of decoded JSON-RPC traffic to the link state."""

from __future__ import annotations

from collections.abc import Callable, Mapping
import logging
from typing import TYPE_CHECKING, Any

from krui.codecs.jsonrpc import (
    RpcErrorResponse,
    RpcNotification,
    RpcResponse,
    classify_frame,
)
from krui.codecs.moonraker_models import (
    FileMetadataResult,
    HistoryChangedParams,
    HistoryListResult,
    ObjectsListResult,
    ObjectsStatusResult,
    ServerInfoResult,
    decode_model,
)
from krui.const import (
    HISTORY_ACTION_ADDED,
    KLIPPY_STATE_READY,
    METHOD_FILE_METADATA,
    METHOD_HISTORY_LIST,
    METHOD_OBJECTS_LIST,
    METHOD_OBJECTS_QUERY,
    METHOD_OBJECTS_SUBSCRIBE,
    METHOD_SERVER_INFO,
    NOTIFY_GCODE_RESPONSE,
    NOTIFY_HISTORY_CHANGED,
    NOTIFY_KLIPPY_DISCONNECTED,
    NOTIFY_KLIPPY_READY,
    NOTIFY_KLIPPY_SHUTDOWN,
    NOTIFY_STATUS_UPDATE,
)
from krui.domain.state import FileMetadata

if TYPE_CHECKING:
    from krui.link import RealtimeLink

_LOGGER = logging.getLogger(__name__)


def _first_param(params: Any) -> Any:
    """Return the first positional notification parameter, if any."""

    if isinstance(params, list) and params:
        return params[0]
    return None


class NotificationDispatcher:
    """Split inbound frames into responses and notifications and route them.

    Responses are routed by the method recorded in the correlator when the
    request was issued; notifications by their method name. Follow-up calls
    (objects list to query and subscribe, printing to file metadata) are
    issued from the response handlers.
    """

    def __init__(self, link: RealtimeLink) -> None:
        """Bind the dispatcher to the link whose state it updates."""

        self._link = link
        self._metadata_requested: str | None = None
        self._notification_handlers: dict[str, Callable[[Any], None]] = {
            NOTIFY_KLIPPY_SHUTDOWN: self._on_klippy_down,
            NOTIFY_KLIPPY_DISCONNECTED: self._on_klippy_down,
            NOTIFY_KLIPPY_READY: self._on_klippy_ready,
            NOTIFY_STATUS_UPDATE: self._on_status_update,
            NOTIFY_HISTORY_CHANGED: self._on_history_changed,
            NOTIFY_GCODE_RESPONSE: self._on_gcode_response,
        }
        self._response_handlers: dict[str, Callable[[Any], None]] = {
            METHOD_SERVER_INFO: self._on_server_info,
            METHOD_OBJECTS_LIST: self._on_objects_list,
            METHOD_OBJECTS_QUERY: self._on_objects_status,
            METHOD_OBJECTS_SUBSCRIBE: self._on_objects_status,
            METHOD_HISTORY_LIST: self._on_history_list,
            METHOD_FILE_METADATA: self._on_file_metadata,
        }

    def reset(self) -> None:
        """Forget per-session bookkeeping."""

        self._metadata_requested = None

    # ----------------- Entry points -----------------

    def dispatch(self, text: str | bytes) -> None:
        """Decode one text frame and route it."""

        message = classify_frame(text)
        if message is None:
            return
        if isinstance(message, RpcNotification):
            self.handle_notification(message)
        elif isinstance(message, RpcErrorResponse):
            self.handle_error(message)
        elif isinstance(message, RpcResponse):
            self.handle_response(message)

    def handle_response(self, response: RpcResponse) -> None:
        """Complete the pending call for ``response`` and run its handler."""

        method = self._link.correlator.resolve(response.id)
        if method is None:
            return
        handler = self._response_handlers.get(method)
        if handler is None:
            _LOGGER.debug("RPC: %s acknowledged", method)
            return
        handler(response.result)

    def handle_error(self, response: RpcErrorResponse) -> None:
        """Complete the pending call for a failed request and log it."""

        method = self._link.correlator.resolve(response.id)
        if method is None:
            return
        _LOGGER.warning(
            "RPC: %s failed (%s: %s)",
            method,
            response.error.code,
            response.error.message,
        )

    def handle_notification(self, notification: RpcNotification) -> None:
        """Run the handler registered for a server notification."""

        handler = self._notification_handlers.get(notification.method)
        if handler is None:
            _LOGGER.debug("RPC: ignoring notification %s", notification.method)
            return
        handler(notification.params)

    # ----------------- Notifications -----------------

    def _on_klippy_down(self, _params: Any) -> None:
        self._link.set_connected(False)

    def _on_klippy_ready(self, _params: Any) -> None:
        self._link.set_connected(True)
        self._link.run_handshake(identify=False)

    def _on_status_update(self, params: Any) -> None:
        status = _first_param(params)
        if not isinstance(status, Mapping):
            _LOGGER.debug("RPC: status update without a status object")
            return
        self._apply_status(status)

    def _on_history_changed(self, params: Any) -> None:
        payload = params if isinstance(params, Mapping) else _first_param(params)
        change = decode_model(HistoryChangedParams, payload)
        if change is None or change.action != HISTORY_ACTION_ADDED:
            return
        if change.job is not None:
            self._link.history.add(change.job)

    def _on_gcode_response(self, params: Any) -> None:
        if not isinstance(params, list):
            return
        for line in params:
            if isinstance(line, str):
                self._link.append_console(line)

    # ----------------- Responses -----------------

    def _on_server_info(self, result: Any) -> None:
        info = decode_model(ServerInfoResult, result)
        if info is None:
            _LOGGER.debug("RPC: unusable server.info result")
            return
        self._link.server_info = info
        self._link.set_connected(
            info.klippy_connected and info.klippy_state == KLIPPY_STATE_READY
        )

    def _on_objects_list(self, result: Any) -> None:
        listing = decode_model(ObjectsListResult, result)
        if listing is None:
            _LOGGER.debug("RPC: unusable objects list result")
            return
        params = {"objects": {name: None for name in listing.objects}}
        self._link.call(METHOD_OBJECTS_QUERY, params)
        self._link.call(METHOD_OBJECTS_SUBSCRIBE, params)

    def _on_objects_status(self, result: Any) -> None:
        status = decode_model(ObjectsStatusResult, result)
        if status is None:
            _LOGGER.debug("RPC: unusable objects status result")
            return
        self._apply_status(status.status)

    def _on_history_list(self, result: Any) -> None:
        listing = decode_model(HistoryListResult, result)
        if listing is None:
            _LOGGER.debug("RPC: unusable history list result")
            return
        added = sum(1 for job in listing.jobs if self._link.history.add(job))
        _LOGGER.debug("History: %d of %d jobs added", added, len(listing.jobs))

    def _on_file_metadata(self, result: Any) -> None:
        decoded = decode_model(FileMetadataResult, result)
        if decoded is None:
            _LOGGER.debug("RPC: unusable file metadata result")
            return
        self._link.attach_file_metadata(FileMetadata.from_result(decoded))

    # ----------------- Helpers -----------------

    def _apply_status(self, status: Mapping[str, Any]) -> None:
        """Merge ``status`` and request metadata for a newly started job."""

        self._link.apply_status(status)
        snapshot = self._link.snapshot
        current = snapshot.current_print
        if current is None:
            self._metadata_requested = None
            return
        filename = current.filename
        if not filename or filename == self._metadata_requested:
            return
        if current.file_metadata is not None and current.file_metadata.filename == filename:
            return
        self._metadata_requested = filename
        self._link.call(METHOD_FILE_METADATA, {"filename": filename})


__all__ = ["NotificationDispatcher"]
