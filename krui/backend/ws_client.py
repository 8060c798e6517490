"""Connection supervisor for the Moonraker websocket."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from contextlib import suppress
from enum import Enum
import logging
import random
from typing import Any

import aiohttp

from krui.const import (
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_FAIL_WARN_THRESHOLD,
    DEFAULT_RECONNECT_BACKOFF_MAX,
    DEFAULT_RECONNECT_INTERVAL,
    DOMAIN,
)

from .sanitize import redact_text, redact_url
from .transport import Frame, Session
from .ws_health import LinkHealthTracker

_LOGGER = logging.getLogger(__name__)

SleepCallable = Callable[[float], Awaitable[Any]]


class ConnectionState(str, Enum):
    """Lifecycle of the supervised connection."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    HANDSHAKING = "handshaking"
    LIVE = "live"


class ConnectError(RuntimeError):
    """Raised when a websocket connection attempt fails."""

    def __init__(self, url: str, reason: str) -> None:
        """Store the (redacted) target and failure reason."""

        super().__init__(f"connect to {redact_url(url)} failed: {reason}")
        self.url = url
        self.reason = reason


class LinkSupervisor:
    """Own the websocket lifecycle: connect, detect faults, reconnect.

    Every new session is announced to the consumer with an ``open`` frame on
    :attr:`inbound`; the consumer runs the startup handshake in response. A
    fatal fault reaches the consumer as a single ``close`` frame, after which
    the runner reconnects on its own.
    """

    def __init__(
        self,
        url: str,
        *,
        http_session: aiohttp.ClientSession | None = None,
        inbound: asyncio.Queue[Frame] | None = None,
        reconnect_interval: float = DEFAULT_RECONNECT_INTERVAL,
        reconnect_backoff_max: float = DEFAULT_RECONNECT_BACKOFF_MAX,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        receive_timeout: float | None = None,
        fail_warn_threshold: int = DEFAULT_FAIL_WARN_THRESHOLD,
        sleep: SleepCallable | None = None,
    ) -> None:
        """Initialise the supervisor; nothing connects until :meth:`start`."""

        self.url = url
        self.inbound: asyncio.Queue[Frame] = inbound or asyncio.Queue()
        self.health = LinkHealthTracker(endpoint=redact_url(url))
        self._http = http_session
        self._owns_http = http_session is None
        self._reconnect_interval = max(0.0, reconnect_interval)
        self._reconnect_backoff_max = max(0.0, reconnect_backoff_max)
        self._connect_timeout = connect_timeout
        self._receive_timeout = receive_timeout
        self._fail_warn_threshold = max(1, fail_warn_threshold)
        self._sleep = sleep or asyncio.sleep

        self._task: asyncio.Task | None = None
        self._session: Session | None = None
        self._session_seq = 0
        self._closing = False
        self._state = ConnectionState.DISCONNECTED

    # ----------------- Public control -----------------

    @property
    def state(self) -> ConnectionState:
        """Return the current connection state."""

        return self._state

    @property
    def session(self) -> Session | None:
        """Return the live session, if any."""

        return self._session

    @property
    def session_id(self) -> int | None:
        """Return the id of the live session, if any."""

        session = self._session
        return session.session_id if session is not None else None

    def start(self) -> asyncio.Task:
        """Start the supervisor task if not already running."""

        if self._task and not self._task.done():
            return self._task
        _LOGGER.debug("WS: start requested for %s", self.health.endpoint)
        self._closing = False
        self._task = asyncio.get_running_loop().create_task(
            self._runner(), name=f"{DOMAIN}-ws-supervisor"
        )
        return self._task

    async def stop(self) -> None:
        """Close the session, cancel the runner and release the HTTP session."""

        _LOGGER.debug("WS: stop requested")
        self._closing = True
        session = self._session
        if session is not None:
            session.close("client stop")
            await session.shutdown()
        if self._task:
            self._task.cancel()
            with suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        self._session = None
        if self._owns_http and self._http is not None:
            await self._http.close()
            self._http = None
        self._set_state(ConnectionState.DISCONNECTED)

    def is_running(self) -> bool:
        """Return True if the supervisor task is active."""

        return bool(self._task and not self._task.done())

    def send_text(self, text: str) -> bool:
        """Enqueue ``text`` on the live session; False when there is none."""

        session = self._session
        if session is None:
            return False
        return session.send_text(text)

    def close_session(self, reason: str = "client close") -> None:
        """Force the live session closed; the runner then reconnects."""

        if self._session is not None:
            _LOGGER.info("WS: closing session (%s)", reason)
            self._session.close(reason)

    def begin_handshake(self) -> None:
        """Mark the live session as running its startup handshake."""

        if self._session is not None:
            self._set_state(ConnectionState.HANDSHAKING)

    def mark_live(self) -> None:
        """Mark the handshake as issued; user calls become legal."""

        if self._session is not None:
            self._set_state(ConnectionState.LIVE)

    # ----------------- Core loop -----------------

    async def _runner(self) -> None:
        """Connect, wait for the session to end and reconnect until stopped."""

        try:
            while not self._closing:
                self._set_state(ConnectionState.CONNECTING)
                try:
                    session = await self._connect_once()
                except (ConnectError, aiohttp.ClientError, OSError, asyncio.TimeoutError) as err:
                    self._record_failure(err)
                    await self._sleep(self._retry_delay())
                    continue

                self._session = session
                self.health.mark_connected()
                session.start()
                self.inbound.put_nowait(Frame.open(session_id=session.session_id))
                _LOGGER.info(
                    "WS: session %s connected to %s",
                    session.session_id,
                    self.health.endpoint,
                )
                await session.wait_closed()
                await session.shutdown()
                self._session = None
                self.health.mark_disconnected()
                self._set_state(ConnectionState.DISCONNECTED)
                _LOGGER.info("WS: session %s closed; reconnecting", session.session_id)
        finally:
            self._session = None

    async def _connect_once(self) -> Session:
        """Open one websocket and wrap it in a :class:`Session`."""

        if self._http is None:
            self._http = aiohttp.ClientSession()
            self._owns_http = True
        try:
            async with asyncio.timeout(self._connect_timeout):
                ws = await self._http.ws_connect(
                    self.url,
                    autoping=False,
                    autoclose=True,
                    heartbeat=None,
                    receive_timeout=self._receive_timeout,
                )
        except aiohttp.WSServerHandshakeError as err:
            raise ConnectError(self.url, f"handshake status {err.status}") from err
        self._session_seq += 1
        return Session(ws, self.inbound, session_id=self._session_seq)

    def _record_failure(self, err: BaseException) -> None:
        """Log a failed attempt without flooding the log."""

        failures = self.health.mark_failure(redact_text(str(err)))
        _LOGGER.info(
            "WS: connection error (%s: %s); will retry",
            type(err).__name__,
            redact_text(str(err)),
        )
        _LOGGER.debug("WS: connection error details", exc_info=True)
        if failures % self._fail_warn_threshold == 0:
            _LOGGER.warning(
                "WS: %d consecutive connection failures to %s",
                failures,
                self.health.endpoint,
            )

    def _retry_delay(self) -> float:
        """Return the pause before the next attempt.

        Without a backoff cap the fixed interval applies (zero by default,
        i.e. immediate retry). With a cap, the delay doubles per consecutive
        failure up to the cap, with jitter.
        """

        if self._reconnect_backoff_max <= 0:
            return self._reconnect_interval
        base = self._reconnect_interval or 0.5
        exponent = max(0, self.health.consecutive_failures - 1)
        delay = min(self._reconnect_backoff_max, base * (2**exponent))
        return delay * random.uniform(0.8, 1.2)

    def _set_state(self, state: ConnectionState) -> None:
        if state is self._state:
            return
        _LOGGER.debug("WS: state %s -> %s", self._state.value, state.value)
        self._state = state
        self.health.update_status(state.value)


__all__ = ["ConnectError", "ConnectionState", "LinkSupervisor"]
