"""Websocket transport reduced to an outbound and an inbound frame loop."""

from __future__ import annotations

import asyncio
from contextlib import suppress
from dataclasses import dataclass
from enum import Enum
import logging

import aiohttp

_LOGGER = logging.getLogger(__name__)

_CLOSED_TYPES = (
    aiohttp.WSMsgType.CLOSE,
    aiohttp.WSMsgType.CLOSING,
    aiohttp.WSMsgType.CLOSED,
)


class FrameType(str, Enum):
    """Kinds of frames exchanged between the workers and the consumer."""

    TEXT = "text"
    PING = "ping"
    PONG = "pong"
    CLOSE = "close"
    OPEN = "open"


@dataclass(slots=True, frozen=True)
class Frame:
    """One unit of traffic on a session queue."""

    type: FrameType
    data: str | bytes = ""
    session_id: int = 0

    @classmethod
    def text(cls, data: str, *, session_id: int = 0) -> Frame:
        return cls(FrameType.TEXT, data, session_id)

    @classmethod
    def close(cls, reason: str = "", *, session_id: int = 0) -> Frame:
        return cls(FrameType.CLOSE, reason, session_id)

    @classmethod
    def open(cls, *, session_id: int) -> Frame:
        return cls(FrameType.OPEN, "", session_id)


class Session:
    """A live websocket split into two worker tasks.

    The outbound task writes frames from :attr:`outbound` one at a time and
    exits after a ``close`` frame. The inbound task forwards text frames to
    the shared consumer queue, answers pings through the outbound queue and,
    on any fault, posts exactly one ``close`` frame to both queues.
    """

    def __init__(
        self,
        ws: aiohttp.ClientWebSocketResponse,
        inbound: asyncio.Queue[Frame],
        *,
        session_id: int,
    ) -> None:
        """Wrap ``ws``; workers start with :meth:`start`."""

        self.session_id = session_id
        self.outbound: asyncio.Queue[Frame] = asyncio.Queue()
        self._ws = ws
        self._inbound = inbound
        self._closed = asyncio.Event()
        self._send_task: asyncio.Task | None = None
        self._receive_task: asyncio.Task | None = None

    @property
    def closed(self) -> bool:
        """Return True once the session has failed or been closed."""

        return self._closed.is_set()

    def start(self) -> None:
        """Spawn the outbound and inbound workers."""

        loop = asyncio.get_running_loop()
        self._send_task = loop.create_task(
            self._send_loop(), name=f"krui-ws-send-{self.session_id}"
        )
        self._receive_task = loop.create_task(
            self._receive_loop(), name=f"krui-ws-receive-{self.session_id}"
        )

    def send(self, frame: Frame) -> bool:
        """Enqueue ``frame`` for writing; returns False once closed."""

        if self.closed:
            return False
        self.outbound.put_nowait(frame)
        return True

    def send_text(self, text: str) -> bool:
        """Enqueue a text frame."""

        return self.send(Frame.text(text, session_id=self.session_id))

    def close(self, reason: str = "client close") -> None:
        """Ask the outbound worker to close the socket after pending frames."""

        self.send(Frame.close(reason, session_id=self.session_id))

    async def wait_closed(self) -> None:
        """Wait until the session has ended."""

        await self._closed.wait()

    async def shutdown(self, *, grace: float = 1.0) -> None:
        """Wait for both workers to exit, cancelling any that linger."""

        tasks = [
            task for task in (self._send_task, self._receive_task) if task is not None
        ]
        self._send_task = None
        self._receive_task = None
        if not tasks:
            return
        _, pending = await asyncio.wait(tasks, timeout=grace)
        for task in pending:
            task.cancel()
        for task in tasks:
            with suppress(asyncio.CancelledError):
                await task

    # ----------------- Workers -----------------

    async def _send_loop(self) -> None:
        ws = self._ws
        while True:
            frame = await self.outbound.get()
            if frame.type is FrameType.CLOSE:
                with suppress(aiohttp.ClientError, ConnectionError, RuntimeError):
                    await ws.close(code=aiohttp.WSCloseCode.GOING_AWAY)
                return
            try:
                if frame.type is FrameType.TEXT:
                    await ws.send_str(frame.data)
                elif frame.type is FrameType.PONG:
                    await ws.pong(frame.data)
                elif frame.type is FrameType.PING:
                    await ws.ping(frame.data)
            except (aiohttp.ClientError, ConnectionError, RuntimeError) as err:
                # Closing the socket lets the inbound worker report the fault.
                _LOGGER.debug(
                    "WS: send failed on session %s (%s); closing",
                    self.session_id,
                    err,
                )
                with suppress(aiohttp.ClientError, ConnectionError, RuntimeError):
                    await ws.close()

    async def _receive_loop(self) -> None:
        ws = self._ws
        reason = "end of stream"
        try:
            while True:
                msg = await ws.receive()
                if msg.type is aiohttp.WSMsgType.TEXT:
                    self._inbound.put_nowait(
                        Frame.text(msg.data, session_id=self.session_id)
                    )
                elif msg.type is aiohttp.WSMsgType.BINARY:
                    try:
                        text = msg.data.decode("utf-8")
                    except UnicodeDecodeError:
                        _LOGGER.debug(
                            "WS: dropping undecodable binary frame on session %s",
                            self.session_id,
                        )
                        continue
                    self._inbound.put_nowait(Frame.text(text, session_id=self.session_id))
                elif msg.type is aiohttp.WSMsgType.PING:
                    self.outbound.put_nowait(
                        Frame(FrameType.PONG, msg.data or b"", self.session_id)
                    )
                elif msg.type is aiohttp.WSMsgType.PONG:
                    continue
                elif msg.type in _CLOSED_TYPES:
                    reason = f"websocket closed: code={ws.close_code}"
                    break
                elif msg.type is aiohttp.WSMsgType.ERROR:
                    exc = ws.exception()
                    reason = f"websocket error: {exc}" if exc else "websocket error"
                    break
        except asyncio.CancelledError:
            self._fail("session cancelled")
            raise
        except (aiohttp.ClientError, ConnectionError, asyncio.TimeoutError, RuntimeError) as err:
            reason = f"{type(err).__name__}: {err}"
        self._fail(reason)

    def _fail(self, reason: str) -> None:
        """Post one terminal close frame to both queues."""

        if self.closed:
            return
        self._closed.set()
        _LOGGER.debug("WS: session %s ended (%s)", self.session_id, reason)
        close = Frame.close(reason, session_id=self.session_id)
        self.outbound.put_nowait(close)
        self._inbound.put_nowait(close)


__all__ = ["Frame", "FrameType", "Session"]
