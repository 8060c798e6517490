# ruff: noqa: D100,D101,D102,D103,D104,D105,D106,D107,INP001
from __future__ import annotations

import asyncio
import inspect
import itertools
import json
import types
from typing import Any, Callable

import aiohttp
import pytest

from krui.backend.transport import Frame
from krui.backend.ws_client import ConnectionState
from krui.backend.ws_health import LinkHealthTracker
from krui.config import LinkConfig
from krui.correlator import RequestCorrelator
from krui.link import RealtimeLink


def pytest_configure(config: pytest.Config) -> None:
    """Register custom pytest markers used across the suite."""

    if not config.pluginmanager.hasplugin("pytest_asyncio"):
        config.addinivalue_line(
            "markers", "asyncio: mark test as requiring asyncio event loop support."
        )


def pytest_pyfunc_call(pyfuncitem: pytest.Function) -> bool | None:
    """Execute async tests when pytest-asyncio is unavailable."""

    if pyfuncitem.config.pluginmanager.hasplugin("pytest_asyncio"):
        return None

    testfunction = pyfuncitem.obj
    if not inspect.iscoroutinefunction(testfunction):
        return None

    marker = pyfuncitem.get_closest_marker("asyncio")
    if marker is None:
        return None

    with asyncio.Runner(debug=False) as runner:
        runner.run(testfunction(**pyfuncitem.funcargs))
    return True


def ws_message(kind: aiohttp.WSMsgType, data: Any = None) -> types.SimpleNamespace:
    """Return an object shaped like ``aiohttp.WSMessage``."""

    return types.SimpleNamespace(type=kind, data=data, extra=None)


class FakeWebSocket:
    """In-memory stand-in for ``aiohttp.ClientWebSocketResponse``."""

    def __init__(self, messages: list[Any] | None = None) -> None:
        self._messages: asyncio.Queue[Any] = asyncio.Queue()
        for message in messages or ():
            self._messages.put_nowait(message)
        self.events: list[tuple[str, Any]] = []
        self.close_code: int | None = None
        self.closed = False
        self.error: BaseException | None = None
        self.fail_sends = False

    def feed(self, kind: aiohttp.WSMsgType, data: Any = None) -> None:
        self._messages.put_nowait(ws_message(kind, data))

    def feed_text(self, payload: Any) -> None:
        text = payload if isinstance(payload, str) else json.dumps(payload)
        self.feed(aiohttp.WSMsgType.TEXT, text)

    @property
    def sent(self) -> list[str]:
        return [data for kind, data in self.events if kind == "send"]

    async def receive(self) -> Any:
        return await self._messages.get()

    async def send_str(self, data: str) -> None:
        if self.fail_sends:
            raise ConnectionResetError("socket gone")
        self.events.append(("send", data))

    async def pong(self, data: bytes = b"") -> None:
        self.events.append(("pong", data))

    async def ping(self, data: bytes = b"") -> None:
        self.events.append(("ping", data))

    async def close(self, *, code: int = 1000, message: bytes = b"") -> bool:
        self.events.append(("close", code))
        if self.closed:
            return False
        self.closed = True
        self.close_code = code
        self.feed(aiohttp.WSMsgType.CLOSED)
        return True

    def exception(self) -> BaseException | None:
        return self.error


class FakeHTTPSession:
    """Hand out queued websocket results from ``ws_connect``."""

    def __init__(self, results: list[Any]) -> None:
        self._results = list(results)
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.closed = False

    async def ws_connect(self, url: str, **kwargs: Any) -> Any:
        self.calls.append((url, kwargs))
        if not self._results:
            # Park further attempts until the test stops the supervisor.
            await asyncio.Event().wait()
        result = self._results.pop(0)
        if isinstance(result, BaseException):
            raise result
        return result

    async def close(self) -> None:
        self.closed = True


class StubSupervisor:
    """Record what the link sends and let tests inject inbound frames."""

    def __init__(self) -> None:
        self.inbound: asyncio.Queue[Frame] = asyncio.Queue()
        self.health = LinkHealthTracker(endpoint="ws://printer/websocket")
        self.state = ConnectionState.DISCONNECTED
        self.events: list[tuple[str, Any]] = []
        self.accepting = True
        self.session_id: int | None = None

    @property
    def sent(self) -> list[dict[str, Any]]:
        return [payload for kind, payload in self.events if kind == "send"]

    def methods(self) -> list[str]:
        return [payload["method"] for payload in self.sent]

    def last(self, method: str) -> dict[str, Any]:
        return [payload for payload in self.sent if payload["method"] == method][-1]

    def start(self) -> None:
        self.events.append(("start", None))

    async def stop(self) -> None:
        self.state = ConnectionState.DISCONNECTED

    def send_text(self, text: str) -> bool:
        if not self.accepting:
            return False
        self.events.append(("send", json.loads(text)))
        return True

    def close_session(self, reason: str = "client close") -> None:
        self.events.append(("close", reason))

    def begin_handshake(self) -> None:
        self.state = ConnectionState.HANDSHAKING

    def mark_live(self) -> None:
        self.state = ConnectionState.LIVE

    # --- inbound helpers ---

    def open(self, session_id: int = 1) -> None:
        self.session_id = session_id
        self.inbound.put_nowait(Frame.open(session_id=session_id))

    def close(self, reason: str = "end of stream", session_id: int = 1) -> None:
        if self.session_id == session_id:
            self.session_id = None
        self.inbound.put_nowait(Frame.close(reason, session_id=session_id))

    def push(self, payload: Any) -> None:
        text = payload if isinstance(payload, str) else json.dumps(payload)
        self.inbound.put_nowait(Frame.text(text))

    def respond(self, method: str, result: Any) -> None:
        request = self.last(method)
        self.push({"jsonrpc": "2.0", "result": result, "id": request["id"]})

    def notify(self, method: str, params: Any = None) -> None:
        payload: dict[str, Any] = {"jsonrpc": "2.0", "method": method}
        if params is not None:
            payload["params"] = params
        self.push(payload)


def counting_ids() -> Callable[[], str]:
    counter = itertools.count(1)
    return lambda: f"{next(counter):x}"


@pytest.fixture
def supervisor() -> StubSupervisor:
    return StubSupervisor()


@pytest.fixture
def make_link(supervisor: StubSupervisor) -> Callable[..., RealtimeLink]:
    def _factory(**kwargs: Any) -> RealtimeLink:
        config = kwargs.pop("config", None) or LinkConfig(server="printer")
        return RealtimeLink(
            config,
            supervisor=supervisor,
            correlator=RequestCorrelator(id_factory=counting_ids()),
            **kwargs,
        )

    return _factory


@pytest.fixture
def link(make_link: Callable[..., RealtimeLink]) -> RealtimeLink:
    return make_link()


def live_link(link: RealtimeLink, supervisor: StubSupervisor) -> RealtimeLink:
    """Open a session and drain the handshake frame."""

    supervisor.open()
    link.tick()
    return link
