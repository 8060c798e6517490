"""Tests for the consumer loop, handshake and user calls."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Callable

import aiohttp
import pytest

from conftest import FakeHTTPSession, FakeWebSocket, StubSupervisor, live_link
from krui.backend.ws_client import ConnectionState, LinkSupervisor
from krui.config import LinkConfig
from krui.const import CLIENT_NAME
from krui.domain.commands import EmergencyStop, SetHeaterTarget, StartPrint
from krui.domain.state import PrinterSnapshot
from krui.link import RealtimeLink

HANDSHAKE = [
    "server.connection.identify",
    "server.info",
    "printer.objects.list",
    "server.history.list",
]

PRINTING_STATUS = {
    "print_stats": {"state": "printing", "filename": "benchy.gcode"},
    "virtual_sdcard": {"progress": 0.1},
}


def test_open_frame_runs_handshake(link: RealtimeLink, supervisor: StubSupervisor) -> None:
    assert supervisor.state is ConnectionState.DISCONNECTED

    supervisor.open()
    assert link.tick() == 1

    assert supervisor.methods() == HANDSHAKE
    assert supervisor.state is ConnectionState.LIVE
    identify = supervisor.last("server.connection.identify")
    assert identify["params"]["client_name"] == CLIENT_NAME
    assert supervisor.last("server.history.list")["params"] == {
        "limit": 50,
        "order": "desc",
    }
    assert len(link.correlator) == 4


def test_objects_list_response_triggers_query_and_subscribe(
    link: RealtimeLink, supervisor: StubSupervisor
) -> None:
    live_link(link, supervisor)

    supervisor.respond("printer.objects.list", {"objects": ["toolhead", "extruder"]})
    link.tick()

    assert supervisor.methods()[4:] == ["printer.objects.query", "printer.objects.subscribe"]
    expected = {"objects": {"toolhead": None, "extruder": None}}
    assert supervisor.last("printer.objects.query")["params"] == expected
    assert supervisor.last("printer.objects.subscribe")["params"] == expected


def test_reconnect_reruns_handshake_in_order(
    link: RealtimeLink, supervisor: StubSupervisor
) -> None:
    live_link(link, supervisor)
    link.apply_status({"connected": True})
    sent_before = len(supervisor.sent)

    supervisor.close("connection reset", session_id=1)
    supervisor.open(session_id=2)
    assert link.tick(max_frames=None) == 2

    assert link.snapshot.connected is False
    assert supervisor.methods()[sent_before:] == HANDSHAKE
    assert len(link.correlator) == 4

    supervisor.respond("printer.objects.list", {"objects": ["webhooks"]})
    link.tick()

    assert supervisor.methods()[sent_before:] == HANDSHAKE + [
        "printer.objects.query",
        "printer.objects.subscribe",
    ]


def test_close_clears_pending_calls(
    link: RealtimeLink, supervisor: StubSupervisor, caplog: pytest.LogCaptureFixture
) -> None:
    live_link(link, supervisor)
    stale = supervisor.last("server.info")

    with caplog.at_level(logging.INFO, logger="krui.link"):
        supervisor.close()
        link.tick()

    assert len(link.correlator) == 0
    assert "4 pending calls dropped" in caplog.text

    # A late response for the old session is ignored.
    supervisor.push(
        {
            "jsonrpc": "2.0",
            "result": {"klippy_connected": True, "klippy_state": "ready"},
            "id": stale["id"],
        }
    )
    link.tick()
    assert link.snapshot.connected is False
    assert link.server_info is None


def test_tick_is_non_blocking_and_bounded(
    link: RealtimeLink, supervisor: StubSupervisor
) -> None:
    assert link.tick() == 0

    for _ in range(3):
        supervisor.notify("notify_klippy_shutdown")

    assert link.tick(max_frames=2) == 2
    assert link.tick(max_frames=None) == 1
    assert supervisor.health.frames_total == 3


def test_submit_requires_live_connection(
    link: RealtimeLink, supervisor: StubSupervisor, caplog: pytest.LogCaptureFixture
) -> None:
    with caplog.at_level(logging.WARNING, logger="krui.link"):
        assert link.submit("printer.print.pause") is None

    assert supervisor.sent == []
    assert "connection is disconnected" in caplog.text

    live_link(link, supervisor)
    request_id = link.submit("printer.print.pause")

    assert request_id is not None
    assert supervisor.last("printer.print.pause")["id"] == request_id
    assert link.correlator.get(request_id).method == "printer.print.pause"


def test_call_without_session_is_not_tracked(
    link: RealtimeLink, supervisor: StubSupervisor
) -> None:
    supervisor.accepting = False

    assert link.call("server.info") is None
    assert len(link.correlator) == 0


def test_execute_renders_typed_commands(
    link: RealtimeLink, supervisor: StubSupervisor
) -> None:
    live_link(link, supervisor)

    link.execute(SetHeaterTarget("extruder", 210))
    link.execute(StartPrint("benchy.gcode"))

    assert supervisor.last("printer.gcode.script")["params"] == {
        "script": "SET_HEATER_TEMPERATURE HEATER=extruder TARGET=210"
    }
    assert supervisor.last("printer.print.start")["params"] == {
        "filename": "benchy.gcode"
    }


def test_execute_rejects_invalid_commands_before_sending(
    link: RealtimeLink, supervisor: StubSupervisor
) -> None:
    live_link(link, supervisor)
    sent = len(supervisor.sent)

    with pytest.raises(ValueError):
        link.execute(SetHeaterTarget("extruder", -5))

    assert len(supervisor.sent) == sent


@pytest.mark.parametrize(
    "trigger",
    [
        lambda link: link.emergency_stop(),
        lambda link: link.execute(EmergencyStop()),
    ],
)
def test_emergency_stop_sends_then_closes(
    link: RealtimeLink,
    supervisor: StubSupervisor,
    trigger: Callable[[RealtimeLink], object],
) -> None:
    live_link(link, supervisor)
    link.apply_status(PRINTING_STATUS)
    assert link.snapshot.current_print is not None

    request_id = trigger(link)

    stop_index = supervisor.events.index(("send", supervisor.last("printer.emergency_stop")))
    assert supervisor.events[stop_index + 1] == ("close", "emergency stop")
    assert request_id == supervisor.last("printer.emergency_stop")["id"]
    assert link.snapshot.print_state == "error"
    assert link.snapshot.current_print is None


def test_emergency_stop_close_leads_to_fresh_handshake(
    link: RealtimeLink, supervisor: StubSupervisor
) -> None:
    live_link(link, supervisor)
    link.emergency_stop()
    sent_before = len(supervisor.sent)

    supervisor.close("websocket closed: code=1001")
    supervisor.open(session_id=2)
    link.tick(max_frames=None)

    assert supervisor.methods()[sent_before:] == HANDSHAKE


def test_view_exposes_state(link: RealtimeLink, supervisor: StubSupervisor) -> None:
    live_link(link, supervisor)
    link.append_console("ok")
    link.history.add({"filename": "a.gcode", "end_time": 5})

    view = link.view

    assert view.snapshot is link.snapshot
    assert [line.content for line in view.console] == ["ok"]
    assert [job.filename for job in view.history] == ["a.gcode"]
    status = view.status()
    assert status["state"] == "live"
    assert status["session"] == 1
    assert status["pending_calls"] == 4
    assert status["health"]["endpoint"] == "ws://printer/websocket"


def test_set_connected_replaces_snapshot(link: RealtimeLink) -> None:
    before = link.snapshot

    link.set_connected(True)

    assert link.snapshot.connected is True
    assert before == PrinterSnapshot()


@pytest.mark.asyncio
async def test_start_and_stop_delegate_to_supervisor(
    link: RealtimeLink, supervisor: StubSupervisor
) -> None:
    link.start()
    supervisor.open()
    link.tick()

    await link.stop()

    assert ("start", None) in supervisor.events
    assert supervisor.state is ConnectionState.DISCONNECTED
    assert len(link.correlator) == 0


@pytest.mark.asyncio
async def test_open_of_dead_session_is_not_replayed_on_its_successor() -> None:
    first, second = FakeWebSocket(), FakeWebSocket()
    first.feed(aiohttp.WSMsgType.CLOSED)
    supervisor = LinkSupervisor(
        "ws://printer/websocket", http_session=FakeHTTPSession([first, second])
    )
    link = RealtimeLink(LinkConfig(server="printer"), supervisor=supervisor)

    link.start()
    async with asyncio.timeout(1):
        while supervisor.session_id != 2:
            await asyncio.sleep(0)

    assert link.tick(max_frames=None) == 3

    async with asyncio.timeout(1):
        while len(second.sent) < len(HANDSHAKE):
            await asyncio.sleep(0)
    for _ in range(5):
        await asyncio.sleep(0)

    assert first.sent == []
    assert [json.loads(text)["method"] for text in second.sent] == HANDSHAKE
    assert supervisor.state is ConnectionState.LIVE
    assert len(link.correlator) == len(HANDSHAKE)

    await link.stop()


def test_close_of_older_session_keeps_current_one(
    link: RealtimeLink, supervisor: StubSupervisor
) -> None:
    supervisor.open(session_id=2)
    link.tick()
    link.set_connected(True)

    supervisor.close("websocket closed: code=1006", session_id=1)
    link.tick()

    assert len(link.correlator) == len(HANDSHAKE)
    assert link.snapshot.connected is True
    assert link.status()["session"] == 2
