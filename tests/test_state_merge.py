"""Tests for the printer snapshot merge engine."""

from __future__ import annotations

import copy
from typing import Any

import pytest

from krui.codecs.status import StatusDelta
from krui.domain.state import (
    HeaterKind,
    Position,
    PrinterSnapshot,
    classify_sensor,
    merge_status,
)

DISCOVERY = {"heaters": {"available_heaters": ["heater_bed", "extruder"]}}

PRINTING = {
    "print_stats": {
        "state": "printing",
        "filename": "benchy.gcode",
        "total_duration": 120.0,
        "print_duration": 100.0,
        "filament_used": 42.5,
        "info": {"current_layer": 3, "total_layer": 120},
    },
    "virtual_sdcard": {"progress": 0.25},
}

DELTAS: list[dict[str, Any]] = [
    DISCOVERY,
    {"heater_bed": {"temperature": 50.0, "target": 60.0, "power": 0.5}},
    {"motion_report": {"live_position": [1.0, 2.0, 3.0, 4.0], "live_velocity": 80}},
    {"webhooks": {"state": "ready", "state_message": "Printer is ready"}},
    PRINTING,
    {"toolhead": {"homed_axes": "xz"}, "quad_gantry_level": {"applied": True}},
    {"fan": {"speed": 0.5}, "system_stats": {"sysload": 0.8}},
    {"stepper_enable": {"steppers": {"stepper_x": False, "stepper_y": True}}},
    {"connected": True},
]


def _merge_all(*deltas: dict[str, Any]) -> PrinterSnapshot:
    snapshot = PrinterSnapshot()
    for delta in deltas:
        snapshot = merge_status(snapshot, delta)
    return snapshot


@pytest.mark.parametrize("delta", DELTAS)
def test_merge_is_idempotent(delta: dict[str, Any]) -> None:
    """Applying the same delta twice equals applying it once."""

    base = _merge_all(DISCOVERY)
    once = merge_status(base, delta)
    assert merge_status(once, delta) == once


def test_merge_leaves_input_untouched() -> None:
    base = _merge_all(DISCOVERY)
    frozen = copy.deepcopy(base)

    merged = merge_status(base, {"heater_bed": {"temperature": 70.0}, **PRINTING})

    assert base == frozen
    assert merged is not base
    assert merged.heaters["heater_bed"].temperature == 70.0


def test_unmentioned_fields_are_preserved() -> None:
    base = _merge_all(*DELTAS)

    merged = merge_status(base, {"fan": {"speed": 0.9}})

    assert merged.toolhead.fan_speed == 0.9
    assert merged.heaters == base.heaters
    assert merged.toolhead.position == base.toolhead.position
    assert merged.toolhead.homed == base.toolhead.homed
    assert merged.state == base.state
    assert merged.sysload == base.sysload
    assert merged.current_print == base.current_print
    assert merged.stepper_enabled is base.stepper_enabled
    assert merged.connected is base.connected


def test_discovery_then_update() -> None:
    discovered = merge_status(PrinterSnapshot(), DISCOVERY)

    assert list(discovered.heaters) == ["heater_bed", "extruder"]
    for heater in discovered.heaters.values():
        assert heater.kind is HeaterKind.HEATER
        assert (heater.temperature, heater.target, heater.power) == (0.0, 0.0, 0.0)

    updated = merge_status(
        discovered,
        {"heater_bed": {"temperature": 50.0, "power": 0.5, "target": 60.0}},
    )

    assert len(updated.heaters) == 2
    bed = updated.heaters["heater_bed"]
    assert (bed.temperature, bed.target, bed.power) == (50.0, 60.0, 0.5)
    assert updated.heaters["extruder"].temperature == 0.0


def test_readings_for_unknown_heaters_are_ignored() -> None:
    merged = merge_status(PrinterSnapshot(), {"extruder": {"temperature": 200.0}})

    assert merged.heaters == {}


def test_rediscovery_keeps_existing_readings() -> None:
    snapshot = _merge_all(DISCOVERY, {"extruder": {"temperature": 210.0}})

    merged = merge_status(snapshot, DISCOVERY)

    assert merged.heaters["extruder"].temperature == 210.0


def test_temperature_fan_is_classified_and_updated_once() -> None:
    name = "temperature_fan chamber"
    snapshot = merge_status(
        PrinterSnapshot(),
        {"heaters": {"available_sensors": [name, "temperature_sensor mcu"]}},
    )

    assert list(snapshot.heaters) == [name]
    assert snapshot.heaters[name].kind is HeaterKind.TEMPERATURE_FAN

    for _ in range(2):
        snapshot = merge_status(snapshot, {name: {"temperature": 50.0, "power": 0.5}})

    assert list(snapshot.heaters) == [name]
    fan = snapshot.heaters[name]
    assert fan.temperature == 50.0
    assert fan.power == 0.5


def test_temperature_fan_prefers_speed_over_power() -> None:
    name = "temperature_fan exhaust"
    snapshot = merge_status(
        PrinterSnapshot(), {"heaters": {"available_sensors": [name]}}
    )

    merged = merge_status(snapshot, {name: {"speed": 0.3, "power": 0.9}})

    assert merged.heaters[name].power == 0.3


def test_classify_sensor() -> None:
    assert classify_sensor("temperature_fan chamber") is HeaterKind.TEMPERATURE_FAN
    assert classify_sensor("heater_generic chamber") is HeaterKind.HEATER


def test_fan_updates_do_not_touch_unrelated_fields() -> None:
    first = merge_status(PrinterSnapshot(), {"fan": {"speed": 0.5}})
    second = merge_status(first, {"fan": {"speed": 0.75}})

    assert second.toolhead.fan_speed == 0.75
    assert second.toolhead.homed.x is False
    assert second.state == PrinterSnapshot().state


@pytest.mark.parametrize("sensor", ["filament_switch_sensor runout", "filament_switch_sensor X"])
def test_filament_sensor_sets_presence(sensor: str) -> None:
    merged = merge_status(PrinterSnapshot(), {sensor: {"filament_detected": True}})

    assert merged.filament_present is True

    cleared = merge_status(merged, {sensor: {"filament_detected": False}})
    assert cleared.filament_present is False


def test_motion_report_updates_toolhead() -> None:
    merged = merge_status(
        PrinterSnapshot(),
        {
            "motion_report": {
                "live_position": [10, 20.5, 0.2, 1234.0],
                "live_velocity": 150,
                "live_extruder_velocity": 2.5,
            }
        },
    )

    assert merged.toolhead.position == Position(x=10.0, y=20.5, z=0.2)
    assert merged.toolhead.speed == 150.0
    assert merged.toolhead.extruder_velocity == 2.5


def test_homed_axes_recomputed_and_leveling_flag() -> None:
    snapshot = merge_status(
        PrinterSnapshot(),
        {"toolhead": {"homed_axes": "xyz"}, "quad_gantry_level": {"applied": True}},
    )
    assert snapshot.toolhead.homed.all_axes
    assert snapshot.toolhead.homed.qgl is True

    snapshot = merge_status(snapshot, {"toolhead": {"homed_axes": "z"}})
    assert (snapshot.toolhead.homed.x, snapshot.toolhead.homed.y) == (False, False)
    assert snapshot.toolhead.homed.z is True
    assert snapshot.toolhead.homed.qgl is True

    snapshot = merge_status(snapshot, {"z_tilt": {"applied": False}})
    assert snapshot.toolhead.homed.qgl is False


def test_printing_creates_and_clears_current_print() -> None:
    snapshot = merge_status(PrinterSnapshot(), PRINTING)

    current = snapshot.current_print
    assert snapshot.is_printing
    assert current is not None
    assert current.filename == "benchy.gcode"
    assert current.print_duration == 100.0
    assert current.filament_used == 42.5
    assert (current.current_layer, current.total_layers) == (3, 120)
    assert current.progress == 0.25

    snapshot = merge_status(snapshot, {"display_status": {"progress": 0.3}})
    assert snapshot.current_print.progress == 0.3
    assert snapshot.current_print.filename == "benchy.gcode"

    snapshot = merge_status(snapshot, {"print_stats": {"state": "complete"}})
    assert snapshot.print_state == "complete"
    assert snapshot.current_print is None


def test_stepper_enable_any_enabled() -> None:
    snapshot = merge_status(
        PrinterSnapshot(),
        {"stepper_enable": {"steppers": {"stepper_x": False, "stepper_y": True}}},
    )
    assert snapshot.stepper_enabled is True

    snapshot = merge_status(
        snapshot, {"stepper_enable": {"steppers": {"stepper_x": False}}}
    )
    assert snapshot.stepper_enabled is False


def test_wrong_typed_fields_are_skipped() -> None:
    base = _merge_all(DISCOVERY, {"heater_bed": {"temperature": 40.0, "target": 60.0}})

    merged = merge_status(
        base,
        {
            "heater_bed": {"temperature": "hot", "target": 65.0},
            "fan": {"speed": True},
            "webhooks": {"state": 7, "state_message": "ok"},
            "motion_report": {"live_position": [1.0, 2.0]},
            "connected": "yes",
        },
    )

    bed = merged.heaters["heater_bed"]
    assert bed.temperature == 40.0
    assert bed.target == 65.0
    assert merged.toolhead.fan_speed == 0.0
    assert merged.state == base.state
    assert merged.state_message == "ok"
    assert merged.toolhead.position == base.toolhead.position
    assert merged.connected is False


def test_non_mapping_sections_are_ignored() -> None:
    base = _merge_all(*DELTAS)

    merged = merge_status(base, {"print_stats": "printing", "toolhead": None})

    assert merged == base


def test_connected_flag() -> None:
    snapshot = merge_status(PrinterSnapshot(), {"connected": True})
    assert snapshot.connected is True
    assert merge_status(snapshot, {"connected": False}).connected is False


def test_status_delta_reports_empty() -> None:
    assert StatusDelta.from_raw({}).is_empty
    assert StatusDelta.from_raw(None).is_empty
    assert StatusDelta.from_raw({"fan": "fast", "bogus": 1}).is_empty
    assert not StatusDelta.from_raw({"fan": {"speed": 0.1}}).is_empty


def test_heater_display_name() -> None:
    snapshot = merge_status(
        PrinterSnapshot(),
        {"heaters": {"available_heaters": ["heater_generic chamber_heater"]}},
    )

    heater = snapshot.heater("heater_generic chamber_heater")
    assert heater is not None
    assert heater.display_name == "chamber heater"
    assert list(snapshot.iter_heaters(HeaterKind.TEMPERATURE_FAN)) == []
