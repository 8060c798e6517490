"""Canonical printer snapshot and the status merge engine."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from krui.codecs.moonraker_models import FileMetadataResult
from krui.codecs.status import StatusDelta
from krui.const import (
    DEVICE_STATE_UNKNOWN,
    PRINT_STATE_PRINTING,
    PRINT_STATE_STANDBY,
    TEMPERATURE_FAN_MARKER,
)


class HeaterKind(str, Enum):
    """Supported heater-like sensor kinds."""

    HEATER = "heater"
    TEMPERATURE_FAN = "temperature_fan"


def classify_sensor(name: str) -> HeaterKind:
    """Return the heater kind implied by a printer object name."""

    if TEMPERATURE_FAN_MARKER in name:
        return HeaterKind.TEMPERATURE_FAN
    return HeaterKind.HEATER


@dataclass(slots=True)
class Heater:
    """A heater or temperature-controlled fan.

    ``power`` holds the heater duty cycle, or the fan speed for temperature
    fans; both are in the 0..1 range.
    """

    name: str
    kind: HeaterKind = HeaterKind.HEATER
    temperature: float = 0.0
    target: float = 0.0
    power: float = 0.0

    @property
    def display_name(self) -> str:
        """Return the object name without its type prefix."""

        return self.name.rsplit(" ", 1)[-1].replace("_", " ")


@dataclass(slots=True)
class Position:
    """Toolhead position in millimetres."""

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0


@dataclass(slots=True)
class Homed:
    """Homing and gantry leveling flags."""

    x: bool = False
    y: bool = False
    z: bool = False
    qgl: bool = False

    @property
    def all_axes(self) -> bool:
        """Return True when every axis is homed."""

        return self.x and self.y and self.z


@dataclass(slots=True)
class Toolhead:
    """Toolhead motion state."""

    position: Position = field(default_factory=Position)
    homed: Homed = field(default_factory=Homed)
    fan_speed: float = 0.0
    speed: float = 0.0
    extruder_velocity: float = 0.0


@dataclass(slots=True)
class Thumbnail:
    """Thumbnail reference inside file metadata."""

    width: int = 0
    height: int = 0
    size: int = 0
    relative_path: str = ""


@dataclass(slots=True)
class FileMetadata:
    """Slicer metadata of the active file."""

    filename: str = ""
    estimated_time: float = 0.0
    layer_height: float = 0.0
    first_layer_height: float = 0.0
    object_height: float = 0.0
    filament_total: float = 0.0
    slicer: str = ""
    thumbnails: list[Thumbnail] = field(default_factory=list)

    @classmethod
    def from_result(cls, result: FileMetadataResult) -> FileMetadata:
        """Build metadata from a decoded ``server.files.metadata`` result."""

        return cls(
            filename=result.filename,
            estimated_time=result.estimated_time or 0.0,
            layer_height=result.layer_height or 0.0,
            first_layer_height=result.first_layer_height or 0.0,
            object_height=result.object_height or 0.0,
            filament_total=result.filament_total or 0.0,
            slicer=result.slicer or "",
            thumbnails=[
                Thumbnail(
                    width=thumb.width or 0,
                    height=thumb.height or 0,
                    size=thumb.size or 0,
                    relative_path=thumb.relative_path or "",
                )
                for thumb in result.thumbnails or []
            ],
        )

    @property
    def largest_thumbnail(self) -> Thumbnail | None:
        """Return the thumbnail with the most pixels, if any."""

        if not self.thumbnails:
            return None
        return max(self.thumbnails, key=lambda thumb: thumb.width * thumb.height)


@dataclass(slots=True)
class CurrentPrint:
    """Bookkeeping for the job being printed."""

    filename: str = ""
    total_duration: float = 0.0
    print_duration: float = 0.0
    filament_used: float = 0.0
    current_layer: int = 0
    total_layers: int = 0
    progress: float = 0.0
    file_metadata: FileMetadata | None = None


@dataclass(slots=True)
class PrinterSnapshot:
    """In-memory mirror of the remote printer state."""

    connected: bool = False
    state: str = DEVICE_STATE_UNKNOWN
    state_message: str = ""
    print_state: str = PRINT_STATE_STANDBY
    heaters: dict[str, Heater] = field(default_factory=dict)
    toolhead: Toolhead = field(default_factory=Toolhead)
    stepper_enabled: bool = False
    filament_present: bool = False
    sysload: float = 0.0
    current_print: CurrentPrint | None = None

    @property
    def is_printing(self) -> bool:
        """Return True while a job is actively printing."""

        return self.print_state == PRINT_STATE_PRINTING

    def heater(self, name: str) -> Heater | None:
        """Return the heater called ``name`` when discovered."""

        return self.heaters.get(name)

    def iter_heaters(self, kind: HeaterKind | None = None) -> Iterator[Heater]:
        """Yield heaters in discovery order, optionally filtered by ``kind``."""

        for heater in self.heaters.values():
            if kind is None or heater.kind is kind:
                yield heater


def _discover_heaters(snapshot: PrinterSnapshot, delta: StatusDelta) -> None:
    """Insert newly available heaters and temperature fans."""

    section = delta.heaters
    if section is None:
        return
    for name in section.available_heaters or ():
        if name not in snapshot.heaters:
            snapshot.heaters[name] = Heater(name=name, kind=classify_sensor(name))
    for name in section.available_sensors or ():
        if classify_sensor(name) is not HeaterKind.TEMPERATURE_FAN:
            continue
        if name not in snapshot.heaters:
            snapshot.heaters[name] = Heater(
                name=name, kind=HeaterKind.TEMPERATURE_FAN
            )


def _update_heaters(snapshot: PrinterSnapshot, delta: StatusDelta) -> None:
    """Overwrite readings of known heaters mentioned in the delta."""

    for name, heater in snapshot.heaters.items():
        reading = delta.readings.get(name)
        if reading is None:
            continue
        if reading.temperature is not None:
            heater.temperature = reading.temperature
        if reading.target is not None:
            heater.target = reading.target
        if heater.kind is HeaterKind.TEMPERATURE_FAN:
            duty = reading.speed if reading.speed is not None else reading.power
        else:
            duty = reading.power
        if duty is not None:
            heater.power = duty


def _update_motion(snapshot: PrinterSnapshot, delta: StatusDelta) -> None:
    """Apply live position, velocity and extruder flow."""

    motion = delta.motion_report
    if motion is None:
        return
    toolhead = snapshot.toolhead
    if motion.live_position is not None:
        x, y, z = motion.live_position[:3]
        toolhead.position = Position(x=x, y=y, z=z)
    if motion.live_velocity is not None:
        toolhead.speed = motion.live_velocity
    if motion.live_extruder_velocity is not None:
        toolhead.extruder_velocity = motion.live_extruder_velocity


def _update_phase(snapshot: PrinterSnapshot, delta: StatusDelta) -> None:
    """Apply connectivity state and print phase."""

    if delta.webhooks is not None:
        if delta.webhooks.state is not None:
            snapshot.state = delta.webhooks.state
        if delta.webhooks.state_message is not None:
            snapshot.state_message = delta.webhooks.state_message
    if delta.print_stats is not None and delta.print_stats.state is not None:
        snapshot.print_state = delta.print_stats.state


def _update_current_print(snapshot: PrinterSnapshot, delta: StatusDelta) -> None:
    """Create, refresh or clear the active job record."""

    if not snapshot.is_printing:
        snapshot.current_print = None
        return

    current = snapshot.current_print
    if current is None:
        current = snapshot.current_print = CurrentPrint()

    stats = delta.print_stats
    if stats is not None:
        if stats.filename is not None:
            current.filename = stats.filename
        if stats.total_duration is not None:
            current.total_duration = stats.total_duration
        if stats.print_duration is not None:
            current.print_duration = stats.print_duration
        if stats.filament_used is not None:
            current.filament_used = stats.filament_used
        if stats.info is not None:
            if stats.info.current_layer is not None:
                current.current_layer = stats.info.current_layer
            if stats.info.total_layer is not None:
                current.total_layers = stats.info.total_layer

    for section in (delta.virtual_sdcard, delta.display_status):
        if section is not None and section.progress is not None:
            current.progress = section.progress


def _update_homing(snapshot: PrinterSnapshot, delta: StatusDelta) -> None:
    """Recompute homed axes and the leveling flag."""

    homed = snapshot.toolhead.homed
    if delta.toolhead is not None and delta.toolhead.homed_axes is not None:
        axes = delta.toolhead.homed_axes.lower()
        homed.x = "x" in axes
        homed.y = "y" in axes
        homed.z = "z" in axes
    for section in (delta.quad_gantry_level, delta.z_tilt):
        if section is not None and section.applied is not None:
            homed.qgl = section.applied


def _update_sensors(snapshot: PrinterSnapshot, delta: StatusDelta) -> None:
    """Apply part fan, host load, filament and stepper flags."""

    if delta.fan is not None and delta.fan.speed is not None:
        snapshot.toolhead.fan_speed = delta.fan.speed
    if delta.system_stats is not None and delta.system_stats.sysload is not None:
        snapshot.sysload = delta.system_stats.sysload
    for sensor in delta.filament_sensors.values():
        if sensor.filament_detected is not None:
            snapshot.filament_present = sensor.filament_detected
    if delta.stepper_enable is not None and delta.stepper_enable.steppers is not None:
        snapshot.stepper_enabled = any(delta.stepper_enable.steppers.values())


_MERGE_STEPS = (
    _discover_heaters,
    _update_heaters,
    _update_motion,
    _update_phase,
    _update_current_print,
    _update_homing,
    _update_sensors,
)


def merge_status(
    snapshot: PrinterSnapshot, delta: StatusDelta | Mapping[str, Any] | None
) -> PrinterSnapshot:
    """Return ``snapshot`` with ``delta`` folded in.

    The input snapshot is left untouched. Steps run in a fixed order because
    later steps read values earlier ones may have written (the print phase
    decides whether job bookkeeping applies). Fields the delta does not
    mention keep their previous value.
    """

    if not isinstance(delta, StatusDelta):
        delta = StatusDelta.from_raw(delta)

    merged = copy.deepcopy(snapshot)
    for step in _MERGE_STEPS:
        step(merged, delta)
    if delta.connected is not None:
        merged.connected = delta.connected
    return merged


__all__ = [
    "CurrentPrint",
    "FileMetadata",
    "Heater",
    "HeaterKind",
    "Homed",
    "Position",
    "PrinterSnapshot",
    "Thumbnail",
    "Toolhead",
    "classify_sensor",
    "merge_status",
]
