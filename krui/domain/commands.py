"""User-triggered printer commands."""

from __future__ import annotations

from dataclasses import dataclass
import math
from typing import Any

from krui.const import (
    METHOD_EMERGENCY_STOP,
    METHOD_GCODE_SCRIPT,
    METHOD_PRINT_CANCEL,
    METHOD_PRINT_PAUSE,
    METHOD_PRINT_RESUME,
    METHOD_PRINT_START,
)

from .state import HeaterKind, classify_sensor

RpcCall = tuple[str, dict[str, Any]]


def _short_name(name: str) -> str:
    """Strip the object type prefix from ``heater_generic chamber``-style names."""

    return name.strip().rsplit(" ", 1)[-1]


def _gcode(script: str) -> RpcCall:
    return METHOD_GCODE_SCRIPT, {"script": script}


@dataclass(slots=True)
class BaseCommand:
    """Base type for printer commands."""

    def to_rpc(self) -> RpcCall:
        """Return the ``(method, params)`` pair implementing the command."""

        raise NotImplementedError


@dataclass(slots=True)
class SetHeaterTarget(BaseCommand):
    """Set the target temperature of a heater or temperature fan."""

    heater: str
    target: float

    def to_rpc(self) -> RpcCall:
        try:
            target = float(self.target)
        except (TypeError, ValueError) as err:
            raise ValueError(f"Invalid target temperature: {self.target!r}") from err
        if not math.isfinite(target) or target < 0:
            raise ValueError(f"Invalid target temperature: {self.target!r}")
        if not self.heater or not self.heater.strip():
            raise ValueError("heater name must not be empty")

        name = _short_name(self.heater)
        if classify_sensor(self.heater) is HeaterKind.TEMPERATURE_FAN:
            return _gcode(
                f"SET_TEMPERATURE_FAN_TARGET TEMPERATURE_FAN={name} TARGET={target:g}"
            )
        return _gcode(f"SET_HEATER_TEMPERATURE HEATER={name} TARGET={target:g}")


@dataclass(slots=True)
class StartPrint(BaseCommand):
    """Start printing a file from the virtual SD card."""

    filename: str

    def to_rpc(self) -> RpcCall:
        if not self.filename:
            raise ValueError("filename must not be empty")
        return METHOD_PRINT_START, {"filename": self.filename}


@dataclass(slots=True)
class PausePrint(BaseCommand):
    """Pause the active print."""

    def to_rpc(self) -> RpcCall:
        return METHOD_PRINT_PAUSE, {}


@dataclass(slots=True)
class ResumePrint(BaseCommand):
    """Resume a paused print."""

    def to_rpc(self) -> RpcCall:
        return METHOD_PRINT_RESUME, {}


@dataclass(slots=True)
class CancelPrint(BaseCommand):
    """Cancel the active print."""

    def to_rpc(self) -> RpcCall:
        return METHOD_PRINT_CANCEL, {}


@dataclass(slots=True)
class RunGcode(BaseCommand):
    """Run an arbitrary gcode script, as typed in the console."""

    script: str

    def to_rpc(self) -> RpcCall:
        script = self.script.strip()
        if not script:
            raise ValueError("gcode script must not be empty")
        return _gcode(script)


@dataclass(slots=True)
class HomeAxes(BaseCommand):
    """Home the given axes, or all of them."""

    axes: str = ""

    def to_rpc(self) -> RpcCall:
        axes = self.axes.upper()
        invalid = set(axes) - set("XYZ")
        if invalid:
            raise ValueError(f"Invalid axes: {self.axes!r}")
        if not axes:
            return _gcode("G28")
        return _gcode("G28 " + " ".join(dict.fromkeys(axes)))


@dataclass(slots=True)
class FirmwareRestart(BaseCommand):
    """Restart the printer firmware after a shutdown or emergency stop."""

    def to_rpc(self) -> RpcCall:
        return _gcode("FIRMWARE_RESTART")


@dataclass(slots=True)
class EmergencyStop(BaseCommand):
    """Halt the printer immediately."""

    def to_rpc(self) -> RpcCall:
        return METHOD_EMERGENCY_STOP, {}


__all__ = [
    "BaseCommand",
    "CancelPrint",
    "EmergencyStop",
    "FirmwareRestart",
    "HomeAxes",
    "PausePrint",
    "ResumePrint",
    "RpcCall",
    "RunGcode",
    "SetHeaterTarget",
    "StartPrint",
]
