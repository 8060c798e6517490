"""Structured partial status updates decoded from raw printer deltas."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from krui.const import FILAMENT_SENSOR_MARKER

from .moonraker_models import (
    FanSection,
    FilamentSensorSection,
    HeaterReading,
    HeatersSection,
    LevelingSection,
    MotionReportSection,
    PrintStatsSection,
    ProgressSection,
    StepperEnableSection,
    SystemStatsSection,
    ToolheadSection,
    WebhooksSection,
    decode_model,
)

# Printer objects with a fixed section model; everything else that is a
# mapping may be a heater or temperature fan reading.
_SECTION_MODELS: dict[str, type] = {
    "heaters": HeatersSection,
    "motion_report": MotionReportSection,
    "webhooks": WebhooksSection,
    "print_stats": PrintStatsSection,
    "display_status": ProgressSection,
    "virtual_sdcard": ProgressSection,
    "toolhead": ToolheadSection,
    "quad_gantry_level": LevelingSection,
    "z_tilt": LevelingSection,
    "fan": FanSection,
    "system_stats": SystemStatsSection,
    "stepper_enable": StepperEnableSection,
}


@dataclass(slots=True)
class StatusDelta:
    """Typed view of one partial status object.

    Each attribute is ``None`` when the delta did not mention the object (or
    the object was not a mapping); fields inside a section that failed
    validation have already been dropped.
    """

    heaters: HeatersSection | None = None
    readings: dict[str, HeaterReading] = field(default_factory=dict)
    motion_report: MotionReportSection | None = None
    webhooks: WebhooksSection | None = None
    print_stats: PrintStatsSection | None = None
    display_status: ProgressSection | None = None
    virtual_sdcard: ProgressSection | None = None
    toolhead: ToolheadSection | None = None
    quad_gantry_level: LevelingSection | None = None
    z_tilt: LevelingSection | None = None
    fan: FanSection | None = None
    system_stats: SystemStatsSection | None = None
    stepper_enable: StepperEnableSection | None = None
    filament_sensors: dict[str, FilamentSensorSection] = field(default_factory=dict)
    connected: bool | None = None

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any] | None) -> StatusDelta:
        """Decode a raw status mapping; unusable input yields an empty delta."""

        delta = cls()
        if not isinstance(raw, Mapping):
            return delta

        for key, value in raw.items():
            if not isinstance(key, str):
                continue
            model = _SECTION_MODELS.get(key)
            if model is not None:
                setattr(delta, key, decode_model(model, value))
                continue
            if key == "connected":
                if isinstance(value, bool):
                    delta.connected = value
                continue
            if FILAMENT_SENSOR_MARKER in key:
                sensor = decode_model(FilamentSensorSection, value)
                if sensor is not None:
                    delta.filament_sensors[key] = sensor
                continue
            if isinstance(value, Mapping):
                reading = decode_model(HeaterReading, value)
                if reading is not None:
                    delta.readings[key] = reading
        return delta

    @property
    def is_empty(self) -> bool:
        """Return True when nothing in the delta can change a snapshot."""

        return (
            not self.readings
            and not self.filament_sensors
            and self.connected is None
            and all(getattr(self, key) is None for key in _SECTION_MODELS)
        )


__all__ = ["StatusDelta"]
