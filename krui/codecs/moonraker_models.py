"""Pydantic models for Moonraker status sections and method results."""

from __future__ import annotations

from collections.abc import Mapping
import logging
from typing import Annotated, Any, TypeVar

from pydantic import (
    AfterValidator,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    StrictBool,
    StrictStr,
    ValidationError,
    field_validator,
)

_LOGGER = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def _as_float(value: Any) -> float:
    """Accept JSON numbers only and widen them to ``float``."""

    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"expected a number, got {type(value).__name__}")
    return float(value)


def _as_int(value: Any) -> int:
    """Accept integral JSON numbers only."""

    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"expected an integer, got {type(value).__name__}")
    if isinstance(value, float) and not value.is_integer():
        raise ValueError(f"expected an integer, got {value!r}")
    return int(value)


def _at_least_three(value: list[float]) -> list[float]:
    """Require x, y and z components."""

    if len(value) < 3:
        raise ValueError("position needs at least three axes")
    return value


Number = Annotated[float, BeforeValidator(_as_float)]
Integer = Annotated[int, BeforeValidator(_as_int)]
Position = Annotated[list[Number], AfterValidator(_at_least_three)]


class _Section(BaseModel):
    """Base for partial status sections; unknown keys are ignored."""

    model_config = ConfigDict(extra="ignore")


def decode_model(model: type[ModelT], raw: Any) -> ModelT | None:
    """Validate ``raw`` against ``model``, discarding fields that fail.

    Every top-level field that does not validate is removed and validation is
    retried, so one malformed field never hides its well-formed siblings.
    Returns ``None`` when ``raw`` is not a mapping or nothing survives.
    """

    if not isinstance(raw, Mapping):
        if raw is not None:
            _LOGGER.debug(
                "Skipping %s payload of type %s", model.__name__, type(raw).__name__
            )
        return None

    data = dict(raw)
    while True:
        try:
            return model.model_validate(data)
        except ValidationError as err:
            invalid = {
                error["loc"][0]
                for error in err.errors()
                if error.get("loc") and error["loc"][0] in data
            }
            if not invalid:
                _LOGGER.debug("Skipping %s payload: %s", model.__name__, err)
                return None
            for key in invalid:
                _LOGGER.debug(
                    "Skipping %s.%s: unexpected value %.60r",
                    model.__name__,
                    key,
                    data[key],
                )
                data.pop(key)


# ---------------------------------------------------------------------------
# Status sections (``printer.objects.query`` / ``notify_status_update``)
# ---------------------------------------------------------------------------


class HeatersSection(_Section):
    """The ``heaters`` object listing discoverable heater-like sensors."""

    available_heaters: list[StrictStr] | None = None
    available_sensors: list[StrictStr] | None = None


class HeaterReading(_Section):
    """Readings of a single heater or temperature fan."""

    temperature: Number | None = None
    target: Number | None = None
    power: Number | None = None
    speed: Number | None = None


class MotionReportSection(_Section):
    """Live motion values from ``motion_report``."""

    live_position: Position | None = None
    live_velocity: Number | None = None
    live_extruder_velocity: Number | None = None


class WebhooksSection(_Section):
    """Connectivity state of the printer host."""

    state: StrictStr | None = None
    state_message: StrictStr | None = None


class PrintStatsInfo(_Section):
    """Layer information reported by ``print_stats.info``."""

    current_layer: Integer | None = None
    total_layer: Integer | None = None


class PrintStatsSection(_Section):
    """Job bookkeeping from ``print_stats``."""

    state: StrictStr | None = None
    filename: StrictStr | None = None
    total_duration: Number | None = None
    print_duration: Number | None = None
    filament_used: Number | None = None
    message: StrictStr | None = None
    info: PrintStatsInfo | None = None

    @field_validator("info", mode="before")
    @classmethod
    def _decode_info(cls, value: Any) -> Any:
        """Keep the valid layer counter when its sibling is malformed."""

        if isinstance(value, Mapping):
            return decode_model(PrintStatsInfo, value)
        return value


class ProgressSection(_Section):
    """Progress carried by ``display_status`` and ``virtual_sdcard``."""

    progress: Number | None = None


class ToolheadSection(_Section):
    """Subset of ``toolhead`` used for homing state."""

    homed_axes: StrictStr | None = None


class LevelingSection(_Section):
    """``quad_gantry_level`` / ``z_tilt`` applied flag."""

    applied: StrictBool | None = None


class FanSection(_Section):
    """Part-cooling fan."""

    speed: Number | None = None


class SystemStatsSection(_Section):
    """Host load information."""

    sysload: Number | None = None


class StepperEnableSection(_Section):
    """Per-stepper enable flags."""

    steppers: dict[str, StrictBool] | None = None


class FilamentSensorSection(_Section):
    """A ``filament_switch_sensor <name>`` object."""

    filament_detected: StrictBool | None = None
    enabled: StrictBool | None = None


# ---------------------------------------------------------------------------
# Method results
# ---------------------------------------------------------------------------


class ServerInfoResult(_Section):
    """Result of ``server.info``."""

    klippy_connected: StrictBool = False
    klippy_state: StrictStr = ""
    moonraker_version: StrictStr | None = None
    api_version_string: StrictStr | None = None


class ObjectsListResult(_Section):
    """Result of ``printer.objects.list``."""

    objects: list[StrictStr] = Field(default_factory=list)


class ObjectsStatusResult(_Section):
    """Result of ``printer.objects.query`` and ``printer.objects.subscribe``."""

    eventtime: Number | None = None
    status: dict[str, Any] = Field(default_factory=dict)


class JobMetadata(_Section):
    """Slicer metadata nested in a history job."""

    estimated_time: Number | None = None


class HistoryJobPayload(_Section):
    """One entry of ``server.history.list`` or ``notify_history_changed``."""

    filename: StrictStr
    job_id: StrictStr | None = None
    status: StrictStr | None = None
    end_time: Number | None = None
    filament_used: Number | None = None
    total_duration: Number | None = None
    metadata: JobMetadata | None = None


class HistoryListResult(_Section):
    """Result of ``server.history.list``; jobs are decoded one by one."""

    count: Integer | None = None
    jobs: list[Any] = Field(default_factory=list)


class HistoryChangedParams(_Section):
    """First parameter of ``notify_history_changed``."""

    action: StrictStr
    job: dict[str, Any] | None = None


class ThumbnailPayload(_Section):
    """Thumbnail descriptor inside file metadata."""

    width: Integer | None = None
    height: Integer | None = None
    size: Integer | None = None
    relative_path: StrictStr | None = None


class FileMetadataResult(_Section):
    """Result of ``server.files.metadata``."""

    filename: StrictStr = ""
    estimated_time: Number | None = None
    layer_height: Number | None = None
    first_layer_height: Number | None = None
    object_height: Number | None = None
    filament_total: Number | None = None
    slicer: StrictStr | None = None
    thumbnails: list[ThumbnailPayload] | None = None


__all__ = [
    "FanSection",
    "FileMetadataResult",
    "FilamentSensorSection",
    "HeaterReading",
    "HeatersSection",
    "HistoryChangedParams",
    "HistoryJobPayload",
    "HistoryListResult",
    "JobMetadata",
    "LevelingSection",
    "MotionReportSection",
    "Number",
    "ObjectsListResult",
    "ObjectsStatusResult",
    "PrintStatsInfo",
    "PrintStatsSection",
    "ProgressSection",
    "ServerInfoResult",
    "StepperEnableSection",
    "SystemStatsSection",
    "ThumbnailPayload",
    "ToolheadSection",
    "WebhooksSection",
    "decode_model",
]
