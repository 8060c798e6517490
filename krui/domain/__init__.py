"""Domain-layer primitives for the krui printer link."""

from .commands import (
    BaseCommand,
    CancelPrint,
    EmergencyStop,
    FirmwareRestart,
    HomeAxes,
    PausePrint,
    ResumePrint,
    RunGcode,
    SetHeaterTarget,
    StartPrint,
)
from .history import HistoryJob, HistoryReconciler
from .state import (
    CurrentPrint,
    FileMetadata,
    Heater,
    HeaterKind,
    Homed,
    Position,
    PrinterSnapshot,
    Toolhead,
    classify_sensor,
    merge_status,
)
from .view import PrintProgress, StateView, print_progress

__all__ = [
    "BaseCommand",
    "CancelPrint",
    "CurrentPrint",
    "EmergencyStop",
    "FileMetadata",
    "FirmwareRestart",
    "Heater",
    "HeaterKind",
    "HistoryJob",
    "HistoryReconciler",
    "HomeAxes",
    "Homed",
    "PausePrint",
    "Position",
    "PrintProgress",
    "PrinterSnapshot",
    "ResumePrint",
    "RunGcode",
    "SetHeaterTarget",
    "StartPrint",
    "StateView",
    "Toolhead",
    "classify_sensor",
    "merge_status",
    "print_progress",
]
