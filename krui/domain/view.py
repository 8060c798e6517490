"""Read-only façade for the presentation layer."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
import datetime as dt
import math
from typing import Any

from krui.const import FILAMENT_DIAMETER

from .history import HistoryJob, HistoryReconciler
from .state import PrinterSnapshot


@dataclass(slots=True, frozen=True)
class PrintProgress:
    """Figures derived from the active job for display."""

    filename: str
    progress: float
    layer: int
    total_layers: int
    speed: float
    flow: float
    filament_used: float
    total_duration: float
    estimated_remaining: float
    slicer_remaining: float
    eta: dt.datetime


def _layer_from_height(height: float, first_layer: float, layer_height: float) -> int:
    """Return the 1-based layer index for ``height``."""

    if layer_height <= 0:
        return 0
    return max(0, math.ceil((height - first_layer) / layer_height + 1.0))


def print_progress(
    snapshot: PrinterSnapshot, *, now: dt.datetime | None = None
) -> PrintProgress | None:
    """Return derived progress figures, or ``None`` when nothing is printing.

    Layer counts fall back to the toolhead height and slicer metadata when the
    printer does not report them.
    """

    current = snapshot.current_print
    if current is None:
        return None

    metadata = current.file_metadata
    layer = current.current_layer
    total_layers = current.total_layers
    if metadata is not None:
        if layer <= 0:
            layer = _layer_from_height(
                snapshot.toolhead.position.z,
                metadata.first_layer_height,
                metadata.layer_height,
            )
        if total_layers <= 0:
            total_layers = _layer_from_height(
                metadata.object_height,
                metadata.first_layer_height,
                metadata.layer_height,
            )

    progress = max(current.progress, 0.0)
    print_duration = current.print_duration
    estimated_remaining = (
        print_duration / progress - print_duration if progress > 0 else 0.0
    )
    slicer_remaining = (
        metadata.estimated_time - print_duration if metadata is not None else 0.0
    )
    velocity = max(snapshot.toolhead.extruder_velocity, 0.0)
    flow = velocity * (FILAMENT_DIAMETER / 2.0) ** 2 * math.pi
    current_time = now or dt.datetime.now().astimezone()

    return PrintProgress(
        filename=current.filename or "Unknown",
        progress=progress,
        layer=layer,
        total_layers=total_layers,
        speed=snapshot.toolhead.speed,
        flow=flow,
        filament_used=max(current.filament_used, 0.0),
        total_duration=current.total_duration,
        estimated_remaining=estimated_remaining,
        slicer_remaining=slicer_remaining,
        eta=current_time + dt.timedelta(seconds=max(slicer_remaining, 0.0)),
    )


class StateView:
    """Provide read-only access to the link state once per redraw."""

    def __init__(
        self,
        snapshot_provider: Callable[[], PrinterSnapshot],
        history: HistoryReconciler,
        console_provider: Callable[[], Sequence[Any]],
        status_provider: Callable[[], dict[str, Any]],
    ) -> None:
        """Initialise the view over the link's live state."""

        self._snapshot_provider = snapshot_provider
        self._history = history
        self._console_provider = console_provider
        self._status_provider = status_provider

    @property
    def snapshot(self) -> PrinterSnapshot:
        """Return the current snapshot; callers must treat it as read-only."""

        return self._snapshot_provider()

    @property
    def history(self) -> list[HistoryJob]:
        """Return past jobs, most recent first."""

        return self._history.by_recency()

    @property
    def console(self) -> tuple[Any, ...]:
        """Return console lines, oldest first."""

        return tuple(self._console_provider())

    def status(self) -> dict[str, Any]:
        """Return connection state and health figures."""

        return self._status_provider()

    def print_progress(self, *, now: dt.datetime | None = None) -> PrintProgress | None:
        """Return derived progress for the active job."""

        return print_progress(self.snapshot, now=now)


__all__ = ["PrintProgress", "StateView", "print_progress"]
