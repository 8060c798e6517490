"""De-duplicated record of past print jobs."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
import logging
from typing import Any

from krui.codecs.moonraker_models import HistoryJobPayload, decode_model

_LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class HistoryJob:
    """A finished or running job as reported by the job history."""

    filename: str
    status: str = ""
    end_time: float = 0.0
    filament_used: float = 0.0
    estimated_time: float = 0.0
    total_duration: float = 0.0

    @classmethod
    def from_payload(cls, payload: HistoryJobPayload) -> HistoryJob:
        """Copy optional fields from ``payload``, defaulting missing ones."""

        metadata = payload.metadata
        return cls(
            filename=payload.filename,
            status=payload.status or "",
            end_time=payload.end_time or 0.0,
            filament_used=payload.filament_used or 0.0,
            estimated_time=(metadata.estimated_time or 0.0) if metadata else 0.0,
            total_duration=payload.total_duration or 0.0,
        )


class HistoryReconciler:
    """Append-only job set keyed by filename.

    The first job recorded for a filename wins; later jobs with the same
    filename are ignored.
    """

    def __init__(self) -> None:
        """Initialise an empty history."""

        self._jobs: dict[str, HistoryJob] = {}

    def add(self, job: HistoryJob | HistoryJobPayload | Mapping[str, Any]) -> bool:
        """Record ``job`` unless its filename is already known.

        Returns True when the job was appended.
        """

        if isinstance(job, Mapping):
            payload = decode_model(HistoryJobPayload, job)
            if payload is None:
                _LOGGER.debug("History: ignoring job without filename")
                return False
            job = payload
        if isinstance(job, HistoryJobPayload):
            job = HistoryJob.from_payload(job)
        if job.filename in self._jobs:
            return False
        self._jobs[job.filename] = job
        return True

    def get(self, filename: str) -> HistoryJob | None:
        """Return the job recorded for ``filename``."""

        return self._jobs.get(filename)

    def by_recency(self) -> list[HistoryJob]:
        """Return jobs ordered by end time, most recent first."""

        return sorted(self._jobs.values(), key=lambda job: job.end_time, reverse=True)

    def __contains__(self, filename: object) -> bool:
        return filename in self._jobs

    def __iter__(self) -> Iterator[HistoryJob]:
        return iter(self._jobs.values())

    def __len__(self) -> int:
        return len(self._jobs)


__all__ = ["HistoryJob", "HistoryReconciler"]
