"""Correlation of outgoing JSON-RPC requests with their responses."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
import random
import time
from typing import Any


def _random_id() -> str:
    """Return a random 32-bit hexadecimal token."""

    return f"{random.getrandbits(32):x}"


@dataclass(slots=True, frozen=True)
class PendingCall:
    """A request still waiting for its response."""

    id: str
    method: str
    params: Mapping[str, Any] = field(default_factory=dict)
    issued_at: float = 0.0


class RequestCorrelator:
    """Map outstanding request identifiers to the method that was called.

    Entries have no expiry; the owner clears the table when the session that
    carried the requests ends.
    """

    def __init__(
        self,
        *,
        id_factory: Callable[[], str] = _random_id,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialise an empty table."""

        self._pending: dict[str, PendingCall] = {}
        self._id_factory = id_factory
        self._monotonic = monotonic

    def issue(self, method: str, params: Mapping[str, Any] | None = None) -> str:
        """Record a new call to ``method`` and return its identifier."""

        request_id = self._id_factory()
        while request_id in self._pending:
            request_id = self._id_factory()
        self._pending[request_id] = PendingCall(
            id=request_id,
            method=method,
            params=dict(params or {}),
            issued_at=self._monotonic(),
        )
        return request_id

    def resolve(self, request_id: str) -> str | None:
        """Remove ``request_id`` and return its method, or ``None`` if unknown."""

        call = self._pending.pop(request_id, None)
        return None if call is None else call.method

    def get(self, request_id: str) -> PendingCall | None:
        """Return the pending call for ``request_id`` without removing it."""

        return self._pending.get(request_id)

    def pending(self) -> tuple[PendingCall, ...]:
        """Return outstanding calls in issue order."""

        return tuple(self._pending.values())

    def clear(self) -> int:
        """Forget every outstanding call and return how many were dropped."""

        dropped = len(self._pending)
        self._pending.clear()
        return dropped

    def __contains__(self, request_id: object) -> bool:
        return request_id in self._pending

    def __len__(self) -> int:
        return len(self._pending)


__all__ = ["PendingCall", "RequestCorrelator"]
