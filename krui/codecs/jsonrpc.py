"""Pydantic models and helpers for JSON-RPC 2.0 envelopes."""

from __future__ import annotations

from collections.abc import Mapping
import json
import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator, model_validator

from krui.const import JSONRPC_VERSION

_LOGGER = logging.getLogger(__name__)


def _stringify_id(value: Any) -> Any:
    """Normalise numeric request identifiers to strings."""

    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return str(value)
    return value


class RpcRequest(BaseModel):
    """Outgoing request envelope."""

    model_config = ConfigDict(extra="forbid")

    jsonrpc: str = JSONRPC_VERSION
    method: str
    params: dict[str, Any] = {}
    id: str


class RpcResponse(BaseModel):
    """Successful response to one of our requests."""

    model_config = ConfigDict(extra="ignore")

    jsonrpc: str = JSONRPC_VERSION
    result: Any
    id: str

    @field_validator("id", mode="before")
    @classmethod
    def _normalise_id(cls, value: Any) -> Any:
        """Accept numeric identifiers echoed back by the server."""

        return _stringify_id(value)


class RpcError(BaseModel):
    """Error object carried by a failed response."""

    model_config = ConfigDict(extra="ignore")

    code: int = 0
    message: str = ""


class RpcErrorResponse(BaseModel):
    """Failed response to one of our requests."""

    model_config = ConfigDict(extra="ignore")

    jsonrpc: str = JSONRPC_VERSION
    error: RpcError
    id: str

    @field_validator("id", mode="before")
    @classmethod
    def _normalise_id(cls, value: Any) -> Any:
        """Accept numeric identifiers echoed back by the server."""

        return _stringify_id(value)


class RpcNotification(BaseModel):
    """Server-initiated message without a response identifier."""

    model_config = ConfigDict(extra="ignore")

    jsonrpc: str = JSONRPC_VERSION
    method: str
    params: Any = None

    @model_validator(mode="before")
    @classmethod
    def _reject_identified(cls, data: Any) -> Any:
        """Refuse envelopes that carry an ``id``; those are responses."""

        if isinstance(data, Mapping) and "id" in data:
            raise ValueError("notifications must not carry an id")
        return data


InboundMessage = RpcResponse | RpcErrorResponse | RpcNotification


def encode_request(method: str, params: Mapping[str, Any] | None, request_id: str) -> str:
    """Serialise a request envelope to compact JSON text."""

    request = RpcRequest(method=method, params=dict(params or {}), id=request_id)
    return json.dumps(request.model_dump(), separators=(",", ":"))


def classify_frame(text: str | bytes) -> InboundMessage | None:
    """Decode ``text`` as a response, error response or notification.

    Returns ``None`` for malformed JSON and for shapes matching none of the
    envelopes; such frames are dropped by the caller.
    """

    try:
        payload = json.loads(text)
    except (TypeError, ValueError):
        _LOGGER.debug("RPC: dropping undecodable frame %.80r", text)
        return None
    if not isinstance(payload, Mapping):
        _LOGGER.debug("RPC: dropping non-object frame %.80r", text)
        return None

    for model in (RpcResponse, RpcErrorResponse, RpcNotification):
        try:
            return model.model_validate(payload)
        except ValidationError:
            continue

    _LOGGER.debug("RPC: dropping unrecognised envelope %.80r", text)
    return None


__all__ = [
    "InboundMessage",
    "RpcError",
    "RpcErrorResponse",
    "RpcNotification",
    "RpcRequest",
    "RpcResponse",
    "classify_frame",
    "encode_request",
]
