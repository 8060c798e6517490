"""Sanitisation helpers for websocket log output."""

from __future__ import annotations

import re
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

_BEARER_RE = re.compile(r"Bearer\s+[A-Za-z0-9\-._~+/]+=*", re.IGNORECASE)
_TOKEN_QUERY_RE = re.compile(r"(?i)(token|access_token|api_key)=([^&\s]+)")
_SENSITIVE_PARAMS = {"token", "access_token", "api_key"}


def redact_text(value: str | None) -> str:
    """Return ``value`` with bearer tokens and query tokens removed."""

    if not value:
        return ""
    text = str(value)
    redacted = _BEARER_RE.sub("Bearer ***", text)
    return _TOKEN_QUERY_RE.sub(lambda match: f"{match.group(1)}=***", redacted)


def redact_token_fragment(value: str | None) -> str:
    """Return a shortened representation of a token-like string."""

    if value is None:
        return ""
    trimmed = str(value).strip()
    if not trimmed:
        return ""
    if len(trimmed) <= 4:
        return "***"
    if len(trimmed) <= 8:
        return f"{trimmed[:2]}***{trimmed[-2:]}"
    return f"{trimmed[:4]}...{trimmed[-4:]}"


def redact_url(url: str) -> str:
    """Return ``url`` with credentials and token query values shortened."""

    try:
        parsed = urlsplit(url)
    except ValueError:
        return redact_text(url)
    netloc = parsed.netloc
    if "@" in netloc:
        netloc = "***@" + netloc.rsplit("@", 1)[1]
    pairs = [
        (key, redact_token_fragment(value) if key.lower() in _SENSITIVE_PARAMS else value)
        for key, value in parse_qsl(parsed.query, keep_blank_values=True)
    ]
    return urlunsplit(
        (parsed.scheme, netloc, parsed.path, urlencode(pairs, safe="*."), parsed.fragment)
    )


__all__ = ["redact_text", "redact_token_fragment", "redact_url"]
