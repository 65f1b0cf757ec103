"""Shared utility functions used across vetting modules."""
from __future__ import annotations

import json
import math
from datetime import UTC, datetime
from typing import Any
from urllib.parse import urlsplit

_MISSING = object()


def json_parse(value: str | None, default: Any = _MISSING) -> Any:
    """Safely parse a JSON string, returning *default* on failure.

    If no default is given, returns ``{}`` on parse error.
    """
    try:
        return json.loads(value or "")
    except (json.JSONDecodeError, TypeError):
        return {} if default is _MISSING else default


def deep_merge(a: dict[str, Any], b: dict[str, Any]) -> dict[str, Any]:
    """Merge *b* over *a*. Nested dicts merge recursively; lists and scalars from *b* win."""
    result = dict(a)
    for key, b_val in b.items():
        a_val = a.get(key)
        if isinstance(a_val, dict) and isinstance(b_val, dict):
            result[key] = deep_merge(a_val, b_val)
        else:
            result[key] = b_val
    return result


def hostname(url: str) -> str:
    """Lowercased host of *url*, tolerating a missing scheme."""
    url = url.strip()
    if not url.lower().startswith(("http://", "https://")):
        url = "https://" + url
    try:
        return (urlsplit(url).hostname or "").lower()
    except ValueError:
        return ""


def normalize_url(url: str) -> str:
    """Dedup key: lowercased host + path with trailing slashes stripped.

    Scheme, query and fragment are ignored, so ``http://Example.com/x/`` and
    ``https://example.com/x`` share a key.
    """
    try:
        parts = urlsplit(url.strip())
    except ValueError:
        return url.lower().rstrip("/")
    if not parts.netloc:
        return url.strip().lower().rstrip("/")
    return f"{parts.hostname or ''}{parts.path}".lower().rstrip("/")


def round_half_up(value: float, ndigits: int = 0) -> float:
    """Round halves away from zero for non-negative scores (``round`` uses banker's rounding)."""
    factor = 10 ** ndigits
    return math.floor(value * factor + 0.5) / factor


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the DateTime columns."""
    return datetime.now(UTC).replace(tzinfo=None)
