"""
JSON helpers shared by the document store and the campaign pipeline.
"""

from __future__ import annotations

import enum
from collections.abc import Mapping, Sequence
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def isoformat(value: datetime | None) -> str | None:
    """Render ``value`` as an ISO-8601 UTC string (naive values are taken as UTC)."""

    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def parse_timestamp(value: Any) -> datetime | None:
    """
    Parse a stored timestamp back into an aware ``datetime``.

    Unparseable values return ``None`` so callers can treat them as absent.
    """

    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def ensure_json_serializable(value: Any) -> Any:
    """
    Best-effort conversion of values to JSON-serializable representations.
    """

    if isinstance(value, enum.Enum):
        return ensure_json_serializable(value.value)
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, datetime):
        return isoformat(value)
    if isinstance(value, date):
        return value.isoformat()
    if hasattr(value, "as_dict") and callable(value.as_dict):
        return ensure_json_serializable(value.as_dict())
    if isinstance(value, Mapping):
        return {str(key): ensure_json_serializable(inner) for key, inner in value.items()}
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        return [ensure_json_serializable(item) for item in value]
    if isinstance(value, Path):
        return str(value)
    return str(value)


def normalize_payload(payload: Mapping[str, Any] | None) -> dict[str, Any]:
    """
    Return a shallow copy of ``payload`` with JSON-serializable values.
    """

    if not payload:
        return {}
    normalized: dict[str, Any] = {}
    for key, value in payload.items():
        normalized[str(key)] = ensure_json_serializable(value)
    return normalized
