"""Shared helpers for logging setup and JSON serialization."""

from .logging_config import JSONFormatter, setup_logging
from .serialization import ensure_json_serializable, isoformat, normalize_payload, parse_timestamp, utcnow

__all__ = [
    "JSONFormatter",
    "ensure_json_serializable",
    "isoformat",
    "normalize_payload",
    "parse_timestamp",
    "setup_logging",
    "utcnow",
]
