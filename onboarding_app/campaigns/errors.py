"""
Exception hierarchy for campaign pipeline operations.

Each error carries the HTTP status the blueprint responds with plus optional
structured details merged into the JSON error payload.
"""

from __future__ import annotations

from http import HTTPStatus
from typing import Any, Mapping


class CampaignError(RuntimeError):
    """Base class for failures surfaced to API and CLI callers."""

    http_status: HTTPStatus = HTTPStatus.INTERNAL_SERVER_ERROR

    def __init__(self, message: str, *, details: Mapping[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = dict(details or {})

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.message}
        payload.update(self.details)
        return payload


class CampaignRequestError(CampaignError):
    """The request is structurally invalid (missing file, bad id, nothing to export)."""

    http_status = HTTPStatus.BAD_REQUEST


class CampaignNotFoundError(CampaignError):
    """The campaign, job, or record set does not exist."""

    http_status = HTTPStatus.NOT_FOUND


class CampaignConflictError(CampaignError):
    """Another run already owns the campaign."""

    http_status = HTTPStatus.CONFLICT


class CampaignProcessingError(CampaignError):
    """A storage or parsing failure interrupted a synchronous stage."""

    http_status = HTTPStatus.INTERNAL_SERVER_ERROR
