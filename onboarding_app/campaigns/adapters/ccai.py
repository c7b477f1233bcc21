"""
Outbound dialer (CCAI) REST client.

Thin wrapper over the manager and apps APIs using HTTP basic auth. Non-2xx
responses raise :class:`CcaiAPIError` carrying the upstream status and body so
callers can relay them verbatim.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

import requests

DEFAULT_TIMEOUT = 30.0
MANAGER_PREFIX = "/manager/api/v1/outbound_dialer/campaigns"
APPS_PREFIX = "/apps/api/v1/outbound_dialer/campaigns"

_LOCATION_JOB_RE = re.compile(r"/jobs/(\d+)$")


class CcaiAPIError(RuntimeError):
    """Raised when the dialer API rejects a call or cannot be reached."""

    def __init__(self, message: str, *, status_code: int | None = None, body: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body

    def as_dict(self) -> dict[str, Any]:
        return {"error": str(self), "status_code": self.status_code, "details": self.body}


class CcaiConfigError(CcaiAPIError):
    """Raised when the dialer connection settings are incomplete."""


@dataclass(frozen=True)
class CcaiSettings:
    base_url: str | None = None
    username: str | None = None
    api_key: str | None = None
    timeout: float = DEFAULT_TIMEOUT

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "CcaiSettings":
        base_url = config.get("CCAI_BASE_URL") or None
        return cls(
            base_url=base_url.rstrip("/") if base_url else None,
            username=config.get("CCAI_USERNAME") or None,
            api_key=config.get("CCAI_API_KEY") or None,
            timeout=float(config.get("CCAI_TIMEOUT") or DEFAULT_TIMEOUT),
        )

    def missing_settings(self) -> tuple[str, ...]:
        missing = []
        if not self.base_url:
            missing.append("CCAI_BASE_URL")
        if not self.username:
            missing.append("CCAI_USERNAME")
        if not self.api_key:
            missing.append("CCAI_API_KEY")
        return tuple(missing)


@dataclass(frozen=True)
class ImportResult:
    """Response of a bulk contact import."""

    job_id: Any
    payload: Any
    status_code: int


def extract_job_id(payload: Any, headers: Mapping[str, str] | None) -> Any:
    """Find the import job id in the body, ``X-Job-Id`` or the ``Location`` header."""

    if isinstance(payload, Mapping):
        for key in ("job_id", "id"):
            if payload.get(key):
                return payload[key]
    headers = headers or {}
    header_job = headers.get("X-Job-Id") or headers.get("x-job-id")
    if header_job:
        return header_job
    location = headers.get("Location") or headers.get("location")
    if location:
        match = _LOCATION_JOB_RE.search(location)
        if match:
            return int(match.group(1))
    return None


def _response_body(response: requests.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text or None


class CcaiClient:
    """Dialer API calls used by campaign sync, export and the pass-through routes."""

    def __init__(
        self,
        settings: CcaiSettings,
        *,
        session: requests.Session | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.settings = settings
        self.session = session or requests.Session()
        self.logger = logger or logging.getLogger(__name__)

    # Campaigns ------------------------------------------------------------------

    def list_campaigns(self) -> Any:
        return self._request("GET", MANAGER_PREFIX)[0]

    def get_campaign(self, campaign_id: str) -> Any:
        return self._request("GET", f"{MANAGER_PREFIX}/{campaign_id}")[0]

    # Contacts -------------------------------------------------------------------

    def list_contacts(self, campaign_id: str) -> Any:
        return self._request("GET", f"{APPS_PREFIX}/{campaign_id}/contacts")[0]

    def add_contact(self, campaign_id: str, contact: Mapping[str, Any]) -> Any:
        return self._request("POST", f"{APPS_PREFIX}/{campaign_id}/contacts", json=dict(contact))[0]

    def update_contact(self, campaign_id: str, contact: Mapping[str, Any]) -> Any:
        return self._request("PATCH", f"{APPS_PREFIX}/{campaign_id}/contact", json=dict(contact))[0]

    def delete_contact(self, campaign_id: str, contact_id: Any) -> Any:
        try:
            contact_id = int(contact_id)
        except (TypeError, ValueError):
            pass
        return self._request(
            "DELETE",
            f"{APPS_PREFIX}/{campaign_id}/contact",
            json={"contact_id": contact_id},
        )[0]

    def import_contacts(self, campaign_id: str, contacts: Sequence[Mapping[str, Any]]) -> ImportResult:
        """Upload ``contacts`` as a ``contacts.json`` multipart file."""

        content = json.dumps(list(contacts), indent=2).encode("utf-8")
        body, response = self._request(
            "POST",
            f"{APPS_PREFIX}/{campaign_id}/contacts/import",
            files={"file": ("contacts.json", content, "application/json")},
        )
        return ImportResult(
            job_id=extract_job_id(body, response.headers),
            payload=body,
            status_code=response.status_code,
        )

    def get_import_job(self, campaign_id: str, job_id: str) -> Any:
        return self._request("GET", f"{APPS_PREFIX}/{campaign_id}/contacts/jobs/{job_id}")[0]

    # Internal -------------------------------------------------------------------

    def _request(self, method: str, path: str, **kwargs) -> tuple[Any, requests.Response]:
        missing = self.settings.missing_settings()
        if missing:
            raise CcaiConfigError(f"{missing[0]} is missing", body={"missing": list(missing)})

        url = f"{self.settings.base_url}{path}"
        try:
            response = self.session.request(
                method,
                url,
                auth=(self.settings.username, self.settings.api_key),
                timeout=self.settings.timeout,
                **kwargs,
            )
        except requests.RequestException as exc:
            self.logger.warning(
                "Dialer API unreachable",
                extra={"campaigns_method": method, "campaigns_path": path, "campaigns_error": str(exc)},
            )
            raise CcaiAPIError(
                "Cannot connect to CCAI API",
                body={"details": "No response received from CCAI server", "reason": str(exc)},
            ) from exc

        body = _response_body(response)
        if not response.ok:
            self.logger.warning(
                "Dialer API returned an error",
                extra={
                    "campaigns_method": method,
                    "campaigns_path": path,
                    "campaigns_status_code": response.status_code,
                },
            )
            raise CcaiAPIError("CCAI API Error", status_code=response.status_code, body=body)
        return body, response


def create_ccai_client(config: Mapping[str, Any], *, logger: logging.Logger | None = None) -> CcaiClient:
    """Build a dialer client from Flask-style configuration."""

    return CcaiClient(CcaiSettings.from_config(config), logger=logger)
