"""
Customer lookup client for phone-number enrichment.

Acquires an OAuth client-credentials token and resolves customer ids to the
lookup payload. HTTP and network failures are mapped onto operator-facing
reasons; the lookup call never raises for a per-customer failure.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Mapping
from urllib.parse import quote

import requests

DEFAULT_TOKEN_URL = "https://login.microsoftonline.com/{tenant_id}/oauth2/token"
DEFAULT_TOKEN_TIMEOUT = 10.0
DEFAULT_LOOKUP_TIMEOUT = 15.0

REQUIRED_SETTINGS: tuple[tuple[str, str], ...] = (
    ("tenant_id", "CUSTOMER_API_TENANT_ID"),
    ("client_id", "CUSTOMER_API_CLIENT_ID"),
    ("client_secret", "CUSTOMER_API_CLIENT_SECRET"),
    ("resource", "CUSTOMER_API_RESOURCE"),
)

STATUS_REASONS: Mapping[int, str] = {
    400: "Invalid customer ID format",
    401: "Authentication error - access denied",
    403: "Authentication error - access denied",
    404: "Customer ID does not exist",
    429: "Too many requests - rate limit exceeded",
    500: "Customer API internal server error",
    502: "Customer API gateway error",
    503: "Customer API temporarily unavailable",
}

READ_TIMEOUT_REASON = "Request timeout - customer API took too long to respond"
CONNECT_TIMEOUT_REASON = "Network timeout while connecting to API"
NOT_FOUND_REASON = "Customer API server not found"
REFUSED_REASON = "Customer API connection refused"
NETWORK_REASON = "No response from customer API - network error"

_DNS_MARKERS = ("name or service not known", "nodename nor servname", "getaddrinfo", "nameresolutionerror", "failed to resolve")
_REFUSED_MARKERS = ("connection refused", "econnrefused", "errno 111", "actively refused")


class CustomerLookupError(RuntimeError):
    """Base error for the customer lookup client."""


class CustomerLookupConfigError(CustomerLookupError):
    """Raised when required lookup settings are missing."""


class CustomerTokenError(CustomerLookupError):
    """Raised when the access token cannot be obtained."""


@dataclass(frozen=True)
class CustomerLookupSettings:
    api_url: str | None = None
    tenant_id: str | None = None
    client_id: str | None = None
    client_secret: str | None = None
    resource: str | None = None
    token_url_template: str = DEFAULT_TOKEN_URL
    token_timeout: float = DEFAULT_TOKEN_TIMEOUT
    lookup_timeout: float = DEFAULT_LOOKUP_TIMEOUT

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "CustomerLookupSettings":
        return cls(
            api_url=config.get("CUSTOMER_API_URL") or None,
            tenant_id=config.get("CUSTOMER_API_TENANT_ID") or None,
            client_id=config.get("CUSTOMER_API_CLIENT_ID") or None,
            client_secret=config.get("CUSTOMER_API_CLIENT_SECRET") or None,
            resource=config.get("CUSTOMER_API_RESOURCE") or None,
            token_url_template=config.get("CUSTOMER_API_TOKEN_URL") or DEFAULT_TOKEN_URL,
            token_timeout=float(config.get("CUSTOMER_API_TOKEN_TIMEOUT") or DEFAULT_TOKEN_TIMEOUT),
            lookup_timeout=float(config.get("CUSTOMER_API_LOOKUP_TIMEOUT") or DEFAULT_LOOKUP_TIMEOUT),
        )

    def missing_settings(self) -> tuple[str, ...]:
        missing = [key for attr, key in REQUIRED_SETTINGS if not getattr(self, attr)]
        if not self.api_url:
            missing.append("CUSTOMER_API_URL")
        return tuple(missing)

    @property
    def token_url(self) -> str:
        return self.token_url_template.format(tenant_id=self.tenant_id or "")


@dataclass(frozen=True)
class LookupResult:
    """Outcome of one customer lookup call."""

    success: bool
    phone: str | None = None
    payload: Any = None
    status_code: int | None = None
    error: str | None = None

    @property
    def rate_limited(self) -> bool:
        return self.status_code == 429


def describe_status(status_code: int) -> str:
    return STATUS_REASONS.get(status_code, f"Customer API error (HTTP {status_code})")


def describe_connection_error(exc: Exception) -> str:
    message = str(exc).lower()
    if any(marker in message for marker in _DNS_MARKERS):
        return NOT_FOUND_REASON
    if any(marker in message for marker in _REFUSED_MARKERS):
        return REFUSED_REASON
    return NETWORK_REASON


def _extract_phone(payload: Any) -> str | None:
    if not isinstance(payload, Mapping):
        return None
    phone = payload.get("phone")
    if phone is None:
        return None
    text = str(phone).strip()
    return text or None


class CustomerLookupClient:
    """Token acquisition plus per-customer lookups against the customer API."""

    def __init__(
        self,
        settings: CustomerLookupSettings,
        *,
        session: requests.Session | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.settings = settings
        self.session = session or requests.Session()
        self.logger = logger or logging.getLogger(__name__)

    def get_token(self) -> str:
        """Request a client-credentials token; fails fast when settings are missing."""

        for attr, key in REQUIRED_SETTINGS:
            if not getattr(self.settings, attr):
                raise CustomerLookupConfigError(f"{key} is missing")
        if not self.settings.api_url:
            raise CustomerLookupConfigError("CUSTOMER_API_URL is missing")

        form = {
            "grant_type": "client_credentials",
            "client_id": self.settings.client_id,
            "client_secret": self.settings.client_secret,
            "resource": self.settings.resource,
        }
        try:
            response = self.session.post(
                self.settings.token_url,
                data=form,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=self.settings.token_timeout,
            )
        except requests.RequestException as exc:
            self.logger.warning("Customer API token request failed", extra={"campaigns_error": str(exc)})
            raise CustomerTokenError(f"Token request failed: {exc}") from exc

        if not response.ok:
            self.logger.warning(
                "Customer API token request rejected",
                extra={"campaigns_status_code": response.status_code},
            )
            raise CustomerTokenError(f"Token request failed (HTTP {response.status_code})")

        try:
            payload = response.json()
        except ValueError as exc:
            raise CustomerTokenError("Token response was not valid JSON") from exc
        token = payload.get("access_token") if isinstance(payload, Mapping) else None
        if not token:
            raise CustomerTokenError("Token response did not include an access_token")
        self.logger.debug("Customer API token obtained")
        return token

    def lookup(self, customer_id: str, token: str) -> LookupResult:
        """Fetch ``customer_id``; failures are returned, not raised."""

        if not self.settings.api_url:
            raise CustomerLookupConfigError("CUSTOMER_API_URL is missing")
        url = f"{self.settings.api_url}{quote(str(customer_id), safe='')}"
        headers = {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}
        started = time.monotonic()
        try:
            response = self.session.get(url, headers=headers, timeout=self.settings.lookup_timeout)
        except requests.exceptions.ConnectTimeout:
            return LookupResult(success=False, error=CONNECT_TIMEOUT_REASON)
        except requests.exceptions.Timeout:
            return LookupResult(success=False, error=READ_TIMEOUT_REASON)
        except requests.exceptions.ConnectionError as exc:
            return LookupResult(success=False, error=describe_connection_error(exc))
        except requests.RequestException as exc:
            return LookupResult(success=False, error=f"Unable to validate customer - {str(exc) or 'Unknown error'}")
        finally:
            self.logger.debug(
                "Customer lookup finished",
                extra={"campaigns_customer_id": customer_id, "campaigns_elapsed": time.monotonic() - started},
            )

        if not response.ok:
            return LookupResult(
                success=False,
                status_code=response.status_code,
                error=describe_status(response.status_code),
            )

        try:
            payload = response.json()
        except ValueError:
            return LookupResult(
                success=False,
                status_code=response.status_code,
                error="Unable to validate customer - invalid JSON response",
            )
        return LookupResult(
            success=True,
            phone=_extract_phone(payload),
            payload=payload,
            status_code=response.status_code,
        )


def create_customer_lookup_client(
    config: Mapping[str, Any],
    *,
    logger: logging.Logger | None = None,
) -> CustomerLookupClient:
    """Build a client from Flask-style configuration."""

    return CustomerLookupClient(CustomerLookupSettings.from_config(config), logger=logger)
