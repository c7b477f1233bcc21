from __future__ import annotations

from typing import Any, Callable

import pytest

from onboarding_app.campaigns.adapters.ccai import ImportResult
from onboarding_app.campaigns.adapters.customer_api import LookupResult
from onboarding_app.campaigns.pipeline import RECORDS_COLLECTION

# Rows 2..6 of the sheet: row 4 has no customer id, row 6 repeats C-100.
CUSTOMER_CSV = (
    "Customer_Id,Campaign Name\n"
    "C-100,Spring Outreach\n"
    "C-200,Spring Outreach\n"
    ",Spring Outreach\n"
    "C-300,Spring Outreach\n"
    "C-100,Spring Outreach\n"
).encode("utf-8")


class FakeLookupClient:
    """In-memory stand-in for ``CustomerLookupClient``."""

    def __init__(self, responses: dict[str, Any] | None = None, *, token_error: Exception | None = None):
        self.responses = dict(responses or {})
        self.token_error = token_error
        self.calls: list[str] = []
        self.token_requests = 0
        self.on_lookup: Callable[[str, int], None] | None = None

    def get_token(self) -> str:
        self.token_requests += 1
        if self.token_error is not None:
            raise self.token_error
        return "token-123"

    def lookup(self, customer_id: str, token: str) -> LookupResult:
        self.calls.append(customer_id)
        if self.on_lookup is not None:
            self.on_lookup(customer_id, len(self.calls))
        queued = self.responses.get(customer_id)
        if isinstance(queued, list):
            return queued.pop(0) if len(queued) > 1 else queued[0]
        if queued is not None:
            return queued
        suffix = "".join(ch for ch in customer_id if ch.isdigit()).rjust(4, "0")
        return LookupResult(
            success=True,
            phone=f"+1555000{suffix}",
            payload={"id": customer_id, "phone": f"+1555000{suffix}"},
            status_code=200,
        )


class FakeDialerClient:
    """Records calls made against the dialer API."""

    def __init__(self, *, contacts: list[dict[str, Any]] | None = None, job_id: Any = 77):
        self.contacts = list(contacts or [])
        self.job_id = job_id
        self.deleted: list[Any] = []
        self.imports: list[tuple[str, list[dict[str, Any]]]] = []
        self.list_calls = 0
        self.import_error: Exception | None = None
        self.delete_error: Exception | None = None
        self.campaigns: Any = []

    def list_campaigns(self):
        return self.campaigns

    def get_campaign(self, campaign_id):
        return {"id": campaign_id, "name": f"Campaign {campaign_id}", "status": "active", "contact_stats": {"new": 1}}

    def list_contacts(self, campaign_id):
        self.list_calls += 1
        return list(self.contacts)

    def add_contact(self, campaign_id, contact):
        return {"id": 900, **contact}

    def update_contact(self, campaign_id, contact):
        return dict(contact)

    def delete_contact(self, campaign_id, contact_id):
        if self.delete_error is not None:
            raise self.delete_error
        self.deleted.append(contact_id)
        return {"deleted": contact_id}

    def import_contacts(self, campaign_id, contacts):
        if self.import_error is not None:
            raise self.import_error
        self.imports.append((campaign_id, list(contacts)))
        return ImportResult(job_id=self.job_id, payload={"job_id": self.job_id}, status_code=201)

    def get_import_job(self, campaign_id, job_id):
        return {"id": job_id, "status": "completed"}


@pytest.fixture
def customer_csv() -> bytes:
    return CUSTOMER_CSV


@pytest.fixture
def fake_lookup_client():
    return FakeLookupClient


@pytest.fixture
def fake_dialer():
    return FakeDialerClient()


@pytest.fixture
def seed_records(store):
    """Write persisted upload records for a campaign; returns their keys in order."""

    def _seed(campaign_id: str, customers: list[dict[str, Any]]) -> list[str]:
        keys = []
        for index, fields in enumerate(customers, start=2):
            key = store.new_key()
            store.set(
                RECORDS_COLLECTION,
                key,
                {
                    "campaign_id_ref": campaign_id,
                    "campaign_name": "Spring Outreach",
                    "uploaded_by": "ops@example.test",
                    "excel_row_number": index,
                    "is_active": True,
                    **fields,
                },
                merge=False,
            )
            keys.append(key)
        return keys

    return _seed
