import pytest

from onboarding_app.campaigns.adapters.ccai import CcaiAPIError
from onboarding_app.campaigns.errors import CampaignNotFoundError, CampaignRequestError
from onboarding_app.campaigns.pipeline import (
    LEDGER_COLLECTION,
    RECORDS_COLLECTION,
    export_to_dialer,
    normalize_dialer_phone,
)


def _validated(customer_id, phone, **extra):
    return {"customer_id": customer_id, "phone_number": phone, "api_validated": True, **extra}


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("(555) 123-4567", "+5551234567"),
        ("+1 555 123 4567", "+15551234567"),
        ("15551234567", "+15551234567"),
        ("123-45", None),
        ("", None),
        (None, None),
        (5551234567, "+5551234567"),
    ],
)
def test_normalize_dialer_phone(raw, expected):
    assert normalize_dialer_phone(raw) == expected


def test_export_filters_contacts_and_marks_records(store, seed_records, fake_dialer):
    fake_dialer.contacts = [{"id": 1}, {"id": 2}]
    keys = seed_records(
        "camp-1",
        [
            _validated("C-1", "(555) 123-4567"),
            _validated("C-2", "555-123-4567"),
            _validated("C-3", "12"),
            _validated("C-4", None),
            {"customer_id": "C-5", "phone_number": "+15550009999"},
        ],
    )

    summary = export_to_dialer("camp-1", store=store, client=fake_dialer)

    assert fake_dialer.deleted == [1, 2]
    ((campaign_id, contacts),) = fake_dialer.imports
    assert campaign_id == "camp-1"
    assert contacts == [{"name": "Spring Outreach", "phone_number": "+5551234567", "external_unique_id": "C-1"}]

    payload = summary.as_dict()
    assert payload["total"] == 4
    assert payload["uploaded"] == 1
    assert payload["failed"] == 3
    assert payload["skipped_duplicates"] == 1
    assert payload["skipped_invalid"] == 2
    assert payload["job_id"] == 77
    assert payload["cleared_contacts"] == 2
    reasons = {item["data"]["customer_id"]: item["reason"] for item in payload["failed_records"]}
    assert reasons == {
        "C-2": "Duplicate phone number - already assigned to customer C-1",
        "C-3": "Invalid phone number format",
        "C-4": "Phone number not available for customer",
    }

    exported = store.get(RECORDS_COLLECTION, keys[0])
    assert exported["uploaded_to_ccai"] is True
    assert exported["ccai_job_id"] == 77
    assert exported["upload_status"] == "success"
    assert "uploaded_to_ccai" not in store.get(RECORDS_COLLECTION, keys[1])

    ledger = store.get(LEDGER_COLLECTION, "camp-1")
    assert ledger["uploaded_to_ccai"] == 1
    assert ledger["upload_to_ccai_failed"] == 3
    assert ledger["ccai_duplicates_count"] == 1
    assert ledger["ccai_job_id"] == 77
    assert ledger["ccai_upload_date"] == ledger["upload_to_ccai_completed_at"]


def test_export_uses_fallback_contact_name(store, seed_records, fake_dialer):
    seed_records("camp-1", [_validated("C-1", "+15551234567", campaign_name=None)])

    export_to_dialer("camp-1", store=store, client=fake_dialer)

    assert fake_dialer.imports[0][1][0]["name"] == "Customer C-1"


def test_export_keep_existing_skips_clearing(store, seed_records, fake_dialer):
    fake_dialer.contacts = [{"id": 1}]
    seed_records("camp-1", [_validated("C-1", "+15551234567")])

    summary = export_to_dialer("camp-1", store=store, client=fake_dialer, clear_existing=False)

    assert fake_dialer.list_calls == 0
    assert fake_dialer.deleted == []
    assert summary.cleared_contacts == 0


def test_export_collects_clear_errors_and_continues(store, seed_records, fake_dialer):
    fake_dialer.contacts = [{"id": 1}]
    fake_dialer.delete_error = CcaiAPIError("CCAI API Error", status_code=500, body="oops")
    seed_records("camp-1", [_validated("C-1", "+15551234567")])

    summary = export_to_dialer("camp-1", store=store, client=fake_dialer)

    assert summary.uploaded == 1
    assert summary.clear_errors == [{"contact_id": 1, "error": "CCAI API Error", "status_code": 500}]


def test_export_when_every_record_is_skipped(store, seed_records, fake_dialer):
    seed_records("camp-1", [_validated("C-1", "12"), _validated("C-2", None)])

    with pytest.raises(CampaignRequestError) as excinfo:
        export_to_dialer("camp-1", store=store, client=fake_dialer)

    assert excinfo.value.http_status == 400
    details = excinfo.value.as_dict()
    assert details["error"] == "No valid unique contacts to upload after filtering"
    assert details["total_records"] == 2
    assert details["skipped_invalid"] == 2
    assert fake_dialer.imports == []


def test_export_without_validated_records(store, seed_records, fake_dialer):
    seed_records("camp-1", [{"customer_id": "C-1"}])

    with pytest.raises(CampaignNotFoundError):
        export_to_dialer("camp-1", store=store, client=fake_dialer)


def test_export_requires_campaign_id(store, fake_dialer):
    with pytest.raises(CampaignRequestError, match="Campaign ID is required"):
        export_to_dialer("", store=store, client=fake_dialer)


def test_export_import_error_propagates_without_marking(store, seed_records, fake_dialer):
    fake_dialer.import_error = CcaiAPIError("CCAI API Error", status_code=422, body={"message": "bad"})
    keys = seed_records("camp-1", [_validated("C-1", "+15551234567")])

    with pytest.raises(CcaiAPIError) as excinfo:
        export_to_dialer("camp-1", store=store, client=fake_dialer)

    assert excinfo.value.status_code == 422
    assert "uploaded_to_ccai" not in store.get(RECORDS_COLLECTION, keys[0])
    assert store.get(LEDGER_COLLECTION, "camp-1") is None


def test_export_promotes_pending_ledger_counts(store, seed_records, fake_dialer):
    store.set(
        LEDGER_COLLECTION,
        "camp-1",
        {
            "total_uploaded": 10,
            "customers_validated": 8,
            "uploaded_to_ccai": 8,
            "pending_total_uploaded": 1,
            "pending_customers_validated": 1,
        },
    )
    seed_records("camp-1", [_validated("C-1", "+15551234567")])

    export_to_dialer("camp-1", store=store, client=fake_dialer)

    ledger = store.get(LEDGER_COLLECTION, "camp-1")
    assert ledger["total_uploaded"] == 1
    assert ledger["customers_validated"] == 1
    assert ledger["uploaded_to_ccai"] == 1
    assert ledger["pending_total_uploaded"] is None
    assert ledger["pending_customers_validated"] is None
