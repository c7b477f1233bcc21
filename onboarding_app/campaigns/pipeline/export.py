"""
Export validated records to the outbound dialer.

Clears the dialer campaign's contacts (optionally), builds one contact per
validated record with a normalized, unique phone number, bulk-imports them,
marks the exported records and promotes any pending ledger counts.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from onboarding_app.stores import DocumentStore
from onboarding_app.utils.serialization import isoformat, utcnow

from ..adapters.ccai import CcaiAPIError, CcaiClient
from ..errors import CampaignNotFoundError, CampaignRequestError
from ..metrics import record_export
from .batch_writer import DEFAULT_MAX_BATCH_SIZE, BatchedWriter
from .failures import ContactData, FailureRecord, failures_as_dicts
from .ingest import RECORDS_COLLECTION
from .ledger import CampaignLedgerService, validate_campaign_id

MIN_PHONE_LENGTH = 8
_PHONE_PUNCTUATION_RE = re.compile(r"[\s\-\(\)]")


def normalize_dialer_phone(value: Any) -> str | None:
    """
    Strip spaces, dashes and parentheses and ensure a leading ``+``.

    Returns ``None`` when the result is shorter than ``MIN_PHONE_LENGTH``.
    """

    if value is None:
        return None
    phone = _PHONE_PUNCTUATION_RE.sub("", str(value))
    if phone and not phone.startswith("+"):
        phone = f"+{phone}"
    if len(phone) < MIN_PHONE_LENGTH:
        return None
    return phone


@dataclass
class ContactBatch:
    """Contacts ready for import plus the records they came from."""

    contacts: list[dict[str, Any]] = field(default_factory=list)
    record_keys: list[str] = field(default_factory=list)
    failures: list[FailureRecord] = field(default_factory=list)
    invalid: list[FailureRecord] = field(default_factory=list)
    duplicates: list[FailureRecord] = field(default_factory=list)

    def reject(self, failure: FailureRecord, *, duplicate: bool = False) -> None:
        self.failures.append(failure)
        (self.duplicates if duplicate else self.invalid).append(failure)


def build_contacts(records) -> ContactBatch:
    """Turn stored validated records into unique dialer contacts; first phone wins."""

    batch = ContactBatch()
    owners: dict[str, str] = {}
    for index, document in enumerate(records, start=1):
        data = document.data
        customer_id = data.get("customer_id")
        row = data.get("excel_row_number") or index
        raw_phone = data.get("phone_number")
        if raw_phone in (None, ""):
            batch.reject(
                FailureRecord.phone_not_available(
                    row, ContactData(customer_id, data.get("campaign_name"), None)
                )
            )
            continue

        phone = normalize_dialer_phone(raw_phone)
        if phone is None:
            batch.reject(
                FailureRecord.invalid_phone(row, ContactData(customer_id, data.get("campaign_name"), str(raw_phone)))
            )
            continue

        if phone in owners:
            batch.reject(
                FailureRecord.duplicate_phone(
                    row, owners[phone], ContactData(customer_id, data.get("campaign_name"), phone)
                ),
                duplicate=True,
            )
            continue

        owners[phone] = customer_id
        batch.contacts.append(
            {
                "name": data.get("campaign_name") or f"Customer {customer_id}",
                "phone_number": phone,
                "external_unique_id": customer_id or None,
            }
        )
        batch.record_keys.append(document.key)
    return batch


@dataclass
class ExportSummary:
    campaign_id: str
    total: int
    uploaded: int
    job_id: Any = None
    failed_records: list[FailureRecord] = field(default_factory=list)
    skipped_invalid: int = 0
    skipped_duplicates: int = 0
    clear_errors: list[dict[str, Any]] = field(default_factory=list)
    cleared_contacts: int = 0

    @property
    def failed(self) -> int:
        return len(self.failed_records)

    def as_dict(self) -> dict[str, Any]:
        return {
            "campaign_id": self.campaign_id,
            "total": self.total,
            "uploaded": self.uploaded,
            "failed": self.failed,
            "failed_records": failures_as_dicts(self.failed_records),
            "skipped_invalid": self.skipped_invalid,
            "skipped_duplicates": self.skipped_duplicates,
            "job_id": self.job_id,
            "cleared_contacts": self.cleared_contacts,
            "clear_errors": list(self.clear_errors),
        }


def clear_dialer_contacts(
    client: CcaiClient,
    campaign_id: str,
    *,
    logger: logging.Logger,
) -> tuple[int, list[dict[str, Any]]]:
    """Delete every contact of the dialer campaign; failures are collected, not raised."""

    errors: list[dict[str, Any]] = []
    try:
        contacts = client.list_contacts(campaign_id) or []
    except CcaiAPIError as exc:
        logger.warning(
            "Unable to list dialer contacts before export",
            extra={"campaigns_campaign_id": campaign_id, "campaigns_error": str(exc)},
        )
        return 0, [{"contact_id": None, "error": str(exc), "status_code": exc.status_code}]

    deleted = 0
    for contact in contacts if isinstance(contacts, list) else []:
        contact_id = contact.get("id") if isinstance(contact, dict) else None
        try:
            client.delete_contact(campaign_id, contact_id)
            deleted += 1
        except CcaiAPIError as exc:
            logger.warning(
                "Failed to delete dialer contact",
                extra={"campaigns_campaign_id": campaign_id, "campaigns_contact_id": contact_id},
            )
            errors.append({"contact_id": contact_id, "error": str(exc), "status_code": exc.status_code})
    return deleted, errors


def export_to_dialer(
    campaign_id: Any,
    *,
    store: DocumentStore,
    client: CcaiClient,
    clear_existing: bool = True,
    max_batch_size: int = DEFAULT_MAX_BATCH_SIZE,
    now: datetime | None = None,
    logger: logging.Logger | None = None,
) -> ExportSummary:
    """
    Upload the campaign's validated records to the dialer.

    Dialer HTTP errors raised by the import call propagate as
    :class:`CcaiAPIError` with the upstream status and body.
    """

    logger = logger or logging.getLogger(__name__)
    resolved_id = validate_campaign_id(campaign_id) if campaign_id else None
    if not resolved_id:
        raise CampaignRequestError("Campaign ID is required")

    cleared, clear_errors = 0, []
    if clear_existing:
        cleared, clear_errors = clear_dialer_contacts(client, resolved_id, logger=logger)

    records = store.query(RECORDS_COLLECTION, [("campaign_id_ref", resolved_id), ("api_validated", True)])
    if not records:
        raise CampaignNotFoundError("No validated data found for this campaign")

    batch = build_contacts(records)
    if not batch.contacts:
        record_export("failure")
        raise CampaignRequestError(
            "No valid unique contacts to upload after filtering",
            details={
                "total_records": len(records),
                "failed": len(batch.failures),
                "failed_records": failures_as_dicts(batch.failures),
                "skipped_invalid": len(batch.invalid),
                "skipped_duplicates": len(batch.duplicates),
            },
        )

    try:
        result = client.import_contacts(resolved_id, batch.contacts)
    except CcaiAPIError:
        record_export("failure")
        logger.exception("Dialer bulk import failed", extra={"campaigns_campaign_id": resolved_id})
        raise

    stamped_at = isoformat(now or utcnow())
    with BatchedWriter(store, max_batch_size=max_batch_size) as writer:
        for key in batch.record_keys:
            writer.update(
                RECORDS_COLLECTION,
                key,
                {
                    "uploaded_to_ccai": True,
                    "uploaded_to_ccai_at": stamped_at,
                    "ccai_job_id": result.job_id,
                    "upload_status": "success",
                },
            )

    duplicates = batch.duplicates
    CampaignLedgerService(store).complete_dialer_upload(
        resolved_id,
        {
            "uploaded_to_ccai": len(batch.contacts),
            "upload_to_ccai_failed": len(batch.failures),
            "ccai_duplicates_count": len(duplicates),
            "ccai_duplicates_data": failures_as_dicts(duplicates),
            "upload_to_ccai_completed_at": stamped_at,
            "ccai_upload_date": stamped_at,
            "ccai_job_id": result.job_id,
        },
    )

    summary = ExportSummary(
        campaign_id=resolved_id,
        total=len(records),
        uploaded=len(batch.contacts),
        job_id=result.job_id,
        failed_records=batch.failures,
        skipped_invalid=len(batch.invalid),
        skipped_duplicates=len(batch.duplicates),
        clear_errors=clear_errors,
        cleared_contacts=cleared,
    )
    record_export("success")
    logger.info(
        "Campaign exported to dialer",
        extra={
            "campaigns_campaign_id": resolved_id,
            "campaigns_uploaded": summary.uploaded,
            "campaigns_failed": summary.failed,
            "campaigns_dialer_job_id": result.job_id,
        },
    )
    return summary
