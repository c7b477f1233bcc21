"""
Synchronous spreadsheet ingest for a campaign.

Parse, normalize, store the original file, deduplicate, update the ledger and
replace the campaign's persisted record set. Every stage before persistence is
pure; storage failures are wrapped in :class:`CampaignProcessingError`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, BinaryIO

from onboarding_app.stores import BlobNotFoundError, BlobStoreError, DocumentStore, DocumentStoreError, LocalBlobStore
from onboarding_app.utils.serialization import isoformat, utcnow

from ..adapters.spreadsheet import SPREADSHEET_EXTENSIONS, SpreadsheetError, read_spreadsheet
from ..errors import CampaignNotFoundError, CampaignProcessingError, CampaignRequestError
from ..metrics import record_ingest, record_ingest_rows
from ..utils import allowed_file, build_blob_name
from .batch_writer import DEFAULT_MAX_BATCH_SIZE, BatchedWriter
from .dedupe import deduplicate_records
from .failures import FailureRecord, failures_as_dicts
from .ledger import CampaignLedgerService, LedgerCounts, validate_campaign_id
from .normalize import normalize_rows

RECORDS_COLLECTION = "validated_campaign_data"
DEFAULT_BUCKET = "campaign-uploads"


@dataclass
class IngestSummary:
    """Outcome of one spreadsheet ingest."""

    campaign_id: str
    uploaded: int
    total: int
    failed_records: list[FailureRecord] = field(default_factory=list)
    duplicate_count: int = 0
    total_uploaded: int = 0
    file_url: str | None = None
    file_name: str | None = None
    original_file_name: str | None = None
    dnc_applied: bool = False
    data_replaced: bool = False
    replaced_records_count: int = 0
    staged_as_pending: bool = False
    records_saved: int = 0

    @property
    def failed(self) -> int:
        return len(self.failed_records)

    @property
    def total_records_in_file(self) -> int:
        return self.total

    @property
    def unique_records_saved(self) -> int:
        return self.uploaded

    def as_dict(self) -> dict[str, Any]:
        return {
            "campaign_id": self.campaign_id,
            "uploaded": self.uploaded,
            "total": self.total,
            "failed": self.failed,
            "failed_rows": [failure.row for failure in self.failed_records],
            "failed_records": failures_as_dicts(self.failed_records),
            "duplicate_count": self.duplicate_count,
            "total_uploaded": self.total_uploaded,
            "file_url": self.file_url,
            "file_name": self.file_name,
            "original_file_name": self.original_file_name,
            "total_records_in_file": self.total_records_in_file,
            "unique_records_saved": self.unique_records_saved,
            "validated_data_saved": self.records_saved,
            "dnc_applied": self.dnc_applied,
            "data_replaced": self.data_replaced,
            "replaced_records_count": self.replaced_records_count,
            "staged_as_pending": self.staged_as_pending,
        }


def ingest_spreadsheet(
    campaign_id: Any,
    file_bytes: bytes | None,
    filename: str | None,
    *,
    store: DocumentStore,
    blob_store: LocalBlobStore,
    do_not_call: bool = False,
    uploaded_by: str | None = None,
    bucket: str = DEFAULT_BUCKET,
    max_batch_size: int = DEFAULT_MAX_BATCH_SIZE,
    now: datetime | None = None,
    logger: logging.Logger | None = None,
) -> IngestSummary:
    """
    Ingest one uploaded spreadsheet for ``campaign_id``.

    The original bytes are stored before deduplication. The campaign's prior
    records are deleted and the deduplicated set is written through the
    batched writer, so running the same file twice yields the same counts.
    """

    logger = logger or logging.getLogger(__name__)
    if not file_bytes:
        raise CampaignRequestError("No file uploaded.")
    resolved_id = validate_campaign_id(campaign_id) if campaign_id else None
    if not resolved_id:
        raise CampaignRequestError("Campaign ID is required.")
    original_name = Path(filename or "").name
    if not allowed_file(original_name):
        raise CampaignRequestError(
            "Unsupported file type. Upload one of: " + ", ".join(f".{ext}" for ext in SPREADSHEET_EXTENSIONS)
        )

    stamped_at = now or utcnow()
    actor = uploaded_by.strip() if isinstance(uploaded_by, str) and uploaded_by.strip() else None
    try:
        table = read_spreadsheet(file_bytes, original_name)
        normalized = normalize_rows(table.rows, do_not_call=do_not_call, uploaded_by=actor, now=stamped_at)
        total_uploaded = len(normalized.records)

        blob_name = build_blob_name(original_name, now=stamped_at)
        file_url = blob_store.put(bucket, blob_name, file_bytes)

        deduped = deduplicate_records(normalized.records)
        duplicates = failures_as_dicts(deduped.duplicates)
        ledger = CampaignLedgerService(store)
        staged_as_pending = ledger.record_stage(
            resolved_id,
            LedgerCounts(
                total_uploaded=total_uploaded,
                total_validated_data=len(deduped.records),
                duplicates_count=deduped.duplicate_count,
                duplicates_data=duplicates,
            ),
            metadata={
                "campaign_id": resolved_id,
                "file_url": file_url,
                "file_name": blob_name,
                "original_file_name": original_name,
                "uploaded_by": actor or "Unknown",
                "dnc_enabled": bool(do_not_call),
                "last_upload_at": isoformat(stamped_at),
                "excel_uploaded_at": isoformat(stamped_at),
            },
        )

        existing = store.query(RECORDS_COLLECTION, [("campaign_id_ref", resolved_id)])
        with BatchedWriter(store, max_batch_size=max_batch_size) as writer:
            for document in existing:
                writer.delete(RECORDS_COLLECTION, document.key)
            writer.flush()
            for record in deduped.records:
                writer.set(
                    RECORDS_COLLECTION,
                    store.new_key(),
                    record.as_document(resolved_id, validated_at=stamped_at),
                )
            writer.flush()
    except SpreadsheetError as exc:
        record_ingest("failure")
        logger.warning(
            "Campaign spreadsheet could not be parsed",
            extra={"campaigns_campaign_id": resolved_id, "campaigns_error": str(exc)},
        )
        raise CampaignProcessingError(f"Data save failed: {exc}") from exc
    except (BlobStoreError, DocumentStoreError) as exc:
        record_ingest("failure")
        logger.exception(
            "Campaign ingest failed while saving",
            extra={"campaigns_campaign_id": resolved_id},
        )
        raise CampaignProcessingError(f"Data save failed: {exc}") from exc

    failures = [*normalized.failures, *deduped.duplicates]
    summary = IngestSummary(
        campaign_id=resolved_id,
        uploaded=len(deduped.records),
        total=len(table.rows),
        failed_records=failures,
        duplicate_count=deduped.duplicate_count,
        total_uploaded=total_uploaded,
        file_url=file_url,
        file_name=blob_name,
        original_file_name=original_name,
        dnc_applied=bool(do_not_call),
        data_replaced=bool(existing),
        replaced_records_count=len(existing),
        staged_as_pending=staged_as_pending,
        records_saved=len(deduped.records),
    )
    record_ingest("success")
    record_ingest_rows(
        saved=summary.uploaded,
        missing=len(normalized.failures),
        duplicates=summary.duplicate_count,
    )
    logger.info(
        "Campaign spreadsheet ingested",
        extra={
            "campaigns_campaign_id": resolved_id,
            "campaigns_uploaded": summary.uploaded,
            "campaigns_failed": summary.failed,
            "campaigns_duplicates": summary.duplicate_count,
            "campaigns_replaced": summary.replaced_records_count,
            "campaigns_staged_as_pending": staged_as_pending,
        },
    )
    return summary


@dataclass(frozen=True)
class CampaignFile:
    stream: BinaryIO
    download_name: str


def open_campaign_file(
    campaign_id: str,
    *,
    store: DocumentStore,
    blob_store: LocalBlobStore,
    bucket: str = DEFAULT_BUCKET,
) -> CampaignFile:
    """Open the original spreadsheet last uploaded for ``campaign_id``."""

    ledger = CampaignLedgerService(store).get(campaign_id)
    if ledger is None:
        raise CampaignNotFoundError("Campaign not found")
    blob_name = ledger.get("file_name")
    if not blob_name:
        raise CampaignNotFoundError("No file found for this campaign")
    try:
        stream = blob_store.get(bucket, blob_name)
    except BlobNotFoundError as exc:
        raise CampaignNotFoundError("File not found in storage") from exc
    return CampaignFile(stream=stream, download_name=ledger.get("original_file_name") or blob_name)
