"""Campaign record-processing pipeline stages."""

from .batch_writer import DEFAULT_MAX_BATCH_SIZE, BatchedWriter, BatchWriterStats, commit_in_batches
from .dedupe import DeduplicationResult, deduplicate_records
from .dialer_sync import CAMPAIGNS_COLLECTION, DialerCampaignSync
from .export import ExportSummary, build_contacts, export_to_dialer, normalize_dialer_phone
from .failures import FailureKind, FailureReason, FailureRecord, failures_as_dicts
from .ingest import (
    DEFAULT_BUCKET,
    RECORDS_COLLECTION,
    CampaignFile,
    IngestSummary,
    ingest_spreadsheet,
    open_campaign_file,
)
from .ledger import (
    LEDGER_COLLECTION,
    CampaignLedgerService,
    LedgerCounts,
    LedgerView,
    has_prior_completed_cycle,
    promote,
    stage,
)
from .normalize import NormalizationResult, UploadRecord, normalize_rows
from .validation import (
    JOBS_COLLECTION,
    StaleSweepResult,
    ValidationJobService,
    ValidationJobStatus,
    ValidationRunner,
    ValidationSettings,
    compute_progress,
)

__all__ = [
    "BatchWriterStats",
    "BatchedWriter",
    "CAMPAIGNS_COLLECTION",
    "CampaignFile",
    "CampaignLedgerService",
    "DEFAULT_BUCKET",
    "DEFAULT_MAX_BATCH_SIZE",
    "DeduplicationResult",
    "DialerCampaignSync",
    "ExportSummary",
    "FailureKind",
    "FailureReason",
    "FailureRecord",
    "IngestSummary",
    "JOBS_COLLECTION",
    "LEDGER_COLLECTION",
    "LedgerCounts",
    "LedgerView",
    "NormalizationResult",
    "RECORDS_COLLECTION",
    "StaleSweepResult",
    "UploadRecord",
    "ValidationJobService",
    "ValidationJobStatus",
    "ValidationRunner",
    "ValidationSettings",
    "build_contacts",
    "commit_in_batches",
    "compute_progress",
    "deduplicate_records",
    "export_to_dialer",
    "failures_as_dicts",
    "has_prior_completed_cycle",
    "ingest_spreadsheet",
    "normalize_dialer_phone",
    "normalize_rows",
    "open_campaign_file",
    "promote",
    "stage",
]
