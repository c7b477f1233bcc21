"""
Per-campaign ledger with pending-shadow counts.

A campaign that already completed a dialer upload keeps showing the numbers of
that completed cycle. New upload and validation results are written to the
``pending_*`` shadow fields instead and only become primary when the next
dialer upload succeeds.

The ledger state is modelled as a :class:`LedgerView` so the staging and
promotion rules are pure functions; :class:`CampaignLedgerService` reads and
writes the view through the document store.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from typing import Any, Mapping

from onboarding_app.stores import DocumentStore
from onboarding_app.utils.serialization import isoformat, normalize_payload, parse_timestamp, utcnow

from ..errors import CampaignRequestError

LEDGER_COLLECTION = "campaign_selections"
PENDING_PREFIX = "pending_"
INVALID_CAMPAIGN_IDS = frozenset({"", "undefined", "null"})


@dataclass(frozen=True)
class LedgerCounts:
    """Stage counts and failure lists; ``None`` means "not written by this stage"."""

    total_uploaded: int | None = None
    total_validated_data: int | None = None
    duplicates_count: int | None = None
    duplicates_data: list | None = None
    customers_validated: int | None = None
    customers_failed: int | None = None
    invalid_customers_count: int | None = None
    invalid_customers_data: list | None = None
    validation_completed_at: str | None = None

    @classmethod
    def field_names(cls) -> tuple[str, ...]:
        return tuple(item.name for item in fields(cls))

    @classmethod
    def from_fields(cls, document: Mapping[str, Any] | None, *, prefix: str = "") -> "LedgerCounts":
        document = document or {}
        return cls(**{name: document.get(f"{prefix}{name}") for name in cls.field_names()})

    def as_fields(self, *, prefix: str = "") -> dict[str, Any]:
        return {f"{prefix}{name}": getattr(self, name) for name in self.field_names()}

    def merged(self, other: "LedgerCounts") -> "LedgerCounts":
        """Return a copy with every defined field of ``other`` applied."""

        changes = {name: getattr(other, name) for name in self.field_names() if getattr(other, name) is not None}
        return replace(self, **changes)

    @property
    def is_empty(self) -> bool:
        return all(getattr(self, name) is None for name in self.field_names())


@dataclass(frozen=True)
class LedgerView:
    primary: LedgerCounts = field(default_factory=LedgerCounts)
    pending: LedgerCounts | None = None

    @classmethod
    def from_document(cls, document: Mapping[str, Any] | None) -> "LedgerView":
        pending = LedgerCounts.from_fields(document, prefix=PENDING_PREFIX)
        return cls(
            primary=LedgerCounts.from_fields(document),
            pending=None if pending.is_empty else pending,
        )

    def to_fields(self) -> dict[str, Any]:
        shadow = self.pending or LedgerCounts()
        return {**self.primary.as_fields(), **shadow.as_fields(prefix=PENDING_PREFIX)}


def has_prior_completed_cycle(document: Mapping[str, Any] | None) -> bool:
    """True once the campaign has finished at least one dialer upload."""

    if not document:
        return False
    if document.get("upload_to_ccai_completed_at") or document.get("ccai_upload_date"):
        return True
    try:
        return int(document.get("uploaded_to_ccai") or 0) > 0
    except (TypeError, ValueError):
        return False


def stage(view: LedgerView, counts: LedgerCounts, has_prior_cycle: bool) -> LedgerView:
    """Apply a stage's ``counts`` to the shadow fields or to the primary ones."""

    if has_prior_cycle:
        return replace(view, pending=(view.pending or LedgerCounts()).merged(counts))
    return replace(view, primary=view.primary.merged(counts))


def promote(view: LedgerView) -> LedgerView:
    """Move every defined shadow field into its primary field and clear the shadow."""

    if view.pending is None:
        return view
    return LedgerView(primary=view.primary.merged(view.pending), pending=None)


def ledger_patch(before: LedgerView, after: LedgerView) -> dict[str, Any]:
    """Fields that differ between two views, as a merge patch."""

    original = normalize_payload(before.to_fields())
    updated = normalize_payload(after.to_fields())
    return {key: value for key, value in updated.items() if original.get(key) != value}


def validate_campaign_id(campaign_id: Any) -> str:
    value = str(campaign_id).strip() if campaign_id is not None else ""
    if value in INVALID_CAMPAIGN_IDS:
        raise CampaignRequestError("Invalid campaign ID")
    return value


def _sort_timestamp(document: Mapping[str, Any]) -> float:
    stamp = parse_timestamp(document.get("ccai_upload_date") or document.get("upload_to_ccai_completed_at"))
    return stamp.timestamp() if stamp else 0.0


class CampaignLedgerService:
    """Reads and merge-writes ledger documents in ``campaign_selections``."""

    def __init__(self, store: DocumentStore):
        self.store = store

    def get(self, campaign_id: str) -> dict[str, Any] | None:
        return self.store.get(LEDGER_COLLECTION, campaign_id)

    def view(self, campaign_id: str) -> LedgerView:
        return LedgerView.from_document(self.get(campaign_id))

    def upsert(self, campaign_id: str, patch: Mapping[str, Any]) -> None:
        if patch:
            self.store.set(LEDGER_COLLECTION, campaign_id, patch, merge=True)

    def select_campaign(
        self,
        campaign_id: Any,
        campaign_name: str | None = None,
        *,
        dnc_enabled: bool = False,
        now: datetime | None = None,
    ) -> dict[str, Any]:
        resolved_id = validate_campaign_id(campaign_id)
        patch = {
            "campaign_id": resolved_id,
            "campaign_name": campaign_name,
            "dnc_enabled": bool(dnc_enabled),
            "selected_at": isoformat(now or utcnow()),
            "is_active": True,
        }
        self.upsert(resolved_id, patch)
        return patch

    def record_stage(
        self,
        campaign_id: str,
        counts: LedgerCounts,
        metadata: Mapping[str, Any] | None = None,
    ) -> bool:
        """
        Write a stage result and return ``True`` when it was staged as pending.

        ``metadata`` is always merged into the primary document.
        """

        document = self.get(campaign_id)
        prior_cycle = has_prior_completed_cycle(document)
        before = LedgerView.from_document(document)
        after = stage(before, counts, prior_cycle)
        self.upsert(campaign_id, {**ledger_patch(before, after), **dict(metadata or {})})
        return prior_cycle

    def complete_dialer_upload(self, campaign_id: str, upload_fields: Mapping[str, Any]) -> dict[str, Any]:
        """Promote pending counts and write the dialer upload fields in one merge."""

        before = self.view(campaign_id)
        patch = {**ledger_patch(before, promote(before)), **dict(upload_fields)}
        self.upsert(campaign_id, patch)
        return patch

    def list_completed_uploads(self) -> list[dict[str, Any]]:
        completed = [
            item for item in self.store.query(LEDGER_COLLECTION) if has_prior_completed_cycle(item.data)
        ]
        completed.sort(key=lambda item: _sort_timestamp(item.data), reverse=True)
        return [_upload_summary(item.key, item.data) for item in completed]


def _upload_summary(campaign_id: str, data: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "campaign_id": campaign_id,
        "campaign_name": data.get("campaign_name") or "N/A",
        "uploaded_by": data.get("uploaded_by") or "Unknown",
        "dnc_enabled": bool(data.get("dnc_enabled")),
        "total_uploaded": data.get("total_uploaded") or 0,
        "total_validated": data.get("total_validated_data") or 0,
        "duplicates_count": data.get("duplicates_count") or 0,
        "duplicates_data": data.get("duplicates_data") or [],
        "invalid_count": data.get("invalid_customers_count") or 0,
        "invalid_data": data.get("invalid_customers_data") or [],
        "ccai_duplicates_count": data.get("ccai_duplicates_count") or 0,
        "ccai_duplicates_data": data.get("ccai_duplicates_data") or [],
        "uploaded_to_ccai": data.get("uploaded_to_ccai") or 0,
        "upload_failed": data.get("upload_to_ccai_failed") or 0,
        "excel_upload_date": data.get("excel_uploaded_at") or data.get("last_upload_at"),
        "ccai_upload_date": data.get("ccai_upload_date") or data.get("upload_to_ccai_completed_at"),
        "file_url": data.get("file_url"),
        "file_name": data.get("original_file_name") or data.get("file_name"),
        "ccai_job_id": data.get("ccai_job_id"),
        "customers_validated": data.get("customers_validated") or 0,
        "customers_failed": data.get("customers_failed") or 0,
    }
