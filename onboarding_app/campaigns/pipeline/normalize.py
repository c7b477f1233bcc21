"""
Spreadsheet row normalization.

Turns raw header-to-value rows into canonical upload records, rejecting rows
without a customer id. Pure: no storage access and no exceptions for bad rows.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping, Sequence

from onboarding_app.campaigns.contracts import map_row_to_canonical
from onboarding_app.utils.serialization import isoformat, utcnow

from .failures import FailureRecord, UploadRowData

HEADER_ROW_OFFSET = 2


@dataclass(frozen=True)
class UploadRecord:
    """One spreadsheet row after normalization."""

    customer_id: str
    campaign_id: str | None
    campaign_name: str | None
    do_not_call: bool | None
    uploaded_by: str | None
    uploaded_at: datetime
    excel_row_number: int
    is_active: bool = True

    def row_data(self) -> UploadRowData:
        return UploadRowData(
            customer_id=self.customer_id,
            campaign_id=self.campaign_id,
            campaign_name=self.campaign_name,
            excel_row_number=self.excel_row_number,
        )

    def as_document(self, campaign_id_ref: str, *, validated_at: datetime) -> dict[str, Any]:
        """Shape the record as stored in ``validated_campaign_data``."""

        return {
            "customer_id": self.customer_id,
            "campaign_id": self.campaign_id,
            "campaign_name": self.campaign_name,
            "do_not_call": self.do_not_call,
            "uploaded_by": self.uploaded_by,
            "uploaded_at": isoformat(self.uploaded_at),
            "is_active": self.is_active,
            "excel_row_number": self.excel_row_number,
            "campaign_id_ref": campaign_id_ref,
            "validated_at": isoformat(validated_at),
        }


@dataclass
class NormalizationResult:
    records: list[UploadRecord] = field(default_factory=list)
    failures: list[FailureRecord] = field(default_factory=list)

    @property
    def rows_processed(self) -> int:
        return len(self.records) + len(self.failures)


def normalize_rows(
    rows: Sequence[Mapping[str, Any]],
    *,
    do_not_call: bool = False,
    uploaded_by: str | None = None,
    now: datetime | None = None,
) -> NormalizationResult:
    """
    Map ``rows`` onto canonical upload records in input order.

    Rows without a customer id become ``Missing required field`` failures
    numbered by their spreadsheet line (index + 2 for the header row).
    """

    stamped_at = now or utcnow()
    dnc_flag = True if do_not_call else None
    actor = uploaded_by.strip() if isinstance(uploaded_by, str) and uploaded_by.strip() else None
    result = NormalizationResult()

    for index, raw in enumerate(rows):
        row_number = index + HEADER_ROW_OFFSET
        canonical = map_row_to_canonical(raw)
        customer_id = canonical.get("customer_id")
        if not customer_id:
            result.failures.append(FailureRecord.missing_required_field(row_number, raw))
            continue
        result.records.append(
            UploadRecord(
                customer_id=customer_id,
                campaign_id=canonical.get("campaign_id"),
                campaign_name=canonical.get("campaign_name"),
                do_not_call=dnc_flag,
                uploaded_by=actor,
                uploaded_at=stamped_at,
                excel_row_number=row_number,
            )
        )
    return result
