"""
Failure records produced by the campaign pipeline.

Every rejected row carries a reason from a closed taxonomy and a typed
diagnostic payload whose shape depends on the stage that rejected it. Failure
records are embedded in ledger and validation job documents as plain dicts.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Mapping, Union

from onboarding_app.utils.serialization import normalize_payload


class FailureReason(str, enum.Enum):
    """Fixed reason strings shared by every stage."""

    MISSING_REQUIRED_CUSTOMER_ID = "Missing required field: customerId"
    DUPLICATE_CUSTOMER_ID = "Duplicate customerId"
    MISSING_CUSTOMER_ID = "Missing customerId"
    PHONE_NOT_AVAILABLE = "Phone number not available for customer"
    INVALID_PHONE_FORMAT = "Invalid phone number format"
    DUPLICATE_PHONE = "Duplicate phone number - already assigned to customer"
    NO_ERROR_DETAILS = "Customer validation failed - no error details available"


class FailureKind(str, enum.Enum):
    """Which payload variant a failure carries."""

    SOURCE_ROW = "source_row"
    UPLOAD_ROW = "upload_row"
    CUSTOMER = "customer"
    CONTACT = "contact"


@dataclass(frozen=True)
class SourceRowData:
    """The raw spreadsheet row, keyed by the headers in the file."""

    columns: Mapping[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        return normalize_payload(self.columns)


@dataclass(frozen=True)
class UploadRowData:
    """Canonical fields of a normalized upload row."""

    customer_id: str | None
    campaign_id: str | None
    campaign_name: str | None
    excel_row_number: int

    def as_dict(self) -> dict[str, Any]:
        return {
            "customer_id": self.customer_id,
            "campaign_id": self.campaign_id,
            "campaign_name": self.campaign_name,
            "excel_row_number": self.excel_row_number,
        }


@dataclass(frozen=True)
class CustomerData:
    """Identity of a persisted record that failed customer validation."""

    customer_id: str | None
    campaign_id: str | None
    campaign_name: str | None
    uploaded_by: str | None

    def as_dict(self) -> dict[str, Any]:
        return {
            "customer_id": self.customer_id,
            "campaign_id": self.campaign_id,
            "campaign_name": self.campaign_name,
            "uploaded_by": self.uploaded_by,
        }


@dataclass(frozen=True)
class ContactData:
    """Dialer contact candidate that could not be exported."""

    customer_id: str | None
    campaign_name: str | None
    phone_number: str | None

    def as_dict(self) -> dict[str, Any]:
        return {
            "customer_id": self.customer_id,
            "campaign_name": self.campaign_name,
            "phone_number": self.phone_number,
        }


FailureData = Union[SourceRowData, UploadRowData, CustomerData, ContactData]

_KIND_BY_TYPE = {
    SourceRowData: FailureKind.SOURCE_ROW,
    UploadRowData: FailureKind.UPLOAD_ROW,
    CustomerData: FailureKind.CUSTOMER,
    ContactData: FailureKind.CONTACT,
}


@dataclass(frozen=True)
class FailureRecord:
    """A rejected row: source position, reason, and typed diagnostic payload."""

    row: int
    reason: str
    data: FailureData

    @property
    def kind(self) -> FailureKind:
        return _KIND_BY_TYPE[type(self.data)]

    def as_dict(self) -> dict[str, Any]:
        return {
            "row": self.row,
            "reason": self.reason,
            "kind": self.kind.value,
            "data": self.data.as_dict(),
        }

    @classmethod
    def missing_required_field(cls, row: int, columns: Mapping[str, Any]) -> "FailureRecord":
        return cls(row, FailureReason.MISSING_REQUIRED_CUSTOMER_ID.value, SourceRowData(dict(columns)))

    @classmethod
    def duplicate_customer(cls, data: UploadRowData) -> "FailureRecord":
        return cls(data.excel_row_number, FailureReason.DUPLICATE_CUSTOMER_ID.value, data)

    @classmethod
    def missing_customer_id(cls, row: int, data: CustomerData) -> "FailureRecord":
        return cls(row, FailureReason.MISSING_CUSTOMER_ID.value, data)

    @classmethod
    def customer_lookup(cls, row: int, reason: str | None, data: CustomerData) -> "FailureRecord":
        return cls(row, reason or FailureReason.NO_ERROR_DETAILS.value, data)

    @classmethod
    def phone_not_available(cls, row: int, data: CustomerData | ContactData) -> "FailureRecord":
        return cls(row, FailureReason.PHONE_NOT_AVAILABLE.value, data)

    @classmethod
    def invalid_phone(cls, row: int, data: ContactData) -> "FailureRecord":
        return cls(row, FailureReason.INVALID_PHONE_FORMAT.value, data)

    @classmethod
    def duplicate_phone(cls, row: int, first_customer_id: str, data: ContactData) -> "FailureRecord":
        return cls(row, f"{FailureReason.DUPLICATE_PHONE.value} {first_customer_id}", data)


def failures_as_dicts(failures) -> list[dict[str, Any]]:
    return [failure.as_dict() for failure in failures]
