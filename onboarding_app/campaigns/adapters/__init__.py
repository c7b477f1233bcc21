"""Campaign pipeline adapters for spreadsheets and external services."""

from .ccai import CcaiAPIError, CcaiClient, CcaiConfigError, CcaiSettings, ImportResult, create_ccai_client
from .customer_api import (
    CustomerLookupClient,
    CustomerLookupConfigError,
    CustomerLookupError,
    CustomerLookupSettings,
    CustomerTokenError,
    LookupResult,
    create_customer_lookup_client,
)
from .spreadsheet import SpreadsheetError, SpreadsheetTable, build_sample_workbook, read_spreadsheet

__all__ = [
    "CcaiAPIError",
    "CcaiClient",
    "CcaiConfigError",
    "CcaiSettings",
    "CustomerLookupClient",
    "CustomerLookupConfigError",
    "CustomerLookupError",
    "CustomerLookupSettings",
    "CustomerTokenError",
    "ImportResult",
    "LookupResult",
    "SpreadsheetError",
    "SpreadsheetTable",
    "build_sample_workbook",
    "create_ccai_client",
    "create_customer_lookup_client",
    "read_spreadsheet",
]
