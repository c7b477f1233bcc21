"""Spreadsheet adapter for campaign uploads.

Reads the first worksheet of an ``.xlsx`` workbook (or a CSV export of one)
into ordered header-to-value rows. Header names are kept exactly as they appear
in the file so rejected rows can be echoed back to operators verbatim; mapping
onto canonical fields happens later in the normalizer.
"""

from __future__ import annotations

import csv
import io
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Sequence

from openpyxl import Workbook, load_workbook
from openpyxl.utils.exceptions import InvalidFileException

WORKBOOK_EXTENSIONS: tuple[str, ...] = ("xlsx", "xlsm")
CSV_EXTENSIONS: tuple[str, ...] = ("csv",)
SPREADSHEET_EXTENSIONS: tuple[str, ...] = WORKBOOK_EXTENSIONS + CSV_EXTENSIONS
XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

SAMPLE_FILENAME = "Sample_Customer_Upload.xlsx"
SAMPLE_CUSTOMER_IDS: tuple[str, ...] = (
    "00uml8w9rnpOoQFlE4x7",
    "01abc1234defGHI5678J",
    "02xyz9876fedCBA4321K",
    "03pqr5432mnoPQR1234L",
    "04stu6789klmSTU5678M",
)


class SpreadsheetError(ValueError):
    """Raised when an uploaded file cannot be read as a spreadsheet."""


@dataclass(frozen=True)
class SpreadsheetTable:
    """Parsed data rows plus the header row they were keyed by."""

    headers: tuple[str, ...]
    rows: list[dict[str, Any]] = field(default_factory=list)
    blank_rows_skipped: int = 0

    def __len__(self) -> int:
        return len(self.rows)


def _extension(filename: str) -> str:
    return Path(filename or "").suffix.lstrip(".").lower()


def _header_labels(raw_headers: Sequence[Any]) -> tuple[str, ...]:
    labels: list[str] = []
    for index, value in enumerate(raw_headers):
        label = str(value).strip() if value is not None and str(value).strip() else f"column_{index + 1}"
        labels.append(label)
    return tuple(labels)


def _is_blank(values: Iterable[Any]) -> bool:
    for value in values:
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return False
    return True


def _build_table(raw_rows: Iterable[Sequence[Any]]) -> SpreadsheetTable:
    iterator = iter(raw_rows)
    header_row = next(iterator, None)
    if header_row is None:
        return SpreadsheetTable(headers=())
    headers = _header_labels(header_row)

    rows: list[dict[str, Any]] = []
    skipped = 0
    for values in iterator:
        if _is_blank(values):
            skipped += 1
            continue
        row: dict[str, Any] = {}
        for index, header in enumerate(headers):
            value = values[index] if index < len(values) else None
            if isinstance(value, str) and not value.strip():
                value = None
            row[header] = value
        rows.append(row)
    return SpreadsheetTable(headers=headers, rows=rows, blank_rows_skipped=skipped)


def _read_workbook(content: bytes) -> SpreadsheetTable:
    try:
        workbook = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError, ValueError) as exc:
        raise SpreadsheetError(f"Unable to read workbook: {exc}") from exc
    try:
        sheet = workbook.worksheets[0] if workbook.worksheets else None
        if sheet is None:
            return SpreadsheetTable(headers=())
        return _build_table(sheet.iter_rows(values_only=True))
    finally:
        workbook.close()


def _read_csv(content: bytes) -> SpreadsheetTable:
    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise SpreadsheetError(f"CSV upload is not valid UTF-8: {exc}") from exc
    return _build_table(csv.reader(io.StringIO(text)))


def read_spreadsheet(content: bytes, filename: str) -> SpreadsheetTable:
    """
    Parse ``content`` according to the extension of ``filename``.

    The first worksheet's first row is the header row. Fully blank rows are
    skipped and empty cells are returned as ``None``.
    """

    extension = _extension(filename)
    if extension in WORKBOOK_EXTENSIONS:
        return _read_workbook(content)
    if extension in CSV_EXTENSIONS:
        return _read_csv(content)
    raise SpreadsheetError(
        f"Unsupported file type '.{extension}'. Upload one of: "
        + ", ".join(f".{ext}" for ext in SPREADSHEET_EXTENSIONS)
    )


def build_sample_workbook() -> bytes:
    """Return the downloadable template workbook with a ``Customer_Id`` column."""

    workbook = Workbook()
    sheet = workbook.active
    sheet.title = "Customers"
    sheet.append(["Customer_Id"])
    for customer_id in SAMPLE_CUSTOMER_IDS:
        sheet.append([customer_id])
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()
