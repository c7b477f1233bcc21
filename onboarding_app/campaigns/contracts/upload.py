"""Canonical campaign upload contract.

Customer spreadsheets arrive from several teams with their own column naming
("Customer ID", "customerid", "Customer_Id"...). The contract maps every known
variant onto the three canonical record attributes; anything else in the sheet
is ignored.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Mapping, Tuple

Normalizer = Callable[[object | None], str | None]


def cell_to_str(value: object | None) -> str | None:
    """Trim a cell to a string; integral floats lose their ``.0`` and blanks become ``None``."""

    if value is None:
        return None
    if isinstance(value, bool):
        text = str(value).lower()
    elif isinstance(value, float) and value.is_integer():
        text = str(int(value))
    else:
        text = str(value)
    text = text.strip()
    return text or None


@dataclass(frozen=True)
class FieldSpec:
    """Metadata describing a canonical upload field."""

    name: str
    description: str
    required: bool = False
    aliases: Tuple[str, ...] = ()
    normalizer: Normalizer | None = cell_to_str

    def headers(self) -> Tuple[str, ...]:
        """Return the canonical header plus aliases for validation."""

        return (self.name, *self.aliases)


UPLOAD_CANONICAL_FIELDS: Tuple[FieldSpec, ...] = (
    FieldSpec(
        name="customer_id",
        description="Customer identifier resolved against the customer lookup service.",
        required=True,
        aliases=("customerid", "customer id"),
    ),
    FieldSpec(
        name="campaign_id",
        description="Campaign identifier carried on the row, when present.",
        aliases=("campaignid", "campaign id"),
    ),
    FieldSpec(
        name="campaign_name",
        description="Campaign display name carried on the row, when present.",
        aliases=("campaignname", "campaign name"),
    ),
)

_FIELDS_BY_NAME: Mapping[str, FieldSpec] = {field.name: field for field in UPLOAD_CANONICAL_FIELDS}


def normalize_header(header: object) -> str:
    """Normalize a column header for comparison (case/space/underscore agnostic)."""

    token = str(header).strip().lower()
    for char in (" ", "-", "."):
        token = token.replace(char, "_")
    return token


def get_upload_field_specs() -> Tuple[FieldSpec, ...]:
    return UPLOAD_CANONICAL_FIELDS


def get_upload_alias_map() -> Mapping[str, str]:
    """Map normalized header tokens to canonical names (includes aliases)."""

    mapping: dict[str, str] = {}
    for field in UPLOAD_CANONICAL_FIELDS:
        for header in field.headers():
            mapping[normalize_header(header)] = field.name
    return mapping


def map_row_to_canonical(row: Mapping[object, object | None]) -> dict[str, str | None]:
    """
    Resolve a raw spreadsheet row onto canonical field names.

    Unknown columns are dropped. When two columns resolve to the same field the
    first non-empty value wins.
    """

    alias_map = get_upload_alias_map()
    canonical: dict[str, str | None] = {field.name: None for field in UPLOAD_CANONICAL_FIELDS}
    for raw_key, value in row.items():
        if raw_key is None:
            continue
        name = alias_map.get(normalize_header(raw_key))
        if name is None or canonical[name] is not None:
            continue
        spec = _FIELDS_BY_NAME[name]
        canonical[name] = spec.normalizer(value) if spec.normalizer else value  # type: ignore[assignment]
    return canonical
