"""Canonical upload contract helpers for campaign adapters."""

from __future__ import annotations

from .upload import (
    UPLOAD_CANONICAL_FIELDS,
    FieldSpec,
    cell_to_str,
    get_upload_alias_map,
    get_upload_field_specs,
    map_row_to_canonical,
    normalize_header,
)

__all__ = [
    "FieldSpec",
    "UPLOAD_CANONICAL_FIELDS",
    "cell_to_str",
    "get_upload_alias_map",
    "get_upload_field_specs",
    "map_row_to_canonical",
    "normalize_header",
]
