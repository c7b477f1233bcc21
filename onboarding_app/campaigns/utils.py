"""
Campaign feature helpers for extension state, uploaded files and blob naming.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Iterable

from werkzeug.utils import secure_filename

from onboarding_app.stores import LocalBlobStore
from onboarding_app.stores.blobs import DEFAULT_PUBLIC_URL
from onboarding_app.utils.serialization import utcnow

from .adapters.spreadsheet import SPREADSHEET_EXTENSIONS

CAMPAIGNS_EXTENSION_KEY = "campaigns"
DEFAULT_BLOB_SUBDIR = "campaign_blobs"
BLOB_TIMESTAMP_FORMAT = "%d%m%Y_%H%M%S"


def _normalize_dir(configured_path: str | None, instance_path: str, *, default_subdir: str) -> Path:
    if not configured_path:
        return Path(instance_path) / default_subdir

    candidate = Path(configured_path)
    if candidate.is_absolute():
        return candidate

    return Path(instance_path) / candidate


def resolve_blob_directory(app) -> Path:
    """
    Determine and create (if necessary) the blob store root directory.
    """

    blob_dir = _normalize_dir(
        app.config.get("CAMPAIGNS_BLOB_DIR"),
        app.instance_path,
        default_subdir=DEFAULT_BLOB_SUBDIR,
    )
    blob_dir.mkdir(parents=True, exist_ok=True)
    return blob_dir


def allowed_file(filename: str, allowed_extensions: Iterable[str] = SPREADSHEET_EXTENSIONS) -> bool:
    """
    Validate the uploaded filename extension against the allowed set.
    """

    if not filename or "." not in filename:
        return False
    extension = filename.rsplit(".", 1)[1].lower()
    return extension in {ext.lower() for ext in allowed_extensions}


def build_blob_name(original_filename: str, *, now: datetime | None = None) -> str:
    """
    Return ``<stem>_<DDMMYYYY_HHMMSS><ext>`` for an uploaded file.

    The stem is passed through ``secure_filename`` so the name is safe both on
    disk and in the public URL. Names that lose their extension there, such as
    non-ASCII stems, are stored as ``upload`` with the original extension.
    """

    original_suffix = Path(original_filename or "").suffix
    safe_name = secure_filename(original_filename or "") or "upload.xlsx"
    path = Path(safe_name)
    if original_suffix and path.suffix.lower() != original_suffix.lower():
        extension = secure_filename(original_suffix.lstrip("."))
        path = Path(f"upload.{extension}" if extension else "upload")
    stem = path.stem or "upload"
    stamp = (now or utcnow()).strftime(BLOB_TIMESTAMP_FORMAT)
    return f"{stem}_{stamp}{path.suffix}"


def ensure_extension_state(app) -> dict:
    return app.extensions.setdefault(
        CAMPAIGNS_EXTENSION_KEY,
        {
            "worker_enabled": False,
            "celery_app": None,
            "blob_store": None,
        },
    )


def get_blob_store(app) -> LocalBlobStore:
    """Return the blob store for ``app``, creating it on first use."""

    state = ensure_extension_state(app)
    blob_store: LocalBlobStore | None = state.get("blob_store")
    if blob_store is None:
        blob_store = LocalBlobStore(
            resolve_blob_directory(app),
            public_url=app.config.get("CAMPAIGNS_BLOB_PUBLIC_URL") or DEFAULT_PUBLIC_URL,
        )
        state["blob_store"] = blob_store
    return blob_store
