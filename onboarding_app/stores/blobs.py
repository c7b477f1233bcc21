"""
Filesystem-backed blob store for uploaded campaign spreadsheets.

Blobs live under ``<root>/<bucket>/<name>`` and are published with a URL built
from a configurable public prefix so links keep the bucket-style shape the
browser client expects.
"""

from __future__ import annotations

from pathlib import Path
from typing import BinaryIO
from urllib.parse import quote

from werkzeug.utils import secure_filename

DEFAULT_PUBLIC_URL = "https://storage.googleapis.com"


class BlobStoreError(RuntimeError):
    """Raised when a blob cannot be written or read."""


class BlobNotFoundError(BlobStoreError):
    """Raised when a requested blob does not exist."""


class LocalBlobStore:
    """Store blobs on disk beneath ``root``."""

    def __init__(self, root: Path | str, *, public_url: str = DEFAULT_PUBLIC_URL):
        self.root = Path(root)
        self.public_url = public_url.rstrip("/")

    def _path_for(self, bucket: str, name: str) -> Path:
        safe_bucket = secure_filename(bucket)
        safe_name = secure_filename(name)
        if not safe_bucket or not safe_name:
            raise BlobStoreError(f"Invalid blob location {bucket!r}/{name!r}.")
        return self.root / safe_bucket / safe_name

    def url_for(self, bucket: str, name: str) -> str:
        return f"{self.public_url}/{bucket}/{quote(name)}"

    def put(self, bucket: str, name: str, data: bytes) -> str:
        """Write ``data`` and return the public URL for the blob."""

        path = self._path_for(bucket, name)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as exc:
            raise BlobStoreError(f"Failed to store blob {bucket}/{name}: {exc}") from exc
        return self.url_for(bucket, name)

    def exists(self, bucket: str, name: str) -> bool:
        try:
            return self._path_for(bucket, name).is_file()
        except BlobStoreError:
            return False

    def get(self, bucket: str, name: str) -> BinaryIO:
        """Open the blob for reading; the caller closes the stream."""

        path = self._path_for(bucket, name)
        if not path.is_file():
            raise BlobNotFoundError(f"Blob {bucket}/{name} not found.")
        try:
            return path.open("rb")
        except OSError as exc:
            raise BlobStoreError(f"Failed to read blob {bucket}/{name}: {exc}") from exc
