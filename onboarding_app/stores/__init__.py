"""Storage adapters used by the campaign pipeline."""

from .blobs import BlobNotFoundError, BlobStoreError, LocalBlobStore
from .documents import (
    BatchLimitExceededError,
    DocumentNotFoundError,
    DocumentStore,
    DocumentStoreError,
    StoredDocument,
    WriteOp,
)

__all__ = [
    "BatchLimitExceededError",
    "BlobNotFoundError",
    "BlobStoreError",
    "DocumentNotFoundError",
    "DocumentStore",
    "DocumentStoreError",
    "LocalBlobStore",
    "StoredDocument",
    "WriteOp",
]
