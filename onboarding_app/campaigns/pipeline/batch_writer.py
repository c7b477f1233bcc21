"""Buffered document writes committed in groups no larger than a ceiling."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from onboarding_app.stores import DocumentStore, WriteOp

DEFAULT_MAX_BATCH_SIZE = 400


@dataclass
class BatchWriterStats:
    operations_committed: int = 0
    commits: int = 0


class BatchedWriter:
    """
    Queue create/update/delete operations and commit them in bounded batches.

    A batch is committed as soon as it reaches ``max_batch_size``; ``flush``
    commits the remainder. A failed commit raises immediately and earlier
    batches stay committed.
    """

    def __init__(self, store: DocumentStore, *, max_batch_size: int = DEFAULT_MAX_BATCH_SIZE):
        max_batch_size = int(max_batch_size)
        if max_batch_size < 1:
            raise ValueError("max_batch_size must be at least 1")
        limit = getattr(store, "max_operations_per_commit", None)
        if isinstance(limit, int) and max_batch_size > limit:
            raise ValueError(f"max_batch_size {max_batch_size} exceeds the store limit of {limit}")
        self.store = store
        self.max_batch_size = max_batch_size
        self.stats = BatchWriterStats()
        self._pending: list[WriteOp] = []

    def __enter__(self) -> "BatchedWriter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.flush()
        else:
            self._pending.clear()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def add(self, operation: WriteOp) -> None:
        self._pending.append(operation)
        if len(self._pending) >= self.max_batch_size:
            self._commit_pending()

    def set(self, collection: str, key: str, data: Mapping[str, Any], *, merge: bool = False) -> None:
        self.add(WriteOp.set(collection, key, data, merge=merge))

    def update(self, collection: str, key: str, data: Mapping[str, Any]) -> None:
        self.add(WriteOp.update(collection, key, data))

    def delete(self, collection: str, key: str) -> None:
        self.add(WriteOp.delete(collection, key))

    def flush(self) -> int:
        """Commit whatever is queued; returns the number of operations written."""

        if not self._pending:
            return 0
        return self._commit_pending()

    def _commit_pending(self) -> int:
        batch, self._pending = self._pending, []
        written = self.store.commit_batch(batch)
        self.stats.operations_committed += written
        self.stats.commits += 1
        return written


def commit_in_batches(
    store: DocumentStore,
    operations: Iterable[WriteOp],
    *,
    max_batch_size: int = DEFAULT_MAX_BATCH_SIZE,
) -> BatchWriterStats:
    """Commit ``operations`` in order with one commit per full batch plus the remainder."""

    writer = BatchedWriter(store, max_batch_size=max_batch_size)
    for operation in operations:
        writer.add(operation)
    writer.flush()
    return writer.stats
