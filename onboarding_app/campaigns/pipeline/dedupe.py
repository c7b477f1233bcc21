"""First-occurrence-wins deduplication of upload records by customer id."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from .failures import FailureRecord
from .normalize import UploadRecord


@dataclass
class DeduplicationResult:
    records: list[UploadRecord] = field(default_factory=list)
    duplicates: list[FailureRecord] = field(default_factory=list)

    @property
    def duplicate_count(self) -> int:
        return len(self.duplicates)


def deduplicate_records(records: Iterable[UploadRecord]) -> DeduplicationResult:
    """
    Keep the first record per ``customer_id`` and reject every later one.

    Output order follows input order; rejected rows keep their own row
    metadata so operators can find them in the source file.
    """

    result = DeduplicationResult()
    seen: set[str] = set()
    for record in records:
        if record.customer_id in seen:
            result.duplicates.append(FailureRecord.duplicate_customer(record.row_data()))
            continue
        seen.add(record.customer_id)
        result.records.append(record)
    return result
