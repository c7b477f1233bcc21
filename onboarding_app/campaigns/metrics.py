"""Prometheus metrics helpers for the campaign pipeline."""

from __future__ import annotations

from typing import Literal

from prometheus_client import Counter, Histogram

_ingest_counter = Counter(
    "campaigns_ingests_total",
    "Spreadsheet ingests by outcome.",
    ["outcome"],
)
_ingest_rows_counter = Counter(
    "campaigns_ingest_rows_total",
    "Spreadsheet rows seen during ingest by category.",
    ["category"],
)
_lookup_counter = Counter(
    "campaigns_customer_lookups_total",
    "Customer lookup calls by outcome.",
    ["outcome"],
)
_lookup_duration = Histogram(
    "campaigns_customer_lookup_duration_seconds",
    "Duration of a single customer lookup call in seconds.",
    buckets=(0.05, 0.1, 0.25, 0.5, 1, 2, 5, 10, 15),
)
_validation_job_counter = Counter(
    "campaigns_validation_jobs_total",
    "Validation jobs by terminal status.",
    ["status"],
)
_export_counter = Counter(
    "campaigns_dialer_exports_total",
    "Dialer exports by outcome.",
    ["outcome"],
)
_stale_job_counter = Counter(
    "campaigns_stale_jobs_total",
    "Stale validation jobs handled by the sweep by action.",
    ["action"],
)


def record_ingest(outcome: Literal["success", "failure"]) -> None:
    _ingest_counter.labels(outcome=outcome).inc()


def record_ingest_rows(*, saved: int, missing: int, duplicates: int) -> None:
    """Capture row categories for one ingest."""

    for category, count in (("saved", saved), ("missing_customer_id", missing), ("duplicate", duplicates)):
        if count:
            _ingest_rows_counter.labels(category=category).inc(count)


def record_lookup(outcome: Literal["validated", "failed", "rate_limited"], duration_seconds: float) -> None:
    _lookup_counter.labels(outcome=outcome).inc()
    _lookup_duration.observe(max(duration_seconds, 0.0))


def record_validation_job(status: str) -> None:
    _validation_job_counter.labels(status=status).inc()


def record_export(outcome: Literal["success", "failure"]) -> None:
    _export_counter.labels(outcome=outcome).inc()


def record_stale_job(action: Literal["rearmed", "redispatched", "failed"]) -> None:
    _stale_job_counter.labels(action=action).inc()
