"""
Background customer validation jobs.

``ValidationJobService`` owns the job documents: submission, status reads,
cancellation and the stale-lease sweep. ``ValidationRunner`` is the body of
the background task. It enriches every record of a campaign through the
customer lookup client under a client-side rate limit, retries HTTP 429 with
exponential backoff and writes progress, heartbeat and partial failures every
``progress_interval`` records.

Job states move ``pending -> processing -> completed | failed``. Terminal
states are never rewritten; the sweep may return an expired ``processing``
job to ``pending`` so a fresh run can pick it up. Only ``processing`` jobs
hold a heartbeat lease. A ``pending`` job is re-sent to the queue once it has
waited longer than the queue timeout, and is never failed for waiting.
"""

from __future__ import annotations

import enum
import logging
import math
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Mapping, Optional

from onboarding_app.stores import DocumentStore
from onboarding_app.utils.serialization import isoformat, parse_timestamp, utcnow

from ..adapters.customer_api import CustomerLookupClient, CustomerLookupError, LookupResult
from ..errors import CampaignConflictError, CampaignNotFoundError, CampaignProcessingError
from ..metrics import record_lookup, record_stale_job, record_validation_job
from .batch_writer import DEFAULT_MAX_BATCH_SIZE, BatchedWriter
from .failures import CustomerData, FailureRecord, failures_as_dicts
from .ingest import RECORDS_COLLECTION
from .ledger import CampaignLedgerService, LedgerCounts, validate_campaign_id

JOBS_COLLECTION = "validation_jobs"

CANCELLED_ERROR = "Validation cancelled by operator"
HEARTBEAT_LOST_ERROR = "Validation worker heartbeat lost"
NO_RECORDS_ERROR = "No validated data found for this campaign"
TOKEN_ERROR_PREFIX = "Failed to get authentication token: "
ENQUEUE_ERROR = "Failed to enqueue validation job"

Dispatch = Callable[[str, str], Optional[str]]


class ValidationJobStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({ValidationJobStatus.COMPLETED.value, ValidationJobStatus.FAILED.value})
ACTIVE_STATUSES = (ValidationJobStatus.PENDING.value, ValidationJobStatus.PROCESSING.value)


@dataclass(frozen=True)
class ValidationSettings:
    requests_per_second: float = 5.0
    lookup_max_attempts: int = 3
    backoff_seconds: float = 1.0
    progress_interval: int = 10
    max_batch_size: int = DEFAULT_MAX_BATCH_SIZE
    lease_seconds: int = 600
    queue_timeout_seconds: int = 3600
    max_job_attempts: int = 3
    single_flight: bool = False

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "ValidationSettings":
        defaults = cls()
        return cls(
            requests_per_second=float(
                config.get("CAMPAIGNS_VALIDATION_REQUESTS_PER_SECOND", defaults.requests_per_second)
            ),
            lookup_max_attempts=max(1, int(config.get("CAMPAIGNS_LOOKUP_MAX_ATTEMPTS", defaults.lookup_max_attempts))),
            backoff_seconds=float(config.get("CAMPAIGNS_LOOKUP_BACKOFF_SECONDS", defaults.backoff_seconds)),
            progress_interval=max(1, int(config.get("CAMPAIGNS_PROGRESS_INTERVAL", defaults.progress_interval))),
            max_batch_size=int(config.get("CAMPAIGNS_MAX_BATCH_SIZE", defaults.max_batch_size)),
            lease_seconds=int(config.get("CAMPAIGNS_JOB_LEASE_SECONDS", defaults.lease_seconds)),
            queue_timeout_seconds=int(
                config.get("CAMPAIGNS_JOB_QUEUE_TIMEOUT_SECONDS", defaults.queue_timeout_seconds)
            ),
            max_job_attempts=max(1, int(config.get("CAMPAIGNS_JOB_MAX_ATTEMPTS", defaults.max_job_attempts))),
            single_flight=bool(config.get("CAMPAIGNS_SINGLE_FLIGHT_VALIDATION", defaults.single_flight)),
        )

    @property
    def inter_request_delay(self) -> float:
        if self.requests_per_second <= 0:
            return 0.0
        return 1.0 / self.requests_per_second

    def backoff_for(self, attempt: int) -> float:
        """Delay after failed ``attempt`` (1-based): base, 2 x base, 4 x base, ..."""

        return self.backoff_seconds * (2 ** (attempt - 1))

    def lease_until(self, now: datetime) -> str | None:
        return isoformat(now + timedelta(seconds=self.lease_seconds))


def compute_progress(processed: int, total: int) -> int:
    """Percentage rounded half up."""

    if total <= 0:
        return 0
    return int(math.floor(processed / total * 100 + 0.5))


def lease_expired(job: Mapping[str, Any], now: datetime, lease_seconds: int) -> bool:
    expires = parse_timestamp(job.get("lease_expires_at"))
    if expires is None:
        anchor = (
            parse_timestamp(job.get("heartbeat_at"))
            or parse_timestamp(job.get("started_at"))
            or parse_timestamp(job.get("created_at"))
        )
        if anchor is None:
            return True
        expires = anchor + timedelta(seconds=lease_seconds)
    return expires <= now


def queue_timed_out(job: Mapping[str, Any], now: datetime, queue_timeout_seconds: int) -> bool:
    queued = parse_timestamp(job.get("queued_at")) or parse_timestamp(job.get("created_at"))
    if queued is None:
        return True
    return queued + timedelta(seconds=queue_timeout_seconds) <= now


def job_is_stale(job: Mapping[str, Any], now: datetime, settings: ValidationSettings) -> bool:
    """Processing jobs go stale when the heartbeat lease lapses, pending jobs after the queue timeout."""

    if job.get("status") == ValidationJobStatus.PROCESSING.value:
        return lease_expired(job, now, settings.lease_seconds)
    return queue_timed_out(job, now, settings.queue_timeout_seconds)


@dataclass
class StaleSweepResult:
    rearmed: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    redispatched: list[str] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {"rearmed": list(self.rearmed), "failed": list(self.failed), "redispatched": list(self.redispatched)}


class ValidationJobService:
    """Create, read, cancel and sweep validation job documents."""

    def __init__(
        self,
        store: DocumentStore,
        settings: ValidationSettings | None = None,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        self.store = store
        self.settings = settings or ValidationSettings()
        self.logger = logger or logging.getLogger(__name__)

    def get_job(self, job_id: str) -> dict[str, Any] | None:
        return self.store.get(JOBS_COLLECTION, job_id)

    def get_status(self, job_id: str) -> dict[str, Any]:
        job = self.get_job(job_id) if job_id else None
        if job is None:
            raise CampaignNotFoundError("Job not found")
        return job

    def active_jobs(self, campaign_id: str, *, now: datetime | None = None) -> list[dict[str, Any]]:
        """Non-terminal jobs for ``campaign_id`` that are not stale."""

        now = now or utcnow()
        active: list[dict[str, Any]] = []
        for status in ACTIVE_STATUSES:
            for item in self.store.query(JOBS_COLLECTION, [("campaign_id", campaign_id), ("status", status)]):
                if not job_is_stale(item.data, now, self.settings):
                    active.append(item.data)
        return active

    def submit(self, campaign_id: Any, dispatch: Dispatch, *, now: datetime | None = None) -> dict[str, Any]:
        """
        Create a ``pending`` job for the campaign's persisted records and dispatch it.

        Returns immediately with the job id; the run happens in the background.
        """

        resolved_id = validate_campaign_id(campaign_id)
        now = now or utcnow()
        total = self.store.count(RECORDS_COLLECTION, [("campaign_id_ref", resolved_id)])
        if total == 0:
            raise CampaignNotFoundError(f"{NO_RECORDS_ERROR}. Please upload data first.")
        if self.settings.single_flight:
            active = self.active_jobs(resolved_id, now=now)
            if active:
                raise CampaignConflictError(
                    "A validation job is already running for this campaign",
                    details={"job_id": active[0].get("job_id")},
                )

        job_id = self.store.new_key()
        self.store.set(
            JOBS_COLLECTION,
            job_id,
            {
                "job_id": job_id,
                "campaign_id": resolved_id,
                "status": ValidationJobStatus.PENDING.value,
                "total": total,
                "processed": 0,
                "validated": 0,
                "failed": 0,
                "progress": 0,
                "failed_records": [],
                "error": None,
                "created_at": isoformat(now),
                "started_at": None,
                "completed_at": None,
                "task_id": None,
                "attempts": 0,
                "rearm_count": 0,
                "redispatch_count": 0,
                "queued_at": isoformat(now),
                "heartbeat_at": None,
                "lease_expires_at": None,
                "cancel_requested": False,
            },
            merge=False,
        )
        try:
            task_id = dispatch(job_id, resolved_id)
        except Exception as exc:
            self.logger.exception(
                "Failed to enqueue validation job",
                extra={"campaigns_job_id": job_id, "campaigns_campaign_id": resolved_id},
            )
            self.store.update(
                JOBS_COLLECTION,
                job_id,
                {
                    "status": ValidationJobStatus.FAILED.value,
                    "error": f"{ENQUEUE_ERROR}: {exc}",
                    "completed_at": isoformat(utcnow()),
                },
            )
            record_validation_job(ValidationJobStatus.FAILED.value)
            raise CampaignProcessingError(
                "Failed to enqueue validation job; please retry later.",
                details={"job_id": job_id},
            ) from exc
        if task_id:
            self.store.update(JOBS_COLLECTION, job_id, {"task_id": task_id})
        self.logger.info(
            "Validation job submitted",
            extra={"campaigns_job_id": job_id, "campaigns_campaign_id": resolved_id, "campaigns_total": total},
        )
        return {"job_id": job_id, "total": total, "status": ValidationJobStatus.PENDING.value}

    def cancel(
        self,
        job_id: str,
        *,
        revoke: Callable[[str], None] | None = None,
        now: datetime | None = None,
    ) -> dict[str, Any]:
        """
        Request cancellation of a job.

        Pending jobs fail immediately; processing jobs are flagged and revoked,
        and the runner stops at its next progress checkpoint. Terminal jobs are
        returned unchanged.
        """

        job = self.get_status(job_id)
        status = job.get("status")
        if status in TERMINAL_STATUSES:
            return job

        now = now or utcnow()
        if status == ValidationJobStatus.PENDING.value:
            self.store.update(
                JOBS_COLLECTION,
                job_id,
                {
                    "status": ValidationJobStatus.FAILED.value,
                    "error": CANCELLED_ERROR,
                    "cancel_requested": True,
                    "cancel_requested_at": isoformat(now),
                    "completed_at": isoformat(now),
                },
            )
            record_validation_job(ValidationJobStatus.FAILED.value)
        else:
            self.store.update(
                JOBS_COLLECTION,
                job_id,
                {"cancel_requested": True, "cancel_requested_at": isoformat(now)},
            )

        task_id = job.get("task_id")
        if revoke is not None and task_id:
            revoke(task_id)
        self.logger.info(
            "Validation job cancellation requested",
            extra={"campaigns_job_id": job_id, "campaigns_status": status},
        )
        return self.get_status(job_id)

    def sweep_stale(
        self,
        dispatch: Dispatch,
        *,
        revoke: Callable[[str], None] | None = None,
        now: datetime | None = None,
    ) -> StaleSweepResult:
        """
        Recover jobs that stopped making progress.

        A ``processing`` job whose heartbeat lease lapsed is re-armed while it
        has run fewer than ``max_job_attempts`` times, and failed after that. A
        ``pending`` job that waited past the queue timeout is sent to the queue
        again; its previous task is revoked first so copies do not pile up.
        """

        now = now or utcnow()
        result = StaleSweepResult()
        for status in ACTIVE_STATUSES:
            for item in self.store.query(JOBS_COLLECTION, [("status", status)]):
                job = item.data
                if not job_is_stale(job, now, self.settings):
                    continue
                if status == ValidationJobStatus.PENDING.value:
                    self._redispatch(item.key, job, dispatch, revoke, now)
                    result.redispatched.append(item.key)
                elif job.get("cancel_requested"):
                    self._fail_stale(item.key, now, error=CANCELLED_ERROR)
                    result.failed.append(item.key)
                elif int(job.get("attempts") or 0) < self.settings.max_job_attempts:
                    self._rearm(item.key, job, dispatch, revoke, now)
                    result.rearmed.append(item.key)
                else:
                    self._fail_stale(item.key, now)
                    result.failed.append(item.key)
        if result.rearmed or result.failed or result.redispatched:
            self.logger.warning(
                "Stale validation jobs swept",
                extra={
                    "campaigns_rearmed": result.rearmed,
                    "campaigns_failed": result.failed,
                    "campaigns_redispatched": result.redispatched,
                },
            )
        return result

    def _send(
        self,
        job_id: str,
        job: Mapping[str, Any],
        dispatch: Dispatch,
        revoke: Callable[[str], None] | None,
    ) -> None:
        previous_task = job.get("task_id")
        if revoke is not None and previous_task:
            revoke(previous_task)
        task_id = dispatch(job_id, job.get("campaign_id"))
        if task_id:
            self.store.update(JOBS_COLLECTION, job_id, {"task_id": task_id})

    def _rearm(
        self,
        job_id: str,
        job: Mapping[str, Any],
        dispatch: Dispatch,
        revoke: Callable[[str], None] | None,
        now: datetime,
    ) -> None:
        self.store.update(
            JOBS_COLLECTION,
            job_id,
            {
                "status": ValidationJobStatus.PENDING.value,
                "rearmed_at": isoformat(now),
                "rearm_count": int(job.get("rearm_count") or 0) + 1,
                "queued_at": isoformat(now),
                "processed": 0,
                "validated": 0,
                "failed": 0,
                "progress": 0,
                "failed_records": [],
                "heartbeat_at": None,
                "lease_expires_at": None,
            },
        )
        record_stale_job("rearmed")
        self._send(job_id, job, dispatch, revoke)

    def _redispatch(
        self,
        job_id: str,
        job: Mapping[str, Any],
        dispatch: Dispatch,
        revoke: Callable[[str], None] | None,
        now: datetime,
    ) -> None:
        self.store.update(
            JOBS_COLLECTION,
            job_id,
            {
                "queued_at": isoformat(now),
                "redispatch_count": int(job.get("redispatch_count") or 0) + 1,
            },
        )
        record_stale_job("redispatched")
        self._send(job_id, job, dispatch, revoke)

    def _fail_stale(self, job_id: str, now: datetime, *, error: str = HEARTBEAT_LOST_ERROR) -> None:
        self.store.update(
            JOBS_COLLECTION,
            job_id,
            {
                "status": ValidationJobStatus.FAILED.value,
                "error": error,
                "completed_at": isoformat(now),
            },
        )
        record_stale_job("failed")
        record_validation_job(ValidationJobStatus.FAILED.value)


class _RunStopped(Exception):
    """Internal signal: the run was cancelled or superseded at a checkpoint."""


class ValidationRunner:
    """Executes one validation run for a job document."""

    def __init__(
        self,
        store: DocumentStore,
        client: CustomerLookupClient,
        settings: ValidationSettings | None = None,
        *,
        sleep_fn: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = utcnow,
        logger: logging.Logger | None = None,
    ) -> None:
        self.store = store
        self.client = client
        self.settings = settings or ValidationSettings()
        self.sleep = sleep_fn
        self.clock = clock
        self.logger = logger or logging.getLogger(__name__)

    def run(self, job_id: str, campaign_id: str | None = None) -> dict[str, Any] | None:
        """
        Process every record of the job's campaign.

        Returns the final job document, or ``None`` when the job does not exist.
        An unexpected error marks the job ``failed``; if even that write fails
        the error is only logged.
        """

        job = self.store.get(JOBS_COLLECTION, job_id)
        if job is None:
            self.logger.warning("Validation job not found", extra={"campaigns_job_id": job_id})
            return None
        if job.get("status") in TERMINAL_STATUSES:
            self.logger.info(
                "Validation job already finished; skipping run",
                extra={"campaigns_job_id": job_id, "campaigns_status": job.get("status")},
            )
            return job
        if job.get("status") == ValidationJobStatus.PROCESSING.value and not lease_expired(
            job, self.clock(), self.settings.lease_seconds
        ):
            # A second delivery of the task while another run holds the lease
            self.logger.warning(
                "Validation job is already running; skipping duplicate run",
                extra={"campaigns_job_id": job_id, "campaigns_attempt": job.get("attempts")},
            )
            return job

        campaign_id = campaign_id or job.get("campaign_id")
        attempt = int(job.get("attempts") or 0) + 1
        try:
            self._process(job_id, campaign_id, attempt)
        except Exception as exc:
            self.logger.exception(
                "Validation job failed",
                extra={"campaigns_job_id": job_id, "campaigns_campaign_id": campaign_id},
            )
            try:
                self._finish(job_id, attempt, ValidationJobStatus.FAILED, {"error": str(exc)})
            except Exception:
                self.logger.exception(
                    "Unable to mark validation job as failed",
                    extra={"campaigns_job_id": job_id},
                )
        return self.store.get(JOBS_COLLECTION, job_id)

    # Internal helpers -----------------------------------------------------------

    def _process(self, job_id: str, campaign_id: str, attempt: int) -> None:
        now = self.clock()
        self.store.update(
            JOBS_COLLECTION,
            job_id,
            {
                "status": ValidationJobStatus.PROCESSING.value,
                "started_at": isoformat(now),
                "attempts": attempt,
                "processed": 0,
                "validated": 0,
                "failed": 0,
                "progress": 0,
                "failed_records": [],
                "error": None,
                "heartbeat_at": isoformat(now),
                "lease_expires_at": self.settings.lease_until(now),
            },
        )

        try:
            token = self.client.get_token()
        except CustomerLookupError as exc:
            self.logger.warning(
                "Customer API token unavailable",
                extra={"campaigns_job_id": job_id, "campaigns_error": str(exc)},
            )
            self._finish(job_id, attempt, ValidationJobStatus.FAILED, {"error": f"{TOKEN_ERROR_PREFIX}{exc}"})
            return

        records = self.store.query(RECORDS_COLLECTION, [("campaign_id_ref", campaign_id)])
        total = len(records)
        if total == 0:
            self._finish(job_id, attempt, ValidationJobStatus.FAILED, {"error": NO_RECORDS_ERROR})
            return
        self.store.update(JOBS_COLLECTION, job_id, {"total": total})

        writer = BatchedWriter(self.store, max_batch_size=self.settings.max_batch_size)
        failures: list[FailureRecord] = []
        processed = validated = failed = 0
        delay = self.settings.inter_request_delay

        try:
            for index, document in enumerate(records, start=1):
                data = document.data
                customer_id = data.get("customer_id")
                row = data.get("excel_row_number") or index
                identity = CustomerData(
                    customer_id=customer_id,
                    campaign_id=data.get("campaign_id"),
                    campaign_name=data.get("campaign_name"),
                    uploaded_by=data.get("uploaded_by"),
                )

                if not customer_id:
                    failures.append(FailureRecord.missing_customer_id(row, identity))
                    failed += 1
                else:
                    result = self._lookup(str(customer_id), token)
                    if result.success and result.phone:
                        writer.update(
                            RECORDS_COLLECTION,
                            document.key,
                            {
                                "phone_number": result.phone,
                                "api_validated": True,
                                "api_validated_at": isoformat(self.clock()),
                                "customer_data": result.payload,
                            },
                        )
                        validated += 1
                    elif result.success:
                        failures.append(FailureRecord.phone_not_available(row, identity))
                        failed += 1
                    else:
                        failures.append(FailureRecord.customer_lookup(row, result.error, identity))
                        failed += 1

                processed += 1
                if processed % self.settings.progress_interval == 0 or processed == total:
                    self._checkpoint(job_id, attempt, writer, total, processed, validated, failed, failures)

                if customer_id and delay > 0 and index < total:
                    self.sleep(delay)
            writer.flush()
        except _RunStopped:
            return
        except Exception:
            self._save_partial(job_id, attempt, writer, total, processed, failed, failures)
            raise
        finished_at = self.clock()
        CampaignLedgerService(self.store).record_stage(
            campaign_id,
            LedgerCounts(
                customers_validated=validated,
                customers_failed=failed,
                invalid_customers_count=failed,
                invalid_customers_data=failures_as_dicts(failures),
                validation_completed_at=isoformat(finished_at),
            ),
        )
        self._finish(
            job_id,
            attempt,
            ValidationJobStatus.COMPLETED,
            {
                "total": total,
                "processed": processed,
                "validated": validated,
                "failed": failed,
                "progress": 100,
                "failed_records": failures_as_dicts(failures),
            },
        )
        self.logger.info(
            "Validation job completed",
            extra={
                "campaigns_job_id": job_id,
                "campaigns_campaign_id": campaign_id,
                "campaigns_validated": validated,
                "campaigns_failed": failed,
            },
        )

    def _save_partial(
        self,
        job_id: str,
        attempt: int,
        writer: BatchedWriter,
        total: int,
        processed: int,
        failed: int,
        failures: list[FailureRecord],
    ) -> None:
        """
        Commit enrichment updates still buffered when a run errors out.

        The job then reports ``validated`` as the number of enrichment updates
        actually committed by this run. Errors here are logged so the original
        failure is the one that reaches the job document.
        """

        pending = writer.pending_count
        try:
            writer.flush()
        except Exception:
            self.logger.exception(
                "Unable to save enriched records after validation error",
                extra={"campaigns_job_id": job_id, "campaigns_pending": pending},
            )
        try:
            job = self.store.get(JOBS_COLLECTION, job_id) or {}
            if self._superseded(job, attempt):
                return
            self.store.update(
                JOBS_COLLECTION,
                job_id,
                {
                    "processed": processed,
                    "validated": writer.stats.operations_committed,
                    "failed": failed,
                    "progress": compute_progress(processed, total),
                    "failed_records": failures_as_dicts(failures),
                },
            )
        except Exception:
            self.logger.exception(
                "Unable to record partial validation progress",
                extra={"campaigns_job_id": job_id},
            )

    def _lookup(self, customer_id: str, token: str) -> LookupResult:
        """Look up one customer, retrying rate-limited responses with backoff."""

        max_attempts = self.settings.lookup_max_attempts
        for attempt in range(1, max_attempts + 1):
            started = time.monotonic()
            result = self.client.lookup(customer_id, token)
            elapsed = time.monotonic() - started
            if result.rate_limited and attempt < max_attempts:
                record_lookup("rate_limited", elapsed)
                wait = self.settings.backoff_for(attempt)
                self.logger.warning(
                    "Customer API rate limited; backing off",
                    extra={
                        "campaigns_customer_id": customer_id,
                        "campaigns_attempt": attempt,
                        "campaigns_wait_seconds": wait,
                    },
                )
                self.sleep(wait)
                continue
            record_lookup("validated" if result.success and result.phone else "failed", elapsed)
            return result
        return result

    def _checkpoint(
        self,
        job_id: str,
        attempt: int,
        writer: BatchedWriter,
        total: int,
        processed: int,
        validated: int,
        failed: int,
        failures: list[FailureRecord],
    ) -> None:
        job = self.store.get(JOBS_COLLECTION, job_id) or {}
        if self._superseded(job, attempt):
            writer.flush()
            self.logger.warning(
                "Validation run superseded; stopping",
                extra={"campaigns_job_id": job_id, "campaigns_attempt": attempt},
            )
            raise _RunStopped()

        now = self.clock()
        progress = {
            "processed": processed,
            "validated": validated,
            "failed": failed,
            "progress": compute_progress(processed, total),
            "failed_records": failures_as_dicts(failures),
            "heartbeat_at": isoformat(now),
            "lease_expires_at": self.settings.lease_until(now),
        }
        if job.get("cancel_requested"):
            writer.flush()
            self._finish(job_id, attempt, ValidationJobStatus.FAILED, {**progress, "error": CANCELLED_ERROR})
            self.logger.info("Validation job cancelled", extra={"campaigns_job_id": job_id})
            raise _RunStopped()
        self.store.update(JOBS_COLLECTION, job_id, progress)

    @staticmethod
    def _superseded(job: Mapping[str, Any], attempt: int) -> bool:
        if job.get("status") != ValidationJobStatus.PROCESSING.value:
            return True
        return int(job.get("attempts") or 0) != attempt

    def _finish(
        self,
        job_id: str,
        attempt: int,
        status: ValidationJobStatus,
        changes: Mapping[str, Any],
    ) -> None:
        job = self.store.get(JOBS_COLLECTION, job_id)
        if job is None or job.get("status") in TERMINAL_STATUSES or self._superseded(job, attempt):
            return
        self.store.update(
            JOBS_COLLECTION,
            job_id,
            {**dict(changes), "status": status.value, "completed_at": isoformat(self.clock())},
        )
        record_validation_job(status.value)
