"""
Application-bound entry points shared by the HTTP views and the CLI.

Each helper resolves stores, clients and settings from the Flask app and
delegates to the pipeline.
"""

from __future__ import annotations

from typing import Any

from flask import Flask

from onboarding_app.stores import DocumentStore

from .adapters.ccai import CcaiClient, create_ccai_client
from .adapters.customer_api import create_customer_lookup_client
from .celery_app import get_celery_app
from .errors import CampaignProcessingError
from .pipeline import (
    DEFAULT_BUCKET,
    DEFAULT_MAX_BATCH_SIZE,
    CampaignFile,
    ExportSummary,
    IngestSummary,
    StaleSweepResult,
    ValidationJobService,
    ValidationRunner,
    ValidationSettings,
    export_to_dialer,
    ingest_spreadsheet,
    open_campaign_file,
)
from .tasks import build_dispatch, build_revoke
from .utils import get_blob_store


def _bucket(app: Flask) -> str:
    return app.config.get("CAMPAIGNS_BLOB_BUCKET") or DEFAULT_BUCKET


def _max_batch_size(app: Flask) -> int:
    return int(app.config.get("CAMPAIGNS_MAX_BATCH_SIZE", DEFAULT_MAX_BATCH_SIZE))


def _require_celery(app: Flask):
    celery_app = get_celery_app(app)
    if celery_app is None:
        raise CampaignProcessingError("Validation worker is not configured.")
    return celery_app


def job_service(app: Flask) -> ValidationJobService:
    return ValidationJobService(DocumentStore(), ValidationSettings.from_config(app.config), logger=app.logger)


def ingest(
    app: Flask,
    campaign_id: Any,
    file_bytes: bytes | None,
    filename: str | None,
    *,
    do_not_call: bool = False,
    uploaded_by: str | None = None,
) -> IngestSummary:
    return ingest_spreadsheet(
        campaign_id,
        file_bytes,
        filename,
        store=DocumentStore(),
        blob_store=get_blob_store(app),
        do_not_call=do_not_call,
        uploaded_by=uploaded_by,
        bucket=_bucket(app),
        max_batch_size=_max_batch_size(app),
        logger=app.logger,
    )


def open_original_file(app: Flask, campaign_id: str) -> CampaignFile:
    return open_campaign_file(campaign_id, store=DocumentStore(), blob_store=get_blob_store(app), bucket=_bucket(app))


def submit_validation(app: Flask, campaign_id: Any) -> dict[str, Any]:
    """Create a validation job and enqueue it on the Celery worker."""
    return job_service(app).submit(campaign_id, build_dispatch(_require_celery(app)))


def run_validation_inline(app: Flask, campaign_id: Any) -> dict[str, Any] | None:
    """Create a validation job and run it in the current process."""
    store = DocumentStore()
    settings = ValidationSettings.from_config(app.config)
    handle = ValidationJobService(store, settings, logger=app.logger).submit(campaign_id, lambda job_id, _: None)
    runner = ValidationRunner(
        store,
        create_customer_lookup_client(app.config, logger=app.logger),
        settings,
        logger=app.logger,
    )
    return runner.run(handle["job_id"])


def get_validation_status(app: Flask, job_id: str) -> dict[str, Any]:
    return job_service(app).get_status(job_id)


def cancel_validation(app: Flask, job_id: str) -> dict[str, Any]:
    return job_service(app).cancel(job_id, revoke=build_revoke(_require_celery(app)))


def sweep_stale_jobs(app: Flask) -> StaleSweepResult:
    celery_app = _require_celery(app)
    return job_service(app).sweep_stale(build_dispatch(celery_app), revoke=build_revoke(celery_app))


def dialer_client(app: Flask) -> CcaiClient:
    return create_ccai_client(app.config, logger=app.logger)


def export(app: Flask, campaign_id: Any, *, clear_existing: bool = True) -> ExportSummary:
    return export_to_dialer(
        campaign_id,
        store=DocumentStore(),
        client=dialer_client(app),
        clear_existing=clear_existing,
        max_batch_size=_max_batch_size(app),
        logger=app.logger,
    )
