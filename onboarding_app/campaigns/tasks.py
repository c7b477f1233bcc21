"""
Campaign Celery tasks.

``campaigns.validation.run`` is the body of a validation job; the sweep task
re-arms or fails jobs whose worker stopped heart-beating and re-queues
jobs left waiting past the queue timeout.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from celery import Celery, shared_task
from flask import current_app

from onboarding_app.stores import DocumentStore

from .adapters.customer_api import create_customer_lookup_client
from .celery_app import SWEEP_TASK_NAME, is_eager
from .pipeline.validation import Dispatch, ValidationJobService, ValidationRunner, ValidationSettings

HEALTHCHECK_TASK_NAME = "campaigns.healthcheck"
VALIDATION_TASK_NAME = "campaigns.validation.run"


@shared_task(name=HEALTHCHECK_TASK_NAME, bind=True)
def campaigns_healthcheck(self) -> dict[str, Any]:
    """Heartbeat used by the worker health endpoint and ``worker ping``."""
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "worker_hostname": self.request.hostname,
    }


@shared_task(name=VALIDATION_TASK_NAME, bind=True)
def run_validation_job(self, *, job_id: str, campaign_id: str | None = None) -> dict[str, Any]:
    config = current_app.config
    runner = ValidationRunner(
        DocumentStore(),
        create_customer_lookup_client(config, logger=current_app.logger),
        ValidationSettings.from_config(config),
        logger=current_app.logger,
    )
    job = runner.run(job_id, campaign_id) or {}
    return {
        "job_id": job_id,
        "status": job.get("status"),
        "processed": job.get("processed"),
        "validated": job.get("validated"),
        "failed": job.get("failed"),
    }


@shared_task(name=SWEEP_TASK_NAME, bind=True)
def sweep_stale_validation_jobs(self) -> dict[str, Any]:
    service = ValidationJobService(
        DocumentStore(),
        ValidationSettings.from_config(current_app.config),
        logger=current_app.logger,
    )
    return service.sweep_stale(build_dispatch(self.app), revoke=build_revoke(self.app)).as_dict()


def build_dispatch(celery_app: Celery) -> Dispatch:
    """
    Return a callable that enqueues ``campaigns.validation.run`` and yields the task id.

    In eager mode the registered task is applied directly so the run executes
    in-process; ``send_task`` would bypass eager execution.
    """

    def dispatch(job_id: str, campaign_id: str) -> str | None:
        kwargs = {"job_id": job_id, "campaign_id": campaign_id}
        if is_eager(celery_app):
            result = celery_app.tasks[VALIDATION_TASK_NAME].apply_async(kwargs=kwargs)
        else:
            result = celery_app.send_task(VALIDATION_TASK_NAME, kwargs=kwargs)
        return getattr(result, "id", None)

    return dispatch


def build_revoke(celery_app: Celery):
    """Revoke callable for cancellation; a no-op in eager mode."""

    def revoke(task_id: str) -> None:
        if is_eager(celery_app):
            return
        try:
            celery_app.control.revoke(task_id)
        except Exception:  # pragma: no cover - broker unavailable
            current_app.logger.warning(
                "Unable to revoke validation task",
                extra={"campaigns_task_id": task_id},
                exc_info=True,
            )

    return revoke
