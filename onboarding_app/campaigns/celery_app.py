"""
Celery configuration for the campaign validation worker.

Defaults to the SQLite transport so local development and tests run without
Redis. Broker, backend and any other Celery option can be overridden from the
Flask config.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Mapping

from celery import Celery
from flask import Flask
from kombu import Queue

from .utils import CAMPAIGNS_EXTENSION_KEY

DEFAULT_QUEUE_NAME = "campaigns"
DEFAULT_SQLITE_FILENAME = "celery.sqlite"
SWEEP_TASK_NAME = "campaigns.validation.sweep_stale"


def _configure_quiet_loggers(app: Flask) -> None:
    """Keep SQLAlchemy and Celery worker-state chatter out of task logs."""
    if not app.config.get("SQLALCHEMY_ECHO", False):
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("celery.worker.strategy").setLevel(logging.WARNING)


def _normalize_sqlite_path(app: Flask) -> Path:
    """
    Path of the SQLite database behind the default broker and result backend.

    ``CELERY_SQLITE_PATH`` overrides it; relative values resolve against the
    instance folder, which is created if needed.
    """
    configured = app.config.get("CELERY_SQLITE_PATH")
    if configured:
        sqlite_path = Path(configured)
        if not sqlite_path.is_absolute():
            sqlite_path = Path(app.instance_path) / sqlite_path
    else:
        sqlite_path = Path(app.instance_path) / DEFAULT_SQLITE_FILENAME

    sqlite_path.parent.mkdir(parents=True, exist_ok=True)
    return sqlite_path


def _determine_connection_urls(app: Flask) -> tuple[str, str]:
    """Return ``(broker_url, result_backend)``, defaulting to SQLite."""
    broker_url = app.config.get("CELERY_BROKER_URL")
    result_backend = app.config.get("CELERY_RESULT_BACKEND")

    if broker_url and result_backend:
        return broker_url, result_backend

    # Celery expects forward slashes even on Windows.
    normalized = _normalize_sqlite_path(app).as_posix()
    return (
        broker_url or f"sqla+sqlite:///{normalized}",
        result_backend or f"db+sqlite:///{normalized}",
    )


def _load_extra_conf(app: Flask) -> Mapping[str, Any] | None:
    extra_conf: Mapping[str, Any] | str | None = app.config.get("CELERY_CONFIG")
    if isinstance(extra_conf, str):
        try:
            extra_conf = json.loads(extra_conf)
        except json.JSONDecodeError:
            app.logger.warning("CELERY_CONFIG is not valid JSON; ignoring value.", exc_info=True)
            return None
    return extra_conf


def _beat_schedule(app: Flask) -> dict[str, Any]:
    interval = int(app.config.get("CAMPAIGNS_STALE_SWEEP_SECONDS", 0) or 0)
    if interval <= 0:
        return {}
    return {
        "campaigns-sweep-stale-validation-jobs": {
            "task": SWEEP_TASK_NAME,
            "schedule": float(interval),
            "options": {"queue": DEFAULT_QUEUE_NAME},
        }
    }


def create_celery_app(app: Flask) -> Celery:
    """Create a Celery instance bound to ``app`` whose tasks run in its context."""
    broker_url, result_backend = _determine_connection_urls(app)
    celery_app = Celery(
        app.import_name,
        broker=broker_url,
        backend=result_backend,
        include=("onboarding_app.campaigns.tasks",),
    )

    celery_app.conf.update(
        task_default_queue=DEFAULT_QUEUE_NAME,
        task_queues=[Queue(DEFAULT_QUEUE_NAME)],
        task_default_exchange=DEFAULT_QUEUE_NAME,
        task_default_routing_key=DEFAULT_QUEUE_NAME,
        task_acks_late=True,
        worker_prefetch_multiplier=1,
        task_track_started=True,
        result_extended=True,
        broker_connection_retry_on_startup=True,
        task_time_limit=app.config.get("CAMPAIGNS_TASK_TIME_LIMIT"),
        task_soft_time_limit=app.config.get("CAMPAIGNS_TASK_SOFT_TIME_LIMIT"),
        beat_schedule=_beat_schedule(app),
        worker_log_format="[%(asctime)s: %(levelname)s/%(processName)s] %(message)s",
        worker_task_log_format="[%(asctime)s: %(levelname)s/%(processName)s][%(task_name)s(%(task_id)s)] %(message)s",
        worker_hijack_root_logger=False,
    )

    extra_conf = _load_extra_conf(app)
    app.logger.info(
        "Campaign Celery configuration resolved",
        extra={
            "campaigns_celery_extra_conf": extra_conf,
            "campaigns_celery_broker_url": broker_url,
            "campaigns_celery_result_backend": result_backend,
            "campaigns_worker_enabled": app.config.get("CAMPAIGNS_WORKER_ENABLED"),
        },
    )
    if extra_conf:
        celery_app.conf.update(extra_conf)

    _configure_quiet_loggers(app)

    class FlaskContextTask(celery_app.Task):  # type: ignore[misc]
        """Run Celery tasks inside a Flask application context."""

        def __call__(self, *args, **kwargs):
            with app.app_context():
                return super().__call__(*args, **kwargs)

    celery_app.Task = FlaskContextTask  # type: ignore[assignment]
    celery_app.loader.import_default_modules()
    return celery_app


def ensure_celery_app(app: Flask, state: dict[str, Any]) -> Celery:
    """Return (and cache) the Celery instance inside the campaigns extension state."""
    celery_app: Celery | None = state.get("celery_app")
    if celery_app is None:
        celery_app = create_celery_app(app)
        state["celery_app"] = celery_app
    return celery_app


def get_celery_app(app: Flask) -> Celery | None:
    state: dict[str, Any] | None = app.extensions.get(CAMPAIGNS_EXTENSION_KEY)  # type: ignore[arg-type]
    if not state:
        return None
    celery_app: Celery | None = state.get("celery_app")
    if celery_app is None:
        celery_app = ensure_celery_app(app, state)
    return celery_app


def is_eager(celery_app: Celery | None) -> bool:
    return celery_app is not None and celery_app.conf.task_always_eager is True
