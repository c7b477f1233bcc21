"""
Campaign onboarding feature package.

Registers the campaign and dialer blueprints plus the ``flask campaigns`` CLI,
and keeps the Celery app and blob store in ``app.extensions['campaigns']``.
"""

from __future__ import annotations

from flask import Flask

from .celery_app import ensure_celery_app, get_celery_app
from .cli import campaigns_cli
from .errors import (
    CampaignConflictError,
    CampaignError,
    CampaignNotFoundError,
    CampaignProcessingError,
    CampaignRequestError,
)
from .utils import CAMPAIGNS_EXTENSION_KEY, ensure_extension_state, get_blob_store
from .views import campaigns_blueprint, dialer_blueprint

__all__ = [
    "CAMPAIGNS_EXTENSION_KEY",
    "CampaignConflictError",
    "CampaignError",
    "CampaignNotFoundError",
    "CampaignProcessingError",
    "CampaignRequestError",
    "get_blob_store",
    "get_celery_app",
    "init_campaigns",
]


def _set_cli(app: Flask) -> None:
    # Avoid duplicate registrations when running tests
    if campaigns_cli.name in app.cli.commands:
        app.cli.commands.pop(campaigns_cli.name)
    app.cli.add_command(campaigns_cli)


def init_campaigns(app: Flask) -> None:
    """Mount the campaign blueprints and CLI and build the Celery app."""
    state = ensure_extension_state(app)
    state["worker_enabled"] = bool(app.config.get("CAMPAIGNS_WORKER_ENABLED", False))
    ensure_celery_app(app, state)
    get_blob_store(app)

    for blueprint in (campaigns_blueprint, dialer_blueprint):
        if blueprint.name not in app.blueprints:
            app.register_blueprint(blueprint)
    _set_cli(app)
    app.logger.info(
        "Campaign onboarding initialised",
        extra={"campaigns_worker_enabled": state["worker_enabled"]},
    )
