"""
``flask campaigns`` commands for operators.

Every command runs inside the application context and prints JSON so it can be
piped into other tooling.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional

import click
from celery import Celery
from celery.exceptions import TimeoutError as CeleryTimeoutError
from flask import current_app
from flask.cli import AppGroup, with_appcontext

from . import operations
from .adapters.ccai import CcaiAPIError
from .adapters.spreadsheet import build_sample_workbook
from .celery_app import DEFAULT_QUEUE_NAME, get_celery_app
from .errors import CampaignError
from .tasks import HEALTHCHECK_TASK_NAME
from .utils import CAMPAIGNS_EXTENSION_KEY

_SUMMARY_KEYS = (
    "CAMPAIGNS_WORKER_ENABLED",
    "CAMPAIGNS_MAX_BATCH_SIZE",
    "CAMPAIGNS_VALIDATION_REQUESTS_PER_SECOND",
    "CAMPAIGNS_LOOKUP_MAX_ATTEMPTS",
    "CAMPAIGNS_PROGRESS_INTERVAL",
    "CAMPAIGNS_JOB_LEASE_SECONDS",
    "CAMPAIGNS_JOB_QUEUE_TIMEOUT_SECONDS",
    "CAMPAIGNS_JOB_MAX_ATTEMPTS",
    "CAMPAIGNS_STALE_SWEEP_SECONDS",
    "CAMPAIGNS_SINGLE_FLIGHT_VALIDATION",
)


def _echo_json(payload: Any) -> None:
    click.echo(json.dumps(payload, indent=2, default=str))


def _fail(exc: Exception) -> click.ClickException:
    if isinstance(exc, (CampaignError, CcaiAPIError)):
        return click.ClickException(json.dumps(exc.as_dict(), default=str))
    return click.ClickException(str(exc))


@click.group(name="campaigns", cls=AppGroup, invoke_without_command=True)
@with_appcontext
@click.pass_context
def campaigns_cli(ctx):
    """
    Campaign onboarding commands.

    Shows the active pipeline configuration when invoked without a subcommand.
    """
    if ctx.invoked_subcommand is None:
        click.echo("Campaign pipeline configuration:")
        for key in _SUMMARY_KEYS:
            click.echo(f"  {key} = {current_app.config.get(key)}")


@campaigns_cli.command("ingest")
@click.option("--campaign-id", required=True, help="Campaign the spreadsheet belongs to.")
@click.option(
    "--file",
    "file_path",
    required=True,
    type=click.Path(path_type=Path, exists=True, dir_okay=False),
    help="Spreadsheet (.xlsx, .xlsm or .csv) to ingest.",
)
@click.option("--dnc", is_flag=True, help="Flag every record as do-not-call.")
@click.option("--uploaded-by", default=None, help="Operator recorded on the upload.")
def ingest_command(campaign_id: str, file_path: Path, dnc: bool, uploaded_by: Optional[str]):
    """Ingest a spreadsheet for a campaign."""
    try:
        summary = operations.ingest(
            current_app,
            campaign_id,
            file_path.read_bytes(),
            file_path.name,
            do_not_call=dnc,
            uploaded_by=uploaded_by,
        )
    except CampaignError as exc:
        raise _fail(exc) from exc
    _echo_json(summary.as_dict())


@campaigns_cli.command("validate")
@click.argument("campaign_id")
@click.option(
    "--inline/--no-inline",
    default=False,
    help="Run inline within the CLI process instead of queueing via Celery.",
)
def validate_command(campaign_id: str, inline: bool):
    """Start customer validation for a campaign."""
    try:
        if inline:
            payload = operations.run_validation_inline(current_app, campaign_id)
        else:
            payload = operations.submit_validation(current_app, campaign_id)
    except CampaignError as exc:
        raise _fail(exc) from exc
    _echo_json(payload)


@campaigns_cli.command("status")
@click.argument("job_id")
def status_command(job_id: str):
    """Print a validation job snapshot."""
    try:
        _echo_json(operations.get_validation_status(current_app, job_id))
    except CampaignError as exc:
        raise _fail(exc) from exc


@campaigns_cli.command("cancel")
@click.argument("job_id")
def cancel_command(job_id: str):
    """Cancel a pending or processing validation job."""
    try:
        _echo_json(operations.cancel_validation(current_app, job_id))
    except CampaignError as exc:
        raise _fail(exc) from exc


@campaigns_cli.command("sweep-stale")
def sweep_stale_command():
    """Re-arm or fail validation jobs whose worker lease expired."""
    _echo_json(operations.sweep_stale_jobs(current_app).as_dict())


@campaigns_cli.command("export")
@click.argument("campaign_id")
@click.option("--keep-existing", is_flag=True, help="Do not delete the dialer campaign's current contacts.")
def export_command(campaign_id: str, keep_existing: bool):
    """Upload validated records to the dialer."""
    try:
        summary = operations.export(current_app, campaign_id, clear_existing=not keep_existing)
    except (CampaignError, CcaiAPIError) as exc:
        raise _fail(exc) from exc
    _echo_json(summary.as_dict())


@campaigns_cli.command("sample")
@click.argument("output", type=click.Path(path_type=Path, dir_okay=False))
def sample_command(output: Path):
    """Write the sample upload workbook to OUTPUT."""
    output.write_bytes(build_sample_workbook())
    click.echo(f"Sample workbook written to {output}")


def _resolve_celery() -> Celery:
    celery_app = get_celery_app(current_app)
    if celery_app is None:
        raise click.ClickException(
            "Campaign Celery app is unavailable. Ensure init_campaigns ran before using worker commands."
        )
    return celery_app


@campaigns_cli.group(name="worker")
@with_appcontext
def worker_group():
    """Manage the validation background worker."""
    state = current_app.extensions.get(CAMPAIGNS_EXTENSION_KEY, {})
    if not state.get("worker_enabled") and not current_app.config.get("CAMPAIGNS_WORKER_ENABLED"):
        click.echo(
            "Warning: CAMPAIGNS_WORKER_ENABLED is false. Commands will still run, "
            "but enable the flag to surface accurate health status.",
            err=True,
        )


@worker_group.command("run")
@click.option("--loglevel", default="info", show_default=True)
@click.option("--concurrency", type=int, help="Number of worker processes/threads.")
@click.option("--pool", type=str, help="Celery pool implementation (e.g., 'prefork', 'solo', 'threads').")
@click.option("--queues", default=DEFAULT_QUEUE_NAME, show_default=True, help="Comma-separated queue list to consume.")
@click.option("--beat/--no-beat", default=False, help="Embed the beat scheduler that runs the stale-job sweep.")
def worker_run(loglevel: str, concurrency: Optional[int], pool: Optional[str], queues: str, beat: bool):
    """Start the Celery worker in the current process."""
    celery_app = _resolve_celery()
    state = current_app.extensions.get(CAMPAIGNS_EXTENSION_KEY)
    if state is not None:
        state["worker_enabled"] = True

    argv = ["worker", "--loglevel", loglevel, "-Q", queues]
    if concurrency:
        argv.extend(["--concurrency", str(concurrency)])
    if pool:
        argv.extend(["--pool", pool])
    if beat:
        argv.append("--beat")

    pool_msg = f", pool: {pool}" if pool else ""
    click.echo(f"Starting campaign worker (queues: {queues}, loglevel: {loglevel}{pool_msg})")
    try:
        celery_app.worker_main(argv=argv)
    except KeyboardInterrupt:
        click.echo("Worker shutdown requested. Exiting...")


@worker_group.command("ping")
@click.option("--timeout", default=10.0, show_default=True, help="Seconds to wait for a response.")
def worker_ping(timeout: float):
    """Validate worker connectivity by executing the heartbeat task."""
    celery_app = _resolve_celery()
    task = celery_app.tasks.get(HEALTHCHECK_TASK_NAME)
    if task is None:
        raise click.ClickException(f"Heartbeat task '{HEALTHCHECK_TASK_NAME}' is not registered.")

    result = task.apply_async()
    try:
        payload = result.get(timeout=timeout)
    except CeleryTimeoutError as exc:
        raise click.ClickException(f"Worker did not respond within {timeout}s") from exc
    except Exception as exc:  # pragma: no cover - surfacing unexpected errors
        raise click.ClickException(f"Worker ping failed: {exc}") from exc

    _echo_json(payload)
