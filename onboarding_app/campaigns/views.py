"""
Campaign onboarding and dialer pass-through endpoints.
"""

from __future__ import annotations

import io
from http import HTTPStatus
from typing import Any, Mapping

from celery.exceptions import TimeoutError as CeleryTimeoutError
from flask import Blueprint, current_app, jsonify, request, send_file

from onboarding_app.stores import DocumentStore

from . import operations
from .adapters.ccai import CcaiAPIError, CcaiConfigError
from .adapters.spreadsheet import SAMPLE_FILENAME, XLSX_MIMETYPE, build_sample_workbook
from .celery_app import DEFAULT_QUEUE_NAME, get_celery_app
from .errors import CampaignError, CampaignRequestError
from .pipeline import CampaignLedgerService, DialerCampaignSync
from .tasks import HEALTHCHECK_TASK_NAME
from .utils import CAMPAIGNS_EXTENSION_KEY

campaigns_blueprint = Blueprint("campaigns", __name__, url_prefix="/api/campaigns")
dialer_blueprint = Blueprint("dialer", __name__, url_prefix="/api/ccai")

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _json_error(message: str, status: HTTPStatus, **details: Any):
    payload: dict[str, Any] = {"error": message}
    payload.update(details)
    return jsonify(payload), status


def _handle_campaign_error(exc: CampaignError):
    return jsonify(exc.as_dict()), exc.http_status


def _handle_dialer_error(exc: CcaiAPIError):
    if isinstance(exc, CcaiConfigError):
        status = HTTPStatus.INTERNAL_SERVER_ERROR
    elif exc.status_code is None:
        status = HTTPStatus.SERVICE_UNAVAILABLE
    else:
        status = exc.status_code
    return jsonify(exc.as_dict()), status


for _blueprint in (campaigns_blueprint, dialer_blueprint):
    _blueprint.register_error_handler(CampaignError, _handle_campaign_error)
    _blueprint.register_error_handler(CcaiAPIError, _handle_dialer_error)


def _request_payload() -> Mapping[str, Any]:
    if request.is_json:
        return request.get_json(silent=True) or {}
    return request.form


def _field(payload: Mapping[str, Any], *names: str) -> Any:
    """First non-empty value among ``names``; callers pass snake_case then camelCase."""
    for name in names:
        value = payload.get(name)
        if value not in (None, ""):
            return value
    return None


def _flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in _TRUE_VALUES


# Campaign onboarding ----------------------------------------------------------------


@campaigns_blueprint.get("/health")
def campaigns_healthcheck():
    state = current_app.extensions.get(CAMPAIGNS_EXTENSION_KEY, {})
    return (
        jsonify(
            {
                "status": "ok",
                "worker_enabled": state.get("worker_enabled", False),
                "queue": DEFAULT_QUEUE_NAME,
            }
        ),
        200,
    )


@campaigns_blueprint.get("/worker_health")
def campaigns_worker_health():
    """Validate worker availability via the heartbeat task."""
    state = current_app.extensions.get(CAMPAIGNS_EXTENSION_KEY, {})
    worker_enabled = state.get("worker_enabled", False)
    timeout_seconds = float(request.args.get("timeout", 5))
    payload: dict[str, Any] = {
        "worker_enabled": worker_enabled,
        "queue": DEFAULT_QUEUE_NAME,
        "timeout_seconds": timeout_seconds,
    }

    if not worker_enabled:
        payload["status"] = "disabled"
        payload["message"] = "Worker flag disabled; start the worker or set CAMPAIGNS_WORKER_ENABLED=true."
        return jsonify(payload), 200

    celery_app = get_celery_app(current_app)
    if celery_app is None:
        payload["status"] = "error"
        payload["error"] = "celery_app_unavailable"
        return jsonify(payload), 500

    task = celery_app.tasks.get(HEALTHCHECK_TASK_NAME)
    if task is None:
        payload["status"] = "error"
        payload["error"] = "heartbeat_task_missing"
        return jsonify(payload), 500

    result = task.apply_async()
    try:
        payload["heartbeat"] = result.get(timeout=timeout_seconds)
        payload["status"] = "ok"
        return jsonify(payload), 200
    except CeleryTimeoutError:
        payload["status"] = "timeout"
        return jsonify(payload), 504
    except Exception as exc:  # pragma: no cover - surfaced to the caller
        current_app.logger.exception("Campaign worker health check failed.", exc_info=exc)
        payload["status"] = "error"
        payload["error"] = str(exc)
        return jsonify(payload), 500


@campaigns_blueprint.get("/download-sample")
def download_sample():
    return send_file(
        io.BytesIO(build_sample_workbook()),
        mimetype=XLSX_MIMETYPE,
        as_attachment=True,
        download_name=SAMPLE_FILENAME,
    )


@campaigns_blueprint.post("/store-selection")
def store_selection():
    payload = _request_payload()
    selection = CampaignLedgerService(DocumentStore()).select_campaign(
        _field(payload, "campaign_id", "campaignId"),
        _field(payload, "campaign_name", "campaignName"),
        dnc_enabled=_flag(_field(payload, "dnc_enabled", "dncEnabled")),
    )
    return jsonify({"success": True, "message": "Campaign selection stored", "selection": selection}), 200


@campaigns_blueprint.post("/upload-excel")
def upload_excel():
    upload = request.files.get("file")
    if upload is None or not upload.filename:
        return _json_error("No file uploaded.", HTTPStatus.BAD_REQUEST)

    form = request.form
    summary = operations.ingest(
        current_app,
        _field(form, "campaign_id", "campaignId"),
        upload.read(),
        upload.filename,
        do_not_call=_flag(_field(form, "dnc", "do_not_call", "doNotCall")),
        uploaded_by=_field(form, "uploaded_by", "uploadedBy"),
    )
    return jsonify(summary.as_dict()), 200


@campaigns_blueprint.get("/uploads")
def list_uploads():
    uploads = CampaignLedgerService(DocumentStore()).list_completed_uploads()
    return jsonify({"uploads": uploads, "total": len(uploads)}), 200


@campaigns_blueprint.get("/<campaign_id>/download")
def download_campaign_file(campaign_id: str):
    campaign_file = operations.open_original_file(current_app, campaign_id)
    return send_file(
        campaign_file.stream,
        as_attachment=True,
        download_name=campaign_file.download_name,
    )


@campaigns_blueprint.post("/validate-customers")
def validate_customers():
    payload = _request_payload()
    campaign_id = _field(payload, "campaign_id", "campaignId")
    if not campaign_id:
        return _json_error("Campaign ID is required", HTTPStatus.BAD_REQUEST)
    handle = operations.submit_validation(current_app, campaign_id)
    return jsonify({"success": True, "message": "Validation job started", **handle}), HTTPStatus.ACCEPTED


@campaigns_blueprint.get("/validate-customers/status/<job_id>")
def validation_status(job_id: str):
    return jsonify(operations.get_validation_status(current_app, job_id)), 200


@campaigns_blueprint.post("/validate-customers/<job_id>/cancel")
def cancel_validation(job_id: str):
    return jsonify(operations.cancel_validation(current_app, job_id)), 200


@campaigns_blueprint.post("/upload-to-ccai")
def upload_to_ccai():
    payload = _request_payload()
    campaign_id = _field(payload, "campaign_id", "campaignId")
    if not campaign_id:
        raise CampaignRequestError("Campaign ID is required")
    clear_value = _field(payload, "clear_existing", "clearExisting")
    clear_existing = True if clear_value is None else _flag(clear_value)
    summary = operations.export(current_app, campaign_id, clear_existing=clear_existing)
    return jsonify({"success": True, **summary.as_dict()}), 200


# Dialer pass-through ----------------------------------------------------------------


def _dialer_sync() -> DialerCampaignSync:
    return DialerCampaignSync(DocumentStore(), operations.dialer_client(current_app), logger=current_app.logger)


@dialer_blueprint.get("/campaigns")
def list_dialer_campaigns():
    return jsonify(_dialer_sync().sync_all().as_dict("campaigns")), 200


@dialer_blueprint.get("/campaigns/<campaign_id>")
def get_dialer_campaign(campaign_id: str):
    return jsonify(_dialer_sync().sync_one(campaign_id).as_dict("campaign")), 200


@dialer_blueprint.get("/campaigns/<campaign_id>/summary")
def dialer_campaign_summary(campaign_id: str):
    return jsonify(_dialer_sync().summary(campaign_id)), 200


@dialer_blueprint.get("/campaigns/<campaign_id>/contacts")
def list_dialer_contacts(campaign_id: str):
    return jsonify(operations.dialer_client(current_app).list_contacts(campaign_id)), 200


@dialer_blueprint.post("/campaigns/<campaign_id>/contacts")
def add_dialer_contact(campaign_id: str):
    contact = request.get_json(silent=True) or {}
    return jsonify(operations.dialer_client(current_app).add_contact(campaign_id, contact)), 201


@dialer_blueprint.patch("/campaigns/<campaign_id>/contact")
def update_dialer_contact(campaign_id: str):
    contact = request.get_json(silent=True) or {}
    return jsonify(operations.dialer_client(current_app).update_contact(campaign_id, contact)), 200


@dialer_blueprint.delete("/campaigns/<campaign_id>/contact/<contact_id>")
def delete_dialer_contact(campaign_id: str, contact_id: str):
    result = operations.dialer_client(current_app).delete_contact(campaign_id, contact_id)
    return jsonify({"success": True, "result": result}), 200


@dialer_blueprint.get("/campaigns/<campaign_id>/jobs/<job_id>")
def dialer_import_job(campaign_id: str, job_id: str):
    return jsonify(operations.dialer_client(current_app).get_import_job(campaign_id, job_id)), 200
