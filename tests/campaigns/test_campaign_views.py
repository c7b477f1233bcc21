import io
from unittest.mock import Mock

import pytest
from openpyxl import load_workbook

from onboarding_app.campaigns import operations
from onboarding_app.campaigns.adapters.ccai import CcaiAPIError
from onboarding_app.campaigns.pipeline import CAMPAIGNS_COLLECTION, JOBS_COLLECTION, LEDGER_COLLECTION


def _upload(client, content, *, filename="customers.csv", **form):
    data = {"file": (io.BytesIO(content), filename), **form}
    return client.post("/api/campaigns/upload-excel", data=data, content_type="multipart/form-data")


@pytest.fixture
def mock_celery(monkeypatch):
    async_result = Mock()
    async_result.id = "task-1"
    celery_app = Mock()
    celery_app.send_task.return_value = async_result
    monkeypatch.setattr(operations, "get_celery_app", lambda app: celery_app)
    return celery_app


@pytest.fixture
def dialer(monkeypatch, fake_dialer):
    monkeypatch.setattr(operations, "dialer_client", lambda app: fake_dialer)
    return fake_dialer


def test_health_endpoints(client):
    response = client.get("/api/campaigns/health")
    assert response.status_code == 200
    assert response.get_json() == {"status": "ok", "worker_enabled": False, "queue": "campaigns"}

    response = client.get("/api/campaigns/worker_health")
    assert response.status_code == 200
    assert response.get_json()["status"] == "disabled"


def test_worker_health_runs_heartbeat_when_enabled(app, client):
    app.extensions["campaigns"]["worker_enabled"] = True

    response = client.get("/api/campaigns/worker_health?timeout=2")

    assert response.status_code == 200
    payload = response.get_json()
    assert payload["status"] == "ok"
    assert payload["heartbeat"]["status"] == "ok"


def test_download_sample_workbook(client):
    response = client.get("/api/campaigns/download-sample")

    assert response.status_code == 200
    assert response.mimetype == "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    assert "Sample_Customer_Upload.xlsx" in response.headers["Content-Disposition"]
    sheet = load_workbook(io.BytesIO(response.data)).active
    assert sheet["A1"].value == "Customer_Id"


def test_store_selection(client, store):
    response = client.post(
        "/api/campaigns/store-selection",
        json={"campaignId": "42", "campaignName": "Spring", "dncEnabled": True},
    )

    assert response.status_code == 200
    assert response.get_json()["selection"]["campaign_id"] == "42"
    assert store.get(LEDGER_COLLECTION, "42")["dnc_enabled"] is True

    response = client.post("/api/campaigns/store-selection", json={"campaign_id": "undefined"})
    assert response.status_code == 400
    assert response.get_json() == {"error": "Invalid campaign ID"}


def test_upload_requires_file(client):
    response = client.post("/api/campaigns/upload-excel", data={"campaign_id": "camp-1"})

    assert response.status_code == 400
    assert response.get_json() == {"error": "No file uploaded."}


def test_upload_and_download_original(client, customer_csv):
    response = _upload(client, customer_csv, campaignId="camp-1", dnc="true", uploadedBy="ops@example.test")

    assert response.status_code == 200
    payload = response.get_json()
    assert payload["uploaded"] == 3
    assert payload["failed"] == 2
    assert payload["failed_rows"] == [4, 6]
    assert payload["duplicate_count"] == 1
    assert payload["dnc_applied"] is True

    response = client.get("/api/campaigns/camp-1/download")
    assert response.status_code == 200
    assert response.data == customer_csv
    assert "customers.csv" in response.headers["Content-Disposition"]


def test_upload_rejects_bad_extension(client, customer_csv):
    response = _upload(client, customer_csv, filename="customers.pdf", campaign_id="camp-1")

    assert response.status_code == 400
    assert "Unsupported file type" in response.get_json()["error"]


def test_download_unknown_campaign(client):
    response = client.get("/api/campaigns/nope/download")

    assert response.status_code == 404
    assert response.get_json() == {"error": "Campaign not found"}


def test_validate_requires_campaign_id(client):
    response = client.post("/api/campaigns/validate-customers", json={})

    assert response.status_code == 400
    assert response.get_json() == {"error": "Campaign ID is required"}


def test_validate_without_records_is_404(client, mock_celery):
    response = client.post("/api/campaigns/validate-customers", json={"campaignId": "camp-1"})

    assert response.status_code == 404
    mock_celery.send_task.assert_not_called()


def test_validate_queues_job_and_reports_status(client, customer_csv, mock_celery):
    _upload(client, customer_csv, campaign_id="camp-1")

    response = client.post("/api/campaigns/validate-customers", json={"campaign_id": "camp-1"})

    assert response.status_code == 202
    payload = response.get_json()
    assert payload["success"] is True
    assert payload["status"] == "pending"
    assert payload["total"] == 3
    mock_celery.send_task.assert_called_once_with(
        "campaigns.validation.run",
        kwargs={"job_id": payload["job_id"], "campaign_id": "camp-1"},
    )

    status = client.get(f"/api/campaigns/validate-customers/status/{payload['job_id']}")
    assert status.status_code == 200
    assert status.get_json()["status"] == "pending"
    assert status.get_json()["task_id"] == "task-1"

    cancelled = client.post(f"/api/campaigns/validate-customers/{payload['job_id']}/cancel")
    assert cancelled.status_code == 200
    assert cancelled.get_json()["status"] == "failed"
    mock_celery.control.revoke.assert_called_once_with("task-1")


def test_validate_enqueue_failure_returns_500(client, customer_csv, mock_celery, store):
    _upload(client, customer_csv, campaign_id="camp-1")
    mock_celery.send_task.side_effect = ConnectionError("broker down")

    response = client.post("/api/campaigns/validate-customers", json={"campaign_id": "camp-1"})

    assert response.status_code == 500
    job = store.get(JOBS_COLLECTION, response.get_json()["job_id"])
    assert job["status"] == "failed"


def test_validation_status_unknown_job(client):
    response = client.get("/api/campaigns/validate-customers/status/missing")

    assert response.status_code == 404
    assert response.get_json() == {"error": "Job not found"}


def test_validate_runs_eagerly_in_tests(client, customer_csv, monkeypatch, fake_lookup_client):
    lookup = fake_lookup_client()
    monkeypatch.setattr(
        "onboarding_app.campaigns.tasks.create_customer_lookup_client",
        lambda config, logger=None: lookup,
    )
    _upload(client, customer_csv, campaign_id="camp-1")

    response = client.post("/api/campaigns/validate-customers", json={"campaign_id": "camp-1"})

    assert response.status_code == 202
    status = client.get(f"/api/campaigns/validate-customers/status/{response.get_json()['job_id']}").get_json()
    assert status["status"] == "completed"
    assert status["validated"] == 3
    assert status["progress"] == 100
    assert lookup.calls == ["C-100", "C-200", "C-300"]


def test_upload_to_ccai(client, customer_csv, dialer, monkeypatch, fake_lookup_client):
    monkeypatch.setattr(
        "onboarding_app.campaigns.tasks.create_customer_lookup_client",
        lambda config, logger=None: fake_lookup_client(),
    )
    _upload(client, customer_csv, campaign_id="camp-1")
    client.post("/api/campaigns/validate-customers", json={"campaign_id": "camp-1"})

    response = client.post("/api/campaigns/upload-to-ccai", json={"campaignId": "camp-1", "clearExisting": False})

    assert response.status_code == 200
    payload = response.get_json()
    assert payload["success"] is True
    assert payload["uploaded"] == 3
    assert payload["job_id"] == 77
    assert dialer.list_calls == 0

    uploads = client.get("/api/campaigns/uploads").get_json()
    assert uploads["total"] == 1
    assert uploads["uploads"][0]["campaign_id"] == "camp-1"
    assert uploads["uploads"][0]["uploaded_to_ccai"] == 3


def test_upload_to_ccai_requires_campaign(client):
    response = client.post("/api/campaigns/upload-to-ccai", json={})

    assert response.status_code == 400


@pytest.mark.parametrize(
    "error, status",
    [
        (CcaiAPIError("CCAI API Error", status_code=422, body={"message": "bad phone"}), 422),
        (CcaiAPIError("Cannot connect to CCAI API", body={"details": "No response"}), 503),
    ],
)
def test_upload_to_ccai_relays_dialer_errors(client, store, seed_records, dialer, error, status):
    seed_records("camp-1", [{"customer_id": "C-1", "phone_number": "+15551234567", "api_validated": True}])
    dialer.import_error = error

    response = client.post("/api/campaigns/upload-to-ccai", json={"campaign_id": "camp-1"})

    assert response.status_code == status
    assert response.get_json() == error.as_dict()


def test_dialer_config_error_is_500(app, client):
    app.config["CCAI_API_KEY"] = None

    response = client.get("/api/ccai/campaigns")

    assert response.status_code == 500
    assert response.get_json()["error"] == "CCAI_API_KEY is missing"


def test_dialer_campaigns_are_cached(client, store, dialer):
    dialer.campaigns = [{"id": 5, "name": "Spring"}, {"name": "no id"}]

    response = client.get("/api/ccai/campaigns")

    assert response.status_code == 200
    payload = response.get_json()
    assert payload["campaigns"] == dialer.campaigns
    assert payload["store_saved"] == 1
    assert payload["store_failed"] == 1
    cached = store.get(CAMPAIGNS_COLLECTION, "5")
    assert cached["campaign_name"] == "Spring"
    assert cached["synced_from_ccai"] is True

    response = client.get("/api/ccai/campaigns/9")
    assert response.get_json()["campaign"]["name"] == "Campaign 9"
    assert store.get(CAMPAIGNS_COLLECTION, "9") is not None


def test_dialer_contact_pass_through(client, dialer):
    dialer.contacts = [{"id": 1, "name": "Ann", "phone": "+1555", "external_unique_id": "C-1", "status": "new"}]

    summary = client.get("/api/ccai/campaigns/12/summary").get_json()
    assert summary["contacts"]["total"] == 1
    assert summary["contacts"]["list"][0]["external_id"] == "C-1"
    assert summary["contacts"]["statuses"] == {"new": 1}

    assert client.get("/api/ccai/campaigns/12/contacts").get_json() == dialer.contacts

    created = client.post("/api/ccai/campaigns/12/contacts", json={"name": "Bob"})
    assert created.status_code == 201
    assert created.get_json() == {"id": 900, "name": "Bob"}

    updated = client.patch("/api/ccai/campaigns/12/contact", json={"id": 1, "name": "Ann B"})
    assert updated.get_json() == {"id": 1, "name": "Ann B"}

    deleted = client.delete("/api/ccai/campaigns/12/contact/1")
    assert deleted.get_json() == {"success": True, "result": {"deleted": "1"}}

    job = client.get("/api/ccai/campaigns/12/jobs/55")
    assert job.get_json() == {"id": "55", "status": "completed"}
