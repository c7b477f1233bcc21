import json
from unittest.mock import Mock

from onboarding_app.campaigns import operations
from onboarding_app.campaigns.adapters.ccai import CcaiAPIError
from onboarding_app.campaigns.adapters.spreadsheet import read_spreadsheet


def _write_csv(tmp_path, content, name="customers.csv"):
    path = tmp_path / name
    path.write_bytes(content)
    return path


def _ingest(runner, path, campaign_id="camp-1", *extra):
    return runner.invoke(args=["campaigns", "ingest", "--campaign-id", campaign_id, "--file", str(path), *extra])


def test_campaigns_group_prints_configuration(runner):
    result = runner.invoke(args=["campaigns"])

    assert result.exit_code == 0, result.output
    assert "Campaign pipeline configuration:" in result.output
    assert "CAMPAIGNS_MAX_BATCH_SIZE = 400" in result.output


def test_ingest_command(runner, tmp_path, customer_csv):
    path = _write_csv(tmp_path, customer_csv)

    result = _ingest(runner, path, "camp-1", "--dnc", "--uploaded-by", "ops@example.test")

    assert result.exit_code == 0, result.output
    payload = json.loads(result.output)
    assert payload["uploaded"] == 3
    assert payload["failed_rows"] == [4, 6]
    assert payload["dnc_applied"] is True


def test_ingest_command_reports_errors_as_json(runner, tmp_path, customer_csv):
    path = _write_csv(tmp_path, customer_csv, name="customers.txt")

    result = _ingest(runner, path)

    assert result.exit_code == 1
    assert "Unsupported file type" in result.output


def test_sample_command_writes_workbook(runner, tmp_path):
    output = tmp_path / "sample.xlsx"

    result = runner.invoke(args=["campaigns", "sample", str(output)])

    assert result.exit_code == 0, result.output
    table = read_spreadsheet(output.read_bytes(), output.name)
    assert table.headers == ("Customer_Id",)


def test_validate_inline_and_status(runner, tmp_path, customer_csv, monkeypatch, fake_lookup_client):
    lookup = fake_lookup_client()
    monkeypatch.setattr(operations, "create_customer_lookup_client", lambda config, logger=None: lookup)
    _ingest(runner, _write_csv(tmp_path, customer_csv))

    result = runner.invoke(args=["campaigns", "validate", "camp-1", "--inline"])

    assert result.exit_code == 0, result.output
    job = json.loads(result.output)
    assert job["status"] == "completed"
    assert job["validated"] == 3

    status = runner.invoke(args=["campaigns", "status", job["job_id"]])
    assert status.exit_code == 0, status.output
    assert json.loads(status.output)["status"] == "completed"


def test_validate_queues_by_default(runner, tmp_path, customer_csv, monkeypatch):
    async_result = Mock()
    async_result.id = "celery-task-123"
    celery_app = Mock()
    celery_app.send_task.return_value = async_result
    monkeypatch.setattr(operations, "get_celery_app", lambda app: celery_app)
    _ingest(runner, _write_csv(tmp_path, customer_csv))

    result = runner.invoke(args=["campaigns", "validate", "camp-1"])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.output)
    assert payload["status"] == "pending"
    assert payload["total"] == 3
    celery_app.send_task.assert_called_once()

    cancel = runner.invoke(args=["campaigns", "cancel", payload["job_id"]])
    assert cancel.exit_code == 0, cancel.output
    assert json.loads(cancel.output)["status"] == "failed"
    celery_app.control.revoke.assert_called_once_with("celery-task-123")


def test_status_unknown_job(runner):
    result = runner.invoke(args=["campaigns", "status", "missing"])

    assert result.exit_code == 1
    assert "Job not found" in result.output


def test_sweep_stale_command(runner):
    result = runner.invoke(args=["campaigns", "sweep-stale"])

    assert result.exit_code == 0, result.output
    assert json.loads(result.output) == {"rearmed": [], "failed": [], "redispatched": []}


def test_export_command(runner, seed_records, monkeypatch, fake_dialer):
    monkeypatch.setattr(operations, "dialer_client", lambda app: fake_dialer)
    fake_dialer.contacts = [{"id": 3}]
    seed_records("camp-1", [{"customer_id": "C-1", "phone_number": "+15551234567", "api_validated": True}])

    result = runner.invoke(args=["campaigns", "export", "camp-1", "--keep-existing"])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.output)
    assert payload["uploaded"] == 1
    assert fake_dialer.deleted == []


def test_export_command_reports_dialer_errors(runner, seed_records, monkeypatch, fake_dialer):
    monkeypatch.setattr(operations, "dialer_client", lambda app: fake_dialer)
    fake_dialer.import_error = CcaiAPIError("CCAI API Error", status_code=401, body={"message": "denied"})
    seed_records("camp-1", [{"customer_id": "C-1", "phone_number": "+15551234567", "api_validated": True}])

    result = runner.invoke(args=["campaigns", "export", "camp-1"])

    assert result.exit_code == 1
    assert '"status_code": 401' in result.output
