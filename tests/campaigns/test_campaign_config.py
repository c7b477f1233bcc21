import json
import logging

import pytest
from flask import Flask

from config.base import _coerce_bool, _coerce_float, _coerce_int
from config.validation import CCAI_KEYS, CUSTOMER_API_KEYS, validate_and_exit, validate_environment
from onboarding_app.utils.logging_config import JSONFormatter, setup_logging


def test_coercion_helpers():
    assert _coerce_bool("Yes") is True
    assert _coerce_bool("off", default=True) is False
    assert _coerce_bool("maybe", default=True) is True
    assert _coerce_int("12", 5) == 12
    assert _coerce_int("0", 5, minimum=1) == 5
    assert _coerce_int("abc", 5) == 5
    assert _coerce_float("0.5", 1.0) == 0.5
    assert _coerce_float("-1", 1.0, minimum=0) == 1.0


def test_testing_app_config(app):
    assert app.config["TESTING"] is True
    assert app.config["CAMPAIGNS_MAX_BATCH_SIZE"] == 400
    assert app.config["CAMPAIGNS_PROGRESS_INTERVAL"] == 10
    assert app.config["CAMPAIGNS_LOOKUP_MAX_ATTEMPTS"] == 3
    assert app.config["CAMPAIGNS_JOB_QUEUE_TIMEOUT_SECONDS"] == 3600
    assert app.config["CAMPAIGNS_TASK_TIME_LIMIT"] is None
    assert app.config["CAMPAIGNS_TASK_SOFT_TIME_LIMIT"] is None
    assert app.config["MAX_CONTENT_LENGTH"] == app.config["CAMPAIGNS_MAX_UPLOAD_MB"] * 1024 * 1024


def test_validation_skips_non_production():
    assert validate_environment("development") == (True, [])
    assert validate_environment("testing") == (True, [])


def test_validation_lists_missing_production_settings(monkeypatch):
    for key in ("SECRET_KEY", "DATABASE_URL", "CELERY_BROKER_URL", *CUSTOMER_API_KEYS, *CCAI_KEYS):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("CAMPAIGNS_WORKER_ENABLED", "true")

    is_valid, errors = validate_environment("production")

    assert is_valid is False
    joined = "\n".join(errors)
    for key in ("SECRET_KEY", "DATABASE_URL", "CELERY_BROKER_URL", *CUSTOMER_API_KEYS, *CCAI_KEYS):
        assert key in joined


def test_validate_and_exit_exits_on_errors(monkeypatch, capsys):
    monkeypatch.delenv("SECRET_KEY", raising=False)

    with pytest.raises(SystemExit) as excinfo:
        validate_and_exit("production")

    assert excinfo.value.code == 1
    assert "ENVIRONMENT VALIDATION FAILED" in capsys.readouterr().err


def test_json_formatter_includes_extra_fields():
    record = logging.LogRecord("onboarding_app.campaigns", logging.INFO, __file__, 10, "Job %s done", ("abc",), None)
    record.campaigns_job_id = "abc"
    record.campaigns_failed = ["r1"]

    payload = json.loads(JSONFormatter("campaign-onboarding").format(record))

    assert payload["message"] == "Job abc done"
    assert payload["level"] == "INFO"
    assert payload["app"] == "campaign-onboarding"
    assert payload["campaigns_job_id"] == "abc"
    assert payload["campaigns_failed"] == ["r1"]
    assert "args" not in payload


def test_setup_logging_writes_rotating_file(tmp_path):
    app = Flask(__name__, instance_path=str(tmp_path / "instance"))
    app.config.update(
        LOG_LEVEL="INFO",
        LOG_FORMAT="json",
        ENABLE_CONSOLE_LOGGING=False,
        ENABLE_FILE_LOGGING=True,
        LOG_DIR=str(tmp_path / "logs"),
        LOG_FILE_NAME="worker.log",
    )

    logger = setup_logging(app)
    logger.info("Ingest finished", extra={"campaigns_campaign_id": "camp-1"})
    for handler in logger.handlers:
        handler.flush()

    lines = (tmp_path / "logs" / "worker.log").read_text(encoding="utf-8").splitlines()
    payload = json.loads(lines[-1])
    assert payload["message"] == "Ingest finished"
    assert payload["campaigns_campaign_id"] == "camp-1"
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logging.getLogger("onboarding_app").handlers.clear()
