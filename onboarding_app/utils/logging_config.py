# onboarding_app/utils/logging_config.py

"""
Logging setup for the Flask app and the Celery worker.

Handlers are driven by the ``LOG_*`` and ``ENABLE_*_LOGGING`` config keys.
The JSON formatter copies every ``extra={...}`` field onto the emitted record.
"""

import json
import logging
import os
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler

from .serialization import ensure_json_serializable

# Attributes present on every LogRecord; anything else came from ``extra``.
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None)).keys()
) | {"message", "asctime"}

TEXT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
_HANDLER_MARKER = "_campaigns_handler"


class JSONFormatter(logging.Formatter):
    """Render records as one JSON object per line."""

    def __init__(self, app_name: str = "campaign-onboarding"):
        super().__init__()
        self.app_name = app_name

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "app": self.app_name,
            "module": record.module,
            "line": record.lineno,
        }
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                payload[key] = ensure_json_serializable(value)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def _build_formatter(app) -> logging.Formatter:
    if str(app.config.get("LOG_FORMAT", "json")).lower() == "json":
        return JSONFormatter(app.config.get("APP_NAME", "campaign-onboarding"))
    return logging.Formatter(TEXT_FORMAT)


def _remove_previous_handlers(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        if getattr(handler, _HANDLER_MARKER, False):
            logger.removeHandler(handler)
            handler.close()


def setup_logging(app) -> logging.Logger:
    """Attach console and rotating-file handlers to ``app.logger``."""
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    formatter = _build_formatter(app)
    logger = app.logger
    _remove_previous_handlers(logger)
    logger.setLevel(level)

    handlers: list[logging.Handler] = []
    if app.config.get("ENABLE_CONSOLE_LOGGING", True):
        handlers.append(logging.StreamHandler())

    if app.config.get("ENABLE_FILE_LOGGING", False):
        log_dir = app.config.get("LOG_DIR", "logs")
        if not os.path.isabs(log_dir):
            log_dir = os.path.join(app.instance_path, log_dir)
        os.makedirs(log_dir, exist_ok=True)
        handlers.append(
            RotatingFileHandler(
                os.path.join(log_dir, app.config.get("LOG_FILE_NAME", "campaigns.log")),
                maxBytes=int(app.config.get("LOG_FILE_MAX_BYTES", 10 * 1024 * 1024)),
                backupCount=int(app.config.get("LOG_FILE_BACKUP_COUNT", 10)),
                encoding="utf-8",
            )
        )

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        setattr(handler, _HANDLER_MARKER, True)
        logger.addHandler(handler)

    # Pipeline modules log through their own module loggers
    package_logger = logging.getLogger("onboarding_app")
    _remove_previous_handlers(package_logger)
    package_logger.setLevel(level)
    for handler in handlers:
        package_logger.addHandler(handler)

    logger.info(
        "Logging configured",
        extra={
            "campaigns_log_level": logging.getLevelName(level),
            "campaigns_log_format": app.config.get("LOG_FORMAT", "json"),
        },
    )
    return logger
