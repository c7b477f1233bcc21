# config/base.py
import os


def _coerce_bool(value, default=False):
    """Convert environment-style truthy/falsey values to bool."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    value_str = str(value).strip().lower()
    if value_str in {"1", "true", "yes", "on"}:
        return True
    if value_str in {"0", "false", "no", "off"}:
        return False
    return default


def _coerce_int(value, default, *, minimum=None):
    """Parse an integer setting, falling back to ``default`` on bad input."""
    if value in (None, ""):
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    if minimum is not None and number < minimum:
        return default
    return number


def _coerce_float(value, default, *, minimum=None):
    if value in (None, ""):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if minimum is not None and number < minimum:
        return default
    return number


class Config:
    _flask_env = os.environ.get("FLASK_ENV", "development")
    _is_testing = _flask_env == "testing"
    _is_production = _flask_env == "production"

    SECRET_KEY = os.environ.get("SECRET_KEY")

    # Only require SECRET_KEY in production mode
    if not SECRET_KEY and _is_production:
        raise ValueError(
            "SECRET_KEY environment variable is required in production. "
            'Generate with: python -c "import secrets; print(secrets.token_hex(32))"'
        )

    if not SECRET_KEY and not _is_testing:
        import warnings

        warnings.warn(
            "SECRET_KEY not set. Using default for development only. "
            "Set SECRET_KEY before deploying.",
            UserWarning,
        )
        SECRET_KEY = "dev-secret-key-change-in-production"

    if not SECRET_KEY:
        SECRET_KEY = "test-secret-key-placeholder"

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {}

    # Worker and Celery wiring
    CAMPAIGNS_WORKER_ENABLED = _coerce_bool(os.environ.get("CAMPAIGNS_WORKER_ENABLED"), default=False)
    CELERY_BROKER_URL = os.environ.get("CELERY_BROKER_URL")
    CELERY_RESULT_BACKEND = os.environ.get("CELERY_RESULT_BACKEND")
    CELERY_SQLITE_PATH = os.environ.get("CELERY_SQLITE_PATH")
    CELERY_CONFIG = os.environ.get("CELERY_CONFIG")
    # Unset means no limit on the validation task
    CAMPAIGNS_TASK_TIME_LIMIT = _coerce_int(os.environ.get("CAMPAIGNS_TASK_TIME_LIMIT"), None, minimum=1)
    CAMPAIGNS_TASK_SOFT_TIME_LIMIT = _coerce_int(os.environ.get("CAMPAIGNS_TASK_SOFT_TIME_LIMIT"), None, minimum=1)

    # Uploads and blob storage
    CAMPAIGNS_BLOB_DIR = os.environ.get("CAMPAIGNS_BLOB_DIR")
    CAMPAIGNS_BLOB_BUCKET = os.environ.get("CAMPAIGNS_BLOB_BUCKET", "campaign-uploads")
    CAMPAIGNS_BLOB_PUBLIC_URL = os.environ.get("CAMPAIGNS_BLOB_PUBLIC_URL", "https://storage.googleapis.com")
    CAMPAIGNS_MAX_UPLOAD_MB = _coerce_int(os.environ.get("CAMPAIGNS_MAX_UPLOAD_MB"), 25, minimum=1)
    MAX_CONTENT_LENGTH = CAMPAIGNS_MAX_UPLOAD_MB * 1024 * 1024

    # Pipeline tuning
    CAMPAIGNS_MAX_BATCH_SIZE = _coerce_int(os.environ.get("CAMPAIGNS_MAX_BATCH_SIZE"), 400, minimum=1)
    CAMPAIGNS_VALIDATION_REQUESTS_PER_SECOND = _coerce_float(
        os.environ.get("CAMPAIGNS_VALIDATION_REQUESTS_PER_SECOND"), 5.0, minimum=0
    )
    CAMPAIGNS_LOOKUP_MAX_ATTEMPTS = _coerce_int(os.environ.get("CAMPAIGNS_LOOKUP_MAX_ATTEMPTS"), 3, minimum=1)
    CAMPAIGNS_LOOKUP_BACKOFF_SECONDS = _coerce_float(
        os.environ.get("CAMPAIGNS_LOOKUP_BACKOFF_SECONDS"), 1.0, minimum=0
    )
    CAMPAIGNS_PROGRESS_INTERVAL = _coerce_int(os.environ.get("CAMPAIGNS_PROGRESS_INTERVAL"), 10, minimum=1)
    CAMPAIGNS_JOB_LEASE_SECONDS = _coerce_int(os.environ.get("CAMPAIGNS_JOB_LEASE_SECONDS"), 600, minimum=1)
    CAMPAIGNS_JOB_QUEUE_TIMEOUT_SECONDS = _coerce_int(
        os.environ.get("CAMPAIGNS_JOB_QUEUE_TIMEOUT_SECONDS"), 3600, minimum=1
    )
    CAMPAIGNS_JOB_MAX_ATTEMPTS = _coerce_int(os.environ.get("CAMPAIGNS_JOB_MAX_ATTEMPTS"), 3, minimum=1)
    CAMPAIGNS_STALE_SWEEP_SECONDS = _coerce_int(os.environ.get("CAMPAIGNS_STALE_SWEEP_SECONDS"), 300, minimum=0)
    CAMPAIGNS_SINGLE_FLIGHT_VALIDATION = _coerce_bool(
        os.environ.get("CAMPAIGNS_SINGLE_FLIGHT_VALIDATION"), default=False
    )

    # Customer enrichment service
    CUSTOMER_API_URL = os.environ.get("CUSTOMER_API_URL")
    CUSTOMER_API_TENANT_ID = os.environ.get("CUSTOMER_API_TENANT_ID")
    CUSTOMER_API_CLIENT_ID = os.environ.get("CUSTOMER_API_CLIENT_ID")
    CUSTOMER_API_CLIENT_SECRET = os.environ.get("CUSTOMER_API_CLIENT_SECRET")
    CUSTOMER_API_RESOURCE = os.environ.get("CUSTOMER_API_RESOURCE")
    CUSTOMER_API_TOKEN_URL = os.environ.get(
        "CUSTOMER_API_TOKEN_URL",
        "https://login.microsoftonline.com/{tenant_id}/oauth2/token",
    )
    CUSTOMER_API_TOKEN_TIMEOUT = _coerce_float(os.environ.get("CUSTOMER_API_TOKEN_TIMEOUT"), 10.0, minimum=0)
    CUSTOMER_API_LOOKUP_TIMEOUT = _coerce_float(os.environ.get("CUSTOMER_API_LOOKUP_TIMEOUT"), 15.0, minimum=0)

    # Outbound dialer platform
    CCAI_BASE_URL = os.environ.get("CCAI_BASE_URL")
    CCAI_USERNAME = os.environ.get("CCAI_USERNAME")
    CCAI_API_KEY = os.environ.get("CCAI_API_KEY")
    CCAI_TIMEOUT = _coerce_float(os.environ.get("CCAI_TIMEOUT"), 30.0, minimum=0)


class DevelopmentConfig(Config):
    DEBUG = True
    _config_dir = os.path.dirname(os.path.abspath(__file__))
    _project_root = os.path.dirname(_config_dir)
    instance_path = os.path.join(_project_root, "instance")

    if not os.path.exists(instance_path):
        os.makedirs(instance_path, exist_ok=True)

    # SQLite URIs need forward slashes, including on Windows
    db_path_normalized = os.path.join(instance_path, "campaigns_dev.db").replace("\\", "/")
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", f"sqlite:///{db_path_normalized}")
    SQLALCHEMY_ECHO = _coerce_bool(os.environ.get("SQLALCHEMY_ECHO"), default=False)
    if SQLALCHEMY_DATABASE_URI.startswith("sqlite"):
        SQLALCHEMY_ENGINE_OPTIONS = {
            "connect_args": {
                "check_same_thread": False,
                "timeout": 5,
            }
        }
    else:
        SQLALCHEMY_ENGINE_OPTIONS = {}


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = os.environ.get("SECRET_KEY", "test-secret-key-for-testing-only")
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_ECHO = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "connect_args": {
            "check_same_thread": False,
            "timeout": 5,
        }
    }
    CAMPAIGNS_VALIDATION_REQUESTS_PER_SECOND = 0
    CAMPAIGNS_LOOKUP_BACKOFF_SECONDS = 0
    CAMPAIGNS_STALE_SWEEP_SECONDS = 0
    CELERY_CONFIG = {"task_always_eager": True, "task_eager_propagates": True}


class ProductionConfig(Config):
    DEBUG = False
    uri = os.environ.get("DATABASE_URL")
    if uri and uri.startswith("postgres://"):
        uri = uri.replace("postgres://", "postgresql://", 1)
    SQLALCHEMY_DATABASE_URI = uri
    SQLALCHEMY_ECHO = False
