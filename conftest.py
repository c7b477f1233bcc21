# conftest.py

import os
import tempfile
import uuid

import pytest

# Set testing environment BEFORE importing app so the module-level app uses TestingConfig
os.environ["FLASK_ENV"] = "testing"

from app import create_app  # noqa: E402
from onboarding_app.models import db  # noqa: E402
from onboarding_app.stores import DocumentStore, LocalBlobStore  # noqa: E402


@pytest.fixture(scope="function")
def app(tmp_path):
    """Create an isolated Flask application backed by a temporary SQLite file."""
    db_fd, temp_db = tempfile.mkstemp(suffix=f"_{uuid.uuid4().hex[:8]}.db")
    instance_dir = tmp_path / "instance"
    instance_dir.mkdir()

    try:
        flask_app = create_app(
            "testing",
            INSTANCE_PATH=str(instance_dir),
            SQLALCHEMY_DATABASE_URI=f"sqlite:///{temp_db}",
            SECRET_KEY="test-secret-key-for-testing-only",
            CAMPAIGNS_BLOB_DIR=str(tmp_path / "blobs"),
            CELERY_SQLITE_PATH=str(instance_dir / "celery.sqlite"),
            CELERY_CONFIG={"task_always_eager": True, "task_eager_propagates": True},
            CAMPAIGNS_VALIDATION_REQUESTS_PER_SECOND=0,
            CAMPAIGNS_LOOKUP_BACKOFF_SECONDS=0,
            CUSTOMER_API_URL="https://customers.example.test/api/customers/",
            CUSTOMER_API_TENANT_ID="tenant",
            CUSTOMER_API_CLIENT_ID="client",
            CUSTOMER_API_CLIENT_SECRET="secret",
            CUSTOMER_API_RESOURCE="resource",
            CCAI_BASE_URL="https://dialer.example.test",
            CCAI_USERNAME="dialer-user",
            CCAI_API_KEY="dialer-key",
        )

        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            yield flask_app
            db.session.remove()
            db.drop_all()
    finally:
        try:
            os.close(db_fd)
        except OSError:
            pass
        try:
            if os.path.exists(temp_db):
                os.unlink(temp_db)
        except OSError:
            pass


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def runner(app):
    return app.test_cli_runner()


@pytest.fixture
def store(app):
    """Document store bound to ``db.session`` of the test app."""
    return DocumentStore()


@pytest.fixture
def blob_store(tmp_path):
    return LocalBlobStore(tmp_path / "blob-root", public_url="https://blobs.example.test")
