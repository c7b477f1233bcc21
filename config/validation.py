# config/validation.py

"""
Environment variable validation for the campaign onboarding service.
Validates required environment variables at startup.
"""

import os
import sys
from typing import List, Tuple

CUSTOMER_API_KEYS = (
    "CUSTOMER_API_URL",
    "CUSTOMER_API_TENANT_ID",
    "CUSTOMER_API_CLIENT_ID",
    "CUSTOMER_API_CLIENT_SECRET",
    "CUSTOMER_API_RESOURCE",
)
CCAI_KEYS = ("CCAI_BASE_URL", "CCAI_USERNAME", "CCAI_API_KEY")


def validate_environment(flask_env: str = None) -> Tuple[bool, List[str]]:
    """
    Validate required environment variables.

    Only production is checked; other environments always pass.

    Returns:
        Tuple of (is_valid, list_of_errors)
    """
    if flask_env is None:
        flask_env = os.environ.get("FLASK_ENV", "development")

    if flask_env != "production":
        return True, []

    errors = []
    secret_key = os.environ.get("SECRET_KEY", "")
    if not secret_key or secret_key in {"your-secret-key", "your_secret_key"}:
        errors.append(
            "SECRET_KEY is required in production and must not be the default value. "
            'Generate a secure key: python -c "import secrets; print(secrets.token_hex(32))"'
        )

    if not os.environ.get("DATABASE_URL"):
        errors.append("DATABASE_URL is required in production. Set it to your database connection string.")

    for key in CUSTOMER_API_KEYS:
        if not os.environ.get(key):
            errors.append(f"{key} is required in production for customer validation.")

    for key in CCAI_KEYS:
        if not os.environ.get(key):
            errors.append(f"{key} is required in production for dialer exports.")

    if os.environ.get("CAMPAIGNS_WORKER_ENABLED", "false").lower() == "true":
        if not os.environ.get("CELERY_BROKER_URL"):
            errors.append("CELERY_BROKER_URL is required when CAMPAIGNS_WORKER_ENABLED=true in production.")

    return not errors, errors


def validate_and_exit(flask_env: str = None) -> None:
    """
    Validate environment variables and exit with error if validation fails.
    Intended to be called at application startup.
    """
    is_valid, errors = validate_environment(flask_env)

    if not is_valid:
        print("=" * 80, file=sys.stderr)
        print("ENVIRONMENT VALIDATION FAILED", file=sys.stderr)
        print("=" * 80, file=sys.stderr)
        print("\nThe following environment variables are missing or invalid:\n", file=sys.stderr)

        for i, error in enumerate(errors, 1):
            print(f"{i}. {error}", file=sys.stderr)

        print("\n" + "=" * 80, file=sys.stderr)
        print("Please check your .env file or environment variables.", file=sys.stderr)
        print("=" * 80, file=sys.stderr)

        sys.exit(1)
