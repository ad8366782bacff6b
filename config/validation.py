# config/validation.py

"""
Environment variable validation for the community directory.
Validates required environment variables at startup.
"""

import os
import sys
from typing import List, Tuple


def _env(*names: str) -> str:
    for name in names:
        value = os.environ.get(name, "").strip()
        if value:
            return value
    return ""


def validate_environment(flask_env: str = None) -> Tuple[bool, List[str]]:
    """
    Validate required environment variables.

    Args:
        flask_env: Flask environment (development, production, testing)
                  If None, reads from FLASK_ENV environment variable

    Returns:
        Tuple of (is_valid, list_of_errors)
    """
    if flask_env is None:
        flask_env = os.environ.get("FLASK_ENV", "development")

    errors = []

    # Conditional requirements apply everywhere except the test suite
    if flask_env != "testing" and _env("RESEND_API_KEY") and not _env("FROM_EMAIL"):
        errors.append("FROM_EMAIL is required when RESEND_API_KEY is set")

    if flask_env != "production":
        return len(errors) == 0, errors

    secret_key = os.environ.get("SECRET_KEY", "")
    if not secret_key or secret_key in {"your-secret-key", "your_secret_key"}:
        errors.append(
            "SECRET_KEY is required in production and must not be the default value. "
            'Generate a secure key: python -c "import secrets; print(secrets.token_hex(32))"'
        )

    if not os.environ.get("DATABASE_URL"):
        errors.append(
            "DATABASE_URL is required in production. "
            "Set it to the connection string of the import-run database."
        )

    backend = os.environ.get("CONTENT_STORE_BACKEND", "sanity").strip().lower()
    if backend == "sanity":
        if not _env("SANITY_PROJECT_ID", "NEXT_PUBLIC_SANITY_PROJECT_ID"):
            errors.append("SANITY_PROJECT_ID (or NEXT_PUBLIC_SANITY_PROJECT_ID) is required in production")
        if not _env("SANITY_DATASET", "NEXT_PUBLIC_SANITY_DATASET"):
            errors.append("SANITY_DATASET (or NEXT_PUBLIC_SANITY_DATASET) is required in production")
        if not _env("SANITY_WRITE_TOKEN", "SANITY_API_TOKEN"):
            errors.append("SANITY_WRITE_TOKEN or SANITY_API_TOKEN is required in production")
    elif backend != "memory":
        errors.append(f"CONTENT_STORE_BACKEND must be 'sanity' or 'memory', got {backend!r}")

    if not _env("MAGIC_LINK_SECRET"):
        errors.append("MAGIC_LINK_SECRET is required in production to sign access links")

    is_valid = len(errors) == 0
    return is_valid, errors


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
        print("See .env.example for required configuration.", file=sys.stderr)
        print("=" * 80, file=sys.stderr)

        sys.exit(1)
