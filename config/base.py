# config/base.py
import os
from datetime import timedelta


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
    """Parse an integer setting, falling back to ``default`` when malformed."""
    if value is None or str(value).strip() == "":
        return default
    try:
        number = int(str(value).strip())
    except ValueError:
        return default
    if minimum is not None and number < minimum:
        return default
    return number


def _first_env(*names, default=None):
    """Return the first non-empty environment variable among ``names``."""
    for name in names:
        value = os.environ.get(name)
        if value:
            return value
    return default


class Config:
    # SECRET_KEY must be set via environment variable for security
    # Generate with: python -c "import secrets; print(secrets.token_hex(32))"
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

    # Content store
    CONTENT_STORE_BACKEND = os.environ.get("CONTENT_STORE_BACKEND", "sanity").strip().lower()
    CONTENT_STORE_SEED_PATH = os.environ.get("CONTENT_STORE_SEED_PATH")
    SANITY_PROJECT_ID = _first_env("SANITY_PROJECT_ID", "NEXT_PUBLIC_SANITY_PROJECT_ID")
    SANITY_DATASET = _first_env("SANITY_DATASET", "NEXT_PUBLIC_SANITY_DATASET")
    SANITY_API_VERSION = _first_env("SANITY_API_VERSION", "NEXT_PUBLIC_SANITY_API_VERSION", default="2024-10-01")
    SANITY_API_TOKEN = os.environ.get("SANITY_API_TOKEN")
    SANITY_WRITE_TOKEN = os.environ.get("SANITY_WRITE_TOKEN")
    SANITY_USE_CDN = _coerce_bool(os.environ.get("SANITY_USE_CDN"), default=False)
    try:
        STORE_REQUEST_TIMEOUT = float(os.environ.get("STORE_REQUEST_TIMEOUT", "30"))
    except ValueError:
        STORE_REQUEST_TIMEOUT = 30.0

    # Importer
    IMPORTER_DRY_RUN_DEFAULT = _coerce_bool(os.environ.get("IMPORTER_DRY_RUN_DEFAULT"), default=False)

    # Directory listing
    DIRECTORY_PAGE_SIZE = _coerce_int(os.environ.get("DIRECTORY_PAGE_SIZE"), 12, minimum=1)

    # Magic links and outbound mail
    MAGIC_LINK_SECRET = os.environ.get("MAGIC_LINK_SECRET")
    MAGIC_LINK_MAX_AGE_MINUTES = _coerce_int(os.environ.get("MAGIC_LINK_MAX_AGE_MINUTES"), 20, minimum=1)
    MAGIC_LINK_PREVIEW_ENABLED = _coerce_bool(os.environ.get("MAGIC_LINK_PREVIEW_ENABLED"), default=False)
    RESEND_API_KEY = os.environ.get("RESEND_API_KEY")
    FROM_EMAIL = os.environ.get("FROM_EMAIL")
    PUBLIC_BASE_URL = os.environ.get("PUBLIC_BASE_URL", "").rstrip("/")

    # Session configuration
    PERMANENT_SESSION_LIFETIME = timedelta(days=7)
    SESSION_COOKIE_SECURE = False  # Set to True in production with HTTPS
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"

    # CSRF protection
    WTF_CSRF_ENABLED = True


class DevelopmentConfig(Config):
    DEBUG = True
    # Project root is the parent of the config directory
    _config_dir = os.path.dirname(os.path.abspath(__file__))
    _project_root = os.path.dirname(_config_dir)
    instance_path = os.path.join(_project_root, "instance")

    if not os.path.exists(instance_path):
        os.makedirs(instance_path, exist_ok=True)

    # SQLite URIs need forward slashes, also on Windows
    db_path = os.path.join(instance_path, "community_dev.db").replace("\\", "/")
    db_uri = f"sqlite:///{db_path}"

    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", db_uri)
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

    MAGIC_LINK_PREVIEW_ENABLED = _coerce_bool(os.environ.get("MAGIC_LINK_PREVIEW_ENABLED"), default=True)


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = os.environ.get("SECRET_KEY", "test-secret-key-for-testing-only")
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    WTF_CSRF_ENABLED = False
    SQLALCHEMY_ECHO = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "connect_args": {
            "check_same_thread": False,
            "timeout": 5,
        }
    }

    CONTENT_STORE_BACKEND = "memory"
    CONTENT_STORE_SEED_PATH = None
    MAGIC_LINK_SECRET = "test-magic-secret"
    MAGIC_LINK_PREVIEW_ENABLED = True
    RESEND_API_KEY = None
    PUBLIC_BASE_URL = "http://localhost"
    IMPORTER_DRY_RUN_DEFAULT = False


class ProductionConfig(Config):
    DEBUG = False
    uri = os.environ.get("DATABASE_URL")
    if uri and uri.startswith("postgres://"):
        uri = uri.replace("postgres://", "postgresql://", 1)
    SQLALCHEMY_DATABASE_URI = uri
    SQLALCHEMY_ECHO = False
    SESSION_COOKIE_SECURE = True
