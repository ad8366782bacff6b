import pytest

from config.base import _coerce_bool, _coerce_int
from config.validation import validate_and_exit, validate_environment

PRODUCTION_ENV = {
    "SECRET_KEY": "a" * 64,
    "DATABASE_URL": "postgresql://localhost/community",
    "SANITY_PROJECT_ID": "abc123",
    "SANITY_DATASET": "production",
    "SANITY_WRITE_TOKEN": "w-token",
    "MAGIC_LINK_SECRET": "magic",
}

ALL_KEYS = list(PRODUCTION_ENV) + [
    "CONTENT_STORE_BACKEND",
    "SANITY_API_TOKEN",
    "NEXT_PUBLIC_SANITY_PROJECT_ID",
    "NEXT_PUBLIC_SANITY_DATASET",
    "RESEND_API_KEY",
    "FROM_EMAIL",
]


@pytest.fixture
def clean_env(monkeypatch):
    for key in ALL_KEYS:
        monkeypatch.delenv(key, raising=False)
    return monkeypatch


def _set(monkeypatch, values):
    for key, value in values.items():
        monkeypatch.setenv(key, value)


def test_production_with_complete_env_is_valid(clean_env):
    _set(clean_env, PRODUCTION_ENV)

    assert validate_environment("production") == (True, [])


def test_production_reports_every_missing_setting(clean_env):
    is_valid, errors = validate_environment("production")

    assert not is_valid
    joined = "\n".join(errors)
    for name in ("SECRET_KEY", "DATABASE_URL", "SANITY_PROJECT_ID", "SANITY_DATASET", "SANITY_WRITE_TOKEN", "MAGIC_LINK_SECRET"):
        assert name in joined


def test_production_accepts_public_fallbacks_and_api_token(clean_env):
    _set(clean_env, PRODUCTION_ENV)
    for key in ("SANITY_PROJECT_ID", "SANITY_DATASET", "SANITY_WRITE_TOKEN"):
        clean_env.delenv(key)
    _set(
        clean_env,
        {
            "NEXT_PUBLIC_SANITY_PROJECT_ID": "abc123",
            "NEXT_PUBLIC_SANITY_DATASET": "production",
            "SANITY_API_TOKEN": "r-token",
        },
    )

    assert validate_environment("production") == (True, [])


def test_production_rejects_default_secret_key(clean_env):
    _set(clean_env, {**PRODUCTION_ENV, "SECRET_KEY": "your-secret-key"})

    is_valid, errors = validate_environment("production")

    assert not is_valid
    assert "SECRET_KEY" in errors[0]


def test_memory_backend_skips_store_settings(clean_env):
    _set(clean_env, {**PRODUCTION_ENV, "CONTENT_STORE_BACKEND": "memory"})
    for key in ("SANITY_PROJECT_ID", "SANITY_DATASET", "SANITY_WRITE_TOKEN"):
        clean_env.delenv(key)

    assert validate_environment("production") == (True, [])


def test_unknown_backend_is_rejected(clean_env):
    _set(clean_env, {**PRODUCTION_ENV, "CONTENT_STORE_BACKEND": "mongo"})

    is_valid, errors = validate_environment("production")

    assert not is_valid
    assert "CONTENT_STORE_BACKEND" in errors[0]


def test_resend_key_needs_from_email_outside_tests(clean_env):
    clean_env.setenv("RESEND_API_KEY", "re_123")

    assert validate_environment("development") == (False, ["FROM_EMAIL is required when RESEND_API_KEY is set"])
    assert validate_environment("testing") == (True, [])


def test_development_needs_nothing(clean_env):
    assert validate_environment("development") == (True, [])


def test_validate_and_exit(clean_env, capsys):
    with pytest.raises(SystemExit) as excinfo:
        validate_and_exit("production")

    assert excinfo.value.code == 1
    assert "ENVIRONMENT VALIDATION FAILED" in capsys.readouterr().err


@pytest.mark.parametrize(
    "value, expected",
    [(None, False), ("1", True), ("YES", True), ("off", False), ("maybe", False), (True, True)],
)
def test_coerce_bool(value, expected):
    assert _coerce_bool(value) is expected


def test_coerce_int():
    assert _coerce_int("15", 20) == 15
    assert _coerce_int("", 20) == 20
    assert _coerce_int("abc", 20) == 20
    assert _coerce_int("0", 20, minimum=1) == 20
