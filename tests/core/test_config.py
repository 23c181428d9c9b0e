from __future__ import annotations

import dataclasses

import pytest

from authserver.core.config import AppEnv, Settings, load_settings

_OAUTH_VARS = (
    "OAUTH_AUTHORIZE_PATH",
    "OAUTH_TOKEN_PATH",
    "OAUTH_ALLOW_INSECURE_HTTP",
    "OAUTH_AUTHORIZATION_CODE_LIFETIME_SEC",
    "OAUTH_ACCESS_TOKEN_LIFETIME_SEC",
    "OAUTH_REFRESH_TOKEN_LIFETIME_SEC",
    "OAUTH_FORM_POST_ENDPOINT",
    "OAUTH_APPLICATION_CAN_DISPLAY_ERRORS",
    "DATA_PROTECTION_SECRET",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("APP_ENV", "LOG_LEVEL", "LOG_JSON", "PORT", *_OAUTH_VARS):
        monkeypatch.delenv(name, raising=False)


# ---- valid values ----


def test_load_settings_defaults() -> None:
    settings = load_settings()
    assert settings.app_env == "dev"
    assert settings.log_level == "info"
    assert settings.log_json is False
    assert settings.port == 8000


def test_load_settings_oauth_defaults() -> None:
    settings = load_settings()
    assert settings.authorize_path == "/oauth/authorize"
    assert settings.token_path == "/oauth/token"
    assert settings.allow_insecure_http is False
    assert settings.authorization_code_lifetime_sec == 300
    assert settings.access_token_lifetime_sec == 3600
    assert settings.refresh_token_lifetime_sec == 14 * 24 * 3600
    assert settings.form_post_endpoint is None
    assert settings.application_can_display_errors is False
    # dev gets a fixed fallback key
    assert settings.data_protection_secret


def test_load_settings_respects_env_vars(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "prod")
    monkeypatch.setenv("LOG_LEVEL", "error")
    monkeypatch.setenv("DATA_PROTECTION_SECRET", "s3cret")
    settings = load_settings()
    assert settings.app_env == "prod"
    assert settings.log_level == "error"
    assert settings.data_protection_secret == "s3cret"


def test_load_settings_reads_oauth_env_vars(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OAUTH_AUTHORIZE_PATH", "/connect/authorize")
    monkeypatch.setenv("OAUTH_TOKEN_PATH", "/connect/token")
    monkeypatch.setenv("OAUTH_ALLOW_INSECURE_HTTP", "yes")
    monkeypatch.setenv("OAUTH_ACCESS_TOKEN_LIFETIME_SEC", "600")
    monkeypatch.setenv("OAUTH_FORM_POST_ENDPOINT", "https://server/form-post")
    monkeypatch.setenv("OAUTH_APPLICATION_CAN_DISPLAY_ERRORS", "1")
    settings = load_settings()
    assert settings.authorize_path == "/connect/authorize"
    assert settings.token_path == "/connect/token"
    assert settings.allow_insecure_http is True
    assert settings.access_token_lifetime_sec == 600
    assert settings.form_post_endpoint == "https://server/form-post"
    assert settings.application_can_display_errors is True


def test_load_settings_normalizes_case(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "TEST")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    settings = load_settings()
    assert settings.app_env == "test"
    assert settings.log_level == "debug"


def test_load_settings_strips_whitespace(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "  test  ")
    monkeypatch.setenv("LOG_LEVEL", "  warning  ")
    monkeypatch.setenv("OAUTH_TOKEN_PATH", " /token ")
    settings = load_settings()
    assert settings.app_env == "test"
    assert settings.log_level == "warning"
    assert settings.token_path == "/token"


# ---- invalid APP_ENV / LOG_LEVEL ----


def test_load_settings_rejects_invalid_app_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "staging")
    with pytest.raises(ValueError, match="APP_ENV must be dev|test|prod"):
        load_settings()


def test_load_settings_rejects_empty_app_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "")
    with pytest.raises(ValueError, match="APP_ENV must be dev|test|prod"):
        load_settings()


def test_load_settings_rejects_invalid_log_level(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LOG_LEVEL", "verbose")
    with pytest.raises(ValueError, match="LOG_LEVEL must be debug|info|warning|error"):
        load_settings()


# ---- invalid OAuth values ----


def test_prod_requires_data_protection_secret(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "prod")
    with pytest.raises(ValueError, match="DATA_PROTECTION_SECRET is required"):
        load_settings()


def test_endpoint_path_must_be_absolute(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OAUTH_TOKEN_PATH", "oauth/token")
    with pytest.raises(ValueError, match="OAUTH_TOKEN_PATH must start with '/'"):
        load_settings()


def test_lifetime_must_be_an_integer(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OAUTH_ACCESS_TOKEN_LIFETIME_SEC", "1h")
    with pytest.raises(ValueError, match="must be an integer"):
        load_settings()


def test_lifetime_must_be_positive(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OAUTH_AUTHORIZATION_CODE_LIFETIME_SEC", "0")
    with pytest.raises(ValueError, match="must be >= 1"):
        load_settings()


def test_boolean_flag_rejects_garbage(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OAUTH_ALLOW_INSECURE_HTTP", "maybe")
    with pytest.raises(ValueError, match="OAUTH_ALLOW_INSECURE_HTTP must be a boolean"):
        load_settings()


# ---- Settings properties ----


def _make_settings(app_env: AppEnv = "dev") -> Settings:
    return dataclasses.replace(load_settings(), app_env=app_env)


@pytest.mark.parametrize(
    ("app_env", "expected"),
    [
        ("dev", (True, False, False)),
        ("test", (False, True, False)),
        ("prod", (False, False, True)),
    ],
)
def test_settings_env_properties(app_env: AppEnv, expected: tuple[bool, ...]) -> None:
    s = _make_settings(app_env)
    assert (s.is_dev, s.is_test, s.is_prod) == expected


def test_settings_is_frozen() -> None:
    s = _make_settings()
    with pytest.raises(AttributeError):
        s.app_env = "prod"  # type: ignore[misc]
