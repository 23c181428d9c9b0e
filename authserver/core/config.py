from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal

AppEnv = Literal["dev", "test", "prod"]
LogLevel = Literal["debug", "info", "warning", "error"]

_TRUE = ("1", "true", "yes", "on")
_FALSE = ("0", "false", "no", "off", "")


def _getenv(name: str, default: str) -> str:
    # Centralize env access so it’s easy to extend later (type casting, required vars)
    return os.environ.get(name, default).strip()


def _getenv_bool(name: str, default: bool) -> bool:
    raw = _getenv(name, "true" if default else "false").lower()
    if raw in _TRUE:
        return True
    if raw in _FALSE:
        return False
    raise ValueError(f"{name} must be a boolean (got {raw!r})")


def _getenv_int(name: str, default: int, *, minimum: int = 0) -> int:
    raw = _getenv(name, str(default))
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer (got {raw!r})") from None
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum} (got {value})")
    return value


def _getenv_path(name: str, default: str) -> str:
    raw = _getenv(name, default)
    if not raw.startswith("/"):
        raise ValueError(f"{name} must start with '/' (got {raw!r})")
    return raw


@dataclass(frozen=True)
class Settings:
    app_env: AppEnv
    log_level: LogLevel
    log_json: bool
    port: int
    authorize_path: str
    token_path: str
    allow_insecure_http: bool
    authorization_code_lifetime_sec: int
    access_token_lifetime_sec: int
    refresh_token_lifetime_sec: int
    form_post_endpoint: str | None
    application_can_display_errors: bool
    data_protection_secret: str

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"

    @property
    def is_test(self) -> bool:
        return self.app_env == "test"

    @property
    def is_prod(self) -> bool:
        return self.app_env == "prod"


def load_settings() -> Settings:
    app_env_raw = _getenv("APP_ENV", "dev").lower()
    log_level_raw = _getenv("LOG_LEVEL", "info").lower()

    if app_env_raw not in ("dev", "test", "prod"):
        raise ValueError(f"APP_ENV must be dev|test|prod (got {app_env_raw!r})")

    if log_level_raw not in ("debug", "info", "warning", "error"):
        raise ValueError(
            f"LOG_LEVEL must be debug|info|warning|error (got {log_level_raw!r})"
        )

    secret = _getenv("DATA_PROTECTION_SECRET", "")
    if not secret:
        if app_env_raw == "prod":
            raise ValueError("DATA_PROTECTION_SECRET is required when APP_ENV=prod")
        secret = "dev-only-data-protection-secret"

    return Settings(  # type: ignore[arg-type]
        app_env=app_env_raw,
        log_level=log_level_raw,
        log_json=_getenv_bool("LOG_JSON", False),
        port=_getenv_int("PORT", 8000, minimum=1),
        authorize_path=_getenv_path("OAUTH_AUTHORIZE_PATH", "/oauth/authorize"),
        token_path=_getenv_path("OAUTH_TOKEN_PATH", "/oauth/token"),
        allow_insecure_http=_getenv_bool("OAUTH_ALLOW_INSECURE_HTTP", False),
        authorization_code_lifetime_sec=_getenv_int(
            "OAUTH_AUTHORIZATION_CODE_LIFETIME_SEC", 300, minimum=1
        ),
        access_token_lifetime_sec=_getenv_int(
            "OAUTH_ACCESS_TOKEN_LIFETIME_SEC", 3600, minimum=1
        ),
        refresh_token_lifetime_sec=_getenv_int(
            "OAUTH_REFRESH_TOKEN_LIFETIME_SEC", 14 * 24 * 3600, minimum=1
        ),
        form_post_endpoint=_getenv("OAUTH_FORM_POST_ENDPOINT", "") or None,
        application_can_display_errors=_getenv_bool(
            "OAUTH_APPLICATION_CAN_DISPLAY_ERRORS", False
        ),
        data_protection_secret=secret,
    )


# Optional: module-level singleton so imports are cheap
SETTINGS = load_settings()
