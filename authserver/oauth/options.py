from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta

from authserver.core.clock import Clock, SystemClock
from authserver.core.config import Settings
from authserver.oauth.provider import OAuthServerProvider, TokenProvider
from authserver.tokens.format import TicketDataFormat
from authserver.tokens.protector import FernetProtector, Protector


@dataclass(frozen=True)
class OAuthServerOptions:
    """Everything the protocol engine needs, built once at startup.

    The three token formats default to Fernet protectors derived from
    ``data_protection_secret`` with one purpose per token kind.
    """

    provider: OAuthServerProvider
    authorize_path: str | None = "/oauth/authorize"
    token_path: str | None = "/oauth/token"
    allow_insecure_http: bool = False
    authorization_code_lifetime: timedelta = timedelta(minutes=5)
    access_token_lifetime: timedelta = timedelta(hours=1)
    refresh_token_lifetime: timedelta = timedelta(days=14)
    form_post_endpoint: str | None = None
    application_can_display_errors: bool = False
    clock: Clock = field(default_factory=SystemClock)
    data_protection_secret: str | None = None
    # filled from data_protection_secret when not given
    authorization_code_format: TicketDataFormat = None  # type: ignore[assignment]
    access_token_format: TicketDataFormat = None  # type: ignore[assignment]
    refresh_token_format: TicketDataFormat = None  # type: ignore[assignment]
    authorization_code_provider: TokenProvider = field(default_factory=TokenProvider)
    access_token_provider: TokenProvider = field(default_factory=TokenProvider)
    refresh_token_provider: TokenProvider = field(default_factory=TokenProvider)

    def __post_init__(self) -> None:
        if self.provider is None:
            raise ValueError("an OAuthServerProvider is required")
        for name, purpose in (
            ("authorization_code_format", "Authentication_Code"),
            ("access_token_format", "Access_Token"),
            ("refresh_token_format", "Refresh_Token"),
        ):
            if getattr(self, name) is None:
                object.__setattr__(self, name, self._default_format(purpose))

    def _default_format(self, purpose: str) -> TicketDataFormat:
        if not self.data_protection_secret:
            raise ValueError(
                "data_protection_secret is required unless all token formats are given"
            )
        protector: Protector = FernetProtector.from_secret(
            self.data_protection_secret, "authserver.oauth", purpose, "v1"
        )
        return TicketDataFormat(protector)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        provider: OAuthServerProvider,
        **overrides: object,
    ) -> OAuthServerOptions:
        values: dict[str, object] = {
            "provider": provider,
            "authorize_path": settings.authorize_path,
            "token_path": settings.token_path,
            "allow_insecure_http": settings.allow_insecure_http,
            "authorization_code_lifetime": timedelta(
                seconds=settings.authorization_code_lifetime_sec
            ),
            "access_token_lifetime": timedelta(
                seconds=settings.access_token_lifetime_sec
            ),
            "refresh_token_lifetime": timedelta(
                seconds=settings.refresh_token_lifetime_sec
            ),
            "form_post_endpoint": settings.form_post_endpoint,
            "application_can_display_errors": settings.application_can_display_errors,
            "data_protection_secret": settings.data_protection_secret,
        }
        values.update(overrides)
        return cls(**values)  # type: ignore[arg-type]
