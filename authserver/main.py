from __future__ import annotations

import logging

from fastapi import FastAPI

from authserver.api.health import router as health_router
from authserver.api.login import authorize_fallthrough
from authserver.api.login import router as login_router
from authserver.api.metrics_endpoint import router as metrics_router
from authserver.core.clock import Clock
from authserver.core.config import SETTINGS, Settings
from authserver.core.logging import setup_logging
from authserver.middleware.metrics import MetricsMiddleware
from authserver.middleware.request_context import RequestContextMiddleware
from authserver.models.oauth_client import OAuthClient
from authserver.models.user import ResourceOwner
from authserver.oauth.constants import GrantTypes
from authserver.oauth.engine import OAuthServerMiddleware, ProtocolEngine
from authserver.oauth.options import OAuthServerOptions
from authserver.repos.oauth_client_repo import InMemoryOAuthClientRepo
from authserver.repos.token_store import InMemoryTokenStore
from authserver.repos.user_repo import InMemoryUserRepo
from authserver.services import auth_service
from authserver.services.registry_provider import RegistryProvider
from authserver.services.token_providers import (
    FormatTokenProvider,
    SingleUseTokenProvider,
)

logger = logging.getLogger(__name__)


def _seed_dev_data(clients: InMemoryOAuthClientRepo, users: InMemoryUserRepo) -> None:
    """Demo client + user so the flows can be tried by hand in dev.

    demo-client redirects to a plain-http localhost callback, so it is only
    usable with OAUTH_ALLOW_INSECURE_HTTP=true (scripts/demo_login_flow.py
    sets it); with the default the engine ignores http requests.
    """
    if clients.get("demo-client") is None:
        clients.register(
            OAuthClient.new(
                client_id="demo-client",
                redirect_uris=("http://localhost:5173/callback",),
                allowed_scopes=frozenset({"read", "write"}),
                allow_implicit=True,
            )
        )
    if clients.get("demo-service") is None:
        clients.register(
            OAuthClient.new(
                client_id="demo-service",
                allowed_scopes=frozenset({"read"}),
                allowed_grant_types=frozenset({GrantTypes.CLIENT_CREDENTIALS}),
                secret_hash=auth_service.hash_secret("demo-secret"),
            )
        )
    if users.get_by_username("demo") is None:
        users.add(
            ResourceOwner.new(
                username="demo",
                password_hash=auth_service.hash_secret("demo-password"),
                roles=("user",),
            )
        )


def create_app(
    settings: Settings | None = None,
    *,
    clients: InMemoryOAuthClientRepo | None = None,
    users: InMemoryUserRepo | None = None,
    clock: Clock | None = None,
) -> FastAPI:
    settings = settings or SETTINGS
    setup_logging(settings.log_level, json_format=settings.log_json)

    clients = clients if clients is not None else InMemoryOAuthClientRepo()
    users = users if users is not None else InMemoryUserRepo()
    if settings.is_dev:
        _seed_dev_data(clients, users)

    # codes and refresh tokens are handles into one store; access tokens
    # are self-contained protected tickets
    token_store = InMemoryTokenStore(clock)
    overrides: dict[str, object] = {
        "authorization_code_provider": SingleUseTokenProvider(token_store),
        "refresh_token_provider": SingleUseTokenProvider(token_store),
        "access_token_provider": FormatTokenProvider(),
    }
    if clock is not None:
        overrides["clock"] = clock
    options = OAuthServerOptions.from_settings(
        settings, provider=RegistryProvider(clients, users), **overrides
    )
    engine = ProtocolEngine(options)

    app = FastAPI(
        title="authserver",
        docs_url="/docs" if settings.is_dev else None,
        redoc_url="/redoc" if settings.is_dev else None,
    )
    app.state.settings = settings
    app.state.oauth_engine = engine
    app.state.client_repo = clients
    app.state.user_repo = users
    app.state.token_store = token_store

    # Last-added runs first:
    # RequestContext → Metrics → OAuth engine → routes
    app.add_middleware(OAuthServerMiddleware, engine=engine)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestContextMiddleware)

    app.include_router(metrics_router)
    app.include_router(health_router)
    app.include_router(login_router)
    app.add_api_route(
        settings.authorize_path,
        authorize_fallthrough,
        methods=["GET"],
        include_in_schema=False,
    )

    logger.info(
        "authserver started  env=%s log_level=%s port=%d authorize=%s token=%s "
        "insecure_http=%s",
        settings.app_env,
        settings.log_level,
        settings.port,
        settings.authorize_path,
        settings.token_path,
        "on" if settings.allow_insecure_http else "off",
    )
    return app


app = create_app()
