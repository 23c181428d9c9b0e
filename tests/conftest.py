from __future__ import annotations

import dataclasses
import sys
from collections.abc import Mapping
from datetime import UTC, datetime, timedelta
from pathlib import Path
from urllib.parse import parse_qs, urlsplit

import pytest
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.testclient import TestClient
from starlette.responses import Response

# Ensure repo root is on sys.path so `import authserver` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from authserver.core.config import SETTINGS, Settings  # noqa: E402
from authserver.main import create_app  # noqa: E402
from authserver.models.oauth_client import OAuthClient  # noqa: E402
from authserver.models.user import ResourceOwner  # noqa: E402
from authserver.oauth.constants import Errors, GrantTypes  # noqa: E402
from authserver.oauth.engine import OAuthServerMiddleware, ProtocolEngine  # noqa: E402
from authserver.oauth.options import OAuthServerOptions  # noqa: E402
from authserver.oauth.provider import OAuthServerProvider  # noqa: E402
from authserver.oauth.validation import (  # noqa: E402
    ClientAuthenticationContext,
    ClientContext,
)
from authserver.repos.oauth_client_repo import InMemoryOAuthClientRepo  # noqa: E402
from authserver.repos.token_store import InMemoryTokenStore  # noqa: E402
from authserver.repos.user_repo import InMemoryUserRepo  # noqa: E402
from authserver.services import auth_service  # noqa: E402
from authserver.services.registry_provider import user_identity  # noqa: E402
from authserver.services.token_providers import SingleUseTokenProvider  # noqa: E402
from authserver.tokens.ticket import ClaimsIdentity  # noqa: E402

FROZEN_NOW = datetime(2024, 1, 15, 12, 0, 0, tzinfo=UTC)

DATA_PROTECTION_SECRET = "test-data-protection-secret"

WEB_CLIENT_ID = "web-app"
WEB_REDIRECT_URI = "https://client.example.com/cb"
SERVICE_CLIENT_ID = "backend"
SERVICE_CLIENT_SECRET = "backend-secret"
USERNAME = "alice"
PASSWORD = "alice-password"

TEST_SETTINGS: Settings = dataclasses.replace(
    SETTINGS,
    app_env="test",
    log_level="warning",
    log_json=False,
    authorize_path="/oauth/authorize",
    token_path="/oauth/token",
    allow_insecure_http=False,
    authorization_code_lifetime_sec=300,
    access_token_lifetime_sec=3600,
    refresh_token_lifetime_sec=14 * 24 * 3600,
    form_post_endpoint=None,
    application_can_display_errors=False,
    data_protection_secret=DATA_PROTECTION_SECRET,
)


class FrozenClock:
    """Clock that only moves when a test says so."""

    def __init__(self, now: datetime = FROZEN_NOW) -> None:
        self.now = now

    def utcnow(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


# ---------------------------------------------------------------------------
# Sample host application (registry provider, login page)
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def password_hashes() -> dict[str, str]:
    """argon2 is deliberately slow; hash the fixtures once per session."""
    return {
        SERVICE_CLIENT_SECRET: auth_service.hash_secret(SERVICE_CLIENT_SECRET),
        PASSWORD: auth_service.hash_secret(PASSWORD),
    }


@pytest.fixture
def client_repo(password_hashes: dict[str, str]) -> InMemoryOAuthClientRepo:
    repo = InMemoryOAuthClientRepo()
    repo.register(
        OAuthClient.new(
            client_id=WEB_CLIENT_ID,
            redirect_uris=(WEB_REDIRECT_URI,),
            allowed_scopes=frozenset({"read", "write"}),
            allowed_grant_types=frozenset(
                {
                    GrantTypes.AUTHORIZATION_CODE,
                    GrantTypes.REFRESH_TOKEN,
                    GrantTypes.PASSWORD,
                }
            ),
            allow_implicit=True,
        )
    )
    repo.register(
        OAuthClient.new(
            client_id=SERVICE_CLIENT_ID,
            allowed_scopes=frozenset({"read"}),
            allowed_grant_types=frozenset(
                {GrantTypes.CLIENT_CREDENTIALS, GrantTypes.REFRESH_TOKEN}
            ),
            secret_hash=password_hashes[SERVICE_CLIENT_SECRET],
        )
    )
    return repo


@pytest.fixture
def user_repo(password_hashes: dict[str, str]) -> InMemoryUserRepo:
    repo = InMemoryUserRepo()
    repo.add(
        ResourceOwner.new(
            username=USERNAME,
            password_hash=password_hashes[PASSWORD],
            roles=("user", "admin"),
        )
    )
    return repo


@pytest.fixture
def app(
    clock: FrozenClock,
    client_repo: InMemoryOAuthClientRepo,
    user_repo: InMemoryUserRepo,
) -> FastAPI:
    return create_app(TEST_SETTINGS, clients=client_repo, users=user_repo, clock=clock)


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    return TestClient(app, base_url="https://testserver", follow_redirects=False)


# ---------------------------------------------------------------------------
# Bare engine with a configurable provider
# ---------------------------------------------------------------------------

STUB_CLIENT_ID = "c1"
STUB_REDIRECT_URI = "https://cb"


class StubProvider(OAuthServerProvider):
    """Trusts client c1 (redirect https://cb); everything else is default."""

    def __init__(self, clients: Mapping[str, str] | None = None) -> None:
        self.clients = dict(clients or {STUB_CLIENT_ID: STUB_REDIRECT_URI})

    async def validate_client_redirect_uri(
        self, request: Request, client: ClientContext
    ) -> ClientContext:
        registered = self.clients.get(client.client_id or "")
        if registered is None:
            return client
        if client.requested_redirect_uri and client.requested_redirect_uri != registered:
            return client.rejected(Errors.INVALID_REQUEST)
        return client.validated(registered)

    async def validate_client_authentication(
        self, request: Request, context: ClientAuthenticationContext
    ) -> ClientContext:
        if context.client_id in self.clients:
            return context.validated()
        return context.unvalidated()


def build_engine_app(
    provider: OAuthServerProvider,
    *,
    clock: FrozenClock,
    identity: ClaimsIdentity | None = None,
    **overrides: object,
) -> FastAPI:
    """Engine in front of a tiny host.

    The authorize fallthrough route completes pending requests straight
    away with ``identity`` when one is given, so a single GET runs the
    whole authorize flow.
    """
    values: dict[str, object] = {
        "provider": provider,
        "clock": clock,
        "data_protection_secret": DATA_PROTECTION_SECRET,
        "authorization_code_provider": SingleUseTokenProvider(InMemoryTokenStore(clock)),
    }
    values.update(overrides)
    engine = ProtocolEngine(OAuthServerOptions(**values))  # type: ignore[arg-type]

    app = FastAPI()
    app.state.oauth_engine = engine
    app.add_middleware(OAuthServerMiddleware, engine=engine)

    @app.get("/oauth/authorize")
    async def authorize_fallthrough(request: Request) -> Response:
        error = getattr(request.state, "oauth_error", None)
        if error:
            return JSONResponse(
                {
                    "host_error": error,
                    "description": getattr(request.state, "oauth_error_description", None),
                },
                status_code=400,
            )
        pending = getattr(request.state, "oauth_pending", None)
        if pending is None:
            return JSONResponse({"pending": None}, status_code=404)
        if identity is None:
            return JSONResponse({"pending": pending.model_dump()})
        response = await engine.complete_authorize(request, pending, identity)
        return response or JSONResponse({"completed": False})

    @app.get("/other")
    async def other() -> dict:
        return {"host": True}

    @app.post("/oauth/token")
    async def token_fallthrough() -> dict:
        return {"host": True}

    return app


def engine_client(app: FastAPI, *, https: bool = True) -> TestClient:
    base_url = "https://testserver" if https else "http://testserver"
    return TestClient(app, base_url=base_url, follow_redirects=False)


@pytest.fixture
def alice() -> ClaimsIdentity:
    return user_identity("alice", subject="u-1", roles=("user",))


# ---------------------------------------------------------------------------
# URL helpers
# ---------------------------------------------------------------------------


def query_of(location: str) -> dict[str, str]:
    return {k: v[0] for k, v in parse_qs(urlsplit(location).query).items()}


def fragment_of(location: str) -> dict[str, str]:
    return {k: v[0] for k, v in parse_qs(urlsplit(location).fragment).items()}
