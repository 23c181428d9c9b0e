"""Authorize endpoint: validation order, error channels, code and implicit grants."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest
from fastapi import Request

from authserver.oauth.messages import AuthorizeRequest, PendingAuthorization
from authserver.oauth.provider import TokenProvider
from authserver.oauth.validation import ClientContext, ValidationResult
from authserver.services.token_providers import FormatTokenProvider
from authserver.tokens.ticket import AuthenticationTicket, ClaimsIdentity
from tests.conftest import (
    STUB_CLIENT_ID,
    STUB_REDIRECT_URI,
    FrozenClock,
    StubProvider,
    build_engine_app,
    engine_client,
    fragment_of,
    query_of,
)


def _authorize(client, **params: str):
    return client.get("/oauth/authorize", params=params)


class _RecordingProvider(StubProvider):
    """Counts hook invocations and can inject authorize-response extras."""

    def __init__(self, extras: dict[str, Any] | None = None) -> None:
        super().__init__()
        self.calls: list[str] = []
        self.extras = extras or {}

    async def validate_client_redirect_uri(
        self, request: Request, client: ClientContext
    ) -> ClientContext:
        self.calls.append("validate_client_redirect_uri")
        return await super().validate_client_redirect_uri(request, client)

    async def validate_authorize_request(
        self, request: Request, authorize_request: AuthorizeRequest, client: ClientContext
    ) -> ValidationResult:
        self.calls.append("validate_authorize_request")
        return ValidationResult.ok()

    async def authorization_endpoint_response(
        self,
        request: Request,
        ticket: AuthenticationTicket,
        authorize_request: AuthorizeRequest,
        *,
        access_token: str | None = None,
        code: str | None = None,
    ) -> dict[str, str]:
        return dict(self.extras)


# ---- phase 1: validation order and error channels ----


@pytest.mark.parametrize(
    "redirect_uri", ["https://cb#frag", "http://cb", "relative/path"]
)
def test_bad_redirect_uri_is_reported_inline_before_any_provider_call(
    clock: FrozenClock, redirect_uri: str
) -> None:
    provider = _RecordingProvider()
    client = engine_client(build_engine_app(provider, clock=clock))

    resp = _authorize(
        client, response_type="code", client_id=STUB_CLIENT_ID, redirect_uri=redirect_uri
    )

    assert resp.status_code == 400
    assert resp.text == "error: invalid_request\n"
    assert "location" not in resp.headers
    assert provider.calls == []


def test_unvalidated_client_gets_inline_error(clock: FrozenClock) -> None:
    client = engine_client(build_engine_app(StubProvider(), clock=clock))
    resp = _authorize(
        client, response_type="code", client_id="unknown", redirect_uri="https://evil"
    )
    assert resp.status_code == 400
    assert resp.text.startswith("error: invalid_request")
    assert resp.headers["cache-control"] == "no-cache"


def test_inline_error_can_be_rendered_by_the_application(clock: FrozenClock) -> None:
    app = build_engine_app(
        StubProvider(), clock=clock, application_can_display_errors=True
    )
    resp = _authorize(engine_client(app), response_type="code", client_id="unknown")
    assert resp.status_code == 400
    assert resp.json()["host_error"] == "invalid_request"


def test_missing_response_type_redirects_error_to_validated_client(
    clock: FrozenClock,
) -> None:
    client = engine_client(build_engine_app(StubProvider(), clock=clock))
    resp = _authorize(client, client_id=STUB_CLIENT_ID, state="xyz")
    assert resp.status_code == 302
    assert resp.headers["location"] == "https://cb?error=invalid_request"


def test_unsupported_response_type(clock: FrozenClock) -> None:
    client = engine_client(build_engine_app(StubProvider(), clock=clock))
    resp = _authorize(client, response_type="id_token", client_id=STUB_CLIENT_ID)
    assert resp.headers["location"] == "https://cb?error=unsupported_response_type"


def test_form_post_without_endpoint_is_rejected(clock: FrozenClock) -> None:
    client = engine_client(build_engine_app(StubProvider(), clock=clock))
    resp = _authorize(
        client, response_type="code", client_id=STUB_CLIENT_ID, response_mode="form_post"
    )
    assert query_of(resp.headers["location"])["error"] == "invalid_request"


class _RejectingProvider(StubProvider):
    async def validate_authorize_request(
        self, request: Request, authorize_request: AuthorizeRequest, client: ClientContext
    ) -> ValidationResult:
        return ValidationResult.failure("invalid_scope", "no such scope", "https://docs")


def test_provider_rejection_is_redirected_with_description(clock: FrozenClock) -> None:
    client = engine_client(build_engine_app(_RejectingProvider(), clock=clock))
    resp = _authorize(client, response_type="code", client_id=STUB_CLIENT_ID)
    assert resp.headers["location"] == (
        "https://cb?error=invalid_scope&error_description=no%20such%20scope"
        "&error_uri=https%3A%2F%2Fdocs"
    )


def test_valid_request_is_passed_to_host_with_pending_state(clock: FrozenClock) -> None:
    client = engine_client(build_engine_app(StubProvider(), clock=clock))
    resp = _authorize(
        client, response_type="code", client_id=STUB_CLIENT_ID, scope="read", state="s"
    )
    assert resp.status_code == 200
    pending = resp.json()["pending"]
    assert pending["client_id"] == STUB_CLIENT_ID
    assert pending["redirect_uri"] == STUB_REDIRECT_URI
    assert pending["requested_redirect_uri"] is None
    assert pending["state"] == "s"


# ---- phase 2: authorization code ----


def test_code_is_redirected_with_state(clock: FrozenClock, alice: ClaimsIdentity) -> None:
    app = build_engine_app(StubProvider({"abc": "https://cb"}), clock=clock, identity=alice)
    resp = _authorize(
        engine_client(app),
        response_type="code",
        client_id="abc",
        redirect_uri="https://cb",
        state="xyz",
    )
    assert resp.status_code == 302
    location = resp.headers["location"]
    assert location.startswith("https://cb?code=")
    assert location.endswith("&state=xyz")
    assert query_of(location)["code"]


def test_provider_extras_come_before_code(
    clock: FrozenClock, alice: ClaimsIdentity
) -> None:
    provider = _RecordingProvider({"session_state": "abc", "code": "forged"})
    app = build_engine_app(provider, clock=clock, identity=alice)
    resp = _authorize(engine_client(app), response_type="code", client_id=STUB_CLIENT_ID)
    location = resp.headers["location"]
    assert location.startswith("https://cb?session_state=abc&code=")
    assert query_of(location)["code"] != "forged"


def test_form_post_sends_code_to_form_post_endpoint(
    clock: FrozenClock, alice: ClaimsIdentity
) -> None:
    app = build_engine_app(
        StubProvider(),
        clock=clock,
        identity=alice,
        form_post_endpoint="https://server/form-post",
    )
    resp = _authorize(
        engine_client(app),
        response_type="code",
        client_id=STUB_CLIENT_ID,
        response_mode="form_post",
        state="s",
    )
    location = resp.headers["location"]
    assert location.startswith("https://server/form-post?code=")
    params = query_of(location)
    assert params["state"] == "s"
    assert params["redirect_uri"] == STUB_REDIRECT_URI


def test_code_provider_that_issues_nothing_is_an_error(
    clock: FrozenClock, alice: ClaimsIdentity
) -> None:
    app = build_engine_app(
        StubProvider(),
        clock=clock,
        identity=alice,
        authorization_code_provider=TokenProvider(),
    )
    resp = _authorize(engine_client(app), response_type="code", client_id=STUB_CLIENT_ID)
    assert resp.headers["location"] == "https://cb?error=unsupported_response_type"


# ---- phase 2: implicit ----


def test_implicit_grant_fragment(clock: FrozenClock, alice: ClaimsIdentity) -> None:
    clock.advance(microseconds=750_000)
    app = build_engine_app(StubProvider(), clock=clock, identity=alice)
    resp = _authorize(
        engine_client(app),
        response_type="token",
        client_id=STUB_CLIENT_ID,
        redirect_uri="https://cb",
        state="s1",
    )
    location = resp.headers["location"]
    assert location.startswith("https://cb#access_token=")
    assert location.endswith("&token_type=bearer&expires_in=3600&state=s1")
    assert "?" not in location


def test_implicit_access_token_is_readable_by_access_format(
    clock: FrozenClock, alice: ClaimsIdentity
) -> None:
    app = build_engine_app(
        _RecordingProvider({"extra": "1"}),
        clock=clock,
        identity=alice,
        access_token_provider=FormatTokenProvider(),
    )
    resp = _authorize(engine_client(app), response_type="token", client_id=STUB_CLIENT_ID)
    location = resp.headers["location"]
    assert location.endswith("&extra=1")

    options = app.state.oauth_engine.options
    ticket = options.access_token_format.unprotect(fragment_of(location)["access_token"])
    assert ticket is not None
    assert ticket.identity.name == "alice"
    assert ticket.properties.items["client_id"] == STUB_CLIENT_ID
    # never readable as a code
    assert options.authorization_code_format.unprotect(
        fragment_of(location)["access_token"]
    ) is None




# ---- resuming outside a request handler ----


def _pending() -> PendingAuthorization:
    return PendingAuthorization.from_request(
        AuthorizeRequest(response_type="code", client_id=STUB_CLIENT_ID, state="s"),
        ClientContext(STUB_CLIENT_ID).validated(STUB_REDIRECT_URI),
    )


def test_unauthenticated_identity_is_refused(clock: FrozenClock) -> None:
    engine = build_engine_app(StubProvider(), clock=clock).state.oauth_engine
    with pytest.raises(ValueError):
        asyncio.run(engine.complete_authorize(None, _pending(), ClaimsIdentity()))


def test_deny_redirects_access_denied(clock: FrozenClock) -> None:
    engine = build_engine_app(StubProvider(), clock=clock).state.oauth_engine
    resp = asyncio.run(engine.deny_authorize(None, _pending(), "user said no"))
    assert resp.status_code == 302
    assert resp.headers["location"] == (
        "https://cb?error=access_denied&error_description=user%20said%20no"
    )
