from __future__ import annotations

from datetime import UTC, datetime, timedelta

import jwt
import pytest

from authserver.oauth.messages import AuthorizeRequest, PendingAuthorization
from authserver.oauth.validation import ClientContext
from authserver.services import token_service

SECRET = "pending-test-secret-0123456789abcdef"


@pytest.fixture
def pending() -> PendingAuthorization:
    return PendingAuthorization.from_request(
        AuthorizeRequest(response_type="code", client_id="c1", scope="read", state="s"),
        ClientContext("c1").validated("https://cb"),
    )


def test_pending_token_round_trip(pending: PendingAuthorization) -> None:
    token = token_service.create_pending_token(pending, secret=SECRET)
    assert token_service.decode_pending_token(token, secret=SECRET) == pending


def test_pending_token_signed_with_other_secret(pending: PendingAuthorization) -> None:
    token = token_service.create_pending_token(pending, secret=SECRET)
    with pytest.raises(jwt.InvalidSignatureError):
        token_service.decode_pending_token(token, secret="other")


def test_expired_pending_token(pending: PendingAuthorization) -> None:
    issued = datetime.now(UTC) - timedelta(minutes=token_service.PENDING_TTL_MIN + 1)
    token = token_service.create_pending_token(pending, secret=SECRET, now=issued)
    with pytest.raises(jwt.ExpiredSignatureError):
        token_service.decode_pending_token(token, secret=SECRET)


def test_pending_token_is_not_signed_with_raw_secret(pending: PendingAuthorization) -> None:
    token = token_service.create_pending_token(pending, secret=SECRET)
    with pytest.raises(jwt.InvalidSignatureError):
        jwt.decode(
            token,
            SECRET,
            algorithms=[token_service.ALGORITHM],
            audience=token_service.PENDING_AUDIENCE,
        )
