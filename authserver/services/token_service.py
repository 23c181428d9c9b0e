"""Signed cookie carrying a pending authorize request across the login page.

The authorize endpoint hands the host a PendingAuthorization when the
user still has to sign in.  The host keeps it in the browser as an HS256
JWT so no server-side session store is needed; the login handler
decodes it again and resumes the flow.

The signing key is derived from DATA_PROTECTION_SECRET with its own
purpose, so a pending-authorization JWT is never interchangeable with a
protected ticket.
"""

from __future__ import annotations

import hashlib
import hmac
import uuid
from datetime import UTC, datetime, timedelta

import jwt

from authserver.oauth.messages import PendingAuthorization

ALGORITHM = "HS256"
ISSUER = "authserver"
PENDING_AUDIENCE = "authserver-pending-authorization"
PENDING_TTL_MIN = 10
PENDING_COOKIE = "oauth_pending"


def _signing_key(secret: str) -> bytes:
    return hmac.new(
        secret.encode("utf-8"), b"authserver.pending-authorization.v1", hashlib.sha256
    ).digest()


def create_pending_token(
    pending: PendingAuthorization, *, secret: str, now: datetime | None = None
) -> str:
    now = now or datetime.now(UTC)
    payload = {
        "iss": ISSUER,
        "aud": PENDING_AUDIENCE,
        "exp": now + timedelta(minutes=PENDING_TTL_MIN),
        "iat": now,
        "jti": str(uuid.uuid4()),
        "req": pending.model_dump(exclude_none=True),
    }
    return jwt.encode(payload, _signing_key(secret), algorithm=ALGORITHM)


def decode_pending_token(token: str, *, secret: str) -> PendingAuthorization:
    """Verify the cookie and rebuild the pending request.

    Raises jwt.InvalidTokenError (expired, tampered, wrong audience) or
    pydantic.ValidationError when the embedded request is malformed.
    """
    payload = jwt.decode(
        token,
        _signing_key(secret),
        algorithms=[ALGORITHM],
        issuer=ISSUER,
        audience=PENDING_AUDIENCE,
        options={"require": ["exp", "iat", "jti"]},
    )
    return PendingAuthorization.model_validate(payload.get("req") or {})
