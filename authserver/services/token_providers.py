"""Ready-made TokenProvider implementations.

FormatTokenProvider
    Stateless.  The token IS the protected ticket.  Right for access
    tokens; for refresh tokens it means they cannot be revoked early.

SingleUseTokenProvider
    The client receives a random handle; the protected ticket is stored
    under sha256(handle).  ``receive`` consumes the entry, so a second
    redemption of the same handle finds nothing and the flow answers
    invalid_grant.  Use it for authorization codes (RFC 6749 §4.1.2
    requires single use) and for rotating refresh tokens.

    Only the hash is stored: a leaked store dump does not yield
    redeemable handles.  The ticket expiry travels to the store so abandoned handles are
    evicted instead of piling up.
"""

from __future__ import annotations

import hashlib
import logging
import secrets

from starlette.requests import Request

from authserver.oauth.provider import TokenProvider
from authserver.repos.token_store import TokenStore
from authserver.tokens.format import TicketDataFormat
from authserver.tokens.ticket import AuthenticationTicket

logger = logging.getLogger(__name__)


def hash_handle(handle: str) -> str:
    return hashlib.sha256(handle.encode("utf-8")).hexdigest()


class FormatTokenProvider(TokenProvider):
    async def create(
        self, request: Request, ticket: AuthenticationTicket, fmt: TicketDataFormat
    ) -> str | None:
        return fmt.protect(ticket)


class SingleUseTokenProvider(TokenProvider):
    def __init__(self, store: TokenStore, *, handle_bytes: int = 32) -> None:
        self._store = store
        self._handle_bytes = handle_bytes

    async def create(
        self, request: Request, ticket: AuthenticationTicket, fmt: TicketDataFormat
    ) -> str | None:
        handle = secrets.token_urlsafe(self._handle_bytes)
        await self._store.add(
            hash_handle(handle), fmt.protect(ticket), ticket.properties.expires_utc
        )
        return handle

    async def receive(
        self, request: Request, token: str | None, fmt: TicketDataFormat
    ) -> AuthenticationTicket | None:
        if not token:
            return None
        protected = await self._store.consume(hash_handle(token))
        if protected is None:
            logger.debug("Single-use token unknown or already redeemed")
            return None
        return fmt.unprotect(protected)
