"""Ticket <-> opaque string pipeline.

    issue:   ticket → TicketSerializer → Protector.protect → base64url (no padding)
    consume: base64url → Protector.unprotect → TicketSerializer → ticket | None

Anything that goes wrong while consuming (bad base64, wrong key, tampered
bytes, unknown format version, truncated data) comes back as None.  The
flows map None to invalid_grant and never surface decoding detail.
"""

from __future__ import annotations

import base64
import binascii
import logging

from authserver.tokens.protector import InvalidToken, Protector
from authserver.tokens.serializer import TicketFormatError, TicketSerializer
from authserver.tokens.ticket import AuthenticationTicket

logger = logging.getLogger(__name__)


def base64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def base64url_decode(text: str) -> bytes:
    padded = text + "=" * (-len(text) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii"))


class TicketDataFormat:
    def __init__(
        self, protector: Protector, serializer: TicketSerializer | None = None
    ) -> None:
        self._protector = protector
        self._serializer = serializer or TicketSerializer()

    def protect(self, ticket: AuthenticationTicket) -> str:
        data = self._serializer.serialize(ticket)
        return base64url_encode(self._protector.protect(data))

    def unprotect(self, protected_text: str | None) -> AuthenticationTicket | None:
        if not protected_text:
            return None
        try:
            protected = base64url_decode(protected_text)
            data = self._protector.unprotect(protected)
            return self._serializer.deserialize(data)
        except (binascii.Error, InvalidToken, TicketFormatError, ValueError):
            logger.debug("Ticket could not be unprotected")
            return None
