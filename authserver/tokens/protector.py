"""Data protection for tickets at rest and in transit.

The engine only needs an opaque ``protect``/``unprotect`` pair over bytes.
FernetProtector is the stock implementation: AES-128-CBC + HMAC-SHA256
via the ``cryptography`` package, with a per-purpose key so an access
token can never be replayed as an authorization code or refresh token.
"""

from __future__ import annotations

import base64
from typing import Protocol, runtime_checkable

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

__all__ = ["FernetProtector", "InvalidToken", "Protector"]


@runtime_checkable
class Protector(Protocol):
    def protect(self, data: bytes) -> bytes:
        """Encrypt and authenticate ``data``."""
        ...

    def unprotect(self, data: bytes) -> bytes:
        """Reverse ``protect``.  Raises on tampered or foreign input."""
        ...


class FernetProtector:
    """Fernet-based protector keyed from a shared secret and purpose strings.

    Two protectors built from the same secret but different purposes
    cannot read each other's output.
    """

    _SALT = b"authserver.data-protection.v1"

    def __init__(self, key: bytes) -> None:
        self._fernet = Fernet(key)

    @classmethod
    def from_secret(cls, secret: str, *purposes: str) -> FernetProtector:
        if not secret:
            raise ValueError("data protection secret must be non-empty")
        hkdf = HKDF(
            algorithm=hashes.SHA256(),
            length=32,
            salt=cls._SALT,
            info="|".join(purposes).encode("utf-8"),
        )
        derived = hkdf.derive(secret.encode("utf-8"))
        return cls(base64.urlsafe_b64encode(derived))

    def protect(self, data: bytes) -> bytes:
        return self._fernet.encrypt(data)

    def unprotect(self, data: bytes) -> bytes:
        return self._fernet.decrypt(data)
