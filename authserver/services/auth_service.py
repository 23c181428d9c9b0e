from __future__ import annotations

import logging

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHash, VerificationError, VerifyMismatchError

from authserver.models.oauth_client import OAuthClient
from authserver.models.user import ResourceOwner
from authserver.repos.oauth_client_repo import OAuthClientRepo
from authserver.repos.user_repo import UserRepo

# Argon2 hash strings encode parameters + salt; the same hasher serves
# resource-owner passwords and confidential-client secrets.
logger = logging.getLogger(__name__)

_ph = PasswordHasher()


def hash_secret(plain: str) -> str:
    if not plain:
        raise ValueError("secret must be non-empty")
    return _ph.hash(plain)


def verify_secret(plain: str | None, secret_hash: str | None) -> bool:
    if not plain or not secret_hash:
        return False
    try:
        return _ph.verify(secret_hash, plain)
    except (VerifyMismatchError, VerificationError, InvalidHash):
        return False


def authenticate_user(
    repo: UserRepo, username: str | None, password: str | None
) -> ResourceOwner | None:
    if not username or not password:
        return None
    user = repo.get_by_username(username)
    if user is None or not user.is_active:
        return None
    if not verify_secret(password, user.password_hash):
        return None

    try:
        if _ph.check_needs_rehash(user.password_hash):
            repo.update_password_hash(user.id, _ph.hash(password))
            logger.info("Rehashed password for user=%s", user.id)
    except InvalidHash:
        return None

    return user


def authenticate_client(
    repo: OAuthClientRepo, client_id: str | None, client_secret: str | None
) -> OAuthClient | None:
    """Public clients authenticate by id alone; confidential ones need the secret."""
    client = repo.get(client_id) if client_id else None
    if client is None:
        return None
    if client.is_public:
        return client if not client_secret else None
    if not verify_secret(client_secret, client.secret_hash):
        return None
    return client
