from __future__ import annotations

from dataclasses import dataclass

from authserver.oauth.constants import GrantTypes


@dataclass(frozen=True, slots=True)
class OAuthClient:
    client_id: str
    redirect_uris: tuple[str, ...]
    allowed_scopes: frozenset[str]
    allowed_grant_types: frozenset[str]
    # argon2 hash; None for public clients (no secret to present)
    secret_hash: str | None = None
    allow_implicit: bool = False

    @property
    def is_public(self) -> bool:
        return self.secret_hash is None

    @staticmethod
    def new(
        *,
        client_id: str,
        redirect_uris: tuple[str, ...] = (),
        allowed_scopes: frozenset[str] = frozenset(),
        allowed_grant_types: frozenset[str] = frozenset(
            {GrantTypes.AUTHORIZATION_CODE, GrantTypes.REFRESH_TOKEN}
        ),
        secret_hash: str | None = None,
        allow_implicit: bool = False,
    ) -> OAuthClient:
        if not client_id:
            raise ValueError("client_id must be non-empty")
        return OAuthClient(
            client_id=client_id,
            redirect_uris=tuple(redirect_uris),
            allowed_scopes=frozenset(allowed_scopes),
            allowed_grant_types=frozenset(allowed_grant_types),
            secret_hash=secret_hash,
            allow_implicit=allow_implicit,
        )
