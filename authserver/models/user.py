from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID, uuid4


@dataclass(frozen=True, slots=True)
class ResourceOwner:
    """A user who can sign in and authorize clients."""

    id: UUID
    username: str
    password_hash: str
    roles: tuple[str, ...] = ()
    is_active: bool = True

    @staticmethod
    def new(
        *, username: str, password_hash: str, roles: tuple[str, ...] = ()
    ) -> ResourceOwner:
        return ResourceOwner(
            id=uuid4(),
            username=username.strip().lower(),
            password_hash=password_hash,
            roles=roles,
            is_active=True,
        )
