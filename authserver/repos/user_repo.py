from __future__ import annotations

from dataclasses import replace
from typing import Protocol
from uuid import UUID

from authserver.models.user import ResourceOwner


class UserRepo(Protocol):
    def get_by_id(self, user_id: UUID) -> ResourceOwner | None: ...
    def get_by_username(self, username: str) -> ResourceOwner | None: ...
    def add(self, user: ResourceOwner) -> None: ...
    def update_password_hash(self, user_id: UUID, password_hash: str) -> None: ...


class InMemoryUserRepo:
    def __init__(self) -> None:
        self._by_username: dict[str, ResourceOwner] = {}
        self._by_id: dict[UUID, ResourceOwner] = {}

    def get_by_id(self, user_id: UUID) -> ResourceOwner | None:
        return self._by_id.get(user_id)

    def get_by_username(self, username: str) -> ResourceOwner | None:
        return self._by_username.get(username.strip().lower())

    def add(self, user: ResourceOwner) -> None:
        if user.username in self._by_username:
            raise ValueError("username already exists")
        self._by_username[user.username] = user
        self._by_id[user.id] = user

    def update_password_hash(self, user_id: UUID, password_hash: str) -> None:
        u = self._by_id.get(user_id)
        if u is None:
            raise KeyError("user not found")

        updated = replace(u, password_hash=password_hash)
        self._by_id[user_id] = updated
        self._by_username[updated.username] = updated
