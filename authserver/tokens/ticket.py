"""Security ticket model: identity, claims, and the property bag.

A ticket is what every opaque artifact this server hands out actually
carries: authorization codes, access tokens and refresh tokens are all
a protected, encoded ticket (or a handle that points at one).

    AuthenticationTicket
      ├── authentication_scheme
      ├── identity: ClaimsIdentity
      │     ├── authentication_type, name_claim_type, role_claim_type
      │     └── claims: (Claim, ...)
      └── properties: AuthenticationProperties
            ├── .issued / .expires   (RFC 1123, whole seconds)
            └── extension items      (client_id, redirect_uri, ...)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from email.utils import format_datetime, parsedate_to_datetime

NAME_CLAIM_TYPE = "http://schemas.xmlsoap.org/ws/2005/05/identity/claims/name"
ROLE_CLAIM_TYPE = "http://schemas.microsoft.com/ws/2008/06/identity/claims/role"
STRING_VALUE_TYPE = "http://www.w3.org/2001/XMLSchema#string"
LOCAL_AUTHORITY = "LOCAL AUTHORITY"

ISSUED_KEY = ".issued"
EXPIRES_KEY = ".expires"


@dataclass(frozen=True, slots=True)
class Claim:
    type: str
    value: str
    value_type: str = STRING_VALUE_TYPE
    issuer: str = LOCAL_AUTHORITY
    original_issuer: str | None = None

    def __post_init__(self) -> None:
        if self.original_issuer is None:
            object.__setattr__(self, "original_issuer", self.issuer)


@dataclass(frozen=True, slots=True)
class ClaimsIdentity:
    claims: tuple[Claim, ...] = ()
    authentication_type: str = ""
    name_claim_type: str = NAME_CLAIM_TYPE
    role_claim_type: str = ROLE_CLAIM_TYPE

    @property
    def name(self) -> str | None:
        return self.find_first(self.name_claim_type)

    @property
    def roles(self) -> tuple[str, ...]:
        return tuple(c.value for c in self.claims if c.type == self.role_claim_type)

    @property
    def is_authenticated(self) -> bool:
        return bool(self.authentication_type)

    def find_first(self, claim_type: str) -> str | None:
        for claim in self.claims:
            if claim.type == claim_type:
                return claim.value
        return None


def _format_utc(value: datetime) -> str:
    return format_datetime(value.astimezone(UTC), usegmt=True)


def _parse_utc(raw: str | None) -> datetime | None:
    if not raw:
        return None
    try:
        return parsedate_to_datetime(raw).astimezone(UTC)
    except (TypeError, ValueError):
        return None


class AuthenticationProperties:
    """String-keyed metadata attached to a ticket.

    Timestamps live in the same dictionary as the extension items so the
    wire format only ever has to deal with strings.  They are stored at
    whole-second precision; anything finer does not survive a round trip.
    """

    __slots__ = ("items",)

    def __init__(self, items: dict[str, str] | None = None) -> None:
        self.items: dict[str, str] = dict(items or {})

    @property
    def issued_utc(self) -> datetime | None:
        return _parse_utc(self.items.get(ISSUED_KEY))

    @issued_utc.setter
    def issued_utc(self, value: datetime | None) -> None:
        self._set_date(ISSUED_KEY, value)

    @property
    def expires_utc(self) -> datetime | None:
        return _parse_utc(self.items.get(EXPIRES_KEY))

    @expires_utc.setter
    def expires_utc(self, value: datetime | None) -> None:
        self._set_date(EXPIRES_KEY, value)

    def _set_date(self, key: str, value: datetime | None) -> None:
        if value is None:
            self.items.pop(key, None)
        else:
            self.items[key] = _format_utc(value)

    def copy(self) -> AuthenticationProperties:
        return AuthenticationProperties(self.items)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AuthenticationProperties):
            return NotImplemented
        return self.items == other.items

    def __repr__(self) -> str:
        return f"AuthenticationProperties({self.items!r})"


@dataclass(slots=True)
class AuthenticationTicket:
    identity: ClaimsIdentity
    properties: AuthenticationProperties = field(
        default_factory=AuthenticationProperties
    )
    authentication_scheme: str = ""

    def __post_init__(self) -> None:
        if not self.authentication_scheme:
            self.authentication_scheme = self.identity.authentication_type

    def copy(self) -> AuthenticationTicket:
        return AuthenticationTicket(
            identity=self.identity,
            properties=self.properties.copy(),
            authentication_scheme=self.authentication_scheme,
        )

    def is_expired(self, now: datetime) -> bool:
        """True when no expiry is recorded or it lies before ``now``.

        Both sides are compared at whole-second precision.
        """
        expires = self.properties.expires_utc
        if expires is None:
            return True
        return expires < now.replace(microsecond=0)
