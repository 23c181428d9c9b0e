"""Validation outcomes exchanged between the flows and the provider.

Every value here is immutable.  A provider hook receives one and returns a
new one built with ``validated()`` / ``rejected()``; nothing is mutated in
place, so a later step cannot silently clobber an earlier decision.

FIRST ERROR WINS
------------------
``rejected()`` on a result that already carries an error keeps the
original error.  A specific provider error like
``invalid_grant: code was already redeemed`` must not be replaced by
the generic default the engine would otherwise supply.
"""

from __future__ import annotations

import base64
import binascii
import dataclasses
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Literal

from starlette.responses import Response

from authserver.oauth.constants import Parameters
from authserver.tokens.ticket import AuthenticationTicket


@dataclass(frozen=True, slots=True)
class ValidationResult:
    validated: bool = False
    error: str | None = None
    error_description: str | None = None
    error_uri: str | None = None

    @property
    def has_error(self) -> bool:
        return bool(self.error)

    @classmethod
    def ok(cls) -> ValidationResult:
        return cls(validated=True)

    @classmethod
    def failure(
        cls,
        error: str,
        description: str | None = None,
        uri: str | None = None,
    ) -> ValidationResult:
        return cls(
            validated=False,
            error=error,
            error_description=description or None,
            error_uri=uri or None,
        )

    def rejected(
        self,
        error: str,
        description: str | None = None,
        uri: str | None = None,
    ) -> ValidationResult:
        if self.has_error:
            return dataclasses.replace(self, validated=False)
        return ValidationResult.failure(error, description, uri)


@dataclass(frozen=True, slots=True)
class ClientContext:
    """The client a request is made on behalf of.

    ``requested_redirect_uri`` is what the request carried; ``redirect_uri``
    is the target the provider resolved and approved.  Only a validated
    context with a resolved redirect target may receive error redirects.
    """

    client_id: str | None
    requested_redirect_uri: str | None = None
    redirect_uri: str | None = None
    result: ValidationResult = ValidationResult()

    @property
    def is_validated(self) -> bool:
        return self.result.validated

    def validated(self, redirect_uri: str | None = None) -> ClientContext:
        """Approve the client, optionally resolving its redirect target.

        When the request named a redirect_uri, a differently resolved one
        is refused and the context comes back unchanged.  So is a client
        left without any redirect target.
        """
        resolved = redirect_uri or self.requested_redirect_uri
        if not resolved:
            return self
        if (
            redirect_uri
            and self.requested_redirect_uri
            and redirect_uri != self.requested_redirect_uri
        ):
            return self
        return dataclasses.replace(
            self, redirect_uri=resolved, result=ValidationResult.ok()
        )

    def rejected(
        self,
        error: str,
        description: str | None = None,
        uri: str | None = None,
    ) -> ClientContext:
        return dataclasses.replace(
            self, result=self.result.rejected(error, description, uri)
        )


@dataclass(frozen=True, slots=True)
class ClientAuthenticationContext:
    """Raw client credentials available on a token request.

    The provider decides which credential source it trusts and returns a
    ClientContext through ``validated()`` or ``rejected()``.
    """

    parameters: Mapping[str, str]
    authorization: str | None = None

    @property
    def client_id(self) -> str | None:
        return self.parameters.get(Parameters.CLIENT_ID) or None

    def basic_credentials(self) -> tuple[str, str] | None:
        """Decode an ``Authorization: Basic`` header into (id, secret)."""
        if not self.authorization:
            return None
        scheme, _, encoded = self.authorization.partition(" ")
        if scheme.lower() != "basic" or not encoded:
            return None
        try:
            decoded = base64.b64decode(encoded.strip(), validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError):
            return None
        client_id, sep, client_secret = decoded.partition(":")
        if not sep or not client_id:
            return None
        return client_id, client_secret

    def form_credentials(self) -> tuple[str, str | None] | None:
        client_id = self.parameters.get(Parameters.CLIENT_ID)
        if not client_id:
            return None
        return client_id, self.parameters.get(Parameters.CLIENT_SECRET)

    def validated(self, client_id: str | None = None) -> ClientContext:
        return ClientContext(
            client_id=client_id or self.client_id, result=ValidationResult.ok()
        )

    def rejected(
        self,
        error: str,
        description: str | None = None,
        uri: str | None = None,
    ) -> ClientContext:
        return ClientContext(
            client_id=self.client_id,
            result=ValidationResult.failure(error, description, uri),
        )

    def unvalidated(self) -> ClientContext:
        return ClientContext(client_id=self.client_id)


@dataclass(frozen=True, slots=True)
class GrantResult:
    ticket: AuthenticationTicket | None = None
    result: ValidationResult = ValidationResult()

    @classmethod
    def granted(cls, ticket: AuthenticationTicket) -> GrantResult:
        return cls(ticket=ticket, result=ValidationResult.ok())

    @classmethod
    def rejected(
        cls,
        error: str | None = None,
        description: str | None = None,
        uri: str | None = None,
    ) -> GrantResult:
        if error is None:
            return cls()
        return cls(result=ValidationResult.failure(error, description, uri))


@dataclass(frozen=True, slots=True)
class TokenIssuance:
    """The provider's final word on a token response."""

    ticket: AuthenticationTicket
    issued: bool = True
    additional_response_parameters: dict[str, Any] = field(default_factory=dict)

    def rejected(self) -> TokenIssuance:
        return dataclasses.replace(self, issued=False)


EndpointKind = Literal["authorize", "token"]


@dataclass(frozen=True, slots=True)
class EndpointMatch:
    """Which OAuth endpoint (if any) a request targets.

    ``response`` set means the provider already answered the request;
    ``skipped`` means the request is handed to the next handler untouched.
    """

    endpoint: EndpointKind | None = None
    response: Response | None = None
    skipped: bool = False

    @property
    def is_authorize_endpoint(self) -> bool:
        return self.endpoint == "authorize"

    @property
    def is_token_endpoint(self) -> bool:
        return self.endpoint == "token"

    def matches_authorize_endpoint(self) -> EndpointMatch:
        return dataclasses.replace(self, endpoint="authorize")

    def matches_token_endpoint(self) -> EndpointMatch:
        return dataclasses.replace(self, endpoint="token")

    def matches_nothing(self) -> EndpointMatch:
        return dataclasses.replace(self, endpoint=None)

    def handled(self, response: Response) -> EndpointMatch:
        return dataclasses.replace(self, response=response)

    def skip(self) -> EndpointMatch:
        return dataclasses.replace(self, skipped=True)
