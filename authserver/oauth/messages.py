"""Parsed protocol messages and wire-level response models.

Requests are frozen dataclasses parsed once from the query string or form
body.  Responses are pydantic models so field order and omission of
empty optionals are handled in one place.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field

from pydantic import BaseModel, ConfigDict

from authserver.oauth.constants import (
    GrantTypes,
    Parameters,
    ResponseModes,
    ResponseTypes,
    TokenTypes,
)
from authserver.oauth.validation import ClientContext, ValidationResult


def _get(params: Mapping[str, str], name: str) -> str | None:
    return params.get(name) or None


# ---------------------------------------------------------------------------
# Authorize endpoint
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class AuthorizeRequest:
    response_type: str | None
    client_id: str | None
    redirect_uri: str | None = None
    scope: str | None = None
    state: str | None = None
    response_mode: str | None = None

    @classmethod
    def from_query(cls, query: Mapping[str, str]) -> AuthorizeRequest:
        return cls(
            response_type=_get(query, Parameters.RESPONSE_TYPE),
            client_id=_get(query, Parameters.CLIENT_ID),
            redirect_uri=_get(query, Parameters.REDIRECT_URI),
            scope=_get(query, Parameters.SCOPE),
            state=_get(query, Parameters.STATE),
            response_mode=_get(query, Parameters.RESPONSE_MODE),
        )

    @property
    def scopes(self) -> tuple[str, ...]:
        return tuple((self.scope or "").split())

    @property
    def is_authorization_code_grant_type(self) -> bool:
        return self.response_type == ResponseTypes.CODE

    @property
    def is_implicit_grant_type(self) -> bool:
        return self.response_type == ResponseTypes.TOKEN

    @property
    def is_form_post_response_mode(self) -> bool:
        return self.response_mode == ResponseModes.FORM_POST


class PendingAuthorization(BaseModel):
    """An approved authorize request waiting for the user to sign in.

    Produced by the first leg of the authorize flow.  The host keeps it
    (session, signed cookie, store) and hands it back together with the
    signed-in identity to finish the flow.  Only validated requests are
    ever turned into one.
    """

    model_config = ConfigDict(frozen=True)

    client_id: str | None
    redirect_uri: str
    requested_redirect_uri: str | None = None
    response_type: str
    response_mode: str | None = None
    scope: str | None = None
    state: str | None = None

    @classmethod
    def from_request(
        cls, request: AuthorizeRequest, client: ClientContext
    ) -> PendingAuthorization:
        if not client.is_validated or not client.redirect_uri:
            raise ValueError("only validated clients can be resumed")
        if request.response_type is None:
            raise ValueError("response_type is required")
        return cls(
            client_id=request.client_id,
            redirect_uri=client.redirect_uri,
            requested_redirect_uri=request.redirect_uri,
            response_type=request.response_type,
            response_mode=request.response_mode,
            scope=request.scope,
            state=request.state,
        )

    @property
    def authorize_request(self) -> AuthorizeRequest:
        return AuthorizeRequest(
            response_type=self.response_type,
            client_id=self.client_id,
            redirect_uri=self.requested_redirect_uri,
            scope=self.scope,
            state=self.state,
            response_mode=self.response_mode,
        )

    @property
    def client(self) -> ClientContext:
        return ClientContext(
            client_id=self.client_id,
            requested_redirect_uri=self.requested_redirect_uri,
            redirect_uri=self.redirect_uri,
            result=ValidationResult.ok(),
        )


# ---------------------------------------------------------------------------
# Token endpoint
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class AuthorizationCodeGrant:
    code: str | None
    redirect_uri: str | None


@dataclass(frozen=True, slots=True)
class ResourceOwnerPasswordGrant:
    username: str | None
    password: str | None
    scope: str | None


@dataclass(frozen=True, slots=True)
class ClientCredentialsGrant:
    scope: str | None


@dataclass(frozen=True, slots=True)
class RefreshTokenGrant:
    refresh_token: str | None
    scope: str | None


@dataclass(frozen=True, slots=True)
class CustomExtensionGrant:
    grant_type: str
    parameters: Mapping[str, str]


Grant = (
    AuthorizationCodeGrant
    | ResourceOwnerPasswordGrant
    | ClientCredentialsGrant
    | RefreshTokenGrant
    | CustomExtensionGrant
)


@dataclass(frozen=True, slots=True)
class TokenRequest:
    grant_type: str | None
    grant: Grant | None
    parameters: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_form(cls, form: Mapping[str, str]) -> TokenRequest:
        params = dict(form)
        grant_type = _get(params, Parameters.GRANT_TYPE)
        grant: Grant | None
        if grant_type == GrantTypes.AUTHORIZATION_CODE:
            grant = AuthorizationCodeGrant(
                code=_get(params, Parameters.CODE),
                redirect_uri=_get(params, Parameters.REDIRECT_URI),
            )
        elif grant_type == GrantTypes.PASSWORD:
            grant = ResourceOwnerPasswordGrant(
                username=_get(params, Parameters.USERNAME),
                password=_get(params, Parameters.PASSWORD),
                scope=_get(params, Parameters.SCOPE),
            )
        elif grant_type == GrantTypes.CLIENT_CREDENTIALS:
            grant = ClientCredentialsGrant(scope=_get(params, Parameters.SCOPE))
        elif grant_type == GrantTypes.REFRESH_TOKEN:
            grant = RefreshTokenGrant(
                refresh_token=_get(params, Parameters.REFRESH_TOKEN),
                scope=_get(params, Parameters.SCOPE),
            )
        elif grant_type:
            grant = CustomExtensionGrant(grant_type=grant_type, parameters=params)
        else:
            grant = None
        return cls(grant_type=grant_type, grant=grant, parameters=params)


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class TokenResponse(BaseModel):
    """Successful token response.  Provider extras follow the standard fields."""

    model_config = ConfigDict(extra="allow")

    access_token: str
    token_type: str = TokenTypes.BEARER
    expires_in: int | None = None
    refresh_token: str | None = None


class ErrorResponse(BaseModel):
    error: str
    error_description: str | None = None
    error_uri: str | None = None
