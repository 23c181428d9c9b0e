"""OAuth policy backed by the in-memory client registry and user repo.

This is the provider the sample host wires into the protocol engine.  It
answers every decision point the engine delegates:

  * redirect_uri must be one of the client's registered URIs (exact
    match).  A client with a single registration may omit it.
  * requested scopes must be a subset of the client's allowed scopes.
  * token requests authenticate with HTTP Basic or form credentials;
    confidential clients must present their secret.
  * a client may only use the grant types it was registered for; an
    unregistered extension grant is unsupported_grant_type.
"""

from __future__ import annotations

import logging
from typing import Any

from starlette.concurrency import run_in_threadpool
from starlette.requests import Request

from authserver.models.oauth_client import OAuthClient
from authserver.oauth.constants import Errors, Extra, GrantTypes, Parameters
from authserver.oauth.messages import (
    AuthorizeRequest,
    ClientCredentialsGrant,
    CustomExtensionGrant,
    ResourceOwnerPasswordGrant,
    TokenRequest,
)
from authserver.oauth.provider import OAuthServerProvider
from authserver.oauth.validation import (
    ClientAuthenticationContext,
    ClientContext,
    GrantResult,
    ValidationResult,
)
from authserver.repos.oauth_client_repo import OAuthClientRepo
from authserver.repos.user_repo import UserRepo
from authserver.services import auth_service
from authserver.tokens.ticket import (
    NAME_CLAIM_TYPE,
    ROLE_CLAIM_TYPE,
    AuthenticationProperties,
    AuthenticationTicket,
    Claim,
    ClaimsIdentity,
)

logger = logging.getLogger(__name__)

BEARER_AUTHENTICATION_TYPE = "Bearer"
SUBJECT_CLAIM_TYPE = "sub"
SCOPE_PROPERTY = "scope"


def _scopes(raw: str | None) -> frozenset[str]:
    return frozenset((raw or "").split())


def user_identity(
    username: str,
    *,
    subject: str | None = None,
    roles: tuple[str, ...] = (),
    authentication_type: str = BEARER_AUTHENTICATION_TYPE,
) -> ClaimsIdentity:
    claims = [Claim(NAME_CLAIM_TYPE, username)]
    if subject:
        claims.append(Claim(SUBJECT_CLAIM_TYPE, subject))
    claims.extend(Claim(ROLE_CLAIM_TYPE, role) for role in roles)
    return ClaimsIdentity(
        claims=tuple(claims), authentication_type=authentication_type
    )


class RegistryProvider(OAuthServerProvider):
    def __init__(self, clients: OAuthClientRepo, users: UserRepo) -> None:
        self.clients = clients
        self.users = users

    # ========================== authorize endpoint ===============================

    async def validate_client_redirect_uri(
        self, request: Request, client: ClientContext
    ) -> ClientContext:
        registered = self.clients.get(client.client_id) if client.client_id else None
        if registered is None:
            return client.rejected(Errors.INVALID_REQUEST, "unknown client_id")

        requested = client.requested_redirect_uri
        if requested:
            if requested not in registered.redirect_uris:
                return client.rejected(
                    Errors.INVALID_REQUEST, "redirect_uri is not registered"
                )
            return client.validated()

        if len(registered.redirect_uris) != 1:
            return client.rejected(Errors.INVALID_REQUEST, "redirect_uri is required")
        return client.validated(registered.redirect_uris[0])

    async def validate_authorize_request(
        self,
        request: Request,
        authorize_request: AuthorizeRequest,
        client: ClientContext,
    ) -> ValidationResult:
        registered = self.clients.get(client.client_id)
        if registered is None:
            return ValidationResult.failure(Errors.UNAUTHORIZED_CLIENT)

        if authorize_request.is_implicit_grant_type and not registered.allow_implicit:
            return ValidationResult.failure(
                Errors.UNAUTHORIZED_CLIENT, "implicit grant is not enabled for client"
            )
        if (
            authorize_request.is_authorization_code_grant_type
            and GrantTypes.AUTHORIZATION_CODE not in registered.allowed_grant_types
        ):
            return ValidationResult.failure(Errors.UNAUTHORIZED_CLIENT)

        return self._check_scope(registered, authorize_request.scope)

    # ========================== token endpoint ===================================

    async def validate_client_authentication(
        self, request: Request, context: ClientAuthenticationContext
    ) -> ClientContext:
        credentials = context.basic_credentials() or context.form_credentials()
        if credentials is None:
            return context.unvalidated()

        client_id, client_secret = credentials
        # argon2 is CPU-bound; keep it off the event loop
        client = await run_in_threadpool(
            auth_service.authenticate_client, self.clients, client_id, client_secret
        )
        if client is None:
            logger.warning("Client authentication failed  client_id=%s", client_id)
            return context.rejected(Errors.INVALID_CLIENT)
        return context.validated(client.client_id)

    async def validate_token_request(
        self,
        request: Request,
        token_request: TokenRequest,
        client: ClientContext,
    ) -> ValidationResult:
        registered = self.clients.get(client.client_id)
        if registered is None:
            return ValidationResult.failure(Errors.INVALID_CLIENT)

        grant = token_request.grant
        if token_request.grant_type not in registered.allowed_grant_types:
            # an extension grant no client is registered for
            if isinstance(grant, CustomExtensionGrant):
                return ValidationResult.failure(Errors.UNSUPPORTED_GRANT_TYPE)
            return ValidationResult.failure(
                Errors.UNAUTHORIZED_CLIENT,
                f"client may not use grant_type={token_request.grant_type}",
            )

        if isinstance(grant, ClientCredentialsGrant) and registered.is_public:
            return ValidationResult.failure(
                Errors.UNAUTHORIZED_CLIENT, "public clients cannot use client_credentials"
            )
        if isinstance(grant, (ResourceOwnerPasswordGrant, ClientCredentialsGrant)):
            return self._check_scope(registered, grant.scope)
        return ValidationResult.ok()

    async def grant_resource_owner_credentials(
        self,
        request: Request,
        client_id: str | None,
        username: str | None,
        password: str | None,
        scope: str | None,
    ) -> GrantResult:
        user = await run_in_threadpool(
            auth_service.authenticate_user, self.users, username, password
        )
        if user is None:
            return GrantResult.rejected(
                Errors.INVALID_GRANT, "invalid username or password"
            )

        identity = user_identity(user.username, subject=str(user.id), roles=user.roles)
        properties = AuthenticationProperties({Extra.CLIENT_ID: client_id or ""})
        if scope:
            properties.items[SCOPE_PROPERTY] = scope
        return GrantResult.granted(AuthenticationTicket(identity, properties))

    async def grant_client_credentials(
        self, request: Request, client_id: str | None, scope: str | None
    ) -> GrantResult:
        if not client_id:
            return GrantResult.rejected(Errors.UNAUTHORIZED_CLIENT)
        identity = user_identity(client_id, subject=client_id)
        properties = AuthenticationProperties({Extra.CLIENT_ID: client_id})
        if scope:
            properties.items[SCOPE_PROPERTY] = scope
        return GrantResult.granted(AuthenticationTicket(identity, properties))

    async def grant_refresh_token(
        self, request: Request, ticket: AuthenticationTicket, client_id: str | None
    ) -> GrantResult:
        # a refresh token only works for the client it was issued to
        if ticket.properties.items.get(Extra.CLIENT_ID) != client_id:
            logger.warning(
                "Refresh token presented by a different client  client_id=%s", client_id
            )
            return GrantResult.rejected(
                Errors.INVALID_GRANT, "refresh token was issued to another client"
            )
        return GrantResult.granted(ticket)

    async def token_endpoint_response(
        self,
        request: Request,
        ticket: AuthenticationTicket,
        token_request: TokenRequest,
        access_token: str,
        additional_response_parameters: dict[str, Any],
    ) -> dict[str, Any]:
        scope = ticket.properties.items.get(SCOPE_PROPERTY)
        if scope:
            additional_response_parameters.setdefault(Parameters.SCOPE, scope)
        return additional_response_parameters

    # ========================== helpers ==========================================

    @staticmethod
    def _check_scope(client: OAuthClient, scope: str | None) -> ValidationResult:
        requested = _scopes(scope)
        if not requested <= client.allowed_scopes:
            unknown = " ".join(sorted(requested - client.allowed_scopes))
            return ValidationResult.failure(
                Errors.INVALID_SCOPE, f"scope not allowed: {unknown}"
            )
        return ValidationResult.ok()
