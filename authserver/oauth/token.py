"""Token endpoint: RFC 6749 §3.2, §4.1.3, §4.3, §4.4, §6, §8.3.

One POST, start to finish:

  1. Parse the form into a TokenRequest (tagged by grant_type).
  2. Client authentication (provider).  Failure → invalid_client.
  3. Grant handler: structural pre-checks, validate_token_request,
     then the provider's grant hook, reconciled by _resolve_grant().
  4. Stamp issued/expires, let the provider veto (token_endpoint).
  5. Mint access token (+ optional refresh token), collect extras,
     write the JSON response.

Every failure is answered as a JSON error; nothing in here raises for
bad client input.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from starlette.requests import Request
from starlette.responses import Response

from authserver.core.metrics import OAUTH_TOKENS_ISSUED, grant_label
from authserver.oauth.constants import Errors, Extra, TokenTypes
from authserver.oauth.errors import JSON_CONTENT_TYPE, NO_CACHE_HEADERS, json_error
from authserver.oauth.messages import (
    AuthorizationCodeGrant,
    ClientCredentialsGrant,
    CustomExtensionGrant,
    RefreshTokenGrant,
    ResourceOwnerPasswordGrant,
    TokenRequest,
    TokenResponse,
)
from authserver.oauth.options import OAuthServerOptions
from authserver.oauth.validation import (
    ClientAuthenticationContext,
    ClientContext,
    GrantResult,
    ValidationResult,
)
from authserver.tokens.ticket import AuthenticationTicket

logger = logging.getLogger(__name__)

GrantOutcome = tuple[AuthenticationTicket | None, ValidationResult]

_STANDARD_RESPONSE_FIELDS = frozenset(TokenResponse.model_fields)


def _resolve_grant(
    validation: ValidationResult, grant: GrantResult, default_error: str
) -> GrantOutcome:
    """Single reconciliation rule shared by every grant handler."""
    if not validation.validated:
        return None, validation
    if not grant.result.validated:
        if grant.result.has_error:
            return None, validation.rejected(
                grant.result.error,  # type: ignore[arg-type]
                grant.result.error_description,
                grant.result.error_uri,
            )
        return None, validation.rejected(default_error)
    if grant.ticket is None:
        return None, validation.rejected(default_error)
    return grant.ticket, validation


class TokenFlow:
    def __init__(self, options: OAuthServerOptions) -> None:
        self._options = options

    async def handle(self, request: Request) -> Response:
        options = self._options
        provider = options.provider

        # whole seconds: timestamps do not survive serialization any finer
        now = options.clock.utcnow().replace(microsecond=0)

        form = await request.form()
        parameters = {key: str(value) for key, value in form.items()}

        # --- 1. client authentication --------------------------------------------
        auth_context = ClientAuthenticationContext(
            parameters=parameters,
            authorization=request.headers.get("authorization"),
        )
        client = await provider.validate_client_authentication(request, auth_context)
        if not client.is_validated:
            logger.warning(
                "Token request rejected: client authentication failed",
                extra={
                    "endpoint": "token",
                    "client_id": auth_context.client_id,
                    "error": client.result.error or Errors.INVALID_CLIENT,
                },
            )
            return json_error(client.result.rejected(Errors.INVALID_CLIENT))

        token_request = TokenRequest.from_form(parameters)
        log_extra = {
            "endpoint": "token",
            "client_id": client.client_id,
            "grant_type": token_request.grant_type,
        }

        # --- 2. grant dispatch ----------------------------------------------------
        ticket, validation = await self._dispatch(request, token_request, client, now)
        if ticket is None:
            logger.warning(
                "Token request rejected",
                extra={**log_extra, "error": validation.error or Errors.INVALID_REQUEST},
            )
            return json_error(validation)

        # --- 3. stamp + final provider decision -------------------------------------
        ticket = ticket.copy()
        ticket.properties.issued_utc = now
        ticket.properties.expires_utc = now + options.access_token_lifetime

        issuance = await provider.token_endpoint(request, ticket, token_request)
        if not issuance.issued:
            logger.warning(
                "Token was not issued by the provider",
                extra={**log_extra, "error": Errors.INVALID_GRANT},
            )
            return json_error(validation.rejected(Errors.INVALID_GRANT))
        ticket = issuance.ticket

        # --- 4. mint tokens ---------------------------------------------------------
        access_token = await options.access_token_provider.create(
            request, ticket, options.access_token_format
        )
        if not access_token:
            access_token = options.access_token_format.protect(ticket)
        access_token_expires = ticket.properties.expires_utc

        refresh_ticket = ticket.copy()
        refresh_ticket.properties.expires_utc = now + options.refresh_token_lifetime
        refresh_token = await options.refresh_token_provider.create(
            request, refresh_ticket, options.refresh_token_format
        )

        extras = await provider.token_endpoint_response(
            request,
            ticket,
            token_request,
            access_token,
            dict(issuance.additional_response_parameters),
        )

        OAUTH_TOKENS_ISSUED.labels(grant_type=grant_label(token_request.grant_type)).inc()
        logger.info("Access token issued", extra=log_extra)
        return self._token_response(
            access_token, access_token_expires, now, refresh_token, extras
        )

    async def _dispatch(
        self,
        request: Request,
        token_request: TokenRequest,
        client: ClientContext,
        now: datetime,
    ) -> GrantOutcome:
        grant = token_request.grant
        if isinstance(grant, AuthorizationCodeGrant):
            # https://tools.ietf.org/html/rfc6749#section-4.1.3
            return await self._authorization_code(request, token_request, grant, client, now)
        if isinstance(grant, ResourceOwnerPasswordGrant):
            # https://tools.ietf.org/html/rfc6749#section-4.3.2
            return await self._password(request, token_request, grant, client)
        if isinstance(grant, ClientCredentialsGrant):
            # https://tools.ietf.org/html/rfc6749#section-4.4.2
            return await self._client_credentials(request, token_request, grant, client)
        if isinstance(grant, RefreshTokenGrant):
            # https://tools.ietf.org/html/rfc6749#section-6
            return await self._refresh_token(request, token_request, grant, client, now)
        if isinstance(grant, CustomExtensionGrant):
            # https://tools.ietf.org/html/rfc6749#section-8.3
            return await self._custom_extension(request, token_request, grant, client)

        logger.warning(
            "grant_type is missing or not recognized",
            extra={"endpoint": "token", "client_id": client.client_id},
        )
        return None, ValidationResult.failure(Errors.UNSUPPORTED_GRANT_TYPE)

    # ========================== grant handlers ===================================

    async def _authorization_code(
        self,
        request: Request,
        token_request: TokenRequest,
        grant: AuthorizationCodeGrant,
        client: ClientContext,
        now: datetime,
    ) -> GrantOutcome:
        options = self._options
        ticket = await options.authorization_code_provider.receive(
            request, grant.code, options.authorization_code_format
        )
        log_extra = {"endpoint": "token", "client_id": client.client_id}

        if ticket is None:
            logger.warning("Invalid authorization code", extra=log_extra)
            return None, ValidationResult.failure(Errors.INVALID_GRANT)

        if ticket.is_expired(now):
            logger.warning("Expired authorization code", extra=log_extra)
            return None, ValidationResult.failure(Errors.INVALID_GRANT)

        items = ticket.properties.items
        if items.get(Extra.CLIENT_ID) is None or items[Extra.CLIENT_ID] != client.client_id:
            logger.warning(
                "Authorization code does not contain matching client_id", extra=log_extra
            )
            return None, ValidationResult.failure(Errors.INVALID_GRANT)

        if Extra.REDIRECT_URI in items:
            redirect_uri = items.pop(Extra.REDIRECT_URI)
            if redirect_uri != grant.redirect_uri:
                logger.warning(
                    "Authorization code does not contain matching redirect_uri",
                    extra=log_extra,
                )
                return None, ValidationResult.failure(Errors.INVALID_GRANT)

        validation = await options.provider.validate_token_request(
            request, token_request, client
        )
        grant_result = GrantResult()
        if validation.validated:
            grant_result = await options.provider.grant_authorization_code(request, ticket)
        return _resolve_grant(validation, grant_result, Errors.INVALID_GRANT)

    async def _password(
        self,
        request: Request,
        token_request: TokenRequest,
        grant: ResourceOwnerPasswordGrant,
        client: ClientContext,
    ) -> GrantOutcome:
        provider = self._options.provider
        validation = await provider.validate_token_request(request, token_request, client)
        grant_result = GrantResult()
        if validation.validated:
            grant_result = await provider.grant_resource_owner_credentials(
                request, client.client_id, grant.username, grant.password, grant.scope
            )
        return _resolve_grant(validation, grant_result, Errors.INVALID_GRANT)

    async def _client_credentials(
        self,
        request: Request,
        token_request: TokenRequest,
        grant: ClientCredentialsGrant,
        client: ClientContext,
    ) -> GrantOutcome:
        provider = self._options.provider
        if not client.is_validated:
            return None, ValidationResult.failure(Errors.UNAUTHORIZED_CLIENT)

        validation = await provider.validate_token_request(request, token_request, client)
        if not validation.validated:
            return None, validation

        grant_result = await provider.grant_client_credentials(
            request, client.client_id, grant.scope
        )
        return _resolve_grant(validation, grant_result, Errors.UNAUTHORIZED_CLIENT)

    async def _refresh_token(
        self,
        request: Request,
        token_request: TokenRequest,
        grant: RefreshTokenGrant,
        client: ClientContext,
        now: datetime,
    ) -> GrantOutcome:
        options = self._options
        ticket = await options.refresh_token_provider.receive(
            request, grant.refresh_token, options.refresh_token_format
        )
        log_extra = {"endpoint": "token", "client_id": client.client_id}

        if ticket is None:
            logger.warning("Invalid refresh token", extra=log_extra)
            return None, ValidationResult.failure(Errors.INVALID_GRANT)

        if ticket.is_expired(now):
            logger.warning("Expired refresh token", extra=log_extra)
            return None, ValidationResult.failure(Errors.INVALID_GRANT)

        validation = await options.provider.validate_token_request(
            request, token_request, client
        )
        grant_result = GrantResult()
        if validation.validated:
            grant_result = await options.provider.grant_refresh_token(
                request, ticket, client.client_id
            )
        return _resolve_grant(validation, grant_result, Errors.INVALID_GRANT)

    async def _custom_extension(
        self,
        request: Request,
        token_request: TokenRequest,
        grant: CustomExtensionGrant,
        client: ClientContext,
    ) -> GrantOutcome:
        provider = self._options.provider
        validation = await provider.validate_token_request(request, token_request, client)
        grant_result = GrantResult()
        if validation.validated:
            grant_result = await provider.grant_custom_extension(
                request, client.client_id, grant.grant_type, grant.parameters
            )
        return _resolve_grant(validation, grant_result, Errors.UNSUPPORTED_GRANT_TYPE)

    # ========================== response =========================================

    @staticmethod
    def _token_response(
        access_token: str,
        access_token_expires: datetime | None,
        now: datetime,
        refresh_token: str | None,
        extras: dict[str, Any],
    ) -> Response:
        expires_in: int | None = None
        if access_token_expires is not None:
            seconds = int((access_token_expires - now).total_seconds())
            if seconds > 0:
                expires_in = seconds

        for key in extras.keys() & _STANDARD_RESPONSE_FIELDS:
            logger.warning("Ignoring provider response field that shadows %s", key)
        payload = TokenResponse(
            access_token=access_token,
            token_type=TokenTypes.BEARER,
            expires_in=expires_in,
            refresh_token=refresh_token or None,
            **{k: v for k, v in extras.items() if k not in _STANDARD_RESPONSE_FIELDS},
        )
        return Response(
            content=payload.model_dump_json(exclude_none=True),
            status_code=200,
            media_type=JSON_CONTENT_TYPE,
            headers=NO_CACHE_HEADERS,
        )
