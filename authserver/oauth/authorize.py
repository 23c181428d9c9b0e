"""Authorize endpoint: RFC 6749 §4.1 (code) and §4.2 (implicit).

The endpoint spans two HTTP interactions:

  begin()     GET {authorize_path}?response_type=...&client_id=...
              Validates the request and either lets the provider answer
              it, or leaves a PendingAuthorization on request.state and
              passes the request on so the host can sign the user in.

  complete()  Called by the host once sign-in produced an identity for
              that pending transaction.  Mints the code (or access token)
              and redirects back to the client.

The checks in begin() run in a fixed order.  The redirect_uri syntax
check comes first and always answers with an inline page: until the
client and its redirect target are validated, nothing may be sent to
that target.
"""

from __future__ import annotations

import logging

from starlette.requests import Request
from starlette.responses import RedirectResponse, Response

from authserver.core.metrics import OAUTH_CODES_ISSUED, OAUTH_TOKENS_ISSUED
from authserver.oauth.constants import (
    Errors,
    Extra,
    Parameters,
    TokenTypes,
)
from authserver.oauth.errors import error_page, error_redirect
from authserver.oauth.messages import AuthorizeRequest, PendingAuthorization
from authserver.oauth.options import OAuthServerOptions
from authserver.oauth.urls import ParameterAppender, add_query_string, check_redirect_uri
from authserver.oauth.validation import ClientContext, ValidationResult
from authserver.tokens.ticket import (
    AuthenticationProperties,
    AuthenticationTicket,
    ClaimsIdentity,
)

logger = logging.getLogger(__name__)

_RESERVED_CODE_PARAMETERS = frozenset(
    {Parameters.CODE, Parameters.STATE, Parameters.REDIRECT_URI}
)


class AuthorizeFlow:
    def __init__(self, options: OAuthServerOptions) -> None:
        self._options = options

    # ========================== phase 1: GET /authorize ==========================

    async def begin(self, request: Request) -> Response | None:
        options = self._options
        provider = options.provider
        authorize_request = AuthorizeRequest.from_query(request.query_params)
        log_extra = {"endpoint": "authorize", "client_id": authorize_request.client_id}

        client = ClientContext(
            client_id=authorize_request.client_id,
            requested_redirect_uri=authorize_request.redirect_uri,
        )

        if authorize_request.redirect_uri and not check_redirect_uri(
            authorize_request.redirect_uri,
            allow_insecure_http=options.allow_insecure_http,
        ):
            logger.warning(
                "Authorize request rejected: unacceptable redirect_uri",
                extra={**log_extra, "error": Errors.INVALID_REQUEST},
            )
            return error_page(request, options, Errors.INVALID_REQUEST)

        client = await provider.validate_client_redirect_uri(request, client)
        if not client.is_validated:
            logger.warning(
                "Authorize request rejected: client or redirect_uri not validated",
                extra={**log_extra, "error": client.result.error},
            )
            return error_redirect(request, options, client, client.result)

        if not authorize_request.response_type:
            logger.info("Authorize request missing response_type", extra=log_extra)
            result = ValidationResult.failure(Errors.INVALID_REQUEST)
        elif not (
            authorize_request.is_authorization_code_grant_type
            or authorize_request.is_implicit_grant_type
        ):
            logger.info(
                "Authorize request has unsupported response_type=%s",
                authorize_request.response_type,
                extra=log_extra,
            )
            result = ValidationResult.failure(Errors.UNSUPPORTED_RESPONSE_TYPE)
        elif (
            authorize_request.is_form_post_response_mode
            and not options.form_post_endpoint
        ):
            result = ValidationResult.failure(
                Errors.INVALID_REQUEST, "response_mode=form_post is not enabled"
            )
        else:
            result = await provider.validate_authorize_request(
                request, authorize_request, client
            )

        if not result.validated:
            logger.warning(
                "Authorize request rejected",
                extra={**log_extra, "error": result.error or Errors.INVALID_REQUEST},
            )
            return error_redirect(request, options, client, result)

        pending = PendingAuthorization.from_request(authorize_request, client)
        response = await provider.authorize_endpoint(request, authorize_request, pending)
        if response is not None:
            return response

        request.state.oauth_pending = pending
        logger.debug("Authorize request awaiting sign-in", extra=log_extra)
        return None

    # ========================== phase 2: signed in ===============================

    async def complete(
        self,
        request: Request,
        pending: PendingAuthorization,
        identity: ClaimsIdentity,
        properties: AuthenticationProperties | None = None,
    ) -> Response | None:
        if not identity.is_authenticated:
            raise ValueError("an authenticated identity is required")

        authorize_request = pending.authorize_request
        if authorize_request.is_authorization_code_grant_type:
            return await self._complete_code(
                request, pending, identity, properties or AuthenticationProperties()
            )
        if authorize_request.is_implicit_grant_type:
            return await self._complete_implicit(
                request, pending, identity, properties or AuthenticationProperties()
            )
        return None

    async def deny(
        self,
        request: Request,
        pending: PendingAuthorization,
        description: str | None = None,
    ) -> Response | None:
        """The resource owner refused: redirect access_denied to the client."""
        return error_redirect(
            request,
            self._options,
            pending.client,
            ValidationResult.failure(Errors.ACCESS_DENIED, description),
        )

    async def _complete_code(
        self,
        request: Request,
        pending: PendingAuthorization,
        identity: ClaimsIdentity,
        properties: AuthenticationProperties,
    ) -> Response | None:
        options = self._options
        authorize_request = pending.authorize_request
        client = pending.client
        now = options.clock.utcnow().replace(microsecond=0)

        properties = properties.copy()
        properties.issued_utc = now
        properties.expires_utc = now + options.authorization_code_lifetime
        # associate client_id with every ticket derived from this code
        properties.items[Extra.CLIENT_ID] = authorize_request.client_id or ""
        if authorize_request.redirect_uri:
            # compared against the token request's redirect_uri later
            properties.items[Extra.REDIRECT_URI] = authorize_request.redirect_uri

        ticket = AuthenticationTicket(identity=identity, properties=properties)
        code = await options.authorization_code_provider.create(
            request, ticket, options.authorization_code_format
        )
        if not code:
            logger.error(
                "response_type=code requires an authorization code provider "
                "that issues single-use codes",
                extra={"endpoint": "authorize", "client_id": client.client_id},
            )
            return error_redirect(
                request,
                options,
                client,
                ValidationResult.failure(Errors.UNSUPPORTED_RESPONSE_TYPE),
            )

        extras = await options.provider.authorization_endpoint_response(
            request, ticket, authorize_request, code=code
        )
        params = {
            key: str(value)
            for key, value in extras.items()
            if key not in _RESERVED_CODE_PARAMETERS
        }
        params[Parameters.CODE] = code
        if authorize_request.state:
            params[Parameters.STATE] = authorize_request.state

        if authorize_request.is_form_post_response_mode and options.form_post_endpoint:
            location = options.form_post_endpoint
            params[Parameters.REDIRECT_URI] = client.redirect_uri or ""
        else:
            location = client.redirect_uri or ""

        for key, value in params.items():
            location = add_query_string(location, key, value)

        OAUTH_CODES_ISSUED.inc()
        logger.info(
            "Authorization code issued",
            extra={"endpoint": "authorize", "client_id": client.client_id},
        )
        return RedirectResponse(url=location, status_code=302)

    async def _complete_implicit(
        self,
        request: Request,
        pending: PendingAuthorization,
        identity: ClaimsIdentity,
        properties: AuthenticationProperties,
    ) -> Response:
        options = self._options
        authorize_request = pending.authorize_request
        client = pending.client
        now = options.clock.utcnow().replace(microsecond=0)

        properties = properties.copy()
        properties.issued_utc = now
        properties.expires_utc = now + options.access_token_lifetime
        properties.items[Extra.CLIENT_ID] = authorize_request.client_id or ""

        ticket = AuthenticationTicket(identity=identity, properties=properties)
        access_format = options.access_token_format
        access_token = await options.access_token_provider.create(
            request, ticket, access_format
        )
        if not access_token:
            access_token = access_format.protect(ticket)

        appender = ParameterAppender(client.redirect_uri or "", "#")
        appender.append(Parameters.ACCESS_TOKEN, access_token)
        appender.append(Parameters.TOKEN_TYPE, TokenTypes.BEARER)

        expires_utc = ticket.properties.expires_utc
        if expires_utc is not None:
            expires_in = int((expires_utc - now).total_seconds() + 0.5)
            if expires_in > 0:
                appender.append(Parameters.EXPIRES_IN, str(expires_in))

        if authorize_request.state:
            appender.append(Parameters.STATE, authorize_request.state)

        extras = await options.provider.authorization_endpoint_response(
            request, ticket, authorize_request, access_token=access_token
        )
        for key, value in extras.items():
            appender.append(key, str(value))

        OAUTH_TOKENS_ISSUED.labels(grant_type="implicit").inc()
        logger.info(
            "Access token issued via implicit grant",
            extra={"endpoint": "authorize", "client_id": client.client_id},
        )
        return RedirectResponse(url=str(appender), status_code=302)
