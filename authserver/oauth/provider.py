"""Policy hooks the hosting application supplies.

OAuthServerProvider holds one async method per decision point.  The
defaults are deliberately conservative: nothing about a client is
trusted until the host overrides the client validation hooks, and grant
types that need host knowledge (password, client credentials, extension
grants) are refused.

TokenProvider controls how a ticket becomes an opaque string for one
kind of token (authorization code, access token, refresh token).  The
base class issues nothing and reads tokens statelessly through the
ticket format; see authserver.services.token_providers for ready-made
variants.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from starlette.requests import Request
from starlette.responses import Response

from authserver.oauth.messages import (
    AuthorizeRequest,
    PendingAuthorization,
    TokenRequest,
)
from authserver.oauth.validation import (
    ClientAuthenticationContext,
    ClientContext,
    EndpointMatch,
    GrantResult,
    TokenIssuance,
    ValidationResult,
)
from authserver.tokens.format import TicketDataFormat
from authserver.tokens.ticket import AuthenticationTicket


class OAuthServerProvider:
    # --- endpoint matching ----------------------------------------------------

    async def match_endpoint(
        self, request: Request, match: EndpointMatch
    ) -> EndpointMatch:
        """Adjust the path-based match, answer the request, or skip it."""
        return match

    # --- authorize endpoint ---------------------------------------------------

    async def validate_client_redirect_uri(
        self, request: Request, client: ClientContext
    ) -> ClientContext:
        """Confirm the client and resolve where it may be redirected to."""
        return client

    async def validate_authorize_request(
        self,
        request: Request,
        authorize_request: AuthorizeRequest,
        client: ClientContext,
    ) -> ValidationResult:
        return ValidationResult.ok()

    async def authorize_endpoint(
        self,
        request: Request,
        authorize_request: AuthorizeRequest,
        pending: PendingAuthorization,
    ) -> Response | None:
        """Return a response to finish the request here (e.g. a consent page).

        Returning None passes the request on to the host application,
        which is expected to sign the user in and resume ``pending``.
        """
        return None

    async def authorization_endpoint_response(
        self,
        request: Request,
        ticket: AuthenticationTicket,
        authorize_request: AuthorizeRequest,
        *,
        access_token: str | None = None,
        code: str | None = None,
    ) -> dict[str, str]:
        """Extra parameters appended to the authorize redirect."""
        return {}

    # --- token endpoint -------------------------------------------------------

    async def validate_client_authentication(
        self, request: Request, context: ClientAuthenticationContext
    ) -> ClientContext:
        return context.unvalidated()

    async def validate_token_request(
        self,
        request: Request,
        token_request: TokenRequest,
        client: ClientContext,
    ) -> ValidationResult:
        return ValidationResult.ok()

    async def grant_authorization_code(
        self, request: Request, ticket: AuthenticationTicket
    ) -> GrantResult:
        return GrantResult.granted(ticket)

    async def grant_refresh_token(
        self, request: Request, ticket: AuthenticationTicket, client_id: str | None
    ) -> GrantResult:
        return GrantResult.granted(ticket)

    async def grant_resource_owner_credentials(
        self,
        request: Request,
        client_id: str | None,
        username: str | None,
        password: str | None,
        scope: str | None,
    ) -> GrantResult:
        return GrantResult.rejected()

    async def grant_client_credentials(
        self, request: Request, client_id: str | None, scope: str | None
    ) -> GrantResult:
        return GrantResult.rejected()

    async def grant_custom_extension(
        self,
        request: Request,
        client_id: str | None,
        grant_type: str,
        parameters: Mapping[str, str],
    ) -> GrantResult:
        return GrantResult.rejected()

    async def token_endpoint(
        self,
        request: Request,
        ticket: AuthenticationTicket,
        token_request: TokenRequest,
    ) -> TokenIssuance:
        """Last chance to veto or reshape the ticket before tokens are minted."""
        return TokenIssuance(ticket=ticket)

    async def token_endpoint_response(
        self,
        request: Request,
        ticket: AuthenticationTicket,
        token_request: TokenRequest,
        access_token: str,
        additional_response_parameters: dict[str, Any],
    ) -> dict[str, Any]:
        """Extra fields appended to the JSON token response, in order."""
        return additional_response_parameters


class TokenProvider:
    async def create(
        self, request: Request, ticket: AuthenticationTicket, fmt: TicketDataFormat
    ) -> str | None:
        return None

    async def receive(
        self, request: Request, token: str | None, fmt: TicketDataFormat
    ) -> AuthenticationTicket | None:
        return fmt.unprotect(token)
