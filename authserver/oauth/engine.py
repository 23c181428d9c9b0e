"""Protocol engine: decides whether a request belongs to the OAuth endpoints.

    request ─▶ path match ─▶ provider.match_endpoint ─┬─ handled  → provider's response
                                                      ├─ skipped  → next handler
                                                      ├─ no match → next handler
                                                      └─ authorize / token
                                                            │  (https unless allowed)
                                                            ▼
                                              AuthorizeFlow / TokenFlow

``handle()`` returns a Response when the request was answered and None
when it should continue down the host pipeline.  Plain-http requests to
either endpoint are ignored (None) when allow_insecure_http is off, so
the host's normal 404 handling applies.

The engine keeps no per-request state; one instance serves every request.
"""

from __future__ import annotations

import logging

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from authserver.oauth.authorize import AuthorizeFlow
from authserver.oauth.messages import PendingAuthorization
from authserver.oauth.options import OAuthServerOptions
from authserver.oauth.token import TokenFlow
from authserver.oauth.validation import EndpointMatch
from authserver.tokens.ticket import AuthenticationProperties, ClaimsIdentity

logger = logging.getLogger(__name__)


class ProtocolEngine:
    def __init__(self, options: OAuthServerOptions) -> None:
        self.options = options
        self._authorize = AuthorizeFlow(options)
        self._token = TokenFlow(options)

    async def match(self, request: Request) -> EndpointMatch:
        options = self.options
        match = EndpointMatch()
        path = request.url.path
        if options.authorize_path and path == options.authorize_path:
            match = match.matches_authorize_endpoint()
        elif options.token_path and path == options.token_path:
            match = match.matches_token_endpoint()
        return await options.provider.match_endpoint(request, match)

    async def handle(self, request: Request) -> Response | None:
        match = await self.match(request)

        if match.response is not None:
            return match.response
        if match.skipped:
            return None
        if not (match.is_authorize_endpoint or match.is_token_endpoint):
            return None

        if not self.options.allow_insecure_http and request.url.scheme != "https":
            logger.warning(
                "Authorization server ignoring http request because "
                "allow_insecure_http is false  path=%s",
                request.url.path,
            )
            return None

        request.state.oauth_endpoint = "authorize" if match.is_authorize_endpoint else "token"
        if match.is_authorize_endpoint:
            return await self._authorize.begin(request)
        return await self._token.handle(request)

    async def complete_authorize(
        self,
        request: Request,
        pending: PendingAuthorization,
        identity: ClaimsIdentity,
        properties: AuthenticationProperties | None = None,
    ) -> Response | None:
        """Resume a pending authorize request once the user has signed in."""
        return await self._authorize.complete(request, pending, identity, properties)

    async def deny_authorize(
        self,
        request: Request,
        pending: PendingAuthorization,
        description: str | None = None,
    ) -> Response | None:
        """Resume a pending authorize request the user refused."""
        return await self._authorize.deny(request, pending, description)


class OAuthServerMiddleware(BaseHTTPMiddleware):
    """Runs the protocol engine in front of the host application.

    Requests the engine does not answer (other paths, plain http, an
    authorize request waiting for sign-in, errors the application wants
    to render) reach the next handler with request.state populated.
    """

    def __init__(self, app: ASGIApp, engine: ProtocolEngine) -> None:
        super().__init__(app)
        self.engine = engine

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        response = await self.engine.handle(request)
        if response is not None:
            return response
        return await call_next(request)
