"""Error delivery for the two OAuth endpoints.

THREE CHANNELS
----------------
  json      token endpoint.  400 + {"error", "error_description"?, "error_uri"?}

  redirect  authorize endpoint, once the client AND its redirect target
            have been validated.  The error rides on the query string of
            the resolved redirect_uri.

  page      authorize endpoint, any earlier failure.  Either a plain-text
            400 body, or (application_can_display_errors) the error is
            left on request.state and the request passes through so the
            host can render its own page.

WHY THE ORDER MATTERS
-----------------------
Redirecting an error to a redirect_uri nobody has vetted turns the
authorization server into an open redirector.  So the redirect channel is
only reachable with a validated ClientContext; everything else falls back
to the page channel.
"""

from __future__ import annotations

import logging

from starlette.requests import Request
from starlette.responses import PlainTextResponse, RedirectResponse, Response

from authserver.core.metrics import OAUTH_ERRORS
from authserver.oauth.constants import Errors, Parameters
from authserver.oauth.messages import ErrorResponse
from authserver.oauth.options import OAuthServerOptions
from authserver.oauth.urls import add_query_string
from authserver.oauth.validation import ClientContext, ValidationResult

logger = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json;charset=UTF-8"

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
    "Expires": "-1",
}


def _error_fields(result: ValidationResult) -> tuple[str, str | None, str | None]:
    if not result.has_error:
        return Errors.INVALID_REQUEST, None, None
    return result.error, result.error_description, result.error_uri  # type: ignore[return-value]


def json_error(result: ValidationResult) -> Response:
    error, description, uri = _error_fields(result)
    OAUTH_ERRORS.labels(endpoint="token", error=error, channel="json").inc()
    body = ErrorResponse(
        error=error, error_description=description, error_uri=uri
    ).model_dump_json(exclude_none=True)
    return Response(
        content=body,
        status_code=400,
        media_type=JSON_CONTENT_TYPE,
        headers=NO_CACHE_HEADERS,
    )


def error_page(
    request: Request,
    options: OAuthServerOptions,
    error: str,
    description: str | None = None,
    uri: str | None = None,
) -> Response | None:
    """Inline error for the authorize endpoint.

    Returns None when the host application renders errors itself; the
    error is then available as request.state.oauth_error (+ _description,
    _uri) to the next handler.
    """
    OAUTH_ERRORS.labels(endpoint="authorize", error=error, channel="page").inc()

    if options.application_can_display_errors:
        request.state.oauth_error = error
        request.state.oauth_error_description = description
        request.state.oauth_error_uri = uri
        logger.debug("Authorize error %s passed through to the application", error)
        return None

    lines = [f"error: {error}"]
    if description:
        lines.append(f"error_description: {description}")
    if uri:
        lines.append(f"error_uri: {uri}")
    return PlainTextResponse(
        "\n".join(lines) + "\n", status_code=400, headers=NO_CACHE_HEADERS
    )


def error_redirect(
    request: Request,
    options: OAuthServerOptions,
    client: ClientContext,
    result: ValidationResult,
) -> Response | None:
    error, description, uri = _error_fields(result)

    if not client.is_validated or not client.redirect_uri:
        # client_id or redirect_uri not validated: never bounce to it
        return error_page(request, options, error, description, uri)

    OAUTH_ERRORS.labels(endpoint="authorize", error=error, channel="redirect").inc()
    location = add_query_string(client.redirect_uri, Parameters.ERROR, error)
    if description:
        location = add_query_string(location, Parameters.ERROR_DESCRIPTION, description)
    if uri:
        location = add_query_string(location, Parameters.ERROR_URI, uri)
    return RedirectResponse(url=location, status_code=302)
