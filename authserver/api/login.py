"""Login UI: where authorize requests land while the user signs in.

    GET /oauth/authorize   engine validated the request and passed it on
        │                  (request.state.oauth_pending)
        ▼
    302 /login + signed "oauth_pending" cookie
        │
    POST /login            approve: verify password, resume the flow
                           deny:    access_denied back to the client

Inline HTML keeps the host dependency-free (no Jinja, no static files).
"""

from __future__ import annotations

import html
import logging

import jwt
from fastapi import APIRouter, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool
from starlette.responses import Response

from authserver.oauth.messages import PendingAuthorization
from authserver.services import auth_service, token_service
from authserver.services.registry_provider import SCOPE_PROPERTY, user_identity
from authserver.tokens.ticket import AuthenticationProperties

logger = logging.getLogger(__name__)

router = APIRouter(tags=["login"])

COOKIE_AUTHENTICATION_TYPE = "Cookies"

_PAGE_HTML = """\
<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <title>{title} - authserver</title>
  <style>
    * {{ margin: 0; padding: 0; box-sizing: border-box; }}
    body {{
      font-family: system-ui, -apple-system, sans-serif;
      display: flex; justify-content: center; align-items: center;
      min-height: 100vh; background: #f5f5f5;
    }}
    .card {{
      background: #fff; padding: 2rem; border-radius: 8px;
      box-shadow: 0 2px 8px rgba(0,0,0,.1); width: 340px;
    }}
    h1 {{ font-size: 1.25rem; margin-bottom: 1rem; text-align: center; }}
    p {{ font-size: .9rem; margin-bottom: 1rem; }}
    label {{ display: block; font-size: .85rem; margin-bottom: .25rem; }}
    input[type=text], input[type=password] {{
      width: 100%; padding: .5rem; margin-bottom: 1rem;
      border: 1px solid #ccc; border-radius: 4px; font-size: .95rem;
    }}
    button {{
      width: 100%; padding: .6rem; margin-bottom: .5rem; background: #111;
      color: #fff; border: none; border-radius: 4px; font-size: .95rem;
    }}
    button.secondary {{ background: #888; }}
    .error {{ color: #c00; font-size: .85rem; }}
  </style>
</head>
<body>
  <div class="card">
    {body}
  </div>
</body>
</html>
"""

_LOGIN_FORM = """\
<h1>Sign in</h1>
<p><strong>{client_id}</strong> is requesting access{scope}.</p>
{error}
<form method="post" action="/login">
  <label for="username">Username</label>
  <input id="username" name="username" type="text" autofocus>
  <label for="password">Password</label>
  <input id="password" name="password" type="password">
  <button type="submit" name="action" value="approve">Sign in and allow</button>
  <button type="submit" name="action" value="deny" class="secondary">Deny</button>
</form>
"""


def _page(title: str, body: str, status_code: int = 200) -> HTMLResponse:
    return HTMLResponse(
        _PAGE_HTML.format(title=html.escape(title), body=body),
        status_code=status_code,
        headers={"Cache-Control": "no-cache"},
    )


def _error_page(error: str, description: str | None, status_code: int = 400) -> HTMLResponse:
    body = f'<h1>Authorization failed</h1><p class="error">{html.escape(error)}</p>'
    if description:
        body += f"<p>{html.escape(description)}</p>"
    return _page("Error", body, status_code)


def _login_form(pending: PendingAuthorization, error: str | None = None) -> str:
    scope = f" to <em>{html.escape(pending.scope)}</em>" if pending.scope else ""
    return _LOGIN_FORM.format(
        client_id=html.escape(pending.client_id or "an application"),
        scope=scope,
        error=f'<p class="error">{html.escape(error)}</p>' if error else "",
    )


def _read_pending(request: Request) -> PendingAuthorization | None:
    token = request.cookies.get(token_service.PENDING_COOKIE)
    if not token:
        return None
    try:
        return token_service.decode_pending_token(
            token, secret=request.app.state.settings.data_protection_secret
        )
    except (jwt.InvalidTokenError, ValidationError):
        logger.warning("Discarding invalid pending-authorization cookie")
        return None


# ========================== GET {authorize_path} =============================


async def authorize_fallthrough(request: Request) -> Response:
    """Receives authorize requests the engine did not answer itself."""
    error = getattr(request.state, "oauth_error", None)
    if error:
        return _error_page(error, getattr(request.state, "oauth_error_description", None))

    pending: PendingAuthorization | None = getattr(request.state, "oauth_pending", None)
    if pending is None:
        return _page("Not found", "<h1>Not found</h1>", status_code=404)

    settings = request.app.state.settings
    response = RedirectResponse(url="/login", status_code=302)
    response.set_cookie(
        key=token_service.PENDING_COOKIE,
        value=token_service.create_pending_token(
            pending, secret=settings.data_protection_secret
        ),
        httponly=True,
        samesite="lax",
        secure=not settings.allow_insecure_http,
        path="/",
        max_age=token_service.PENDING_TTL_MIN * 60,
    )
    logger.info("Authorize request awaiting login  client_id=%s", pending.client_id)
    return response


# ========================== GET /login ======================================


@router.get("/login")
async def login_page(request: Request) -> HTMLResponse:
    pending = _read_pending(request)
    if pending is None:
        return _error_page("invalid_request", "no authorization request in progress")
    return _page("Sign in", _login_form(pending))


# ========================== POST /login =====================================


@router.post("/login", response_model=None)
async def login_submit(
    request: Request,
    username: str = Form(""),
    password: str = Form(""),
    action: str = Form("approve"),
) -> Response:
    pending = _read_pending(request)
    if pending is None:
        return _error_page("invalid_request", "no authorization request in progress")

    engine = request.app.state.oauth_engine

    if action == "deny":
        logger.info("Authorization denied  client_id=%s", pending.client_id)
        response = await engine.deny_authorize(
            request, pending, "the resource owner denied the request"
        )
    else:
        user = await run_in_threadpool(
            auth_service.authenticate_user,
            request.app.state.user_repo,
            username,
            password,
        )
        if user is None:
            logger.warning("Login failed  username=%s", username)
            return _page(
                "Sign in",
                _login_form(pending, "Invalid username or password."),
                status_code=401,
            )

        identity = user_identity(
            user.username,
            subject=str(user.id),
            roles=user.roles,
            authentication_type=COOKIE_AUTHENTICATION_TYPE,
        )
        properties = AuthenticationProperties()
        if pending.scope:
            properties.items[SCOPE_PROPERTY] = pending.scope
        logger.info("Login succeeded  user_id=%s client_id=%s", user.id, pending.client_id)
        response = await engine.complete_authorize(request, pending, identity, properties)

    if response is None:
        response = _error_page(
            getattr(request.state, "oauth_error", None) or "invalid_request",
            getattr(request.state, "oauth_error_description", None),
        )
    response.delete_cookie(token_service.PENDING_COOKIE, path="/")
    return response
