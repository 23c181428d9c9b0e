from __future__ import annotations

# RFC 6749 vocabulary.  Plain string constants so they drop straight into
# query strings, form bodies and JSON without conversion.


class Parameters:
    ACCESS_TOKEN = "access_token"
    CLIENT_ID = "client_id"
    CLIENT_SECRET = "client_secret"
    CODE = "code"
    ERROR = "error"
    ERROR_DESCRIPTION = "error_description"
    ERROR_URI = "error_uri"
    EXPIRES_IN = "expires_in"
    GRANT_TYPE = "grant_type"
    PASSWORD = "password"
    REDIRECT_URI = "redirect_uri"
    REFRESH_TOKEN = "refresh_token"
    RESPONSE_MODE = "response_mode"
    RESPONSE_TYPE = "response_type"
    SCOPE = "scope"
    STATE = "state"
    TOKEN_TYPE = "token_type"
    USERNAME = "username"


class GrantTypes:
    AUTHORIZATION_CODE = "authorization_code"
    CLIENT_CREDENTIALS = "client_credentials"
    REFRESH_TOKEN = "refresh_token"
    PASSWORD = "password"


class ResponseTypes:
    CODE = "code"
    TOKEN = "token"


class ResponseModes:
    FORM_POST = "form_post"


class TokenTypes:
    BEARER = "bearer"


class Errors:
    INVALID_CLIENT = "invalid_client"
    INVALID_GRANT = "invalid_grant"
    INVALID_REQUEST = "invalid_request"
    UNAUTHORIZED_CLIENT = "unauthorized_client"
    UNSUPPORTED_GRANT_TYPE = "unsupported_grant_type"
    UNSUPPORTED_RESPONSE_TYPE = "unsupported_response_type"
    ACCESS_DENIED = "access_denied"
    INVALID_SCOPE = "invalid_scope"


class Extra:
    """Ticket property keys the engine writes and checks."""

    CLIENT_ID = "client_id"
    REDIRECT_URI = "redirect_uri"
