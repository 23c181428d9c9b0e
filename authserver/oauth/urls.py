from __future__ import annotations

from urllib.parse import quote, urlsplit


def _escape(value: str) -> str:
    return quote(value, safe="")


def add_query_string(uri: str, name: str, value: str) -> str:
    """Append ``name=value`` to the query of ``uri``, keeping any fragment last."""
    base, hash_sign, anchor = uri.partition("#")
    separator = "&" if "?" in base else "?"
    return f"{base}{separator}{_escape(name)}={_escape(value)}{hash_sign}{anchor}"


class ParameterAppender:
    """Builds ``uri<delimiter>a=1&b=2``; used for the implicit-flow fragment."""

    def __init__(self, value: str, delimiter: str) -> None:
        self._parts = [value]
        self._delimiter = delimiter
        self._has_delimiter = delimiter in value

    def append(self, name: str, value: str) -> ParameterAppender:
        self._parts.append("&" if self._has_delimiter else self._delimiter)
        self._parts.append(f"{_escape(name)}={_escape(value)}")
        self._has_delimiter = True
        return self

    def __str__(self) -> str:
        return "".join(self._parts)


def check_redirect_uri(redirect_uri: str, *, allow_insecure_http: bool) -> bool:
    """Syntax rules for a client-supplied redirection endpoint (RFC 6749 §3.1.2).

    Absolute, no fragment, and TLS unless plain http is explicitly allowed.
    """
    try:
        parts = urlsplit(redirect_uri)
    except ValueError:
        return False
    # custom schemes (com.example.app:/cb) are absolute too
    if not parts.scheme or not (parts.netloc or parts.path):
        return False
    if "#" in redirect_uri:
        return False
    if not allow_insecure_http and parts.scheme.lower() == "http":
        return False
    return True
