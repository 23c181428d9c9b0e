"""Prometheus metrics.

All metrics live here so there is one inventory of what the server
measures.  The flows import a metric and increment it at the point of
action; HTTP metrics are populated by MetricsMiddleware.

  http_requests_total{method, endpoint, status_code}
  http_request_duration_seconds{method, endpoint}
  http_active_requests

  oauth_tokens_issued_total{grant_type}
      Access tokens handed out.  Extension grants collapse into
      grant_type="extension" so client-chosen strings cannot blow up
      label cardinality.  Implicit-flow tokens use grant_type="implicit".

  oauth_authorization_codes_issued_total
      Codes minted at the end of a successful authorize flow.

  oauth_errors_total{endpoint, error, channel}
      Protocol errors by RFC error code and how they were delivered
      (json, redirect, page).  A spike in channel="page" on the
      authorize endpoint usually means a misregistered redirect_uri.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

from authserver.oauth.constants import GrantTypes

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests by method, endpoint, and status code",
    ["method", "endpoint", "status_code"],
)

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

ACTIVE_REQUESTS = Gauge(
    "http_active_requests",
    "Number of HTTP requests currently being processed",
)

OAUTH_TOKENS_ISSUED = Counter(
    "oauth_tokens_issued_total",
    "Access tokens issued, by grant type",
    ["grant_type"],
)

OAUTH_CODES_ISSUED = Counter(
    "oauth_authorization_codes_issued_total",
    "Authorization codes issued by the authorize endpoint",
)

OAUTH_ERRORS = Counter(
    "oauth_errors_total",
    "OAuth protocol errors, by endpoint, error code and delivery channel",
    ["endpoint", "error", "channel"],
)

_STANDARD_GRANTS = frozenset(
    {
        GrantTypes.AUTHORIZATION_CODE,
        GrantTypes.CLIENT_CREDENTIALS,
        GrantTypes.PASSWORD,
        GrantTypes.REFRESH_TOKEN,
        "implicit",
    }
)


def grant_label(grant_type: str | None) -> str:
    if grant_type in _STANDARD_GRANTS:
        return grant_type  # type: ignore[return-value]
    return "extension"
