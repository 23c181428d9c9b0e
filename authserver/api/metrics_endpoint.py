"""Prometheus scrape endpoint.

Exposes the HTTP request metrics alongside the protocol counters
(oauth_tokens_issued_total, oauth_authorization_codes_issued_total,
oauth_errors_total) in text exposition format.  Restrict access to it
at the network edge in production.
"""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter(tags=["observability"])


@router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
