"""Liveness endpoint.

The server keeps all state in process, so there are no dependencies to
probe: if the process can answer, it is healthy.
"""

from __future__ import annotations

from fastapi import APIRouter

router = APIRouter(tags=["health"])


@router.get("/health")
async def health() -> dict:
    return {"status": "ok"}
