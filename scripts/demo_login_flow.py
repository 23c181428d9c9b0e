"""Demo: walk the authorization code flow end to end using FastAPI TestClient.

Run with:
    APP_ENV=dev python scripts/demo_login_flow.py
"""

from __future__ import annotations

import dataclasses
from urllib.parse import parse_qs, urlparse

from fastapi.testclient import TestClient

from authserver.core.config import SETTINGS
from authserver.main import create_app

CLIENT_ID = "demo-client"
REDIRECT_URI = "http://localhost:5173/callback"
USERNAME = "demo"
PASSWORD = "demo-password"


def main() -> None:
    # the dev seed registers demo-client and the demo user
    settings = dataclasses.replace(SETTINGS, app_env="dev", allow_insecure_http=True)
    client = TestClient(create_app(settings), follow_redirects=False)

    # ── Step 1: GET /oauth/authorize ────────────────────────────────
    r = client.get(
        settings.authorize_path,
        params={
            "response_type": "code",
            "client_id": CLIENT_ID,
            "redirect_uri": REDIRECT_URI,
            "scope": "read",
            "state": "demo-state",
        },
    )
    print(f"1. GET  authorize          → {r.status_code}  Location={r.headers['location']}")

    # ── Step 2: GET /login ──────────────────────────────────────────
    r = client.get("/login")
    print(f"2. GET  /login             → {r.status_code}  (form HTML)")

    # ── Step 3: POST /login (bad creds) ─────────────────────────────
    r = client.post("/login", data={"username": USERNAME, "password": "wrong"})
    print(f"3. POST /login (bad creds) → {r.status_code}  (rejected)")

    # ── Step 4: POST /login (good creds) ────────────────────────────
    r = client.post("/login", data={"username": USERNAME, "password": PASSWORD})
    location = r.headers["location"]
    query = parse_qs(urlparse(location).query)
    code = query["code"][0]
    print(f"4. POST /login (good)      → {r.status_code}  state={query['state'][0]}")

    # ── Step 5: POST /oauth/token ───────────────────────────────────
    r = client.post(
        settings.token_path,
        data={
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": REDIRECT_URI,
            "client_id": CLIENT_ID,
        },
    )
    tokens = r.json()
    print(
        f"5. POST token (code)       → {r.status_code}  "
        f"expires_in={tokens['expires_in']} scope={tokens.get('scope')}"
    )

    # ── Step 6: replay the code ─────────────────────────────────────
    r = client.post(
        settings.token_path,
        data={
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": REDIRECT_URI,
            "client_id": CLIENT_ID,
        },
    )
    print(f"6. POST token (replay)     → {r.status_code}  {r.json()['error']}")

    # ── Step 7: refresh ─────────────────────────────────────────────
    r = client.post(
        settings.token_path,
        data={
            "grant_type": "refresh_token",
            "refresh_token": tokens["refresh_token"],
            "client_id": CLIENT_ID,
        },
    )
    print(f"7. POST token (refresh)    → {r.status_code}")


if __name__ == "__main__":
    main()
