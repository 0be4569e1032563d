"""Spotify login (Authorization Code + PKCE, no client secret).

Flow:
  1. GET /login     → redirect to Spotify /authorize with an S256 challenge
  2. GET /callback  → trade the code for tokens, store them in ``tokens``
  3. The signed session cookie remembers ``spotify_user_id``
Review routes call :func:`get_valid_token` whenever they talk to Spotify.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
import time
from base64 import urlsafe_b64encode
from urllib.parse import urlencode

import httpx
from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse, RedirectResponse

from app.config import get_settings
from app.db import load_tokens, save_tokens, upsert_user

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])

# Reading the library and playlists, and removing tracks from both.
_SCOPES = " ".join(
    [
        "user-library-read",
        "user-library-modify",
        "playlist-read-private",
        "playlist-read-collaborative",
        "playlist-modify-public",
        "playlist-modify-private",
    ]
)

_SPOTIFY_AUTH_URL = "https://accounts.spotify.com/authorize"
_SPOTIFY_TOKEN_URL = "https://accounts.spotify.com/api/token"
_SPOTIFY_ME_URL = "https://api.spotify.com/v1/me"

_EXPIRY_MARGIN = 60  # seconds


# ---------------------------------------------------------------------------
# PKCE helpers
# ---------------------------------------------------------------------------

def _generate_code_verifier(length: int = 128) -> str:
    """Random URL-safe string (43-128 chars) per RFC 7636."""
    return secrets.token_urlsafe(length)[:length]


def _generate_code_challenge(verifier: str) -> str:
    """S256 code challenge = BASE64URL(SHA256(verifier))."""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def require_user(request: Request) -> str:
    """FastAPI dependency: the logged-in spotify_user_id, or 401."""
    uid = request.session.get("spotify_user_id")
    if not uid:
        raise HTTPException(status_code=401, detail="Not logged in — please /login")
    return uid


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@router.get("/login")
async def login(request: Request):
    settings = get_settings()
    if not settings.spotify_client_id:
        raise HTTPException(status_code=500, detail="SPOTIFY_CLIENT_ID not set")

    verifier = _generate_code_verifier()
    request.session["code_verifier"] = verifier

    params = {
        "client_id": settings.spotify_client_id,
        "response_type": "code",
        "redirect_uri": f"{settings.base_url}/callback",
        "scope": _SCOPES,
        "code_challenge_method": "S256",
        "code_challenge": _generate_code_challenge(verifier),
    }
    return RedirectResponse(f"{_SPOTIFY_AUTH_URL}?{urlencode(params)}")


@router.get("/callback")
async def callback(request: Request, code: str | None = None, error: str | None = None):
    """Finish the login started by /login."""
    if error:
        raise HTTPException(status_code=400, detail=f"Spotify auth error: {error}")
    if not code:
        raise HTTPException(status_code=400, detail="Missing authorization code")

    verifier = request.session.pop("code_verifier", None)
    if not verifier:
        raise HTTPException(status_code=400, detail="Missing code_verifier — restart login")

    settings = get_settings()
    async with httpx.AsyncClient() as client:
        resp = await client.post(
            _SPOTIFY_TOKEN_URL,
            data={
                "client_id": settings.spotify_client_id,
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": f"{settings.base_url}/callback",
                "code_verifier": verifier,
            },
        )
    if resp.status_code != 200:
        raise HTTPException(
            status_code=502,
            detail=f"Spotify token exchange failed ({resp.status_code}): {resp.text}",
        )
    token_data = resp.json()

    async with httpx.AsyncClient() as client:
        me_resp = await client.get(
            _SPOTIFY_ME_URL,
            headers={"Authorization": f"Bearer {token_data['access_token']}"},
        )
    if me_resp.status_code != 200:
        raise HTTPException(status_code=502, detail="Failed to fetch Spotify profile")

    me = me_resp.json()
    spotify_user_id = me["id"]
    await upsert_user(spotify_user_id, me.get("display_name") or "")
    await save_tokens(
        spotify_user_id,
        token_data["access_token"],
        token_data.get("refresh_token", ""),
        int(time.time()) + token_data.get("expires_in", 3600),
    )
    logger.info("User %s logged in", spotify_user_id)

    request.session["spotify_user_id"] = spotify_user_id
    return RedirectResponse("/review/status", status_code=303)


@router.get("/me")
async def me(request: Request):
    uid = require_user(request)
    return JSONResponse({"spotify_user_id": uid})


@router.get("/logout")
async def logout(request: Request):
    request.session.clear()
    return RedirectResponse("/")


# ---------------------------------------------------------------------------
# Token helpers (used by the Spotify client)
# ---------------------------------------------------------------------------

async def get_valid_token(spotify_user_id: str, *, force_refresh: bool = False) -> str:
    """Return an access token, refreshing it when it is about to expire.

    Raises ``HTTPException(401)`` if the user never logged in or the
    refresh is rejected.
    """
    tokens = await load_tokens(spotify_user_id)
    if tokens is None:
        raise HTTPException(status_code=401, detail="User not found — please /login")

    if force_refresh or tokens["expires_at"] < time.time() + _EXPIRY_MARGIN:
        tokens = await _refresh_token(spotify_user_id, tokens["refresh_token"])
    return tokens["access_token"]


async def _refresh_token(spotify_user_id: str, refresh_token: str) -> dict:
    if not refresh_token:
        raise HTTPException(status_code=401, detail="No refresh token — please /login")

    settings = get_settings()
    async with httpx.AsyncClient() as client:
        resp = await client.post(
            _SPOTIFY_TOKEN_URL,
            data={
                "client_id": settings.spotify_client_id,
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
            },
        )
    if resp.status_code != 200:
        logger.warning("Token refresh failed for %s (%s)", spotify_user_id, resp.status_code)
        raise HTTPException(status_code=401, detail="Token refresh failed — please /login")

    data = resp.json()
    # Spotify may or may not rotate the refresh token.
    tokens = {
        "access_token": data["access_token"],
        "refresh_token": data.get("refresh_token", refresh_token),
        "expires_at": int(time.time()) + data.get("expires_in", 3600),
    }
    await save_tokens(spotify_user_id, **tokens)
    logger.info("Refreshed access token for user %s", spotify_user_id)
    return tokens
