"""Resilient Spotify Web API client for the review queue.

Features:
  - 429 Retry-After with jitter
  - Exponential backoff on 5xx and timeouts
  - One forced token refresh on 401
  - Configurable timeouts & limited retries
  - The library / playlist calls the review engine needs
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Any

import httpx
from fastapi import HTTPException

from app.auth import get_valid_token
from app.config import get_settings

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

_CONNECT_TIMEOUT = 10.0  # seconds
_READ_TIMEOUT = 30.0
_BACKOFF_BASE = 0.5  # seconds
_BACKOFF_CAP = 30.0  # seconds
_JITTER_MAX = 0.5  # seconds

_SPOTIFY_API = "https://api.spotify.com/v1"
_PLAYLIST_PAGE_LIMIT = 50
_REMOVE_BATCH_SIZE = 50


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class SpotifyAPIError(Exception):
    """Raised when a Spotify API request fails after all retries."""

    def __init__(self, status_code: int, detail: str):
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"Spotify API error {status_code}: {detail}")


async def _backoff_sleep(attempt: int) -> None:
    """Exponential backoff with jitter, capped at ``_BACKOFF_CAP``."""
    delay = min(_BACKOFF_BASE * (2 ** attempt) + random.uniform(0, _JITTER_MAX), _BACKOFF_CAP)
    logger.debug("Backoff sleep %.2fs (attempt %d)", delay, attempt + 1)
    await asyncio.sleep(delay)


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class SpotifyClient:
    """Per-user Spotify client; tokens come from the ``tokens`` table."""

    def __init__(self, spotify_user_id: str, *, base_url: str = _SPOTIFY_API):
        self.spotify_user_id = spotify_user_id
        self.base_url = base_url

    async def _token(self, force_refresh: bool) -> str:
        """Access token for this user; a missing or unrefreshable one is an API error."""
        try:
            return await get_valid_token(self.spotify_user_id, force_refresh=force_refresh)
        except HTTPException as exc:
            raise SpotifyAPIError(exc.status_code, f"Token unavailable: {exc.detail}") from exc
        except RuntimeError as exc:
            raise SpotifyAPIError(0, f"Token store unavailable: {exc}") from exc

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """Make an authenticated request with retry logic.

        ``path`` is relative to ``/v1``, e.g. ``/me/tracks``.  Extra keyword
        arguments go to ``httpx.AsyncClient.request`` (params, json, …).

        Raises ``SpotifyAPIError`` on a non-retryable 4xx or once retries
        are exhausted.
        """
        url = f"{self.base_url}{path}"
        max_retries = get_settings().request_max_retries
        timeout = httpx.Timeout(_READ_TIMEOUT, connect=_CONNECT_TIMEOUT)
        force_refresh = False
        refreshed_on_401 = False
        last_status = 0

        attempt = 0
        while attempt < max_retries:
            token = await self._token(force_refresh)
            force_refresh = False
            headers = {"Authorization": f"Bearer {token}"}

            async with httpx.AsyncClient(timeout=timeout) as client:
                try:
                    resp = await client.request(method, url, headers=headers, **kwargs)
                except httpx.TimeoutException:
                    logger.warning("Timeout on attempt %d for %s %s", attempt + 1, method, path)
                    await _backoff_sleep(attempt)
                    attempt += 1
                    continue
                except httpx.TransportError as exc:
                    raise SpotifyAPIError(0, f"Transport error: {exc}") from exc

            last_status = resp.status_code

            # ── Success ─────────────────────────────────────────────
            if resp.status_code < 400:
                return resp

            # ── 401 → refresh once, not counted as an attempt ───────
            if resp.status_code == 401 and not refreshed_on_401:
                logger.info("401 on %s %s — refreshing token", method, path)
                force_refresh = True
                refreshed_on_401 = True
                continue

            # ── 429 → Retry-After ───────────────────────────────────
            if resp.status_code == 429:
                retry_after = int(resp.headers.get("Retry-After", "1"))
                wait = retry_after + random.uniform(0, _JITTER_MAX)
                logger.warning("429 on %s %s — waiting %.1fs", method, path, wait)
                await asyncio.sleep(wait)
                attempt += 1
                continue

            # ── 5xx → exponential backoff ───────────────────────────
            if resp.status_code >= 500:
                logger.warning(
                    "Server error %d on %s %s (attempt %d)",
                    resp.status_code, method, path, attempt + 1,
                )
                await _backoff_sleep(attempt)
                attempt += 1
                continue

            # ── 4xx (other) → fail immediately ──────────────────────
            raise SpotifyAPIError(resp.status_code, resp.text)

        raise SpotifyAPIError(
            last_status,
            f"Max retries ({max_retries}) exhausted for {method} {path}",
        )

    # ------------------------------------------------------------------
    # Playlists
    # ------------------------------------------------------------------

    async def get_playlists(self, limit: int = _PLAYLIST_PAGE_LIMIT, offset: int = 0) -> dict:
        resp = await self._request("GET", "/me/playlists", params={"limit": limit, "offset": offset})
        return resp.json()

    async def get_all_playlists(self) -> list[dict]:
        """Every playlist the user owns or follows, following ``next`` links."""
        playlists: list[dict] = []
        offset = 0
        while True:
            data = await self.get_playlists(limit=_PLAYLIST_PAGE_LIMIT, offset=offset)
            items = data.get("items", [])
            playlists.extend(item for item in items if item)
            if not data.get("next") or not items:
                break
            offset += len(items)
        return playlists

    async def get_playlist_tracks(self, playlist_id: str, limit: int, offset: int) -> list[dict]:
        """One page of playlist entries (each ``{"track": {...}}``)."""
        resp = await self._request(
            "GET",
            f"/playlists/{playlist_id}/tracks",
            params={"limit": limit, "offset": offset},
        )
        return resp.json().get("items", [])

    async def get_playlist_total(self, playlist_id: str) -> int | None:
        resp = await self._request(
            "GET",
            f"/playlists/{playlist_id}",
            params={"fields": "tracks(total)"},
        )
        return (resp.json().get("tracks") or {}).get("total")

    async def remove_playlist_tracks(self, playlist_id: str, uris: list[str]) -> None:
        for start in range(0, len(uris), _REMOVE_BATCH_SIZE):
            chunk = uris[start : start + _REMOVE_BATCH_SIZE]
            await self._request(
                "DELETE",
                f"/playlists/{playlist_id}/tracks",
                json={"tracks": [{"uri": uri} for uri in chunk]},
            )

    # ------------------------------------------------------------------
    # Liked Songs
    # ------------------------------------------------------------------

    async def get_saved_tracks(self, limit: int, offset: int) -> list[dict]:
        """One page of saved-track entries (each ``{"track": {...}}``)."""
        resp = await self._request("GET", "/me/tracks", params={"limit": limit, "offset": offset})
        return resp.json().get("items", [])

    async def get_saved_tracks_count(self) -> int:
        resp = await self._request("GET", "/me/tracks", params={"limit": 1, "offset": 0})
        return int(resp.json().get("total", 0))

    async def remove_saved_tracks(self, track_ids: list[str]) -> None:
        for start in range(0, len(track_ids), _REMOVE_BATCH_SIZE):
            chunk = track_ids[start : start + _REMOVE_BATCH_SIZE]
            await self._request("DELETE", "/me/tracks", json={"ids": chunk})
