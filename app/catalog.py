"""Catalog page fetching and track removal for a review source.

Liked Songs and named playlists page differently on Spotify; this module
folds both into one ``fetch_page`` call and one ``delete_item`` call so the
review engine never needs to know which kind of source it is reviewing.
"""

from __future__ import annotations

import logging
from typing import Protocol

import httpx
from fastapi import HTTPException

from app.spotify_client import SpotifyAPIError
from core.models import Item, Page, PageRequest, Source

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class FetchFailed(Exception):
    """A page or total-count request for *source* failed."""

    def __init__(self, source: Source, detail: str):
        self.source = source
        self.detail = detail
        super().__init__(f"Fetching {source.kind.value} source {source.id!r} failed: {detail}")


class DeleteFailed(Exception):
    """Removing *item_id* from *source* on Spotify failed."""

    def __init__(self, source: Source, item_id: str, detail: str):
        self.source = source
        self.item_id = item_id
        self.detail = detail
        super().__init__(f"Removing {item_id!r} from {source.id!r} failed: {detail}")


class CatalogClient(Protocol):
    """The subset of :class:`~app.spotify_client.SpotifyClient` used here."""

    async def get_all_playlists(self) -> list[dict]: ...
    async def get_saved_tracks(self, limit: int, offset: int) -> list[dict]: ...
    async def get_saved_tracks_count(self) -> int: ...
    async def get_playlist_tracks(self, playlist_id: str, limit: int, offset: int) -> list[dict]: ...
    async def get_playlist_total(self, playlist_id: str) -> int | None: ...
    async def remove_saved_tracks(self, track_ids: list[str]) -> None: ...
    async def remove_playlist_tracks(self, playlist_id: str, uris: list[str]) -> None: ...


_FAILURES = (
    SpotifyAPIError,
    HTTPException,
    httpx.HTTPError,
    KeyError,
    TypeError,
    ValueError,
)


def _unwrap_tracks(entries: list) -> list:
    """Saved-track and playlist pages wrap each track as ``{"track": {...}}``."""
    return [entry.get("track") if isinstance(entry, dict) else None for entry in entries]


# ---------------------------------------------------------------------------
# Fetcher
# ---------------------------------------------------------------------------

class CatalogFetcher:
    def __init__(self, client: CatalogClient):
        self.client = client

    async def list_sources(self) -> list[Source]:
        """Liked Songs first, then every playlist the user can see."""
        try:
            playlists = await self.client.get_all_playlists()
        except _FAILURES as exc:
            raise FetchFailed(Source.liked(), f"listing playlists: {exc}") from exc

        sources = [Source.liked()]
        for pl in playlists:
            if pl.get("id"):
                sources.append(Source.playlist(pl["id"], pl.get("name") or "(untitled)"))
        return sources

    async def fetch_page(self, source: Source, request: PageRequest) -> Page:
        """Read one page of raw tracks; never touches review state.

        The total is only looked up for the first page.  For a playlist it
        is skipped when the first page is empty, and falls back to the page
        length when Spotify omits it.
        """
        try:
            if source.is_liked:
                total = None
                if request.is_first_page:
                    total = await self.client.get_saved_tracks_count()
                entries = await self.client.get_saved_tracks(request.limit, request.offset)
            else:
                entries = await self.client.get_playlist_tracks(
                    source.id, request.limit, request.offset
                )
                total = None
                if request.is_first_page and entries:
                    total = await self.client.get_playlist_total(source.id)
                    if not total:
                        total = len(entries)
            raw_items = _unwrap_tracks(entries)
        except _FAILURES as exc:
            raise FetchFailed(source, str(exc)) from exc

        logger.debug(
            "Fetched %d raw items from %s at offset %d (total=%s)",
            len(raw_items), source.id, request.offset, total,
        )
        return Page(raw_items=raw_items, total_count=total)

    async def delete_item(self, source: Source, item: Item) -> None:
        """Remove *item* from *source*: by id for Liked Songs, by URI for playlists."""
        try:
            if source.is_liked:
                await self.client.remove_saved_tracks([item.id])
            else:
                await self.client.remove_playlist_tracks(source.id, [item.uri])
        except _FAILURES as exc:
            raise DeleteFailed(source, item.id, str(exc)) from exc
