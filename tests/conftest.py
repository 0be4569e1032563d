"""Shared fixtures: isolated settings and an in-memory Spotify catalog."""

from __future__ import annotations

import asyncio

import pytest

from app.spotify_client import SpotifyAPIError


def make_track(i, *, name=None):
    return {
        "id": f"t{i}",
        "name": name or f"Track {i}",
        "artists": [{"name": f"Artist {i}"}],
        "album": {"images": [{"url": f"http://img/{i}"}]},
        "uri": f"spotify:track:t{i}",
    }


class FakeCatalog:
    """Stands in for ``SpotifyClient``; records every call.

    ``liked`` and ``playlists`` hold raw track payloads.  Set ``gate`` to an
    ``asyncio.Event`` to hold page reads until the test releases them, and
    ``fail_reads`` / ``fail_deletes`` to make calls raise.
    """

    def __init__(self, liked=None, playlists=None, playlist_names=None):
        self.liked = list(liked or [])
        self.playlists = {k: list(v) for k, v in (playlists or {}).items()}
        self.playlist_names = playlist_names or {}
        self.calls: list[tuple] = []
        self.gate: asyncio.Event | None = None
        self.fail_reads = False
        self.fail_deletes = False
        self.report_total: dict[str, int | None] = {}

    async def _maybe_wait(self):
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_reads:
            raise SpotifyAPIError(503, "unavailable")

    async def get_all_playlists(self):
        self.calls.append(("playlists",))
        if self.fail_reads:
            raise SpotifyAPIError(500, "boom")
        return [
            {"id": pid, "name": self.playlist_names.get(pid, pid)} for pid in self.playlists
        ]

    async def get_saved_tracks(self, limit, offset):
        self.calls.append(("saved", limit, offset))
        await self._maybe_wait()
        return [{"track": t} for t in self.liked[offset : offset + limit]]

    async def get_saved_tracks_count(self):
        self.calls.append(("saved_count",))
        if self.fail_reads:
            raise SpotifyAPIError(503, "unavailable")
        return len(self.liked)

    async def get_playlist_tracks(self, playlist_id, limit, offset):
        self.calls.append(("playlist", playlist_id, limit, offset))
        await self._maybe_wait()
        return [{"track": t} for t in self.playlists[playlist_id][offset : offset + limit]]

    async def get_playlist_total(self, playlist_id):
        self.calls.append(("playlist_total", playlist_id))
        if playlist_id in self.report_total:
            return self.report_total[playlist_id]
        return len(self.playlists[playlist_id])

    async def remove_saved_tracks(self, track_ids):
        self.calls.append(("remove_saved", list(track_ids)))
        if self.fail_deletes:
            raise SpotifyAPIError(502, "bad gateway")
        self.liked = [t for t in self.liked if t is None or t.get("id") not in track_ids]

    async def remove_playlist_tracks(self, playlist_id, uris):
        self.calls.append(("remove_playlist", playlist_id, list(uris)))
        if self.fail_deletes:
            raise SpotifyAPIError(502, "bad gateway")
        self.playlists[playlist_id] = [
            t for t in self.playlists[playlist_id] if t is None or t.get("uri") not in uris
        ]


@pytest.fixture(autouse=True)
def _env_setup(monkeypatch, tmp_path):
    """Use a temp DB and fresh settings for every test."""
    monkeypatch.setenv("DB_PATH", str(tmp_path / "test.db"))
    monkeypatch.setenv("SPOTIFY_CLIENT_ID", "test_client_id")
    monkeypatch.setenv("SECRET_KEY", "test_secret")
    from app.config import get_settings
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def tracks():
    return make_track


@pytest.fixture
def catalog():
    return FakeCatalog(
        liked=[make_track(i) for i in range(60)],
        playlists={"pl1": [make_track(100 + i) for i in range(8)], "empty": []},
        playlist_names={"pl1": "Road Trip", "empty": "Nothing"},
    )
