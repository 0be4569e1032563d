"""Tests for the review engine (app/review.py).

Spotify is replaced by the in-memory ``FakeCatalog`` from conftest.
"""

from __future__ import annotations

import asyncio
import logging
from unittest.mock import AsyncMock

import pytest
from fastapi import HTTPException

from app.catalog import CatalogFetcher
from app.review import ReviewEngine
from core.models import Outcome, Source
from core.session import ALL_REVIEWED_MESSAGE, NO_LIKED_MESSAGE, NO_TRACKS_MESSAGE


@pytest.fixture
def engine(catalog):
    return ReviewEngine(CatalogFetcher(catalog))


def _reads(catalog, kind="saved"):
    return [c for c in catalog.calls if c[0] == kind]


# ---------------------------------------------------------------------------
# Source selection
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_select_liked_loads_first_batch(engine, catalog):
    snap = await engine.select_source(Source.liked())
    assert snap.state == "reviewing"
    assert snap.current_item.id == "t0"
    assert snap.buffered == 25
    assert snap.total_count == 60
    assert snap.loading is False
    await engine.drain()
    # Position 0 never prefetches.
    assert _reads(catalog) == [("saved", 25, 0)]


@pytest.mark.asyncio
async def test_select_playlist(engine):
    snap = await engine.select_source(Source.playlist("pl1", "Road Trip"))
    assert snap.total_count == 8
    assert snap.buffered == 8
    assert snap.current_item.id == "t100"


@pytest.mark.asyncio
async def test_empty_liked_is_exhausted_with_no_tracks_message(catalog):
    catalog.liked = []
    engine = ReviewEngine(CatalogFetcher(catalog))
    snap = await engine.select_source(Source.liked())
    assert snap.state == "exhausted"
    assert snap.current_item is None
    assert snap.message == NO_LIKED_MESSAGE


@pytest.mark.asyncio
async def test_empty_playlist_uses_playlist_wording(engine):
    snap = await engine.select_source(Source.playlist("empty", "Nothing"))
    assert snap.state == "exhausted"
    assert snap.message == NO_TRACKS_MESSAGE


@pytest.mark.asyncio
async def test_initial_load_failure_shows_empty_queue(engine, catalog, caplog):
    catalog.fail_reads = True
    with caplog.at_level(logging.ERROR, logger="app.review"):
        snap = await engine.select_source(Source.liked())
    assert snap.loading is False
    assert snap.buffered == 0
    assert snap.message == NO_LIKED_MESSAGE
    assert "Initial load failed" in caplog.text


@pytest.mark.asyncio
async def test_reselect_resets_session(engine):
    await engine.select_source(Source.liked())
    engine.commit(Outcome.KEEP)
    engine.commit(Outcome.KEEP)
    snap = await engine.select_source(Source.liked())
    assert snap.position == 0
    assert snap.decisions == 0
    assert snap.current_item.id == "t0"


@pytest.mark.asyncio
async def test_duplicate_across_pages_admitted_once(catalog, tracks):
    catalog.liked[26] = tracks(0, name="Duplicate of first")
    engine = ReviewEngine(CatalogFetcher(catalog))
    await engine.select_source(Source.liked())
    for _ in range(21):
        engine.commit(Outcome.KEEP)
    await engine.drain()
    ids = [i.id for i in engine.session.buffer]
    assert ids.count("t0") == 1
    assert len(ids) == 49


# ---------------------------------------------------------------------------
# Prefetch
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_prefetch_requested_before_buffer_runs_out(engine, catalog):
    await engine.select_source(Source.liked())
    for _ in range(21):
        engine.commit(Outcome.KEEP)
    assert engine.session.loading_more is True
    await engine.drain()

    assert ("saved", 25, 25) in catalog.calls
    assert engine.session.loading_more is False
    assert len(engine.session.buffer) == 50
    assert engine.current_item.id == "t21"


@pytest.mark.asyncio
async def test_only_one_prefetch_in_flight(engine, catalog):
    await engine.select_source(Source.liked())
    gate = asyncio.Event()
    catalog.gate = gate
    for _ in range(24):
        engine.commit(Outcome.KEEP)
    await asyncio.sleep(0)
    assert _reads(catalog).count(("saved", 25, 25)) == 1

    gate.set()
    await engine.drain()
    assert _reads(catalog).count(("saved", 25, 25)) == 1


@pytest.mark.asyncio
async def test_prefetch_failure_clears_flag_without_retry(engine, catalog, caplog):
    await engine.select_source(Source.liked())
    catalog.fail_reads = True
    with caplog.at_level(logging.ERROR, logger="app.review"):
        for _ in range(20):
            engine.commit(Outcome.KEEP)
        await engine.drain()
    assert engine.session.loading_more is False
    assert len(engine.session.buffer) == 25
    assert _reads(catalog).count(("saved", 25, 25)) == 1
    assert "Prefetch failed" in caplog.text


@pytest.mark.asyncio
async def test_late_page_resumes_review(catalog):
    catalog.liked = catalog.liked[:4]
    engine = ReviewEngine(CatalogFetcher(catalog), batch_size=2, preload_threshold=0)
    await engine.select_source(Source.liked())

    gate = asyncio.Event()
    catalog.gate = gate
    engine.commit(Outcome.KEEP)
    engine.commit(Outcome.KEEP)
    assert engine.snapshot().state == "idle"
    assert engine.current_item is None

    gate.set()
    await engine.drain()
    assert engine.snapshot().state == "reviewing"
    assert engine.current_item.id == "t2"


@pytest.mark.asyncio
async def test_stale_prefetch_is_discarded(engine, catalog):
    await engine.select_source(Source.liked())
    gate = asyncio.Event()
    catalog.gate = gate
    for _ in range(21):
        engine.commit(Outcome.KEEP)
    await asyncio.sleep(0)  # prefetch now waits on the gate

    catalog.gate = None
    snap = await engine.select_source(Source.playlist("pl1"))
    gate.set()
    await engine.drain()

    assert snap.buffered == 8
    assert [i.id for i in engine.session.buffer] == [f"t{100 + i}" for i in range(8)]
    assert engine.session.loading_more is False


@pytest.mark.asyncio
async def test_stale_first_page_is_discarded(engine, catalog):
    gate = asyncio.Event()
    catalog.gate = gate
    first = asyncio.create_task(engine.select_source(Source.liked()))
    await asyncio.sleep(0)

    catalog.gate = None
    await engine.select_source(Source.playlist("pl1"))
    gate.set()
    await first

    assert engine.session.source.id == "pl1"
    assert engine.current_item.id == "t100"
    assert len(engine.session.buffer) == 8


# ---------------------------------------------------------------------------
# Decisions
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_keep_makes_no_remote_call(engine, catalog):
    await engine.select_source(Source.liked())
    decision = engine.commit(Outcome.KEEP)
    await engine.drain()
    assert decision.item_id == "t0"
    assert not [c for c in catalog.calls if c[0].startswith("remove")]


@pytest.mark.asyncio
async def test_remove_advances_before_delete_completes(engine, catalog):
    await engine.select_source(Source.playlist("pl1"))
    engine.commit(Outcome.REMOVE)
    # Advance is synchronous; the delete has not run yet.
    assert engine.session.position == 1
    assert engine.current_item.id == "t101"

    await engine.drain()
    assert ("remove_playlist", "pl1", ["spotify:track:t100"]) in catalog.calls
    assert [i.id for i in engine.session.buffer][0] == "t101"
    assert engine.current_item.id == "t101"
    assert engine.session.total_count == 7
    assert engine.snapshot().position == 1


@pytest.mark.asyncio
async def test_remove_from_liked_deletes_by_id(engine, catalog):
    await engine.select_source(Source.liked())
    engine.commit(Outcome.REMOVE)
    await engine.drain()
    assert ("remove_saved", ["t0"]) in catalog.calls


@pytest.mark.asyncio
async def test_delete_failure_keeps_advance(engine, catalog, caplog):
    await engine.select_source(Source.liked())
    catalog.fail_deletes = True
    with caplog.at_level(logging.ERROR, logger="app.review"):
        engine.commit(Outcome.REMOVE)
        await engine.drain()
    assert engine.session.position == 1
    assert len(engine.session.buffer) == 25
    assert engine.current_item.id == "t1"
    assert "Remote removal" in caplog.text


@pytest.mark.asyncio
async def test_expired_login_on_first_load_shows_empty_queue(engine, catalog, monkeypatch, caplog):
    monkeypatch.setattr(
        catalog, "get_saved_tracks_count",
        AsyncMock(side_effect=HTTPException(status_code=401, detail="Token refresh failed")),
    )
    with caplog.at_level(logging.ERROR, logger="app.review"):
        snap = await engine.select_source(Source.liked())
    assert snap.loading is False
    assert snap.state == "exhausted"
    assert snap.message == NO_LIKED_MESSAGE
    assert "Initial load failed" in caplog.text


@pytest.mark.asyncio
async def test_unexpected_first_load_error_still_clears_loading(engine, monkeypatch):
    monkeypatch.setattr(engine.fetcher, "fetch_page", AsyncMock(side_effect=RuntimeError("boom")))
    with pytest.raises(RuntimeError):
        await engine.select_source(Source.liked())
    assert engine.session.loading is False


@pytest.mark.asyncio
async def test_expired_login_on_prefetch_is_logged(engine, catalog, monkeypatch, caplog):
    await engine.select_source(Source.liked())
    monkeypatch.setattr(
        catalog, "get_saved_tracks",
        AsyncMock(side_effect=HTTPException(status_code=401, detail="Token refresh failed")),
    )
    with caplog.at_level(logging.ERROR, logger="app.review"):
        for _ in range(20):
            engine.commit(Outcome.KEEP)
        await engine.drain()
    assert engine.session.loading_more is False
    assert len(engine.session.buffer) == 25
    assert "Prefetch failed" in caplog.text


@pytest.mark.asyncio
async def test_expired_login_on_delete_keeps_advance(engine, catalog, monkeypatch, caplog):
    await engine.select_source(Source.liked())
    monkeypatch.setattr(
        catalog, "remove_saved_tracks",
        AsyncMock(side_effect=HTTPException(status_code=401, detail="Token refresh failed")),
    )
    with caplog.at_level(logging.ERROR, logger="app.review"):
        engine.commit(Outcome.REMOVE)
        await engine.drain()
    assert engine.current_item.id == "t1"
    assert len(engine.session.buffer) == 25
    assert "Remote removal" in caplog.text


@pytest.mark.asyncio
async def test_commit_without_source_is_noop(engine):
    assert engine.commit(Outcome.KEEP) is None
    assert engine.snapshot().state == "idle"


@pytest.mark.asyncio
async def test_every_item_decided_exactly_once(engine, catalog):
    await engine.select_source(Source.liked())
    decided = []
    for _ in range(80):
        decision = engine.commit(Outcome.KEEP)
        if decision:
            decided.append(decision.item_id)
        await engine.drain()
    assert decided == [f"t{i}" for i in range(60)]
    snap = engine.snapshot()
    assert snap.state == "exhausted"
    assert snap.message == ALL_REVIEWED_MESSAGE


# ---------------------------------------------------------------------------
# Gestures
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_swipe_right_keeps(engine, catalog):
    await engine.select_source(Source.liked())
    engine.grant()
    assert engine.move(150, 0).direction.value == "right"
    release = await engine.release(150, 0)
    await engine.drain()
    assert release.outcome == Outcome.KEEP
    assert engine.session.decisions[-1].outcome == Outcome.KEEP
    assert not [c for c in catalog.calls if c[0].startswith("remove")]


@pytest.mark.asyncio
async def test_swipe_left_removes(engine, catalog):
    await engine.select_source(Source.liked())
    release = await engine.release(-150, 0)
    await engine.drain()
    assert release.outcome == Outcome.REMOVE
    assert ("remove_saved", ["t0"]) in catalog.calls


@pytest.mark.asyncio
async def test_short_swipe_resets_without_commit(engine):
    await engine.select_source(Source.liked())
    engine.move(80, 0)
    release = await engine.release(80, 0)
    assert not release.commits
    assert engine.session.position == 0
    assert engine.translator.feedback.translate_x == 0
    assert engine.translator.feedback.intensity == 0


@pytest.mark.asyncio
async def test_commit_happens_after_animation(catalog):
    seen_positions = []

    async def animator(release):
        seen_positions.append(engine.session.position)

    engine = ReviewEngine(CatalogFetcher(catalog), animator=animator)
    await engine.select_source(Source.liked())
    await engine.release(200, 0)
    assert seen_positions == [0]
    assert engine.session.position == 1


@pytest.mark.asyncio
async def test_source_change_during_animation_skips_commit(catalog):
    async def animator(release):
        await engine.select_source(Source.playlist("pl1"))

    engine = ReviewEngine(CatalogFetcher(catalog), animator=animator)
    await engine.select_source(Source.liked())
    await engine.release(-200, 0)
    await engine.drain()
    assert engine.session.position == 0
    assert engine.session.decisions == []
    assert not [c for c in catalog.calls if c[0].startswith("remove")]


@pytest.mark.asyncio
async def test_move_without_item_is_neutral(engine):
    fb = engine.move(200, 0)
    assert fb.direction.value == "none"


@pytest.mark.asyncio
async def test_list_sources_falls_back_to_liked(engine, catalog):
    catalog.fail_reads = True
    assert await engine.list_sources() == [Source.liked()]
