"""Review engine — swipe-to-curate over a paginated Spotify source.

Owns the active :class:`~core.session.ReviewSession`, loads pages through
the :class:`~app.catalog.CatalogFetcher`, prefetches ahead of the cursor and
turns committed decisions into remote removals.

Everything runs on one event loop.  Page loads and removals are background
tasks; each one holds a reference to the session it was started for and
drops its result if that session is no longer the active one.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Coroutine, Optional

from app.catalog import CatalogFetcher, DeleteFailed, FetchFailed
from app.config import get_settings
from app.spotify_client import SpotifyClient
from core.gesture import GestureTranslator
from core.models import (
    Decision,
    Feedback,
    Item,
    Outcome,
    PageRequest,
    SessionSnapshot,
    Source,
    SwipeRelease,
)
from core.prefetch import first_page_request, next_page_request
from core.session import ReviewSession

logger = logging.getLogger(__name__)

Animator = Callable[[SwipeRelease], Awaitable[None]]


async def _no_animation(release: SwipeRelease) -> None:
    """Server-side default: the client has already animated the card."""


class ReviewEngine:
    """One user's review queue."""

    def __init__(
        self,
        fetcher: CatalogFetcher,
        *,
        batch_size: Optional[int] = None,
        preload_threshold: Optional[int] = None,
        animator: Optional[Animator] = None,
    ):
        settings = get_settings()
        self.fetcher = fetcher
        self.batch_size = batch_size or settings.review_batch_size
        self.preload_threshold = (
            preload_threshold if preload_threshold is not None else settings.review_preload_threshold
        )
        self.animator = animator or _no_animation
        self.translator = GestureTranslator()
        self.session: ReviewSession | None = None
        self._tasks: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def current_item(self) -> Item | None:
        return self.session.current_item if self.session else None

    def snapshot(self) -> SessionSnapshot:
        if self.session is None:
            return SessionSnapshot()
        return self.session.snapshot()

    async def list_sources(self) -> list[Source]:
        try:
            return await self.fetcher.list_sources()
        except FetchFailed:
            logger.exception("Could not list playlists; offering Liked Songs only")
            return [Source.liked()]

    # ------------------------------------------------------------------
    # Source selection
    # ------------------------------------------------------------------

    async def select_source(self, source: Source) -> SessionSnapshot:
        """Start a fresh session for *source* and load its first page."""
        session = ReviewSession(source)
        session.loading = True
        self.session = session
        self.translator.reset()
        logger.info("Reviewing %s source %r", source.kind.value, source.id)

        try:
            page = await self.fetcher.fetch_page(source, first_page_request(self.batch_size))
        except FetchFailed:
            logger.exception("Initial load failed for %r", source.id)
            return self.snapshot()
        finally:
            session.loading = False

        if session is not self.session:
            logger.warning("Discarding first page for %r: source changed", source.id)
            return self.snapshot()

        admitted = session.apply_page(page, is_first_page=True)
        logger.info(
            "Loaded %d of %d tracks from %r", len(admitted), session.total_count, source.id
        )
        self._maybe_prefetch()
        return self.snapshot()

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    def commit(self, outcome: Outcome) -> Decision | None:
        """Commit *outcome* for the current item and advance immediately.

        A ``REMOVE`` schedules the Spotify deletion in the background; the
        advance does not wait for it and is never rolled back.  Returns
        ``None`` when there is nothing to review.
        """
        session = self.session
        if session is None:
            return None
        item = session.current_item
        decision = session.commit(outcome)
        if decision is None or item is None:
            return None

        logger.info("%s: %s by %s", outcome.value.upper(), item.name, item.artist_line)
        self.translator.reset()
        if outcome == Outcome.REMOVE:
            self._spawn(self._remove(session, item))
        self._maybe_prefetch()
        return decision

    async def _remove(self, session: ReviewSession, item: Item) -> None:
        try:
            await self.fetcher.delete_item(session.source, item)
        except DeleteFailed:
            logger.exception("Remote removal of %r failed; local advance kept", item.id)
            return

        if session is not self.session:
            logger.info("Removed %r after its session ended", item.id)
            return
        if session.confirm_removal(item.id):
            logger.info("Removed %r from %r", item.id, session.source.id)
            self._maybe_prefetch()

    # ------------------------------------------------------------------
    # Prefetch
    # ------------------------------------------------------------------

    def _maybe_prefetch(self) -> None:
        session = self.session
        if session is None or session.loading:
            return
        request = next_page_request(session, self.batch_size, self.preload_threshold)
        if request is None:
            return
        session.loading_more = True
        self._spawn(self._prefetch(session, request))

    async def _prefetch(self, session: ReviewSession, request: PageRequest) -> None:
        logger.debug("Prefetching %r at offset %d", session.source.id, request.offset)
        try:
            page = await self.fetcher.fetch_page(session.source, request)
        except FetchFailed:
            logger.exception("Prefetch failed for %r at offset %d", session.source.id, request.offset)
            return
        finally:
            session.loading_more = False

        if session is not self.session:
            logger.warning("Discarding page for %r: source changed", session.source.id)
            return

        admitted = session.apply_page(page, is_first_page=False)
        # An empty page leaves the buffer unchanged, so nothing to re-evaluate.
        if admitted:
            self._maybe_prefetch()

    # ------------------------------------------------------------------
    # Gestures
    # ------------------------------------------------------------------

    def grant(self) -> Feedback:
        return self.translator.grant()

    def move(self, dx: float, dy: float) -> Feedback:
        if self.current_item is None:
            return self.translator.reset()
        return self.translator.sample(dx, dy)

    async def release(self, dx: float, dy: float) -> SwipeRelease:
        """Finish a drag; commits after the fly-off animation when past threshold."""
        session = self.session
        item = self.current_item
        release = self.translator.release(dx, dy)
        if not release.commits or item is None:
            self.translator.reset()
            return SwipeRelease()

        await self.animator(release)
        # The source may have changed while the card was animating.
        if session is self.session and self.current_item is item:
            self.commit(release.outcome)
        self.translator.reset()
        return release

    # ------------------------------------------------------------------
    # Background tasks
    # ------------------------------------------------------------------

    def _spawn(self, coro: Coroutine) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait until every background load and removal has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)
        self._tasks.clear()
        self.session = None


# ---------------------------------------------------------------------------
# Per-user registry
# ---------------------------------------------------------------------------

# Key: spotify_user_id → ReviewEngine
_engines: dict[str, ReviewEngine] = {}


def get_engine(spotify_user_id: str) -> ReviewEngine | None:
    return _engines.get(spotify_user_id)


def get_or_create_engine(spotify_user_id: str) -> ReviewEngine:
    engine = _engines.get(spotify_user_id)
    if engine is None:
        engine = ReviewEngine(CatalogFetcher(SpotifyClient(spotify_user_id)))
        _engines[spotify_user_id] = engine
    return engine


async def close_engines() -> None:
    for engine in list(_engines.values()):
        await engine.close()
    _engines.clear()
