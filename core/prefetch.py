"""Prefetch rule for the review buffer. Pure, no I/O.

The next page is requested while a few unreviewed items are still buffered
so the user never waits on the network between cards.
"""

from __future__ import annotations

from typing import Optional

from core.models import PageRequest
from core.session import ReviewSession

BATCH_SIZE = 25
PRELOAD_THRESHOLD = 5


def first_page_request(batch_size: int = BATCH_SIZE) -> PageRequest:
    return PageRequest(limit=batch_size, offset=0, is_first_page=True)


def should_prefetch(session: ReviewSession, threshold: int = PRELOAD_THRESHOLD) -> bool:
    """True when the session is running low and another page exists remotely.

    ``position > 0`` keeps the prefetch from racing the initial load, and
    ``loading_more`` allows at most one outstanding prefetch.
    """
    return (
        session.remaining <= threshold
        and not session.loading_more
        and session.position > 0
        and session.has_more_remote
    )


def next_page_request(
    session: ReviewSession,
    batch_size: int = BATCH_SIZE,
    threshold: int = PRELOAD_THRESHOLD,
) -> Optional[PageRequest]:
    """Return the page to prefetch, or ``None`` if nothing should be fetched."""
    if not should_prefetch(session, threshold):
        return None
    return PageRequest(limit=batch_size, offset=len(session.buffer), is_first_page=False)
