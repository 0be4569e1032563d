"""Review session state and the keep/remove decision state machine.

A :class:`ReviewSession` owns everything that belongs to reviewing one
source: the deduplicated buffer, the set of ids ever admitted, the cursor
and the decision log.  It performs no I/O; ``app.review`` drives it.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from core.buffer import admit
from core.models import Decision, Item, Outcome, Page, SessionSnapshot, Source

NO_TRACKS_MESSAGE = "No tracks found in this playlist."
NO_LIKED_MESSAGE = "No liked songs found."
ALL_REVIEWED_MESSAGE = "All songs reviewed!"


class ReviewState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    REVIEWING = "reviewing"
    EXHAUSTED = "exhausted"


class ReviewSession:
    """In-memory state for reviewing a single source."""

    __slots__ = (
        "source",
        "buffer",
        "seen_ids",
        "position",
        "reviewed",
        "total_count",
        "loading",
        "loading_more",
        "decisions",
    )

    def __init__(self, source: Source):
        self.source = source
        self.buffer: list[Item] = []
        self.seen_ids: set[str] = set()
        self.position = 0
        self.reviewed = 0
        self.total_count = 0
        self.loading = False
        self.loading_more = False
        self.decisions: list[Decision] = []

    def reset(self) -> None:
        """Drop everything loaded so far; the source stays the same."""
        self.buffer = []
        self.seen_ids.clear()
        self.position = 0
        self.reviewed = 0
        self.total_count = 0
        self.loading = False
        self.loading_more = False
        self.decisions = []

    # ------------------------------------------------------------------
    # Derived state
    # ------------------------------------------------------------------

    @property
    def current_item(self) -> Optional[Item]:
        if self.position < len(self.buffer):
            return self.buffer[self.position]
        return None

    @property
    def remaining(self) -> int:
        return len(self.buffer) - self.position

    @property
    def has_more_remote(self) -> bool:
        return len(self.buffer) < self.total_count

    @property
    def state(self) -> ReviewState:
        if self.loading:
            return ReviewState.LOADING
        if self.current_item is not None:
            return ReviewState.REVIEWING
        if self.total_count == 0 or not self.has_more_remote:
            return ReviewState.EXHAUSTED
        # Cursor caught up with the buffer while the next page is pending.
        return ReviewState.IDLE

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def apply_page(self, page: Page, *, is_first_page: bool) -> list[Item]:
        """Admit a fetched page; the first page replaces the buffer."""
        if page.total_count is not None:
            self.total_count = page.total_count

        admitted = admit(page.raw_items, self.seen_ids)
        if is_first_page:
            self.buffer = admitted
        else:
            self.buffer.extend(admitted)

        # The remote total can lag behind what a page actually returned.
        if len(self.buffer) > self.total_count:
            self.total_count = len(self.buffer)
        return admitted

    def commit(self, outcome: Outcome) -> Optional[Decision]:
        """Record *outcome* for the current item and advance by one.

        Returns ``None`` (and changes nothing) when there is no current item.
        """
        item = self.current_item
        if item is None:
            return None

        decision = Decision(
            item_id=item.id,
            outcome=outcome,
            committed_at=len(self.decisions),
        )
        self.decisions.append(decision)
        self.position += 1
        self.reviewed += 1
        return decision

    def confirm_removal(self, item_id: str) -> bool:
        """Drop a remotely deleted item from the buffer.

        The id stays in ``seen_ids`` so a later page cannot bring it back.
        The cursor is rebased so it keeps pointing at the same next item.
        """
        for index, item in enumerate(self.buffer):
            if item.id == item_id:
                break
        else:
            return False

        del self.buffer[index]
        if index < self.position:
            self.position -= 1
        self.total_count = max(self.total_count - 1, len(self.buffer))
        return True

    # ------------------------------------------------------------------
    # Presentation
    # ------------------------------------------------------------------

    def message(self) -> Optional[str]:
        state = self.state
        if state != ReviewState.EXHAUSTED:
            return None
        if self.total_count == 0:
            return NO_LIKED_MESSAGE if self.source.is_liked else NO_TRACKS_MESSAGE
        return ALL_REVIEWED_MESSAGE

    def progress(self) -> str:
        text = f"{min(self.position + 1, self.total_count)} / {self.total_count}"
        if self.has_more_remote:
            text += f" ({len(self.buffer)} loaded)"
        return text

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            source=self.source,
            state=self.state.value,
            current_item=self.current_item,
            position=self.reviewed,
            cursor=self.position,
            total_count=self.total_count,
            buffered=len(self.buffer),
            loading=self.loading,
            loading_more=self.loading_more,
            decisions=len(self.decisions),
            message=self.message(),
            progress=self.progress(),
        )
