"""Pydantic models shared across the review engine."""

from __future__ import annotations

from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, Field


LIKED_SOURCE_ID = "liked"


class SourceKind(str, Enum):
    LIKED = "liked"  # the user's saved tracks
    PLAYLIST = "playlist"


class Source(BaseModel):
    """Where the review queue pulls its items from."""

    kind: SourceKind
    id: str = LIKED_SOURCE_ID
    name: str = ""

    @classmethod
    def liked(cls) -> "Source":
        return cls(kind=SourceKind.LIKED, id=LIKED_SOURCE_ID, name="Liked Songs")

    @classmethod
    def playlist(cls, playlist_id: str, name: str = "") -> "Source":
        return cls(kind=SourceKind.PLAYLIST, id=playlist_id, name=name)

    @property
    def is_liked(self) -> bool:
        return self.kind == SourceKind.LIKED


class Artist(BaseModel):
    name: str = ""


class Item(BaseModel):
    """A track that made it through admission."""

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    artists: List[Artist] = Field(min_length=1)
    album_image_url: Optional[str] = None
    uri: str = ""

    @property
    def artist_line(self) -> str:
        return ", ".join(a.name for a in self.artists if a.name)


class Outcome(str, Enum):
    KEEP = "keep"
    REMOVE = "remove"


class Decision(BaseModel):
    """A terminal verdict for one item; ``committed_at`` is the commit sequence number."""

    item_id: str
    outcome: Outcome
    committed_at: int


class PageRequest(BaseModel):
    limit: int
    offset: int
    is_first_page: bool = False


class Page(BaseModel):
    """Raw result of one catalog page fetch.

    ``total_count`` is ``None`` when the fetch did not look up a total and
    the caller should keep its previous value.
    """

    raw_items: List[Any] = Field(default_factory=list)
    total_count: Optional[int] = None


class Direction(str, Enum):
    LEFT = "left"
    RIGHT = "right"
    NONE = "none"


class Feedback(BaseModel):
    """Per-frame visual signal for the card being dragged."""

    direction: Direction = Direction.NONE
    intensity: float = 0.0  # overlay opacity, 0..1
    translate_x: float = 0.0
    translate_y: float = 0.0
    rotation_deg: float = 0.0


class SwipeRelease(BaseModel):
    """What the presentation should animate after the pointer is released.

    ``animation`` is ``"timing"`` for a committed swipe flying off to
    ``target_x`` and ``"spring"`` for a snap back to neutral.
    """

    outcome: Optional[Outcome] = None
    animation: str = "spring"
    target_x: float = 0.0
    duration_ms: int = 0

    @property
    def commits(self) -> bool:
        return self.outcome is not None


class SessionSnapshot(BaseModel):
    """Read-only view of a review session for the presentation layer."""

    source: Optional[Source] = None
    state: str = "idle"
    current_item: Optional[Item] = None
    # Items decided so far; never decreases.
    position: int = 0
    # Buffer index of the current item, shifted back by confirmed removals.
    cursor: int = 0
    total_count: int = 0
    buffered: int = 0
    loading: bool = False
    loading_more: bool = False
    decisions: int = 0
    message: Optional[str] = None
    progress: str = ""
