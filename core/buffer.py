"""Deduplicating admission of raw catalog tracks. Pure business logic, no I/O.

Provides:
    parse_item(raw)           → Item or None when the payload is malformed
    admit(raw_items, seen)    → the valid, never-seen items, in arrival order
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from pydantic import ValidationError

from core.models import Artist, Item

logger = logging.getLogger(__name__)


def _album_image_url(raw: dict) -> Optional[str]:
    images = (raw.get("album") or {}).get("images") or []
    if images and isinstance(images[0], dict):
        return images[0].get("url")
    return None


def parse_item(raw: object) -> Optional[Item]:
    """Convert a Spotify track payload into an :class:`Item`.

    Unavailable placeholders (``None``), tracks without an id or name and
    tracks without any artist are rejected by returning ``None``.
    """
    if not isinstance(raw, dict):
        return None
    artists = raw.get("artists")
    if not isinstance(artists, list) or not artists:
        return None
    try:
        return Item(
            id=raw.get("id") or "",
            name=raw.get("name") or "",
            artists=[Artist(name=(a or {}).get("name") or "") for a in artists],
            album_image_url=_album_image_url(raw),
            uri=raw.get("uri") or "",
        )
    except (ValidationError, AttributeError):
        return None


def admit(raw_items: Iterable[object], seen_ids: set[str]) -> list[Item]:
    """Filter *raw_items* down to valid items whose id is not in *seen_ids*.

    Every accepted id is added to *seen_ids* as it is admitted, so a
    duplicate inside the same batch is dropped too and a second call with
    the same batch returns an empty list.
    """
    admitted: list[Item] = []
    rejected = 0
    for raw in raw_items:
        item = parse_item(raw)
        if item is None or item.id in seen_ids:
            rejected += 1
            continue
        seen_ids.add(item.id)
        admitted.append(item)

    if rejected:
        logger.debug("Dropped %d invalid or duplicate items", rejected)
    return admitted
