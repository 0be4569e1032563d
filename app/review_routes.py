"""Review queue JSON API.

Endpoints for listing sources, selecting one, reading the session snapshot,
committing keep/remove by button, and streaming swipe gestures.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from app.auth import require_user
from app.review import ReviewEngine, get_engine, get_or_create_engine
from core.models import LIKED_SOURCE_ID, Outcome, Source, SourceKind

router = APIRouter(prefix="/review", tags=["review"])


class SourceRequest(BaseModel):
    kind: SourceKind
    id: Optional[str] = None
    name: str = ""


class CommitRequest(BaseModel):
    outcome: Outcome


class GestureRequest(BaseModel):
    dx: float
    dy: float = 0.0


def _active_engine(uid: str) -> ReviewEngine:
    engine = get_engine(uid)
    if engine is None or engine.session is None:
        raise HTTPException(status_code=409, detail="No source selected")
    return engine


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.get("/sources")
async def sources(uid: str = Depends(require_user)):
    """Liked Songs plus the user's playlists."""
    engine = get_or_create_engine(uid)
    found = await engine.list_sources()
    return JSONResponse([s.model_dump(mode="json") for s in found])


@router.post("/source")
async def select_source(body: SourceRequest, uid: str = Depends(require_user)):
    """Start reviewing a source; returns once the first page is in."""
    if body.kind == SourceKind.LIKED:
        source = Source.liked()
    elif not body.id or body.id == LIKED_SOURCE_ID:
        raise HTTPException(status_code=400, detail="Playlist id is required")
    else:
        source = Source.playlist(body.id, body.name)

    engine = get_or_create_engine(uid)
    snapshot = await engine.select_source(source)
    return JSONResponse(snapshot.model_dump(mode="json"))


@router.get("/status")
async def status(uid: str = Depends(require_user)):
    engine = get_engine(uid)
    if engine is None:
        return JSONResponse({"state": "idle", "position": 0, "cursor": 0, "total_count": 0})
    return JSONResponse(engine.snapshot().model_dump(mode="json"))


@router.post("/commit")
async def commit(body: CommitRequest, uid: str = Depends(require_user)):
    """Button keep/remove — same effect as a completed swipe."""
    engine = _active_engine(uid)
    engine.commit(body.outcome)
    return JSONResponse(engine.snapshot().model_dump(mode="json"))


@router.post("/gesture/move")
async def gesture_move(body: GestureRequest, uid: str = Depends(require_user)):
    engine = _active_engine(uid)
    feedback = engine.move(body.dx, body.dy)
    return JSONResponse(feedback.model_dump(mode="json"))


@router.post("/gesture/release")
async def gesture_release(body: GestureRequest, uid: str = Depends(require_user)):
    engine = _active_engine(uid)
    release = await engine.release(body.dx, body.dy)
    return JSONResponse(
        {
            "release": release.model_dump(mode="json"),
            "snapshot": engine.snapshot().model_dump(mode="json"),
        }
    )
