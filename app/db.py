"""Async SQLite store for users and their Spotify tokens.

Uses aiosqlite for non-blocking access.  Review sessions are never written
here; they live in memory for as long as the user keeps a source selected.
"""

from __future__ import annotations

import aiosqlite

from app.config import get_settings

# Module-level connection (set during lifespan startup).
_db: aiosqlite.Connection | None = None

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS users (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    spotify_user_id TEXT    NOT NULL UNIQUE,
    display_name    TEXT    NOT NULL DEFAULT '',
    created_at      TEXT    NOT NULL DEFAULT (datetime('now')),
    updated_at      TEXT    NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS tokens (
    user_id         TEXT    PRIMARY KEY REFERENCES users(spotify_user_id),
    access_token    TEXT    NOT NULL,
    refresh_token   TEXT    NOT NULL DEFAULT '',
    expires_at      INTEGER NOT NULL DEFAULT 0,
    updated_at      TEXT    NOT NULL DEFAULT (datetime('now'))
);
"""


# ---------------------------------------------------------------------------
# Lifecycle helpers
# ---------------------------------------------------------------------------

async def init_db() -> aiosqlite.Connection:
    """Open (or create) the SQLite database and ensure schema exists."""
    global _db  # noqa: PLW0603
    settings = get_settings()

    _db = await aiosqlite.connect(str(settings.db_abs_path))
    _db.row_factory = aiosqlite.Row  # type: ignore[assignment]
    await _db.executescript(_SCHEMA_SQL)
    await _db.commit()
    return _db


async def close_db() -> None:
    global _db  # noqa: PLW0603
    if _db is not None:
        await _db.close()
        _db = None


def get_db() -> aiosqlite.Connection:
    """Return the current database connection (call after init)."""
    if _db is None:
        raise RuntimeError("Database not initialised — call init_db() first.")
    return _db


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

async def upsert_user(spotify_user_id: str, display_name: str = "") -> None:
    db = get_db()
    await db.execute(
        """
        INSERT INTO users (spotify_user_id, display_name)
        VALUES (?, ?)
        ON CONFLICT(spotify_user_id)
        DO UPDATE SET display_name = excluded.display_name,
                      updated_at   = datetime('now')
        """,
        (spotify_user_id, display_name),
    )
    await db.commit()


async def load_tokens(spotify_user_id: str) -> dict | None:
    """Return ``{access_token, refresh_token, expires_at}`` or None."""
    db = get_db()
    cursor = await db.execute(
        "SELECT access_token, refresh_token, expires_at FROM tokens WHERE user_id = ?",
        (spotify_user_id,),
    )
    row = await cursor.fetchone()
    if not row:
        return None
    return {
        "access_token": row[0],
        "refresh_token": row[1],
        "expires_at": row[2],
    }


async def save_tokens(
    spotify_user_id: str,
    access_token: str,
    refresh_token: str,
    expires_at: int,
) -> None:
    db = get_db()
    await db.execute(
        """
        INSERT INTO tokens (user_id, access_token, refresh_token, expires_at)
        VALUES (?, ?, ?, ?)
        ON CONFLICT(user_id)
        DO UPDATE SET access_token  = excluded.access_token,
                      refresh_token = excluded.refresh_token,
                      expires_at    = excluded.expires_at,
                      updated_at    = datetime('now')
        """,
        (spotify_user_id, access_token, refresh_token, expires_at),
    )
    await db.commit()
