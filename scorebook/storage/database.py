"""
SQLite persistence layer.

Tables:
  - teams: team roster headers (name, event)
  - players: roster entries, one row per player with team affiliation
  - matches: the match document as JSON (the persisted Match Record), plus
    its status for filtering

Uses aiosqlite for async access. Database file: settings.db_path
Every match write is published to the subscribers of that match.
"""

import copy
import json
import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite

from scorebook.config import settings
from scorebook.models import Match, MatchRules
from scorebook.storage import broadcast

logger = logging.getLogger(__name__)

DB_PATH = Path(settings.db_path)
DB_DIR = DB_PATH.parent

_db: aiosqlite.Connection | None = None


# ------------------------------------------------------------------ #
#  Connection management
# ------------------------------------------------------------------ #

async def init_db() -> None:
    """Create tables if they don't exist. Called once at app startup."""
    global _db
    DB_DIR.mkdir(parents=True, exist_ok=True)

    _db = await aiosqlite.connect(str(DB_PATH))
    _db.row_factory = aiosqlite.Row

    await _db.executescript("""
        CREATE TABLE IF NOT EXISTS teams (
            team_id     TEXT PRIMARY KEY,
            name        TEXT NOT NULL,
            event_id    TEXT,
            created_at  TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS players (
            player_id   TEXT PRIMARY KEY,
            team_id     TEXT,
            name        TEXT NOT NULL,
            role        TEXT NOT NULL DEFAULT 'Batsman',
            created_at  TEXT NOT NULL,
            FOREIGN KEY (team_id) REFERENCES teams(team_id)
        );

        CREATE INDEX IF NOT EXISTS idx_players_team
            ON players(team_id);

        CREATE TABLE IF NOT EXISTS matches (
            match_id    TEXT PRIMARY KEY,
            status      TEXT NOT NULL DEFAULT 'Upcoming',
            data        TEXT NOT NULL,
            created_at  TEXT NOT NULL,
            updated_at  TEXT NOT NULL
        );
    """)
    await _db.commit()
    logger.info(f"SQLite database initialized at {DB_PATH}")


async def close_db() -> None:
    """Close the database connection."""
    global _db
    if _db:
        await _db.close()
        _db = None


def _get_db() -> aiosqlite.Connection:
    if _db is None:
        raise RuntimeError("Database not initialized: call init_db() first")
    return _db


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_id() -> str:
    return uuid.uuid4().hex[:12]


# ------------------------------------------------------------------ #
#  Roster
# ------------------------------------------------------------------ #

async def create_team(name: str, event_id: str | None = None) -> dict:
    db = _get_db()
    team_id = _new_id()
    now = _now()
    await db.execute(
        "INSERT INTO teams (team_id, name, event_id, created_at) VALUES (?, ?, ?, ?)",
        (team_id, name, event_id, now),
    )
    await db.commit()
    return {"id": team_id, "name": name, "event_id": event_id, "created_at": now}


async def get_team(team_id: str) -> dict | None:
    db = _get_db()
    async with db.execute("SELECT * FROM teams WHERE team_id = ?", (team_id,)) as cur:
        row = await cur.fetchone()
        if row is None:
            return None
        return {
            "id": row["team_id"],
            "name": row["name"],
            "event_id": row["event_id"],
            "created_at": row["created_at"],
        }


async def create_player(team_id: str | None, name: str, role: str = "Batsman") -> dict:
    db = _get_db()
    player_id = _new_id()
    await db.execute(
        """INSERT INTO players (player_id, team_id, name, role, created_at)
           VALUES (?, ?, ?, ?, ?)""",
        (player_id, team_id, name, role, _now()),
    )
    await db.commit()
    return {"id": player_id, "name": name, "role": role, "team_id": team_id}


async def get_player(player_id: str) -> dict | None:
    db = _get_db()
    async with db.execute("SELECT * FROM players WHERE player_id = ?", (player_id,)) as cur:
        row = await cur.fetchone()
        return _row_to_player(row) if row else None


async def players_of_team(team_id: str) -> list[dict]:
    """Roster lookup: [{id, name, role, team_id}] in the order players were added."""
    db = _get_db()
    async with db.execute(
        "SELECT * FROM players WHERE team_id = ? ORDER BY created_at, rowid",
        (team_id,),
    ) as cur:
        return [_row_to_player(r) for r in await cur.fetchall()]


def _row_to_player(row: aiosqlite.Row) -> dict:
    return {
        "id": row["player_id"],
        "name": row["name"],
        "role": row["role"],
        "team_id": row["team_id"],
    }


# ------------------------------------------------------------------ #
#  Match Record
# ------------------------------------------------------------------ #

def merge_patch(doc: dict, patch: dict) -> dict:
    """
    Apply a partial update to a match document and return the merged copy.

    Plain keys replace the top-level value. Dotted keys address nested fields,
    e.g. {"innings1.score": 42} changes only that score.
    """
    merged = copy.deepcopy(doc)
    for key, value in patch.items():
        if "." not in key:
            merged[key] = copy.deepcopy(value)
            continue
        *path, leaf = key.split(".")
        node = merged
        for part in path:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        node[leaf] = copy.deepcopy(value)
    return merged


async def create_match(
    team_a_id: str,
    team_b_id: str,
    event_id: str | None = None,
    rules: dict | None = None,
) -> dict:
    """Insert an empty pre-toss match. Returns the stored document."""
    db = _get_db()
    if rules is None:
        rules = MatchRules(
            total_overs=settings.default_total_overs,
            players_per_team=settings.default_players_per_team,
            max_overs_per_bowler=settings.default_max_overs_per_bowler,
        ).model_dump(by_alias=True)
    match = Match(
        match_id=_new_id(),
        event_id=event_id,
        team_a_id=team_a_id,
        team_b_id=team_b_id,
        rules=MatchRules.model_validate(rules),
    )
    doc = match.to_record()
    now = _now()
    await db.execute(
        """INSERT INTO matches (match_id, status, data, created_at, updated_at)
           VALUES (?, ?, ?, ?, ?)""",
        (match.match_id, doc["status"], json.dumps(doc), now, now),
    )
    await db.commit()
    logger.info(f"Created match {match.match_id}: {team_a_id} vs {team_b_id}")
    return doc


async def get_match(match_id: str) -> dict | None:
    db = _get_db()
    async with db.execute("SELECT data FROM matches WHERE match_id = ?", (match_id,)) as cur:
        row = await cur.fetchone()
        return json.loads(row["data"]) if row else None


async def list_matches(status: str | None = None) -> list[dict]:
    db = _get_db()
    if status:
        query = "SELECT data FROM matches WHERE status = ? ORDER BY created_at DESC"
        params: tuple = (status,)
    else:
        query = "SELECT data FROM matches ORDER BY created_at DESC"
        params = ()
    async with db.execute(query, params) as cur:
        return [json.loads(r["data"]) for r in await cur.fetchall()]


async def write_match(match_id: str, data: dict) -> dict:
    """
    Store a full match document or merge a partial one into the stored copy.

    Returns the document as stored and publishes it to subscribers. Raises
    LookupError if the match does not exist.
    """
    db = _get_db()
    current = await get_match(match_id)
    if current is None:
        raise LookupError(f"Match {match_id} not found")

    merged = merge_patch(current, data)
    await db.execute(
        "UPDATE matches SET data = ?, status = ?, updated_at = ? WHERE match_id = ?",
        (json.dumps(merged), merged.get("status", current.get("status")), _now(), match_id),
    )
    await db.commit()
    await broadcast.publish(match_id, merged)
    return merged
