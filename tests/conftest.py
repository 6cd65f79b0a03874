"""
Shared fixtures for the test suite.

Key design decisions:
  - Uses a **temp-file SQLite** DB so tests are fast and isolated.
  - Overrides the database module's `DB_DIR` / `DB_PATH` before each test.
  - Provides an `httpx.AsyncClient` wired to the FastAPI app via ASGITransport.
  - Supplies in-memory Match builders for the pure engine tests.
"""

from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

import scorebook.storage.database as db_mod
from scorebook.main import app
from scorebook.models import (
    BattingStat,
    BowlingStat,
    Innings,
    Match,
    MatchRules,
    MatchStatus,
    TossDecision,
)


# --------------------------------------------------------------------------- #
#  Temp-file database, fresh for every test function
# --------------------------------------------------------------------------- #

@pytest_asyncio.fixture(autouse=True)
async def _init_test_db(tmp_path: Path):
    """
    Before each test:
      1. Point the DB module to a temp file.
      2. Run init_db() to create all tables.
    After the test:
      3. Close the connection.
    """
    test_db = tmp_path / "test.db"
    db_mod.DB_DIR = tmp_path
    db_mod.DB_PATH = test_db

    await db_mod.init_db()
    yield
    await db_mod.close_db()


# --------------------------------------------------------------------------- #
#  HTTP client talking to the FastAPI app without a real server
# --------------------------------------------------------------------------- #

@pytest_asyncio.fixture
async def client() -> AsyncClient:
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


# --------------------------------------------------------------------------- #
#  In-memory match states for the pure engine functions
# --------------------------------------------------------------------------- #

def make_match(
    total_overs: int = 20,
    players_per_team: int = 11,
    max_overs_per_bowler: int = 4,
    current_innings: int = 1,
    first_innings_score: int = 0,
) -> Match:
    """
    A live match between teams "A" (batting first) and "B".

    Striker "a1", non-striker "a2", bowler "b1" for innings 1. In innings 2 the
    roles are "b1"/"b2" batting against "a1".
    """
    rules = MatchRules(
        total_overs=total_overs,
        players_per_team=players_per_team,
        max_overs_per_bowler=max_overs_per_bowler,
    )
    innings1 = Innings(
        batting_team_id="A",
        bowling_team_id="B",
        batting_team_name="Team A",
        score=first_innings_score,
    )
    innings2 = Innings(batting_team_id="B", bowling_team_id="A", batting_team_name="Team B")

    if current_innings == 1:
        innings1.batting_stats = [BattingStat(id="a1", name="A One"), BattingStat(id="a2", name="A Two")]
        innings1.bowling_stats = [BowlingStat(id="b1", name="B One", is_current=True)]
        striker, non_striker, bowler = "a1", "a2", "b1"
    else:
        innings1.overs = float(total_overs)
        innings2.batting_stats = [BattingStat(id="b1", name="B One"), BattingStat(id="b2", name="B Two")]
        innings2.bowling_stats = [BowlingStat(id="a1", name="A One", is_current=True)]
        striker, non_striker, bowler = "b1", "b2", "a1"

    return Match(
        match_id="m1",
        team_a_id="A",
        team_b_id="B",
        status=MatchStatus.LIVE,
        current_innings=current_innings,
        on_strike_batsman_id=striker,
        non_strike_batsman_id=non_striker,
        current_bowler_id=bowler,
        toss_winner_id="A",
        toss_decision=TossDecision.BAT,
        rules=rules,
        innings1=innings1,
        innings2=innings2,
    )


@pytest.fixture
def live_match() -> Match:
    return make_match()


# --------------------------------------------------------------------------- #
#  Seeded roster + match in the database
# --------------------------------------------------------------------------- #

@pytest_asyncio.fixture
async def roster() -> dict:
    """
    Two teams of three players each (so two wickets is all out).
    Returns {"teams": [team_a, team_b], "players": {name: id}}.
    """
    players: dict[str, str] = {}
    teams = []
    for team_name, prefix in (("Team A", "A"), ("Team B", "B")):
        team = await db_mod.create_team(team_name)
        teams.append(team)
        for i in range(1, 4):
            p = await db_mod.create_player(team["id"], f"{prefix}{i}")
            players[f"{prefix}{i}"] = p["id"]
    return {"teams": teams, "players": players}


@pytest_asyncio.fixture
async def seeded_match(roster) -> dict:
    """A one-over, three-a-side match in the store, toss not yet taken."""
    team_a, team_b = roster["teams"]
    doc = await db_mod.create_match(
        team_a["id"],
        team_b["id"],
        rules={"totalOvers": 1, "playersPerTeam": 3, "maxOversPerBowler": 1, "customRulesText": ""},
    )
    return {"match_id": doc["matchId"], "match": doc, **roster}
