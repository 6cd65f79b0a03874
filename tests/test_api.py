"""
Integration tests for FastAPI API endpoints.

Uses conftest fixtures:
  - _init_test_db: autouse, fresh SQLite DB per test
  - client: httpx.AsyncClient wired to app via ASGITransport
  - roster / seeded_match: two three-player teams and a one-over match
"""

import aiosqlite
import pytest

from scorebook.engine.scorer import MatchScorer
from scorebook.storage import database as db_mod


async def _start(client, seeded_match) -> str:
    """Toss (team A bats) and send out A1/A2 against B1. Returns the match id."""
    match_id = seeded_match["match_id"]
    team_a = seeded_match["teams"][0]
    p = seeded_match["players"]

    r = await client.post(f"/api/matches/{match_id}/toss", json={
        "winning_team_id": team_a["id"], "decision": "bat",
    })
    assert r.status_code == 200
    r = await client.post(f"/api/matches/{match_id}/openers", json={
        "striker_id": p["A1"], "non_striker_id": p["A2"], "bowler_id": p["B1"],
    })
    assert r.status_code == 200
    return match_id


async def _ball(client, match_id, **body) -> dict:
    r = await client.post(f"/api/matches/{match_id}/deliveries", json=body)
    assert r.status_code == 200, r.text
    return r.json()


# --------------------------------------------------------------------------- #
#  Roster & match creation
# --------------------------------------------------------------------------- #

@pytest.mark.asyncio
async def test_team_and_player_endpoints(client):
    r = await client.post("/api/teams", json={"name": "Lions"})
    assert r.status_code == 201
    team_id = r.json()["id"]

    r = await client.post(f"/api/teams/{team_id}/players", json={"name": "Opener"})
    assert r.status_code == 201
    assert r.json()["team_id"] == team_id

    r = await client.get(f"/api/teams/{team_id}/players")
    assert [p["name"] for p in r.json()] == ["Opener"]

    r = await client.post("/api/teams/nope/players", json={"name": "Ghost"})
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_create_and_list_matches(client, roster):
    team_a, team_b = roster["teams"]
    r = await client.post("/api/matches", json={
        "team_a_id": team_a["id"],
        "team_b_id": team_b["id"],
        "rules": {"total_overs": 5, "players_per_team": 6, "max_overs_per_bowler": 1},
    })
    assert r.status_code == 201
    doc = r.json()
    assert doc["status"] == "Upcoming"
    assert doc["rules"]["totalOvers"] == 5

    r = await client.get(f"/api/matches/{doc['matchId']}")
    assert r.status_code == 200
    assert r.json()["teamA_id"] == team_a["id"]

    r = await client.get("/api/matches", params={"status": "Upcoming"})
    assert [m["matchId"] for m in r.json()] == [doc["matchId"]]
    r = await client.get("/api/matches", params={"status": "Live"})
    assert r.json() == []


@pytest.mark.asyncio
async def test_create_match_unknown_team(client, roster):
    r = await client.post("/api/matches", json={
        "team_a_id": roster["teams"][0]["id"], "team_b_id": "nope",
    })
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_404_match(client):
    assert (await client.get("/api/matches/nope")).status_code == 404
    r = await client.post("/api/matches/nope/deliveries", json={"runs": 1})
    assert r.status_code == 404
    assert (await client.post("/api/matches/nope/undo")).status_code == 404


# --------------------------------------------------------------------------- #
#  Pre-match
# --------------------------------------------------------------------------- #

@pytest.mark.asyncio
async def test_toss_sets_batting_order(client, seeded_match):
    match_id = seeded_match["match_id"]
    team_a, team_b = seeded_match["teams"]
    r = await client.post(f"/api/matches/{match_id}/toss", json={
        "winning_team_id": team_a["id"], "decision": "bowl",
    })
    doc = r.json()
    assert doc["tossWinnerId"] == team_a["id"]
    assert doc["innings1"]["battingTeamId"] == team_b["id"]
    assert doc["innings1"]["battingTeamName"] == "Team B"
    assert doc["innings2"]["battingTeamId"] == team_a["id"]

    again = await client.post(f"/api/matches/{match_id}/toss", json={
        "winning_team_id": team_b["id"], "decision": "bat",
    })
    assert again.status_code == 400


@pytest.mark.asyncio
async def test_openers_before_toss(client, seeded_match):
    p = seeded_match["players"]
    r = await client.post(f"/api/matches/{seeded_match['match_id']}/openers", json={
        "striker_id": p["A1"], "non_striker_id": p["A2"], "bowler_id": p["B1"],
    })
    assert r.status_code == 409


@pytest.mark.asyncio
async def test_delivery_before_start_rejected(client, seeded_match):
    r = await client.post(f"/api/matches/{seeded_match['match_id']}/deliveries", json={"runs": 1})
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_openers_start_match(client, seeded_match):
    match_id = await _start(client, seeded_match)
    doc = (await client.get(f"/api/matches/{match_id}")).json()
    p = seeded_match["players"]
    assert doc["status"] == "Live"
    assert doc["onStrikeBatsmanId"] == p["A1"]
    assert doc["nonStrikeBatsmanId"] == p["A2"]
    assert doc["currentBowlerId"] == p["B1"]
    assert doc["innings1"]["bowlingStats"][0]["isCurrent"] is True


# --------------------------------------------------------------------------- #
#  Ball by ball
# --------------------------------------------------------------------------- #

@pytest.mark.asyncio
async def test_delivery_returns_flags_and_updates_document(client, seeded_match):
    match_id = await _start(client, seeded_match)
    flags = await _ball(client, match_id, runs=4)
    assert flags == {"isOverComplete": False, "isWicketFallen": False, "isInningsOver": False}

    doc = (await client.get(f"/api/matches/{match_id}")).json()
    inn = doc["innings1"]
    assert inn["score"] == 4
    assert inn["ballsInOver"] == 1
    assert inn["overs"] == 0.1
    assert inn["battingStats"][0]["fours"] == 1
    assert inn["deliveryHistory"][0]["commentary"] == "FOUR"
    assert inn["deliveryHistory"][0]["runsScored"]["total"] == 4


@pytest.mark.asyncio
async def test_wide_and_no_ball(client, seeded_match):
    match_id = await _start(client, seeded_match)
    await _ball(client, match_id, runs=2, is_legal=False, extra_type="wide")
    await _ball(client, match_id, runs=1, is_legal=False, extra_type="no_ball", run_type="hit")

    doc = (await client.get(f"/api/matches/{match_id}")).json()
    inn = doc["innings1"]
    assert inn["score"] == 5
    assert inn["ballsInOver"] == 0
    assert inn["bowlingStats"][0]["runs"] == 3
    assert doc["isFreeHit"] is True


@pytest.mark.asyncio
async def test_invalid_delivery_body(client, seeded_match):
    match_id = await _start(client, seeded_match)
    r = await client.post(f"/api/matches/{match_id}/deliveries", json={"runs": 1, "extra_type": "beamer"})
    assert r.status_code == 422
    r = await client.post(f"/api/matches/{match_id}/deliveries", json={"runs": -2})
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_wicket_needs_confirmation(client, seeded_match):
    match_id = await _start(client, seeded_match)
    p = seeded_match["players"]

    flags = await _ball(client, match_id, runs=0, is_wicket=True, wicket_type="bowled")
    assert flags["isWicketFallen"] is True

    # No next ball or batsman until the dismissal is confirmed
    r = await client.post(f"/api/matches/{match_id}/deliveries", json={"runs": 1})
    assert r.status_code == 409
    r = await client.post(f"/api/matches/{match_id}/next-batsman", json={"player_id": p["A3"]})
    assert r.status_code == 409

    r = await client.post(f"/api/matches/{match_id}/dismissal", json={
        "wicket_type": "bowled", "batsman_id": p["A1"],
    })
    assert r.status_code == 200
    doc = r.json()
    out = doc["innings1"]["battingStats"][0]
    assert out["status"] == "out"
    assert out["dismissal"]["type"] == "bowled"
    assert out["dismissal"]["bowlerId"] == p["B1"]
    assert doc["innings1"]["bowlingStats"][0]["wickets"] == 1
    assert doc["onStrikeBatsmanId"] is None

    r = await client.post(f"/api/matches/{match_id}/next-batsman", json={"player_id": p["A3"]})
    assert r.status_code == 200
    assert r.json()["onStrikeBatsmanId"] == p["A3"]


@pytest.mark.asyncio
async def test_direct_run_out(client, seeded_match):
    """A run out entered straight from the dismissal screen scores the ball too."""
    match_id = await _start(client, seeded_match)
    p = seeded_match["players"]

    r = await client.post(f"/api/matches/{match_id}/dismissal", json={
        "wicket_type": "run_out", "batsman_id": p["A2"], "fielder_id": p["B2"], "completed_runs": 1,
    })
    assert r.status_code == 200
    doc = r.json()
    inn = doc["innings1"]
    assert inn["score"] == 1
    assert inn["wickets"] == 1
    assert inn["ballsInOver"] == 1
    assert inn["bowlingStats"][0]["wickets"] == 0
    assert len(inn["deliveryHistory"]) == 1
    assert inn["deliveryHistory"][0]["isWicket"] is True

    # Undo takes the whole ball back
    r = await client.post(f"/api/matches/{match_id}/undo")
    assert r.status_code == 200
    assert r.json()["innings1"]["score"] == 0
    assert r.json()["innings1"]["deliveryHistory"] == []


@pytest.mark.asyncio
async def test_caught_without_fielder_rejected(client, seeded_match):
    match_id = await _start(client, seeded_match)
    p = seeded_match["players"]
    await _ball(client, match_id, runs=0, is_wicket=True, wicket_type="caught")
    r = await client.post(f"/api/matches/{match_id}/dismissal", json={
        "wicket_type": "caught", "batsman_id": p["A1"],
    })
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_end_of_over_requires_new_bowler(client, seeded_match):
    """With a two-over limit the over ends without ending the innings."""
    p = seeded_match["players"]
    team_a, team_b = seeded_match["teams"]

    r = await client.post("/api/matches", json={
        "team_a_id": team_a["id"], "team_b_id": team_b["id"],
        "rules": {"total_overs": 2, "players_per_team": 3, "max_overs_per_bowler": 1},
    })
    match_id = r.json()["matchId"]
    await _start(client, {**seeded_match, "match_id": match_id})

    for _ in range(5):
        await _ball(client, match_id, runs=0)
    flags = await _ball(client, match_id, runs=1)
    assert flags["isOverComplete"] is True
    assert flags["isInningsOver"] is False

    doc = (await client.get(f"/api/matches/{match_id}")).json()
    assert doc["currentBowlerId"] is None
    assert doc["previousBowlerId"] == p["B1"]
    # A1 took a single off the last ball, then the ends changed
    assert doc["onStrikeBatsmanId"] == p["A1"]
    assert doc["innings1"]["overs"] == 1.0

    r = await client.post(f"/api/matches/{match_id}/deliveries", json={"runs": 1})
    assert r.status_code == 409

    r = await client.post(f"/api/matches/{match_id}/next-bowler", json={"player_id": p["B1"]})
    assert r.status_code == 400
    r = await client.post(f"/api/matches/{match_id}/next-bowler", json={"player_id": p["B2"]})
    assert r.status_code == 200
    assert r.json()["currentBowlerId"] == p["B2"]


@pytest.mark.asyncio
async def test_confirmed_type_must_match_wicket_ball(client, seeded_match):
    match_id = await _start(client, seeded_match)
    p = seeded_match["players"]
    await _ball(client, match_id, runs=0, is_wicket=True, wicket_type="caught")

    r = await client.post(f"/api/matches/{match_id}/dismissal", json={
        "wicket_type": "bowled", "batsman_id": p["A1"],
    })
    assert r.status_code == 400
    doc = (await client.get(f"/api/matches/{match_id}")).json()
    assert doc["innings1"]["battingStats"][0]["status"] == "not_out"
    assert doc["innings1"]["bowlingStats"][0]["wickets"] == 0


@pytest.mark.asyncio
async def test_free_hit_run_out_cannot_become_bowled(client, seeded_match):
    match_id = await _start(client, seeded_match)
    p = seeded_match["players"]
    await _ball(client, match_id, runs=0, is_legal=False, extra_type="no_ball")
    flags = await _ball(client, match_id, runs=0, is_wicket=True, wicket_type="run_out")
    assert flags["isWicketFallen"] is True

    r = await client.post(f"/api/matches/{match_id}/dismissal", json={
        "wicket_type": "bowled", "batsman_id": p["A1"],
    })
    assert r.status_code == 400

    r = await client.post(f"/api/matches/{match_id}/dismissal", json={
        "wicket_type": "run_out", "batsman_id": p["A1"], "fielder_id": p["B2"],
    })
    assert r.status_code == 200
    inn = r.json()["innings1"]
    assert inn["battingStats"][0]["dismissal"]["type"] == "run_out"
    assert inn["bowlingStats"][0]["wickets"] == 0
    assert inn["deliveryHistory"][-1]["isFreeHit"] is True


@pytest.mark.asyncio
async def test_no_ball_until_vacant_end_is_filled(client, seeded_match):
    match_id = await _start(client, seeded_match)
    p = seeded_match["players"]
    r = await client.post(f"/api/matches/{match_id}/dismissal", json={
        "wicket_type": "run_out", "batsman_id": p["A2"], "fielder_id": p["B2"],
    })
    assert r.status_code == 200
    assert r.json()["nonStrikeBatsmanId"] is None

    r = await client.post(f"/api/matches/{match_id}/deliveries", json={"runs": 1})
    assert r.status_code == 409
    doc = (await client.get(f"/api/matches/{match_id}")).json()
    assert doc["onStrikeBatsmanId"] == p["A1"]
    assert doc["innings1"]["score"] == 0

    r = await client.post(f"/api/matches/{match_id}/next-batsman", json={"player_id": p["A3"]})
    assert r.json()["nonStrikeBatsmanId"] == p["A3"]
    await _ball(client, match_id, runs=1)


@pytest.mark.asyncio
async def test_log_records_non_striker_run_out(client, seeded_match):
    match_id = await _start(client, seeded_match)
    p = seeded_match["players"]
    await _ball(client, match_id, runs=0, is_wicket=True, wicket_type="run_out")
    r = await client.post(f"/api/matches/{match_id}/dismissal", json={
        "wicket_type": "run_out", "batsman_id": p["A2"], "fielder_id": p["B3"],
    })
    assert r.status_code == 200
    history = r.json()["innings1"]["deliveryHistory"]
    assert len(history) == 1
    assert history[-1]["wicketInfo"] == {
        "type": "run_out", "batsmanId": p["A2"], "fielderId": p["B3"],
    }
    assert history[-1]["commentary"] == "WICKET! run out."


# --------------------------------------------------------------------------- #
#  Undo
# --------------------------------------------------------------------------- #

@pytest.mark.asyncio
async def test_undo_last_delivery(client, seeded_match):
    match_id = await _start(client, seeded_match)
    before = (await client.get(f"/api/matches/{match_id}")).json()

    await _ball(client, match_id, runs=4)
    r = await client.post(f"/api/matches/{match_id}/undo")
    assert r.status_code == 200
    assert r.json() == before
    assert (await client.get(f"/api/matches/{match_id}")).json() == before

    r = await client.post(f"/api/matches/{match_id}/undo")
    assert r.status_code == 409


@pytest.mark.asyncio
async def test_failed_write_keeps_previous_undo_step(client, seeded_match, monkeypatch):
    match_id = await _start(client, seeded_match)
    scorer = MatchScorer()
    await scorer.record_delivery(match_id, runs=1, is_legal=True, is_wicket=False)

    async def failing_write(match_id, data):
        raise aiosqlite.OperationalError("database is locked")

    monkeypatch.setattr(db_mod, "write_match", failing_write)
    with pytest.raises(aiosqlite.OperationalError):
        await scorer.record_delivery(match_id, runs=4, is_legal=True, is_wicket=False)
    monkeypatch.undo()

    # The failed ball never reached the store, so undo still rolls back the single
    restored = await scorer.undo_last_delivery(match_id)
    assert restored.innings1.score == 0


# --------------------------------------------------------------------------- #
#  Full match
# --------------------------------------------------------------------------- #

@pytest.mark.asyncio
async def test_full_match(client, seeded_match):
    """One over each side, three players a side: the chase wins with a ball to spare."""
    match_id = await _start(client, seeded_match)
    p = seeded_match["players"]

    r = await client.get(f"/api/matches/{match_id}/result")
    assert r.status_code == 409

    # --- Innings 1 ---
    await _ball(client, match_id, runs=1)
    await _ball(client, match_id, runs=4)
    await _ball(client, match_id, runs=0, is_legal=False, extra_type="wide")
    flags = await _ball(client, match_id, runs=0, is_wicket=True, wicket_type="bowled")
    assert flags["isWicketFallen"] is True
    r = await client.post(f"/api/matches/{match_id}/dismissal", json={
        "wicket_type": "bowled", "batsman_id": p["A2"],
    })
    assert r.status_code == 200
    r = await client.post(f"/api/matches/{match_id}/next-batsman", json={"player_id": p["A3"]})
    assert r.status_code == 200
    await _ball(client, match_id, runs=2)
    await _ball(client, match_id, runs=6)
    flags = await _ball(client, match_id, runs=1)
    assert flags == {"isOverComplete": True, "isWicketFallen": False, "isInningsOver": True}

    doc = (await client.get(f"/api/matches/{match_id}")).json()
    assert doc["status"] == "Innings Break"
    assert doc["currentInnings"] == 2
    assert doc["innings1"]["score"] == 15
    assert doc["innings1"]["wickets"] == 1
    assert doc["innings1"]["overs"] == 1.0
    assert doc["innings1"]["ballsInOver"] == 0
    assert len(doc["innings1"]["deliveryHistory"]) == 7

    # --- Innings 2 ---
    r = await client.post(f"/api/matches/{match_id}/openers", json={
        "striker_id": p["B1"], "non_striker_id": p["B2"], "bowler_id": p["A1"],
    })
    assert r.status_code == 200
    assert r.json()["status"] == "Live"

    await _ball(client, match_id, runs=6)
    await _ball(client, match_id, runs=4, is_legal=False, extra_type="no_ball", run_type="hit")
    await _ball(client, match_id, runs=4)
    flags = await _ball(client, match_id, runs=1)
    assert flags["isInningsOver"] is True

    doc = (await client.get(f"/api/matches/{match_id}")).json()
    assert doc["status"] == "Completed"
    assert doc["innings2"]["score"] == 16
    assert doc["result"]["winnerTeamId"] == seeded_match["teams"][1]["id"]

    r = await client.get(f"/api/matches/{match_id}/result")
    assert r.status_code == 200
    body = r.json()
    assert body["result"]["summary"] == "Team B won by 2 wicket(s)"
    assert body["result"]["marginType"] == "wickets"
    assert body["awards"]["bestBatsmanId"] == p["B1"]

    # Nothing can be scored after the match is over
    r = await client.post(f"/api/matches/{match_id}/deliveries", json={"runs": 1})
    assert r.status_code == 400
