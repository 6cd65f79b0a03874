#!/usr/bin/env python3
"""
Replay a scored match from a JSON file through the API.

The file names players rather than ids; they are created on the fly:

    {
      "rules": {"totalOvers": 2, "playersPerTeam": 11, "maxOversPerBowler": 1},
      "teams": [{"name": "Team A", "players": ["A1", "A2", ...]},
                {"name": "Team B", "players": ["B1", "B2", ...]}],
      "toss": {"winner": 0, "decision": "bat"},
      "innings": [
        {"openers": ["A1", "A2"], "bowler": "B1",
         "events": [
           {"ball": {"runs": 1}},
           {"ball": {"runs": 0, "is_wicket": true, "wicket_type": "bowled"}},
           {"dismissal": {"wicket_type": "bowled", "batsman": "A2"}},
           {"next_batsman": "A3"},
           {"next_bowler": "B2"}
         ]},
        ...
      ]
    }

Usage:
    python scripts/replay_match.py data/sample/short_match.json
    python scripts/replay_match.py match.json --base-url http://localhost:8001

Requires the server to be running (uvicorn scorebook.main:app).
"""

import argparse
import json
import sys
from pathlib import Path

import httpx

DEFAULT_BASE_URL = "http://localhost:8000"


def _post(client: httpx.Client, path: str, body: dict | None = None) -> dict:
    r = client.post(path, json=body or {})
    if r.status_code >= 400:
        print(f"  ERROR {r.status_code} on {path}: {r.text}")
        sys.exit(1)
    return r.json()


def replay(raw: dict, base_url: str) -> str:
    """Create teams and the match, then push every event. Returns the match id."""
    ids: dict[str, str] = {}
    team_ids = []

    with httpx.Client(base_url=base_url, timeout=30) as client:
        # 1. Roster
        for team in raw["teams"]:
            created = _post(client, "/api/teams", {"name": team["name"]})
            team_ids.append(created["id"])
            for name in team["players"]:
                player = _post(client, f"/api/teams/{created['id']}/players", {"name": name})
                ids[name] = player["id"]

        # 2. Match & toss
        match = _post(client, "/api/matches", {
            "team_a_id": team_ids[0],
            "team_b_id": team_ids[1],
            "rules": raw.get("rules"),
        })
        match_id = match["matchId"]
        toss = raw.get("toss", {"winner": 0, "decision": "bat"})
        _post(client, f"/api/matches/{match_id}/toss", {
            "winning_team_id": team_ids[toss["winner"]],
            "decision": toss["decision"],
        })

        # 3. Innings
        for number, innings in enumerate(raw["innings"], start=1):
            striker, non_striker = innings["openers"]
            _post(client, f"/api/matches/{match_id}/openers", {
                "striker_id": ids[striker],
                "non_striker_id": ids[non_striker],
                "bowler_id": ids[innings["bowler"]],
            })
            for event in innings["events"]:
                if "ball" in event:
                    _post(client, f"/api/matches/{match_id}/deliveries", event["ball"])
                elif "dismissal" in event:
                    d = event["dismissal"]
                    _post(client, f"/api/matches/{match_id}/dismissal", {
                        "wicket_type": d["wicket_type"],
                        "batsman_id": ids[d["batsman"]],
                        "fielder_id": ids.get(d.get("fielder", "")),
                        "completed_runs": d.get("completed_runs", 0),
                    })
                elif "next_batsman" in event:
                    _post(client, f"/api/matches/{match_id}/next-batsman",
                          {"player_id": ids[event["next_batsman"]]})
                elif "next_bowler" in event:
                    _post(client, f"/api/matches/{match_id}/next-bowler",
                          {"player_id": ids[event["next_bowler"]]})
            doc = client.get(f"/api/matches/{match_id}").json()
            inn = doc[f"innings{number}"]
            print(f"  Innings {number}: {inn['battingTeamName']} "
                  f"{inn['score']}/{inn['wickets']} ({inn['overs']} Ov)")

        doc = client.get(f"/api/matches/{match_id}").json()
        if doc["status"] == "Completed":
            print(f"  Result: {doc['result']['summary']}")
        else:
            print(f"  Match left in status '{doc['status']}'")
    return match_id


def main():
    parser = argparse.ArgumentParser(description="Replay a scored match via the API")
    parser.add_argument("file", help="JSON file describing the match")
    parser.add_argument(
        "--base-url", default=DEFAULT_BASE_URL,
        help=f"Server base URL (default: {DEFAULT_BASE_URL})",
    )
    args = parser.parse_args()

    path = Path(args.file)
    if not path.exists():
        print(f"ERROR: file not found: {path}")
        sys.exit(1)
    with open(path, encoding="utf-8") as f:
        raw = json.load(f)

    print(f"Replaying {path.name}")
    match_id = replay(raw, args.base_url)
    print(f"SUCCESS: match_id={match_id}")


if __name__ == "__main__":
    main()
