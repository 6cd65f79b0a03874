import asyncio
import json
import logging
from collections import defaultdict
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from sse_starlette.sse import EventSourceResponse

from scorebook.config import settings
from scorebook.engine.errors import ScoringError
from scorebook.engine.lifecycle import match_result
from scorebook.engine.scorer import MatchScorer
from scorebook.models import (
    DeliveryRequest,
    DismissalRequest,
    MatchCreate,
    MatchStatus,
    OpenersRequest,
    PlayerCreate,
    PlayerSelection,
    TeamCreate,
    TossRequest,
)
from scorebook.storage import broadcast
from scorebook.storage import database as db

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

scorer = MatchScorer()

# One writer at a time per match
match_locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """App startup/shutdown lifecycle."""
    logger.info("Cricket scoring engine starting up")
    await db.init_db()
    yield
    await db.close_db()
    logger.info("Shutting down")


app = FastAPI(
    title="Cricket Scoring Engine",
    description="Ball-by-ball live cricket scorekeeping",
    lifespan=lifespan,
)


def _http_error(exc: ScoringError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=str(exc))


# ------------------------------------------------------------------ #
#  Roster
# ------------------------------------------------------------------ #

@app.post("/api/teams", status_code=201)
async def create_team(body: TeamCreate):
    return await db.create_team(body.name, body.event_id)


@app.post("/api/teams/{team_id}/players", status_code=201)
async def add_player(team_id: str, body: PlayerCreate):
    if await db.get_team(team_id) is None:
        raise HTTPException(status_code=404, detail=f"Team {team_id} not found")
    return await db.create_player(team_id, body.name, body.role)


@app.get("/api/teams/{team_id}/players")
async def list_players(team_id: str):
    if await db.get_team(team_id) is None:
        raise HTTPException(status_code=404, detail=f"Team {team_id} not found")
    return await db.players_of_team(team_id)


# ------------------------------------------------------------------ #
#  Matches
# ------------------------------------------------------------------ #

@app.post("/api/matches", status_code=201)
async def create_match(body: MatchCreate):
    for team_id in (body.team_a_id, body.team_b_id):
        if await db.get_team(team_id) is None:
            raise HTTPException(status_code=404, detail=f"Team {team_id} not found")
    rules = body.rules.model_dump(by_alias=True) if body.rules else None
    return await db.create_match(body.team_a_id, body.team_b_id, body.event_id, rules)


@app.get("/api/matches")
async def list_matches(status: MatchStatus | None = None):
    return await db.list_matches(status.value if status else None)


@app.get("/api/matches/{match_id}")
async def get_match(match_id: str):
    doc = await db.get_match(match_id)
    if doc is None:
        raise HTTPException(status_code=404, detail=f"Match {match_id} not found")
    return doc


@app.get("/api/matches/{match_id}/result")
async def get_result(match_id: str):
    try:
        match = await scorer.load(match_id)
    except ScoringError as e:
        raise _http_error(e)
    if match.status != MatchStatus.COMPLETED:
        raise HTTPException(status_code=409, detail="Match is not completed")
    result = match.result or match_result(match)
    return {
        "result": result.model_dump(by_alias=True),
        "awards": match.awards.model_dump(by_alias=True) if match.awards else None,
    }


# ------------------------------------------------------------------ #
#  Scoring operations
# ------------------------------------------------------------------ #

@app.post("/api/matches/{match_id}/toss")
async def toss(match_id: str, body: TossRequest):
    async with match_locks[match_id]:
        try:
            match = await scorer.record_toss(match_id, body.winning_team_id, body.decision)
        except ScoringError as e:
            raise _http_error(e)
    return match.to_record()


@app.post("/api/matches/{match_id}/openers")
async def openers(match_id: str, body: OpenersRequest):
    async with match_locks[match_id]:
        try:
            match = await scorer.select_opening_players(
                match_id, body.striker_id, body.non_striker_id, body.bowler_id
            )
        except ScoringError as e:
            raise _http_error(e)
    return match.to_record()


@app.post("/api/matches/{match_id}/deliveries")
async def record_delivery(match_id: str, body: DeliveryRequest):
    async with match_locks[match_id]:
        try:
            return await scorer.record_delivery(
                match_id,
                runs=body.runs,
                is_legal=body.is_legal,
                is_wicket=body.is_wicket,
                extra_type=body.extra_type,
                wicket_type=body.wicket_type,
                run_type=body.run_type,
            )
        except ScoringError as e:
            raise _http_error(e)


@app.post("/api/matches/{match_id}/dismissal")
async def confirm_dismissal(match_id: str, body: DismissalRequest):
    async with match_locks[match_id]:
        try:
            match = await scorer.confirm_dismissal(
                match_id,
                body.wicket_type,
                body.batsman_id,
                body.fielder_id,
                body.completed_runs,
            )
        except ScoringError as e:
            raise _http_error(e)
    return match.to_record()


@app.post("/api/matches/{match_id}/next-batsman")
async def next_batsman(match_id: str, body: PlayerSelection):
    async with match_locks[match_id]:
        try:
            match = await scorer.select_next_batsman(match_id, body.player_id)
        except ScoringError as e:
            raise _http_error(e)
    return match.to_record()


@app.post("/api/matches/{match_id}/next-bowler")
async def next_bowler(match_id: str, body: PlayerSelection):
    async with match_locks[match_id]:
        try:
            match = await scorer.select_next_bowler(match_id, body.player_id)
        except ScoringError as e:
            raise _http_error(e)
    return match.to_record()


@app.post("/api/matches/{match_id}/undo")
async def undo(match_id: str):
    async with match_locks[match_id]:
        try:
            match = await scorer.undo_last_delivery(match_id)
        except ScoringError as e:
            raise _http_error(e)
    return match.to_record()


# ------------------------------------------------------------------ #
#  Live feed
# ------------------------------------------------------------------ #

@app.get("/api/matches/{match_id}/stream")
async def stream(match_id: str, request: Request):
    """SSE endpoint that pushes the match document after every write."""
    doc = await db.get_match(match_id)
    if doc is None:
        raise HTTPException(status_code=404, detail=f"Match {match_id} not found")
    queue = broadcast.subscribe(match_id)

    async def event_generator():
        try:
            yield {"event": "match", "data": json.dumps(doc)}
            while True:
                if await request.is_disconnected():
                    break
                try:
                    data = await asyncio.wait_for(queue.get(), timeout=1.0)
                    yield {"event": "match", "data": json.dumps(data)}
                except asyncio.TimeoutError:
                    # Send keepalive
                    yield {"event": "ping", "data": "{}"}
        finally:
            broadcast.unsubscribe(match_id, queue)

    return EventSourceResponse(event_generator())
