import logging
from typing import Optional

from scorebook.engine.errors import InvalidOperationError
from scorebook.models import FIELDER_DISMISSALS, Dismissal, Match, WicketType

logger = logging.getLogger(__name__)


def process_wicket(
    match: Match,
    wicket_type: WicketType,
    dismissed_batsman_id: str,
    fielder_id: Optional[str] = None,
    bowler_id: Optional[str] = None,
) -> Match:
    """
    Record how a batsman got out and free their batting slot.

    The innings wicket count was already raised by process_delivery for the
    same ball and is not touched here. The replacement batsman is chosen later
    by the caller. bowler_id defaults to the current bowler; pass the bowler of
    the wicket ball when the over has already been closed.
    """
    if wicket_type in FIELDER_DISMISSALS and not fielder_id:
        raise InvalidOperationError(f"A fielder is required for {wicket_type.value}")

    updated = match.model_copy(deep=True)
    innings = updated.innings
    bowler_id = bowler_id or updated.current_bowler_id

    batter = innings.batter(dismissed_batsman_id)
    if batter is None:
        raise InvalidOperationError(f"Batsman {dismissed_batsman_id} is not in this innings")
    if batter.is_out:
        raise InvalidOperationError(f"{batter.name} is already out")

    # --- 1. Batting card ---
    batter.status = "out"
    batter.dismissal = Dismissal(type=wicket_type, bowler_id=bowler_id, fielder_id=fielder_id)

    # --- 2. Bowler gets the wicket unless it was a run out ---
    if wicket_type != WicketType.RUN_OUT:
        bowler = innings.bowler(bowler_id)
        if bowler is not None:
            bowler.wickets += 1

    # --- 3. Vacate the slot ---
    if updated.on_strike_batsman_id == dismissed_batsman_id:
        updated.on_strike_batsman_id = None
    elif updated.non_strike_batsman_id == dismissed_batsman_id:
        updated.non_strike_batsman_id = None

    logger.info(
        f"Match {match.match_id}: {batter.name} out {wicket_type.value} for "
        f"{batter.runs} ({batter.balls}), {innings.score_display}"
    )
    return updated
