import logging
import math

from scorebook.models import Match

logger = logging.getLogger(__name__)


def process_end_of_over(match: Match) -> Match:
    """
    Close the over that just finished.

    Rounds the overs count up, resets the ball counter, changes ends and retires
    the bowler so that a different one has to be picked for the next over.
    """
    updated = match.model_copy(deep=True)
    innings = updated.innings

    # --- 1. Finalize over counts ---
    innings.overs = float(math.ceil(innings.overs))
    innings.balls_in_over = 0

    # --- 2. Batsmen change ends ---
    updated.on_strike_batsman_id, updated.non_strike_batsman_id = (
        updated.non_strike_batsman_id,
        updated.on_strike_batsman_id,
    )

    # --- 3. Retire the bowler ---
    finished = innings.bowler(updated.current_bowler_id)
    if finished is not None:
        finished.is_current = False
        logger.info(
            f"Match {match.match_id}: end of over {int(innings.overs)}, "
            f"{finished.name} {finished.figures_str}"
        )
    updated.previous_bowler_id = updated.current_bowler_id
    updated.current_bowler_id = None

    return updated
