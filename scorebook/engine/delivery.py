import logging

from scorebook.engine.errors import InvalidOperationError, PreconditionError
from scorebook.models import (
    FREE_HIT_DISMISSALS,
    BallOutcome,
    DeliveryParams,
    DeliveryResult,
    Match,
    RunsBreakdown,
    balls_from_overs,
    overs_display,
)

logger = logging.getLogger(__name__)


# Outcomes that count toward the six legal balls of an over
_OVER_BALLS = frozenset({BallOutcome.NORMAL, BallOutcome.BYE, BallOutcome.LEG_BYE})

# Outcomes where the batsmen's running (not the bat) decides the strike
_RUN_BY_LEGS = frozenset({
    BallOutcome.WIDE, BallOutcome.BYE, BallOutcome.LEG_BYE, BallOutcome.NO_BALL_BYE,
})


def attribute_runs(outcome: BallOutcome, runs: int) -> RunsBreakdown:
    """Split the runs off one ball between the bat and extras."""
    if outcome == BallOutcome.WIDE:
        return RunsBreakdown(total_runs=1 + runs, batsman_runs=0, extra_runs=1 + runs, penalty_runs=1)
    if outcome == BallOutcome.NO_BALL_HIT:
        return RunsBreakdown(total_runs=1 + runs, batsman_runs=runs, extra_runs=1, penalty_runs=1)
    if outcome == BallOutcome.NO_BALL_BYE:
        return RunsBreakdown(total_runs=1 + runs, batsman_runs=0, extra_runs=1 + runs, penalty_runs=1)
    if outcome in (BallOutcome.BYE, BallOutcome.LEG_BYE):
        return RunsBreakdown(total_runs=runs, batsman_runs=0, extra_runs=runs, penalty_runs=0)
    return RunsBreakdown(total_runs=runs, batsman_runs=runs, extra_runs=0, penalty_runs=0)


def bowler_runs_conceded(outcome: BallOutcome, breakdown: RunsBreakdown) -> int:
    """Runs charged to the bowler's figures. Byes never count against the bowler."""
    if outcome in (BallOutcome.WIDE, BallOutcome.NO_BALL_BYE):
        return breakdown.penalty_runs
    if outcome in (BallOutcome.BYE, BallOutcome.LEG_BYE):
        return 0
    return breakdown.total_runs


def process_delivery(match: Match, params: DeliveryParams) -> DeliveryResult:
    """
    Apply one ball to the match and return the new state plus derived flags.

    The input match is left untouched; all changes are made on a deep copy.
    Raises PreconditionError when either batsman or the bowler is not set.
    """
    if params.runs < 0:
        raise InvalidOperationError(f"Runs cannot be negative (got {params.runs})")

    updated = match.model_copy(deep=True)
    innings = updated.innings
    rules = updated.rules

    striker = innings.batter(updated.on_strike_batsman_id)
    bowler = innings.bowler(updated.current_bowler_id)
    non_striker = innings.batter(updated.non_strike_batsman_id)
    if striker is None or non_striker is None or bowler is None:
        logger.warning(
            f"Match {match.match_id}: delivery rejected, striker={updated.on_strike_batsman_id} "
            f"non_striker={updated.non_strike_batsman_id} bowler={updated.current_bowler_id}"
        )
        raise PreconditionError("Both batsmen and the bowler must be in place before a ball")

    outcome = params.outcome
    runs = params.runs

    # --- 1. Run distribution ---
    breakdown = attribute_runs(outcome, runs)

    # --- 2. Team score and bowler figures ---
    innings.score += breakdown.total_runs
    innings.extras += breakdown.extra_runs
    bowler.runs += bowler_runs_conceded(outcome, breakdown)

    # --- 3. Batsman stats ---
    # Wides are not faced; no-balls are faced but never count as a ball faced
    if outcome not in (BallOutcome.WIDE, BallOutcome.NO_BALL_HIT, BallOutcome.NO_BALL_BYE):
        striker.balls += 1
    if breakdown.batsman_runs > 0:
        striker.runs += breakdown.batsman_runs
        if breakdown.batsman_runs == 4:
            striker.fours += 1
        elif breakdown.batsman_runs == 6:
            striker.sixes += 1

    # --- 4. Strike rotation (runs physically completed) ---
    ran = runs if outcome in _RUN_BY_LEGS else breakdown.batsman_runs
    if ran % 2 == 1:
        updated.on_strike_batsman_id, updated.non_strike_batsman_id = (
            updated.non_strike_batsman_id,
            updated.on_strike_batsman_id,
        )

    # --- 5. Over progression ---
    is_over_complete = False
    if outcome in _OVER_BALLS and params.is_legal:
        innings.balls_in_over += 1
        innings.overs = overs_display(balls_from_overs(innings.overs) + 1)
        bowler.overs = overs_display(balls_from_overs(bowler.overs) + 1)
        if innings.balls_in_over >= 6:
            is_over_complete = True

    # --- 6. Wickets ---
    is_wicket_fallen = False
    if params.is_wicket:
        if not updated.is_free_hit or params.wicket_type in FREE_HIT_DISMISSALS:
            is_wicket_fallen = True
            innings.wickets += 1
        else:
            logger.info(
                f"Match {match.match_id}: {params.wicket_type} ignored on a free hit"
            )

    # --- 7. Free hit follows every no-ball ---
    updated.is_free_hit = outcome in (BallOutcome.NO_BALL_HIT, BallOutcome.NO_BALL_BYE)

    # --- 8. End of innings ---
    is_innings_over = False
    if innings.wickets >= rules.players_per_team - 1:
        is_innings_over = True
    if is_over_complete and innings.completed_overs >= rules.total_overs:
        is_innings_over = True
    if updated.current_innings == 2 and innings.score >= updated.target:
        is_innings_over = True

    return DeliveryResult(
        match=updated,
        is_over_complete=is_over_complete,
        is_wicket_fallen=is_wicket_fallen,
        is_innings_over=is_innings_over,
        runs_breakdown=breakdown,
        outcome=outcome,
    )
