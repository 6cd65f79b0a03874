"""
Per-ball history records and the short commentary line stored with each one.

Nothing here changes the score: it only describes a ball that the delivery
processor has already applied.
"""

from typing import Optional

from scorebook.models import (
    DeliveryParams,
    DeliveryResult,
    Delivery,
    ExtraType,
    Match,
    RunsScored,
    WicketInfo,
    WicketType,
)


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'s' if count > 1 else ''}"


def generate_commentary(
    runs: int,
    is_wicket: bool,
    extra_type: Optional[ExtraType] = None,
    wicket_type: Optional[WicketType] = None,
) -> str:
    """One-line description of a ball, e.g. 'FOUR', 'wide +2 runs. Total 3 extras.'"""
    if is_wicket:
        how = wicket_type.value.replace("_", " ") if wicket_type else "run out"
        return f"WICKET! {how}."

    if extra_type in (ExtraType.WIDE, ExtraType.NO_BALL):
        label = "wide" if extra_type == ExtraType.WIDE else "no ball"
        if runs == 0:
            return f"{label}."
        return f"{label} +{_plural(runs, 'run')}. Total {_plural(runs + 1, 'extra')}."

    if extra_type == ExtraType.BYE:
        return f"{_plural(runs, 'bye')}."
    if extra_type == ExtraType.LEG_BYE:
        return f"{_plural(runs, 'leg bye')}."

    if runs == 0:
        return "no run."
    if runs == 4:
        return "FOUR"
    if runs == 6:
        return "SIX"
    return f"{_plural(runs, 'run')}."


def build_delivery(before: Match, params: DeliveryParams, result: DeliveryResult) -> Delivery:
    """
    Describe the ball that turned `before` into `result.match`.

    Over and ball numbers are 1-based and taken from the state before the ball,
    so a wide keeps the number of the legal ball that follows it.
    """
    innings = before.innings
    striker = innings.batter(before.on_strike_batsman_id)
    bowler = innings.bowler(before.current_bowler_id)
    over_number = innings.completed_overs + 1
    ball_in_over = innings.balls_in_over + 1
    sequence = len(innings.delivery_history) + 1

    wicket_info = None
    if result.is_wicket_fallen:
        wicket_info = WicketInfo(type=params.wicket_type, batsman_id=striker.id)

    breakdown = result.runs_breakdown
    return Delivery(
        ball_id=f"{before.current_innings}-{over_number - 1}.{ball_in_over}-{sequence}",
        over_number=over_number,
        ball_in_over=ball_in_over,
        batsman_id=striker.id,
        bowler_id=bowler.id,
        batsman_name=striker.name,
        bowler_name=bowler.name,
        runs_scored=RunsScored(
            batsman=breakdown.batsman_runs,
            extras=breakdown.extra_runs,
            total=breakdown.total_runs,
        ),
        extra_type=params.extra_type,
        is_wicket=result.is_wicket_fallen,
        is_legal=params.is_legal and params.extra_type not in (ExtraType.WIDE, ExtraType.NO_BALL),
        is_free_hit=before.is_free_hit,
        wicket_info=wicket_info,
        commentary=generate_commentary(
            params.runs, result.is_wicket_fallen, params.extra_type, params.wicket_type
        ),
    )


def append_delivery(match: Match, delivery: Delivery) -> Match:
    """Add a ball to the history of the innings in play."""
    updated = match.model_copy(deep=True)
    updated.innings.delivery_history.append(delivery)
    return updated


def amend_dismissal(
    match: Match,
    wicket_type: WicketType,
    batsman_id: str,
    fielder_id: Optional[str] = None,
) -> Match:
    """
    Fill in the confirmed dismissal on the last ball of the innings in play.

    The wicket ball is logged before the scorer says who was out and how, so
    its wicket info and commentary are replaced once that is known.
    """
    updated = match.model_copy(deep=True)
    history = updated.innings.delivery_history
    history[-1] = history[-1].model_copy(update={
        "wicket_info": WicketInfo(type=wicket_type, batsman_id=batsman_id, fielder_id=fielder_id),
        "commentary": generate_commentary(0, True, wicket_type=wicket_type),
    })
    return updated
