"""
Innings and match lifecycle: toss, player selection, innings/match completion,
awards and the final result.

Every function takes a Match and returns an updated deep copy.
"""

import logging
import math
from typing import Optional

from scorebook.engine.errors import InvalidOperationError, PreconditionError
from scorebook.models import (
    STATUS_TRANSITIONS,
    BattingStat,
    BowlingStat,
    Match,
    MatchAwards,
    MatchResult,
    MatchStatus,
    Player,
    TossDecision,
)

logger = logging.getLogger(__name__)


def transition(match: Match, new_status: MatchStatus) -> None:
    """Move match.status forward in place, rejecting any skipped or backward step."""
    if new_status not in STATUS_TRANSITIONS[match.status]:
        raise InvalidOperationError(
            f"Cannot move match from '{match.status.value}' to '{new_status.value}'"
        )
    logger.info(f"Match {match.match_id}: {match.status.value} -> {new_status.value}")
    match.status = new_status


# ------------------------------------------------------------------ #
#  Toss & selections
# ------------------------------------------------------------------ #

def record_toss(
    match: Match,
    winning_team_id: str,
    decision: TossDecision,
    team_names: Optional[dict[str, str]] = None,
) -> Match:
    """Fix which team bats in each innings. The toss can only be recorded once."""
    if match.toss_winner_id is not None:
        raise InvalidOperationError("Toss has already been recorded")
    if match.status != MatchStatus.UPCOMING:
        raise InvalidOperationError(f"Toss not allowed while match is {match.status.value}")
    if winning_team_id not in (match.team_a_id, match.team_b_id):
        raise InvalidOperationError(f"Team {winning_team_id} is not playing this match")

    names = team_names or {}
    updated = match.model_copy(deep=True)
    other_team_id = updated.team_b_id if winning_team_id == updated.team_a_id else updated.team_a_id

    if decision == TossDecision.BAT:
        first, second = winning_team_id, other_team_id
    else:
        first, second = other_team_id, winning_team_id

    updated.toss_winner_id = winning_team_id
    updated.toss_decision = decision

    updated.innings1.batting_team_id = first
    updated.innings1.bowling_team_id = second
    updated.innings1.batting_team_name = names.get(first, updated.innings1.batting_team_name)
    updated.innings2.batting_team_id = second
    updated.innings2.bowling_team_id = first
    updated.innings2.batting_team_name = names.get(second, updated.innings2.batting_team_name)

    logger.info(
        f"Match {match.match_id}: toss won by {names.get(winning_team_id, winning_team_id)}, "
        f"elected to {decision.value}"
    )
    return updated


def _check_affiliation(player: Player, team_id: Optional[str], side: str) -> None:
    if team_id is not None and player.team_id is not None and player.team_id != team_id:
        raise InvalidOperationError(f"{player.name} is not in the {side} team")


def _add_batter(match: Match, player: Player) -> None:
    innings = match.innings
    _check_affiliation(player, innings.batting_team_id, "batting")
    if innings.batter(player.id) is not None:
        raise InvalidOperationError(f"{player.name} has already batted this innings")
    innings.batting_stats.append(BattingStat(id=player.id, name=player.name))


def _make_current_bowler(match: Match, player: Player) -> None:
    innings = match.innings
    _check_affiliation(player, innings.bowling_team_id, "bowling")
    entry = innings.bowler(player.id)
    if entry is None:
        entry = BowlingStat(id=player.id, name=player.name)
        innings.bowling_stats.append(entry)
    for other in innings.bowling_stats:
        other.is_current = False
    entry.is_current = True
    match.current_bowler_id = player.id


def _require_live(match: Match) -> None:
    if match.status != MatchStatus.LIVE:
        raise InvalidOperationError(f"Match is {match.status.value}, not Live")


def select_opening_players(
    match: Match,
    striker: Player,
    non_striker: Player,
    bowler: Player,
) -> Match:
    """Put the openers and opening bowler in place and start (or resume) play."""
    if match.toss_winner_id is None:
        raise PreconditionError("Toss has not been recorded")
    if match.status not in (MatchStatus.UPCOMING, MatchStatus.INNINGS_BREAK):
        raise InvalidOperationError(f"Openers cannot be chosen while match is {match.status.value}")
    if striker.id == non_striker.id:
        raise InvalidOperationError("Striker and non-striker must be different players")

    updated = match.model_copy(deep=True)
    _add_batter(updated, striker)
    _add_batter(updated, non_striker)
    _make_current_bowler(updated, bowler)
    updated.on_strike_batsman_id = striker.id
    updated.non_strike_batsman_id = non_striker.id
    updated.previous_bowler_id = None
    updated.is_free_hit = False
    transition(updated, MatchStatus.LIVE)
    return updated


def select_next_batsman(match: Match, batsman: Player) -> Match:
    """Send in a new batsman to whichever end is vacant (striker's end first)."""
    _require_live(match)
    if match.innings.dismissals_recorded < match.innings.wickets:
        raise PreconditionError("Confirm the dismissal before selecting the next batsman")
    if match.on_strike_batsman_id is not None and match.non_strike_batsman_id is not None:
        raise InvalidOperationError("Both batting slots are already filled")

    updated = match.model_copy(deep=True)
    _add_batter(updated, batsman)
    if updated.on_strike_batsman_id is None:
        updated.on_strike_batsman_id = batsman.id
    else:
        updated.non_strike_batsman_id = batsman.id
    logger.info(f"Match {match.match_id}: new batsman {batsman.name}")
    return updated


def select_next_bowler(match: Match, bowler: Player) -> Match:
    """Hand the ball to a new bowler at the start of an over."""
    _require_live(match)
    if match.current_bowler_id is not None:
        raise InvalidOperationError("A bowler is already bowling this over")
    if bowler.id == match.previous_bowler_id:
        raise InvalidOperationError(f"{bowler.name} bowled the previous over")
    existing = match.innings.bowler(bowler.id)
    if existing is not None and math.floor(existing.overs) >= match.rules.max_overs_per_bowler:
        raise InvalidOperationError(
            f"{bowler.name} has bowled the maximum {match.rules.max_overs_per_bowler} overs"
        )

    updated = match.model_copy(deep=True)
    _make_current_bowler(updated, bowler)
    logger.info(f"Match {match.match_id}: {bowler.name} to bowl")
    return updated


# ------------------------------------------------------------------ #
#  Innings & match completion
# ------------------------------------------------------------------ #

def innings_over_reason(match: Match) -> Optional[str]:
    """Why the current innings is finished, or None if it continues."""
    innings = match.innings
    if innings.wickets >= match.max_wickets:
        return "all out"
    if innings.completed_overs >= match.rules.total_overs:
        return "overs complete"
    if match.current_innings == 2 and innings.score >= match.target:
        return "target reached"
    return None


def on_innings_over(match: Match) -> Match:
    """Close the current innings: go to the break after innings 1, finish the match after innings 2."""
    updated = match.model_copy(deep=True)
    innings = updated.innings

    # A final over completed with the last ball is never closed by the over handler
    if innings.balls_in_over >= 6:
        innings.overs = float(math.ceil(innings.overs))
        innings.balls_in_over = 0
    for entry in innings.bowling_stats:
        entry.is_current = False

    updated.on_strike_batsman_id = None
    updated.non_strike_batsman_id = None
    updated.current_bowler_id = None
    updated.previous_bowler_id = None
    updated.is_free_hit = False

    if updated.current_innings == 1:
        transition(updated, MatchStatus.INNINGS_BREAK)
        updated.current_innings = 2
        logger.info(
            f"Match {match.match_id}: first innings closed at {innings.score_display}, "
            f"target {updated.target}"
        )
    else:
        transition(updated, MatchStatus.COMPLETED)
        updated.awards = calculate_match_awards(updated)
        updated.result = match_result(updated)
        logger.info(f"Match {match.match_id}: {updated.result.summary}")
    return updated


def _best_batsman(stats: list[BattingStat]) -> Optional[BattingStat]:
    best = None
    for entry in stats:
        if best is None or entry.runs > best.runs:
            best = entry
    return best


def _top_wicket_taker(stats: list[BowlingStat]) -> Optional[BowlingStat]:
    best = None
    for entry in stats:
        if best is None or entry.wickets > best.wickets:
            best = entry
        elif entry.wickets == best.wickets and entry.runs < best.runs:
            best = entry
    return best


def _most_economical(stats: list[BowlingStat]) -> Optional[BowlingStat]:
    best = None
    for entry in stats:
        if entry.balls_bowled < 6:
            continue
        if best is None or entry.economy < best.economy:
            best = entry
    return best


def calculate_match_awards(match: Match) -> MatchAwards:
    """Pick the award winners across both innings. Earlier entries win ties."""
    batting = match.innings1.batting_stats + match.innings2.batting_stats
    bowling = match.innings1.bowling_stats + match.innings2.bowling_stats

    best_bat = _best_batsman(batting)
    top_bowl = _top_wicket_taker(bowling)
    economical = _most_economical(bowling)
    return MatchAwards(
        best_batsman_id=best_bat.id if best_bat else None,
        top_wicket_taker_id=top_bowl.id if top_bowl else None,
        most_economical_bowler_id=economical.id if economical else None,
    )


def match_result(match: Match) -> MatchResult:
    """Winner and margin from the two innings totals."""
    first, second = match.innings1, match.innings2
    if second.score > first.score:
        wickets_left = match.max_wickets - second.wickets
        return MatchResult(
            winner_team_id=second.batting_team_id,
            margin=wickets_left,
            margin_type="wickets",
            summary=f"{second.batting_team_name} won by {wickets_left} wicket(s)",
        )
    if first.score > second.score:
        margin = first.score - second.score
        return MatchResult(
            winner_team_id=first.batting_team_id,
            margin=margin,
            margin_type="runs",
            summary=f"{first.batting_team_name} won by {margin} run(s)",
        )
    return MatchResult(summary="Match tied")
