import logging
from typing import Optional

from scorebook.engine.commentary import amend_dismissal, append_delivery, build_delivery
from scorebook.engine.delivery import process_delivery
from scorebook.engine.dismissal import process_wicket
from scorebook.engine.errors import InvalidOperationError, MatchNotFoundError, PreconditionError
from scorebook.engine.lifecycle import (
    innings_over_reason,
    on_innings_over,
    record_toss,
    select_next_batsman,
    select_next_bowler,
    select_opening_players,
)
from scorebook.engine.over import process_end_of_over
from scorebook.engine.undo import UndoController
from scorebook.models import (
    FREE_HIT_DISMISSALS,
    DeliveryParams,
    ExtraType,
    Match,
    MatchStatus,
    Player,
    RunType,
    TossDecision,
    WicketType,
)
from scorebook.storage import database as db

logger = logging.getLogger(__name__)


class MatchScorer:
    """
    The operations a scorer (UI or automation) performs on a live match.

    Each call loads the match document, runs the pure engine functions over
    it, and writes the full result back to the store. Calls for one match must
    be serialized by the caller.
    """

    def __init__(self, undo: Optional[UndoController] = None) -> None:
        self.undo = undo or UndoController()

    # ------------------------------------------------------------------ #
    #  Store access
    # ------------------------------------------------------------------ #

    async def load(self, match_id: str) -> Match:
        doc = await db.get_match(match_id)
        if doc is None:
            raise MatchNotFoundError(match_id)
        return Match.model_validate(doc)

    async def _save(self, match: Match) -> Match:
        match.check_integrity()
        await db.write_match(match.match_id, match.to_record())
        return match

    async def _player(self, player_id: str) -> Player:
        row = await db.get_player(player_id)
        if row is None:
            raise InvalidOperationError(f"Unknown player {player_id}")
        return Player(**row)

    # ------------------------------------------------------------------ #
    #  Pre-match
    # ------------------------------------------------------------------ #

    async def record_toss(self, match_id: str, winning_team_id: str, decision: TossDecision) -> Match:
        match = await self.load(match_id)
        names = {}
        for team_id in (match.team_a_id, match.team_b_id):
            team = await db.get_team(team_id)
            if team is not None:
                names[team_id] = team["name"]
        return await self._save(record_toss(match, winning_team_id, decision, names))

    async def select_opening_players(
        self,
        match_id: str,
        striker_id: str,
        non_striker_id: str,
        bowler_id: str,
    ) -> Match:
        match = await self.load(match_id)
        updated = select_opening_players(
            match,
            await self._player(striker_id),
            await self._player(non_striker_id),
            await self._player(bowler_id),
        )
        logger.info(
            f"Match {match_id}: innings {updated.current_innings} under way, "
            f"{striker_id} & {non_striker_id} facing {bowler_id}"
        )
        return await self._save(updated)

    # ------------------------------------------------------------------ #
    #  Ball by ball
    # ------------------------------------------------------------------ #

    def _check_ready(self, match: Match) -> None:
        if match.status != MatchStatus.LIVE:
            raise InvalidOperationError(f"Match is {match.status.value}, not Live")
        if match.innings.dismissals_recorded < match.innings.wickets:
            raise PreconditionError("Confirm the last dismissal before the next ball")

    def _apply_delivery(self, match: Match, params: DeliveryParams) -> tuple[Match, dict]:
        self._check_ready(match)
        result = process_delivery(match, params)
        updated = append_delivery(result.match, build_delivery(match, params, result))

        if result.is_over_complete and not result.is_innings_over:
            updated = process_end_of_over(updated)
        # A fallen wicket closes the innings only once its dismissal is confirmed
        if result.is_innings_over and not result.is_wicket_fallen:
            updated = on_innings_over(updated)

        innings = updated.innings1 if match.current_innings == 1 else updated.innings2
        logger.info(
            f"Match {match.match_id}: {params.outcome.value} {params.runs} -> "
            f"{innings.score_display}"
            f"{' W' if result.is_wicket_fallen else ''}"
            f"{' [over]' if result.is_over_complete else ''}"
            f"{' [innings over]' if result.is_innings_over else ''}"
        )
        return updated, result.flags()

    async def record_delivery(
        self,
        match_id: str,
        runs: int,
        is_legal: bool,
        is_wicket: bool,
        extra_type: Optional[ExtraType] = None,
        wicket_type: Optional[WicketType] = None,
        run_type: Optional[RunType] = None,
    ) -> dict:
        """Score one ball. Returns {isOverComplete, isWicketFallen, isInningsOver}."""
        match = await self.load(match_id)
        params = DeliveryParams(
            runs=runs,
            is_legal=is_legal,
            is_wicket=is_wicket,
            extra_type=extra_type,
            wicket_type=wicket_type,
            run_type=run_type,
        )
        updated, flags = self._apply_delivery(match, params)
        await self._save(updated)
        self.undo.snapshot(match)
        return flags

    async def confirm_dismissal(
        self,
        match_id: str,
        wicket_type: WicketType,
        batsman_id: str,
        fielder_id: Optional[str] = None,
        completed_runs: int = 0,
    ) -> Match:
        """
        Record how the batsman got out.

        Normally follows a wicket ball from record_delivery. When no wicket is
        waiting for confirmation the wicket is scored first as a legal ball
        (with `completed_runs` run before a run out).
        """
        match = await self.load(match_id)
        innings = match.innings
        pending = innings.dismissals_recorded < innings.wickets
        snapshot = None

        if pending and completed_runs:
            raise InvalidOperationError("Runs for the wicket ball were already recorded")
        if not pending:
            params = DeliveryParams(
                runs=completed_runs,
                is_legal=True,
                is_wicket=True,
                wicket_type=wicket_type,
            )
            snapshot = match
            match, flags = self._apply_delivery(match, params)
            if not flags["isWicketFallen"]:
                raise InvalidOperationError(f"{wicket_type.value} is not out on a free hit")
            innings = match.innings

        last = innings.delivery_history[-1]
        recorded = last.wicket_info.type if last.wicket_info else None
        if recorded is not None and wicket_type != recorded:
            raise InvalidOperationError(
                f"The wicket ball was recorded as {recorded.value}, not {wicket_type.value}"
            )
        if last.is_free_hit and wicket_type not in FREE_HIT_DISMISSALS:
            raise InvalidOperationError(f"{wicket_type.value} is not out on a free hit")
        if wicket_type != WicketType.RUN_OUT and batsman_id != last.batsman_id:
            raise InvalidOperationError("Only a run out can dismiss the non-striker")
        if wicket_type == WicketType.RUN_OUT and batsman_id not in (
            match.on_strike_batsman_id, match.non_strike_batsman_id,
        ):
            raise InvalidOperationError(f"Batsman {batsman_id} is not at the crease")

        updated = process_wicket(match, wicket_type, batsman_id, fielder_id, bowler_id=last.bowler_id)
        updated = amend_dismissal(updated, wicket_type, batsman_id, fielder_id)

        reason = innings_over_reason(updated)
        if reason is not None and updated.status == MatchStatus.LIVE:
            logger.info(f"Match {match_id}: innings {updated.current_innings} over ({reason})")
            updated = on_innings_over(updated)
        saved = await self._save(updated)
        if snapshot is not None:
            self.undo.snapshot(snapshot)
        return saved

    async def select_next_batsman(self, match_id: str, batsman_id: str) -> Match:
        match = await self.load(match_id)
        return await self._save(select_next_batsman(match, await self._player(batsman_id)))

    async def select_next_bowler(self, match_id: str, bowler_id: str) -> Match:
        match = await self.load(match_id)
        return await self._save(select_next_bowler(match, await self._player(bowler_id)))

    async def undo_last_delivery(self, match_id: str) -> Match:
        await self.load(match_id)
        previous = self.undo.undo(match_id)
        return await self._save(previous)
