import logging

from scorebook.engine.errors import NothingToUndoError
from scorebook.models import Match

logger = logging.getLogger(__name__)


class UndoController:
    """
    Single-level undo per match.

    A full copy of the match is taken before each delivery or wicket is
    applied. undo() hands that copy back once and forgets it, so only the
    latest ball can be rolled back.
    """

    def __init__(self) -> None:
        self._snapshots: dict[str, Match] = {}

    def snapshot(self, match: Match) -> None:
        """Remember the match as it is right now, replacing any older snapshot."""
        self._snapshots[match.match_id] = match.model_copy(deep=True)

    def can_undo(self, match_id: str) -> bool:
        return match_id in self._snapshots

    def undo(self, match_id: str) -> Match:
        """Return the last snapshot and discard it. Raises NothingToUndoError if there is none."""
        previous = self._snapshots.pop(match_id, None)
        if previous is None:
            logger.warning(f"Match {match_id}: nothing to undo")
            raise NothingToUndoError(match_id)
        logger.info(
            f"Match {match_id}: restored state at {previous.innings.score_display}"
        )
        return previous

    def discard(self, match_id: str) -> None:
        self._snapshots.pop(match_id, None)
