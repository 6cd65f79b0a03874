"""
Error taxonomy for the scoring engine.

Each error carries the HTTP status the API layer reports it with. Persistence
errors are not wrapped: they propagate from the storage layer unchanged.
"""


class ScoringError(Exception):
    """Base class for every rejected scoring operation."""

    status_code = 400


class PreconditionError(ScoringError):
    """A required pointer (striker, bowler) is missing for the requested operation."""

    status_code = 409


class InvalidOperationError(ScoringError):
    """The operation is not allowed in the current match state."""

    status_code = 400


class NothingToUndoError(InvalidOperationError):
    status_code = 409

    def __init__(self, match_id: str) -> None:
        super().__init__(f"Nothing to undo for match {match_id}")
        self.match_id = match_id


class MatchNotFoundError(ScoringError):
    status_code = 404

    def __init__(self, match_id: str) -> None:
        super().__init__(f"Match {match_id} not found")
        self.match_id = match_id
