from enum import Enum
import logging
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


logger = logging.getLogger(__name__)


# =========================================================================== #
#  Enumerations
# =========================================================================== #


class MatchStatus(str, Enum):
    """Lifecycle of a match document. Only ever moves forward."""

    UPCOMING = "Upcoming"
    LIVE = "Live"
    INNINGS_BREAK = "Innings Break"
    COMPLETED = "Completed"


# Every legal status change. Anything else is an operator-sequencing bug.
STATUS_TRANSITIONS: dict[MatchStatus, frozenset[MatchStatus]] = {
    MatchStatus.UPCOMING: frozenset({MatchStatus.LIVE}),
    MatchStatus.LIVE: frozenset({MatchStatus.INNINGS_BREAK, MatchStatus.COMPLETED}),
    MatchStatus.INNINGS_BREAK: frozenset({MatchStatus.LIVE}),
    MatchStatus.COMPLETED: frozenset(),
}


class TossDecision(str, Enum):
    BAT = "bat"
    BOWL = "bowl"


class ExtraType(str, Enum):
    WIDE = "wide"
    NO_BALL = "no_ball"
    BYE = "bye"
    LEG_BYE = "leg_bye"


class RunType(str, Enum):
    """How the runs off a no-ball were scored."""

    HIT = "hit"
    BYE = "bye"
    LEG_BYE = "leg_bye"


class WicketType(str, Enum):
    BOWLED = "bowled"
    CAUGHT = "caught"
    LBW = "lbw"
    RUN_OUT = "run_out"
    STUMPED = "stumped"
    HIT_WICKET = "hit_wicket"
    RETIRED_HURT = "retired_hurt"


# Dismissals that stand even on a free hit
FREE_HIT_DISMISSALS = frozenset({WicketType.RUN_OUT, WicketType.STUMPED})

# Dismissals that name a fielder
FIELDER_DISMISSALS = frozenset({WicketType.CAUGHT, WicketType.RUN_OUT, WicketType.STUMPED})


class BallOutcome(str, Enum):
    """Run-attribution category of a single processed ball."""

    NORMAL = "normal"
    WIDE = "wide"
    NO_BALL_HIT = "no_ball_hit"
    NO_BALL_BYE = "no_ball_bye"
    BYE = "bye"
    LEG_BYE = "leg_bye"

    @classmethod
    def classify(cls, extra_type: Optional[ExtraType], run_type: Optional[RunType]) -> "BallOutcome":
        if extra_type is None:
            return cls.NORMAL
        if extra_type == ExtraType.WIDE:
            return cls.WIDE
        if extra_type == ExtraType.NO_BALL:
            if run_type in (RunType.BYE, RunType.LEG_BYE):
                return cls.NO_BALL_BYE
            return cls.NO_BALL_HIT
        if extra_type == ExtraType.BYE:
            return cls.BYE
        return cls.LEG_BYE


# =========================================================================== #
#  Helpers
# =========================================================================== #


def overs_display(balls: int) -> float:
    """Cricket overs notation from a ball count, e.g. 27 balls -> 4.3."""
    return float(f"{balls // 6}.{balls % 6}")


def balls_from_overs(overs: float) -> int:
    """Inverse of overs_display. 4.3 -> 27."""
    whole = int(overs)
    return whole * 6 + round((overs - whole) * 10)


class _Record(BaseModel):
    """Base for every persisted structure: camelCase on the wire, snake_case in code."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=False,
    )


# =========================================================================== #
#  Per-innings statistics
# =========================================================================== #


class MatchRules(_Record):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    total_overs: int = 20
    players_per_team: int = 11
    max_overs_per_bowler: int = 4
    custom_rules_text: str = ""


class Dismissal(_Record):
    """How a batsman got out."""

    type: WicketType
    bowler_id: Optional[str] = None
    fielder_id: Optional[str] = None


class BattingStat(_Record):
    id: str
    name: str
    runs: int = 0
    balls: int = 0
    fours: int = 0
    sixes: int = 0
    status: str = "not_out"
    dismissal: Optional[Dismissal] = None

    @property
    def is_out(self) -> bool:
        return self.status == "out"

    @property
    def strike_rate(self) -> float:
        if self.balls == 0:
            return 0.0
        return round((self.runs / self.balls) * 100, 2)


class BowlingStat(_Record):
    id: str
    name: str
    overs: float = 0
    runs: int = 0
    wickets: int = 0
    is_current: bool = False

    @property
    def balls_bowled(self) -> int:
        return balls_from_overs(self.overs)

    @property
    def economy(self) -> float:
        balls = self.balls_bowled
        if balls == 0:
            return 0.0
        return round(self.runs / (balls / 6), 2)

    @property
    def figures_str(self) -> str:
        return f"{self.wickets}/{self.runs} ({self.overs})"


class RunsScored(_Record):
    batsman: int = 0
    extras: int = 0
    total: int = 0


class WicketInfo(_Record):
    type: Optional[WicketType] = None
    batsman_id: str
    fielder_id: Optional[str] = None


class Delivery(_Record):
    """An adjudicated ball. Append-only history entry."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    ball_id: str
    over_number: int
    ball_in_over: int
    batsman_id: str
    bowler_id: str
    batsman_name: str = ""
    bowler_name: str = ""
    runs_scored: RunsScored = Field(default_factory=RunsScored)
    extra_type: Optional[ExtraType] = None
    is_wicket: bool = False
    is_legal: bool = True
    is_free_hit: bool = False  # bowled as a free hit
    wicket_info: Optional[WicketInfo] = None
    commentary: str = ""


class Innings(_Record):
    """One team's batting effort."""

    batting_team_id: Optional[str] = None
    bowling_team_id: Optional[str] = None
    batting_team_name: str = "TBD"
    score: int = 0
    wickets: int = 0
    extras: int = 0
    overs: float = 0
    balls_in_over: int = 0
    batting_stats: list[BattingStat] = Field(default_factory=list)
    bowling_stats: list[BowlingStat] = Field(default_factory=list)
    delivery_history: list[Delivery] = Field(default_factory=list)

    @property
    def total_balls(self) -> int:
        return balls_from_overs(self.overs)

    @property
    def completed_overs(self) -> int:
        return self.total_balls // 6

    @property
    def run_rate(self) -> float:
        if self.total_balls == 0:
            return 0.0
        return round(self.score / (self.total_balls / 6), 2)

    @property
    def dismissals_recorded(self) -> int:
        return sum(1 for b in self.batting_stats if b.is_out)

    def batter(self, player_id: Optional[str]) -> Optional[BattingStat]:
        return next((b for b in self.batting_stats if b.id == player_id), None)

    def bowler(self, player_id: Optional[str]) -> Optional[BowlingStat]:
        return next((b for b in self.bowling_stats if b.id == player_id), None)

    def current_bowler(self) -> Optional[BowlingStat]:
        return next((b for b in self.bowling_stats if b.is_current), None)

    @property
    def score_display(self) -> str:
        return f"{self.score}/{self.wickets} ({self.overs})"


# =========================================================================== #
#  Match aggregate
# =========================================================================== #


class MatchAwards(_Record):
    best_batsman_id: Optional[str] = None
    top_wicket_taker_id: Optional[str] = None
    most_economical_bowler_id: Optional[str] = None


class MatchResult(_Record):
    winner_team_id: Optional[str] = None
    margin: int = 0
    margin_type: Optional[str] = None  # "runs" | "wickets" | None on a tie
    summary: str = ""


class Match(_Record):
    """The full match document as stored and broadcast."""

    match_id: str
    event_id: Optional[str] = None
    team_a_id: str = Field(..., alias="teamA_id")
    team_b_id: str = Field(..., alias="teamB_id")
    status: MatchStatus = MatchStatus.UPCOMING
    current_innings: int = 1
    on_strike_batsman_id: Optional[str] = None
    non_strike_batsman_id: Optional[str] = None
    current_bowler_id: Optional[str] = None
    previous_bowler_id: Optional[str] = None
    is_free_hit: bool = False
    toss_winner_id: Optional[str] = None
    toss_decision: Optional[TossDecision] = None
    rules: MatchRules = Field(default_factory=MatchRules)
    innings1: Innings = Field(default_factory=Innings)
    innings2: Innings = Field(default_factory=Innings)
    awards: Optional[MatchAwards] = None
    result: Optional[MatchResult] = None

    @property
    def innings(self) -> Innings:
        """The innings currently in play."""
        return self.innings1 if self.current_innings == 1 else self.innings2

    @property
    def target(self) -> int:
        return self.innings1.score + 1

    @property
    def max_wickets(self) -> int:
        return self.rules.players_per_team - 1

    def to_record(self) -> dict:
        """Serialize to the persisted camelCase document."""
        return self.model_dump(by_alias=True, mode="json")

    def check_integrity(self) -> list[str]:
        """Return a list of invariant violations (empty when consistent)."""
        problems = []
        if (
            self.on_strike_batsman_id is not None
            and self.on_strike_batsman_id == self.non_strike_batsman_id
        ):
            problems.append(f"both batting slots hold {self.on_strike_batsman_id}")
        for number, inn in ((1, self.innings1), (2, self.innings2)):
            current = [b.id for b in inn.bowling_stats if b.is_current]
            if len(current) > 1:
                problems.append(f"innings {number} has several current bowlers: {current}")
            # A sixth ball is only left standing while the wicket that ended the
            # innings on it awaits confirmation
            awaiting_dismissal = inn.dismissals_recorded < inn.wickets
            if not (0 <= inn.balls_in_over <= 5 or (inn.balls_in_over == 6 and awaiting_dismissal)):
                problems.append(f"innings {number} ballsInOver={inn.balls_in_over}")
            if inn.score != inn.extras + sum(b.runs for b in inn.batting_stats):
                problems.append(f"innings {number} score {inn.score} != batting runs + extras")
            if inn.wickets > self.max_wickets:
                problems.append(f"innings {number} wickets={inn.wickets} > {self.max_wickets}")
        if problems:
            logger.error(f"Match {self.match_id} integrity defects: {problems}")
        return problems


class Player(BaseModel):
    """Roster entry from the team lookup."""

    id: str
    name: str
    role: str = "Batsman"
    team_id: Optional[str] = None


# =========================================================================== #
#  Operation inputs / outputs
# =========================================================================== #


class DeliveryParams(BaseModel):
    """Raw facts about one ball, as entered by the operator."""

    runs: int = 0
    is_legal: bool = True
    is_wicket: bool = False
    extra_type: Optional[ExtraType] = None
    wicket_type: Optional[WicketType] = None
    run_type: Optional[RunType] = None

    @property
    def outcome(self) -> BallOutcome:
        return BallOutcome.classify(self.extra_type, self.run_type)


class RunsBreakdown(BaseModel):
    total_runs: int = 0
    batsman_runs: int = 0
    extra_runs: int = 0
    penalty_runs: int = 0


class DeliveryResult(BaseModel):
    """Output of the delivery processor for a single ball."""

    match: Match
    is_over_complete: bool = False
    is_wicket_fallen: bool = False
    is_innings_over: bool = False
    runs_breakdown: RunsBreakdown = Field(default_factory=RunsBreakdown)
    outcome: BallOutcome = BallOutcome.NORMAL

    def flags(self) -> dict:
        return {
            "isOverComplete": self.is_over_complete,
            "isWicketFallen": self.is_wicket_fallen,
            "isInningsOver": self.is_innings_over,
        }


# =========================================================================== #
#  HTTP request bodies
# =========================================================================== #


class TeamCreate(BaseModel):
    name: str
    event_id: Optional[str] = None


class PlayerCreate(BaseModel):
    name: str
    role: str = "Batsman"


class MatchCreate(BaseModel):
    team_a_id: str
    team_b_id: str
    event_id: Optional[str] = None
    rules: Optional[MatchRules] = None


class TossRequest(BaseModel):
    winning_team_id: str
    decision: TossDecision


class OpenersRequest(BaseModel):
    striker_id: str
    non_striker_id: str
    bowler_id: str


class DeliveryRequest(DeliveryParams):
    pass


class DismissalRequest(BaseModel):
    wicket_type: WicketType
    batsman_id: str
    fielder_id: Optional[str] = None
    completed_runs: int = 0


class PlayerSelection(BaseModel):
    player_id: str
