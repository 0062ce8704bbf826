from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum, IntEnum
from typing import Any, Dict, Optional, Tuple


class PlayerId(IntEnum):
    P1 = 1
    P2 = 2

    @property
    def opponent(self) -> "PlayerId":
        return PlayerId.P2 if self is PlayerId.P1 else PlayerId.P1


class PointValue(Enum):
    LOVE = "0"
    FIFTEEN = "15"
    THIRTY = "30"
    FORTY = "40"
    DEUCE = "D"
    ADVANTAGE = "A"

    @property
    def is_regular(self) -> bool:
        return self in REGULAR_POINTS


# Fixed progression before both players reach Forty
REGULAR_POINTS = (
    PointValue.LOVE,
    PointValue.FIFTEEN,
    PointValue.THIRTY,
    PointValue.FORTY,
)


class MatchFormat(Enum):
    BEST_OF_3 = "best-of-3"
    BEST_OF_5 = "best-of-5"

    @property
    def best_of(self) -> int:
        return 3 if self is MatchFormat.BEST_OF_3 else 5

    @property
    def sets_to_win(self) -> int:
        return (self.best_of // 2) + 1


class MatchStatus(Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


# --- VALUE TYPES ---

@dataclass(frozen=True)
class Player:
    name: str
    country: Optional[str] = None
    seed: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "country": self.country, "seed": self.seed}


@dataclass(frozen=True)
class Score:
    player1_sets: int = 0
    player2_sets: int = 0
    player1_games: int = 0
    player2_games: int = 0
    player1_points: PointValue = PointValue.LOVE
    player2_points: PointValue = PointValue.LOVE

    def sets(self, player: PlayerId) -> int:
        return self.player1_sets if player is PlayerId.P1 else self.player2_sets

    def games(self, player: PlayerId) -> int:
        return self.player1_games if player is PlayerId.P1 else self.player2_games

    def points(self, player: PlayerId) -> PointValue:
        return self.player1_points if player is PlayerId.P1 else self.player2_points

    def with_sets(self, player: PlayerId, value: int) -> "Score":
        if player is PlayerId.P1:
            return replace(self, player1_sets=value)
        return replace(self, player2_sets=value)

    def with_games(self, player: PlayerId, value: int) -> "Score":
        if player is PlayerId.P1:
            return replace(self, player1_games=value)
        return replace(self, player2_games=value)

    def with_points(self, player: PlayerId, value: PointValue) -> "Score":
        if player is PlayerId.P1:
            return replace(self, player1_points=value)
        return replace(self, player2_points=value)

    def with_points_reset(self) -> "Score":
        return replace(
            self,
            player1_points=PointValue.LOVE,
            player2_points=PointValue.LOVE,
        )

    def with_games_reset(self) -> "Score":
        return replace(self, player1_games=0, player2_games=0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "player1Sets": self.player1_sets,
            "player2Sets": self.player2_sets,
            "player1Games": self.player1_games,
            "player2Games": self.player2_games,
            "player1Points": self.player1_points.value,
            "player2Points": self.player2_points.value,
        }


@dataclass(frozen=True)
class TiebreakScore:
    player1: int = 0
    player2: int = 0

    def points(self, player: PlayerId) -> int:
        return self.player1 if player is PlayerId.P1 else self.player2

    def with_points(self, player: PlayerId, value: int) -> "TiebreakScore":
        if player is PlayerId.P1:
            return replace(self, player1=value)
        return replace(self, player2=value)

    def to_dict(self) -> Dict[str, int]:
        return {"player1": self.player1, "player2": self.player2}


@dataclass(frozen=True)
class SetRecord:
    set_number: int
    player1: int
    player2: int
    tiebreak: Optional[TiebreakScore] = None

    @property
    def winner(self) -> PlayerId:
        return PlayerId.P1 if self.player1 > self.player2 else PlayerId.P2

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"player1": self.player1, "player2": self.player2}
        if self.tiebreak is not None:
            d["tiebreak"] = self.tiebreak.to_dict()
        return d


# --- MATCH STATE ---

@dataclass
class Match:
    id: str
    player1: Player
    player2: Player
    match_format: MatchFormat
    created_at: datetime
    updated_at: datetime
    score: Score = field(default_factory=Score)
    sets: Tuple[SetRecord, ...] = ()
    current_set_number: int = 1
    serving_player: PlayerId = PlayerId.P1
    is_tiebreak: bool = False
    tiebreak_score: Optional[TiebreakScore] = None
    status: MatchStatus = MatchStatus.NOT_STARTED
    tournament: Optional[str] = None
    round: Optional[str] = None

    def player(self, player: PlayerId) -> Player:
        return self.player1 if player is PlayerId.P1 else self.player2


@dataclass(frozen=True)
class MatchSnapshot:
    """
    Read-only projection of a Match, taken after a command.

    to_dict() gives the camelCase shape addressed by display bindings
    (score.player1Points, player2.name, sets.set1.player1, ...).
    """
    match_id: str
    player1: Player
    player2: Player
    match_format: MatchFormat
    score: Score
    sets: Tuple[SetRecord, ...]
    status: MatchStatus
    serving_player: PlayerId
    current_set: int
    is_tiebreak: bool
    tiebreak_score: Optional[TiebreakScore]
    tournament: Optional[str]
    round: Optional[str]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_match(cls, match: Match) -> "MatchSnapshot":
        return cls(
            match_id=match.id,
            player1=match.player1,
            player2=match.player2,
            match_format=match.match_format,
            score=match.score,
            sets=match.sets,
            status=match.status,
            serving_player=match.serving_player,
            current_set=match.current_set_number,
            is_tiebreak=match.is_tiebreak,
            tiebreak_score=match.tiebreak_score,
            tournament=match.tournament,
            round=match.round,
            created_at=match.created_at,
            updated_at=match.updated_at,
        )

    @property
    def is_finished(self) -> bool:
        return self.status is MatchStatus.COMPLETED

    @property
    def winner(self) -> Optional[PlayerId]:
        if not self.is_finished:
            return None
        if self.score.player1_sets > self.score.player2_sets:
            return PlayerId.P1
        if self.score.player2_sets > self.score.player1_sets:
            return PlayerId.P2
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "matchId": self.match_id,
            "matchFormat": self.match_format.value,
            "matchStatus": self.status.value,
            "servingPlayer": int(self.serving_player),
            "currentSet": self.current_set,
            "player1": self.player1.to_dict(),
            "player2": self.player2.to_dict(),
            "score": self.score.to_dict(),
            "sets": {f"set{s.set_number}": s.to_dict() for s in self.sets},
            "isTiebreak": self.is_tiebreak,
            "tiebreakScore": (
                self.tiebreak_score.to_dict()
                if self.tiebreak_score is not None else None
            ),
            "tournament": self.tournament,
            "round": self.round,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }
