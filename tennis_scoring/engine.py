import logging
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional, Union

from tennis_scoring import config
from tennis_scoring.exceptions import (
    InvalidPlayerError,
    InvalidScoreError,
    InvariantViolationError,
)
from tennis_scoring.models import (
    REGULAR_POINTS,
    Match,
    MatchFormat,
    MatchSnapshot,
    MatchStatus,
    Player,
    PlayerId,
    PointValue,
    Score,
    SetRecord,
    TiebreakScore,
)

logger = logging.getLogger(__name__)

PlayerArg = Union[int, PlayerId]
PlayerInfo = Union[Player, str, Mapping[str, Any]]

PLAYER_FIELDS = frozenset({"name", "country", "seed"})

# Opponent points against which a player at Forty wins the game outright
_BELOW_FORTY = frozenset(REGULAR_POINTS[:-1])


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MatchScoringEngine:
    """
    Tennis match scoring state machine.

    Responsibilities:
    - Own the single authoritative Match
    - Apply commands as total, invariant-preserving transitions
    - Handle point, game, tiebreak, set & match lifecycle
    - Produce a read-only MatchSnapshot after every command

    Commands whose preconditions fail are silent no-ops and return the
    unchanged snapshot. Every command returns None while no match exists.
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self._clock = clock
        self.match: Optional[Match] = None

    # =========================================================
    # LIFECYCLE
    # =========================================================

    def create_new_match(
        self,
        player1: PlayerInfo,
        player2: PlayerInfo,
        match_format: Union[str, MatchFormat] = config.DEFAULT_MATCH_FORMAT,
        tournament: Optional[str] = None,
        round_name: Optional[str] = None,
    ) -> MatchSnapshot:
        match_format = MatchFormat(match_format)
        now = self._clock()

        self.match = Match(
            id=f"{config.MATCH_ID_PREFIX}{uuid.uuid4().hex[:12]}",
            player1=self._coerce_player(player1),
            player2=self._coerce_player(player2),
            match_format=match_format,
            created_at=now,
            updated_at=now,
            tournament=tournament,
            round=round_name,
        )

        logger.info(
            "Created match %s: %s vs %s (%s)",
            self.match.id,
            self.match.player1.name,
            self.match.player2.name,
            match_format.value,
        )
        return self.get_current_data()

    def update_player_info(self, player: PlayerArg, **fields) -> Optional[MatchSnapshot]:
        player = self._validate_player(player)

        unknown = set(fields) - PLAYER_FIELDS
        if unknown:
            raise ValueError(f"Unknown player field(s): {sorted(unknown)}")

        if self.match is None:
            return None

        updated = replace(self.match.player(player), **fields)
        if player is PlayerId.P1:
            return self._commit(player1=updated)
        return self._commit(player2=updated)

    def start_match(self) -> Optional[MatchSnapshot]:
        if self.match is None:
            return None

        if self.match.status is not MatchStatus.NOT_STARTED:
            return self._reject("start_match")

        logger.info("Match %s started", self.match.id)
        return self._commit(status=MatchStatus.IN_PROGRESS)

    def end_match(self) -> Optional[MatchSnapshot]:
        if self.match is None:
            return None

        if self.match.status is MatchStatus.COMPLETED:
            return self._reject("end_match")

        logger.info("Match %s ended by operator", self.match.id)
        return self._commit(status=MatchStatus.COMPLETED)

    def reset_match(self) -> Optional[MatchSnapshot]:
        if self.match is None:
            return None

        logger.info("Match %s reset", self.match.id)
        return self._commit(
            score=Score(),
            sets=(),
            current_set_number=1,
            serving_player=PlayerId.P1,
            is_tiebreak=False,
            tiebreak_score=None,
            status=MatchStatus.NOT_STARTED,
        )

    def set_serve(self, player: PlayerArg) -> Optional[MatchSnapshot]:
        player = self._validate_player(player)

        if self.match is None:
            return None

        return self._commit(serving_player=player)

    # =========================================================
    # POINTS
    # =========================================================

    def add_point(self, player: PlayerArg) -> Optional[MatchSnapshot]:
        player = self._validate_player(player)

        if not self._in_progress("add_point"):
            return self.get_current_data()

        if self.match.is_tiebreak:
            return self.add_tiebreak_point(player)

        score = self.match.score
        opponent = player.opponent
        own = score.points(player)
        other = score.points(opponent)

        if own is PointValue.ADVANTAGE:
            return self._complete_game(player)

        if own is PointValue.FORTY and other in _BELOW_FORTY:
            return self._complete_game(player)

        if own is PointValue.DEUCE and other is PointValue.ADVANTAGE:
            new_own, new_other = PointValue.DEUCE, PointValue.DEUCE
        elif own is PointValue.DEUCE and other is PointValue.DEUCE:
            new_own, new_other = PointValue.ADVANTAGE, PointValue.DEUCE
        else:
            new_own, new_other = _next_point(own), other

            # Deuce supersedes a literal 40-40
            if new_own is PointValue.FORTY and new_other is PointValue.FORTY:
                new_own, new_other = PointValue.DEUCE, PointValue.DEUCE

        logger.debug(
            "Point to player %d: %s-%s", player, new_own.value, new_other.value
        )
        return self._commit(
            score=score.with_points(player, new_own).with_points(opponent, new_other)
        )

    def remove_point(self, player: PlayerArg) -> Optional[MatchSnapshot]:
        player = self._validate_player(player)

        if not self._in_progress("remove_point"):
            return self.get_current_data()

        if self.match.is_tiebreak:
            return self.remove_tiebreak_point(player)

        score = self.match.score
        opponent = player.opponent
        own = score.points(player)
        other = score.points(opponent)

        if own is PointValue.ADVANTAGE:
            new_own, new_other = PointValue.DEUCE, PointValue.DEUCE
        elif own is PointValue.DEUCE and other is PointValue.ADVANTAGE:
            new_own, new_other = PointValue.DEUCE, PointValue.DEUCE
        elif own is PointValue.DEUCE and other is PointValue.DEUCE:
            new_own, new_other = PointValue.FORTY, PointValue.FORTY
        else:
            new_own, new_other = _previous_point(own), other

        return self._commit(
            score=score.with_points(player, new_own).with_points(opponent, new_other)
        )

    # =========================================================
    # GAMES & SETS
    # =========================================================

    def add_game(self, player: PlayerArg) -> Optional[MatchSnapshot]:
        """
        Award a game directly. An open tiebreak stays open unless the game
        closes the set; its score is then kept on the set record.
        """
        player = self._validate_player(player)

        if not self._in_progress("add_game"):
            return self.get_current_data()

        tiebreak = self.match.tiebreak_score if self.match.is_tiebreak else None
        return self._complete_game(player, tiebreak=tiebreak)

    def remove_game(self, player: PlayerArg) -> Optional[MatchSnapshot]:
        """
        Manual correction: one game less, floored at 0.
        Does not undo a set, tiebreak or match transition.
        """
        player = self._validate_player(player)

        if not self._in_progress("remove_game"):
            return self.get_current_data()

        score = self.match.score
        games = score.games(player)
        if games <= 0:
            return self.get_current_data()

        return self._commit(score=score.with_games(player, games - 1))

    def start_new_set(self) -> Optional[MatchSnapshot]:
        if not self._in_progress("start_new_set"):
            return self.get_current_data()

        logger.info("Set %d opened manually", self.match.current_set_number + 1)
        return self._commit(
            score=self.match.score.with_games_reset().with_points_reset(),
            current_set_number=self.match.current_set_number + 1,
            is_tiebreak=False,
            tiebreak_score=None,
        )

    # =========================================================
    # TIEBREAK
    # =========================================================

    def start_tiebreak(self) -> Optional[MatchSnapshot]:
        if not self._in_progress("start_tiebreak"):
            return self.get_current_data()

        logger.info("Tiebreak started manually in set %d", self.match.current_set_number)
        return self._commit(
            score=self.match.score.with_points_reset(),
            is_tiebreak=True,
            tiebreak_score=TiebreakScore(),
        )

    def end_tiebreak(self) -> Optional[MatchSnapshot]:
        if not self._in_progress("end_tiebreak"):
            return self.get_current_data()

        return self._commit(is_tiebreak=False, tiebreak_score=None)

    def add_tiebreak_point(self, player: PlayerArg) -> Optional[MatchSnapshot]:
        player = self._validate_player(player)

        if not self._in_progress("add_tiebreak_point"):
            return self.get_current_data()

        tiebreak = self.match.tiebreak_score
        if not self.match.is_tiebreak or tiebreak is None:
            return self._reject("add_tiebreak_point")

        won = tiebreak.points(player) + 1
        lost = tiebreak.points(player.opponent)
        tiebreak = tiebreak.with_points(player, won)

        if won >= config.TIEBREAK_POINTS and won - lost >= config.MIN_TIEBREAK_LEAD:
            logger.info("Player %d won the tiebreak %d-%d", player, won, lost)
            return self._complete_game(player, tiebreak=tiebreak, end_tiebreak=True)

        return self._commit(tiebreak_score=tiebreak)

    def remove_tiebreak_point(self, player: PlayerArg) -> Optional[MatchSnapshot]:
        player = self._validate_player(player)

        if not self._in_progress("remove_tiebreak_point"):
            return self.get_current_data()

        tiebreak = self.match.tiebreak_score
        if tiebreak is None:
            return self._reject("remove_tiebreak_point")

        points = max(0, tiebreak.points(player) - 1)
        return self._commit(tiebreak_score=tiebreak.with_points(player, points))

    # =========================================================
    # DIRECT OVERRIDES
    # =========================================================

    def set_game_score(self, player1_games: int, player2_games: int) -> Optional[MatchSnapshot]:
        if not self._in_progress("set_game_score"):
            return self.get_current_data()

        return self._commit(
            score=replace(
                self.match.score,
                player1_games=max(0, int(player1_games)),
                player2_games=max(0, int(player2_games)),
            )
        )

    def set_point_score(
        self,
        player1_points: Union[str, PointValue],
        player2_points: Union[str, PointValue],
    ) -> Optional[MatchSnapshot]:
        p1 = _parse_point(player1_points)
        p2 = _parse_point(player2_points)

        if not _points_consistent(p1, p2):
            raise InvalidScoreError(
                f"Inconsistent point score: {p1.value}-{p2.value}"
            )

        if p1 is PointValue.FORTY and p2 is PointValue.FORTY:
            p1, p2 = PointValue.DEUCE, PointValue.DEUCE

        if not self._in_progress("set_point_score"):
            return self.get_current_data()

        return self._commit(
            score=replace(self.match.score, player1_points=p1, player2_points=p2)
        )

    def set_set_score(self, player1_sets: int, player2_sets: int) -> Optional[MatchSnapshot]:
        if not self._in_progress("set_set_score"):
            return self.get_current_data()

        return self._commit(
            score=replace(
                self.match.score,
                player1_sets=max(0, int(player1_sets)),
                player2_sets=max(0, int(player2_sets)),
            )
        )

    # =========================================================
    # SNAPSHOT
    # =========================================================

    def get_current_data(self) -> Optional[MatchSnapshot]:
        if self.match is None:
            return None
        return MatchSnapshot.from_match(self.match)

    # =========================================================
    # GAME / SET / MATCH COMPLETION
    # =========================================================

    def _complete_game(
        self,
        winner: PlayerId,
        tiebreak: Optional[TiebreakScore] = None,
        end_tiebreak: bool = False,
    ) -> MatchSnapshot:
        """
        Award a game. tiebreak is the score written to the set record if
        this game closes the set; end_tiebreak clears tiebreak state
        afterwards (the game was won through a tiebreak).
        """
        match = self.match
        loser = winner.opponent

        score = match.score.with_points_reset()
        score = score.with_games(winner, score.games(winner) + 1)

        won = score.games(winner)
        lost = score.games(loser)

        if _is_set_won(won, lost):
            return self._complete_set(winner, score, tiebreak)

        if won == config.GAMES_PER_SET and lost == config.GAMES_PER_SET:
            if end_tiebreak:
                # Manual tiebreak won from 5-6: games level, no new tiebreak
                return self._commit(
                    score=score, is_tiebreak=False, tiebreak_score=None
                )

            logger.info(
                "Set %d level at %d-%d, tiebreak",
                match.current_set_number, won, lost,
            )
            return self._commit(
                score=score,
                is_tiebreak=True,
                tiebreak_score=TiebreakScore(),
            )

        changes = {
            "score": score,
            "serving_player": match.serving_player.opponent,
        }
        if end_tiebreak:
            changes["is_tiebreak"] = False
            changes["tiebreak_score"] = None

        return self._commit(**changes)

    def _complete_set(
        self, winner: PlayerId, score: Score, tiebreak: Optional[TiebreakScore]
    ) -> MatchSnapshot:
        match = self.match

        record = SetRecord(
            set_number=match.current_set_number,
            player1=score.player1_games,
            player2=score.player2_games,
            tiebreak=tiebreak,
        )

        score = score.with_sets(winner, score.sets(winner) + 1).with_games_reset()

        logger.info(
            "Player %d won set %d (%d-%d)",
            winner, record.set_number, record.player1, record.player2,
        )

        changes = {
            "score": score,
            "sets": match.sets + (record,),
            "current_set_number": match.current_set_number + 1,
            "is_tiebreak": False,
            "tiebreak_score": None,
        }

        if score.sets(winner) >= match.match_format.sets_to_win:
            logger.info(
                "Player %d won match %s (%d-%d sets)",
                winner, match.id, score.player1_sets, score.player2_sets,
            )
            changes["status"] = MatchStatus.COMPLETED

        return self._commit(**changes)

    # =========================================================
    # STATE TRANSITION
    # =========================================================

    def _commit(self, **changes) -> MatchSnapshot:
        """
        Swap in the next Match in one assignment, after checking it.
        """
        candidate = replace(self.match, updated_at=self._clock(), **changes)
        self._check_invariants(candidate)
        self.match = candidate
        return self.get_current_data()

    def _check_invariants(self, match: Match):
        score = match.score

        if not _points_consistent(score.player1_points, score.player2_points):
            raise InvariantViolationError(
                f"Inconsistent points {score.player1_points.value}-"
                f"{score.player2_points.value}"
            )

        if match.is_tiebreak != (match.tiebreak_score is not None):
            raise InvariantViolationError("tiebreak_score must exist iff is_tiebreak")

        if match.tiebreak_score is not None and (
            match.tiebreak_score.player1 < 0 or match.tiebreak_score.player2 < 0
        ):
            raise InvariantViolationError("Negative tiebreak score")

        counts = (
            score.player1_sets, score.player2_sets,
            score.player1_games, score.player2_games,
        )
        if any(c < 0 for c in counts):
            raise InvariantViolationError("Negative set or game count")

        if any(s.set_number >= match.current_set_number for s in match.sets):
            raise InvariantViolationError("Set record written for an open set")

    # =========================================================
    # VALIDATION
    # =========================================================

    def _in_progress(self, command: str) -> bool:
        if self.match is None:
            logger.debug("Ignoring %s: no match", command)
            return False

        if self.match.status is not MatchStatus.IN_PROGRESS:
            logger.debug("Ignoring %s: match is %s", command, self.match.status.value)
            return False

        return True

    def _reject(self, command: str) -> MatchSnapshot:
        logger.debug("Ignoring %s: precondition not met", command)
        return self.get_current_data()

    @staticmethod
    def _validate_player(player: PlayerArg) -> PlayerId:
        if isinstance(player, bool):
            raise InvalidPlayerError(f"Invalid player: {player!r}")
        try:
            return PlayerId(player)
        except ValueError:
            raise InvalidPlayerError(f"Invalid player: {player!r}") from None

    @staticmethod
    def _coerce_player(player: PlayerInfo) -> Player:
        if isinstance(player, Player):
            return player
        if isinstance(player, str):
            return Player(name=player)
        if isinstance(player, Mapping):
            unknown = set(player) - PLAYER_FIELDS
            if unknown or "name" not in player:
                raise ValueError(f"Invalid player info: {dict(player)}")
            return Player(**player)
        raise ValueError(f"Invalid player info: {player!r}")


# =========================================================
# POINT HELPERS
# =========================================================

def _next_point(point: PointValue) -> PointValue:
    if not point.is_regular:
        raise InvariantViolationError(f"No regular successor for {point.value}")
    index = REGULAR_POINTS.index(point)
    return REGULAR_POINTS[min(index + 1, len(REGULAR_POINTS) - 1)]


def _previous_point(point: PointValue) -> PointValue:
    if not point.is_regular:
        raise InvariantViolationError(f"No regular predecessor for {point.value}")
    index = REGULAR_POINTS.index(point)
    return REGULAR_POINTS[max(index - 1, 0)]


def _parse_point(value: Union[str, PointValue]) -> PointValue:
    try:
        return PointValue(value)
    except ValueError:
        raise InvalidScoreError(f"Invalid point value: {value!r}") from None


def _points_consistent(p1: PointValue, p2: PointValue) -> bool:
    """
    Either both points are regular, or the pair is D-D, A-D or D-A.
    """
    if p1.is_regular and p2.is_regular:
        return True
    return (p1, p2) in (
        (PointValue.DEUCE, PointValue.DEUCE),
        (PointValue.ADVANTAGE, PointValue.DEUCE),
        (PointValue.DEUCE, PointValue.ADVANTAGE),
    )


def _is_set_won(won: int, lost: int) -> bool:
    if won >= config.GAMES_PER_SET and won - lost >= config.MIN_GAME_LEAD:
        return True
    # Tiebreak-derived 7-6
    return won == config.GAMES_PER_SET + 1 and lost == config.GAMES_PER_SET
