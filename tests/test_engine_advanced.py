import random
from dataclasses import FrozenInstanceError, replace
from datetime import datetime, timedelta, timezone

import pytest

from tennis_scoring.engine import MatchScoringEngine
from tennis_scoring.exceptions import InvalidScoreError, InvariantViolationError
from tennis_scoring.models import (
    MatchFormat,
    MatchStatus,
    Player,
    PlayerId,
    PointValue,
    Score,
    TiebreakScore,
)


# ---------------------------------------------------------
# Helpers
# ---------------------------------------------------------

class FakeClock:

    def __init__(self):
        self.now = datetime(2026, 1, 1, tzinfo=timezone.utc)

    def __call__(self):
        self.now += timedelta(seconds=1)
        return self.now


def create_engine(match_format="best-of-3", clock=None):
    engine = MatchScoringEngine(clock=clock) if clock else MatchScoringEngine()
    engine.create_new_match(
        Player("Alice", country="FRA", seed=1),
        {"name": "Bob", "country": "USA"},
        match_format,
    )
    engine.start_match()
    return engine


def win_game(engine, player):
    for _ in range(4):
        engine.add_point(player)


def assert_invariants(match):
    score = match.score
    p1, p2 = score.player1_points, score.player2_points

    if PointValue.DEUCE in (p1, p2) or PointValue.ADVANTAGE in (p1, p2):
        assert (p1, p2) in (
            (PointValue.DEUCE, PointValue.DEUCE),
            (PointValue.ADVANTAGE, PointValue.DEUCE),
            (PointValue.DEUCE, PointValue.ADVANTAGE),
        )

    assert match.is_tiebreak == (match.tiebreak_score is not None)
    if match.is_tiebreak:
        assert score.player1_games == 6 and score.player2_games == 6

    assert score.player1_sets == sum(1 for s in match.sets if s.winner is PlayerId.P1)
    assert score.player2_sets == sum(1 for s in match.sets if s.winner is PlayerId.P2)
    assert [s.set_number for s in match.sets] == list(range(1, len(match.sets) + 1))


# ---------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------

def test_new_match_is_not_started():
    engine = MatchScoringEngine()

    snapshot = engine.create_new_match("Alice", "Bob")

    assert snapshot.status is MatchStatus.NOT_STARTED
    assert snapshot.match_format is MatchFormat.BEST_OF_3
    assert snapshot.score == Score()
    assert snapshot.current_set == 1
    assert snapshot.match_id.startswith("manual_")


def test_match_metadata():
    engine = MatchScoringEngine()

    snapshot = engine.create_new_match(
        "Alice", "Bob", tournament="City Open", round_name="Final"
    )

    assert snapshot.tournament == "City Open"
    assert snapshot.round == "Final"
    assert snapshot.to_dict()["round"] == "Final"


def test_commands_without_match_return_none():
    engine = MatchScoringEngine()

    assert engine.get_current_data() is None
    assert engine.start_match() is None
    assert engine.add_point(1) is None
    assert engine.reset_match() is None


def test_scoring_before_start_is_noop():
    engine = MatchScoringEngine()
    before = engine.create_new_match("Alice", "Bob")

    assert engine.add_point(1) == before
    assert engine.add_game(2) == before
    assert engine.start_tiebreak() == before


def test_invalid_match_format():
    engine = MatchScoringEngine()

    with pytest.raises(ValueError):
        engine.create_new_match("Alice", "Bob", "best-of-4")


def test_status_only_moves_forward():
    engine = create_engine()

    engine.end_match()
    assert engine.match.status is MatchStatus.COMPLETED

    before = engine.get_current_data()
    assert engine.start_match() == before
    assert engine.end_match() == before


def test_reset_preserves_players():
    engine = create_engine()
    for _ in range(7):
        win_game(engine, 1)
    engine.add_point(2)

    snapshot = engine.reset_match()

    assert snapshot.score == Score()
    assert snapshot.sets == ()
    assert snapshot.status is MatchStatus.NOT_STARTED
    assert snapshot.current_set == 1
    assert snapshot.is_tiebreak is False
    assert snapshot.player1.name == "Alice"
    assert snapshot.player2 == Player("Bob", country="USA")


def test_reset_after_completion_allows_restart():
    engine = create_engine()
    engine.end_match()

    engine.reset_match()
    engine.start_match()
    engine.add_point(1)

    assert engine.match.status is MatchStatus.IN_PROGRESS
    assert engine.match.score.player1_points is PointValue.FIFTEEN


def test_update_player_info():
    engine = create_engine()

    snapshot = engine.update_player_info(2, name="Robert", seed=4)

    assert snapshot.player2 == Player("Robert", country="USA", seed=4)
    assert snapshot.player1.name == "Alice"


def test_update_player_info_unknown_field():
    engine = create_engine()

    with pytest.raises(ValueError):
        engine.update_player_info(1, ranking=3)


# ---------------------------------------------------------
# Timestamps
# ---------------------------------------------------------

def test_updated_at_moves_on_mutation_only():
    clock = FakeClock()
    engine = create_engine(clock=clock)

    first = engine.get_current_data().updated_at
    engine.add_point(1)
    second = engine.get_current_data().updated_at
    assert second > first

    engine.remove_game(1)  # already 0 games
    assert engine.get_current_data().updated_at == second

    assert engine.get_current_data().created_at < second


# ---------------------------------------------------------
# Direct overrides
# ---------------------------------------------------------

def test_set_game_score_clamps_and_skips_completion():
    engine = create_engine()

    snapshot = engine.set_game_score(-2, 6)

    assert snapshot.score.player1_games == 0
    assert snapshot.score.player2_games == 6
    assert snapshot.sets == ()
    assert snapshot.score.player2_sets == 0


def test_set_set_score_clamps_and_skips_completion():
    engine = create_engine()

    snapshot = engine.set_set_score(2, -1)

    assert snapshot.score.player1_sets == 2
    assert snapshot.score.player2_sets == 0
    assert snapshot.status is MatchStatus.IN_PROGRESS


def test_set_point_score_accepts_labels_and_enums():
    engine = create_engine()

    snapshot = engine.set_point_score(PointValue.ADVANTAGE, "D")

    assert snapshot.score.player1_points is PointValue.ADVANTAGE
    assert snapshot.score.player2_points is PointValue.DEUCE


@pytest.mark.parametrize("p1, p2", [
    ("A", "40"),
    ("A", "A"),
    ("D", "15"),
    ("X", "0"),
])
def test_set_point_score_rejects_invalid(p1, p2):
    engine = create_engine()

    with pytest.raises(InvalidScoreError):
        engine.set_point_score(p1, p2)

    assert engine.match.score == Score()


def test_game_override_then_scoring_reevaluates():
    engine = create_engine()
    engine.set_game_score(5, 3)

    win_game(engine, 1)

    assert engine.match.sets[0].player1 == 6
    assert engine.match.sets[0].player2 == 3


# ---------------------------------------------------------
# Corrections
# ---------------------------------------------------------

def test_remove_game_floors_at_zero():
    engine = create_engine()
    win_game(engine, 2)

    engine.remove_game(2)
    engine.remove_game(2)

    assert engine.match.score.player2_games == 0


def test_remove_game_does_not_undo_tiebreak():
    engine = create_engine()
    engine.set_game_score(6, 5)
    win_game(engine, 2)
    assert engine.match.is_tiebreak is True

    engine.remove_game(2)

    assert engine.match.score.player2_games == 5
    assert engine.match.is_tiebreak is True


def test_remove_tiebreak_point_floors_at_zero():
    engine = create_engine()
    engine.start_tiebreak()
    engine.add_tiebreak_point(1)

    engine.remove_tiebreak_point(1)
    engine.remove_tiebreak_point(1)

    assert engine.match.tiebreak_score == TiebreakScore(0, 0)


def test_tiebreak_point_outside_tiebreak_is_noop():
    engine = create_engine()
    before = engine.get_current_data()

    assert engine.add_tiebreak_point(1) == before
    assert engine.remove_tiebreak_point(1) == before


def test_manual_tiebreak_does_not_touch_games():
    engine = create_engine()
    engine.set_game_score(3, 2)
    engine.set_point_score("30", "15")

    engine.start_tiebreak()

    assert engine.match.is_tiebreak is True
    assert engine.match.score.player1_games == 3
    assert engine.match.score.player1_points is PointValue.LOVE

    engine.end_tiebreak()

    assert engine.match.is_tiebreak is False
    assert engine.match.tiebreak_score is None
    assert engine.match.score.player1_games == 3


def test_manual_tiebreak_win_awards_game():
    engine = create_engine()
    engine.set_game_score(3, 2)
    engine.start_tiebreak()

    for _ in range(7):
        engine.add_tiebreak_point(1)

    assert engine.match.score.player1_games == 4
    assert engine.match.is_tiebreak is False
    assert engine.match.sets == ()


@pytest.mark.parametrize("games, winner", [
    ((6, 5), 2),
    ((5, 6), 1),
])
def test_manual_tiebreak_won_to_six_all_ends_tiebreak(games, winner):
    engine = create_engine()
    engine.set_game_score(*games)
    engine.start_tiebreak()

    for _ in range(7):
        engine.add_tiebreak_point(winner)

    assert engine.match.score.player1_games == 6
    assert engine.match.score.player2_games == 6
    assert engine.match.is_tiebreak is False
    assert engine.match.tiebreak_score is None
    assert engine.match.sets == ()


def test_manual_tiebreak_won_from_six_five_wins_set():
    engine = create_engine()
    engine.set_game_score(6, 5)
    engine.start_tiebreak()

    for _ in range(7):
        engine.add_tiebreak_point(1)

    record = engine.match.sets[0]
    assert (record.player1, record.player2) == (7, 5)
    assert record.tiebreak == TiebreakScore(7, 0)
    assert engine.match.is_tiebreak is False


def test_add_game_keeps_manual_tiebreak_open():
    engine = create_engine()
    engine.set_game_score(3, 3)
    engine.start_tiebreak()
    engine.add_tiebreak_point(2)

    engine.add_game(1)

    assert engine.match.score.player1_games == 4
    assert engine.match.is_tiebreak is True
    assert engine.match.tiebreak_score == TiebreakScore(0, 1)


def test_add_game_during_tiebreak_wins_set():
    engine = create_engine()
    engine.set_game_score(6, 5)
    win_game(engine, 2)
    engine.add_tiebreak_point(1)

    engine.add_game(1)

    record = engine.match.sets[0]
    assert (record.player1, record.player2) == (7, 6)
    assert record.tiebreak == TiebreakScore(1, 0)


def test_start_new_set():
    engine = create_engine()
    engine.set_game_score(4, 1)
    engine.add_point(1)

    snapshot = engine.start_new_set()

    assert snapshot.current_set == 2
    assert snapshot.score.player1_games == 0
    assert snapshot.score.player1_points is PointValue.LOVE
    assert snapshot.sets == ()


# ---------------------------------------------------------
# Snapshot
# ---------------------------------------------------------

def test_snapshot_is_immutable():
    engine = create_engine()

    snapshot1 = engine.add_point(1)
    engine.add_point(1)

    assert snapshot1.score.player1_points is PointValue.FIFTEEN

    with pytest.raises(FrozenInstanceError):
        snapshot1.current_set = 3


def test_snapshot_dict_shape():
    engine = create_engine()
    for _ in range(6):
        win_game(engine, 1)
    engine.add_point(2)

    data = engine.get_current_data().to_dict()

    assert data["player1"] == {"name": "Alice", "country": "FRA", "seed": 1}
    assert data["score"] == {
        "player1Sets": 1,
        "player2Sets": 0,
        "player1Games": 0,
        "player2Games": 0,
        "player1Points": "0",
        "player2Points": "15",
    }
    assert data["sets"] == {"set1": {"player1": 6, "player2": 0}}
    assert data["matchStatus"] == "in_progress"
    assert data["matchFormat"] == "best-of-3"
    assert data["currentSet"] == 2
    assert data["isTiebreak"] is False
    assert data["tiebreakScore"] is None


def test_snapshot_dict_is_a_copy():
    engine = create_engine()
    snapshot = engine.add_point(1)

    data = snapshot.to_dict()
    data["score"]["player1Points"] = "40"

    assert snapshot.to_dict()["score"]["player1Points"] == "15"


# ---------------------------------------------------------
# Invariants
# ---------------------------------------------------------

def test_detects_corrupted_state():
    engine = create_engine()
    engine.match = replace(
        engine.match,
        score=replace(engine.match.score, player1_points=PointValue.DEUCE),
    )

    with pytest.raises(InvariantViolationError):
        engine.add_point(1)


def test_random_play_keeps_invariants():
    rng = random.Random(7)
    engine = create_engine("best-of-5")

    for _ in range(3000):
        player = rng.choice([1, 2])
        if rng.random() < 0.15:
            engine.remove_point(player)
        else:
            engine.add_point(player)

        assert_invariants(engine.match)


@pytest.mark.parametrize("seed", [1, 2, 3])
def test_random_match_always_finishes(seed):
    rng = random.Random(seed)
    engine = create_engine("best-of-5")

    steps = 0
    while engine.match.status is not MatchStatus.COMPLETED:
        engine.add_point(rng.choice([1, 2]))
        assert_invariants(engine.match)
        steps += 1
        assert steps < 100000

    score = engine.match.score
    assert max(score.player1_sets, score.player2_sets) == 3
