from typing import Iterable, List, Union

from tennis_scoring import config
from tennis_scoring.engine import MatchScoringEngine
from tennis_scoring.models import MatchFormat, MatchSnapshot


def build_match_timeline(
    winner_sequence: Iterable[int],
    match_format: Union[str, MatchFormat] = config.DEFAULT_MATCH_FORMAT,
    player1: str = "Player 1",
    player2: str = "Player 2",
) -> List[MatchSnapshot]:
    """
    Replays a match from scratch using winner_sequence (player ids 1/2).
    Returns the snapshot after each point.
    Does NOT mutate external state.
    """

    engine = MatchScoringEngine()
    engine.create_new_match(player1, player2, match_format)
    engine.start_match()

    timeline: List[MatchSnapshot] = []

    for winner in winner_sequence:

        snapshot = engine.add_point(winner)
        timeline.append(snapshot)

        if snapshot.is_finished:
            break

    return timeline
