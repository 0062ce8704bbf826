"""
Display bindings: map tennis scoreboard components onto dotted paths of
the snapshot dict (e.g. "score.player1Points", "sets.set2.player1").
"""
from enum import Enum
from typing import Any, Dict, Mapping, Union

from tennis_scoring.models import MatchSnapshot


class ComponentType(Enum):
    TENNIS_PLAYER_NAME = "tennis_player_name"
    TENNIS_GAME_SCORE = "tennis_game_score"
    TENNIS_SET_SCORE = "tennis_set_score"
    TENNIS_MATCH_SCORE = "tennis_match_score"
    TENNIS_DETAILED_SET_SCORE = "tennis_detailed_set_score"
    TENNIS_SERVING_INDICATOR = "tennis_serving_indicator"


# Served to bindings while no match exists
DEFAULT_LIVE_DATA: Dict[str, Any] = {
    "matchId": "manual_no_match",
    "player1": {"name": "Player 1"},
    "player2": {"name": "Player 2"},
    "score": {
        "player1Sets": 0,
        "player2Sets": 0,
        "player1Games": 0,
        "player2Games": 0,
        "player1Points": "0",
        "player2Points": "0",
    },
    "sets": {},
    "matchStatus": "not_started",
    "servingPlayer": 1,
    "currentSet": 1,
    "isTiebreak": False,
}


def data_path_for(
    component_type: Union[str, ComponentType],
    player: int = 1,
    set_number: int = 1,
) -> str:
    component_type = ComponentType(component_type)

    if player not in (1, 2):
        raise ValueError(f"Invalid player: {player!r}")

    if component_type is ComponentType.TENNIS_PLAYER_NAME:
        return f"player{player}.name"
    if component_type is ComponentType.TENNIS_GAME_SCORE:
        return f"score.player{player}Points"
    if component_type is ComponentType.TENNIS_SET_SCORE:
        return f"score.player{player}Games"
    if component_type is ComponentType.TENNIS_MATCH_SCORE:
        return f"score.player{player}Sets"
    if component_type is ComponentType.TENNIS_DETAILED_SET_SCORE:
        return f"sets.set{set_number}.player{player}"
    return "servingPlayer"


def get_value_from_path(data: Union[MatchSnapshot, Mapping[str, Any], None], path: str) -> Any:
    """
    Resolve a dotted path; any missing segment yields None.
    """
    if isinstance(data, MatchSnapshot):
        data = data.to_dict()

    current: Any = data
    for key in path.split("."):
        if not isinstance(current, Mapping) or key not in current:
            return None
        current = current[key]

    return current


def resolve_bindings(
    snapshot: Union[MatchSnapshot, None],
    bindings: Mapping[str, str],
) -> Dict[str, Any]:
    """
    component id -> current value, for every {component id: data path}.
    """
    data = snapshot.to_dict() if snapshot is not None else DEFAULT_LIVE_DATA
    return {
        component_id: get_value_from_path(data, path)
        for component_id, path in bindings.items()
    }
