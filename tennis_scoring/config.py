import logging
import os

DEFAULT_MATCH_FORMAT = "best-of-3"

GAMES_PER_SET = 6
MIN_GAME_LEAD = 2

TIEBREAK_POINTS = 7
MIN_TIEBREAK_LEAD = 2

MATCH_ID_PREFIX = "manual_"

# Snapshots kept per session; the command log is kept whole for replay
SESSION_TIMELINE_LIMIT = 1000

LOG_LEVEL = os.environ.get("TENNIS_SCORING_LOG_LEVEL", "INFO")
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = LOG_LEVEL):
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
