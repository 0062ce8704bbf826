import logging
import threading
from collections import deque
from copy import deepcopy
from datetime import datetime
from typing import Any, Callable, Deque, Dict, List, Optional

from tennis_scoring import config
from tennis_scoring.engine import MatchScoringEngine, utcnow
from tennis_scoring.models import MatchSnapshot

logger = logging.getLogger(__name__)

Subscriber = Callable[[MatchSnapshot], None]

COMMANDS = frozenset({
    "create_new_match",
    "update_player_info",
    "start_match",
    "end_match",
    "reset_match",
    "add_point",
    "remove_point",
    "add_game",
    "remove_game",
    "set_serve",
    "start_new_set",
    "set_game_score",
    "set_point_score",
    "set_set_score",
    "start_tiebreak",
    "end_tiebreak",
    "add_tiebreak_point",
    "remove_tiebreak_point",
})


class MatchSession:
    """
    Single live match session.

    Responsibilities:
    - Own one MatchScoringEngine instance
    - Serialize commands coming from several writers
    - Notify subscribers ("score changed") after every state change,
      in commit order
    - Store the command log and the most recent snapshots
    - Bulk replay recorded commands (atomic)

    Subscribers run while the session lock is held. They may issue
    further commands from the same thread but must not wait on another
    thread that writes to this session.

    The snapshot timeline keeps the last timeline_limit entries. The
    command log is kept whole so it can be replayed; call reset() to
    release it.
    """

    def __init__(
        self,
        clock: Callable[[], datetime] = utcnow,
        timeline_limit: int = config.SESSION_TIMELINE_LIMIT,
    ):
        if timeline_limit <= 0:
            raise ValueError("timeline_limit must be positive")

        self._clock = clock
        self._timeline_limit = timeline_limit
        self._engine = MatchScoringEngine(clock=clock)
        self._lock = threading.RLock()
        self._subscribers: List[Subscriber] = []
        self._timeline: Deque[MatchSnapshot] = deque(maxlen=timeline_limit)
        self._commands: List[Dict[str, Any]] = []

    # ---------------------------------------------------------
    # Core API
    # ---------------------------------------------------------

    def execute(self, command: str, *args, **kwargs) -> Optional[MatchSnapshot]:
        """
        Run one engine command and record it.
        Subscribers are notified only when the snapshot changed.
        """
        if command not in COMMANDS:
            raise ValueError(f"Unknown command: {command}")

        with self._lock:
            before = self._engine.get_current_data()
            snapshot = getattr(self._engine, command)(*args, **kwargs)

            self._commands.append({
                "command": command,
                "args": list(args),
                "kwargs": dict(kwargs),
            })
            if snapshot is not None:
                self._timeline.append(snapshot)

            if snapshot is not None and snapshot != before:
                self._notify(snapshot)

        return snapshot

    def replay(self, commands: List[Dict[str, Any]]) -> List[MatchSnapshot]:
        """
        Bulk apply recorded commands on a fresh engine.
        Atomic: if any command fails -> no state mutation.
        """
        if not isinstance(commands, list):
            raise ValueError("commands must be a list")

        # Validation stage
        parsed = []
        for c in commands:
            if not isinstance(c, dict) or c.get("command") not in COMMANDS:
                raise ValueError(f"invalid command entry: {c!r}")

            parsed.append({
                "command": c["command"],
                "args": list(c.get("args", [])),
                "kwargs": dict(c.get("kwargs", {})),
            })

        temp_engine = MatchScoringEngine(clock=self._clock)
        temp_timeline: Deque[MatchSnapshot] = deque(maxlen=self._timeline_limit)

        for c in parsed:
            snapshot = getattr(temp_engine, c["command"])(*c["args"], **c["kwargs"])
            if snapshot is not None:
                temp_timeline.append(snapshot)

        # If everything succeeds -> commit
        with self._lock:
            self._engine = temp_engine
            self._timeline = temp_timeline
            self._commands = parsed
            final = temp_engine.get_current_data()

            logger.info("Replayed %d commands", len(parsed))

            if final is not None:
                self._notify(final)

        return deepcopy(list(temp_timeline))

    # ---------------------------------------------------------
    # Subscriptions
    # ---------------------------------------------------------

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe():
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def _notify(self, snapshot: MatchSnapshot):
        # Caller holds the lock
        for callback in list(self._subscribers):
            try:
                callback(snapshot)
            except Exception:
                logger.exception("Score subscriber %r failed", callback)

    # ---------------------------------------------------------
    # Queries
    # ---------------------------------------------------------

    @property
    def engine(self) -> MatchScoringEngine:
        return self._engine

    def get_snapshot(self) -> MatchSnapshot:
        snapshot = self._engine.get_current_data()
        if snapshot is None:
            raise RuntimeError("No match created")

        return snapshot

    def get_timeline(self) -> List[MatchSnapshot]:
        with self._lock:
            return deepcopy(list(self._timeline))

    def export_commands(self) -> List[Dict[str, Any]]:
        with self._lock:
            return deepcopy(self._commands)

    def reset(self):
        with self._lock:
            self._engine = MatchScoringEngine(clock=self._clock)
            self._timeline = deque(maxlen=self._timeline_limit)
            self._commands = []
