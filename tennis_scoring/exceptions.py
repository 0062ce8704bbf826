class ScoringError(Exception):
    pass


class InvalidPlayerError(ScoringError, ValueError):
    pass


class InvalidScoreError(ScoringError, ValueError):
    pass


class InvariantViolationError(ScoringError):
    """
    Internal-consistency fault: the match state broke a scoring invariant.
    Not reachable through the public command surface.
    """
