"""
Domain errors raised by the progression engine.

State divergence (turn sync errors, bracket mismatches) is never raised;
it is reported as data on the computed state or health report.
"""


class InvalidTeamCount(ValueError):
    """Raised when a bracket is requested for fewer than 2 teams"""

    pass


class BracketError(Exception):
    """Raised when a bracket cannot be generated from the given teams"""

    pass


class AdvancementConflict(Exception):
    """Raised when the advancement target slot already holds a different team"""

    def __init__(self, message: str, match_id: int = None, slot: str = None):
        super().__init__(message)
        self.match_id = match_id
        self.slot = slot


class NotYourTurn(Exception):
    """Raised when a veto action is submitted out of turn.

    Always recoverable: discard speculative state and re-fetch.
    """

    pass


class PositionTaken(NotYourTurn):
    """Raised when the sequence position is already filled (lost race or stale client)"""

    pass


class MapUnavailable(Exception):
    """Raised when a map is not in the pool or was already banned/picked"""

    pass


class VetoSessionError(Exception):
    """Raised on veto session lifecycle violations"""

    pass


class InvalidMapPool(ValueError):
    """Raised when a tournament's map pool cannot be used for a veto"""

    pass
