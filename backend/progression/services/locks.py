"""
Per-tournament serialization of bracket repair against live score submission.

In-process only: one worker owns a tournament's write path. Acquisition
never blocks; a busy tournament is reported to the caller immediately.
Only held tournaments have an entry, so the registry stays bounded.
"""

import threading
from contextlib import contextmanager
from typing import Dict, Iterator


class TournamentLocked(Exception):
    """Raised when another bracket write for the tournament is in flight"""

    def __init__(self, tournament_id: int, holder: str):
        super().__init__(f"Tournament {tournament_id} is locked by {holder}")
        self.tournament_id = tournament_id
        self.holder = holder


_registry_lock = threading.Lock()
_holders: Dict[int, str] = {}


@contextmanager
def tournament_guard(tournament_id: int, purpose: str) -> Iterator[None]:
    """Hold the tournament's write lock for *purpose* ("repair", "score")."""
    with _registry_lock:
        holder = _holders.get(tournament_id)
        if holder is not None:
            raise TournamentLocked(tournament_id, holder)
        _holders[tournament_id] = purpose
    try:
        yield
    finally:
        with _registry_lock:
            _holders.pop(tournament_id, None)
