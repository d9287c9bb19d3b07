from progression.models.match import Match
from progression.models.team import Team
from progression.models.tournament import Tournament
from progression.models.veto import VetoAction, VetoSession

__all__ = [
    "Tournament",
    "Team",
    "Match",
    "VetoSession",
    "VetoAction",
]
