"""
Bracket Structure — single-elimination topology and winner advancement.

The structure is derived from the team count on every call and never stored,
so no second source of truth for topology can drift from the team count.

  team_count=8 -> 3 rounds, matches per round [4, 2, 1]
  team_count=6 -> 3 rounds, matches per round [4, 2, 1], 2 first-round byes

Advancement: winner of round r match m plays round r+1 match ceil(m/2),
odd m in slot A, even m in slot B.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from progression.services.errors import BracketError, InvalidTeamCount

SLOT_A = "a"
SLOT_B = "b"


@dataclass(frozen=True)
class BracketStructure:
    team_count: int
    total_rounds: int
    matches_per_round: Tuple[int, ...]  # index 0 = round 1
    total_matches: int
    is_power_of_two: bool
    first_round_byes: int

    def matches_in_round(self, round_number: int) -> int:
        if round_number < 1 or round_number > self.total_rounds:
            return 0
        return self.matches_per_round[round_number - 1]

    def to_dict(self) -> Dict:
        return {
            "team_count": self.team_count,
            "total_rounds": self.total_rounds,
            "matches_per_round": list(self.matches_per_round),
            "total_matches": self.total_matches,
            "is_power_of_two": self.is_power_of_two,
            "first_round_byes": self.first_round_byes,
        }


@dataclass(frozen=True)
class AdvancementTarget:
    round_number: int
    match_number: int
    slot: str  # SLOT_A | SLOT_B


@dataclass
class SeededTeam:
    """Lightweight struct for generation input."""
    team_id: int
    seed: int


@dataclass
class MatchPlan:
    round_number: int
    match_number: int
    team_a_id: Optional[int] = None
    team_b_id: Optional[int] = None
    status: str = "pending"
    winner_team_id: Optional[int] = None

    @property
    def is_bye(self) -> bool:
        return self.round_number == 1 and (self.team_a_id is None) != (self.team_b_id is None)


def calculate_bracket_structure(team_count: int) -> BracketStructure:
    """Compute the round/match topology for *team_count* teams.

    Raises InvalidTeamCount for anything other than an integer >= 2.
    """
    if isinstance(team_count, bool) or not isinstance(team_count, int):
        raise InvalidTeamCount(f"team count must be an integer, got {team_count!r}")
    if team_count < 2:
        raise InvalidTeamCount(f"Tournament needs at least 2 teams, got {team_count}")

    # ceil(log2 n) without float rounding
    total_rounds = (team_count - 1).bit_length()
    matches_per_round = tuple(2 ** (total_rounds - r) for r in range(1, total_rounds + 1))

    return BracketStructure(
        team_count=team_count,
        total_rounds=total_rounds,
        matches_per_round=matches_per_round,
        total_matches=sum(matches_per_round),
        is_power_of_two=(team_count & (team_count - 1)) == 0,
        first_round_byes=2 ** total_rounds - team_count,
    )


def winner_slot(match_number: int) -> str:
    """Odd match numbers feed slot A, even feed slot B."""
    return SLOT_A if match_number % 2 == 1 else SLOT_B


def find_next_match_position(
    round_number: int,
    match_number: int,
    structure: BracketStructure,
) -> Optional[AdvancementTarget]:
    """Where the winner of (round_number, match_number) goes next.

    Returns None for the final. Pure: writing the slot is the caller's job.
    """
    if round_number < 1 or round_number > structure.total_rounds:
        raise ValueError(f"Round {round_number} outside bracket of {structure.total_rounds} rounds")
    if match_number < 1 or match_number > structure.matches_in_round(round_number):
        raise ValueError(f"Round {round_number} has no match {match_number}")

    if round_number == structure.total_rounds:
        return None

    return AdvancementTarget(
        round_number=round_number + 1,
        match_number=(match_number + 1) // 2,
        slot=winner_slot(match_number),
    )


def is_tournament_final(round_number: int, match_number: int, structure: BracketStructure) -> bool:
    return round_number == structure.total_rounds and match_number == 1


def bracket_fold_positions(n: int) -> List[int]:
    """Seed numbers in bracket position order for a power-of-two *n*.

    Consecutive pairs meet in round 1; if chalk holds seed 1 meets seed 2
    in the final:
      4 -> [1, 4, 2, 3]
      8 -> [1, 8, 4, 5, 3, 6, 2, 7]
    """
    if n < 2 or n & (n - 1):
        raise ValueError(f"bracket size must be a power of two >= 2, got {n}")
    if n == 2:
        return [1, 2]

    half = bracket_fold_positions(n // 2)

    expanded: List[int] = []
    for s in half:
        expanded.append(s)
        expanded.append(n + 1 - s)

    mid = len(expanded) // 2
    top = expanded[:mid]
    bot = expanded[mid:]
    if len(bot) >= 4:
        bot = bot[:-4] + bot[-2:] + bot[-4:-2]

    return top + bot


def plan_single_elimination(teams: Sequence[SeededTeam]) -> List[MatchPlan]:
    """Build every match of a single-elimination bracket from seeded teams.

    Round 1 is filled in fold order; seats past the team count are byes.
    A bye match is planned completed with its lone team as winner, and that
    winner is pre-placed in round 2 so the plan validates clean.
    """
    structure = calculate_bracket_structure(len(teams))

    seeds = sorted(t.seed for t in teams)
    if seeds != list(range(1, len(teams) + 1)):
        raise BracketError(f"Seeds must be exactly 1..{len(teams)}, got {seeds}")

    by_seed = {t.seed: t.team_id for t in teams}
    positions = bracket_fold_positions(2 ** structure.total_rounds)

    plans: Dict[Tuple[int, int], MatchPlan] = {}
    for round_number in range(1, structure.total_rounds + 1):
        for match_number in range(1, structure.matches_in_round(round_number) + 1):
            plans[(round_number, match_number)] = MatchPlan(round_number=round_number, match_number=match_number)

    for index in range(structure.matches_in_round(1)):
        plan = plans[(1, index + 1)]
        plan.team_a_id = by_seed.get(positions[2 * index])
        plan.team_b_id = by_seed.get(positions[2 * index + 1])
        if plan.is_bye:
            plan.status = "completed"
            plan.winner_team_id = plan.team_a_id if plan.team_a_id is not None else plan.team_b_id
            target = find_next_match_position(1, plan.match_number, structure)
            if target is not None:
                downstream = plans[(target.round_number, target.match_number)]
                if target.slot == SLOT_A:
                    downstream.team_a_id = plan.winner_team_id
                else:
                    downstream.team_b_id = plan.winner_team_id

    return [plans[key] for key in sorted(plans)]
