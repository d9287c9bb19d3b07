"""
Bracket Medic
=============
Detects and repairs divergence between persisted matches and the topology
recomputed from the tournament's team count.

Checks:
  STRUCTURE_MISMATCH      round has a different match count / numbering than predicted
  ADVANCEMENT_MISMATCH    completed match's winner missing from its target slot
  STATUS_WINNER_MISMATCH  winner set but not completed, or completed without winner
  MISSING_TARGET_MATCH    target match for an advancing winner does not exist
  WINNER_NOT_IN_SLOTS     winner is neither slot occupant
  UNEARNED_SLOT           later-round slot holds a team that has not won its feeder match

Repair fixes ADVANCEMENT_MISMATCH and STATUS_WINNER_MISMATCH only. It never
invents a winner, never removes a team (UNEARNED_SLOT is left to an operator),
and never touches a completed target.
Running it twice changes nothing the second time.

Works on any record exposing round_number, match_number, team_a_id,
team_b_id, status, winner_team_id (and optionally id).
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from progression.services.bracket_structure import (
    SLOT_A,
    SLOT_B,
    BracketStructure,
    find_next_match_position,
)

STRUCTURE_MISMATCH = "STRUCTURE_MISMATCH"
ADVANCEMENT_MISMATCH = "ADVANCEMENT_MISMATCH"
STATUS_WINNER_MISMATCH = "STATUS_WINNER_MISMATCH"
MISSING_TARGET_MATCH = "MISSING_TARGET_MATCH"
WINNER_NOT_IN_SLOTS = "WINNER_NOT_IN_SLOTS"
UNEARNED_SLOT = "UNEARNED_SLOT"

SEVERITY_ERROR = "error"

_COMPLETED = "completed"
_PENDING = "pending"


# ─── Data structures ─────────────────────────────────────────────────────

@dataclass
class BracketIssue:
    code: str
    severity: str
    message: str
    match_ids: List[int] = field(default_factory=list)
    repairable: bool = False


@dataclass
class BracketHealthReport:
    ok: bool
    issues: List[BracketIssue] = field(default_factory=list)
    tournament_complete: bool = False
    champion_team_id: Optional[int] = None

    @property
    def has_errors(self) -> bool:
        return any(i.severity == SEVERITY_ERROR for i in self.issues)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "issues": [
                {
                    "code": i.code,
                    "severity": i.severity,
                    "message": i.message,
                    "match_ids": i.match_ids,
                    "repairable": i.repairable,
                }
                for i in self.issues
            ],
            "tournament_complete": self.tournament_complete,
            "champion_team_id": self.champion_team_id,
        }


@dataclass
class RepairResult:
    fixes: List[str]
    changed: List[Any]
    report: BracketHealthReport


# ─── Helpers ──────────────────────────────────────────────────────────────

def _slot_attr(slot: str) -> str:
    return "team_a_id" if slot == SLOT_A else "team_b_id"


def _ids(*matches) -> List[int]:
    return [m.id for m in matches if getattr(m, "id", None) is not None]


def _label(m) -> str:
    return f"Round {m.round_number} Match {m.match_number}"


def _winner_in_slots(m) -> bool:
    return m.winner_team_id is not None and m.winner_team_id in (m.team_a_id, m.team_b_id)


def _index(matches: Sequence) -> Tuple[Dict[int, List], Dict[Tuple[int, int], Any]]:
    by_round: Dict[int, List] = defaultdict(list)
    by_position: Dict[Tuple[int, int], Any] = {}
    for m in matches:
        by_round[m.round_number].append(m)
        by_position.setdefault((m.round_number, m.match_number), m)
    return by_round, by_position


def _in_structure(m, structure: BracketStructure) -> bool:
    return 1 <= m.match_number <= structure.matches_in_round(m.round_number)


# ─── Checks ───────────────────────────────────────────────────────────────

def _check_structure(by_round: Dict[int, List], structure: BracketStructure) -> List[BracketIssue]:
    issues: List[BracketIssue] = []
    rounds = sorted(set(by_round) | set(range(1, structure.total_rounds + 1)))
    for r in rounds:
        actual = by_round.get(r, [])
        expected = structure.matches_in_round(r)
        if len(actual) != expected:
            issues.append(BracketIssue(
                code=STRUCTURE_MISMATCH,
                severity=SEVERITY_ERROR,
                message=f"Round {r} has {len(actual)} matches, expected {expected}",
                match_ids=_ids(*actual),
            ))
            continue
        numbers = sorted(m.match_number for m in actual)
        if numbers != list(range(1, expected + 1)):
            issues.append(BracketIssue(
                code=STRUCTURE_MISMATCH,
                severity=SEVERITY_ERROR,
                message=f"Round {r} match numbers {numbers}, expected 1..{expected}",
                match_ids=_ids(*actual),
            ))
    return issues


def _check_status_winner(matches: Sequence) -> List[BracketIssue]:
    issues: List[BracketIssue] = []
    for m in matches:
        if m.winner_team_id is not None and not _winner_in_slots(m):
            issues.append(BracketIssue(
                code=WINNER_NOT_IN_SLOTS,
                severity=SEVERITY_ERROR,
                message=f"{_label(m)} winner {m.winner_team_id} is not one of its teams",
                match_ids=_ids(m),
            ))
        elif m.winner_team_id is not None and m.status != _COMPLETED:
            issues.append(BracketIssue(
                code=STATUS_WINNER_MISMATCH,
                severity=SEVERITY_ERROR,
                message=f"{_label(m)} has winner {m.winner_team_id} but status '{m.status}'",
                match_ids=_ids(m),
                repairable=True,
            ))
        elif m.winner_team_id is None and m.status == _COMPLETED:
            issues.append(BracketIssue(
                code=STATUS_WINNER_MISMATCH,
                severity=SEVERITY_ERROR,
                message=f"{_label(m)} is completed but missing winner",
                match_ids=_ids(m),
                repairable=True,
            ))
    return issues


def _pending_advancements(matches: Sequence, by_position: Dict, structure: BracketStructure):
    """Yield (source, target_match_or_None, target) for every unadvanced completed winner."""
    for m in sorted(matches, key=lambda x: (x.round_number, x.match_number)):
        if m.status != _COMPLETED or not _winner_in_slots(m) or not _in_structure(m, structure):
            continue
        target = find_next_match_position(m.round_number, m.match_number, structure)
        if target is None:
            continue
        down = by_position.get((target.round_number, target.match_number))
        if down is None or getattr(down, _slot_attr(target.slot)) != m.winner_team_id:
            yield m, down, target


def _check_advancement(matches: Sequence, by_position: Dict, structure: BracketStructure) -> List[BracketIssue]:
    issues: List[BracketIssue] = []
    for m, down, target in _pending_advancements(matches, by_position, structure):
        dest = f"Round {target.round_number} Match {target.match_number}"
        if down is None:
            issues.append(BracketIssue(
                code=MISSING_TARGET_MATCH,
                severity=SEVERITY_ERROR,
                message=f"{_label(m)} should advance to {dest} but that match doesn't exist",
                match_ids=_ids(m),
            ))
            continue
        occupant = getattr(down, _slot_attr(target.slot))
        locked = down.status == _COMPLETED
        issues.append(BracketIssue(
            code=ADVANCEMENT_MISMATCH,
            severity=SEVERITY_ERROR,
            message=(
                f"{_label(m)} winner ({m.winner_team_id}) not advanced to {dest} "
                f"slot {target.slot.upper()} (currently: {occupant if occupant is not None else 'empty'})"
                + (" and the target is already completed" if locked else "")
            ),
            match_ids=_ids(m, down),
            repairable=not locked,
        ))
    return issues


def _check_unearned_slots(matches: Sequence, by_position: Dict, structure: BracketStructure) -> List[BracketIssue]:
    """Slots past round 1 must be filled only by the winner of their feeder match.

    A feeder decided for someone else is an ADVANCEMENT_MISMATCH instead.
    """
    issues: List[BracketIssue] = []
    for m in sorted(matches, key=lambda x: (x.round_number, x.match_number)):
        if m.round_number < 2 or not _in_structure(m, structure):
            continue
        for slot, feeder_number in ((SLOT_A, 2 * m.match_number - 1), (SLOT_B, 2 * m.match_number)):
            occupant = getattr(m, _slot_attr(slot))
            feeder = by_position.get((m.round_number - 1, feeder_number))
            if occupant is None or feeder is None:
                continue
            if feeder.status == _COMPLETED and _winner_in_slots(feeder):
                continue
            issues.append(BracketIssue(
                code=UNEARNED_SLOT,
                severity=SEVERITY_ERROR,
                message=(
                    f"{_label(m)} slot {slot.upper()} holds team {occupant}, "
                    f"but {_label(feeder)} has no valid winner"
                ),
                match_ids=_ids(feeder, m),
            ))
    return issues


# ─── Public API ───────────────────────────────────────────────────────────

def validate_bracket(matches: Sequence, structure: BracketStructure) -> BracketHealthReport:
    """Report every invariant violation in *matches* against *structure*."""
    by_round, by_position = _index(matches)

    issues: List[BracketIssue] = []
    issues.extend(_check_structure(by_round, structure))
    issues.extend(_check_status_winner(matches))
    issues.extend(_check_advancement(matches, by_position, structure))
    issues.extend(_check_unearned_slots(matches, by_position, structure))

    final = by_position.get((structure.total_rounds, 1))
    complete = final is not None and final.status == _COMPLETED and _winner_in_slots(final)

    return BracketHealthReport(
        ok=not issues,
        issues=issues,
        tournament_complete=complete,
        champion_team_id=final.winner_team_id if complete else None,
    )


def repair_bracket(matches: Sequence, structure: BracketStructure) -> RepairResult:
    """Correct repairable issues in place and return the recomputed report.

    Status is normalized first so winners promoted to completed are advanced
    in the same pass.
    """
    fixes: List[str] = []
    changed: Dict[int, Any] = {}

    for m in sorted(matches, key=lambda x: (x.round_number, x.match_number)):
        if m.winner_team_id is not None and m.status != _COMPLETED and _winner_in_slots(m):
            fixes.append(f"{_label(m)}: status '{m.status}' -> 'completed' (winner {m.winner_team_id})")
            m.status = _COMPLETED
            changed[id(m)] = m
        elif m.winner_team_id is None and m.status == _COMPLETED:
            fixes.append(f"{_label(m)}: status 'completed' -> 'pending' (no winner recorded)")
            m.status = _PENDING
            changed[id(m)] = m

    _, by_position = _index(matches)
    for m, down, target in list(_pending_advancements(matches, by_position, structure)):
        if down is None or down.status == _COMPLETED:
            continue
        setattr(down, _slot_attr(target.slot), m.winner_team_id)
        fixes.append(
            f"{_label(m)}: advanced winner {m.winner_team_id} to "
            f"{_label(down)} slot {target.slot.upper()}"
        )
        changed[id(down)] = down

    return RepairResult(
        fixes=fixes,
        changed=list(changed.values()),
        report=validate_bracket(matches, structure),
    )
