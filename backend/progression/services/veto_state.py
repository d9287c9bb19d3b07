"""
Veto State Calculator.

Authoritative turn state is recomputed from the session row and its action
log on every read. The session's current_turn_team_id is only the pointer
last written by a client; when it disagrees with the recomputed expectation
during an in-progress veto the state carries a TurnSyncError and nobody may
act until it is repaired.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from progression.models.veto import ACTION_BAN, ACTION_PICK, VETO_COMPLETED, VETO_IN_PROGRESS, VETO_PENDING
from progression.services.veto_sequence import generate_ban_sequence

logger = logging.getLogger(__name__)

PHASE_PENDING = "pending"
PHASE_BAN = "ban"
PHASE_SIDE_CHOICE = "side_choice"
PHASE_COMPLETED = "completed"


@dataclass(frozen=True)
class TurnSyncError:
    persisted_team_id: Optional[int]
    expected_team_id: Optional[int]
    persisted_label: str
    expected_label: str

    @property
    def message(self) -> str:
        return (
            f"Database shows {self.persisted_label} team turn, "
            f"but sequence expects {self.expected_label} team"
        )


@dataclass
class ActionView:
    order_number: int
    action: str
    team_id: Optional[int]
    map_id: str
    side_choice: Optional[str] = None
    id: Optional[int] = None
    speculative: bool = False


@dataclass
class VetoState:
    session_id: int
    status: str
    phase: str
    home_team_id: Optional[int]
    away_team_id: Optional[int]
    current_turn_team_id: Optional[int]
    expected_turn_team_id: Optional[int]
    ban_sequence: List[int]
    current_position: int
    total_maps: int
    actions: List[ActionView] = field(default_factory=list)
    remaining_maps: List[str] = field(default_factory=list)
    turn_error: Optional[TurnSyncError] = None
    viewer_team_id: Optional[int] = None
    is_users_turn: bool = False
    can_act: bool = False

    @property
    def sequence_exhausted(self) -> bool:
        return bool(self.ban_sequence) and self.current_position > len(self.ban_sequence)

    @property
    def picked_map(self) -> Optional[str]:
        for a in self.actions:
            if a.action == ACTION_PICK and not a.speculative:
                return a.map_id
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "status": self.status,
            "phase": self.phase,
            "home_team_id": self.home_team_id,
            "away_team_id": self.away_team_id,
            "current_turn_team_id": self.current_turn_team_id,
            "expected_turn_team_id": self.expected_turn_team_id,
            "ban_sequence": self.ban_sequence,
            "current_position": self.current_position,
            "total_maps": self.total_maps,
            "sequence_exhausted": self.sequence_exhausted,
            "picked_map": self.picked_map,
            "actions": [
                {
                    "id": a.id,
                    "order_number": a.order_number,
                    "action": a.action,
                    "team_id": a.team_id,
                    "map_id": a.map_id,
                    "side_choice": a.side_choice,
                    "speculative": a.speculative,
                }
                for a in self.actions
            ],
            "remaining_maps": self.remaining_maps,
            "turn_error": (
                {
                    "message": self.turn_error.message,
                    "persisted_team_id": self.turn_error.persisted_team_id,
                    "expected_team_id": self.turn_error.expected_team_id,
                    "persisted": self.turn_error.persisted_label,
                    "expected": self.turn_error.expected_label,
                }
                if self.turn_error
                else None
            ),
            "viewer_team_id": self.viewer_team_id,
            "is_users_turn": self.is_users_turn,
            "can_act": self.can_act,
        }


def _side_label(team_id: Optional[int], home_team_id: Optional[int], away_team_id: Optional[int]) -> str:
    if team_id is None:
        return "no"
    if team_id == home_team_id:
        return "home"
    if team_id == away_team_id:
        return "away"
    return "unknown"


def calculate_veto_state(
    session,
    actions: Sequence,
    viewer_team_id: Optional[int] = None,
    map_pool: Optional[Sequence[str]] = None,
) -> VetoState:
    """Recompute the full veto state from a session record and its actions."""
    ordered = sorted(actions, key=lambda a: a.order_number)
    bans = [a for a in ordered if a.action == ACTION_BAN]
    current_position = len(bans) + 1

    home, away = session.home_team_id, session.away_team_id
    ban_sequence: List[int] = []
    expected: Optional[int] = None
    turn_error: Optional[TurnSyncError] = None

    if home is not None and away is not None:
        ban_sequence = generate_ban_sequence(home, away, session.total_maps)
        if current_position <= len(ban_sequence):
            expected = ban_sequence[current_position - 1]
        elif current_position == len(ban_sequence) + 1:
            # Bans exhausted: home chooses the starting side
            expected = home

        if session.status == VETO_IN_PROGRESS and session.current_turn_team_id != expected:
            turn_error = TurnSyncError(
                persisted_team_id=session.current_turn_team_id,
                expected_team_id=expected,
                persisted_label=_side_label(session.current_turn_team_id, home, away),
                expected_label=_side_label(expected, home, away),
            )

    if session.status == VETO_COMPLETED:
        phase = PHASE_COMPLETED
    elif session.status == VETO_PENDING:
        phase = PHASE_PENDING
    elif ban_sequence and current_position > len(ban_sequence):
        phase = PHASE_SIDE_CHOICE
    else:
        phase = PHASE_BAN

    used = {a.map_id for a in ordered}
    remaining = [m for m in (map_pool or []) if m not in used]

    is_users_turn = viewer_team_id is not None and expected == viewer_team_id
    can_act = is_users_turn and session.status == VETO_IN_PROGRESS and turn_error is None

    if turn_error is not None:
        logger.warning("Veto session %s turn sync error: %s", session.id, turn_error.message)

    return VetoState(
        session_id=session.id,
        status=session.status,
        phase=phase,
        home_team_id=home,
        away_team_id=away,
        current_turn_team_id=session.current_turn_team_id,
        expected_turn_team_id=expected,
        ban_sequence=ban_sequence,
        current_position=current_position,
        total_maps=session.total_maps,
        actions=[
            ActionView(
                id=getattr(a, "id", None),
                order_number=a.order_number,
                action=a.action,
                team_id=a.team_id,
                map_id=a.map_id,
                side_choice=getattr(a, "side_choice", None),
            )
            for a in ordered
        ],
        remaining_maps=remaining,
        turn_error=turn_error,
        viewer_team_id=viewer_team_id,
        is_users_turn=is_users_turn,
        can_act=can_act,
    )
