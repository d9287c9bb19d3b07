"""
Client-side reconciliation of speculative veto actions.

A client may show its own ban before the server confirms it. Such entries
are tagged speculative and live only until the next authoritative state
arrives, at which point all of them are dropped, whether the server agreed
or not. Nothing is merged field by field.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from progression.models.veto import ACTION_BAN, ACTION_PICK
from progression.services.errors import NotYourTurn
from progression.services.veto_state import ActionView, VetoState

_tokens = itertools.count(1)


@dataclass
class SpeculativeAction:
    token: int
    map_id: str
    action: str
    team_id: Optional[int]
    order_number: int


@dataclass
class ReconcileOutcome:
    confirmed: List[SpeculativeAction] = field(default_factory=list)
    contradicted: List[SpeculativeAction] = field(default_factory=list)


class VetoReconciler:
    def __init__(self, state: Optional[VetoState] = None):
        self._state = state
        self._speculative: List[SpeculativeAction] = []

    @property
    def authoritative(self) -> Optional[VetoState]:
        return self._state

    @property
    def speculative(self) -> List[SpeculativeAction]:
        return list(self._speculative)

    def assume(self, map_id: str) -> SpeculativeAction:
        """Record a local guess that *map_id* is about to be banned by the viewer."""
        state = self._state
        if state is None or not state.can_act:
            raise NotYourTurn("Cannot act on the current state")
        if map_id not in state.remaining_maps or any(s.map_id == map_id for s in self._speculative):
            raise NotYourTurn(f"Map '{map_id}' is not available")

        order = state.current_position + len(self._speculative)
        in_bans = order <= len(state.ban_sequence)
        guess = SpeculativeAction(
            token=next(_tokens),
            map_id=map_id,
            action=ACTION_BAN if in_bans else ACTION_PICK,
            team_id=state.ban_sequence[order - 1] if in_bans else None,
            order_number=order,
        )
        self._speculative.append(guess)
        return guess

    def discard(self) -> List[SpeculativeAction]:
        dropped, self._speculative = self._speculative, []
        return dropped

    def apply_authoritative(self, state: VetoState) -> ReconcileOutcome:
        """Adopt *state* and drop every speculative entry, reporting which were borne out."""
        outcome = ReconcileOutcome()
        confirmed = {(a.order_number, a.map_id) for a in state.actions}
        for guess in self.discard():
            if (guess.order_number, guess.map_id) in confirmed:
                outcome.confirmed.append(guess)
            else:
                outcome.contradicted.append(guess)
        self._state = state
        return outcome

    def view(self) -> List[ActionView]:
        """Authoritative actions followed by speculative ones, for display."""
        if self._state is None:
            return []
        merged = list(self._state.actions)
        merged.extend(
            ActionView(
                order_number=s.order_number,
                action=s.action,
                team_id=s.team_id,
                map_id=s.map_id,
                speculative=True,
            )
            for s in self._speculative
        )
        return merged

    def perform(self, map_id: str, send: Callable[[SpeculativeAction], VetoState]) -> ReconcileOutcome:
        """Speculate, send, then reconcile.

        If the send fails for any reason the guess is discarded and the error re-raised.
        """
        guess = self.assume(map_id)
        try:
            state = send(guess)
        except Exception:
            self.discard()
            raise
        return self.apply_authoritative(state)
