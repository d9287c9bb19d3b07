"""
Veto Action Coordinator and session lifecycle.

Every write is validated against freshly recomputed state and tagged with
the team the sequence expects at that position, never with the session's
stale turn pointer. After each commit the full state is recomputed from the
action log and returned.
"""
import logging
import random
import secrets
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from progression.models.match import Match
from progression.models.tournament import Tournament
from progression.models.veto import (
    ACTION_BAN,
    ACTION_PICK,
    SIDE_ATTACK,
    SIDE_DEFEND,
    VETO_COMPLETED,
    VETO_IN_PROGRESS,
    VETO_PENDING,
    VetoAction,
    VetoSession,
)
from progression.services.errors import MapUnavailable, NotYourTurn, PositionTaken, VetoSessionError
from progression.services.veto_sequence import generate_ban_sequence, validate_map_pool
from progression.services.veto_state import PHASE_BAN, PHASE_SIDE_CHOICE, VetoState, calculate_veto_state

logger = logging.getLogger(__name__)


# ============================================================================
# Loading
# ============================================================================


def load_actions(db: Session, veto_session_id: int) -> List[VetoAction]:
    return list(
        db.exec(
            select(VetoAction)
            .where(VetoAction.veto_session_id == veto_session_id)
            .order_by(VetoAction.order_number)
        ).all()
    )


def session_map_pool(db: Session, veto: VetoSession) -> List[str]:
    match = db.get(Match, veto.match_id)
    tournament = db.get(Tournament, match.tournament_id) if match else None
    return validate_map_pool(tournament.map_pool if tournament else None)


def load_state(db: Session, veto_session_id: int, viewer_team_id: Optional[int] = None) -> VetoState:
    """Recompute authoritative state from the database. Raises LookupError if missing."""
    # Other writers may have committed since this session last read
    db.expire_all()
    veto = db.get(VetoSession, veto_session_id)
    if veto is None:
        raise LookupError(f"Veto session {veto_session_id} not found")
    state = calculate_veto_state(
        veto,
        load_actions(db, veto.id),
        viewer_team_id=viewer_team_id,
        map_pool=session_map_pool(db, veto),
    )
    logger.debug(
        "Veto session %d state: position=%d expected=%s current=%s can_act=%s",
        veto.id, state.current_position, state.expected_turn_team_id,
        state.current_turn_team_id, state.can_act,
    )
    return state


# ============================================================================
# Session lifecycle
# ============================================================================


def roll_home_away(team_a_id: int, team_b_id: int, roll_seed: str) -> Tuple[int, int]:
    """Deterministic coin flip for (home, away) from a recorded seed."""
    rng = random.Random(roll_seed)
    return (team_a_id, team_b_id) if rng.random() < 0.5 else (team_b_id, team_a_id)


def create_session(
    db: Session,
    match: Match,
    home_team_id: Optional[int] = None,
    away_team_id: Optional[int] = None,
    roll_seed: Optional[str] = None,
) -> Tuple[VetoSession, List[int]]:
    """
    Create the pending veto session for *match* and return it with the expected ban order.

    When home/away are omitted they are decided by a seeded coin flip; the
    seed is stored on the session.

    Raises:
        VetoSessionError: match lacks teams, teams don't belong to the match, or a session exists
        InvalidMapPool: tournament pool unusable
    """
    if match.team_a_id is None or match.team_b_id is None:
        raise VetoSessionError(f"Match {match.id} does not have both teams assigned")

    tournament = db.get(Tournament, match.tournament_id)
    pool = validate_map_pool(tournament.map_pool if tournament else None)

    if home_team_id is None and away_team_id is None:
        roll_seed = roll_seed or secrets.token_hex(8)
        home_team_id, away_team_id = roll_home_away(match.team_a_id, match.team_b_id, roll_seed)
    elif {home_team_id, away_team_id} != {match.team_a_id, match.team_b_id}:
        raise VetoSessionError(
            f"Home/away teams must be the two teams of match {match.id} "
            f"({match.team_a_id}, {match.team_b_id})"
        )

    existing = db.exec(select(VetoSession).where(VetoSession.match_id == match.id)).first()
    if existing is not None:
        raise VetoSessionError(f"Match {match.id} already has veto session {existing.id}")

    veto = VetoSession(
        match_id=match.id,
        home_team_id=home_team_id,
        away_team_id=away_team_id,
        status=VETO_PENDING,
        total_maps=len(pool),
        roll_seed=roll_seed,
    )
    db.add(veto)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise VetoSessionError(f"Match {match.id} already has a veto session")
    db.refresh(veto)

    logger.info(
        "Created veto session %d for match %d (home=%d away=%d maps=%d)",
        veto.id, match.id, home_team_id, away_team_id, veto.total_maps,
    )
    return veto, generate_ban_sequence(home_team_id, away_team_id, veto.total_maps)


def start_session(db: Session, veto_session_id: int) -> VetoState:
    """Open a pending session for bans; home acts first."""
    veto = _get_session(db, veto_session_id)
    if veto.status != VETO_PENDING:
        raise VetoSessionError(f"Veto session {veto.id} is '{veto.status}', expected 'pending'")

    veto.status = VETO_IN_PROGRESS
    veto.current_turn_team_id = veto.home_team_id
    veto.started_at = datetime.utcnow()
    db.add(veto)
    db.commit()

    logger.info("Started veto session %d", veto.id)
    return load_state(db, veto.id)


def _get_session(db: Session, veto_session_id: int) -> VetoSession:
    veto = db.get(VetoSession, veto_session_id)
    if veto is None:
        raise LookupError(f"Veto session {veto_session_id} not found")
    return veto


# ============================================================================
# Actions
# ============================================================================


def _append_action(
    db: Session,
    veto: VetoSession,
    position: int,
    action: str,
    team_id: Optional[int],
    map_id: str,
    performed_by: Optional[str],
) -> VetoAction:
    """Stage an action at *position*; fails if the log isn't exactly position-1 long.

    The unique (session, order_number) constraint makes the write conditional
    at commit time when two submitters race past this check.
    """
    last = db.exec(
        select(func.max(VetoAction.order_number)).where(VetoAction.veto_session_id == veto.id)
    ).one()
    last = last or 0
    if last >= position:
        raise PositionTaken(f"Position {position} is already filled")
    if last != position - 1:
        raise NotYourTurn(f"Position {position} would leave a gap after position {last}")

    record = VetoAction(
        veto_session_id=veto.id,
        order_number=position,
        action=action,
        team_id=team_id,
        map_id=map_id,
        performed_by=performed_by,
    )
    db.add(record)
    db.flush()
    return record


def submit_action(
    db: Session,
    veto_session_id: int,
    map_id: str,
    acting_user_id: Optional[str],
    acting_team_id: int,
    expected_position: Optional[int] = None,
) -> VetoState:
    """
    Ban *map_id* for *acting_team_id* at the current sequence position.

    expected_position is the position the client believed it was filling;
    a stale value is rejected instead of being re-slotted.

    Raises:
        NotYourTurn: turn sync error, session not in progress, wrong team, stale/gapped position
        PositionTaken: the position was filled first by another submission
        MapUnavailable: map outside the pool or already used
    """
    state = load_state(db, veto_session_id, viewer_team_id=acting_team_id)

    if not state.can_act:
        if state.turn_error is not None:
            reason = state.turn_error.message
        elif state.status != VETO_IN_PROGRESS:
            reason = f"Veto session is '{state.status}'"
        else:
            reason = "Not your turn to act"
        logger.warning(
            "Rejected veto action on session %d by team %s: %s", veto_session_id, acting_team_id, reason
        )
        raise NotYourTurn(reason)

    if state.phase != PHASE_BAN:
        raise NotYourTurn("All bans are recorded; choose a side")

    if expected_position is not None and expected_position != state.current_position:
        if expected_position < state.current_position:
            raise PositionTaken(f"Position {expected_position} is already filled")
        raise NotYourTurn(
            f"Position {expected_position} is ahead of the current position {state.current_position}"
        )

    if map_id not in state.remaining_maps:
        raise MapUnavailable(f"Map '{map_id}' is not available (already banned or picked, or not in pool)")

    veto = _get_session(db, veto_session_id)
    position = state.current_position
    expected_team = state.expected_turn_team_id
    auto_pick: Optional[str] = None
    try:
        _append_action(db, veto, position, ACTION_BAN, expected_team, map_id, acting_user_id)

        if position < len(state.ban_sequence):
            veto.current_turn_team_id = state.ban_sequence[position]
        else:
            leftover = [m for m in state.remaining_maps if m != map_id]
            if len(leftover) == 1:
                auto_pick = leftover[0]
                _append_action(db, veto, position + 1, ACTION_PICK, None, auto_pick, None)
            veto.current_turn_team_id = veto.home_team_id
        db.add(veto)
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.warning("Veto session %d position %d lost a concurrent write", veto_session_id, position)
        raise PositionTaken(f"Position {position} was filled by another submission")
    except NotYourTurn:
        db.rollback()
        raise

    logger.info(
        "Veto session %d: team %s banned %s at position %d%s",
        veto_session_id, expected_team, map_id, position,
        f"; {auto_pick} picked" if auto_pick else "",
    )
    return load_state(db, veto_session_id, viewer_team_id=acting_team_id)


def choose_side(
    db: Session,
    veto_session_id: int,
    side: str,
    acting_user_id: Optional[str],
    acting_team_id: int,
) -> VetoState:
    """Home team picks its starting side on the picked map; completes the session."""
    side = (side or "").strip().lower()
    if side not in (SIDE_ATTACK, SIDE_DEFEND):
        raise ValueError(f"side must be '{SIDE_ATTACK}' or '{SIDE_DEFEND}', got {side!r}")

    state = load_state(db, veto_session_id, viewer_team_id=acting_team_id)
    if not state.can_act:
        raise NotYourTurn(state.turn_error.message if state.turn_error else "Not your turn to act")
    if state.phase != PHASE_SIDE_CHOICE:
        raise NotYourTurn("Side choice is only available after all bans")

    veto = _get_session(db, veto_session_id)
    pick = db.exec(
        select(VetoAction).where(
            VetoAction.veto_session_id == veto.id,
            VetoAction.action == ACTION_PICK,
        )
    ).first()
    if pick is None and len(state.remaining_maps) != 1:
        raise MapUnavailable(f"Expected one map left to pick, found {len(state.remaining_maps)}")

    now = datetime.utcnow()
    try:
        # Conditional completion: only one submission leaves in_progress
        completed = db.execute(
            update(VetoSession)
            .where(VetoSession.id == veto.id, VetoSession.status == VETO_IN_PROGRESS)
            .values(status=VETO_COMPLETED, completed_at=now, current_turn_team_id=None, updated_at=now)
        )
        if completed.rowcount != 1:
            db.rollback()
            logger.warning("Veto session %d side choice lost to a concurrent submission", veto_session_id)
            raise PositionTaken("Side was already chosen by another submission")

        if pick is None:
            pick = _append_action(
                db, veto, state.current_position, ACTION_PICK, None, state.remaining_maps[0], None
            )
        pick.side_choice = side
        db.add(pick)
        db.commit()
    except IntegrityError:
        db.rollback()
        raise PositionTaken("Pick position was filled by another submission")

    logger.info("Veto session %d completed: %s, home starts %s", veto.id, pick.map_id, side)
    return load_state(db, veto_session_id, viewer_team_id=acting_team_id)


def fix_turn_sync(db: Session, veto_session_id: int) -> VetoState:
    """Rewrite the persisted turn pointer to the recomputed expectation."""
    state = load_state(db, veto_session_id)
    if state.turn_error is None:
        raise VetoSessionError("No sync issue to fix")

    veto = _get_session(db, veto_session_id)
    veto.current_turn_team_id = state.expected_turn_team_id
    db.add(veto)
    db.commit()

    logger.info(
        "Veto session %d turn pointer repaired: %s -> %s",
        veto.id, state.current_turn_team_id, state.expected_turn_team_id,
    )
    return load_state(db, veto_session_id)
