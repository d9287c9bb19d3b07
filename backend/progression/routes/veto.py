"""
Map Veto API Routes
Session lifecycle, turn-validated bans, side choice, operator tooling and a
WebSocket stream of recomputed state.

Every response carries state recomputed from the action log after commit.
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel
from sqlmodel import Session

from progression.database import get_session
from progression.models.match import Match
from progression.models.veto import VetoSession
from progression.routes.tournaments import get_tournament_or_404
from progression.services.errors import (
    InvalidMapPool,
    MapUnavailable,
    NotYourTurn,
    PositionTaken,
    VetoSessionError,
)
from progression.services.veto_audit import audit_session, audit_tournament, force_complete, force_reset
from progression.services.veto_coordinator import (
    choose_side,
    create_session,
    fix_turn_sync,
    load_state,
    start_session,
    submit_action,
)
from progression.services.veto_realtime import hub

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================================================
# Request/Response Models
# ============================================================================


class VetoSessionCreate(BaseModel):
    home_team_id: Optional[int] = None
    away_team_id: Optional[int] = None
    roll_seed: Optional[str] = None
    start: bool = False


class VetoActionRequest(BaseModel):
    team_id: int
    map_id: str
    user_id: Optional[str] = None
    expected_position: Optional[int] = None


class SideChoiceRequest(BaseModel):
    team_id: int
    side: str
    user_id: Optional[str] = None


class VetoSessionCreateResponse(BaseModel):
    session_id: int
    match_id: int
    home_team_id: int
    away_team_id: int
    roll_seed: Optional[str] = None
    ban_sequence: List[int]
    state: Dict[str, Any]


# ============================================================================
# Helpers
# ============================================================================


def _get_veto_or_404(session: Session, veto_session_id: int) -> VetoSession:
    veto = session.get(VetoSession, veto_session_id)
    if not veto:
        raise HTTPException(status_code=404, detail="Veto session not found")
    return veto


def _conflict(e: NotYourTurn) -> HTTPException:
    code = "position_taken" if isinstance(e, PositionTaken) else "not_your_turn"
    return HTTPException(status_code=409, detail={"code": code, "message": str(e)})


def _publish(veto_session_id: int, event: str, **details: Any) -> None:
    hub.publish(veto_session_id, event, **details)


# ============================================================================
# Session lifecycle
# ============================================================================


@router.post("/matches/{match_id}/veto", response_model=VetoSessionCreateResponse, status_code=201)
def create_veto_session(
    match_id: int,
    payload: Optional[VetoSessionCreate] = None,
    session: Session = Depends(get_session),
):
    """
    Create the veto session for a match.

    Omitting home/away rolls for them. With start=true the session opens
    immediately and the home team bans first.
    """
    payload = payload or VetoSessionCreate()
    match = session.get(Match, match_id)
    if not match:
        raise HTTPException(status_code=404, detail="Match not found")

    try:
        veto, sequence = create_session(
            session,
            match,
            home_team_id=payload.home_team_id,
            away_team_id=payload.away_team_id,
            roll_seed=payload.roll_seed,
        )
        state = start_session(session, veto.id) if payload.start else load_state(session, veto.id)
    except InvalidMapPool as e:
        raise HTTPException(status_code=422, detail=str(e))
    except VetoSessionError as e:
        raise HTTPException(status_code=409, detail=str(e))

    return VetoSessionCreateResponse(
        session_id=veto.id,
        match_id=match.id,
        home_team_id=veto.home_team_id,
        away_team_id=veto.away_team_id,
        roll_seed=veto.roll_seed,
        ban_sequence=sequence,
        state=state.to_dict(),
    )


@router.post("/veto/sessions/{veto_session_id}/start")
def start_veto_session(veto_session_id: int, session: Session = Depends(get_session)):
    """Open a pending session; the home team acts first"""
    _get_veto_or_404(session, veto_session_id)
    try:
        state = start_session(session, veto_session_id)
    except VetoSessionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    _publish(veto_session_id, "started")
    return state.to_dict()


@router.get("/veto/sessions/{veto_session_id}/state")
def get_veto_state(
    veto_session_id: int,
    team_id: Optional[int] = None,
    session: Session = Depends(get_session),
):
    """Authoritative state, personalised with is_users_turn/can_act when team_id is given"""
    try:
        return load_state(session, veto_session_id, viewer_team_id=team_id).to_dict()
    except LookupError:
        raise HTTPException(status_code=404, detail="Veto session not found")
    except InvalidMapPool as e:
        raise HTTPException(status_code=422, detail=str(e))


# ============================================================================
# Actions
# ============================================================================


@router.post("/veto/sessions/{veto_session_id}/actions")
def submit_veto_action(
    veto_session_id: int,
    payload: VetoActionRequest,
    session: Session = Depends(get_session),
):
    """Ban a map for the team whose turn it is"""
    _get_veto_or_404(session, veto_session_id)
    try:
        state = submit_action(
            session,
            veto_session_id,
            map_id=payload.map_id,
            acting_user_id=payload.user_id,
            acting_team_id=payload.team_id,
            expected_position=payload.expected_position,
        )
    except NotYourTurn as e:
        raise _conflict(e)
    except (MapUnavailable, InvalidMapPool) as e:
        raise HTTPException(status_code=422, detail=str(e))

    _publish(veto_session_id, "action", position=state.current_position - 1, map_id=payload.map_id)
    if state.sequence_exhausted:
        logger.info("Veto session %d bans exhausted; %s picked", veto_session_id, state.picked_map)
        _publish(veto_session_id, "sequence_exhausted", picked_map=state.picked_map)
    return state.to_dict()


@router.post("/veto/sessions/{veto_session_id}/side")
def choose_veto_side(
    veto_session_id: int,
    payload: SideChoiceRequest,
    session: Session = Depends(get_session),
):
    """Home team picks attack or defend on the remaining map; completes the veto"""
    _get_veto_or_404(session, veto_session_id)
    try:
        state = choose_side(session, veto_session_id, payload.side, payload.user_id, payload.team_id)
    except NotYourTurn as e:
        raise _conflict(e)
    except (ValueError, MapUnavailable) as e:
        raise HTTPException(status_code=422, detail=str(e))

    _publish(veto_session_id, "completed", side=payload.side)
    return state.to_dict()


@router.post("/veto/sessions/{veto_session_id}/fix-turn")
def fix_veto_turn(veto_session_id: int, session: Session = Depends(get_session)):
    """Rewrite the persisted turn pointer to the team the sequence expects"""
    _get_veto_or_404(session, veto_session_id)
    try:
        state = fix_turn_sync(session, veto_session_id)
    except VetoSessionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    _publish(veto_session_id, "turn_fixed")
    return state.to_dict()


# ============================================================================
# Operator tooling
# ============================================================================


@router.get("/veto/sessions/{veto_session_id}/health")
def get_veto_session_health(veto_session_id: int, session: Session = Depends(get_session)):
    veto = _get_veto_or_404(session, veto_session_id)
    return audit_session(session, veto).to_dict()


@router.get("/tournaments/{tournament_id}/veto/audit")
def get_tournament_veto_audit(tournament_id: int, session: Session = Depends(get_session)):
    """Health of every veto session in the tournament, with stuck sessions listed"""
    get_tournament_or_404(session, tournament_id)
    return audit_tournament(session, tournament_id).to_dict()


@router.post("/veto/sessions/{veto_session_id}/reset")
def reset_veto_session(veto_session_id: int, session: Session = Depends(get_session)):
    """Delete all actions and return the session to pending"""
    veto = _get_veto_or_404(session, veto_session_id)
    removed = force_reset(session, veto)
    _publish(veto_session_id, "reset")
    return {
        "session_id": veto_session_id,
        "actions_removed": removed,
        "state": load_state(session, veto_session_id).to_dict(),
    }


@router.post("/veto/sessions/{veto_session_id}/force-complete")
def force_complete_veto_session(veto_session_id: int, session: Session = Depends(get_session)):
    veto = _get_veto_or_404(session, veto_session_id)
    force_complete(session, veto)
    _publish(veto_session_id, "force_completed")
    return load_state(session, veto_session_id).to_dict()


# ============================================================================
# Realtime
# ============================================================================


@router.websocket("/ws/veto/sessions/{veto_session_id}")
async def veto_state_stream(
    websocket: WebSocket,
    veto_session_id: int,
    team_id: Optional[int] = None,
    session: Session = Depends(get_session),
):
    """
    Push the recomputed state after every committed change.

    Sends a snapshot on connect. Any text received from the client is
    treated as a refresh request.
    """
    await websocket.accept()
    try:
        state = await run_in_threadpool(load_state, session, veto_session_id, team_id)
    except LookupError:
        await websocket.close(code=4404)
        return

    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()
    subscription = hub.subscribe(
        veto_session_id, lambda message: loop.call_soon_threadsafe(queue.put_nowait, message)
    )
    logger.debug("WebSocket subscribed to veto session %d (team %s)", veto_session_id, team_id)

    receiver: Optional[asyncio.Task] = None
    notifier: Optional[asyncio.Task] = None
    try:
        await websocket.send_json({"event": "snapshot", "state": state.to_dict()})
        while True:
            if receiver is None:
                receiver = asyncio.ensure_future(websocket.receive_text())
            if notifier is None:
                notifier = asyncio.ensure_future(queue.get())
            done, _ = await asyncio.wait({receiver, notifier}, return_when=asyncio.FIRST_COMPLETED)

            event = "refresh"
            if receiver in done:
                receiver.result()
                receiver = None
            if notifier in done:
                event = notifier.result()["event"]
                notifier = None

            state = await run_in_threadpool(load_state, session, veto_session_id, team_id)
            await websocket.send_json({"event": event, "state": state.to_dict()})
    except WebSocketDisconnect:
        logger.debug("WebSocket left veto session %d", veto_session_id)
    finally:
        hub.unsubscribe(subscription)
        for task in (receiver, notifier):
            if task is not None and not task.done():
                task.cancel()
