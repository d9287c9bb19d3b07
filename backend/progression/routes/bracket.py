"""
Bracket API Routes
Structure preview, generation, result submission with advancement, health and repair.
Result submission and repair for the same tournament never run concurrently.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict
from sqlmodel import Session

from progression.database import get_session
from progression.models.match import Match
from progression.models.tournament import Tournament
from progression.routes.tournaments import get_tournament_or_404
from progression.services.bracket_service import (
    bracket_health,
    describe_target,
    generate_bracket,
    load_matches,
    mark_match_live,
    ready_matches,
    record_match_result,
    repair_tournament_bracket,
    tournament_structure,
)
from progression.services.bracket_structure import calculate_bracket_structure
from progression.services.errors import AdvancementConflict, BracketError, InvalidTeamCount
from progression.services.locks import TournamentLocked, tournament_guard

logger = logging.getLogger(__name__)

router = APIRouter()


class GenerateRequest(BaseModel):
    rebuild: bool = False


class MatchResultRequest(BaseModel):
    winner_team_id: int


class MatchResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    tournament_id: int
    round_number: int
    match_number: int
    best_of: int
    team_a_id: Optional[int] = None
    team_b_id: Optional[int] = None
    status: str
    winner_team_id: Optional[int] = None
    is_ready: bool = False
    completed_at: Optional[datetime] = None


class GenerateResponse(BaseModel):
    structure: Dict[str, Any]
    matches: List[MatchResponse]


class MatchResultResponse(BaseModel):
    match: MatchResponse
    target: Optional[Dict[str, Any]] = None
    target_match_id: Optional[int] = None
    updated: bool = False
    target_ready: bool = False
    tournament_complete: bool = False


def _get_match_or_404(session: Session, tournament: Tournament, match_id: int) -> Match:
    match = session.get(Match, match_id)
    if not match or match.tournament_id != tournament.id:
        raise HTTPException(status_code=404, detail="Match not found")
    return match


def _require_bracket(tournament: Tournament) -> None:
    if tournament.team_count < 2:
        raise HTTPException(status_code=422, detail="Bracket has not been generated")


def _locked(e: TournamentLocked) -> HTTPException:
    return HTTPException(status_code=423, detail={"message": str(e), "holder": e.holder})


@router.get("/bracket/structure")
def get_bracket_structure(team_count: int = Query(...)):
    """Round/match topology for a single-elimination bracket of team_count teams"""
    try:
        return calculate_bracket_structure(team_count).to_dict()
    except InvalidTeamCount as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.post("/tournaments/{tournament_id}/bracket/generate", response_model=GenerateResponse, status_code=201)
def generate_tournament_bracket(
    tournament_id: int,
    payload: Optional[GenerateRequest] = None,
    session: Session = Depends(get_session),
):
    """Create every match of the bracket from the seeded teams; byes are pre-resolved"""
    tournament = get_tournament_or_404(session, tournament_id)
    if tournament.status in ("live", "completed"):
        raise HTTPException(status_code=422, detail=f"Tournament is {tournament.status}; bracket is locked")

    rebuild = payload.rebuild if payload else False
    try:
        with tournament_guard(tournament.id, "generate"):
            matches = generate_bracket(session, tournament, rebuild=rebuild)
    except TournamentLocked as e:
        raise _locked(e)
    except (BracketError, InvalidTeamCount) as e:
        raise HTTPException(status_code=422, detail=str(e))

    return GenerateResponse(
        structure=tournament_structure(tournament).to_dict(),
        matches=[MatchResponse.model_validate(m) for m in matches],
    )


@router.get("/tournaments/{tournament_id}/bracket/matches", response_model=List[MatchResponse])
def get_bracket_matches(
    tournament_id: int,
    ready_only: bool = False,
    session: Session = Depends(get_session),
):
    """All matches ordered by round then match number; ready_only lists playable matches"""
    get_tournament_or_404(session, tournament_id)
    if ready_only:
        return ready_matches(session, tournament_id)
    return load_matches(session, tournament_id)


@router.post("/tournaments/{tournament_id}/matches/{match_id}/result", response_model=MatchResultResponse)
def submit_match_result(
    tournament_id: int,
    match_id: int,
    payload: MatchResultRequest,
    session: Session = Depends(get_session),
):
    """Complete a match and write its winner into the next round's slot"""
    tournament = get_tournament_or_404(session, tournament_id)
    _require_bracket(tournament)
    match = _get_match_or_404(session, tournament, match_id)

    try:
        with tournament_guard(tournament.id, "score"):
            result = record_match_result(session, tournament, match, payload.winner_team_id)
    except TournamentLocked as e:
        raise _locked(e)
    except AdvancementConflict as e:
        raise HTTPException(
            status_code=409,
            detail={"message": str(e), "target_match_id": e.match_id, "slot": e.slot},
        )
    except BracketError as e:
        raise HTTPException(status_code=422, detail=str(e))

    return MatchResultResponse(
        match=MatchResponse.model_validate(match),
        target=describe_target(result["target"]),
        target_match_id=result["target_match_id"],
        updated=result["updated"],
        target_ready=result["target_ready"],
        tournament_complete=result["tournament_complete"],
    )


@router.post("/tournaments/{tournament_id}/matches/{match_id}/live", response_model=MatchResponse)
def start_match(tournament_id: int, match_id: int, session: Session = Depends(get_session)):
    """Move a ready match to live"""
    tournament = get_tournament_or_404(session, tournament_id)
    match = _get_match_or_404(session, tournament, match_id)
    try:
        return mark_match_live(session, match)
    except BracketError as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.get("/tournaments/{tournament_id}/bracket/health")
def get_bracket_health(tournament_id: int, session: Session = Depends(get_session)):
    """Validate persisted matches against the expected structure"""
    tournament = get_tournament_or_404(session, tournament_id)
    _require_bracket(tournament)
    report = bracket_health(session, tournament)
    return {
        "tournament_id": tournament.id,
        "structure": tournament_structure(tournament).to_dict(),
        **report.to_dict(),
    }


@router.post("/tournaments/{tournament_id}/bracket/repair")
def repair_bracket_endpoint(tournament_id: int, session: Session = Depends(get_session)):
    """
    Apply safe repairs: status/winner normalization and missing advancements.

    Running it twice in a row changes nothing the second time.
    """
    tournament = get_tournament_or_404(session, tournament_id)
    _require_bracket(tournament)

    try:
        with tournament_guard(tournament.id, "repair"):
            result = repair_tournament_bracket(session, tournament)
    except TournamentLocked as e:
        raise _locked(e)

    return {
        "tournament_id": tournament.id,
        "fixes": result.fixes,
        "changed_match_ids": [m.id for m in result.changed],
        "report": result.report.to_dict(),
    }
