"""
Team API Routes
Seeded teams are registered before the bracket is generated.
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, field_validator
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from progression.database import get_session
from progression.models.team import Team
from progression.routes.tournaments import get_tournament_or_404

router = APIRouter()


# ============================================================================
# Request/Response Models
# ============================================================================


class TeamCreateRequest(BaseModel):
    name: str
    seed: int
    weight: Optional[float] = None

    @field_validator("seed")
    @classmethod
    def validate_seed(cls, v):
        if v < 1:
            raise ValueError("seed must be >= 1")
        return v


class TeamResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    tournament_id: int
    name: str
    seed: int
    weight: Optional[float] = None
    created_at: datetime


# ============================================================================
# Endpoints
# ============================================================================


@router.get("/tournaments/{tournament_id}/teams", response_model=List[TeamResponse])
def get_teams(tournament_id: int, session: Session = Depends(get_session)):
    """Get all teams for a tournament, by seed"""
    get_tournament_or_404(session, tournament_id)
    return session.exec(
        select(Team).where(Team.tournament_id == tournament_id).order_by(Team.seed, Team.id)
    ).all()


@router.post("/tournaments/{tournament_id}/teams", response_model=TeamResponse, status_code=201)
def create_team(tournament_id: int, request: TeamCreateRequest, session: Session = Depends(get_session)):
    """
    Register a team.

    Constraints:
    - (tournament_id, seed) must be unique
    - (tournament_id, name) must be unique
    - no new teams once the tournament is live
    """
    tournament = get_tournament_or_404(session, tournament_id)
    if tournament.status in ("live", "completed"):
        raise HTTPException(status_code=422, detail=f"Tournament is {tournament.status}; teams are locked")

    team = Team(tournament_id=tournament_id, name=request.name, seed=request.seed, weight=request.weight)
    try:
        session.add(team)
        session.commit()
    except IntegrityError as e:
        session.rollback()
        if "seed" in str(e.orig):
            raise HTTPException(
                status_code=409, detail=f"Team with seed {request.seed} already exists for this tournament"
            )
        raise HTTPException(
            status_code=409, detail=f"Team with name '{request.name}' already exists for this tournament"
        )
    session.refresh(team)
    return team
