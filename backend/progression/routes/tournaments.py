"""
Tournament API Routes
Create tournaments, read them, and move them through their lifecycle.
"""

import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, field_validator
from sqlmodel import Session

from progression.database import get_session
from progression.models.tournament import (
    FORMAT_SINGLE_ELIMINATION,
    TOURNAMENT_FORMATS,
    TOURNAMENT_STATUSES,
    Tournament,
)
from progression.services.bracket_service import bracket_health, load_matches
from progression.services.errors import InvalidMapPool
from progression.services.veto_sequence import validate_map_pool

logger = logging.getLogger(__name__)

router = APIRouter()


class TournamentCreate(BaseModel):
    name: str
    format: str = FORMAT_SINGLE_ELIMINATION
    map_pool: Optional[List[str]] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not v or not v.strip():
            raise ValueError("name is required")
        return v.strip()

    @field_validator("format")
    @classmethod
    def validate_format(cls, v):
        if v not in TOURNAMENT_FORMATS:
            raise ValueError(f"format must be one of {', '.join(TOURNAMENT_FORMATS)}")
        return v

    @field_validator("map_pool")
    @classmethod
    def validate_pool(cls, v):
        if v is None:
            return None
        try:
            return validate_map_pool(v)
        except InvalidMapPool as e:
            raise ValueError(str(e))


class TournamentStatusUpdate(BaseModel):
    status: str


class TournamentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    format: str
    status: str
    team_count: int
    map_pool: Optional[List[str]] = None
    created_at: datetime
    updated_at: datetime


def get_tournament_or_404(session: Session, tournament_id: int) -> Tournament:
    tournament = session.get(Tournament, tournament_id)
    if not tournament:
        raise HTTPException(status_code=404, detail="Tournament not found")
    return tournament


@router.post("/tournaments", response_model=TournamentResponse, status_code=201)
def create_tournament(payload: TournamentCreate, session: Session = Depends(get_session)):
    """Create a tournament in draft status"""
    tournament = Tournament(**payload.model_dump())
    session.add(tournament)
    session.commit()
    session.refresh(tournament)
    logger.info("Created tournament %d '%s' (%s)", tournament.id, tournament.name, tournament.format)
    return tournament


@router.get("/tournaments/{tournament_id}", response_model=TournamentResponse)
def get_tournament(tournament_id: int, session: Session = Depends(get_session)):
    """Get a tournament by ID"""
    return get_tournament_or_404(session, tournament_id)


@router.patch("/tournaments/{tournament_id}/status", response_model=TournamentResponse)
def update_tournament_status(
    tournament_id: int,
    payload: TournamentStatusUpdate,
    session: Session = Depends(get_session),
):
    """
    Move a tournament forward through draft -> registration -> live -> completed.

    Going live requires a generated bracket that validates without errors.
    """
    tournament = get_tournament_or_404(session, tournament_id)

    if payload.status not in TOURNAMENT_STATUSES:
        raise HTTPException(status_code=422, detail=f"Invalid status: {payload.status}")

    current_index = TOURNAMENT_STATUSES.index(tournament.status)
    new_index = TOURNAMENT_STATUSES.index(payload.status)
    if new_index == current_index:
        return tournament
    if new_index < current_index:
        raise HTTPException(
            status_code=422,
            detail=f"Cannot move tournament from '{tournament.status}' back to '{payload.status}'",
        )

    if payload.status == "live":
        if not load_matches(session, tournament.id):
            raise HTTPException(status_code=422, detail="Cannot go live before the bracket is generated")
        report = bracket_health(session, tournament)
        if report.has_errors:
            raise HTTPException(
                status_code=422,
                detail={
                    "message": "Bracket has errors; repair it before going live",
                    "issues": report.to_dict()["issues"],
                },
            )

    previous = tournament.status
    tournament.status = payload.status
    tournament.updated_at = datetime.utcnow()
    session.add(tournament)
    session.commit()
    session.refresh(tournament)

    logger.info("Tournament %d status %s -> %s", tournament.id, previous, tournament.status)
    return tournament
