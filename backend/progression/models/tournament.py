from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import JSON
from sqlmodel import Column, Field, Relationship, SQLModel

if TYPE_CHECKING:
    from progression.models.match import Match
    from progression.models.team import Team

FORMAT_SINGLE_ELIMINATION = "single_elimination"
FORMAT_GROUP_STAGE_KNOCKOUT = "group_stage_knockout"
FORMAT_ROUND_ROBIN = "round_robin"
FORMAT_SWISS = "swiss"

TOURNAMENT_FORMATS = (
    FORMAT_SINGLE_ELIMINATION,
    FORMAT_GROUP_STAGE_KNOCKOUT,
    FORMAT_ROUND_ROBIN,
    FORMAT_SWISS,
)

# Lifecycle order; status only moves forward
TOURNAMENT_STATUSES = ("draft", "registration", "live", "completed")


class Tournament(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    format: str = Field(default=FORMAT_SINGLE_ELIMINATION)
    status: str = Field(default="draft")
    # Team count the bracket was generated for; never recomputed from active teams
    team_count: int = Field(default=0)
    # Ordered map identifiers; validated into a MapPool where read
    map_pool: Optional[List[str]] = Field(default=None, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow, sa_column_kwargs={"onupdate": datetime.utcnow})

    # Relationships
    teams: List["Team"] = Relationship(back_populates="tournament")
    matches: List["Match"] = Relationship(back_populates="tournament")
