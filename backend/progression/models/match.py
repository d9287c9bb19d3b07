from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from progression.models.tournament import Tournament

MATCH_PENDING = "pending"
MATCH_LIVE = "live"
MATCH_COMPLETED = "completed"


class Match(SQLModel, table=True):
    __table_args__ = (
        SAUniqueConstraint("tournament_id", "round_number", "match_number", name="uq_match_round_number"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    round_number: int  # 1 = earliest
    match_number: int  # 1-based within round
    best_of: int = Field(default=1)

    # Slots are filled by seeding (round 1) or advancement (later rounds)
    team_a_id: Optional[int] = Field(default=None, foreign_key="team.id")
    team_b_id: Optional[int] = Field(default=None, foreign_key="team.id")

    status: str = Field(default=MATCH_PENDING)  # pending | live | completed
    winner_team_id: Optional[int] = Field(default=None, foreign_key="team.id")
    created_at: datetime = Field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = Field(default=None)

    tournament: "Tournament" = Relationship(back_populates="matches")

    @property
    def is_ready(self) -> bool:
        return self.status == MATCH_PENDING and self.team_a_id is not None and self.team_b_id is not None
