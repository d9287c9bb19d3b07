from datetime import datetime
from typing import List, Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

VETO_PENDING = "pending"
VETO_IN_PROGRESS = "in_progress"
VETO_COMPLETED = "completed"

ACTION_BAN = "ban"
ACTION_PICK = "pick"

SIDE_ATTACK = "attack"
SIDE_DEFEND = "defend"


class VetoSession(SQLModel, table=True):
    __table_args__ = (SAUniqueConstraint("match_id", name="uq_veto_session_match"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    match_id: int = Field(foreign_key="match.id", index=True)
    home_team_id: Optional[int] = Field(default=None, foreign_key="team.id")
    away_team_id: Optional[int] = Field(default=None, foreign_key="team.id")
    status: str = Field(default=VETO_PENDING)  # pending | in_progress | completed
    # Last client-written turn pointer; the action log is authoritative
    current_turn_team_id: Optional[int] = Field(default=None, foreign_key="team.id")
    total_maps: int = Field(default=7)
    roll_seed: Optional[str] = Field(default=None)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    started_at: Optional[datetime] = Field(default=None)
    completed_at: Optional[datetime] = Field(default=None)
    updated_at: datetime = Field(default_factory=datetime.utcnow, sa_column_kwargs={"onupdate": datetime.utcnow})

    actions: List["VetoAction"] = Relationship(back_populates="session")


class VetoAction(SQLModel, table=True):
    __table_args__ = (
        # One action per sequence position: the conditional append
        SAUniqueConstraint("veto_session_id", "order_number", name="uq_veto_action_position"),
        SAUniqueConstraint("veto_session_id", "map_id", name="uq_veto_action_map"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    veto_session_id: int = Field(foreign_key="vetosession.id", index=True)
    order_number: int  # 1-based, contiguous
    action: str  # ban | pick
    team_id: Optional[int] = Field(default=None, foreign_key="team.id")  # null for the uncontested pick
    map_id: str
    side_choice: Optional[str] = Field(default=None)  # attack | defend
    performed_by: Optional[str] = Field(default=None)
    performed_at: datetime = Field(default_factory=datetime.utcnow)

    session: "VetoSession" = Relationship(back_populates="actions")
