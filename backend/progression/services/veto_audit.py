"""
Veto session health audit and administrative cleanup.

The engine never times a session out on its own; it only reports whether a
session looks stuck (in progress with no activity for longer than
VETO_STALE_MINUTES). Reset and force-complete are operator actions.
"""

from __future__ import annotations

import logging
import os
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence

from sqlmodel import Session, select

from progression.models.match import Match
from progression.models.veto import (
    ACTION_BAN,
    ACTION_PICK,
    VETO_COMPLETED,
    VETO_IN_PROGRESS,
    VETO_PENDING,
    VetoAction,
    VetoSession,
)
from progression.services.errors import InvalidMapPool
from progression.services.veto_coordinator import load_actions, session_map_pool
from progression.services.veto_sequence import generate_ban_sequence

logger = logging.getLogger(__name__)

VETO_STALE_MINUTES = int(os.getenv("VETO_STALE_MINUTES", "30"))


@dataclass
class SessionHealth:
    session_id: int
    status: str
    issues: List[str] = field(default_factory=list)
    action_count: int = 0
    expected_actions: int = 0
    is_stuck: bool = False
    last_activity: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "status": self.status,
            "issues": self.issues,
            "action_count": self.action_count,
            "expected_actions": self.expected_actions,
            "is_stuck": self.is_stuck,
            "last_activity": self.last_activity.isoformat() if self.last_activity else None,
        }


@dataclass
class VetoAuditReport:
    healthy: bool
    session_count: int
    completed_sessions: int
    stuck_session_ids: List[int]
    sessions: List[SessionHealth]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "healthy": self.healthy,
            "session_count": self.session_count,
            "completed_sessions": self.completed_sessions,
            "stuck_session_ids": self.stuck_session_ids,
            "sessions": [s.to_dict() for s in self.sessions],
        }


def assess_session(
    veto,
    actions: Sequence,
    map_pool: Optional[Sequence[str]],
    now: datetime,
    stale_after: timedelta = timedelta(minutes=VETO_STALE_MINUTES),
) -> SessionHealth:
    """Pure health check of one session against its action log."""
    ordered = sorted(actions, key=lambda a: a.order_number)
    last_activity = ordered[-1].performed_at if ordered else (veto.started_at or veto.created_at)

    health = SessionHealth(
        session_id=veto.id,
        status=veto.status,
        action_count=len(ordered),
        # N-1 bans, one pick, one side choice
        expected_actions=veto.total_maps + 1,
        last_activity=last_activity,
    )

    if veto.status == VETO_IN_PROGRESS and last_activity is not None:
        idle = now - last_activity
        if idle > stale_after:
            health.is_stuck = True
            health.issues.append(f"No activity for {int(idle.total_seconds() // 60)} minutes")

    if veto.home_team_id is None or veto.away_team_id is None:
        health.issues.append("Missing team assignments")
    elif veto.home_team_id == veto.away_team_id:
        health.issues.append("Home and away teams are the same")

    if veto.status == VETO_PENDING and ordered:
        health.issues.append(f"Pending session already has {len(ordered)} actions")

    numbers = [a.order_number for a in ordered]
    if numbers != list(range(1, len(numbers) + 1)):
        health.issues.append(f"Action order numbers are not contiguous from 1: {numbers}")

    map_counts = Counter(a.map_id for a in ordered)
    duplicates = sorted(m for m, n in map_counts.items() if n > 1)
    if duplicates:
        health.issues.append(f"Duplicate map actions detected: {', '.join(duplicates)}")

    if map_pool is not None:
        for a in ordered:
            if a.map_id not in map_pool:
                health.issues.append(f"Action contains map not in tournament pool: {a.map_id}")

    bans = [a for a in ordered if a.action == ACTION_BAN]
    picks = [a for a in ordered if a.action == ACTION_PICK]
    expected_bans = veto.total_maps - 1
    if len(bans) > expected_bans:
        health.issues.append(f"Too many bans: {len(bans)}, expected: {expected_bans}")
    if len(picks) > 1:
        health.issues.append(f"Too many picks for BO1: {len(picks)}")

    if veto.home_team_id is not None and veto.away_team_id is not None and veto.total_maps >= 2:
        sequence = generate_ban_sequence(veto.home_team_id, veto.away_team_id, veto.total_maps)
        for a in bans:
            if a.order_number <= len(sequence) and a.team_id != sequence[a.order_number - 1]:
                health.issues.append(
                    f"Ban at position {a.order_number} by team {a.team_id}, "
                    f"sequence expects team {sequence[a.order_number - 1]}"
                )

    if veto.status == VETO_COMPLETED and (not picks or picks[0].side_choice is None):
        health.issues.append("Completed session has no picked map with a side choice")

    return health


def audit_session(db: Session, veto: VetoSession, now: Optional[datetime] = None) -> SessionHealth:
    try:
        pool: Optional[List[str]] = session_map_pool(db, veto)
    except InvalidMapPool as e:
        pool = None
        pool_issue = str(e)
    else:
        pool_issue = None

    health = assess_session(veto, load_actions(db, veto.id), pool, now or datetime.utcnow())
    if pool_issue:
        health.issues.append(pool_issue)
    return health


def audit_tournament(db: Session, tournament_id: int, now: Optional[datetime] = None) -> VetoAuditReport:
    """Audit every veto session attached to the tournament's matches."""
    sessions = db.exec(
        select(VetoSession)
        .join(Match, VetoSession.match_id == Match.id)
        .where(Match.tournament_id == tournament_id)
        .order_by(VetoSession.id)
    ).all()

    now = now or datetime.utcnow()
    healths = [audit_session(db, veto, now) for veto in sessions]
    stuck = [h.session_id for h in healths if h.is_stuck]

    report = VetoAuditReport(
        healthy=not stuck and all(not h.issues for h in healths),
        session_count=len(healths),
        completed_sessions=sum(1 for h in healths if h.status == VETO_COMPLETED),
        stuck_session_ids=stuck,
        sessions=healths,
    )
    logger.info(
        "Veto audit for tournament %d: %d sessions, %d completed, %d stuck",
        tournament_id, report.session_count, report.completed_sessions, len(stuck),
    )
    return report


def force_reset(db: Session, veto: VetoSession) -> int:
    """Delete every action and return the session to pending. Returns actions removed."""
    actions = db.exec(select(VetoAction).where(VetoAction.veto_session_id == veto.id)).all()
    for action in actions:
        db.delete(action)
    veto.status = VETO_PENDING
    veto.current_turn_team_id = None
    veto.started_at = None
    veto.completed_at = None
    db.add(veto)
    db.commit()
    logger.info("Veto session %d reset by operator (%d actions removed)", veto.id, len(actions))
    return len(actions)


def force_complete(db: Session, veto: VetoSession) -> VetoSession:
    """Mark a stuck session completed without further actions."""
    veto.status = VETO_COMPLETED
    veto.completed_at = datetime.utcnow()
    veto.current_turn_team_id = None
    db.add(veto)
    db.commit()
    db.refresh(veto)
    logger.info("Veto session %d force-completed by operator", veto.id)
    return veto
