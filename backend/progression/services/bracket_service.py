"""
Bracket persistence: generation, match completion with advancement, health and repair.

The pure engine (bracket_structure, bracket_medic) decides; this module loads
and writes Match rows. Winner writes are idempotent: writing the same team to
the same slot again is a no-op.
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional

from sqlmodel import Session, select

from progression.models.match import MATCH_COMPLETED, MATCH_LIVE, MATCH_PENDING, Match
from progression.models.team import Team
from progression.models.tournament import FORMAT_ROUND_ROBIN, FORMAT_SWISS, Tournament
from progression.models.veto import VetoAction, VetoSession
from progression.services.bracket_medic import BracketHealthReport, RepairResult, repair_bracket, validate_bracket
from progression.services.bracket_structure import (
    SLOT_A,
    AdvancementTarget,
    BracketStructure,
    SeededTeam,
    calculate_bracket_structure,
    find_next_match_position,
    is_tournament_final,
    plan_single_elimination,
)
from progression.services.errors import AdvancementConflict, BracketError

logger = logging.getLogger(__name__)


def load_matches(session: Session, tournament_id: int) -> List[Match]:
    return list(
        session.exec(
            select(Match)
            .where(Match.tournament_id == tournament_id)
            .order_by(Match.round_number, Match.match_number)
        ).all()
    )


def tournament_structure(tournament: Tournament) -> BracketStructure:
    return calculate_bracket_structure(tournament.team_count)


def generate_bracket(session: Session, tournament: Tournament, rebuild: bool = False) -> List[Match]:
    """
    Create every Match for a single-elimination bracket from the tournament's seeded teams.

    Records team_count on the tournament; the structure is recomputed from it
    from then on. With rebuild=True existing matches (and their veto sessions)
    are deleted first.

    Raises:
        BracketError: unsupported format, or matches exist and rebuild is False
        InvalidTeamCount: fewer than 2 teams
    """
    if tournament.format in (FORMAT_ROUND_ROBIN, FORMAT_SWISS):
        raise BracketError(f"Bracket generation does not support format '{tournament.format}'")

    existing = load_matches(session, tournament.id)
    if existing and not rebuild:
        raise BracketError(
            f"Tournament {tournament.id} already has {len(existing)} matches; pass rebuild to regenerate"
        )

    teams = session.exec(select(Team).where(Team.tournament_id == tournament.id)).all()
    plans = plan_single_elimination([SeededTeam(team_id=t.id, seed=t.seed) for t in teams])

    if existing:
        _delete_matches(session, existing)

    now = datetime.utcnow()
    created: List[Match] = []
    for plan in plans:
        match = Match(
            tournament_id=tournament.id,
            round_number=plan.round_number,
            match_number=plan.match_number,
            team_a_id=plan.team_a_id,
            team_b_id=plan.team_b_id,
            status=plan.status,
            winner_team_id=plan.winner_team_id,
            completed_at=now if plan.status == MATCH_COMPLETED else None,
        )
        session.add(match)
        created.append(match)

    tournament.team_count = len(teams)
    session.add(tournament)
    session.commit()
    for match in created:
        session.refresh(match)

    logger.info(
        "Generated bracket for tournament %d: %d teams, %d matches (rebuild=%s)",
        tournament.id, len(teams), len(created), rebuild,
    )
    return created


def _delete_matches(session: Session, matches: List[Match]) -> None:
    match_ids = [m.id for m in matches]
    vetos = session.exec(select(VetoSession).where(VetoSession.match_id.in_(match_ids))).all()
    for veto in vetos:
        for action in session.exec(select(VetoAction).where(VetoAction.veto_session_id == veto.id)).all():
            session.delete(action)
        session.delete(veto)
    session.flush()
    for match in matches:
        session.delete(match)
    session.flush()


def _slot_attr(slot: str) -> str:
    return "team_a_id" if slot == SLOT_A else "team_b_id"


def _advancement_target(match: Match, structure: BracketStructure) -> Optional[AdvancementTarget]:
    try:
        return find_next_match_position(match.round_number, match.match_number, structure)
    except ValueError as e:
        raise BracketError(f"Match {match.id} is outside the bracket structure: {e}; run a bracket health check")


def apply_advancement(
    session: Session,
    match: Match,
    structure: BracketStructure,
) -> Dict:
    """
    Write a completed match's winner into its target slot.

    Returns dict with target (AdvancementTarget or None), target_match_id,
    updated (bool), target_ready (bool). Commits only when a slot changed.

    Raises:
        AdvancementConflict: target slot holds a different team, or target missing
        BracketError: match position does not exist in the bracket structure
    """
    target = _advancement_target(match, structure)
    if target is None:
        return {"target": None, "target_match_id": None, "updated": False, "target_ready": False}

    down = session.exec(
        select(Match).where(
            Match.tournament_id == match.tournament_id,
            Match.round_number == target.round_number,
            Match.match_number == target.match_number,
        )
    ).first()
    if down is None:
        raise AdvancementConflict(
            f"Round {target.round_number} Match {target.match_number} not found for advancement",
            slot=target.slot,
        )

    attr = _slot_attr(target.slot)
    current = getattr(down, attr)
    updated = False
    if current is None:
        setattr(down, attr, match.winner_team_id)
        session.add(down)
        session.commit()
        session.refresh(down)
        updated = True
        logger.info(
            "Advanced team %d from R%dM%d to R%dM%d slot %s",
            match.winner_team_id, match.round_number, match.match_number,
            target.round_number, target.match_number, target.slot.upper(),
        )
    elif current != match.winner_team_id:
        logger.warning(
            "Advancement conflict: R%dM%d slot %s holds team %d, winner is %d",
            target.round_number, target.match_number, target.slot.upper(), current, match.winner_team_id,
        )
        raise AdvancementConflict(
            f"Round {target.round_number} Match {target.match_number} slot {target.slot.upper()} "
            f"already holds team {current}",
            match_id=down.id,
            slot=target.slot,
        )

    return {
        "target": target,
        "target_match_id": down.id,
        "updated": updated,
        "target_ready": down.is_ready,
    }


def record_match_result(session: Session, tournament: Tournament, match: Match, winner_team_id: int) -> Dict:
    """
    Complete *match* with *winner_team_id* and advance the winner.

    Re-submitting the same winner for a completed match is a no-op retry
    (advancement is re-applied idempotently). A different winner for a
    completed match is refused; correcting results is a repair job.
    """
    if winner_team_id not in (match.team_a_id, match.team_b_id):
        raise BracketError(f"Team {winner_team_id} is not playing in match {match.id}")

    structure = tournament_structure(tournament)
    # Refuse before completing a match the bracket has no slot for
    _advancement_target(match, structure)

    if match.status == MATCH_COMPLETED:
        if match.winner_team_id != winner_team_id:
            raise BracketError(
                f"Match {match.id} is already completed with winner {match.winner_team_id}"
            )
    else:
        if match.team_a_id is None or match.team_b_id is None:
            raise BracketError(f"Match {match.id} does not have both teams assigned")
        match.winner_team_id = winner_team_id
        match.status = MATCH_COMPLETED
        match.completed_at = datetime.utcnow()
        session.add(match)
        session.commit()
        session.refresh(match)

    result = apply_advancement(session, match, structure)
    result["tournament_complete"] = is_tournament_final(match.round_number, match.match_number, structure)
    return result


def mark_match_live(session: Session, match: Match) -> Match:
    """Move a ready match to live. Both slots must be filled."""
    if match.status == MATCH_LIVE:
        return match
    if not match.is_ready:
        raise BracketError(
            f"Match {match.id} cannot go live: status '{match.status}', "
            f"teams {match.team_a_id} vs {match.team_b_id}"
        )
    match.status = MATCH_LIVE
    session.add(match)
    session.commit()
    session.refresh(match)
    return match


def bracket_health(session: Session, tournament: Tournament) -> BracketHealthReport:
    matches = load_matches(session, tournament.id)
    return validate_bracket(matches, tournament_structure(tournament))


def repair_tournament_bracket(session: Session, tournament: Tournament) -> RepairResult:
    """Apply the medic's repairs to persisted matches. Caller holds the tournament guard."""
    matches = load_matches(session, tournament.id)
    result = repair_bracket(matches, tournament_structure(tournament))

    now = datetime.utcnow()
    for match in result.changed:
        if match.status == MATCH_COMPLETED and match.completed_at is None:
            match.completed_at = now
        elif match.status == MATCH_PENDING:
            match.completed_at = None
        session.add(match)
    if result.changed:
        session.commit()

    logger.info(
        "Repaired bracket for tournament %d: %d fixes, %d issues remain",
        tournament.id, len(result.fixes), len(result.report.issues),
    )
    return result


def ready_matches(session: Session, tournament_id: int) -> List[Match]:
    return [m for m in load_matches(session, tournament_id) if m.is_ready]


def describe_target(target: Optional[AdvancementTarget]) -> Optional[Dict]:
    if target is None:
        return None
    return {"round_number": target.round_number, "match_number": target.match_number, "slot": target.slot}
