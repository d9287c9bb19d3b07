"""Veto session health audit and operator cleanup."""
from datetime import datetime, timedelta
from types import SimpleNamespace

from sqlmodel import Session

from progression.models.veto import VetoAction
from progression.services.bracket_service import generate_bracket
from progression.services.veto_audit import (
    assess_session,
    audit_session,
    audit_tournament,
    force_complete,
    force_reset,
)
from progression.services.veto_coordinator import create_session, load_actions, load_state, start_session, submit_action

POOL = ["m1", "m2", "m3", "m4", "m5"]
NOW = datetime(2026, 10, 19, 12, 0, 0)


def _veto(status="in_progress", home=1, away=2, total_maps=5, started_at=NOW):
    return SimpleNamespace(
        id=9,
        status=status,
        home_team_id=home,
        away_team_id=away,
        total_maps=total_maps,
        started_at=started_at,
        created_at=started_at,
    )


def _action(order, action, team, map_id, minutes_ago=1, side=None):
    return SimpleNamespace(
        order_number=order,
        action=action,
        team_id=team,
        map_id=map_id,
        side_choice=side,
        performed_at=NOW - timedelta(minutes=minutes_ago),
    )


def test_clean_session_has_no_issues():
    actions = [_action(1, "ban", 1, "m1"), _action(2, "ban", 2, "m2")]
    health = assess_session(_veto(), actions, POOL, NOW)
    assert health.issues == []
    assert not health.is_stuck
    assert health.action_count == 2
    assert health.expected_actions == 6


def test_idle_in_progress_session_is_stuck():
    actions = [_action(1, "ban", 1, "m1", minutes_ago=45)]
    health = assess_session(_veto(), actions, POOL, NOW, stale_after=timedelta(minutes=30))
    assert health.is_stuck
    assert health.issues == ["No activity for 45 minutes"]


def test_completed_session_is_never_stuck():
    actions = [
        _action(1, "ban", 1, "m1", 90),
        _action(2, "ban", 2, "m2", 90),
        _action(3, "ban", 2, "m3", 90),
        _action(4, "ban", 1, "m4", 90),
        _action(5, "pick", None, "m5", 90, side="attack"),
    ]
    health = assess_session(_veto(status="completed"), actions, POOL, NOW)
    assert not health.is_stuck
    assert health.issues == []


def test_integrity_problems_are_reported():
    actions = [
        _action(1, "ban", 2, "m1"),
        _action(2, "ban", 2, "m1"),
        _action(4, "ban", 1, "dust2"),
    ]
    issues = assess_session(_veto(), actions, POOL, NOW).issues

    assert any(i.startswith("Action order numbers are not contiguous") for i in issues)
    assert "Duplicate map actions detected: m1" in issues
    assert "Action contains map not in tournament pool: dust2" in issues
    assert "Ban at position 1 by team 2, sequence expects team 1" in issues


def test_team_assignment_problems_are_reported():
    assert "Home and away teams are the same" in assess_session(_veto(away=1), [], POOL, NOW).issues
    assert "Missing team assignments" in assess_session(_veto(away=None), [], POOL, NOW).issues


def test_too_many_bans_and_picks():
    actions = [_action(i, "ban", None, f"x{i}") for i in range(1, 6)]
    actions += [_action(6, "pick", None, "y1"), _action(7, "pick", None, "y2")]
    issues = assess_session(_veto(), actions, None, NOW).issues
    assert "Too many bans: 5, expected: 4" in issues
    assert "Too many picks for BO1: 2" in issues


def test_audit_tournament_lists_stuck_sessions(session: Session, make_tournament):
    tournament = make_tournament(4)
    matches = generate_bracket(session, tournament)
    stuck, _ = create_session(session, matches[0], roll_seed="a")
    fresh, _ = create_session(session, matches[1], roll_seed="b")
    start_session(session, stuck.id)
    start_session(session, fresh.id)

    later = datetime.utcnow() + timedelta(minutes=120)
    report = audit_tournament(session, tournament.id, now=later)
    assert report.session_count == 2
    assert set(report.stuck_session_ids) == {stuck.id, fresh.id}
    assert not report.healthy

    report = audit_tournament(session, tournament.id)
    assert report.stuck_session_ids == []
    assert report.healthy
    assert report.to_dict()["session_count"] == 2


def test_force_reset_clears_actions(session: Session, ready_match):
    veto, _ = create_session(session, ready_match, ready_match.team_a_id, ready_match.team_b_id)
    start_session(session, veto.id)
    submit_action(session, veto.id, "ascent", None, ready_match.team_a_id)

    assert force_reset(session, veto) == 1
    assert load_actions(session, veto.id) == []
    state = load_state(session, veto.id)
    assert state.status == "pending"
    assert state.current_turn_team_id is None
    assert audit_session(session, veto).issues == []

    # A reset session can be started again from position 1
    assert start_session(session, veto.id).current_position == 1


def test_force_complete(session: Session, ready_match):
    veto, _ = create_session(session, ready_match, ready_match.team_a_id, ready_match.team_b_id)
    start_session(session, veto.id)

    force_complete(session, veto)
    state = load_state(session, veto.id, viewer_team_id=ready_match.team_a_id)
    assert state.status == "completed"
    assert not state.can_act
    assert session.get(VetoAction, 1) is None
