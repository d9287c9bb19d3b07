import pytest
from fastapi.testclient import TestClient

MAPS = ["bind", "haven", "split", "lotus", "ascent"]


@pytest.fixture
def match_ids(client: TestClient):
    """Tournament with a generated 2-team bracket; returns (match_id, team_a, team_b, tournament_id)."""
    tid = client.post("/api/tournaments", json={"name": "Veto Cup", "map_pool": MAPS}).json()["id"]
    for seed in (1, 2):
        client.post(f"/api/tournaments/{tid}/teams", json={"name": f"T{seed}", "seed": seed})
    match = client.post(f"/api/tournaments/{tid}/bracket/generate").json()["matches"][0]
    return match["id"], match["team_a_id"], match["team_b_id"], tid


@pytest.fixture
def veto(client: TestClient, match_ids):
    match_id, home, away, tid = match_ids
    r = client.post(
        f"/api/matches/{match_id}/veto",
        json={"home_team_id": home, "away_team_id": away, "start": True},
    )
    assert r.status_code == 201
    return r.json()["session_id"], home, away, tid


def _ban(client, session_id, team_id, map_id, **extra):
    return client.post(
        f"/api/veto/sessions/{session_id}/actions",
        json={"team_id": team_id, "map_id": map_id, **extra},
    )


def test_create_session_with_roll(client: TestClient, match_ids):
    match_id, a, b, _ = match_ids
    r = client.post(f"/api/matches/{match_id}/veto", json={"roll_seed": "coin"})
    assert r.status_code == 201
    data = r.json()
    assert {data["home_team_id"], data["away_team_id"]} == {a, b}
    assert data["roll_seed"] == "coin"
    assert data["ban_sequence"] == [data["home_team_id"], data["away_team_id"], data["away_team_id"], data["home_team_id"]]
    assert data["state"]["status"] == "pending"

    assert client.post(f"/api/matches/{match_id}/veto").status_code == 409
    started = client.post(f"/api/veto/sessions/{data['session_id']}/start")
    assert started.json()["current_turn_team_id"] == data["home_team_id"]
    assert client.post(f"/api/veto/sessions/{data['session_id']}/start").status_code == 409


def test_create_session_for_missing_match(client: TestClient):
    assert client.post("/api/matches/999/veto").status_code == 404


def test_state_is_personalised(client: TestClient, veto):
    sid, home, away, _ = veto
    home_view = client.get(f"/api/veto/sessions/{sid}/state", params={"team_id": home}).json()
    away_view = client.get(f"/api/veto/sessions/{sid}/state", params={"team_id": away}).json()
    assert home_view["can_act"] is True
    assert away_view["can_act"] is False
    assert client.get("/api/veto/sessions/999/state").status_code == 404


def test_full_veto_over_http(client: TestClient, veto):
    sid, home, away, _ = veto

    out_of_turn = _ban(client, sid, away, "bind")
    assert out_of_turn.status_code == 409
    assert out_of_turn.json()["detail"]["code"] == "not_your_turn"

    assert _ban(client, sid, home, "bind", expected_position=1).status_code == 200
    stale = _ban(client, sid, away, "haven", expected_position=1)
    assert stale.status_code == 409
    assert stale.json()["detail"]["code"] == "position_taken"

    assert _ban(client, sid, away, "bind").status_code == 422
    assert _ban(client, sid, away, "haven").status_code == 200
    assert _ban(client, sid, away, "split").status_code == 200
    last = _ban(client, sid, home, "lotus").json()
    assert last["phase"] == "side_choice"
    assert last["picked_map"] == "ascent"

    bad_side = client.post(f"/api/veto/sessions/{sid}/side", json={"team_id": home, "side": "north"})
    assert bad_side.status_code == 422
    done = client.post(f"/api/veto/sessions/{sid}/side", json={"team_id": home, "side": "attack"}).json()
    assert done["status"] == "completed"
    assert done["actions"][-1]["side_choice"] == "attack"

    health = client.get(f"/api/veto/sessions/{sid}/health").json()
    assert health["issues"] == []
    assert health["action_count"] == 5


def test_fix_turn_endpoint(client: TestClient, veto):
    sid, home, _, _ = veto
    assert client.post(f"/api/veto/sessions/{sid}/fix-turn").status_code == 409
    assert client.post("/api/veto/sessions/999/fix-turn").status_code == 404


def test_reset_and_force_complete(client: TestClient, veto):
    sid, home, _, tid = veto
    _ban(client, sid, home, "bind")

    reset = client.post(f"/api/veto/sessions/{sid}/reset").json()
    assert reset["actions_removed"] == 1
    assert reset["state"]["status"] == "pending"

    audit = client.get(f"/api/tournaments/{tid}/veto/audit").json()
    assert audit["session_count"] == 1
    assert audit["stuck_session_ids"] == []

    forced = client.post(f"/api/veto/sessions/{sid}/force-complete").json()
    assert forced["status"] == "completed"


def test_websocket_snapshot_and_push(client: TestClient, veto):
    sid, home, away, _ = veto
    with client.websocket_connect(f"/api/ws/veto/sessions/{sid}?team_id={away}") as ws:
        snapshot = ws.receive_json()
        assert snapshot["event"] == "snapshot"
        assert snapshot["state"]["current_position"] == 1
        assert snapshot["state"]["can_act"] is False

        assert _ban(client, sid, home, "bind").status_code == 200
        pushed = ws.receive_json()
        assert pushed["event"] == "action"
        assert pushed["state"]["current_position"] == 2
        assert pushed["state"]["can_act"] is True

        ws.send_text("refresh")
        refreshed = ws.receive_json()
        assert refreshed["event"] == "refresh"
        assert refreshed["state"]["remaining_maps"] == ["haven", "split", "lotus", "ascent"]
