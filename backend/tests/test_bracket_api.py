from fastapi.testclient import TestClient
from sqlmodel import Session

from progression.models.match import Match
from progression.services.locks import tournament_guard


def _tournament_with_teams(client: TestClient, count: int) -> int:
    tid = client.post("/api/tournaments", json={"name": "Bracket Cup", "map_pool": ["bind", "haven"]}).json()["id"]
    for seed in range(1, count + 1):
        client.post(f"/api/tournaments/{tid}/teams", json={"name": f"T{seed}", "seed": seed})
    return tid


def _positions(matches):
    return {(m["round_number"], m["match_number"]): m for m in matches}


def test_structure_endpoint(client: TestClient):
    r = client.get("/api/bracket/structure", params={"team_count": 6})
    assert r.status_code == 200
    assert r.json() == {
        "team_count": 6,
        "total_rounds": 3,
        "matches_per_round": [4, 2, 1],
        "total_matches": 7,
        "is_power_of_two": False,
        "first_round_byes": 2,
    }
    assert client.get("/api/bracket/structure", params={"team_count": 1}).status_code == 422


def test_generate_and_list(client: TestClient):
    tid = _tournament_with_teams(client, 6)
    r = client.post(f"/api/tournaments/{tid}/bracket/generate")
    assert r.status_code == 201
    body = r.json()
    assert body["structure"]["total_matches"] == 7
    assert len(body["matches"]) == 7

    again = client.post(f"/api/tournaments/{tid}/bracket/generate")
    assert again.status_code == 422
    rebuilt = client.post(f"/api/tournaments/{tid}/bracket/generate", json={"rebuild": True})
    assert rebuilt.status_code == 201

    listed = client.get(f"/api/tournaments/{tid}/bracket/matches").json()
    assert [(m["round_number"], m["match_number"]) for m in listed] == [
        (1, 1), (1, 2), (1, 3), (1, 4), (2, 1), (2, 2), (3, 1)
    ]
    ready = client.get(f"/api/tournaments/{tid}/bracket/matches", params={"ready_only": True}).json()
    assert len(ready) == 2


def test_play_through_to_champion(client: TestClient):
    tid = _tournament_with_teams(client, 4)
    matches = _positions(client.post(f"/api/tournaments/{tid}/bracket/generate").json()["matches"])

    m1, m2 = matches[(1, 1)], matches[(1, 2)]
    r = client.post(f"/api/tournaments/{tid}/matches/{m1['id']}/result", json={"winner_team_id": m1["team_a_id"]})
    assert r.status_code == 200
    data = r.json()
    assert data["target"] == {"round_number": 2, "match_number": 1, "slot": "a"}
    assert data["updated"] is True
    assert data["target_ready"] is False

    r = client.post(f"/api/tournaments/{tid}/matches/{m2['id']}/result", json={"winner_team_id": m2["team_b_id"]})
    assert r.json()["target"]["slot"] == "b"
    assert r.json()["target_ready"] is True

    final = _positions(client.get(f"/api/tournaments/{tid}/bracket/matches").json())[(2, 1)]
    assert (final["team_a_id"], final["team_b_id"]) == (m1["team_a_id"], m2["team_b_id"])
    assert client.post(f"/api/tournaments/{tid}/matches/{final['id']}/live").json()["status"] == "live"

    r = client.post(f"/api/tournaments/{tid}/matches/{final['id']}/result", json={"winner_team_id": m2["team_b_id"]})
    assert r.json()["tournament_complete"] is True
    assert r.json()["target"] is None

    health = client.get(f"/api/tournaments/{tid}/bracket/health").json()
    assert health["ok"] is True
    assert health["champion_team_id"] == m2["team_b_id"]


def test_result_errors(client: TestClient, session: Session):
    tid = _tournament_with_teams(client, 4)
    matches = _positions(client.post(f"/api/tournaments/{tid}/bracket/generate").json()["matches"])
    m1, final = matches[(1, 1)], matches[(2, 1)]

    assert client.post(f"/api/tournaments/{tid}/matches/9999/result", json={"winner_team_id": 1}).status_code == 404
    outsider = client.post(
        f"/api/tournaments/{tid}/matches/{m1['id']}/result", json={"winner_team_id": matches[(1, 2)]["team_a_id"]}
    )
    assert outsider.status_code == 422
    assert client.post(f"/api/tournaments/{tid}/matches/{final['id']}/live").status_code == 422

    target = session.get(Match, final["id"])
    target.team_a_id = m1["team_b_id"]
    session.add(target)
    session.commit()

    conflict = client.post(
        f"/api/tournaments/{tid}/matches/{m1['id']}/result", json={"winner_team_id": m1["team_a_id"]}
    )
    assert conflict.status_code == 409
    assert conflict.json()["detail"]["target_match_id"] == final["id"]


def test_health_and_repair(client: TestClient, session: Session):
    tid = _tournament_with_teams(client, 4)
    assert client.get(f"/api/tournaments/{tid}/bracket/health").status_code == 422

    matches = _positions(client.post(f"/api/tournaments/{tid}/bracket/generate").json()["matches"])
    m1 = session.get(Match, matches[(1, 1)]["id"])
    m1.status, m1.winner_team_id = "completed", m1.team_a_id
    session.add(m1)
    session.commit()

    health = client.get(f"/api/tournaments/{tid}/bracket/health").json()
    assert health["ok"] is False
    assert [i["code"] for i in health["issues"]] == ["ADVANCEMENT_MISMATCH"]

    repaired = client.post(f"/api/tournaments/{tid}/bracket/repair").json()
    assert len(repaired["fixes"]) == 1
    assert repaired["changed_match_ids"] == [matches[(2, 1)]["id"]]
    assert repaired["report"]["ok"] is True

    second = client.post(f"/api/tournaments/{tid}/bracket/repair").json()
    assert second["fixes"] == []
    assert second["changed_match_ids"] == []


def test_locked_tournament_rejects_writes(client: TestClient):
    tid = _tournament_with_teams(client, 4)
    matches = _positions(client.post(f"/api/tournaments/{tid}/bracket/generate").json()["matches"])
    m1 = matches[(1, 1)]

    with tournament_guard(tid, "repair"):
        r = client.post(f"/api/tournaments/{tid}/matches/{m1['id']}/result", json={"winner_team_id": m1["team_a_id"]})
        assert r.status_code == 423
        assert r.json()["detail"]["holder"] == "repair"
        assert client.post(f"/api/tournaments/{tid}/bracket/repair").status_code == 423

    assert client.post(f"/api/tournaments/{tid}/bracket/repair").status_code == 200


def test_result_for_match_outside_structure_is_422(client: TestClient, session: Session):
    tid = _tournament_with_teams(client, 4)
    matches = _positions(client.post(f"/api/tournaments/{tid}/bracket/generate").json()["matches"])
    m1 = matches[(1, 1)]
    stray = Match(tournament_id=tid, round_number=3, match_number=1, team_a_id=m1["team_a_id"], team_b_id=m1["team_b_id"])
    session.add(stray)
    session.commit()
    session.refresh(stray)

    r = client.post(f"/api/tournaments/{tid}/matches/{stray.id}/result", json={"winner_team_id": m1["team_a_id"]})
    assert r.status_code == 422
    assert "outside the bracket structure" in r.json()["detail"]
