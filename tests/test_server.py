from __future__ import annotations

import random
from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient

from agents.random_agent import play_turn
from server.app import GAMES, app


@pytest.fixture()
def client() -> Generator[TestClient, None, None]:
    with TestClient(app) as c:
        yield c
    GAMES.clear()


def _auth(key: str) -> dict:
    return {"Authorization": f"Bearer {key}"}


def _create(client: TestClient, players: list[dict], seed: int = 1) -> dict:
    r = client.post("/games", json={"players": players, "seed": seed})
    assert r.status_code == 200, r.text
    return r.json()


def test_create_game_issues_keys_for_human_seats(client: TestClient) -> None:
    data = _create(client, [{}, {"ai": "medium"}])

    assert data["players"] == ["p0", "p1"]
    assert set(data["player_keys"]) == {"p0"}
    assert data["ai_players"] == ["p1"]


def test_create_game_rejects_bad_roster(client: TestClient) -> None:
    r = client.post("/games", json={"players": [{}]})
    assert r.status_code == 400


def test_state_requires_valid_key(client: TestClient) -> None:
    data = _create(client, [{}, {}])
    gid = data["game_id"]

    assert client.get(f"/games/{gid}/state", headers=_auth("nope")).status_code == 403
    assert client.get("/games/missing/state", headers=_auth("nope")).status_code == 404


def test_state_lists_valid_moves_for_current_player(client: TestClient) -> None:
    data = _create(client, [{}, {}])
    gid, keys = data["game_id"], data["player_keys"]

    mine = client.get(f"/games/{gid}/state", headers=_auth(keys["p0"])).json()
    theirs = client.get(f"/games/{gid}/state", headers=_auth(keys["p1"])).json()

    assert mine["current_player"] == "p0"
    (warrior,) = mine["own"]["warriors"]
    assert mine["valid_moves"][warrior["id"]]
    assert theirs["valid_moves"] == {}


def test_move_and_end_turn(client: TestClient) -> None:
    data = _create(client, [{}, {}])
    gid, keys = data["game_id"], data["player_keys"]
    state = client.get(f"/games/{gid}/state", headers=_auth(keys["p0"])).json()
    piece_id, moves = next(iter(state["valid_moves"].items()))
    row, col = moves[0]

    r = client.post(f"/games/{gid}/move", headers=_auth(keys["p0"]),
                    json={"piece_id": piece_id, "row": row, "col": col})
    assert r.status_code == 200
    assert r.json()["success"] is True

    again = client.post(f"/games/{gid}/move", headers=_auth(keys["p0"]),
                        json={"piece_id": piece_id, "row": row, "col": col}).json()
    assert again["success"] is False
    assert again["reason"] == "Piece has already moved this turn"

    r = client.post(f"/games/{gid}/end-turn", headers=_auth(keys["p0"]))
    assert r.json()["data"] == {"turn": 1, "next_player": "p1"}


def test_out_of_turn_commands_are_rejected(client: TestClient) -> None:
    data = _create(client, [{}, {}])
    gid, keys = data["game_id"], data["player_keys"]
    r = client.post(f"/games/{gid}/end-turn", headers=_auth(keys["p1"]))
    assert r.status_code == 400
    assert r.json()["detail"] == "Not your turn"


def test_production_and_diplomacy_round_trip(client: TestClient) -> None:
    data = _create(client, [{}, {}])
    gid, keys = data["game_id"], data["player_keys"]
    state = client.get(f"/games/{gid}/state", headers=_auth(keys["p0"])).json()
    city_id = state["own"]["cities"][0]["id"]

    r = client.post(f"/games/{gid}/production", headers=_auth(keys["p0"]),
                    json={"city_id": city_id, "kind": "science", "repeat": False})
    assert r.json()["success"] is True

    war = client.post(f"/games/{gid}/diplomacy", headers=_auth(keys["p1"]),
                      json={"action": "declare_war", "target": "p0"}).json()
    assert war["success"] is True
    offer = client.post(f"/games/{gid}/diplomacy", headers=_auth(keys["p0"]),
                        json={"action": "propose_peace", "target": "p1"}).json()
    assert offer["success"] is True

    view = client.get(f"/games/{gid}/state", headers=_auth(keys["p1"])).json()
    assert view["pending_peace"] == ["p0"]
    accept = client.post(f"/games/{gid}/diplomacy", headers=_auth(keys["p1"]),
                         json={"action": "accept_peace", "target": "p0"}).json()
    assert accept["success"] is True


def test_ai_seats_play_after_human_ends_turn(client: TestClient) -> None:
    data = _create(client, [{}, {"ai": "hard"}])
    gid, keys = data["game_id"], data["player_keys"]

    r = client.post(f"/games/{gid}/end-turn", headers=_auth(keys["p0"])).json()

    assert len(r["ai_turns"]) == 1
    assert r["ai_turns"][0]["player_id"] == "p1"
    assert r["current_player"] == "p0"


def test_all_ai_game_advances_by_step(client: TestClient) -> None:
    data = _create(client, [{"ai": "easy"}, {"ai": "easy"}])
    gid = data["game_id"]
    assert data["ai_turns"] == []

    r = client.post(f"/games/{gid}/step", params={"turns": 4}).json()

    assert len(r["ai_turns"]) == 4
    assert r["turn"] == 4
    spectator = client.get(f"/games/{gid}/spectator").json()
    assert spectator["turn"] == 4
    assert spectator["log"][0]["action_type"] == "GAME_START"


def test_analysis_endpoint_returns_heatmaps(client: TestClient) -> None:
    data = _create(client, [{}, {}])
    gid, keys = data["game_id"], data["player_keys"]

    r = client.get(f"/games/{gid}/analysis", headers=_auth(keys["p1"])).json()

    assert set(r["heatmaps"]) == {"threat", "opportunity", "territory", "expansion"}
    assert len(r["heatmaps"]["threat"]) == 10
    assert r["relative"]["p0"]["advantage"] == "even"


def test_random_agent_plays_a_turn(client: TestClient) -> None:
    data = _create(client, [{}, {"ai": "easy"}], seed=3)
    gid, keys = data["game_id"], data["player_keys"]

    result = play_turn("", gid, keys["p0"], random.Random(0), client=client)

    assert result["success"] is True
    assert result["current_player"] == "p0"
    assert [t["player_id"] for t in result["ai_turns"]] == ["p1"]
