"""Random agent that plays CivChess via the API."""
import random
import httpx

PRODUCTION_CHOICES = ["warrior", "settler", "science", "diplomacy"]


def play_turn(base_url: str, game_id: str, api_key: str, rng: random.Random,
              client: httpx.Client | None = None) -> dict:
    """Fetch state, play random legal moves, end the turn."""
    http = client or httpx
    headers = {"Authorization": f"Bearer {api_key}"}

    resp = http.get(f"{base_url}/games/{game_id}/state", headers=headers)
    if resp.status_code != 200:
        return {"error": resp.text}
    state = resp.json()
    if state.get("game_over"):
        return {"done": True, "winner": state["winner"]}
    if state["current_player"] != state["player"]:
        return {"status": "waiting", "current_player": state["current_player"]}

    # Keep every city busy
    for city in state["own"]["cities"]:
        if city["production"]["kind"] == "none":
            http.post(f"{base_url}/games/{game_id}/production", headers=headers,
                      json={"city_id": city["id"], "kind": rng.choice(PRODUCTION_CHOICES)})

    # Settlers found a city if they can, otherwise wander
    for settler in state["own"]["settlers"]:
        r = http.post(f"{base_url}/games/{game_id}/build-city", headers=headers,
                      json={"piece_id": settler["id"]}).json()
        if r.get("success"):
            state["valid_moves"].pop(settler["id"], None)

    for piece_id, moves in state["valid_moves"].items():
        if not moves or rng.random() < 0.3:
            continue  # skip some units
        row, col = rng.choice(moves)
        http.post(f"{base_url}/games/{game_id}/move", headers=headers,
                  json={"piece_id": piece_id, "row": row, "col": col})

    # Occasional saber rattling
    if rng.random() < 0.05:
        at_peace = [oid for oid, rel in state["relations"].items() if rel == "peace"]
        if at_peace:
            http.post(f"{base_url}/games/{game_id}/diplomacy", headers=headers,
                      json={"action": "declare_war", "target": rng.choice(at_peace)})
    for proposer in state["pending_peace"]:
        if rng.random() < 0.5:
            http.post(f"{base_url}/games/{game_id}/diplomacy", headers=headers,
                      json={"action": "accept_peace", "target": proposer})

    resp = http.post(f"{base_url}/games/{game_id}/end-turn", headers=headers)
    return resp.json()
