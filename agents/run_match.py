"""Run a full match via the server API.
Random agents hold the human seats; any other seats are played by the built-in AI.
"""
import json
import random
from pathlib import Path
import httpx

from agents.random_agent import play_turn as random_play

REPLAY_DIR = Path(__file__).resolve().parent.parent / "replays"


def run_match(
    base_url: str = "http://localhost:8000",
    num_random: int = 1,
    ai_players: list[str] | None = None,   # difficulty per AI seat, e.g. ["medium"]
    seed: int = 42,
    max_turns: int = 200,
    client: httpx.Client | None = None,
) -> str:
    http = client or httpx
    ai_players = ["medium"] if ai_players is None else ai_players
    seats = [{} for _ in range(num_random)] + [{"ai": d} for d in ai_players]

    resp = http.post(f"{base_url}/games", json={"players": seats, "seed": seed})
    resp.raise_for_status()
    game = resp.json()
    game_id = game["game_id"]
    player_keys = game["player_keys"]

    print(f"🎮 Created game {game_id} with {len(seats)} players")
    for pid in game["players"]:
        kind = "Random" if pid in player_keys else "AI"
        print(f"  {pid}: {kind}")

    if not player_keys:
        resp = http.post(f"{base_url}/games/{game_id}/step", params={"turns": max_turns})
        resp.raise_for_status()
        result = resp.json()
        print(f"  Played {len(result['ai_turns'])} AI turns")
        if result.get("winner"):
            print(f"\n🏆 Winner: {result['winner']}")
        save_replay(base_url, game_id, http)
        return game_id

    rngs = {pid: random.Random(seed + i) for i, pid in enumerate(player_keys)}
    for turn in range(max_turns):
        progressed = False
        for pid, key in player_keys.items():
            result = random_play(base_url, game_id, key, rngs[pid], client=client)
            if result.get("error"):
                print(f"  Error: {result['error']}")
                return game_id
            if result.get("done"):
                print(f"\n🏆 Game over! Winner: {result.get('winner')}")
                save_replay(base_url, game_id, http)
                return game_id
            if result.get("success"):
                progressed = True
                print(f"  T{result['data']['turn']:3d} {pid} ended turn "
                      f"| AI turns={len(result['ai_turns'])} | next={result['current_player']}")
            if result.get("winner"):
                print(f"\n🏆 Winner: {result['winner']}")
                save_replay(base_url, game_id, http)
                return game_id
        if not progressed:
            print("  Nobody could act; stopping")
            break

    print("Game didn't finish in time")
    save_replay(base_url, game_id, http)
    return game_id


def save_replay(base_url: str, game_id: str, http=httpx):
    try:
        replay = http.get(f"{base_url}/games/{game_id}/spectator").json()
        REPLAY_DIR.mkdir(exist_ok=True)
        path = REPLAY_DIR / f"{game_id}.json"
        path.write_text(json.dumps(replay, indent=2))
        print(f"💾 Replay saved to {path}")
    except (httpx.HTTPError, OSError) as e:
        print(f"⚠️ Failed to save replay: {e}")


if __name__ == "__main__":
    import argparse
    parser = argparse.ArgumentParser(description="Run a CivChess match")
    parser.add_argument("--server", default="http://localhost:8000")
    parser.add_argument("--random", type=int, default=1, help="Number of random-agent seats")
    parser.add_argument("--ai", nargs="*", default=["medium"],
                        choices=["easy", "medium", "hard"], help="Difficulty of each AI seat")
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument("--max-turns", type=int, default=200)
    args = parser.parse_args()

    run_match(
        base_url=args.server,
        num_random=args.random,
        ai_players=args.ai,
        seed=args.seed,
        max_turns=args.max_turns,
    )
