"""Run an AI-vs-AI CivChess game locally (no server needed)."""
import argparse
import json
import logging
from pathlib import Path

from civchess.game import Game
from civchess.manager import AIManager
from civchess.types import PieceType

HIGHLIGHTS = {"COMBAT", "CITY_CAPTURED", "CITY_BUILT", "PLAYER_ELIMINATED",
              "VICTORY", "WAR_DECLARED", "PEACE_MADE", "TECH_COMPLETE"}


def build_game(players: int, seed: int, difficulties: list[str]) -> tuple[Game, AIManager]:
    game = Game.create(num_players=players, seed=seed)
    ai = AIManager(game)
    for i, pid in enumerate(game.players):
        ai.register_ai_player(pid, difficulty=difficulties[i % len(difficulties)], seed=seed + i + 1)
    return game, ai


def play(game: Game, ai: AIManager, max_turns: int, quiet: bool = False) -> int:
    """Run turns until someone wins or ``max_turns`` is reached; returns turns played."""
    seen = len(game.action_log)
    while not game.game_over and game.turn_number < max_turns:
        pid = game.current_player_id
        report = ai.execute_turn(pid)
        if not game.game_over:
            game.end_turn()
        if quiet:
            continue

        units = len(game.board.pieces)
        cities = ' '.join(f"{p}:{len(game.player_cities(p))}c" for p in game.players
                          if game.is_alive(p))
        print(f"T{game.turn_number:3d} | {pid} {report.personality[:4]:4s} "
              f"acts={len(report.actions):2d} units={units:3d} | {cities}", end="")
        for record in game.action_log[seen:]:
            if record.action_type in HIGHLIGHTS:
                print(f"\n     {record.summary()}", end="")
        print()
        seen = len(game.action_log)
    return game.turn_number


def main():
    parser = argparse.ArgumentParser(description="Run a local CivChess AI match")
    parser.add_argument("--players", type=int, default=2)
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument("--difficulty", nargs="+", default=["medium"],
                        choices=["easy", "medium", "hard"], help="Cycled across seats")
    parser.add_argument("--max-turns", type=int, default=300)
    parser.add_argument("--replay", type=Path, help="Write the action log to this JSON file")
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format="%(levelname)s %(name)s: %(message)s")

    game, ai = build_game(args.players, args.seed, args.difficulty)

    print("=== CIVCHESS: AI Match ===")
    for pid, p in game.players.items():
        city = game.player_cities(pid)[0]
        print(f"  {pid} ({p.name}, {ai.get_controller(pid).difficulty.name}): city at {city.pos}")
    print()

    play(game, ai, args.max_turns)

    print("\n=== FINAL ===")
    for pid, p in game.players.items():
        warriors = len(game.player_pieces(pid, PieceType.WARRIOR))
        print(f"  {pid}: {'ALIVE' if game.is_alive(pid) else 'DEAD'} | "
              f"{len(game.player_cities(pid))} cities | {warriors} warriors | "
              f"{game.territory_count(pid)} tiles | tech={p.tech_score}")

    if game.winner:
        print(f"\n🏆 Winner: {game.winner} ({game.players[game.winner].name})")
    else:
        print(f"\nNo winner after {game.turn_number} turns")

    if args.replay:
        log = [{"turn": r.turn, "player": r.player, "type": r.action_type, "details": r.details}
               for r in game.action_log]
        args.replay.write_text(json.dumps({"winner": game.winner, "log": log}))
        print(f"Replay saved to {args.replay} ({len(game.action_log)} records)")


if __name__ == "__main__":
    main()
