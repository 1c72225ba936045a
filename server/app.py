"""CivChess game server (FastAPI)."""
from __future__ import annotations
import logging
import random
import secrets
import time
import uuid
from dataclasses import asdict, dataclass, field
from typing import Literal
from fastapi import FastAPI, Header, HTTPException
from pydantic import BaseModel, Field

from civchess.game import Game
from civchess.board import BoardState
from civchess.manager import AIManager
from civchess.spatial import SpatialAnalyzer
from civchess.types import BOARD_SIZE, PlayerConfig, ProductionKind

logger = logging.getLogger(__name__)

app = FastAPI(title="CivChess", version="1.0.0")

MAX_AI_TURNS_PER_CALL = 200

# ── Data stores ──────────────────────────────────────────────────────────────

@dataclass
class GameInstance:
    id: str
    game: Game
    ai: AIManager
    player_keys: dict[str, str]
    spectator_key: str
    created_at: float = field(default_factory=time.time)

    @property
    def has_humans(self) -> bool:
        return bool(self.player_keys)

GAMES: dict[str, GameInstance] = {}

# ── Auth ─────────────────────────────────────────────────────────────────────

def get_instance(game_id: str) -> GameInstance:
    gi = GAMES.get(game_id)
    if not gi:
        raise HTTPException(404, "Game not found")
    return gi

def get_player(game_id: str, authorization: str) -> tuple[GameInstance, str]:
    token = authorization.replace("Bearer ", "")
    gi = get_instance(game_id)
    for pid, key in gi.player_keys.items():
        if key == token:
            return gi, pid
    raise HTTPException(403, "Invalid API key")

def require_turn(gi: GameInstance, pid: str):
    if gi.game.game_over:
        raise HTTPException(400, "Game over")
    if gi.game.current_player_id != pid:
        raise HTTPException(400, "Not your turn")

# ── Models ───────────────────────────────────────────────────────────────────

class PlayerSpec(BaseModel):
    name: str | None = None
    color: str | None = None
    ai: Literal["easy", "medium", "hard"] | None = None
    personality: Literal["expansionist", "research", "militaristic", "defensive"] | None = None

class CreateGameRequest(BaseModel):
    players: list[PlayerSpec] = [PlayerSpec(), PlayerSpec(ai="medium")]
    seed: int | None = None
    board_size: int = Field(BOARD_SIZE, ge=4, le=20)

class MoveRequest(BaseModel):
    piece_id: str
    row: int
    col: int

class ProductionRequest(BaseModel):
    city_id: str
    kind: ProductionKind
    repeat: bool | None = None

class BuildCityRequest(BaseModel):
    piece_id: str

class DiplomacyRequest(BaseModel):
    action: Literal["declare_war", "propose_peace", "accept_peace"]
    target: str

# ── Helpers ──────────────────────────────────────────────────────────────────

def _run_ai_turns(gi: GameInstance, limit: int = MAX_AI_TURNS_PER_CALL) -> list[dict]:
    """Play AI seats until a human is up, the game ends, or ``limit`` turns pass."""
    game = gi.game
    reports = []
    while not game.game_over and len(reports) < limit and gi.ai.is_ai_player(game.current_player_id):
        report = gi.ai.execute_turn(game.current_player_id)
        reports.append(asdict(report))
        if not game.game_over:
            game.end_turn()
    return reports

def _valid_moves(game: Game, pid: str) -> dict[str, list[tuple[int, int]]]:
    if game.game_over or game.current_player_id != pid:
        return {}
    return {p.id: game.get_valid_moves(p) for p in game.player_pieces(pid)
            if not p.is_city and not p.has_moved}

# ── Endpoints ────────────────────────────────────────────────────────────────

@app.post("/games")
def create_game(req: CreateGameRequest):
    gid = str(uuid.uuid4())[:8]
    game = Game(board=BoardState(req.board_size), rng=random.Random(req.seed))
    try:
        game.setup_game([PlayerConfig(name=p.name or f"Player {i + 1}", color=p.color)
                         for i, p in enumerate(req.players)])
    except ValueError as e:
        raise HTTPException(400, str(e))

    ai = AIManager(game)
    player_keys = {}
    for i, (pid, spec) in enumerate(zip(game.players, req.players)):
        if spec.ai:
            seed = None if req.seed is None else req.seed + i + 1
            ai.register_ai_player(pid, difficulty=spec.ai, personality=spec.personality, seed=seed)
        else:
            player_keys[pid] = secrets.token_hex(16)

    gi = GameInstance(id=gid, game=game, ai=ai, player_keys=player_keys,
                      spectator_key=secrets.token_hex(16))
    GAMES[gid] = gi
    logger.info("Created game %s with %d players (%d AI)", gid, len(game.players),
                len(ai.controllers))
    ai_turns = _run_ai_turns(gi) if gi.has_humans else []

    return {
        "game_id": gid,
        "player_keys": player_keys,
        "spectator_key": gi.spectator_key,
        "players": list(game.players.keys()),
        "ai_players": list(ai.controllers),
        "ai_turns": ai_turns,
    }

@app.get("/games")
def list_games():
    return [{"game_id": gid, "turn": gi.game.turn_number, "winner": gi.game.winner,
             "players": len(gi.game.players)} for gid, gi in GAMES.items()]

@app.get("/games/{game_id}/state")
def get_state(game_id: str, authorization: str = Header(...)):
    gi, pid = get_player(game_id, authorization)
    state = gi.game.get_player_view(pid)
    state["game_id"] = game_id
    state["valid_moves"] = _valid_moves(gi.game, pid)
    return state

@app.get("/games/{game_id}/spectator")
def get_spectator_state(game_id: str, since: int = 0):
    gi = get_instance(game_id)
    state = gi.game.get_full_state()
    state["game_id"] = game_id
    state["log"] = [asdict(r) for r in gi.game.action_log[since:]]
    return state

@app.get("/games/{game_id}/analysis")
def get_analysis(game_id: str, authorization: str = Header(...)):
    gi, pid = get_player(game_id, authorization)
    analyzer = SpatialAnalyzer(gi.game)
    return {
        "heatmaps": asdict(analyzer.heatmaps(pid)),
        "strength": analyzer.player_strength(pid).to_dict(),
        "relative": {oid: asdict(analyzer.relative_strength(pid, oid))
                     for oid in gi.game.players if oid != pid},
        "vulnerable_cities": [asdict(v) for v in analyzer.vulnerable_cities(pid)],
    }

@app.post("/games/{game_id}/move")
def move(game_id: str, req: MoveRequest, authorization: str = Header(...)):
    gi, pid = get_player(game_id, authorization)
    require_turn(gi, pid)
    return asdict(gi.game.move_piece(req.piece_id, req.row, req.col))

@app.post("/games/{game_id}/production")
def set_production(game_id: str, req: ProductionRequest, authorization: str = Header(...)):
    gi, pid = get_player(game_id, authorization)
    require_turn(gi, pid)
    return asdict(gi.game.set_production(req.city_id, req.kind, repeat=req.repeat))

@app.post("/games/{game_id}/build-city")
def build_city(game_id: str, req: BuildCityRequest, authorization: str = Header(...)):
    gi, pid = get_player(game_id, authorization)
    require_turn(gi, pid)
    return asdict(gi.game.settler_build_city(req.piece_id))

@app.post("/games/{game_id}/diplomacy")
def diplomacy(game_id: str, req: DiplomacyRequest, authorization: str = Header(...)):
    gi, pid = get_player(game_id, authorization)
    if req.target not in gi.game.players:
        raise HTTPException(400, "Unknown player")
    action = getattr(gi.game, req.action)
    return asdict(action(pid, req.target))

@app.post("/games/{game_id}/end-turn")
def end_turn(game_id: str, authorization: str = Header(...)):
    gi, pid = get_player(game_id, authorization)
    require_turn(gi, pid)
    result = gi.game.end_turn()
    return {**asdict(result), "ai_turns": _run_ai_turns(gi),
            "current_player": gi.game.current_player_id,
            "game_over": gi.game.game_over, "winner": gi.game.winner}

@app.post("/games/{game_id}/step")
def step(game_id: str, turns: int = 1):
    """Advance an all-AI game by a number of turns."""
    gi = get_instance(game_id)
    if gi.game.game_over:
        raise HTTPException(400, "Game over")
    if not gi.ai.is_ai_player(gi.game.current_player_id):
        raise HTTPException(400, "Waiting on a human player")
    reports = _run_ai_turns(gi, limit=max(1, min(turns, MAX_AI_TURNS_PER_CALL)))
    return {"ai_turns": reports, "turn": gi.game.turn_number,
            "current_player": gi.game.current_player_id,
            "game_over": gi.game.game_over, "winner": gi.game.winner}

if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(level=logging.INFO)
    uvicorn.run(app, host="0.0.0.0", port=8000)
