"""Core rules engine for CivChess."""
from __future__ import annotations
import logging
import random
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable
from .board import BoardState
from .map_gen import starting_layout
from .types import (
    Piece, PieceType, Player, PlayerConfig, ProductionKind, Relation,
    MoveCheck, MoveResult, CombatResult, EliminationResult, CommandResult,
    ActionRecord, PRODUCTION_TURNS, SPAWNS, BOARD_SIZE, MIN_PLAYERS,
    MAX_PLAYERS, ELIMINATION_CONVERT_RATE, make_piece, captured_city_hp,
)

logger = logging.getLogger(__name__)

Listener = Callable[[ActionRecord], None]

GROUP_KEYS = {
    PieceType.CITY: "cities",
    PieceType.WARRIOR: "warriors",
    PieceType.SETTLER: "settlers",
}


@dataclass
class Game:
    board: BoardState = field(default_factory=BoardState)
    players: dict[str, Player] = field(default_factory=dict)
    rng: random.Random = field(default_factory=random.Random)
    current_index: int = 0
    turn_number: int = 0
    game_over: bool = False
    winner: str | None = None
    action_log: list[ActionRecord] = field(default_factory=list)
    _listeners: list[Listener] = field(default_factory=list)
    _uid: int = 0  # piece id counter

    def _next_uid(self, owner: str, ptype: PieceType) -> str:
        self._uid += 1
        return f"{owner}_{ptype.value}_{self._uid}"

    @classmethod
    def create(cls, num_players: int = 2, seed: int | None = None,
               size: int = BOARD_SIZE) -> Game:
        game = cls(board=BoardState(size), rng=random.Random(seed))
        game.setup_game([PlayerConfig(name=f"Player {i + 1}") for i in range(num_players)])
        return game

    # ── Action log ───────────────────────────────────────────────────────

    def subscribe(self, listener: Listener):
        self._listeners.append(listener)

    def log(self, action_type: str, details: dict[str, Any] | None = None,
            player: str | None = None) -> ActionRecord:
        if player is None and self.players:
            player = self.current_player_id
        record = ActionRecord(turn=self.turn_number, player=player,
                              action_type=action_type, details=details or {})
        self.action_log.append(record)
        logger.debug("[%s] %s: %s", record.player, action_type, record.details)
        for listener in list(self._listeners):
            listener(record)
        return record

    # ── Setup ────────────────────────────────────────────────────────────

    def setup_game(self, player_configs: Iterable[PlayerConfig | dict]) -> bool:
        configs = [c if isinstance(c, PlayerConfig) else PlayerConfig(**c)
                   for c in player_configs]
        if not MIN_PLAYERS <= len(configs) <= MAX_PLAYERS:
            raise ValueError(f"need {MIN_PLAYERS}-{MAX_PLAYERS} players, got {len(configs)}")

        self.board = BoardState(self.board.size)
        self.players = {}
        self.current_index = 0
        self.turn_number = 0
        self.game_over = False
        self.winner = None
        self.action_log = []
        self._uid = 0

        for i, cfg in enumerate(configs):
            pid = f"p{i}"
            self.players[pid] = Player(id=pid, name=cfg.name or f"Player {i + 1}", color=cfg.color)
        for pid, player in self.players.items():
            player.relations = {other: Relation.PEACE for other in self.players if other != pid}

        for owner, ptype, row, col in starting_layout(self.board, list(self.players), self.rng):
            self._create_piece(ptype, owner, row, col)
            if ptype == PieceType.CITY:
                self.board.set_owner(row, col, owner)

        self.log("GAME_START", {"players": len(self.players)}, player=None)
        return True

    def _create_piece(self, ptype: PieceType, owner: str, row: int, col: int) -> Piece:
        piece = make_piece(self._next_uid(owner, ptype), ptype, owner, row, col,
                           tech_score=self.players[owner].tech_score)
        self.board.place(piece)
        return piece

    def _remove_piece(self, piece: Piece):
        self.board.remove(piece)
        self.log("PIECE_REMOVED", {"piece": piece.id})

    # ── Queries ──────────────────────────────────────────────────────────

    @property
    def player_order(self) -> list[str]:
        return list(self.players)

    @property
    def current_player_id(self) -> str:
        return self.player_order[self.current_index]

    def get_piece(self, piece_id: str) -> Piece | None:
        return self.board.get(piece_id)

    def player_cities(self, pid: str) -> list[Piece]:
        return self.board.cities(pid)

    def player_pieces(self, pid: str, ptype: PieceType | None = None) -> list[Piece]:
        return list(self.board.iter_pieces(pid, ptype))

    def territory_count(self, pid: str) -> int:
        return len(self.board.tiles_owned_by(pid))

    def is_alive(self, pid: str) -> bool:
        return bool(self.player_cities(pid))

    def relation(self, pid: str, other: str) -> Relation:
        return self.players[pid].relation_to(other)

    def hostile(self, pid: str, other: str) -> bool:
        """Either side's entry is WAR, so at least one of them may attack the other."""
        return self.players[pid].at_war_with(other) or self.players[other].at_war_with(pid)

    def pending_peace_proposals(self, pid: str) -> list[str]:
        """Players whose relation entry toward ``pid`` is a standing peace offer."""
        return [oid for oid, p in self.players.items()
                if oid != pid and p.relation_to(pid) == Relation.PEACE_PROPOSED]

    # ── Movement ─────────────────────────────────────────────────────────

    def is_path_clear(self, from_row: int, from_col: int, to_row: int, to_col: int) -> bool:
        dr = (to_row > from_row) - (to_row < from_row)
        dc = (to_col > from_col) - (to_col < from_col)
        r, c = from_row + dr, from_col + dc
        while (r, c) != (to_row, to_col):
            if self.board.grid[r][c] is not None:
                return False
            r, c = r + dr, c + dc
        return True

    def blockade_owner(self, piece: Piece, row: int, col: int) -> str | None:
        """Owner of the blockade a diagonal step would cross, if any.

        The other two corners of the crossed 2x2 square must both hold
        warriors of one owner. A player's own blockade never blocks it.
        """
        dr, dc = row - piece.row, col - piece.col
        if abs(dr) != 1 or abs(dc) != 1:
            return None
        a = self.board.piece_at(piece.row + dr, piece.col)
        b = self.board.piece_at(piece.row, piece.col + dc)
        if a is None or b is None:
            return None
        if a.type != PieceType.WARRIOR or b.type != PieceType.WARRIOR:
            return None
        if a.owner != b.owner or a.owner == piece.owner:
            return None
        return a.owner

    def blockade_pieces(self, piece: Piece, row: int, col: int) -> list[Piece]:
        if self.blockade_owner(piece, row, col) is None:
            return []
        return [self.board.piece_at(row, piece.col), self.board.piece_at(piece.row, col)]

    def can_move_to(self, piece: Piece, row: int, col: int) -> MoveCheck:
        board = self.board
        if not board.in_bounds(row, col):
            return MoveCheck(False, "Out of bounds")
        if piece.has_moved:
            return MoveCheck(False, "Piece has already moved this turn")
        if piece.type == PieceType.CITY:
            return MoveCheck(False, "Cities cannot move")

        mover = self.players[piece.owner]
        tile_owner = board.owner_at(row, col)
        if tile_owner is not None and tile_owner != piece.owner:
            if mover.relation_to(tile_owner) == Relation.PEACE:
                return MoveCheck(False, "Cannot move onto tile owned by player at peace")

        dr = abs(row - piece.row)
        dc = abs(col - piece.col)
        if dr == 0 and dc == 0:
            return MoveCheck(False, "Must move to a different tile")
        if piece.type == PieceType.WARRIOR:
            if dr > 1 or dc > 1:
                return MoveCheck(False, "Warriors can only move 1 tile")
        elif piece.type == PieceType.SETTLER:
            if dr > 0 and dc > 0:
                return MoveCheck(False, "Settlers cannot move diagonally")
            if dr > 3 or dc > 3:
                return MoveCheck(False, "Settlers can only move up to 3 tiles")
            if not self.is_path_clear(piece.row, piece.col, row, col):
                return MoveCheck(False, "Path is blocked")

        if self.blockade_owner(piece, row, col) is not None:
            return MoveCheck(False, "Diagonal crossing blocked by blockade")

        target = board.piece_at(row, col)
        if target is not None:
            if piece.type == PieceType.SETTLER:
                return MoveCheck(False, "Settlers cannot attack")
            if target.owner == piece.owner:
                return MoveCheck(False, "Cannot attack own piece")
            if not mover.at_war_with(target.owner):
                return MoveCheck(False, "Cannot attack player not at war")

        return MoveCheck(True)

    def get_valid_moves(self, piece: Piece) -> list[tuple[int, int]]:
        if piece.type == PieceType.CITY or piece.has_moved:
            return []
        if piece.type == PieceType.WARRIOR:
            targets = [(piece.row + dr, piece.col + dc)
                       for dr in (-1, 0, 1) for dc in (-1, 0, 1) if dr or dc]
        else:
            targets = [(piece.row + dr * d, piece.col + dc * d)
                       for dr, dc in ((-1, 0), (1, 0), (0, -1), (0, 1))
                       for d in (1, 2, 3)]
        return [(r, c) for r, c in targets if self.can_move_to(piece, r, c).valid]

    def move_piece(self, piece_id: str, row: int, col: int) -> MoveResult:
        piece = self.board.get(piece_id)
        reason = None
        if piece is None:
            reason = "Unknown piece"
        elif self.game_over:
            reason = "Game is over"
        elif piece.owner != self.current_player_id:
            reason = "Not your turn"
        else:
            check = self.can_move_to(piece, row, col)
            if not check.valid:
                reason = check.reason
        if reason is not None:
            self.log("MOVE_DENIED", {"piece": piece_id, "reason": reason})
            return MoveResult(False, reason)

        combat = None
        target = self.board.piece_at(row, col)
        if target is not None:
            combat = self._resolve_combat(piece, target)
            # Attacker holds its tile unless it destroyed a non-city defender.
            if not combat.defender_destroyed:
                piece.has_moved = True
                return MoveResult(True, combat=combat, blocked=True)

        self._advance(piece, row, col)
        self.log("MOVE", {"piece": piece.id, "to": [row, col]})
        return MoveResult(True, combat=combat)

    def _advance(self, piece: Piece, row: int, col: int):
        self.board.relocate(piece, row, col)
        piece.has_moved = True
        if piece.type == PieceType.WARRIOR:
            tile_owner = self.board.owner_at(row, col)
            if tile_owner is not None and tile_owner != piece.owner:
                if self.players[piece.owner].at_war_with(tile_owner):
                    self.board.set_owner(row, col, piece.owner)

    # ── Combat & Elimination ─────────────────────────────────────────────

    def _resolve_combat(self, attacker: Piece, defender: Piece) -> CombatResult:
        previous_owner = defender.owner
        defender.hp -= attacker.damage
        result = CombatResult(attacker=attacker.id, defender=defender.id,
                              damage_dealt=attacker.damage, defender_hp=defender.hp)

        if defender.hp <= 0:
            if defender.type == PieceType.CITY:
                defender.hp = captured_city_hp(defender.max_hp)
                defender.owner = attacker.owner
                defender.production.clear()
                self.board.set_owner(defender.row, defender.col, attacker.owner)
                result.city_captured = True
                result.defender_hp = defender.hp
                self.log("CITY_CAPTURED", {"city": defender.id, "new_owner": attacker.owner,
                                           "previous_owner": previous_owner})
                result.elimination = self._check_elimination(previous_owner, attacker.owner)
            else:
                self._remove_piece(defender)
                result.defender_destroyed = True

        self.log("COMBAT", {"attacker": attacker.id, "defender": defender.id,
                            "damage": attacker.damage, "destroyed": result.defender_destroyed,
                            "captured": result.city_captured})
        self._check_victory()
        return result

    def _check_elimination(self, pid: str, conqueror: str) -> EliminationResult | None:
        if self.player_cities(pid):
            return None

        warriors = self.player_pieces(pid, PieceType.WARRIOR)
        settlers = self.player_pieces(pid, PieceType.SETTLER)
        to_convert = max(1, int(len(warriors) * ELIMINATION_CONVERT_RATE)) if warriors else 0

        shuffled = list(warriors)
        self.rng.shuffle(shuffled)
        result = EliminationResult(player_id=pid, conqueror_id=conqueror)
        for i, warrior in enumerate(shuffled):
            self._remove_piece(warrior)
            if i < to_convert:
                new = self._create_piece(PieceType.WARRIOR, conqueror, warrior.row, warrior.col)
                result.converted.append((warrior.id, new.id))
            else:
                result.destroyed.append(warrior.id)
        for settler in settlers:
            self._remove_piece(settler)
            result.destroyed.append(settler.id)

        self.log("PLAYER_ELIMINATED", {"player": pid, "conqueror": conqueror,
                                       "converted": len(result.converted),
                                       "destroyed": len(result.destroyed)})
        return result

    def _check_victory(self) -> str | None:
        if self.game_over:
            return self.winner
        owners = {c.owner for c in self.board.cities()}
        if len(owners) == 1:
            self.game_over = True
            self.winner = owners.pop()
            self.log("VICTORY", {"winner": self.winner})
        return self.winner

    # ── Production ───────────────────────────────────────────────────────

    def set_production(self, city_id: str, kind: ProductionKind | str,
                       repeat: bool | None = None) -> CommandResult:
        city = self.board.get(city_id)
        reason = None
        if city is None or city.type != PieceType.CITY:
            reason = "Not a city"
        elif self.game_over:
            reason = "Game is over"
        elif city.owner != self.current_player_id:
            reason = "Not your city"
        else:
            try:
                kind = ProductionKind(kind)
            except ValueError:
                reason = f"Unknown production {kind!r}"
        if reason is not None:
            self.log("PRODUCTION_DENIED", {"city": city_id, "reason": reason})
            return CommandResult(False, reason)

        prod = city.production
        prod.kind = kind
        prod.progress = 0
        prod.paused = False
        if repeat is not None:
            prod.repeat = repeat
        self.log("PRODUCTION_SET", {"city": city.id, "production": kind.value})
        return CommandResult(True)

    def _process_production(self, city: Piece):
        prod = city.production
        if not prod.active or prod.paused:
            prod.paused = False
            return
        prod.progress += 1
        if prod.progress >= PRODUCTION_TURNS[prod.kind]:
            self._complete_production(city)

    def _complete_production(self, city: Piece):
        prod = city.production
        kind = prod.kind
        owner = city.owner

        if kind == ProductionKind.DIPLOMACY:
            self._expand_territory(owner)
        elif kind == ProductionKind.SCIENCE:
            self.players[owner].tech_score += 1
            self._apply_tech_bonus(owner)
            self.log("TECH_COMPLETE", {"player": owner,
                                       "tech_score": self.players[owner].tech_score})
        elif kind in SPAWNS:
            if not self._spawn_unit(city, SPAWNS[kind]):
                # Refund one step and sit out a turn; the unit is retried later.
                prod.progress -= 1
                prod.paused = True
                self.log("SPAWN_BLOCKED", {"city": city.id})
                return
        elif kind == ProductionKind.REPAIR:
            if city.hp < city.max_hp:
                city.hp += 1

        self.log("PRODUCTION_COMPLETE", {"city": city.id, "production": kind.value})
        if prod.repeat and not (kind == ProductionKind.REPAIR and city.hp >= city.max_hp):
            prod.progress = 0
        else:
            prod.clear()

    def _spawn_unit(self, city: Piece, ptype: PieceType) -> bool:
        tile = self.board.find_adjacent_empty(city.row, city.col)
        if tile is None:
            return False
        unit = self._create_piece(ptype, city.owner, *tile)
        self.log("UNIT_SPAWNED", {"type": ptype.value, "piece": unit.id, "location": list(tile)})
        return True

    def _expand_territory(self, pid: str) -> tuple[int, int] | None:
        board = self.board
        candidates = sorted({
            (r, c)
            for tr, tc in board.tiles_owned_by(pid)
            for r, c in board.neighbors(tr, tc)
            if board.owner_at(r, c) != pid
        })
        unowned = [t for t in candidates if board.owner_at(*t) is None]
        pool = unowned or candidates
        if not pool:
            return None

        row, col = self.rng.choice(pool)
        board.set_owner(row, col, pid)
        self.log("TERRITORY_EXPANDED", {"player": pid, "tile": [row, col]})

        piece = board.piece_at(row, col)
        if piece is not None and piece.type == PieceType.CITY and piece.owner != pid:
            previous_owner = piece.owner
            piece.owner = pid
            piece.production.clear()
            self.log("CITY_CAPTURED", {"city": piece.id, "new_owner": pid,
                                       "previous_owner": previous_owner})
            self._check_elimination(previous_owner, pid)
            self._check_victory()
        return row, col

    def _apply_tech_bonus(self, pid: str):
        for piece in self.board.iter_pieces(pid):
            if piece.type in (PieceType.CITY, PieceType.WARRIOR):
                piece.max_hp += 1
                piece.hp += 1
            if piece.type == PieceType.WARRIOR:
                piece.damage += 1

    # ── Settlers ─────────────────────────────────────────────────────────

    def can_settler_build_city(self, settler: Piece) -> MoveCheck:
        if settler.type != PieceType.SETTLER:
            return MoveCheck(False, "Not a settler")
        if self.board.owner_at(settler.row, settler.col) != settler.owner:
            return MoveCheck(False, "Must be on owned tile")
        for city in self.board.cities():
            if max(abs(city.row - settler.row), abs(city.col - settler.col)) <= 1:
                return MoveCheck(False, "Too close to another city")
        return MoveCheck(True)

    def settler_build_city(self, settler_id: str) -> CommandResult:
        settler = self.board.get(settler_id)
        reason = None
        if settler is None:
            reason = "Unknown piece"
        elif self.game_over:
            reason = "Game is over"
        elif settler.owner != self.current_player_id:
            reason = "Not your turn"
        else:
            reason = self.can_settler_build_city(settler).reason
        if reason is not None:
            self.log("BUILD_CITY_DENIED", {"piece": settler_id, "reason": reason})
            return CommandResult(False, reason)

        self._remove_piece(settler)
        city = self._create_piece(PieceType.CITY, settler.owner, settler.row, settler.col)
        self.board.set_owner(city.row, city.col, city.owner)
        self.log("CITY_BUILT", {"city": city.id, "location": [city.row, city.col]})
        return CommandResult(True, data={"city": city.id})

    # ── Diplomacy ────────────────────────────────────────────────────────

    def _diplomacy_error(self, pid: str, target: str) -> str | None:
        if self.game_over:
            return "Game is over"
        if pid not in self.players or target not in self.players:
            return "Unknown player"
        if pid == target:
            return "Cannot target self"
        return None

    def _deny_diplomacy(self, action: str, pid: str, target: str, reason: str) -> CommandResult:
        self.log("DIPLOMACY_DENIED", {"action": action, "player": pid,
                                      "target": target, "reason": reason}, player=pid)
        return CommandResult(False, reason)

    def declare_war(self, pid: str, target: str) -> CommandResult:
        reason = self._diplomacy_error(pid, target)
        if reason is None and self.players[pid].at_war_with(target):
            reason = "Already at war"
        if reason is not None:
            return self._deny_diplomacy("declare_war", pid, target, reason)

        self.players[pid].relations[target] = Relation.WAR
        self.players[target].relations[pid] = Relation.WAR
        self.log("WAR_DECLARED", {"attacker": pid, "defender": target}, player=pid)
        return CommandResult(True)

    def propose_peace(self, pid: str, target: str) -> CommandResult:
        reason = self._diplomacy_error(pid, target)
        if reason is None:
            rel = self.players[pid].relation_to(target)
            if rel == Relation.PEACE_PROPOSED:
                reason = "Peace already proposed"
            elif rel != Relation.WAR:
                reason = "Not at war"
        if reason is not None:
            return self._deny_diplomacy("propose_peace", pid, target, reason)

        # Only the proposer's entry changes; the target must accept separately.
        self.players[pid].relations[target] = Relation.PEACE_PROPOSED
        self.log("PEACE_PROPOSED", {"proposer": pid, "target": target}, player=pid)
        return CommandResult(True)

    def accept_peace(self, pid: str, proposer: str) -> CommandResult:
        reason = self._diplomacy_error(pid, proposer)
        if reason is None and self.players[proposer].relation_to(pid) != Relation.PEACE_PROPOSED:
            reason = "No pending peace proposal"
        if reason is not None:
            return self._deny_diplomacy("accept_peace", pid, proposer, reason)

        self.players[pid].relations[proposer] = Relation.PEACE
        self.players[proposer].relations[pid] = Relation.PEACE
        self.log("PEACE_MADE", {"player1": proposer, "player2": pid}, player=pid)
        return CommandResult(True)

    # ── Turn Processing ──────────────────────────────────────────────────

    def end_turn(self) -> CommandResult:
        if self.game_over:
            return CommandResult(False, "Game is over")

        pid = self.current_player_id
        for city in self.player_cities(pid):
            if city.owner == pid:
                self._process_production(city)
        for piece in self.board.iter_pieces(pid):
            piece.has_moved = False

        order = self.player_order
        for _ in range(len(order)):
            self.current_index = (self.current_index + 1) % len(order)
            if self.player_cities(self.current_player_id) or self.game_over:
                break

        self.turn_number += 1
        nxt = self.current_player_id
        self.log("TURN_END", {"turn": self.turn_number, "next_player": nxt})
        return CommandResult(True, data={"turn": self.turn_number, "next_player": nxt})

    # ── State Views ──────────────────────────────────────────────────────

    def game_phase(self) -> str:
        rounds = self.turn_number // max(1, len(self.players))
        if rounds < 10:
            return "early"
        if rounds < 30:
            return "mid"
        return "late"

    def _grouped(self, pid: str) -> dict[str, list[dict]]:
        groups: dict[str, list[dict]] = {key: [] for key in GROUP_KEYS.values()}
        for piece in self.board.iter_pieces(pid):
            groups[GROUP_KEYS[piece.type]].append(piece.to_dict())
        return groups

    def get_player_view(self, pid: str) -> dict:
        """Snapshot of the board from one player's point of view."""
        player = self.players[pid]
        return {
            "turn": self.turn_number,
            "player": pid,
            "current_player": self.current_player_id,
            "tech": player.tech_score,
            "relations": {oid: rel.value for oid, rel in player.relations.items()},
            "pending_peace": self.pending_peace_proposals(pid),
            "own": self._grouped(pid),
            "enemies": {oid: self._grouped(oid) for oid in self.players if oid != pid},
            "territory": {"owned": self.territory_count(pid),
                          "total": self.board.size * self.board.size},
            "phase": self.game_phase(),
            "game_over": self.game_over,
            "winner": self.winner,
        }

    def get_full_state(self) -> dict:
        players = {}
        for pid, p in self.players.items():
            players[pid] = {
                "name": p.name,
                "color": p.color,
                "tech_score": p.tech_score,
                "relations": {oid: rel.value for oid, rel in p.relations.items()},
                "cities": len(self.player_cities(pid)),
                "units": len(self.player_pieces(pid)),
                "territory": self.territory_count(pid),
                "alive": self.is_alive(pid),
            }
        return {
            "turn": self.turn_number,
            "current_player": self.current_player_id,
            "players": players,
            "board": self.board.snapshot(),
            "game_over": self.game_over,
            "winner": self.winner,
        }
