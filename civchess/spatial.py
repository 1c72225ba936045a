"""Spatial analysis for CivChess: heatmaps and strength metrics.

Everything here is a read-only function of the game state and a requesting
player. Each heatmap is normalized on its own scale:

  threat       [0, 1]   at-war warriors, weighted by damage
  opportunity  [0, 1]   reachable targets and claimable ground
  territory    [-1, 1]  signed control (ownership plus nearby presence)
  expansion    [0, 1]   new-city site quality, INVALID_SITE where illegal
"""
from __future__ import annotations
from dataclasses import dataclass, asdict
from .game import Game
from .types import Piece, PieceType, chebyshev

Grid = list[list[float]]

THREAT_RADIUS = 5
OPPORTUNITY_RADIUS = 5
TERRITORY_RADIUS = 4
INVALID_SITE = -1.0

OPPORTUNITY_WEIGHTS = {
    PieceType.CITY: 3.0,
    PieceType.SETTLER: 2.0,
    PieceType.WARRIOR: 1.0,
}
UNCLAIMED_BONUS = 0.5
ENEMY_GROUND_BONUS = 1.0

PRESENCE_WEIGHTS = {
    PieceType.CITY: 1.0,
    PieceType.WARRIOR: 0.5,
}

# Site scoring: ownership preference, then room from enemies, then ring
# distance from our own cities, then centrality.
SITE_WEIGHTS = {"ownership": 2.0, "enemy_distance": 1.0, "proximity": 1.5, "centrality": 0.5}
SITE_OWNERSHIP = {"own": 1.0, "unowned": 0.6, "war": 0.2, "foreign": 0.0}

STRENGTH_WEIGHTS = {
    "military": 1.0,
    "economic": 1.0,
    "expansion": 1.0,
    "tech": 1.0,
    "territory": 1.0,
}
CITY_BASE_VALUE = 5
SETTLER_VALUE = 3
TECH_VALUE = 2
TILE_VALUE = 0.5

STRONG_RATIO = 1.2
EVEN_RATIO = 0.8
MAX_RATIO = 10.0


@dataclass
class PlayerStrength:
    military: float = 0.0
    economic: float = 0.0
    expansion: float = 0.0
    tech: float = 0.0
    territory: float = 0.0

    @property
    def total(self) -> float:
        return sum(getattr(self, k) * w for k, w in STRENGTH_WEIGHTS.items())

    def to_dict(self) -> dict:
        return {**asdict(self), "total": self.total}


@dataclass
class RelativeStrength:
    ratio: float
    military_ratio: float
    advantage: str  # strong | even | weak


@dataclass
class VulnerableCity:
    piece_id: str
    owner: str
    row: int
    col: int
    vulnerability: float


@dataclass
class Heatmaps:
    threat: Grid
    opportunity: Grid
    territory: Grid
    expansion: Grid


def _grid(size: int, value: float = 0.0) -> Grid:
    return [[value] * size for _ in range(size)]


def _spread(grid: Grid, row: int, col: int, weight: float, radius: int):
    size = len(grid)
    for r in range(max(0, row - radius), min(size, row + radius + 1)):
        for c in range(max(0, col - radius), min(size, col + radius + 1)):
            grid[r][c] += weight / (chebyshev(row, col, r, c) + 1)


def _normalize(grid: Grid) -> Grid:
    peak = max(max(row) for row in grid)
    if peak <= 0:
        return [[0.0] * len(row) for row in grid]
    return [[max(0.0, v) / peak for v in row] for row in grid]


def _ratio(a: float, b: float) -> float:
    if b <= 0:
        return MAX_RATIO if a > 0 else 1.0
    return min(MAX_RATIO, a / b)


def advantage_bucket(ratio: float) -> str:
    if ratio > STRONG_RATIO:
        return "strong"
    if ratio > EVEN_RATIO:
        return "even"
    return "weak"


class SpatialAnalyzer:
    def __init__(self, game: Game):
        self.game = game

    @property
    def size(self) -> int:
        return self.game.board.size

    def _others(self, pid: str) -> list[Piece]:
        return [p for p in self.game.board.pieces.values() if p.owner != pid]

    # ── Heatmaps ─────────────────────────────────────────────────────────

    def threat_heatmap(self, pid: str) -> Grid:
        grid = _grid(self.size)
        for piece in self._others(pid):
            if piece.type == PieceType.WARRIOR and self.game.hostile(pid, piece.owner):
                _spread(grid, piece.row, piece.col, piece.damage, THREAT_RADIUS)
        return _normalize(grid)

    def opportunity_heatmap(self, pid: str) -> Grid:
        player = self.game.players[pid]
        board = self.game.board
        grid = _grid(self.size)
        for piece in self._others(pid):
            weight = OPPORTUNITY_WEIGHTS[piece.type]
            if piece.type == PieceType.CITY:
                weight *= 2.0 - piece.hp_fraction
            _spread(grid, piece.row, piece.col, weight, OPPORTUNITY_RADIUS)
        for r in range(self.size):
            for c in range(self.size):
                owner = board.owner_at(r, c)
                if owner is None:
                    grid[r][c] += UNCLAIMED_BONUS
                elif owner != pid and player.at_war_with(owner):
                    grid[r][c] += ENEMY_GROUND_BONUS
        return _normalize(grid)

    def territory_heatmap(self, pid: str) -> Grid:
        board = self.game.board
        presence = _grid(self.size)
        for piece in board.pieces.values():
            weight = PRESENCE_WEIGHTS.get(piece.type)
            if weight is None:
                continue
            _spread(presence, piece.row, piece.col,
                    weight if piece.owner == pid else -weight, TERRITORY_RADIUS)

        grid = _grid(self.size)
        for r in range(self.size):
            for c in range(self.size):
                owner = board.owner_at(r, c)
                ownership = 0.0 if owner is None else (1.0 if owner == pid else -1.0)
                value = 0.5 * ownership + 0.5 * presence[r][c]
                grid[r][c] = max(-1.0, min(1.0, value))
        return grid

    def expansion_heatmap(self, pid: str) -> Grid:
        game = self.game
        board = game.board
        player = game.players[pid]
        cities = board.cities()
        own_cities = [c for c in cities if c.owner == pid]
        enemies = [p for p in self._others(pid) if p.type != PieceType.SETTLER]
        center = (self.size - 1) / 2

        raw = _grid(self.size, INVALID_SITE)
        valid: list[tuple[int, int]] = []
        for r in range(self.size):
            for c in range(self.size):
                occupant = board.piece_at(r, c)
                if occupant is not None and not (occupant.owner == pid
                                                 and occupant.type == PieceType.SETTLER):
                    continue
                if any(chebyshev(r, c, city.row, city.col) <= 1 for city in cities):
                    continue

                owner = board.owner_at(r, c)
                if owner == pid:
                    ownership = SITE_OWNERSHIP["own"]
                elif owner is None:
                    ownership = SITE_OWNERSHIP["unowned"]
                elif player.at_war_with(owner):
                    ownership = SITE_OWNERSHIP["war"]
                else:
                    ownership = SITE_OWNERSHIP["foreign"]

                if enemies:
                    nearest = min(chebyshev(r, c, e.row, e.col) for e in enemies)
                    enemy_distance = min(nearest, 6) / 6
                else:
                    enemy_distance = 1.0

                if own_cities:
                    d = min(chebyshev(r, c, oc.row, oc.col) for oc in own_cities)
                    proximity = 1.0 if d <= 3 else max(0.0, 1.0 - (d - 3) * 0.2)
                else:
                    proximity = 0.5

                centrality = 1.0 - max(abs(r - center), abs(c - center)) / center if center else 1.0

                raw[r][c] = (SITE_WEIGHTS["ownership"] * ownership
                             + SITE_WEIGHTS["enemy_distance"] * enemy_distance
                             + SITE_WEIGHTS["proximity"] * proximity
                             + SITE_WEIGHTS["centrality"] * centrality)
                valid.append((r, c))

        if not valid:
            return raw
        lo = min(raw[r][c] for r, c in valid)
        hi = max(raw[r][c] for r, c in valid)
        for r, c in valid:
            raw[r][c] = 1.0 if hi == lo else (raw[r][c] - lo) / (hi - lo)
        return raw

    def heatmaps(self, pid: str) -> Heatmaps:
        return Heatmaps(
            threat=self.threat_heatmap(pid),
            opportunity=self.opportunity_heatmap(pid),
            territory=self.territory_heatmap(pid),
            expansion=self.expansion_heatmap(pid),
        )

    # ── Strategic positions ──────────────────────────────────────────────

    def vulnerable_cities(self, pid: str) -> list[VulnerableCity]:
        """Other players' cities, most vulnerable first."""
        board = self.game.board
        result = []
        for city in board.cities():
            if city.owner == pid:
                continue
            defenders = sum(
                1 for r, c in board.neighbors(city.row, city.col)
                if (p := board.piece_at(r, c)) is not None
                and p.owner == city.owner and p.type == PieceType.WARRIOR
            )
            vulnerability = 0.6 * (1.0 - city.hp_fraction) + 0.4 / (1 + defenders)
            result.append(VulnerableCity(city.id, city.owner, city.row, city.col, vulnerability))
        result.sort(key=lambda v: (-v.vulnerability, v.piece_id))
        return result

    # ── Strength ─────────────────────────────────────────────────────────

    def player_strength(self, pid: str) -> PlayerStrength:
        s = PlayerStrength()
        for piece in self.game.board.iter_pieces(pid):
            if piece.type == PieceType.WARRIOR:
                s.military += piece.hp + piece.damage
            elif piece.type == PieceType.CITY:
                s.economic += piece.hp + CITY_BASE_VALUE
            elif piece.type == PieceType.SETTLER:
                s.expansion += SETTLER_VALUE
        s.tech = self.game.players[pid].tech_score * TECH_VALUE
        s.territory = self.game.territory_count(pid) * TILE_VALUE
        return s

    def relative_strength(self, pid: str, other: str) -> RelativeStrength:
        mine = self.player_strength(pid)
        theirs = self.player_strength(other)
        ratio = _ratio(mine.total, theirs.total)
        return RelativeStrength(
            ratio=ratio,
            military_ratio=_ratio(mine.military, theirs.military),
            advantage=advantage_bucket(ratio),
        )
