"""Core data types for CivChess."""
from __future__ import annotations
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

BOARD_SIZE = 10
MIN_PLAYERS = 2
MAX_PLAYERS = 4


class PieceType(str, Enum):
    CITY = "city"
    WARRIOR = "warrior"
    SETTLER = "settler"


PIECE_STATS = {
    #                     hp  damage
    PieceType.CITY:     (4, 0),
    PieceType.WARRIOR:  (1, 1),
    PieceType.SETTLER:  (1, 0),
}


class ProductionKind(str, Enum):
    NONE = "none"
    DIPLOMACY = "diplomacy"
    SCIENCE = "science"
    WARRIOR = "warrior"
    SETTLER = "settler"
    REPAIR = "repair"


PRODUCTION_TURNS = {
    ProductionKind.DIPLOMACY: 4,
    ProductionKind.SCIENCE:   10,
    ProductionKind.WARRIOR:   4,
    ProductionKind.SETTLER:   6,
    ProductionKind.REPAIR:    1,
}

SPAWNS = {
    ProductionKind.WARRIOR: PieceType.WARRIOR,
    ProductionKind.SETTLER: PieceType.SETTLER,
}


class Relation(str, Enum):
    PEACE = "peace"
    PEACE_PROPOSED = "peace_proposed"
    WAR = "war"


# Spawn / starting-warrior search order around a tile: orthogonal first.
NEIGHBOR_ORDER = [
    (-1, 0), (1, 0), (0, -1), (0, 1),
    (-1, -1), (-1, 1), (1, -1), (1, 1),
]

ELIMINATION_CONVERT_RATE = 0.25


def chebyshev(r1: int, c1: int, r2: int, c2: int) -> int:
    return max(abs(r1 - r2), abs(c1 - c2))


def manhattan(r1: int, c1: int, r2: int, c2: int) -> int:
    return abs(r1 - r2) + abs(c1 - c2)


@dataclass
class ProductionState:
    kind: ProductionKind = ProductionKind.NONE
    progress: int = 0
    paused: bool = False
    repeat: bool = True

    @property
    def active(self) -> bool:
        return self.kind != ProductionKind.NONE

    @property
    def turns_required(self) -> int:
        return PRODUCTION_TURNS.get(self.kind, 0)

    def clear(self):
        self.kind = ProductionKind.NONE
        self.progress = 0
        self.paused = False


@dataclass
class Piece:
    id: str
    type: PieceType
    owner: str
    row: int
    col: int
    hp: int
    max_hp: int
    damage: int
    has_moved: bool = False
    production: Optional[ProductionState] = None

    @property
    def pos(self) -> tuple[int, int]:
        return (self.row, self.col)

    @property
    def is_city(self) -> bool:
        return self.type == PieceType.CITY

    @property
    def hp_fraction(self) -> float:
        return self.hp / self.max_hp if self.max_hp else 0.0

    def to_dict(self) -> dict:
        d = {
            "id": self.id, "type": self.type.value, "owner": self.owner,
            "row": self.row, "col": self.col, "hp": self.hp,
            "max_hp": self.max_hp, "damage": self.damage,
            "has_moved": self.has_moved,
        }
        if self.production is not None:
            d["production"] = {
                "kind": self.production.kind.value,
                "progress": self.production.progress,
                "paused": self.production.paused,
                "repeat": self.production.repeat,
            }
        return d


@dataclass
class Player:
    id: str
    name: str
    color: Optional[str] = None
    tech_score: int = 0
    relations: dict[str, Relation] = field(default_factory=dict)

    def relation_to(self, other_id: str) -> Relation:
        return self.relations.get(other_id, Relation.PEACE)

    def at_war_with(self, other_id: str) -> bool:
        return self.relations.get(other_id) == Relation.WAR

    def wars(self) -> list[str]:
        return [pid for pid, rel in self.relations.items() if rel == Relation.WAR]


@dataclass
class PlayerConfig:
    name: str
    color: Optional[str] = None


def make_piece(pid: str, ptype: PieceType, owner: str, row: int, col: int,
               tech_score: int = 0) -> Piece:
    """Build a piece with base stats plus the owner's accumulated tech bonus."""
    hp, damage = PIECE_STATS[ptype]
    if tech_score > 0:
        if ptype in (PieceType.CITY, PieceType.WARRIOR):
            hp += tech_score
        if ptype == PieceType.WARRIOR:
            damage += tech_score
    production = ProductionState() if ptype == PieceType.CITY else None
    return Piece(id=pid, type=ptype, owner=owner, row=row, col=col,
                 hp=hp, max_hp=hp, damage=damage, production=production)


def captured_city_hp(max_hp: int) -> int:
    return math.ceil(max_hp / 3)


# ── Command results ─────────────────────────────────────────────────────────

@dataclass
class MoveCheck:
    valid: bool
    reason: Optional[str] = None


@dataclass
class EliminationResult:
    player_id: str
    conqueror_id: str
    converted: list[tuple[str, str]] = field(default_factory=list)  # (old id, new id)
    destroyed: list[str] = field(default_factory=list)


@dataclass
class CombatResult:
    attacker: str
    defender: str
    damage_dealt: int
    defender_hp: int
    defender_destroyed: bool = False
    city_captured: bool = False
    elimination: Optional[EliminationResult] = None


@dataclass
class MoveResult:
    success: bool
    reason: Optional[str] = None
    combat: Optional[CombatResult] = None
    blocked: bool = False


@dataclass
class CommandResult:
    success: bool
    reason: Optional[str] = None
    data: dict[str, Any] = field(default_factory=dict)


@dataclass
class ActionRecord:
    turn: int
    player: Optional[str]
    action_type: str
    details: dict[str, Any] = field(default_factory=dict)

    def summary(self) -> str:
        icon = ACTION_ICONS.get(self.action_type, "•")
        who = self.player or "system"
        detail = ", ".join(f"{k}={v}" for k, v in self.details.items())
        return f"{icon} [{who}] {self.action_type} {detail}".rstrip()


ACTION_ICONS = {
    "COMBAT": "⚔️",
    "CITY_CAPTURED": "🏰",
    "PLAYER_ELIMINATED": "💀",
    "VICTORY": "🏆",
    "CITY_BUILT": "🏠",
    "UNIT_SPAWNED": "🏗️",
    "TECH_COMPLETE": "🔬",
    "TERRITORY_EXPANDED": "🗺️",
    "WAR_DECLARED": "🔥",
    "PEACE_PROPOSED": "📜",
    "PEACE_MADE": "🤝",
}
