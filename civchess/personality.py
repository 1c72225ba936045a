"""AI personalities, difficulty levels and goals.

A personality decides *what* the AI wants (goal priorities, production
order); a difficulty decides *how well* it pursues it (mistakes, diplomatic
thresholds). Both are plain objects handed to the controller.
"""
from __future__ import annotations
import random
from dataclasses import dataclass
from enum import Enum
from typing import Optional
from .types import Piece, ProductionKind


class GoalType(str, Enum):
    DEFEND_CITY = "defend_city"
    DEMILITARIZE = "demilitarize"
    CONQUER_CITY = "conquer_city"
    ESTABLISH_BORDERS = "establish_borders"
    EXPAND = "expand"
    ADVANCE_TECH = "advance_tech"


WAR_GOALS = {GoalType.DEFEND_CITY, GoalType.DEMILITARIZE, GoalType.CONQUER_CITY}
WAR_PRIORITY_BONUS = 100

# Production caps that keep expansion from running away.
MAX_SETTLERS_IN_PLAY = 2
MAX_CITIES = 6
TERRITORY_PER_CITY = 6
TERRITORY_CAP = 30
WARRIOR_FLOOR = 2


@dataclass
class Goal:
    goal_type: GoalType
    priority: int
    target: Optional[tuple[int, int]] = None
    target_player: Optional[str] = None

    @property
    def is_war_goal(self) -> bool:
        return self.goal_type in WAR_GOALS

    def __str__(self) -> str:
        where = f" @ {self.target}" if self.target else ""
        return f"[P:{self.priority}] {self.goal_type.value}{where}"


@dataclass
class PlanningContext:
    """Summary of the board a personality plans against."""
    at_war: bool = False
    city_count: int = 0
    warrior_count: int = 0
    settler_count: int = 0
    territory: int = 0
    tech: int = 0
    max_enemy_tech: int = 0
    city_threat: float = 0.0
    expansion_sites: int = 0
    enemy_warriors_near: int = 0
    defend_target: Optional[tuple[int, int]] = None
    conquer_target: Optional[tuple[int, int]] = None
    conquer_owner: Optional[str] = None
    phase: str = "early"
    stronger_than: int = 0    # opponents we clearly outmatch
    weaker_than: int = 0
    under_attack: bool = False
    hostile_neighbor: bool = False

    @property
    def tech_behind(self) -> bool:
        return self.max_enemy_tech > self.tech + 1


class Personality:
    """Goal scoring and production ranking for one play style."""
    name = "base"
    war_bias = 0.0

    def goal_scores(self, ctx: PlanningContext) -> dict[GoalType, float]:
        raise NotImplementedError

    def production_preferences(self, ctx: PlanningContext) -> list[ProductionKind]:
        raise NotImplementedError

    def goals(self, ctx: PlanningContext) -> list[Goal]:
        goals = []
        for gtype, score in self.goal_scores(ctx).items():
            if score <= 0:
                continue
            priority = int(score)
            if ctx.at_war and gtype in WAR_GOALS:
                priority += WAR_PRIORITY_BONUS
            goal = Goal(goal_type=gtype, priority=priority)
            if gtype == GoalType.DEFEND_CITY:
                goal.target = ctx.defend_target
            elif gtype == GoalType.CONQUER_CITY:
                goal.target = ctx.conquer_target
                goal.target_player = ctx.conquer_owner
            goals.append(goal)
        goals.sort(key=lambda g: (-g.priority, g.goal_type.value))
        return goals

    def rank_production(self, ctx: PlanningContext,
                        city: Piece | None = None) -> list[ProductionKind]:
        ranked = [k for k in self.production_preferences(ctx)
                  if production_allowed(k, ctx, city)]
        return ranked or [ProductionKind.SCIENCE]


def production_allowed(kind: ProductionKind, ctx: PlanningContext,
                       city: Piece | None = None) -> bool:
    if kind == ProductionKind.SETTLER:
        return (ctx.settler_count < MAX_SETTLERS_IN_PLAY
                and ctx.city_count < MAX_CITIES
                and ctx.expansion_sites > 0)
    if kind == ProductionKind.DIPLOMACY:
        return ctx.territory < min(TERRITORY_CAP, TERRITORY_PER_CITY * max(1, ctx.city_count))
    if kind == ProductionKind.REPAIR:
        return city is not None and city.hp < city.max_hp
    if kind == ProductionKind.NONE:
        return False
    return True


class Militaristic(Personality):
    name = "militaristic"
    war_bias = 0.2

    def goal_scores(self, ctx: PlanningContext) -> dict[GoalType, float]:
        scores = {
            GoalType.ADVANCE_TECH: 25 + (10 if ctx.tech_behind else 0),
            GoalType.ESTABLISH_BORDERS: 20,
            GoalType.EXPAND: 15 if ctx.expansion_sites else 0,
        }
        if ctx.at_war:
            scores[GoalType.CONQUER_CITY] = 50 if ctx.conquer_target else 0
            scores[GoalType.DEMILITARIZE] = 40 if ctx.enemy_warriors_near else 10
        if ctx.defend_target:
            scores[GoalType.DEFEND_CITY] = 30 + ctx.city_threat * 50
        return scores

    def production_preferences(self, ctx: PlanningContext) -> list[ProductionKind]:
        if ctx.at_war or ctx.warrior_count < WARRIOR_FLOOR + 1:
            order = [ProductionKind.WARRIOR, ProductionKind.SCIENCE]
        else:
            order = [ProductionKind.SCIENCE, ProductionKind.WARRIOR]
        if ctx.city_count < 2:
            order.append(ProductionKind.SETTLER)
        order += [ProductionKind.DIPLOMACY, ProductionKind.SETTLER]
        return _dedupe(order)


class Expansionist(Personality):
    name = "expansionist"
    war_bias = -0.1

    def goal_scores(self, ctx: PlanningContext) -> dict[GoalType, float]:
        scores = {
            GoalType.EXPAND: 45 if ctx.expansion_sites else 0,
            GoalType.ESTABLISH_BORDERS: 35,
            GoalType.ADVANCE_TECH: 15 + (15 if ctx.tech_behind else 0),
        }
        if ctx.at_war:
            scores[GoalType.DEMILITARIZE] = 35 if ctx.enemy_warriors_near else 5
            scores[GoalType.CONQUER_CITY] = 20 if ctx.conquer_target else 0
        if ctx.defend_target:
            scores[GoalType.DEFEND_CITY] = 45 + ctx.city_threat * 50
        return scores

    def production_preferences(self, ctx: PlanningContext) -> list[ProductionKind]:
        order = []
        if ctx.at_war or ctx.warrior_count < WARRIOR_FLOOR:
            order.append(ProductionKind.WARRIOR)
        order += [ProductionKind.SETTLER, ProductionKind.DIPLOMACY]
        if ctx.tech_behind:
            order.insert(0, ProductionKind.SCIENCE)
        order += [ProductionKind.SCIENCE, ProductionKind.WARRIOR]
        return _dedupe(order)


class Research(Personality):
    name = "research"
    war_bias = -0.2

    def goal_scores(self, ctx: PlanningContext) -> dict[GoalType, float]:
        scores = {
            GoalType.ADVANCE_TECH: 50 + (10 if ctx.tech_behind else 0),
            GoalType.ESTABLISH_BORDERS: 20,
            GoalType.EXPAND: 15 if ctx.expansion_sites else 0,
        }
        if ctx.at_war:
            scores[GoalType.DEMILITARIZE] = 30 if ctx.enemy_warriors_near else 5
            scores[GoalType.CONQUER_CITY] = 10 if ctx.conquer_target else 0
        if ctx.defend_target:
            scores[GoalType.DEFEND_CITY] = 40 + ctx.city_threat * 50
        return scores

    def production_preferences(self, ctx: PlanningContext) -> list[ProductionKind]:
        order = [ProductionKind.SCIENCE, ProductionKind.WARRIOR, ProductionKind.DIPLOMACY,
                 ProductionKind.SETTLER]
        if ctx.at_war and ctx.warrior_count < WARRIOR_FLOOR:
            order.insert(0, ProductionKind.WARRIOR)
        return _dedupe(order)


class Defensive(Personality):
    """Hold what we have: garrison threatened cities and patch them up."""
    name = "defensive"
    war_bias = -0.15

    def goal_scores(self, ctx: PlanningContext) -> dict[GoalType, float]:
        scores = {
            GoalType.ESTABLISH_BORDERS: 25,
            GoalType.ADVANCE_TECH: 20,
            GoalType.EXPAND: 10 if ctx.expansion_sites else 0,
        }
        if ctx.at_war:
            scores[GoalType.DEMILITARIZE] = 45 if ctx.enemy_warriors_near else 10
        if ctx.defend_target:
            scores[GoalType.DEFEND_CITY] = 60 + ctx.city_threat * 50
        return scores

    def production_preferences(self, ctx: PlanningContext) -> list[ProductionKind]:
        return [ProductionKind.WARRIOR, ProductionKind.REPAIR, ProductionKind.DIPLOMACY,
                ProductionKind.SCIENCE, ProductionKind.SETTLER]


def _dedupe(kinds: list[ProductionKind]) -> list[ProductionKind]:
    return list(dict.fromkeys(kinds))


# Iteration order breaks score ties.
PERSONALITIES: dict[str, type[Personality]] = {
    Expansionist.name: Expansionist,
    Research.name: Research,
    Militaristic.name: Militaristic,
    Defensive.name: Defensive,
}

STYLE_THREAT_ALERT = 0.5


def score_styles(ctx: PlanningContext) -> dict[str, float]:
    """Rate every play style for the situation in ``ctx``; higher is better."""
    scores = dict.fromkeys(PERSONALITIES, 0.0)

    if ctx.phase == "early":
        scores[Expansionist.name] += 30
        scores[Research.name] += 10
    elif ctx.phase == "mid":
        scores[Research.name] += 20
        scores[Militaristic.name] += 15
    else:
        scores[Militaristic.name] += 30

    if ctx.city_count < 2:
        scores[Expansionist.name] += 25
    if ctx.settler_count and ctx.expansion_sites:
        scores[Expansionist.name] += 20

    if ctx.city_threat > STYLE_THREAT_ALERT:
        scores[Defensive.name] += 40
    if ctx.under_attack:
        scores[Defensive.name] += 40

    if ctx.stronger_than > ctx.weaker_than:
        scores[Militaristic.name] += 25
    elif ctx.weaker_than > ctx.stronger_than:
        scores[Defensive.name] += 20
        scores[Research.name] += 15

    if ctx.tech_behind:
        scores[Research.name] += 25

    if ctx.at_war:
        scores[Militaristic.name] += 20
        scores[Defensive.name] += 15
        if ctx.enemy_warriors_near:
            scores[Militaristic.name] += 15
    if ctx.hostile_neighbor:
        scores[Militaristic.name] += 20
    return scores


def best_style(scores: dict[str, float]) -> str:
    return max(scores, key=scores.__getitem__)


def get_personality(name: str) -> Personality:
    try:
        return PERSONALITIES[name]()
    except KeyError:
        raise ValueError(f"unknown personality {name!r}") from None


MANY_WARRIORS = 3


def infer_personality(warriors: int, settlers: int, cities: int) -> str:
    """Guess another player's play style from what it has on the board."""
    if warriors >= MANY_WARRIORS and settlers == 0:
        return Militaristic.name
    if settlers > 0 or cities > 1:
        return Expansionist.name
    return "unknown"


# ── Difficulty ───────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Difficulty:
    name: str
    mistake_probability: float
    aggression_bonus: float
    defense_awareness: float
    peace_threshold: float
    war_threshold: float
    war_cooldown: int  # own turns between war declarations
    strategy_stickiness: float  # chance to keep the current style while it has turns left

    def makes_mistake(self, rng: random.Random) -> bool:
        return self.mistake_probability > 0 and rng.random() < self.mistake_probability

    def accepts_peace(self, score: float) -> bool:
        return score > self.peace_threshold

    def wants_war(self, score: float) -> bool:
        return score + self.aggression_bonus > self.war_threshold

    def weigh_threat(self, threat: float) -> float:
        return threat * self.defense_awareness


DIFFICULTIES = {
    #                              mistake aggr  defense peace war  cooldown sticky
    "easy":   Difficulty("easy",   0.30,  -0.10, 0.4,   0.3,  0.8, 8,       0.8),
    "medium": Difficulty("medium", 0.10,   0.00, 0.7,   0.5,  0.5, 5,       0.5),
    "hard":   Difficulty("hard",   0.00,   0.10, 1.0,   0.7,  0.3, 3,       0.3),
}


def get_difficulty(difficulty: str | Difficulty) -> Difficulty:
    if isinstance(difficulty, Difficulty):
        return difficulty
    try:
        return DIFFICULTIES[difficulty]
    except KeyError:
        raise ValueError(f"unknown difficulty {difficulty!r}") from None
