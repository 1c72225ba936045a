"""Autonomous opponent for CivChess.

One ``AIController`` plays one seat. Each turn it:

1. analyzes the board (heatmaps, strengths, raw view),
2. profiles the other players,
3. picks a play style (kept for a few turns) and a prioritized goal list,
4. handles diplomacy,
5. sets production for idle cities,
6. keeps a sticky objective per unit, dropping ones that stop progressing,
7. moves warriors (opportunistic attacks, blockade breaking, greedy steps),
8. founds cities with settlers or walks them toward good sites.

It only ever acts through the public ``Game`` commands, so every action it
takes is legal by construction.
"""
from __future__ import annotations
import logging
import random
from dataclasses import dataclass, field
from typing import Any, Optional
from .game import Game
from .personality import (
    PERSONALITIES, Difficulty, Expansionist, Goal, GoalType, Militaristic, Personality,
    PlanningContext, best_style, get_difficulty, get_personality, infer_personality,
    score_styles,
)
from .spatial import (
    INVALID_SITE, Heatmaps, PlayerStrength, RelativeStrength, SpatialAnalyzer,
    VulnerableCity,
)
from .types import ActionRecord, Piece, PieceType, ProductionKind, Relation, chebyshev, manhattan

logger = logging.getLogger(__name__)

STALE_WINDOW = 3                  # turns without progress before an objective is dropped
OPPORTUNISTIC_ATTACK_CHANCE = 0.7
REPAIR_THRESHOLD = 0.5
THREAT_DECAY = 0.8
CITY_THREAT_ALERT = 0.5
DEFEND_ALERT = 0.25
VULNERABLE = 0.5
GOOD_SITE = 0.5
DEFENSIVE_TURNS = 5
MAX_DEFENDERS = 2
BORDER_RADIUS = 4
HUNT_RADIUS = 6
NEAR_RADIUS = 3
STYLE_MIN_TURNS = 3               # a freshly chosen style is kept for 3-5 turns
STYLE_EXTRA_TURNS = 3
PEACE_OFFER_PATIENCE = 3          # own turns an unanswered peace offer stands


@dataclass
class Objective:
    goal: GoalType
    target: tuple[int, int]
    piece_id: Optional[str] = None   # set when chasing a piece rather than a tile
    radius: int = 0                  # close enough once within this distance
    best_distance: int = 1 << 30
    target_hp: Optional[int] = None
    stale_turns: int = 0


@dataclass
class OpponentProfile:
    player_id: str
    personality: str = "unknown"
    threat: float = 0.0
    last_warriors: int = 0


@dataclass
class AIAction:
    kind: str
    piece: Optional[str] = None
    target: Any = None
    success: bool = True
    reason: Optional[str] = None
    mistake: bool = False


@dataclass
class TurnReport:
    player_id: str
    personality: str = ""
    goals: list[Goal] = field(default_factory=list)
    actions: list[AIAction] = field(default_factory=list)
    skipped: Optional[str] = None

    def add(self, action: AIAction):
        self.actions.append(action)


@dataclass
class Analysis:
    view: dict
    maps: Heatmaps
    strength: PlayerStrength
    relative: dict[str, RelativeStrength]
    vulnerable: list[VulnerableCity]
    city_threat: float


class AIController:
    def __init__(self, game: Game, player_id: str,
                 difficulty: str | Difficulty = "medium",
                 personality: str | Personality | None = None,
                 rng: random.Random | None = None, seed: int | None = None):
        self.game = game
        self.player_id = player_id
        self.difficulty = get_difficulty(difficulty)
        if isinstance(personality, str):
            personality = get_personality(personality)
        self.fixed_personality: Personality | None = personality
        self._styles = {name: cls() for name, cls in PERSONALITIES.items()}
        self.personality: Personality = personality or self._styles[Expansionist.name]
        self.rng = rng or random.Random(seed)
        self.analyzer = SpatialAnalyzer(game)

        self.objectives: dict[str, Objective] = {}
        self.profiles: dict[str, OpponentProfile] = {}
        self.goals: list[Goal] = []
        self.turns_taken = 0
        self.last_war_declared: int | None = None
        self.defensive_turns = 0
        self.style_turns_remaining = 0
        self.peace_offers: dict[str, int] = {}  # target -> turn the offer was made

    @property
    def player(self):
        return self.game.players[self.player_id]

    # ── Main entry points ────────────────────────────────────────────────

    def execute_turn(self) -> TurnReport:
        game = self.game
        report = TurnReport(player_id=self.player_id)
        if game.game_over:
            report.skipped = "Game is over"
            return report
        if game.current_player_id != self.player_id:
            report.skipped = "Not this player's turn"
            return report
        if not game.is_alive(self.player_id):
            report.skipped = "Player has no cities"
            return report

        self.turns_taken += 1
        analysis = self.analyze()
        self.profile_opponents(analysis)
        ctx = self.planning_context(analysis)
        self.personality = self.choose_personality(ctx)
        self.goals = self.personality.goals(ctx)
        report.personality = self.personality.name
        report.goals = list(self.goals)

        if self.diplomacy_pass(analysis, report):
            # War state changed, so threat and opportunity did too.
            analysis = self.analyze()
            ctx = self.planning_context(analysis)
            self.goals = self.personality.goals(ctx)
            report.goals = list(self.goals)

        self.production_pass(ctx, report)
        self.update_objectives(analysis)
        self.settler_pass(analysis, report)
        self.warrior_pass(analysis, report)

        if self.defensive_turns:
            self.defensive_turns -= 1
        logger.info("AI %s (%s, %s): %d actions, goals=%s", self.player_id,
                    self.difficulty.name, self.personality.name, len(report.actions),
                    [str(g) for g in self.goals[:3]])
        return report

    def notify_event(self, record: ActionRecord):
        """React to something another player did."""
        details = record.details
        mine = self.player_id
        hostile = (
            (record.action_type == "WAR_DECLARED" and details.get("defender") == mine)
            or (record.action_type == "CITY_CAPTURED" and details.get("previous_owner") == mine)
        )
        if hostile and self.rng.random() < self.difficulty.defense_awareness:
            self.defensive_turns = DEFENSIVE_TURNS
            logger.debug("AI %s turning defensive after %s", mine, record.action_type)

    # ── Analysis ─────────────────────────────────────────────────────────

    def analyze(self) -> Analysis:
        game, pid = self.game, self.player_id
        maps = self.analyzer.heatmaps(pid)
        relative = {
            oid: self.analyzer.relative_strength(pid, oid)
            for oid in game.players if oid != pid and game.is_alive(oid)
        }
        cities = game.player_cities(pid)
        city_threat = (sum(maps.threat[c.row][c.col] for c in cities) / len(cities)
                       if cities else 0.0)
        return Analysis(
            view=game.get_player_view(pid),
            maps=maps,
            strength=self.analyzer.player_strength(pid),
            relative=relative,
            vulnerable=self.analyzer.vulnerable_cities(pid),
            city_threat=city_threat,
        )

    def active_wars(self) -> list[str]:
        """Living players we may attack (our own entry toward them is WAR)."""
        return [oid for oid in self.player.wars() if self.game.is_alive(oid)]

    def hostile_players(self) -> list[str]:
        """Living players either side of a war with us, including ones we offered peace."""
        game = self.game
        return [oid for oid in game.players
                if oid != self.player_id and game.is_alive(oid) and game.hostile(self.player_id, oid)]

    def profile_opponents(self, analysis: Analysis):
        game = self.game
        for oid in game.players:
            if oid == self.player_id:
                continue
            profile = self.profiles.setdefault(oid, OpponentProfile(player_id=oid))
            own = analysis.view["enemies"][oid]
            warriors = len(own["warriors"])
            profile.personality = infer_personality(warriors, len(own["settlers"]),
                                                    len(own["cities"]))
            if not own["cities"]:
                profile.threat = 0.0
                profile.last_warriors = warriors
                continue
            threat = profile.threat * THREAT_DECAY
            if game.hostile(self.player_id, oid):
                threat += 1.0
            if warriors > profile.last_warriors:
                threat += 0.5 * (warriors - profile.last_warriors)
            rel = analysis.relative.get(oid)
            if rel is not None and rel.advantage == "weak":
                threat += 0.5
            profile.threat = threat
            profile.last_warriors = warriors

    def planning_context(self, analysis: Analysis) -> PlanningContext:
        game, pid = self.game, self.player_id
        view = analysis.view
        maps = analysis.maps
        hostile = self.hostile_players()
        wars = self.active_wars()

        defend_target = None
        worst = 0.0
        for city in game.player_cities(pid):
            threat = self.difficulty.weigh_threat(maps.threat[city.row][city.col])
            if threat > DEFEND_ALERT and threat > worst:
                worst, defend_target = threat, city.pos

        conquer_target = conquer_owner = None
        for v in analysis.vulnerable:
            if v.owner in wars:
                conquer_target, conquer_owner = (v.row, v.col), v.owner
                break

        own_positions = [p.pos for p in game.player_pieces(pid)]
        near = 0
        for oid in hostile:
            for w in game.player_pieces(oid, PieceType.WARRIOR):
                if any(chebyshev(w.row, w.col, r, c) <= NEAR_RADIUS for r, c in own_positions):
                    near += 1

        sites = sum(1 for row in maps.expansion for v in row if v > GOOD_SITE)
        enemy_tech = [game.players[oid].tech_score for oid in game.players if oid != pid]
        advantages = [rel.advantage for rel in analysis.relative.values()]
        menacing = any(p.personality == Militaristic.name and p.threat >= 1.5
                       for p in self.profiles.values())

        return PlanningContext(
            at_war=bool(hostile),
            city_count=len(view["own"]["cities"]),
            warrior_count=len(view["own"]["warriors"]),
            settler_count=len(view["own"]["settlers"]),
            territory=view["territory"]["owned"],
            tech=view["tech"],
            max_enemy_tech=max(enemy_tech, default=0),
            city_threat=self.difficulty.weigh_threat(analysis.city_threat),
            expansion_sites=sites,
            enemy_warriors_near=near,
            defend_target=defend_target,
            conquer_target=conquer_target,
            conquer_owner=conquer_owner,
            phase=view["phase"],
            stronger_than=advantages.count("strong"),
            weaker_than=advantages.count("weak"),
            under_attack=bool(self.defensive_turns),
            hostile_neighbor=menacing,
        )

    def choose_personality(self, ctx: PlanningContext) -> Personality:
        """Adopt the best-scoring play style, keeping the current one for a few turns.

        While a style has turns left, the difficulty's stickiness is the chance
        of keeping it without re-scoring. A mistake adopts a random style.
        """
        if self.fixed_personality is not None:
            return self.fixed_personality
        if self.style_turns_remaining > 0:
            self.style_turns_remaining -= 1
            if self.rng.random() < self.difficulty.strategy_stickiness:
                return self.personality

        scores = score_styles(ctx)
        name = best_style(scores)
        if self.difficulty.makes_mistake(self.rng):
            name = self.rng.choice(list(scores))
        self.style_turns_remaining = STYLE_MIN_TURNS + self.rng.randrange(STYLE_EXTRA_TURNS)
        if name != self.personality.name:
            logger.debug("AI %s switching style %s -> %s", self.player_id,
                         self.personality.name, name)
        return self._styles[name]

    # ── Diplomacy ────────────────────────────────────────────────────────

    def peace_acceptance_score(self, proposer: str, analysis: Analysis) -> float:
        score = 0.5
        rel = analysis.relative.get(proposer)
        if rel is not None:
            if rel.advantage == "weak":
                score += 0.3
            elif rel.advantage == "strong":
                score -= 0.2
        if analysis.city_threat > CITY_THREAT_ALERT:
            score += self.difficulty.weigh_threat(0.3)
        if self.defensive_turns:
            score += 0.2
        if len(self.hostile_players()) > 1:
            score += 0.2
        return score - self.personality.war_bias

    def war_score(self, target: str, analysis: Analysis) -> float:
        rel = analysis.relative.get(target)
        if rel is None:
            return -1.0
        score = {"strong": 0.4, "even": 0.1, "weak": -0.3}[rel.advantage]
        if rel.military_ratio > 1.5:
            score += 0.3
        score += self.personality.war_bias
        score -= 0.3 * len(self.hostile_players())
        if len(self.game.player_pieces(self.player_id, PieceType.WARRIOR)) < 2:
            score -= 0.5
        if any(v.owner == target and v.vulnerability > VULNERABLE for v in analysis.vulnerable):
            score += 0.2
        profile = self.profiles.get(target)
        if profile is not None:
            score += min(0.3, profile.threat * 0.1)
        return score

    def _war_cooldown_over(self) -> bool:
        if self.last_war_declared is None:
            return True
        return self.turns_taken - self.last_war_declared >= self.difficulty.war_cooldown

    def diplomacy_pass(self, analysis: Analysis, report: TurnReport) -> bool:
        game, pid = self.game, self.player_id
        changed = False

        for proposer in game.pending_peace_proposals(pid):
            score = self.peace_acceptance_score(proposer, analysis)
            if not self.difficulty.accepts_peace(score):
                continue
            res = game.accept_peace(pid, proposer)
            report.add(AIAction("accept_peace", target=proposer,
                                success=res.success, reason=res.reason))
            changed = changed or res.success

        # Our own PEACE_PROPOSED entry forbids attacking, so stale offers are withdrawn.
        withdrawn = set()
        for oid in sorted(game.players):
            if oid == pid or self.player.relation_to(oid) != Relation.PEACE_PROPOSED:
                self.peace_offers.pop(oid, None)
                continue
            offered = self.peace_offers.setdefault(oid, self.turns_taken)
            if not game.is_alive(oid):
                continue
            expired = self.turns_taken - offered >= PEACE_OFFER_PATIENCE
            if expired or not self._losing_to(oid):
                res = game.declare_war(pid, oid)
                report.add(AIAction("withdraw_peace", target=oid,
                                    success=res.success, reason=res.reason))
                if res.success:
                    del self.peace_offers[oid]
                    withdrawn.add(oid)
                    changed = True

        if self._war_cooldown_over():
            candidates = []
            for oid in game.players:
                if oid == pid or not game.is_alive(oid):
                    continue
                if self.player.relation_to(oid) != Relation.PEACE:
                    continue
                score = self.war_score(oid, analysis)
                if self.difficulty.wants_war(score):
                    candidates.append((score, oid))
            if candidates:
                candidates.sort(key=lambda t: (-t[0], t[1]))
                target = candidates[0][1]
                res = game.declare_war(pid, target)
                report.add(AIAction("declare_war", target=target,
                                    success=res.success, reason=res.reason))
                if res.success:
                    self.last_war_declared = self.turns_taken
                    changed = True

        for oid in self.active_wars():
            if oid in withdrawn or self.player.relation_to(oid) != Relation.WAR:
                continue
            if self._losing_to(oid):
                res = game.propose_peace(pid, oid)
                report.add(AIAction("propose_peace", target=oid,
                                    success=res.success, reason=res.reason))
                if res.success:
                    self.peace_offers[oid] = self.turns_taken
                    changed = True
        return changed

    def _losing_to(self, oid: str) -> bool:
        """Down to one city and outnumbered in warriors by ``oid``."""
        game, pid = self.game, self.player_id
        if len(game.player_cities(pid)) != 1:
            return False
        mine = len(game.player_pieces(pid, PieceType.WARRIOR))
        return len(game.player_pieces(oid, PieceType.WARRIOR)) > mine

    # ── Production ───────────────────────────────────────────────────────

    def choose_production(self, city: Piece, ctx: PlanningContext) -> tuple[ProductionKind, bool]:
        if city.hp_fraction < REPAIR_THRESHOLD:
            return ProductionKind.REPAIR, False
        ranked = self.personality.rank_production(ctx, city)
        if len(ranked) > 1 and self.difficulty.makes_mistake(self.rng):
            return self.rng.choice(ranked), True
        return ranked[0], False

    def production_pass(self, ctx: PlanningContext, report: TurnReport):
        for city in self.game.player_cities(self.player_id):
            if city.production.active:
                continue
            kind, mistake = self.choose_production(city, ctx)
            # One-shot orders: the city comes back idle and is re-planned.
            res = self.game.set_production(city.id, kind, repeat=False)
            report.add(AIAction("set_production", piece=city.id, target=kind.value,
                                success=res.success, reason=res.reason, mistake=mistake))
            if res.success and kind == ProductionKind.SETTLER:
                ctx.settler_count += 1

    # ── Objectives ───────────────────────────────────────────────────────

    def _objective_alive(self, obj: Objective, analysis: Analysis) -> bool:
        board = self.game.board
        if obj.goal == GoalType.EXPAND:
            r, c = obj.target
            return analysis.maps.expansion[r][c] != INVALID_SITE
        if obj.goal == GoalType.DEFEND_CITY:
            city = board.piece_at(*obj.target)
            return (city is not None and city.owner == self.player_id
                    and any(g.goal_type == GoalType.DEFEND_CITY for g in self.goals))
        if obj.piece_id is None:
            return True
        target = self.game.get_piece(obj.piece_id)
        return target is not None and self.player.at_war_with(target.owner)

    def update_objectives(self, analysis: Analysis):
        """Advance progress tracking and drop finished or stagnant objectives."""
        for unit_id, obj in list(self.objectives.items()):
            unit = self.game.get_piece(unit_id)
            if unit is None or unit.owner != self.player_id or not self._objective_alive(obj, analysis):
                del self.objectives[unit_id]
                continue
            progressed = False
            if obj.piece_id is not None:
                target = self.game.get_piece(obj.piece_id)
                obj.target = target.pos
                if obj.target_hp is not None and target.hp < obj.target_hp:
                    progressed = True
                obj.target_hp = target.hp
            distance = chebyshev(unit.row, unit.col, *obj.target)
            if obj.piece_id is None and distance <= obj.radius:
                if obj.goal != GoalType.DEFEND_CITY:
                    del self.objectives[unit_id]  # arrived
                    continue
                progressed = True  # holding station
            if distance < obj.best_distance:
                obj.best_distance = distance
                progressed = True
            obj.stale_turns = 0 if progressed else obj.stale_turns + 1
            if obj.stale_turns >= STALE_WINDOW:
                logger.debug("AI %s dropping stagnant objective for %s: %s",
                             self.player_id, unit_id, obj.goal.value)
                del self.objectives[unit_id]

        for unit in self.game.player_pieces(self.player_id):
            if unit.id in self.objectives or unit.type == PieceType.CITY:
                continue
            obj = (self._settler_objective(unit, analysis) if unit.type == PieceType.SETTLER
                   else self._warrior_objective(unit, analysis))
            if obj is not None:
                obj.best_distance = chebyshev(unit.row, unit.col, *obj.target)
                self.objectives[unit.id] = obj

    def _claimed(self, goal: GoalType) -> list[Objective]:
        return [o for o in self.objectives.values() if o.goal == goal]

    def _warrior_objective(self, warrior: Piece, analysis: Analysis) -> Objective | None:
        board = self.game.board
        for goal in self.goals:
            if goal.goal_type == GoalType.DEFEND_CITY and goal.target:
                if len(self._claimed(GoalType.DEFEND_CITY)) < MAX_DEFENDERS:
                    return Objective(GoalType.DEFEND_CITY, goal.target, radius=1)
            elif goal.goal_type == GoalType.CONQUER_CITY and goal.target:
                city = board.piece_at(*goal.target)
                if city is not None and city.owner != self.player_id:
                    return Objective(GoalType.CONQUER_CITY, city.pos, piece_id=city.id,
                                     target_hp=city.hp)
            elif goal.goal_type == GoalType.DEMILITARIZE:
                prey = self._nearest_enemy_warrior(warrior)
                if prey is not None:
                    return Objective(GoalType.DEMILITARIZE, prey.pos, piece_id=prey.id,
                                     target_hp=prey.hp)
            elif goal.goal_type == GoalType.ESTABLISH_BORDERS:
                tile = self._border_tile(warrior, analysis)
                if tile is not None:
                    return Objective(GoalType.ESTABLISH_BORDERS, tile)
        return None

    def _nearest_enemy_warrior(self, warrior: Piece) -> Piece | None:
        best = None
        for oid in self.active_wars():
            for w in self.game.player_pieces(oid, PieceType.WARRIOR):
                d = chebyshev(warrior.row, warrior.col, w.row, w.col)
                if d <= HUNT_RADIUS and (best is None or (d, w.id) < best[0]):
                    best = ((d, w.id), w)
        return best[1] if best else None

    def _border_tile(self, warrior: Piece, analysis: Analysis) -> tuple[int, int] | None:
        board = self.game.board
        maps = analysis.maps
        taken = {o.target for o in self.objectives.values()}
        best = None
        for r in range(board.size):
            for c in range(board.size):
                if (r, c) in taken or board.piece_at(r, c) is not None:
                    continue
                owner = board.owner_at(r, c)
                if owner == self.player_id:
                    continue
                if owner is not None and not self.player.at_war_with(owner):
                    continue
                d = chebyshev(warrior.row, warrior.col, r, c)
                if d == 0 or d > BORDER_RADIUS:
                    continue
                score = (maps.opportunity[r][c] - 0.5 * maps.territory[r][c] - 0.2 * d
                         - self.difficulty.weigh_threat(maps.threat[r][c]))
                key = (score, -r, -c)
                if best is None or key > best[0]:
                    best = (key, (r, c))
        return best[1] if best else None

    def _settler_objective(self, settler: Piece, analysis: Analysis) -> Objective | None:
        board = self.game.board
        heat = analysis.maps.expansion
        taken = {o.target for o in self.objectives.values() if o.goal == GoalType.EXPAND}
        best = None
        for r in range(board.size):
            for c in range(board.size):
                value = heat[r][c]
                if value == INVALID_SITE or (r, c) in taken:
                    continue
                owner = board.owner_at(r, c)
                if owner not in (None, self.player_id):
                    continue
                # Only owned ground can be settled; unowned sites wait for borders to grow.
                score = value - 0.05 * manhattan(settler.row, settler.col, r, c)
                key = (owner == self.player_id, score, -r, -c)
                if best is None or key > best[0]:
                    best = (key, (r, c))
        if best is None:
            return None
        return Objective(GoalType.EXPAND, best[1])

    # ── Movement ─────────────────────────────────────────────────────────

    def attack_value(self, attacker: Piece, defender: Piece, analysis: Analysis) -> float:
        if defender.type == PieceType.CITY:
            value = 50 + (1 - defender.hp_fraction) * 30
            if defender.hp <= attacker.damage:
                value += 40
        elif defender.type == PieceType.SETTLER:
            value = 25
        else:
            value = 15 + (10 if defender.hp <= attacker.damage else 0)
        return value - 10 * self.difficulty.weigh_threat(analysis.maps.threat[defender.row][defender.col])

    def choose_warrior_move(self, warrior: Piece, moves: list[tuple[int, int]],
                            analysis: Analysis) -> tuple[int, int] | None:
        board = self.game.board
        maps = analysis.maps
        obj = self.objectives.get(warrior.id)
        attacks = [m for m in moves if board.piece_at(*m) is not None]

        if obj is not None and obj.piece_id is not None:
            for m in attacks:
                if board.piece_at(*m).id == obj.piece_id:
                    return m

        if attacks and self.rng.random() < OPPORTUNISTIC_ATTACK_CHANCE:
            return max(attacks, key=lambda m: (self.attack_value(warrior, board.piece_at(*m), analysis), m))

        if obj is None:
            return None
        current = chebyshev(warrior.row, warrior.col, *obj.target)
        if current <= obj.radius:
            return None

        steps = [m for m in moves if m not in attacks]
        if steps:
            best = min(steps, key=lambda m: (chebyshev(*m, *obj.target),
                                             maps.threat[m[0]][m[1]],
                                             -maps.opportunity[m[0]][m[1]], m))
            if chebyshev(*best, *obj.target) < current:
                return best

        # Nothing closes the gap: break a blockade standing in the way.
        for dr in (-1, 1):
            for dc in (-1, 1):
                r, c = warrior.row + dr, warrior.col + dc
                if chebyshev(r, c, *obj.target) >= current:
                    continue
                for blocker in self.game.blockade_pieces(warrior, r, c):
                    if blocker.pos in attacks:
                        return blocker.pos
        return None

    def warrior_pass(self, analysis: Analysis, report: TurnReport):
        game = self.game
        for warrior in sorted(game.player_pieces(self.player_id, PieceType.WARRIOR), key=lambda p: p.id):
            if game.get_piece(warrior.id) is None or warrior.has_moved:
                continue
            moves = game.get_valid_moves(warrior)
            if not moves:
                continue
            choice = self.choose_warrior_move(warrior, moves, analysis)
            mistake = False
            if self.difficulty.makes_mistake(self.rng):
                choice, mistake = self.rng.choice(moves), True
            if choice is None:
                continue
            kind = "attack" if game.board.piece_at(*choice) is not None else "move"
            res = game.move_piece(warrior.id, *choice)
            report.add(AIAction(kind, piece=warrior.id, target=choice,
                                success=res.success, reason=res.reason, mistake=mistake))
            if game.game_over:
                return

    def settler_pass(self, analysis: Analysis, report: TurnReport):
        game = self.game
        threat = analysis.maps.threat
        for settler in sorted(game.player_pieces(self.player_id, PieceType.SETTLER), key=lambda p: p.id):
            if game.can_settler_build_city(settler).valid:
                self._build(settler, report)
                continue
            obj = self.objectives.get(settler.id)
            moves = game.get_valid_moves(settler)
            if not moves:
                continue
            choice, mistake = None, False
            if obj is not None:
                current = manhattan(settler.row, settler.col, *obj.target)
                best = min(moves, key=lambda m: (manhattan(*m, *obj.target), threat[m[0]][m[1]], m))
                if manhattan(*best, *obj.target) < current:
                    choice = best
            if self.difficulty.makes_mistake(self.rng):
                choice, mistake = self.rng.choice(moves), True
            if choice is None:
                continue
            res = game.move_piece(settler.id, *choice)
            report.add(AIAction("move", piece=settler.id, target=choice,
                                success=res.success, reason=res.reason, mistake=mistake))
            if res.success and game.can_settler_build_city(settler).valid:
                self._build(settler, report)

    def _build(self, settler: Piece, report: TurnReport):
        res = self.game.settler_build_city(settler.id)
        report.add(AIAction("build_city", piece=settler.id, target=settler.pos,
                            success=res.success, reason=res.reason))
        if res.success:
            self.objectives.pop(settler.id, None)
