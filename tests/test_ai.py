from __future__ import annotations

from dataclasses import replace

import pytest

import civchess.ai as ai_module
from civchess.ai import PEACE_OFFER_PATIENCE, STALE_WINDOW, AIController, Objective, TurnReport
from civchess.game import Game
from civchess.manager import AIManager
from civchess.personality import GoalType, Militaristic, PlanningContext, get_difficulty
from civchess.types import PieceType, ProductionKind, Relation


def _play(game: Game, manager: AIManager, turns: int) -> list:
    reports = []
    while not game.game_over and game.turn_number < turns:
        reports.append(manager.execute_turn(game.current_player_id))
        if not game.game_over:
            game.end_turn()
    return reports


def _build(seed: int, difficulty: str = "medium", players: int = 3) -> tuple[Game, AIManager]:
    game = Game.create(num_players=players, seed=seed)
    manager = AIManager(game)
    for i, pid in enumerate(game.players):
        manager.register_ai_player(pid, difficulty=difficulty, seed=seed * 10 + i)
    return game, manager


def _log(game: Game) -> list:
    return [(r.turn, r.player, r.action_type, r.details) for r in game.action_log]


def test_same_seeds_replay_identically() -> None:
    a, ma = _build(seed=4)
    b, mb = _build(seed=4)
    _play(a, ma, 60)
    _play(b, mb, 60)
    assert _log(a) == _log(b)


def test_ai_only_issues_legal_commands() -> None:
    game, manager = _build(seed=9, difficulty="easy")
    reports = _play(game, manager, 60)

    actions = [a for r in reports for a in r.actions]
    assert actions
    assert [a for a in actions if not a.success] == []
    assert "MOVE_DENIED" not in {r.action_type for r in game.action_log}


def test_skips_when_not_its_turn(two_cities) -> None:
    controller = AIController(two_cities, "p1", difficulty="hard", seed=1)
    report = controller.execute_turn()
    assert report.skipped == "Not this player's turn"
    assert report.actions == []


def test_skips_when_game_is_over(two_cities) -> None:
    two_cities.game_over = True
    report = AIController(two_cities, "p0", seed=1).execute_turn()
    assert report.skipped == "Game is over"


def test_settler_on_valid_site_founds_city(two_cities, place) -> None:
    place(two_cities, "p0", PieceType.SETTLER, 5, 5, claim=True)
    report = AIController(two_cities, "p0", difficulty="hard", seed=1).execute_turn()

    city = two_cities.board.piece_at(5, 5)
    assert city.type == PieceType.CITY and city.owner == "p0"
    assert "build_city" in [a.kind for a in report.actions]


def test_idle_city_gets_one_shot_production(two_cities) -> None:
    AIController(two_cities, "p0", difficulty="hard", seed=1).execute_turn()
    city = two_cities.player_cities("p0")[0]
    assert city.production.kind not in (ProductionKind.NONE, ProductionKind.REPAIR)
    assert city.production.repeat is False


def test_busy_city_keeps_its_production(two_cities) -> None:
    city = two_cities.player_cities("p0")[0]
    two_cities.set_production(city.id, ProductionKind.DIPLOMACY)
    city.production.progress = 2

    AIController(two_cities, "p0", difficulty="hard", seed=1).execute_turn()

    assert city.production.kind == ProductionKind.DIPLOMACY
    assert city.production.progress == 2


def test_damaged_city_repairs(two_cities) -> None:
    city = two_cities.player_cities("p0")[0]
    city.hp = 1
    AIController(two_cities, "p0", difficulty="hard", seed=1).execute_turn()
    assert city.production.kind == ProductionKind.REPAIR


def test_attacks_adjacent_enemy_at_war(two_cities, place, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(ai_module, "OPPORTUNISTIC_ATTACK_CHANCE", 1.0)
    place(two_cities, "p0", PieceType.WARRIOR, 5, 5)
    place(two_cities, "p1", PieceType.WARRIOR, 5, 6)
    two_cities.declare_war("p0", "p1")

    report = AIController(two_cities, "p0", difficulty="hard", personality="militaristic",
                          seed=1).execute_turn()

    assert report.personality == Militaristic.name
    assert [a.kind for a in report.actions if a.kind == "attack"] == ["attack"]
    assert two_cities.player_pieces("p1", PieceType.WARRIOR) == []
    assert two_cities.board.piece_at(5, 6).owner == "p0"


def test_never_attacks_player_at_peace(two_cities, place) -> None:
    place(two_cities, "p0", PieceType.WARRIOR, 5, 5)
    theirs = place(two_cities, "p1", PieceType.WARRIOR, 5, 6)

    report = AIController(two_cities, "p0", difficulty="hard", seed=1).execute_turn()

    assert "attack" not in [a.kind for a in report.actions]
    assert two_cities.get_piece(theirs.id).hp == theirs.max_hp


def test_chases_objective_target_without_rolling(two_cities, place, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(ai_module, "OPPORTUNISTIC_ATTACK_CHANCE", 0.0)
    mine = place(two_cities, "p0", PieceType.WARRIOR, 5, 5)
    prey = place(two_cities, "p1", PieceType.WARRIOR, 4, 4)
    two_cities.declare_war("p0", "p1")
    controller = AIController(two_cities, "p0", difficulty="hard", seed=1)
    controller.objectives[mine.id] = Objective(GoalType.DEMILITARIZE, prey.pos, piece_id=prey.id,
                                               target_hp=prey.hp)

    controller.execute_turn()

    assert two_cities.get_piece(prey.id) is None


def test_stagnant_objective_is_dropped(two_cities, place) -> None:
    warrior = place(two_cities, "p0", PieceType.WARRIOR, 5, 5)
    controller = AIController(two_cities, "p0", difficulty="hard", seed=1)
    controller.objectives[warrior.id] = Objective(GoalType.ESTABLISH_BORDERS, (5, 9), best_distance=4)
    analysis = controller.analyze()

    for _ in range(STALE_WINDOW - 1):
        controller.update_objectives(analysis)
    assert controller.objectives[warrior.id].stale_turns == STALE_WINDOW - 1

    controller.update_objectives(analysis)
    assert warrior.id not in controller.objectives


def test_objective_on_dead_target_is_dropped(two_cities, place) -> None:
    warrior = place(two_cities, "p0", PieceType.WARRIOR, 5, 5)
    prey = place(two_cities, "p1", PieceType.WARRIOR, 8, 8)
    two_cities.declare_war("p0", "p1")
    controller = AIController(two_cities, "p0", difficulty="hard", seed=1)
    controller.objectives[warrior.id] = Objective(GoalType.DEMILITARIZE, prey.pos, piece_id=prey.id)

    two_cities._remove_piece(prey)
    controller.update_objectives(controller.analyze())

    assert warrior.id not in controller.objectives


def test_peace_is_accepted_when_losing(two_cities, place) -> None:
    for col in range(4, 9):
        place(two_cities, "p1", PieceType.WARRIOR, 8, col)
    two_cities.declare_war("p1", "p0")
    two_cities.propose_peace("p1", "p0")

    report = AIController(two_cities, "p0", difficulty="medium", seed=1).execute_turn()

    assert ("accept_peace", "p1") in [(a.kind, a.target) for a in report.actions]
    assert not two_cities.players["p0"].at_war_with("p1")


def test_weak_hard_ai_does_not_start_wars(two_cities, place) -> None:
    for col in range(4, 9):
        place(two_cities, "p1", PieceType.WARRIOR, 8, col)
    report = AIController(two_cities, "p0", difficulty="hard", seed=1).execute_turn()
    assert "declare_war" not in [a.kind for a in report.actions]


def test_war_declaration_puts_target_on_the_defensive(two_cities) -> None:
    controller = AIController(two_cities, "p1", difficulty="hard", seed=1)
    two_cities.subscribe(controller.notify_event)

    two_cities.declare_war("p0", "p1")

    assert controller.defensive_turns == ai_module.DEFENSIVE_TURNS


def test_proposes_peace_when_outnumbered_with_one_city(two_cities, place) -> None:
    for col in range(4, 9):
        place(two_cities, "p0", PieceType.WARRIOR, 2, col)
    two_cities.declare_war("p0", "p1")
    controller = AIController(two_cities, "p1", difficulty="hard", seed=1)
    controller.turns_taken = 1
    report = TurnReport("p1")

    assert controller.diplomacy_pass(controller.analyze(), report)

    assert [(a.kind, a.target) for a in report.actions] == [("propose_peace", "p0")]
    assert two_cities.relation("p1", "p0") == Relation.PEACE_PROPOSED
    assert controller.peace_offers == {"p0": 1}


def test_no_peace_offer_while_holding_two_cities(two_cities, place) -> None:
    for col in range(4, 9):
        place(two_cities, "p0", PieceType.WARRIOR, 2, col)
    place(two_cities, "p1", PieceType.CITY, 6, 6)
    two_cities.declare_war("p0", "p1")
    controller = AIController(two_cities, "p1", difficulty="hard", seed=1)
    report = TurnReport("p1")

    controller.diplomacy_pass(controller.analyze(), report)

    assert "propose_peace" not in [a.kind for a in report.actions]


def test_unanswered_peace_offer_is_withdrawn_after_patience_runs_out(two_cities, place) -> None:
    for col in range(4, 9):
        place(two_cities, "p0", PieceType.WARRIOR, 2, col)
    two_cities.declare_war("p0", "p1")
    controller = AIController(two_cities, "p1", difficulty="hard", seed=1)

    for turn in range(1, PEACE_OFFER_PATIENCE + 1):
        controller.turns_taken = turn
        controller.diplomacy_pass(controller.analyze(), TurnReport("p1"))
        assert two_cities.relation("p1", "p0") == Relation.PEACE_PROPOSED

    controller.turns_taken = PEACE_OFFER_PATIENCE + 1
    report = TurnReport("p1")
    controller.diplomacy_pass(controller.analyze(), report)

    assert [(a.kind, a.target) for a in report.actions] == [("withdraw_peace", "p0")]
    assert two_cities.relation("p1", "p0") == Relation.WAR
    assert controller.peace_offers == {}


def test_peace_offer_is_withdrawn_once_no_longer_losing(two_cities, place,
                                                        monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(ai_module, "OPPORTUNISTIC_ATTACK_CHANCE", 1.0)
    settler = place(two_cities, "p0", PieceType.SETTLER, 5, 5)
    for row, col in [(5, 6), (6, 5), (6, 6), (4, 6), (6, 4)]:
        place(two_cities, "p1", PieceType.WARRIOR, row, col)
    two_cities.declare_war("p0", "p1")
    two_cities.propose_peace("p1", "p0")
    two_cities.end_turn()
    assert two_cities.current_player_id == "p1"

    report = AIController(two_cities, "p1", difficulty="hard", seed=1).execute_turn()

    kinds = [a.kind for a in report.actions]
    assert kinds[0] == "withdraw_peace"
    assert "attack" in kinds
    assert two_cities.relation("p1", "p0") == Relation.WAR
    assert two_cities.get_piece(settler.id) is None


def test_war_declarations_respect_the_cooldown(two_cities, monkeypatch: pytest.MonkeyPatch) -> None:
    controller = AIController(two_cities, "p0", difficulty="hard", seed=1)
    monkeypatch.setattr(controller, "war_score", lambda target, analysis: 5.0)
    cooldown = controller.difficulty.war_cooldown
    controller.last_war_declared = 1
    controller.turns_taken = cooldown

    report = TurnReport("p0")
    controller.diplomacy_pass(controller.analyze(), report)
    assert not controller._war_cooldown_over()
    assert report.actions == []

    controller.turns_taken = cooldown + 1
    report = TurnReport("p0")
    controller.diplomacy_pass(controller.analyze(), report)
    assert [(a.kind, a.target) for a in report.actions] == [("declare_war", "p1")]
    assert controller.last_war_declared == cooldown + 1


def test_warrior_breaks_a_blockade_in_its_way(two_cities, place,
                                              monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(ai_module, "OPPORTUNISTIC_ATTACK_CHANCE", 0.0)
    warrior = place(two_cities, "p0", PieceType.WARRIOR, 5, 5)
    place(two_cities, "p1", PieceType.WARRIOR, 4, 5)
    place(two_cities, "p1", PieceType.WARRIOR, 5, 4)
    two_cities.declare_war("p0", "p1")
    controller = AIController(two_cities, "p0", difficulty="hard", seed=1)
    controller.objectives[warrior.id] = Objective(GoalType.ESTABLISH_BORDERS, (3, 3))

    moves = two_cities.get_valid_moves(warrior)
    assert (4, 4) not in moves

    assert controller.choose_warrior_move(warrior, moves, controller.analyze()) == (4, 5)


def test_mistake_substitutes_a_random_legal_move(two_cities, place) -> None:
    warrior = place(two_cities, "p0", PieceType.WARRIOR, 5, 5)
    clumsy = replace(get_difficulty("easy"), mistake_probability=1.0)
    controller = AIController(two_cities, "p0", difficulty=clumsy, seed=2)
    legal = two_cities.get_valid_moves(warrior)
    report = TurnReport("p0")

    controller.warrior_pass(controller.analyze(), report)

    (action,) = report.actions
    assert action.mistake and action.success
    assert action.target in legal
    assert warrior.pos == action.target


def test_style_is_kept_while_it_has_turns_left(two_cities) -> None:
    sticky = replace(get_difficulty("hard"), strategy_stickiness=1.0)
    controller = AIController(two_cities, "p0", difficulty=sticky, seed=1)
    late = PlanningContext(phase="late", city_count=3)
    early = PlanningContext(phase="early", city_count=1)

    controller.personality = controller.choose_personality(late)
    assert controller.personality.name == "militaristic"
    turns = controller.style_turns_remaining
    assert 3 <= turns <= 5

    for _ in range(turns):
        assert controller.choose_personality(early) is controller.personality
    assert controller.choose_personality(early).name == "expansionist"


def test_fickle_difficulty_rescores_every_turn(two_cities) -> None:
    fickle = replace(get_difficulty("hard"), strategy_stickiness=0.0)
    controller = AIController(two_cities, "p0", difficulty=fickle, seed=1)

    controller.personality = controller.choose_personality(PlanningContext(phase="late", city_count=3))
    assert controller.personality.name == "militaristic"
    assert controller.choose_personality(PlanningContext(phase="early", city_count=1)).name == "expansionist"


def test_fixed_personality_is_never_replaced(two_cities) -> None:
    controller = AIController(two_cities, "p0", difficulty="easy", personality="research", seed=1)
    for ctx in (PlanningContext(phase="late"), PlanningContext(at_war=True, under_attack=True)):
        assert controller.choose_personality(ctx).name == "research"
