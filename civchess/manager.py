"""Registry of AI seats for one game."""
from __future__ import annotations
import logging
import random
from .ai import AIController, TurnReport
from .game import Game
from .personality import Difficulty, Personality
from .types import ActionRecord

logger = logging.getLogger(__name__)


class AIManager:
    """Owns one controller per AI seat and forwards game events to them.

    The manager never ends a turn; whoever drives the game loop calls
    ``game.end_turn()`` after ``execute_turn``.
    """

    def __init__(self, game: Game):
        self.game = game
        self.controllers: dict[str, AIController] = {}
        game.subscribe(self._on_action)

    def register_ai_player(self, player_id: str, difficulty: str | Difficulty = "medium",
                           personality: str | Personality | None = None,
                           seed: int | None = None) -> AIController:
        if player_id not in self.game.players:
            raise KeyError(f"unknown player {player_id!r}")
        controller = AIController(self.game, player_id, difficulty=difficulty,
                                  personality=personality, rng=random.Random(seed))
        self.controllers[player_id] = controller
        logger.info("Registered AI for %s (%s)", player_id, controller.difficulty.name)
        return controller

    def is_ai_player(self, player_id: str) -> bool:
        return player_id in self.controllers

    def get_controller(self, player_id: str) -> AIController | None:
        return self.controllers.get(player_id)

    def execute_turn(self, player_id: str) -> TurnReport:
        controller = self.controllers.get(player_id)
        if controller is None:
            raise KeyError(f"{player_id!r} is not an AI player")
        return controller.execute_turn()

    def _on_action(self, record: ActionRecord):
        for pid, controller in self.controllers.items():
            if pid != record.player:
                controller.notify_event(record)
