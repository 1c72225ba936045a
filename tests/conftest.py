from __future__ import annotations

from collections.abc import Callable

import pytest

from civchess.board import BoardState
from civchess.game import Game
from civchess.types import Piece, PieceType


@pytest.fixture()
def blank_game() -> Callable[..., Game]:
    """Factory for a game with a full roster but nothing on the board.

    Tests then lay out exactly the pieces they need with ``place``.
    """

    def _make(num_players: int = 2, seed: int = 0) -> Game:
        game = Game.create(num_players=num_players, seed=seed)
        game.board = BoardState(game.board.size)
        game.action_log.clear()
        return game

    return _make


@pytest.fixture()
def place() -> Callable[..., Piece]:
    def _place(game: Game, owner: str, ptype: PieceType, row: int, col: int,
               claim: bool = False) -> Piece:
        piece = game._create_piece(ptype, owner, row, col)
        if claim or ptype == PieceType.CITY:
            game.board.set_owner(row, col, owner)
        return piece

    return _place


@pytest.fixture()
def two_cities(blank_game, place) -> Game:
    """p0 city in the top-left corner, p1 city in the bottom-right."""
    game = blank_game()
    place(game, "p0", PieceType.CITY, 0, 0)
    place(game, "p1", PieceType.CITY, 9, 9)
    return game
