"""Starting layout for CivChess: one city per player in a board corner."""
from __future__ import annotations
import random
from .board import BoardState
from .types import PieceType

# Each player starts with a city on a corner and a warrior next to it.
# Corners are shuffled so seat order does not fix the corner.


def corner_positions(size: int) -> list[tuple[int, int]]:
    last = size - 1
    return [(0, 0), (0, last), (last, 0), (last, last)]


def starting_positions(num_players: int, size: int,
                       rng: random.Random) -> list[tuple[int, int]]:
    corners = corner_positions(size)
    if num_players > len(corners):
        raise ValueError(f"at most {len(corners)} players fit on the board")
    rng.shuffle(corners)
    return corners[:num_players]


def starting_layout(board: BoardState, player_ids: list[str],
                    rng: random.Random) -> list[tuple[str, PieceType, int, int]]:
    """Return (owner, type, row, col) for every starting piece.

    The warrior goes on the first free neighbor of the city; the layout
    tracks its own occupancy so it can be computed before anything is placed.
    """
    layout = []
    taken: set[tuple[int, int]] = set()
    for pid, (row, col) in zip(player_ids, starting_positions(len(player_ids), board.size, rng)):
        layout.append((pid, PieceType.CITY, row, col))
        taken.add((row, col))
    for pid, _, row, col in list(layout):
        for r, c in board.neighbors(row, col):
            if (r, c) not in taken and board.is_empty(r, c):
                layout.append((pid, PieceType.WARRIOR, r, c))
                taken.add((r, c))
                break
    return layout
