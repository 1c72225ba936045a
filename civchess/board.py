"""Board state: piece-id grid, tile ownership and the piece registry."""
from __future__ import annotations
from typing import Iterator, Optional
from .types import Piece, PieceType, NEIGHBOR_ORDER, BOARD_SIZE


class BoardState:
    """Owns every piece on the board.

    ``grid`` holds piece ids, ``pieces`` maps ids to pieces, and every mutation
    goes through ``place`` / ``remove`` / ``relocate`` so the two never
    disagree. ``ownership`` is independent of occupancy.
    """

    def __init__(self, size: int = BOARD_SIZE):
        self.size = size
        self.grid: list[list[Optional[str]]] = [[None] * size for _ in range(size)]
        self.ownership: list[list[Optional[str]]] = [[None] * size for _ in range(size)]
        self.pieces: dict[str, Piece] = {}

    # ── Queries ──────────────────────────────────────────────────────────

    def in_bounds(self, row: int, col: int) -> bool:
        return 0 <= row < self.size and 0 <= col < self.size

    def piece_at(self, row: int, col: int) -> Piece | None:
        if not self.in_bounds(row, col):
            return None
        pid = self.grid[row][col]
        return self.pieces[pid] if pid is not None else None

    def is_empty(self, row: int, col: int) -> bool:
        return self.in_bounds(row, col) and self.grid[row][col] is None

    def owner_at(self, row: int, col: int) -> str | None:
        return self.ownership[row][col]

    def get(self, piece_id: str) -> Piece | None:
        return self.pieces.get(piece_id)

    def iter_pieces(self, owner: str | None = None,
                    ptype: PieceType | None = None) -> Iterator[Piece]:
        for p in self.pieces.values():
            if owner is not None and p.owner != owner:
                continue
            if ptype is not None and p.type != ptype:
                continue
            yield p

    def cities(self, owner: str | None = None) -> list[Piece]:
        return list(self.iter_pieces(owner, PieceType.CITY))

    def tiles_owned_by(self, owner: str) -> list[tuple[int, int]]:
        return [(r, c) for r in range(self.size) for c in range(self.size)
                if self.ownership[r][c] == owner]

    def neighbors(self, row: int, col: int) -> Iterator[tuple[int, int]]:
        for dr, dc in NEIGHBOR_ORDER:
            r, c = row + dr, col + dc
            if self.in_bounds(r, c):
                yield r, c

    def find_adjacent_empty(self, row: int, col: int) -> tuple[int, int] | None:
        for r, c in self.neighbors(row, col):
            if self.grid[r][c] is None:
                return r, c
        return None

    # ── Mutation ─────────────────────────────────────────────────────────

    def place(self, piece: Piece):
        if self.grid[piece.row][piece.col] is not None:
            raise ValueError(f"tile ({piece.row},{piece.col}) already occupied")
        self.pieces[piece.id] = piece
        self.grid[piece.row][piece.col] = piece.id

    def remove(self, piece: Piece):
        self.pieces.pop(piece.id, None)
        if self.grid[piece.row][piece.col] == piece.id:
            self.grid[piece.row][piece.col] = None

    def relocate(self, piece: Piece, row: int, col: int):
        self.grid[piece.row][piece.col] = None
        piece.row, piece.col = row, col
        self.grid[row][col] = piece.id

    def set_owner(self, row: int, col: int, owner: str | None):
        self.ownership[row][col] = owner

    def snapshot(self) -> dict:
        return {
            "size": self.size,
            "grid": [list(row) for row in self.grid],
            "ownership": [list(row) for row in self.ownership],
            "pieces": {pid: p.to_dict() for pid, p in self.pieces.items()},
        }
