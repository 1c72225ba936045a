from __future__ import annotations

import pytest

from civchess.spatial import INVALID_SITE, SpatialAnalyzer, advantage_bucket
from civchess.types import PieceType


def _cells(grid):
    return [v for row in grid for v in row]


def test_threat_is_zero_without_wars(two_cities, place) -> None:
    place(two_cities, "p1", PieceType.WARRIOR, 5, 5)
    grid = SpatialAnalyzer(two_cities).threat_heatmap("p0")
    assert set(_cells(grid)) == {0.0}


def test_threat_peaks_at_enemy_warrior_and_fades(two_cities, place) -> None:
    place(two_cities, "p1", PieceType.WARRIOR, 7, 7)
    two_cities.declare_war("p0", "p1")
    grid = SpatialAnalyzer(two_cities).threat_heatmap("p0")

    assert grid[7][7] == 1.0
    assert grid[7][8] == pytest.approx(0.5)
    assert grid[0][0] == 0.0  # beyond radius
    assert all(0.0 <= v <= 1.0 for v in _cells(grid))


def test_threat_persists_after_offering_peace(two_cities, place) -> None:
    raider = place(two_cities, "p0", PieceType.WARRIOR, 8, 8)
    two_cities.declare_war("p0", "p1")
    two_cities.propose_peace("p1", "p0")
    assert two_cities.can_move_to(raider, 9, 9).valid

    grid = SpatialAnalyzer(two_cities).threat_heatmap("p1")

    assert grid[8][8] == 1.0
    assert grid[9][9] > 0.0


def test_threat_ignores_own_warriors(two_cities, place) -> None:
    place(two_cities, "p0", PieceType.WARRIOR, 5, 5)
    two_cities.declare_war("p0", "p1")
    grid = SpatialAnalyzer(two_cities).threat_heatmap("p0")
    assert max(_cells(grid)) == 0.0


def test_opportunity_is_normalized(two_cities, place) -> None:
    place(two_cities, "p1", PieceType.SETTLER, 6, 6)
    grid = SpatialAnalyzer(two_cities).opportunity_heatmap("p0")
    assert max(_cells(grid)) == 1.0
    assert all(0.0 <= v <= 1.0 for v in _cells(grid))


def test_territory_is_signed_and_bounded(two_cities) -> None:
    grid = SpatialAnalyzer(two_cities).territory_heatmap("p0")
    assert grid[0][0] > 0
    assert grid[9][9] < 0
    assert all(-1.0 <= v <= 1.0 for v in _cells(grid))


def test_expansion_marks_illegal_sites(two_cities, place) -> None:
    place(two_cities, "p1", PieceType.WARRIOR, 5, 5)
    own_settler = place(two_cities, "p0", PieceType.SETTLER, 4, 4)
    grid = SpatialAnalyzer(two_cities).expansion_heatmap("p0")

    assert grid[0][0] == INVALID_SITE
    assert grid[1][1] == INVALID_SITE  # next to a city
    assert grid[5][5] == INVALID_SITE  # occupied
    assert grid[own_settler.row][own_settler.col] != INVALID_SITE
    valid = [v for v in _cells(grid) if v != INVALID_SITE]
    assert max(valid) == 1.0
    assert all(0.0 <= v <= 1.0 for v in valid)


def test_expansion_prefers_own_ground(two_cities) -> None:
    two_cities.board.set_owner(3, 3, "p0")
    grid = SpatialAnalyzer(two_cities).expansion_heatmap("p0")
    assert grid[3][3] > grid[3][4]


def test_player_strength_components(two_cities, place) -> None:
    place(two_cities, "p0", PieceType.WARRIOR, 1, 0)
    place(two_cities, "p0", PieceType.SETTLER, 5, 5)
    two_cities.players["p0"].tech_score = 1

    s = SpatialAnalyzer(two_cities).player_strength("p0")

    assert s.military == 2
    assert s.economic == 9
    assert s.expansion == 3
    assert s.tech == 2
    assert s.territory == 0.5
    assert s.total == pytest.approx(16.5)
    assert s.to_dict()["total"] == pytest.approx(16.5)


def test_relative_strength_buckets(two_cities, place) -> None:
    analyzer = SpatialAnalyzer(two_cities)
    even = analyzer.relative_strength("p0", "p1")
    assert even.ratio == 1.0 and even.advantage == "even"

    for col in range(1, 6):
        place(two_cities, "p0", PieceType.WARRIOR, 2, col)
    strong = analyzer.relative_strength("p0", "p1")
    assert strong.advantage == "strong"
    assert strong.military_ratio == 10.0  # capped when the rival has none
    assert analyzer.relative_strength("p1", "p0").advantage == "weak"


@pytest.mark.parametrize("ratio,bucket", [(1.3, "strong"), (1.2, "even"), (0.81, "even"), (0.8, "weak")])
def test_advantage_bucket_thresholds(ratio: float, bucket: str) -> None:
    assert advantage_bucket(ratio) == bucket


def test_vulnerable_cities_rank_damaged_undefended_first(blank_game, place) -> None:
    game = blank_game(num_players=3)
    place(game, "p0", PieceType.CITY, 0, 0)
    healthy = place(game, "p1", PieceType.CITY, 9, 9)
    place(game, "p1", PieceType.WARRIOR, 8, 9)
    hurt = place(game, "p2", PieceType.CITY, 9, 0)
    hurt.hp = 1

    ranked = SpatialAnalyzer(game).vulnerable_cities("p0")

    assert [v.piece_id for v in ranked] == [hurt.id, healthy.id]
    assert ranked[1].vulnerability == pytest.approx(0.2)
