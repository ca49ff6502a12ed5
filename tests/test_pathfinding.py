"""Tests for A* pathfinding and path helpers."""

from townsfolk.environment import EnvironmentGrid
from townsfolk.environment.pathfinding import (
    PathfindingEngine,
    expand_path,
    find_nearest_walkable,
    find_path,
    manhattan,
    smooth_path,
)


def town():
    return EnvironmentGrid.from_rows(
        [
            ".....",
            ".###.",
            ".....",
        ]
    )


def assert_contiguous(tiles):
    for first, second in zip(tiles, tiles[1:]):
        assert manhattan(first, second) == 1


def test_path_routes_around_walls():
    grid = town()
    waypoints = find_path(grid, (0, 0), (2, 4))
    tiles = expand_path(waypoints)

    assert tiles[0] == (0, 0)
    assert tiles[-1] == (2, 4)
    assert len(tiles) == 7
    assert all(grid.is_walkable(*tile) for tile in tiles)
    assert_contiguous(tiles)


def test_path_is_deterministic():
    grid = town()
    assert find_path(grid, (0, 0), (2, 4)) == find_path(grid, (0, 0), (2, 4))


def test_unreachable_or_blocked_endpoints_return_empty():
    walled = EnvironmentGrid.from_rows(["..#..", "..#..", "..#.."])
    assert find_path(walled, (0, 0), (0, 4)) == []
    assert find_path(town(), (0, 0), (1, 2)) == []
    assert find_path(town(), (0, 0), (9, 9)) == []


def test_start_equals_goal():
    assert find_path(town(), (2, 2), (2, 2)) == [(2, 2)]


def test_expansion_budget_bounds_search():
    open_field = EnvironmentGrid(width=60, height=60)
    assert find_path(open_field, (0, 0), (59, 59), max_expansions=1) == []
    assert find_path(open_field, (0, 0), (59, 59))[-1] == (59, 59)


def test_blocked_tiles_force_detour():
    grid = EnvironmentGrid(width=3, height=3)
    tiles = expand_path(find_path(grid, (0, 0), (0, 2), blocked={(0, 1)}))

    assert (0, 1) not in tiles
    assert tiles[-1] == (0, 2)
    assert_contiguous(tiles)


def test_smooth_and_expand_paths():
    path = [(0, 0), (0, 1), (0, 2), (1, 2), (2, 2)]
    smoothed = smooth_path(path)

    assert smoothed == [(0, 0), (0, 2), (2, 2)]
    assert expand_path(smoothed) == path
    assert expand_path([]) == []


def test_nearest_walkable_searches_rings():
    grid = town()
    assert find_nearest_walkable(grid, (0, 0)) == (0, 0)
    assert find_nearest_walkable(grid, (1, 2)) == (0, 1)
    assert find_nearest_walkable(grid, (1, 2), exclude={(0, 1)}) == (0, 2)

    walls = EnvironmentGrid.from_rows(["###", "###", "###"])
    assert find_nearest_walkable(walls, (1, 1), max_radius=2) is None


def test_engine_direct_path_check():
    engine = PathfindingEngine(town(), max_expansions=100)

    assert engine.has_direct_path((0, 0), (0, 4)) is True
    assert engine.has_direct_path((1, 0), (1, 4)) is False
    assert engine.has_direct_path((0, 0), (2, 4)) is False
    assert engine.find_path((0, 0), (0, 4)) == [(0, 0), (0, 4)]
