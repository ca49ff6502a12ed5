"""A* pathfinding over the walkable tile grid.

``find_path`` is bounded by a node-expansion budget so it always terminates;
an exhausted budget or an unreachable goal yields an empty list, never an
exception. Ties between equal f-scores are broken by insertion order, which
makes results deterministic for a given grid.
"""

from __future__ import annotations

import heapq
from itertools import count
from typing import AbstractSet, Dict, List, Optional

from ..config import Config
from .grid import EnvironmentGrid, Position


def manhattan(a: Position, b: Position) -> int:
    return abs(a[0] - b[0]) + abs(a[1] - b[1])


def find_path(
    grid: EnvironmentGrid,
    start: Position,
    goal: Position,
    *,
    max_expansions: int = 5000,
    blocked: AbstractSet[Position] = frozenset(),
) -> List[Position]:
    """Return a smoothed list of waypoints from ``start`` to ``goal``.

    ``blocked`` tiles are treated as walls (the goal itself is never blocked).
    Returns ``[]`` when either endpoint is not walkable, the goal cannot be
    reached, or the expansion budget runs out.
    """

    if not grid.is_walkable(*start) or not grid.is_walkable(*goal):
        return []
    if start == goal:
        return [start]

    tie_breaker = count()
    open_heap: List[tuple[int, int, Position]] = [(manhattan(start, goal), next(tie_breaker), start)]
    came_from: Dict[Position, Position] = {}
    g_score: Dict[Position, int] = {start: 0}
    closed: set[Position] = set()
    expansions = 0

    while open_heap:
        _, _, current = heapq.heappop(open_heap)
        if current in closed:
            continue
        if current == goal:
            return smooth_path(_reconstruct(came_from, current))

        closed.add(current)
        expansions += 1
        if expansions > max_expansions:
            return []

        for neighbor in grid.neighbors(current):
            if neighbor in closed or (neighbor in blocked and neighbor != goal):
                continue
            tentative = g_score[current] + 1
            if tentative < g_score.get(neighbor, tentative + 1):
                came_from[neighbor] = current
                g_score[neighbor] = tentative
                heapq.heappush(
                    open_heap,
                    (tentative + manhattan(neighbor, goal), next(tie_breaker), neighbor),
                )

    return []


def _reconstruct(came_from: Dict[Position, Position], current: Position) -> List[Position]:
    path = [current]
    while current in came_from:
        current = came_from[current]
        path.append(current)
    path.reverse()
    return path


def smooth_path(path: List[Position]) -> List[Position]:
    """Drop interior points that are collinear with their neighbours."""

    if len(path) <= 2:
        return list(path)
    smoothed = [path[0]]
    for previous, point, following in zip(path, path[1:], path[2:]):
        first = (point[0] - previous[0], point[1] - previous[1])
        second = (following[0] - point[0], following[1] - point[1])
        # Cross product of the two segment directions is zero when collinear.
        if first[0] * second[1] - first[1] * second[0] != 0:
            smoothed.append(point)
    smoothed.append(path[-1])
    return smoothed


def expand_path(waypoints: List[Position]) -> List[Position]:
    """Re-densify axis-aligned waypoints into single-tile steps."""

    if not waypoints:
        return []
    tiles = [waypoints[0]]
    for target in waypoints[1:]:
        row, col = tiles[-1]
        while (row, col) != target:
            row += (target[0] > row) - (target[0] < row)
            col += (target[1] > col) - (target[1] < col)
            tiles.append((row, col))
    return tiles


def find_nearest_walkable(
    grid: EnvironmentGrid,
    target: Position,
    *,
    max_radius: int = 10,
    exclude: AbstractSet[Position] = frozenset(),
) -> Optional[Position]:
    """Search expanding square rings around ``target`` for a free walkable tile."""

    if grid.is_walkable(*target) and target not in exclude:
        return target
    for radius in range(1, max_radius + 1):
        for row in range(target[0] - radius, target[0] + radius + 1):
            for col in range(target[1] - radius, target[1] + radius + 1):
                on_ring = abs(row - target[0]) == radius or abs(col - target[1]) == radius
                if on_ring and grid.is_walkable(row, col) and (row, col) not in exclude:
                    return (row, col)
    return None


class PathfindingEngine:
    """Grid-bound pathfinder shared by every activity session."""

    def __init__(self, grid: EnvironmentGrid, *, max_expansions: Optional[int] = None) -> None:
        self.grid = grid
        self.max_expansions = max_expansions if max_expansions is not None else Config.PATHFINDING_MAX_EXPANSIONS

    def find_path(
        self,
        start: Position,
        goal: Position,
        *,
        blocked: AbstractSet[Position] = frozenset(),
    ) -> List[Position]:
        return find_path(self.grid, start, goal, max_expansions=self.max_expansions, blocked=blocked)

    def find_nearest_walkable(self, target: Position, *, max_radius: int = 10, exclude: AbstractSet[Position] = frozenset()) -> Optional[Position]:
        return find_nearest_walkable(self.grid, target, max_radius=max_radius, exclude=exclude)

    def has_direct_path(self, start: Position, goal: Position) -> bool:
        """True when a straight axis-aligned walk between the points is clear."""

        if start[0] != goal[0] and start[1] != goal[1]:
            return False
        return all(self.grid.is_walkable(*tile) for tile in expand_path([start, goal]))
