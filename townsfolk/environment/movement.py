"""Waypoint loops for routine-movement activities (pacing, patrols, laps)."""

from __future__ import annotations

import random
from typing import List, Optional

from .catalog import LocationEntry, MovementPattern
from .grid import EnvironmentGrid, Position


def _ring(grid: EnvironmentGrid, top: int, left: int, bottom: int, right: int) -> List[Position]:
    """Clockwise walkable tiles on the rectangle border (top-left first)."""

    border: List[Position] = []
    border.extend((top, col) for col in range(left, right + 1))
    border.extend((row, right) for row in range(top + 1, bottom + 1))
    if bottom > top:
        border.extend((bottom, col) for col in range(right - 1, left - 1, -1))
    if right > left:
        border.extend((row, left) for row in range(bottom - 1, top, -1))
    return [tile for tile in border if grid.is_walkable(*tile)]


def pattern_waypoints(
    pattern: MovementPattern,
    anchor: Position,
    grid: EnvironmentGrid,
    *,
    location: Optional[LocationEntry] = None,
    rng: Optional[random.Random] = None,
    wander_steps: int = 6,
    wander_radius: int = 3,
) -> List[Position]:
    """Return one loop of waypoints for ``pattern`` around ``anchor``.

    The loop is repeated by the activity session until the activity's
    duration elapses. STATIC yields no waypoints.
    """

    row, col = anchor
    if pattern == MovementPattern.STATIC:
        return []

    if pattern == MovementPattern.PACE:
        for dr, dc in ((0, 1), (0, -1), (1, 0), (-1, 0)):
            far = (row + 2 * dr, col + 2 * dc)
            near = (row + dr, col + dc)
            if grid.is_walkable(*near) and grid.is_walkable(*far):
                return [near, far, near, anchor]
        return []

    if pattern == MovementPattern.CIRCLE:
        return _ring(grid, row - 1, col - 1, row + 1, col + 1)

    if pattern == MovementPattern.LAPS:
        return _ring(grid, row - 2, col - 2, row + 2, col + 2)

    if pattern == MovementPattern.PATROL:
        if location is not None:
            top, left = location.position
            return _ring(grid, top - 1, left - 1, top + location.height, left + location.width)
        return _ring(grid, row - 1, col - 1, row + 1, col + 1)

    if pattern == MovementPattern.WANDER:
        rng = rng or random.Random(f"{row},{col}")
        path: List[Position] = []
        current = anchor
        for _ in range(wander_steps):
            options = [
                tile
                for tile in grid.neighbors(current)
                if abs(tile[0] - row) <= wander_radius and abs(tile[1] - col) <= wander_radius
            ]
            if not options:
                break
            current = rng.choice(options)
            path.append(current)
        return path

    raise ValueError(f"Unsupported movement pattern: {pattern}")
