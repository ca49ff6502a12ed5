"""Walkable tile grid for the town map.

Coordinates are ``(row, col)`` tuples. Tiles not listed in ``tiles`` are open
ground; listed tiles may carry collision and free-form metadata exported from
the tile map (building, zone, object).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Tuple

Position = Tuple[int, int]

# Four-directional movement. The order fixes neighbour expansion order and
# therefore tie-breaking between equally short routes.
DIRECTIONS: Tuple[Position, ...] = ((1, 0), (-1, 0), (0, 1), (0, -1))


@dataclass
class GridTile:
    """Metadata about a single tile."""

    zone: str | None = None
    game_object: str | None = None
    collision: bool = False
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass
class EnvironmentGrid:
    """Bounded 2D grid with collision tiles."""

    width: int
    height: int
    tiles: Dict[Position, GridTile] = field(default_factory=dict)

    @classmethod
    def from_rows(cls, rows: Iterable[str], *, wall: str = "#") -> "EnvironmentGrid":
        """Build a grid from ASCII rows (``wall`` marks collision tiles)."""

        rows = list(rows)
        height = len(rows)
        width = max((len(row) for row in rows), default=0)
        tiles = {
            (r, c): GridTile(collision=True)
            for r, row in enumerate(rows)
            for c, char in enumerate(row)
            if char == wall
        }
        return cls(width=width, height=height, tiles=tiles)

    def get_tile(self, row: int, col: int) -> GridTile | None:
        return self.tiles.get((row, col))

    def in_bounds(self, position: Position) -> bool:
        row, col = position
        return 0 <= row < self.height and 0 <= col < self.width

    def is_walkable(self, row: int, col: int) -> bool:
        if not self.in_bounds((row, col)):
            return False
        tile = self.get_tile(row, col)
        return tile is None or not tile.collision

    def neighbors(self, position: Position) -> Iterator[Position]:
        row, col = position
        for dr, dc in DIRECTIONS:
            candidate = (row + dr, col + dc)
            if self.is_walkable(*candidate):
                yield candidate

    def walkable_tiles(self) -> List[Position]:
        return [
            (row, col)
            for row in range(self.height)
            for col in range(self.width)
            if self.is_walkable(row, col)
        ]
