"""Spatial layer: grid, pathfinding, coordination, catalogs and movement loops."""

from .grid import DIRECTIONS, EnvironmentGrid, GridTile, Position
from .pathfinding import (
    PathfindingEngine,
    expand_path,
    find_nearest_walkable,
    find_path,
    manhattan,
    smooth_path,
)
from .coordination import CoordinationManager, MoveResult, Reservation
from .catalog import (
    ActivityCatalog,
    ActivityDefinition,
    ActivityType,
    AmbiguousActivityError,
    DurationMode,
    LocationEntry,
    LocationRegistry,
    MovementPattern,
    UnknownActivityError,
    default_activity_catalog,
    normalize_activity_name,
)
from .movement import pattern_waypoints

__all__ = [
    "DIRECTIONS",
    "EnvironmentGrid",
    "GridTile",
    "Position",
    "PathfindingEngine",
    "expand_path",
    "find_nearest_walkable",
    "find_path",
    "manhattan",
    "smooth_path",
    "CoordinationManager",
    "MoveResult",
    "Reservation",
    "ActivityCatalog",
    "ActivityDefinition",
    "ActivityType",
    "AmbiguousActivityError",
    "DurationMode",
    "LocationEntry",
    "LocationRegistry",
    "MovementPattern",
    "UnknownActivityError",
    "default_activity_catalog",
    "normalize_activity_name",
    "pattern_waypoints",
]
