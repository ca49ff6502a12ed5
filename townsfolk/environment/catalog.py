"""Read-only activity catalog and location registry.

Both are built once at startup and injected into every component that needs
them. Activity names coming from generated plans are resolved through an
explicit alias table; an alias claimed by two activities is a data-quality
error surfaced at resolve time (and by ``validate()``), never a silent pick.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Iterable, Iterator, List, Optional, Set, Tuple

from .grid import Position


class ActivityType(str, Enum):
    STATIONARY = "stationary"
    ROUTINE_MOVEMENT = "routine_movement"
    GOTO_LOCATION = "goto_location"
    SOCIAL_INTERACTION = "social_interaction"


class MovementPattern(str, Enum):
    STATIC = "static"
    PACE = "pace"
    PATROL = "patrol"
    WANDER = "wander"
    CIRCLE = "circle"
    LAPS = "laps"


class DurationMode(str, Enum):
    SCHEDULED = "scheduled"
    UNTIL_ARRIVAL = "until_arrival"
    UNTIL_INTERRUPTED = "until_interrupted"


class UnknownActivityError(LookupError):
    """Raised when an activity name matches neither a canonical name nor an alias."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(
            f"Unknown activity '{name}'. Register it or add an alias in the activity catalog."
        )


class AmbiguousActivityError(LookupError):
    """Raised when an alias maps to more than one canonical activity."""

    def __init__(self, name: str, candidates: Iterable[str]) -> None:
        self.name = name
        self.candidates = sorted(candidates)
        super().__init__(
            f"Activity alias '{name}' is ambiguous ({', '.join(self.candidates)}). "
            "Fix the catalog data so each alias names exactly one activity."
        )


def normalize_activity_name(name: str) -> str:
    return re.sub(r"[\s\-]+", "_", name.strip().lower())


@dataclass(frozen=True)
class ActivityDefinition:
    """Canonical activity description."""

    name: str
    activity_type: ActivityType = ActivityType.STATIONARY
    required_tags: FrozenSet[str] = frozenset()
    preferred_tags: FrozenSet[str] = frozenset()
    duration_minutes: float = 60.0
    movement_pattern: MovementPattern = MovementPattern.STATIC
    duration_mode: DurationMode = DurationMode.SCHEDULED
    priority: int = 5
    aliases: Tuple[str, ...] = ()
    required_parameters: Tuple[str, ...] = ()


class ActivityCatalog:
    """Alias-aware lookup from activity names to definitions."""

    def __init__(self, definitions: Iterable[ActivityDefinition] = ()) -> None:
        self._definitions: Dict[str, ActivityDefinition] = {}
        self._aliases: Dict[str, Set[str]] = {}
        for definition in definitions:
            self.register(definition)

    def register(self, definition: ActivityDefinition) -> None:
        canonical = normalize_activity_name(definition.name)
        if canonical in self._definitions:
            raise ValueError(f"Activity '{canonical}' registered twice")
        self._definitions[canonical] = definition
        for alias in definition.aliases:
            self._aliases.setdefault(normalize_activity_name(alias), set()).add(canonical)

    def resolve(self, name: str) -> ActivityDefinition:
        """Return the definition for a canonical name or a unique alias."""

        key = normalize_activity_name(name)
        if key in self._definitions:
            return self._definitions[key]
        candidates = self._aliases.get(key, set())
        if len(candidates) > 1:
            raise AmbiguousActivityError(name, candidates)
        if not candidates:
            raise UnknownActivityError(name)
        return self._definitions[next(iter(candidates))]

    def validate(self) -> Dict[str, List[str]]:
        """Aliases that collide with another activity, with their candidates."""

        problems: Dict[str, List[str]] = {}
        for alias, owners in self._aliases.items():
            if len(owners) > 1:
                problems[alias] = sorted(owners)
            elif alias in self._definitions and alias not in owners:
                problems[alias] = sorted({alias, *owners})
        return problems

    def names(self) -> List[str]:
        return sorted(self._definitions)

    def __contains__(self, name: str) -> bool:
        try:
            self.resolve(name)
        except LookupError:
            return False
        return True


def default_activity_catalog() -> ActivityCatalog:
    """Activity set covering the default daily schedule and common town life."""

    tags = frozenset
    return ActivityCatalog(
        [
            ActivityDefinition(
                "eat", required_tags=tags({"food"}), preferred_tags=tags({"eating"}),
                duration_minutes=45, priority=8,
                aliases=("lunch", "dinner", "breakfast", "meal", "dine"),
            ),
            ActivityDefinition(
                "work", required_tags=tags({"work"}), preferred_tags=tags({"business"}),
                duration_minutes=60, priority=6, aliases=("job", "labor", "shift"),
            ),
            ActivityDefinition(
                "sleep", required_tags=tags({"home"}), preferred_tags=tags({"rest"}),
                duration_minutes=480, priority=9, aliases=("prepare_for_bed", "rest", "nap"),
            ),
            ActivityDefinition(
                "exercise", activity_type=ActivityType.ROUTINE_MOVEMENT,
                required_tags=tags({"outdoor"}), preferred_tags=tags({"fitness"}),
                movement_pattern=MovementPattern.LAPS, duration_minutes=30, priority=5,
                aliases=("jog", "run", "workout"),
            ),
            ActivityDefinition(
                "travel", activity_type=ActivityType.GOTO_LOCATION,
                duration_mode=DurationMode.UNTIL_ARRIVAL, priority=5,
                aliases=("go_to", "visit", "walk_to"), required_parameters=("location",),
            ),
            ActivityDefinition(
                "socialize", activity_type=ActivityType.SOCIAL_INTERACTION,
                required_tags=tags({"social"}), preferred_tags=tags({"meeting"}),
                duration_minutes=60, priority=6, aliases=("social", "chat", "gather"),
            ),
            ActivityDefinition(
                "maintain", activity_type=ActivityType.ROUTINE_MOVEMENT,
                required_tags=tags({"work"}), preferred_tags=tags({"equipment"}),
                movement_pattern=MovementPattern.PATROL, duration_minutes=45, priority=5,
                aliases=("repair", "upkeep"),
            ),
            ActivityDefinition(
                "observe", required_tags=tags({"lookout"}),
                preferred_tags=tags({"watchtower", "lighthouse"}),
                movement_pattern=MovementPattern.PACE, activity_type=ActivityType.ROUTINE_MOVEMENT,
                duration_minutes=60, priority=5, aliases=("watch", "keep_watch"),
            ),
            ActivityDefinition(
                "study", required_tags=tags({"library"}), preferred_tags=tags({"quiet"}),
                duration_minutes=60, priority=4, aliases=("read", "research"),
            ),
            ActivityDefinition(
                "worship", required_tags=tags({"church"}), preferred_tags=tags({"spiritual"}),
                duration_minutes=60, priority=7, aliases=("pray", "mass"),
            ),
            ActivityDefinition(
                "idle", duration_minutes=30, priority=3,
                movement_pattern=MovementPattern.WANDER, activity_type=ActivityType.ROUTINE_MOVEMENT,
                aliases=("wake_up", "personal_time", "relax", "free_time"),
            ),
        ]
    )


@dataclass(frozen=True)
class LocationEntry:
    """A named place on the map."""

    id: str
    position: Position
    tags: FrozenSet[str] = frozenset()
    max_capacity: int = 1
    display_name: str = ""
    width: int = 1
    height: int = 1
    description: str = ""

    def tiles(self) -> Iterator[Position]:
        """Footprint tiles in row-major order, starting at ``position``."""

        row, col = self.position
        for dr in range(self.height):
            for dc in range(self.width):
                yield (row + dr, col + dc)


class LocationRegistry:
    """Tag-indexed lookup over the town's locations."""

    def __init__(self, locations: Iterable[LocationEntry] = ()) -> None:
        self._locations: Dict[str, LocationEntry] = {}
        for location in locations:
            self.add(location)

    def add(self, location: LocationEntry) -> None:
        if location.id in self._locations:
            raise ValueError(f"Location '{location.id}' registered twice")
        self._locations[location.id] = location

    def get(self, location_id: str) -> Optional[LocationEntry]:
        return self._locations.get(location_id)

    def lookup(self, tags: Iterable[str]) -> List[LocationEntry]:
        """Locations carrying every tag in ``tags`` (all locations for no tags)."""

        wanted = set(tags)
        return [location for location in self._locations.values() if wanted <= location.tags]

    def all(self) -> List[LocationEntry]:
        return list(self._locations.values())
