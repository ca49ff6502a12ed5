"""Per-agent activity state machine.

An ``ActivitySession`` executes exactly one ActivityIntent:

    Planning -> MovingToLocation -> PerformingAction -> Completed
        |              |                   |
        +--> Failed <--+                   |
    (any non-terminal) --interrupt()--> Interrupted

Planning resolves the activity through the catalog, picks a location whose
tags satisfy the definition and claims capacity there. Movement walks an A*
route tile by tile, reserving each tile before stepping on it. Performing
either holds still or loops a movement pattern until the duration elapses.
Every terminal state releases the agent's claims.
"""

from __future__ import annotations

import random
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Deque, List, Optional

from .environment.catalog import (
    ActivityCatalog,
    ActivityDefinition,
    AmbiguousActivityError,
    DurationMode,
    LocationEntry,
    LocationRegistry,
    UnknownActivityError,
)
from .environment.coordination import CoordinationManager
from .environment.grid import Position
from .environment.movement import pattern_waypoints
from .environment.pathfinding import PathfindingEngine, expand_path, manhattan
from .logging_utils import log_deterministic, log_error
from .schemas import ActivityIntent


class ActivityState(str, Enum):
    PLANNING = "planning"
    MOVING_TO_LOCATION = "moving_to_location"
    PERFORMING_ACTION = "performing_action"
    COMPLETED = "completed"
    FAILED = "failed"
    INTERRUPTED = "interrupted"


TERMINAL_STATES = frozenset({ActivityState.COMPLETED, ActivityState.FAILED, ActivityState.INTERRUPTED})


@dataclass(frozen=True)
class StateTransition:
    from_state: ActivityState
    to_state: ActivityState
    reason: str


TransitionCallback = Callable[["ActivitySession", ActivityState, ActivityState], None]


class ActivitySession:
    """Ephemeral executor for one activity intent.

    Args:
        agent_id: Acting agent
        intent: What to do (name, optional location hint, parameters)
        priority: Scheduling priority; a higher-priority dispatch interrupts
        start_position: Agent tile when the session starts
        on_transition: Called after every state change
        moves_per_tick: Tiles walked per tick
        max_wait_ticks: Ticks to stay queued in Planning while capacity is full
    """

    HISTORY_LIMIT = 10

    def __init__(
        self,
        agent_id: str,
        intent: ActivityIntent,
        *,
        priority: int,
        start_position: Position,
        catalog: ActivityCatalog,
        locations: LocationRegistry,
        pathfinder: PathfindingEngine,
        coordination: CoordinationManager,
        on_transition: Optional[TransitionCallback] = None,
        completion_check: Optional[Callable[["ActivitySession"], bool]] = None,
        moves_per_tick: int = 1,
        max_wait_ticks: int = 3,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.agent_id = agent_id
        self.intent = intent
        self.priority = priority
        self.position = start_position
        self.catalog = catalog
        self.locations = locations
        self.pathfinder = pathfinder
        self.coordination = coordination
        self.on_transition = on_transition
        self.completion_check = completion_check
        self.moves_per_tick = max(1, moves_per_tick)
        self.max_wait_ticks = max_wait_ticks
        self.rng = rng or random.Random(agent_id)

        self.state = ActivityState.PLANNING
        self.definition: Optional[ActivityDefinition] = None
        self.target_location: Optional[LocationEntry] = None
        self.target_tile: Optional[Position] = None
        self.path: List[Position] = []
        self.remaining_minutes: float = 0.0
        self.total_minutes: float = 0.0
        self.failure_reason: Optional[str] = None
        self.wait_ticks = 0
        self._hint_rejected = False
        self.replans = 0
        self.history: Deque[StateTransition] = deque(maxlen=self.HISTORY_LIMIT)
        self._loop: List[Position] = []
        self._loop_index = 0
        self._interaction_target: Optional[str] = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def succeeded(self) -> bool:
        return self.state == ActivityState.COMPLETED

    @property
    def activity_name(self) -> str:
        return self.definition.name if self.definition else self.intent.name

    def update(self, elapsed_minutes: float) -> ActivityState:
        """Advance the session by one tick worth of simulated time."""

        if self.state == ActivityState.PLANNING:
            self._update_planning()
        elif self.state == ActivityState.MOVING_TO_LOCATION:
            self._update_moving()
        elif self.state == ActivityState.PERFORMING_ACTION:
            self._update_performing(elapsed_minutes)
        return self.state

    def interrupt(self, reason: str = "preempted by a higher-priority activity") -> None:
        """Stop movement/action progress immediately and release claims."""

        if not self.is_terminal:
            self._transition(ActivityState.INTERRUPTED, reason)

    def progress(self) -> float:
        if self.state == ActivityState.COMPLETED:
            return 1.0
        if self.state != ActivityState.PERFORMING_ACTION or self.total_minutes <= 0:
            return 0.0
        return max(0.0, min(1.0, 1.0 - self.remaining_minutes / self.total_minutes))

    def display_label(self) -> str:
        name = self.activity_name
        place = self.target_location.display_name or self.target_location.id if self.target_location else None
        if self.state == ActivityState.PLANNING:
            return f"deciding where to {name}"
        if self.state == ActivityState.MOVING_TO_LOCATION:
            return f"walking to {place}" if place else f"walking to {name}"
        if self.state == ActivityState.PERFORMING_ACTION:
            return f"{name} at {place}" if place else name
        if self.state == ActivityState.COMPLETED:
            return f"finished {name}"
        if self.state == ActivityState.FAILED:
            return f"could not {name}"
        return f"stopped {name}"

    def debug_info(self) -> dict:
        return {
            "agent_id": self.agent_id,
            "activity": self.activity_name,
            "state": self.state.value,
            "priority": self.priority,
            "position": list(self.position),
            "target_location": self.target_location.id if self.target_location else None,
            "target_tile": list(self.target_tile) if self.target_tile else None,
            "remaining_path": len(self.path),
            "remaining_minutes": self.remaining_minutes,
            "progress": self.progress(),
            "failure_reason": self.failure_reason,
            "history": [
                f"{item.from_state.value}->{item.to_state.value}: {item.reason}" for item in self.history
            ],
        }

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    def _update_planning(self) -> None:
        if self.definition is None:
            try:
                self.definition = self.catalog.resolve(self.intent.name)
            except AmbiguousActivityError as exc:
                log_error(f"[Activity] {self.agent_id}: data-quality error: {exc}")
                self._fail(str(exc))
                return
            except UnknownActivityError as exc:
                self._fail(str(exc))
                return

            for parameter in self.definition.required_parameters:
                if parameter == "location" and self._location_hint():
                    continue
                if parameter not in self.intent.parameters:
                    self._fail(f"missing required parameter '{parameter}' for {self.definition.name}")
                    return

            duration = self.intent.parameters.get("duration_minutes", self.definition.duration_minutes)
            self.remaining_minutes = self.total_minutes = float(duration)

        candidates = self._candidate_locations()
        if candidates is None:
            # Nothing to travel to: perform where the agent stands.
            self.target_tile = self.position
            self._arrive()
            return
        if not candidates:
            self._fail(f"no location satisfies tags {sorted(self.definition.required_tags)}")
            return

        target_agent = self.intent.parameters.get("target_agent")
        if target_agent and self._interaction_target is None:
            if not self.coordination.acquire_interaction(self.agent_id, target_agent):
                self._wait(f"{target_agent} is busy")
                return
            self._interaction_target = target_agent

        for location in candidates:
            if not self.coordination.acquire_capacity(location.id, self.agent_id, location.max_capacity):
                continue
            tile = self.coordination.find_free_tile(self.agent_id, location.tiles())
            if tile is None:
                tile = self.pathfinder.find_nearest_walkable(
                    location.position, exclude=self.coordination.blocked_tiles(self.agent_id)
                )
            if tile is None:
                self.coordination.release_capacity(location.id, self.agent_id)
                continue
            self.target_location = location
            self.target_tile = tile
            self._transition(ActivityState.MOVING_TO_LOCATION, f"heading to {location.id}")
            return

        self._wait("every matching location is at capacity")

    def _location_hint(self) -> Optional[str]:
        return self.intent.location or self.intent.parameters.get("location")

    def _candidate_locations(self) -> Optional[List[LocationEntry]]:
        """Ranked candidates, or None when the activity needs no location."""

        definition = self.definition
        hint = self._location_hint()
        if hint:
            hinted = self.locations.get(hint)
            if hinted is not None and definition.required_tags <= hinted.tags:
                return [hinted]
            if hinted is not None and not self._hint_rejected:
                self._hint_rejected = True
                log_error(
                    f"[Activity] {self.agent_id}: {hint} lacks tags "
                    f"{sorted(definition.required_tags - hinted.tags)} for {definition.name}; ignoring the hint"
                )
            if definition.duration_mode == DurationMode.UNTIL_ARRIVAL:
                return []
        if not definition.required_tags:
            return None

        matches = self.locations.lookup(definition.required_tags)
        return sorted(
            matches,
            key=lambda loc: (
                -len(definition.preferred_tags & loc.tags),
                manhattan(self.position, loc.position),
                loc.id,
            ),
        )

    def _wait(self, reason: str) -> None:
        self.wait_ticks += 1
        if self.wait_ticks > self.max_wait_ticks:
            self._fail(f"gave up waiting: {reason}")

    # ------------------------------------------------------------------
    # Movement
    # ------------------------------------------------------------------

    def _update_moving(self) -> None:
        if self.position == self.target_tile:
            self._arrive()
            return
        if not self.path:
            route = self.pathfinder.find_path(self.position, self.target_tile)
            self.path = expand_path(route)[1:]
            if not self.path:
                self._fail(f"no route from {self.position} to {self.target_tile}")
                return

        for _ in range(self.moves_per_tick):
            next_tile = self.path[0]
            result = self.coordination.request_move(self.agent_id, next_tile)
            if not result.approved:
                self._replan(result.reason)
                return
            self.path.pop(0)
            self.position = next_tile
            self.coordination.update_position(self.agent_id, next_tile)
            if self.position == self.target_tile:
                self._arrive()
                return

    def _replan(self, reason: str) -> None:
        if self.replans >= 1:
            self._fail(f"path blocked ({reason}) after replanning")
            return
        self.replans += 1
        blocked = self.coordination.blocked_tiles(self.agent_id)
        route = self.pathfinder.find_path(self.position, self.target_tile, blocked=blocked)
        self.path = expand_path(route)[1:]
        if not self.path:
            self._fail(f"path blocked ({reason}) and no detour exists")

    def _arrive(self) -> None:
        if self.definition.duration_mode == DurationMode.UNTIL_ARRIVAL:
            self._transition(ActivityState.COMPLETED, "arrived")
            return
        self._loop = pattern_waypoints(
            self.definition.movement_pattern,
            self.position,
            self.pathfinder.grid,
            location=self.target_location,
            rng=self.rng,
        )
        self._loop_index = 0
        self._transition(ActivityState.PERFORMING_ACTION, "arrived")

    # ------------------------------------------------------------------
    # Performing
    # ------------------------------------------------------------------

    def _update_performing(self, elapsed_minutes: float) -> None:
        self.remaining_minutes -= elapsed_minutes
        if self.completion_check is not None and self.completion_check(self):
            self._transition(ActivityState.COMPLETED, "completion condition met")
            return
        if self.definition.duration_mode != DurationMode.UNTIL_INTERRUPTED and self.remaining_minutes <= 0:
            self._transition(ActivityState.COMPLETED, "duration elapsed")
            return
        self._step_pattern()

    def _step_pattern(self) -> None:
        if not self._loop:
            return
        waypoint = self._loop[self._loop_index % len(self._loop)]
        if self.position == waypoint:
            self._loop_index += 1
            waypoint = self._loop[self._loop_index % len(self._loop)]
        route = expand_path(self.pathfinder.find_path(self.position, waypoint))
        if len(route) < 2:
            return
        result = self.coordination.request_move(self.agent_id, route[1])
        if result.approved:
            # Contention while performing just means waiting a tick.
            self.position = route[1]
            self.coordination.update_position(self.agent_id, route[1])

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _fail(self, reason: str) -> None:
        self.failure_reason = reason
        self._transition(ActivityState.FAILED, reason)

    def _transition(self, new_state: ActivityState, reason: str) -> None:
        old_state = self.state
        self.state = new_state
        self.history.append(StateTransition(old_state, new_state, reason))
        if new_state in TERMINAL_STATES:
            self.path = []
            self.coordination.release_agent(self.agent_id)
            self._interaction_target = None
        log_deterministic(
            f"[{self.agent_id}] {self.activity_name}: {old_state.value} -> {new_state.value} ({reason})"
        )
        if self.on_transition is not None:
            self.on_transition(self, old_state, new_state)
