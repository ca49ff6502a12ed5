"""Spatial and resource coordination between agents.

Three kinds of claims are managed here:

- Position reservations: exclusive, short-lived claims on one tile that
  expire on their own after a TTL (5 seconds by default)
- Location capacity: up to ``max_capacity`` concurrent holders per location
- Interaction locks: one interaction target per agent, one claimant per target

Every check-then-claim runs under a single lock, so two concurrent requests
for the same slot resolve to exactly one success. Denials are ordinary return
values; contention is not an error.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Optional, Set

from ..config import Config
from ..logging_utils import debug_enabled, log_deterministic
from .grid import EnvironmentGrid, Position
from .pathfinding import find_nearest_walkable


@dataclass
class Reservation:
    """A live claim on one tile."""

    position: Position
    holder: str
    expires_at: float


@dataclass(frozen=True)
class MoveResult:
    """Answer to a movement request."""

    approved: bool
    reason: str = ""
    alternative: Optional[Position] = None
    wait_time: float = 0.0


class CoordinationManager:
    """Shared claim registry for every agent in the town.

    Args:
        grid: Optional grid used to suggest alternative tiles for denied moves
        ttl_seconds: Default lifetime of a position reservation
        clock: Monotonic time source in seconds (injectable for tests)
    """

    def __init__(
        self,
        *,
        grid: Optional[EnvironmentGrid] = None,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        alternative_radius: int = 3,
    ) -> None:
        self.grid = grid
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else Config.RESERVATION_TTL_SECONDS
        self.clock = clock
        self.alternative_radius = alternative_radius
        self._lock = threading.Lock()
        self._reservations: Dict[Position, Reservation] = {}
        self._positions: Dict[str, Position] = {}
        self._capacity: Dict[str, Set[str]] = {}
        self._interactions: Dict[str, str] = {}

    # ------------------------------------------------------------------
    # Position reservations
    # ------------------------------------------------------------------

    def reserve_position(self, agent_id: str, position: Position, *, ttl: Optional[float] = None) -> bool:
        """Atomically claim ``position``; False if another agent holds a live claim."""

        with self._lock:
            return self._reserve_locked(agent_id, position, ttl)

    def release_position(self, agent_id: str, position: Position) -> None:
        with self._lock:
            reservation = self._reservations.get(position)
            if reservation is not None and reservation.holder == agent_id:
                del self._reservations[position]

    def reservation_holder(self, position: Position) -> Optional[str]:
        with self._lock:
            reservation = self._live_reservation(position)
            return reservation.holder if reservation else None

    def request_move(self, agent_id: str, position: Position) -> MoveResult:
        """Approve a step onto ``position`` and reserve it, or explain the denial."""

        with self._lock:
            occupant = self._occupant(position, exclude=agent_id)
            if occupant is not None:
                return MoveResult(
                    approved=False,
                    reason=f"occupied by {occupant}",
                    alternative=self._alternative_locked(position, agent_id),
                )
            reservation = self._live_reservation(position)
            if reservation is not None and reservation.holder != agent_id:
                return MoveResult(
                    approved=False,
                    reason=f"reserved by {reservation.holder}",
                    wait_time=max(0.0, reservation.expires_at - self.clock()),
                )
            self._reserve_locked(agent_id, position, None)
            return MoveResult(approved=True)

    def update_position(self, agent_id: str, position: Position) -> None:
        with self._lock:
            self._positions[agent_id] = position
            reservation = self._reservations.get(position)
            if reservation is not None and reservation.holder == agent_id:
                del self._reservations[position]

    def position_of(self, agent_id: str) -> Optional[Position]:
        with self._lock:
            return self._positions.get(agent_id)

    def blocked_tiles(self, agent_id: str) -> Set[Position]:
        """Tiles currently occupied or reserved by agents other than ``agent_id``."""

        with self._lock:
            now = self.clock()
            tiles = {pos for other, pos in self._positions.items() if other != agent_id}
            tiles.update(
                pos
                for pos, reservation in self._reservations.items()
                if reservation.holder != agent_id and reservation.expires_at > now
            )
            return tiles

    def find_free_tile(self, agent_id: str, candidates: Iterable[Position]) -> Optional[Position]:
        """First candidate that nobody else occupies or has reserved."""

        blocked = self.blocked_tiles(agent_id)
        for candidate in candidates:
            if candidate not in blocked and (self.grid is None or self.grid.is_walkable(*candidate)):
                return candidate
        return None

    def cleanup_expired(self) -> int:
        """Drop expired reservations; returns how many were removed."""

        with self._lock:
            now = self.clock()
            expired = [pos for pos, res in self._reservations.items() if res.expires_at <= now]
            for pos in expired:
                del self._reservations[pos]
            return len(expired)

    # ------------------------------------------------------------------
    # Location capacity
    # ------------------------------------------------------------------

    def acquire_capacity(self, location_id: str, agent_id: str, max_capacity: int) -> bool:
        """Take one slot at ``location_id``; False once usage equals capacity."""

        with self._lock:
            holders = self._capacity.setdefault(location_id, set())
            if agent_id in holders:
                return True
            if len(holders) >= max_capacity:
                self._trace(f"{agent_id} denied {location_id} (capacity {max_capacity} full)")
                return False
            holders.add(agent_id)
            return True

    def release_capacity(self, location_id: str, agent_id: str) -> None:
        with self._lock:
            holders = self._capacity.get(location_id)
            if holders is not None:
                holders.discard(agent_id)
                if not holders:
                    del self._capacity[location_id]

    def capacity_usage(self, location_id: str) -> int:
        with self._lock:
            return len(self._capacity.get(location_id, ()))

    # ------------------------------------------------------------------
    # Interaction locks
    # ------------------------------------------------------------------

    def acquire_interaction(self, agent_id: str, target_id: str) -> bool:
        """Claim ``target_id`` as this agent's single interaction partner."""

        with self._lock:
            current = self._interactions.get(agent_id)
            if current is not None:
                return current == target_id
            for holder, target in self._interactions.items():
                if target == target_id and holder != agent_id:
                    self._trace(f"{agent_id} denied interaction with {target_id} (held by {holder})")
                    return False
            self._interactions[agent_id] = target_id
            return True

    def release_interaction(self, agent_id: str) -> None:
        with self._lock:
            self._interactions.pop(agent_id, None)

    def interaction_target(self, agent_id: str) -> Optional[str]:
        with self._lock:
            return self._interactions.get(agent_id)

    # ------------------------------------------------------------------
    # Bulk release / diagnostics
    # ------------------------------------------------------------------

    def release_agent(self, agent_id: str, *, forget_position: bool = False) -> None:
        """Release every claim held by ``agent_id``."""

        with self._lock:
            for pos in [p for p, res in self._reservations.items() if res.holder == agent_id]:
                del self._reservations[pos]
            for location_id in list(self._capacity):
                self._capacity[location_id].discard(agent_id)
                if not self._capacity[location_id]:
                    del self._capacity[location_id]
            self._interactions.pop(agent_id, None)
            if forget_position:
                self._positions.pop(agent_id, None)

    def debug_info(self) -> dict:
        with self._lock:
            return {
                "reservations": {
                    f"{pos[0]},{pos[1]}": res.holder for pos, res in self._reservations.items()
                },
                "positions": {agent: list(pos) for agent, pos in self._positions.items()},
                "capacity": {loc: sorted(holders) for loc, holders in self._capacity.items()},
                "interactions": dict(self._interactions),
            }

    # ------------------------------------------------------------------
    # Internals (call with the lock held)
    # ------------------------------------------------------------------

    def _live_reservation(self, position: Position) -> Optional[Reservation]:
        reservation = self._reservations.get(position)
        if reservation is None:
            return None
        if reservation.expires_at <= self.clock():
            del self._reservations[position]
            return None
        return reservation

    def _reserve_locked(self, agent_id: str, position: Position, ttl: Optional[float]) -> bool:
        reservation = self._live_reservation(position)
        if reservation is not None and reservation.holder != agent_id:
            self._trace(f"{agent_id} denied tile {position} (held by {reservation.holder})")
            return False
        lifetime = ttl if ttl is not None else self.ttl_seconds
        self._reservations[position] = Reservation(
            position=position, holder=agent_id, expires_at=self.clock() + lifetime
        )
        return True

    def _occupant(self, position: Position, *, exclude: str) -> Optional[str]:
        for agent_id, pos in self._positions.items():
            if pos == position and agent_id != exclude:
                return agent_id
        return None

    def _alternative_locked(self, position: Position, agent_id: str) -> Optional[Position]:
        if self.grid is None:
            return None
        now = self.clock()
        taken = {pos for other, pos in self._positions.items() if other != agent_id}
        taken.update(pos for pos, res in self._reservations.items() if res.expires_at > now)
        return find_nearest_walkable(self.grid, position, max_radius=self.alternative_radius, exclude=taken)

    @staticmethod
    def _trace(message: str) -> None:
        if debug_enabled("DEBUG_COORDINATION"):
            log_deterministic(f"[Coordination] {message}")
