"""Turns an agent's active plan into dispatch decisions.

Each tick the orchestrator hands the agenda the active plan and the simulated
minute of day. Steps whose time has come are queued once per day and ordered
by priority, then creation time, then scheduled time. A queued step is
dispatched when the agent is idle, or immediately (interrupting the current
session) when it outranks the running activity.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Set, Tuple
from uuid import UUID

from .schemas import Plan, PlanStep


def dispatch_order(step: PlanStep) -> Tuple:
    return (-step.priority, step.created_at, step.minute_of_day)


class AgentAgenda:
    """Per-agent queue of due plan steps."""

    def __init__(self, agent_id: str, *, day: int = 1) -> None:
        self.agent_id = agent_id
        self.day = day
        self.plan_id: Optional[UUID] = None
        self._queue: List[PlanStep] = []
        # Steps already dispatched or superseded today.
        self._handled: Set[UUID] = set()

    def reset_day(self, day: int) -> None:
        self.day = day
        self._queue.clear()
        self._handled.clear()

    def collect_due(self, plan: Optional[Plan], minute_of_day: float) -> List[PlanStep]:
        """Queue steps of ``plan`` that are due; returns the newly queued steps."""

        if plan is None:
            self._switch_plan(None)
            return []
        self._switch_plan(plan.id)

        queued_ids = {step.id for step in self._queue}
        due = [
            step
            for step in plan.ordered_steps()
            if step.minute_of_day <= minute_of_day and step.id not in self._handled and step.id not in queued_ids
        ]
        if not due:
            return []

        # Within one source only the latest due slot still describes "now";
        # earlier undispatched slots from the same source are superseded.
        latest: Dict[str, int] = {}
        for step in [*self._queue, *due]:
            latest[step.source] = max(latest.get(step.source, -1), step.minute_of_day)

        kept: List[PlanStep] = []
        for step in [*self._queue, *due]:
            if step.minute_of_day < latest[step.source]:
                self._handled.add(step.id)
                continue
            kept.append(step)
        newly_queued = [step for step in due if step.id not in self._handled]
        self._queue = sorted(kept, key=dispatch_order)
        return newly_queued

    def peek(self) -> Optional[PlanStep]:
        return self._queue[0] if self._queue else None

    def next_step(self, current_priority: Optional[int]) -> Optional[PlanStep]:
        """Pop the step to dispatch now, if any.

        ``current_priority`` is the priority of the running session, or None
        when the agent is idle.
        """

        head = self.peek()
        if head is None:
            return None
        if current_priority is not None and head.priority <= current_priority:
            return None
        self._queue.pop(0)
        self._handled.add(head.id)
        return head

    def pending(self) -> List[PlanStep]:
        return list(self._queue)

    def is_exhausted(self, plan: Plan) -> bool:
        """True once every step of ``plan`` was dispatched or superseded."""

        return not self._queue and all(step.id in self._handled for step in plan.steps)

    def _switch_plan(self, plan_id: Optional[UUID]) -> None:
        if plan_id == self.plan_id:
            return
        self.plan_id = plan_id
        self._queue.clear()
