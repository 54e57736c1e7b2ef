"""
Leveling suggestion engine.

Turns concurrency overallocations into remediation proposals:
- Delay non-critical tasks (latest deadline first) one unit of overload at a time
- Reassign remaining overload to an idle resource of the same type
Overload that neither action can absorb is left unresolved and reported.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Dict, List, Optional, Sequence, Set, Tuple, Union

from .availability import Overallocation
from .dates import DEFAULT_CALENDAR, UTCCalendar
from .demand import DemandMatrix
from .models import EngineConfig, Resource, Task

logger = logging.getLogger(__name__)


def criticality_rank(task: Task) -> int:
    """Critical tasks rank first and are never moved."""
    return 0 if task.is_critical else 1


def deadline_rank(task: Task) -> date:
    """Closer deadlines rank earlier and keep their slot."""
    return task.end_date or date.max


def candidate_rank_key(task: Task) -> Tuple[int, date, date, str]:
    return (criticality_rank(task), deadline_rank(task), task.start_date or date.max, task.id)


def rank_candidates(tasks: Sequence[Task]) -> List[Task]:
    """Order tasks by how strongly they hold their slot, strongest first."""
    return sorted(tasks, key=candidate_rank_key)


def delay_targets(ranked: Sequence[Task]) -> List[Task]:
    """Non-critical tasks in the order they should give way."""
    return [task for task in reversed(ranked) if not task.is_critical]


def impact_for_delay(days: int) -> str:
    if days > 7:
        return "high"
    if days > 3:
        return "medium"
    return "low"


@dataclass
class DelaySuggestion:
    """Push a task later so it no longer overlaps the overload."""
    task_id: str
    task_name: str
    resource_id: str
    resource_name: str
    date: date
    suggested_delay_days: int
    current_start: date
    current_end: date
    reason: str
    impact: str  # "high", "medium", "low"

    def to_dict(self, calendar: UTCCalendar = DEFAULT_CALENDAR) -> Dict[str, object]:
        delta = timedelta(days=self.suggested_delay_days)
        return {
            "action": "delay_task",
            "task_id": self.task_id,
            "task_name": self.task_name,
            "resource_id": self.resource_id,
            "resource_name": self.resource_name,
            "date": calendar.format(self.date),
            "suggested_delay_days": self.suggested_delay_days,
            "current_start": calendar.format(self.current_start),
            "current_end": calendar.format(self.current_end),
            "proposed_start": calendar.format(self.current_start + delta),
            "proposed_end": calendar.format(self.current_end + delta),
            "reason": self.reason,
            "impact": self.impact,
        }


@dataclass
class ReassignSuggestion:
    """Move remaining overload to an idle resource of the same type."""
    from_resource_id: str
    from_resource_name: str
    to_resource_id: str
    to_resource_name: str
    resource_type: Optional[str]
    date: date
    assignments: int
    reason: str
    impact: str = "medium"

    def to_dict(self, calendar: UTCCalendar = DEFAULT_CALENDAR) -> Dict[str, object]:
        return {
            "action": "reassign_resource",
            "task_id": None,
            "task_name": None,
            "from_resource_id": self.from_resource_id,
            "from_resource_name": self.from_resource_name,
            "to_resource_id": self.to_resource_id,
            "to_resource_name": self.to_resource_name,
            "resource_type": self.resource_type,
            "date": calendar.format(self.date),
            "assignments": self.assignments,
            "reason": self.reason,
            "impact": self.impact,
        }


Suggestion = Union[DelaySuggestion, ReassignSuggestion]


@dataclass
class LevelingResult:
    suggestions: List[Suggestion] = field(default_factory=list)
    unresolved: Dict[Tuple[str, date], int] = field(default_factory=dict)

    def unresolved_for(self, overallocation: Overallocation) -> int:
        return self.unresolved.get((overallocation.resource_id, overallocation.date), 0)

    @property
    def total_unresolved(self) -> int:
        return sum(self.unresolved.values())


class LevelingEngine:
    """Walks overallocations in order and proposes delay or reassignment actions."""

    def __init__(
        self,
        overallocations: Sequence[Overallocation],
        tasks: Sequence[Task],
        resources: Sequence[Resource],
        matrix: DemandMatrix,
        config: EngineConfig,
    ) -> None:
        self.overallocations = overallocations
        self.tasks_by_id = {task.id: task for task in tasks}
        self.resources = list(resources)
        self.matrix = matrix
        self.config = config

        self._delayed: Set[Tuple[str, str]] = set()
        self._reserved: Dict[Tuple[str, date], int] = {}

    def run(self) -> LevelingResult:
        result = LevelingResult()
        for overallocation in self.overallocations:
            remaining = self._delay(overallocation, result)
            if remaining > 0:
                remaining = self._reassign(overallocation, remaining, result)
            result.unresolved[(overallocation.resource_id, overallocation.date)] = remaining
        if result.total_unresolved:
            logger.info(
                "%d unit(s) of overload left unresolved after leveling", result.total_unresolved
            )
        return result

    def _delay(self, overallocation: Overallocation, result: LevelingResult) -> int:
        remaining = overallocation.overload
        candidates = [
            self.tasks_by_id[task_id]
            for task_id in overallocation.task_ids
            if task_id in self.tasks_by_id
        ]
        ranked = rank_candidates(candidates)
        for task in delay_targets(ranked):
            if remaining <= 0:
                break
            key = (overallocation.resource_id, task.id)
            if key not in self._delayed:
                holders = ranked[: ranked.index(task)]
                days = self._delay_days(task, holders, overallocation.date)
                result.suggestions.append(
                    DelaySuggestion(
                        task_id=task.id,
                        task_name=task.label,
                        resource_id=overallocation.resource_id,
                        resource_name=overallocation.resource_name,
                        date=overallocation.date,
                        suggested_delay_days=days,
                        current_start=task.start_date,  # type: ignore[arg-type]
                        current_end=task.end_date,  # type: ignore[arg-type]
                        reason=(
                            f"{overallocation.resource_name} has {overallocation.demand} concurrent "
                            f"assignments against a limit of {overallocation.capacity} on "
                            f"{DEFAULT_CALENDAR.format(overallocation.date)}"
                        ),
                        impact=impact_for_delay(days),
                    )
                )
                self._delayed.add(key)
            remaining -= 1
        return remaining

    @staticmethod
    def _delay_days(task: Task, holders: Sequence[Task], day: date) -> int:
        """Days needed for ``task`` to start after every higher-ranked task ends."""
        start = task.start_date or day
        if holders:
            target = max(holder.end_date or day for holder in holders) + timedelta(days=1)
        else:
            target = day + timedelta(days=1)
        return max(1, (target - start).days)

    def _reassign(self, overallocation: Overallocation, remaining: int, result: LevelingResult) -> int:
        alternate = self._least_loaded_alternate(overallocation)
        if alternate is None:
            return remaining
        reserved_key = (alternate.id, overallocation.date)
        self._reserved[reserved_key] = self._reserved.get(reserved_key, 0) + remaining
        result.suggestions.append(
            ReassignSuggestion(
                from_resource_id=overallocation.resource_id,
                from_resource_name=overallocation.resource_name,
                to_resource_id=alternate.id,
                to_resource_name=alternate.label,
                resource_type=overallocation.resource_type,
                date=overallocation.date,
                assignments=remaining,
                reason=(
                    f"{remaining} assignment(s) on {DEFAULT_CALENDAR.format(overallocation.date)} "
                    f"cannot be delayed; {alternate.label} has no demand that day"
                ),
            )
        )
        return 0

    def _least_loaded_alternate(self, overallocation: Overallocation) -> Optional[Resource]:
        if overallocation.resource_type is None:
            return None
        best: Optional[Resource] = None
        best_load = 0
        for candidate in self.resources:
            if candidate.id == overallocation.resource_id:
                continue
            if candidate.type != overallocation.resource_type:
                continue
            if not candidate.is_usable(self.config.unavailable_resource_statuses):
                continue
            day_load = self.matrix.demand(candidate.id, overallocation.date)
            day_load += self._reserved.get((candidate.id, overallocation.date), 0)
            if day_load != 0:
                continue
            load = self.matrix.total_demand(candidate.id)
            if best is None or load < best_load:
                best, best_load = candidate, load
        return best
