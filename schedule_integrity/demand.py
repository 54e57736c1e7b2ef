"""
Resource demand aggregation.

Resources and calendar days get stable integer indices once; concurrent task
counts accumulate into a ``resources x days`` integer matrix. Demand is a
count of concurrently active tasks, not hours.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from .dates import DEFAULT_CALENDAR, UTCCalendar
from .models import Task

logger = logging.getLogger(__name__)


@dataclass
class DemandMatrix:
    resource_ids: List[str]
    days: List[date]
    counts: np.ndarray
    active_tasks: np.ndarray
    contributors: Dict[Tuple[int, int], List[str]] = field(default_factory=dict)
    calendar: UTCCalendar = DEFAULT_CALENDAR

    def __post_init__(self) -> None:
        self._resource_index = {resource_id: idx for idx, resource_id in enumerate(self.resource_ids)}
        self._day_index = {day: idx for idx, day in enumerate(self.days)}

    @property
    def is_empty(self) -> bool:
        return not self.days

    @property
    def start(self) -> Optional[date]:
        return self.days[0] if self.days else None

    @property
    def end(self) -> Optional[date]:
        return self.days[-1] if self.days else None

    def resource_index(self, resource_id: str) -> Optional[int]:
        return self._resource_index.get(resource_id)

    def day_index(self, day: date) -> Optional[int]:
        return self._day_index.get(day)

    def demand(self, resource_id: str, day: date) -> int:
        r_idx = self.resource_index(resource_id)
        d_idx = self.day_index(day)
        if r_idx is None or d_idx is None:
            return 0
        return int(self.counts[r_idx, d_idx])

    def total_demand(self, resource_id: str) -> int:
        r_idx = self.resource_index(resource_id)
        if r_idx is None:
            return 0
        return int(self.counts[r_idx].sum())

    def tasks_on(self, resource_id: str, day: date) -> List[str]:
        r_idx = self.resource_index(resource_id)
        d_idx = self.day_index(day)
        if r_idx is None or d_idx is None:
            return []
        return list(self.contributors.get((r_idx, d_idx), []))

    def daily_totals(self) -> np.ndarray:
        if self.counts.size == 0:
            return np.zeros(len(self.days), dtype=np.int64)
        return self.counts.sum(axis=0)

    def demand_for(self, resource_id: str) -> Dict[str, int]:
        """Days with non-zero demand for one resource, keyed by ISO date."""
        r_idx = self.resource_index(resource_id)
        if r_idx is None:
            return {}
        row = self.counts[r_idx]
        return {
            self.calendar.format(self.days[d_idx]): int(row[d_idx])
            for d_idx in np.flatnonzero(row)
        }

    def resource_demand(self) -> Dict[str, Dict[str, int]]:
        demand: Dict[str, Dict[str, int]] = {}
        for resource_id in self.resource_ids:
            days = self.demand_for(resource_id)
            if days:
                demand[resource_id] = days
        return demand

    def demand_by_date(self) -> Dict[str, int]:
        """Global demand for every day of the covered span, zero days included."""
        totals = self.daily_totals()
        return {self.calendar.format(day): int(totals[idx]) for idx, day in enumerate(self.days)}


def _dated_tasks(tasks: Iterable[Task], inactive_statuses: Sequence[str]) -> List[Task]:
    dated = []
    for task in tasks:
        if not task.has_dates() or not task.is_active(inactive_statuses):
            continue
        if task.start_date > task.end_date:  # type: ignore[operator]
            logger.debug("Skipping task %s with start after end", task.id)
            continue
        dated.append(task)
    return dated


def aggregate_demand(
    tasks: Iterable[Task],
    resource_ids: Sequence[str] = (),
    inactive_statuses: Sequence[str] = (),
    calendar: UTCCalendar = DEFAULT_CALENDAR,
) -> DemandMatrix:
    """Accumulate per-resource, per-day concurrent assignment counts.

    ``resource_ids`` seeds the resource axis so resources without any demand
    still get a (zero) row; ids assigned on tasks but missing from it are
    appended in first-seen order.
    """
    dated = _dated_tasks(tasks, inactive_statuses)
    ordered_ids: List[str] = list(dict.fromkeys(resource_ids))
    known = set(ordered_ids)
    for task in dated:
        for resource_id in task.assigned_ids():
            if resource_id not in known:
                ordered_ids.append(resource_id)
                known.add(resource_id)

    if dated:
        span_start = min(task.start_date for task in dated)  # type: ignore[type-var]
        span_end = max(task.end_date for task in dated)  # type: ignore[type-var]
        days = list(calendar.iter_days(span_start, span_end))
    else:
        days = []

    counts = np.zeros((len(ordered_ids), len(days)), dtype=np.int64)
    active_tasks = np.zeros(len(days), dtype=np.int64)
    matrix = DemandMatrix(
        resource_ids=ordered_ids,
        days=days,
        counts=counts,
        active_tasks=active_tasks,
        calendar=calendar,
    )
    if not days:
        return matrix

    span_start = days[0]
    for task in dated:
        first = (task.start_date - span_start).days  # type: ignore[operator]
        last = (task.end_date - span_start).days  # type: ignore[operator]
        active_tasks[first : last + 1] += 1
        for resource_id in task.assigned_ids():
            r_idx = matrix.resource_index(resource_id)
            counts[r_idx, first : last + 1] += 1
            for d_idx in range(first, last + 1):
                matrix.contributors.setdefault((r_idx, d_idx), []).append(task.id)

    logger.debug(
        "Aggregated %d tasks over %d resources and %d days", len(dated), len(ordered_ids), len(days)
    )
    return matrix
