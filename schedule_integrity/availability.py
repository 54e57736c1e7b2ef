"""
Capacity checks in two independent units.

* Concurrency cap: a resource/day pair is overallocated when its concurrent
  task count exceeds ``max_concurrent_assignments``.
* Hours capacity: an ad-hoc window is compared against
  ``ceil(duration_days / 7) * weekly_capacity_hours``; allocation percentages
  are summed alongside but never converted to hours.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from .dates import DEFAULT_CALENDAR, UTCCalendar, overlap_days, overlaps
from .demand import DemandMatrix
from .models import EngineConfig, Resource, ResourceAllocation, Task

logger = logging.getLogger(__name__)

STATUS_OVERALLOCATED = "overallocated"
STATUS_NEAR_CAPACITY = "near_capacity"
STATUS_MODERATE = "moderate"
STATUS_AVAILABLE = "available"


@dataclass(frozen=True)
class Overallocation:
    resource_id: str
    resource_name: str
    resource_type: Optional[str]
    date: date
    demand: int
    capacity: int
    task_ids: Tuple[str, ...]

    @property
    def overload(self) -> int:
        return self.demand - self.capacity

    def to_dict(self, calendar: UTCCalendar = DEFAULT_CALENDAR) -> Dict[str, object]:
        return {
            "resource_id": self.resource_id,
            "resource_name": self.resource_name,
            "resource_type": self.resource_type,
            "date": calendar.format(self.date),
            "demand": self.demand,
            "capacity": self.capacity,
            "overload": self.overload,
            "task_ids": list(self.task_ids),
        }


def find_overallocations(
    matrix: DemandMatrix,
    resources: Sequence[Resource],
    default_cap: int,
) -> List[Overallocation]:
    """Every resource/day pair over its concurrency cap, in date order.

    Ids that appear on tasks but not in ``resources`` have no declared
    capacity and are skipped.
    """
    by_id = {resource.id: resource for resource in resources}
    unknown = [resource_id for resource_id in matrix.resource_ids if resource_id not in by_id]
    if unknown:
        logger.warning("Skipping capacity check for unknown resource ids: %s", ", ".join(unknown))
    if matrix.is_empty:
        return []

    caps = np.array(
        [
            by_id[resource_id].concurrency_cap(default_cap) if resource_id in by_id else np.iinfo(np.int64).max
            for resource_id in matrix.resource_ids
        ],
        dtype=np.int64,
    )
    over = matrix.counts > caps[:, None]
    findings: List[Overallocation] = []
    # Transposed so hits come out day-major: all resources of a day, then the next day.
    for d_idx, r_idx in np.argwhere(over.T):
        resource = by_id[matrix.resource_ids[r_idx]]
        day = matrix.days[d_idx]
        findings.append(
            Overallocation(
                resource_id=resource.id,
                resource_name=resource.label,
                resource_type=resource.type,
                date=day,
                demand=int(matrix.counts[r_idx, d_idx]),
                capacity=int(caps[r_idx]),
                task_ids=tuple(matrix.tasks_on(resource.id, day)),
            )
        )
    return findings


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def classify_utilization(utilization_percent: int, config: EngineConfig) -> str:
    if utilization_percent > config.overallocated_pct:
        return STATUS_OVERALLOCATED
    if utilization_percent > config.near_capacity_pct:
        return STATUS_NEAR_CAPACITY
    if utilization_percent > config.moderate_pct:
        return STATUS_MODERATE
    return STATUS_AVAILABLE


def capacity_hours(weekly_hours: float, duration_days: int) -> float:
    return math.ceil(duration_days / 7) * weekly_hours


def utilization_percent(task_hours: float, total_capacity_hours: float) -> int:
    if total_capacity_hours <= 0:
        return 0
    return round_half_up(task_hours / total_capacity_hours * 100)


@dataclass
class AvailabilityReport:
    resource: Resource
    start_date: date
    end_date: date
    duration_days: int
    weekly_capacity_hours: float
    total_capacity_hours: float
    task_hours: float
    allocation_percent: float
    utilization_percent: int
    status: str
    is_available: bool
    can_accept_more: bool
    tasks: List[Tuple[Task, int]] = field(default_factory=list)
    allocations: List[Tuple[ResourceAllocation, int]] = field(default_factory=list)
    recommendations: List[Dict[str, object]] = field(default_factory=list)

    def to_dict(self, config: EngineConfig, calendar: UTCCalendar = DEFAULT_CALENDAR) -> Dict[str, object]:
        resource = self.resource
        conflicts: List[Dict[str, object]] = []
        for alloc, days in self.allocations:
            conflicts.append(
                {
                    "type": "allocation",
                    "id": alloc.id,
                    "project_id": alloc.project_id,
                    "start_date": calendar.format(alloc.start_date),  # type: ignore[arg-type]
                    "end_date": calendar.format(alloc.end_date),  # type: ignore[arg-type]
                    "allocation_percentage": alloc.allocation_percentage,
                    "overlap_days": days,
                }
            )
        for task, days in self.tasks:
            conflicts.append(
                {
                    "type": "task",
                    "id": task.id,
                    "name": task.name,
                    "project_id": task.project_id,
                    "start_date": calendar.format(task.start_date),  # type: ignore[arg-type]
                    "end_date": calendar.format(task.end_date),  # type: ignore[arg-type]
                    "estimated_hours": task.demand_hours(),
                    "is_critical": task.is_critical,
                    "overlap_days": days,
                }
            )
        project_ids = {alloc.project_id for alloc, _ in self.allocations if alloc.project_id}
        project_ids.update(task.project_id for task, _ in self.tasks if task.project_id)
        return {
            "resource": {
                "id": resource.id,
                "name": resource.name,
                "type": resource.type,
                "classification": resource.classification,
                "status": resource.status,
                "max_concurrent_assignments": resource.concurrency_cap(
                    config.default_max_concurrent_assignments
                ),
            },
            "date_range": {
                "start_date": calendar.format(self.start_date),
                "end_date": calendar.format(self.end_date),
                "duration_days": self.duration_days,
                "weeks": math.ceil(self.duration_days / 7),
            },
            "capacity": {
                "weekly_capacity_hours": self.weekly_capacity_hours,
                "total_capacity_hours": self.total_capacity_hours,
                "available_hours": max(0.0, self.total_capacity_hours - self.task_hours),
            },
            "demand": {
                "task_hours": self.task_hours,
                "task_count": len(self.tasks),
                "allocation_percent": self.allocation_percent,
                "allocation_count": len(self.allocations),
                "project_count": len(project_ids),
            },
            "availability": {
                "utilization_percent": self.utilization_percent,
                "status": self.status,
                "is_available": self.is_available,
                "can_accept_more": self.can_accept_more,
            },
            "conflicts": conflicts,
            "recommendations": list(self.recommendations),
        }


def _overlapping_tasks(
    resource_id: str, tasks: Iterable[Task], start: date, end: date, config: EngineConfig
) -> List[Tuple[Task, int]]:
    matched = []
    for task in tasks:
        if not task.is_assigned(resource_id) or not task.has_dates():
            continue
        if not task.is_active(config.inactive_task_statuses):
            continue
        if overlaps(task.start_date, task.end_date, start, end):  # type: ignore[arg-type]
            matched.append((task, overlap_days(task.start_date, task.end_date, start, end)))  # type: ignore[arg-type]
    return matched


def _overlapping_allocations(
    resource_id: str,
    allocations: Iterable[ResourceAllocation],
    start: date,
    end: date,
    exclude_allocation_id: Optional[str],
) -> List[Tuple[ResourceAllocation, int]]:
    matched = []
    for alloc in allocations:
        if alloc.resource_id != resource_id or not alloc.has_dates():
            continue
        if exclude_allocation_id is not None and alloc.id == exclude_allocation_id:
            continue
        if overlaps(alloc.start_date, alloc.end_date, start, end):  # type: ignore[arg-type]
            matched.append((alloc, overlap_days(alloc.start_date, alloc.end_date, start, end)))  # type: ignore[arg-type]
    return matched


def find_alternate_resources(
    resource: Resource,
    resources: Iterable[Resource],
    tasks: Sequence[Task],
    start: date,
    end: date,
    config: EngineConfig,
) -> List[Resource]:
    """Same-type resources with no active task overlapping ``[start, end]``."""
    if resource.type is None:
        return []
    alternates = []
    for candidate in resources:
        if candidate.id == resource.id or candidate.type != resource.type:
            continue
        if not candidate.is_usable(config.unavailable_resource_statuses):
            continue
        if _overlapping_tasks(candidate.id, tasks, start, end, config):
            continue
        alternates.append(candidate)
    return alternates


def _recommendations(
    report: AvailabilityReport, alternates: Sequence[Resource], config: EngineConfig
) -> List[Dict[str, object]]:
    advice: List[Dict[str, object]] = []
    shortfall = report.task_hours - report.total_capacity_hours
    if report.status == STATUS_OVERALLOCATED:
        advice.append(
            {
                "type": "reduce_load",
                "severity": "high",
                "message": (
                    f"{report.resource.label} is over capacity by {shortfall:g} hours "
                    f"({report.utilization_percent}% utilized); delay or reassign overlapping tasks"
                ),
            }
        )
    elif report.status == STATUS_NEAR_CAPACITY:
        advice.append(
            {
                "type": "near_capacity",
                "severity": "medium",
                "message": (
                    f"{report.resource.label} is at {report.utilization_percent}% of capacity; "
                    "avoid adding work in this window"
                ),
            }
        )
    if report.allocation_percent >= 100:
        advice.append(
            {
                "type": "allocation_exceeded",
                "severity": "high" if report.allocation_percent > 100 else "medium",
                "message": (
                    f"Overlapping allocations total {report.allocation_percent:g}% "
                    f"across {len(report.allocations)} allocation(s)"
                ),
            }
        )
    if not report.is_available or not report.can_accept_more:
        if alternates:
            advice.append(
                {
                    "type": "alternate_resources",
                    "severity": "low",
                    "message": f"{len(alternates)} {report.resource.type or 'matching'} resource(s) are free in this window",
                    "resources": [{"id": alt.id, "name": alt.name} for alt in alternates],
                }
            )
    elif report.status == STATUS_AVAILABLE:
        advice.append(
            {
                "type": "available",
                "severity": "info",
                "message": f"{report.resource.label} has capacity for additional work in this window",
            }
        )
    return advice


def assess_availability(
    resource: Resource,
    start: date,
    end: date,
    tasks: Sequence[Task],
    allocations: Sequence[ResourceAllocation],
    config: EngineConfig,
    calendar: UTCCalendar = DEFAULT_CALENDAR,
    exclude_allocation_id: Optional[str] = None,
    alternates: Sequence[Resource] = (),
) -> AvailabilityReport:
    duration_days = calendar.days_between(start, end)
    weekly_hours = resource.weekly_hours(config.default_weekly_capacity_hours)
    total_capacity = capacity_hours(weekly_hours, duration_days)

    matched_tasks = _overlapping_tasks(resource.id, tasks, start, end, config)
    matched_allocations = _overlapping_allocations(
        resource.id, allocations, start, end, exclude_allocation_id
    )
    task_hours = float(sum(task.demand_hours() for task, _ in matched_tasks))
    allocation_percent = float(sum(alloc.allocation_percentage for alloc, _ in matched_allocations))
    utilization = utilization_percent(task_hours, total_capacity)

    report = AvailabilityReport(
        resource=resource,
        start_date=start,
        end_date=end,
        duration_days=duration_days,
        weekly_capacity_hours=weekly_hours,
        total_capacity_hours=total_capacity,
        task_hours=task_hours,
        allocation_percent=allocation_percent,
        utilization_percent=utilization,
        status=classify_utilization(utilization, config),
        is_available=allocation_percent < 100 and utilization < 100,
        can_accept_more=utilization < config.accept_more_pct,
        tasks=matched_tasks,
        allocations=matched_allocations,
    )
    report.recommendations = _recommendations(report, alternates, config)
    return report


def overallocated_resource_counts(
    overallocations: Iterable[Overallocation], calendar: UTCCalendar = DEFAULT_CALENDAR
) -> Mapping[str, int]:
    counts: Dict[str, int] = {}
    for item in overallocations:
        key = calendar.format(item.date)
        counts[key] = counts.get(key, 0) + 1
    return counts
