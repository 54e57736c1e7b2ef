from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Iterable, Optional, Tuple


DependencyType = str

DEPENDENCY_TYPES: Tuple[DependencyType, ...] = ("FS", "SS", "FF", "SF")
DEFAULT_MAX_CONCURRENT_ASSIGNMENTS = 3
DEFAULT_WEEKLY_CAPACITY_HOURS = 40.0


@dataclass(frozen=True)
class Dependency:
    """One predecessor link of a task."""

    predecessor_id: str
    type: DependencyType = "FS"
    lag_days: int = 0


@dataclass(frozen=True)
class Task:
    """Snapshot of a task record with parsed calendar dates."""

    id: str
    project_id: Optional[str]
    name: str
    start_date: Optional[date]
    end_date: Optional[date]
    status: Optional[str] = None
    is_critical: bool = False
    predecessors: Tuple[Dependency, ...] = ()
    assigned_resources: Tuple[str, ...] = ()
    assigned_equipment: Tuple[str, ...] = ()
    progress_percent: Optional[float] = None
    estimated_hours: Optional[float] = None
    planned_shop_hours: Optional[float] = None
    planned_field_hours: Optional[float] = None
    baseline_start: Optional[date] = None
    baseline_end: Optional[date] = None
    # Date fields present in the record but not parseable as ISO dates.
    invalid_fields: Tuple[str, ...] = ()

    @property
    def label(self) -> str:
        return self.name or self.id

    def has_dates(self) -> bool:
        return self.start_date is not None and self.end_date is not None

    def assigned_ids(self) -> Tuple[str, ...]:
        seen = []
        for resource_id in self.assigned_resources + self.assigned_equipment:
            if resource_id not in seen:
                seen.append(resource_id)
        return tuple(seen)

    def is_assigned(self, resource_id: str) -> bool:
        return resource_id in self.assigned_resources or resource_id in self.assigned_equipment

    def is_active(self, inactive_statuses: Iterable[str]) -> bool:
        if self.status is None:
            return True
        return self.status.lower() not in {status.lower() for status in inactive_statuses}

    def predecessor_ids(self) -> Tuple[str, ...]:
        return tuple(dep.predecessor_id for dep in self.predecessors)

    def demand_hours(self) -> float:
        """First non-zero of estimated, shop, then field hours."""
        for value in (self.estimated_hours, self.planned_shop_hours, self.planned_field_hours):
            if value:
                return float(value)
        return 0.0


@dataclass(frozen=True)
class Resource:
    id: str
    name: str
    type: Optional[str] = None
    weekly_capacity_hours: Optional[float] = None
    max_concurrent_assignments: Optional[int] = None
    classification: Optional[str] = None
    status: Optional[str] = None

    @property
    def label(self) -> str:
        return self.name or self.id

    def concurrency_cap(self, default: int = DEFAULT_MAX_CONCURRENT_ASSIGNMENTS) -> int:
        if self.max_concurrent_assignments is None:
            return default
        return int(self.max_concurrent_assignments)

    def weekly_hours(self, default: float = DEFAULT_WEEKLY_CAPACITY_HOURS) -> float:
        if self.weekly_capacity_hours is None:
            return default
        return float(self.weekly_capacity_hours)

    def is_usable(self, unavailable_statuses: Iterable[str]) -> bool:
        if self.status is None:
            return True
        return self.status.lower() not in {status.lower() for status in unavailable_statuses}


@dataclass(frozen=True)
class ResourceAllocation:
    id: Optional[str]
    resource_id: str
    project_id: Optional[str]
    start_date: Optional[date]
    end_date: Optional[date]
    allocation_percentage: float = 0.0

    def has_dates(self) -> bool:
        return self.start_date is not None and self.end_date is not None


@dataclass(frozen=True)
class Project:
    id: str
    name: str = ""
    status: Optional[str] = None


@dataclass(frozen=True)
class EngineConfig:
    default_max_concurrent_assignments: int = DEFAULT_MAX_CONCURRENT_ASSIGNMENTS
    default_weekly_capacity_hours: float = DEFAULT_WEEKLY_CAPACITY_HOURS
    overallocation_display_limit: int = 20
    suggestion_display_limit: int = 10
    inactive_task_statuses: Tuple[str, ...] = ("completed", "cancelled")
    unavailable_resource_statuses: Tuple[str, ...] = ("inactive", "unavailable", "retired")
    overallocated_pct: int = 100
    near_capacity_pct: int = 80
    moderate_pct: int = 50
    accept_more_pct: int = 90
    uneven_demand_ratio: float = 0.5
    logging_level: str = "INFO"
