"""Engine facade.

Each entry point reads one snapshot from an ``EntityStore``, computes the full
result in memory and only trims it to display limits at the very end.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Mapping, Sequence, Union

import pandas as pd

from .availability import Overallocation, assess_availability, find_alternate_resources, find_overallocations
from .dates import DEFAULT_CALENDAR, UTCCalendar
from .demand import DemandMatrix, aggregate_demand
from .errors import InputError, NotFoundError
from .io_utils import parse_task
from .leveling import LevelingEngine, LevelingResult
from .metrics import summarize_demand, timeline_frame, timeline_records
from .models import EngineConfig, Resource, Task
from .store import EntityStore
from . import validation

logger = logging.getLogger(__name__)

TaskLike = Union[Task, Mapping[str, object]]


def _as_task(value: TaskLike, calendar: UTCCalendar) -> Task:
    if isinstance(value, Task):
        return value
    if not isinstance(value, Mapping):
        raise InputError("task", f"expected a task record, got {type(value).__name__}")
    try:
        return parse_task(value, calendar)
    except InputError:
        raise
    except ValueError as exc:
        raise InputError("task", str(exc)) from exc


def _require_str(request: Mapping[str, object], key: str) -> str:
    value = request.get(key) if isinstance(request, Mapping) else None
    if value is None or (isinstance(value, str) and not value.strip()):
        raise InputError(key, "is required")
    if not isinstance(value, (str, int)) or isinstance(value, bool):
        raise InputError(key, f"expected an identifier, got {value!r}")
    return str(value).strip()


def _require_date(request: Mapping[str, object], key: str, calendar: UTCCalendar) -> date:
    value = request.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise InputError(key, "is required")
    return calendar.parse_date(value, key)


def _find_resource(resources: Sequence[Resource], resource_id: str) -> Resource:
    for resource in resources:
        if resource.id == resource_id:
            return resource
    raise NotFoundError("resource", resource_id)


def _require_project(store: EntityStore, project_id: str) -> None:
    if not any(project.id == project_id for project in store.list_projects()):
        raise NotFoundError("project", project_id)


def validate_dates(task: TaskLike, calendar: UTCCalendar = DEFAULT_CALENDAR) -> Dict[str, object]:
    return validation.validate_dates(_as_task(task, calendar)).to_dict()


def detect_cycles(tasks: Sequence[TaskLike], calendar: UTCCalendar = DEFAULT_CALENDAR) -> Dict[str, object]:
    return validation.detect_cycles([_as_task(task, calendar) for task in tasks]).to_dict()


def validate_schedule(
    store: EntityStore,
    request: Mapping[str, object],
    config: EngineConfig = EngineConfig(),
    calendar: UTCCalendar = DEFAULT_CALENDAR,
) -> Dict[str, object]:
    project_id = _require_str(request, "project_id")
    snapshot = store.snapshot()
    _require_project(snapshot, project_id)
    tasks = snapshot.filter_tasks(project_id=project_id)
    report = validation.validate_schedule(tasks)
    result = report.to_dict()
    result["project_id"] = project_id
    result["task_count"] = len(tasks)
    result["analysis_date"] = calendar.format(calendar.today())
    logger.info(
        "Validated project %s: %d task(s), %s", project_id, len(tasks), "valid" if report.valid else "invalid"
    )
    return result


def check_resource_availability(
    store: EntityStore,
    request: Mapping[str, object],
    config: EngineConfig = EngineConfig(),
    calendar: UTCCalendar = DEFAULT_CALENDAR,
) -> Dict[str, object]:
    if not isinstance(request, Mapping):
        raise InputError("request", "expected a JSON object")
    resource_id = _require_str(request, "resource_id")
    start = _require_date(request, "start_date", calendar)
    end = _require_date(request, "end_date", calendar)
    if start > end:
        raise InputError(
            "end_date", f"start_date {calendar.format(start)} is after end_date {calendar.format(end)}"
        )
    exclude = request.get("exclude_allocation_id")
    exclude_id = str(exclude) if exclude not in (None, "") else None

    snapshot = store.snapshot()
    resources = snapshot.list_resources()
    resource = _find_resource(resources, resource_id)
    tasks = snapshot.filter_tasks(resource_id=resource_id)
    allocations = snapshot.filter_allocations(resource_id=resource_id)
    alternates = find_alternate_resources(resource, resources, snapshot.filter_tasks(), start, end, config)

    report = assess_availability(
        resource,
        start,
        end,
        tasks,
        allocations,
        config,
        calendar=calendar,
        exclude_allocation_id=exclude_id,
        alternates=alternates,
    )
    logger.info(
        "Availability for %s %s..%s: %d%% (%s)",
        resource_id,
        calendar.format(start),
        calendar.format(end),
        report.utilization_percent,
        report.status,
    )
    result = report.to_dict(config, calendar)
    result["analysis_date"] = calendar.format(calendar.today())
    return result


@dataclass
class LevelingAnalysis:
    """Complete, untruncated leveling output for one project."""
    matrix: DemandMatrix
    overallocations: List[Overallocation]
    leveling: LevelingResult
    metrics: Dict[str, object]
    timeline: pd.DataFrame


def analyze_leveling(
    tasks: Sequence[Task],
    resources: Sequence[Resource],
    config: EngineConfig = EngineConfig(),
    calendar: UTCCalendar = DEFAULT_CALENDAR,
) -> LevelingAnalysis:
    matrix = aggregate_demand(
        tasks,
        resource_ids=[resource.id for resource in resources],
        inactive_statuses=config.inactive_task_statuses,
        calendar=calendar,
    )
    overallocations = find_overallocations(matrix, resources, config.default_max_concurrent_assignments)
    active = [task for task in tasks if task.is_active(config.inactive_task_statuses)]
    leveling = LevelingEngine(overallocations, active, resources, matrix, config).run()
    return LevelingAnalysis(
        matrix=matrix,
        overallocations=overallocations,
        leveling=leveling,
        metrics=summarize_demand(matrix, overallocations, config),
        timeline=timeline_frame(matrix, overallocations),
    )


def rank_overallocations(overallocations: Sequence[Overallocation]) -> List[Overallocation]:
    """Worst first: largest overload, then earliest date, then resource id."""
    return sorted(overallocations, key=lambda item: (-item.overload, item.date, item.resource_id))


def present_leveling(
    analysis: LevelingAnalysis,
    config: EngineConfig = EngineConfig(),
    calendar: UTCCalendar = DEFAULT_CALENDAR,
) -> Dict[str, object]:
    overallocations = []
    for item in rank_overallocations(analysis.overallocations)[: config.overallocation_display_limit]:
        entry = item.to_dict(calendar)
        entry["unresolved_overload"] = analysis.leveling.unresolved_for(item)
        overallocations.append(entry)
    suggestions = [
        suggestion.to_dict(calendar)
        for suggestion in analysis.leveling.suggestions[: config.suggestion_display_limit]
    ]
    metrics = dict(analysis.metrics)
    metrics["unresolved_overload"] = analysis.leveling.total_unresolved
    return {
        "metrics": metrics,
        "overallocations": overallocations,
        "suggestions": suggestions,
        "timeline": timeline_records(analysis.timeline),
        "totals": {
            "overallocations": len(analysis.overallocations),
            "suggestions": len(analysis.leveling.suggestions),
        },
        "analysis_date": calendar.format(calendar.today()),
    }


def level_resources(
    store: EntityStore,
    request: Mapping[str, object],
    config: EngineConfig = EngineConfig(),
    calendar: UTCCalendar = DEFAULT_CALENDAR,
) -> Dict[str, object]:
    project_id = _require_str(request, "project_id")
    snapshot = store.snapshot()
    _require_project(snapshot, project_id)
    tasks = snapshot.filter_tasks(project_id=project_id)
    resources = snapshot.list_resources()
    analysis = analyze_leveling(tasks, resources, config, calendar)
    logger.info(
        "Leveling project %s: %d overallocation(s), %d suggestion(s)",
        project_id,
        len(analysis.overallocations),
        len(analysis.leveling.suggestions),
    )
    result = present_leveling(analysis, config, calendar)
    result["project_id"] = project_id
    return result
