"""
Dependency graph and date validation.

Findings are plain return values: every date violation and every cycle found
in the snapshot is reported, never raised and never truncated. The graph is
rebuilt from the task list on each call.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Dict, Iterable, List, Mapping, Sequence, Tuple

from .dates import UTCCalendar
from .models import Task

logger = logging.getLogger(__name__)

UNVISITED = 0
IN_PROGRESS = 1
DONE = 2


@dataclass(frozen=True)
class Finding:
    """One validation problem attached to a task."""
    task_id: str
    type: str  # "missing_dates", "invalid_date", "date_order", "baseline_order", ...
    message: str

    def to_dict(self) -> Dict[str, object]:
        return {"task_id": self.task_id, "type": self.type, "message": self.message}


@dataclass(frozen=True)
class CycleFinding:
    cycle_path: Tuple[str, ...]
    task_names: Tuple[str, ...]
    message: str

    def to_dict(self) -> Dict[str, object]:
        return {
            "type": "circular_dependency",
            "cycle_path": list(self.cycle_path),
            "task_names": list(self.task_names),
            "message": self.message,
        }


@dataclass
class ValidationResult:
    errors: List[Finding] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, object]:
        return {"valid": self.valid, "errors": [error.to_dict() for error in self.errors]}


@dataclass
class CycleReport:
    errors: List[CycleFinding] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, object]:
        return {"valid": self.valid, "errors": [error.to_dict() for error in self.errors]}


@dataclass
class ScheduleReport:
    date_errors: List[Finding] = field(default_factory=list)
    dependency_errors: List[Finding] = field(default_factory=list)
    cycles: CycleReport = field(default_factory=CycleReport)

    @property
    def valid(self) -> bool:
        return not self.date_errors and not self.dependency_errors and self.cycles.valid

    def to_dict(self) -> Dict[str, object]:
        return {
            "valid": self.valid,
            "date_errors": [error.to_dict() for error in self.date_errors],
            "dependency_errors": [error.to_dict() for error in self.dependency_errors],
            "cycle_errors": [error.to_dict() for error in self.cycles.errors],
        }


def validate_dates(task: Task, require_dates: bool = True) -> ValidationResult:
    result = ValidationResult()
    primary_invalid = [name for name in ("start_date", "end_date") if name in task.invalid_fields]
    if primary_invalid:
        result.errors.append(
            Finding(
                task.id,
                "invalid_date",
                f"Task has malformed {' and '.join(primary_invalid)} (expected YYYY-MM-DD)",
            )
        )
    elif task.start_date is None or task.end_date is None:
        if require_dates:
            result.errors.append(
                Finding(task.id, "missing_dates", "Task must have start and end dates")
            )
    elif task.start_date > task.end_date:
        result.errors.append(
            Finding(
                task.id,
                "date_order",
                f"Start date ({UTCCalendar.format(task.start_date)}) cannot be after "
                f"end date ({UTCCalendar.format(task.end_date)})",
            )
        )

    baseline_invalid = [
        name for name in ("baseline_start", "baseline_end") if name in task.invalid_fields
    ]
    if baseline_invalid:
        result.errors.append(
            Finding(
                task.id,
                "invalid_baseline",
                f"Task has malformed {' and '.join(baseline_invalid)} (expected YYYY-MM-DD)",
            )
        )
    elif task.baseline_start and task.baseline_end and task.baseline_start > task.baseline_end:
        result.errors.append(
            Finding(task.id, "baseline_order", "Baseline start cannot be after baseline end")
        )
    return result


def validate_all_dates(tasks: Iterable[Task], require_dates: bool = True) -> ValidationResult:
    result = ValidationResult()
    for task in tasks:
        result.errors.extend(validate_dates(task, require_dates).errors)
    return result


def _index_tasks(tasks: Iterable[Task]) -> Dict[str, Task]:
    by_id: Dict[str, Task] = {}
    for task in tasks:
        by_id.setdefault(task.id, task)
    return by_id


def build_predecessor_graph(tasks: Sequence[Task]) -> Dict[str, List[str]]:
    """Map each task id to its predecessor ids within the same project.

    Links to tasks absent from the snapshot or owned by another project are
    dropped; they are reported by ``validate_dependencies`` instead.
    """
    by_id = _index_tasks(tasks)
    graph: Dict[str, List[str]] = {}
    for task_id, task in by_id.items():
        edges: List[str] = []
        for predecessor_id in task.predecessor_ids():
            predecessor = by_id.get(predecessor_id)
            if predecessor is None or predecessor.project_id != task.project_id:
                continue
            if predecessor_id not in edges:
                edges.append(predecessor_id)
        graph[task_id] = edges
    return graph


def detect_cycles(tasks: Sequence[Task]) -> CycleReport:
    """Report every cycle closed by a back edge of an iterative DFS."""
    graph = build_predecessor_graph(tasks)
    names = {task_id: task.label for task_id, task in _index_tasks(tasks).items()}
    state: Dict[str, int] = {}
    report = CycleReport()

    for root in graph:
        if state.get(root, UNVISITED) != UNVISITED:
            continue
        state[root] = IN_PROGRESS
        path: List[str] = [root]
        position: Dict[str, int] = {root: 0}
        stack = [(root, iter(graph[root]))]
        while stack:
            node, successors = stack[-1]
            descended = False
            for nxt in successors:
                nxt_state = state.get(nxt, UNVISITED)
                if nxt_state == IN_PROGRESS:
                    report.errors.append(_cycle_finding(path[position[nxt]:], names))
                elif nxt_state == UNVISITED:
                    state[nxt] = IN_PROGRESS
                    position[nxt] = len(path)
                    path.append(nxt)
                    stack.append((nxt, iter(graph[nxt])))
                    descended = True
                    break
            if not descended:
                stack.pop()
                path.pop()
                position.pop(node, None)
                state[node] = DONE

    if report.errors:
        logger.info("Detected %d dependency cycle(s) across %d tasks", len(report.errors), len(graph))
    return report


def _cycle_finding(cycle: List[str], names: Mapping[str, str]) -> CycleFinding:
    labels = tuple(names.get(task_id, task_id) for task_id in cycle)
    rendered = " → ".join(labels + (labels[0],))
    return CycleFinding(
        cycle_path=tuple(cycle),
        task_names=labels,
        message=f"Circular dependency detected: {rendered}",
    )


def validate_dependencies(task: Task, tasks_by_id: Mapping[str, Task]) -> List[Finding]:
    """Check each predecessor link of ``task``.

    Only finish-to-start ordering is enforced; SS, FF and SF links are checked
    for existence and project membership only.
    """
    findings: List[Finding] = []
    for dep in task.predecessors:
        predecessor = tasks_by_id.get(dep.predecessor_id)
        if predecessor is None:
            findings.append(
                Finding(task.id, "missing_predecessor", f"Predecessor task {dep.predecessor_id} not found")
            )
            continue
        if predecessor.project_id != task.project_id:
            findings.append(
                Finding(
                    task.id,
                    "cross_project",
                    f"Predecessor {predecessor.label} is from a different project",
                )
            )
            continue
        if dep.type != "FS" or predecessor.end_date is None or task.start_date is None:
            continue
        earliest_start = predecessor.end_date + timedelta(days=dep.lag_days)
        if earliest_start > task.start_date:
            lag_note = f" plus {dep.lag_days} day(s) lag" if dep.lag_days else ""
            findings.append(
                Finding(
                    task.id,
                    "finish_to_start",
                    f'Predecessor "{predecessor.label}" finishes '
                    f"({UTCCalendar.format(predecessor.end_date)}){lag_note} after this task "
                    f"starts ({UTCCalendar.format(task.start_date)})",
                )
            )
    return findings


def validate_schedule(tasks: Sequence[Task], require_dates: bool = True) -> ScheduleReport:
    by_id = _index_tasks(tasks)
    report = ScheduleReport(
        date_errors=validate_all_dates(tasks, require_dates).errors,
        cycles=detect_cycles(tasks),
    )
    for task in tasks:
        report.dependency_errors.extend(validate_dependencies(task, by_id))
    logger.debug(
        "Schedule validation: %d date, %d dependency, %d cycle finding(s)",
        len(report.date_errors),
        len(report.dependency_errors),
        len(report.cycles.errors),
    )
    return report
