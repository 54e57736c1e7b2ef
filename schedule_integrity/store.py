"""Entity store collaborators.

The engine only ever reads a point-in-time snapshot through the small
``EntityStore`` protocol below. ``InMemoryEntityStore`` serves tests and
embedding callers; ``JsonEntityStore`` reads a directory of JSON exports.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Callable, Iterable, List, Mapping, Optional, Protocol, TypeVar

from .dates import DEFAULT_CALENDAR, UTCCalendar
from .errors import CollaboratorError
from .io_utils import load_records, parse_allocation, parse_project, parse_resource, parse_task
from .models import Project, Resource, ResourceAllocation, Task

logger = logging.getLogger(__name__)

T = TypeVar("T")

TASKS_FILE = "tasks.json"
RESOURCES_FILE = "resources.json"
ALLOCATIONS_FILE = "allocations.json"
PROJECTS_FILE = "projects.json"


class EntityStore(Protocol):
    def list_projects(self) -> List[Project]:
        ...

    def filter_tasks(
        self, project_id: Optional[str] = None, resource_id: Optional[str] = None
    ) -> List[Task]:
        ...

    def list_resources(self) -> List[Resource]:
        ...

    def filter_allocations(
        self, resource_id: Optional[str] = None, project_id: Optional[str] = None
    ) -> List[ResourceAllocation]:
        ...

    def snapshot(self) -> InMemoryEntityStore:
        """Read every collection once; the result never changes."""
        ...


def _select_tasks(
    tasks: Iterable[Task], project_id: Optional[str], resource_id: Optional[str]
) -> List[Task]:
    selected = []
    for task in tasks:
        if project_id is not None and task.project_id != project_id:
            continue
        if resource_id is not None and not task.is_assigned(resource_id):
            continue
        selected.append(task)
    return selected


def _select_allocations(
    allocations: Iterable[ResourceAllocation],
    resource_id: Optional[str],
    project_id: Optional[str],
) -> List[ResourceAllocation]:
    return [
        alloc
        for alloc in allocations
        if (resource_id is None or alloc.resource_id == resource_id)
        and (project_id is None or alloc.project_id == project_id)
    ]


class InMemoryEntityStore:
    """Store over records already held in memory."""

    def __init__(
        self,
        tasks: Iterable[Task] = (),
        resources: Iterable[Resource] = (),
        allocations: Iterable[ResourceAllocation] = (),
        projects: Optional[Iterable[Project]] = None,
    ) -> None:
        self._tasks = list(tasks)
        self._resources = list(resources)
        self._allocations = list(allocations)
        self._projects = list(projects) if projects is not None else None

    @classmethod
    def from_records(
        cls,
        tasks: Iterable[Mapping[str, object]] = (),
        resources: Iterable[Mapping[str, object]] = (),
        allocations: Iterable[Mapping[str, object]] = (),
        projects: Optional[Iterable[Mapping[str, object]]] = None,
        calendar: UTCCalendar = DEFAULT_CALENDAR,
    ) -> "InMemoryEntityStore":
        return cls(
            tasks=[parse_task(record, calendar) for record in tasks],
            resources=[parse_resource(record) for record in resources],
            allocations=[parse_allocation(record, calendar) for record in allocations],
            projects=[parse_project(record) for record in projects] if projects is not None else None,
        )

    def list_projects(self) -> List[Project]:
        if self._projects is not None:
            return list(self._projects)
        return _projects_from_tasks(self._tasks)

    def filter_tasks(
        self, project_id: Optional[str] = None, resource_id: Optional[str] = None
    ) -> List[Task]:
        return _select_tasks(self._tasks, project_id, resource_id)

    def list_resources(self) -> List[Resource]:
        return list(self._resources)

    def filter_allocations(
        self, resource_id: Optional[str] = None, project_id: Optional[str] = None
    ) -> List[ResourceAllocation]:
        return _select_allocations(self._allocations, resource_id, project_id)

    def snapshot(self) -> InMemoryEntityStore:
        return self


def _projects_from_tasks(tasks: Iterable[Task]) -> List[Project]:
    # Without a project export, a project exists when any task references it.
    seen: List[str] = []
    for task in tasks:
        if task.project_id is not None and task.project_id not in seen:
            seen.append(task.project_id)
    return [Project(id=project_id) for project_id in seen]


class JsonEntityStore:
    """Store backed by a directory of JSON array exports.

    Every call re-reads the files, so each engine invocation sees a fresh
    snapshot. Missing ``allocations.json`` and ``projects.json`` are treated
    as empty and "derive from tasks" respectively.
    """

    def __init__(self, directory: str | Path, calendar: UTCCalendar = DEFAULT_CALENDAR) -> None:
        self.directory = Path(directory)
        self.calendar = calendar

    def _read(
        self, filename: str, parse: Callable[[Mapping[str, object]], T], required: bool = True
    ) -> Optional[List[T]]:
        path = self.directory / filename
        if not path.exists():
            if required:
                raise CollaboratorError(filename, "file not found", str(path))
            return None
        try:
            records = load_records(path)
            parsed = [parse(record) for record in records]
        except json.JSONDecodeError as exc:
            raise CollaboratorError(filename, f"invalid JSON: {exc}", str(path)) from exc
        except (OSError, ValueError) as exc:
            raise CollaboratorError(filename, str(exc), str(path)) from exc
        logger.debug("Loaded %d records from %s", len(parsed), path)
        return parsed

    def _tasks(self) -> List[Task]:
        return self._read(TASKS_FILE, lambda record: parse_task(record, self.calendar)) or []

    def list_projects(self) -> List[Project]:
        projects = self._read(PROJECTS_FILE, parse_project, required=False)
        if projects is None:
            return _projects_from_tasks(self._tasks())
        return projects

    def filter_tasks(
        self, project_id: Optional[str] = None, resource_id: Optional[str] = None
    ) -> List[Task]:
        return _select_tasks(self._tasks(), project_id, resource_id)

    def list_resources(self) -> List[Resource]:
        return self._read(RESOURCES_FILE, parse_resource) or []

    def filter_allocations(
        self, resource_id: Optional[str] = None, project_id: Optional[str] = None
    ) -> List[ResourceAllocation]:
        allocations = self._read(
            ALLOCATIONS_FILE,
            lambda record: parse_allocation(record, self.calendar),
            required=False,
        )
        return _select_allocations(allocations or [], resource_id, project_id)

    def snapshot(self) -> InMemoryEntityStore:
        """Read each export exactly once into an in-memory store."""
        tasks = self._tasks()
        return InMemoryEntityStore(
            tasks=tasks,
            resources=self.list_resources(),
            allocations=self._read(
                ALLOCATIONS_FILE,
                lambda record: parse_allocation(record, self.calendar),
                required=False,
            )
            or [],
            projects=self._read(PROJECTS_FILE, parse_project, required=False),
        )
