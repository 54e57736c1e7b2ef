"""Shared fixtures for the schedule integrity test suite."""

import json
from datetime import date

import pytest

from schedule_integrity.dates import FixedCalendar
from schedule_integrity.models import Dependency, EngineConfig, Resource, Task
from schedule_integrity.store import InMemoryEntityStore


@pytest.fixture
def calendar():
    """Calendar pinned to 2025-01-20 so analysis_date is stable."""
    return FixedCalendar(date(2025, 1, 20))


@pytest.fixture
def config():
    return EngineConfig()


@pytest.fixture
def make_task():
    """Factory for Task objects with sensible defaults."""

    def _make(task_id, start=None, end=None, **overrides):
        predecessors = overrides.pop("predecessors", ())
        values = {
            "id": task_id,
            "project_id": "P1",
            "name": task_id,
            "start_date": start,
            "end_date": end,
            "predecessors": tuple(
                dep if isinstance(dep, Dependency) else Dependency(dep) for dep in predecessors
            ),
        }
        values.update(overrides)
        return Task(**values)

    return _make


@pytest.fixture
def scenario_records():
    """Two overlapping non-critical tasks on a resource limited to one assignment."""
    return {
        "projects": [{"id": "P1", "name": "Warehouse"}],
        "tasks": [
            {
                "id": "T1",
                "project_id": "P1",
                "name": "Pour footings",
                "start_date": "2025-01-01",
                "end_date": "2025-01-10",
                "assigned_resources": ["R1"],
                "is_critical": False,
                "estimated_hours": 40,
            },
            {
                "id": "T2",
                "project_id": "P1",
                "name": "Erect steel",
                "start_date": "2025-01-05",
                "end_date": "2025-01-15",
                "assigned_resources": ["R1"],
                "is_critical": False,
                "estimated_hours": 30,
            },
        ],
        "resources": [
            {"id": "R1", "name": "Crew A", "type": "crew", "max_concurrent_assignments": 1},
        ],
        "allocations": [
            {
                "id": "A1",
                "resource_id": "R1",
                "project_id": "P1",
                "start_date": "2025-01-01",
                "end_date": "2025-01-31",
                "allocation_percentage": 60,
            }
        ],
    }


@pytest.fixture
def scenario_store(scenario_records, calendar):
    return InMemoryEntityStore.from_records(calendar=calendar, **scenario_records)


@pytest.fixture
def snapshot_dir(tmp_path, scenario_records):
    """The scenario written out as a JSON snapshot directory."""
    for name in ("tasks", "resources", "allocations", "projects"):
        (tmp_path / f"{name}.json").write_text(json.dumps(scenario_records[name]))
    return tmp_path


@pytest.fixture
def crew():
    return Resource(id="R1", name="Crew A", type="crew", max_concurrent_assignments=1)
