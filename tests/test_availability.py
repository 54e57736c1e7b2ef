from datetime import date

import pytest

from schedule_integrity.availability import (
    STATUS_AVAILABLE,
    STATUS_MODERATE,
    STATUS_NEAR_CAPACITY,
    STATUS_OVERALLOCATED,
    assess_availability,
    capacity_hours,
    classify_utilization,
    find_alternate_resources,
    find_overallocations,
    round_half_up,
    utilization_percent,
)
from schedule_integrity.demand import aggregate_demand
from schedule_integrity.models import EngineConfig, Resource, ResourceAllocation


@pytest.fixture
def overlapping_tasks(make_task):
    return [
        make_task("T1", date(2025, 1, 1), date(2025, 1, 10), assigned_resources=("R1",), estimated_hours=40),
        make_task("T2", date(2025, 1, 5), date(2025, 1, 15), assigned_resources=("R1",), estimated_hours=30),
    ]


class TestFindOverallocations:

    def test_cap_one_overlap_gives_six_days(self, overlapping_tasks, crew):
        matrix = aggregate_demand(overlapping_tasks, resource_ids=[crew.id])
        found = find_overallocations(matrix, [crew], default_cap=3)
        assert [item.date for item in found] == [date(2025, 1, d) for d in range(5, 11)]
        assert {item.overload for item in found} == {1}
        assert all(item.task_ids == ("T1", "T2") for item in found)
        assert found[0].to_dict()["date"] == "2025-01-05"

    def test_default_cap_applies_when_unset(self, make_task):
        tasks = [
            make_task(f"T{i}", date(2025, 1, 1), date(2025, 1, 1), assigned_resources=("R1",))
            for i in range(4)
        ]
        resource = Resource(id="R1", name="Crew A")
        found = find_overallocations(aggregate_demand(tasks), [resource], default_cap=3)
        assert len(found) == 1
        assert found[0].capacity == 3
        assert found[0].overload == 1

    def test_at_cap_is_not_overallocated(self, overlapping_tasks):
        resource = Resource(id="R1", name="Crew A", max_concurrent_assignments=2)
        assert find_overallocations(aggregate_demand(overlapping_tasks), [resource], default_cap=3) == []

    def test_unknown_resource_skipped(self, make_task):
        tasks = [
            make_task("T1", date(2025, 1, 1), date(2025, 1, 1), assigned_resources=("ghost",)),
            make_task("T2", date(2025, 1, 1), date(2025, 1, 1), assigned_resources=("ghost",)),
        ]
        assert find_overallocations(aggregate_demand(tasks), [], default_cap=1) == []

    def test_day_major_order(self, make_task):
        tasks = [
            make_task("T1", date(2025, 1, 1), date(2025, 1, 2), assigned_resources=("R1", "R2")),
            make_task("T2", date(2025, 1, 1), date(2025, 1, 2), assigned_resources=("R1", "R2")),
        ]
        resources = [
            Resource(id="R1", name="A", max_concurrent_assignments=1),
            Resource(id="R2", name="B", max_concurrent_assignments=1),
        ]
        found = find_overallocations(aggregate_demand(tasks), resources, default_cap=3)
        assert [(item.date.day, item.resource_id) for item in found] == [
            (1, "R1"),
            (1, "R2"),
            (2, "R1"),
            (2, "R2"),
        ]


class TestUtilizationMath:

    def test_round_half_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(87.5) == 88
        assert round_half_up(87.49) == 87

    def test_capacity_rounds_weeks_up(self):
        assert capacity_hours(40, 1) == 40
        assert capacity_hours(40, 7) == 40
        assert capacity_hours(40, 8) == 80
        assert capacity_hours(40, 0) == 0

    def test_zero_capacity_means_zero_utilization(self):
        assert utilization_percent(50, 0) == 0

    @pytest.mark.parametrize(
        "percent,status",
        [
            (101, STATUS_OVERALLOCATED),
            (100, STATUS_NEAR_CAPACITY),
            (81, STATUS_NEAR_CAPACITY),
            (80, STATUS_MODERATE),
            (51, STATUS_MODERATE),
            (50, STATUS_AVAILABLE),
            (0, STATUS_AVAILABLE),
        ],
    )
    def test_status_thresholds(self, percent, status):
        assert classify_utilization(percent, EngineConfig()) == status

    def test_more_weekly_hours_never_raises_utilization(self, overlapping_tasks):
        config = EngineConfig()
        previous = None
        for weekly in (10, 20, 40, 60, 80, 200):
            resource = Resource(id="R1", name="Crew A", weekly_capacity_hours=weekly)
            report = assess_availability(
                resource, date(2025, 1, 1), date(2025, 1, 14), overlapping_tasks, [], config
            )
            if previous is not None:
                assert report.utilization_percent <= previous
            previous = report.utilization_percent


class TestAssessAvailability:

    def test_two_week_window(self, overlapping_tasks, crew):
        allocations = [
            ResourceAllocation("A1", "R1", "P1", date(2025, 1, 1), date(2025, 1, 31), 60),
        ]
        report = assess_availability(
            crew, date(2025, 1, 1), date(2025, 1, 14), overlapping_tasks, allocations, EngineConfig()
        )
        assert report.duration_days == 13
        assert report.total_capacity_hours == 80
        assert report.task_hours == 70
        assert report.utilization_percent == 88
        assert report.status == STATUS_NEAR_CAPACITY
        assert report.is_available is True
        assert report.can_accept_more is True
        assert report.allocation_percent == 60

    def test_overloaded_week(self, overlapping_tasks, crew):
        report = assess_availability(
            crew, date(2025, 1, 1), date(2025, 1, 7), overlapping_tasks, [], EngineConfig()
        )
        assert report.utilization_percent == 175
        assert report.status == STATUS_OVERALLOCATED
        assert report.is_available is False
        assert report.can_accept_more is False
        assert report.recommendations[0]["type"] == "reduce_load"

    def test_eight_day_window_is_one_week(self, make_task):
        resource = Resource(id="R1", name="Crew A", weekly_capacity_hours=40)
        tasks = [
            make_task("T1", date(2025, 1, 1), date(2025, 1, 8), assigned_resources=("R1",), estimated_hours=40),
        ]
        report = assess_availability(
            resource, date(2025, 1, 1), date(2025, 1, 8), tasks, [], EngineConfig()
        )
        assert report.duration_days == 7
        assert report.total_capacity_hours == 40
        assert report.utilization_percent == 100
        assert report.status == STATUS_NEAR_CAPACITY
        assert report.is_available is False

    def test_same_day_window_has_no_capacity(self, make_task, crew):
        tasks = [
            make_task("T1", date(2025, 1, 1), date(2025, 1, 1), assigned_resources=("R1",), estimated_hours=8),
        ]
        report = assess_availability(crew, date(2025, 1, 1), date(2025, 1, 1), tasks, [], EngineConfig())
        assert report.duration_days == 0
        assert report.total_capacity_hours == 0
        assert report.utilization_percent == 0

    def test_allocations_at_100_block_availability(self, crew):
        allocations = [
            ResourceAllocation("A1", "R1", "P1", date(2025, 1, 1), date(2025, 1, 31), 60),
            ResourceAllocation("A2", "R1", "P2", date(2025, 1, 10), date(2025, 1, 20), 40),
        ]
        report = assess_availability(crew, date(2025, 1, 1), date(2025, 1, 14), [], allocations, EngineConfig())
        assert report.allocation_percent == 100
        assert report.utilization_percent == 0
        assert report.is_available is False
        assert "allocation_exceeded" in [item["type"] for item in report.recommendations]

    def test_exclude_allocation_id(self, crew):
        allocations = [
            ResourceAllocation("A1", "R1", "P1", date(2025, 1, 1), date(2025, 1, 31), 60),
            ResourceAllocation("A2", "R1", "P2", date(2025, 1, 10), date(2025, 1, 20), 40),
        ]
        report = assess_availability(
            crew, date(2025, 1, 1), date(2025, 1, 14), [], allocations, EngineConfig(), exclude_allocation_id="A2"
        )
        assert report.allocation_percent == 60
        assert report.is_available is True

    def test_hours_fallback_chain(self, make_task, crew):
        tasks = [
            make_task("T1", date(2025, 1, 1), date(2025, 1, 2), assigned_resources=("R1",), planned_shop_hours=8),
            make_task("T2", date(2025, 1, 1), date(2025, 1, 2), assigned_resources=("R1",), planned_field_hours=4),
            make_task(
                "T3",
                date(2025, 1, 1),
                date(2025, 1, 2),
                assigned_resources=("R1",),
                estimated_hours=0,
                planned_shop_hours=99,
            ),
            make_task("T4", date(2025, 1, 1), date(2025, 1, 2), assigned_resources=("R1",)),
        ]
        report = assess_availability(crew, date(2025, 1, 1), date(2025, 1, 7), tasks, [], EngineConfig())
        assert report.task_hours == 111

    def test_zero_estimate_falls_through_to_shop_hours(self, make_task, crew):
        tasks = [
            make_task(
                "T1",
                date(2025, 1, 1),
                date(2025, 1, 2),
                assigned_resources=("R1",),
                estimated_hours=0,
                planned_shop_hours=30,
            ),
        ]
        report = assess_availability(crew, date(2025, 1, 1), date(2025, 1, 7), tasks, [], EngineConfig())
        assert report.task_hours == 30

    def test_completed_tasks_do_not_count(self, make_task, crew):
        tasks = [
            make_task(
                "T1", date(2025, 1, 1), date(2025, 1, 2), assigned_resources=("R1",), estimated_hours=30, status="completed"
            ),
        ]
        report = assess_availability(crew, date(2025, 1, 1), date(2025, 1, 7), tasks, [], EngineConfig())
        assert report.task_hours == 0
        assert report.tasks == []

    def test_to_dict_sections(self, overlapping_tasks, crew):
        report = assess_availability(
            crew, date(2025, 1, 1), date(2025, 1, 14), overlapping_tasks, [], EngineConfig()
        )
        payload = report.to_dict(EngineConfig())
        assert set(payload) == {
            "resource",
            "date_range",
            "capacity",
            "demand",
            "availability",
            "conflicts",
            "recommendations",
        }
        assert payload["date_range"] == {
            "start_date": "2025-01-01",
            "end_date": "2025-01-14",
            "duration_days": 13,
            "weeks": 2,
        }
        assert payload["capacity"]["available_hours"] == 10
        assert payload["demand"]["task_count"] == 2
        assert payload["demand"]["project_count"] == 1
        assert [c["id"] for c in payload["conflicts"]] == ["T1", "T2"]
        assert payload["conflicts"][0]["overlap_days"] == 10


class TestAlternateResources:

    def test_same_type_idle_usable_only(self, overlapping_tasks, make_task):
        target = Resource(id="R1", name="Crew A", type="crew")
        resources = [
            target,
            Resource(id="R2", name="Crew B", type="crew"),
            Resource(id="R3", name="Crew C", type="crew", status="inactive"),
            Resource(id="R4", name="Crane", type="equipment"),
            Resource(id="R5", name="Crew D", type="crew"),
        ]
        tasks = overlapping_tasks + [
            make_task("T9", date(2025, 1, 3), date(2025, 1, 4), assigned_resources=("R5",)),
        ]
        alternates = find_alternate_resources(
            target, resources, tasks, date(2025, 1, 1), date(2025, 1, 7), EngineConfig()
        )
        assert [r.id for r in alternates] == ["R2"]

    def test_untyped_resource_has_no_alternates(self):
        target = Resource(id="R1", name="Crew A")
        resources = [target, Resource(id="R2", name="Crew B")]
        alternates = find_alternate_resources(
            target, resources, [], date(2025, 1, 1), date(2025, 1, 7), EngineConfig()
        )
        assert alternates == []
