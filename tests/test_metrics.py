from datetime import date

from schedule_integrity.availability import find_overallocations
from schedule_integrity.demand import aggregate_demand
from schedule_integrity.metrics import TIMELINE_COLUMNS, summarize_demand, timeline_frame, timeline_records
from schedule_integrity.models import EngineConfig, Resource


def _scenario(make_task, crew):
    tasks = [
        make_task("T1", date(2025, 1, 1), date(2025, 1, 10), assigned_resources=("R1",)),
        make_task("T2", date(2025, 1, 5), date(2025, 1, 15), assigned_resources=("R1",)),
    ]
    matrix = aggregate_demand(tasks, resource_ids=[crew.id])
    return matrix, find_overallocations(matrix, [crew], 3)


class TestSummarizeDemand:

    def test_population_statistics(self, make_task, crew):
        matrix, overallocations = _scenario(make_task, crew)
        metrics = summarize_demand(matrix, overallocations, EngineConfig())
        assert metrics["avg_demand"] == 1.4
        assert metrics["peak_demand"] == 2
        assert metrics["std_deviation"] == 0.49
        assert metrics["overallocated_days"] == 6
        assert metrics["total_overload"] == 6
        assert metrics["days_analyzed"] == 15
        assert metrics["uneven_distribution"] is False

    def test_empty_matrix(self, crew):
        matrix = aggregate_demand([], resource_ids=[crew.id])
        metrics = summarize_demand(matrix, [], EngineConfig())
        assert metrics["avg_demand"] == 0
        assert metrics["peak_demand"] == 0
        assert metrics["std_deviation"] == 0
        assert metrics["coefficient_of_variation"] == 0
        assert metrics["total_overload"] == 0

    def test_lumpy_demand_flagged_without_overallocation(self, make_task):
        tasks = [
            make_task("T1", date(2025, 1, 1), date(2025, 1, 1), assigned_resources=("R1", "R2", "R3")),
            make_task("T2", date(2025, 1, 10), date(2025, 1, 10), assigned_resources=("R1",)),
        ]
        matrix = aggregate_demand(tasks)
        metrics = summarize_demand(matrix, [], EngineConfig())
        assert metrics["overallocated_days"] == 0
        assert metrics["uneven_distribution"] is True

    def test_overallocated_days_counts_distinct_dates(self, make_task):
        tasks = [
            make_task("T1", date(2025, 1, 1), date(2025, 1, 2), assigned_resources=("R1", "R2")),
            make_task("T2", date(2025, 1, 1), date(2025, 1, 2), assigned_resources=("R1", "R2")),
        ]
        resources = [
            Resource(id="R1", name="A", max_concurrent_assignments=1),
            Resource(id="R2", name="B", max_concurrent_assignments=1),
        ]
        matrix = aggregate_demand(tasks)
        overallocations = find_overallocations(matrix, resources, 3)
        metrics = summarize_demand(matrix, overallocations, EngineConfig())
        assert metrics["overallocated_days"] == 2
        assert metrics["total_overload"] == 4


class TestTimeline:

    def test_frame_covers_every_day(self, make_task, crew):
        matrix, overallocations = _scenario(make_task, crew)
        frame = timeline_frame(matrix, overallocations)
        assert list(frame.columns) == TIMELINE_COLUMNS
        assert len(frame) == 15
        assert frame.iloc[0]["date"] == "2025-01-01"
        assert frame["demand"].tolist() == [1] * 4 + [2] * 6 + [1] * 5
        assert frame["overallocated_resources"].sum() == 6

    def test_records_are_plain_ints(self, make_task, crew):
        matrix, overallocations = _scenario(make_task, crew)
        records = timeline_records(timeline_frame(matrix, overallocations))
        assert records[4] == {
            "date": "2025-01-05",
            "demand": 2,
            "active_tasks": 2,
            "overallocated_resources": 1,
        }
        assert type(records[4]["demand"]) is int

    def test_empty_frame(self, crew):
        frame = timeline_frame(aggregate_demand([], resource_ids=[crew.id]), [])
        assert frame.empty
        assert timeline_records(frame) == []
