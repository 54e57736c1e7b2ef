"""Timeline-wide demand statistics and the per-day timeline frame."""

from __future__ import annotations

from typing import Dict, List, Sequence

import pandas as pd

from .availability import Overallocation, overallocated_resource_counts
from .demand import DemandMatrix
from .models import EngineConfig

TIMELINE_COLUMNS = ["date", "demand", "active_tasks", "overallocated_resources"]


def timeline_frame(matrix: DemandMatrix, overallocations: Sequence[Overallocation]) -> pd.DataFrame:
    """One row per day of the covered span, zero-demand days included."""
    if matrix.is_empty:
        return pd.DataFrame(columns=TIMELINE_COLUMNS)
    over_counts = overallocated_resource_counts(overallocations, matrix.calendar)
    dates = [matrix.calendar.format(day) for day in matrix.days]
    frame = pd.DataFrame(
        {
            "date": dates,
            "demand": matrix.daily_totals().astype(int),
            "active_tasks": matrix.active_tasks.astype(int),
        }
    )
    frame["overallocated_resources"] = [over_counts.get(day, 0) for day in dates]
    return frame


def timeline_records(frame: pd.DataFrame) -> List[Dict[str, object]]:
    records = []
    for row in frame.itertuples(index=False):
        records.append(
            {
                "date": row.date,
                "demand": int(row.demand),
                "active_tasks": int(row.active_tasks),
                "overallocated_resources": int(row.overallocated_resources),
            }
        )
    return records


def summarize_demand(
    matrix: DemandMatrix,
    overallocations: Sequence[Overallocation],
    config: EngineConfig,
) -> Dict[str, object]:
    # Population statistics over every day of the span, not only busy days.
    demand = pd.Series(matrix.daily_totals(), dtype="float64")
    if demand.empty:
        avg = peak = std = 0.0
    else:
        avg = float(demand.mean())
        peak = float(demand.max())
        std = float(demand.std(ddof=0))

    cv = std / avg if avg > 0 else 0.0
    return {
        "avg_demand": round(avg, 2),
        "peak_demand": int(peak),
        "std_deviation": round(std, 2),
        "coefficient_of_variation": round(cv, 2),
        "uneven_distribution": bool(avg > 0 and std > config.uneven_demand_ratio * avg),
        "overallocated_days": len({item.date for item in overallocations}),
        "total_overload": sum(item.overload for item in overallocations),
        "days_analyzed": len(matrix.days),
    }
