from __future__ import annotations

import json
import math
from dataclasses import fields
from datetime import date
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import pandas as pd

from .dates import DEFAULT_CALENDAR, UTCCalendar
from .errors import InputError
from .models import (
    DEPENDENCY_TYPES,
    Dependency,
    EngineConfig,
    Project,
    Resource,
    ResourceAllocation,
    Task,
)


def _parse_bool(value: object, field_name: str) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "t", "1", "yes", "y"}:
            return True
        if lowered in {"false", "f", "0", "no", "n", ""}:
            return False
    raise ValueError(f"cannot interpret boolean value '{value}' in '{field_name}'")


def _parse_optional_number(value: object, field_name: str) -> Optional[float]:
    if value is None or (isinstance(value, str) and value.strip() == ""):
        return None
    if isinstance(value, bool):
        raise ValueError(f"invalid numeric value in '{field_name}': {value!r}")
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise ValueError(f"invalid numeric value in '{field_name}': {value!r}") from exc
    if math.isnan(number):
        return None
    return number


def _parse_optional_str(value: object) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _parse_id_list(value: object, field_name: str) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return ()
        return tuple(part.strip() for part in stripped.split(";") if part.strip())
    if isinstance(value, Sequence):
        return tuple(str(item).strip() for item in value if item is not None and str(item).strip())
    raise ValueError(f"unsupported value for '{field_name}': {value!r}")


def _parse_dependency(entry: object) -> Dependency:
    if isinstance(entry, (str, int)):
        return Dependency(predecessor_id=str(entry))
    if not isinstance(entry, Mapping):
        raise ValueError(f"unsupported predecessor entry: {entry!r}")
    predecessor_id = entry.get("predecessor_id") or entry.get("id")
    if predecessor_id is None or str(predecessor_id).strip() == "":
        raise ValueError("predecessor entry missing 'predecessor_id'")
    dep_type = str(entry.get("type") or "FS").upper()
    if dep_type not in DEPENDENCY_TYPES:
        raise ValueError(f"unsupported dependency type '{dep_type}'")
    lag = _parse_optional_number(entry.get("lag_days"), "lag_days")
    return Dependency(
        predecessor_id=str(predecessor_id),
        type=dep_type,
        lag_days=int(lag) if lag is not None else 0,
    )


def _as_entries(raw: object) -> List[object]:
    if raw is None:
        return []
    if isinstance(raw, (str, Mapping)) or not isinstance(raw, Sequence):
        return [raw]
    return list(raw)


def _parse_dependencies(record: Mapping[str, object]) -> Tuple[Dependency, ...]:
    """Merge ``predecessor_ids`` with the type/lag kept in ``predecessor_configs``.

    Records usually list bare ids in ``predecessor_ids`` and carry one config
    per id in ``predecessor_configs``; a bare id without a config is FS with
    no lag. Configs for ids missing from the list are appended.
    """
    configs: Dict[str, Dependency] = {}
    for entry in _as_entries(record.get("predecessor_configs")):
        dep = _parse_dependency(entry)
        configs.setdefault(dep.predecessor_id, dep)

    merged: List[Dependency] = []
    seen = set()
    for entry in _as_entries(record.get("predecessor_ids")):
        dep = _parse_dependency(entry)
        if isinstance(entry, (str, int)) and dep.predecessor_id in configs:
            dep = configs[dep.predecessor_id]
        if dep.predecessor_id in seen:
            continue
        seen.add(dep.predecessor_id)
        merged.append(dep)
    for predecessor_id, dep in configs.items():
        if predecessor_id not in seen:
            seen.add(predecessor_id)
            merged.append(dep)
    return tuple(merged)


def _lenient_date(
    record: Mapping[str, object], key: str, calendar: UTCCalendar, invalid: List[str]
) -> Optional[date]:
    try:
        return calendar.parse_optional_date(record.get(key), key)
    except InputError:
        invalid.append(key)
        return None


def _require_id(record: Mapping[str, object], source: str) -> str:
    value = record.get("id")
    if value is None or str(value).strip() == "":
        raise ValueError(f"{source} record is missing 'id'")
    return str(value)


def parse_task(record: Mapping[str, object], calendar: UTCCalendar = DEFAULT_CALENDAR) -> Task:
    """Build a Task from a JSON record.

    Unparseable dates do not raise: the field is left empty and its name is
    kept in ``invalid_fields`` so date validation can report it.
    """
    if not isinstance(record, Mapping):
        raise ValueError("task records must be objects")
    invalid: List[str] = []
    start_date = _lenient_date(record, "start_date", calendar, invalid)
    end_date = _lenient_date(record, "end_date", calendar, invalid)
    baseline_start = _lenient_date(record, "baseline_start", calendar, invalid)
    baseline_end = _lenient_date(record, "baseline_end", calendar, invalid)
    return Task(
        id=_require_id(record, "task"),
        project_id=_parse_optional_str(record.get("project_id")),
        name=str(record.get("name") or ""),
        start_date=start_date,
        end_date=end_date,
        status=_parse_optional_str(record.get("status")),
        is_critical=_parse_bool(record.get("is_critical"), "is_critical"),
        predecessors=_parse_dependencies(record),
        assigned_resources=_parse_id_list(record.get("assigned_resources"), "assigned_resources"),
        assigned_equipment=_parse_id_list(record.get("assigned_equipment"), "assigned_equipment"),
        progress_percent=_parse_optional_number(record.get("progress_percent"), "progress_percent"),
        estimated_hours=_parse_optional_number(record.get("estimated_hours"), "estimated_hours"),
        planned_shop_hours=_parse_optional_number(
            record.get("planned_shop_hours"), "planned_shop_hours"
        ),
        planned_field_hours=_parse_optional_number(
            record.get("planned_field_hours"), "planned_field_hours"
        ),
        baseline_start=baseline_start,
        baseline_end=baseline_end,
        invalid_fields=tuple(invalid),
    )


def parse_resource(record: Mapping[str, object]) -> Resource:
    if not isinstance(record, Mapping):
        raise ValueError("resource records must be objects")
    max_concurrent = _parse_optional_number(
        record.get("max_concurrent_assignments"), "max_concurrent_assignments"
    )
    if max_concurrent is not None and max_concurrent < 0:
        raise ValueError("max_concurrent_assignments must not be negative")
    weekly_hours = _parse_optional_number(record.get("weekly_capacity_hours"), "weekly_capacity_hours")
    if weekly_hours is not None and weekly_hours < 0:
        raise ValueError("weekly_capacity_hours must not be negative")
    return Resource(
        id=_require_id(record, "resource"),
        name=str(record.get("name") or ""),
        type=_parse_optional_str(record.get("type")),
        weekly_capacity_hours=weekly_hours,
        max_concurrent_assignments=int(max_concurrent) if max_concurrent is not None else None,
        classification=_parse_optional_str(record.get("classification")),
        status=_parse_optional_str(record.get("status")),
    )


def parse_allocation(
    record: Mapping[str, object], calendar: UTCCalendar = DEFAULT_CALENDAR
) -> ResourceAllocation:
    if not isinstance(record, Mapping):
        raise ValueError("allocation records must be objects")
    resource_id = _parse_optional_str(record.get("resource_id"))
    if resource_id is None:
        raise ValueError("allocation record is missing 'resource_id'")
    percentage = _parse_optional_number(record.get("allocation_percentage"), "allocation_percentage")
    return ResourceAllocation(
        id=_parse_optional_str(record.get("id")),
        resource_id=resource_id,
        project_id=_parse_optional_str(record.get("project_id")),
        start_date=calendar.parse_optional_date(record.get("start_date"), "start_date"),
        end_date=calendar.parse_optional_date(record.get("end_date"), "end_date"),
        allocation_percentage=percentage if percentage is not None else 0.0,
    )


def parse_project(record: Mapping[str, object]) -> Project:
    if not isinstance(record, Mapping):
        raise ValueError("project records must be objects")
    return Project(
        id=_require_id(record, "project"),
        name=str(record.get("name") or ""),
        status=_parse_optional_str(record.get("status")),
    )


def load_records(path: str | Path) -> List[Dict[str, object]]:
    data = json.loads(Path(path).read_text())
    if not isinstance(data, list):
        raise ValueError(f"{Path(path).name} must be a JSON array")
    for entry in data:
        if not isinstance(entry, dict):
            raise ValueError(f"{Path(path).name} entries must be objects")
    return data


def _positive_int(data: Mapping[str, object], key: str, default: int) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key} must be a number")
    value_int = int(value)
    if value_int <= 0:
        raise ValueError(f"{key} must be positive")
    return value_int


def _percent(data: Mapping[str, object], key: str, default: int) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key} must be a number")
    if not (0 <= value <= 1000):
        raise ValueError(f"{key} must be in [0, 1000]")
    return int(value)


def _status_list(data: Mapping[str, object], key: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    value = data.get(key)
    if value is None:
        return default
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ValueError(f"{key} must be an array of strings")
    return tuple(item.strip().lower() for item in value if item.strip())


def config_from_dict(data: Mapping[str, object]) -> EngineConfig:
    if not isinstance(data, Mapping):
        raise ValueError("config must be an object")
    known = {f.name for f in fields(EngineConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"unknown config keys: {', '.join(unknown)}")
    defaults = EngineConfig()

    weekly_hours = data.get("default_weekly_capacity_hours", defaults.default_weekly_capacity_hours)
    if isinstance(weekly_hours, bool) or not isinstance(weekly_hours, (int, float)):
        raise ValueError("default_weekly_capacity_hours must be a number")
    if weekly_hours <= 0:
        raise ValueError("default_weekly_capacity_hours must be positive")

    near_capacity = _percent(data, "near_capacity_pct", defaults.near_capacity_pct)
    moderate = _percent(data, "moderate_pct", defaults.moderate_pct)
    overallocated = _percent(data, "overallocated_pct", defaults.overallocated_pct)
    if not (moderate <= near_capacity <= overallocated):
        raise ValueError("thresholds must satisfy moderate_pct <= near_capacity_pct <= overallocated_pct")

    ratio = data.get("uneven_demand_ratio", defaults.uneven_demand_ratio)
    if isinstance(ratio, bool) or not isinstance(ratio, (int, float)) or ratio < 0:
        raise ValueError("uneven_demand_ratio must be a non-negative number")

    logging_level = data.get("logging_level", defaults.logging_level)
    if not isinstance(logging_level, str):
        raise ValueError("logging_level must be a string")

    return EngineConfig(
        default_max_concurrent_assignments=_positive_int(
            data, "default_max_concurrent_assignments", defaults.default_max_concurrent_assignments
        ),
        default_weekly_capacity_hours=float(weekly_hours),
        overallocation_display_limit=_positive_int(
            data, "overallocation_display_limit", defaults.overallocation_display_limit
        ),
        suggestion_display_limit=_positive_int(
            data, "suggestion_display_limit", defaults.suggestion_display_limit
        ),
        inactive_task_statuses=_status_list(
            data, "inactive_task_statuses", defaults.inactive_task_statuses
        ),
        unavailable_resource_statuses=_status_list(
            data, "unavailable_resource_statuses", defaults.unavailable_resource_statuses
        ),
        overallocated_pct=overallocated,
        near_capacity_pct=near_capacity,
        moderate_pct=moderate,
        accept_more_pct=_percent(data, "accept_more_pct", defaults.accept_more_pct),
        uneven_demand_ratio=float(ratio),
        logging_level=logging_level,
    )


def load_config(path: str | Path) -> EngineConfig:
    try:
        data = json.loads(Path(path).read_text())
    except json.JSONDecodeError as exc:
        raise ValueError(f"config file is not valid JSON: {exc}") from exc
    return config_from_dict(data)


def ensure_directory(path: str | Path) -> Path:
    target = Path(path)
    target.mkdir(parents=True, exist_ok=True)
    return target


def write_csv(df: pd.DataFrame, path: str | Path) -> None:
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, index=False)


def write_json(payload: object, path: str | Path) -> None:
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    Path(path).write_text(json.dumps(payload, indent=2) + "\n")
