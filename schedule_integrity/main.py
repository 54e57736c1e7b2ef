from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd

from . import engine
from .errors import CollaboratorError, InputError, NotFoundError
from .io_utils import ensure_directory, load_config, write_csv, write_json
from .metrics import TIMELINE_COLUMNS
from .models import EngineConfig
from .store import JsonEntityStore


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Schedule and resource integrity checks over a JSON snapshot directory."
    )
    parser.add_argument(
        "--snapshot-dir",
        required=True,
        help="Directory containing tasks.json, resources.json and optional allocations.json/projects.json",
    )
    parser.add_argument("--config", help="Path to engine configuration JSON file")
    subparsers = parser.add_subparsers(dest="command", required=True)

    validate = subparsers.add_parser("validate", help="Check task dates, dependencies and cycles")
    validate.add_argument("--project-id", required=True)

    level = subparsers.add_parser("level", help="Find overallocations and propose leveling actions")
    level.add_argument("--project-id", required=True)
    level.add_argument(
        "--outdir",
        default="out",
        help="Output directory for leveling.json and demand_timeline.csv (default: ./out)",
    )
    level.add_argument(
        "--dry-run",
        action="store_true",
        help="Analyze and print summary without writing output files",
    )

    availability = subparsers.add_parser("availability", help="Check one resource over a date window")
    availability.add_argument("--resource-id", required=True)
    availability.add_argument("--start-date", required=True)
    availability.add_argument("--end-date", required=True)
    availability.add_argument("--exclude-allocation-id")
    return parser.parse_args(argv)


def _configure_logging(level_name: str) -> None:
    level = getattr(logging, level_name.upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(levelname)s %(message)s")


def _print_validation_summary(result: Dict[str, object]) -> None:
    label = "valid" if result["valid"] else "INVALID"
    print(f"Project {result['project_id']}: {label} ({result['task_count']} tasks)")
    for heading, key in (
        ("Date errors", "date_errors"),
        ("Dependency errors", "dependency_errors"),
        ("Cycles", "cycle_errors"),
    ):
        findings = result[key]
        if not findings:
            continue
        print(f"\n{heading}:")
        for item in findings:
            owner = item.get("task_id") or " → ".join(item.get("cycle_path", []))
            print(f"- {owner}: {item['message']}")


def _print_leveling_summary(result: Dict[str, object]) -> None:
    metrics = result["metrics"]
    print(
        f"Avg demand {metrics['avg_demand']}, peak {metrics['peak_demand']}, "
        f"std dev {metrics['std_deviation']}"
    )
    print(f"Overallocated days: {metrics['overallocated_days']}, total overload: {metrics['total_overload']}")
    if metrics.get("uneven_distribution"):
        print("Demand is unevenly distributed over the timeline.")
    suggestions = result["suggestions"]
    if not suggestions:
        print("\nSuggestions: none")
        return
    print("\nSuggestions:")
    for item in suggestions:
        if item["action"] == "delay_task":
            print(
                f"- delay {item['task_name']} by {item['suggested_delay_days']} day(s) "
                f"[{item['impact']}]: {item['reason']}"
            )
        else:
            print(
                f"- move {item['assignments']} assignment(s) on {item['date']} from "
                f"{item['from_resource_name']} to {item['to_resource_name']}"
            )


def _run(args: argparse.Namespace, config: EngineConfig) -> int:
    store = JsonEntityStore(args.snapshot_dir)

    if args.command == "validate":
        result = engine.validate_schedule(store, {"project_id": args.project_id}, config)
        _print_validation_summary(result)
        return 0 if result["valid"] else 3

    if args.command == "availability":
        request = {
            "resource_id": args.resource_id,
            "start_date": args.start_date,
            "end_date": args.end_date,
            "exclude_allocation_id": args.exclude_allocation_id,
        }
        result = engine.check_resource_availability(store, request, config)
        print(json.dumps(result, indent=2))
        return 0

    result = engine.level_resources(store, {"project_id": args.project_id}, config)
    _print_leveling_summary(result)
    if args.dry_run:
        return 0

    outdir_path = ensure_directory(args.outdir)
    timeline_path = Path(outdir_path) / "demand_timeline.csv"
    result_path = Path(outdir_path) / "leveling.json"
    write_csv(pd.DataFrame(result["timeline"], columns=TIMELINE_COLUMNS), timeline_path)
    write_json(result, result_path)
    print(f"\nWrote {timeline_path}")
    print(f"Wrote {result_path}")
    return 0


def main(argv: Optional[List[str]] = None) -> None:
    args = _parse_args(argv)
    try:
        config = load_config(args.config) if args.config else EngineConfig()
    except (OSError, ValueError) as exc:
        print(f"config: {exc}", file=sys.stderr)
        sys.exit(2)
    _configure_logging(config.logging_level)

    try:
        code = _run(args, config)
    except InputError as exc:
        print(str(exc), file=sys.stderr)
        sys.exit(2)
    except (NotFoundError, CollaboratorError) as exc:
        print(str(exc), file=sys.stderr)
        sys.exit(1)
    if code:
        sys.exit(code)


if __name__ == "__main__":
    main()
