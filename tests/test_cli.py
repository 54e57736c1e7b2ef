import json

import pandas as pd
import pytest

from schedule_integrity.main import main


def _run(args):
    with pytest.raises(SystemExit) as exc_info:
        main(args)
    return exc_info.value.code


class TestCli:

    def test_level_writes_outputs(self, snapshot_dir, tmp_path_factory, capsys):
        outdir = tmp_path_factory.mktemp("out")
        main(["--snapshot-dir", str(snapshot_dir), "level", "--project-id", "P1", "--outdir", str(outdir)])
        timeline = pd.read_csv(outdir / "demand_timeline.csv")
        assert len(timeline) == 15
        assert timeline["demand"].max() == 2
        result = json.loads((outdir / "leveling.json").read_text())
        assert result["suggestions"][0]["task_id"] == "T2"
        assert "delay Erect steel by 6 day(s)" in capsys.readouterr().out

    def test_level_dry_run_writes_nothing(self, snapshot_dir, tmp_path_factory, capsys):
        outdir = tmp_path_factory.mktemp("out") / "never"
        main(
            ["--snapshot-dir", str(snapshot_dir), "level", "--project-id", "P1", "--outdir", str(outdir), "--dry-run"]
        )
        assert not outdir.exists()
        assert "Overallocated days: 6" in capsys.readouterr().out

    def test_validate_clean_project(self, snapshot_dir, capsys):
        main(["--snapshot-dir", str(snapshot_dir), "validate", "--project-id", "P1"])
        assert "Project P1: valid (2 tasks)" in capsys.readouterr().out

    def test_validate_reports_findings(self, snapshot_dir, scenario_records, capsys):
        scenario_records["tasks"][0]["end_date"] = "2024-12-01"
        (snapshot_dir / "tasks.json").write_text(json.dumps(scenario_records["tasks"]))
        code = _run(["--snapshot-dir", str(snapshot_dir), "validate", "--project-id", "P1"])
        assert code == 3
        assert "cannot be after end date" in capsys.readouterr().out

    def test_availability_prints_json(self, snapshot_dir, capsys):
        main(
            [
                "--snapshot-dir",
                str(snapshot_dir),
                "availability",
                "--resource-id",
                "R1",
                "--start-date",
                "2025-01-01",
                "--end-date",
                "2025-01-14",
            ]
        )
        payload = json.loads(capsys.readouterr().out)
        assert payload["availability"]["status"] == "near_capacity"

    def test_input_error_exit_code(self, snapshot_dir):
        code = _run(
            [
                "--snapshot-dir",
                str(snapshot_dir),
                "availability",
                "--resource-id",
                "R1",
                "--start-date",
                "2025-01-14",
                "--end-date",
                "2025-01-01",
            ]
        )
        assert code == 2

    def test_not_found_exit_code(self, snapshot_dir):
        assert _run(["--snapshot-dir", str(snapshot_dir), "validate", "--project-id", "P9"]) == 1

    def test_missing_snapshot_exit_code(self, tmp_path):
        assert _run(["--snapshot-dir", str(tmp_path / "missing"), "validate", "--project-id", "P1"]) == 1

    def test_bad_config_exit_code(self, snapshot_dir, tmp_path_factory):
        config_path = tmp_path_factory.mktemp("cfg") / "config.json"
        config_path.write_text(json.dumps({"default_max_concurrent_assignments": -1}))
        code = _run(
            ["--snapshot-dir", str(snapshot_dir), "--config", str(config_path), "validate", "--project-id", "P1"]
        )
        assert code == 2
