from __future__ import annotations

import os
from pathlib import Path
from typing import Dict, List, Optional

from flask import Flask, jsonify, request

from schedule_integrity import engine
from schedule_integrity.errors import HTTP_STATUS_BY_ERROR, InputError
from schedule_integrity.io_utils import load_config
from schedule_integrity.models import EngineConfig
from schedule_integrity.store import RESOURCES_FILE, TASKS_FILE, EntityStore, JsonEntityStore

REQUIRED_SNAPSHOT_FILES = (TASKS_FILE, RESOURCES_FILE)


def _default_snapshot_root() -> Path:
    return (Path(__file__).resolve().parent.parent / "snapshots").resolve()


def _resolve_snapshot_root() -> Path:
    env_value = os.getenv("SNAPSHOT_ROOT")
    if env_value:
        return Path(env_value).expanduser().resolve()
    return _default_snapshot_root()


def _resolve_config() -> EngineConfig:
    env_value = os.getenv("ENGINE_CONFIG")
    if env_value:
        return load_config(Path(env_value).expanduser())
    return EngineConfig()


def _validate_within_root(path: Path, root: Path) -> None:
    try:
        path.relative_to(root)
    except ValueError as exc:
        raise InputError("snapshot", f"snapshot directory must be inside {root}") from exc


def _missing_files(snapshot_dir: Path) -> List[str]:
    return [name for name in REQUIRED_SNAPSHOT_FILES if not (snapshot_dir / name).is_file()]


def _resolve_snapshot_dir(raw_value: Optional[str], root: Path) -> Path:
    if not raw_value:
        return root
    snapshot_dir = (root / raw_value).resolve()
    _validate_within_root(snapshot_dir, root)
    if not snapshot_dir.is_dir():
        raise InputError("snapshot", f"snapshot directory not found: {raw_value}")
    return snapshot_dir


def _list_snapshot_dirs(root: Path) -> List[Dict[str, object]]:
    entries: List[Dict[str, object]] = []
    if not root.exists():
        return entries
    for child in sorted(root.iterdir()):
        if not child.is_dir():
            continue
        entries.append(
            {
                "name": child.relative_to(root).as_posix(),
                "is_valid": not _missing_files(child),
            }
        )
    return entries


def _json_body() -> object:
    data = request.get_json(silent=True)
    if data is None:
        raise InputError("body", "request body must be JSON")
    return data


def create_app(store: Optional[EntityStore] = None, config: Optional[EngineConfig] = None) -> Flask:
    """Build the JSON API.

    Passing ``store`` pins every request to that snapshot; otherwise requests
    read ``SNAPSHOT_ROOT`` (or the sub-directory named by ``?snapshot=``).
    """
    app = Flask(__name__)
    snapshot_root = _resolve_snapshot_root()
    engine_config = config if config is not None else _resolve_config()
    app.config["SNAPSHOT_ROOT"] = snapshot_root
    app.config["ENGINE_CONFIG"] = engine_config

    def _store() -> EntityStore:
        if store is not None:
            return store
        return JsonEntityStore(_resolve_snapshot_dir(request.args.get("snapshot"), snapshot_root))

    for error_class, status in HTTP_STATUS_BY_ERROR.items():

        def _handle(exc: Exception, status: int = status):
            app.logger.warning("%s: %s", type(exc).__name__, exc)
            return jsonify({"error": str(exc), "type": type(exc).__name__}), status

        app.register_error_handler(error_class, _handle)

    @app.get("/api/snapshots")
    def snapshots():
        return jsonify({"root": snapshot_root.as_posix(), "snapshots": _list_snapshot_dirs(snapshot_root)})

    @app.post("/api/validate/dates")
    def validate_dates():
        data = _json_body()
        if isinstance(data, dict) and isinstance(data.get("task"), dict):
            data = data["task"]
        return jsonify(engine.validate_dates(data))

    @app.post("/api/validate/cycles")
    def validate_cycles():
        data = _json_body()
        tasks = data.get("tasks") if isinstance(data, dict) else data
        if not isinstance(tasks, list):
            raise InputError("tasks", "expected an array of task records")
        return jsonify(engine.detect_cycles(tasks))

    @app.get("/api/projects/<project_id>/validation")
    def project_validation(project_id: str):
        return jsonify(engine.validate_schedule(_store(), {"project_id": project_id}, engine_config))

    @app.get("/api/projects/<project_id>/leveling")
    def project_leveling(project_id: str):
        return jsonify(engine.level_resources(_store(), {"project_id": project_id}, engine_config))

    @app.post("/api/availability")
    def availability():
        data = _json_body()
        if not isinstance(data, dict):
            raise InputError("body", "expected a JSON object")
        return jsonify(engine.check_resource_availability(_store(), data, engine_config))

    return app


if __name__ == "__main__":
    create_app().run(debug=True)
