#!/usr/bin/env python3
"""
Task Board Server
-----------------
JSON API over TaskService, backed by a SQLite file.

Usage:
    taskboard-server --port 3000 --db ./tasks.db
    # or
    python -m taskboard.server

Every /api route needs an X-User-Id header naming the board owner (issued by
the auth service in front of this one). Mutating routes also need X-API-Key.

API:
    GET    /api/tasks                  → { tasks, count }
    GET    /api/tasks/<id>             → { task }
    POST   /api/tasks                  → body { title, description?, status? }
    PUT    /api/tasks/<id>             → body { title?, description?, status?, order? }
    DELETE /api/tasks/<id>             → { task }
    POST   /api/tasks/<id>/move        → body { status, order? }
    POST   /api/tasks/reorder          → body { status, task_ids }
    GET    /api/board                  → { columns: { status: [task_id, ...] } }
    GET    /api/board/check            → { ok, violations }
    POST   /api/board/repair           → { tasks, count }
    GET    /health
"""

import argparse
import hmac
import logging
import os
import sys
from functools import wraps
from typing import Optional

from flask import Flask, jsonify, request

from .config import Config
from .errors import LedgerError, LedgerResult
from .service import TaskService
from .store import TaskStore

logger = logging.getLogger(__name__)

app = Flask(__name__)


# ── Config ───────────────────────────────────────────────────────────────────

def configure(cfg: Optional[Config] = None) -> Flask:
    """Bind the app to a config and build its service."""
    cfg = cfg or Config.load()
    store = TaskStore(cfg.db_path, lock_timeout=cfg.lock_timeout)
    app.config["TASKBOARD_CONFIG"] = cfg
    app.extensions["taskboard_service"] = TaskService(store, conflict_retries=cfg.conflict_retries)
    return app


def get_config() -> Config:
    if "TASKBOARD_CONFIG" not in app.config:
        configure()
    return app.config["TASKBOARD_CONFIG"]


def get_service() -> TaskService:
    if "taskboard_service" not in app.extensions:
        configure()
    return app.extensions["taskboard_service"]


# ── Auth ─────────────────────────────────────────────────────────────────────

def require_user(f):
    """Decorator: pass the X-User-Id header as owner_id, 401 without it."""
    @wraps(f)
    def decorated(*args, **kwargs):
        owner_id = request.headers.get("X-User-Id", "").strip()
        if not owner_id:
            return jsonify({"error": "Unauthorized"}), 401
        return f(owner_id, *args, **kwargs)
    return decorated


def require_api_key(f):
    """Decorator: reject requests without a valid X-API-Key header."""
    @wraps(f)
    def decorated(*args, **kwargs):
        secret = get_config().api_secret
        if not secret:
            return jsonify({"error": "API secret not set"}), 503
        provided = request.headers.get("X-API-Key", "").strip()
        if not hmac.compare_digest(provided, secret):
            code = 401 if not provided else 403
            return jsonify({"error": "Unauthorized"}), code
        return f(*args, **kwargs)
    return decorated


# ── Responses ────────────────────────────────────────────────────────────────

def error_response(error: LedgerError):
    return jsonify({"error": str(error), "kind": error.kind}), error.http_status


def task_response(result: LedgerResult, status: int = 200):
    if not result.ok:
        return error_response(result.error)
    return jsonify({"task": result.item.to_dict()}), status


def list_response(result: LedgerResult):
    if not result.ok:
        return error_response(result.error)
    return jsonify({
        "tasks": [t.to_dict() for t in result.items],
        "count": len(result.items),
    })


def json_body() -> dict:
    data = request.get_json(force=True, silent=True)
    return data if isinstance(data, dict) else {}


# ── Routes ───────────────────────────────────────────────────────────────────

@app.route("/api/tasks", methods=["GET"])
@require_user
def api_list_tasks(owner_id):
    return list_response(get_service().list_tasks(owner_id))


@app.route("/api/tasks/<task_id>", methods=["GET"])
@require_user
def api_get_task(owner_id, task_id):
    return task_response(get_service().get_task(owner_id, task_id))


@app.route("/api/tasks", methods=["POST"])
@require_api_key
@require_user
def api_create_task(owner_id):
    data = json_body()
    result = get_service().create_task(
        owner_id,
        title=data.get("title", ""),
        description=data.get("description", ""),
        column=data.get("status", "todo"),
    )
    return task_response(result, status=201)


@app.route("/api/tasks/<task_id>", methods=["PUT"])
@require_api_key
@require_user
def api_update_task(owner_id, task_id):
    data = json_body()
    result = get_service().update_task(
        owner_id,
        task_id,
        title=data.get("title"),
        description=data.get("description"),
        column=data.get("status"),
        position=data.get("order"),
    )
    return task_response(result)


@app.route("/api/tasks/<task_id>", methods=["DELETE"])
@require_api_key
@require_user
def api_delete_task(owner_id, task_id):
    return task_response(get_service().delete_task(owner_id, task_id))


@app.route("/api/tasks/<task_id>/move", methods=["POST"])
@require_api_key
@require_user
def api_move_task(owner_id, task_id):
    data = json_body()
    if data.get("status") is None:
        return jsonify({"error": "status is required"}), 400
    result = get_service().move_task(
        owner_id, task_id, data["status"], position=data.get("order")
    )
    return task_response(result)


@app.route("/api/tasks/reorder", methods=["POST"])
@require_api_key
@require_user
def api_reorder_tasks(owner_id):
    data = json_body()
    if data.get("status") is None:
        return jsonify({"error": "status is required"}), 400
    result = get_service().reorder_tasks(owner_id, data["status"], data.get("task_ids") or [])
    return list_response(result)


@app.route("/api/board", methods=["GET"])
@require_user
def api_board(owner_id):
    try:
        columns = get_service().positions(owner_id)
    except LedgerError as e:
        return error_response(e)
    return jsonify({"columns": {c.value: ids for c, ids in columns.items()}})


@app.route("/api/board/check", methods=["GET"])
@require_user
def api_board_check(owner_id):
    result = get_service().check_board(owner_id)
    if not result.ok:
        return error_response(result.error)
    violations = {}
    for item in result.items:
        violations.setdefault(item.column.value, []).append(item.position)
    return jsonify({"ok": not violations, "violations": violations})


@app.route("/api/board/repair", methods=["POST"])
@require_api_key
@require_user
def api_board_repair(owner_id):
    return list_response(get_service().repair_board(owner_id))


@app.route("/health")
def health():
    return jsonify({"status": "ok", "db": get_config().db_path})


# ── Main ─────────────────────────────────────────────────────────────────────

def main(argv=None):
    parser = argparse.ArgumentParser(description="Task Board Server")
    parser.add_argument("--host", help="Bind address (use 0.0.0.0 to expose on network)")
    parser.add_argument("--port", type=int)
    parser.add_argument("--db", help="Path to tasks.db (overrides TASKBOARD_DB env var)")
    parser.add_argument("--config", help="Path to config.yaml (overrides TASKBOARD_CONFIG)")
    args = parser.parse_args(argv)

    if args.db:
        os.environ["TASKBOARD_DB"] = args.db

    cfg = Config.load(args.config)
    if args.host:
        cfg.host = args.host
    if args.port:
        cfg.port = args.port

    logging.basicConfig(
        level=getattr(logging, cfg.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    if not cfg.api_secret:
        logger.warning("TASKBOARD_API_SECRET not set; mutating routes will answer 503")

    configure(cfg)
    logger.info(f"Serving tasks from {cfg.db_path} on http://{cfg.host}:{cfg.port}")
    app.run(host=cfg.host, port=cfg.port, debug=False, threaded=True)


if __name__ == "__main__":
    main()
