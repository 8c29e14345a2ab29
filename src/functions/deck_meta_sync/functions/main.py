"""Cloud Function entry points for the deck meta sync pipeline."""

from __future__ import annotations

import asyncio
import hmac
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

import flask
import functions_framework

# Ensure project root is available on import path
project_root = Path(__file__).parent.parent.parent.parent.parent.absolute()
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from src.shared.utils.config_validator import ConfigurationError
from src.shared.utils.env import load_env
from src.shared.utils.logging import setup_logging

from src.functions.deck_meta_sync.core.admin import AdminService
from src.functions.deck_meta_sync.core.datasets import DATASETS_BY_NAME
from src.functions.deck_meta_sync.core.errors import (
    LockContentionError,
    MetaSyncError,
    UpdateInProgressError,
)
from src.functions.deck_meta_sync.core.orchestration.config_loader import (
    admin_api_key,
    build_pipeline_config,
)
from src.functions.deck_meta_sync.core.orchestration.factory import (
    MetaSyncServices,
    build_services,
    run_pipeline as execute_run,
)

load_env()
setup_logging(level=os.getenv("LOG_LEVEL", "INFO"))
logger = logging.getLogger(__name__)


def _services(overrides: Optional[Dict[str, object]] = None) -> MetaSyncServices:
    return build_services(build_pipeline_config(overrides))


def pipeline_handler(request: flask.Request) -> flask.Response:
    """Run the sync pipeline for the requested modes."""

    if request.method == "OPTIONS":
        return _cors_response({}, status=204)

    if request.method != "POST":
        return _error_response("Method not allowed. Use POST.", status=405)

    payload = request.get_json(silent=True) or {}
    logger.info("Received pipeline invocation with payload keys: %s", list(payload.keys()))

    modes = payload.get("modes")
    if modes is not None and not isinstance(modes, (list, tuple)):
        return _error_response("'modes' must be an array of mode names", status=400)

    try:
        services = _services({"modes": modes, "dry_run": payload.get("dry_run")})
    except ConfigurationError as exc:
        logger.error("Invalid configuration: %s", exc)
        return _error_response(f"Configuration error: {exc}", status=500)

    try:
        runner_report = asyncio.run(execute_run(services, services.config.modes))
    except LockContentionError as exc:
        logger.warning("Rejected run: %s", exc)
        return _cors_response(
            {"status": "error", "message": str(exc), "locked_at": exc.locked_at},
            status=409,
        )
    except MetaSyncError as exc:
        logger.error("Pipeline aborted: %s", exc)
        return _error_response(f"Pipeline aborted: {exc}", status=500)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Pipeline run failed unexpectedly")
        return _error_response(f"Pipeline failed: {exc}", status=500)

    body = runner_report.to_dict()
    logger.info(
        "Pipeline finished: status=%s promoted=%d failed_targets=%d",
        body.get("status"),
        len(runner_report.promoted),
        len(runner_report.failed_targets),
    )
    return _cors_response(body)


def read_handler(request: flask.Request) -> flask.Response:
    """Serve a live dataset grouped by rank."""

    if request.method == "OPTIONS":
        return _cors_response({}, status=204)
    if request.method != "GET":
        return _error_response("Method not allowed. Use GET.", status=405)

    args = request.args
    dataset = args.get("dataset", "")
    mode = args.get("mode", "standard")
    if dataset not in DATASETS_BY_NAME:
        return _error_response(f"Unknown dataset '{dataset}'", status=400)

    try:
        queries = _services().queries
        if dataset == "rank_stats":
            result = queries.rank_stats(mode)
        elif dataset == "decks":
            result = queries.decks(mode, args.get("period", "all_time"))
        elif dataset == "card_stats":
            result = queries.card_stats(mode, _required(args, "archetype"))
        elif dataset == "archetype_decks":
            result = queries.archetype_decks(mode, _required(args, "name"))
        else:
            result = queries.matchups(mode, _required(args, "deck_id"))
    except UpdateInProgressError as exc:
        response = _error_response(str(exc), status=503)
        response.headers["Retry-After"] = str(exc.retry_after_seconds)
        return response
    except ConfigurationError as exc:
        return _error_response(f"Configuration error: {exc}", status=500)
    except ValueError as exc:
        return _error_response(str(exc), status=400)
    except MetaSyncError as exc:
        logger.error("Read of %s failed: %s", dataset, exc)
        return _error_response(f"Read failed: {exc}", status=500)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Read of %s failed unexpectedly", dataset)
        return _error_response(f"Read failed: {exc}", status=500)

    return _cors_response(result.to_dict())


def lock_state_handler(request: flask.Request) -> flask.Response:
    try:
        state = _services().reader.read_lock_state()
    except ConfigurationError as exc:
        return _error_response(f"Configuration error: {exc}", status=500)
    except MetaSyncError as exc:
        return _error_response(f"Lock state unavailable: {exc}", status=500)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Reading lock state failed unexpectedly")
        return _error_response(f"Lock state unavailable: {exc}", status=500)
    return _cors_response({"status": "success", "lock": state.to_dict()})


def admin_handler(request: flask.Request) -> flask.Response:
    """Dispatch an administrative action; requires ``X-API-Key``."""

    if request.method == "OPTIONS":
        return _cors_response({}, status=204)
    if request.method != "POST":
        return _error_response("Method not allowed. Use POST.", status=405)

    expected = admin_api_key()
    supplied = request.headers.get("X-API-Key", "")
    if not expected or not hmac.compare_digest(supplied, expected):
        return _error_response("Unauthorized", status=401)

    payload = request.get_json(silent=True) or {}
    action = payload.get("action")
    try:
        admin = AdminService(_services())
        result = _dispatch_admin(admin, action, payload)
    except LockContentionError as exc:
        return _error_response(str(exc), status=409)
    except ConfigurationError as exc:
        return _error_response(f"Configuration error: {exc}", status=500)
    except (KeyError, ValueError) as exc:
        return _error_response(f"Invalid admin request: {exc}", status=400)
    except MetaSyncError as exc:
        logger.error("Admin action %s failed: %s", action, exc)
        return _error_response(f"Admin action failed: {exc}", status=500)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Admin action %s failed unexpectedly", action)
        return _error_response(f"Admin action failed: {exc}", status=500)

    return _cors_response({"status": "success", "action": action, "result": result})


def _dispatch_admin(admin: AdminService, action: Any, payload: Dict[str, Any]) -> Any:
    if action == "lock_state":
        return admin.lock_state().to_dict()
    if action == "force_unlock":
        return admin.force_unlock().to_dict()
    if action == "inspect_staging":
        return admin.inspect_staging(
            payload["dataset"], payload.get("mode", "standard"), int(payload.get("sample_size", 5))
        ).to_dict()
    if action == "force_promote":
        return {"promoted": admin.force_promote(payload["dataset"], payload.get("mode", "standard"))}
    if action == "force_cleanup":
        return {"dropped": admin.force_cleanup(payload["dataset"], payload.get("mode", "standard"))}
    if action == "add_translation":
        size = admin.add_translation(payload["source_name"], payload["localized_name"])
        return {"translations": size}
    if action == "repair_localized_names":
        modes = payload.get("modes") or ["standard", "wild"]
        return admin.repair_localized_names(modes).to_dict()
    raise ValueError(f"unknown action {action!r}")


def _required(args, name: str) -> str:
    value = (args.get(name) or "").strip()
    if not value:
        raise ValueError(f"'{name}' query parameter is required")
    return value


def health_check_handler(request: flask.Request) -> flask.Response:
    """Health check endpoint returning module status."""

    return _cors_response({"status": "healthy", "module": "deck_meta_sync"})


def _cors_response(body: dict[str, Any] | Iterable[Any], status: int = 200) -> flask.Response:
    response = flask.make_response(json.dumps(body, ensure_ascii=False), status)
    headers = response.headers
    headers["Content-Type"] = "application/json"
    headers["Access-Control-Allow-Origin"] = "*"
    headers["Access-Control-Allow-Methods"] = "GET,POST,OPTIONS"
    headers["Access-Control-Allow-Headers"] = "Content-Type,Authorization,X-API-Key"
    return response


def _error_response(message: str, status: int) -> flask.Response:
    return _cors_response({"status": "error", "message": message}, status=status)


@functions_framework.http
def run_pipeline(request: flask.Request):
    return pipeline_handler(request)


@functions_framework.http
def read_dataset(request: flask.Request):
    return read_handler(request)


@functions_framework.http
def lock_state(request: flask.Request):
    return lock_state_handler(request)


@functions_framework.http
def admin(request: flask.Request):
    return admin_handler(request)


@functions_framework.http
def health_check(request: flask.Request):
    return health_check_handler(request)
