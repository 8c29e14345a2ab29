import json

import flask
import httpx
import pytest

from src.functions.deck_meta_sync.core.contracts.config import (
    PipelineConfig,
    ReadPolicy,
    ReadSettings,
    SourceSettings,
)
from src.functions.deck_meta_sync.core.contracts.run_report import RunReport
from src.functions.deck_meta_sync.core.datasets import RANK_STATS
from src.functions.deck_meta_sync.core.db.memory_store import InMemoryDatasetStore
from src.functions.deck_meta_sync.core.orchestration.factory import build_services
from src.functions.deck_meta_sync.core.reference.cache import ReferenceCache
from src.functions.deck_meta_sync.functions import main

from tests.deck_meta_sync.fixtures import flat_ladders, make_card_cache, rank_rows

app = flask.Flask(__name__)


@pytest.fixture
def services(monkeypatch):
    store = InMemoryDatasetStore()
    store.seed("deck_translations", [], ("source_name",))
    store.seed("rank_stats", rank_rows(3), RANK_STATS.key_fields)
    built = build_services(
        PipelineConfig(modes=["standard"]),
        store=store,
        source=SourceSettings(),
        read_settings=ReadSettings(policy=ReadPolicy.REJECT, retry_after_seconds=30),
        ladders=flat_ladders(),
        cards=make_card_cache(),
    )
    monkeypatch.setattr(main, "_services", lambda overrides=None: built)
    return built


def _call(handler, method="GET", path="/", **kwargs):
    with app.test_request_context(path, method=method, **kwargs):
        response = handler(flask.request)
    return response.status_code, json.loads(response.get_data(as_text=True)), response.headers


def test_pipeline_rejects_get(services):
    status, body, _ = _call(main.pipeline_handler, "GET")

    assert status == 405
    assert body["status"] == "error"


def test_pipeline_reports_contention_as_conflict(services):
    services.lock.acquire("scheduled-run")

    status, body, _ = _call(main.pipeline_handler, "POST", json={"modes": ["standard"]})

    assert status == 409
    assert body["locked_at"] == services.lock.state().locked_at.isoformat()
    assert services.lock.state().holder == "scheduled-run"


def test_pipeline_returns_run_report(services, monkeypatch):
    async def fake_run(svc, modes):
        report = RunReport(run_id="run-1", modes=list(modes))
        report.finish("success")
        return report

    monkeypatch.setattr(main, "execute_run", fake_run)

    status, body, headers = _call(main.pipeline_handler, "POST", json={})

    assert status == 200
    assert body["status"] == "success"
    assert body["run_id"] == "run-1"
    assert headers["Access-Control-Allow-Origin"] == "*"


def test_pipeline_rejects_non_list_modes(services):
    status, _, _ = _call(main.pipeline_handler, "POST", json={"modes": "standard"})

    assert status == 400


def test_read_returns_grouped_live_rows(services):
    status, body, _ = _call(main.read_handler, query_string={"dataset": "rank_stats"})

    assert status == 200
    assert len(body["data"]["top_legend"]) == 3


def test_read_during_run_is_rejected_with_retry_after(services):
    services.lock.acquire("pipeline-run")

    status, body, headers = _call(main.read_handler, query_string={"dataset": "rank_stats"})

    assert status == 503
    assert headers["Retry-After"] == "30"
    assert body["status"] == "error"


@pytest.mark.parametrize(
    "query",
    [
        {"dataset": "heroes"},
        {"dataset": "card_stats"},
        {"dataset": "rank_stats", "mode": "arena"},
        {"dataset": "decks", "period": "yesterday"},
    ],
)
def test_read_rejects_bad_queries(services, query):
    status, _, _ = _call(main.read_handler, query_string=query)

    assert status == 400


def test_lock_state_handler(services):
    status, body, _ = _call(main.lock_state_handler)

    assert status == 200
    assert body["lock"]["is_updating"] is False


def test_admin_requires_api_key(services, monkeypatch):
    monkeypatch.setenv("ADMIN_API_KEY", "s3cret")

    status, _, _ = _call(main.admin_handler, "POST", json={"action": "lock_state"})
    assert status == 401

    status, _, _ = _call(
        main.admin_handler, "POST", json={"action": "lock_state"}, headers={"X-API-Key": "wrong"}
    )
    assert status == 401


def test_admin_dispatches_actions(services, monkeypatch):
    monkeypatch.setenv("ADMIN_API_KEY", "s3cret")
    headers = {"X-API-Key": "s3cret"}

    status, body, _ = _call(
        main.admin_handler,
        "POST",
        json={"action": "inspect_staging", "dataset": "rank_stats"},
        headers=headers,
    )
    assert status == 200
    assert body["result"]["live_count"] == 3
    assert body["result"]["staging_exists"] is False

    status, body, _ = _call(main.admin_handler, "POST", json={"action": "explode"}, headers=headers)
    assert status == 400

    services.lock.acquire("pipeline-run")
    status, _, _ = _call(
        main.admin_handler,
        "POST",
        json={"action": "force_cleanup", "dataset": "rank_stats"},
        headers=headers,
    )
    assert status == 409


def test_health_check(services):
    status, body, _ = _call(main.health_check_handler)

    assert status == 200
    assert body["module"] == "deck_meta_sync"


def test_pipeline_reports_reference_load_failure_as_json(monkeypatch):
    def catalog_down():
        raise httpx.ConnectError("catalog down")

    store = InMemoryDatasetStore()
    store.seed("deck_translations", [], ("source_name",))
    built = build_services(
        PipelineConfig(modes=["standard"]),
        store=store,
        source=SourceSettings(),
        read_settings=ReadSettings(),
        ladders=flat_ladders(),
        cards=ReferenceCache("cards", catalog_down),
    )
    monkeypatch.setattr(main, "_services", lambda overrides=None: built)

    status, body, _ = _call(main.pipeline_handler, "POST", json={"modes": ["standard"]})

    assert status == 500
    assert body["status"] == "error"
    assert "catalog down" in body["message"]
    assert built.lock.state().is_updating is False
