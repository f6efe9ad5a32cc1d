from __future__ import annotations

import json
from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient

from crm_actions.assistant.api import get_memory_store
from crm_actions.core.config import get_settings
from crm_actions.crm.memory import InMemoryCrmStore
from crm_actions.main import app


WORKSPACE_ID = "64b7f0c2a1b2c3d4e5f60701"


@pytest.fixture(autouse=True)
def configure_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    monkeypatch.setenv("METRICS_ENABLED", "true")
    monkeypatch.setenv("CRM_BACKEND", "memory")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def client() -> Generator[TestClient, None, None]:
    store = InMemoryCrmStore()
    app.dependency_overrides[get_memory_store] = lambda: store
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def test_metrics_endpoint_exposes_http_and_action_metrics(client: TestClient) -> None:
    health = client.get("/health")
    assert health.status_code == 200

    pipeline = client.post(
        f"/api/workspaces/{WORKSPACE_ID}/assistant/actions",
        json={"command": {"type": "create_pipeline", "parameters": {"name": "Sales", "stages": ["Lead", "Won"]}}},
    )
    assert pipeline.json()["success"] is True

    opportunity = client.post(
        f"/api/workspaces/{WORKSPACE_ID}/assistant/actions",
        json={
            "command": {
                "type": "create_opportunity",
                "parameters": {"title": "Deal", "value": 10, "pipelineId": "Sales", "stageId": "Nowhere"},
            }
        },
    )
    assert opportunity.json()["success"] is True

    bulk = client.post(
        f"/api/workspaces/{WORKSPACE_ID}/assistant/actions",
        json={"command": {"type": "bulk_update_contacts", "parameters": {"contactIds": ["x"], "updates": {"status": "lead"}}}},
    )
    assert bulk.json()["data"] == {"successCount": 0, "failCount": 1}

    malformed = client.post(
        f"/api/workspaces/{WORKSPACE_ID}/assistant/messages",
        json={"text": "```action\n" + json.dumps(["not", "an", "object"]) + "\n```"},
    )
    assert malformed.status_code == 422

    metrics = client.get("/metrics")
    assert metrics.status_code == 200
    body = metrics.text

    assert "http_requests_total" in body
    assert "http_request_duration_seconds" in body
    assert "assistant_action_duration_seconds" in body
    assert "assistant_parse_failures_total" in body
    assert "assistant_stage_fallbacks_total" in body

    assert 'path="/health"' in body
    assert 'path="/api/workspaces/{id}/assistant/actions"' in body
    assert 'action_type="create_pipeline",status="success"' in body
    assert 'action_type="bulk_update_contacts",outcome="failure"' in body


def test_metrics_endpoint_hidden_when_disabled(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("METRICS_ENABLED", "false")
    get_settings.cache_clear()

    response = client.get("/metrics")

    assert response.status_code == 404
