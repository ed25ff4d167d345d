"""Tests for the FastAPI task service."""
import json

import pytest
from fastapi.testclient import TestClient

from browsegate.remote.models import TaskStatus
from browsegate.service import InMemoryTaskStore, SimulatedRunner, create_app
from browsegate.workflow.config import Settings

AUTH = {"x-api-key": "test-key"}


class IdleRunner:
    """Leaves tasks queued."""

    async def run(self, task, store):
        return None


@pytest.fixture
def store():
    return InMemoryTaskStore()


def make_client(store, runner):
    return TestClient(create_app(store=store, settings=Settings(), runner=runner, event_interval=0))


@pytest.fixture
def instant_client(store):
    return make_client(store, SimulatedRunner(duration=0, start_delay=0))


@pytest.fixture
def idle_client(store):
    return make_client(store, IdleRunner())


def parse_sse(text):
    events = []
    for block in text.strip().split("\n\n"):
        lines = dict(line.split(": ", 1) for line in block.splitlines())
        events.append((lines["event"], json.loads(lines["data"])))
    return events


def test_health_needs_no_credentials(idle_client):
    response = idle_client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_missing_credentials_are_rejected(idle_client):
    response = idle_client.get("/tasks")

    assert response.status_code == 401
    assert response.json()["code"] == "AUTH_FAILED"


def test_bearer_token_is_accepted(idle_client):
    assert idle_client.get("/tasks", headers={"Authorization": "Bearer abc"}).status_code == 200


def test_create_task_runs_to_completion(instant_client, store):
    response = instant_client.post("/tasks", json={"taskType": "scrape", "targets": ["https://a.test"]}, headers=AUTH)

    assert response.status_code == 202
    task_id = response.json()["id"]
    assert response.json()["status"] == "queued"

    task = instant_client.get(f"/tasks/{task_id}", headers=AUTH).json()
    assert task["status"] == "completed"
    assert task["progress"] == 100

    result = instant_client.get(f"/tasks/{task_id}/result", headers=AUTH).json()
    assert result["status"] == "completed"
    assert result["data"]["targets"] == ["https://a.test"]

    artifact_id = result["artifacts"][0]["id"]
    artifact = instant_client.get(f"/artifacts/{artifact_id}", headers=AUTH)
    assert artifact.status_code == 200
    assert artifact.json()["type"] == "json"


def test_create_task_without_task_type_is_invalid(idle_client):
    response = idle_client.post("/tasks", json={"instructions": "hi"}, headers=AUTH)

    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_REQUEST"


def test_result_of_unfinished_task_is_a_partial_shell(idle_client):
    task_id = idle_client.post("/tasks", json={"taskType": "scrape"}, headers=AUTH).json()["id"]

    result = idle_client.get(f"/tasks/{task_id}/result", headers=AUTH).json()

    assert result == {"taskId": task_id, "status": "queued", "logs": [], "artifacts": []}


def test_unknown_ids_return_404(idle_client):
    assert idle_client.get("/tasks/nope", headers=AUTH).json()["code"] == "TASK_NOT_FOUND"
    assert idle_client.get("/tasks/nope/result", headers=AUTH).status_code == 404
    assert idle_client.get("/monitors/nope", headers=AUTH).json()["code"] == "MONITOR_NOT_FOUND"
    assert idle_client.get("/artifacts/nope", headers=AUTH).json()["code"] == "ARTIFACT_NOT_FOUND"


def test_cancel_then_cancel_again_conflicts(idle_client, store):
    task_id = idle_client.post("/tasks", json={"taskType": "scrape"}, headers=AUTH).json()["id"]

    first = idle_client.post(f"/tasks/{task_id}/cancel", headers=AUTH)
    second = idle_client.post(f"/tasks/{task_id}/cancel", headers=AUTH)

    assert first.status_code == 200
    assert first.json()["status"] == "cancelled"
    assert store.get_result(task_id).status == TaskStatus.CANCELLED
    assert second.status_code == 409
    assert second.json()["code"] == "TASK_TERMINAL"
    assert second.json()["details"] == {"status": "cancelled"}


def test_events_stream_ends_after_terminal_status(instant_client):
    task_id = instant_client.post("/tasks", json={"taskType": "scrape"}, headers=AUTH).json()["id"]

    response = instant_client.get(f"/tasks/{task_id}/events", headers=AUTH)

    assert response.headers["content-type"].startswith("text/event-stream")
    events = parse_sse(response.text)
    assert [name for name, _ in events] == ["status", "result", "end"]
    assert events[0][1]["status"] == "completed"
    assert events[2][1] == {"status": "completed"}


def test_monitor_lifecycle(idle_client):
    created = idle_client.post("/monitors", json={"instructions": "watch prices", "intervalMs": 60000}, headers=AUTH)

    assert created.status_code == 201
    monitor_id = created.json()["id"]
    assert created.json()["status"] == "active"
    assert [m["id"] for m in idle_client.get("/monitors", headers=AUTH).json()] == [monitor_id]

    deleted = idle_client.delete(f"/monitors/{monitor_id}", headers=AUTH)

    assert deleted.status_code == 204
    assert idle_client.get(f"/monitors/{monitor_id}", headers=AUTH).status_code == 404
    assert idle_client.delete(f"/monitors/{monitor_id}", headers=AUTH).status_code == 404


def test_monitor_requires_interval(idle_client):
    response = idle_client.post("/monitors", json={"instructions": "watch"}, headers=AUTH)
    assert response.status_code == 400
