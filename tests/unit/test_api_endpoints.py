"""
Unit tests for API endpoints.
"""

import json

import pytest
from fastapi.testclient import TestClient

from adaptive_memory.api.main import app
from adaptive_memory.api.memory import get_memory_manager
from adaptive_memory.config.settings import MemoryConfig
from adaptive_memory.generation.generator import MockGenerator
from adaptive_memory.memory.manager import MemoryManager
from adaptive_memory.memory.store import InMemoryStore


@pytest.fixture
def generator():
    return MockGenerator(default="[]")


@pytest.fixture
def manager(generator):
    manager = MemoryManager(generator, InMemoryStore(), MemoryConfig(
        async_processing=False,
        enable_session_summary=True,
        summary_trigger={"strategy": "by_messages", "message_threshold": 2},
    ))
    yield manager
    manager.close()


@pytest.fixture
def client(manager):
    """Create test client with the manager dependency overridden."""
    app.dependency_overrides[get_memory_manager] = lambda: manager

    client = TestClient(app)
    yield client

    # Clean up
    app.dependency_overrides.clear()


def test_root_endpoint(client):
    response = client.get("/")
    assert response.status_code == 200
    assert "message" in response.json()


def test_health_endpoint(client, manager, monkeypatch):
    monkeypatch.setattr("adaptive_memory.api.main.get_memory_manager", lambda: manager)

    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["components"]["storage"] is True
    assert data["components"]["dispatcher"] is False


def test_post_user_message(client, generator):
    generator.replies.append(json.dumps([{"op": "create", "memory": "Likes tea"}]))

    response = client.post("/api/memory/messages/user", json={
        "user_id": "u1", "session_id": "s1", "text": "I like tea"
    })

    assert response.status_code == 200
    message = response.json()["message"]
    assert message["role"] == "user"
    assert message["id"].startswith("msg_")

    memories = client.get("/api/memory/users/u1/memories").json()
    assert memories["count"] == 1
    assert memories["memories"][0]["memory"] == "Likes tea"


def test_post_user_message_with_parts(client):
    response = client.post("/api/memory/messages/user", json={
        "user_id": "u1",
        "session_id": "s1",
        "text": "",
        "parts": [{"type": "image_url", "url": "https://example.com/x.png"}],
    })
    assert response.status_code == 200
    assert response.json()["message"]["parts"][0]["url"] == "https://example.com/x.png"


def test_validation_error_maps_to_400(client):
    response = client.post("/api/memory/messages/user", json={
        "user_id": "u1", "session_id": "", "text": "hi"
    })
    assert response.status_code == 400
    assert "session_id" in response.json()["detail"]


def test_assistant_message_and_summary(client, generator):
    generator.default = "Short chat."

    client.post("/api/memory/messages/user", json={"user_id": "u1", "session_id": "s1", "text": "hi"})
    # Analysis of "hi" gets non-JSON back and is logged, not raised
    response = client.post("/api/memory/messages/assistant", json={
        "user_id": "u1", "session_id": "s1", "text": "hello"
    })
    assert response.status_code == 200

    summary = client.get("/api/memory/sessions/s1/summary", params={"user_id": "u1"}).json()
    assert summary["summary"]["summary"] == "Short chat."

    messages = client.get("/api/memory/sessions/s1/messages", params={"user_id": "u1"}).json()
    assert [m["role"] for m in messages["messages"]] == ["user", "assistant"]


def test_summary_missing_returns_null(client):
    response = client.get("/api/memory/sessions/none/summary", params={"user_id": "u1"})
    assert response.status_code == 200
    assert response.json()["summary"] is None


def test_memory_crud(client):
    created = client.post("/api/memory/memories", json={"user_id": "u1", "memory": "Runs daily"}).json()
    memory_id = created["id"]

    updated = client.put(f"/api/memory/memories/{memory_id}", json={"user_id": "u1", "memory": "Runs weekly"})
    assert updated.status_code == 200
    assert updated.json()["memory"] == "Runs weekly"

    found = client.get("/api/memory/users/u1/memories/search", params={"q": "WEEKLY"}).json()
    assert found["count"] == 1

    assert client.delete(f"/api/memory/memories/{memory_id}").status_code == 200
    assert client.delete(f"/api/memory/memories/{memory_id}").status_code == 404


def test_update_missing_memory_is_404(client):
    response = client.put("/api/memory/memories/ghost", json={"user_id": "u1", "memory": "x"})
    assert response.status_code == 404


def test_clear_memories(client):
    for text in ["a", "b", "c"]:
        client.post("/api/memory/memories", json={"user_id": "u1", "memory": text})

    response = client.delete("/api/memory/users/u1/memories")
    assert response.json()["deleted"] == 3


def test_delete_messages_and_summary(client):
    client.post("/api/memory/messages/user", json={"user_id": "u1", "session_id": "s1", "text": "hi"})

    response = client.delete("/api/memory/sessions/s1/messages", params={"user_id": "u1"})
    assert response.json()["deleted"] == 1

    response = client.delete("/api/memory/sessions/s1/summary", params={"user_id": "u1"})
    assert response.status_code == 200


def test_stats(client):
    response = client.get("/api/memory/stats")
    assert response.status_code == 200
    assert "config" in response.json()["stats"]


def test_default_manager_from_environment(tmp_path, monkeypatch):
    from adaptive_memory.api.memory import build_default_manager
    from adaptive_memory.persist.sqlite_store import SQLiteMemoryStore

    monkeypatch.delenv("ADAPTIVE_MEMORY_PROVIDER", raising=False)
    monkeypatch.setenv("ADAPTIVE_MEMORY_DB", str(tmp_path / "api.db"))

    manager = build_default_manager()
    try:
        assert isinstance(manager.storage, SQLiteMemoryStore)
        assert isinstance(manager.analyzer.generator, MockGenerator)
    finally:
        manager.close()


def test_shutdown_without_requests_builds_nothing(monkeypatch):
    from adaptive_memory.api import memory as memory_api

    def fail():
        raise AssertionError("manager should not be built on shutdown")

    monkeypatch.setattr(memory_api, "build_default_manager", fail)
    memory_api.set_memory_manager(None)

    memory_api.close_memory_manager()

    assert memory_api._manager is None


def test_shutdown_closes_installed_manager(manager):
    from adaptive_memory.api import memory as memory_api

    memory_api.set_memory_manager(manager)
    memory_api.close_memory_manager()

    assert memory_api._manager is None
    assert manager.health() is False
