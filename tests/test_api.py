from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from conftest import FakeEmbeddings, blend, unit
from personal_agent import main
from personal_agent.database import get_db
from personal_agent.services.embeddings import EmbeddingService
from personal_agent.services.retrieval import RetrievalService
from personal_agent.services import sync


@pytest.fixture
def fake_embeddings() -> FakeEmbeddings:
    return FakeEmbeddings(vectors={
        "sqlite decision": unit(0),
        "what about sqlite": unit(0),
        "gardening": unit(9),
        "unrelated": blend(0.1),
    })


@pytest.fixture
def client(session_factory, embedding_service):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    main.app.dependency_overrides[get_db] = override_get_db
    main.app.dependency_overrides[main.get_embedding_service] = lambda: embedding_service
    main.app.dependency_overrides[main.get_retrieval_service] = lambda: RetrievalService(embeddings=embedding_service)
    # Not entered as a context manager so the lifespan never touches the configured database
    client = TestClient(main.app)
    yield client
    main.app.dependency_overrides.clear()


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_detailed_health(client):
    body = client.get("/health/detailed").json()
    assert body["checks"]["database"] == {"status": "healthy", "type": "sqlite"}
    assert body["checks"]["embeddings"]["status"] == "configured"


class TestSession:
    def test_put_then_get(self, client):
        payload = {"messages": [
            {"role": "human", "content": "hi"},
            {"role": "assistant", "content": "hello"},
        ]}
        response = client.put("/session/slack-C1-U1", json=payload)
        assert response.status_code == 200
        assert response.json() == {"thread_key": "slack-C1-U1", "step": 2}

        # replaying the same list is a no-op
        assert client.put("/session/slack-C1-U1", json=payload).json()["step"] == 2

        body = client.get("/session/slack-C1-U1").json()
        assert [m["content"] for m in body["messages"]] == ["hi", "hello"]
        assert body["step"] == 2

    def test_unknown_thread(self, client):
        assert client.get("/session/slack-C1-U9").status_code == 404

    def test_malformed_key(self, client):
        response = client.put("/session/slack-C1", json={"messages": [{"role": "human", "content": "hi"}]})
        assert response.status_code == 400
        assert response.json()["error"] == "MalformedKey"


class TestMemories:
    def test_create_update_and_list(self, client):
        response = client.post("/memories", json={
            "content": "Chose SQLite for tests",
            "path": "projects/agent/decisions",
            "tags": ["testing"],
        })
        assert response.status_code == 201
        created = response.json()
        assert created["has_embedding"] is True

        response = client.patch(f"/memories/{created['id']}", json={"content": "Also for CI", "append_content": True})
        assert response.status_code == 200
        assert response.json()["content"] == "Chose SQLite for tests\n\nAlso for CI"

        listed = client.get("/memories", params={"tags": ["testing"]}).json()
        assert [m["id"] for m in listed] == [created["id"]]

    def test_update_missing_memory(self, client):
        response = client.patch("/memories/12345", json={"tags": ["x"]})
        assert response.status_code == 404

    def test_update_without_fields(self, client):
        created = client.post("/memories", json={"content": "x", "path": "p"}).json()
        assert client.patch(f"/memories/{created['id']}", json={}).status_code == 422

    def test_analytics(self, client):
        client.post("/memories", json={"content": "a", "path": "work", "tags": ["python"]})
        client.post("/memories", json={"content": "b", "path": "work", "tags": ["python", "ai"]})

        summary = client.get("/memories/analytics").json()
        assert summary["total_memories"] == 2
        assert summary["unique_tags"] == 2

        by_tag = client.get("/memories/analytics", params={"group_by": "tag"}).json()
        assert by_tag[0] == {"tag": "python", "count": 2}

        assert client.get("/memories/analytics", params={"group_by": "month"}).status_code == 422

    def test_relevant_memories(self, client):
        client.post("/memories", json={"content": "sqlite decision", "path": "decisions"})
        client.post("/memories", json={"content": "gardening", "path": "hobbies"})

        body = client.post("/memories/relevant", json={"query": "what about sqlite", "k": 1}).json()
        assert [r["path"] for r in body["results"]] == ["decisions"]
        assert body["results"][0]["score"] is not None


class TestSearch:
    def test_vector_search_over_memories(self, client):
        client.post("/memories", json={"content": "sqlite decision", "path": "decisions"})
        client.post("/memories", json={"content": "unrelated", "path": "noise"})

        response = client.post("/search", json={
            "query": "what about sqlite",
            "mode": "vector",
            "target": "memories",
        })
        assert response.status_code == 200
        body = response.json()
        assert body["total_results"] == 1
        assert body["results"][0]["path"] == "decisions"
        assert body["results"][0]["similarity"] == pytest.approx(1.0)

    def test_tag_search(self, client):
        client.post("/memories", json={"content": "a", "path": "one", "tags": ["ai", "ml"]})
        client.post("/memories", json={"content": "b", "path": "two", "tags": ["ai"]})

        body = client.post("/search", json={"query": ["ai", "ml"], "mode": "tag", "target": "memories"}).json()
        assert [r["path"] for r in body["results"]] == ["one"]

    def test_vector_search_rejects_list_query(self, client):
        response = client.post("/search", json={"query": ["a"], "mode": "vector"})
        assert response.status_code == 422

    def test_store_id_rejected_for_memories(self, client):
        response = client.post("/search", json={
            "query": "x", "mode": "keyword", "target": "memories", "options": {"store_id": 1},
        })
        assert response.status_code == 422


class TestStores:
    def test_create_and_sync(self, client, monkeypatch, tmp_path):
        calls = []

        def delay(store_id):
            calls.append(store_id)
            return SimpleNamespace(id="task-1")

        monkeypatch.setattr(sync.sync_store, "delay", delay)

        response = client.post("/stores", json={"type": "local", "location": str(tmp_path)})
        assert response.status_code == 201
        store_id = response.json()["id"]

        response = client.post(f"/stores/{store_id}/sync")
        assert response.status_code == 200
        assert response.json() == {"message": "Sync started", "store_id": store_id, "task_id": "task-1"}
        assert calls == [store_id]

    def test_sync_unknown_store(self, client):
        assert client.post("/stores/999/sync").status_code == 404
