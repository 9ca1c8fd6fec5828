# =============================================================================
# Unit Tests — HTTP API
# =============================================================================
#
# Drives the FastAPI app through TestClient with a JobSystem built on the
# test database and FakeVectorStore, and an embedded Celery worker on the
# in-memory broker. Entering the TestClient context runs the lifespan,
# which publishes the system on app.state and closes it on shutdown.
# =============================================================================

import pytest
from fastapi.testclient import TestClient

from ragqueue.main import create_app

TENANT = {"user_id": "alice", "chat_id": "alice_1718000000000"}
TEXT = ("Node.js is a JavaScript runtime built on V8. " * 30)[:1000]


@pytest.fixture
def client(make_system, run_worker):
    system = make_system()
    run_worker(system)
    with TestClient(create_app(system)) as test_client:
        yield test_client


def _enqueue_text(client, tenant=TENANT, text=TEXT):
    return client.post("/jobs", json={
        "type": "chunk-text",
        "tenant": tenant,
        "payload": {"text": text, "chunk_size": 200, "chunk_overlap": 20},
    })


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"


class TestEnqueueEndpoint:
    def test_accepted_with_job_id(self, client):
        response = _enqueue_text(client)

        assert response.status_code == 202
        body = response.json()
        assert body["job_id"]
        assert body["state"] in ("waiting", "active", "completed")

    def test_unknown_type_is_400(self, client):
        response = client.post("/jobs", json={"type": "resize-image", "tenant": TENANT, "payload": {}})
        assert response.status_code == 400
        assert "resize-image" in response.json()["detail"]

    def test_missing_chat_id_is_recorded_as_failed(self, client):
        response = _enqueue_text(client, tenant={"user_id": "alice"})

        assert response.status_code == 202
        body = response.json()
        assert body["state"] == "failed"
        assert body["message"] == "ValidationError: Both user_id and chat_id are required"

        status = client.get(f"/jobs/{body['job_id']}").json()
        assert status["state"] == "failed"


class TestStatusEndpoints:
    def test_unknown_job_is_404(self, client):
        assert client.get("/jobs/nope").status_code == 404
        assert client.get("/jobs/nope/wait", params={"timeout_ms": 10}).status_code == 404

    def test_wait_returns_result(self, client):
        job_id = _enqueue_text(client).json()["job_id"]

        response = client.get(f"/jobs/{job_id}/wait", params={"timeout_ms": 10000})

        assert response.status_code == 200
        assert response.json() == {
            "job_id": job_id,
            "result": {"chunk_count": 6, "message": "Added 6 text chunks"},
        }
        status = client.get(f"/jobs/{job_id}").json()
        assert status["state"] == "completed"
        assert status["progress"] == 100

    def test_wait_on_failed_job_is_409(self, client):
        job_id = _enqueue_text(client, tenant={"chat_id": "c1"}).json()["job_id"]

        response = client.get(f"/jobs/{job_id}/wait", params={"timeout_ms": 1000})

        assert response.status_code == 409
        assert response.json()["detail"].startswith("ValidationError")

    def test_search_is_tenant_scoped(self, client):
        job_id = _enqueue_text(client).json()["job_id"]
        client.get(f"/jobs/{job_id}/wait", params={"timeout_ms": 10000})

        other = client.post("/jobs", json={
            "type": "search",
            "tenant": {"user_id": "bob", "chat_id": "bob_1"},
            "payload": {"query": "node js"},
        }).json()["job_id"]
        response = client.get(f"/jobs/{other}/wait", params={"timeout_ms": 10000})

        assert response.json()["result"] == {"results_count": 0, "results": []}

    def test_queue_counts(self, client):
        job_id = _enqueue_text(client).json()["job_id"]
        client.get(f"/jobs/{job_id}/wait", params={"timeout_ms": 10000})
        _enqueue_text(client, tenant={})

        counts = client.get("/jobs").json()

        assert counts["completed"] == 1
        assert counts["failed"] == 1


class TestWaitTimeout:
    def test_wait_timeout_is_408(self, make_system):
        # No worker consumes the queue, so the job stays waiting
        system = make_system()
        app = create_app(system)
        app.state.job_system = system
        client = TestClient(app)
        job_id = client.post("/jobs", json={
            "type": "search", "tenant": TENANT, "payload": {"query": "q"},
        }).json()["job_id"]

        response = client.get(f"/jobs/{job_id}/wait", params={"timeout_ms": 50})

        assert response.status_code == 408
        assert client.get(f"/jobs/{job_id}").json()["state"] == "waiting"


class TestChats:
    def test_new_chat_id_is_prefixed_by_user(self, client):
        response = client.post("/chats", json={"user_id": "alice"})

        assert response.status_code == 201
        body = response.json()
        assert body["user_id"] == "alice"
        assert body["chat_id"].startswith("alice_")

    def test_blank_user_is_rejected(self, client):
        assert client.post("/chats", json={"user_id": "   "}).status_code == 422
